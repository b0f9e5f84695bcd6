"""Decoding core: components, application services and runtime wiring."""
