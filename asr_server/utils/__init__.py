"""Logging and audio helpers."""
