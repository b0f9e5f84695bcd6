"""Observability hooks and metrics for the decoding core."""

from .hooks import NOOP_HOOKS, DecodeHooks, stage_timer
from .metrics import Histogram, Metrics

__all__ = ["DecodeHooks", "Histogram", "Metrics", "NOOP_HOOKS", "stage_timer"]
