"""Injectable observability hooks for decoder sessions and pools."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

STAGE_ACCEPT_WAVEFORM = "accept_waveform"
STAGE_SILENCE_WEIGHTING = "silence_weighting"
STAGE_ADVANCE = "advance_decoding"
STAGE_FINALIZE = "finalize_decoding"
STAGE_LATTICE = "get_lattice"
STAGE_SYNTHESIZE = "synthesize"
STAGE_START = "start_decoding"


def _noop_stage(_: str, __: Optional[str], ___: float) -> None:
    return None


def _noop_wait(_: float) -> None:
    return None


def _noop_count(_: int) -> None:
    return None


@dataclass(frozen=True)
class DecodeHooks:
    on_stage: Callable[[str, Optional[str], float], None] = _noop_stage
    on_pool_wait: Callable[[float], None] = _noop_wait
    on_results: Callable[[int], None] = _noop_count


NOOP_HOOKS = DecodeHooks()


@contextmanager
def stage_timer(
    hooks: DecodeHooks, stage: str, session_id: Optional[str]
) -> Iterator[None]:
    """Report the wall time of the wrapped block as ``stage``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        hooks.on_stage(stage, session_id, time.perf_counter() - start)


__all__ = [
    "DecodeHooks",
    "NOOP_HOOKS",
    "STAGE_ACCEPT_WAVEFORM",
    "STAGE_ADVANCE",
    "STAGE_FINALIZE",
    "STAGE_LATTICE",
    "STAGE_SILENCE_WEIGHTING",
    "STAGE_START",
    "STAGE_SYNTHESIZE",
    "stage_timer",
]
