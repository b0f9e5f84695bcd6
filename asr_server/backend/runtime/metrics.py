"""Runtime metrics for decoder sessions and pools."""

import bisect
import threading
from collections import defaultdict
from dataclasses import dataclass
from itertools import accumulate
from typing import Any, Dict, Optional

from asr_server.backend.runtime.hooks import DecodeHooks

STAGE_BUCKETS = (0.0005, 0.001, 0.005, 0.01, 0.02, 0.05, 0.1, 0.2, 0.5, 1.0, 2.5)
POOL_WAIT_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0)


@dataclass(frozen=True)
class HistogramSnapshot:
    """Point-in-time copy of a Histogram."""

    bounds: tuple
    cumulative_counts: tuple
    count: int
    sum: float


class Histogram:
    """Fixed-bucket latency histogram; callers serialize access."""

    def __init__(self, bounds: tuple):
        self._bounds = tuple(sorted({float(b) for b in bounds if float(b) >= 0}))
        # Last slot is the +Inf bucket.
        self._bucket_counts = [0] * (len(self._bounds) + 1)
        self._count = 0
        self._sum = 0.0

    def observe(self, value: float) -> None:
        if value < 0:
            return
        index = bisect.bisect_left(self._bounds, value)
        self._bucket_counts[index] += 1
        self._count += 1
        self._sum += value

    def snapshot(self) -> HistogramSnapshot:
        return HistogramSnapshot(
            self._bounds,
            tuple(accumulate(self._bucket_counts)),
            self._count,
            self._sum,
        )


class Metrics:
    """Thread-safe aggregation of decode stage timings and pool waits."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stage_hists: Dict[str, Histogram] = {}
        self._stage_max: Dict[str, float] = defaultdict(float)
        self._pool_wait_hist = Histogram(POOL_WAIT_BUCKETS)
        self._pool_wait_max = 0.0
        self._results_total = 0
        self._empty_results_total = 0

    def record_stage(
        self, stage: str, _session_id: Optional[str], elapsed_sec: float
    ) -> None:
        """Record the duration of a single decode stage."""
        with self._lock:
            hist = self._stage_hists.get(stage)
            if hist is None:
                hist = Histogram(STAGE_BUCKETS)
                self._stage_hists[stage] = hist
            hist.observe(elapsed_sec)
            self._stage_max[stage] = max(self._stage_max[stage], elapsed_sec)

    def record_pool_wait(self, wait_sec: float) -> None:
        """Record how long a caller blocked in ``acquire``."""
        with self._lock:
            self._pool_wait_hist.observe(wait_sec)
            self._pool_wait_max = max(self._pool_wait_max, wait_sec)

    def record_results(self, count: int) -> None:
        """Record one finished utterance and its alternative count."""
        with self._lock:
            self._results_total += 1
            if count <= 0:
                self._empty_results_total += 1

    def hooks(self) -> DecodeHooks:
        """Return hooks that feed this metrics instance."""
        return DecodeHooks(
            on_stage=self.record_stage,
            on_pool_wait=self.record_pool_wait,
            on_results=self.record_results,
        )

    def render(self) -> Dict[str, Any]:
        """Full export including per-stage bucket counts."""
        with self._lock:
            pool_wait = self._pool_wait_hist.snapshot()
            payload: Dict[str, Any] = {
                "utterances_total": self._results_total,
                "empty_results_total": self._empty_results_total,
                "pool_wait_count": pool_wait.count,
                "pool_wait_total": pool_wait.sum,
                "pool_wait_max": self._pool_wait_max,
                "stage_max": dict(self._stage_max),
            }
            histograms = {
                f"stage_{stage}_sec": self._histogram_payload(hist)
                for stage, hist in self._stage_hists.items()
            }
            histograms["pool_wait_sec"] = self._histogram_payload(self._pool_wait_hist)
            payload["histograms"] = histograms
            return payload

    @staticmethod
    def _histogram_payload(histogram: Histogram) -> Dict[str, Any]:
        snap = histogram.snapshot()
        buckets: Dict[str, int] = {}
        for idx, bound in enumerate(snap.bounds):
            buckets[str(bound)] = snap.cumulative_counts[idx]
        buckets["+Inf"] = snap.cumulative_counts[-1]
        return {"buckets": buckets, "count": snap.count, "sum": snap.sum}

    def snapshot(self) -> Dict[str, float]:
        """Return averages and maxima for stage timings."""
        with self._lock:
            result: Dict[str, float] = {}
            for stage, hist in self._stage_hists.items():
                snap = hist.snapshot()
                result[f"{stage}_avg"] = snap.sum / snap.count if snap.count else 0.0
                result[f"{stage}_max"] = self._stage_max[stage]
            pool_wait = self._pool_wait_hist.snapshot()
            result["pool_wait_avg"] = (
                pool_wait.sum / pool_wait.count if pool_wait.count else 0.0
            )
            result["pool_wait_max"] = self._pool_wait_max
            return result


__all__ = ["Histogram", "HistogramSnapshot", "Metrics"]
