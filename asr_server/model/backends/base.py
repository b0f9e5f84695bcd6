"""Capability interfaces the decoding core consumes from a search engine.

The engine owns all numeric work: feature extraction, the incremental
beam search and lattice algorithms. Sessions, pools and hypothesis
synthesis only talk to these protocols, so any engine (or a deterministic
stub in tests) can be plugged in.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class FeatureConfig:
    """Parsed feature-pipeline configuration with resolved resource paths."""

    mfcc_conf_path: str
    ivector_conf_path: str
    mfcc_options: Dict[str, str]
    ivector_options: Dict[str, str]


@dataclass(frozen=True)
class LinearPath:
    """One n-best path flattened to its word ids and weight components."""

    word_ids: Tuple[int, ...]
    lm_score: float
    am_score: float


@dataclass(frozen=True)
class MbrOneBest:
    """Minimum-Bayes-risk one-best with per-word confidence and frame spans."""

    word_ids: Tuple[int, ...]
    confidences: Tuple[float, ...]
    frame_spans: Tuple[Tuple[float, float], ...]


class IvectorFeature(Protocol):
    def update_frame_weights(self, delta_weights: Sequence[Tuple[int, float]]) -> None:
        """Apply silence re-weighting to frames already seen."""
        raise NotImplementedError


class FeaturePipeline(Protocol):
    """Per-utterance feature extraction instance."""

    def accept_waveform(self, sample_rate: float, samples: np.ndarray) -> None:
        raise NotImplementedError

    def num_frames_ready(self) -> int:
        raise NotImplementedError

    def input_finished(self) -> None:
        raise NotImplementedError

    def ivector_feature(self) -> Optional[IvectorFeature]:
        raise NotImplementedError

    def get_adaptation_state(self, state: Any) -> None:
        """Copy the accumulated adaptation statistics into ``state``."""
        raise NotImplementedError


class SearchDecoder(Protocol):
    """Per-utterance incremental search bound to one feature pipeline."""

    def advance_decoding(self) -> None:
        raise NotImplementedError

    def num_frames_decoded(self) -> int:
        raise NotImplementedError

    def finalize_decoding(self) -> None:
        raise NotImplementedError

    def get_lattice(self, end_of_utterance: bool) -> Any:
        raise NotImplementedError

    def traceback_source(self) -> Any:
        """Return the object the silence-weighting helper traces back through."""
        raise NotImplementedError


class SilenceWeighting(Protocol):
    def active(self) -> bool:
        raise NotImplementedError

    def compute_current_traceback(self, traceback_source: Any) -> None:
        raise NotImplementedError

    def get_delta_weights(self, num_frames_ready: int) -> List[Tuple[int, float]]:
        raise NotImplementedError


class DecodingEngine(Protocol):
    """Loaded model resources plus the operations sessions and synthesis need."""

    def new_adaptation_state(self) -> Any:
        raise NotImplementedError

    def new_silence_weighting(self) -> Optional[SilenceWeighting]:
        raise NotImplementedError

    def new_feature_pipeline(self, adaptation_state: Any) -> FeaturePipeline:
        raise NotImplementedError

    def new_search(self, feature_pipeline: FeaturePipeline) -> SearchDecoder:
        raise NotImplementedError

    def num_states(self, lattice: Any) -> int:
        raise NotImplementedError

    def nbest_paths(self, lattice: Any, n_best: int) -> List[LinearPath]:
        """Up to ``n_best`` shortest paths, best total weight first."""
        raise NotImplementedError

    def word_align(self, lattice: Any, max_states: int) -> Tuple[bool, Optional[Any]]:
        """Align to word boundaries; returns (ok, aligned-or-None-when-empty)."""
        raise NotImplementedError

    def mbr_one_best(self, aligned_lattice: Any, acoustic_scale: float) -> MbrOneBest:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class EngineBackend(Protocol):
    """Callable that loads engine resources from a model directory."""

    def __call__(
        self, spec: Any, model_dir: str, feature_config: FeatureConfig
    ) -> DecodingEngine:
        raise NotImplementedError


__all__ = [
    "DecodingEngine",
    "EngineBackend",
    "FeatureConfig",
    "FeaturePipeline",
    "IvectorFeature",
    "LinearPath",
    "MbrOneBest",
    "SearchDecoder",
    "SilenceWeighting",
]
