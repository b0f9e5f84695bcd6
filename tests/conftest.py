"""Deterministic in-memory decoding engine used across the test suite."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

import numpy as np
import pytest

from asr_server.config.loader import ModelSpec
from asr_server.model.backends.base import LinearPath, MbrOneBest
from asr_server.model.bundle import load_bundle

# Samples per feature frame in the fake pipeline.
FRAME_SIZE = 160

WORDS_TXT = "<eps> 0\nhello 1\nworld 2\nfoo 3\n"


@dataclass
class FakeAdaptationState:
    frames: int = 0
    updates: int = 0


class FakeIvectorFeature:
    """Records the silence delta weights pushed to the i-vector extractor."""

    def __init__(self) -> None:
        self.weight_updates: List[List[Tuple[int, float]]] = []

    def update_frame_weights(self, delta_weights) -> None:
        self.weight_updates.append(list(delta_weights))


class FakeFeaturePipeline:
    """Buffers accepted audio; one frame per FRAME_SIZE samples."""

    def __init__(self, adaptation_state: FakeAdaptationState, use_ivector: bool) -> None:
        self.adaptation_state = adaptation_state
        self.chunks: List[np.ndarray] = []
        self.sample_rates: List[float] = []
        self.finished = False
        self._ivector = FakeIvectorFeature() if use_ivector else None

    def accept_waveform(self, sample_rate: float, samples: np.ndarray) -> None:
        self.sample_rates.append(sample_rate)
        self.chunks.append(np.array(samples, copy=True))

    def audio(self) -> np.ndarray:
        if not self.chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(self.chunks)

    def num_frames_ready(self) -> int:
        return int(self.audio().shape[0]) // FRAME_SIZE

    def input_finished(self) -> None:
        self.finished = True

    def ivector_feature(self) -> Optional[FakeIvectorFeature]:
        return self._ivector

    def get_adaptation_state(self, state: FakeAdaptationState) -> None:
        state.frames += self.num_frames_ready()
        state.updates += 1


@dataclass
class FakeLattice:
    paths: List[LinearPath]
    frames: int
    audio: np.ndarray
    final: bool


class FakeSearch:
    """Decodes every ready frame on advance; lattices snapshot the fed audio."""

    def __init__(self, pipeline: FakeFeaturePipeline, engine: "FakeEngine") -> None:
        self.pipeline = pipeline
        self.engine = engine
        self.decoded = 0
        self.advance_calls = 0
        self.finalized = False

    def advance_decoding(self) -> None:
        self.advance_calls += 1
        self.decoded = self.pipeline.num_frames_ready()

    def num_frames_decoded(self) -> int:
        return self.decoded

    def finalize_decoding(self) -> None:
        self.finalized = True

    def get_lattice(self, end_of_utterance: bool) -> FakeLattice:
        if self.engine.lattice_error is not None:
            raise self.engine.lattice_error
        lattice = FakeLattice(
            paths=list(self.engine.paths),
            frames=self.decoded,
            audio=self.pipeline.audio(),
            final=self.finalized,
        )
        self.engine.lattices.append(lattice)
        return lattice

    def traceback_source(self) -> "FakeSearch":
        return self


class FakeSilenceWeighting:
    """Down-weights the newest ready frame when active."""

    def __init__(self, active: bool) -> None:
        self._active = active
        self.tracebacks: List[Any] = []

    def active(self) -> bool:
        return self._active

    def compute_current_traceback(self, traceback_source: Any) -> None:
        self.tracebacks.append(traceback_source)

    def get_delta_weights(self, num_frames_ready: int) -> List[Tuple[int, float]]:
        if num_frames_ready <= 0:
            return []
        return [(num_frames_ready - 1, 0.5)]


@dataclass
class FakeEngine:
    """Engine stub; lattices carry the configured paths and the fed audio."""

    paths: List[LinearPath] = field(
        default_factory=lambda: [
            LinearPath(word_ids=(1, 2), lm_score=10.0, am_score=100.0),
            LinearPath(word_ids=(1, 3), lm_score=12.0, am_score=120.0),
            LinearPath(word_ids=(3,), lm_score=20.0, am_score=150.0),
        ]
    )
    align_result: Optional[Tuple[bool, Any]] = None
    one_best: MbrOneBest = field(
        default_factory=lambda: MbrOneBest(
            word_ids=(1, 2),
            confidences=(0.9, 0.8),
            frame_spans=((0.0, 10.0), (10.0, 25.0)),
        )
    )
    silence_active: bool = False
    use_ivector: bool = True
    lattice_error: Optional[Exception] = None
    closed: bool = False
    pipelines: List[FakeFeaturePipeline] = field(default_factory=list)
    searches: List[FakeSearch] = field(default_factory=list)
    silence_weightings: List[FakeSilenceWeighting] = field(default_factory=list)
    lattices: List[FakeLattice] = field(default_factory=list)
    aligned_max_states: List[int] = field(default_factory=list)

    def new_adaptation_state(self) -> FakeAdaptationState:
        return FakeAdaptationState()

    def new_silence_weighting(self) -> FakeSilenceWeighting:
        weighting = FakeSilenceWeighting(self.silence_active)
        self.silence_weightings.append(weighting)
        return weighting

    def new_feature_pipeline(self, adaptation_state: FakeAdaptationState) -> FakeFeaturePipeline:
        pipeline = FakeFeaturePipeline(adaptation_state, self.use_ivector)
        self.pipelines.append(pipeline)
        return pipeline

    def new_search(self, feature_pipeline: FakeFeaturePipeline) -> FakeSearch:
        search = FakeSearch(feature_pipeline, self)
        self.searches.append(search)
        return search

    def num_states(self, lattice: FakeLattice) -> int:
        if lattice.frames == 0 or not lattice.paths:
            return 0
        return lattice.frames + 1

    def nbest_paths(self, lattice: FakeLattice, n_best: int) -> List[LinearPath]:
        return list(lattice.paths[:n_best])

    def word_align(self, lattice: FakeLattice, max_states: int) -> Tuple[bool, Any]:
        self.aligned_max_states.append(max_states)
        if self.align_result is not None:
            return self.align_result
        return True, lattice

    def mbr_one_best(self, aligned_lattice: Any, acoustic_scale: float) -> MbrOneBest:
        return self.one_best

    def close(self) -> None:
        self.closed = True


def write_model_dir(root: Path, word_boundary: bool = True) -> Path:
    """Create the files a model directory must contain."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "final.mdl").write_bytes(b"mdl")
    (root / "HCLG.fst").write_bytes(b"fst")
    (root / "words.txt").write_text(WORDS_TXT, encoding="utf-8")
    if word_boundary:
        (root / "word_boundary.int").write_text("1 nonword\n", encoding="utf-8")
    conf = root / "conf"
    conf.mkdir(exist_ok=True)
    (conf / "mfcc.conf").write_text(
        "--use-energy=false  # energy off\n--sample-frequency=16000\n",
        encoding="utf-8",
    )
    (conf / "ivector_extractor.conf").write_text(
        "--splice-config=conf/splice.conf\n"
        "--cmvn-config=conf/online_cmvn.conf\n"
        "--lda-matrix=ivector_extractor/final.mat\n"
        "--global-cmvn-stats=ivector_extractor/global_cmvn.stats\n"
        "--diag-ubm=/abs/final.dubm\n"
        "--ivector-extractor=ivector_extractor/final.ie\n"
        "--num-gselect=5\n",
        encoding="utf-8",
    )
    return root


def engine_loader(engine: FakeEngine):
    def _load(spec, model_dir, feature_config):
        return engine

    return _load


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def model_dir(tmp_path: Path) -> Path:
    return write_model_dir(tmp_path / "model")


@pytest.fixture
def model_spec(model_dir: Path) -> ModelSpec:
    return ModelSpec(path=str(model_dir), name="test", language_code="en", n_decoders=2)


@pytest.fixture
def bundle(model_spec: ModelSpec, fake_engine: FakeEngine):
    return load_bundle(model_spec, backend=engine_loader(fake_engine))


def audio_seconds(seconds: float, sample_rate: int = 16000) -> np.ndarray:
    """Deterministic non-silent int16-range samples."""
    n = int(seconds * sample_rate)
    return (np.arange(n, dtype=np.float32) % 200 - 100) * 100.0


__all__ = [
    "FRAME_SIZE",
    "FakeEngine",
    "audio_seconds",
    "engine_loader",
    "write_model_dir",
]
