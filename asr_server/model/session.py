"""Per-utterance decoding state machine wrapped around the engine."""

import logging
from enum import Enum
from typing import Any, List, Optional

import numpy as np

from asr_server.model.hypothesis import HypothesisSynthesizer
from asr_server.backend.runtime.hooks import (
    NOOP_HOOKS,
    STAGE_ACCEPT_WAVEFORM,
    STAGE_ADVANCE,
    STAGE_FINALIZE,
    STAGE_LATTICE,
    STAGE_SILENCE_WEIGHTING,
    STAGE_START,
    STAGE_SYNTHESIZE,
    DecodeHooks,
    stage_timer,
)
from asr_server.errors import ErrorCode, STTError
from asr_server.model.backends.base import FeaturePipeline, SearchDecoder
from asr_server.model.bundle import ModelResourceBundle
from asr_server.model.results import Alternative

LOGGER = logging.getLogger("asr_server.decoder_session")


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"


class DecoderSession:
    """Mutable decoding state for one pool slot.

    The feature pipeline and search are rebuilt by every ``start`` call. The
    adaptation state belongs to the session object itself, so speaker
    adaptation carries over between utterances served by the same slot,
    whoever the caller is.
    """

    def __init__(
        self, bundle: ModelResourceBundle, hooks: Optional[DecodeHooks] = None
    ) -> None:
        self.bundle = bundle
        self._engine = bundle.engine
        self._hooks = hooks or NOOP_HOOKS
        self._synthesizer = HypothesisSynthesizer(bundle)
        self._adaptation_state = self._engine.new_adaptation_state()
        self._silence_weighting = self._engine.new_silence_weighting()
        self._feature_pipeline: Optional[FeaturePipeline] = None
        self._search: Optional[SearchDecoder] = None
        self.session_id: Optional[str] = None
        self.state = SessionState.IDLE

    @property
    def adaptation_state(self) -> Any:
        return self._adaptation_state

    def start(self, session_id: str) -> None:
        """Discard any previous utterance and begin a new one."""
        self.free()
        with stage_timer(self._hooks, STAGE_START, session_id):
            pipeline = self._engine.new_feature_pipeline(self._adaptation_state)
            search = self._engine.new_search(pipeline)
        self._feature_pipeline = pipeline
        self._search = search
        self.session_id = session_id
        self.state = SessionState.ACTIVE
        LOGGER.debug("Decoder session started session_id=%s", session_id)

    def free(self) -> None:
        """Drop the feature pipeline and search together."""
        self._search = None
        self._feature_pipeline = None
        self.session_id = None
        self.state = SessionState.IDLE

    def feed_chunk(self, samples: np.ndarray, sample_rate: float) -> None:
        """Push one time-ordered chunk and advance the search.

        Chunks must be consecutive and non-overlapping; the search has no way
        to detect reordered or duplicated audio.
        """
        pipeline, search = self._require_active()
        if sample_rate <= 0:
            raise STTError(ErrorCode.SAMPLE_RATE_INVALID)
        data = np.asarray(samples, dtype=np.float32)
        if data.ndim != 1:
            raise STTError(ErrorCode.AUDIO_INVALID, "expected mono (1-D) samples")
        session_id = self.session_id

        with stage_timer(self._hooks, STAGE_ACCEPT_WAVEFORM, session_id):
            pipeline.accept_waveform(sample_rate, data)

        ivector_feature = pipeline.ivector_feature()
        if (
            self._silence_weighting is not None
            and self._silence_weighting.active()
            and ivector_feature is not None
        ):
            with stage_timer(self._hooks, STAGE_SILENCE_WEIGHTING, session_id):
                self._silence_weighting.compute_current_traceback(
                    search.traceback_source()
                )
                delta_weights = self._silence_weighting.get_delta_weights(
                    pipeline.num_frames_ready()
                )
                ivector_feature.update_frame_weights(delta_weights)

        with stage_timer(self._hooks, STAGE_ADVANCE, session_id):
            search.advance_decoding()

    def finalize(self, bidi_streaming: bool = False) -> Optional[Any]:
        """Close out the search and return its lattice.

        Returns None when no frames were decoded, which is an empty result
        rather than an error. With ``bidi_streaming`` the input is left open
        and the session stays active, so the lattice is an interim snapshot.
        """
        pipeline, search = self._require_active()
        session_id = self.session_id

        if not bidi_streaming:
            self.state = SessionState.FINALIZING
            with stage_timer(self._hooks, STAGE_FINALIZE, session_id):
                pipeline.input_finished()
                search.finalize_decoding()
            pipeline.get_adaptation_state(self._adaptation_state)

        if search.num_frames_decoded() == 0:
            LOGGER.warning("audio may be empty :: decoded no frames")
            return None

        try:
            with stage_timer(self._hooks, STAGE_LATTICE, session_id):
                return search.get_lattice(True)
        except Exception as exc:
            LOGGER.exception("unexpected error during decoding lattice")
            raise STTError(ErrorCode.LATTICE_EXTRACTION_FAILED, str(exc)) from exc

    def get_results(
        self, n_best: int, word_level: bool, bidi_streaming: bool = False
    ) -> List[Alternative]:
        """Finalize the utterance and synthesize ranked alternatives."""
        if n_best < 1:
            raise STTError(ErrorCode.DECODE_OPTION_INVALID, "n_best must be >= 1")
        session_id = self.session_id
        try:
            lattice = self.finalize(bidi_streaming)
            if lattice is None:
                results: List[Alternative] = []
            else:
                with stage_timer(self._hooks, STAGE_SYNTHESIZE, session_id):
                    results = self._synthesizer.synthesize(lattice, n_best, word_level)
        finally:
            if self.state is SessionState.FINALIZING:
                self.free()
        if not bidi_streaming:
            self._hooks.on_results(len(results))
        return results

    def _require_active(self):
        if (
            self.state is not SessionState.ACTIVE
            or self._feature_pipeline is None
            or self._search is None
        ):
            raise STTError(
                ErrorCode.SESSION_NOT_ACTIVE,
                f"decoder session is {self.state.value}, expected active",
            )
        return self._feature_pipeline, self._search


class DecoderFactory:
    """Produces decoder sessions bound to a shared bundle."""

    def __init__(
        self, bundle: ModelResourceBundle, hooks: Optional[DecodeHooks] = None
    ) -> None:
        self.bundle = bundle
        self.hooks = hooks

    def produce(self) -> DecoderSession:
        return DecoderSession(self.bundle, hooks=self.hooks)

    def __call__(self) -> DecoderSession:
        return self.produce()


__all__ = ["DecoderFactory", "DecoderSession", "SessionState"]
