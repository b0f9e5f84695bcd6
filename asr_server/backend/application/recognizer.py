"""Request-level recognition on top of the model registry."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from asr_server.backend.application.model_registry import ModelRegistry
from asr_server.backend.component.chunk_driver import feed_batch
from asr_server.config.default import DEFAULT_CHUNK_SIZE_SEC, DEFAULT_N_BEST
from asr_server.model.results import Alternative
from asr_server.utils.logger import TRANSCRIPT_LOGGER

LOGGER = logging.getLogger("asr_server.recognizer")


@dataclass
class RecognitionResult:
    session_id: str
    model_id: str
    alternatives: List[Alternative] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.alternatives

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "model_id": self.model_id,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }


class Recognizer:
    """Runs one utterance per call on a pooled decoder session.

    Each call blocks while the model's pool is exhausted and always returns
    the session to the pool, whether it succeeds, finds no speech or fails.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        chunk_size_sec: float = DEFAULT_CHUNK_SIZE_SEC,
    ) -> None:
        self.registry = registry
        self.chunk_size_sec = chunk_size_sec

    def recognize(
        self,
        model: str,
        language_code: str,
        samples: np.ndarray,
        sample_rate: float,
        n_best: int = DEFAULT_N_BEST,
        word_level: bool = False,
        session_id: Optional[str] = None,
        chunk_size_sec: Optional[float] = None,
    ) -> RecognitionResult:
        """Decode a complete audio buffer."""
        pool = self.registry.get_pool(model, language_code)
        size = self.chunk_size_sec if chunk_size_sec is None else chunk_size_sec
        with pool.checkout(session_id) as session:
            sid = session.session_id or ""
            feed_batch(session, samples, sample_rate, size)
            alternatives = session.get_results(n_best, word_level)
        return self._finish(sid, pool.bundle.model_id, alternatives)

    def streaming_recognize(
        self,
        model: str,
        language_code: str,
        chunks: Iterable[np.ndarray],
        sample_rate: float,
        n_best: int = DEFAULT_N_BEST,
        word_level: bool = False,
        session_id: Optional[str] = None,
    ) -> RecognitionResult:
        """Decode chunks as they arrive and return the final hypotheses."""
        pool = self.registry.get_pool(model, language_code)
        with pool.checkout(session_id) as session:
            sid = session.session_id or ""
            for chunk in chunks:
                session.feed_chunk(chunk, sample_rate)
            alternatives = session.get_results(n_best, word_level)
        return self._finish(sid, pool.bundle.model_id, alternatives)

    def bidi_streaming_recognize(
        self,
        model: str,
        language_code: str,
        chunks: Iterable[np.ndarray],
        sample_rate: float,
        n_best: int = DEFAULT_N_BEST,
        word_level: bool = False,
        session_id: Optional[str] = None,
    ) -> Iterable[RecognitionResult]:
        """Yield interim hypotheses after every chunk, then the final ones."""
        pool = self.registry.get_pool(model, language_code)
        model_id = pool.bundle.model_id
        with pool.checkout(session_id) as session:
            sid = session.session_id or ""
            for chunk in chunks:
                session.feed_chunk(chunk, sample_rate)
                interim = session.get_results(n_best, word_level, bidi_streaming=True)
                yield RecognitionResult(sid, model_id, interim)
            alternatives = session.get_results(n_best, word_level)
        yield self._finish(sid, model_id, alternatives)

    @staticmethod
    def _finish(
        session_id: str, model_id: str, alternatives: List[Alternative]
    ) -> RecognitionResult:
        if alternatives:
            TRANSCRIPT_LOGGER.info(
                "session_id=%s transcript=%s", session_id, alternatives[0].transcript
            )
        else:
            LOGGER.info("No speech decoded for session_id=%s", session_id)
        return RecognitionResult(session_id, model_id, alternatives)


__all__ = ["RecognitionResult", "Recognizer"]
