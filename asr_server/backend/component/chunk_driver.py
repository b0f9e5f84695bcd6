"""Feed audio to a decoder session incrementally or as a chunked batch.

Both paths end in ``DecoderSession.feed_chunk``. The search is incremental,
so chunk boundaries carry no meaning: any partition of the same signal into
consecutive chunks decodes to the same result.
"""

import logging
from typing import Iterable, Iterator

import numpy as np

from asr_server.config.default import DEFAULT_CHUNK_SIZE_SEC
from asr_server.errors import ErrorCode, STTError
from asr_server.model.session import DecoderSession
from asr_server.utils.audio import pcm16_to_samples

LOGGER = logging.getLogger("asr_server.chunk_driver")


def chunk_length(sample_rate: float, chunk_size_sec: float, total: int) -> int:
    """Samples per chunk; non-positive ``chunk_size_sec`` means one chunk."""
    if chunk_size_sec > 0:
        return max(1, int(sample_rate * chunk_size_sec))
    return max(1, total)


def iter_chunks(
    samples: np.ndarray,
    sample_rate: float,
    chunk_size_sec: float = DEFAULT_CHUNK_SIZE_SEC,
) -> Iterator[np.ndarray]:
    """Yield consecutive, non-overlapping views; the last one may be shorter."""
    if sample_rate <= 0:
        raise STTError(ErrorCode.SAMPLE_RATE_INVALID)
    data = np.asarray(samples)
    if data.ndim != 1:
        raise STTError(ErrorCode.AUDIO_INVALID, "expected mono (1-D) samples")
    total = data.shape[0]
    length = chunk_length(sample_rate, chunk_size_sec, total)
    offset = 0
    while offset < total:
        size = min(length, total - offset)
        yield data[offset : offset + size]
        offset += size


def feed_incremental(
    session: DecoderSession, chunks: Iterable[np.ndarray], sample_rate: float
) -> int:
    """Forward caller-supplied chunks verbatim, in arrival order."""
    fed = 0
    for chunk in chunks:
        session.feed_chunk(chunk, sample_rate)
        fed += 1
    return fed


def feed_batch(
    session: DecoderSession,
    samples: np.ndarray,
    sample_rate: float,
    chunk_size_sec: float = DEFAULT_CHUNK_SIZE_SEC,
) -> int:
    """Split a complete buffer into chunks and feed them like a stream."""
    fed = feed_incremental(
        session, iter_chunks(samples, sample_rate, chunk_size_sec), sample_rate
    )
    LOGGER.debug(
        "Fed %d samples as %d chunk(s) (chunk_size=%.3fs)",
        len(samples),
        fed,
        chunk_size_sec,
    )
    return fed


def feed_raw_pcm(
    session: DecoderSession,
    pcm_bytes: bytes,
    sample_rate: float,
    chunk_size_sec: float = DEFAULT_CHUNK_SIZE_SEC,
) -> int:
    """Decode headerless mono PCM16 through the batch path."""
    return feed_batch(session, pcm16_to_samples(pcm_bytes), sample_rate, chunk_size_sec)


__all__ = [
    "chunk_length",
    "feed_batch",
    "feed_incremental",
    "feed_raw_pcm",
    "iter_chunks",
]
