import logging
import wave
from pathlib import Path
from typing import BinaryIO, Tuple, Union

import numpy as np

from asr_server.errors import ErrorCode, STTError

LOGGER = logging.getLogger("asr_server.audio")

BYTES_PER_SAMPLE = 2  # PCM16


def pcm16_to_samples(pcm_bytes: bytes) -> np.ndarray:
    """PCM16 bytes → float32 samples kept in the int16 value range.

    The feature pipeline expects un-normalized amplitudes, so unlike a
    ``/ 32768`` conversion the values stay in ``[-32768, 32767]``.
    """
    usable = len(pcm_bytes) - (len(pcm_bytes) % BYTES_PER_SAMPLE)
    if usable != len(pcm_bytes):
        LOGGER.warning(
            "Expected %d bytes of PCM16 data, dropping trailing odd byte "
            "(truncated audio?)",
            len(pcm_bytes),
        )
    return np.frombuffer(pcm_bytes[:usable], dtype=np.int16).astype(np.float32)


def read_wav(source: Union[str, Path, BinaryIO]) -> Tuple[np.ndarray, int]:
    """Read a PCM16 WAV file or stream; returns (first-channel samples, rate)."""
    try:
        with wave.open(str(source) if isinstance(source, Path) else source, "rb") as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise STTError(ErrorCode.AUDIO_INVALID, f"invalid WAV data: {exc}") from exc
    except OSError as exc:
        raise STTError(ErrorCode.AUDIO_INVALID, f"cannot read audio: {exc}") from exc
    if sample_width != BYTES_PER_SAMPLE:
        raise STTError(
            ErrorCode.AUDIO_INVALID,
            f"unsupported sample width {sample_width * 8} bits (PCM16 required)",
        )
    samples = pcm16_to_samples(frames)
    if channels > 1:
        # Only the first channel is decoded.
        samples = samples.reshape(-1, channels)[:, 0].copy()
    return samples, sample_rate


__all__ = [
    "BYTES_PER_SAMPLE",
    "pcm16_to_samples",
    "read_wav",
]
