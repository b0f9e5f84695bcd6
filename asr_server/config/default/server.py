"""Default values for decoder/runtime configuration."""

from typing import Dict

DEFAULT_CHUNK_SIZE_SEC = 1.0
DEFAULT_N_BEST = 1
DEFAULT_WORD_LEVEL = False
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = None
DEFAULT_TRANSCRIPT_LOG_FILE = None

SERVER_SECTION_MAP: Dict[str, Dict[str, str]] = {
    "decoder": {
        "chunk_size_sec": "chunk_size_sec",
        "n_best": "n_best",
        "word_level": "word_level",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
        "transcript_file": "transcript_log_file",
    },
}

__all__ = [
    "DEFAULT_CHUNK_SIZE_SEC",
    "DEFAULT_N_BEST",
    "DEFAULT_WORD_LEVEL",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FILE",
    "DEFAULT_TRANSCRIPT_LOG_FILE",
    "SERVER_SECTION_MAP",
]
