"""Immutable model resources shared by every decoder session of one model."""

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from asr_server.config.default import (
    CONF_DIRNAME,
    GRAPH_FILENAME,
    IVECTOR_CONF_FILENAME,
    IVECTOR_PATH_OPTIONS,
    MFCC_CONF_FILENAME,
    MODEL_FILENAME,
    WORD_BOUNDARY_FILENAME,
    WORDS_FILENAME,
)
from asr_server.config.loader import ModelSpec
from asr_server.errors import ErrorCode, STTError
from asr_server.model.backends import get_backend
from asr_server.model.backends.base import DecodingEngine, EngineBackend, FeatureConfig

LOGGER = logging.getLogger("asr_server.model_bundle")


class SymbolTable:
    """Word id <-> word text mapping read from a ``words.txt`` file."""

    def __init__(self, entries: Mapping[int, str]) -> None:
        self._id_to_word: Dict[int, str] = dict(entries)
        self._word_to_id: Dict[str, int] = {
            word: idx for idx, word in self._id_to_word.items()
        }

    @classmethod
    def read_text(cls, path: Path) -> "SymbolTable":
        entries: Dict[int, str] = {}
        with Path(path).open("r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                parts = line.split()
                if not parts:
                    continue
                if len(parts) != 2:
                    raise ValueError(f"{path}:{line_no}: expected '<word> <id>'")
                word, raw_id = parts
                try:
                    entries[int(raw_id)] = word
                except ValueError as exc:
                    raise ValueError(
                        f"{path}:{line_no}: invalid symbol id {raw_id!r}"
                    ) from exc
        return cls(entries)

    def find(self, symbol_id: int) -> str:
        return self._id_to_word.get(int(symbol_id), "")

    def find_id(self, word: str) -> Optional[int]:
        return self._word_to_id.get(word)

    def __len__(self) -> int:
        return len(self._id_to_word)

    def __contains__(self, symbol_id: object) -> bool:
        return symbol_id in self._id_to_word


def read_kaldi_config(path: Path) -> Dict[str, str]:
    """Parse a Kaldi ``--name=value`` config file; ``#`` starts a comment."""
    options: Dict[str, str] = {}
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.split("#", 1)[0].strip()
            if not line:
                continue
            if not line.startswith("--"):
                raise ValueError(f"{path}: invalid config line {line!r}")
            name, sep, value = line[2:].partition("=")
            # A bare "--flag" is a boolean switch.
            options[name.strip()] = value.strip() if sep else "true"
    return options


def expand_relative_path(value: str, base_dir: Path) -> str:
    """Resolve ``value`` against ``base_dir`` unless it is absolute or empty."""
    if not value or os.path.isabs(value):
        return value
    return str(Path(base_dir) / value)


def resolve_resource_paths(
    options: Mapping[str, str], base_dir: Path, keys: Iterable[str]
) -> Dict[str, str]:
    resolved = dict(options)
    for key in keys:
        if key in resolved:
            resolved[key] = expand_relative_path(resolved[key], base_dir)
    return resolved


@dataclass(frozen=True)
class ModelResourceBundle:
    """Process-lifetime model artifacts; read-only after construction."""

    spec: ModelSpec
    model_dir: Path
    symbols: SymbolTable
    word_level_enabled: bool
    feature_config: FeatureConfig
    engine: DecodingEngine

    @property
    def model_id(self) -> str:
        return self.spec.model_id

    def close(self) -> None:
        self.engine.close()


def _required_paths(model_dir: Path) -> Dict[str, Path]:
    conf_dir = model_dir / CONF_DIRNAME
    return {
        "model": model_dir / MODEL_FILENAME,
        "graph": model_dir / GRAPH_FILENAME,
        "symbol table": model_dir / WORDS_FILENAME,
        "mfcc config": conf_dir / MFCC_CONF_FILENAME,
        "ivector config": conf_dir / IVECTOR_CONF_FILENAME,
    }


def load_bundle(
    spec: ModelSpec, backend: Optional[EngineBackend] = None
) -> ModelResourceBundle:
    """Load every artifact of ``spec.path`` or raise a fatal STTError."""
    model_dir = Path(spec.path).expanduser()
    LOGGER.info("Loading model from %s", model_dir)
    start = time.perf_counter()

    if not model_dir.is_dir():
        LOGGER.error("Model directory %s does not exist", model_dir)
        raise STTError(
            ErrorCode.MODEL_FILE_MISSING, f"model directory not found: {model_dir}"
        )
    paths = _required_paths(model_dir)
    missing = [f"{label} ({path})" for label, path in paths.items() if not path.is_file()]
    if missing:
        LOGGER.error("Model %s is missing required files: %s", spec.model_id, missing)
        raise STTError(
            ErrorCode.MODEL_FILE_MISSING,
            "missing required model files: " + ", ".join(missing),
        )

    try:
        symbols = SymbolTable.read_text(paths["symbol table"])
        mfcc_options = read_kaldi_config(paths["mfcc config"])
        ivector_options = resolve_resource_paths(
            read_kaldi_config(paths["ivector config"]), model_dir, IVECTOR_PATH_OPTIONS
        )
    except (OSError, ValueError, UnicodeDecodeError) as exc:
        LOGGER.exception("Failed to parse model files for %s", spec.model_id)
        raise STTError(ErrorCode.MODEL_LOAD_FAILED, str(exc)) from exc

    feature_config = FeatureConfig(
        mfcc_conf_path=str(paths["mfcc config"]),
        ivector_conf_path=str(paths["ivector config"]),
        mfcc_options=mfcc_options,
        ivector_options=ivector_options,
    )

    word_boundary_path = model_dir / WORD_BOUNDARY_FILENAME
    word_level_enabled = word_boundary_path.is_file()
    if not word_level_enabled:
        LOGGER.warning(
            "Word boundary file %s not found. Disabling word level features.",
            word_boundary_path,
        )

    loader = backend or get_backend(spec.backend)
    try:
        engine = loader(spec, str(model_dir), feature_config)
    except STTError:
        raise
    except Exception as exc:
        LOGGER.exception("Engine failed to load model %s", spec.model_id)
        raise STTError(ErrorCode.MODEL_LOAD_FAILED, str(exc)) from exc

    LOGGER.info(
        "Model %s loaded in %.0fms (words=%d, word_level=%s)",
        spec.model_id,
        (time.perf_counter() - start) * 1000.0,
        len(symbols),
        word_level_enabled,
    )
    return ModelResourceBundle(
        spec=spec,
        model_dir=model_dir,
        symbols=symbols,
        word_level_enabled=word_level_enabled,
        feature_config=feature_config,
        engine=engine,
    )


__all__ = [
    "ModelResourceBundle",
    "SymbolTable",
    "expand_relative_path",
    "load_bundle",
    "read_kaldi_config",
    "resolve_resource_paths",
]
