from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from asr_server import PROJECT_ROOT
from asr_server.config.default import (
    DEFAULT_ACOUSTIC_SCALE,
    DEFAULT_BEAM,
    DEFAULT_CHUNK_SIZE_SEC,
    DEFAULT_FRAME_SUBSAMPLING_FACTOR,
    DEFAULT_LANGUAGE_CODE,
    DEFAULT_LATTICE_BEAM,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_ACTIVE,
    DEFAULT_MIN_ACTIVE,
    DEFAULT_MODEL_BACKEND,
    DEFAULT_MODEL_NAME,
    DEFAULT_N_BEST,
    DEFAULT_N_DECODERS,
    DEFAULT_SILENCE_WEIGHT,
    DEFAULT_TRANSCRIPT_LOG_FILE,
    DEFAULT_WORD_LEVEL,
    MODEL_SECTION_MAP,
    SERVER_SECTION_MAP,
)


@dataclass(frozen=True)
class ModelSpec:
    """Decode parameters and location of one model directory."""

    path: str
    name: str = DEFAULT_MODEL_NAME
    language_code: str = DEFAULT_LANGUAGE_CODE
    backend: str = DEFAULT_MODEL_BACKEND
    n_decoders: int = DEFAULT_N_DECODERS
    beam: float = DEFAULT_BEAM
    lattice_beam: float = DEFAULT_LATTICE_BEAM
    min_active: int = DEFAULT_MIN_ACTIVE
    max_active: int = DEFAULT_MAX_ACTIVE
    acoustic_scale: float = DEFAULT_ACOUSTIC_SCALE
    frame_subsampling_factor: int = DEFAULT_FRAME_SUBSAMPLING_FACTOR
    silence_weight: float = DEFAULT_SILENCE_WEIGHT

    @property
    def model_id(self) -> str:
        return model_id_for(self.name, self.language_code)

    def validate(self) -> "ModelSpec":
        """Raise ValueError when a parameter cannot be used for decoding."""
        if not self.path:
            raise ValueError("model path is required")
        if self.n_decoders <= 0:
            raise ValueError("n_decoders must be >= 1")
        if self.beam <= 0 or self.lattice_beam <= 0:
            raise ValueError("beam and lattice_beam must be positive")
        if self.min_active < 0 or self.min_active > self.max_active:
            raise ValueError("min_active must be within [0, max_active]")
        if self.acoustic_scale <= 0:
            raise ValueError("acoustic_scale must be positive")
        if self.frame_subsampling_factor <= 0:
            raise ValueError("frame_subsampling_factor must be >= 1")
        return self


def model_id_for(name: str, language_code: str) -> str:
    return f"{name}:{language_code}"


@dataclass
class ServerConfig:
    models: List[ModelSpec] = field(default_factory=list)
    chunk_size_sec: float = DEFAULT_CHUNK_SIZE_SEC
    n_best: int = DEFAULT_N_BEST
    word_level: bool = DEFAULT_WORD_LEVEL
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = DEFAULT_LOG_FILE
    transcript_log_file: Optional[str] = DEFAULT_TRANSCRIPT_LOG_FILE


DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "server.yaml"

_FIELD_TYPES = {
    "n_decoders": int,
    "min_active": int,
    "max_active": int,
    "frame_subsampling_factor": int,
    "beam": float,
    "lattice_beam": float,
    "acoustic_scale": float,
    "silence_weight": float,
    "path": str,
    "name": str,
    "language_code": str,
    "backend": str,
}


def load_config(path: Optional[Path] = None) -> ServerConfig:
    """Load decoder configuration from YAML, falling back to defaults."""
    cfg = ServerConfig()
    data = _read_yaml(path or DEFAULT_CONFIG_PATH)
    if data:
        _apply_sections(cfg, data)
        cfg.models = parse_models(data.get("models"), base_dir=_base_dir(path))
    return cfg


def parse_models(
    raw: Any, base_dir: Optional[Path] = None
) -> List[ModelSpec]:
    """Build ModelSpecs from a ``models`` list (or a single mapping)."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise ValueError("models must be a list of mappings")
    specs: List[ModelSpec] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValueError(f"models[{index}] must be a mapping")
        kwargs: Dict[str, Any] = {}
        for key, attr in MODEL_SECTION_MAP.items():
            if key in entry and entry[key] is not None:
                kwargs[attr] = _coerce(attr, entry[key])
        if "path" not in kwargs:
            raise ValueError(f"models[{index}] is missing 'path'")
        model_path = Path(kwargs["path"]).expanduser()
        if base_dir is not None and not model_path.is_absolute():
            model_path = base_dir / model_path
        kwargs["path"] = str(model_path)
        specs.append(ModelSpec(**kwargs).validate())
    return specs


def _coerce(attr: str, value: Any) -> Any:
    caster = _FIELD_TYPES.get(attr)
    if caster is None:
        return value
    try:
        return caster(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for {attr}: {value!r}") from exc


def _base_dir(path: Optional[Path]) -> Optional[Path]:
    if path is None:
        return DEFAULT_CONFIG_PATH.parent
    return Path(path).expanduser().resolve().parent


def _read_yaml(path: Optional[Path]) -> Optional[Dict[str, Any]]:
    if not path or not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, dict):
        return data
    return None


def _apply_sections(cfg: ServerConfig, raw: Dict[str, Any]) -> None:
    field_names = {f.name for f in fields(ServerConfig)}
    for section, mapping in SERVER_SECTION_MAP.items():
        data = raw.get(section)
        if not isinstance(data, dict):
            continue
        for key, attr in mapping.items():
            if key in data and data[key] is not None:
                setattr(cfg, attr, data[key])

    for key, value in raw.items():
        if key in SERVER_SECTION_MAP or key == "models":
            continue
        if key in field_names and value is not None:
            setattr(cfg, key, value)


__all__ = [
    "ModelSpec",
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "model_id_for",
    "parse_models",
]
