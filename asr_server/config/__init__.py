"""Configuration loader utilities."""

from .loader import (
    DEFAULT_CONFIG_PATH,
    ModelSpec,
    ServerConfig,
    load_config,
    model_id_for,
    parse_models,
)

__all__ = [
    "ModelSpec",
    "ServerConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "model_id_for",
    "parse_models",
]
