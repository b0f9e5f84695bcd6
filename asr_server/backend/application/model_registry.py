"""Model registry holding one decoder pool per loaded model."""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from asr_server.backend.component.decoder_pool import DecoderPool
from asr_server.backend.runtime.hooks import DecodeHooks
from asr_server.config.loader import ModelSpec, model_id_for
from asr_server.errors import ErrorCode, STTError
from asr_server.model.backends.base import EngineBackend
from asr_server.model.bundle import ModelResourceBundle, load_bundle

LOGGER = logging.getLogger("asr_server.model_registry")


class ModelRegistry:
    """Loads bundles and their decoder pools, keyed by ``name:language_code``."""

    def __init__(
        self,
        backend: Optional[EngineBackend] = None,
        hooks: Optional[DecodeHooks] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._backend = backend
        self._hooks = hooks
        self._bundles: Dict[str, ModelResourceBundle] = {}
        self._pools: Dict[str, DecoderPool] = {}

    def is_loaded(self, model_id: str) -> bool:
        with self._lock:
            return model_id in self._pools

    def list_models(self) -> List[str]:
        with self._lock:
            return list(self._pools.keys())

    def load_model(self, spec: ModelSpec) -> None:
        """Load a model and pre-build its sessions; failures are fatal."""
        spec.validate()
        model_id = spec.model_id
        with self._lock:
            if model_id in self._pools:
                LOGGER.info("Model '%s' is already loaded", model_id)
                return
            LOGGER.info("Loading model '%s' with spec=%s", model_id, spec)
            bundle = load_bundle(spec, backend=self._backend)
            try:
                pool = DecoderPool(bundle, hooks=self._hooks)
            except Exception:
                LOGGER.exception("Failed to build decoder pool for '%s'", model_id)
                bundle.close()
                raise
            self._bundles[model_id] = bundle
            self._pools[model_id] = pool
            LOGGER.info(
                "Successfully loaded model '%s' (n_decoders=%d)",
                model_id,
                pool.capacity,
            )

    def load_models(self, specs: Iterable[ModelSpec]) -> None:
        for spec in specs:
            self.load_model(spec)

    def get_pool(self, name: str, language_code: str) -> DecoderPool:
        model_id = model_id_for(name, language_code)
        with self._lock:
            pool = self._pools.get(model_id)
        if pool is None:
            raise STTError(
                ErrorCode.MODEL_NOT_FOUND,
                f"model {name} and language {language_code} are not supported",
            )
        return pool

    def get_bundle(self, model_id: str) -> Optional[ModelResourceBundle]:
        with self._lock:
            return self._bundles.get(model_id)

    def close(self) -> None:
        """Close every pool, then release engine resources."""
        with self._lock:
            pools = list(self._pools.values())
            bundles = list(self._bundles.values())
            self._pools.clear()
            self._bundles.clear()
        for pool in pools:
            pool.close()
        for bundle in bundles:
            try:
                bundle.close()
            except (RuntimeError, ValueError, OSError) as exc:
                LOGGER.exception("Failed to close model resources: %s", exc)


__all__ = ["ModelRegistry"]
