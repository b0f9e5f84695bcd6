"""Backend registry for decoding engine implementations."""

from asr_server.model.backends.base import EngineBackend


def get_backend(name: str) -> EngineBackend:
    """Resolve an engine loader by name."""
    normalized = (name or "kaldi").lower().replace("-", "_")
    if normalized in {"kaldi", "pykaldi", "nnet3"}:
        try:
            from asr_server.model.backends.pykaldi_engine import load_kaldi_engine
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "kaldi backend requires the pykaldi package (import name 'kaldi')."
            ) from exc

        return load_kaldi_engine
    raise ValueError(f"Unknown engine backend: {name}")


__all__ = ["get_backend"]
