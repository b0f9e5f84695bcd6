"""Session management and streaming orchestration for lattice-based ASR."""

from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

__version__ = "0.1.0"

__all__ = ["PROJECT_ROOT", "__version__"]
