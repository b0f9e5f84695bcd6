"""Application layer: model registry and request-level recognition."""

from .model_registry import ModelRegistry
from .recognizer import RecognitionResult, Recognizer

__all__ = ["ModelRegistry", "RecognitionResult", "Recognizer"]
