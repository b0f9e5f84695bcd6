"""Result types produced by hypothesis synthesis."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class Word:
    start_time: float
    end_time: float
    confidence: float
    word: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Alternative:
    """A single ranked hypothesis for one utterance."""

    transcript: str
    confidence: float
    am_score: float
    lm_score: float
    words: List[Word] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcript": self.transcript,
            "confidence": self.confidence,
            "am_score": self.am_score,
            "lm_score": self.lm_score,
            "words": [word.to_dict() for word in self.words],
        }


__all__ = ["Alternative", "Word"]
