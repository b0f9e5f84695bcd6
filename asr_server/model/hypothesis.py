"""Turn a finalized lattice into ranked, optionally time-aligned alternatives."""

import logging
import math
from typing import Any, List

from asr_server.model.bundle import ModelResourceBundle
from asr_server.model.results import Alternative, Word

LOGGER = logging.getLogger("asr_server.hypothesis")

# Feature frame shift before frame subsampling.
FRAME_SHIFT_SEC = 0.01
# 0 lets word alignment expand the lattice without a state bound.
MAX_ALIGN_EXPAND = 0.0


def calculate_confidence(lm_score: float, am_score: float, n_words: int) -> float:
    """Blend lm/am path scores into a [0, 1] heuristic confidence.

    This is an empirical linear fit, not a calibrated probability.
    """
    raw = 0.956 - 0.0001466488 * (2.388449 * lm_score + am_score) / (n_words + 1)
    if math.isnan(raw):
        return 0.0
    return max(0.0, min(1.0, raw))


def max_alignment_states(num_states: int, max_expand: float = MAX_ALIGN_EXPAND) -> int:
    if max_expand > 0:
        return int(1000 + max_expand * num_states)
    return 0


class HypothesisSynthesizer:
    """Builds Alternatives from a session's final lattice."""

    def __init__(self, bundle: ModelResourceBundle) -> None:
        self.bundle = bundle
        self._engine = bundle.engine
        self._symbols = bundle.symbols

    def synthesize(self, lattice: Any, n_best: int, word_level: bool) -> List[Alternative]:
        num_states = self._engine.num_states(lattice)
        if num_states == 0:
            LOGGER.info("Empty lattice.")
            return []

        paths = self._engine.nbest_paths(lattice, n_best)
        if not paths:
            LOGGER.warning("no N-best entries")
            return []

        results: List[Alternative] = []
        for path in paths:
            transcript = " ".join(self._symbols.find(wid) for wid in path.word_ids)
            results.append(
                Alternative(
                    transcript=transcript,
                    confidence=calculate_confidence(
                        path.lm_score, path.am_score, len(path.word_ids)
                    ),
                    am_score=path.am_score,
                    lm_score=path.lm_score,
                )
            )

        if word_level and self.bundle.word_level_enabled:
            words = self._align_words(lattice, num_states)
            if words:
                results[0].words = words
        return results

    def _align_words(self, lattice: Any, num_states: int) -> List[Word]:
        ok, aligned = self._engine.word_align(lattice, max_alignment_states(num_states))
        if aligned is None:
            if ok:
                LOGGER.warning("Lattice was empty")
            else:
                LOGGER.warning("Empty aligned lattice, producing no output.")
            return []
        if not ok:
            LOGGER.warning("Outputting partial lattice")

        spec = self.bundle.spec
        one_best = self._engine.mbr_one_best(aligned, spec.acoustic_scale)
        if not (
            len(one_best.word_ids) == len(one_best.confidences) == len(one_best.frame_spans)
        ):
            raise ValueError("MBR output lengths disagree")

        time_unit = FRAME_SHIFT_SEC * spec.frame_subsampling_factor
        words: List[Word] = []
        for word_id, confidence, (start, end) in zip(
            one_best.word_ids, one_best.confidences, one_best.frame_spans
        ):
            words.append(
                Word(
                    start_time=start * time_unit,
                    end_time=end * time_unit,
                    confidence=confidence,
                    word=self._symbols.find(word_id),
                )
            )
        return words


__all__ = [
    "FRAME_SHIFT_SEC",
    "HypothesisSynthesizer",
    "calculate_confidence",
    "max_alignment_states",
]
