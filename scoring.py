from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Tuple

from catalog import (
    BEST_PRACTICE_QUESTIONS,
    CLINIC_SIZE_QUESTION,
    DESIRED_OUTCOME_QUESTION,
    RawAnswer,
    is_affirmative,
)

# Context bonuses keyed by (question id, exact answer).
CONTEXT_BONUSES: Dict[Tuple[str, str], float] = {
    (CLINIC_SIZE_QUESTION, "Multi-location clinic"): 1.0,
    (DESIRED_OUTCOME_QUESTION, "Reduce no-shows"): 0.5,
}
BONUS_CEILING: float = sum(CONTEXT_BONUSES.values())

MAX_POSSIBLE_POINTS: int = len(BEST_PRACTICE_QUESTIONS)
MAX_RAW_POINTS: float = MAX_POSSIBLE_POINTS + BONUS_CEILING

GREEN_THRESHOLD = 75
AMBER_THRESHOLD = 45


class Band(str, Enum):
    RED = "Red"
    AMBER = "Amber"
    GREEN = "Green"

    @property
    def rank(self) -> int:
        return _BAND_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Band):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Band):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Band):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Band):
            return NotImplemented
        return self.rank >= other.rank

    @property
    def label(self) -> str:
        return BAND_LABELS[self]

    @property
    def color(self) -> Tuple[int, int, int]:
        return BAND_COLORS[self]


_BAND_ORDER: Tuple[Band, ...] = (Band.RED, Band.AMBER, Band.GREEN)

BAND_LABELS: Dict[Band, str] = {
    Band.RED: "Major gaps",
    Band.AMBER: "Needs improvements",
    Band.GREEN: "Ready now",
}

BAND_COLORS: Dict[Band, Tuple[int, int, int]] = {
    Band.RED: (211, 47, 47),
    Band.AMBER: (217, 119, 6),
    Band.GREEN: (11, 138, 62),
}


@dataclass(frozen=True)
class ScoreResult:
    raw_points: float
    percentage: int
    band: Band
    yes_count: int = 0
    bonus: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "raw_points": self.raw_points,
            "percentage": self.percentage,
            "band": self.band.value,
            "yes_count": self.yes_count,
            "bonus": self.bonus,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "ScoreResult":
        return cls(
            raw_points=float(data.get("raw_points", 0)),  # type: ignore[arg-type]
            percentage=int(data.get("percentage", 0)),  # type: ignore[arg-type]
            band=Band(data.get("band", Band.RED.value)),
            yes_count=int(data.get("yes_count", 0)),  # type: ignore[arg-type]
            bonus=float(data.get("bonus", 0)),  # type: ignore[arg-type]
        )


def context_bonus(answers: Mapping[str, RawAnswer]) -> float:
    bonus = 0.0
    for (question_id, expected), points in CONTEXT_BONUSES.items():
        value = answers.get(question_id)
        if value is not None and str(value).strip() == expected:
            bonus += points
    return min(bonus, BONUS_CEILING)


def band_for_percentage(percentage: int) -> Band:
    if percentage >= GREEN_THRESHOLD:
        return Band.GREEN
    if percentage >= AMBER_THRESHOLD:
        return Band.AMBER
    return Band.RED


def score(answers: Mapping[str, RawAnswer]) -> ScoreResult:
    """Score an answer set.

    One point per affirmative best-practice answer plus the context bonus.
    The percentage is measured against the best-practice count and clamped,
    so a bonus can make up for a gap but never pushes past 100.
    """
    yes_count = sum(1 for question in BEST_PRACTICE_QUESTIONS if is_affirmative(answers.get(question.id)))
    bonus = context_bonus(answers)
    raw_points = yes_count + bonus

    if MAX_POSSIBLE_POINTS:
        percentage = int(round(100 * raw_points / MAX_POSSIBLE_POINTS))
    else:
        percentage = 0
    percentage = max(0, min(100, percentage))

    return ScoreResult(
        raw_points=raw_points,
        percentage=percentage,
        band=band_for_percentage(percentage),
        yes_count=yes_count,
        bonus=bonus,
    )
