"""
Priority scoring for schedulable items.

Explicit, deterministic scoring. No magic.
Higher = more urgent.

Components (each a 0-1 signal multiplied by its weight):
- Priority label (urgent 4, high 3, medium 2, low 1, none 0.5)
- Due date pressure (0 at 14+ days out, 1 when due now or overdue)
- Effort (shorter items score higher, 0 at 8h+)
- Habit streak risk
- Meeting cadence

The explanation string is part of the result, not a debug aid: every
placement decision can be traced back to its weighted components.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from timeblock import config

logger = logging.getLogger(__name__)


LABEL_WEIGHTS = {
    "urgent": 4.0,
    "high": 3.0,
    "medium": 2.0,
    "low": 1.0,
    "none": 0.5,  # Floor so "none" never ties with a zero score
}

# Integer ranks used by item providers: 1 = urgent ... 5 = none
RANK_LABELS = {1: "urgent", 2: "high", 3: "medium", 4: "low", 5: "none"}

DUE_HORIZON_DAYS = 14.0
EFFORT_HORIZON_HOURS = 8.0


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def normalize_label(label: Any) -> str:
    """Map a label or integer rank to a known label; anything else is 'none'."""
    if isinstance(label, int) and not isinstance(label, bool):
        return RANK_LABELS.get(label, "none")
    if isinstance(label, str) and label.strip().lower() in LABEL_WEIGHTS:
        return label.strip().lower()
    return "none"


@dataclass(frozen=True)
class PriorityWeights:
    priority: float = 2.0
    due: float = 3.0
    effort: float = 1.5
    streak_risk: float = 1.0
    meeting_cadence: float = 0.8

    @classmethod
    def from_config(cls) -> "PriorityWeights":
        return cls(*config.parse_weights(config.PRIORITY_WEIGHTS))

    @property
    def total(self) -> float:
        return self.priority + self.due + self.effort + self.streak_risk + self.meeting_cadence


@dataclass
class PrioritySignals:
    priority_label: Any = "none"
    due_date: datetime | date | None = None
    duration: timedelta = timedelta(0)
    streak_risk: float = 0.0
    meeting_cadence: float = 0.0


@dataclass
class PriorityScore:
    score: float
    components: dict[str, float] = field(default_factory=dict)
    explanation: str = ""

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "components": {k: round(v, 2) for k, v in self.components.items()},
            "explanation": self.explanation,
        }


def due_factor(due: datetime | date | None, now: datetime) -> float:
    """
    Due date pressure in [0, 1].

    No due date -> 0. Overdue -> 1. Otherwise linear from 0 (14+ days out)
    to 1 (due now).
    """
    if due is None:
        return 0.0
    if not isinstance(due, datetime):
        # Date-only due dates count from midnight in the caller's zone
        due = datetime.combine(due, time.min, tzinfo=now.tzinfo or UTC)
    elif due.tzinfo is None:
        due = due.replace(tzinfo=UTC)
    days = (due - now).total_seconds() / 86400
    if days < 0:
        return 1.0
    return clamp01((DUE_HORIZON_DAYS - days) / DUE_HORIZON_DAYS)


def effort_factor(duration: timedelta) -> float:
    if duration <= timedelta(0):
        return 1.0
    hours = duration.total_seconds() / 3600
    return clamp01(1 - hours / EFFORT_HORIZON_HOURS)


def urgency_level(score: float) -> str:
    """Urgency band for a score computed with default weights (max ~12.3)."""
    if score >= 6.0:
        return "critical"
    if score >= 4.5:
        return "high"
    if score >= 3.0:
        return "medium"
    if score >= 1.5:
        return "low"
    return "none"


class PriorityScorer:
    """
    Weighted multi-signal scorer.

    All signal inputs are clamped to [0, 1]; out-of-range input saturates
    instead of raising.
    """

    def __init__(self, weights: PriorityWeights | None = None, clock=None):
        self.weights = weights or PriorityWeights()
        self._clock = clock or (lambda: datetime.now(UTC))

    def score(self, signals: PrioritySignals, now: datetime | None = None) -> PriorityScore:
        now = now or self._clock()
        w = self.weights

        components = {
            "priority": LABEL_WEIGHTS[normalize_label(signals.priority_label)] * w.priority,
            "due": due_factor(signals.due_date, now) * w.due,
            "effort": effort_factor(signals.duration) * w.effort,
            "streak": clamp01(signals.streak_risk) * w.streak_risk,
            "meeting": clamp01(signals.meeting_cadence) * w.meeting_cadence,
        }
        total = round(sum(components.values()), 2)

        return PriorityScore(
            score=total,
            components=components,
            explanation=self.explain(components),
        )

    @staticmethod
    def explain(components: dict[str, float]) -> str:
        return " ".join(
            f"{name}={components[name]:.2f}"
            for name in ("priority", "due", "effort", "streak", "meeting")
        )

    def score_many(
        self, signals: Iterable[PrioritySignals], now: datetime | None = None
    ) -> list[PriorityScore]:
        now = now or self._clock()
        return [self.score(s, now) for s in signals]


def rank(items: Sequence, key=lambda item: item.score) -> list:
    """
    Order items by descending score.

    Stable: equal scores keep their input order.
    """
    return sorted(items, key=lambda item: -(key(item) or 0.0))
