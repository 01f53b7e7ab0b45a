"""Fitness — how well a rule system has been doing with real people.

Scoring is a weighted count over the feedback gathered since the last
cycle. Every answered mention counts, a mention answered by an actual
rule (not the fallback) counts more, and positive reactions push the
score up while negative ones pull it down.
"""

from __future__ import annotations

import re
from typing import Sequence

from pydantic import BaseModel

from fungi.types import Feedback, RuleSystem

POSITIVE_WORDS = frozenset({
    "thanks", "thank", "thx", "great", "good", "love", "nice", "cool",
    "awesome", "lol", "haha", "yes", "wow", ":)", ":-)", ":d", "<3",
})
NEGATIVE_WORDS = frozenset({
    "bad", "wrong", "stupid", "boring", "useless", "no", "nonsense",
    "ugh", "meh", ":(", ":-(",
})

_TOKEN = re.compile(r"<3|:-?[()dD]|[\w']+")


def count_sentiment(text: str) -> tuple[int, int]:
    """(positive, negative) lexicon hits in ``text``."""
    tokens = [t.lower() for t in _TOKEN.findall(text)]
    positive = sum(1 for t in tokens if t in POSITIVE_WORDS)
    negative = sum(1 for t in tokens if t in NEGATIVE_WORDS)
    return positive, negative


class FitnessPolicy(BaseModel):
    answered_weight: float = 1.0
    matched_weight: float = 1.0
    positive_weight: float = 2.0
    negative_weight: float = 1.0


class FitnessEvaluator:
    """Pure scoring over a feedback snapshot."""

    def __init__(self, policy: FitnessPolicy | None = None) -> None:
        self.policy = policy or FitnessPolicy()

    def score(self, feedback: Sequence[Feedback], rule_system: RuleSystem) -> float:
        """Aggregate fitness, 0.0 for no feedback.

        ``rule_system`` is the program the feedback was collected for; the
        default policy does not weigh it beyond what each record carries.
        """
        p = self.policy
        total = 0.0
        for record in feedback:
            total += p.answered_weight
            if record.matched:
                total += p.matched_weight
            total += p.positive_weight * record.positive
            total -= p.negative_weight * record.negative
        return round(total, 4)
