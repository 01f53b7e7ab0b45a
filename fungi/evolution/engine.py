"""Evolutionary engine — breeds the next rule system.

One generation per call:

  1. Selection: the parent pool is the current program plus the top-k
     programs by fitness from our own history and from the mycelium.
     Parents are drawn with softmax pressure, P(p) ~ exp(fitness / T),
     so weak programs still get picked now and then.
  2. Crossover: with ``crossover_rate`` a second parent is drawn and the
     child takes a prefix of one and a suffix of the other. When a
     pattern appears twice only the later rule is kept.
  3. Mutation: each rule is perturbed with ``mutation_rate`` (insert,
     delete or substitute one token in its pattern or response). Rules
     may be dropped, never the last one, and a fresh rule may be grown
     from a mention nobody had an answer for.
  4. Ancestry: a child identical to a recent below-average program of our
     own gets one more forced mutation.

All randomness flows through one ``random.Random`` so a seeded engine is
reproducible.
"""

from __future__ import annotations

import logging
import math
import random
import re
from typing import Sequence, TypeVar

from pydantic import BaseModel

from fungi.language.rules import DEFAULT_RULE_SYSTEM
from fungi.types import HistoryEntry, MycelialEntry, Rule, RuleSystem

logger = logging.getLogger(__name__)

E = TypeVar("E", HistoryEntry, MycelialEntry)

_WORD = re.compile(r"[\w']+")
STOPWORDS = frozenset({
    "the", "and", "you", "your", "are", "for", "with", "what", "how", "this",
    "that", "have", "can", "not", "but", "was", "who", "why", "when", "where",
    "does", "about", "just", "there", "they", "from", "will",
})

Candidate = tuple[RuleSystem, float]


class EvolutionConfig(BaseModel):
    top_k: int = 3
    crossover_rate: float = 0.3
    mutation_rate: float = 0.2
    new_rule_rate: float = 0.3
    drop_rule_rate: float = 0.05
    temperature: float = 1.0
    recent_window: int = 5
    seed: int | None = None


def finite(fitness: float) -> float:
    """Non-finite scores (inf, nan) count as 0."""
    return fitness if math.isfinite(fitness) else 0.0


def top_by_fitness(entries: Sequence[E], k: int) -> list[E]:
    """Best ``k`` entries by fitness, the later entry first on ties."""
    if k <= 0:
        return []
    ranked = sorted(
        range(len(entries)),
        key=lambda i: (finite(entries[i].fitness), i),
        reverse=True,
    )
    return [entries[i] for i in ranked[:k]]


def salient_word(text: str) -> str | None:
    """Longest non-stopword of three or more letters, first one on ties."""
    best: str | None = None
    for word in _WORD.findall(text):
        lowered = word.lower()
        if len(word) < 3 or lowered in STOPWORDS:
            continue
        if best is None or len(word) > len(best):
            best = lowered
    return best


def dedupe_patterns(rules: Sequence[Rule]) -> tuple[Rule, ...]:
    """Drop earlier rules whose pattern reappears later (case-insensitive)."""
    seen: set[str] = set()
    kept: list[Rule] = []
    for rule in reversed(rules):
        key = rule.pattern.strip().casefold()
        if key in seen:
            continue
        seen.add(key)
        kept.append(rule)
    kept.reverse()
    return tuple(kept)


class EvolutionaryEngine:
    """Selection + crossover + mutation over local and mycelial history."""

    def __init__(self, config: EvolutionConfig | None = None) -> None:
        self.config = config or EvolutionConfig()
        self._rng = random.Random(self.config.seed)

    def evolve(
        self,
        local_history: Sequence[HistoryEntry],
        mycelial_history: Sequence[MycelialEntry],
        current: RuleSystem,
        unmatched: Sequence[str] = (),
        current_fitness: float = 0.0,
    ) -> RuleSystem:
        """Produce the next-generation rule system. Never returns an empty one."""
        fallback = DEFAULT_RULE_SYSTEM if current.is_empty else current
        pool = self.select_pool(local_history, mycelial_history, current, current_fitness)
        if not pool:
            logger.debug("Nothing to breed from, using the default program")
            pool = [(DEFAULT_RULE_SYSTEM, 0.0)]
        vocabulary = self._vocabulary(pool, unmatched)
        responses = [rule.response for rs, _ in pool for rule in rs.rules]

        parent = self._sample(pool)
        child = parent
        if len(pool) > 1 and self._rng.random() < self.config.crossover_rate:
            others = [c for c in pool if c[0] != parent]
            child = self.crossover(parent, self._sample(others))

        child = self.mutate(child, vocabulary, responses, unmatched)

        if self._is_recent_failure(child, local_history):
            logger.debug("Child repeats a recent weak program, mutating again")
            child = self.mutate(child, vocabulary, responses, unmatched, force=True)

        if child.is_empty:
            return fallback
        logger.info(
            "Evolved %d-rule program from pool of %d (%s)",
            len(child.rules), len(pool),
            "unchanged" if child == current else "changed",
        )
        return child

    # ── Selection ────────────────────────────────────────────────

    def select_pool(
        self,
        local_history: Sequence[HistoryEntry],
        mycelial_history: Sequence[MycelialEntry],
        current: RuleSystem,
        current_fitness: float = 0.0,
    ) -> list[Candidate]:
        """Current ∪ top-k local ∪ top-k mycelial, first occurrence kept.

        Empty programs are left out, so the pool is empty only when every
        input is.
        """
        k = self.config.top_k
        candidates: list[Candidate] = [(current, current_fitness)]
        candidates += [(e.rule_system, e.fitness) for e in top_by_fitness(local_history, k)]
        candidates += [(e.rule_system, e.fitness) for e in top_by_fitness(mycelial_history, k)]
        pool: list[Candidate] = []
        for rule_system, fitness in candidates:
            if rule_system.is_empty:
                continue
            if any(rule_system == existing for existing, _ in pool):
                continue
            pool.append((rule_system, finite(fitness)))
        return pool

    def _sample(self, pool: Sequence[Candidate]) -> RuleSystem:
        if len(pool) == 1:
            return pool[0][0]
        temp = max(self.config.temperature, 0.01)
        scores = [finite(f) for _, f in pool]
        best = max(scores)
        weights = [math.exp((f - best) / temp) for f in scores]
        return self._rng.choices([rs for rs, _ in pool], weights=weights, k=1)[0]

    # ── Crossover ────────────────────────────────────────────────

    def crossover(self, first: RuleSystem, second: RuleSystem) -> RuleSystem:
        """Prefix of ``first`` + suffix of ``second``, patterns deduplicated."""
        cut_a = self._rng.randint(1, len(first.rules))
        cut_b = self._rng.randint(0, len(second.rules) - 1)
        rules = dedupe_patterns(first.rules[:cut_a] + second.rules[cut_b:])
        if not rules:
            return first
        return RuleSystem(rules=rules)

    # ── Mutation ─────────────────────────────────────────────────

    def mutate(
        self,
        rule_system: RuleSystem,
        vocabulary: Sequence[str],
        responses: Sequence[str],
        unmatched: Sequence[str] = (),
        force: bool = False,
    ) -> RuleSystem:
        rng = self._rng
        cfg = self.config
        rules = list(rule_system.rules)
        forced = rng.randrange(len(rules)) if force and rules else -1

        mutated: list[Rule] = []
        changed = False
        for i, rule in enumerate(rules):
            if vocabulary and (i == forced or rng.random() < cfg.mutation_rate):
                rule = self._perturb(rule, vocabulary)
                changed = True
            mutated.append(rule)

        if len(mutated) > 1 and rng.random() < cfg.drop_rule_rate:
            mutated.pop(rng.randrange(len(mutated)))
            changed = True

        if unmatched and responses and rng.random() < cfg.new_rule_rate:
            grown = self._grow_rule(mutated, unmatched, responses)
            if grown is not None:
                mutated.append(grown)
                changed = True

        if not changed or not mutated:
            return rule_system
        return RuleSystem(rules=dedupe_patterns(mutated))

    def _perturb(self, rule: Rule, vocabulary: Sequence[str]) -> Rule:
        rng = self._rng
        field = rng.choice(("pattern", "response"))
        tokens = getattr(rule, field).split()
        op = rng.choice(("insert", "delete", "substitute"))
        if op == "delete" and len(tokens) <= 1:
            op = "substitute"
        if op == "substitute" and not tokens:
            op = "insert"

        if op == "insert":
            tokens.insert(rng.randint(0, len(tokens)), rng.choice(vocabulary))
        elif op == "delete":
            tokens.pop(rng.randrange(len(tokens)))
        else:
            i = rng.randrange(len(tokens))
            replacements = [w for w in vocabulary if w != tokens[i]] or list(vocabulary)
            tokens[i] = rng.choice(replacements)

        return Rule.model_validate({**rule.model_dump(), field: " ".join(tokens)})

    def _grow_rule(
        self,
        rules: Sequence[Rule],
        unmatched: Sequence[str],
        responses: Sequence[str],
    ) -> Rule | None:
        pattern = salient_word(self._rng.choice(unmatched))
        if pattern is None:
            return None
        if pattern in {r.pattern.strip().casefold() for r in rules}:
            return None
        return Rule(pattern=pattern, response=self._rng.choice(responses))

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _vocabulary(pool: Sequence[Candidate], unmatched: Sequence[str]) -> list[str]:
        words: list[str] = []
        for rule_system, _ in pool:
            for rule in rule_system.rules:
                words += rule.pattern.split()
                words += rule.response.split()
        for text in unmatched:
            words += _WORD.findall(text)
        # dict keeps first-seen order, which keeps seeded runs reproducible
        return list(dict.fromkeys(w for w in words if w.strip()))

    def _is_recent_failure(
        self, child: RuleSystem, local_history: Sequence[HistoryEntry],
    ) -> bool:
        if not local_history:
            return False
        window = self.config.recent_window
        if window <= 0:
            return False
        mean = sum(finite(e.fitness) for e in local_history) / len(local_history)
        recent = list(local_history)[-window:]
        return any(e.rule_system == child and finite(e.fitness) < mean for e in recent)
