"""Core types shared across all fungi subsystems.

Every domain object is an immutable pydantic model. A new program is
always a new ``RuleSystem``; nothing is edited in place.
"""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Rules ────────────────────────────────────────────────────────────────────


class Rule(BaseModel):
    """One pattern → response pair."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    response: str

    @field_validator("pattern")
    @classmethod
    def _pattern_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("rule pattern must not be blank")
        return value


class RuleSystem(BaseModel):
    """An ordered program of rules. First match wins."""

    model_config = ConfigDict(frozen=True)

    rules: tuple[Rule, ...] = ()

    @classmethod
    def of(cls, *pairs: tuple[str, str]) -> RuleSystem:
        return cls(rules=tuple(Rule(pattern=p, response=r) for p, r in pairs))

    @property
    def is_empty(self) -> bool:
        return not self.rules

    def patterns(self) -> list[str]:
        return [rule.pattern for rule in self.rules]


# ── Agent state & history ────────────────────────────────────────────────────


class FungiState(BaseModel):
    """The live program plus its fitness. Replaced wholesale, never edited."""

    model_config = ConfigDict(frozen=True)

    rule_system: RuleSystem = Field(default_factory=RuleSystem)
    fitness: float = 0.0
    created_at: int = 0  # logical sequence number, 0 = placeholder


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_system: RuleSystem
    fitness: float = 0.0
    sequence: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


class MycelialEntry(BaseModel):
    """A program harvested from another fungus' post under the shared tag."""

    model_config = ConfigDict(frozen=True)

    rule_system: RuleSystem
    fitness: float = 0.0
    source_id: str
    author: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


class Feedback(BaseModel):
    """What was observed while answering one mention."""

    model_config = ConfigDict(frozen=True)

    text: str
    matched: bool = False
    positive: int = 0
    negative: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)


# ── Feed objects ─────────────────────────────────────────────────────────────


class Status(BaseModel):
    """A post on the feed. ``content`` is plain text, already HTML-decoded."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    account: str = ""
    created_at: datetime | None = None
    favourites_count: int = 0
    reblogs_count: int = 0


class Mention(BaseModel):
    """A mention notification. ``id`` is the notification id, used as a cursor."""

    model_config = ConfigDict(frozen=True)

    status: Status
    id: str = ""
