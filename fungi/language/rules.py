"""FUNGI code — the rule language a fungus speaks.

A program is a run of clauses::

    ON "hello" RESPOND "Hello, Fediverse user!";
    ON "weather" RESPOND "I only know about mushrooms.";

Keywords are case-insensitive, string literals use backslash escapes
(``\\\\``, ``\\"``, ``\\n``, ``\\t``, ``\\r``). Whitespace-only text is the
empty program. Anything else that is not a clean run of clauses is
rejected with ``MalformedProgram``.

Matching is a case-insensitive substring test after collapsing
whitespace in both pattern and input. The first rule that matches wins.
"""

from __future__ import annotations

import re

from pydantic import ValidationError

from fungi.exceptions import MalformedProgram
from fungi.types import Rule, RuleSystem

FALLBACK_RESPONSE = "…"
INPUT_PLACEHOLDER = "{input}"

DEFAULT_RULE_SYSTEM = RuleSystem.of(("Hello", "Hello, Fediverse user!"))

_KEYWORD_ON = re.compile(r"ON\b", re.IGNORECASE)
_KEYWORD_RESPOND = re.compile(r"RESPOND\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}
_UNESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}


# ── Parsing ───────────────────────────────────────────────────────────────────


class _Scanner:
    """Cursor over program text."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def fail(self, what: str) -> MalformedProgram:
        snippet = self.text[self.pos:self.pos + 20]
        return MalformedProgram(f"expected {what} at offset {self.pos}: {snippet!r}")

    def keyword(self, pattern: re.Pattern, name: str) -> None:
        self.skip_ws()
        match = pattern.match(self.text, self.pos)
        if not match:
            raise self.fail(name)
        self.pos = match.end()

    def literal(self) -> str:
        self.skip_ws()
        if self.at_end or self.text[self.pos] != '"':
            raise self.fail("string literal")
        self.pos += 1
        chars: list[str] = []
        while not self.at_end:
            ch = self.text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(chars)
            if ch == "\\":
                self.pos += 1
                if self.at_end:
                    break
                esc = self.text[self.pos]
                chars.append(_ESCAPES.get(esc, esc))
            else:
                chars.append(ch)
            self.pos += 1
        raise self.fail("closing quote")

    def terminator(self) -> None:
        self.skip_ws()
        if self.at_end or self.text[self.pos] != ";":
            raise self.fail("';'")
        self.pos += 1


def parse(text: str) -> RuleSystem:
    """Parse FUNGI code into a RuleSystem.

    Raises MalformedProgram unless the whole text is a sequence of clauses
    (or blank, which is the empty program).
    """
    scanner = _Scanner(text)
    rules: list[Rule] = []
    scanner.skip_ws()
    while not scanner.at_end:
        scanner.keyword(_KEYWORD_ON, "ON")
        pattern = scanner.literal()
        scanner.keyword(_KEYWORD_RESPOND, "RESPOND")
        response = scanner.literal()
        scanner.terminator()
        try:
            rules.append(Rule(pattern=pattern, response=response))
        except ValidationError as e:
            raise MalformedProgram(f"invalid rule #{len(rules) + 1}: blank pattern") from e
        scanner.skip_ws()
    return RuleSystem(rules=tuple(rules))


# ── Serialization ─────────────────────────────────────────────────────────────


def _quote(value: str) -> str:
    return '"' + "".join(_UNESCAPES.get(ch, ch) for ch in value) + '"'


def serialize(rule_system: RuleSystem) -> str:
    """Canonical FUNGI code for a rule system."""
    return " ".join(
        f"ON {_quote(rule.pattern)} RESPOND {_quote(rule.response)};"
        for rule in rule_system.rules
    )


# ── Evaluation ────────────────────────────────────────────────────────────────


def normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().casefold()


def find_rule(rule_system: RuleSystem, text: str) -> Rule | None:
    """First rule whose pattern occurs in ``text``, if any."""
    haystack = normalize(text)
    for rule in rule_system.rules:
        if normalize(rule.pattern) in haystack:
            return rule
    return None


def evaluate(rule_system: RuleSystem, text: str) -> str:
    """Answer ``text`` with the first matching rule, or the fallback."""
    rule = find_rule(rule_system, text)
    if rule is None:
        return FALLBACK_RESPONSE
    return rule.response.replace(INPUT_PLACEHOLDER, text.strip())
