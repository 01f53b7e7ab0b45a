"""Tests for the FUNGI rule language."""

import pytest

from fungi.exceptions import MalformedProgram
from fungi.language.rules import (
    DEFAULT_RULE_SYSTEM,
    FALLBACK_RESPONSE,
    evaluate,
    find_rule,
    parse,
    serialize,
)
from fungi.types import Rule, RuleSystem


def test_parse_single_clause():
    rs = parse('ON "Hello" RESPOND "Hello, Fediverse user!";')
    assert rs == DEFAULT_RULE_SYSTEM


def test_parse_keywords_case_insensitive():
    rs = parse('on "a" respond "b"; On "c" Respond "d";')
    assert rs.patterns() == ["a", "c"]
    assert rs.rules[1].response == "d"


def test_parse_preserves_order():
    rs = parse('ON "x" RESPOND "1";\nON "y" RESPOND "2";\n  ON "z" RESPOND "3";')
    assert [r.response for r in rs.rules] == ["1", "2", "3"]


def test_parse_escapes():
    rs = parse(r'ON "say \"hi\"" RESPOND "line1\nline2 \\ done";')
    assert rs.rules[0].pattern == 'say "hi"'
    assert rs.rules[0].response == "line1\nline2 \\ done"


def test_parse_blank_is_empty_program():
    assert parse("").is_empty
    assert parse("  \n\t ").is_empty


@pytest.mark.parametrize("text", [
    "hello world",
    'ON "a" RESPOND "b"',  # missing terminator
    'ON "a" "b";',
    'ON "unterminated RESPOND "b";',
    'ON "a" RESPOND "b"; trailing',
    'ONE "a" RESPOND "b";',
    'ON "   " RESPOND "b";',  # blank pattern
])
def test_parse_rejects_malformed(text):
    with pytest.raises(MalformedProgram):
        parse(text)


def test_serialize_canonical_form():
    rs = RuleSystem.of(("hi", "hey"), ("bye", "ciao"))
    assert serialize(rs) == 'ON "hi" RESPOND "hey"; ON "bye" RESPOND "ciao";'


def test_serialize_empty():
    assert serialize(RuleSystem()) == ""


@pytest.mark.parametrize("rs", [
    DEFAULT_RULE_SYSTEM,
    RuleSystem(),
    RuleSystem.of(('quote " inside', "back \\ slash"), ("tab\there", "new\nline\r")),
    RuleSystem.of(("  padded  ", ""), ("ON", "RESPOND;")),
    RuleSystem.of(("hi", "A"), ("hi", "B")),
    RuleSystem.of(("üñíçødé", "🍄 {input}")),
])
def test_round_trip(rs):
    assert parse(serialize(rs)) == rs


def test_first_match_wins():
    rs = RuleSystem.of(("hi", "A"), ("hi there", "B"))
    assert evaluate(rs, "hi there") == "A"


def test_match_case_insensitive():
    assert evaluate(DEFAULT_RULE_SYSTEM, "well HELLO fungus") == "Hello, Fediverse user!"


def test_match_collapses_whitespace():
    rs = RuleSystem.of(("good morning", "morning!"))
    assert evaluate(rs, "Good\n   Morning all") == "morning!"


def test_fallback_when_nothing_matches():
    assert evaluate(DEFAULT_RULE_SYSTEM, "zzz no match") == FALLBACK_RESPONSE
    assert evaluate(RuleSystem(), "anything") == FALLBACK_RESPONSE


def test_evaluate_is_deterministic():
    rs = RuleSystem.of(("a", "1"), ("b", "2"))
    answers = {evaluate(rs, "b then a") for _ in range(20)}
    assert answers == {"1"}


def test_input_placeholder():
    rs = RuleSystem.of(("echo", "you said: {input}"))
    assert evaluate(rs, "  echo this  ") == "you said: echo this"


def test_find_rule():
    rs = RuleSystem.of(("x", "1"), ("y", "2"))
    assert find_rule(rs, "why y") == Rule(pattern="y", response="2")
    assert find_rule(rs, "nothing") is None


def test_rule_rejects_blank_pattern():
    with pytest.raises(ValueError):
        Rule(pattern="  ", response="x")
