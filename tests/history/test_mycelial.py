"""Tests for the mycelial (remote) fungi history."""

import asyncio

import pytest

from fungi.history.mycelial import MycelialFungiHistory, extract_program, format_post
from fungi.language.rules import serialize
from fungi.types import RuleSystem

from conftest import FakeFeed, status


PROGRAM = 'ON "hi" RESPOND "hey";'


def test_extract_program_with_fitness_and_tag():
    program, fitness = extract_program(f"{PROGRAM} Fitness: 3.5 #fungi")
    assert program == PROGRAM
    assert fitness == 3.5


def test_extract_program_without_suffix():
    assert extract_program(PROGRAM) == (PROGRAM, 0.0)


def test_extract_program_bad_fitness():
    assert extract_program(f"{PROGRAM} Fitness: lots #fungi #more") == (PROGRAM, 0.0)


@pytest.mark.parametrize("value", ["inf", "-inf", "nan", "1e999", "Infinity"])
def test_extract_program_non_finite_fitness(value):
    assert extract_program(f"{PROGRAM} Fitness: {value} #fungi") == (PROGRAM, 0.0)


def test_extract_program_keeps_fitness_inside_literal():
    text = 'ON "x" RESPOND "Fitness: 3";'
    assert extract_program(text) == (text, 0.0)


def test_format_post_round_trip():
    rs = RuleSystem.of(("a", "b"))
    post = format_post(serialize(rs), 2.0, "fungi")
    assert post.endswith("#fungi")
    assert extract_program(post) == (serialize(rs), 2.0)


@pytest.mark.asyncio
async def test_refresh_keeps_only_valid_programs():
    feed = FakeFeed(tagged=[
        status("1", f"{PROGRAM} Fitness: 2 #fungi", "alice"),
        status("2", "just chatting about mushrooms #fungi", "bob"),
        status("3", "Fitness: 9 #fungi", "carol"),  # empty program
    ])
    mycelial = MycelialFungiHistory(feed)
    assert await mycelial.refresh("fungi") == 1
    [entry] = mycelial.snapshot()
    assert entry.author == "alice"
    assert entry.fitness == 2.0
    assert entry.rule_system == RuleSystem.of(("hi", "hey"))


@pytest.mark.asyncio
async def test_refresh_replaces_entry_per_author():
    feed = FakeFeed(tagged=[status("1", f"{PROGRAM} Fitness: 1 #fungi", "alice")])
    mycelial = MycelialFungiHistory(feed)
    await mycelial.refresh("fungi")

    feed.tagged = [status("5", 'ON "yo" RESPOND "sup"; Fitness: 4 #fungi', "alice")]
    await mycelial.refresh("fungi")

    [entry] = mycelial.snapshot()
    assert entry.source_id == "5"
    assert entry.rule_system.patterns() == ["yo"]


@pytest.mark.asyncio
async def test_refresh_keys_anonymous_posts_by_id():
    feed = FakeFeed(tagged=[
        status("1", PROGRAM),
        status("2", PROGRAM),
    ])
    mycelial = MycelialFungiHistory(feed)
    await mycelial.refresh("fungi")
    assert len(mycelial) == 2


@pytest.mark.asyncio
async def test_refresh_failure_keeps_snapshot():
    feed = FakeFeed(tagged=[status("1", PROGRAM, "alice")])
    mycelial = MycelialFungiHistory(feed)
    await mycelial.refresh("fungi")
    before = mycelial.snapshot()

    feed.fail_tagged = True
    assert await mycelial.refresh("fungi") == 0
    assert mycelial.snapshot() == before


@pytest.mark.asyncio
async def test_refresh_timeout_keeps_snapshot():
    class SlowFeed(FakeFeed):
        async def fetch_tagged_statuses(self, tag):
            await asyncio.sleep(1)
            return []

    feed = SlowFeed()
    mycelial = MycelialFungiHistory(feed, timeout=0.01)
    assert await mycelial.refresh("fungi") == 0
    assert mycelial.snapshot() == []


@pytest.mark.asyncio
async def test_refresh_excludes_own_posts():
    feed = FakeFeed(tagged=[
        status("1", PROGRAM, "me"),
        status("2", PROGRAM, "other"),
    ])
    mycelial = MycelialFungiHistory(feed, exclude_author="@Me")
    await mycelial.refresh("fungi")
    assert [e.author for e in mycelial.snapshot()] == ["other"]


@pytest.mark.asyncio
async def test_find_first_valid():
    feed = FakeFeed(tagged=[
        status("1", "garbage"),
        status("2", f"{PROGRAM} Fitness: 1 #fungi"),
        status("3", 'ON "later" RESPOND "x";'),
    ])
    found = await MycelialFungiHistory(feed).find_first_valid("fungi")
    assert found == RuleSystem.of(("hi", "hey"))


@pytest.mark.asyncio
async def test_find_first_valid_none():
    feed = FakeFeed(tagged=[status("1", "nothing to see")])
    assert await MycelialFungiHistory(feed).find_first_valid("fungi") is None

    feed.fail_tagged = True
    assert await MycelialFungiHistory(feed).find_first_valid("fungi") is None


@pytest.mark.asyncio
async def test_refresh_scores_non_finite_fitness_as_zero():
    feed = FakeFeed(tagged=[
        status("1", f"{PROGRAM} Fitness: inf #fungi", "a"),
        status("2", f"{PROGRAM} Fitness: nan #fungi", "b"),
        status("3", f"{PROGRAM} Fitness: 1e999 #fungi", "c"),
        status("4", f"{PROGRAM} Fitness: 2 #fungi", "d"),
    ])
    mycelial = MycelialFungiHistory(feed)
    assert await mycelial.refresh("fungi") == 4
    assert [e.fitness for e in mycelial.snapshot()] == [0.0, 0.0, 0.0, 2.0]
