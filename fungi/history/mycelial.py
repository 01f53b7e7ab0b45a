"""Mycelial fungi history — programs harvested from the shared hashtag.

Other fungi publish posts of the form::

    ON "hi" RESPOND "hey";  Fitness: 3.5 #fungi

Each refresh polls the tag, keeps every post that parses to a non-empty
program, and replaces the previous entry from the same author (or post,
when the author is unknown). A failed poll keeps the old snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re

from fungi.exceptions import FeedUnavailable, MalformedProgram
from fungi.feed.base import Feed
from fungi.language.rules import parse
from fungi.types import MycelialEntry, RuleSystem, Status

logger = logging.getLogger(__name__)

_TRAILING_TAGS = re.compile(r"(?:\s+#[\w-]+)+\s*$")
_FITNESS_SUFFIX = re.compile(r"(?:^|(?<=;))\s*Fitness:\s*(-?[0-9]+(?:\.[0-9]+)?|\S*)\s*$", re.IGNORECASE)


def format_post(program: str, fitness: float, tag: str) -> str:
    """The text a fungus publishes to share its program."""
    return f"{program} Fitness: {fitness} #{tag}"


def extract_program(text: str) -> tuple[str, float]:
    """Split a shared post into (program text, fitness).

    Trailing hashtags and the ``Fitness:`` suffix are removed. Fitness is
    0 when missing, unreadable or not finite (``inf``, ``nan``, ``1e999``).
    """
    body = _TRAILING_TAGS.sub("", " " + text.strip()).strip()
    fitness = 0.0
    match = _FITNESS_SUFFIX.search(body)
    if match:
        body = body[:match.start()]
        try:
            fitness = float(match.group(1))
        except ValueError:
            fitness = 0.0
        if not math.isfinite(fitness):
            fitness = 0.0
    return body.strip(), fitness


class MycelialFungiHistory:
    """Latest program per originating identity seen on the shared tag."""

    def __init__(
        self,
        feed: Feed,
        timeout: float = 15.0,
        exclude_author: str = "",
    ) -> None:
        self._feed = feed
        self._timeout = timeout
        self._exclude_author = exclude_author.lstrip("@").lower()
        self._entries: dict[str, MycelialEntry] = {}

    async def refresh(self, tag: str) -> int:
        """Poll the tag and merge well-formed programs into the snapshot.

        Returns the number of accepted posts. Never raises on feed failure.
        """
        try:
            statuses = await self._fetch(tag)
        except FeedUnavailable as e:
            logger.warning("Mycelial refresh failed, keeping previous snapshot: %s", e)
            return 0

        accepted = 0
        for status in statuses:
            entry = self._to_entry(status)
            if entry is None:
                continue
            if self._exclude_author and entry.author.lower() == self._exclude_author:
                continue
            key = entry.author or entry.source_id
            # Move to the end so the snapshot reads in arrival order
            self._entries.pop(key, None)
            self._entries[key] = entry
            accepted += 1
        logger.info(
            "Mycelial refresh: %d/%d posts accepted, %d in snapshot",
            accepted, len(statuses), len(self._entries),
        )
        return accepted

    async def find_first_valid(self, tag: str) -> RuleSystem | None:
        """First non-empty program on the tag, or None."""
        try:
            statuses = await self._fetch(tag)
        except FeedUnavailable as e:
            logger.warning("Initial search on #%s failed: %s", tag, e)
            return None
        for status in statuses:
            entry = self._to_entry(status)
            if entry is not None:
                logger.info("Found valid FUNGI code in post %s", status.id)
                return entry.rule_system
        return None

    def snapshot(self) -> list[MycelialEntry]:
        """Entries in arrival order, the most recently posted last."""
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    async def _fetch(self, tag: str) -> list[Status]:
        try:
            return await asyncio.wait_for(
                self._feed.fetch_tagged_statuses(tag), timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise FeedUnavailable(f"timed out after {self._timeout}s fetching #{tag}") from e
        except FeedUnavailable:
            raise
        except Exception as e:
            raise FeedUnavailable(f"fetching #{tag} failed: {e}") from e

    @staticmethod
    def _to_entry(status: Status) -> MycelialEntry | None:
        program, fitness = extract_program(status.content)
        try:
            rule_system = parse(program)
        except MalformedProgram as e:
            logger.debug("Discarding post %s: %s", status.id, e)
            return None
        if rule_system.is_empty:
            return None
        return MycelialEntry(
            rule_system=rule_system,
            fitness=fitness,
            source_id=status.id,
            author=status.account,
        )
