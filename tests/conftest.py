"""Shared test fixtures — FakeFeed for testing without a Mastodon server."""

from __future__ import annotations

import asyncio

import pytest

from fungi.feed.base import Feed
from fungi.types import Mention, Status


class FakeFeed(Feed):
    """Feed that serves canned statuses and records everything posted."""

    def __init__(
        self,
        tagged: list[Status] | None = None,
        mentions: list[Mention] | None = None,
    ) -> None:
        self.tagged = list(tagged or [])
        self.mentions = list(mentions or [])
        self.posted: list[str] = []
        self.replies: list[tuple[str, Status]] = []
        self.mention_cursors: list[str | None] = []
        self.fail_replies: set[str] = set()  # status ids whose reply raises
        self.fail_tagged = False
        self.tagged_calls = 0
        self.publish_gate: asyncio.Event | None = None  # blocks post_status until set

    async def fetch_tagged_statuses(self, tag):
        self.tagged_calls += 1
        if self.fail_tagged:
            raise ConnectionError("feed is down")
        return list(self.tagged)

    async def fetch_mentions(self, since_id=None):
        self.mention_cursors.append(since_id)
        ids = [m.id for m in self.mentions]
        start = ids.index(since_id) + 1 if since_id in ids else 0
        return self.mentions[start:]

    async def post_status(self, text):
        if self.publish_gate is not None:
            await self.publish_gate.wait()
        self.posted.append(text)

    async def post_reply(self, text, in_reply_to):
        if in_reply_to.id in self.fail_replies:
            raise ConnectionError("reply rejected")
        self.replies.append((text, in_reply_to))


def status(id: str, content: str, account: str = "") -> Status:
    return Status(id=id, content=content, account=account)


def mention(id: str, content: str, account: str = "someone") -> Mention:
    return Mention(id=id, status=status(id, content, account))


@pytest.fixture
def fake_feed():
    return FakeFeed()


@pytest.fixture
def make_status():
    return status


@pytest.fixture
def make_mention():
    return mention
