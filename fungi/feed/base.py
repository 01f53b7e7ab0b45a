"""Abstract base for the shared feed a fungus lives on."""

from __future__ import annotations

from abc import ABC, abstractmethod

from fungi.types import Mention, Status


class Feed(ABC):
    """The four calls a fungus needs from its social network."""

    @abstractmethod
    async def fetch_tagged_statuses(self, tag: str) -> list[Status]: ...

    @abstractmethod
    async def fetch_mentions(self, since_id: str | None = None) -> list[Mention]:
        """Mentions newer than ``since_id``, oldest first."""

    @abstractmethod
    async def post_status(self, text: str) -> None: ...

    @abstractmethod
    async def post_reply(self, text: str, in_reply_to: Status) -> None: ...
