"""Mastodon feed — the fungus' window onto the Fediverse.

Follows the same httpx-based async pattern as the rest of the feed layer:
one short-lived AsyncClient per call, bearer-token auth, and a hard
per-request timeout. Transport and HTTP errors surface as FeedUnavailable.

Status content arrives as HTML; it is decoded to plain text here so the
rule language only ever sees what a human would read.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Any

import httpx

from fungi.exceptions import FeedUnavailable
from fungi.feed.base import Feed
from fungi.types import Mention, Status

_logger = logging.getLogger(__name__)

_BREAKS = re.compile(r"<br\s*/?>|</p>\s*<p[^>]*>", re.IGNORECASE)
_TAGS = re.compile(r"<[^>]+>")


def html_to_text(content: str) -> str:
    """Strip markup and decode entities from a Mastodon status body."""
    text = _BREAKS.sub("\n", content)
    text = _TAGS.sub("", text)
    return html.unescape(text).strip()


def to_status(data: dict[str, Any]) -> Status:
    account = data.get("account") or {}
    return Status(
        id=str(data["id"]),
        content=html_to_text(data.get("content", "")),
        account=account.get("acct", ""),
        created_at=data.get("created_at"),
        favourites_count=data.get("favourites_count", 0) or 0,
        reblogs_count=data.get("reblogs_count", 0) or 0,
    )


class MastodonFeed(Feed):
    """Feed backed by the Mastodon REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 15.0,
        limit: int = 40,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = access_token
        self._timeout = timeout
        self._limit = limit

    async def fetch_tagged_statuses(self, tag: str) -> list[Status]:
        data = await self._request(
            "GET", f"/api/v1/timelines/tag/{tag.lstrip('#')}",
            params={"limit": self._limit},
        )
        return [to_status(item) for item in data]

    async def fetch_mentions(self, since_id: str | None = None) -> list[Mention]:
        """The page of mentions right after ``since_id`` (oldest first).

        ``min_id`` pages forward from the cursor, so a backlog larger than
        ``limit`` is worked through on later calls instead of skipped.
        """
        params: dict[str, Any] = {"types[]": "mention", "limit": self._limit}
        if since_id:
            params["min_id"] = since_id
        data = await self._request("GET", "/api/v1/notifications", params=params)
        mentions = [
            Mention(id=str(item["id"]), status=to_status(item["status"]))
            for item in reversed(data)
            if item.get("type") == "mention" and item.get("status")
        ]
        _logger.debug("Fetched %d new mentions", len(mentions))
        return mentions

    async def post_status(self, text: str) -> None:
        await self._request("POST", "/api/v1/statuses", json={"status": text})

    async def post_reply(self, text: str, in_reply_to: Status) -> None:
        prefix = f"@{in_reply_to.account} " if in_reply_to.account else ""
        await self._request("POST", "/api/v1/statuses", json={
            "status": prefix + text,
            "in_reply_to_id": in_reply_to.id,
        })

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            raise FeedUnavailable(f"{method} {path} failed: {e}") from e
