"""VK API client for vkwatch.

Fetches wall comments through the public ``wall.getComments`` method and
converts the raw JSON into typed ``CommentNode`` trees at the boundary, so
nothing loosely typed travels further into the application.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .comment_tree import CommentNode, walk_comment_forest

logger = logging.getLogger(__name__)

VK_API_BASE_URL = os.getenv("VK_API_BASE_URL", "https://api.vk.com/method")
VK_API_VERSION = os.getenv("VK_API_VERSION", "5.199")
VK_ACCESS_TOKEN = os.getenv("VK_ACCESS_TOKEN", "")
# VK allows three requests per second for user tokens.
REQUEST_DELAY = 0.34
MAX_PAGE_SIZE = 100
# "Access denied": closed walls and deleted posts return this code.
ACCESS_DENIED_ERROR_CODE = 15


class VkApiError(Exception):
    """VK answered with an error payload."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"VK API error {code}: {message}")
        self.code = code
        self.message = message


class VkClient:
    """Minimal synchronous client for the VK wall API."""

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        access_token: Optional[str] = None,
        api_version: str = VK_API_VERSION,
        request_delay: float = REQUEST_DELAY,
    ):
        """Initialize the client.

        Args:
            http_client: Optional pre-configured httpx.Client.
            access_token: VK access token; defaults to ``VK_ACCESS_TOKEN``.
            api_version: VK API version sent with every call.
            request_delay: Pause between consecutive page requests, seconds.
        """
        self.http = http_client or self._create_http_client()
        self.access_token = access_token if access_token is not None else VK_ACCESS_TOKEN
        self.api_version = api_version
        self.request_delay = request_delay

    @staticmethod
    def _create_http_client() -> httpx.Client:
        return httpx.Client(base_url=VK_API_BASE_URL, timeout=30.0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch_comments_since(
        self,
        owner_id: int,
        post_id: int,
        author_id: int,
        baseline: Optional[datetime],
        batch_size: int = 100,
        max_pages: int = 5,
        thread_items_count: int = 10,
    ) -> list[CommentNode]:
        """Fetch an author's comments on one post published after *baseline*.

        Pages newest-first and stops after *max_pages*, once a page reaches
        back to the baseline, or when every comment has been read. Replies
        the author left inside someone else's thread are lifted to the top
        level of the result.

        Returns:
            Comment trees authored by *author_id*, newest first.
        """
        collected: list[CommentNode] = []
        offset = 0
        page = 0

        while page < max_pages:
            if page > 0 and self.request_delay:
                time.sleep(self.request_delay)

            total, items = self._get_comments(
                owner_id=owner_id,
                post_id=post_id,
                count=batch_size,
                offset=offset,
                thread_items_count=thread_items_count,
            )
            if not items:
                break

            collected.extend(_filter_by_author(items, author_id, baseline))

            offset += len(items)
            page += 1

            if baseline is not None:
                oldest = min(node.published_at for node in walk_comment_forest(items))
                if oldest <= baseline:
                    break

            if offset >= total:
                break

        logger.debug(
            "Fetched %d comment(s) by %s on %s_%s after %s",
            len(collected),
            author_id,
            owner_id,
            post_id,
            baseline,
        )
        return collected

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_comments(
        self,
        owner_id: int,
        post_id: int,
        count: int,
        offset: int,
        thread_items_count: int,
    ) -> tuple[int, list[CommentNode]]:
        payload = self._call(
            "wall.getComments",
            {
                "owner_id": owner_id,
                "post_id": post_id,
                "count": max(0, min(count, MAX_PAGE_SIZE)),
                "offset": offset,
                "sort": "desc",
                "need_likes": 0,
                "extended": 0,
                "thread_items_count": thread_items_count,
            },
        )
        if payload is None:
            return 0, []

        items = parse_comment_items(payload.get("items") or [], owner_id, post_id)
        return int(payload.get("count") or 0), items

    def _call(self, method: str, params: dict[str, Any]) -> Optional[dict]:
        """Call a VK method and return its ``response`` object.

        Returns None when VK denies access to the wall, raises VkApiError for
        any other VK error.
        """
        resp = self.http.post(
            f"/{method}",
            data={**params, "access_token": self.access_token, "v": self.api_version},
        )
        resp.raise_for_status()
        data = resp.json()

        error = data.get("error")
        if error:
            code = int(error.get("error_code", 0))
            if code == ACCESS_DENIED_ERROR_CODE:
                logger.info("%s: access denied for %s", method, params.get("owner_id"))
                return None
            raise VkApiError(code, error.get("error_msg", ""))

        return data.get("response") or {}


def parse_comment_items(items: list[dict], owner_id: int, post_id: int) -> list[CommentNode]:
    """Convert raw ``wall.getComments`` items into typed nodes.

    Items without an id or a date are dropped with a warning. Thread depth
    is bounded by VK (one level of replies), so plain recursion is fine.
    """
    nodes: list[CommentNode] = []
    for item in items:
        if not isinstance(item, dict) or "id" not in item or "date" not in item:
            logger.warning("Skipping malformed comment item on %s_%s: %r", owner_id, post_id, item)
            continue

        node_owner = int(item.get("owner_id", owner_id))
        node_post = int(item.get("post_id", post_id))
        thread = item.get("thread") or {}

        nodes.append(
            CommentNode(
                owner_id=node_owner,
                post_id=node_post,
                vk_comment_id=int(item["id"]),
                from_id=int(item.get("from_id") or 0),
                text=item.get("text") or "",
                published_at=datetime.fromtimestamp(int(item["date"]), tz=timezone.utc),
                replies=parse_comment_items(thread.get("items") or [], node_owner, node_post),
            )
        )
    return nodes


def _filter_by_author(
    nodes: list[CommentNode],
    author_id: int,
    baseline: Optional[datetime],
) -> list[CommentNode]:
    """Keep the author's comments newer than *baseline*, lifting nested ones."""
    result: list[CommentNode] = []
    for node in nodes:
        replies = _filter_by_author(node.replies, author_id, baseline)
        is_author = node.from_id == author_id
        is_new = baseline is None or node.published_at > baseline

        if is_author and is_new:
            result.append(
                CommentNode(
                    owner_id=node.owner_id,
                    post_id=node.post_id,
                    vk_comment_id=node.vk_comment_id,
                    from_id=node.from_id,
                    text=node.text,
                    published_at=node.published_at,
                    replies=replies,
                )
            )
        else:
            result.extend(replies)
    return result
