"""Typed comment trees returned by the VK client.

A ``CommentNode`` is the validated form of one comment plus its nested
replies. Traversal is iterative so arbitrarily deep threads never hit the
interpreter's recursion limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Iterator, Optional


@dataclass
class CommentNode:
    owner_id: int
    post_id: int
    vk_comment_id: int
    from_id: int
    text: str
    published_at: datetime
    replies: list["CommentNode"] = field(default_factory=list)

    @property
    def dedup_key(self) -> str:
        return compose_comment_key(self.owner_id, self.vk_comment_id)

    @property
    def author_vk_id(self) -> Optional[int]:
        # Negative ids are communities posting as themselves
        return self.from_id if self.from_id > 0 else None


def compose_comment_key(owner_id: int, vk_comment_id: int) -> str:
    """Identify a comment across refresh passes."""
    return f"{owner_id}:{vk_comment_id}"


def walk_comment_tree(root: CommentNode) -> Iterator[CommentNode]:
    """Yield *root* and every nested reply, parents before their replies."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.replies))


def walk_comment_forest(roots: Iterable[CommentNode]) -> Iterator[CommentNode]:
    for root in roots:
        yield from walk_comment_tree(root)
