"""Tests for comment tree traversal."""

from datetime import datetime, timezone

from vkwatch.services.comment_tree import (
    CommentNode,
    compose_comment_key,
    walk_comment_forest,
    walk_comment_tree,
)

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _node(comment_id, *replies, from_id=42, owner_id=-1):
    return CommentNode(
        owner_id=owner_id,
        post_id=1,
        vk_comment_id=comment_id,
        from_id=from_id,
        text=f"comment {comment_id}",
        published_at=NOW,
        replies=list(replies),
    )


class TestCommentNode:
    def test_dedup_key(self):
        assert _node(7, owner_id=-100).dedup_key == "-100:7"
        assert compose_comment_key(5, 9) == "5:9"

    def test_author_vk_id_for_users_only(self):
        assert _node(1, from_id=42).author_vk_id == 42
        assert _node(1, from_id=-5).author_vk_id is None


class TestWalk:
    def test_preorder(self):
        tree = _node(1, _node(2, _node(3)), _node(4))
        assert [n.vk_comment_id for n in walk_comment_tree(tree)] == [1, 2, 3, 4]

    def test_forest(self):
        forest = [_node(1, _node(2)), _node(3)]
        assert [n.vk_comment_id for n in walk_comment_forest(forest)] == [1, 2, 3]

    def test_deep_tree_does_not_recurse(self):
        root = _node(0)
        current = root
        for i in range(1, 5000):
            child = _node(i)
            current.replies.append(child)
            current = child

        assert sum(1 for _ in walk_comment_tree(root)) == 5000

    def test_empty_forest(self):
        assert list(walk_comment_forest([])) == []
