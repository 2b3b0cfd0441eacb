"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # --- keywords ---
    op.create_table(
        "keywords",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("word", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("is_phrase", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_keywords_category", "keywords", ["category"])

    # --- posts ---
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
        sa.Column("vk_post_id", sa.BigInteger(), nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("owner_id", "vk_post_id", name="uq_posts_owner_post"),
    )

    # --- watchlist_authors ---
    op.create_table(
        "watchlist_authors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("author_vk_id", sa.BigInteger(), unique=True, nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "PAUSED", "STOPPED", name="watchlist_status"),
            server_default="ACTIVE",
            nullable=False,
        ),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("found_comments_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("monitoring_stopped_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_watchlist_authors_status_checked",
        "watchlist_authors",
        ["status", "last_checked_at"],
    )

    # --- comments ---
    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
        sa.Column("post_id", sa.BigInteger(), nullable=False),
        sa.Column("vk_comment_id", sa.BigInteger(), nullable=False),
        sa.Column("from_id", sa.BigInteger(), nullable=False),
        sa.Column("author_vk_id", sa.BigInteger(), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "source",
            sa.Enum("TASK", "WATCHLIST", name="comment_source"),
            server_default="TASK",
            nullable=False,
        ),
        sa.Column(
            "watchlist_author_id",
            sa.Integer(),
            sa.ForeignKey("watchlist_authors.id"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint("owner_id", "vk_comment_id", name="uq_comments_owner_comment"),
    )
    op.create_index("ix_comments_author_vk_id", "comments", ["author_vk_id"])
    op.create_index("ix_comments_watchlist_author_id", "comments", ["watchlist_author_id"])
    op.create_index("ix_comments_owner_post", "comments", ["owner_id", "post_id"])

    # --- comment_keyword_matches ---
    op.create_table(
        "comment_keyword_matches",
        sa.Column(
            "comment_id",
            sa.Integer(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "keyword_id",
            sa.Integer(),
            sa.ForeignKey("keywords.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "source",
            sa.Enum("COMMENT", "POST", name="match_source"),
            primary_key=True,
        ),
    )
    op.create_index(
        "ix_comment_keyword_matches_keyword_id",
        "comment_keyword_matches",
        ["keyword_id"],
    )


def downgrade() -> None:
    op.drop_table("comment_keyword_matches")
    op.drop_table("comments")
    op.drop_table("watchlist_authors")
    op.drop_table("posts")
    op.drop_table("keywords")

    op.execute("DROP TYPE IF EXISTS match_source")
    op.execute("DROP TYPE IF EXISTS comment_source")
    op.execute("DROP TYPE IF EXISTS watchlist_status")
