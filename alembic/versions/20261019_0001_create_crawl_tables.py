"""create target_links and crawl_items tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "target_links",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column(
            "scrape_failure_count",
            sa.Integer(),
            nullable=False,
            comment="Consecutive failed scans; reset on a successful scan",
        ),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_target_links_site_id", "target_links", ["site_id"], unique=False)

    op.create_table(
        "crawl_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("link_id", sa.Integer(), nullable=True),
        sa.Column("site_id", sa.Integer(), nullable=False),
        sa.Column("external_url", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, comment="processing, new, excluded"),
        sa.Column("needs_incognito_session", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["link_id"], ["target_links.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_url", name="uq_crawl_items_external_url"),
    )
    op.create_index("ix_crawl_items_link_id", "crawl_items", ["link_id"], unique=False)
    op.create_index("ix_crawl_items_status", "crawl_items", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_crawl_items_status", table_name="crawl_items")
    op.drop_index("ix_crawl_items_link_id", table_name="crawl_items")
    op.drop_table("crawl_items")
    op.drop_index("ix_target_links_site_id", table_name="target_links")
    op.drop_table("target_links")
