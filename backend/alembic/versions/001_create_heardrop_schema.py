"""Create HEARDROP schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates every table: accounts and sessions, security tracking,
       brands, shops, drops, favorites and reminders, notifications,
       saved journeys, Street Spotted posts and affiliate events.
How:   UUID primary keys generated by PostgreSQL, TIMESTAMP WITH TIME ZONE
       for every timestamp, ON DELETE rules matching heardrop/models.

Rollback: downgrade() drops all tables (destructive, all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=None if nullable else sa.text("CURRENT_TIMESTAMP"),
        nullable=nullable,
    )


def _fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _flag(name: str, default: bool) -> sa.Column:
    return sa.Column(
        name,
        sa.Boolean(),
        nullable=False,
        server_default=sa.text("true" if default else "false"),
    )


def upgrade() -> None:
    # ── Accounts ──────────────────────────────────────────────────────────
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        _flag("is_pro", False),
        _timestamp("pro_expires_at", nullable=True),
        sa.Column(
            "notification_preferences",
            sa.JSON(),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_roles",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("role", sa.String(20), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("token", sa.String(128), nullable=False),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("ip_address", sa.String(64), nullable=True),
        _timestamp("expires_at"),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_index("idx_auth_sessions_user_id", "auth_sessions", ["user_id"])

    # ── Security tracking ─────────────────────────────────────────────────
    # user_id / performed_by carry no FK: audit rows outlive deleted users
    op.create_table(
        "security_audit_log",
        _id(),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("event_data", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("performed_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_security_audit_log_created_at", "security_audit_log", [sa.text("created_at DESC")]
    )
    op.create_index("idx_security_audit_log_event_type", "security_audit_log", ["event_type"])

    for table, key in (("login_attempts", "email"), ("ip_login_attempts", "ip_address")):
        op.create_table(
            table,
            _id(),
            sa.Column(key, sa.String(255 if key == "email" else 64), nullable=False, unique=True),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
            _timestamp("last_attempt"),
            _timestamp("locked_until", nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Catalogue ─────────────────────────────────────────────────────────
    op.create_table(
        "brands",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False, unique=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("history", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.String(500), nullable=True),
        sa.Column("banner_url", sa.String(500), nullable=True),
        sa.Column("official_website", sa.String(500), nullable=True),
        sa.Column("instagram_url", sa.String(500), nullable=True),
        sa.Column("tiktok_url", sa.String(500), nullable=True),
        _flag("is_active", True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_brands_name", "brands", ["name"])
    op.create_index("idx_brands_category", "brands", ["category"])

    op.create_table(
        "shops",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False, unique=True),
        _fk("brand_id", "brands.id", "SET NULL", nullable=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("address", sa.String(300), nullable=False),
        sa.Column("city", sa.String(120), nullable=False),
        sa.Column("country", sa.String(120), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("official_site", sa.String(500), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("opening_hours", sa.JSON(), nullable=True),
        _flag("is_unique_shop", False),
        _flag("is_active", True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_shops_brand_id", "shops", ["brand_id"])
    op.create_index("idx_shops_city", "shops", ["city"])
    op.create_index("idx_shops_country", "shops", ["country"])
    # Viewport queries filter on both coordinates
    op.create_index("idx_shops_lat_lng", "shops", ["latitude", "longitude"])

    op.create_table(
        "drops",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False, unique=True),
        _fk("brand_id", "brands.id", "SET NULL", nullable=True),
        _fk("shop_id", "shops.id", "SET NULL", nullable=True),
        _timestamp("release_date"),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'upcoming'")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("product_images", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("video_url", sa.String(500), nullable=True),
        sa.Column("affiliate_link", sa.String(500), nullable=True),
        sa.Column("discount_code", sa.String(100), nullable=True),
        _flag("is_featured", False),
        _flag("is_pro_exclusive", False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_drops_release_date", "drops", ["release_date"])
    op.create_index("idx_drops_status", "drops", ["status"])
    op.create_index("idx_drops_brand_id", "drops", ["brand_id"])

    # ── Favorites & reminders ─────────────────────────────────────────────
    op.create_table(
        "favorite_brands",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("brand_id", "brands.id", "CASCADE"),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "brand_id", name="uq_favorite_brands_user_brand"),
    )
    op.create_index("idx_favorite_brands_brand_id", "favorite_brands", ["brand_id"])

    op.create_table(
        "favorite_shops",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("shop_id", "shops.id", "CASCADE"),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "shop_id", name="uq_favorite_shops_user_shop"),
    )

    op.create_table(
        "drop_reminders",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        _fk("drop_id", "drops.id", "CASCADE"),
        _flag("is_notified", False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "drop_id", name="uq_drop_reminders_user_drop"),
    )
    op.create_index("idx_drop_reminders_drop_id", "drop_reminders", ["drop_id"])

    op.create_table(
        "notifications",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        _flag("is_read", False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_notifications_user_created", "notifications", ["user_id", "created_at"])

    op.create_table(
        "saved_journeys",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("stops", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_saved_journeys_user_id", "saved_journeys", ["user_id"])

    # ── Street Spotted ────────────────────────────────────────────────────
    op.create_table(
        "spot_posts",
        _id(),
        _fk("user_id", "users.id", "CASCADE"),
        sa.Column("image_path", sa.String(255), nullable=False),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("country", sa.String(120), nullable=True),
        sa.Column("style_tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_spot_posts_status_created", "spot_posts", ["status", "created_at"])
    op.create_index("idx_spot_posts_user_id", "spot_posts", ["user_id"])

    op.create_table(
        "spot_post_brands",
        _id(),
        _fk("post_id", "spot_posts.id", "CASCADE"),
        _fk("brand_id", "brands.id", "CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id", "brand_id", name="uq_spot_post_brands_post_brand"),
    )
    op.create_index("idx_spot_post_brands_brand_id", "spot_post_brands", ["brand_id"])

    op.create_table(
        "spot_likes",
        _id(),
        _fk("post_id", "spot_posts.id", "CASCADE"),
        _fk("user_id", "users.id", "CASCADE"),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("post_id", "user_id", name="uq_spot_likes_post_user"),
    )

    # ── Analytics ─────────────────────────────────────────────────────────
    op.create_table(
        "affiliate_events",
        _id(),
        _fk("drop_id", "drops.id", "CASCADE"),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("referrer", sa.String(500), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_affiliate_events_drop_id", "affiliate_events", ["drop_id"])


def downgrade() -> None:
    """Drop every table, children before parents. Destructive."""
    for table in (
        "affiliate_events",
        "spot_likes",
        "spot_post_brands",
        "spot_posts",
        "saved_journeys",
        "notifications",
        "drop_reminders",
        "favorite_shops",
        "favorite_brands",
        "drops",
        "shops",
        "brands",
        "ip_login_attempts",
        "login_attempts",
        "security_audit_log",
        "auth_sessions",
        "user_roles",
        "users",
    ):
        op.drop_table(table)
