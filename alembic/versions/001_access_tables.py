"""Access tables: users, organisations, members, groups, leaderboards, activity.

Revision ID: 001_access_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_access_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(36) PRIMARY KEY,
            email VARCHAR(320) UNIQUE,
            name VARCHAR(128),
            tier VARCHAR(16) NOT NULL DEFAULT 'free',
            subscription_status VARCHAR(16),
            free_trial_until TIMESTAMPTZ,
            platform_role VARCHAR(32),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Organisations ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS organisations (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'TRIALING',
            max_seats INTEGER NOT NULL DEFAULT 30,
            email_domain VARCHAR(255),
            current_period_end TIMESTAMPTZ,
            grace_period_end TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Organisation Members ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS organisation_members (
            id VARCHAR(36) PRIMARY KEY,
            organisation_id VARCHAR(36) NOT NULL REFERENCES organisations(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL REFERENCES users(id),
            role VARCHAR(16) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'PENDING',
            seat_assigned_at TIMESTAMPTZ,
            seat_released_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            deleted_at TIMESTAMPTZ,
            CONSTRAINT uq_org_members_org_user UNIQUE (organisation_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_organisation_members_organisation_id
        ON organisation_members(organisation_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_organisation_members_user_id
        ON organisation_members(user_id)
    """)
    # At most one live owner per organisation
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_org_members_one_owner
        ON organisation_members(organisation_id)
        WHERE role = 'OWNER' AND deleted_at IS NULL
    """)

    # --- Organisation Groups ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS organisation_groups (
            id VARCHAR(36) PRIMARY KEY,
            organisation_id VARCHAR(36) NOT NULL REFERENCES organisations(id) ON DELETE CASCADE,
            name VARCHAR(128) NOT NULL,
            type VARCHAR(16) NOT NULL DEFAULT 'CUSTOM',
            description TEXT,
            created_by_user_id VARCHAR(36) NOT NULL REFERENCES users(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            deleted_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_organisation_groups_organisation_id
        ON organisation_groups(organisation_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS organisation_group_members (
            id VARCHAR(36) PRIMARY KEY,
            organisation_group_id VARCHAR(36) NOT NULL REFERENCES organisation_groups(id) ON DELETE CASCADE,
            organisation_member_id VARCHAR(36) NOT NULL REFERENCES organisation_members(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_group_members_group_member UNIQUE (organisation_group_id, organisation_member_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_organisation_group_members_organisation_member_id
        ON organisation_group_members(organisation_member_id)
    """)

    # --- Leaderboards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboards (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            visibility VARCHAR(16) NOT NULL,
            organisation_id VARCHAR(36) REFERENCES organisations(id) ON DELETE CASCADE,
            organisation_group_id VARCHAR(36) REFERENCES organisation_groups(id),
            created_by_user_id VARCHAR(36) NOT NULL REFERENCES users(id),
            invite_code VARCHAR(8) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            deleted_at TIMESTAMPTZ,
            CONSTRAINT ck_leaderboards_group_scope
                CHECK (visibility <> 'GROUP' OR organisation_group_id IS NOT NULL),
            CONSTRAINT ck_leaderboards_ad_hoc_scope
                CHECK (visibility <> 'AD_HOC' OR organisation_id IS NULL)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_leaderboards_organisation_id
        ON leaderboards(organisation_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_members (
            id VARCHAR(36) PRIMARY KEY,
            leaderboard_id VARCHAR(36) NOT NULL REFERENCES leaderboards(id) ON DELETE CASCADE,
            user_id VARCHAR(36) NOT NULL REFERENCES users(id),
            organisation_member_id VARCHAR(36) REFERENCES organisation_members(id),
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            left_at TIMESTAMPTZ,
            muted BOOLEAN NOT NULL DEFAULT false,
            CONSTRAINT uq_leaderboard_members_board_user UNIQUE (leaderboard_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_leaderboard_members_user_id
        ON leaderboard_members(user_id)
    """)

    # --- Activity ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS organisation_activity (
            id VARCHAR(36) PRIMARY KEY,
            organisation_id VARCHAR(36) NOT NULL REFERENCES organisations(id) ON DELETE CASCADE,
            actor_user_id VARCHAR(36) NOT NULL REFERENCES users(id),
            type VARCHAR(32) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_organisation_activity_org_created
        ON organisation_activity(organisation_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS organisation_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboard_members CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboards CASCADE")
    op.execute("DROP TABLE IF EXISTS organisation_group_members CASCADE")
    op.execute("DROP TABLE IF EXISTS organisation_groups CASCADE")
    op.execute("DROP TABLE IF EXISTS organisation_members CASCADE")
    op.execute("DROP TABLE IF EXISTS organisations CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
