"""Hackathons, teams, progress updates and polls.

Revision ID: 004_hackathon_tables
Revises: 003_classroom_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "004_hackathon_tables"
down_revision: str | None = "003_classroom_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS hackathons (
            id BIGSERIAL PRIMARY KEY,
            teacher_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            class_id BIGINT REFERENCES classes(id) ON DELETE SET NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            problem_statement TEXT,
            challenge TEXT,
            difficulty VARCHAR(16) NOT NULL DEFAULT 'medium',
            topic VARCHAR(128),
            starts_at TIMESTAMPTZ,
            ends_at TIMESTAMPTZ,
            deadline TIMESTAMPTZ,
            max_participants INTEGER,
            min_team_size INTEGER NOT NULL DEFAULT 1,
            max_team_size INTEGER NOT NULL DEFAULT 4,
            accepting_submissions BOOLEAN NOT NULL DEFAULT true,
            status VARCHAR(16) NOT NULL DEFAULT 'upcoming',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (min_team_size <= max_team_size)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_hackathons_teacher ON hackathons(teacher_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS hackathon_participants (
            id BIGSERIAL PRIMARY KEY,
            hackathon_id BIGINT NOT NULL REFERENCES hackathons(id) ON DELETE CASCADE,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_hackathon_participant UNIQUE (hackathon_id, account_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS teams (
            id BIGSERIAL PRIMARY KEY,
            hackathon_id BIGINT NOT NULL REFERENCES hackathons(id) ON DELETE CASCADE,
            name VARCHAR(128) NOT NULL,
            problem_statement TEXT,
            leader_id BIGINT NOT NULL REFERENCES accounts(id),
            submission_link TEXT,
            submission_text TEXT,
            submission_files JSONB NOT NULL DEFAULT '[]',
            submitted_at TIMESTAMPTZ,
            status VARCHAR(16) NOT NULL DEFAULT 'not_started',
            score INTEGER,
            feedback TEXT,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            graded_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_teams_hackathon ON teams(hackathon_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS team_members (
            id BIGSERIAL PRIMARY KEY,
            team_id BIGINT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
            hackathon_id BIGINT NOT NULL REFERENCES hackathons(id) ON DELETE CASCADE,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_team_member_hackathon UNIQUE (hackathon_id, account_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_team_members_team ON team_members(team_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS team_progress_updates (
            id BIGSERIAL PRIMARY KEY,
            team_id BIGINT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
            author_id BIGINT NOT NULL REFERENCES accounts(id),
            message TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS polls (
            id BIGSERIAL PRIMARY KEY,
            hackathon_id BIGINT NOT NULL REFERENCES hackathons(id) ON DELETE CASCADE,
            question VARCHAR(512) NOT NULL,
            options JSONB NOT NULL DEFAULT '[]',
            created_by BIGINT NOT NULL REFERENCES accounts(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS poll_votes (
            id BIGSERIAL PRIMARY KEY,
            poll_id BIGINT NOT NULL REFERENCES polls(id) ON DELETE CASCADE,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            option_index INTEGER NOT NULL,
            voted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_poll_vote UNIQUE (poll_id, account_id)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS poll_votes CASCADE")
    op.execute("DROP TABLE IF EXISTS polls CASCADE")
    op.execute("DROP TABLE IF EXISTS team_progress_updates CASCADE")
    op.execute("DROP TABLE IF EXISTS team_members CASCADE")
    op.execute("DROP TABLE IF EXISTS teams CASCADE")
    op.execute("DROP TABLE IF EXISTS hackathon_participants CASCADE")
    op.execute("DROP TABLE IF EXISTS hackathons CASCADE")
