"""Classes, rosters, assignments, submissions and notifications.

Revision ID: 003_classroom_tables
Revises: 002_ledger_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "003_classroom_tables"
down_revision: str | None = "002_ledger_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS classes (
            id BIGSERIAL PRIMARY KEY,
            teacher_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            name VARCHAR(128) NOT NULL,
            subject VARCHAR(128),
            description TEXT,
            join_code VARCHAR(16) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_classes_teacher ON classes(teacher_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS class_members (
            id BIGSERIAL PRIMARY KEY,
            class_id BIGINT NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
            student_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_class_member UNIQUE (class_id, student_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_class_members_student ON class_members(student_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS assignments (
            id BIGSERIAL PRIMARY KEY,
            class_id BIGINT NOT NULL REFERENCES classes(id) ON DELETE CASCADE,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            attachment_url TEXT,
            due_date TIMESTAMPTZ,
            max_points INTEGER NOT NULL DEFAULT 100,
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            created_by BIGINT NOT NULL REFERENCES accounts(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_assignments_class ON assignments(class_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS submissions (
            id BIGSERIAL PRIMARY KEY,
            assignment_id BIGINT NOT NULL REFERENCES assignments(id) ON DELETE CASCADE,
            student_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            content TEXT,
            attachment_url TEXT,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            points INTEGER,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            feedback TEXT,
            submitted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            graded_at TIMESTAMPTZ,
            graded_by BIGINT,
            CONSTRAINT uq_submission_student UNIQUE (assignment_id, student_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_submissions_student ON submissions(student_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            subtype VARCHAR(64) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            action_url VARCHAR(256),
            read BOOLEAN NOT NULL DEFAULT false,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_account
        ON notifications(account_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_unread
        ON notifications(account_id) WHERE read = false
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS submissions CASCADE")
    op.execute("DROP TABLE IF EXISTS assignments CASCADE")
    op.execute("DROP TABLE IF EXISTS class_members CASCADE")
    op.execute("DROP TABLE IF EXISTS classes CASCADE")
