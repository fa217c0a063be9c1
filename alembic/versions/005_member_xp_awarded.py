"""Track hackathon XP per team member instead of per team.

Revision ID: 005_member_xp_awarded
Revises: 004_hackathon_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "005_member_xp_awarded"
down_revision: str | None = "004_hackathon_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("ALTER TABLE team_members ADD COLUMN IF NOT EXISTS xp_awarded INTEGER NOT NULL DEFAULT 0")
    # Members present at the last grade were all credited the team score.
    op.execute("""
        UPDATE team_members AS m
        SET xp_awarded = t.xp_awarded
        FROM teams AS t
        WHERE t.id = m.team_id AND t.status = 'graded'
    """)
    op.execute("ALTER TABLE teams DROP COLUMN IF EXISTS xp_awarded")


def downgrade() -> None:
    op.execute("ALTER TABLE teams ADD COLUMN IF NOT EXISTS xp_awarded INTEGER NOT NULL DEFAULT 0")
    op.execute("""
        UPDATE teams AS t
        SET xp_awarded = COALESCE(t.score, 0)
        WHERE t.status = 'graded'
    """)
    op.execute("ALTER TABLE team_members DROP COLUMN IF EXISTS xp_awarded")
