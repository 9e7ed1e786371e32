"""Add meeting and minutes lifecycle columns.

Revision ID: 001
Revises: 000
Create Date: 2026-10-19

- board_meetings.started_at / adjourned_at (start and adjourn transitions)
- meeting_minutes.locked_at / updated_at (draft editing and locking)
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = "000"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "board_meetings",
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "board_meetings",
        sa.Column("adjourned_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "meeting_minutes",
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "meeting_minutes",
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("meeting_minutes", "updated_at")
    op.drop_column("meeting_minutes", "locked_at")
    op.drop_column("board_meetings", "adjourned_at")
    op.drop_column("board_meetings", "started_at")
