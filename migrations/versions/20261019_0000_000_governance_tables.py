"""Create governance tables for the board approval workflow.

Revision ID: 000
Revises:
Create Date: 2026-10-19

This migration creates:
- Identity (users, user_sessions)
- Tenants (entities, entity_memberships)
- Boards (boards, board_members, board_meetings)
- Motions (motions, votes)
- Minutes (meeting_minutes)
- Documents (documents, document_versions)
- Approval records (approvals)
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    # Create enum types
    op.execute("CREATE TYPE entity_role AS ENUM ('owner', 'admin', 'editor', 'viewer')")
    op.execute(
        """
        CREATE TYPE board_role AS ENUM (
            'chair', 'vice_chair', 'secretary', 'treasurer', 'member'
        )
        """
    )
    op.execute(
        """
        CREATE TYPE meeting_status AS ENUM (
            'scheduled', 'in_session', 'adjourned', 'cancelled'
        )
        """
    )
    op.execute("CREATE TYPE motion_status AS ENUM ('pending', 'finalized')")
    op.execute("CREATE TYPE vote_value AS ENUM ('yes', 'no', 'abstain')")
    op.execute("CREATE TYPE minutes_status AS ENUM ('draft', 'approved')")
    op.execute("CREATE TYPE document_version_status AS ENUM ('draft', 'approved')")
    op.execute(
        """
        CREATE TYPE approval_subject AS ENUM (
            'motion', 'meeting_minutes', 'document_version'
        )
        """
    )

    # Create users table
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_platform_admin", sa.Boolean(), nullable=False, server_default="false"),
        _timestamp("created_at"),
    )

    # Create user_sessions table
    op.create_table(
        "user_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True, index=True),
        _timestamp("created_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    )

    # Create entities table
    op.create_table(
        "entities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    # Create entity_memberships table
    op.create_table(
        "entity_memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "role",
            postgresql.ENUM(
                "owner", "admin", "editor", "viewer", name="entity_role", create_type=False
            ),
            nullable=False,
            server_default="viewer",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.UniqueConstraint("entity_id", "user_id", name="uq_entity_user"),
    )

    # Create boards table
    op.create_table(
        "boards",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
    )

    # Create board_members table
    op.create_table(
        "board_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("board_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            postgresql.ENUM(
                "chair",
                "vice_chair",
                "secretary",
                "treasurer",
                "member",
                name="board_role",
                create_type=False,
            ),
            nullable=False,
            server_default="member",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["board_id"], ["boards.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    )

    # Create documents table (current_version_id constraint added below)
    op.create_table(
        "documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="draft"),
        sa.Column("current_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
    )

    # Create document_versions table
    op.create_table(
        "document_versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("version_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("content_md", sa.Text(), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(
                "draft", "approved", name="document_version_status", create_type=False
            ),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
        sa.UniqueConstraint(
            "document_id", "version_number", name="uq_document_version_number"
        ),
    )

    op.create_foreign_key(
        "fk_documents_current_version",
        "documents",
        "document_versions",
        ["current_version_id"],
        ["id"],
    )

    # Create board_meetings table
    op.create_table(
        "board_meetings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("board_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(
                "scheduled",
                "in_session",
                "adjourned",
                "cancelled",
                name="meeting_status",
                create_type=False,
            ),
            nullable=False,
            server_default="scheduled",
        ),
        sa.Column("board_packet_document_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("board_packet_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["board_id"], ["boards.id"]),
        sa.ForeignKeyConstraint(["board_packet_document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["board_packet_version_id"], ["document_versions.id"]),
    )

    # Create motions table
    op.create_table(
        "motions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("moved_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("seconded_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM("pending", "finalized", name="motion_status", create_type=False),
            nullable=False,
            server_default="pending",
        ),
        _timestamp("created_at"),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["meeting_id"], ["board_meetings.id"]),
        sa.ForeignKeyConstraint(["moved_by"], ["board_members.id"]),
        sa.ForeignKeyConstraint(["seconded_by"], ["board_members.id"]),
        sa.CheckConstraint(
            "(status = 'finalized') = (finalized_at IS NOT NULL)",
            name="ck_motions_finalized_at",
        ),
    )

    # Create votes table
    op.create_table(
        "votes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("motion_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("board_member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "vote",
            postgresql.ENUM("yes", "no", "abstain", name="vote_value", create_type=False),
            nullable=False,
        ),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["motion_id"], ["motions.id"]),
        sa.ForeignKeyConstraint(["board_member_id"], ["board_members.id"]),
        sa.UniqueConstraint("motion_id", "board_member_id", name="uq_vote_motion_member"),
    )

    # Create meeting_minutes table
    op.create_table(
        "meeting_minutes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("meeting_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("content_md", sa.Text(), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM("draft", "approved", name="minutes_status", create_type=False),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["meeting_id"], ["board_meetings.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
    )

    # Create approvals table
    op.create_table(
        "approvals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "subject_type",
            postgresql.ENUM(
                "motion",
                "meeting_minutes",
                "document_version",
                name="approval_subject",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column("subject_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("approver_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approval_method", sa.String(50), nullable=False),
        sa.Column("signature_hash", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"]),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"]),
        sa.UniqueConstraint("subject_type", "subject_id", name="uq_approval_subject"),
    )

    # Create indexes for common queries
    op.create_index("ix_entity_memberships_user", "entity_memberships", ["user_id"])
    op.create_index("ix_board_members_user", "board_members", ["user_id"])


def downgrade() -> None:
    # Drop indexes
    op.drop_index("ix_board_members_user", "board_members")
    op.drop_index("ix_entity_memberships_user", "entity_memberships")

    # Drop tables in reverse order (respecting foreign keys)
    op.drop_table("approvals")
    op.drop_table("meeting_minutes")
    op.drop_table("votes")
    op.drop_table("motions")
    op.drop_table("board_meetings")
    op.drop_constraint("fk_documents_current_version", "documents", type_="foreignkey")
    op.drop_table("document_versions")
    op.drop_table("documents")
    op.drop_table("board_members")
    op.drop_table("boards")
    op.drop_table("entity_memberships")
    op.drop_table("entities")
    op.drop_table("user_sessions")
    op.drop_table("users")

    # Drop enum types
    op.execute("DROP TYPE approval_subject")
    op.execute("DROP TYPE document_version_status")
    op.execute("DROP TYPE minutes_status")
    op.execute("DROP TYPE vote_value")
    op.execute("DROP TYPE motion_status")
    op.execute("DROP TYPE meeting_status")
    op.execute("DROP TYPE board_role")
    op.execute("DROP TYPE entity_role")
