"""
Governance Database Models

SQLAlchemy models for tenant entities, their boards and board meetings,
and the approval workflow built on top of them (motions, votes, minutes,
board packet documents and approval records).
"""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from civic_api.core.database import Base


def _enum_values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


# =============================================================================
# Enums
# =============================================================================


class EntityRole(StrEnum):
    """Roles a user can hold on an entity."""

    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class BoardRole(StrEnum):
    """Seats on a board."""

    CHAIR = "chair"
    VICE_CHAIR = "vice_chair"
    SECRETARY = "secretary"
    TREASURER = "treasurer"
    MEMBER = "member"


class MeetingStatus(StrEnum):
    """Status of a board meeting."""

    SCHEDULED = "scheduled"
    IN_SESSION = "in_session"
    ADJOURNED = "adjourned"
    CANCELLED = "cancelled"


class MotionStatus(StrEnum):
    """Status of a motion in its lifecycle."""

    PENDING = "pending"
    FINALIZED = "finalized"


class VoteValue(StrEnum):
    """Ballot values."""

    YES = "yes"
    NO = "no"
    ABSTAIN = "abstain"


class MinutesStatus(StrEnum):
    """Status of meeting minutes."""

    DRAFT = "draft"
    APPROVED = "approved"


class DocumentVersionStatus(StrEnum):
    """Status of a document version. Approved versions are frozen."""

    DRAFT = "draft"
    APPROVED = "approved"


class ApprovalSubject(StrEnum):
    """What an approval record stamps."""

    MOTION = "motion"
    MEETING_MINUTES = "meeting_minutes"
    DOCUMENT_VERSION = "document_version"


ENTITY_ADMIN_ROLES = (EntityRole.OWNER, EntityRole.ADMIN)

BOARD_PACKET_DOCUMENT_TYPE = "board_packet"


# =============================================================================
# Identity
# =============================================================================


class User(Base):
    """An authenticated principal."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_platform_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    sessions: Mapped[list["UserSession"]] = relationship(back_populates="user")


class UserSession(Base):
    """
    A bearer session issued to a user.

    Only the SHA-256 hash of the token is stored.
    """

    __tablename__ = "user_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship(back_populates="sessions")


# =============================================================================
# Tenants
# =============================================================================


class Entity(Base):
    """
    A tenant-scoped organization (district, nonprofit, business).

    Every board, meeting and document hangs off exactly one entity.
    """

    __tablename__ = "entities"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity_type: Mapped[str] = mapped_column(String(50))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    boards: Mapped[list["Board"]] = relationship(back_populates="entity")
    memberships: Mapped[list["EntityMembership"]] = relationship(back_populates="entity")


class EntityMembership(Base):
    """A user's role on an entity."""

    __tablename__ = "entity_memberships"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("entities.id"))
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    role: Mapped[EntityRole] = mapped_column(
        Enum(EntityRole, name="entity_role", values_callable=_enum_values),
        default=EntityRole.VIEWER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("entity_id", "user_id", name="uq_entity_user"),)

    entity: Mapped["Entity"] = relationship(back_populates="memberships")


# =============================================================================
# Boards & Meetings
# =============================================================================


class Board(Base):
    """A governance body. Its entity_id never changes after creation."""

    __tablename__ = "boards"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("entities.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    entity: Mapped["Entity"] = relationship(back_populates="boards")
    members: Mapped[list["BoardMember"]] = relationship(back_populates="board")
    meetings: Mapped[list["BoardMeeting"]] = relationship(back_populates="board")


class BoardMember(Base):
    """A seat on a board, optionally linked to a user account."""

    __tablename__ = "board_members"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    board_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("boards.id"), index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    full_name: Mapped[str] = mapped_column(String(255))
    role: Mapped[BoardRole] = mapped_column(
        Enum(BoardRole, name="board_role", values_callable=_enum_values),
        default=BoardRole.MEMBER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    board: Mapped["Board"] = relationship(back_populates="members")


class BoardMeeting(Base):
    """
    A scheduled session of a board.

    The meeting's entity is derived through its board; that binding is
    checked before any motion, minutes or packet mutation.
    """

    __tablename__ = "board_meetings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    board_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("boards.id"), index=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[MeetingStatus] = mapped_column(
        Enum(MeetingStatus, name="meeting_status", values_callable=_enum_values),
        default=MeetingStatus.SCHEDULED,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    adjourned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Board packet
    board_packet_document_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("documents.id"), nullable=True
    )
    board_packet_version_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("document_versions.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    board: Mapped["Board"] = relationship(back_populates="meetings")
    motions: Mapped[list["Motion"]] = relationship(back_populates="meeting")


# =============================================================================
# Motions & Votes
# =============================================================================


class Motion(Base):
    """
    A proposal brought before a meeting.

    finalized_at is set exactly when status is finalized.
    """

    __tablename__ = "motions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    meeting_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("board_meetings.id"), index=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Legacy compatibility fields
    moved_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("board_members.id"), nullable=True
    )
    seconded_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("board_members.id"), nullable=True
    )

    status: Mapped[MotionStatus] = mapped_column(
        Enum(MotionStatus, name="motion_status", values_callable=_enum_values),
        default=MotionStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(status = 'finalized') = (finalized_at IS NOT NULL)",
            name="ck_motions_finalized_at",
        ),
    )

    meeting: Mapped["BoardMeeting"] = relationship(back_populates="motions")
    votes: Mapped[list["Vote"]] = relationship(back_populates="motion")


class Vote(Base):
    """One ballot per (motion, board member); later ballots overwrite."""

    __tablename__ = "votes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    motion_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("motions.id"), index=True)
    board_member_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("board_members.id"))
    vote: Mapped[VoteValue] = mapped_column(
        Enum(VoteValue, name="vote_value", values_callable=_enum_values)
    )
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("motion_id", "board_member_id", name="uq_vote_motion_member"),
    )

    motion: Mapped["Motion"] = relationship(back_populates="votes")


# =============================================================================
# Minutes
# =============================================================================


class MeetingMinutes(Base):
    """
    Minutes of a board meeting, one row per meeting.

    Content is editable while the minutes are a draft and not locked.
    Approval happens at most once.
    """

    __tablename__ = "meeting_minutes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    meeting_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("board_meetings.id"), unique=True
    )
    content_md: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[MinutesStatus] = mapped_column(
        Enum(MinutesStatus, name="minutes_status", values_callable=_enum_values),
        default=MinutesStatus.DRAFT,
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# =============================================================================
# Documents
# =============================================================================


class Document(Base):
    """A named artifact owned by an entity, e.g. a board packet."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("entities.id"), index=True)
    title: Mapped[str] = mapped_column(String(500))
    document_type: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(50), default=DocumentVersionStatus.DRAFT.value)
    current_version_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey(
            "document_versions.id", use_alter=True, name="fk_documents_current_version"
        ),
        nullable=True,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    versions: Mapped[list["DocumentVersion"]] = relationship(
        back_populates="document", foreign_keys="DocumentVersion.document_id"
    )


class DocumentVersion(Base):
    """A content snapshot of a document. Content is editable only in draft."""

    __tablename__ = "document_versions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("documents.id"), index=True)
    version_number: Mapped[int] = mapped_column(Integer, default=1)
    content_md: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[DocumentVersionStatus] = mapped_column(
        Enum(
            DocumentVersionStatus,
            name="document_version_status",
            values_callable=_enum_values,
        ),
        default=DocumentVersionStatus.DRAFT,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_version_number"),
    )

    document: Mapped["Document"] = relationship(
        back_populates="versions", foreign_keys="DocumentVersion.document_id"
    )


# =============================================================================
# Approvals
# =============================================================================


class Approval(Base):
    """
    Append-only stamp proving a subject was approved.

    The unique constraint turns a second approval of the same subject into
    an integrity error, which the store reports as a conflict.
    """

    __tablename__ = "approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    subject_type: Mapped[ApprovalSubject] = mapped_column(
        Enum(ApprovalSubject, name="approval_subject", values_callable=_enum_values)
    )
    subject_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True))
    entity_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("entities.id"), index=True)
    approver_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    approval_method: Mapped[str] = mapped_column(String(50))
    signature_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("subject_type", "subject_id", name="uq_approval_subject"),
    )
