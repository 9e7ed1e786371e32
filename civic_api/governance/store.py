"""
Governance Store

The persistence layer as the core sees it: a set of named queries and named
procedures. Each call runs in its own transaction and reports failure as a
StoreError carrying a free-text message; callers classify that message.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civic_api.governance.authorization import CapabilityChecks
from civic_api.governance.errors import StoreError
from civic_api.governance.models import (
    BOARD_PACKET_DOCUMENT_TYPE,
    ENTITY_ADMIN_ROLES,
    Approval,
    ApprovalSubject,
    Board,
    BoardMeeting,
    BoardMember,
    BoardRole,
    Document,
    DocumentVersion,
    DocumentVersionStatus,
    Entity,
    EntityMembership,
    MeetingMinutes,
    MeetingStatus,
    MinutesStatus,
    Motion,
    MotionStatus,
    User,
    Vote,
    VoteValue,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardPacketSnapshot:
    """The packet attached to a meeting, as shown to callers."""

    document_id: UUID | None = None
    version_id: UUID | None = None
    status: DocumentVersionStatus | None = None
    content_md: str | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    approval_id: UUID | None = None


class GovernanceStore(CapabilityChecks, Protocol):
    """Named queries and procedures used by the governance services."""

    # Queries

    async def resolve_entity(self, entity_key: str) -> UUID | None: ...

    async def get_meeting_entity_id(self, meeting_id: UUID) -> UUID | None: ...

    async def get_motion_meeting_id(self, motion_id: UUID) -> UUID | None: ...

    async def insert_motion(
        self,
        meeting_id: UUID,
        title: str,
        description: str | None,
        moved_by: UUID | None,
        seconded_by: UUID | None,
    ) -> Motion: ...

    async def list_motions(self, meeting_id: UUID) -> list[Motion]: ...

    async def list_votes(self, motion_id: UUID) -> list[Vote]: ...

    async def upsert_vote(self, motion_id: UUID, principal_id: UUID, value: VoteValue) -> Vote: ...

    async def get_meeting_packet_version(
        self, version_id: UUID, entity_id: UUID, meeting_id: UUID
    ) -> DocumentVersion | None: ...

    async def update_draft_content(self, version_id: UUID, content_md: str) -> bool: ...

    async def get_board_packet(self, meeting_id: UUID) -> BoardPacketSnapshot | None: ...

    async def is_board_member(self, meeting_id: UUID, principal_id: UUID) -> bool: ...

    async def get_meeting_minutes(self, meeting_id: UUID) -> MeetingMinutes | None: ...

    async def insert_meeting_minutes(
        self, meeting_id: UUID, content_md: str
    ) -> MeetingMinutes: ...

    async def update_draft_minutes(
        self, minutes_id: UUID, content_md: str
    ) -> MeetingMinutes | None: ...

    async def lock_meeting_minutes(self, minutes_id: UUID) -> MeetingMinutes | None: ...

    async def transition_meeting(
        self, meeting_id: UUID, expected: MeetingStatus, target: MeetingStatus
    ) -> BoardMeeting | None: ...

    # Procedures

    async def finalize_motion(
        self,
        motion_id: UUID,
        principal_id: UUID,
        signature_hash: str,
        approval_method: str,
        ip: str | None,
    ) -> UUID: ...

    async def approve_meeting_minutes(
        self,
        meeting_id: UUID,
        principal_id: UUID,
        signature_hash: str | None,
        approval_method: str,
        ip: str | None,
    ) -> UUID: ...

    async def create_board_packet_for_meeting(
        self, meeting_id: UUID, principal_id: UUID, title: str
    ) -> tuple[UUID, UUID]: ...

    async def approve_document_version(
        self,
        meeting_id: UUID,
        version_id: UUID,
        principal_id: UUID,
        approval_method: str,
        signature_hash: str | None,
        ip: str | None,
    ) -> UUID: ...

    async def set_board_packet_version(self, meeting_id: UUID, version_id: UUID) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlGovernanceStore:
    """
    GovernanceStore backed by PostgreSQL through SQLAlchemy.

    Every method opens its own session, so calls are independent
    transactions and may run concurrently.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            orig = getattr(exc, "orig", None)
            message = str(orig) if orig is not None else str(exc)
            logger.warning(f"Database error: {message}")
            raise StoreError(message) from exc

    # =========================================================================
    # Queries
    # =========================================================================

    async def resolve_entity(self, entity_key: str) -> UUID | None:
        try:
            key_as_id = UUID(entity_key)
        except ValueError:
            condition = Entity.slug == entity_key
        else:
            condition = or_(Entity.id == key_as_id, Entity.slug == entity_key)

        async with self._transaction() as session:
            result = await session.execute(select(Entity.id).where(condition).limit(1))
            return result.scalar_one_or_none()

    async def get_meeting_entity_id(self, meeting_id: UUID) -> UUID | None:
        async with self._transaction() as session:
            return await self._meeting_entity_id(session, meeting_id)

    async def get_motion_meeting_id(self, motion_id: UUID) -> UUID | None:
        async with self._transaction() as session:
            result = await session.execute(
                select(Motion.meeting_id).where(Motion.id == motion_id)
            )
            return result.scalar_one_or_none()

    async def insert_motion(
        self,
        meeting_id: UUID,
        title: str,
        description: str | None,
        moved_by: UUID | None,
        seconded_by: UUID | None,
    ) -> Motion:
        async with self._transaction() as session:
            motion = Motion(
                meeting_id=meeting_id,
                title=title,
                description=description,
                moved_by=moved_by,
                seconded_by=seconded_by,
                status=MotionStatus.PENDING,
                finalized_at=None,
            )
            session.add(motion)
            await session.flush()
            await session.refresh(motion)
            return motion

    async def list_motions(self, meeting_id: UUID) -> list[Motion]:
        async with self._transaction() as session:
            result = await session.scalars(
                select(Motion)
                .where(Motion.meeting_id == meeting_id)
                .order_by(Motion.created_at.asc())
            )
            return list(result.all())

    async def list_votes(self, motion_id: UUID) -> list[Vote]:
        async with self._transaction() as session:
            result = await session.scalars(
                select(Vote).where(Vote.motion_id == motion_id).order_by(Vote.created_at.asc())
            )
            return list(result.all())

    async def upsert_vote(self, motion_id: UUID, principal_id: UUID, value: VoteValue) -> Vote:
        async with self._transaction() as session:
            member_id = (
                await session.execute(
                    select(BoardMember.id)
                    .join(BoardMeeting, BoardMeeting.board_id == BoardMember.board_id)
                    .join(Motion, Motion.meeting_id == BoardMeeting.id)
                    .where(Motion.id == motion_id)
                    .where(BoardMember.user_id == principal_id)
                    .where(BoardMember.is_active.is_(True))
                    .limit(1)
                )
            ).scalar_one_or_none()
            if member_id is None:
                raise StoreError("Caller must be an active board member")

            signed_at = _utcnow()
            stmt = (
                pg_insert(Vote)
                .values(
                    motion_id=motion_id,
                    board_member_id=member_id,
                    vote=value,
                    signed_at=signed_at,
                )
                .on_conflict_do_update(
                    constraint="uq_vote_motion_member",
                    set_={"vote": value, "signed_at": signed_at, "updated_at": signed_at},
                )
                .returning(Vote)
            )
            result = await session.scalars(
                stmt, execution_options={"populate_existing": True}
            )
            return result.one()

    async def get_meeting_packet_version(
        self, version_id: UUID, entity_id: UUID, meeting_id: UUID
    ) -> DocumentVersion | None:
        """A version of the meeting's own packet document, owned by the entity."""
        async with self._transaction() as session:
            result = await session.scalars(
                select(DocumentVersion)
                .join(Document, Document.id == DocumentVersion.document_id)
                .join(BoardMeeting, BoardMeeting.board_packet_document_id == Document.id)
                .where(DocumentVersion.id == version_id)
                .where(Document.entity_id == entity_id)
                .where(BoardMeeting.id == meeting_id)
            )
            return result.one_or_none()

    async def update_draft_content(self, version_id: UUID, content_md: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                update(DocumentVersion)
                .where(DocumentVersion.id == version_id)
                .where(DocumentVersion.status == DocumentVersionStatus.DRAFT)
                .values(content_md=content_md)
                .returning(DocumentVersion.id)
                .execution_options(synchronize_session=False)
            )
            return result.scalar_one_or_none() is not None

    async def get_board_packet(self, meeting_id: UUID) -> BoardPacketSnapshot | None:
        async with self._transaction() as session:
            meeting = await session.get(BoardMeeting, meeting_id)
            if meeting is None or meeting.board_packet_document_id is None:
                return None

            document = await session.get(Document, meeting.board_packet_document_id)
            if document is None:
                return None

            version_id = meeting.board_packet_version_id or document.current_version_id
            version = await session.get(DocumentVersion, version_id) if version_id else None
            if version is None:
                return BoardPacketSnapshot(document_id=document.id)

            approval_id = (
                await session.execute(
                    select(Approval.id)
                    .where(Approval.subject_type == ApprovalSubject.DOCUMENT_VERSION)
                    .where(Approval.subject_id == version.id)
                )
            ).scalar_one_or_none()

            return BoardPacketSnapshot(
                document_id=document.id,
                version_id=version.id,
                status=version.status,
                content_md=version.content_md,
                approved_at=version.approved_at,
                approved_by=version.approved_by,
                approval_id=approval_id,
            )

    async def is_board_member(self, meeting_id: UUID, principal_id: UUID) -> bool:
        async with self._transaction() as session:
            return await self._board_seat(session, meeting_id, principal_id) is not None

    async def get_meeting_minutes(self, meeting_id: UUID) -> MeetingMinutes | None:
        async with self._transaction() as session:
            result = await session.scalars(
                select(MeetingMinutes).where(MeetingMinutes.meeting_id == meeting_id)
            )
            return result.one_or_none()

    async def insert_meeting_minutes(self, meeting_id: UUID, content_md: str) -> MeetingMinutes:
        async with self._transaction() as session:
            minutes = MeetingMinutes(
                meeting_id=meeting_id,
                content_md=content_md,
                status=MinutesStatus.DRAFT,
            )
            session.add(minutes)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise StoreError("Minutes record already exists for meeting") from exc
            await session.refresh(minutes)
            return minutes

    async def update_draft_minutes(
        self, minutes_id: UUID, content_md: str
    ) -> MeetingMinutes | None:
        """Replace the content of unlocked draft minutes; None if no longer editable."""
        async with self._transaction() as session:
            result = await session.scalars(
                update(MeetingMinutes)
                .where(MeetingMinutes.id == minutes_id)
                .where(MeetingMinutes.status == MinutesStatus.DRAFT)
                .where(MeetingMinutes.locked_at.is_(None))
                .values(content_md=content_md, updated_at=_utcnow())
                .returning(MeetingMinutes),
                execution_options={"populate_existing": True},
            )
            return result.one_or_none()

    async def lock_meeting_minutes(self, minutes_id: UUID) -> MeetingMinutes | None:
        async with self._transaction() as session:
            result = await session.scalars(
                update(MeetingMinutes)
                .where(MeetingMinutes.id == minutes_id)
                .where(MeetingMinutes.status == MinutesStatus.DRAFT)
                .where(MeetingMinutes.locked_at.is_(None))
                .values(locked_at=_utcnow())
                .returning(MeetingMinutes),
                execution_options={"populate_existing": True},
            )
            return result.one_or_none()

    async def transition_meeting(
        self, meeting_id: UUID, expected: MeetingStatus, target: MeetingStatus
    ) -> BoardMeeting | None:
        """Move a meeting from `expected` to `target`; None if it was not in `expected`."""
        values: dict[str, object] = {"status": target}
        if target == MeetingStatus.IN_SESSION:
            values["started_at"] = _utcnow()
        elif target == MeetingStatus.ADJOURNED:
            values["adjourned_at"] = _utcnow()

        async with self._transaction() as session:
            result = await session.scalars(
                update(BoardMeeting)
                .where(BoardMeeting.id == meeting_id)
                .where(BoardMeeting.status == expected)
                .values(**values)
                .returning(BoardMeeting),
                execution_options={"populate_existing": True},
            )
            return result.one_or_none()

    # =========================================================================
    # Capability checks
    # =========================================================================

    async def is_global_admin(self, principal_id: UUID) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                select(User.is_platform_admin)
                .where(User.id == principal_id)
                .where(User.is_active.is_(True))
            )
            return bool(result.scalar_one_or_none())

    async def is_entity_admin(self, entity_id: UUID, principal_id: UUID) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                select(EntityMembership.id)
                .where(EntityMembership.entity_id == entity_id)
                .where(EntityMembership.user_id == principal_id)
                .where(EntityMembership.is_active.is_(True))
                .where(EntityMembership.role.in_(ENTITY_ADMIN_ROLES))
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def is_board_chair(self, entity_id: UUID, principal_id: UUID) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                select(BoardMember.id)
                .join(Board, Board.id == BoardMember.board_id)
                .where(Board.entity_id == entity_id)
                .where(BoardMember.user_id == principal_id)
                .where(BoardMember.role == BoardRole.CHAIR)
                .where(BoardMember.is_active.is_(True))
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    # =========================================================================
    # Procedures
    # =========================================================================

    async def finalize_motion(
        self,
        motion_id: UUID,
        principal_id: UUID,
        signature_hash: str,
        approval_method: str,
        ip: str | None,
    ) -> UUID:
        async with self._transaction() as session:
            row = (
                await session.execute(
                    select(Motion, Board.entity_id)
                    .join(BoardMeeting, BoardMeeting.id == Motion.meeting_id)
                    .join(Board, Board.id == BoardMeeting.board_id)
                    .where(Motion.id == motion_id)
                    .with_for_update(of=Motion)
                )
            ).one_or_none()
            if row is None:
                raise StoreError("Motion not found")

            motion, entity_id = row
            if motion.status == MotionStatus.FINALIZED:
                raise StoreError("Motion already finalized")

            approval_id = await self._record_approval(
                session,
                subject_type=ApprovalSubject.MOTION,
                subject_id=motion.id,
                entity_id=entity_id,
                principal_id=principal_id,
                approval_method=approval_method,
                signature_hash=signature_hash,
                ip=ip,
                conflict_message="Motion already finalized",
            )
            motion.status = MotionStatus.FINALIZED
            motion.finalized_at = _utcnow()
            return approval_id

    async def approve_meeting_minutes(
        self,
        meeting_id: UUID,
        principal_id: UUID,
        signature_hash: str | None,
        approval_method: str,
        ip: str | None,
    ) -> UUID:
        async with self._transaction() as session:
            entity_id = await self._meeting_entity_id(session, meeting_id)
            if entity_id is None:
                raise StoreError("Meeting not found")

            if await self._board_seat(session, meeting_id, principal_id) is None:
                raise StoreError("Caller must be an active board member")

            minutes = (
                await session.scalars(
                    select(MeetingMinutes)
                    .where(MeetingMinutes.meeting_id == meeting_id)
                    .with_for_update()
                )
            ).one_or_none()
            if minutes is None:
                raise StoreError("No minutes found for meeting")
            if minutes.status == MinutesStatus.APPROVED:
                raise StoreError("Minutes already approved")

            approval_id = await self._record_approval(
                session,
                subject_type=ApprovalSubject.MEETING_MINUTES,
                subject_id=meeting_id,
                entity_id=entity_id,
                principal_id=principal_id,
                approval_method=approval_method,
                signature_hash=signature_hash,
                ip=ip,
                conflict_message="Minutes already approved",
            )
            minutes.status = MinutesStatus.APPROVED
            minutes.approved_at = _utcnow()
            minutes.approved_by = principal_id
            return approval_id

    async def create_board_packet_for_meeting(
        self, meeting_id: UUID, principal_id: UUID, title: str
    ) -> tuple[UUID, UUID]:
        async with self._transaction() as session:
            row = (
                await session.execute(
                    select(BoardMeeting, Board.entity_id)
                    .join(Board, Board.id == BoardMeeting.board_id)
                    .where(BoardMeeting.id == meeting_id)
                    .with_for_update(of=BoardMeeting)
                )
            ).one_or_none()
            if row is None:
                raise StoreError("Meeting not found")

            meeting, entity_id = row
            if meeting.board_packet_document_id is not None:
                raise StoreError("Board packet already exists for meeting")

            document = Document(
                entity_id=entity_id,
                title=title,
                document_type=BOARD_PACKET_DOCUMENT_TYPE,
                status=DocumentVersionStatus.DRAFT.value,
                created_by=principal_id,
            )
            session.add(document)
            await session.flush()

            version = DocumentVersion(
                document_id=document.id,
                version_number=1,
                content_md="",
                status=DocumentVersionStatus.DRAFT,
                created_by=principal_id,
            )
            session.add(version)
            await session.flush()

            document.current_version_id = version.id
            meeting.board_packet_document_id = document.id
            return document.id, version.id

    async def approve_document_version(
        self,
        meeting_id: UUID,
        version_id: UUID,
        principal_id: UUID,
        approval_method: str,
        signature_hash: str | None,
        ip: str | None,
    ) -> UUID:
        async with self._transaction() as session:
            row = (
                await session.execute(
                    select(DocumentVersion, Document)
                    .join(Document, Document.id == DocumentVersion.document_id)
                    .join(BoardMeeting, BoardMeeting.board_packet_document_id == Document.id)
                    .where(DocumentVersion.id == version_id)
                    .where(BoardMeeting.id == meeting_id)
                    .with_for_update(of=DocumentVersion)
                )
            ).one_or_none()
            if row is None:
                raise StoreError("Document version not found")

            version, document = row
            if version.status != DocumentVersionStatus.DRAFT:
                raise StoreError("Document version already approved")

            approval_id = await self._record_approval(
                session,
                subject_type=ApprovalSubject.DOCUMENT_VERSION,
                subject_id=version.id,
                entity_id=document.entity_id,
                principal_id=principal_id,
                approval_method=approval_method,
                signature_hash=signature_hash,
                ip=ip,
                conflict_message="Document version already approved",
            )
            version.status = DocumentVersionStatus.APPROVED
            version.approved_at = _utcnow()
            version.approved_by = principal_id
            document.status = DocumentVersionStatus.APPROVED.value
            document.current_version_id = version.id
            return approval_id

    async def set_board_packet_version(self, meeting_id: UUID, version_id: UUID) -> None:
        async with self._transaction() as session:
            meeting = await session.get(BoardMeeting, meeting_id, with_for_update=True)
            if meeting is None:
                raise StoreError("Meeting not found")

            version = await session.get(DocumentVersion, version_id)
            if version is None or version.document_id != meeting.board_packet_document_id:
                raise StoreError("Document version not found")
            if version.status != DocumentVersionStatus.APPROVED:
                raise StoreError("Document version is not approved")

            meeting.board_packet_version_id = version.id

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _meeting_entity_id(session: AsyncSession, meeting_id: UUID) -> UUID | None:
        result = await session.execute(
            select(Board.entity_id)
            .join(BoardMeeting, BoardMeeting.board_id == Board.id)
            .where(BoardMeeting.id == meeting_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _board_seat(
        session: AsyncSession, meeting_id: UUID, principal_id: UUID
    ) -> UUID | None:
        """Active seat of the principal on the meeting's board."""
        result = await session.execute(
            select(BoardMember.id)
            .join(BoardMeeting, BoardMeeting.board_id == BoardMember.board_id)
            .where(BoardMeeting.id == meeting_id)
            .where(BoardMember.user_id == principal_id)
            .where(BoardMember.is_active.is_(True))
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _record_approval(
        session: AsyncSession,
        *,
        subject_type: ApprovalSubject,
        subject_id: UUID,
        entity_id: UUID,
        principal_id: UUID,
        approval_method: str,
        signature_hash: str | None,
        ip: str | None,
        conflict_message: str,
    ) -> UUID:
        approval = Approval(
            subject_type=subject_type,
            subject_id=subject_id,
            entity_id=entity_id,
            approver_id=principal_id,
            approval_method=approval_method,
            signature_hash=signature_hash,
            ip_address=ip,
        )
        session.add(approval)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise StoreError(conflict_message) from exc
        return approval.id
