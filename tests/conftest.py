"""
Pytest configuration and fixtures.

The governance services only talk to the store protocol, so tests run
against an in-memory store that mirrors the SQL store's queries,
procedures and failure messages.
"""

import uuid
from collections.abc import AsyncGenerator, Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from civic_api.auth.dependencies import get_current_principal, security
from civic_api.core.database import get_db
from civic_api.governance.errors import StoreError
from civic_api.governance.models import (
    BOARD_PACKET_DOCUMENT_TYPE,
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
    MeetingMinutes,
    MeetingStatus,
    MinutesStatus,
    Motion,
    MotionStatus,
    Vote,
    VoteValue,
)
from civic_api.governance.router import get_store
from civic_api.governance.store import BoardPacketSnapshot
from civic_api.main import app

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "e2e: marks end-to-end scenarios over HTTP")
    config.addinivalue_line(
        "markers", "integration: marks tests needing a PostgreSQL database (TEST_DATABASE_URL)"
    )


# =============================================================================
# In-memory store
# =============================================================================


class FakeGovernanceStore:
    """
    In-memory GovernanceStore.

    `failures` maps a method name to a message raised as StoreError when the
    method is called; `check_errors` maps a capability check name to an
    exception it raises. Every call is recorded in `calls`.
    """

    def __init__(self) -> None:
        self.entities: dict[UUID, Entity] = {}
        self.global_admins: set[UUID] = set()
        self.entity_admins: set[tuple[UUID, UUID]] = set()
        self.boards: dict[UUID, Board] = {}
        self.members: dict[UUID, BoardMember] = {}
        self.meetings: dict[UUID, BoardMeeting] = {}
        self.motions: dict[UUID, Motion] = {}
        self.votes: dict[tuple[UUID, UUID], Vote] = {}
        self.minutes: dict[UUID, MeetingMinutes] = {}
        self.documents: dict[UUID, Document] = {}
        self.versions: dict[UUID, DocumentVersion] = {}
        self.approvals: dict[tuple[ApprovalSubject, UUID], Approval] = {}

        self.failures: dict[str, str] = {}
        self.check_errors: dict[str, Exception] = {}
        self.calls: list[str] = []
        self._clock = 0

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise StoreError(self.failures[name])

    def _now(self) -> datetime:
        self._clock += 1
        return EPOCH + timedelta(seconds=self._clock)

    def _active_member(self, board_id: UUID, principal_id: UUID) -> BoardMember | None:
        for member in self.members.values():
            if member.board_id == board_id and member.user_id == principal_id and member.is_active:
                return member
        return None

    def _record_approval(
        self,
        subject_type: ApprovalSubject,
        subject_id: UUID,
        entity_id: UUID,
        principal_id: UUID,
        approval_method: str,
        signature_hash: str | None,
        ip: str | None,
        conflict_message: str,
    ) -> UUID:
        if (subject_type, subject_id) in self.approvals:
            raise StoreError(conflict_message)
        approval = Approval(
            id=uuid.uuid4(),
            subject_type=subject_type,
            subject_id=subject_id,
            entity_id=entity_id,
            approver_id=principal_id,
            approval_method=approval_method,
            signature_hash=signature_hash,
            ip_address=ip,
            created_at=self._now(),
        )
        self.approvals[(subject_type, subject_id)] = approval
        return approval.id

    # Queries

    async def resolve_entity(self, entity_key: str) -> UUID | None:
        self._enter("resolve_entity")
        for entity in self.entities.values():
            if str(entity.id) == entity_key or entity.slug == entity_key:
                return entity.id
        return None

    async def get_meeting_entity_id(self, meeting_id: UUID) -> UUID | None:
        self._enter("get_meeting_entity_id")
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            return None
        return self.boards[meeting.board_id].entity_id

    async def get_motion_meeting_id(self, motion_id: UUID) -> UUID | None:
        self._enter("get_motion_meeting_id")
        motion = self.motions.get(motion_id)
        return motion.meeting_id if motion else None

    async def insert_motion(
        self,
        meeting_id: UUID,
        title: str,
        description: str | None,
        moved_by: UUID | None,
        seconded_by: UUID | None,
    ) -> Motion:
        self._enter("insert_motion")
        motion = Motion(
            id=uuid.uuid4(),
            meeting_id=meeting_id,
            title=title,
            description=description,
            moved_by=moved_by,
            seconded_by=seconded_by,
            status=MotionStatus.PENDING,
            created_at=self._now(),
            finalized_at=None,
        )
        self.motions[motion.id] = motion
        return motion

    async def list_motions(self, meeting_id: UUID) -> list[Motion]:
        self._enter("list_motions")
        motions = [m for m in self.motions.values() if m.meeting_id == meeting_id]
        return sorted(motions, key=lambda m: m.created_at)

    async def list_votes(self, motion_id: UUID) -> list[Vote]:
        self._enter("list_votes")
        votes = [v for v in self.votes.values() if v.motion_id == motion_id]
        return sorted(votes, key=lambda v: v.created_at)

    async def upsert_vote(self, motion_id: UUID, principal_id: UUID, value: VoteValue) -> Vote:
        self._enter("upsert_vote")
        motion = self.motions[motion_id]
        board_id = self.meetings[motion.meeting_id].board_id
        member = self._active_member(board_id, principal_id)
        if member is None:
            raise StoreError("Caller must be an active board member")

        signed_at = self._now()
        vote = self.votes.get((motion_id, member.id))
        if vote is None:
            vote = Vote(
                id=uuid.uuid4(),
                motion_id=motion_id,
                board_member_id=member.id,
                created_at=signed_at,
            )
            self.votes[(motion_id, member.id)] = vote
        vote.vote = value
        vote.signed_at = signed_at
        vote.updated_at = signed_at
        return vote

    async def get_meeting_packet_version(
        self, version_id: UUID, entity_id: UUID, meeting_id: UUID
    ) -> DocumentVersion | None:
        self._enter("get_meeting_packet_version")
        version = self.versions.get(version_id)
        meeting = self.meetings.get(meeting_id)
        if version is None or meeting is None:
            return None
        if version.document_id != meeting.board_packet_document_id:
            return None
        if self.documents[version.document_id].entity_id != entity_id:
            return None
        return version

    async def update_draft_content(self, version_id: UUID, content_md: str) -> bool:
        self._enter("update_draft_content")
        version = self.versions.get(version_id)
        if version is None or version.status != DocumentVersionStatus.DRAFT:
            return False
        version.content_md = content_md
        return True

    async def get_board_packet(self, meeting_id: UUID) -> BoardPacketSnapshot | None:
        self._enter("get_board_packet")
        meeting = self.meetings.get(meeting_id)
        if meeting is None or meeting.board_packet_document_id is None:
            return None
        document = self.documents[meeting.board_packet_document_id]
        version_id = meeting.board_packet_version_id or document.current_version_id
        version = self.versions.get(version_id) if version_id else None
        if version is None:
            return BoardPacketSnapshot(document_id=document.id)
        approval = self.approvals.get((ApprovalSubject.DOCUMENT_VERSION, version.id))
        return BoardPacketSnapshot(
            document_id=document.id,
            version_id=version.id,
            status=version.status,
            content_md=version.content_md,
            approved_at=version.approved_at,
            approved_by=version.approved_by,
            approval_id=approval.id if approval else None,
        )

    async def is_board_member(self, meeting_id: UUID, principal_id: UUID) -> bool:
        self._enter("is_board_member")
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            return False
        return self._active_member(meeting.board_id, principal_id) is not None

    async def get_meeting_minutes(self, meeting_id: UUID) -> MeetingMinutes | None:
        self._enter("get_meeting_minutes")
        return self.minutes.get(meeting_id)

    async def insert_meeting_minutes(self, meeting_id: UUID, content_md: str) -> MeetingMinutes:
        self._enter("insert_meeting_minutes")
        if meeting_id in self.minutes:
            raise StoreError("Minutes record already exists for meeting")
        minutes = MeetingMinutes(
            id=uuid.uuid4(),
            meeting_id=meeting_id,
            content_md=content_md,
            status=MinutesStatus.DRAFT,
            locked_at=None,
            created_at=self._now(),
        )
        self.minutes[meeting_id] = minutes
        return minutes

    def _editable_minutes(self, minutes_id: UUID) -> MeetingMinutes | None:
        for minutes in self.minutes.values():
            if minutes.id == minutes_id:
                editable = minutes.status == MinutesStatus.DRAFT and minutes.locked_at is None
                return minutes if editable else None
        return None

    async def update_draft_minutes(
        self, minutes_id: UUID, content_md: str
    ) -> MeetingMinutes | None:
        self._enter("update_draft_minutes")
        minutes = self._editable_minutes(minutes_id)
        if minutes is not None:
            minutes.content_md = content_md
            minutes.updated_at = self._now()
        return minutes

    async def lock_meeting_minutes(self, minutes_id: UUID) -> MeetingMinutes | None:
        self._enter("lock_meeting_minutes")
        minutes = self._editable_minutes(minutes_id)
        if minutes is not None:
            minutes.locked_at = self._now()
        return minutes

    async def transition_meeting(
        self, meeting_id: UUID, expected: MeetingStatus, target: MeetingStatus
    ) -> BoardMeeting | None:
        self._enter("transition_meeting")
        meeting = self.meetings.get(meeting_id)
        if meeting is None or meeting.status != expected:
            return None
        meeting.status = target
        if target == MeetingStatus.IN_SESSION:
            meeting.started_at = self._now()
        elif target == MeetingStatus.ADJOURNED:
            meeting.adjourned_at = self._now()
        return meeting

    # Capability checks

    async def _check(self, name: str, result: bool) -> bool:
        self.calls.append(name)
        if name in self.check_errors:
            raise self.check_errors[name]
        return result

    async def is_global_admin(self, principal_id: UUID) -> bool:
        return await self._check("is_global_admin", principal_id in self.global_admins)

    async def is_entity_admin(self, entity_id: UUID, principal_id: UUID) -> bool:
        return await self._check(
            "is_entity_admin", (entity_id, principal_id) in self.entity_admins
        )

    async def is_board_chair(self, entity_id: UUID, principal_id: UUID) -> bool:
        is_chair = any(
            member.user_id == principal_id
            and member.role == BoardRole.CHAIR
            and member.is_active
            and self.boards[member.board_id].entity_id == entity_id
            for member in self.members.values()
        )
        return await self._check("is_board_chair", is_chair)

    # Procedures

    async def finalize_motion(
        self,
        motion_id: UUID,
        principal_id: UUID,
        signature_hash: str,
        approval_method: str,
        ip: str | None,
    ) -> UUID:
        self._enter("finalize_motion")
        motion = self.motions.get(motion_id)
        if motion is None:
            raise StoreError("Motion not found")
        if motion.status == MotionStatus.FINALIZED:
            raise StoreError("Motion already finalized")

        meeting = self.meetings[motion.meeting_id]
        approval_id = self._record_approval(
            ApprovalSubject.MOTION,
            motion.id,
            self.boards[meeting.board_id].entity_id,
            principal_id,
            approval_method,
            signature_hash,
            ip,
            "Motion already finalized",
        )
        motion.status = MotionStatus.FINALIZED
        motion.finalized_at = self._now()
        return approval_id

    async def approve_meeting_minutes(
        self,
        meeting_id: UUID,
        principal_id: UUID,
        signature_hash: str | None,
        approval_method: str,
        ip: str | None,
    ) -> UUID:
        self._enter("approve_meeting_minutes")
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            raise StoreError("Meeting not found")
        if self._active_member(meeting.board_id, principal_id) is None:
            raise StoreError("Caller must be an active board member")

        minutes = self.minutes.get(meeting_id)
        if minutes is None:
            raise StoreError("No minutes found for meeting")
        if minutes.status == MinutesStatus.APPROVED:
            raise StoreError("Minutes already approved")

        approval_id = self._record_approval(
            ApprovalSubject.MEETING_MINUTES,
            meeting_id,
            self.boards[meeting.board_id].entity_id,
            principal_id,
            approval_method,
            signature_hash,
            ip,
            "Minutes already approved",
        )
        minutes.status = MinutesStatus.APPROVED
        minutes.approved_at = self._now()
        minutes.approved_by = principal_id
        return approval_id

    async def create_board_packet_for_meeting(
        self, meeting_id: UUID, principal_id: UUID, title: str
    ) -> tuple[UUID, UUID]:
        self._enter("create_board_packet_for_meeting")
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            raise StoreError("Meeting not found")
        if meeting.board_packet_document_id is not None:
            raise StoreError("Board packet already exists for meeting")

        document = Document(
            id=uuid.uuid4(),
            entity_id=self.boards[meeting.board_id].entity_id,
            title=title,
            document_type=BOARD_PACKET_DOCUMENT_TYPE,
            status=DocumentVersionStatus.DRAFT.value,
            created_by=principal_id,
        )
        version = DocumentVersion(
            id=uuid.uuid4(),
            document_id=document.id,
            version_number=1,
            content_md="",
            status=DocumentVersionStatus.DRAFT,
            created_by=principal_id,
        )
        document.current_version_id = version.id
        self.documents[document.id] = document
        self.versions[version.id] = version
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
        self._enter("approve_document_version")
        meeting = self.meetings.get(meeting_id)
        version = self.versions.get(version_id)
        if (
            meeting is None
            or version is None
            or version.document_id != meeting.board_packet_document_id
        ):
            raise StoreError("Document version not found")
        if version.status != DocumentVersionStatus.DRAFT:
            raise StoreError("Document version already approved")

        document = self.documents[version.document_id]
        approval_id = self._record_approval(
            ApprovalSubject.DOCUMENT_VERSION,
            version.id,
            document.entity_id,
            principal_id,
            approval_method,
            signature_hash,
            ip,
            "Document version already approved",
        )
        version.status = DocumentVersionStatus.APPROVED
        version.approved_at = self._now()
        version.approved_by = principal_id
        document.status = DocumentVersionStatus.APPROVED.value
        document.current_version_id = version.id
        return approval_id

    async def set_board_packet_version(self, meeting_id: UUID, version_id: UUID) -> None:
        self._enter("set_board_packet_version")
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            raise StoreError("Meeting not found")
        version = self.versions.get(version_id)
        if version is None or version.document_id != meeting.board_packet_document_id:
            raise StoreError("Document version not found")
        if version.status != DocumentVersionStatus.APPROVED:
            raise StoreError("Document version is not approved")
        meeting.board_packet_version_id = version.id


# =============================================================================
# Seed data
# =============================================================================


@dataclass
class World:
    """Ids of the seeded tenants, boards, meetings and principals."""

    entity_a: UUID
    entity_b: UUID
    board_a: UUID
    board_b: UUID
    meeting_a: UUID
    meeting_a_without_minutes: UUID
    meeting_b: UUID
    chair: UUID
    member: UUID
    member_seat: UUID
    entity_admin: UUID
    platform_admin: UUID
    other_chair: UUID
    former_chair: UUID
    outsider: UUID


def seed(store: FakeGovernanceStore) -> World:
    ids = {name: uuid.uuid4() for name in World.__dataclass_fields__}
    world = World(**ids)

    store.entities[world.entity_a] = Entity(
        id=world.entity_a, entity_type="district", slug="lincoln-district", name="Lincoln"
    )
    store.entities[world.entity_b] = Entity(
        id=world.entity_b, entity_type="nonprofit", slug="riverside-trust", name="Riverside"
    )
    store.boards[world.board_a] = Board(
        id=world.board_a, entity_id=world.entity_a, name="Board of Education"
    )
    store.boards[world.board_b] = Board(
        id=world.board_b, entity_id=world.entity_b, name="Board of Trustees"
    )

    seats = [
        (uuid.uuid4(), world.board_a, world.chair, BoardRole.CHAIR, True),
        (world.member_seat, world.board_a, world.member, BoardRole.MEMBER, True),
        (uuid.uuid4(), world.board_a, world.former_chair, BoardRole.CHAIR, False),
        (uuid.uuid4(), world.board_b, world.other_chair, BoardRole.CHAIR, True),
    ]
    for seat_id, board_id, user_id, role, is_active in seats:
        store.members[seat_id] = BoardMember(
            id=seat_id,
            board_id=board_id,
            user_id=user_id,
            full_name=f"Member {seat_id.hex[:6]}",
            role=role,
            is_active=is_active,
        )

    store.entity_admins.add((world.entity_a, world.entity_admin))
    store.global_admins.add(world.platform_admin)

    for meeting_id, board_id in (
        (world.meeting_a, world.board_a),
        (world.meeting_a_without_minutes, world.board_a),
        (world.meeting_b, world.board_b),
    ):
        store.meetings[meeting_id] = BoardMeeting(
            id=meeting_id,
            board_id=board_id,
            title="Regular Meeting",
            status=MeetingStatus.SCHEDULED,
            board_packet_document_id=None,
            board_packet_version_id=None,
        )

    for meeting_id in (world.meeting_a, world.meeting_b):
        store.minutes[meeting_id] = MeetingMinutes(
            id=uuid.uuid4(),
            meeting_id=meeting_id,
            content_md="Called to order at 7pm.",
            status=MinutesStatus.DRAFT,
        )

    return world


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> FakeGovernanceStore:
    """Empty in-memory store; `world` seeds it."""
    return FakeGovernanceStore()


@pytest.fixture
def world(store: FakeGovernanceStore) -> World:
    """Seeded tenants, boards, meetings and principals."""
    return seed(store)


@pytest.fixture
def auth_headers() -> Callable[[UUID], dict[str, str]]:
    """Build bearer headers for a principal; the token is the user id."""

    def build(principal_id: UUID) -> dict[str, str]:
        return {"Authorization": f"Bearer {principal_id}"}

    return build


async def _no_db() -> AsyncGenerator[None, None]:
    yield None


@pytest.fixture
def client(store: FakeGovernanceStore, world: World) -> Iterator[TestClient]:
    """TestClient wired to the in-memory store and token-as-user-id auth."""
    known_users = set(vars(world).values())

    async def principal_from_token(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> UUID:
        try:
            principal_id = UUID(credentials.credentials) if credentials else None
        except ValueError:
            principal_id = None
        if principal_id is None or principal_id not in known_users:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return principal_id

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_db] = _no_db
    app.dependency_overrides[get_current_principal] = principal_from_token
    yield TestClient(app)
    app.dependency_overrides.clear()
