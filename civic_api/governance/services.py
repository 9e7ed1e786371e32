"""
Governance Services

Business logic for the approval workflow. Every operation follows the same
order: local validation, tenant boundary, authorization, local state checks,
then the persistence call(s).
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar
from uuid import UUID

from civic_api.core.config import settings
from civic_api.governance.authorization import can_approve
from civic_api.governance.errors import GovernanceError, Outcome, StoreError
from civic_api.governance.models import (
    BoardMeeting,
    DocumentVersionStatus,
    MeetingMinutes,
    MeetingStatus,
    MinutesStatus,
    Motion,
    Vote,
    VoteValue,
)
from civic_api.governance.store import BoardPacketSnapshot, GovernanceStore
from civic_api.governance.tenancy import require_meeting_in_entity

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def classified(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Translate persistence failures into classified GovernanceErrors."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except StoreError as exc:
            error = GovernanceError.from_reason(exc.message)
            logger.warning(
                f"{func.__name__} failed ({error.outcome.value}): {exc.message}"
            )
            raise error from exc

    return wrapper


def parse_version_id(value: UUID | str | None) -> UUID | None:
    """Parse a documentVersionId from a request; blank is None."""
    if isinstance(value, UUID):
        return value
    value = (value or "").strip()
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise GovernanceError("Invalid documentVersionId", Outcome.INVALID) from None


class GovernanceService:
    """Shared checks for services acting on behalf of one principal."""

    def __init__(self, store: GovernanceStore, principal_id: UUID):
        self.store = store
        self.principal_id = principal_id

    async def require_meeting(self, entity_id: UUID, meeting_id: UUID) -> None:
        await require_meeting_in_entity(self.store, meeting_id, entity_id)

    async def require_motion(self, entity_id: UUID, motion_id: UUID) -> UUID:
        """Check a motion's meeting belongs to the entity; return the meeting id."""
        meeting_id = await self.store.get_motion_meeting_id(motion_id)
        if meeting_id is None:
            raise GovernanceError("Motion not found", Outcome.NOT_FOUND)
        await self.require_meeting(entity_id, meeting_id)
        return meeting_id

    async def require_approver(self, entity_id: UUID) -> None:
        if not await can_approve(self.store, self.principal_id, entity_id):
            raise GovernanceError("Not authorized", Outcome.UNAUTHORIZED)

    async def require_board_member(self, meeting_id: UUID) -> None:
        if not await self.store.is_board_member(meeting_id, self.principal_id):
            raise GovernanceError("Caller must be an active board member", Outcome.UNAUTHORIZED)


class MotionService(GovernanceService):
    """Create, list, vote on and finalize motions."""

    @classified
    async def create_motion(
        self,
        entity_id: UUID,
        meeting_id: UUID,
        title: str | None,
        description: str | None = None,
        moved_by: UUID | None = None,
        seconded_by: UUID | None = None,
    ) -> Motion:
        title = (title or "").strip()
        if not title:
            raise GovernanceError("title is required", Outcome.INVALID)

        await self.require_meeting(entity_id, meeting_id)
        return await self.store.insert_motion(
            meeting_id=meeting_id,
            title=title,
            description=description,
            moved_by=moved_by,
            seconded_by=seconded_by,
        )

    @classified
    async def list_motions(self, entity_id: UUID, meeting_id: UUID) -> list[Motion]:
        await self.require_meeting(entity_id, meeting_id)
        return await self.store.list_motions(meeting_id)

    @classified
    async def list_votes(self, entity_id: UUID, motion_id: UUID) -> list[Vote]:
        await self.require_motion(entity_id, motion_id)
        return await self.store.list_votes(motion_id)

    @classified
    async def cast_vote(self, entity_id: UUID, motion_id: UUID, value: str | None) -> Vote:
        """
        Record the caller's ballot, replacing any earlier one.

        Votes on finalized motions are not rejected here.
        """
        try:
            ballot = VoteValue((value or "").strip().lower())
        except ValueError:
            raise GovernanceError(
                "vote must be one of: yes, no, abstain", Outcome.INVALID
            ) from None

        await self.require_motion(entity_id, motion_id)
        return await self.store.upsert_vote(motion_id, self.principal_id, ballot)

    @classified
    async def finalize_motion(
        self,
        entity_id: UUID,
        motion_id: UUID,
        signature_hash: str | None,
        approval_method: str | None = None,
        ip: str | None = None,
    ) -> UUID:
        signature_hash = (signature_hash or "").strip()
        if not signature_hash:
            raise GovernanceError("signatureHash is required", Outcome.INVALID)

        await self.require_motion(entity_id, motion_id)
        await self.require_approver(entity_id)

        approval_id = await self.store.finalize_motion(
            motion_id=motion_id,
            principal_id=self.principal_id,
            signature_hash=signature_hash,
            approval_method=approval_method or settings.motion_approval_method,
            ip=ip,
        )
        logger.info(f"Motion {motion_id} finalized (approval {approval_id})")
        return approval_id


class MinutesService(GovernanceService):
    """Draft, lock and approve meeting minutes."""

    @staticmethod
    def _is_editable(minutes: MeetingMinutes) -> bool:
        return minutes.status == MinutesStatus.DRAFT and minutes.locked_at is None

    async def _require_minutes(self, meeting_id: UUID) -> MeetingMinutes:
        minutes = await self.store.get_meeting_minutes(meeting_id)
        if minutes is None:
            raise GovernanceError("No minutes found for meeting", Outcome.NOT_FOUND)
        return minutes

    @classified
    async def get_minutes(self, entity_id: UUID, meeting_id: UUID) -> MeetingMinutes:
        await self.require_meeting(entity_id, meeting_id)
        return await self._require_minutes(meeting_id)

    @classified
    async def create_minutes(
        self, entity_id: UUID, meeting_id: UUID, content_md: str | None = None
    ) -> MeetingMinutes:
        """Start the meeting's draft minutes. A meeting has one minutes record."""
        await self.require_meeting(entity_id, meeting_id)
        await self.require_board_member(meeting_id)

        if await self.store.get_meeting_minutes(meeting_id) is not None:
            raise GovernanceError("Minutes record already exists for meeting", Outcome.CONFLICT)

        minutes = await self.store.insert_meeting_minutes(meeting_id, content_md or "")
        logger.info(f"Minutes {minutes.id} drafted for meeting {meeting_id}")
        return minutes

    @classified
    async def update_minutes(
        self, entity_id: UUID, meeting_id: UUID, content_md: str | None
    ) -> MeetingMinutes:
        if content_md is None:
            raise GovernanceError("contentMd is required", Outcome.INVALID)

        await self.require_meeting(entity_id, meeting_id)
        await self.require_board_member(meeting_id)

        minutes = await self._require_minutes(meeting_id)
        if not self._is_editable(minutes):
            raise GovernanceError("Minutes are not editable", Outcome.CONFLICT)

        updated = await self.store.update_draft_minutes(minutes.id, content_md)
        if updated is None:
            raise GovernanceError("Minutes are not editable", Outcome.CONFLICT)
        return updated

    @classified
    async def lock_minutes(self, entity_id: UUID, meeting_id: UUID) -> MeetingMinutes:
        """Freeze draft minutes ahead of approval."""
        await self.require_meeting(entity_id, meeting_id)
        await self.require_approver(entity_id)

        minutes = await self._require_minutes(meeting_id)
        if minutes.status == MinutesStatus.APPROVED:
            raise GovernanceError("Minutes already approved", Outcome.CONFLICT)
        if minutes.locked_at is not None:
            raise GovernanceError("Minutes are already locked", Outcome.CONFLICT)

        locked = await self.store.lock_meeting_minutes(minutes.id)
        if locked is None:
            raise GovernanceError("Minutes are already locked", Outcome.CONFLICT)
        logger.info(f"Minutes {minutes.id} locked for meeting {meeting_id}")
        return locked

    @classified
    async def approve_minutes(
        self,
        entity_id: UUID,
        meeting_id: UUID,
        signature_hash: str | None = None,
        approval_method: str | None = None,
        ip: str | None = None,
    ) -> UUID:
        """
        Approve a meeting's minutes exactly once.

        Board membership is enforced by the store. A repeat call fails with
        CONFLICT even though the minutes are already in the desired state.
        """
        await self.require_meeting(entity_id, meeting_id)

        approval_id = await self.store.approve_meeting_minutes(
            meeting_id=meeting_id,
            principal_id=self.principal_id,
            signature_hash=signature_hash,
            approval_method=approval_method or settings.minutes_approval_method,
            ip=ip,
        )
        logger.info(f"Minutes for meeting {meeting_id} approved (approval {approval_id})")
        return approval_id


class BoardPacketService(GovernanceService):
    """
    Board packet lifecycle: create, edit while draft, approve.

    A packet version moves draft -> approved and never back.
    """

    @classified
    async def get_packet(self, entity_id: UUID, meeting_id: UUID) -> BoardPacketSnapshot:
        await self.require_meeting(entity_id, meeting_id)
        snapshot = await self.store.get_board_packet(meeting_id)
        return snapshot or BoardPacketSnapshot()

    @classified
    async def create_packet(
        self, entity_id: UUID, meeting_id: UUID, title: str | None = None
    ) -> tuple[UUID, UUID]:
        await self.require_meeting(entity_id, meeting_id)

        title = (title or "").strip() or settings.board_packet_default_title
        document_id, version_id = await self.store.create_board_packet_for_meeting(
            meeting_id=meeting_id,
            principal_id=self.principal_id,
            title=title,
        )
        logger.info(
            f"Board packet {document_id} created for meeting {meeting_id} (version {version_id})"
        )
        return document_id, version_id

    @classified
    async def update_content(
        self,
        entity_id: UUID,
        meeting_id: UUID,
        document_version_id: UUID | str | None,
        content_md: str | None,
    ) -> None:
        version_id = parse_version_id(document_version_id)
        if version_id is None or content_md is None:
            raise GovernanceError(
                "documentVersionId and contentMd are required", Outcome.INVALID
            )

        await self.require_meeting(entity_id, meeting_id)
        await self.require_approver(entity_id)

        version = await self.store.get_meeting_packet_version(version_id, entity_id, meeting_id)
        if version is None:
            raise GovernanceError("Document version not found", Outcome.NOT_FOUND)
        if version.status != DocumentVersionStatus.DRAFT:
            raise GovernanceError("Document version is not editable", Outcome.CONFLICT)

        # The write re-asserts draft status; an approval that landed since the
        # read leaves zero rows updated.
        if not await self.store.update_draft_content(version_id, content_md):
            raise GovernanceError("Document version is not editable", Outcome.CONFLICT)

    @classified
    async def approve_packet(
        self,
        entity_id: UUID,
        meeting_id: UUID,
        document_version_id: UUID | str | None,
        approval_method: str | None = None,
        signature_hash: str | None = None,
        ip: str | None = None,
    ) -> UUID:
        """
        Approve a packet version and bind it to the meeting.

        Only a version of this meeting's own packet document qualifies. Runs
        as two store calls. If binding fails after approval succeeded, the
        version stays approved but unbound; the failure is logged with the
        ids needed to re-bind.
        """
        version_id = parse_version_id(document_version_id)
        if version_id is None:
            raise GovernanceError("documentVersionId is required", Outcome.INVALID)

        await self.require_meeting(entity_id, meeting_id)
        await self.require_approver(entity_id)

        version = await self.store.get_meeting_packet_version(version_id, entity_id, meeting_id)
        if version is None:
            raise GovernanceError("Document version not found", Outcome.NOT_FOUND)
        if version.status != DocumentVersionStatus.DRAFT:
            raise GovernanceError("Document version is not draft", Outcome.CONFLICT)

        approval_id = await self.store.approve_document_version(
            meeting_id=meeting_id,
            version_id=version_id,
            principal_id=self.principal_id,
            approval_method=approval_method or settings.packet_approval_method,
            signature_hash=signature_hash,
            ip=ip,
        )

        try:
            await self.store.set_board_packet_version(meeting_id, version_id)
        except StoreError as exc:
            logger.error(
                f"Board packet version {version_id} approved (approval {approval_id}) "
                f"but not bound to meeting {meeting_id}: {exc.message}"
            )
            raise

        logger.info(
            f"Board packet version {version_id} approved for meeting {meeting_id} "
            f"(approval {approval_id})"
        )
        return approval_id


class MeetingService(GovernanceService):
    """Meeting lifecycle: scheduled -> in session -> adjourned."""

    async def _transition(
        self,
        entity_id: UUID,
        meeting_id: UUID,
        expected: MeetingStatus,
        target: MeetingStatus,
        refusal: str,
    ) -> BoardMeeting:
        await self.require_meeting(entity_id, meeting_id)
        await self.require_approver(entity_id)

        meeting = await self.store.transition_meeting(meeting_id, expected, target)
        if meeting is None:
            raise GovernanceError(refusal, Outcome.CONFLICT)
        logger.info(f"Meeting {meeting_id} is now {target.value}")
        return meeting

    @classified
    async def start_meeting(self, entity_id: UUID, meeting_id: UUID) -> BoardMeeting:
        return await self._transition(
            entity_id,
            meeting_id,
            MeetingStatus.SCHEDULED,
            MeetingStatus.IN_SESSION,
            "Meeting is not scheduled",
        )

    @classified
    async def adjourn_meeting(self, entity_id: UUID, meeting_id: UUID) -> BoardMeeting:
        return await self._transition(
            entity_id,
            meeting_id,
            MeetingStatus.IN_SESSION,
            MeetingStatus.ADJOURNED,
            "Meeting is not in session",
        )
