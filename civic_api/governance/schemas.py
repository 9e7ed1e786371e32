"""
Governance Pydantic Schemas

API request/response schemas for the governance approval workflow.
Approval requests and responses use camelCase keys; row-shaped
responses (meetings, motions, votes, minutes) keep the column names.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from civic_api.governance.models import (
    DocumentVersionStatus,
    MeetingStatus,
    MinutesStatus,
    MotionStatus,
    VoteValue,
)


class CamelModel(BaseModel):
    """Base for camelCase request/response bodies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Meeting Schemas
# =============================================================================


class MeetingResponse(BaseModel):
    """Schema for meeting response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    board_id: UUID
    title: str | None = None
    status: MeetingStatus
    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    adjourned_at: datetime | None = None


# =============================================================================
# Motion Schemas
# =============================================================================


class MotionCreate(BaseModel):
    """Schema for creating a motion."""

    title: str | None = None
    description: str | None = None
    moved_by: UUID | None = None
    seconded_by: UUID | None = None


class MotionResponse(BaseModel):
    """Schema for motion response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    meeting_id: UUID
    title: str
    description: str | None = None
    moved_by: UUID | None = None
    seconded_by: UUID | None = None
    status: MotionStatus
    created_at: datetime | None = None
    finalized_at: datetime | None = None


class VoteCreate(BaseModel):
    """Schema for casting a vote. The value is validated by the service."""

    vote: str | None = None


class VoteResponse(BaseModel):
    """Schema for vote response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    motion_id: UUID
    board_member_id: UUID
    vote: VoteValue
    signed_at: datetime | None = None


class FinalizeMotionRequest(CamelModel):
    signature_hash: str | None = None
    approval_method: str | None = None


class FinalizeMotionResponse(CamelModel):
    entity_id: UUID
    motion_id: UUID
    approval_id: UUID


# =============================================================================
# Minutes Schemas
# =============================================================================


class MinutesContentRequest(CamelModel):
    """Body for drafting or editing minutes."""

    content_md: str | None = None


class MinutesResponse(BaseModel):
    """Schema for minutes response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    meeting_id: UUID
    content_md: str | None = None
    status: MinutesStatus
    locked_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ApproveMinutesRequest(CamelModel):
    signature_hash: str | None = None
    approval_method: str | None = None


class ApproveMinutesResponse(CamelModel):
    entity_id: UUID
    meeting_id: UUID
    approval_id: UUID


# =============================================================================
# Board Packet Schemas
# =============================================================================


class CreateBoardPacketRequest(CamelModel):
    title: str | None = None


class CreateBoardPacketResponse(CamelModel):
    document_id: UUID
    version_id: UUID


class UpdateBoardPacketContentRequest(CamelModel):
    document_version_id: str | None = None
    content_md: str | None = None


class UpdateBoardPacketContentResponse(BaseModel):
    ok: bool = True


class ApproveBoardPacketRequest(CamelModel):
    document_version_id: str | None = None
    approval_method: str | None = None
    signature_hash: str | None = None


class ApproveBoardPacketResponse(CamelModel):
    approval_id: UUID


class BoardPacketSnapshotResponse(CamelModel):
    """Current packet for a meeting; all fields null when none exists."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    document_id: UUID | None = None
    version_id: UUID | None = None
    status: DocumentVersionStatus | None = None
    content_md: str | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    approval_id: UUID | None = None


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str
