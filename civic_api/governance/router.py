"""
Governance API Router

Entity-scoped endpoints for meetings, motions, votes, minutes and board
packets. Every route is addressed by an entity key (id or slug) that is
resolved to a canonical id before anything else happens; request bodies
are read only after that.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ValidationError

from civic_api.auth.dependencies import get_current_principal
from civic_api.core.config import settings
from civic_api.core.database import async_session_maker
from civic_api.governance.errors import (
    GovernanceError,
    Outcome,
    StoreError,
    describe_validation_errors,
)
from civic_api.governance.schemas import (
    ApproveBoardPacketRequest,
    ApproveBoardPacketResponse,
    ApproveMinutesRequest,
    ApproveMinutesResponse,
    BoardPacketSnapshotResponse,
    CreateBoardPacketRequest,
    CreateBoardPacketResponse,
    ErrorResponse,
    FinalizeMotionRequest,
    FinalizeMotionResponse,
    MeetingResponse,
    MinutesContentRequest,
    MinutesResponse,
    MotionCreate,
    MotionResponse,
    UpdateBoardPacketContentRequest,
    UpdateBoardPacketContentResponse,
    VoteCreate,
    VoteResponse,
)
from civic_api.governance.services import (
    BoardPacketService,
    MeetingService,
    MinutesService,
    MotionService,
)
from civic_api.governance.store import GovernanceStore, SqlGovernanceStore

router = APIRouter(
    prefix="/entities/{entity_key}/governance",
    tags=["governance"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)

_store = SqlGovernanceStore(async_session_maker)

M = TypeVar("M", bound=BaseModel)


# =============================================================================
# Dependencies
# =============================================================================


def get_store() -> GovernanceStore:
    """Persistence layer used by the governance services."""
    return _store


async def get_entity_id(
    entity_key: str,
    principal_id: UUID = Depends(get_current_principal),
    store: GovernanceStore = Depends(get_store),
) -> UUID:
    """Resolve the entity key from the path. Runs after authentication."""
    try:
        entity_id = await store.resolve_entity(entity_key)
    except StoreError as exc:
        raise GovernanceError.from_reason(exc.message) from exc
    if entity_id is None:
        raise GovernanceError(f"Entity not found for id {entity_key}", Outcome.NOT_FOUND)
    return entity_id


def json_body(model: type[M]) -> Callable[..., Awaitable[M]]:
    """
    Dependency reading the request body as `model`.

    The body is parsed only once the caller is authenticated and the entity
    resolved. An empty body is an empty object.
    """

    async def parse(request: Request, entity_id: UUID = Depends(get_entity_id)) -> M:
        raw = await request.body()
        if not raw.strip():
            return model()
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            raise GovernanceError(
                describe_validation_errors(exc.errors()), Outcome.INVALID
            ) from exc

    return parse


def get_meeting_service(
    store: GovernanceStore = Depends(get_store),
    principal_id: UUID = Depends(get_current_principal),
) -> MeetingService:
    return MeetingService(store, principal_id)


def get_motion_service(
    store: GovernanceStore = Depends(get_store),
    principal_id: UUID = Depends(get_current_principal),
) -> MotionService:
    return MotionService(store, principal_id)


def get_minutes_service(
    store: GovernanceStore = Depends(get_store),
    principal_id: UUID = Depends(get_current_principal),
) -> MinutesService:
    return MinutesService(store, principal_id)


def get_packet_service(
    store: GovernanceStore = Depends(get_store),
    principal_id: UUID = Depends(get_current_principal),
) -> BoardPacketService:
    return BoardPacketService(store, principal_id)


def get_request_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, else X-Real-IP, else the peer address."""
    if settings.trust_proxy_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip
    return request.client.host if request.client else None


# =============================================================================
# Meetings
# =============================================================================


@router.post("/meetings/{meeting_id}/start", response_model=MeetingResponse)
async def start_meeting(
    meeting_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    """Open a scheduled meeting."""
    return await service.start_meeting(entity_id, meeting_id)


@router.post("/meetings/{meeting_id}/adjourn", response_model=MeetingResponse)
async def adjourn_meeting(
    meeting_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: MeetingService = Depends(get_meeting_service),
) -> MeetingResponse:
    """Close a meeting that is in session."""
    return await service.adjourn_meeting(entity_id, meeting_id)


# =============================================================================
# Motions
# =============================================================================


@router.get("/meetings/{meeting_id}/motions", response_model=list[MotionResponse])
async def list_motions(
    meeting_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: MotionService = Depends(get_motion_service),
) -> list[MotionResponse]:
    """List motions of a meeting, oldest first."""
    return await service.list_motions(entity_id, meeting_id)


@router.post(
    "/meetings/{meeting_id}/motions",
    response_model=MotionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_motion(
    meeting_id: UUID,
    data: MotionCreate = Depends(json_body(MotionCreate)),
    entity_id: UUID = Depends(get_entity_id),
    service: MotionService = Depends(get_motion_service),
) -> MotionResponse:
    """Create a pending motion."""
    return await service.create_motion(
        entity_id,
        meeting_id,
        title=data.title,
        description=data.description,
        moved_by=data.moved_by,
        seconded_by=data.seconded_by,
    )


@router.get("/motions/{motion_id}/votes", response_model=list[VoteResponse])
async def list_votes(
    motion_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: MotionService = Depends(get_motion_service),
) -> list[VoteResponse]:
    """List ballots cast on a motion."""
    return await service.list_votes(entity_id, motion_id)


@router.post(
    "/motions/{motion_id}/votes",
    response_model=VoteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def cast_vote(
    motion_id: UUID,
    data: VoteCreate = Depends(json_body(VoteCreate)),
    entity_id: UUID = Depends(get_entity_id),
    service: MotionService = Depends(get_motion_service),
) -> VoteResponse:
    """Cast or replace the caller's vote."""
    return await service.cast_vote(entity_id, motion_id, data.vote)


@router.post("/motions/{motion_id}/finalize", response_model=FinalizeMotionResponse)
async def finalize_motion(
    motion_id: UUID,
    request: Request,
    data: FinalizeMotionRequest = Depends(json_body(FinalizeMotionRequest)),
    entity_id: UUID = Depends(get_entity_id),
    service: MotionService = Depends(get_motion_service),
) -> FinalizeMotionResponse:
    """Finalize a motion with the caller's signature."""
    approval_id = await service.finalize_motion(
        entity_id,
        motion_id,
        signature_hash=data.signature_hash,
        approval_method=data.approval_method,
        ip=get_request_ip(request),
    )
    return FinalizeMotionResponse(
        entity_id=entity_id, motion_id=motion_id, approval_id=approval_id
    )


# =============================================================================
# Minutes
# =============================================================================


@router.get("/meetings/{meeting_id}/minutes", response_model=MinutesResponse)
async def get_minutes(
    meeting_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: MinutesService = Depends(get_minutes_service),
) -> MinutesResponse:
    """The meeting's minutes."""
    return await service.get_minutes(entity_id, meeting_id)


@router.post(
    "/meetings/{meeting_id}/minutes",
    response_model=MinutesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_minutes(
    meeting_id: UUID,
    data: MinutesContentRequest = Depends(json_body(MinutesContentRequest)),
    entity_id: UUID = Depends(get_entity_id),
    service: MinutesService = Depends(get_minutes_service),
) -> MinutesResponse:
    """Start draft minutes for the meeting."""
    return await service.create_minutes(entity_id, meeting_id, data.content_md)


@router.post("/meetings/{meeting_id}/minutes/update-content", response_model=MinutesResponse)
async def update_minutes_content(
    meeting_id: UUID,
    data: MinutesContentRequest = Depends(json_body(MinutesContentRequest)),
    entity_id: UUID = Depends(get_entity_id),
    service: MinutesService = Depends(get_minutes_service),
) -> MinutesResponse:
    """Replace the content of unlocked draft minutes."""
    return await service.update_minutes(entity_id, meeting_id, data.content_md)


@router.post("/meetings/{meeting_id}/minutes/lock", response_model=MinutesResponse)
async def lock_minutes(
    meeting_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: MinutesService = Depends(get_minutes_service),
) -> MinutesResponse:
    """Freeze draft minutes ahead of approval."""
    return await service.lock_minutes(entity_id, meeting_id)


@router.post("/meetings/{meeting_id}/minutes/approve", response_model=ApproveMinutesResponse)
async def approve_minutes(
    meeting_id: UUID,
    request: Request,
    data: ApproveMinutesRequest = Depends(json_body(ApproveMinutesRequest)),
    entity_id: UUID = Depends(get_entity_id),
    service: MinutesService = Depends(get_minutes_service),
) -> ApproveMinutesResponse:
    """Approve the meeting's minutes."""
    approval_id = await service.approve_minutes(
        entity_id,
        meeting_id,
        signature_hash=data.signature_hash,
        approval_method=data.approval_method,
        ip=get_request_ip(request),
    )
    return ApproveMinutesResponse(
        entity_id=entity_id, meeting_id=meeting_id, approval_id=approval_id
    )


# =============================================================================
# Board Packet
# =============================================================================


@router.get("/meetings/{meeting_id}/board-packet", response_model=BoardPacketSnapshotResponse)
async def get_board_packet(
    meeting_id: UUID,
    entity_id: UUID = Depends(get_entity_id),
    service: BoardPacketService = Depends(get_packet_service),
) -> BoardPacketSnapshotResponse:
    """Current board packet of the meeting."""
    snapshot = await service.get_packet(entity_id, meeting_id)
    return BoardPacketSnapshotResponse.model_validate(snapshot)


@router.post(
    "/meetings/{meeting_id}/board-packet/create", response_model=CreateBoardPacketResponse
)
async def create_board_packet(
    meeting_id: UUID,
    data: CreateBoardPacketRequest = Depends(json_body(CreateBoardPacketRequest)),
    entity_id: UUID = Depends(get_entity_id),
    service: BoardPacketService = Depends(get_packet_service),
) -> CreateBoardPacketResponse:
    """Create the meeting's packet document with a first draft version."""
    document_id, version_id = await service.create_packet(entity_id, meeting_id, data.title)
    return CreateBoardPacketResponse(document_id=document_id, version_id=version_id)


@router.post(
    "/meetings/{meeting_id}/board-packet/update-content",
    response_model=UpdateBoardPacketContentResponse,
)
async def update_board_packet_content(
    meeting_id: UUID,
    data: UpdateBoardPacketContentRequest = Depends(
        json_body(UpdateBoardPacketContentRequest)
    ),
    entity_id: UUID = Depends(get_entity_id),
    service: BoardPacketService = Depends(get_packet_service),
) -> UpdateBoardPacketContentResponse:
    """Replace the markdown content of a draft packet version."""
    await service.update_content(
        entity_id,
        meeting_id,
        document_version_id=data.document_version_id,
        content_md=data.content_md,
    )
    return UpdateBoardPacketContentResponse()


@router.post(
    "/meetings/{meeting_id}/board-packet/approve", response_model=ApproveBoardPacketResponse
)
async def approve_board_packet(
    meeting_id: UUID,
    request: Request,
    data: ApproveBoardPacketRequest = Depends(json_body(ApproveBoardPacketRequest)),
    entity_id: UUID = Depends(get_entity_id),
    service: BoardPacketService = Depends(get_packet_service),
) -> ApproveBoardPacketResponse:
    """Approve a draft packet version and make it the meeting's packet."""
    approval_id = await service.approve_packet(
        entity_id,
        meeting_id,
        document_version_id=data.document_version_id,
        approval_method=data.approval_method,
        signature_hash=data.signature_hash,
        ip=get_request_ip(request),
    )
    return ApproveBoardPacketResponse(approval_id=approval_id)
