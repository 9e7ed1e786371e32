"""
Governance module - approval workflow for board meetings.

Meetings, motions and votes, minutes and board packets, scoped to a tenant
entity.
"""

from civic_api.governance.errors import (
    AuthorizationCheckError,
    GovernanceError,
    Outcome,
    StoreError,
    classify,
)
from civic_api.governance.models import (
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
    EntityRole,
    MeetingMinutes,
    MeetingStatus,
    MinutesStatus,
    Motion,
    MotionStatus,
    User,
    UserSession,
    Vote,
    VoteValue,
)
from civic_api.governance.services import (
    BoardPacketService,
    MeetingService,
    MinutesService,
    MotionService,
)

__all__ = [
    # Errors
    "AuthorizationCheckError",
    "GovernanceError",
    "Outcome",
    "StoreError",
    "classify",
    # Enums
    "ApprovalSubject",
    "BoardRole",
    "DocumentVersionStatus",
    "EntityRole",
    "MeetingStatus",
    "MinutesStatus",
    "MotionStatus",
    "VoteValue",
    # Models
    "Approval",
    "Board",
    "BoardMeeting",
    "BoardMember",
    "Document",
    "DocumentVersion",
    "Entity",
    "EntityMembership",
    "MeetingMinutes",
    "Motion",
    "User",
    "UserSession",
    "Vote",
    # Services
    "BoardPacketService",
    "MeetingService",
    "MinutesService",
    "MotionService",
]
