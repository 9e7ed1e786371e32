"""
Tenant Boundary Validation

The entity key in a request path is caller-controlled. Before touching a
meeting's motions, minutes or packet we confirm the meeting's board belongs
to the entity the caller named.
"""

from typing import Protocol
from uuid import UUID

from civic_api.governance.errors import GovernanceError, Outcome


class MeetingDirectory(Protocol):
    async def get_meeting_entity_id(self, meeting_id: UUID) -> UUID | None: ...


async def meeting_belongs_to_entity(
    directory: MeetingDirectory, meeting_id: UUID, entity_id: UUID
) -> bool:
    """True iff the meeting exists and its board is owned by entity_id."""
    owner_id = await directory.get_meeting_entity_id(meeting_id)
    return owner_id is not None and owner_id == entity_id


async def require_meeting_in_entity(
    directory: MeetingDirectory, meeting_id: UUID, entity_id: UUID
) -> None:
    """Raise NOT_FOUND unless the meeting belongs to the entity."""
    if not await meeting_belongs_to_entity(directory, meeting_id, entity_id):
        raise GovernanceError("Meeting not found", Outcome.NOT_FOUND)
