"""
Authorization Resolver

A principal may approve governance actions for an entity when any of three
independent capabilities holds: platform-wide admin, admin of the entity, or
chair of one of the entity's boards.
"""

import asyncio
import logging
from typing import Protocol
from uuid import UUID

from civic_api.governance.errors import AuthorizationCheckError

logger = logging.getLogger(__name__)


class CapabilityChecks(Protocol):
    """The three capability predicates the resolver combines."""

    async def is_global_admin(self, principal_id: UUID) -> bool: ...

    async def is_entity_admin(self, entity_id: UUID, principal_id: UUID) -> bool: ...

    async def is_board_chair(self, entity_id: UUID, principal_id: UUID) -> bool: ...


async def can_approve(checks: CapabilityChecks, principal_id: UUID, entity_id: UUID) -> bool:
    """
    Return True if any capability grants approval rights.

    The checks run concurrently and are all awaited before deciding. If any
    of them raises, the whole resolution fails with AuthorizationCheckError:
    an unanswered check never counts as permission.
    """
    results = await asyncio.gather(
        checks.is_global_admin(principal_id),
        checks.is_entity_admin(entity_id, principal_id),
        checks.is_board_chair(entity_id, principal_id),
        return_exceptions=True,
    )

    for result in results:
        if isinstance(result, BaseException):
            logger.error(
                f"Authorization check failed for principal {principal_id} "
                f"on entity {entity_id}: {result}"
            )
            raise AuthorizationCheckError("Authorization check failed") from result

    return any(bool(result) for result in results)
