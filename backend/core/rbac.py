"""Role-Based Access Control (RBAC) enforcement.

Provides dependency-injection helpers for FastAPI routes to enforce role
and plan checks at the endpoint level.

Usage:
    @router.post("/workflows", dependencies=[Depends(require_role("admin", "pm"))])
    async def create_workflow(...): ...

    @router.delete("/workflows/{id}", dependencies=[Depends(require_admin())])
    async def delete_workflow(...): ...
"""

import logging

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_active_user, get_db
from core.constants import UserRole
from core.exceptions import ForbiddenError, NotFoundError
from core.security import TokenPayload

logger = logging.getLogger(__name__)


def require_role(*roles: str):
    """FastAPI dependency that enforces one of the given roles.

    The role comes from the verified token's ``role`` claim.
    Raises ForbiddenError (403) otherwise.
    """
    allowed = {UserRole(r).value for r in roles}

    async def _check(current_user: TokenPayload = Depends(get_current_active_user)):
        if current_user.role not in allowed:
            logger.warning(
                "RBAC denied: user=%s role=%s required=%s",
                current_user.email,
                current_user.role,
                sorted(allowed),
            )
            raise ForbiddenError(f"Requires role: {', '.join(sorted(allowed))}")
        return current_user

    return _check


def require_admin():
    """Shortcut: require the admin role."""
    return require_role(UserRole.ADMIN.value)


def require_workflow_manager():
    """Shortcut: admins and project managers may edit workflows."""
    return require_role(UserRole.ADMIN.value, UserRole.PM.value)


async def require_workflow_feature(
    current_user: TokenPayload = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> TokenPayload:
    """Reject organizations whose plan does not include workflow automation."""
    from db.models.organization import Organization

    result = await db.execute(
        select(Organization).where(
            Organization.id == current_user.org_id,
            Organization.is_deleted == False,
        )
    )
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFoundError("Organization not found")

    if not org.workflows_enabled:
        logger.info(
            "Workflow feature denied for org=%s plan=%s active=%s",
            org.id, org.subscription_plan, org.is_active,
        )
        raise ForbiddenError("Workflow automation is not available on your plan")
    return current_user
