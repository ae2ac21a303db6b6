"""FastAPI dependency injection functions."""

import logging
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ForbiddenError, UnauthorizedError
from core.security import TokenPayload, get_current_user
from db import database

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with database.AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise


async def get_current_active_user(
    current_user: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TokenPayload:
    """
    Get the current authenticated user and verify they are active in the DB.

    The user must belong to the organization named in the token.

    Raises:
        UnauthorizedError: If user is not found
        ForbiddenError: If user is deactivated
    """
    from db.models.user import User

    result = await db.execute(
        select(User.is_active).where(
            User.id == current_user.sub,
            User.organization_id == current_user.org_id,
            User.is_deleted == False,
        )
    )
    row = result.first()

    if not row:
        raise UnauthorizedError("User not found")
    if not row[0]:
        raise ForbiddenError("User account is deactivated")
    return current_user


def get_engine(request: Request):
    """The WorkflowEngine built by create_app."""
    return request.app.state.workflow_engine


def get_trigger_manager(request: Request):
    """The TriggerManager built by create_app."""
    return request.app.state.trigger_manager


def get_workflow_store(request: Request):
    """The WorkflowStore shared by the engine and the run-history routes."""
    return request.app.state.workflow_store
