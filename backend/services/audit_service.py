"""Audit trail for workflow management operations.

Audit rows are written in their own session: a failed audit write is
logged and never rolls back or fails the operation being audited.
"""

import logging
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from core.constants import AuditAction
from db.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Best-effort audit log writer."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def record(
        self,
        organization_id: str,
        user_id: Optional[str],
        resource_type: str,
        resource_id: str,
        action: AuditAction,
        new_values: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Write one audit row; returns False (after logging) when it could not be stored."""
        entry = AuditLog(
            id=str(uuid4()),
            organization_id=organization_id,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=AuditAction(action).value,
            new_values=new_values,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(entry)
        except SQLAlchemyError as e:
            logger.warning(
                "Audit log write failed: %s %s/%s: %s",
                action, resource_type, resource_id, e,
            )
            return False
        return True
