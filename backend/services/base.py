"""Base CRUD service with soft-delete aware, organization-scoped queries.

Service classes and mutation steps go through this so every read and
write carries the tenant's organization_id.
"""

from typing import Any, Generic, Iterable, List, Optional, Sequence, Type, TypeVar
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError
from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic CRUD service for any organization-owned SQLAlchemy model.

    Usage:
        tasks = BaseService(Task, session)
        task = await tasks.get_owned(task_id, org_id, "task")
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id_and_org(
        self,
        id: str,
        organization_id: str,
        include_deleted: bool = False,
    ) -> Optional[ModelType]:
        """Get a single record scoped to an organization."""
        query = select(self.model).where(
            self.model.id == id,
            self.model.organization_id == organization_id,
        )
        if not include_deleted:
            query = query.where(self.model.is_deleted == False)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_owned(self, id: str, organization_id: str, label: str = "") -> ModelType:
        """Like get_by_id_and_org, but a miss raises NotFoundError.

        Records of other tenants are reported exactly like absent ones.
        """
        instance = await self.get_by_id_and_org(str(id), organization_id)
        if instance is None:
            raise NotFoundError(f"{label or self.model.__name__} {id} not found")
        return instance

    async def list_owned(self, ids: Iterable[str], organization_id: str) -> Sequence[ModelType]:
        """Fetch the records among ``ids`` that belong to the organization."""
        id_list = [str(i) for i in ids]
        if not id_list:
            return []
        result = await self.db.execute(
            select(self.model).where(
                self.model.id.in_(id_list),
                self.model.organization_id == organization_id,
                self.model.is_deleted == False,
            )
        )
        return result.scalars().all()

    async def list(
        self,
        organization_id: str,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        order_desc: bool = True,
        filters: Optional[dict[str, Any]] = None,
    ) -> tuple[Sequence[ModelType], int]:
        """List records with pagination, filtering, and sorting.

        Returns:
            Tuple of (items, total_count)
        """
        conditions = [
            self.model.organization_id == organization_id,
            self.model.is_deleted == False,
        ]
        for field, value in (filters or {}).items():
            if value is None or not hasattr(self.model, field):
                continue
            col = getattr(self.model, field)
            conditions.append(col.in_(value) if isinstance(value, list) else col == value)

        query = select(self.model).where(*conditions)
        count_query = select(func.count()).select_from(self.model).where(*conditions)

        col = getattr(self.model, order_by, self.model.created_at)
        query = query.order_by(col.desc() if order_desc else col.asc(), self.model.id)
        query = query.offset(offset).limit(limit)

        items = (await self.db.execute(query)).scalars().all()
        total = (await self.db.execute(count_query)).scalar() or 0
        return items, total

    # ─── Write ─────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Create a new record and flush it so its id and defaults are populated."""
        data.setdefault("id", str(uuid4()))
        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def apply_updates(
        self,
        instance: ModelType,
        updates: dict[str, Any],
        allowed: Iterable[str],
    ) -> List[str]:
        """Set whitelisted attributes on ``instance``; returns the fields changed.

        Keys outside ``allowed`` are ignored so workflow configs cannot touch
        ownership or identity columns.
        """
        allowed_set = set(allowed)
        changed = []
        for key, value in updates.items():
            if key in allowed_set and getattr(instance, key) != value:
                setattr(instance, key, value)
                changed.append(key)
        if changed:
            await self.db.flush()
        return changed

    async def soft_delete(self, id: str, organization_id: str) -> bool:
        """Soft-delete a record (set is_deleted=True).

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get_by_id_and_org(id, organization_id)
        if not instance:
            return False
        instance.soft_delete()
        await self.db.flush()
        return True
