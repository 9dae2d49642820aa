"""Leave type registry — catalog CRUD with name uniqueness and a delete guard.

Business rules:
  - Names are unique; create/update reject a name held by another row
  - A type referenced by any leave application cannot be hard-deleted;
    deactivate it with toggle_leave_type_status instead
  - Deleting an unreferenced type removes its balance rows with it
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import DEFAULT_LEAVE_TYPES, SortOrder
from leavedesk.common.exceptions import ConflictError, NotFoundException
from leavedesk.common.filters import FilterField
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationParams,
    paginate,
    shape_query,
)
from leavedesk.leave_types.schemas import (
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveTypeUpdate,
)
from leavedesk.models import LeaveApplication, LeaveBalance, LeaveType

logger = logging.getLogger(__name__)

# ── Query shape ─────────────────────────────────────────────────────

LEAVE_TYPE_SEARCHABLE = (LeaveType.name, LeaveType.description)

LEAVE_TYPE_FILTERS: dict[str, FilterField] = {
    "is_active": FilterField(LeaveType.is_active),
    "requires_document": FilterField(LeaveType.requires_document),
}

LEAVE_TYPE_SORTABLE = {
    "name": LeaveType.name,
    "default_days_per_year": LeaveType.default_days_per_year,
    "created_at": LeaveType.created_at,
    "updated_at": LeaveType.updated_at,
}

LEAVE_TYPE_DEFAULT_SORT = ((LeaveType.name, SortOrder.asc),)

NULLABLE_FIELDS = frozenset({"description", "color"})


class LeaveTypeService:
    """Async leave type operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_or_404(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        result = await db.execute(
            select(LeaveType).where(LeaveType.id == leave_type_id)
        )
        leave_type = result.scalars().first()
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def _name_taken(
        db: AsyncSession,
        name: str,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = select(LeaveType.id).where(LeaveType.name == name)
        if exclude_id is not None:
            query = query.where(LeaveType.id != exclude_id)
        return (await db.execute(query)).first() is not None

    @staticmethod
    async def _flush_unique_name(db: AsyncSession, name: str) -> None:
        """Flush pending changes; a concurrent writer's name wins as a conflict."""
        try:
            await db.flush()
        except IntegrityError as exc:
            logger.warning("Leave type name %r rejected by unique constraint", name)
            raise ConflictError.duplicate("name", name) from exc

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        data: LeaveTypeCreate,
    ) -> LeaveTypeOut:
        """Create a leave type. Fails with ConflictError on a duplicate name."""

        if await LeaveTypeService._name_taken(db, data.name):
            raise ConflictError.duplicate("name", data.name)

        leave_type = LeaveType(
            name=data.name,
            description=data.description,
            default_days_per_year=data.default_days_per_year,
            requires_document=data.requires_document,
            color=data.color,
            is_active=data.is_active,
        )
        db.add(leave_type)
        await LeaveTypeService._flush_unique_name(db, data.name)
        await db.refresh(leave_type)

        logger.info("Created leave type %s (%s)", leave_type.name, leave_type.id)
        return LeaveTypeOut.model_validate(leave_type)

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_types(
        db: AsyncSession,
        params: PaginationParams,
        *,
        search: Optional[str] = None,
        filters: Optional[dict] = None,
    ) -> PaginatedResponse:
        """Paginated catalog with name/description search, ordered by name."""

        shape = shape_query(
            params,
            search=search,
            searchable=LEAVE_TYPE_SEARCHABLE,
            filters=filters,
            filter_fields=LEAVE_TYPE_FILTERS,
            sortable=LEAVE_TYPE_SORTABLE,
            default_sort=LEAVE_TYPE_DEFAULT_SORT,
            tiebreaker=LeaveType.id,
        )
        return await paginate(
            db, select(LeaveType), shape, transform=LeaveTypeOut.model_validate,
        )

    @staticmethod
    async def get_active_leave_types(db: AsyncSession) -> list[LeaveTypeOut]:
        """Active leave types only, ordered by name."""

        result = await db.execute(
            select(LeaveType)
            .where(LeaveType.is_active.is_(True))
            .order_by(LeaveType.name)
        )
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    @staticmethod
    async def get_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
    ) -> LeaveTypeOut:
        leave_type = await LeaveTypeService._get_or_404(db, leave_type_id)
        return LeaveTypeOut.model_validate(leave_type)

    # ─────────────────────────────────────────────────────────────────
    # Update
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        data: LeaveTypeUpdate,
    ) -> LeaveTypeOut:
        """Apply the fields that were sent. A new name must not belong to
        another leave type."""

        leave_type = await LeaveTypeService._get_or_404(db, leave_type_id)
        # description / color may be cleared with null; other columns may not
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_FIELDS
        }

        new_name = changes.get("name")
        if new_name and new_name != leave_type.name:
            if await LeaveTypeService._name_taken(
                db, new_name, exclude_id=leave_type.id,
            ):
                raise ConflictError.duplicate("name", new_name)

        for field, value in changes.items():
            setattr(leave_type, field, value)
        leave_type.updated_at = datetime.now(timezone.utc)

        await LeaveTypeService._flush_unique_name(db, leave_type.name)
        await db.refresh(leave_type)

        logger.info(
            "Updated leave type %s: %s", leave_type.id, sorted(changes),
        )
        return LeaveTypeOut.model_validate(leave_type)

    @staticmethod
    async def toggle_leave_type_status(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
    ) -> LeaveTypeOut:
        """Flip is_active and return the updated row."""

        leave_type = await LeaveTypeService._get_or_404(db, leave_type_id)
        leave_type.is_active = not leave_type.is_active
        leave_type.updated_at = datetime.now(timezone.utc)
        await db.flush()
        await db.refresh(leave_type)

        logger.info(
            "Leave type %s %s",
            leave_type.name,
            "activated" if leave_type.is_active else "deactivated",
        )
        return LeaveTypeOut.model_validate(leave_type)

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
    ) -> LeaveTypeOut:
        """Hard-delete an unreferenced leave type (and its balances).

        Blocked with ConflictError while any application references it.
        """

        leave_type = await LeaveTypeService._get_or_404(db, leave_type_id)

        count_result = await db.execute(
            select(func.count())
            .select_from(LeaveApplication)
            .where(LeaveApplication.leave_type_id == leave_type_id)
        )
        applications = count_result.scalar_one()
        if applications > 0:
            logger.warning(
                "Refused to delete leave type %s: %d application(s) reference it",
                leave_type.name, applications,
            )
            raise ConflictError(
                f"Cannot delete leave type '{leave_type.name}': it has active "
                f"applications ({applications}). Deactivate it instead.",
                errors={"leave_type_id": [str(leave_type_id)]},
            )

        out = LeaveTypeOut.model_validate(leave_type)

        await db.execute(
            delete(LeaveBalance).where(LeaveBalance.leave_type_id == leave_type_id)
        )
        await db.delete(leave_type)
        await db.flush()

        logger.info("Deleted leave type %s (%s)", out.name, out.id)
        return out

    # ─────────────────────────────────────────────────────────────────
    # Seed
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def seed_default_leave_types(db: AsyncSession) -> list[LeaveTypeOut]:
        """Insert the default catalog; names that already exist are skipped.

        Returns only the rows created by this call.
        """

        existing = set(
            (await db.execute(select(LeaveType.name))).scalars().all()
        )

        created: list[LeaveType] = []
        for entry in DEFAULT_LEAVE_TYPES:
            if entry["name"] in existing:
                continue
            leave_type = LeaveType(is_active=True, **entry)
            db.add(leave_type)
            created.append(leave_type)

        if created:
            await db.flush()
            for leave_type in created:
                await db.refresh(leave_type)

        logger.info(
            "Seeded %d default leave type(s), %d already present",
            len(created), len(existing),
        )
        return [LeaveTypeOut.model_validate(lt) for lt in created]
