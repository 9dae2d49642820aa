"""Leave balance ledger — per (employee, leave type, year) entitlements.

Business logic:
  - Allocation of a single entitlement, unique per balance triple
  - Idempotent allocation of every active type's annual default
  - Administrative edits of total/used days; remaining days is a generated
    column (total_days - used_days) so no writer can leave it inconsistent
  - Per-employee yearly summary read straight from the ledger rows
  - Application status changes do not touch balances
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.constants import SortOrder
from leavedesk.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.filters import FilterField
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationParams,
    paginate,
    shape_query,
)
from leavedesk.core_hr.schemas import EmployeeBrief
from leavedesk.leave_balances.schemas import (
    EmployeeLeaveSummary,
    LeaveBalanceCreate,
    LeaveBalanceOut,
    LeaveBalanceUpdate,
    LeaveTypeBreakdown,
)
from leavedesk.models import Employee, LeaveBalance, LeaveType

logger = logging.getLogger(__name__)

# ── Query shape ─────────────────────────────────────────────────────

LEAVE_BALANCE_FILTERS: dict[str, FilterField] = {
    "employee_id": FilterField(LeaveBalance.employee_id),
    "leave_type_id": FilterField(LeaveBalance.leave_type_id),
    "year": FilterField(LeaveBalance.year),
}

LEAVE_BALANCE_SORTABLE = {
    "year": LeaveBalance.year,
    "total_days": LeaveBalance.total_days,
    "used_days": LeaveBalance.used_days,
    "remaining_days": LeaveBalance.remaining_days,
    "created_at": LeaveBalance.created_at,
    "updated_at": LeaveBalance.updated_at,
}

LEAVE_BALANCE_DEFAULT_SORT = (
    (LeaveBalance.year, SortOrder.desc),
    (LeaveBalance.created_at, SortOrder.desc),
)


def _balance_load_options() -> tuple:
    return (
        selectinload(LeaveBalance.employee),
        selectinload(LeaveBalance.leave_type),
    )


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# ── Summary shape ───────────────────────────────────────────────────

EMPLOYEE_DISPLAY_NAME = func.coalesce(
    Employee.display_name, Employee.first_name + " " + Employee.last_name,
)

SUMMARY_FILTERS: dict[str, FilterField] = {
    "employee_id": FilterField(Employee.id),
}

SUMMARY_SORTABLE = {
    "name": EMPLOYEE_DISPLAY_NAME,
    "employee_code": Employee.employee_code,
    "email": Employee.email,
}

SUMMARY_DEFAULT_SORT = ((EMPLOYEE_DISPLAY_NAME, SortOrder.asc),)


class LeaveBalanceService:
    """Async balance ledger operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_or_404(
        db: AsyncSession,
        balance_id: uuid.UUID,
    ) -> LeaveBalance:
        """Load a balance with employee + leave type, refreshing any stale
        copy already held by the session."""
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.id == balance_id)
            .options(*_balance_load_options())
            .execution_options(populate_existing=True)
        )
        balance = result.scalars().first()
        if balance is None:
            raise NotFoundException("LeaveBalance", str(balance_id))
        return balance

    @staticmethod
    async def _ensure_employee(db: AsyncSession, employee_id: uuid.UUID) -> None:
        found = await db.execute(
            select(Employee.id).where(Employee.id == employee_id)
        )
        if found.scalar() is None:
            raise NotFoundException("Employee", str(employee_id))

    @staticmethod
    async def _find_triple(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _held_leave_type_ids(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> set[uuid.UUID]:
        result = await db.execute(
            select(LeaveBalance.leave_type_id).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year,
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def _flush_allocation(db: AsyncSession, description: str) -> None:
        """Flush new balance rows; the unique constraint is the final word on
        duplicates created by a concurrent allocator."""
        try:
            await db.flush()
        except IntegrityError as exc:
            logger.warning("Balance allocation %s hit uq_leave_balance", description)
            raise ConflictError(
                "Leave balance already exists for this employee, leave type and year.",
            ) from exc

    # ─────────────────────────────────────────────────────────────────
    # Allocate
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def allocate(
        db: AsyncSession,
        data: LeaveBalanceCreate,
    ) -> LeaveBalanceOut:
        """Create the entitlement for one balance triple with used_days = 0."""

        await LeaveBalanceService._ensure_employee(db, data.employee_id)

        lt_result = await db.execute(
            select(LeaveType.id).where(LeaveType.id == data.leave_type_id)
        )
        if lt_result.scalar() is None:
            raise NotFoundException("LeaveType", str(data.leave_type_id))

        existing = await LeaveBalanceService._find_triple(
            db, data.employee_id, data.leave_type_id, data.year,
        )
        if existing is not None:
            logger.warning(
                "Duplicate allocation for employee=%s type=%s year=%s",
                data.employee_id, data.leave_type_id, data.year,
            )
            raise ConflictError(
                "Leave balance already exists for this employee, leave type and year.",
                errors={"balance_id": [str(existing.id)]},
            )

        balance = LeaveBalance(
            employee_id=data.employee_id,
            leave_type_id=data.leave_type_id,
            year=data.year,
            total_days=data.total_days,
            used_days=0,
        )
        db.add(balance)
        await LeaveBalanceService._flush_allocation(
            db, f"employee={data.employee_id} year={data.year}",
        )

        logger.info(
            "Allocated %d day(s) of %s to employee %s for %d",
            data.total_days, data.leave_type_id, data.employee_id, data.year,
        )
        balance = await LeaveBalanceService._get_or_404(db, balance.id)
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def allocate_annual_defaults(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> list[LeaveBalanceOut]:
        """Allocate each active leave type's default entitlement.

        Types with no default (0 days) and types the employee already holds a
        balance for in *year* are skipped, so repeated calls never duplicate
        or overwrite. Returns only the balances created by this call; a type
        allocated by a concurrent call between the read and the insert is
        left to that call.
        """

        await LeaveBalanceService._ensure_employee(db, employee_id)

        types_result = await db.execute(
            select(LeaveType)
            .where(
                LeaveType.is_active.is_(True),
                LeaveType.default_days_per_year > 0,
            )
            .order_by(LeaveType.name)
        )
        leave_types = types_result.scalars().all()

        already_held = await LeaveBalanceService._held_leave_type_ids(
            db, employee_id, year,
        )
        rows = [
            {
                "id": uuid.uuid4(),
                "employee_id": employee_id,
                "leave_type_id": lt.id,
                "year": year,
                "total_days": lt.default_days_per_year,
                "used_days": 0,
            }
            for lt in leave_types
            if lt.id not in already_held
        ]
        if not rows:
            logger.info(
                "Annual defaults for employee %s in %d already allocated",
                employee_id, year,
            )
            return []

        # A triple claimed by a concurrent allocator is skipped, not raised
        insert = _DIALECT_INSERTS.get(db.bind.dialect.name, postgresql.insert)
        result = await db.execute(
            insert(LeaveBalance)
            .values(rows)
            .on_conflict_do_nothing(
                index_elements=["employee_id", "leave_type_id", "year"],
            )
            .returning(LeaveBalance.id)
        )
        created_ids = list(result.scalars().all())
        if len(created_ids) < len(rows):
            logger.warning(
                "Annual defaults for employee %s in %d: %d type(s) allocated concurrently",
                employee_id, year, len(rows) - len(created_ids),
            )
        if not created_ids:
            return []

        logger.info(
            "Allocated %d default balance(s) to employee %s for %d",
            len(created_ids), employee_id, year,
        )

        loaded = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(LeaveBalance.id.in_(created_ids))
            .options(*_balance_load_options())
            .order_by(LeaveType.name)
        )
        return [LeaveBalanceOut.model_validate(b) for b in loaded.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Update / Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_balance(
        db: AsyncSession,
        balance_id: uuid.UUID,
        data: LeaveBalanceUpdate,
    ) -> LeaveBalanceOut:
        """Edit total and/or used days.

        total_days is applied first, then used_days; remaining_days is
        recomputed by the database from the resulting pair.
        """

        balance = await LeaveBalanceService._get_or_404(db, balance_id)

        errors: dict[str, list[str]] = {}
        if data.total_days is not None and data.total_days < 0:
            errors["total_days"] = ["Days cannot be negative."]
        if data.used_days is not None and data.used_days < 0:
            errors["used_days"] = ["Days cannot be negative."]
        if errors:
            raise ValidationException(errors)

        if data.total_days is not None:
            balance.total_days = data.total_days
        if data.used_days is not None:
            balance.used_days = data.used_days
        balance.updated_at = datetime.now(timezone.utc)

        await db.flush()

        balance = await LeaveBalanceService._get_or_404(db, balance_id)
        logger.info(
            "Balance %s now total=%d used=%d remaining=%d",
            balance.id, balance.total_days, balance.used_days, balance.remaining_days,
        )
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def delete_balance(
        db: AsyncSession,
        balance_id: uuid.UUID,
    ) -> LeaveBalanceOut:
        """Remove a balance row unconditionally."""

        balance = await LeaveBalanceService._get_or_404(db, balance_id)
        out = LeaveBalanceOut.model_validate(balance)

        await db.delete(balance)
        await db.flush()

        logger.info("Deleted leave balance %s", balance_id)
        return out

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        balance_id: uuid.UUID,
    ) -> LeaveBalanceOut:
        balance = await LeaveBalanceService._get_or_404(db, balance_id)
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def get_balances_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        """All of an employee's balances for *year* (current year when
        omitted), ordered by leave type name."""

        target_year = year or datetime.now(timezone.utc).year

        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == target_year,
            )
            .options(*_balance_load_options())
            .order_by(LeaveType.name.asc())
        )
        return [LeaveBalanceOut.model_validate(b) for b in result.scalars().all()]

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        params: PaginationParams,
        *,
        filters: Optional[dict] = None,
    ) -> PaginatedResponse:
        """Paginated ledger listing filtered by employee, type and year."""

        shape = shape_query(
            params,
            filters=filters,
            filter_fields=LEAVE_BALANCE_FILTERS,
            sortable=LEAVE_BALANCE_SORTABLE,
            default_sort=LEAVE_BALANCE_DEFAULT_SORT,
            tiebreaker=LeaveBalance.id,
        )
        return await paginate(
            db,
            select(LeaveBalance),
            shape,
            options=_balance_load_options(),
            transform=LeaveBalanceOut.model_validate,
        )

    @staticmethod
    async def get_employees_leave_summary(
        db: AsyncSession,
        params: PaginationParams,
        *,
        year: Optional[int] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        """Per-employee totals for *year* with a per-type breakdown.

        Pages over active employees, sorted by display name unless sort_by
        says otherwise. Figures come straight from the ledger rows; an
        employee without balances appears with zero totals.
        """

        target_year = year or datetime.now(timezone.utc).year

        shape = shape_query(
            params,
            filters={"employee_id": employee_id},
            filter_fields=SUMMARY_FILTERS,
            sortable=SUMMARY_SORTABLE,
            default_sort=SUMMARY_DEFAULT_SORT,
            tiebreaker=Employee.id,
        )
        page = await paginate(
            db,
            select(Employee).where(Employee.is_active.is_(True)),
            shape,
        )
        employees = list(page.data)

        by_employee: dict[uuid.UUID, list[LeaveBalance]] = {
            emp.id: [] for emp in employees
        }
        if by_employee:
            result = await db.execute(
                select(LeaveBalance)
                .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
                .where(
                    LeaveBalance.employee_id.in_(list(by_employee)),
                    LeaveBalance.year == target_year,
                )
                .options(selectinload(LeaveBalance.leave_type))
                .order_by(LeaveType.name.asc())
            )
            for balance in result.scalars().all():
                by_employee[balance.employee_id].append(balance)

        summaries = []
        for emp in employees:
            balances = by_employee[emp.id]
            summaries.append(EmployeeLeaveSummary(
                employee=EmployeeBrief.model_validate(emp),
                year=target_year,
                total_days=sum(b.total_days for b in balances),
                used_days=sum(b.used_days for b in balances),
                remaining_days=sum(b.remaining_days for b in balances),
                breakdown=[LeaveTypeBreakdown.model_validate(b) for b in balances],
            ))

        logger.debug(
            "Leave summary for %d: %d of %d employee(s)",
            target_year, len(summaries), page.meta.total,
        )
        return PaginatedResponse(data=summaries, meta=page.meta)
