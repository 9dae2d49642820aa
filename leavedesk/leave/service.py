"""Leave application lifecycle — submit, decide, cancel, delete, list.

Business rules:
  - An employee's active (pending/approved) applications never overlap
    on any calendar day; both endpoints are inclusive
  - Only pending applications may be decided, cancelled or deleted
  - Only the owner may cancel or delete their application
  - Status changes never touch the balance ledger
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DECISION_STATUSES,
    LeaveStatus,
    SortOrder,
)
from leavedesk.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.filters import FilterField, FilterOp
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationParams,
    paginate,
    shape_query,
)
from leavedesk.core_hr.schemas import EmployeeBrief
from leavedesk.leave.schemas import (
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveCalendarEvent,
    LeaveDecisionRequest,
    LeaveStatsOut,
    LeaveTypeCount,
)
from leavedesk.leave_types.schemas import LeaveTypeBrief
from leavedesk.models import Employee, LeaveApplication, LeaveType

logger = logging.getLogger(__name__)

OVERLAP_MESSAGE = "Leave application overlaps an existing pending or approved leave period."

# ── Query shape ─────────────────────────────────────────────────────

LEAVE_APPLICATION_SEARCHABLE = (LeaveApplication.reason,)

LEAVE_APPLICATION_FILTERS: dict[str, FilterField] = {
    "status": FilterField(LeaveApplication.status),
    "leave_type_id": FilterField(LeaveApplication.leave_type_id),
    "employee_id": FilterField(LeaveApplication.employee_id),
    "approved_by": FilterField(LeaveApplication.approved_by),
    "start_date": FilterField(LeaveApplication.start_date, FilterOp.gte),
    "end_date": FilterField(LeaveApplication.end_date, FilterOp.lte),
}

LEAVE_APPLICATION_SORTABLE = {
    "start_date": LeaveApplication.start_date,
    "end_date": LeaveApplication.end_date,
    "total_days": LeaveApplication.total_days,
    "status": LeaveApplication.status,
    "created_at": LeaveApplication.created_at,
    "updated_at": LeaveApplication.updated_at,
}

LEAVE_APPLICATION_DEFAULT_SORT = ((LeaveApplication.created_at, SortOrder.desc),)

def _application_load_options() -> tuple:
    # Built per query; loader options configure every mapper on creation
    return (
        selectinload(LeaveApplication.employee),
        selectinload(LeaveApplication.approver),
        selectinload(LeaveApplication.leave_type),
    )


def count_leave_days(start: date, end: date) -> int:
    """Inclusive calendar day count; weekends and holidays are not excluded."""
    return (end - start).days + 1


class LeaveService:
    """Async leave application operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_or_404(
        db: AsyncSession,
        application_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> LeaveApplication:
        query = (
            select(LeaveApplication)
            .where(LeaveApplication.id == application_id)
            .options(*_application_load_options())
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=LeaveApplication)
        result = await db.execute(query)
        application = result.scalars().first()
        if application is None:
            raise NotFoundException("LeaveApplication", str(application_id))
        return application

    @staticmethod
    async def _get_owned_pending(
        db: AsyncSession,
        application_id: uuid.UUID,
        requesting_employee_id: uuid.UUID,
        action: str,
    ) -> LeaveApplication:
        """Guards shared by cancel and delete, checked in order:
        existence, ownership, pending status."""

        application = await LeaveService._get_or_404(
            db, application_id, for_update=True,
        )
        if application.employee_id != requesting_employee_id:
            logger.warning(
                "Employee %s tried to %s application %s owned by %s",
                requesting_employee_id, action, application.id,
                application.employee_id,
            )
            raise ForbiddenException(
                f"You can only {action} your own leave applications."
            )
        if application.status != LeaveStatus.pending:
            raise InvalidStateException(
                f"Cannot {action} an application that is "
                f"{application.status.value}; only pending applications qualify.",
                current_state=application.status.value,
            )
        return application

    @staticmethod
    async def _find_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start: date,
        end: date,
    ) -> Optional[LeaveApplication]:
        """First active application of *employee_id* sharing a day with
        [start, end]."""
        result = await db.execute(
            select(LeaveApplication)
            .where(
                LeaveApplication.employee_id == employee_id,
                LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveApplication.start_date <= end,
                LeaveApplication.end_date >= start,
            )
            .order_by(LeaveApplication.start_date)
            .limit(1)
        )
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_application(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveApplicationCreate,
    ) -> LeaveApplicationOut:
        """Create a pending application after the overlap check.

        The employee row is locked for the rest of the transaction so two
        concurrent submissions for the same employee are checked one after
        the other. On PostgreSQL an exclusion constraint over active
        applications backs the check at the storage level.
        """

        if data.start_date > data.end_date:
            raise ValidationException(
                {"end_date": ["end_date must be on or after start_date."]}
            )

        # ── Employee (locked) ───────────────────────────────────────
        emp_result = await db.execute(
            select(Employee).where(Employee.id == employee_id).with_for_update()
        )
        if emp_result.scalars().first() is None:
            raise NotFoundException("Employee", str(employee_id))

        # ── Leave type ──────────────────────────────────────────────
        lt_result = await db.execute(
            select(LeaveType).where(LeaveType.id == data.leave_type_id)
        )
        leave_type = lt_result.scalars().first()
        if leave_type is None:
            raise NotFoundException("LeaveType", str(data.leave_type_id))
        if not leave_type.is_active:
            raise ValidationException(
                {"leave_type_id": [f"{leave_type.name} is not currently available."]}
            )
        if leave_type.requires_document and not data.attachment_url:
            raise ValidationException(
                {"attachment_url": [f"{leave_type.name} requires a supporting document."]}
            )

        # ── Overlap ─────────────────────────────────────────────────
        clash = await LeaveService._find_overlap(
            db, employee_id, data.start_date, data.end_date,
        )
        if clash is not None:
            logger.warning(
                "Overlap for employee %s: %s..%s clashes with %s (%s..%s)",
                employee_id, data.start_date, data.end_date,
                clash.id, clash.start_date, clash.end_date,
            )
            raise ConflictError(
                OVERLAP_MESSAGE,
                errors={"dates": [
                    f"Overlaps {clash.status.value} leave "
                    f"{clash.start_date.isoformat()} to {clash.end_date.isoformat()}."
                ]},
            )

        application = LeaveApplication(
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=count_leave_days(data.start_date, data.end_date),
            reason=data.reason,
            status=LeaveStatus.pending,
            attachment_url=data.attachment_url,
        )
        db.add(application)
        try:
            await db.flush()
        except IntegrityError as exc:
            logger.warning(
                "Exclusion constraint rejected application for employee %s",
                employee_id,
            )
            raise ConflictError(OVERLAP_MESSAGE) from exc

        logger.info(
            "Employee %s submitted %s leave %s..%s (%d day(s))",
            employee_id, leave_type.name, application.start_date,
            application.end_date, application.total_days,
        )
        application = await LeaveService._get_or_404(db, application.id)
        return LeaveApplicationOut.model_validate(application)

    # ─────────────────────────────────────────────────────────────────
    # Decide
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide_application(
        db: AsyncSession,
        application_id: uuid.UUID,
        approver_id: uuid.UUID,
        data: LeaveDecisionRequest,
    ) -> LeaveApplicationOut:
        """Approve or reject a pending application and record the decider."""

        if data.status not in DECISION_STATUSES:
            raise ValidationException(
                {"status": ["status must be 'approved' or 'rejected'."]}
            )

        application = await LeaveService._get_or_404(
            db, application_id, for_update=True,
        )
        if application.status != LeaveStatus.pending:
            raise InvalidStateException(
                "Only pending applications may be updated; "
                f"this one is {application.status.value}.",
                current_state=application.status.value,
            )

        application.status = data.status
        application.approved_by = approver_id
        application.comments = data.comments
        if data.status == LeaveStatus.rejected:
            application.rejection_reason = data.rejection_reason
        application.updated_at = datetime.now(timezone.utc)

        await db.flush()

        logger.info(
            "Application %s %s by %s", application_id, data.status.value, approver_id,
        )
        application = await LeaveService._get_or_404(db, application_id)
        return LeaveApplicationOut.model_validate(application)

    # ─────────────────────────────────────────────────────────────────
    # Cancel / Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_application(
        db: AsyncSession,
        application_id: uuid.UUID,
        requesting_employee_id: uuid.UUID,
    ) -> LeaveApplicationOut:
        """Owner withdraws a pending application; the row is kept."""

        application = await LeaveService._get_owned_pending(
            db, application_id, requesting_employee_id, "cancel",
        )

        now = datetime.now(timezone.utc)
        application.status = LeaveStatus.cancelled
        application.cancelled_at = now
        application.updated_at = now
        await db.flush()

        logger.info("Application %s cancelled by its owner", application_id)
        application = await LeaveService._get_or_404(db, application_id)
        return LeaveApplicationOut.model_validate(application)

    @staticmethod
    async def delete_application(
        db: AsyncSession,
        application_id: uuid.UUID,
        requesting_employee_id: uuid.UUID,
    ) -> LeaveApplicationOut:
        """Owner removes a pending application entirely."""

        application = await LeaveService._get_owned_pending(
            db, application_id, requesting_employee_id, "delete",
        )
        out = LeaveApplicationOut.model_validate(application)

        await db.delete(application)
        await db.flush()

        logger.info("Application %s deleted by its owner", application_id)
        return out

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_application(
        db: AsyncSession,
        application_id: uuid.UUID,
    ) -> LeaveApplicationOut:
        application = await LeaveService._get_or_404(db, application_id)
        return LeaveApplicationOut.model_validate(application)

    @staticmethod
    async def get_applications(
        db: AsyncSession,
        params: PaginationParams,
        *,
        search: Optional[str] = None,
        filters: Optional[dict] = None,
    ) -> PaginatedResponse:
        """Paginated listing across all employees."""

        shape = shape_query(
            params,
            search=search,
            searchable=LEAVE_APPLICATION_SEARCHABLE,
            filters=filters,
            filter_fields=LEAVE_APPLICATION_FILTERS,
            sortable=LEAVE_APPLICATION_SORTABLE,
            default_sort=LEAVE_APPLICATION_DEFAULT_SORT,
            tiebreaker=LeaveApplication.id,
        )
        return await paginate(
            db,
            select(LeaveApplication),
            shape,
            options=_application_load_options(),
            transform=LeaveApplicationOut.model_validate,
        )

    @staticmethod
    async def get_my_applications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        params: PaginationParams,
        *,
        search: Optional[str] = None,
        filters: Optional[dict] = None,
    ) -> PaginatedResponse:
        """Same as get_applications, scoped to one employee."""

        scoped = dict(filters or {})
        scoped["employee_id"] = employee_id
        return await LeaveService.get_applications(
            db, params, search=search, filters=scoped,
        )

    # ─────────────────────────────────────────────────────────────────
    # Stats / Calendar
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_stats(
        db: AsyncSession,
        *,
        employee_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> LeaveStatsOut:
        """Application counts by status and by leave type.

        With *year*, only applications overlapping that calendar year count.
        """

        conditions = []
        if employee_id is not None:
            conditions.append(LeaveApplication.employee_id == employee_id)
        if year is not None:
            conditions.append(LeaveApplication.start_date <= date(year, 12, 31))
            conditions.append(LeaveApplication.end_date >= date(year, 1, 1))

        status_rows = await db.execute(
            select(LeaveApplication.status, func.count())
            .where(*conditions)
            .group_by(LeaveApplication.status)
        )
        stats = LeaveStatsOut()
        for status, count in status_rows.all():
            setattr(stats, LeaveStatus(status).value, count)
            stats.total += count

        type_rows = await db.execute(
            select(LeaveType.id, LeaveType.name, LeaveType.color, func.count())
            .join(LeaveApplication, LeaveApplication.leave_type_id == LeaveType.id)
            .where(*conditions)
            .group_by(LeaveType.id, LeaveType.name, LeaveType.color)
            .order_by(LeaveType.name)
        )
        stats.by_type = [
            LeaveTypeCount(leave_type_id=lt_id, name=name, color=color, count=count)
            for lt_id, name, color, count in type_rows.all()
        ]
        return stats

    @staticmethod
    async def get_leave_calendar(
        db: AsyncSession,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        employee_id: Optional[uuid.UUID] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveCalendarEvent]:
        """Active applications as calendar events, earliest first.

        start_date / end_date bound the application's own start and end.
        """

        query = (
            select(LeaveApplication)
            .where(LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES))
            .options(
                selectinload(LeaveApplication.employee),
                selectinload(LeaveApplication.leave_type),
            )
            .order_by(LeaveApplication.start_date, LeaveApplication.id)
        )
        if employee_id is not None:
            query = query.where(LeaveApplication.employee_id == employee_id)
        if leave_type_id is not None:
            query = query.where(LeaveApplication.leave_type_id == leave_type_id)
        if start_date is not None:
            query = query.where(LeaveApplication.start_date >= start_date)
        if end_date is not None:
            query = query.where(LeaveApplication.end_date <= end_date)

        result = await db.execute(query)
        return [
            LeaveCalendarEvent(
                id=app.id,
                title=f"{app.employee.name} - {app.leave_type.name}",
                start=app.start_date,
                end=app.end_date,
                status=app.status,
                employee=EmployeeBrief.model_validate(app.employee),
                leave_type=LeaveTypeBrief.model_validate(app.leave_type),
            )
            for app in result.scalars().all()
        ]
