"""Leave router — apply, decide, cancel, delete, listings, stats, calendar.

All endpoints require authentication. Decisions, the cross-employee listing
and stats require hr_admin.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_role, role_includes
from leavedesk.common.constants import LeaveStatus, UserRole
from leavedesk.common.exceptions import ForbiddenException
from leavedesk.common.pagination import PaginationParams, pagination_params
from leavedesk.common.rate_limit import limiter
from leavedesk.core_hr.models import Employee
from leavedesk.database import get_db
from leavedesk.leave.schemas import (
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveCalendarEvent,
    LeaveDecisionRequest,
    LeaveStatsOut,
)
from leavedesk.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])

_hr_admin = require_role(UserRole.hr_admin)


def _is_hr_admin(request: Request) -> bool:
    return role_includes(request.state.user_role, UserRole.hr_admin)


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveApplicationOut, status_code=201)
@limiter.limit("20/minute")
async def apply_leave(
    request: Request,
    body: LeaveApplicationCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave application. 409 if it overlaps an active one."""
    return await LeaveService.submit_application(db, employee.id, body)


# ── GET /my-applications ────────────────────────────────────────────

@router.get("/my-applications")
async def my_applications(
    search: Optional[str] = Query(None, description="Matches the reason text"),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    start_date: Optional[date] = Query(None, description="Applications starting on/after"),
    end_date: Optional[date] = Query(None, description="Applications ending on/before"),
    params: PaginationParams = Depends(pagination_params),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated employee's applications, newest first."""
    return await LeaveService.get_my_applications(
        db,
        employee.id,
        params,
        search=search,
        filters={
            "status": status,
            "leave_type_id": leave_type_id,
            "start_date": start_date,
            "end_date": end_date,
        },
    )


# ── GET /applications ───────────────────────────────────────────────

@router.get("/applications")
async def all_applications(
    search: Optional[str] = Query(None, description="Matches the reason text"),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    approved_by: Optional[uuid.UUID] = Query(None),
    start_date: Optional[date] = Query(None, description="Applications starting on/after"),
    end_date: Optional[date] = Query(None, description="Applications ending on/before"),
    params: PaginationParams = Depends(pagination_params),
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every employee's applications, newest first."""
    return await LeaveService.get_applications(
        db,
        params,
        search=search,
        filters={
            "status": status,
            "leave_type_id": leave_type_id,
            "employee_id": employee_id,
            "approved_by": approved_by,
            "start_date": start_date,
            "end_date": end_date,
        },
    )


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=LeaveStatsOut)
async def leave_stats(
    employee_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_stats(db, employee_id=employee_id, year=year)


# ── GET /calendar ───────────────────────────────────────────────────

@router.get("/calendar", response_model=list[LeaveCalendarEvent])
async def leave_calendar(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pending and approved leave as calendar events."""
    return await LeaveService.get_leave_calendar(
        db,
        start_date=start_date,
        end_date=end_date,
        employee_id=employee_id,
        leave_type_id=leave_type_id,
    )


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{application_id}", response_model=LeaveApplicationOut)
async def get_application(
    application_id: uuid.UUID,
    request: Request,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Owners see their own application; hr_admin sees any."""
    application = await LeaveService.get_application(db, application_id)
    if application.employee_id != employee.id and not _is_hr_admin(request):
        raise ForbiddenException("You can only view your own leave applications.")
    return application


# ── PATCH /{id}/status ──────────────────────────────────────────────

@router.patch("/{application_id}/status", response_model=LeaveApplicationOut)
async def decide_application(
    application_id: uuid.UUID,
    body: LeaveDecisionRequest,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending application. Balances are not changed."""
    return await LeaveService.decide_application(db, application_id, employee.id, body)


# ── PATCH /{id}/cancel ──────────────────────────────────────────────

@router.patch("/{application_id}/cancel", response_model=LeaveApplicationOut)
async def cancel_application(
    application_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel_application(db, application_id, employee.id)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{application_id}", response_model=LeaveApplicationOut)
async def delete_application(
    application_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.delete_application(db, application_id, employee.id)
