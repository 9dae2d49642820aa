"""Leave balance router — allocation, ledger edits and lookups.

Employees may read their own balances; everything else requires hr_admin.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_role
from leavedesk.common.constants import UserRole
from leavedesk.common.pagination import PaginationParams, pagination_params
from leavedesk.core_hr.models import Employee
from leavedesk.database import get_db
from leavedesk.leave_balances.schemas import (
    LeaveBalanceAllocate,
    LeaveBalanceCreate,
    LeaveBalanceOut,
    LeaveBalanceUpdate,
)
from leavedesk.leave_balances.service import LeaveBalanceService

router = APIRouter(prefix="", tags=["leave-balances"])

_hr_admin = require_role(UserRole.hr_admin)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=LeaveBalanceOut, status_code=201)
async def allocate_balance(
    body: LeaveBalanceCreate,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Allocate one entitlement. 409 if the triple already has a balance."""
    return await LeaveBalanceService.allocate(db, body)


# ── POST /allocate ──────────────────────────────────────────────────

@router.post("/allocate", response_model=list[LeaveBalanceOut], status_code=201)
async def allocate_annual_defaults(
    body: LeaveBalanceAllocate,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Allocate every active leave type's default days; returns new rows only."""
    year = body.year or datetime.now(timezone.utc).year
    return await LeaveBalanceService.allocate_annual_defaults(
        db, body.employee_id, year,
    )


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me", response_model=list[LeaveBalanceOut])
async def my_balances(
    year: Optional[int] = Query(None, description="Defaults to the current year"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_balances_for_employee(db, employee.id, year)


# ── GET /employee/{id} ──────────────────────────────────────────────

@router.get("/employee/{employee_id}", response_model=list[LeaveBalanceOut])
async def employee_balances(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, description="Defaults to the current year"),
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_balances_for_employee(db, employee_id, year)


# ── GET / ───────────────────────────────────────────────────────────

@router.get("")
async def list_balances(
    employee_id: Optional[uuid.UUID] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None),
    params: PaginationParams = Depends(pagination_params),
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Paginated ledger, newest year first."""
    return await LeaveBalanceService.get_balances(
        db,
        params,
        filters={
            "employee_id": employee_id,
            "leave_type_id": leave_type_id,
            "year": year,
        },
    )


# ── GET /summary ────────────────────────────────────────────────────

@router.get("/summary")
async def employees_leave_summary(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[uuid.UUID] = Query(None),
    params: PaginationParams = Depends(pagination_params),
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Per-employee ledger totals with a per-type breakdown, by name."""
    return await LeaveBalanceService.get_employees_leave_summary(
        db, params, year=year, employee_id=employee_id,
    )


# ── GET /{id}───────────────────────────────────────────────────────

@router.get("/{balance_id}", response_model=LeaveBalanceOut)
async def get_balance(
    balance_id: uuid.UUID,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_balance(db, balance_id)


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{balance_id}", response_model=LeaveBalanceOut)
async def update_balance(
    balance_id: uuid.UUID,
    body: LeaveBalanceUpdate,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit total and/or used days; remaining days follow automatically."""
    return await LeaveBalanceService.update_balance(db, balance_id, body)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{balance_id}", response_model=LeaveBalanceOut)
async def delete_balance(
    balance_id: uuid.UUID,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.delete_balance(db, balance_id)
