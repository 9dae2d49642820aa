"""Leave type router — catalog CRUD and activation toggle.

Reads are open to any authenticated user; writes require hr_admin.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_role
from leavedesk.common.constants import UserRole
from leavedesk.common.pagination import PaginationParams, pagination_params
from leavedesk.core_hr.models import Employee
from leavedesk.database import get_db
from leavedesk.leave_types.schemas import (
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveTypeToggleOut,
    LeaveTypeUpdate,
)
from leavedesk.leave_types.service import LeaveTypeService

router = APIRouter(prefix="", tags=["leave-types"])

_hr_admin = require_role(UserRole.hr_admin)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a leave type. 409 if the name is taken."""
    return await LeaveTypeService.create_leave_type(db, body)


# ── GET / ───────────────────────────────────────────────────────────

@router.get("")
async def list_leave_types(
    search: Optional[str] = Query(None, description="Matches name or description"),
    is_active: Optional[bool] = Query(None),
    requires_document: Optional[bool] = Query(None),
    params: PaginationParams = Depends(pagination_params),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Paginated leave type catalog."""
    return await LeaveTypeService.get_leave_types(
        db,
        params,
        search=search,
        filters={"is_active": is_active, "requires_document": requires_document},
    )


# ── GET /active ─────────────────────────────────────────────────────

@router.get("/active", response_model=list[LeaveTypeOut])
async def list_active_leave_types(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.get_active_leave_types(db)


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{leave_type_id}", response_model=LeaveTypeOut)
async def get_leave_type(
    leave_type_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.get_leave_type(db, leave_type_id)


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{leave_type_id}", response_model=LeaveTypeOut)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Partial update. 409 if the new name belongs to another type."""
    return await LeaveTypeService.update_leave_type(db, leave_type_id, body)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{leave_type_id}", response_model=LeaveTypeOut)
async def delete_leave_type(
    leave_type_id: uuid.UUID,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an unreferenced leave type. 409 while applications use it."""
    return await LeaveTypeService.delete_leave_type(db, leave_type_id)


# ── PATCH /{id}/toggle-status ───────────────────────────────────────

@router.patch("/{leave_type_id}/toggle-status", response_model=LeaveTypeToggleOut)
async def toggle_leave_type_status(
    leave_type_id: uuid.UUID,
    employee: Employee = Depends(_hr_admin),
    db: AsyncSession = Depends(get_db),
):
    leave_type = await LeaveTypeService.toggle_leave_type_status(db, leave_type_id)
    state = "activated" if leave_type.is_active else "deactivated"
    return LeaveTypeToggleOut(
        message=f"Leave type {state} successfully.", data=leave_type,
    )
