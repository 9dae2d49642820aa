"""Leave balance Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavedesk.core_hr.schemas import EmployeeBrief
from leavedesk.leave_types.schemas import LeaveTypeBrief


class LeaveBalanceCreate(BaseModel):
    """Allocate an entitlement for one (employee, leave type, year)."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)
    total_days: int = Field(..., ge=0)


class LeaveBalanceAllocate(BaseModel):
    """Allocate every active leave type's default entitlement."""

    employee_id: uuid.UUID
    year: Optional[int] = Field(
        None, ge=2000, le=2100, description="Defaults to the current year"
    )


class LeaveBalanceUpdate(BaseModel):
    """Administrative edit; remaining days are always recomputed."""

    total_days: Optional[int] = Field(None, ge=0)
    used_days: Optional[int] = Field(None, ge=0)


class LeaveBalanceOut(BaseModel):
    """Balance row with embedded employee and leave type metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    total_days: int
    used_days: int
    remaining_days: int
    created_at: datetime
    updated_at: datetime

    # Enriched by service
    employee: Optional[EmployeeBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


class LeaveTypeBreakdown(BaseModel):
    """One ledger row inside an employee summary."""

    model_config = ConfigDict(from_attributes=True)

    leave_type_id: uuid.UUID
    leave_type: LeaveTypeBrief
    total_days: int
    used_days: int
    remaining_days: int


class EmployeeLeaveSummary(BaseModel):
    """An employee's ledger totals for one year, broken down by type."""

    employee: EmployeeBrief
    year: int
    total_days: int
    used_days: int
    remaining_days: int
    breakdown: list[LeaveTypeBreakdown]
