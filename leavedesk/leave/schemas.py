"""Leave application Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leavedesk.common.constants import DECISION_STATUSES, LeaveStatus
from leavedesk.core_hr.schemas import EmployeeBrief
from leavedesk.leave_types.schemas import LeaveTypeBrief


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    """Payload for submitting a leave application."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., min_length=10, max_length=500)
    attachment_url: Optional[str] = Field(
        None, max_length=2048, pattern=r"^https?://\S+$",
        description="Supporting document link, required by some leave types",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveApplicationCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Decide
# ═════════════════════════════════════════════════════════════════════


class LeaveDecisionRequest(BaseModel):
    """Administrator decision on a pending application."""

    status: LeaveStatus
    rejection_reason: Optional[str] = Field(None, max_length=500)
    comments: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def status_is_decision(cls, v: LeaveStatus) -> LeaveStatus:
        if v not in DECISION_STATUSES:
            raise ValueError("status must be 'approved' or 'rejected'.")
        return v


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationOut(BaseModel):
    """Full leave application response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    attachment_url: Optional[str] = None
    rejection_reason: Optional[str] = None
    comments: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # Enriched by service
    employee: Optional[EmployeeBrief] = None
    approver: Optional[EmployeeBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Stats / Calendar
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeCount(BaseModel):
    """Number of applications of one leave type."""

    leave_type_id: uuid.UUID
    name: str
    color: Optional[str] = None
    count: int


class LeaveStatsOut(BaseModel):
    """Application counts by status and by leave type."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0
    by_type: list[LeaveTypeCount] = Field(default_factory=list)


class LeaveCalendarEvent(BaseModel):
    """Single active application rendered for a calendar view."""

    id: uuid.UUID
    title: str
    start: date
    end: date
    status: LeaveStatus
    employee: EmployeeBrief
    leave_type: LeaveTypeBrief
