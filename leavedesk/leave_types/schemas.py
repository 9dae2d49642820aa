"""Leave type Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update   → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representation
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class LeaveTypeBrief(BaseModel):
    """Leave type metadata embedded in balance and application responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: Optional[str] = None
    requires_document: bool = False
    is_active: bool = True


class LeaveTypeCreate(BaseModel):
    """Payload for creating a leave type."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    default_days_per_year: int = Field(..., ge=0)
    requires_document: bool = False
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    is_active: bool = True


class LeaveTypeUpdate(BaseModel):
    """Partial update; only fields that are sent are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    default_days_per_year: Optional[int] = Field(None, ge=0)
    requires_document: Optional[bool] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    is_active: Optional[bool] = None


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    default_days_per_year: int
    requires_document: bool = False
    color: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class LeaveTypeToggleOut(BaseModel):
    """Toggle result with the activated/deactivated message rendered."""

    message: str
    data: LeaveTypeOut
