"""Core HR Pydantic v2 schemas embedded in leave responses."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict


class EmployeeBrief(BaseModel):
    """Minimal employee identity: who applied, who approved."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    name: str
    email: str
