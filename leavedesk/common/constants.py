"""Enums and constants for leavedesk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# Pending and approved applications block the calendar for overlap checks
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)

# Statuses an administrator may move a pending application into
DECISION_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.approved,
    LeaveStatus.rejected,
)


# ── Listing ─────────────────────────────────────────────────────────

class SortOrder(str, enum.Enum):
    asc = "asc"
    desc = "desc"


# ── Default leave catalog ───────────────────────────────────────────

DEFAULT_LEAVE_TYPES: list[dict] = [
    {
        "name": "SICK",
        "description": "Sick leave for medical purposes",
        "default_days_per_year": 10,
        "requires_document": False,
        "color": "#F87171",
    },
    {
        "name": "CASUAL",
        "description": "Casual leave for personal work",
        "default_days_per_year": 12,
        "requires_document": False,
        "color": "#60A5FA",
    },
    {
        "name": "ANNUAL",
        "description": "Annual vacation leave",
        "default_days_per_year": 20,
        "requires_document": False,
        "color": "#34D399",
    },
    {
        "name": "EMERGENCY",
        "description": "Emergency leave for urgent situations",
        "default_days_per_year": 0,
        "requires_document": True,
        "color": "#FB923C",
    },
    {
        "name": "UNPAID",
        "description": "Unpaid leave without salary",
        "default_days_per_year": 0,
        "requires_document": False,
        "color": "#A78BFA",
    },
    {
        "name": "MATERNITY",
        "description": "Maternity leave for new mothers",
        "default_days_per_year": 90,
        "requires_document": True,
        "color": "#F9A8D4",
    },
    {
        "name": "PATERNITY",
        "description": "Paternity leave for new fathers",
        "default_days_per_year": 7,
        "requires_document": True,
        "color": "#93C5FD",
    },
]
