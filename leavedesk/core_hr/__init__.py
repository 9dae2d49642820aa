"""Core HR module — the Employee record leave data hangs off."""

from leavedesk.core_hr.models import Employee

__all__ = ["Employee"]
