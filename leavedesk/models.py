"""Import every ORM model module so string relationships resolve.

``Employee`` refers to ``LeaveApplication`` and ``LeaveBalance`` by name; all
four modules must be registered on ``Base`` before the first query or loader
option configures the mappers.
"""

from leavedesk.core_hr.models import Employee
from leavedesk.leave.models import LeaveApplication
from leavedesk.leave_balances.models import LeaveBalance
from leavedesk.leave_types.models import LeaveType

__all__ = ["Employee", "LeaveApplication", "LeaveBalance", "LeaveType"]
