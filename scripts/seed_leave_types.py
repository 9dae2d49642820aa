#!/usr/bin/env python3
"""Seed the default leave catalog and, optionally, annual balances.

Existing leave type names are left untouched and employees who already hold
a balance for a type/year keep it, so the script is safe to re-run.

Usage:
    python scripts/seed_leave_types.py                     # catalog only
    python scripts/seed_leave_types.py --allocate 2026     # + balances for every active employee
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sqlalchemy import select

from leavedesk.database import engine, session_scope
from leavedesk.leave_balances.service import LeaveBalanceService
from leavedesk.leave_types.service import LeaveTypeService
from leavedesk.logging_config import configure_logging
from leavedesk.models import Employee

logger = logging.getLogger("seed_leave_types")


async def seed(allocate_year: int | None) -> int:
    async with session_scope() as session:
        created = await LeaveTypeService.seed_default_leave_types(session)
        for lt in created:
            logger.info("  + %-10s %3d day(s)", lt.name, lt.default_days_per_year)

        if allocate_year is not None:
            allocated = 0
            result = await session.execute(
                select(Employee.id).where(Employee.is_active.is_(True))
            )
            for employee_id in result.scalars().all():
                rows = await LeaveBalanceService.allocate_annual_defaults(
                    session, employee_id, allocate_year,
                )
                allocated += len(rows)
            logger.info("Allocated %d balance row(s) for %d", allocated, allocate_year)

    await engine.dispose()
    return len(created)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--allocate", type=int, metavar="YEAR",
        help="Also allocate default balances for every active employee",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    configure_logging(args.log_level)
    created = asyncio.run(seed(args.allocate))
    logger.info("Done: %d new leave type(s)", created)
    return 0


if __name__ == "__main__":
    sys.exit(main())
