"""Leave balance ledger tests — allocation, edits, listings and API."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.exceptions import ConflictError, NotFoundException, ValidationException
from leavedesk.common.pagination import PaginationParams
from leavedesk.leave_balances.models import LeaveBalance
from leavedesk.leave_balances.schemas import LeaveBalanceCreate, LeaveBalanceUpdate
from leavedesk.leave_balances.service import LeaveBalanceService
from tests.conftest import make_balance, make_employee, make_leave_type, utc

BASE = "/api/v1/leave-balances"


# ═════════════════════════════════════════════════════════════════════
# Allocation
# ═════════════════════════════════════════════════════════════════════


class TestAllocate:

    async def test_allocate_starts_unused(self, db: AsyncSession):
        employee = await make_employee(db)
        casual = await make_leave_type(db, name="CASUAL", default_days_per_year=12)

        balance = await LeaveBalanceService.allocate(
            db, LeaveBalanceCreate(
                employee_id=employee.id, leave_type_id=casual.id, year=2025, total_days=12,
            ),
        )

        assert balance.used_days == 0
        assert balance.remaining_days == 12
        assert balance.leave_type.name == "CASUAL"
        assert balance.employee.email == employee.email

    async def test_duplicate_triple_conflicts_and_keeps_original(self, db: AsyncSession):
        employee = await make_employee(db)
        casual = await make_leave_type(db, name="CASUAL")
        await make_balance(db, employee, casual, year=2025, total_days=12)

        with pytest.raises(ConflictError):
            await LeaveBalanceService.allocate(
                db, LeaveBalanceCreate(
                    employee_id=employee.id, leave_type_id=casual.id, year=2025, total_days=30,
                ),
            )

        rows = (await db.execute(select(LeaveBalance))).scalars().all()
        assert len(rows) == 1
        assert rows[0].total_days == 12

    async def test_same_type_different_year_is_allowed(self, db: AsyncSession):
        employee = await make_employee(db)
        casual = await make_leave_type(db, name="CASUAL")
        await make_balance(db, employee, casual, year=2025)

        nxt = await LeaveBalanceService.allocate(
            db, LeaveBalanceCreate(
                employee_id=employee.id, leave_type_id=casual.id, year=2026, total_days=12,
            ),
        )
        assert nxt.year == 2026

    async def test_missing_employee_or_type_not_found(self, db: AsyncSession):
        employee = await make_employee(db)
        casual = await make_leave_type(db, name="CASUAL")

        with pytest.raises(NotFoundException):
            await LeaveBalanceService.allocate(
                db, LeaveBalanceCreate(
                    employee_id=uuid.uuid4(), leave_type_id=casual.id, year=2025, total_days=1,
                ),
            )
        with pytest.raises(NotFoundException):
            await LeaveBalanceService.allocate(
                db, LeaveBalanceCreate(
                    employee_id=employee.id, leave_type_id=uuid.uuid4(), year=2025, total_days=1,
                ),
            )

    async def test_unique_constraint_guards_storage(self, db: AsyncSession):
        employee = await make_employee(db)
        casual = await make_leave_type(db, name="CASUAL")
        await make_balance(db, employee, casual, year=2025)

        with pytest.raises(IntegrityError):
            await make_balance(db, employee, casual, year=2025)
        await db.rollback()


class TestAllocateAnnualDefaults:

    async def test_allocates_active_types_with_defaults(self, db: AsyncSession):
        employee = await make_employee(db)
        await make_leave_type(db, name="SICK", default_days_per_year=10)
        await make_leave_type(db, name="ANNUAL", default_days_per_year=20)
        await make_leave_type(db, name="UNPAID", default_days_per_year=0)
        await make_leave_type(db, name="RETIRED", default_days_per_year=5, is_active=False)

        created = await LeaveBalanceService.allocate_annual_defaults(db, employee.id, 2025)

        assert sorted((b.leave_type.name, b.total_days) for b in created) == [
            ("ANNUAL", 20), ("SICK", 10),
        ]

    async def test_idempotent_and_never_overwrites(self, db: AsyncSession):
        employee = await make_employee(db)
        sick = await make_leave_type(db, name="SICK", default_days_per_year=10)
        await make_leave_type(db, name="ANNUAL", default_days_per_year=20)
        await make_balance(db, employee, sick, year=2025, total_days=4, used_days=1)

        first = await LeaveBalanceService.allocate_annual_defaults(db, employee.id, 2025)
        second = await LeaveBalanceService.allocate_annual_defaults(db, employee.id, 2025)

        assert [b.leave_type.name for b in first] == ["ANNUAL"]
        assert second == []

        held = await LeaveBalanceService.get_balances_for_employee(db, employee.id, 2025)
        assert [(b.leave_type.name, b.total_days, b.used_days) for b in held] == [
            ("ANNUAL", 20, 0), ("SICK", 4, 1),
        ]

    async def test_unknown_employee_not_found(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveBalanceService.allocate_annual_defaults(db, uuid.uuid4(), 2025)

    async def test_type_allocated_concurrently_is_skipped(self, db: AsyncSession):
        employee = await make_employee(db)
        sick = await make_leave_type(db, name="SICK", default_days_per_year=10)
        await make_leave_type(db, name="ANNUAL", default_days_per_year=20)
        existing = await make_balance(db, employee, sick, year=2025, total_days=4, used_days=1)

        # Another allocator inserted SICK after this call read the held set
        with patch.object(
            LeaveBalanceService, "_held_leave_type_ids", AsyncMock(return_value=set()),
        ):
            created = await LeaveBalanceService.allocate_annual_defaults(db, employee.id, 2025)

        assert [b.leave_type.name for b in created] == ["ANNUAL"]
        rows = (await db.execute(
            select(LeaveBalance).where(LeaveBalance.leave_type_id == sick.id)
        )).scalars().all()
        assert [(b.id, b.total_days, b.used_days) for b in rows] == [(existing.id, 4, 1)]

    async def test_everything_allocated_concurrently_returns_empty(self, db: AsyncSession):
        employee = await make_employee(db)
        sick = await make_leave_type(db, name="SICK", default_days_per_year=10)
        await make_balance(db, employee, sick, year=2025, total_days=10)

        with patch.object(
            LeaveBalanceService, "_held_leave_type_ids", AsyncMock(return_value=set()),
        ):
            created = await LeaveBalanceService.allocate_annual_defaults(db, employee.id, 2025)

        assert created == []


# ═════════════════════════════════════════════════════════════════════
# Update / Delete / Read
# ═════════════════════════════════════════════════════════════════════


class TestLedgerEdits:

    async def test_update_recomputes_remaining(self, db: AsyncSession):
        employee = await make_employee(db)
        lt = await make_leave_type(db)
        balance = await make_balance(db, employee, lt, total_days=12)

        used = await LeaveBalanceService.update_balance(
            db, balance.id, LeaveBalanceUpdate(used_days=5),
        )
        both = await LeaveBalanceService.update_balance(
            db, balance.id, LeaveBalanceUpdate(total_days=15, used_days=6),
        )

        assert (used.total_days, used.used_days, used.remaining_days) == (12, 5, 7)
        assert (both.total_days, both.used_days, both.remaining_days) == (15, 6, 9)

    async def test_update_missing_not_found(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveBalanceService.update_balance(
                db, uuid.uuid4(), LeaveBalanceUpdate(total_days=1),
            )

    def test_negative_days_rejected_by_schema(self):
        with pytest.raises(ValueError):
            LeaveBalanceUpdate(used_days=-1)

    async def test_delete_then_get_not_found(self, db: AsyncSession):
        employee = await make_employee(db)
        lt = await make_leave_type(db)
        balance = await make_balance(db, employee, lt)

        deleted = await LeaveBalanceService.delete_balance(db, balance.id)
        assert deleted.id == balance.id

        with pytest.raises(NotFoundException):
            await LeaveBalanceService.get_balance(db, balance.id)

    async def test_employee_balances_default_to_current_year(self, db: AsyncSession):
        employee = await make_employee(db)
        lt = await make_leave_type(db)
        this_year = datetime.now(timezone.utc).year
        await make_balance(db, employee, lt, year=this_year)
        await make_balance(db, employee, lt, year=this_year - 1)

        rows = await LeaveBalanceService.get_balances_for_employee(db, employee.id)
        assert [b.year for b in rows] == [this_year]

    async def test_listing_newest_year_first_with_filters(self, db: AsyncSession):
        asha = await make_employee(db, first_name="Asha")
        ravi = await make_employee(db, first_name="Ravi")
        lt = await make_leave_type(db)
        await make_balance(db, asha, lt, year=2024, created_at=utc(2024, 1, 1))
        await make_balance(db, asha, lt, year=2025, created_at=utc(2025, 1, 1))
        await make_balance(db, ravi, lt, year=2025, created_at=utc(2025, 1, 2))

        everything = await LeaveBalanceService.get_balances(db, PaginationParams())
        only_asha = await LeaveBalanceService.get_balances(
            db, PaginationParams(), filters={"employee_id": asha.id},
        )

        assert [(b.year, b.employee.id) for b in everything.data] == [
            (2025, ravi.id), (2025, asha.id), (2024, asha.id),
        ]
        assert only_asha.meta.total == 2


# ═════════════════════════════════════════════════════════════════════
# Employee summary
# ═════════════════════════════════════════════════════════════════════


class TestEmployeesLeaveSummary:

    async def test_totals_and_breakdown_from_ledger(self, db: AsyncSession):
        employee = await make_employee(db, first_name="Asha", last_name="Rao")
        sick = await make_leave_type(db, name="SICK", default_days_per_year=10)
        annual = await make_leave_type(db, name="ANNUAL", default_days_per_year=20)
        await make_balance(db, employee, sick, year=2025, total_days=10, used_days=2)
        await make_balance(db, employee, annual, year=2025, total_days=20, used_days=5)
        await make_balance(db, employee, annual, year=2024, total_days=18, used_days=18)

        page = await LeaveBalanceService.get_employees_leave_summary(
            db, PaginationParams(), year=2025,
        )

        assert page.meta.total == 1
        summary = page.data[0]
        assert summary.employee.name == "Asha Rao"
        assert (summary.total_days, summary.used_days, summary.remaining_days) == (30, 7, 23)
        assert [
            (row.leave_type.name, row.total_days, row.used_days, row.remaining_days)
            for row in summary.breakdown
        ] == [("ANNUAL", 20, 5, 15), ("SICK", 10, 2, 8)]

    async def test_employee_without_balances_has_zero_totals(self, db: AsyncSession):
        await make_employee(db, first_name="Nila", last_name="Das")

        page = await LeaveBalanceService.get_employees_leave_summary(
            db, PaginationParams(), year=2025,
        )

        summary = page.data[0]
        assert (summary.total_days, summary.used_days, summary.remaining_days) == (0, 0, 0)
        assert summary.breakdown == []

    async def test_paginated_by_name_and_skips_inactive(self, db: AsyncSession):
        for first in ("Chen", "Aarav", "Diya", "Bela", "Esha"):
            await make_employee(db, first_name=first, last_name="K")
        await make_employee(db, first_name="Abel", last_name="Gone", is_active=False)

        first_page = await LeaveBalanceService.get_employees_leave_summary(
            db, PaginationParams(page=1, limit=2), year=2025,
        )
        last_page = await LeaveBalanceService.get_employees_leave_summary(
            db, PaginationParams(page=3, limit=2), year=2025,
        )

        assert first_page.meta.total == 5
        assert [s.employee.name for s in first_page.data] == ["Aarav K", "Bela K"]
        assert [s.employee.name for s in last_page.data] == ["Esha K"]

    async def test_single_employee_filter(self, db: AsyncSession):
        lt = await make_leave_type(db)
        wanted = await make_employee(db, first_name="Zoya")
        other = await make_employee(db, first_name="Arjun")
        await make_balance(db, wanted, lt, year=2025, total_days=12, used_days=3)
        await make_balance(db, other, lt, year=2025, total_days=12)

        page = await LeaveBalanceService.get_employees_leave_summary(
            db, PaginationParams(), year=2025, employee_id=wanted.id,
        )

        assert page.meta.total == 1
        assert page.data[0].employee.id == wanted.id
        assert page.data[0].remaining_days == 9

    async def test_unknown_sort_rejected(self, db: AsyncSession):
        with pytest.raises(ValidationException):
            await LeaveBalanceService.get_employees_leave_summary(
                db, PaginationParams(sort_by="salary"), year=2025,
            )


# ═════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════


class TestLeaveBalanceAPI:

    async def test_allocate_then_duplicate(self, client: AsyncClient, db: AsyncSession, admin_headers):
        employee = await make_employee(db)
        lt = await make_leave_type(db, name="CASUAL")
        await db.commit()
        body = {
            "employee_id": str(employee.id),
            "leave_type_id": str(lt.id),
            "year": 2025,
            "total_days": 12,
        }

        first = await client.post(BASE, json=body, headers=admin_headers)
        second = await client.post(BASE, json={**body, "total_days": 40}, headers=admin_headers)

        assert first.status_code == 201
        assert first.json()["remaining_days"] == 12
        assert second.status_code == 409

    async def test_allocate_defaults_endpoint(self, client: AsyncClient, db: AsyncSession, admin_headers):
        employee = await make_employee(db)
        await make_leave_type(db, name="SICK", default_days_per_year=10)
        await db.commit()

        resp = await client.post(
            f"{BASE}/allocate",
            json={"employee_id": str(employee.id), "year": 2025},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert [b["total_days"] for b in resp.json()] == [10]

    async def test_me_returns_own_balances(self, client: AsyncClient, db: AsyncSession, test_employee, employee_headers):
        lt = await make_leave_type(db)
        await make_balance(db, test_employee, lt, year=2025, total_days=9)
        await db.commit()

        resp = await client.get(f"{BASE}/me", params={"year": 2025}, headers=employee_headers)
        assert resp.status_code == 200
        assert [b["total_days"] for b in resp.json()] == [9]

    async def test_patch_and_listing(self, client: AsyncClient, db: AsyncSession, admin_headers):
        employee = await make_employee(db)
        lt = await make_leave_type(db)
        balance = await make_balance(db, employee, lt, year=2025, total_days=10)
        await db.commit()

        patched = await client.patch(
            f"{BASE}/{balance.id}", json={"used_days": 3}, headers=admin_headers,
        )
        listing = await client.get(BASE, params={"year": 2025}, headers=admin_headers)

        assert patched.json()["remaining_days"] == 7
        assert listing.json()["meta"]["total"] == 1

    async def test_negative_used_days_is_422(self, client: AsyncClient, db: AsyncSession, admin_headers):
        employee = await make_employee(db)
        lt = await make_leave_type(db)
        balance = await make_balance(db, employee, lt)
        await db.commit()

        resp = await client.patch(
            f"{BASE}/{balance.id}", json={"used_days": -2}, headers=admin_headers,
        )
        assert resp.status_code == 422

    async def test_employee_cannot_list_ledger(self, client: AsyncClient, employee_headers):
        resp = await client.get(BASE, headers=employee_headers)
        assert resp.status_code == 403

    async def test_unsortable_field_is_422(self, client: AsyncClient, admin_headers):
        resp = await client.get(BASE, params={"sort_by": "employee_id"}, headers=admin_headers)
        assert resp.status_code == 422

    async def test_summary_endpoint(self, client: AsyncClient, db: AsyncSession, admin_headers):
        employee = await make_employee(db, first_name="Asha", last_name="Rao")
        lt = await make_leave_type(db, name="SICK")
        await make_balance(db, employee, lt, year=2025, total_days=10, used_days=4)
        await db.commit()

        resp = await client.get(
            f"{BASE}/summary",
            params={"year": 2025, "employee_id": str(employee.id)},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["remaining_days"] == 6
        assert body["data"][0]["breakdown"][0]["leave_type"]["name"] == "SICK"

    async def test_employee_cannot_read_summary(self, client: AsyncClient, employee_headers):
        resp = await client.get(f"{BASE}/summary", headers=employee_headers)
        assert resp.status_code == 403
