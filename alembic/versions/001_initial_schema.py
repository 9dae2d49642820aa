"""001 – Initial schema: employees, leave types, balances, applications.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    # btree_gist lets the exclusion constraint mix "=" on a UUID with "&&"
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code   VARCHAR(20)  NOT NULL UNIQUE,
            first_name      VARCHAR(100) NOT NULL,
            last_name       VARCHAR(100) NOT NULL,
            display_name    VARCHAR(255),
            email           VARCHAR(255) NOT NULL UNIQUE,
            is_active       BOOLEAN NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name                    VARCHAR(100) NOT NULL UNIQUE,
            description             TEXT,
            default_days_per_year   INTEGER NOT NULL DEFAULT 0,
            requires_document       BOOLEAN NOT NULL DEFAULT FALSE,
            color                   VARCHAR(7),
            is_active               BOOLEAN NOT NULL DEFAULT TRUE,
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_type_default_days CHECK (default_days_per_year >= 0)
        )
    """)

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_type_id   UUID NOT NULL REFERENCES leave_types(id) ON DELETE CASCADE,
            year            INTEGER NOT NULL,
            total_days      INTEGER NOT NULL DEFAULT 0,
            used_days       INTEGER NOT NULL DEFAULT 0,
            remaining_days  INTEGER GENERATED ALWAYS AS (total_days - used_days) STORED,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_total_days CHECK (total_days >= 0),
            CONSTRAINT ck_leave_balance_used_days CHECK (used_days >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX idx_leave_bal_emp_year
            ON leave_balances(employee_id, year)
    """)

    # ── 4. leave_applications ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_applications (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            leave_type_id    UUID NOT NULL REFERENCES leave_types(id),
            start_date       DATE NOT NULL,
            end_date         DATE NOT NULL,
            total_days       INTEGER NOT NULL,
            reason           TEXT NOT NULL,
            status           leave_status NOT NULL DEFAULT 'pending',
            approved_by      UUID REFERENCES employees(id),
            attachment_url   TEXT,
            rejection_reason TEXT,
            comments         TEXT,
            cancelled_at     TIMESTAMPTZ,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_application_dates CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_applications_employee_dates
            ON leave_applications(employee_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX idx_leave_app_status ON leave_applications(status)")

    # Pending/approved ranges of one employee may not share a day.
    # daterange(..., '[]') makes both endpoints inclusive.
    op.execute("""
        ALTER TABLE leave_applications
            ADD CONSTRAINT ex_leave_applications_no_overlap
            EXCLUDE USING gist (
                employee_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            )
            WHERE (status IN ('pending', 'approved'))
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "leave_applications",
        "leave_balances",
        "leave_types",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "btree_gist"')
    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
