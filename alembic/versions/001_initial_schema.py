"""001 – Initial schema: users, permissions, leave, authorizations, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000+05:30
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
    ("user_role", ["employee", "hod", "admin"]),
    ("approval_status", ["Pending", "Approved", "Rejected"]),
    ("approval_tier", ["hod", "admin"]),
    ("approval_action", ["approve", "reject"]),
    ("authorization_status", ["pending", "approved", "rejected"]),
    ("authorization_priority", ["low", "normal", "high", "urgent"]),
    ("notification_type", ["info", "action_required", "approval", "alert"]),
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
    # equality on uuid inside a GiST exclusion constraint
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email       VARCHAR(255) NOT NULL UNIQUE,
            first_name  VARCHAR(100) NOT NULL,
            last_name   VARCHAR(100) NOT NULL,
            role        user_role NOT NULL DEFAULT 'employee',
            department  VARCHAR(150),
            manager_id  UUID REFERENCES users(id),
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_users_manager    ON users(manager_id)")
    op.execute("CREATE INDEX idx_users_department ON users(department)")

    # ── 2. permissions ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE permissions (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            permission_key   VARCHAR(100) NOT NULL UNIQUE,
            permission_name  VARCHAR(150) NOT NULL,
            description      TEXT,
            category         VARCHAR(50) NOT NULL,
            is_active        BOOLEAN DEFAULT TRUE,
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 3. user_permissions ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_permissions (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id        UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            permission_id  UUID NOT NULL REFERENCES permissions(id) ON DELETE CASCADE,
            granted        BOOLEAN DEFAULT TRUE,
            granted_by     UUID REFERENCES users(id),
            granted_at     TIMESTAMPTZ DEFAULT NOW(),
            revoked_at     TIMESTAMPTZ,
            CONSTRAINT uq_user_permission UNIQUE (user_id, permission_id)
        )
    """)

    # ── 4. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name         VARCHAR(100) NOT NULL UNIQUE,
            code         VARCHAR(10) UNIQUE,
            description  TEXT,
            max_days     INTEGER DEFAULT 0,
            is_active    BOOLEAN DEFAULT TRUE,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id    UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            leave_type     VARCHAR(100) NOT NULL,
            year           INTEGER NOT NULL,
            total_balance  NUMERIC(5,1) DEFAULT 0,
            used_balance   NUMERIC(5,1) DEFAULT 0,
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type, year),
            CONSTRAINT ck_leave_balance_used_non_negative CHECK (used_balance >= 0),
            CONSTRAINT ck_leave_balance_used_within_total CHECK (used_balance <= total_balance)
        )
    """)

    # ── 6. leave_applications ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_applications (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id        UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            leave_type         VARCHAR(100) NOT NULL,
            start_date         DATE NOT NULL,
            end_date           DATE NOT NULL,
            number_of_days     INTEGER NOT NULL,
            reason             TEXT NOT NULL,
            hod_status         approval_status NOT NULL DEFAULT 'Pending',
            admin_status       approval_status NOT NULL DEFAULT 'Pending',
            approved_by_hod    UUID REFERENCES users(id),
            approved_by_admin  UUID REFERENCES users(id),
            hod_remark         TEXT,
            admin_remark       TEXT,
            hod_decided_at     TIMESTAMPTZ,
            admin_decided_at   TIMESTAMPTZ,
            created_at         TIMESTAMPTZ DEFAULT NOW(),
            updated_at         TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_dates_ordered CHECK (end_date >= start_date),
            CONSTRAINT ck_leave_days_positive CHECK (number_of_days >= 1)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_applications_employee_dates
            ON leave_applications(employee_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX ix_leave_applications_hod_status   ON leave_applications(hod_status)")
    op.execute("CREATE INDEX ix_leave_applications_admin_status ON leave_applications(admin_status)")

    # No two live leaves of one employee may share a day; rejected ones are ignored
    op.execute("""
        ALTER TABLE leave_applications
            ADD CONSTRAINT ex_leave_applications_no_overlap
            EXCLUDE USING gist (
                employee_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            )
            WHERE (hod_status <> 'Rejected' AND admin_status <> 'Rejected')
    """)

    # ── 7. approval_tokens ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE approval_tokens (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            token_hash   VARCHAR(64) NOT NULL UNIQUE,
            leave_id     UUID NOT NULL REFERENCES leave_applications(id) ON DELETE CASCADE,
            approver_id  UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            tier         approval_tier NOT NULL,
            action       approval_action NOT NULL,
            used         BOOLEAN DEFAULT FALSE,
            used_at      TIMESTAMPTZ,
            expires_at   TIMESTAMPTZ NOT NULL,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_approval_tokens_leave ON approval_tokens(leave_id, tier)")

    # ── 8. authorizations ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE authorizations (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            authorization_type  VARCHAR(100) NOT NULL,
            title               VARCHAR(200) NOT NULL,
            description         TEXT,
            requested_access    TEXT,
            reason              TEXT NOT NULL,
            priority            authorization_priority DEFAULT 'normal',
            status              authorization_status NOT NULL DEFAULT 'pending',
            approved_by         UUID REFERENCES users(id),
            approval_comment    TEXT,
            approved_at         TIMESTAMPTZ,
            expiry_date         DATE,
            requested_date      TIMESTAMPTZ DEFAULT NOW(),
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_authorizations_employee ON authorizations(employee_id)")
    op.execute("CREATE INDEX ix_authorizations_status   ON authorizations(status)")

    # ── 9. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id  UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type          notification_type DEFAULT 'info',
            event_type    VARCHAR(50),
            title         VARCHAR(200) NOT NULL,
            message       TEXT NOT NULL,
            action_url    VARCHAR(500),
            entity_type   VARCHAR(50),
            entity_id     UUID,
            payload       JSONB,
            is_read       BOOLEAN DEFAULT FALSE,
            read_at       TIMESTAMPTZ,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_notifications_recipient_unread
            ON notifications(recipient_id, is_read)
    """)

    # ── 10. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES users(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            ip_address   INET,
            user_agent   TEXT,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "notifications",
        "authorizations",
        "approval_tokens",
        "leave_applications",
        "leave_balances",
        "leave_types",
        "user_permissions",
        "permissions",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
