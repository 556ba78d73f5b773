"""
core/database.py -- Engine factory and the shared SQLAlchemy Core schema.

Pattern: one MetaData for every table because the account aggregate spans
several tables joined by foreign keys (organization -> dogrun manager ->
auth link -> credential). Repositories in auth/store.py and accounts/store.py
import the Table objects from here; route and service code never touches SQL.

Session slot:
  auth_dog_owners.session_id / auth_dogrun_managers.session_id hold the one
  valid session id for the account. NULL means "no active session". Login
  overwrites it, revoke clears it. There is no separate sessions table.

Uniqueness:
  The signup services count existing credentials before writing. The UNIQUE
  constraints below are the backstop for two signups racing past that check.
  SQLite treats NULLs as distinct in UNIQUE constraints, so a dog owner who
  registered by phone (email NULL) never collides with another phone-only
  owner on the email constraint.

Layer rule: core/ is the kernel. No imports from api/, auth/, or accounts/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import Pool

PASSWORD_GRANT_TYPE = "PASSWORD"

metadata = MetaData()

# ---------------------------------------------------------------------------
# Domain identities
# ---------------------------------------------------------------------------

organizations = Table(
    "organizations",
    metadata,
    Column("organization_id", Integer, primary_key=True, autoincrement=True),
    Column("organization_name", String(128), nullable=False),
    Column("contact_email", String(256)),
    Column("phone_number", String(15)),
    Column("address", String(256)),
    Column("description", String(512)),
    Column("reg_at", String(32), nullable=False),
    Column("upd_at", String(32), nullable=False),
)

dog_owners = Table(
    "dog_owners",
    metadata,
    Column("dog_owner_id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(128), nullable=False),
    Column("reg_at", String(32), nullable=False),
    Column("upd_at", String(32), nullable=False),
)

dogrun_managers = Table(
    "dogrun_managers",
    metadata,
    Column("dogrun_manager_id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(128), nullable=False),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("organization_id", Integer, ForeignKey("organizations.organization_id"), nullable=False),
    Column("reg_at", String(32), nullable=False),
    Column("upd_at", String(32), nullable=False),
)

# ---------------------------------------------------------------------------
# Identity links (session slot)
# ---------------------------------------------------------------------------

auth_dog_owners = Table(
    "auth_dog_owners",
    metadata,
    Column("auth_dog_owner_id", Integer, primary_key=True, autoincrement=True),
    Column("session_id", String(64)),  # NULL = no active session
    Column("login_at", String(32), nullable=False),
    Column("dog_owner_id", Integer, ForeignKey("dog_owners.dog_owner_id"), nullable=False, unique=True),
)

auth_dogrun_managers = Table(
    "auth_dogrun_managers",
    metadata,
    Column("auth_dogrun_manager_id", Integer, primary_key=True, autoincrement=True),
    Column("session_id", String(64)),
    Column("login_at", String(32), nullable=False),
    Column(
        "dogrun_manager_id",
        Integer,
        ForeignKey("dogrun_managers.dogrun_manager_id"),
        nullable=False,
        unique=True,
    ),
)

# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

dog_owner_credentials = Table(
    "dog_owner_credentials",
    metadata,
    Column("credential_id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(256)),
    Column("phone_number", String(15)),
    Column("password_hash", Text),
    Column("grant_type", String(16), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("login_at", String(32)),
    Column(
        "auth_dog_owner_id",
        Integer,
        ForeignKey("auth_dog_owners.auth_dog_owner_id"),
        nullable=False,
        unique=True,
    ),
    UniqueConstraint("email", "grant_type", name="uq_dog_owner_credentials_email"),
    UniqueConstraint("phone_number", "grant_type", name="uq_dog_owner_credentials_phone"),
)

dogrun_manager_credentials = Table(
    "dogrun_manager_credentials",
    metadata,
    Column("credential_id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(256)),
    Column("password_hash", Text),
    Column("grant_type", String(16), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("login_at", String(32)),
    Column(
        "auth_dogrun_manager_id",
        Integer,
        ForeignKey("auth_dogrun_managers.auth_dogrun_manager_id"),
        nullable=False,
        unique=True,
    ),
    UniqueConstraint("email", "grant_type", name="uq_dogrun_manager_credentials_email"),
)


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Foreign keys are off by default in SQLite;
    without them an auth link could point at a dog owner that was rolled back.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_db_engine(db_url: str, poolclass: type[Pool] | None = None) -> Engine:
    """Build the process-wide Engine (and its connection pool).

    poolclass overrides SQLAlchemy's choice of pool; leave it unset in production.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # Sync route handlers run in the ASGI thread pool, so the same pooled
        # connection may be used from several threads.
        connect_args["check_same_thread"] = False
    engine_kwargs: dict = {"connect_args": connect_args}
    if poolclass is not None:
        engine_kwargs["poolclass"] = poolclass
    engine = create_engine(db_url, **engine_kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Idempotent -- safe to call on every startup."""
    metadata.create_all(engine)
