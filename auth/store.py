"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_ticket are the mappers.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE constraint, not just a service-level check, so
  two concurrent registrations for the same address cannot both commit.

  redeem_reset_ticket() claims the ticket with a conditional UPDATE
  (used = 0 AND expires_at > now) and changes the password in the same
  transaction. If either statement touches zero rows the whole thing rolls
  back -- a ticket is never burned without the password changing, and two
  concurrent redemptions cannot both succeed.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
lexicographic comparison in SQL matches chronological order.

DB path: auth/starter_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/, notify/, or core/.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import ResetTicket, Role, User, isoformat_utc, utc_now

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL for pending accounts
    Column("role", String(16), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
)

_password_resets = Table(
    "password_resets",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and ResetTicket entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user(User(email="a@x.com", hashed_password=hash_password("pw")))
        store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Insert a user and return it with id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        The caller decides what that means (AuthService maps it to Conflict).
        """
        user_id = user.id or str(uuid.uuid4())
        created_at = user.created_at or isoformat_utc(utc_now())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    created_at=created_at,
                )
            )
            conn.commit()
        return User(
            id=user_id,
            email=user.email,
            role=Role(user.role),
            hashed_password=user.hashed_password,
            created_at=created_at,
        )

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at, _users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_by_email(self, email: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users WHERE email = :email"), {"email": email}).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Reset tickets
    # ------------------------------------------------------------------

    def create_reset_ticket(self, ticket: ResetTicket) -> ResetTicket:
        ticket_id = ticket.id or str(uuid.uuid4())
        created_at = ticket.created_at or isoformat_utc(utc_now())
        with self.engine.connect() as conn:
            conn.execute(
                _password_resets.insert().values(
                    id=ticket_id,
                    token=ticket.token,
                    user_id=ticket.user_id,
                    expires_at=ticket.expires_at,
                    used=1 if ticket.used else 0,
                    created_at=created_at,
                )
            )
            conn.commit()
        return ResetTicket(
            id=ticket_id,
            token=ticket.token,
            user_id=ticket.user_id,
            expires_at=ticket.expires_at,
            used=ticket.used,
            created_at=created_at,
        )

    def get_reset_ticket(self, token: str) -> ResetTicket | None:
        """Return the ticket for token regardless of state, or None.

        Callers use this to classify a failed redemption for logging. It is not
        a redeemability check -- redeem_reset_ticket() is.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_password_resets.select().where(_password_resets.c.token == token)).fetchone()
        return _row_to_ticket(row) if row is not None else None

    def redeem_reset_ticket(self, token: str, hashed_password: str, now: str) -> str | None:
        """Mark the ticket used and set the owner's password, atomically.

        Args:
            token:           The reset ticket bearer token.
            hashed_password: New bcrypt digest for the ticket owner.
            now:             ISO 8601 UTC timestamp; the ticket must expire after it.

        Returns the owner's user id, or None if the ticket does not exist, was
        already used, has expired, or its owner is gone. Nothing is written in
        the None case.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _password_resets.select().where(_password_resets.c.token == token)
            ).fetchone()
            if row is None:
                return None
            claimed = conn.execute(
                _password_resets.update()
                .where(
                    (_password_resets.c.id == row.id)
                    & (_password_resets.c.used == 0)
                    & (_password_resets.c.expires_at > now)
                )
                .values(used=1)
            )
            if claimed.rowcount != 1:
                conn.rollback()
                return None
            updated = conn.execute(
                _users.update().where(_users.c.id == row.user_id).values(hashed_password=hashed_password)
            )
            if updated.rowcount != 1:
                conn.rollback()
                return None
            conn.commit()
        return row.user_id

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def wipe(self) -> None:
        """Delete every reset ticket and user. Environment gating is the caller's job."""
        with self.engine.connect() as conn:
            conn.execute(_password_resets.delete())
            conn.execute(_users.delete())
            conn.commit()

    def close(self) -> None:
        """Dispose of the connection pool. Call on application shutdown."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        created_at=row.created_at,
    )


def _row_to_ticket(row) -> ResetTicket:
    return ResetTicket(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=row.expires_at,
        used=bool(row.used),
        created_at=row.created_at,
    )
