import json
import re
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ...domain.errors import AccountError, ErrorKind
from ...domain.models import TokenPurpose, User, UserProfile, UserRole
from ...domain.ports.persistence import UserRepository

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_TOKEN_COLUMNS = {
    TokenPurpose.EMAIL_VERIFICATION: "verification_token_hash",
    TokenPurpose.PASSWORD_RESET: "reset_token_hash",
}

_EXPIRY_COLUMNS = {
    TokenPurpose.EMAIL_VERIFICATION: "verification_expires_at",
    TokenPurpose.PASSWORD_RESET: "reset_expires_at",
}

# Columns added after the first release; created on startup when missing.
_MIGRATED_COLUMNS = {
    "last_login_at": "TEXT",
    "profile": "TEXT NOT NULL DEFAULT '{}'",
}


class SQLiteUserStore(UserRepository):
    """SQLite-backed credential store."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'standard',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    is_email_verified INTEGER NOT NULL DEFAULT 0,
                    verification_token_hash TEXT,
                    verification_expires_at TEXT,
                    reset_token_hash TEXT,
                    reset_expires_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_verification_token
                    ON users(verification_token_hash);

                CREATE INDEX IF NOT EXISTS idx_users_reset_token
                    ON users(reset_token_hash);
                """
            )
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        with self._lock:
            cur = self._conn.execute("PRAGMA table_info(users)")
            columns = {row[1] for row in cur.fetchall()}
        for column, ddl in _MIGRATED_COLUMNS.items():
            if column not in columns:
                with self._lock, self._conn:
                    self._conn.execute(f"ALTER TABLE users ADD COLUMN {column} {ddl}")

    def close(self) -> None:
        self._conn.close()

    # UserRepository API -----------------------------------------------------
    def get_user_by_email(self, email: str, include_password: bool = False) -> Optional[User]:
        normalized = email.strip().lower()
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE email = ?", (normalized,))
            row = cur.fetchone()
        return self._row_to_user(row, include_password) if row else None

    def get_user_by_id(self, user_id: int, include_password: bool = False) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row, include_password) if row else None

    def get_user_by_token_hash(self, purpose: TokenPurpose, token_hash: str) -> Optional[User]:
        column = _TOKEN_COLUMNS[purpose]
        with self._lock:
            cur = self._conn.execute(f"SELECT * FROM users WHERE {column} = ?", (token_hash,))
            row = cur.fetchone()
        return self._row_to_user(row, include_password=False) if row else None

    def consume_token(self, user_id: int, purpose: TokenPurpose, token_hash: str) -> Optional[User]:
        """Clear the ``purpose`` slot only if it still holds ``token_hash``.

        Returns the updated user, or ``None`` when the slot was already used
        or superseded. Check and write happen in one transaction, so a token
        is consumed at most once.
        """
        column = _TOKEN_COLUMNS[purpose]
        expiry_column = _EXPIRY_COLUMNS[purpose]
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"UPDATE users SET {column} = NULL, {expiry_column} = NULL, updated_at = ? "
                f"WHERE id = ? AND {column} = ?",
                (self._now(), user_id, token_hash),
            )
            if cur.rowcount == 0:
                return None
            row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row, include_password=False) if row else None

    def save_user(self, user: User) -> User:
        self._validate(user)
        include_password = user.password_hash is not None
        now = self._now()
        values: Dict[str, Any] = {
            "email": user.email,
            "name": user.name.strip(),
            "role": user.role.value,
            "is_active": int(user.is_active),
            "is_email_verified": int(user.is_email_verified),
            "verification_token_hash": user.verification_token_hash,
            "verification_expires_at": self._format_datetime(user.verification_expires_at),
            "reset_token_hash": user.reset_token_hash,
            "reset_expires_at": self._format_datetime(user.reset_expires_at),
            "last_login_at": self._format_datetime(user.last_login_at),
            "profile": json.dumps(user.profile.to_dict(), ensure_ascii=False),
            "updated_at": now,
        }
        if include_password:
            values["password_hash"] = user.password_hash

        try:
            with self._lock, self._conn:
                if user.id is None:
                    if not include_password:
                        raise AccountError(ErrorKind.VALIDATION_FAILED, "Password is required.")
                    values["created_at"] = now
                    columns = ", ".join(values)
                    placeholders = ", ".join("?" for _ in values)
                    cur = self._conn.execute(
                        f"INSERT INTO users ({columns}) VALUES ({placeholders})",
                        tuple(values.values()),
                    )
                    user_id = cur.lastrowid
                else:
                    assignments = ", ".join(f"{column} = ?" for column in values)
                    cur = self._conn.execute(
                        f"UPDATE users SET {assignments} WHERE id = ?",
                        (*values.values(), user.id),
                    )
                    if cur.rowcount == 0:
                        raise AccountError(ErrorKind.NOT_FOUND, "User not found.")
                    user_id = user.id
                cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
                row = cur.fetchone()
        except sqlite3.IntegrityError as exc:
            raise AccountError(ErrorKind.CONFLICT, "Email already registered") from exc
        if not row:
            raise RuntimeError("Failed to persist user.")
        return self._row_to_user(row, include_password)

    # Helpers ----------------------------------------------------------------
    @staticmethod
    def _validate(user: User) -> None:
        if not _EMAIL_PATTERN.match(user.email):
            raise AccountError(ErrorKind.VALIDATION_FAILED, "Valid email is required")
        if not user.name or not user.name.strip():
            raise AccountError(ErrorKind.VALIDATION_FAILED, "Name is required")
        if not isinstance(user.role, UserRole):
            raise AccountError(ErrorKind.VALIDATION_FAILED, f"Unknown role {user.role!r}")

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _format_datetime(value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        result = datetime.fromisoformat(value)
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _row_to_user(self, row: sqlite3.Row, include_password: bool) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            password_hash=row["password_hash"] if include_password else None,
            role=UserRole(row["role"]),
            is_active=bool(row["is_active"]),
            is_email_verified=bool(row["is_email_verified"]),
            verification_token_hash=row["verification_token_hash"],
            verification_expires_at=self._parse_datetime(row["verification_expires_at"]),
            reset_token_hash=row["reset_token_hash"],
            reset_expires_at=self._parse_datetime(row["reset_expires_at"]),
            last_login_at=self._parse_datetime(row["last_login_at"]),
            profile=UserProfile.from_dict(json.loads(row["profile"] or "{}")),
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )
