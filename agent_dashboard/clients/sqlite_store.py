"""SQLite persistence for OAuth tokens and pending authorization states."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import SecretStr

from agent_dashboard.core.errors import StorageFailure
from agent_dashboard.models.oauth import Provider, Service, TokenRecord

if TYPE_CHECKING:
    from agent_dashboard.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class _SQLiteDatabase:
    """Connection handling shared by the token and state tables."""

    _SCHEMA: str = ""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        self._execute(self._SCHEMA)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = None
        try:
            conn = self._connect()
            with conn:
                return conn.execute(sql, params)
        except sqlite3.Error as exc:
            logger.error("SQLite operation failed on %s: %s", self._db_path, exc)
            raise StorageFailure("Token storage is unavailable.") from exc
        finally:
            if conn is not None:
                conn.close()

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = None
        try:
            conn = self._connect()
            return conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            logger.error("SQLite read failed on %s: %s", self._db_path, exc)
            raise StorageFailure("Token storage is unavailable.") from exc
        finally:
            if conn is not None:
                conn.close()


class SQLiteTokenStore(_SQLiteDatabase):
    """Token records keyed by (user_id, provider, service), encrypted at rest."""

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS oauth_tokens (
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            service TEXT NOT NULL,
            access_token_encrypted TEXT NOT NULL,
            refresh_token_encrypted TEXT,
            token_type TEXT NOT NULL DEFAULT 'Bearer',
            scope TEXT NOT NULL DEFAULT '',
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (user_id, provider, service)
        )
    """

    def __init__(self, db_path: str, *, cipher: "TokenCipherService") -> None:
        self._cipher = cipher
        super().__init__(db_path)

    def put(self, record: TokenRecord) -> None:
        """Insert or overwrite the record for its key in a single statement."""
        refresh = record.refresh_token.get_secret_value() if record.refresh_token else None
        self._execute(
            """
            INSERT INTO oauth_tokens (
                user_id, provider, service, access_token_encrypted,
                refresh_token_encrypted, token_type, scope, expires_at,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, provider, service) DO UPDATE SET
                access_token_encrypted = excluded.access_token_encrypted,
                refresh_token_encrypted = excluded.refresh_token_encrypted,
                token_type = excluded.token_type,
                scope = excluded.scope,
                expires_at = excluded.expires_at,
                updated_at = excluded.updated_at
            """,
            (
                record.user_id,
                record.provider.value,
                record.service.value,
                self._cipher.encrypt(record.access_token.get_secret_value()),
                self._cipher.encrypt_optional(refresh),
                record.token_type,
                record.scope,
                _to_iso(record.expires_at),
                _to_iso(record.created_at),
                _to_iso(record.updated_at),
            ),
        )

    def get(
        self, user_id: str, provider: Provider, service: Service
    ) -> Optional[TokenRecord]:
        """
        Return the stored record or ``None``.

        Raises ``TokenDecryptionError`` when the row exists but its ciphertext
        no longer decrypts.
        """
        row = self._fetchone(
            """
            SELECT * FROM oauth_tokens
            WHERE user_id = ? AND provider = ? AND service = ?
            """,
            (user_id, Provider(provider).value, Service(service).value),
        )
        if not row:
            return None
        refresh_encrypted = row["refresh_token_encrypted"]
        return TokenRecord(
            user_id=row["user_id"],
            provider=row["provider"],
            service=row["service"],
            access_token=SecretStr(self._cipher.decrypt(row["access_token_encrypted"])),
            refresh_token=(
                SecretStr(self._cipher.decrypt(refresh_encrypted))
                if refresh_encrypted
                else None
            ),
            token_type=row["token_type"],
            scope=row["scope"],
            expires_at=_from_iso(row["expires_at"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def exists(self, user_id: str, provider: Provider, service: Service) -> bool:
        row = self._fetchone(
            """
            SELECT 1 FROM oauth_tokens
            WHERE user_id = ? AND provider = ? AND service = ?
            """,
            (user_id, Provider(provider).value, Service(service).value),
        )
        return row is not None

    def count(self, user_id: str | None = None) -> int:
        if user_id is None:
            row = self._fetchone("SELECT COUNT(*) AS n FROM oauth_tokens")
        else:
            row = self._fetchone(
                "SELECT COUNT(*) AS n FROM oauth_tokens WHERE user_id = ?", (user_id,)
            )
        return int(row["n"]) if row else 0


class SQLiteStateStore(_SQLiteDatabase):
    """Single-use nonces for in-flight authorization requests."""

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS oauth_states (
            nonce TEXT PRIMARY KEY,
            provider TEXT NOT NULL,
            expires_at TEXT NOT NULL
        )
    """

    def issue(self, nonce: str, *, provider: Provider, expires_at: datetime) -> None:
        self._execute(
            "INSERT INTO oauth_states (nonce, provider, expires_at) VALUES (?, ?, ?)",
            (nonce, Provider(provider).value, _to_iso(expires_at)),
        )

    def consume(self, nonce: str, *, now: datetime | None = None) -> bool:
        """Delete an unexpired nonce; ``True`` only for the first caller."""
        current = _to_iso(now or datetime.now(timezone.utc))
        cursor = self._execute(
            "DELETE FROM oauth_states WHERE nonce = ? AND expires_at > ?",
            (nonce, current),
        )
        return cursor.rowcount == 1

    def purge_expired(self, *, now: datetime | None = None) -> int:
        current = _to_iso(now or datetime.now(timezone.utc))
        cursor = self._execute(
            "DELETE FROM oauth_states WHERE expires_at <= ?", (current,)
        )
        return cursor.rowcount


def _to_iso(value: datetime) -> str:
    """Normalize to UTC so lexical comparison in SQL matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["SQLiteStateStore", "SQLiteTokenStore"]
