"""Persistent OAuth token storage keyed by (integration, subject)."""

from __future__ import annotations

import asyncio
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TYPE_CHECKING

import boto3

from app.core.config import StorageSettings
from app.core.errors import NotConnectedError
from app.models.oauth import Integration, TokenRecord, utcnow

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from app.services.token_cipher import TokenCipherService


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TokenStore(ABC):
    """
    Durable storage for exactly one token record per subject.

    Access and refresh tokens are encrypted before they reach the backend.
    Backend calls are blocking and run in a worker thread. Nothing is cached:
    every ``get`` reads the backend.
    """

    def __init__(self, cipher: TokenCipherService) -> None:
        self._cipher = cipher

    async def get(self, integration: Integration, subject: str) -> TokenRecord:
        """Return the stored record or raise ``NotConnectedError``."""
        row = await asyncio.to_thread(self._read, integration, subject)
        if row is None:
            raise NotConnectedError(
                f"{integration.value} is not connected for {subject}.",
                integration=integration.value,
            )
        return self._decode(integration, subject, row)

    async def upsert(
        self, integration: Integration, subject: str, record: TokenRecord
    ) -> TokenRecord:
        """Insert or overwrite the record for the subject; last write wins."""
        stored = record.model_copy(
            update={"integration": integration, "subject": subject, "updated_at": utcnow()}
        )
        row = await asyncio.to_thread(self._persist, integration, subject, self._encode(stored))
        return self._decode(integration, subject, row)

    def _persist(
        self, integration: Integration, subject: str, row: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Write the row and read it back; backends may keep fields such as created_at."""
        self._write(integration, subject, row)
        stored = self._read(integration, subject)
        return stored if stored is not None else row

    def _encode(self, record: TokenRecord) -> Dict[str, Any]:
        return {
            "access_token_encrypted": self._cipher.encrypt(record.access_token),
            "refresh_token_encrypted": self._cipher.encrypt(record.refresh_token),
            "expires_at": record.expires_at.isoformat(),
            "scope": record.scope,
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }

    def _decode(
        self, integration: Integration, subject: str, row: Dict[str, Any]
    ) -> TokenRecord:
        return TokenRecord(
            integration=integration,
            subject=subject,
            access_token=self._cipher.decrypt(row["access_token_encrypted"]),
            refresh_token=self._cipher.decrypt(row["refresh_token_encrypted"]),
            expires_at=_parse_timestamp(row["expires_at"]),
            scope=row.get("scope"),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    @abstractmethod
    def _read(self, integration: Integration, subject: str) -> Optional[Dict[str, Any]]:
        """Return the raw row for the key, or None."""

    @abstractmethod
    def _write(self, integration: Integration, subject: str, row: Dict[str, Any]) -> None:
        """Insert or overwrite the raw row for the key."""


class SQLiteTokenStore(TokenStore):
    """Relational backend; the composite primary key enforces one row per subject."""

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        super().__init__(cipher)
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_tokens (
                    integration TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    access_token_encrypted TEXT NOT NULL,
                    refresh_token_encrypted TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    scope TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (integration, subject)
                )
                """
            )

    def _read(self, integration: Integration, subject: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM oauth_tokens WHERE integration = ? AND subject = ?",
                (integration.value, subject),
            ).fetchone()
        return dict(row) if row else None

    def _write(self, integration: Integration, subject: str, row: Dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_tokens (
                    integration, subject, access_token_encrypted,
                    refresh_token_encrypted, expires_at, scope, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(integration, subject) DO UPDATE SET
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = excluded.refresh_token_encrypted,
                    expires_at = excluded.expires_at,
                    scope = excluded.scope,
                    updated_at = excluded.updated_at
                """,
                (
                    integration.value,
                    subject,
                    row["access_token_encrypted"],
                    row["refresh_token_encrypted"],
                    row["expires_at"],
                    row["scope"],
                    row["created_at"],
                    row["updated_at"],
                ),
            )


class DynamoDBTokenStore(TokenStore):
    """DynamoDB backend; ``put_item`` on the (pk, sk) key overwrites in place."""

    def __init__(
        self,
        cipher: TokenCipherService,
        *,
        settings: StorageSettings | None = None,
        table: Any = None,
    ) -> None:
        super().__init__(cipher)
        if table is None:
            if settings is None or not settings.dynamodb_table_name:
                raise ValueError("A DynamoDB table name is required.")
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table

    @staticmethod
    def _key(integration: Integration, subject: str) -> Dict[str, str]:
        return {"pk": f"subject#{subject}", "sk": f"oauth#{integration.value}"}

    def _read(self, integration: Integration, subject: str) -> Optional[Dict[str, Any]]:
        response = self._table.get_item(Key=self._key(integration, subject))
        return response.get("Item")

    def _write(self, integration: Integration, subject: str, row: Dict[str, Any]) -> None:
        existing = self._read(integration, subject)
        if existing and existing.get("created_at"):
            row = {**row, "created_at": existing["created_at"]}
        item = {**self._key(integration, subject), **row}
        if item.get("scope") is None:
            item.pop("scope", None)
        self._table.put_item(Item=item)


def build_token_store(
    settings: StorageSettings, cipher: TokenCipherService
) -> TokenStore:
    """Construct the backend selected by ``TOKEN_STORE_BACKEND``."""
    if settings.backend == "dynamodb":
        return DynamoDBTokenStore(cipher, settings=settings)
    return SQLiteTokenStore(settings.sqlite_path, cipher)


__all__ = [
    "DynamoDBTokenStore",
    "SQLiteTokenStore",
    "TokenStore",
    "build_token_store",
]
