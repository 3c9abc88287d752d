"""SQLite-backed repository for credentials, vendor accounts and normalized records."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from fieldsync.core.ports import NormalizedRecord
from fieldsync.models.oauth import VendorAccountRecord


class SQLiteStore:
    """Implements the credential, account and record repositories on one database file."""

    def __init__(self, db_path: str) -> None:
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
                CREATE TABLE IF NOT EXISTS credentials (
                    tenant_id TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, provider)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    tenant_id TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (tenant_id, provider)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    tenant_id TEXT NOT NULL,
                    vendor_record_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (tenant_id, vendor_record_id)
                )
                """
            )

    def load_credential(self, tenant_id: str, provider: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM credentials WHERE tenant_id = ? AND provider = ?",
                (tenant_id, provider),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["data"])

    def save_credential(self, tenant_id: str, provider: str, record: Dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO credentials (tenant_id, provider, data)
                VALUES (?, ?, ?)
                ON CONFLICT(tenant_id, provider) DO UPDATE SET data = excluded.data
                """,
                (tenant_id, provider, json.dumps(record)),
            )

    def delete_credential(self, tenant_id: str, provider: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM credentials WHERE tenant_id = ? AND provider = ?",
                (tenant_id, provider),
            )

    def load_account(self, tenant_id: str, provider: str) -> Optional[VendorAccountRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM accounts WHERE tenant_id = ? AND provider = ?",
                (tenant_id, provider),
            ).fetchone()
        if not row:
            return None
        return VendorAccountRecord.model_validate_json(row["data"])

    def save_account(self, account: VendorAccountRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO accounts (tenant_id, provider, data)
                VALUES (?, ?, ?)
                ON CONFLICT(tenant_id, provider) DO UPDATE SET data = excluded.data
                """,
                (account.tenant_id, account.provider, account.model_dump_json()),
            )

    def exists_by_vendor_id(self, tenant_id: str, vendor_record_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM records WHERE tenant_id = ? AND vendor_record_id = ?",
                (tenant_id, vendor_record_id),
            ).fetchone()
        return row is not None

    def append_normalized_record(self, tenant_id: str, record: NormalizedRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO records (tenant_id, vendor_record_id, data) VALUES (?, ?, ?)",
                (tenant_id, record.dedup_key, record.model_dump_json()),
            )

    def list_records(self, tenant_id: str, *, key_prefix: str = "") -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT data FROM records
                WHERE tenant_id = ? AND vendor_record_id LIKE ?
                ORDER BY created_at, vendor_record_id
                """,
                (tenant_id, f"{key_prefix}%"),
            ).fetchall()
        return [json.loads(row["data"]) for row in rows]


__all__ = ["SQLiteStore"]
