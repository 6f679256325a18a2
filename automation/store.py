"""SQLite audit log of card automation attempts."""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from .errors import RecordStateError
from .models import (
    AttemptAction,
    AttemptRecord,
    AttemptStatus,
    EncryptedPayment,
    ErrorDetail,
    FailureOutcome,
    Outcome,
    RecordPage,
    SuccessOutcome,
    utc_now,
)

MAX_PAGE_SIZE = 100


class AuditStore(Protocol):
    def create_pending_record(
        self,
        subject_id: str,
        action: AttemptAction,
        card_last_four: Optional[str],
        card_holder_name: Optional[str],
    ) -> str: ...

    def finalize_record(self, record_id: str, outcome: Outcome) -> AttemptRecord: ...

    def get_record(self, record_id: str) -> Optional[AttemptRecord]: ...

    def list_records(self, subject_id: str, page: int = 1, page_size: int = 10) -> RecordPage: ...


class SqliteAuditStore:
    def __init__(self, path: str | Path, wal: bool = True) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal and self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS attempt_records (
                record_id TEXT PRIMARY KEY,
                subject_id TEXT NOT NULL,
                action TEXT NOT NULL,
                status TEXT NOT NULL,
                card_last_four TEXT,
                card_holder_name TEXT,
                encrypted_payload TEXT,
                error_message TEXT,
                error_detail TEXT,
                diagnostic_capture_path TEXT,
                duration_ms INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_attempt_subject_created
                ON attempt_records(subject_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_attempt_status ON attempt_records(status);
            """
        )
        self._conn.commit()

    def create_pending_record(
        self,
        subject_id: str,
        action: AttemptAction,
        card_last_four: Optional[str] = None,
        card_holder_name: Optional[str] = None,
    ) -> str:
        record_id = uuid.uuid4().hex
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO attempt_records (
                    record_id, subject_id, action, status, card_last_four,
                    card_holder_name, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    subject_id,
                    AttemptAction(action).value,
                    AttemptStatus.PENDING.value,
                    card_last_four,
                    card_holder_name,
                    utc_now().isoformat(timespec="microseconds"),
                ),
            )
            self._conn.commit()
        return record_id

    def finalize_record(self, record_id: str, outcome: Outcome) -> AttemptRecord:
        payload_json: Optional[str] = None
        error_message: Optional[str] = None
        detail_json: Optional[str] = None
        if isinstance(outcome, SuccessOutcome):
            payload_json = outcome.encrypted_payload.model_dump_json()
        elif isinstance(outcome, FailureOutcome):
            error_message = outcome.error_message
            detail_json = outcome.error_detail.model_dump_json()
        else:
            raise TypeError(f"Unsupported outcome type: {type(outcome).__name__}")

        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE attempt_records
                SET status = ?, encrypted_payload = ?, error_message = ?, error_detail = ?,
                    diagnostic_capture_path = ?, duration_ms = ?, updated_at = ?
                WHERE record_id = ? AND status = ?
                """,
                (
                    outcome.status.value,
                    payload_json,
                    error_message,
                    detail_json,
                    outcome.diagnostic_capture_path,
                    outcome.duration_ms,
                    utc_now().isoformat(timespec="microseconds"),
                    record_id,
                    AttemptStatus.PENDING.value,
                ),
            )
            self._conn.commit()
            updated = cursor.rowcount
        if updated != 1:
            existing = self.get_record(record_id)
            if existing is None:
                raise RecordStateError(f"Attempt record {record_id} does not exist")
            raise RecordStateError(
                f"Attempt record {record_id} is already {existing.status.value}",
                details={"status": existing.status.value},
            )
        record = self.get_record(record_id)
        if record is None:
            raise RecordStateError(f"Attempt record {record_id} disappeared after finalisation")
        return record

    def get_record(self, record_id: str) -> Optional[AttemptRecord]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM attempt_records WHERE record_id = ?", (record_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def list_records(self, subject_id: str, page: int = 1, page_size: int = 10) -> RecordPage:
        page = max(1, int(page))
        page_size = min(MAX_PAGE_SIZE, max(1, int(page_size)))
        offset = (page - 1) * page_size
        with self._lock:
            total = self._conn.execute(
                "SELECT COUNT(*) FROM attempt_records WHERE subject_id = ?", (subject_id,)
            ).fetchone()[0]
            rows = self._conn.execute(
                """
                SELECT * FROM attempt_records
                WHERE subject_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (subject_id, page_size, offset),
            ).fetchall()
        data = [_row_to_record(row, redact=True) for row in rows]
        return RecordPage.build(data, total=total, page=page, page_size=page_size)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True


def _row_to_record(row: sqlite3.Row, *, redact: bool = False) -> AttemptRecord:
    payload = None
    if row["encrypted_payload"] and not redact:
        payload = EncryptedPayment.model_validate_json(row["encrypted_payload"])
    detail = None
    if row["error_detail"]:
        detail = ErrorDetail.model_validate(json.loads(row["error_detail"]))
    return AttemptRecord(
        record_id=row["record_id"],
        subject_id=row["subject_id"],
        action=AttemptAction(row["action"]),
        status=AttemptStatus(row["status"]),
        card_last_four=row["card_last_four"],
        card_holder_name=row["card_holder_name"],
        encrypted_payload=payload,
        error_message=row["error_message"],
        error_detail=detail,
        diagnostic_capture_path=row["diagnostic_capture_path"],
        duration_ms=row["duration_ms"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
    )
