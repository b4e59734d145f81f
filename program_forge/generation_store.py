"""
SQLite persistence for program generation records.

Status only moves forward: pending -> processing -> completed | failed.
Every transition is a conditional UPDATE keyed on the current status,
version and lease token, so a second writer holding a stale lease changes
nothing and gets a LeaseConflictError.
"""

import json
import os
import sqlite3
import threading
import uuid
from collections import namedtuple
from contextlib import contextmanager

from loguru import logger

from program_forge.errors import LeaseConflictError, RecordNotFoundError


PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)
TERMINAL_STATUSES = (COMPLETED, FAILED)

JSON_COLUMNS = (
    "error",
    "program_content",
    "validation_issues",
    "generation_metadata",
    "onboarding_snapshot",
)

Lease = namedtuple("Lease", ["program_id", "version", "token"])


def _dumps(value):
    if value is None:
        return None
    return json.dumps(value, sort_keys=True)


class GenerationStore:
    """Small SQLite wrapper for generation record storage."""

    def __init__(self, db_path):
        self.db_path = db_path
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()

    def close(self):
        self.conn.close()

    @contextmanager
    def transaction(self):
        """Context manager for atomic write operations."""
        with self._lock:
            try:
                yield
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    def init_schema(self):
        """Create core schema if it does not already exist."""
        with self._lock:
            self.conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS generation_records (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
                    version INTEGER NOT NULL DEFAULT 1,
                    lease_token TEXT,
                    error TEXT,
                    program_content TEXT,
                    validation_issues TEXT,
                    is_valid INTEGER,
                    generation_metadata TEXT,
                    onboarding_snapshot TEXT NOT NULL,
                    processing_started_at TEXT,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
                );

                CREATE TABLE IF NOT EXISTS generation_status_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    program_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    FOREIGN KEY(program_id) REFERENCES generation_records(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_generation_records_user
                    ON generation_records(user_id);
                CREATE INDEX IF NOT EXISTS idx_generation_records_status
                    ON generation_records(status, processing_started_at);
                CREATE INDEX IF NOT EXISTS idx_generation_status_events_program
                    ON generation_status_events(program_id);
                """
            )
            self.conn.commit()

    def _record_event(self, program_id, status, version):
        self.conn.execute(
            "INSERT INTO generation_status_events (program_id, status, version) VALUES (?, ?, ?)",
            (program_id, status, version),
        )

    @staticmethod
    def _row_to_record(row):
        record = dict(row)
        for column in JSON_COLUMNS:
            if record.get(column) is not None:
                record[column] = json.loads(record[column])
        if record.get("is_valid") is not None:
            record["is_valid"] = bool(record["is_valid"])
        return record

    def create_record(self, user_id, onboarding_snapshot):
        """Insert a pending record and return it."""
        program_id = str(uuid.uuid4())
        with self.transaction():
            self.conn.execute(
                """
                INSERT INTO generation_records (id, user_id, status, version, onboarding_snapshot)
                VALUES (?, ?, 'pending', 1, ?)
                """,
                (program_id, user_id, _dumps(onboarding_snapshot)),
            )
            self._record_event(program_id, PENDING, 1)
        logger.info(f"Created generation record {program_id} for user {user_id}")
        return self.get_record(program_id)

    def get_record(self, program_id):
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM generation_records WHERE id = ?",
                (program_id,),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def require_record(self, program_id):
        record = self.get_record(program_id)
        if record is None:
            raise RecordNotFoundError(program_id)
        return record

    def list_records(self, user_id):
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM generation_records WHERE user_id = ? ORDER BY created_at, rowid",
                (user_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def status_history(self, program_id):
        """Return the ordered list of statuses a record has passed through."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT status FROM generation_status_events WHERE program_id = ? ORDER BY id",
                (program_id,),
            ).fetchall()
        return [row["status"] for row in rows]

    def claim_for_processing(self, program_id):
        """
        Move a pending record to processing and hand out a lease.

        Returns:
            Lease, or None when the record is missing or not pending
        """
        token = uuid.uuid4().hex
        with self.transaction():
            cursor = self.conn.execute(
                """
                UPDATE generation_records
                SET status = 'processing',
                    version = version + 1,
                    lease_token = ?,
                    processing_started_at = datetime('now'),
                    updated_at = datetime('now')
                WHERE id = ? AND status = 'pending'
                """,
                (token, program_id),
            )
            if cursor.rowcount != 1:
                return None
            version = self.conn.execute(
                "SELECT version FROM generation_records WHERE id = ?",
                (program_id,),
            ).fetchone()["version"]
            self._record_event(program_id, PROCESSING, version)

        logger.info(f"Claimed {program_id} for processing at version {version}")
        return Lease(program_id, int(version), token)

    def _finish(self, lease, status, assignments, params):
        with self.transaction():
            cursor = self.conn.execute(
                f"""
                UPDATE generation_records
                SET status = ?,
                    version = version + 1,
                    lease_token = NULL,
                    {assignments},
                    updated_at = datetime('now')
                WHERE id = ? AND status = 'processing' AND version = ? AND lease_token = ?
                """,
                (status, *params, lease.program_id, lease.version, lease.token),
            )
            if cursor.rowcount != 1:
                raise LeaseConflictError(lease.program_id, PROCESSING, lease.version)
            self._record_event(lease.program_id, status, lease.version + 1)

        logger.info(f"Program {lease.program_id} -> {status} at version {lease.version + 1}")
        return self.get_record(lease.program_id)

    def complete(self, lease, program_content, validation_issues, is_valid, metadata=None):
        """Persist the normalized program and validation issues; mark completed."""
        return self._finish(
            lease,
            COMPLETED,
            "program_content = ?, validation_issues = ?, is_valid = ?, generation_metadata = ?",
            (_dumps(program_content), _dumps(validation_issues), int(bool(is_valid)), _dumps(metadata)),
        )

    def fail(self, lease, error, metadata=None):
        """Persist a sanitized error payload; mark failed."""
        return self._finish(
            lease,
            FAILED,
            "error = ?, generation_metadata = ?",
            (_dumps(error), _dumps(metadata)),
        )

    def find_stale_processing(self, older_than_seconds):
        """Return processing records whose claim is older than the given age."""
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT *
                FROM generation_records
                WHERE status = 'processing'
                  AND processing_started_at <= datetime('now', ?)
                ORDER BY processing_started_at
                """,
                (f"-{int(older_than_seconds)} seconds",),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count_summary(self):
        """Return record counts per status for quick sanity checks."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT status, COUNT(*) AS c FROM generation_records GROUP BY status"
            ).fetchall()
        summary = {status: 0 for status in STATUSES}
        for row in rows:
            summary[row["status"]] = int(row["c"])
        return summary
