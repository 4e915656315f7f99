"""SQLite call log: one row per model attempt, success or failure.

The router only ever writes. The HTTP API reads back through find() and
find_by_id() for the web console.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Literal

from loguru import logger

CallStatus = Literal["success", "fail"]
OrderBy = Literal["timestamp", "status", "id"]
OrderDirection = Literal["asc", "desc"]


@dataclass
class LlmCallRecord:
    """One model attempt as it was sent and answered."""

    timestamp: str  # "YYYY-MM-DD HH:MM:SS", gateway timezone
    status: CallStatus
    input: str  # JSON-rendered request
    output: str  # response content, or the error text on failure
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "status": self.status,
            "input": self.input,
            "output": self.output,
        }


class LogRepository(ABC):
    """Where the router records attempts. Only insert() is required."""

    @abstractmethod
    async def insert(self, record: LlmCallRecord) -> None:
        ...


# ── Schema ──────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS llm_call_logs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp   TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('success', 'fail')),
    input       TEXT NOT NULL,
    output      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_call_logs_timestamp ON llm_call_logs(timestamp);
CREATE INDEX IF NOT EXISTS idx_call_logs_status ON llm_call_logs(status);
"""

_ORDER_COLUMNS = {"timestamp": "timestamp", "status": "status", "id": "id"}
_ORDER_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}


class CallLogRepository(LogRepository):
    """SQLite-backed call log.

    Thread-safe: one connection per thread, WAL mode so the API can read
    while the router writes. The async methods run their queries in a
    worker thread. An in-memory database lives in a single connection, so
    ":memory:" runs queries inline instead.
    """

    def __init__(self, db_path: Path | str):
        self._db_path = str(db_path)
        self._in_memory = self._db_path == ":memory:"
        if not self._in_memory:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._conn_lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local connection."""
        conn = getattr(self._local, "conn", None)
        with self._conn_lock:
            if conn is not None and conn in self._connections:
                return conn
            # close() may be called from another thread
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            self._connections.append(conn)
        self._local.conn = conn
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for a cursor with auto-commit."""
        conn = self._get_conn()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_db(self) -> None:
        with self._cursor() as cur:
            cur.executescript(SCHEMA_SQL)
        logger.debug(f"Call log DB initialized at {self._db_path}")

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._conn_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local.conn = None

    async def _run(self, fn, *args):
        if self._in_memory:
            return fn(*args)
        return await asyncio.to_thread(fn, *args)

    # ── Write ───────────────────────────────────────────────

    async def insert(self, record: LlmCallRecord) -> None:
        record.id = await self._run(self.insert_sync, record)

    def insert_sync(self, record: LlmCallRecord) -> int:
        """Insert a record. Returns the row id."""
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO llm_call_logs (timestamp, status, input, output) VALUES (?, ?, ?, ?)",
                (record.timestamp, record.status, record.input, record.output),
            )
            return cur.lastrowid or 0

    # ── Read ────────────────────────────────────────────────

    async def find(
        self,
        page: int = 1,
        limit: int = 20,
        status: CallStatus | None = None,
        start_time: str | None = None,
        end_time: str | None = None,
        order_by: OrderBy = "timestamp",
        order_direction: OrderDirection = "desc",
    ) -> tuple[list[LlmCallRecord], int]:
        """Page through logs. Returns (records on this page, total matching)."""
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")
        if order_by not in _ORDER_COLUMNS or order_direction not in _ORDER_DIRECTIONS:
            raise ValueError(f"Unsupported ordering: {order_by} {order_direction}")
        return await self._run(
            self._find_sync, page, limit, status, start_time, end_time, order_by, order_direction,
        )

    def _find_sync(
        self,
        page: int,
        limit: int,
        status: CallStatus | None,
        start_time: str | None,
        end_time: str | None,
        order_by: OrderBy,
        order_direction: OrderDirection,
    ) -> tuple[list[LlmCallRecord], int]:
        clauses: list[str] = []
        params: list[Any] = []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if start_time:
            clauses.append("timestamp >= ?")
            params.append(start_time)
        if end_time:
            clauses.append("timestamp <= ?")
            params.append(end_time)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        # Ordering values come from the whitelists above
        order = f"ORDER BY {_ORDER_COLUMNS[order_by]} {_ORDER_DIRECTIONS[order_direction]}, id {_ORDER_DIRECTIONS[order_direction]}"

        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM llm_call_logs {where}", params)
            total = cur.fetchone()["total"]
            cur.execute(
                f"SELECT * FROM llm_call_logs {where} {order} LIMIT ? OFFSET ?",
                [*params, limit, (page - 1) * limit],
            )
            records = [self._row_to_record(row) for row in cur.fetchall()]
        return records, total

    async def find_by_id(self, record_id: int) -> LlmCallRecord | None:
        return await self._run(self._find_by_id_sync, record_id)

    def _find_by_id_sync(self, record_id: int) -> LlmCallRecord | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM llm_call_logs WHERE id = ?", (record_id,))
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> LlmCallRecord:
        return LlmCallRecord(
            id=row["id"],
            timestamp=row["timestamp"],
            status=row["status"],
            input=row["input"],
            output=row["output"],
        )
