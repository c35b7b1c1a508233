import json
import sqlite3
import threading
import time
from datetime import datetime
from pathlib import Path

from uptimewatch.domain.models import MonitoredTarget, TargetConfig, TargetUpdate
from uptimewatch.storage.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    capped_copy,
    new_target,
    normalize_datetime,
)

SITE_STARTED_AT_KEY = 'site_started_at'


def _timestamp(value: datetime | None) -> str | None:
    normalized = normalize_datetime(value)
    if normalized is None:
        return None
    return normalized.isoformat(timespec='microseconds')


class SQLiteRepository:
    """Stores each target as one JSON document, history included.

    ``is_active``, ``next_ping_at`` and ``created_at`` are mirrored into
    columns so the due-set query and listing order run on an index.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._last_error: str | None = None

    def initialize(self) -> None:
        db_file = Path(self._db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)

        def init(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS targets (
                    target_id TEXT PRIMARY KEY,
                    is_active INTEGER NOT NULL,
                    next_ping_at TEXT,
                    created_at TEXT NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_targets_active_next_ping
                ON targets(is_active, next_ping_at)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS site_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

        self._run_write(init)

    def create_target(self, config: TargetConfig, now: datetime | None = None) -> MonitoredTarget:
        stored = new_target(config, now)

        def write(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO targets(target_id, is_active, next_ping_at, created_at, document)
                VALUES (?, ?, ?, ?, ?)
                """,
                self._row_values(stored),
            )

        self._run_write(write)
        return stored

    def list_targets(self) -> list[MonitoredTarget]:
        def read(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                'SELECT document FROM targets ORDER BY created_at DESC, rowid DESC'
            ).fetchall()

        rows = self._run_read(read)
        return [self._row_to_target(row) for row in rows]

    def get_target(self, target_id: str) -> MonitoredTarget | None:
        def read(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                'SELECT document FROM targets WHERE target_id = ?',
                (target_id,),
            ).fetchone()

        row = self._run_read(read)
        if row is None:
            return None
        return self._row_to_target(row)

    def update_target(self, target_id: str, update: TargetUpdate) -> MonitoredTarget | None:
        def write(conn: sqlite3.Connection) -> MonitoredTarget | None:
            current = self._select_for_update(conn, target_id)
            if current is None:
                return None
            updated = current.model_copy(update=update.changes())
            self._overwrite(conn, updated)
            return updated

        return self._run_write(write)

    def toggle_active(self, target_id: str) -> MonitoredTarget | None:
        def write(conn: sqlite3.Connection) -> MonitoredTarget | None:
            current = self._select_for_update(conn, target_id)
            if current is None:
                return None
            current.is_active = not current.is_active
            self._overwrite(conn, current)
            return current

        return self._run_write(write)

    def delete_target(self, target_id: str) -> bool:
        def write(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute('DELETE FROM targets WHERE target_id = ?', (target_id,))
            return cursor.rowcount > 0

        return self._run_write(write)

    def find_due_targets(self, now: datetime) -> list[MonitoredTarget]:
        bound = _timestamp(now)

        def read(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                """
                SELECT document FROM targets
                WHERE is_active = 1
                  AND (next_ping_at IS NULL OR next_ping_at <= ?)
                ORDER BY rowid ASC
                """,
                (bound,),
            ).fetchall()

        rows = self._run_read(read)
        return [self._row_to_target(row) for row in rows]

    def persist(self, target: MonitoredTarget) -> None:
        stored = capped_copy(target)

        def write(conn: sqlite3.Connection) -> None:
            self._overwrite(conn, stored)

        self._run_write(write)

    def count_targets(self) -> int:
        def read(conn: sqlite3.Connection) -> int:
            row = conn.execute('SELECT COUNT(*) FROM targets').fetchone()
            return int(row[0])

        return self._run_read(read)

    def count_active_targets(self) -> int:
        def read(conn: sqlite3.Connection) -> int:
            row = conn.execute('SELECT COUNT(*) FROM targets WHERE is_active = 1').fetchone()
            return int(row[0])

        return self._run_read(read)

    def site_started_at(self, now: datetime) -> datetime:
        """Return the first recorded site start, storing ``now`` if there is none."""
        candidate = _timestamp(now)

        def write(conn: sqlite3.Connection) -> str:
            conn.execute(
                'INSERT OR IGNORE INTO site_meta(key, value) VALUES (?, ?)',
                (SITE_STARTED_AT_KEY, candidate),
            )
            row = conn.execute(
                'SELECT value FROM site_meta WHERE key = ?',
                (SITE_STARTED_AT_KEY,),
            ).fetchone()
            return row['value']

        return datetime.fromisoformat(self._run_write(write))

    def get_last_error(self) -> str | None:
        return self._last_error

    def _select_for_update(
        self, conn: sqlite3.Connection, target_id: str
    ) -> MonitoredTarget | None:
        row = conn.execute(
            'SELECT document FROM targets WHERE target_id = ?',
            (target_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_target(row)

    def _overwrite(self, conn: sqlite3.Connection, target: MonitoredTarget) -> None:
        target_id, is_active, next_ping_at, _, document = self._row_values(target)
        cursor = conn.execute(
            """
            UPDATE targets
            SET is_active = ?, next_ping_at = ?, document = ?
            WHERE target_id = ?
            """,
            (is_active, next_ping_at, document, target_id),
        )
        if cursor.rowcount == 0:
            raise RepositoryNotFoundError(f'Target {target_id} does not exist')

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA busy_timeout = 5000')
        return conn

    def _run(self, fn, operation: str):
        for attempt in range(3):
            try:
                with self._lock:
                    conn = self._connect()
                    try:
                        with conn:
                            result = fn(conn)
                    finally:
                        conn.close()
                self._last_error = None
                return result
            except sqlite3.OperationalError as exc:
                if self._is_locked(exc) and attempt < 2:
                    time.sleep(0.05)
                    continue
                self._last_error = str(exc)
                raise RepositoryUnavailableError(f'SQLite {operation} operation failed') from exc
            except sqlite3.Error as exc:
                self._last_error = str(exc)
                raise RepositoryUnavailableError(f'SQLite {operation} operation failed') from exc

    def _run_write(self, fn):
        return self._run(fn, 'write')

    def _run_read(self, fn):
        return self._run(fn, 'read')

    @staticmethod
    def _is_locked(exc: sqlite3.OperationalError) -> bool:
        message = str(exc).lower()
        return 'database is locked' in message or 'database table is locked' in message

    @staticmethod
    def _row_values(target: MonitoredTarget) -> tuple[object, ...]:
        return (
            target.target_id,
            1 if target.is_active else 0,
            _timestamp(target.next_ping_at),
            _timestamp(target.created_at),
            target.model_dump_json(),
        )

    @staticmethod
    def _row_to_target(row: sqlite3.Row) -> MonitoredTarget:
        return MonitoredTarget.model_validate(json.loads(row['document']))
