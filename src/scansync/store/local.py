"""SQLite-backed durable store for scanned-code records."""

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from scansync.errors import PersistenceError
from scansync.store.models import Record, SyncState

logger = logging.getLogger(__name__)

_COLUMNS = (
    "seq, id, payload, symbology, created_at, sync_state, "
    "remote_id, attempts, last_error, rejected"
)


class LocalStore:
    """Durable, single-device record store.

    Every mutation runs in its own transaction and is committed before the
    call returns, so a crash never leaves a half-written record and every
    acknowledged insert is visible exactly once after a restart.

    State transitions are compare-and-set on ``sync_state`` for a single
    record. Calling them on an unknown id is a no-op.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the store.

        Args:
            db_path: Path to the SQLite database file

        Raises:
            PersistenceError: If the database cannot be opened or initialized
        """
        self.db_path = db_path
        self._lock = threading.Lock()

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=FULL")
            self._create_table()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open local store at {db_path}: {e}") from e

    def _create_table(self) -> None:
        """Create the records table if it doesn't exist."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    payload TEXT NOT NULL CHECK (payload <> ''),
                    symbology TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    sync_state TEXT NOT NULL DEFAULT 'pending',
                    remote_id TEXT,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    rejected INTEGER NOT NULL DEFAULT 0
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_records_state_seq
                ON records (sync_state, seq)
            """)

    def _write(self, sql: str, params: tuple) -> int:
        """Run one mutating statement in its own transaction.

        Returns:
            Number of rows changed
        """
        with self._lock:
            try:
                with self._conn:
                    cursor = self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise PersistenceError(f"Local store write failed: {e}") from e
            return cursor.rowcount

    def _query(self, sql: str, params: tuple = ()) -> list[Record]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"Local store read failed: {e}") from e
        return [self._to_record(row) for row in rows]

    @staticmethod
    def _to_record(row: sqlite3.Row) -> Record:
        return Record(
            id=row["id"],
            payload=row["payload"],
            symbology=row["symbology"],
            created_at=datetime.fromisoformat(row["created_at"]),
            sync_state=SyncState(row["sync_state"]),
            seq=row["seq"],
            remote_id=row["remote_id"],
            attempts=row["attempts"],
            last_error=row["last_error"],
            rejected=bool(row["rejected"]),
        )

    def insert(self, payload: str, symbology: str) -> Record:
        """Persist a new Pending record.

        Args:
            payload: Decoded content of the scan (non-empty)
            symbology: Code format tag

        Returns:
            The stored record

        Raises:
            PersistenceError: If the record could not be written
        """
        record_id = str(uuid.uuid4())
        # Wall clock, display only; seq carries capture order
        now = datetime.now(timezone.utc).isoformat(timespec="microseconds")

        self._write(
            """
            INSERT INTO records (id, payload, symbology, created_at, sync_state)
            VALUES (?, ?, ?, ?, 'pending')
            """,
            (record_id, payload, symbology, now),
        )
        record = self.get(record_id)
        if record is None:
            raise PersistenceError(f"Record {record_id} missing after insert")
        logger.debug("Record stored: id=%s, symbology=%s", record_id, symbology)
        return record

    def get(self, record_id: str) -> Record | None:
        """Get a record by id, or None if it does not exist."""
        rows = self._query(f"SELECT {_COLUMNS} FROM records WHERE id = ?", (record_id,))
        return rows[0] if rows else None

    def list_visible(self) -> list[Record]:
        """All records not pending deletion, most recently captured first."""
        return self._query(
            f"""
            SELECT {_COLUMNS} FROM records
            WHERE sync_state != 'delete_pending'
            ORDER BY seq DESC
            """
        )

    def list_by_state(self, state: SyncState, include_rejected: bool = True) -> list[Record]:
        """Records in the given state, in capture order.

        Args:
            state: Sync state to select
            include_rejected: Whether to include records the remote rejected
        """
        sql = f"SELECT {_COLUMNS} FROM records WHERE sync_state = ?"
        if not include_rejected:
            sql += " AND rejected = 0"
        sql += " ORDER BY seq ASC"
        return self._query(sql, (state.value,))

    def mark_synced(self, record_id: str, remote_id: str) -> bool:
        """Transition Pending -> Synced once the remote acknowledged creation.

        Returns:
            True if the record changed state
        """
        changed = self._write(
            """
            UPDATE records
            SET sync_state = 'synced', remote_id = ?, last_error = NULL, rejected = 0
            WHERE id = ? AND sync_state = 'pending'
            """,
            (remote_id, record_id),
        )
        return changed == 1

    def mark_delete_pending(self, record_id: str) -> bool:
        """Transition Synced -> DeletePending, hiding the record locally.

        Returns:
            True if the record changed state
        """
        changed = self._write(
            """
            UPDATE records SET sync_state = 'delete_pending'
            WHERE id = ? AND sync_state = 'synced'
            """,
            (record_id,),
        )
        return changed == 1

    def purge(self, record_id: str) -> bool:
        """Physically remove a record. No-op if it is already gone."""
        return self._write("DELETE FROM records WHERE id = ?", (record_id,)) == 1

    def purge_if_pending(self, record_id: str) -> bool:
        """Physically remove a record only if it was never synced."""
        changed = self._write(
            "DELETE FROM records WHERE id = ? AND sync_state = 'pending'",
            (record_id,),
        )
        return changed == 1

    def record_failure(self, record_id: str, error: str, rejected: bool = False) -> None:
        """Note a failed remote attempt without touching sync_state.

        Args:
            record_id: Record id
            error: Error message from the failed attempt
            rejected: Flag the record as permanently rejected by the remote
        """
        self._write(
            """
            UPDATE records
            SET attempts = attempts + 1,
                last_error = ?,
                rejected = CASE WHEN ? THEN 1 ELSE rejected END
            WHERE id = ?
            """,
            (error, int(rejected), record_id),
        )

    def clear_rejected(self, record_id: str) -> bool:
        """Make a rejected record eligible for sync again."""
        changed = self._write(
            """
            UPDATE records SET rejected = 0
            WHERE id = ? AND rejected = 1
            """,
            (record_id,),
        )
        return changed == 1

    def get_stats(self) -> dict[str, int]:
        """Get record counts by sync state.

        Returns:
            Dictionary with counts per state plus rejected and total
        """
        with self._lock:
            try:
                rows = self._conn.execute(
                    """
                    SELECT sync_state, COUNT(*) AS count, SUM(rejected) AS rejected
                    FROM records
                    GROUP BY sync_state
                    """
                ).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"Local store read failed: {e}") from e

        stats = {state.value: 0 for state in SyncState}
        stats.update({"rejected": 0, "total": 0})
        for row in rows:
            stats[row["sync_state"]] = row["count"]
            stats["rejected"] += row["rejected"] or 0
            stats["total"] += row["count"]
        return stats

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
