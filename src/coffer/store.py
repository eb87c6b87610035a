"""Vault Store - SQLite persistence of the vault record, items and content blobs.

The store only handles ciphertext: item names, comments, tags, content
references and blobs arrive already sealed by the item cipher.
"""

import json
import logging
import os
import sqlite3
import stat
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .crypto import KdfParams
from .errors import (
    CofferError,
    SerializationError,
    StorageError,
    VaultIOError,
    VaultNotInitializedError,
)
from .models import BruteForceConfig, ItemKind, ItemRecord, VaultRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS vault_record (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    kdf_params TEXT NOT NULL,
    canary BLOB NOT NULL,
    brute_force_config TEXT NOT NULL,
    failed_attempts INTEGER NOT NULL DEFAULT 0,
    last_failed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS items (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    parent_id TEXT REFERENCES items(id) ON DELETE CASCADE,
    kind TEXT NOT NULL,
    name BLOB NOT NULL,
    comments BLOB,
    tags BLOB NOT NULL,
    content_ref BLOB,
    content_mime TEXT,
    folder_type TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_parent ON items(parent_id);

CREATE TABLE IF NOT EXISTS blobs (
    id TEXT PRIMARY KEY,
    data BLOB NOT NULL
);
"""

_ITEM_COLUMNS = (
    "id, parent_id, kind, name, comments, tags, content_ref, "
    "content_mime, folder_type, created_at, updated_at"
)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map library exceptions onto the engine's error taxonomy."""
    try:
        yield
    except CofferError:
        raise
    except sqlite3.Error as e:
        raise StorageError(f"Failed to {action}: {e}") from e
    except OSError as e:
        raise VaultIOError(f"Failed to {action}: {e}") from e


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise SerializationError(f"Invalid timestamp '{value}': {e}") from e


def _row_to_item(row: sqlite3.Row) -> ItemRecord:
    return ItemRecord(
        id=row["id"],
        parent_id=row["parent_id"],
        kind=ItemKind(row["kind"]),
        name=bytes(row["name"]),
        comments=None if row["comments"] is None else bytes(row["comments"]),
        tags=bytes(row["tags"]),
        content_ref=None if row["content_ref"] is None else bytes(row["content_ref"]),
        content_mime=row["content_mime"],
        folder_type=row["folder_type"],
        created_at=_from_iso(row["created_at"]),  # type: ignore[arg-type]
        updated_at=_from_iso(row["updated_at"]),  # type: ignore[arg-type]
    )


def _connect(db_path: Path) -> sqlite3.Connection:
    """Open a connection with WAL journaling, foreign keys and secure delete."""
    conn = sqlite3.connect(
        str(db_path), check_same_thread=False, isolation_level=None
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    # Freed pages are zeroed
    conn.execute("PRAGMA secure_delete=ON")
    return conn


class VaultStore:
    """Persistent store backed by a single SQLite database file.

    Args:
        db_path: Path of the database file. Parent directories are created.

    Statements outside ``transaction()`` autocommit individually; every
    mutating engine operation wraps its statements in one transaction so a
    crash leaves either the previous or the new state.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn: Optional[sqlite3.Connection] = None
        self._open()

    # ── Connection lifecycle ─────────────────────────────────────────

    def _open(self) -> None:
        with _translate_errors("open vault database"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = _connect(self.db_path)
            conn.executescript(SCHEMA)
            # Owner read/write only (0600)
            os.chmod(self.db_path, stat.S_IRUSR | stat.S_IWUSR)
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Vault database is closed")
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically; nested calls join the outer one."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self.conn
                finally:
                    self._depth -= 1
                return

            with _translate_errors("begin transaction"):
                self.conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self.conn
            except BaseException:
                self._depth = 0
                with _translate_errors("roll back transaction"):
                    self.conn.execute("ROLLBACK")
                raise
            self._depth = 0
            try:
                self.conn.execute("COMMIT")
            except sqlite3.Error as e:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise StorageError(f"Failed to commit transaction: {e}") from e

    def _execute(self, sql: str, params: Sequence = ()) -> sqlite3.Cursor:
        with self._lock, _translate_errors("execute statement"):
            return self.conn.execute(sql, params)

    def _fetchall(self, sql: str, params: Sequence = ()) -> List[sqlite3.Row]:
        with self._lock, _translate_errors("query vault database"):
            return self.conn.execute(sql, params).fetchall()

    # ── Vault record ─────────────────────────────────────────────────

    def is_initialized(self) -> bool:
        rows = self._fetchall("SELECT 1 FROM vault_record WHERE id = 1")
        return bool(rows)

    def get_record(self) -> Optional[VaultRecord]:
        rows = self._fetchall("SELECT * FROM vault_record WHERE id = 1")
        if not rows:
            return None
        row = rows[0]
        try:
            kdf_data = json.loads(row["kdf_params"])
            bf_data = json.loads(row["brute_force_config"])
        except json.JSONDecodeError as e:
            raise SerializationError(f"Vault record is corrupted: {e}") from e
        return VaultRecord(
            kdf_params=KdfParams.from_dict(kdf_data),
            canary=bytes(row["canary"]),
            brute_force=BruteForceConfig.from_dict(bf_data),
            failed_attempts=int(row["failed_attempts"]),
            last_failed_at=_from_iso(row["last_failed_at"]),
            created_at=_from_iso(row["created_at"]),  # type: ignore[arg-type]
            updated_at=_from_iso(row["updated_at"]),  # type: ignore[arg-type]
        )

    def require_record(self) -> VaultRecord:
        record = self.get_record()
        if record is None:
            raise VaultNotInitializedError()
        return record

    def put_record(self, record: VaultRecord) -> None:
        self._execute(
            "INSERT OR REPLACE INTO vault_record (id, kdf_params, canary, "
            "brute_force_config, failed_attempts, last_failed_at, created_at, "
            "updated_at) VALUES (1, ?, ?, ?, ?, ?, ?, ?)",
            (
                json.dumps(record.kdf_params.to_dict()),
                record.canary,
                json.dumps(record.brute_force.to_dict()),
                record.failed_attempts,
                _to_iso(record.last_failed_at),
                _to_iso(record.created_at),
                _to_iso(record.updated_at),
            ),
        )

    def update_lockout_state(
        self, failed_attempts: int, last_failed_at: Optional[datetime]
    ) -> None:
        self._execute(
            "UPDATE vault_record SET failed_attempts = ?, last_failed_at = ? "
            "WHERE id = 1",
            (failed_attempts, _to_iso(last_failed_at)),
        )

    # ── Items ────────────────────────────────────────────────────────

    def insert_item(self, record: ItemRecord) -> None:
        self._execute(
            f"INSERT INTO items ({_ITEM_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.parent_id,
                record.kind.value,
                record.name,
                record.comments,
                record.tags,
                record.content_ref,
                record.content_mime,
                record.folder_type,
                _to_iso(record.created_at),
                _to_iso(record.updated_at),
            ),
        )

    def update_item(self, record: ItemRecord) -> None:
        cursor = self._execute(
            "UPDATE items SET parent_id = ?, kind = ?, name = ?, comments = ?, "
            "tags = ?, content_ref = ?, content_mime = ?, folder_type = ?, "
            "created_at = ?, updated_at = ? WHERE id = ?",
            (
                record.parent_id,
                record.kind.value,
                record.name,
                record.comments,
                record.tags,
                record.content_ref,
                record.content_mime,
                record.folder_type,
                _to_iso(record.created_at),
                _to_iso(record.updated_at),
                record.id,
            ),
        )
        if cursor.rowcount != 1:
            raise StorageError(f"Item {record.id} was not updated")

    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        rows = self._fetchall(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (item_id,)
        )
        return _row_to_item(rows[0]) if rows else None

    def children(self, parent_id: Optional[str]) -> List[ItemRecord]:
        """Direct children in creation order; ``None`` lists the root."""
        if parent_id is None:
            rows = self._fetchall(
                f"SELECT {_ITEM_COLUMNS} FROM items WHERE parent_id IS NULL ORDER BY seq"
            )
        else:
            rows = self._fetchall(
                f"SELECT {_ITEM_COLUMNS} FROM items WHERE parent_id = ? ORDER BY seq",
                (parent_id,),
            )
        return [_row_to_item(row) for row in rows]

    def all_items(self) -> List[ItemRecord]:
        rows = self._fetchall(f"SELECT {_ITEM_COLUMNS} FROM items ORDER BY seq")
        return [_row_to_item(row) for row in rows]

    def count_items(self) -> int:
        return int(self._fetchall("SELECT COUNT(*) AS n FROM items")[0]["n"])

    def descendants(self, item_id: str) -> List[ItemRecord]:
        """The item and everything beneath it, parents before children."""
        root = self.get_item(item_id)
        if root is None:
            return []
        found = [root]
        queue = [root.id]
        while queue:
            current = queue.pop()
            for child in self.children(current):
                found.append(child)
                queue.append(child.id)
        return found

    def delete_items(self, item_ids: Sequence[str]) -> int:
        if not item_ids:
            return 0
        placeholders = ",".join("?" for _ in item_ids)
        cursor = self._execute(
            f"DELETE FROM items WHERE id IN ({placeholders})", tuple(item_ids)
        )
        return cursor.rowcount

    # ── Content blobs ────────────────────────────────────────────────

    def put_blob(self, blob_id: str, data: bytes) -> None:
        self._execute(
            "INSERT OR REPLACE INTO blobs (id, data) VALUES (?, ?)", (blob_id, data)
        )

    def get_blob(self, blob_id: str) -> Optional[bytes]:
        rows = self._fetchall("SELECT data FROM blobs WHERE id = ?", (blob_id,))
        return bytes(rows[0]["data"]) if rows else None

    def all_blobs(self) -> List[Tuple[str, bytes]]:
        rows = self._fetchall("SELECT id, data FROM blobs ORDER BY id")
        return [(row["id"], bytes(row["data"])) for row in rows]

    def delete_blobs(self, blob_ids: Sequence[str]) -> None:
        if not blob_ids:
            return
        placeholders = ",".join("?" for _ in blob_ids)
        self._execute(f"DELETE FROM blobs WHERE id IN ({placeholders})", tuple(blob_ids))

    # ── Whole-database operations ────────────────────────────────────

    def backup_to(self, target: Union[str, Path]) -> None:
        """Write a consistent copy of the database to ``target``."""
        with self._lock, _translate_errors("back up vault database"):
            dest = sqlite3.connect(str(target))
            try:
                self.conn.backup(dest)
            finally:
                dest.close()

    def replace_database(self, db_bytes: bytes) -> None:
        """Atomically swap in a database image, validating it first."""
        with self._lock:
            temp_fd, temp_path = tempfile.mkstemp(
                dir=str(self.db_path.parent), prefix=".vault_tmp_", suffix=".db"
            )
            try:
                with _translate_errors("write restored database"):
                    with os.fdopen(temp_fd, "wb") as f:
                        f.write(db_bytes)
                self._validate_database(Path(temp_path))
                self.close()
                with _translate_errors("install restored database"):
                    for suffix in ("-wal", "-shm"):
                        stale = Path(str(self.db_path) + suffix)
                        if stale.exists():
                            stale.unlink()
                    os.replace(temp_path, self.db_path)
            finally:
                self._cleanup_temp(temp_path)
                if self._conn is None:
                    self._open()
        logger.info("Installed restored vault database at %s", self.db_path)

    @staticmethod
    def _validate_database(path: Path) -> None:
        with _translate_errors("validate restored database"):
            conn = sqlite3.connect(str(path))
            try:
                tables = {
                    row[0]
                    for row in conn.execute(
                        "SELECT name FROM sqlite_master WHERE type = 'table'"
                    )
                }
                if not {"vault_record", "items", "blobs"} <= tables:
                    raise StorageError("Archive does not contain a vault database")
                if conn.execute("SELECT COUNT(*) FROM vault_record").fetchone()[0] != 1:
                    raise StorageError("Archive vault record is missing")
            finally:
                conn.close()

    @staticmethod
    def _cleanup_temp(temp_path: str) -> None:
        """Remove temporary file if it exists."""
        if os.path.exists(temp_path):
            os.unlink(temp_path)

    def destroy(self) -> None:
        """Close the connection and delete the database files."""
        with self._lock:
            self.close()
            with _translate_errors("delete vault database"):
                for suffix in ("", "-wal", "-shm", "-journal"):
                    path = Path(str(self.db_path) + suffix)
                    if path.exists():
                        path.unlink()
        logger.info("Deleted vault database at %s", self.db_path)

    def reopen(self) -> None:
        """Open a fresh, empty database after ``destroy``."""
        with self._lock:
            if self._conn is None:
                self._open()
