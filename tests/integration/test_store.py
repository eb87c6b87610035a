"""Integration tests for the SQLite vault store."""

import os
import sqlite3
import stat
from pathlib import Path

import pytest

from coffer.crypto import KdfParams
from coffer.errors import StorageError, VaultNotInitializedError
from coffer.models import ItemKind, ItemRecord, VaultRecord
from coffer.store import VaultStore


@pytest.fixture
def store(temp_dir):
    s = VaultStore(Path(temp_dir) / "nested" / "vault.db")
    yield s
    s.close()


def make_item(item_id, parent_id=None, kind=ItemKind.TEXT):
    return ItemRecord(
        id=item_id,
        parent_id=parent_id,
        kind=kind,
        name=b"sealed-name",
        tags=b"sealed-tags",
        content_ref=None if kind is ItemKind.FOLDER else b"ref",
    )


class TestStoreLifecycle:
    def test_creates_directory_and_private_file(self, store):
        assert store.db_path.exists()
        mode = stat.S_IMODE(os.stat(store.db_path).st_mode)
        assert mode == 0o600

    def test_uninitialized_until_record_written(self, store):
        assert not store.is_initialized()
        with pytest.raises(VaultNotInitializedError):
            store.require_record()

    def test_record_roundtrip(self, store):
        record = VaultRecord(kdf_params=KdfParams.for_preset("fast"), canary=b"canary")
        store.put_record(record)
        loaded = store.require_record()
        assert loaded.kdf_params == record.kdf_params
        assert loaded.canary == b"canary"
        assert loaded.brute_force == record.brute_force

    def test_lockout_state_persisted(self, store, clock):
        store.put_record(VaultRecord(kdf_params=KdfParams.for_preset("fast"), canary=b"c"))
        store.update_lockout_state(3, clock())
        loaded = store.require_record()
        assert loaded.failed_attempts == 3
        assert loaded.last_failed_at == clock()

    def test_destroy_and_reopen(self, store):
        store.put_record(VaultRecord(kdf_params=KdfParams.for_preset("fast"), canary=b"c"))
        store.destroy()
        assert not store.db_path.exists()
        store.reopen()
        assert not store.is_initialized()


class TestTransactions:
    def test_rollback_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert_item(make_item("a"))
                raise RuntimeError("boom")
        assert store.get_item("a") is None

    def test_nested_transaction_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.insert_item(make_item("a"))
                store.insert_item(make_item("b"))
                raise RuntimeError("boom")
        assert store.count_items() == 0

    def test_sqlite_errors_translated(self, store):
        store.insert_item(make_item("a"))
        with pytest.raises(StorageError):
            store.insert_item(make_item("a"))

    def test_update_missing_item(self, store):
        with pytest.raises(StorageError):
            store.update_item(make_item("ghost"))


class TestHierarchy:
    def test_children_in_creation_order(self, store):
        store.insert_item(make_item("f", kind=ItemKind.FOLDER))
        for item_id in ("c", "a", "b"):
            store.insert_item(make_item(item_id, parent_id="f"))
        assert [r.id for r in store.children("f")] == ["c", "a", "b"]
        assert [r.id for r in store.children(None)] == ["f"]

    def test_descendants_root_first(self, store):
        store.insert_item(make_item("root", kind=ItemKind.FOLDER))
        store.insert_item(make_item("sub", parent_id="root", kind=ItemKind.FOLDER))
        store.insert_item(make_item("leaf", parent_id="sub"))
        ids = [r.id for r in store.descendants("root")]
        assert ids[0] == "root"
        assert set(ids) == {"root", "sub", "leaf"}
        assert store.descendants("missing") == []

    def test_parent_must_exist(self, store):
        with pytest.raises(StorageError):
            store.insert_item(make_item("orphan", parent_id="nowhere"))


class TestBlobsAndBackup:
    def test_blob_crud(self, store):
        store.put_blob("b1", b"data")
        assert store.get_blob("b1") == b"data"
        store.delete_blobs(["b1"])
        assert store.get_blob("b1") is None

    def test_backup_is_a_valid_database(self, store, temp_dir):
        store.insert_item(make_item("a"))
        target = Path(temp_dir) / "copy.db"
        store.backup_to(target)
        conn = sqlite3.connect(str(target))
        try:
            assert conn.execute("SELECT COUNT(*) FROM items").fetchone()[0] == 1
        finally:
            conn.close()

    def test_replace_database_rejects_garbage(self, store):
        store.insert_item(make_item("a"))
        with pytest.raises(StorageError):
            store.replace_database(b"not a database")
        # The original database is still in place
        assert store.get_item("a") is not None

    def test_secure_delete_enabled(self, store):
        assert store.conn.execute("PRAGMA secure_delete").fetchone()[0] == 1
        store.close()
        store.reopen()
        assert store.conn.execute("PRAGMA secure_delete").fetchone()[0] == 1

    def test_deleted_blob_leaves_no_bytes(self, store):
        marker = b"ENVELOPE-MARKER-" * 64
        store.put_blob("b1", marker)
        store.delete_blobs(["b1"])
        store.close()
        raw = b"".join(p.read_bytes() for p in store.db_path.parent.glob("vault.db*"))
        assert b"ENVELOPE-MARKER-" not in raw
