"""Integration tests for key rotation, backup/restore and vault deletion."""

import base64
import io
import json
import threading
import zipfile
from pathlib import Path

import pytest

from coffer import (
    CryptoError,
    InvalidInputError,
    InvalidMasterKeyError,
    SessionState,
    Vault,
    VaultAlreadyInitializedError,
    VaultLockedError,
    VaultNotInitializedError,
)
from coffer.cipher import ItemCipher

NEW_PASSWORD = "AnotherPassword456!"


def snapshot(vault):
    """Name -> content for every non-folder item."""
    return {
        item.name: vault.get_item_content(item.id)
        for item in vault.get_all_vault_items()
        if not item.is_folder
    }


class TestKeyRotation:
    def test_rotation_locks_and_switches_password(self, populated_vault, master_password):
        before = snapshot(populated_vault)

        populated_vault.update_master_key(master_password, NEW_PASSWORD, "fast")
        assert populated_vault.state is SessionState.LOCKED

        with pytest.raises(InvalidMasterKeyError):
            populated_vault.unlock_vault(master_password)
        populated_vault.unlock_vault(NEW_PASSWORD)
        assert snapshot(populated_vault) == before
        assert populated_vault.get_all_tags() == ["dev", "home", "q3", "work"]

    def test_rotation_with_wrong_current_password(self, populated_vault):
        with pytest.raises(InvalidMasterKeyError):
            populated_vault.update_master_key("wrong", NEW_PASSWORD, "fast")
        assert populated_vault.state is SessionState.UNLOCKED

    def test_failed_rotation_rolls_back(self, populated_vault, master_password, monkeypatch):
        before = snapshot(populated_vault)
        original = ItemCipher.reseal
        calls = {"n": 0}

        def flaky(self, sealed, target):
            calls["n"] += 1
            if calls["n"] == 2:
                raise CryptoError("injected failure")
            return original(self, sealed, target)

        monkeypatch.setattr(ItemCipher, "reseal", flaky)
        with pytest.raises(CryptoError):
            populated_vault.update_master_key(master_password, NEW_PASSWORD, "fast")
        monkeypatch.setattr(ItemCipher, "reseal", original)

        populated_vault.lock_vault()
        with pytest.raises(InvalidMasterKeyError):
            populated_vault.unlock_vault(NEW_PASSWORD)
        populated_vault.unlock_vault(master_password)
        assert snapshot(populated_vault) == before

    def test_rotation_can_change_preset(self, unlocked_vault, master_password):
        unlocked_vault.update_master_key(master_password, NEW_PASSWORD, "paranoid")
        assert unlocked_vault.store.require_record().kdf_params.preset == "paranoid"


class TestEncryptedBackup:
    def test_export_and_restore(self, populated_vault, master_password, tmp_path):
        archive = populated_vault.export_encrypted_vault()
        before = snapshot(populated_vault)

        with Vault(tmp_path / "restored", auto_lock_minutes=0) as restored:
            restored.restore_encrypted_vault(archive)
            assert restored.state is SessionState.LOCKED
            restored.unlock_vault(master_password)
            assert snapshot(restored) == before
            assert {i.name for i in restored.get_all_vault_items()} == {
                "Work",
                "Plan",
                "GitHub",
                "Groceries",
            }

    def test_export_works_while_locked(self, initialized_vault):
        archive = initialized_vault.export_encrypted_vault()
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            manifest = json.loads(zf.read("manifest.json"))
        assert manifest["format"] == "coffer-vault"
        assert manifest["item_count"] == 0

    def test_export_requires_vault(self, vault):
        with pytest.raises(VaultNotInitializedError):
            vault.export_encrypted_vault()

    def test_restore_refuses_existing_vault(self, populated_vault):
        archive = populated_vault.export_encrypted_vault()
        with pytest.raises(VaultAlreadyInitializedError):
            populated_vault.restore_encrypted_vault(archive)

    def test_restore_rejects_garbage(self, vault):
        with pytest.raises(InvalidInputError):
            vault.restore_encrypted_vault(b"definitely not a zip file")
        assert not vault.is_vault_initialized()

    def test_restore_rejects_corrupted_archive(self, populated_vault, tmp_path):
        archive = populated_vault.export_encrypted_vault()
        tampered = io.BytesIO()
        with zipfile.ZipFile(io.BytesIO(archive)) as src, zipfile.ZipFile(
            tampered, "w"
        ) as dst:
            dst.writestr("manifest.json", src.read("manifest.json"))
            db = bytearray(src.read("vault.db"))
            db[-1] ^= 0xFF
            dst.writestr("vault.db", bytes(db))

        with Vault(tmp_path / "other", auto_lock_minutes=0) as other:
            with pytest.raises(InvalidInputError, match="checksum"):
                other.restore_encrypted_vault(tampered.getvalue())


class TestDecryptedExport:
    def test_plaintext_json(self, populated_vault, master_password, temp_dir):
        path = Path(temp_dir) / "photo.png"
        path.write_bytes(b"\x89PNG\r\n")
        populated_vault.add_file_item("Photo", path)

        document = json.loads(populated_vault.export_decrypted_vault(master_password))
        assert document["item_count"] == 5
        by_name = {item["name"]: item for item in document["items"]}
        assert by_name["Groceries"]["content"] == "milk, eggs"
        assert by_name["Photo"]["content_encoding"] == "base64"
        assert base64.b64decode(by_name["Photo"]["content"]) == b"\x89PNG\r\n"
        assert "content" not in by_name["Work"]

    def test_requires_password(self, populated_vault):
        with pytest.raises(InvalidMasterKeyError):
            populated_vault.export_decrypted_vault("wrong")

    def test_requires_unlocked_vault(self, initialized_vault, master_password):
        with pytest.raises(VaultLockedError):
            initialized_vault.export_decrypted_vault(master_password)

    def test_concurrent_delete_waits_for_export(self, populated_vault, master_password):
        store = populated_vault.store
        real_get_blob = store.get_blob
        workers = []

        def delete_everything():
            for item in populated_vault.get_all_vault_items():
                if not item.is_folder:
                    populated_vault.delete_item(item.id)

        def get_blob(blob_id):
            data = real_get_blob(blob_id)
            if not workers:
                worker = threading.Thread(target=delete_everything)
                workers.append(worker)
                worker.start()
                worker.join(timeout=0.2)
            return data

        store.get_blob = get_blob
        try:
            document = json.loads(populated_vault.export_decrypted_vault(master_password))
        finally:
            store.get_blob = real_get_blob
            for worker in workers:
                worker.join(timeout=10)

        names = {item["name"] for item in document["items"]}
        assert names == {"Work", "Plan", "GitHub", "Groceries"}
        assert [i.name for i in populated_vault.get_all_vault_items()] == ["Work"]


class TestDeleteVault:
    def test_delete_and_recreate(self, populated_vault, master_password):
        populated_vault.delete_vault(master_password)
        assert populated_vault.state is SessionState.UNINITIALIZED

        populated_vault.initialize_vault(NEW_PASSWORD, "fast")
        populated_vault.unlock_vault(NEW_PASSWORD)
        assert populated_vault.get_all_vault_items() == []

    def test_wrong_password_keeps_vault(self, populated_vault, master_password):
        with pytest.raises(InvalidMasterKeyError):
            populated_vault.delete_vault("wrong")
        assert populated_vault.is_vault_initialized()
        assert len(populated_vault.get_all_vault_items()) == 4
