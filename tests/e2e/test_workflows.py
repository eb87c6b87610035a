"""
End-to-end workflow tests simulating real user scenarios.

This module tests complete user workflows including:
- New user setup and first session
- Organizing notes, credentials and files across restarts
- Migrating from another password manager via CSV
- Rotating the master password and moving to a new machine
- Concurrent readers sharing one unlocked vault
"""

import threading
from pathlib import Path

from coffer import ItemKind, SessionState, Vault


class TestNewUserWorkflow:
    """Test complete workflow for a new user setting up a vault."""

    def test_complete_first_time_user_journey(self, temp_dir, master_password):
        """
        Simulate a new user's first sessions:
        1. Create and unlock the vault
        2. Build a folder tree with notes and a credential
        3. Restart and verify everything persisted
        4. Edit, tag and delete items
        """
        # Step 1: create
        with Vault(temp_dir, auto_lock_minutes=0) as vault:
            assert vault.state is SessionState.UNINITIALIZED
            vault.initialize_vault(master_password, "fast")
            vault.unlock_vault(master_password)

            # Step 2: organize
            personal = vault.add_folder("Personal", folder_type="personal")
            finance = vault.add_folder("Finance", parent_id=personal.id)
            vault.add_text_item(
                "Bank",
                "Username: me\nPassword: hunter2",
                tags=["money"],
                parent_id=finance.id,
                kind=ItemKind.KEY,
            )
            vault.add_text_item("Ideas", "learn the cello", tags=["someday"])

        # Step 3: restart
        with Vault(temp_dir, auto_lock_minutes=0) as vault:
            assert vault.state is SessionState.LOCKED
            vault.unlock_vault(master_password)
            (personal,) = [i for i in vault.get_vault_items() if i.is_folder]
            (finance,) = vault.get_vault_items(personal.id)
            (bank,) = vault.get_vault_items(finance.id)
            assert bank.kind is ItemKind.KEY
            assert b"hunter2" in vault.get_item_content(bank.id)

            # Step 4: maintain
            vault.update_item(bank.id, content="Username: me\nPassword: correct-horse")
            vault.rename_tag("someday", "later")
            ideas = next(i for i in vault.get_vault_items() if i.name == "Ideas")
            assert vault.get_item(ideas.id).tags == ["later"]

            assert vault.delete_item(personal.id) == 3
            assert [i.name for i in vault.get_all_vault_items()] == ["Ideas"]


class TestMigrationWorkflow:
    """Test importing credentials exported from another manager."""

    def test_import_then_browse(self, unlocked_vault):
        csv_text = (
            "Account,Login Name,Password,Web Site,Comments,Folder,Tags\n"
            "Gmail,me,pw1,https://gmail.com,,Email,personal\n"
            "Work Mail,me@corp,pw2,https://mail.corp,,Email/Work,work;mail\n"
            "Bad,,,,,,\n"
        )
        result = unlocked_vault.import_csv(csv_text)
        assert (result.success_count, result.error_count) == (2, 1)

        (email,) = unlocked_vault.get_vault_items(type_filter=None)
        names = [i.name for i in unlocked_vault.get_vault_items(email.id, sort_order="name_asc")]
        assert names == ["Work", "Gmail"]
        assert unlocked_vault.get_all_tags() == ["mail", "personal", "work"]


class TestNewMachineWorkflow:
    """Test rotating the password and carrying the vault elsewhere."""

    def test_rotate_export_restore(self, populated_vault, master_password, tmp_path):
        photo = tmp_path / "photo.jpg"
        photo.write_bytes(b"\xff\xd8\xff\xe0 jpeg")
        populated_vault.add_file_item("Photo", photo, tags=["pics"])

        populated_vault.update_master_key(master_password, "NewMachine789!", "fast")
        archive = populated_vault.export_encrypted_vault()

        with Vault(tmp_path / "laptop", auto_lock_minutes=0) as laptop:
            laptop.restore_encrypted_vault(archive)
            laptop.unlock_vault("NewMachine789!")
            photo_item = next(i for i in laptop.get_all_vault_items() if i.name == "Photo")
            assert photo_item.mime == "image/jpeg"
            assert laptop.get_item_content(photo_item.id) == b"\xff\xd8\xff\xe0 jpeg"
            assert laptop.get_vault_stats()["total"] == 5


class TestConcurrentReaders:
    def test_parallel_reads_during_writes(self, populated_vault):
        errors = []

        def reader():
            try:
                for _ in range(20):
                    for item in populated_vault.get_all_vault_items():
                        if not item.is_folder:
                            populated_vault.get_item_content(item.id)
            except Exception as e:  # collected for the main thread
                errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for n in range(10):
            populated_vault.add_text_item(f"Note {n}", "x")
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert populated_vault.get_vault_stats()["total"] == 14
        assert Path(populated_vault.store.db_path).exists()
