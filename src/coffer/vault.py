"""Vault engine - the command surface over key management, items and backups."""

import atexit
import functools
import logging
import mimetypes
from pathlib import Path
from typing import List, Optional, Union

from .backup import export_decrypted, export_encrypted, read_archive
from .cipher import ItemCipher
from .config import Config, config
from .crypto import (
    Envelope,
    KdfParams,
    SecretKey,
    StrengthPreset,
    create_canary,
    derive_key,
    validate_passphrase,
    verify_canary,
)
from .errors import (
    InvalidInputError,
    InvalidMasterKeyError,
    VaultAlreadyInitializedError,
    VaultIOError,
    VaultLockedOutError,
)
from .importer import CsvImporter
from .items import _UNCHANGED, ItemRepository
from .models import (
    DEFAULT_TEXT_MIME,
    BruteForceConfig,
    ImportResult,
    ItemKind,
    SortOrder,
    VaultItem,
    VaultRecord,
    utcnow,
)
from .rotation import rotate_key
from .session import SessionGuard, SessionState
from .store import VaultStore

logger = logging.getLogger(__name__)

FALLBACK_MIME = "application/octet-stream"


def _shared(method):
    """Run a command under shared access to the vault."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.session.shared():
            return method(self, *args, **kwargs)

    return wrapper


def _exclusive(method):
    """Run a command with no other command observing the vault."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.session.exclusive():
            return method(self, *args, **kwargs)

    return wrapper


def _to_bytes(content: Union[str, bytes]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else bytes(content)


class Vault:
    """Encrypted vault of notes, credentials and files.

    Items are sealed field by field with AES-256-GCM under a key derived from
    the master password with Argon2id. The key lives only in the session guard
    while the vault is unlocked.

    Args:
        vault_dir: Directory holding ``vault.db`` (defaults to config.vault_dir)
        auto_lock_minutes: Idle timeout before the session locks (0 = never)
        clock: UTC time source, injectable for tests
    """

    def __init__(
        self,
        vault_dir: Optional[Union[str, Path]] = None,
        *,
        auto_lock_minutes: Optional[int] = None,
        clock=utcnow,
    ):
        self.vault_dir = Path(vault_dir or config.vault_dir).expanduser()
        self.store = VaultStore(self.vault_dir / Config.DB_FILENAME)
        self.session = SessionGuard(auto_lock_minutes=auto_lock_minutes, clock=clock)
        atexit.register(self.session.end, "exit")

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Lock and release the database connection."""
        self.session.end("close")
        self.store.close()
        atexit.unregister(self.session.end)

    # ── State ────────────────────────────────────────────────────────

    @_shared
    def is_vault_initialized(self) -> bool:
        return self.store.is_initialized()

    @property
    def state(self) -> SessionState:
        return self.session.state(self.store.is_initialized())

    def _repository(self) -> ItemRepository:
        return ItemRepository(self.store, ItemCipher(self.session.key()))

    # ── Key derivation & verification ────────────────────────────────

    @_exclusive
    def initialize_vault(
        self,
        passphrase: str,
        strength_preset: Union[str, StrengthPreset] = Config.DEFAULT_PRESET,
    ) -> None:
        """Create the vault record. The vault is left locked."""
        validate_passphrase(passphrase)
        preset = StrengthPreset.parse(strength_preset)
        if self.store.is_initialized():
            raise VaultAlreadyInitializedError()

        params = KdfParams.for_preset(preset)
        key = SecretKey(derive_key(passphrase, params))
        try:
            record = VaultRecord(kdf_params=params, canary=create_canary(key).to_bytes())
        finally:
            key.wipe()
        with self.store.transaction():
            if self.store.is_initialized():
                raise VaultAlreadyInitializedError()
            self.store.put_record(record)
        logger.info("Vault initialized at %s (preset=%s)", self.vault_dir, preset.value)

    def _verify_passphrase(self, passphrase: str) -> SecretKey:
        """Derive and verify a key, applying the brute-force policy."""
        validate_passphrase(passphrase)
        with self.store.transaction():
            record = self.store.require_record()
            if self.session.lockout_expired(record):
                self.session.register_success(record)
                self.store.update_lockout_state(0, None)
            remaining = self.session.lockout_remaining(record)
        if remaining:
            raise VaultLockedOutError(remaining)

        # Derivation runs outside the transaction; the counter is re-read below
        key = SecretKey(derive_key(passphrase, record.kdf_params))
        verified = verify_canary(key, Envelope.from_bytes(record.canary))
        with self.store.transaction():
            current = self.store.require_record()
            if verified:
                if current.failed_attempts:
                    self.session.register_success(current)
                    self.store.update_lockout_state(0, None)
                return key
            key.wipe()
            self.session.register_failure(current)
            self.store.update_lockout_state(
                current.failed_attempts, current.last_failed_at
            )
        raise InvalidMasterKeyError()

    @_exclusive
    def unlock_vault(self, passphrase: str) -> None:
        key = self._verify_passphrase(passphrase)
        self.session.begin(key)

    @_exclusive
    def lock_vault(self) -> None:
        self.session.end()

    @_exclusive
    def update_master_key(
        self,
        current_passphrase: str,
        new_passphrase: str,
        strength_preset: Union[str, StrengthPreset] = Config.DEFAULT_PRESET,
    ) -> None:
        """Rotate to a new master password, re-encrypting everything.

        On success the session is locked; on failure nothing changes.
        """
        validate_passphrase(new_passphrase)
        preset = StrengthPreset.parse(strength_preset)
        old_key = self._verify_passphrase(current_passphrase)
        new_params = KdfParams.for_preset(preset)
        new_key = SecretKey(derive_key(new_passphrase, new_params))
        try:
            rotate_key(self.store, old_key, new_key, new_params)
        finally:
            old_key.wipe()
            new_key.wipe()
        self.session.end(reason="key rotation")

    # ── Items ────────────────────────────────────────────────────────

    @_shared
    def get_all_vault_items(self) -> List[VaultItem]:
        return self._repository().list_all()

    @_shared
    def get_vault_items(
        self,
        parent_id: Optional[str] = None,
        type_filter: Optional[str] = None,
        sort_order: Union[None, str, SortOrder] = None,
    ) -> List[VaultItem]:
        return self._repository().list(
            parent_id, type_filter, SortOrder.parse(sort_order)
        )

    @_shared
    def get_item(self, item_id: str) -> VaultItem:
        return self._repository().get(item_id)

    @_shared
    def add_text_item(
        self,
        name: str,
        content: Union[str, bytes],
        mime: Optional[str] = DEFAULT_TEXT_MIME,
        tags: Optional[List[str]] = None,
        parent_id: Optional[str] = None,
        comments: Optional[str] = None,
        kind: Union[str, ItemKind] = ItemKind.TEXT,
    ) -> VaultItem:
        """Add a text note or, with ``kind="key"``, a credential."""
        kind = ItemKind.parse(kind)
        if kind not in (ItemKind.TEXT, ItemKind.KEY):
            raise InvalidInputError("Text items must be of kind 'text' or 'key'")
        if content is None:
            raise InvalidInputError("Content cannot be empty")
        repo = self._repository()
        record = repo.create(
            kind,
            name,
            parent_id=parent_id,
            tags=tags,
            comments=comments,
            content=_to_bytes(content),
            mime=mime or DEFAULT_TEXT_MIME,
        )
        return repo.cipher.open_record(record)

    @_shared
    def add_file_item(
        self,
        name: str,
        file_path: Union[str, Path],
        tags: Optional[List[str]] = None,
        parent_id: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> VaultItem:
        """Add a file; its whole content is encrypted as one blob."""
        path = Path(file_path).expanduser()
        try:
            content = path.read_bytes()
        except OSError as e:
            raise VaultIOError(f"Failed to read '{path}': {e}") from e
        mime = mimetypes.guess_type(path.name)[0] or FALLBACK_MIME
        repo = self._repository()
        record = repo.create(
            ItemKind.FILE,
            name or path.name,
            parent_id=parent_id,
            tags=tags,
            comments=comments,
            content=content,
            mime=mime,
        )
        return repo.cipher.open_record(record)

    @_shared
    def add_folder(
        self,
        name: str,
        parent_id: Optional[str] = None,
        folder_type: Optional[str] = None,
    ) -> VaultItem:
        repo = self._repository()
        record = repo.create(
            ItemKind.FOLDER, name, parent_id=parent_id, folder_type=folder_type
        )
        return repo.cipher.open_record(record)

    @_shared
    def update_item(
        self,
        item_id: str,
        name: Optional[str] = None,
        content: Union[None, str, bytes] = None,
        tags: Optional[List[str]] = None,
        comments=_UNCHANGED,
    ) -> VaultItem:
        """Update fields in place; arguments left as None keep their value."""
        repo = self._repository()
        record = repo.update(
            item_id,
            name=name,
            content=None if content is None else _to_bytes(content),
            tags=tags,
            comments=comments,
        )
        return repo.cipher.open_record(record)

    @_shared
    def move_item(self, item_id: str, new_parent_id: Optional[str]) -> VaultItem:
        repo = self._repository()
        return repo.cipher.open_record(repo.move(item_id, new_parent_id))

    @_shared
    def delete_item(self, item_id: str) -> int:
        """Delete an item (and a folder's subtree); returns the number removed."""
        return self._repository().delete(item_id)

    @_shared
    def get_item_content(self, item_id: str) -> bytes:
        return self._repository().content(item_id)

    # ── Tags ─────────────────────────────────────────────────────────

    @_shared
    def get_all_tags(self) -> List[str]:
        return self._repository().all_tags()

    @_shared
    def rename_tag(self, old: str, new: str) -> None:
        self._repository().rename_tag(old, new)

    @_shared
    def delete_tag(self, name: str) -> None:
        self._repository().delete_tag(name)

    # ── Import / export ──────────────────────────────────────────────

    @_shared
    def import_csv(self, csv_text: str, parent_id: Optional[str] = None) -> ImportResult:
        return CsvImporter(self._repository()).import_text(csv_text, parent_id)

    @_shared
    def export_encrypted_vault(self) -> bytes:
        """Archive the encrypted store; no passphrase is needed."""
        self.store.require_record()
        return export_encrypted(self.store)

    @_shared
    def export_decrypted_vault(self, passphrase: str) -> str:
        """Plaintext JSON export, gated on re-entering the master password."""
        self.session.key()
        key = self._verify_passphrase(passphrase)
        try:
            return export_decrypted(self.store, key)
        finally:
            key.wipe()

    @_exclusive
    def restore_encrypted_vault(self, archive: bytes) -> None:
        """Install an encrypted archive into an empty vault location."""
        if self.store.is_initialized():
            raise VaultAlreadyInitializedError()
        db_bytes = read_archive(archive)
        self.session.end(reason="restore")
        self.store.replace_database(db_bytes)
        logger.info("Vault restored from archive into %s", self.vault_dir)

    @_exclusive
    def delete_vault(self, passphrase: str) -> None:
        """Destroy the vault after verifying the master password."""
        key = self._verify_passphrase(passphrase)
        key.wipe()
        self.session.end(reason="vault deleted")
        self.store.destroy()
        self.store.reopen()
        logger.info("Vault at %s deleted", self.vault_dir)

    # ── Settings & statistics ────────────────────────────────────────

    @_shared
    def get_brute_force_config(self) -> BruteForceConfig:
        self.session.key()
        return self.store.require_record().brute_force

    @_exclusive
    def set_brute_force_config(self, brute_force: BruteForceConfig) -> None:
        self.session.key()
        brute_force.validate()
        with self.store.transaction():
            record = self.store.require_record()
            record.brute_force = brute_force
            record.updated_at = utcnow()
            self.store.put_record(record)
        logger.info(
            "Brute-force policy updated (enabled=%s, max_attempts=%d, minutes=%d)",
            brute_force.enabled,
            brute_force.max_attempts,
            brute_force.lockout_duration_minutes,
        )

    def set_auto_lock_minutes(self, minutes: int) -> None:
        self.session.set_auto_lock_minutes(minutes)

    @_shared
    def get_vault_stats(self) -> dict:
        return self._repository().stats()
