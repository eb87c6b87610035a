"""Backup and export of the whole vault.

An encrypted export is a ZIP archive holding:
  - ``vault.db``: an online SQLite backup of the store, envelopes untouched
  - ``manifest.json``: format, version, creation time, item count and the
    SHA-256 checksum of ``vault.db``

A decrypted export is a JSON document with every item's plaintext; it is
only produced after the caller re-confirms the master password.
"""

import base64
import hashlib
import io
import json
import logging
import tempfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path

from . import __version__
from .cipher import ItemCipher
from .crypto import KeyLike
from .errors import InvalidInputError, SerializationError
from .models import ItemKind
from .store import VaultStore

logger = logging.getLogger(__name__)

ARCHIVE_FORMAT = "coffer-vault"
MANIFEST_VERSION = 1
DB_ENTRY = "vault.db"
MANIFEST_ENTRY = "manifest.json"


def export_encrypted(store: VaultStore) -> bytes:
    """Package the store's encrypted database into a portable archive."""
    with tempfile.TemporaryDirectory(prefix="coffer_export_") as tmpdir:
        db_copy = Path(tmpdir) / DB_ENTRY
        store.backup_to(db_copy)
        db_bytes = db_copy.read_bytes()

    manifest = {
        "format": ARCHIVE_FORMAT,
        "version": MANIFEST_VERSION,
        "created_with": __version__,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "item_count": store.count_items(),
        "sha256": hashlib.sha256(db_bytes).hexdigest(),
    }

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(DB_ENTRY, db_bytes)
        zf.writestr(MANIFEST_ENTRY, json.dumps(manifest, indent=2))

    logger.info(
        "Exported encrypted vault archive (%d items, %d bytes)",
        manifest["item_count"],
        buffer.tell(),
    )
    return buffer.getvalue()


def read_archive(archive: bytes) -> bytes:
    """Validate an encrypted archive and return its database image."""
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            names = set(zf.namelist())
            if not {DB_ENTRY, MANIFEST_ENTRY} <= names:
                raise InvalidInputError("Archive is missing vault data or manifest")
            manifest = json.loads(zf.read(MANIFEST_ENTRY).decode("utf-8"))
            db_bytes = zf.read(DB_ENTRY)
    except zipfile.BadZipFile as e:
        raise InvalidInputError(f"Not a vault archive: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SerializationError(f"Archive manifest is invalid: {e}") from e

    if not isinstance(manifest, dict) or manifest.get("format") != ARCHIVE_FORMAT:
        raise InvalidInputError("Archive was not produced by this vault")
    if manifest.get("version", 0) > MANIFEST_VERSION:
        raise InvalidInputError(
            f"Archive version {manifest.get('version')} is newer than supported"
        )
    if hashlib.sha256(db_bytes).hexdigest() != manifest.get("sha256"):
        raise InvalidInputError("Archive checksum mismatch - file is corrupted")
    return db_bytes


def export_decrypted(store: VaultStore, key: KeyLike) -> str:
    """Decrypt every item and serialize the plaintext to JSON.

    Records and blobs are read in one transaction so concurrent edits cannot
    split the snapshot. Decryption failures propagate; nothing partial is
    returned.
    """
    cipher = ItemCipher(key)
    items = []
    with store.transaction():
        for record in store.all_items():
            item = cipher.open_record(record)
            data = item.to_dict()
            if record.kind.has_content:
                content = cipher.open_content(record, store.get_blob)
                if record.kind is ItemKind.FILE:
                    data["content"] = base64.b64encode(content).decode("ascii")
                    data["content_encoding"] = "base64"
                else:
                    try:
                        data["content"] = content.decode("utf-8")
                        data["content_encoding"] = "utf-8"
                    except UnicodeDecodeError:
                        data["content"] = base64.b64encode(content).decode("ascii")
                        data["content_encoding"] = "base64"
            items.append(data)

    document = {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "exported_with": __version__,
        "item_count": len(items),
        "items": items,
    }
    try:
        payload = json.dumps(document, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to serialize export: {e}") from e

    logger.warning("Produced decrypted vault export (%d items)", len(items))
    return payload
