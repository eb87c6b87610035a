"""Item-level sealing of names, comments, tag sets and content."""

import json
from typing import Callable, Iterable, List, Optional

from .crypto import Envelope, KeyLike, decrypt_field, encrypt_field
from .errors import CryptoError, InvalidInputError, SerializationError, StorageError
from .models import ItemRecord, VaultItem


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Strip, drop empties and deduplicate; tag sets are order-irrelevant."""
    if not tags:
        return []
    return sorted({t.strip() for t in tags if t and t.strip()})


class ItemCipher:
    """Encrypts and decrypts item fields under one key."""

    def __init__(self, key: KeyLike):
        self._key = key

    def seal(self, data: bytes) -> bytes:
        return encrypt_field(self._key, data).to_bytes()

    def open(self, sealed: bytes) -> bytes:
        return decrypt_field(self._key, Envelope.from_bytes(sealed))

    def seal_text(self, text: str) -> bytes:
        return self.seal(text.encode("utf-8"))

    def open_text(self, sealed: bytes) -> str:
        data = self.open(sealed)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CryptoError(f"Decrypted field is not valid text: {e}") from e

    def seal_optional(self, text: Optional[str]) -> Optional[bytes]:
        return None if text is None else self.seal_text(text)

    def open_optional(self, sealed: Optional[bytes]) -> Optional[str]:
        return None if sealed is None else self.open_text(sealed)

    def seal_tags(self, tags: Iterable[str]) -> bytes:
        return self.seal(json.dumps(normalize_tags(tags)).encode("utf-8"))

    def open_tags(self, sealed: bytes) -> List[str]:
        raw = self.open_text(sealed)
        try:
            tags = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SerializationError(f"Tag set is not valid JSON: {e}") from e
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise SerializationError("Tag set must be a list of strings")
        return tags

    def open_record(self, record: ItemRecord) -> VaultItem:
        """Decrypt the display fields of a record."""
        return VaultItem(
            id=record.id,
            parent_id=record.parent_id,
            kind=record.kind,
            name=self.open_text(record.name),
            tags=self.open_tags(record.tags),
            comments=self.open_optional(record.comments),
            mime=record.content_mime,
            folder_type=record.folder_type,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def open_content(
        self, record: ItemRecord, load_blob: Callable[[str], Optional[bytes]]
    ) -> bytes:
        """Resolve the sealed content reference and decrypt the blob it names."""
        if record.content_ref is None:
            raise InvalidInputError(f"Item {record.id} has no content")
        blob_id = self.open_text(record.content_ref)
        blob = load_blob(blob_id)
        if blob is None:
            raise StorageError(f"Content blob for item {record.id} is missing")
        return self.open(blob)

    def reseal(self, sealed: bytes, target: "ItemCipher") -> bytes:
        """Decrypt under this key and encrypt under the target's key."""
        return target.seal(self.open(sealed))
