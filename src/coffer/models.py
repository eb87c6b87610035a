"""Data models for vault items, records and settings."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from .config import Config
from .crypto import KdfParams
from .errors import InvalidInputError

DEFAULT_TEXT_MIME = "text/plain"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemKind(str, Enum):
    """Kind of a vault item, with the capabilities each kind carries."""

    FOLDER = "folder"
    TEXT = "text"
    KEY = "key"
    FILE = "file"

    @property
    def has_content(self) -> bool:
        return self is not ItemKind.FOLDER

    @property
    def has_mime(self) -> bool:
        return self is ItemKind.FILE

    @classmethod
    def parse(cls, value: Union[str, "ItemKind"]) -> "ItemKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidInputError(f"Unknown item kind '{value}'") from None


class SortOrder(str, Enum):
    """Listing orders; folders always come first."""

    CREATED_DESC = "created_desc"
    CREATED_ASC = "created_asc"
    UPDATED_DESC = "updated_desc"
    UPDATED_ASC = "updated_asc"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"

    @classmethod
    def parse(cls, value: Union[None, str, "SortOrder"]) -> "SortOrder":
        """Accept enum values, their names, or the CamelCase spellings."""
        if value is None:
            return cls.CREATED_DESC
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        aliases = {
            "createdatdesc": cls.CREATED_DESC,
            "createdatasc": cls.CREATED_ASC,
            "updatedatdesc": cls.UPDATED_DESC,
            "updatedatasc": cls.UPDATED_ASC,
            "nameasc": cls.NAME_ASC,
            "namedesc": cls.NAME_DESC,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidInputError(f"Unknown sort order '{value}'") from None

    @property
    def descending(self) -> bool:
        return self.value.endswith("_desc")


@dataclass
class BruteForceConfig:
    """Lockout policy for repeated failed unlock attempts."""

    enabled: bool = Config.BRUTE_FORCE_ENABLED
    max_attempts: int = Config.BRUTE_FORCE_MAX_ATTEMPTS
    lockout_duration_minutes: int = Config.BRUTE_FORCE_LOCKOUT_MINUTES

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise InvalidInputError("max_attempts must be at least 1")
        if self.lockout_duration_minutes < 1:
            raise InvalidInputError("lockout_duration_minutes must be at least 1")

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "max_attempts": self.max_attempts,
            "lockout_duration_minutes": self.lockout_duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BruteForceConfig":
        return cls(
            enabled=bool(data.get("enabled", Config.BRUTE_FORCE_ENABLED)),
            max_attempts=int(data.get("max_attempts", Config.BRUTE_FORCE_MAX_ATTEMPTS)),
            lockout_duration_minutes=int(
                data.get("lockout_duration_minutes", Config.BRUTE_FORCE_LOCKOUT_MINUTES)
            ),
        )


@dataclass
class VaultRecord:
    """The single per-vault record: KDF params, canary and lockout state."""

    kdf_params: KdfParams
    canary: bytes
    brute_force: BruteForceConfig = field(default_factory=BruteForceConfig)
    failed_attempts: int = 0
    last_failed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ItemRecord:
    """An item as persisted: hierarchy and timestamps in clear, the rest sealed.

    ``name``, ``comments``, ``tags`` and ``content_ref`` hold serialized
    envelopes; the store never sees their plaintext.
    """

    id: str
    parent_id: Optional[str]
    kind: ItemKind
    name: bytes
    tags: bytes
    comments: Optional[bytes] = None
    content_ref: Optional[bytes] = None
    content_mime: Optional[str] = None
    folder_type: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class VaultItem:
    """Decrypted display view of an item."""

    id: str
    parent_id: Optional[str]
    kind: ItemKind
    name: str
    tags: List[str] = field(default_factory=list)
    comments: Optional[str] = None
    mime: Optional[str] = None
    folder_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_folder(self) -> bool:
        return self.kind is ItemKind.FOLDER

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "kind": self.kind.value,
            "name": self.name,
            "mime": self.mime,
            "folder_type": self.folder_type,
            "comments": self.comments,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class ImportResult:
    """Outcome of a CSV import."""

    success_count: int = 0
    error_count: int = 0
    errors: List[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.error_count += 1
        self.errors.append(message)

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "errors": list(self.errors),
        }
