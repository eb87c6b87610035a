"""Error taxonomy shared by every layer of the vault engine."""

from typing import Optional


class CofferError(Exception):
    """Base exception for vault engine failures."""

    kind = "internal"

    def __init__(self, message: str = "", detail: Optional[str] = None):
        super().__init__(message or self.default_message())
        self.detail = detail

    @classmethod
    def default_message(cls) -> str:
        return cls.__doc__.splitlines()[0] if cls.__doc__ else cls.__name__


class InvalidMasterKeyError(CofferError):
    """Invalid master key."""

    kind = "invalid_master_key"


class VaultLockedOutError(InvalidMasterKeyError):
    """Too many failed unlock attempts."""

    kind = "locked_out"

    def __init__(self, remaining_seconds: int):
        minutes, seconds = divmod(max(remaining_seconds, 0), 60)
        super().__init__(
            f"Too many failed attempts. Try again in {minutes}m {seconds:02d}s."
        )
        self.remaining_seconds = remaining_seconds


class VaultAlreadyInitializedError(CofferError):
    """Vault is already initialized."""

    kind = "vault_already_initialized"


class VaultNotInitializedError(CofferError):
    """Vault has not been initialized."""

    kind = "vault_not_initialized"


class VaultLockedError(CofferError):
    """Vault is locked."""

    kind = "vault_locked"


class ItemNotFoundError(CofferError):
    """Item not found."""

    kind = "item_not_found"

    def __init__(self, item_id: str):
        super().__init__(f"Item not found: {item_id}", detail=item_id)
        self.item_id = item_id


class InvalidInputError(CofferError):
    """Invalid input."""

    kind = "invalid_input"


class VaultIOError(CofferError):
    """Filesystem operation failed."""

    kind = "io"


class CryptoError(CofferError):
    """Authentication or decryption failed."""

    kind = "crypto"


class StorageError(CofferError):
    """Persistence layer failure."""

    kind = "storage"


class SerializationError(CofferError):
    """Structured data could not be encoded or decoded."""

    kind = "serialization"
