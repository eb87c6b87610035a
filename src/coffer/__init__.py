"""Coffer - encrypted local-first vault for notes, credentials and files."""

# Version constant (must be defined before imports to avoid circular dependencies)
__version__ = "0.1.0"

# ruff: noqa: E402
from .config import config
from .crypto import StrengthPreset
from .errors import (
    CofferError,
    CryptoError,
    InvalidInputError,
    InvalidMasterKeyError,
    ItemNotFoundError,
    SerializationError,
    StorageError,
    VaultAlreadyInitializedError,
    VaultIOError,
    VaultLockedError,
    VaultLockedOutError,
    VaultNotInitializedError,
)
from .models import BruteForceConfig, ImportResult, ItemKind, SortOrder, VaultItem
from .session import SessionState
from .vault import Vault

__all__ = [
    "BruteForceConfig",
    "CofferError",
    "CryptoError",
    "ImportResult",
    "InvalidInputError",
    "InvalidMasterKeyError",
    "ItemKind",
    "ItemNotFoundError",
    "SerializationError",
    "SessionState",
    "SortOrder",
    "StorageError",
    "StrengthPreset",
    "Vault",
    "VaultAlreadyInitializedError",
    "VaultIOError",
    "VaultItem",
    "VaultLockedError",
    "VaultLockedOutError",
    "VaultNotInitializedError",
    "config",
]
