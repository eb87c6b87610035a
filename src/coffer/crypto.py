"""Cryptographic primitives: key derivation, canary checks and field envelopes.

Key derivation is Argon2id (argon2-cffi). Every field is sealed with
AES-256-GCM under a fresh random 96-bit nonce and stored as an envelope of
``nonce || ciphertext || tag``.

Never log passphrases, keys, plaintext or ciphertext values.
"""

import base64
import os
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple, Union

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import Config
from .errors import CryptoError, InvalidInputError, SerializationError

KDF_ALGORITHM = "argon2id"
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 16
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16

CANARY_PLAINTEXT = b"COFFER_VAULT_OK"

KeyLike = Union[bytes, bytearray, "SecretKey"]


class StrengthPreset(str, Enum):
    """Named key-derivation cost configurations."""

    FAST = "fast"
    RECOMMENDED = "recommended"
    PARANOID = "paranoid"

    @classmethod
    def parse(cls, value: Union[str, "StrengthPreset"]) -> "StrengthPreset":
        """Accept a preset or its name in any case."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(p.value for p in cls)
            raise InvalidInputError(
                f"Unknown strength preset '{value}' (expected one of: {names})"
            ) from None


# (memory cost in KiB, time cost, parallelism)
PRESET_COSTS: Dict[StrengthPreset, Tuple[int, int, int]] = {
    StrengthPreset.FAST: (256 * 1024, 2, 2),
    StrengthPreset.RECOMMENDED: (512 * 1024, 3, 4),
    StrengthPreset.PARANOID: (1024 * 1024, 4, 4),
}


@dataclass(frozen=True)
class KdfParams:
    """Key derivation parameters stored alongside the vault."""

    memory_cost: int
    time_cost: int
    parallelism: int
    salt: bytes
    preset: str = StrengthPreset.RECOMMENDED.value
    algorithm: str = KDF_ALGORITHM

    @classmethod
    def for_preset(cls, preset: Union[str, StrengthPreset]) -> "KdfParams":
        """Build parameters for a preset with a fresh random salt."""
        preset = StrengthPreset.parse(preset)
        memory_cost, time_cost, parallelism = PRESET_COSTS[preset]
        return cls(
            memory_cost=memory_cost,
            time_cost=time_cost,
            parallelism=parallelism,
            salt=generate_salt(),
            preset=preset.value,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        return {
            "algorithm": self.algorithm,
            "preset": self.preset,
            "memory_cost": self.memory_cost,
            "time_cost": self.time_cost,
            "parallelism": self.parallelism,
            "salt": base64.b64encode(self.salt).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KdfParams":
        """Create KdfParams from dictionary."""
        try:
            return cls(
                memory_cost=int(data["memory_cost"]),
                time_cost=int(data["time_cost"]),
                parallelism=int(data["parallelism"]),
                salt=base64.b64decode(data["salt"]),
                preset=data.get("preset", StrengthPreset.RECOMMENDED.value),
                algorithm=data.get("algorithm", KDF_ALGORITHM),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"Invalid key derivation parameters: {e}") from e


class SecretKey:
    """Derived key held in a mutable buffer so it can be wiped."""

    __slots__ = ("_buffer",)

    def __init__(self, key: Union[bytes, bytearray]):
        if len(key) != KEY_LENGTH:
            raise CryptoError(f"Key must be {KEY_LENGTH} bytes")
        self._buffer = bytearray(key)

    @property
    def wiped(self) -> bool:
        return not self._buffer

    def material(self) -> bytes:
        """Return the key bytes for a single cipher construction."""
        if self.wiped:
            raise CryptoError("Key material has been wiped")
        return bytes(self._buffer)

    def wipe(self) -> None:
        """Overwrite the key buffer with zeros and release it."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = bytearray()

    def __repr__(self) -> str:
        return "SecretKey(<wiped>)" if self.wiped else "SecretKey(<redacted>)"


@dataclass(frozen=True)
class Envelope:
    """Nonce, ciphertext and authentication tag of one encrypted field."""

    nonce: bytes
    ciphertext: bytes
    tag: bytes

    def to_bytes(self) -> bytes:
        return self.nonce + self.ciphertext + self.tag

    @classmethod
    def from_bytes(cls, data: bytes) -> "Envelope":
        minimum = NONCE_SIZE + TAG_SIZE
        if data is None or len(data) < minimum:
            raise CryptoError(
                f"Envelope too short: {0 if data is None else len(data)} bytes "
                f"(minimum {minimum})"
            )
        data = bytes(data)
        return cls(
            nonce=data[:NONCE_SIZE],
            ciphertext=data[NONCE_SIZE:-TAG_SIZE],
            tag=data[-TAG_SIZE:],
        )


def generate_salt() -> bytes:
    """Generate a cryptographically secure random salt."""
    return secrets.token_bytes(SALT_LENGTH)


def validate_passphrase(passphrase: str) -> None:
    """Reject empty or oversized passphrases before running the KDF."""
    if not isinstance(passphrase, str) or not passphrase:
        raise InvalidInputError("Master password cannot be empty")
    if len(passphrase) > Config.MAX_PASSWORD_LENGTH:
        raise InvalidInputError(
            f"Master password cannot exceed {Config.MAX_PASSWORD_LENGTH} characters"
        )
    if len(passphrase.encode("utf-8")) > Config.MAX_PASSWORD_BYTES:
        raise InvalidInputError(
            f"Master password size cannot exceed {Config.MAX_PASSWORD_BYTES} bytes"
        )


def derive_key(passphrase: str, params: KdfParams) -> bytes:
    """Derive encryption key from master password using Argon2id."""
    if params.algorithm != KDF_ALGORITHM:
        raise CryptoError(f"Unsupported key derivation algorithm: {params.algorithm}")
    try:
        return hash_secret_raw(
            secret=passphrase.encode("utf-8"),
            salt=params.salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=KEY_LENGTH,
            type=Type.ID,
        )
    except (ValueError, TypeError, HashingError) as e:
        raise CryptoError(f"Key derivation failed: {e}") from e


def _cipher(key: KeyLike) -> AESGCM:
    material = key.material() if isinstance(key, SecretKey) else bytes(key)
    try:
        return AESGCM(material)
    except ValueError as e:
        raise CryptoError(f"Cipher creation failed: {e}") from e


def encrypt_field(key: KeyLike, plaintext: bytes) -> Envelope:
    """Encrypt one field under a fresh nonce."""
    nonce = os.urandom(NONCE_SIZE)
    try:
        sealed = _cipher(key).encrypt(nonce, bytes(plaintext), None)
    except (TypeError, OverflowError) as e:
        raise CryptoError(f"Encryption failed: {e}") from e
    return Envelope(nonce=nonce, ciphertext=sealed[:-TAG_SIZE], tag=sealed[-TAG_SIZE:])


def decrypt_field(key: KeyLike, envelope: Envelope) -> bytes:
    """Decrypt one field, failing closed on any authentication error."""
    if len(envelope.nonce) != NONCE_SIZE or len(envelope.tag) != TAG_SIZE:
        raise CryptoError("Malformed envelope")
    try:
        return _cipher(key).decrypt(
            envelope.nonce, envelope.ciphertext + envelope.tag, None
        )
    except InvalidTag:
        raise CryptoError(
            "Decryption failed - incorrect key or corrupted data"
        ) from None
    except (TypeError, ValueError) as e:
        raise CryptoError(f"Decryption failed: {e}") from e


def create_canary(key: KeyLike) -> Envelope:
    """Encrypt the fixed canary plaintext under a key."""
    return encrypt_field(key, CANARY_PLAINTEXT)


def verify_canary(key: KeyLike, canary: Envelope) -> bool:
    """Return True when the canary authenticates under the candidate key."""
    try:
        decrypt_field(key, canary)
    except CryptoError:
        return False
    return True
