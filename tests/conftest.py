"""Shared pytest fixtures for all tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from coffer import crypto
from coffer.config import Config
from coffer.crypto import StrengthPreset, generate_salt
from coffer.vault import Vault

# Minimum Argon2 costs: 8 KiB memory, one pass, one lane
TEST_KDF_COSTS = (8, 1, 1)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def cheap_kdf(monkeypatch):
    """Swap every strength preset for minimal Argon2 costs."""
    for preset in StrengthPreset:
        monkeypatch.setitem(crypto.PRESET_COSTS, preset, TEST_KDF_COSTS)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's shell configuration out of the tests."""
    for name in (
        Config.MASTER_PASSWORD_ENV,
        Config.NEW_MASTER_PASSWORD_ENV,
        Config.VAULT_DIR_ENV,
        Config.AUTO_LOCK_ENV,
    ):
        monkeypatch.delenv(name, raising=False)


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tick_clock(monkeypatch) -> FakeClock:
    """Clock for item timestamps that moves one second per reading."""
    fake = FakeClock()

    def tick():
        fake.advance(seconds=1)
        return fake.now

    monkeypatch.setattr("coffer.items.utcnow", tick)
    return fake


# ============================================================================
# File System Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Provide a temporary directory that's automatically cleaned up."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


# ============================================================================
# Vault Fixtures
# ============================================================================


@pytest.fixture
def master_password() -> str:
    """Standard master password for tests."""
    return "TestMasterPassword123!"


@pytest.fixture
def vault(temp_dir: str, clock: FakeClock) -> Generator[Vault, None, None]:
    """Provide an uninitialized vault with auto-lock disabled."""
    v = Vault(temp_dir, auto_lock_minutes=0, clock=clock)
    yield v
    v.close()


@pytest.fixture
def initialized_vault(vault: Vault, master_password: str) -> Vault:
    """Provide an initialized, locked vault."""
    vault.initialize_vault(master_password, StrengthPreset.FAST)
    return vault


@pytest.fixture
def unlocked_vault(initialized_vault: Vault, master_password: str) -> Vault:
    """Provide an initialized and unlocked vault."""
    initialized_vault.unlock_vault(master_password)
    return initialized_vault


@pytest.fixture
def populated_vault(unlocked_vault: Vault) -> Vault:
    """Provide an unlocked vault with a small folder tree."""
    work = unlocked_vault.add_folder("Work", folder_type="work")
    unlocked_vault.add_text_item("Plan", "Quarterly plan", tags=["work", "q3"], parent_id=work.id)
    unlocked_vault.add_text_item(
        "GitHub",
        "Username: dev\nPassword: s3cret\nURL: https://github.com",
        tags=["dev"],
        kind="key",
    )
    unlocked_vault.add_text_item("Groceries", "milk, eggs", tags=["home"])
    return unlocked_vault


# ============================================================================
# Crypto Fixtures
# ============================================================================


@pytest.fixture
def salt() -> bytes:
    """Provide a random salt for testing."""
    return generate_salt()


@pytest.fixture
def key() -> bytes:
    """Provide a random 256-bit key."""
    return bytes(range(32))


@pytest.fixture
def test_data() -> bytes:
    """Provide test data for encryption/decryption."""
    return b"Secret test data for encryption"
