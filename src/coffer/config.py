"""Configuration management for Coffer."""

import os
from typing import Optional


class Config:
    """Configuration settings for Coffer."""

    DEFAULT_VAULT_DIR = "~/.coffer"
    VAULT_DIR_ENV = "COFFER_VAULT_DIR"
    MASTER_PASSWORD_ENV = "COFFER_MASTER_PASSWORD"
    NEW_MASTER_PASSWORD_ENV = "COFFER_NEW_MASTER_PASSWORD"
    AUTO_LOCK_ENV = "COFFER_AUTO_LOCK_MINUTES"
    DB_FILENAME = "vault.db"

    # Key derivation
    DEFAULT_PRESET = "recommended"

    # Security constants
    MAX_PASSWORD_ATTEMPTS = 3
    MAX_PASSWORD_LENGTH = 128  # Maximum character count
    MAX_PASSWORD_BYTES = 512  # Maximum byte length (UTF-8 encoded)

    # Brute-force lockout defaults
    BRUTE_FORCE_ENABLED = True
    BRUTE_FORCE_MAX_ATTEMPTS = 5
    BRUTE_FORCE_LOCKOUT_MINUTES = 5

    # Auto-lock (0 disables)
    DEFAULT_AUTO_LOCK_MINUTES = 15

    # Display constants
    MAX_NAME_DISPLAY_LENGTH = 40

    def __init__(self):
        """Initialize configuration with environment variable support."""
        self.vault_dir = self._get_vault_dir()
        self.auto_lock_minutes = self._get_auto_lock_minutes()

    def _get_vault_dir(self) -> str:
        """Get vault directory from environment or use default."""
        env_path = os.getenv(self.VAULT_DIR_ENV)
        if env_path:
            return os.path.expanduser(env_path)
        return os.path.expanduser(self.DEFAULT_VAULT_DIR)

    def _get_auto_lock_minutes(self) -> int:
        """Get auto-lock timeout from environment or use default."""
        raw: Optional[str] = os.getenv(self.AUTO_LOCK_ENV)
        if raw is None or not raw.strip():
            return self.DEFAULT_AUTO_LOCK_MINUTES
        try:
            return max(int(raw), 0)
        except ValueError:
            return self.DEFAULT_AUTO_LOCK_MINUTES


config = Config()
