"""CLI helpers: vault access, unlocking, error rendering and interactive mode."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console as RichConsole
from rich.logging import RichHandler

from . import auth, ui
from .config import Config, config
from .errors import (
    CofferError,
    InvalidInputError,
    InvalidMasterKeyError,
    ItemNotFoundError,
    VaultLockedOutError,
    VaultNotInitializedError,
)
from .messages import (
    ERROR_AMBIGUOUS_ITEM,
    ERROR_FILE_EXISTS,
    ERROR_GENERIC,
    ERROR_MAX_ATTEMPTS,
    ERROR_MESSAGES,
    ERROR_UNLOCK_CANCELLED,
    SUCCESS_UNLOCKED,
)
from .models import VaultItem
from .vault import Vault

_vault: Optional[Vault] = None


def configure_logging(verbose: bool = False) -> None:
    """Route engine logs through Rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(console=RichConsole(stderr=True), show_path=verbose)
        ],
        force=True,
    )


def get_vault() -> Vault:
    """Get or open the vault instance for the configured directory."""
    global _vault
    if _vault is None:
        _vault = Vault(config.vault_dir)
    return _vault


def reset_vault() -> None:
    """Close the cached vault so the next access reopens it."""
    global _vault
    if _vault is not None:
        _vault.close()
        _vault = None


def format_error(exc: CofferError) -> str:
    template = ERROR_MESSAGES.get(exc.kind, ERROR_GENERIC)
    return template.format(error=exc)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Render vault errors and exit with status 1."""
    try:
        yield
    except CofferError as e:
        ui.error(format_error(e))
        raise typer.Exit(1)


def unlock(vault: Vault) -> None:
    """Unlock the vault, re-prompting on a wrong password.

    A password from the environment gets a single attempt; lockouts end the
    loop immediately.
    """
    if not vault.is_vault_initialized():
        raise VaultNotInitializedError()

    max_attempts = 1 if auth.password_from_env() else Config.MAX_PASSWORD_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        try:
            password = auth.prompt_unlock_vault()
        except (KeyboardInterrupt, EOFError):
            ui.error(ERROR_UNLOCK_CANCELLED)
            raise typer.Exit(1)

        try:
            vault.unlock_vault(password)
        except VaultLockedOutError:
            raise
        except InvalidMasterKeyError:
            remaining = max_attempts - attempt
            if not remaining:
                if max_attempts > 1:
                    ui.error(ERROR_MAX_ATTEMPTS)
                raise
            ui.error(f"Incorrect password ({remaining} attempts remaining)")
            continue

        logging.getLogger(__name__).debug(SUCCESS_UNLOCKED)
        return


def get_unlocked_vault() -> Vault:
    vault = get_vault()
    if not vault.session.is_unlocked:
        unlock(vault)
    return vault


def resolve_item(vault: Vault, ref: str) -> VaultItem:
    """Find an item by id, unique id prefix or unique name."""
    items = vault.get_all_vault_items()
    for item in items:
        if item.id == ref:
            return item

    matches: List[VaultItem] = [i for i in items if i.id.startswith(ref)]
    if not matches:
        matches = [i for i in items if i.name == ref]
    if len(matches) > 1:
        raise InvalidInputError(ERROR_AMBIGUOUS_ITEM.format(ref=ref))
    if not matches:
        raise ItemNotFoundError(ref)
    return matches[0]


def resolve_folder_id(vault: Vault, ref: Optional[str]) -> Optional[str]:
    """Resolve a ``--folder`` reference; None stands for the root."""
    if ref is None or ref in ("", "/"):
        return None
    return resolve_item(vault, ref).id


def parse_tags(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    return [t.strip() for t in raw.split(",") if t.strip()]


def ensure_writable(path: Path, force: bool) -> None:
    if path.exists() and not force:
        ui.error(ERROR_FILE_EXISTS.format(path=path))
        raise typer.Exit(1)


def interactive_mode() -> None:
    """Unlock the vault and start the interactive console."""
    from .console import Console

    with handle_errors():
        vault = get_vault()
        if not vault.is_vault_initialized():
            raise VaultNotInitializedError()
        unlock(vault)
        ui.success(SUCCESS_UNLOCKED)
        Console(vault).cmdloop()
