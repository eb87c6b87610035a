"""Master password entry for the CLI.

Passwords come from an environment variable when one is set, otherwise from
a no-echo terminal prompt. New passwords are typed twice.
"""

import getpass
import os
import sys
from typing import Callable, Optional

from .config import Config

CREATE_NOTICE = (
    "\nSetting up a new coffer vault.\n"
    "Everything in it is encrypted with your master password. There is no "
    "recovery if you forget it.\n"
)


class PasswordMismatchError(ValueError):
    """The confirmation entry differed from the first one."""

    def __init__(self) -> None:
        super().__init__("Passwords do not match")


def _ask(prompt: str, confirm: bool) -> str:
    first = getpass.getpass(prompt)
    if confirm and getpass.getpass("Confirm master password: ") != first:
        raise PasswordMismatchError()
    return first


def get_master_password(
    prompt: str = "Enter master password: ",
    confirm: bool = False,
    env_var: Optional[str] = Config.MASTER_PASSWORD_ENV,
) -> str:
    """Return the password from ``env_var`` if set, else prompt for it.

    Pass ``env_var=None`` to always prompt. Cancelling with Ctrl-C or Ctrl-D
    prints a notice and re-raises.
    """
    from_env = os.getenv(env_var) if env_var else None
    if from_env is not None:
        return from_env

    try:
        return _ask(prompt, confirm)
    except (KeyboardInterrupt, EOFError):
        print("\nPassword prompt cancelled", file=sys.stderr)
        raise


def password_from_env() -> bool:
    return os.getenv(Config.MASTER_PASSWORD_ENV) is not None


def prompt_create_master_password() -> str:
    print(CREATE_NOTICE)
    return get_master_password(prompt="Create master password: ", confirm=True)


def prompt_new_master_password() -> str:
    """Replacement password for rotation; read from its own variable."""
    return get_master_password(
        prompt="New master password: ",
        confirm=True,
        env_var=Config.NEW_MASTER_PASSWORD_ENV,
    )


def prompt_unlock_vault() -> str:
    return get_master_password(prompt="Enter master password to unlock vault: ")


def get_master_password_with_retry(
    max_attempts: int = Config.MAX_PASSWORD_ATTEMPTS, for_unlock: bool = True
) -> Optional[str]:
    """Re-prompt after a confirmation mismatch.

    Returns None once the attempts run out or the user cancels.
    """
    ask: Callable[[], str] = (
        prompt_unlock_vault if for_unlock else prompt_create_master_password
    )
    for attempt in range(1, max_attempts + 1):
        try:
            return ask()
        except (KeyboardInterrupt, EOFError):
            return None
        except ValueError as e:
            print(f"\nError: {e}", file=sys.stderr)
            left = max_attempts - attempt
            if left:
                print(f"Please try again ({left} attempts remaining)\n", file=sys.stderr)

    print("Maximum attempts exceeded", file=sys.stderr)
    return None
