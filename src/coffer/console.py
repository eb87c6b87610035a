"""Interactive console for Coffer."""

import cmd
import shlex
from typing import List, Optional, Tuple

from . import auth, ui
from .cli_helpers import format_error, parse_tags
from .errors import CofferError, InvalidInputError, ItemNotFoundError
from .messages import (
    CONSOLE_INTRO,
    CONSOLE_PROMPT,
    ERROR_USAGE_CAT,
    ERROR_USAGE_CD,
    ERROR_USAGE_MKDIR,
    ERROR_USAGE_NOTE,
    ERROR_USAGE_RM,
    INFO_AUTO_LOCKED,
    INFO_GOODBYE,
    SUCCESS_LOCKED,
    SUCCESS_UNLOCKED,
)
from .models import VaultItem
from .vault import Vault

# Commands available while the vault is locked
LOCKED_COMMANDS = {"unlock", "help", "quit", "exit", "EOF", ""}

ALIASES = {
    "l": "ls",
    "dir": "ls",
    "show": "cat",
    "del": "rm",
    "q": "quit",
}


class Console(cmd.Cmd):
    """Shell-like browser over the vault's folder tree."""

    def __init__(self, vault: Vault):
        """Initialize console with vault instance."""
        super().__init__()
        self.vault = vault
        self.intro = CONSOLE_INTRO
        # (folder id, folder name) from the root down
        self.path: List[Tuple[str, str]] = []
        self._update_prompt()

    # ── Plumbing ─────────────────────────────────────────────────────

    @property
    def cwd(self) -> Optional[str]:
        return self.path[-1][0] if self.path else None

    def _update_prompt(self) -> None:
        location = "/" + "/".join(name for _, name in self.path)
        self.prompt = CONSOLE_PROMPT.format(path=location)

    def precmd(self, line: str) -> str:
        parts = line.split(maxsplit=1)
        if parts and parts[0] in ALIASES:
            line = " ".join([ALIASES[parts[0]]] + parts[1:])
        command = line.split(maxsplit=1)[0] if line.strip() else ""
        if command not in LOCKED_COMMANDS and not self.vault.session.is_unlocked:
            ui.warning(INFO_AUTO_LOCKED)
            return "unlock"
        return line

    def onecmd(self, line: str) -> bool:
        try:
            return super().onecmd(line)
        except CofferError as e:
            ui.error(format_error(e))
            return False

    def default(self, line: str) -> None:
        print(f"*** Unknown syntax: {line.split()[0]}")

    def emptyline(self) -> bool:
        """Handle empty input lines gracefully."""
        return False

    def _child(self, name: str) -> VaultItem:
        """An item in the current folder by name or id prefix."""
        items = self.vault.get_vault_items(self.cwd)
        matches = [i for i in items if i.name == name] or [
            i for i in items if i.id.startswith(name)
        ]
        if not matches:
            raise ItemNotFoundError(name)
        if len(matches) > 1:
            raise InvalidInputError(f"'{name}' is ambiguous here; use the item id")
        return matches[0]

    # ── Browsing ─────────────────────────────────────────────────────

    def do_ls(self, args: str) -> None:
        """ls [sort] - list the current folder (sort e.g. name_asc)"""
        items = self.vault.get_vault_items(self.cwd, sort_order=args.strip() or None)
        ui.show_items_table(items, title=self.prompt.strip().rstrip(">"))

    def do_cd(self, args: str) -> None:
        """cd <folder>|..|/ - change folder"""
        target = args.strip()
        if not target:
            print(ERROR_USAGE_CD)
        elif target == "/":
            self.path = []
        elif target == "..":
            self.path = self.path[:-1]
        else:
            item = self._child(target)
            if not item.is_folder:
                raise InvalidInputError(f"'{item.name}' is not a folder")
            self.path.append((item.id, item.name))
        self._update_prompt()

    def do_pwd(self, args: str) -> None:
        """pwd - print the current folder"""
        print("/" + "/".join(name for _, name in self.path))

    def do_cat(self, args: str) -> None:
        """cat <item> - show an item and its content"""
        if not args.strip():
            print(ERROR_USAGE_CAT)
            return
        item = self._child(args.strip())
        content = None if item.is_folder else self.vault.get_item_content(item.id)
        ui.show_item_panel(item, content)

    def do_tags(self, args: str) -> None:
        """tags - list every tag"""
        ui.show_tags(self.vault.get_all_tags())

    def do_stats(self, args: str) -> None:
        """stats - item counts per kind"""
        ui.show_stats(
            self.vault.get_vault_stats(),
            self.vault.state.value,
            str(self.vault.vault_dir),
        )

    # ── Editing ──────────────────────────────────────────────────────

    def do_mkdir(self, args: str) -> None:
        """mkdir <name> - create a folder here"""
        if not args.strip():
            print(ERROR_USAGE_MKDIR)
            return
        item = self.vault.add_folder(args.strip(), self.cwd)
        ui.success(f"Created folder '{item.name}'")

    def do_note(self, args: str) -> None:
        """note <name> <text> [--tags a,b] - add a text note here"""
        try:
            parts = shlex.split(args)
        except ValueError as e:
            raise InvalidInputError(str(e)) from e
        tags = None
        if "--tags" in parts:
            index = parts.index("--tags")
            tags = parse_tags(parts[index + 1] if index + 1 < len(parts) else "")
            parts = parts[:index] + parts[index + 2 :]
        if len(parts) < 2:
            print(ERROR_USAGE_NOTE)
            return
        item = self.vault.add_text_item(
            parts[0], " ".join(parts[1:]), tags=tags, parent_id=self.cwd
        )
        ui.success(f"Added note '{item.name}'")

    def do_rm(self, args: str) -> None:
        """rm <item> - delete an item (folders recursively)"""
        if not args.strip():
            print(ERROR_USAGE_RM)
            return
        item = self._child(args.strip())
        if not ui.confirm(f"Delete '{item.name}'?", default=False):
            return
        count = self.vault.delete_item(item.id)
        ui.success(f"Deleted '{item.name}' ({count} item(s))")

    # ── Session ──────────────────────────────────────────────────────

    def do_lock(self, args: str) -> None:
        """lock - lock the vault"""
        self.vault.lock_vault()
        ui.info(SUCCESS_LOCKED)

    def do_unlock(self, args: str) -> None:
        """unlock - unlock the vault again"""
        if self.vault.session.is_unlocked:
            return
        try:
            password = auth.prompt_unlock_vault()
        except (KeyboardInterrupt, EOFError):
            return
        self.vault.unlock_vault(password)
        ui.success(SUCCESS_UNLOCKED)

    def do_quit(self, args: str) -> bool:
        """Quit the console."""
        print(INFO_GOODBYE)
        self.vault.lock_vault()
        return True

    def do_exit(self, args: str) -> bool:
        """Exit the console - alias for quit."""
        return self.do_quit(args)

    do_EOF = do_exit
