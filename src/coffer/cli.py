"""CLI using Typer."""

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__, auth, ui
from .cli_helpers import (
    configure_logging,
    ensure_writable,
    get_unlocked_vault,
    get_vault,
    handle_errors,
    interactive_mode,
    parse_tags,
    reset_vault,
    resolve_folder_id,
    resolve_item,
)
from .config import Config, config
from .crypto import StrengthPreset
from .errors import VaultAlreadyInitializedError, VaultIOError
from .messages import (
    ERROR_FILE_NOT_FOUND,
    ERROR_OPERATION_CANCELLED,
    ERROR_PASSWORD_MISMATCH,
    INFO_CANCELLED,
    INFO_CREATING_VAULT,
    INFO_NOT_INITIALIZED,
    SUCCESS_ADDED,
    SUCCESS_DELETED,
    SUCCESS_EXPORTED,
    SUCCESS_EXPORTED_PLAIN,
    SUCCESS_INITIALIZED,
    SUCCESS_LOCKOUT_UPDATED,
    SUCCESS_MOVED,
    SUCCESS_RESTORED,
    SUCCESS_ROTATED,
    SUCCESS_TAG_DELETED,
    SUCCESS_TAG_RENAMED,
    SUCCESS_UPDATED,
    SUCCESS_VAULT_DELETED,
    WARNING_DELETE_VAULT,
    WARNING_PLAINTEXT_EXPORT,
)
from .models import BruteForceConfig, ItemKind
from .session import SessionState

app = typer.Typer(
    name="coffer",
    help="Encrypted local vault for notes, credentials and files",
    add_completion=True,
    no_args_is_help=False,
    context_settings={"help_option_names": ["-h", "--help"]},
    rich_markup_mode="rich",
)

PRESET_CHOICES = [p.value for p in StrengthPreset]


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"coffer {__version__}")
        raise typer.Exit()


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise VaultIOError(f"Failed to read '{path}': {e}") from e


def _write_file(path: Path, data: bytes) -> None:
    """Write an output file readable by the owner only."""
    try:
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except OSError as e:
        raise VaultIOError(f"Failed to write '{path}': {e}") from e


def _choose_preset(preset: Optional[str]) -> str:
    if preset is not None:
        return preset
    if not sys.stdin.isatty():
        return Config.DEFAULT_PRESET
    choice = ui.select(
        "Key derivation strength", PRESET_CHOICES, default=Config.DEFAULT_PRESET
    )
    if choice is None:
        ui.info(INFO_CANCELLED)
        raise typer.Exit(1)
    return choice


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    vault: Annotated[
        Optional[str],
        typer.Option(
            "--vault",
            help="Vault directory (default: ~/.coffer)",
        ),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show engine log output")
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
):
    """Runs the interactive console if no command given."""
    configure_logging(verbose)
    reset_vault()
    if vault:
        config.vault_dir = os.path.expanduser(vault)

    if ctx.invoked_subcommand is None:
        interactive_mode()
        raise typer.Exit(0)


# ── Vault lifecycle ──────────────────────────────────────────────────


@app.command("init", help="Create a new vault", rich_help_panel="Vault")
def init_vault(
    preset: Annotated[
        Optional[str],
        typer.Option(
            "--preset",
            "-p",
            help="Key derivation strength: fast, recommended or paranoid",
        ),
    ] = None,
):
    """Create a vault protected by a new master password."""
    with handle_errors():
        vault = get_vault()
        if vault.is_vault_initialized():
            raise VaultAlreadyInitializedError()
        strength = _choose_preset(preset)
        ui.info(INFO_CREATING_VAULT.format(path=vault.vault_dir))
        password = auth.get_master_password_with_retry(for_unlock=False)
        if password is None:
            ui.error(ERROR_OPERATION_CANCELLED)
            raise typer.Exit(1)
        vault.initialize_vault(password, strength)
    ui.success(SUCCESS_INITIALIZED.format(path=vault.vault_dir))


@app.command("status", help="Show whether a vault exists", rich_help_panel="Vault")
def status():
    """Show the vault location and lifecycle state."""
    with handle_errors():
        vault = get_vault()
        state = vault.state
    ui.info(f"Vault: {vault.vault_dir}")
    ui.info(f"State: {state.value}")
    if state is SessionState.UNINITIALIZED:
        ui.info(INFO_NOT_INITIALIZED.format(path=vault.vault_dir))


@app.command("stats", help="Show vault statistics", rich_help_panel="Vault")
def show_stats():
    """Display item counts per kind."""
    with handle_errors():
        vault = get_unlocked_vault()
        stats = vault.get_vault_stats()
        ui.show_stats(stats, vault.state.value, str(vault.vault_dir))
    ui.console.print()


@app.command(
    "rotate", help="Change the master password", rich_help_panel="Vault"
)
def rotate(
    preset: Annotated[
        Optional[str],
        typer.Option("--preset", "-p", help="Key derivation strength for the new key"),
    ] = None,
):
    """Re-encrypt the whole vault under a new master password."""
    with handle_errors():
        vault = get_vault()
        current = auth.get_master_password(prompt="Current master password: ")
        try:
            new = auth.prompt_new_master_password()
        except ValueError:
            ui.error(ERROR_PASSWORD_MISMATCH)
            raise typer.Exit(1)
        strength = _choose_preset(preset)
        vault.update_master_key(current, new, strength)
    ui.success(SUCCESS_ROTATED)


@app.command(
    "lockout",
    help="Show or change brute-force protection",
    rich_help_panel="Vault",
)
def lockout(
    enable: Annotated[
        Optional[bool],
        typer.Option("--enable/--disable", help="Turn lockout on or off"),
    ] = None,
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", help="Failures before lockout"),
    ] = None,
    minutes: Annotated[
        Optional[int],
        typer.Option("--minutes", help="Lockout duration in minutes"),
    ] = None,
):
    """Display the policy, or update the given fields."""
    with handle_errors():
        vault = get_unlocked_vault()
        policy = vault.get_brute_force_config()
        if enable is None and max_attempts is None and minutes is None:
            ui.show_brute_force_config(policy)
            return
        updated = BruteForceConfig(
            enabled=policy.enabled if enable is None else enable,
            max_attempts=policy.max_attempts if max_attempts is None else max_attempts,
            lockout_duration_minutes=(
                policy.lockout_duration_minutes if minutes is None else minutes
            ),
        )
        vault.set_brute_force_config(updated)
    ui.success(SUCCESS_LOCKOUT_UPDATED)
    ui.show_brute_force_config(updated)


@app.command(
    "delete-vault", help="Permanently delete the vault", rich_help_panel="Vault"
)
def delete_vault(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation prompt")
    ] = False,
):
    """Destroy the vault after re-entering the master password."""
    with handle_errors():
        vault = get_vault()
        ui.warning(WARNING_DELETE_VAULT.format(path=vault.vault_dir))
        if not force and not ui.confirm("Delete the vault?", default=False):
            ui.info(INFO_CANCELLED)
            return
        password = auth.get_master_password()
        vault.delete_vault(password)
    ui.success(SUCCESS_VAULT_DELETED)


# ── Items ────────────────────────────────────────────────────────────


@app.command("list", help="List items (ls)", rich_help_panel="Items")
def list_items(
    folder: Annotated[
        Optional[str], typer.Option("--folder", "-f", help="Folder id or name")
    ] = None,
    type_filter: Annotated[
        Optional[str],
        typer.Option("--type", "-t", help="Filter by kind, MIME prefix or folder type"),
    ] = None,
    sort: Annotated[
        Optional[str],
        typer.Option(
            "--sort",
            "-s",
            help="created_desc, created_asc, updated_desc, updated_asc, name_asc, name_desc",
        ),
    ] = None,
    all_items: Annotated[
        bool, typer.Option("--all", "-a", help="List every item in the vault")
    ] = False,
):
    """List the direct children of a folder, or everything with --all."""
    with handle_errors():
        vault = get_unlocked_vault()
        if all_items:
            items = vault.get_all_vault_items()
            title = "All items"
        else:
            parent_id = resolve_folder_id(vault, folder)
            items = vault.get_vault_items(parent_id, type_filter, sort)
            title = "Vault" if parent_id is None else vault.get_item(parent_id).name
        ui.show_items_table(items, title=title)


@app.command("add-text", help="Add a text note", rich_help_panel="Items")
def add_text(
    name: Annotated[str, typer.Argument(help="Item name")],
    content: Annotated[
        Optional[str], typer.Option("--content", "-c", help="Note text")
    ] = None,
    folder: Annotated[
        Optional[str], typer.Option("--folder", "-f", help="Parent folder")
    ] = None,
    tags: Annotated[
        Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")
    ] = None,
    comments: Annotated[Optional[str], typer.Option("--comments")] = None,
):
    """Add a text note; prompts for the text when --content is omitted."""
    with handle_errors():
        vault = get_unlocked_vault()
        if content is None:
            content = ui.prompt("Content")
        item = vault.add_text_item(
            name,
            content,
            tags=parse_tags(tags),
            parent_id=resolve_folder_id(vault, folder),
            comments=comments,
        )
    ui.success(SUCCESS_ADDED.format(kind=item.kind.value, name=item.name, id=item.id))


@app.command("add-key", help="Add a credential", rich_help_panel="Items")
def add_key(
    name: Annotated[str, typer.Argument(help="Item name")],
    username: Annotated[str, typer.Option("--username", "-u")] = "",
    password: Annotated[
        Optional[str], typer.Option("--password", help="Secret (prompted if omitted)")
    ] = None,
    url: Annotated[str, typer.Option("--url")] = "",
    folder: Annotated[
        Optional[str], typer.Option("--folder", "-f", help="Parent folder")
    ] = None,
    tags: Annotated[
        Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")
    ] = None,
    comments: Annotated[Optional[str], typer.Option("--comments")] = None,
):
    """Store a username/password/URL credential as a key item."""
    with handle_errors():
        vault = get_unlocked_vault()
        if password is None:
            password = auth.get_master_password(prompt="Secret: ", env_var=None)
        lines = []
        if username:
            lines.append(f"Username: {username}")
        lines.append(f"Password: {password}")
        if url:
            lines.append(f"URL: {url}")
        item = vault.add_text_item(
            name,
            "\n".join(lines),
            tags=parse_tags(tags),
            parent_id=resolve_folder_id(vault, folder),
            comments=comments,
            kind=ItemKind.KEY,
        )
    ui.success(SUCCESS_ADDED.format(kind=item.kind.value, name=item.name, id=item.id))


@app.command("add-file", help="Encrypt a file into the vault", rich_help_panel="Items")
def add_file(
    path: Annotated[str, typer.Argument(help="File to add")],
    name: Annotated[
        Optional[str], typer.Option("--name", "-n", help="Item name (default: file name)")
    ] = None,
    folder: Annotated[
        Optional[str], typer.Option("--folder", "-f", help="Parent folder")
    ] = None,
    tags: Annotated[
        Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")
    ] = None,
    comments: Annotated[Optional[str], typer.Option("--comments")] = None,
):
    """Add a file; the MIME type is guessed from its extension."""
    file_path = Path(path).expanduser()
    with handle_errors():
        vault = get_unlocked_vault()
        item = vault.add_file_item(
            name or file_path.name,
            file_path,
            tags=parse_tags(tags),
            parent_id=resolve_folder_id(vault, folder),
            comments=comments,
        )
    ui.success(SUCCESS_ADDED.format(kind=item.kind.value, name=item.name, id=item.id))


@app.command("add-folder", help="Create a folder (mkdir)", rich_help_panel="Items")
def add_folder(
    name: Annotated[str, typer.Argument(help="Folder name")],
    parent: Annotated[
        Optional[str], typer.Option("--parent", "-p", help="Parent folder")
    ] = None,
    folder_type: Annotated[
        Optional[str], typer.Option("--type", "-t", help="Folder type label")
    ] = None,
):
    """Create a folder, optionally nested and typed."""
    with handle_errors():
        vault = get_unlocked_vault()
        item = vault.add_folder(name, resolve_folder_id(vault, parent), folder_type)
    ui.success(SUCCESS_ADDED.format(kind=item.kind.value, name=item.name, id=item.id))


@app.command("show", help="Show an item (cat)", rich_help_panel="Items")
def show_item(
    ref: Annotated[str, typer.Argument(help="Item id, id prefix or name")],
    reveal: Annotated[
        bool, typer.Option("--reveal", "-r", help="Show credential secrets")
    ] = False,
    output: Annotated[
        Optional[str], typer.Option("--output", "-o", help="Write content to a file")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite the output file")
    ] = False,
):
    """Show an item's details; file content can be written out with --output."""
    with handle_errors():
        vault = get_unlocked_vault()
        item = resolve_item(vault, ref)
        content = None if item.is_folder else vault.get_item_content(item.id)
        if output and content is not None:
            out_path = Path(output).expanduser()
            ensure_writable(out_path, force)
            _write_file(out_path, content)
            ui.success(f"Wrote {len(content)} bytes to '{out_path}'")
        ui.show_item_panel(item, content, reveal=reveal)


@app.command("edit", help="Edit an item", rich_help_panel="Items")
def edit_item(
    ref: Annotated[str, typer.Argument(help="Item id, id prefix or name")],
    name: Annotated[Optional[str], typer.Option("--name", "-n")] = None,
    content: Annotated[
        Optional[str], typer.Option("--content", "-c", help="Replacement text")
    ] = None,
    file: Annotated[
        Optional[str], typer.Option("--file", help="Replacement file content")
    ] = None,
    tags: Annotated[
        Optional[str], typer.Option("--tags", "-t", help="Replace tags (comma-separated)")
    ] = None,
    comments: Annotated[Optional[str], typer.Option("--comments")] = None,
):
    """Update fields in place; omitted options keep their value."""
    with handle_errors():
        vault = get_unlocked_vault()
        item = resolve_item(vault, ref)
        new_content = content
        if file is not None:
            new_content = _read_file(Path(file).expanduser())
        kwargs = {}
        if comments is not None:
            kwargs["comments"] = comments
        item = vault.update_item(
            item.id, name=name, content=new_content, tags=parse_tags(tags), **kwargs
        )
    ui.success(SUCCESS_UPDATED.format(name=item.name))


@app.command("move", help="Move an item to another folder (mv)", rich_help_panel="Items")
def move_item(
    ref: Annotated[str, typer.Argument(help="Item id, id prefix or name")],
    to: Annotated[
        Optional[str], typer.Option("--to", help="Target folder (root if omitted)")
    ] = None,
):
    """Re-parent an item; folders cannot move into their own subtree."""
    with handle_errors():
        vault = get_unlocked_vault()
        item = resolve_item(vault, ref)
        item = vault.move_item(item.id, resolve_folder_id(vault, to))
    ui.success(SUCCESS_MOVED.format(name=item.name))


@app.command("delete", help="Delete an item (rm)", rich_help_panel="Items")
def delete_item(
    ref: Annotated[str, typer.Argument(help="Item id, id prefix or name")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation prompt")
    ] = False,
):
    """Delete an item with confirmation; folders take their contents along."""
    with handle_errors():
        vault = get_unlocked_vault()
        item = resolve_item(vault, ref)
        prompt_text = (
            f"Delete folder '{item.name}' and everything in it?"
            if item.is_folder
            else f"Delete '{item.name}'?"
        )
        if not force and not ui.confirm(prompt_text, default=False):
            ui.info(INFO_CANCELLED)
            return
        count = vault.delete_item(item.id)
    ui.success(SUCCESS_DELETED.format(name=item.name, count=count))


# ── Tags ─────────────────────────────────────────────────────────────


@app.command("tags", help="List all tags", rich_help_panel="Tags")
def list_tags():
    with handle_errors():
        vault = get_unlocked_vault()
        ui.show_tags(vault.get_all_tags())


@app.command("rename-tag", help="Rename a tag everywhere", rich_help_panel="Tags")
def rename_tag(
    old: Annotated[str, typer.Argument(help="Current tag")],
    new: Annotated[str, typer.Argument(help="New tag")],
):
    with handle_errors():
        get_unlocked_vault().rename_tag(old, new)
    ui.success(SUCCESS_TAG_RENAMED.format(old=old, new=new))


@app.command("delete-tag", help="Remove a tag from every item", rich_help_panel="Tags")
def delete_tag(name: Annotated[str, typer.Argument(help="Tag to remove")]):
    with handle_errors():
        get_unlocked_vault().delete_tag(name)
    ui.success(SUCCESS_TAG_DELETED.format(name=name))


# ── Import / export ──────────────────────────────────────────────────


@app.command("import-csv", help="Import credentials from CSV", rich_help_panel="Backup")
def import_csv(
    path: Annotated[str, typer.Argument(help="CSV file")],
    folder: Annotated[
        Optional[str], typer.Option("--folder", "-f", help="Import beneath this folder")
    ] = None,
):
    """Import each CSV row as a key item; bad rows are reported and skipped."""
    csv_path = Path(path).expanduser()
    if not csv_path.exists():
        ui.error(ERROR_FILE_NOT_FOUND.format(path=path))
        raise typer.Exit(1)
    with handle_errors():
        vault = get_unlocked_vault()
        text = _read_file(csv_path).decode("utf-8-sig", errors="replace")
        result = vault.import_csv(text, resolve_folder_id(vault, folder))
    ui.show_import_result(result)


@app.command("export", help="Export an encrypted backup", rich_help_panel="Backup")
def export_vault(
    output: Annotated[str, typer.Argument(help="Output archive path")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing file")
    ] = False,
):
    """Write an encrypted archive; restoring it needs the master password."""
    output_path = Path(output).expanduser()
    ensure_writable(output_path, force)
    with handle_errors():
        archive = get_vault().export_encrypted_vault()
        _write_file(output_path, archive)
    ui.success(SUCCESS_EXPORTED.format(path=output_path))


@app.command(
    "export-plain", help="Export decrypted JSON", rich_help_panel="Backup"
)
def export_plain(
    output: Annotated[str, typer.Argument(help="Output JSON path")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing file")
    ] = False,
):
    """Export every item in plain text after re-entering the master password."""
    output_path = Path(output).expanduser()
    ensure_writable(output_path, force)
    ui.warning(WARNING_PLAINTEXT_EXPORT)
    with handle_errors():
        vault = get_unlocked_vault()
        password = auth.get_master_password(prompt="Confirm master password: ")
        payload = vault.export_decrypted_vault(password)
        _write_file(output_path, payload.encode("utf-8"))
    ui.success(SUCCESS_EXPORTED_PLAIN.format(path=output_path))


@app.command("restore", help="Restore an encrypted backup", rich_help_panel="Backup")
def restore_vault(
    archive: Annotated[str, typer.Argument(help="Archive produced by 'export'")],
):
    """Install an archive into an empty vault directory."""
    archive_path = Path(archive).expanduser()
    if not archive_path.exists():
        ui.error(ERROR_FILE_NOT_FOUND.format(path=archive))
        raise typer.Exit(1)
    with handle_errors():
        get_vault().restore_encrypted_vault(_read_file(archive_path))
    ui.success(SUCCESS_RESTORED.format(path=archive_path))


# ============================================================================
# Command aliases
# ============================================================================

COMMAND_ALIASES = {
    "list": ["ls"],
    "show": ["cat"],
    "delete": ["rm"],
    "move": ["mv"],
    "add-folder": ["mkdir"],
}

_COMMAND_HANDLERS = {
    "list": list_items,
    "show": show_item,
    "delete": delete_item,
    "move": move_item,
    "add-folder": add_folder,
}

for command_name, aliases in COMMAND_ALIASES.items():
    handler = _COMMAND_HANDLERS.get(command_name)
    if handler:
        for alias in aliases:
            app.command(alias, help=f"Alias for '{command_name}'", hidden=True)(handler)  # type: ignore[type-var]


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        ui.error("Operation cancelled")
        sys.exit(1)
    finally:
        reset_vault()


if __name__ == "__main__":
    main()
