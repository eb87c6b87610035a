"""UI utilities."""

from datetime import datetime
from typing import Dict, List, Optional

import questionary
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Config
from .models import BruteForceConfig, ImportResult, ItemKind, VaultItem

console = Console()

# Clean questionary style - minimal highlighting for select/autocomplete
select_style = questionary.Style(
    [
        ("qmark", "fg:#5f87af bold"),  # Question mark
        ("question", "bold"),  # Question text
        ("pointer", "fg:#5f87af bold"),  # Selection pointer (>)
        ("highlighted", "fg:#ffffff bg:#5f87af"),  # Current line highlight
        ("selected", ""),  # Selected items
        ("separator", "fg:#6c6c6c"),  # Separators
        ("instruction", "fg:#6c6c6c"),  # Instructions
        ("text", ""),  # Plain text
        ("answer", "fg:#5f87af bold"),  # User's answer
    ]
)

KIND_ICONS = {
    ItemKind.FOLDER: "[yellow]▸[/yellow]",
    ItemKind.TEXT: "[cyan]≡[/cyan]",
    ItemKind.KEY: "[green]⚿[/green]",
    ItemKind.FILE: "[magenta]◆[/magenta]",
}


def success(message: str) -> None:
    """Display success message."""
    console.print(f"[green]✓[/green] {message}")


def error(message: str) -> None:
    """Display error message."""
    console.print(f"[red]✗[/red] {message}")


def info(message: str) -> None:
    """Display info message."""
    console.print(f"[blue]i[/blue] {message}")


def warning(message: str) -> None:
    """Display warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def confirm(message: str, default: bool = False) -> bool:
    """Ask for confirmation."""
    result = questionary.confirm(message, default=default, style=select_style).ask()
    return result if result is not None else False


def prompt(message: str, default: str = "") -> str:
    """Prompt for input with optional default."""
    try:
        result = questionary.text(message, default=default, style=select_style).ask()
        return result if result is not None else ""
    except (KeyboardInterrupt, EOFError):
        return ""


def select(message: str, choices: List[str], default: Optional[str] = None) -> Optional[str]:
    """Pick one of ``choices``; None when cancelled."""
    try:
        return questionary.select(
            message, choices=choices, default=default, style=select_style
        ).ask()
    except KeyboardInterrupt:
        return None


def humanize_date(dt: Optional[datetime]) -> str:
    """Format datetime as absolute timestamp."""
    if not dt:
        return "—"

    # Convert to local time for display
    local_dt = dt.astimezone() if dt.tzinfo else dt

    # Format as "YYYY-MM-DD HH:MM"
    return local_dt.strftime("%Y-%m-%d %H:%M")


def truncate(text: str, length: int = Config.MAX_NAME_DISPLAY_LENGTH) -> str:
    return text if len(text) <= length else text[: length - 1] + "…"


def humanize_size(size: int) -> str:
    for unit in ("B", "KiB", "MiB"):
        if size < 1024:
            return f"{size} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"


def show_items_table(items: List[VaultItem], title: str = "Vault") -> None:
    """Display items table."""
    if not items:
        info("No items found")
        return

    table = Table(title=title, show_lines=False, expand=True)
    table.add_column("", width=2)
    table.add_column("Name", style="cyan bold", no_wrap=True)
    table.add_column("Kind", style="green")
    table.add_column("Tags", style="magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Updated", style="dim", justify="right")

    for item in items:
        kind = item.kind.value
        if item.is_folder and item.folder_type:
            kind = f"{kind} ({item.folder_type})"
        elif item.kind is ItemKind.FILE and item.mime:
            kind = f"{kind} ({item.mime})"
        table.add_row(
            KIND_ICONS[item.kind],
            truncate(item.name),
            kind,
            ", ".join(item.tags) or "—",
            item.id[:8],
            humanize_date(item.updated_at),
        )

    console.print(table)
    console.print(f"[dim]Total: {len(items)} items[/dim]")


def show_item_panel(
    item: VaultItem, content: Optional[bytes] = None, reveal: bool = False
) -> None:
    """Display item details, with text content when given."""
    lines = [f"[dim]ID:[/dim] {item.id}", f"[green]Kind:[/green] {item.kind.value}"]

    if item.mime:
        lines.append(f"[blue]MIME:[/blue] {item.mime}")
    if item.folder_type:
        lines.append(f"[blue]Folder type:[/blue] {item.folder_type}")
    if item.tags:
        lines.append(f"[magenta]Tags:[/magenta] {', '.join(item.tags)}")

    if content is not None:
        if item.kind is ItemKind.FILE:
            lines.append(f"[yellow]Size:[/yellow] {humanize_size(len(content))}")
        else:
            text = content.decode("utf-8", errors="replace")
            if item.kind is ItemKind.KEY and not reveal:
                text = "\n".join(_mask_secret_line(line) for line in text.splitlines())
            lines.append(f"\n[yellow]Content:[/yellow]\n{text}")

    if item.comments:
        lines.append(f"\n[cyan]Comments:[/cyan]\n{item.comments}")

    # Temporal info
    lines.append("")
    lines.append(
        f"[dim]Created {humanize_date(item.created_at)} • "
        f"Updated {humanize_date(item.updated_at)}[/dim]"
    )

    panel = Panel(
        "\n".join(lines),
        title=item.name,
        border_style="cyan",
        expand=False,
    )
    console.print(panel)


def _mask_secret_line(line: str) -> str:
    if line.startswith("Password:"):
        return f"Password: {'•' * 12}  [dim](use --reveal to show)[/dim]"
    return line


def show_import_result(result: ImportResult) -> None:
    """Summarize a CSV import."""
    if result.success_count:
        success(f"Imported {result.success_count} item(s)")
    if result.error_count:
        warning(f"{result.error_count} row(s) skipped:")
        for message in result.errors:
            console.print(f"  [dim]•[/dim] {message}")
    if not result.success_count and not result.error_count:
        info("Nothing to import")


def show_tags(tags: List[str]) -> None:
    if not tags:
        info("No tags found")
        return
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="magenta")
    for tag in tags:
        table.add_row(tag)
    console.print(table)
    console.print(f"[dim]Total: {len(tags)} tags[/dim]")


def show_stats(stats: Dict[str, object], state: str, location: str) -> None:
    """Display vault statistics."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="cyan", ratio=1)
    table.add_column(ratio=1)

    table.add_row("Location", location)
    table.add_row("State", state)

    # Add separator
    table.add_row("", "")

    table.add_row("Total items", str(stats["total"]))
    for kind, count in stats["by_kind"].items():
        table.add_row(f"  {kind}", str(count))

    panel = Panel(
        table,
        title="[bold cyan]Vault Statistics[/bold cyan]",
        border_style="cyan",
        padding=(1, 2),
    )
    console.print()
    console.print(panel)


def show_brute_force_config(policy: BruteForceConfig) -> None:
    status = "[green]enabled[/green]" if policy.enabled else "[red]disabled[/red]"
    console.print(
        Panel(
            f"Status: {status}\n"
            f"Max attempts: {policy.max_attempts}\n"
            f"Lockout duration: {policy.lockout_duration_minutes} min",
            title="Brute-force protection",
            border_style="cyan",
            expand=False,
        )
    )
