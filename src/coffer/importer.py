"""CSV import pipeline - bulk-convert exported credentials into key items.

Each row is imported in its own transaction. A bad row is reported and
skipped; it never aborts the rest of the import.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import CofferError, InvalidInputError
from .items import ItemRepository
from .models import DEFAULT_TEXT_MIME, ImportResult, ItemKind

logger = logging.getLogger(__name__)

# Canonical field -> accepted header spellings (compared lower-cased)
COLUMN_ALIASES: Dict[str, tuple] = {
    "name": ("account", "name", "title"),
    "login": ("login name", "login", "username", "user"),
    "secret": ("password", "secret"),
    "site": ("web site", "website", "url"),
    "folder": ("folder", "path", "group"),
    "tags": ("tags", "tag"),
    "comments": ("comments", "notes", "comment"),
}

TAG_SEPARATORS = re.compile(r"[;,]")


@dataclass
class CsvRow:
    """One credential row after header mapping."""

    line: int
    name: str
    login: str
    secret: str
    site: str
    folder: str
    tags: List[str]
    comments: str

    @property
    def display_name(self) -> str:
        return self.name or self.site or self.login

    def content(self) -> str:
        """Key item text: one ``Label: value`` line per non-empty field."""
        lines = []
        if self.login:
            lines.append(f"Username: {self.login}")
        lines.append(f"Password: {self.secret}")
        if self.site:
            lines.append(f"URL: {self.site}")
        return "\n".join(lines)


def map_header(header: List[str]) -> Dict[str, int]:
    """Locate each canonical field's column; the first matching alias wins."""
    normalized = [h.replace("\ufeff", "").strip().lower() for h in header]
    columns: Dict[str, int] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                columns[field_name] = normalized.index(alias)
                break
    if "secret" not in columns:
        raise InvalidInputError("CSV header must include a password column")
    if not {"name", "login", "site"} & columns.keys():
        raise InvalidInputError(
            "CSV header must include an account, login name or web site column"
        )
    return columns


def parse_row(line: int, values: List[str], columns: Dict[str, int], width: int) -> CsvRow:
    """Validate and map one data row."""
    if len(values) != width:
        raise InvalidInputError(f"expected {width} columns, got {len(values)}")

    def get(field_name: str) -> str:
        index = columns.get(field_name)
        return values[index].strip() if index is not None else ""

    row = CsvRow(
        line=line,
        name=get("name"),
        login=get("login"),
        secret=get("secret"),
        site=get("site"),
        folder=get("folder"),
        tags=[t.strip() for t in TAG_SEPARATORS.split(get("tags")) if t.strip()],
        comments=get("comments"),
    )
    if not row.secret:
        raise InvalidInputError("missing password")
    if not row.display_name:
        raise InvalidInputError("missing account, login name and web site")
    return row


def split_folder_path(path: str) -> List[str]:
    return [segment.strip() for segment in path.split("/") if segment.strip()]


class CsvImporter:
    """Imports CSV rows as key items beneath a parent folder."""

    def __init__(self, repository: ItemRepository):
        self.repository = repository

    def resolve_folder(self, parent_id: Optional[str], path: str) -> Optional[str]:
        """Walk ``path`` under ``parent_id``, reusing existing folders."""
        current = parent_id
        for segment in split_folder_path(path):
            existing = self.repository.find_folder(current, segment)
            if existing is None:
                existing = self.repository.create(
                    ItemKind.FOLDER, segment, parent_id=current
                )
                logger.debug("Created folder for import path segment")
            current = existing.id
        return current

    def import_text(self, csv_text: str, parent_id: Optional[str] = None) -> ImportResult:
        if not csv_text or not csv_text.strip():
            raise InvalidInputError("CSV content is empty")
        self.repository.require_folder(parent_id)

        reader = csv.reader(io.StringIO(csv_text))
        try:
            header = next(reader)
        except csv.Error as e:
            raise InvalidInputError(f"Could not read CSV header: {e}") from e
        columns = map_header(header)
        width = len(header)

        result = ImportResult()
        while True:
            try:
                values = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                result.record_error(f"Row {reader.line_num}: {e}")
                continue

            if not any(v.strip() for v in values):
                continue
            line = reader.line_num
            try:
                row = parse_row(line, values, columns, width)
                self._import_row(row, parent_id)
            except CofferError as e:
                result.record_error(f"Row {line}: {e}")
                logger.warning("Skipped CSV row %d: %s", line, e.kind)
                continue
            result.success_count += 1

        logger.info(
            "CSV import finished: %d imported, %d failed",
            result.success_count,
            result.error_count,
        )
        return result

    def _import_row(self, row: CsvRow, parent_id: Optional[str]) -> None:
        with self.repository.store.transaction():
            folder_id = self.resolve_folder(parent_id, row.folder)
            self.repository.create(
                ItemKind.KEY,
                row.display_name,
                parent_id=folder_id,
                tags=row.tags,
                comments=row.comments or None,
                content=row.content().encode("utf-8"),
                mime=DEFAULT_TEXT_MIME,
            )
