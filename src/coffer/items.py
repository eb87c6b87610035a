"""Item operations over the store: hierarchy, content, tags and listings."""

import logging
import uuid
from collections import Counter
from typing import Callable, Dict, List, Optional

from .cipher import ItemCipher, normalize_tags
from .errors import InvalidInputError, ItemNotFoundError
from .models import ItemKind, ItemRecord, SortOrder, VaultItem, utcnow
from .store import VaultStore

logger = logging.getLogger(__name__)

_UNCHANGED = object()


def new_id() -> str:
    return uuid.uuid4().hex


def clean_name_for_sorting(name: str) -> str:
    """Sort key that ignores URL schemes and a leading www."""
    return (
        name.replace("https://", "")
        .replace("http://", "")
        .replace("www.", "")
        .lower()
    )


def _sort_key(order: SortOrder) -> Callable[[VaultItem], object]:
    if order in (SortOrder.NAME_ASC, SortOrder.NAME_DESC):
        return lambda item: clean_name_for_sorting(item.name)
    if order in (SortOrder.UPDATED_ASC, SortOrder.UPDATED_DESC):
        return lambda item: item.updated_at
    return lambda item: item.created_at


def sort_items(items: List[VaultItem], order: SortOrder) -> List[VaultItem]:
    """Sort by ``order`` with folders always ahead of other items."""
    ordered = sorted(items, key=_sort_key(order), reverse=order.descending)
    return [i for i in ordered if i.is_folder] + [i for i in ordered if not i.is_folder]


def matches_type_filter(item: VaultItem, type_filter: str) -> bool:
    """Folders match on folder_type; items on kind prefix, files also on MIME prefix."""
    if item.is_folder:
        return item.folder_type == type_filter
    if item.kind.value.startswith(type_filter):
        return True
    return bool(
        item.kind is ItemKind.FILE and item.mime and item.mime.startswith(type_filter)
    )


def validate_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError("Name cannot be empty")
    return name.strip()


class ItemRepository:
    """CRUD over vault items for one unlocked key.

    Every mutating method runs in a store transaction; when called inside an
    outer transaction it joins it.
    """

    def __init__(self, store: VaultStore, cipher: ItemCipher):
        self.store = store
        self.cipher = cipher

    # ── Lookup ───────────────────────────────────────────────────────

    def get_record(self, item_id: str) -> ItemRecord:
        record = self.store.get_item(item_id)
        if record is None:
            raise ItemNotFoundError(item_id)
        return record

    def get(self, item_id: str) -> VaultItem:
        return self.cipher.open_record(self.get_record(item_id))

    def require_folder(self, folder_id: Optional[str]) -> None:
        """Check that ``folder_id`` is the root (None) or an existing folder."""
        if folder_id is None:
            return
        record = self.get_record(folder_id)
        if record.kind is not ItemKind.FOLDER:
            raise InvalidInputError(f"Parent {folder_id} is not a folder")

    def find_folder(self, parent_id: Optional[str], name: str) -> Optional[ItemRecord]:
        """First folder named ``name`` under ``parent_id`` by creation order."""
        for record in self.store.children(parent_id):
            if record.kind is ItemKind.FOLDER and self.cipher.open_text(record.name) == name:
                return record
        return None

    # ── Create ───────────────────────────────────────────────────────

    def create(
        self,
        kind: ItemKind,
        name: str,
        parent_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
        comments: Optional[str] = None,
        content: Optional[bytes] = None,
        mime: Optional[str] = None,
        folder_type: Optional[str] = None,
    ) -> ItemRecord:
        name = validate_name(name)
        if kind.has_content and content is None:
            raise InvalidInputError(f"A {kind.value} item needs content")
        if not kind.has_content and content is not None:
            raise InvalidInputError("Folders cannot hold content")
        if kind.has_mime and not mime:
            raise InvalidInputError("File items need a MIME type")

        now = utcnow()
        record = ItemRecord(
            id=new_id(),
            parent_id=parent_id,
            kind=kind,
            name=self.cipher.seal_text(name),
            tags=self.cipher.seal_tags(tags or []),
            comments=self.cipher.seal_optional(comments or None),
            content_mime=mime if kind.has_content else None,
            folder_type=folder_type if kind is ItemKind.FOLDER else None,
            created_at=now,
            updated_at=now,
        )
        with self.store.transaction():
            self.require_folder(parent_id)
            if content is not None:
                record.content_ref = self._write_blob(content)
            self.store.insert_item(record)
        logger.debug("Created %s item %s", kind.value, record.id)
        return record

    def _write_blob(self, content: bytes) -> bytes:
        blob_id = new_id()
        self.store.put_blob(blob_id, self.cipher.seal(content))
        return self.cipher.seal_text(blob_id)

    # ── Update / move ────────────────────────────────────────────────

    def update(
        self,
        item_id: str,
        name: Optional[str] = None,
        content: Optional[bytes] = None,
        tags: Optional[List[str]] = None,
        comments=_UNCHANGED,
    ) -> ItemRecord:
        """Replace the given fields; ``None`` keeps the stored value."""
        with self.store.transaction():
            record = self.get_record(item_id)
            if name is not None:
                record.name = self.cipher.seal_text(validate_name(name))
            if tags is not None:
                record.tags = self.cipher.seal_tags(tags)
            if comments is not _UNCHANGED:
                record.comments = self.cipher.seal_optional(comments or None)
            if content is not None:
                if not record.kind.has_content:
                    raise InvalidInputError("Folders cannot hold content")
                old_blob = self._blob_id(record)
                record.content_ref = self._write_blob(content)
                if old_blob:
                    self.store.delete_blobs([old_blob])
            record.updated_at = utcnow()
            self.store.update_item(record)
        return record

    def move(self, item_id: str, new_parent_id: Optional[str]) -> ItemRecord:
        """Re-parent an item, refusing moves that would create a cycle."""
        with self.store.transaction():
            record = self.get_record(item_id)
            self.require_folder(new_parent_id)
            ancestor = new_parent_id
            while ancestor is not None:
                if ancestor == item_id:
                    raise InvalidInputError("Cannot move a folder into itself")
                ancestor = self.get_record(ancestor).parent_id
            record.parent_id = new_parent_id
            record.updated_at = utcnow()
            self.store.update_item(record)
        return record

    # ── Delete ───────────────────────────────────────────────────────

    def delete(self, item_id: str) -> int:
        """Delete an item; folders take their whole subtree with them."""
        with self.store.transaction():
            doomed = self.store.descendants(item_id)
            if not doomed:
                raise ItemNotFoundError(item_id)
            blob_ids = [b for b in (self._blob_id(r) for r in doomed) if b]
            self.store.delete_items([r.id for r in doomed])
            self.store.delete_blobs(blob_ids)
        logger.debug("Deleted %d item(s) under %s", len(doomed), item_id)
        return len(doomed)

    def _blob_id(self, record: ItemRecord) -> Optional[str]:
        if record.content_ref is None:
            return None
        return self.cipher.open_text(record.content_ref)

    # ── Content ──────────────────────────────────────────────────────

    def content(self, item_id: str) -> bytes:
        return self.cipher.open_content(self.get_record(item_id), self.store.get_blob)

    # ── Listings ─────────────────────────────────────────────────────

    def list(
        self,
        parent_id: Optional[str] = None,
        type_filter: Optional[str] = None,
        sort_order: Optional[SortOrder] = None,
    ) -> List[VaultItem]:
        """Direct children of ``parent_id`` (root when None), decrypted and sorted."""
        items = [self.cipher.open_record(r) for r in self.store.children(parent_id)]
        items = sort_items(items, SortOrder.parse(sort_order))
        if type_filter:
            items = [i for i in items if matches_type_filter(i, type_filter)]
        return items

    def list_all(self) -> List[VaultItem]:
        """Every item in the vault, folders first, then by name."""
        items = [self.cipher.open_record(r) for r in self.store.all_items()]
        return sort_items(items, SortOrder.NAME_ASC)

    # ── Tags ─────────────────────────────────────────────────────────

    def all_tags(self) -> List[str]:
        tags = set()
        for record in self.store.all_items():
            tags.update(self.cipher.open_tags(record.tags))
        return sorted(tags)

    def rename_tag(self, old: str, new: str) -> int:
        """Replace ``old`` with ``new`` on every item carrying it."""
        old, new = old.strip(), new.strip()
        if not old or not new:
            raise InvalidInputError("Tag names cannot be empty")
        return self._rewrite_tags(
            lambda tags: [new if t == old else t for t in tags] if old in tags else None
        )

    def delete_tag(self, name: str) -> int:
        """Remove ``name`` from every item carrying it."""
        name = name.strip()
        if not name:
            raise InvalidInputError("Tag name cannot be empty")
        return self._rewrite_tags(
            lambda tags: [t for t in tags if t != name] if name in tags else None
        )

    def _rewrite_tags(self, rewrite: Callable[[List[str]], Optional[List[str]]]) -> int:
        changed = 0
        with self.store.transaction():
            for record in self.store.all_items():
                new_tags = rewrite(self.cipher.open_tags(record.tags))
                if new_tags is None:
                    continue
                record.tags = self.cipher.seal_tags(normalize_tags(new_tags))
                record.updated_at = utcnow()
                self.store.update_item(record)
                changed += 1
        logger.info("Rewrote tags on %d item(s)", changed)
        return changed

    # ── Statistics ───────────────────────────────────────────────────

    def stats(self) -> Dict[str, object]:
        """Total item count and a count per kind."""
        records = self.store.all_items()
        by_kind = Counter(r.kind.value for r in records)
        return {"total": len(records), "by_kind": dict(sorted(by_kind.items()))}
