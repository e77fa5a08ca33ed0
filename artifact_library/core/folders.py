"""
Folder Engine

Folders group catalogs. Folder rows live in state.folders and the
folder -> catalog mapping lives apart in state.relationships, so moving a
catalog between folders is a single table swap.

INVARIANT: every catalog id in a relationship entry refers to an existing
catalog. Unknown ids handed to create/update/move are dropped silently;
explicit add/remove of an unknown id raises NotFoundError.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional
import logging
import uuid

from ..contracts import Folder, FolderRecord, SPAM_CATALOG_ID
from ..errors import ErrorCode, NotFoundError, ValidationError
from .state import LibraryState


logger = logging.getLogger(__name__)


def _new_folder_id() -> str:
    return f"folder-{uuid.uuid4()}"


class FolderEngine:
    """Folder CRUD and the folder/catalog relationship table."""

    def __init__(
        self,
        state: LibraryState,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self._state = state
        self._new_id = id_factory or _new_folder_id

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, folder_id: str) -> Folder:
        return self._snapshot(self._record(folder_id))

    def list_all(self) -> List[Folder]:
        """Every folder, newest-created first."""
        return [self._snapshot(r) for r in self._newest_first(self._state.folders.values())]

    def catalogs_in(self, folder_id: str) -> List[str]:
        self._record(folder_id)
        return list(self._state.relationships.get(folder_id, []))

    def folders_containing(self, catalog_id: str) -> List[Folder]:
        """Folders listing the catalog, newest-created first."""
        records = [
            self._state.folders[folder_id]
            for folder_id, catalog_ids in self._state.relationships.items()
            if catalog_id in catalog_ids and folder_id in self._state.folders
        ]
        return [self._snapshot(r) for r in self._newest_first(records)]

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def create(
        self,
        name: str,
        description: str = "",
        catalog_ids: Optional[Iterable[str]] = None
    ) -> Folder:
        """
        Create a folder, seeded with the given catalogs that exist.

        Raises:
            ValidationError: empty name
        """
        name = _validate_name(name)
        now = self._state.now()
        folder_id = self._new_id()
        while folder_id in self._state.folders:
            folder_id = self._new_id()

        record = FolderRecord(
            id=folder_id,
            name=name,
            description=description or "",
            created_at=now,
            updated_at=now,
            sequence=self._state.next_sequence()
        )
        self._state.folders[folder_id] = record
        self._state.relationships[folder_id] = self._existing(catalog_ids or [])
        logger.info("Created folder %s (%s)", folder_id, name)
        return self._snapshot(record)

    def update(
        self,
        folder_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        catalog_ids: Optional[Iterable[str]] = None
    ) -> Folder:
        """Update fields; `catalog_ids`, when given, replaces the whole set."""
        record = self._record(folder_id)
        changes = {}
        if name is not None:
            changes['name'] = _validate_name(name)
        if description is not None:
            changes['description'] = description
        new_ids = self._existing(catalog_ids) if catalog_ids is not None else None

        if changes or new_ids is not None:
            record = replace(record, updated_at=self._state.now(), **changes)
            self._state.folders[folder_id] = record
        if new_ids is not None:
            self._state.relationships[folder_id] = new_ids
        return self._snapshot(record)

    def delete(self, folder_id: str) -> Folder:
        folder = self.get(folder_id)
        del self._state.folders[folder_id]
        self._state.relationships.pop(folder_id, None)
        logger.info("Deleted folder %s", folder_id)
        return folder

    def add_catalog(self, folder_id: str, catalog_id: str) -> Folder:
        """
        Raises:
            NotFoundError: unknown folder or catalog
        """
        record = self._record(folder_id)
        if not self._catalog_exists(catalog_id):
            raise NotFoundError(
                f"Catalog not found: {catalog_id}",
                code=ErrorCode.CATALOG_NOT_FOUND
            ).with_context('folder_id', folder_id)

        catalog_ids = self._state.relationships.get(folder_id, [])
        if catalog_id not in catalog_ids:
            self._state.relationships[folder_id] = catalog_ids + [catalog_id]
            record = self._touch(record)
        return self._snapshot(record)

    def remove_catalog(self, folder_id: str, catalog_id: str) -> Folder:
        record = self._record(folder_id)
        catalog_ids = self._state.relationships.get(folder_id, [])
        if catalog_id in catalog_ids:
            self._state.relationships[folder_id] = [c for c in catalog_ids if c != catalog_id]
            record = self._touch(record)
        return self._snapshot(record)

    def move_catalog_to_folders(self, catalog_id: str, folder_ids: Iterable[str]) -> List[Folder]:
        """
        Place a catalog in exactly the given folders.

        The new relationship table is computed in full and swapped in with a
        single assignment. Unknown folder ids are ignored. Returns the
        folders that now hold the catalog.
        """
        targets = [f for f in dict.fromkeys(folder_ids) if f in self._state.folders]
        if targets and not self._catalog_exists(catalog_id):
            raise NotFoundError(f"Catalog not found: {catalog_id}", code=ErrorCode.CATALOG_NOT_FOUND)

        now = self._state.now()
        relationships: Dict[str, List[str]] = {}
        changed = []
        for folder_id in self._state.folders:
            before = self._state.relationships.get(folder_id, [])
            if folder_id in targets:
                after = before if catalog_id in before else before + [catalog_id]
            else:
                after = [c for c in before if c != catalog_id]
            if after != before:
                changed.append(folder_id)
            relationships[folder_id] = after

        self._state.relationships = relationships
        for folder_id in changed:
            self._state.folders[folder_id] = replace(self._state.folders[folder_id], updated_at=now)

        logger.info("Moved catalog %s into %d folders", catalog_id, len(targets))
        return self.folders_containing(catalog_id)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _record(self, folder_id: str) -> FolderRecord:
        record = self._state.folders.get(folder_id)
        if record is None:
            raise NotFoundError(f"Folder not found: {folder_id}", code=ErrorCode.FOLDER_NOT_FOUND)
        return record

    def _snapshot(self, record: FolderRecord) -> Folder:
        return Folder(
            id=record.id,
            name=record.name,
            description=record.description,
            created_at=record.created_at,
            updated_at=record.updated_at,
            catalog_ids=tuple(self._state.relationships.get(record.id, [])),
        )

    def _touch(self, record: FolderRecord) -> FolderRecord:
        record = replace(record, updated_at=self._state.now())
        self._state.folders[record.id] = record
        return record

    def _catalog_exists(self, catalog_id: str) -> bool:
        return catalog_id == SPAM_CATALOG_ID or catalog_id in self._state.catalogs

    def _existing(self, catalog_ids: Iterable[str]) -> List[str]:
        return [c for c in dict.fromkeys(catalog_ids) if self._catalog_exists(c)]

    @staticmethod
    def _newest_first(records: Iterable[FolderRecord]) -> List[FolderRecord]:
        return sorted(records, key=lambda r: (r.created_at, r.sequence), reverse=True)


def _validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Folder name must not be empty", code=ErrorCode.EMPTY_NAME)
    return name
