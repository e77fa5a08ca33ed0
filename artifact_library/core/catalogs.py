"""
Catalog Engine

User catalogs are named, ordered sets of artifact identities. The single
system catalog, Spam, is synthetic: its members are exactly the artifacts
flagged as spam, read from the store on every call and never stored.

Every mutation validates before it writes, so a raised error leaves the
state untouched.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Iterable, List, Optional
import logging
import uuid

from ..contracts import (
    Artifact, ArtifactIdentity, Catalog, SPAM_CATALOG_ID, SPAM_CATALOG_NAME,
)
from ..errors import (
    ConflictError, ErrorCode, NotFoundError, ReferentialError, ValidationError,
)
from .state import LibraryState


logger = logging.getLogger(__name__)


def _new_catalog_id() -> str:
    return f"catalog-{uuid.uuid4()}"


class CatalogEngine:
    """Catalog CRUD, membership and spam-aware counts over a LibraryState."""

    def __init__(
        self,
        state: LibraryState,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self._state = state
        self._new_id = id_factory or _new_catalog_id
        self._spam_created_at = state.now()

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, catalog_id: str) -> Catalog:
        """
        Raises:
            NotFoundError: unknown catalog id
        """
        if catalog_id == SPAM_CATALOG_ID:
            return self.spam_catalog()
        catalog = self._state.catalogs.get(catalog_id)
        if catalog is None:
            raise NotFoundError(f"Catalog not found: {catalog_id}", code=ErrorCode.CATALOG_NOT_FOUND)
        return catalog

    def exists(self, catalog_id: str) -> bool:
        return catalog_id == SPAM_CATALOG_ID or catalog_id in self._state.catalogs

    def spam_catalog(self) -> Catalog:
        """Spam catalog with membership recomputed from the store."""
        return Catalog(
            id=SPAM_CATALOG_ID,
            name=SPAM_CATALOG_NAME,
            created_at=self._spam_created_at,
            updated_at=self._spam_created_at,
            description="Artifacts flagged as spam",
            is_system=True,
            member_ids=tuple(a.identity for a in self._state.artifacts.spam_artifacts()),
        )

    def user_catalogs(self) -> List[Catalog]:
        """User catalogs, newest first."""
        newest_first = list(reversed(list(self._state.catalogs.values())))
        return sorted(newest_first, key=lambda c: c.created_at, reverse=True)

    def list_all(self) -> List[Catalog]:
        """User catalogs (newest first) followed by the Spam catalog."""
        return self.user_catalogs() + [self.spam_catalog()]

    def count(self, catalog_id: str) -> int:
        """Number of artifacts in a catalog."""
        if catalog_id == SPAM_CATALOG_ID:
            return self._state.artifacts.total_spam_count()
        return len(self.get(catalog_id).member_ids)

    def members_as_artifacts(self, catalog_id: str) -> List[Artifact]:
        """Resolve members through the store; orphaned identities are skipped."""
        if catalog_id == SPAM_CATALOG_ID:
            return self._state.artifacts.spam_artifacts()
        store = self._state.artifacts
        resolved = (store.get(identity) for identity in self.get(catalog_id).member_ids)
        return [artifact for artifact in resolved if artifact is not None]

    def catalogs_containing(self, identity: ArtifactIdentity) -> List[Catalog]:
        return [c for c in self.user_catalogs() if c.contains(identity)]

    def is_member_anywhere(self, identity: ArtifactIdentity) -> bool:
        return any(c.contains(identity) for c in self._state.catalogs.values())

    # =========================================================================
    # CATALOG MUTATIONS
    # =========================================================================

    def create(self, name: str, description: str = "") -> Catalog:
        """
        Create an empty user catalog.

        Raises:
            ValidationError: empty name
            ConflictError: name already used by another user catalog
        """
        name = self._validate_name(name)
        now = self._state.now()
        catalog = Catalog(
            id=self._unique_id(),
            name=name,
            description=description or "",
            created_at=now,
            updated_at=now,
        )
        self._state.catalogs[catalog.id] = catalog
        logger.info("Created catalog %s (%s)", catalog.id, name)
        return catalog

    def update(
        self,
        catalog_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Catalog:
        """Rename and/or re-describe a user catalog."""
        catalog = self._user_catalog(catalog_id)
        changes = {}
        if name is not None:
            changes['name'] = self._validate_name(name, exclude_id=catalog_id)
        if description is not None:
            changes['description'] = description
        if not changes:
            return catalog

        catalog = replace(catalog, updated_at=self._state.now(), **changes)
        self._state.catalogs[catalog_id] = catalog
        return catalog

    def rename(self, catalog_id: str, name: str) -> Catalog:
        return self.update(catalog_id, name=name)

    def delete(self, catalog_id: str) -> Catalog:
        """
        Delete a user catalog and remove it from every folder.

        The folder relationships are rewritten in the same call, so no folder
        ever references the deleted id.
        """
        catalog = self._user_catalog(catalog_id)
        now = self._state.now()

        relationships = {
            folder_id: [c for c in catalog_ids if c != catalog_id]
            for folder_id, catalog_ids in self._state.relationships.items()
        }
        touched = [
            folder_id for folder_id, catalog_ids in self._state.relationships.items()
            if catalog_id in catalog_ids
        ]

        del self._state.catalogs[catalog_id]
        self._state.relationships = relationships
        for folder_id in touched:
            record = self._state.folders.get(folder_id)
            if record is not None:
                self._state.folders[folder_id] = replace(record, updated_at=now)

        for identity in catalog.member_ids:
            self.refresh_flag(identity)

        logger.info("Deleted catalog %s (removed from %d folders)", catalog_id, len(touched))
        return catalog

    # =========================================================================
    # MEMBERSHIP
    # =========================================================================

    def add_artifact(self, catalog_id: str, identity: ArtifactIdentity) -> bool:
        """Add one identity. Returns False when it was already a member."""
        return self.add_artifacts(catalog_id, [identity]) == 1

    def remove_artifact(self, catalog_id: str, identity: ArtifactIdentity) -> bool:
        """Remove one identity. Returns False when it was not a member."""
        return self.remove_artifacts(catalog_id, [identity]) == 1

    def add_artifacts(self, catalog_id: str, identities: Iterable[ArtifactIdentity]) -> int:
        """
        Add identities not already present, preserving order.

        Raises:
            ReferentialError: an identity does not resolve in the store
        """
        catalog = self._user_catalog(catalog_id)
        identities = list(identities)
        missing = [i for i in identities if i not in self._state.artifacts]
        if missing:
            raise ReferentialError(
                f"Artifact not found: {missing[0]}",
                code=ErrorCode.ARTIFACT_NOT_FOUND
            ).with_context('catalog_id', catalog_id)

        members = list(catalog.member_ids)
        present = set(members)
        added = []
        for identity in identities:
            if identity not in present:
                present.add(identity)
                members.append(identity)
                added.append(identity)
        if not added:
            return 0

        self._state.catalogs[catalog_id] = replace(
            catalog, member_ids=tuple(members), updated_at=self._state.now()
        )
        for identity in added:
            self._state.artifacts.set_in_catalog(identity, True)
        return len(added)

    def remove_artifacts(self, catalog_id: str, identities: Iterable[ArtifactIdentity]) -> int:
        catalog = self._user_catalog(catalog_id)
        doomed = set(identities) & set(catalog.member_ids)
        if not doomed:
            return 0

        self._state.catalogs[catalog_id] = replace(
            catalog,
            member_ids=tuple(i for i in catalog.member_ids if i not in doomed),
            updated_at=self._state.now()
        )
        for identity in doomed:
            self.refresh_flag(identity)
        return len(doomed)

    def refresh_flag(self, identity: ArtifactIdentity) -> Optional[Artifact]:
        """Recompute is_in_catalog as (spam OR member of any catalog)."""
        return self._state.artifacts.set_in_catalog(identity, self.is_member_anywhere(identity))

    def purge_identities(self, identities: Iterable[ArtifactIdentity]) -> List[str]:
        """Drop identities from every catalog. Returns ids of changed catalogs."""
        doomed = set(identities)
        changed = []
        now = self._state.now()
        for catalog_id, catalog in list(self._state.catalogs.items()):
            if doomed.intersection(catalog.member_ids):
                self._state.catalogs[catalog_id] = replace(
                    catalog,
                    member_ids=tuple(i for i in catalog.member_ids if i not in doomed),
                    updated_at=now
                )
                changed.append(catalog_id)
        return changed

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _user_catalog(self, catalog_id: str) -> Catalog:
        if catalog_id == SPAM_CATALOG_ID:
            raise ValidationError(
                "The Spam catalog is managed by the system",
                code=ErrorCode.SYSTEM_CATALOG_READ_ONLY
            )
        return self.get(catalog_id)

    def _validate_name(self, name: Optional[str], exclude_id: Optional[str] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Catalog name must not be empty", code=ErrorCode.EMPTY_NAME)
        folded = name.casefold()
        for catalog in self._state.catalogs.values():
            if catalog.id != exclude_id and not catalog.is_system and catalog.name.casefold() == folded:
                raise ConflictError(f"Catalog name already in use: {name}", code=ErrorCode.DUPLICATE_NAME)
        return name

    def _unique_id(self) -> str:
        catalog_id = self._new_id()
        while catalog_id in self._state.catalogs or catalog_id == SPAM_CATALOG_ID:
            catalog_id = self._new_id()
        return catalog_id
