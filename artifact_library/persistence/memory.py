"""
In-Memory Persistence

Dictionary-backed PersistenceService for offline use and tests. Enforces the
same keys and foreign keys as the remote schema:

    artifacts          PK (wallet_id, network, contract_address, token_id)
    catalogs           PK id
    catalog_artifacts  FK catalog_id -> catalogs, FK identity -> artifacts
    folders            PK id
    catalog_folders    FK folder_id -> folders, FK catalog_id -> catalogs

Deleting a catalog, folder or wallet cascades to the link tables.
"""

from __future__ import annotations
from typing import Dict, Sequence, Set, Tuple

from ..contracts import Artifact, ArtifactIdentity, Catalog, Folder
from ..errors import (
    ConflictError, ErrorCode, ForeignKeyViolation, NotFoundError, PersistenceError,
)
from .service import PersistenceService, artifact_row, catalog_row, folder_row


class InMemoryPersistence(PersistenceService):

    def __init__(self):
        self.artifacts: Dict[ArtifactIdentity, dict] = {}
        self.catalogs: Dict[str, dict] = {}
        self.catalog_artifacts: Set[Tuple[str, ArtifactIdentity]] = set()
        self.folders: Dict[str, dict] = {}
        self.catalog_folders: Set[Tuple[str, str]] = set()
        # Flip to False to simulate the backend being unreachable
        self.available = True
        self.calls = 0

    # =========================================================================
    # ARTIFACTS
    # =========================================================================

    def upsert_artifact(self, artifact: Artifact) -> None:
        self._check_available()
        self.artifacts[artifact.identity] = artifact_row(artifact)

    def upsert_artifacts_batch(self, artifacts: Sequence[Artifact]) -> None:
        self._check_available()
        for artifact in artifacts:
            self.artifacts[artifact.identity] = artifact_row(artifact)

    def delete_artifacts_for_wallet(self, wallet_id: str) -> None:
        self._check_available()
        doomed = {i for i in self.artifacts if i.wallet_id == wallet_id}
        for identity in doomed:
            del self.artifacts[identity]
        self.catalog_artifacts = {
            (c, i) for c, i in self.catalog_artifacts if i not in doomed
        }

    # =========================================================================
    # CATALOGS
    # =========================================================================

    def create_catalog(self, catalog: Catalog) -> None:
        self._check_available()
        if catalog.id in self.catalogs:
            raise ConflictError(f"Catalog row exists: {catalog.id}", code=ErrorCode.ROW_CONFLICT)
        self.catalogs[catalog.id] = catalog_row(catalog)

    def update_catalog(self, catalog: Catalog) -> None:
        self._check_available()
        if catalog.id not in self.catalogs:
            raise NotFoundError(f"Catalog row missing: {catalog.id}", code=ErrorCode.ROW_NOT_FOUND)
        self.catalogs[catalog.id] = catalog_row(catalog)

    def delete_catalog(self, catalog_id: str) -> None:
        self._check_available()
        if self.catalogs.pop(catalog_id, None) is None:
            raise NotFoundError(f"Catalog row missing: {catalog_id}", code=ErrorCode.ROW_NOT_FOUND)
        self.catalog_artifacts = {(c, i) for c, i in self.catalog_artifacts if c != catalog_id}
        self.catalog_folders = {(f, c) for f, c in self.catalog_folders if c != catalog_id}

    def add_artifact_to_catalog(self, catalog_id: str, identity: ArtifactIdentity) -> None:
        self._check_available()
        if catalog_id not in self.catalogs:
            raise ForeignKeyViolation(f"No catalog row {catalog_id}").with_context('catalog_id', catalog_id)
        if identity not in self.artifacts:
            raise ForeignKeyViolation(f"No artifact row {identity}").with_context('catalog_id', catalog_id)
        self.catalog_artifacts.add((catalog_id, identity))

    def remove_artifact_from_catalog(self, catalog_id: str, identity: ArtifactIdentity) -> None:
        self._check_available()
        self.catalog_artifacts.discard((catalog_id, identity))

    # =========================================================================
    # FOLDERS
    # =========================================================================

    def create_folder(self, folder: Folder) -> None:
        self._check_available()
        if folder.id in self.folders:
            raise ConflictError(f"Folder row exists: {folder.id}", code=ErrorCode.ROW_CONFLICT)
        self.folders[folder.id] = folder_row(folder)

    def update_folder(self, folder: Folder) -> None:
        self._check_available()
        if folder.id not in self.folders:
            raise NotFoundError(f"Folder row missing: {folder.id}", code=ErrorCode.ROW_NOT_FOUND)
        self.folders[folder.id] = folder_row(folder)

    def delete_folder(self, folder_id: str) -> None:
        self._check_available()
        if self.folders.pop(folder_id, None) is None:
            raise NotFoundError(f"Folder row missing: {folder_id}", code=ErrorCode.ROW_NOT_FOUND)
        self.catalog_folders = {(f, c) for f, c in self.catalog_folders if f != folder_id}

    def add_catalog_to_folder(self, folder_id: str, catalog_id: str) -> None:
        self._check_available()
        if folder_id not in self.folders:
            raise ForeignKeyViolation(f"No folder row {folder_id}").with_context('folder_id', folder_id)
        if catalog_id not in self.catalogs:
            raise ForeignKeyViolation(f"No catalog row {catalog_id}").with_context('folder_id', folder_id)
        self.catalog_folders.add((folder_id, catalog_id))

    def remove_catalog_from_folder(self, folder_id: str, catalog_id: str) -> None:
        self._check_available()
        self.catalog_folders.discard((folder_id, catalog_id))

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def catalog_members(self, catalog_id: str) -> Set[ArtifactIdentity]:
        return {i for c, i in self.catalog_artifacts if c == catalog_id}

    def folder_catalogs(self, folder_id: str) -> Set[str]:
        return {c for f, c in self.catalog_folders if f == folder_id}

    def _check_available(self):
        self.calls += 1
        if not self.available:
            raise PersistenceError("Persistence backend unavailable")
