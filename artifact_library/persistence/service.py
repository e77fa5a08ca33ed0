"""
Persistence Contract

The remote system of record is reached only through PersistenceService.
Implementations raise:
- NotFoundError        the addressed row does not exist
- ConflictError        a row with the same key already exists
- ForeignKeyViolation  the row references a catalog/folder/artifact that is gone
- PersistenceError     anything else (transport, server)

Row shapes are shared by every implementation so that an in-memory table
and a REST table hold identical records.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Sequence

from ..contracts import Artifact, ArtifactIdentity, Catalog, Folder


# =============================================================================
# ROW SHAPES
# =============================================================================

def artifact_row(artifact: Artifact) -> dict:
    return {
        **artifact.identity.to_dict(),
        'token_standard': artifact.token_standard.value,
        'title': artifact.title,
        'description': artifact.description,
        'media_url': artifact.media.url,
        'media_type': artifact.media.media_type.value,
        'cover_image_url': artifact.media.cover_image_url,
        'balance': artifact.balance,
        'is_spam': artifact.is_spam,
        'is_in_catalog': artifact.is_in_catalog,
        'creator': artifact.creator,
        'contract_name': artifact.contract_name,
        'metadata': artifact.raw_metadata,
    }


def catalog_row(catalog: Catalog) -> dict:
    return {
        'id': catalog.id,
        'name': catalog.name,
        'description': catalog.description,
        'created_at': catalog.created_at.isoformat(),
        'updated_at': catalog.updated_at.isoformat(),
    }


def folder_row(folder: Folder) -> dict:
    return {
        'id': folder.id,
        'name': folder.name,
        'description': folder.description,
        'created_at': folder.created_at.isoformat(),
        'updated_at': folder.updated_at.isoformat(),
    }


def membership_row(catalog_id: str, identity: ArtifactIdentity) -> dict:
    return {'catalog_id': catalog_id, **identity.to_dict()}


# =============================================================================
# CONTRACT
# =============================================================================

class PersistenceService(ABC):
    """Narrow interface to the remote store."""

    @abstractmethod
    def upsert_artifact(self, artifact: Artifact) -> None:
        raise NotImplementedError

    @abstractmethod
    def upsert_artifacts_batch(self, artifacts: Sequence[Artifact]) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_artifacts_for_wallet(self, wallet_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_catalog(self, catalog: Catalog) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_catalog(self, catalog: Catalog) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_catalog(self, catalog_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_artifact_to_catalog(self, catalog_id: str, identity: ArtifactIdentity) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_artifact_from_catalog(self, catalog_id: str, identity: ArtifactIdentity) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_folder(self, folder: Folder) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_folder(self, folder: Folder) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_folder(self, folder_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_catalog_to_folder(self, folder_id: str, catalog_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_catalog_from_folder(self, folder_id: str, catalog_id: str) -> None:
        raise NotImplementedError


class NullPersistence(PersistenceService):
    """Accepts every write and stores nothing; used when no backend is configured."""

    def upsert_artifact(self, artifact):
        pass

    def upsert_artifacts_batch(self, artifacts):
        pass

    def delete_artifacts_for_wallet(self, wallet_id):
        pass

    def create_catalog(self, catalog):
        pass

    def update_catalog(self, catalog):
        pass

    def delete_catalog(self, catalog_id):
        pass

    def add_artifact_to_catalog(self, catalog_id, identity):
        pass

    def remove_artifact_from_catalog(self, catalog_id, identity):
        pass

    def create_folder(self, folder):
        pass

    def update_folder(self, folder):
        pass

    def delete_folder(self, folder_id):
        pass

    def add_catalog_to_folder(self, folder_id, catalog_id):
        pass

    def remove_catalog_from_folder(self, folder_id, catalog_id):
        pass
