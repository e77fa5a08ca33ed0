"""
In-Memory Persistence Tests

Keys, foreign keys and cascades mirror the remote schema.
"""

import pytest

from artifact_library.contracts import Artifact, Catalog, Folder
from artifact_library.errors import ConflictError, ForeignKeyViolation, NotFoundError, PersistenceError
from artifact_library.persistence.memory import InMemoryPersistence
from tests.fixtures import CONTRACT_X, EPOCH


def artifact(token_id, wallet="W"):
    return Artifact(wallet_id=wallet, network="eth", contract_address=CONTRACT_X, token_id=token_id)


def catalog(catalog_id="c1", name="Favorites"):
    return Catalog(id=catalog_id, name=name, created_at=EPOCH, updated_at=EPOCH)


def folder(folder_id="f1", name="Folder"):
    return Folder(id=folder_id, name=name, created_at=EPOCH, updated_at=EPOCH)


@pytest.fixture
def backend():
    return InMemoryPersistence()


def test_artifact_upsert_replaces_row(backend):
    backend.upsert_artifact(artifact("1"))
    backend.upsert_artifacts_batch([artifact("1"), artifact("2")])
    assert len(backend.artifacts) == 2
    assert backend.artifacts[artifact("1").identity]['token_id'] == "1"


def test_catalog_create_conflict_and_missing_update(backend):
    backend.create_catalog(catalog())
    with pytest.raises(ConflictError):
        backend.create_catalog(catalog())
    with pytest.raises(NotFoundError):
        backend.update_catalog(catalog("c2"))
    with pytest.raises(NotFoundError):
        backend.delete_catalog("c2")


def test_membership_foreign_keys(backend):
    backend.create_catalog(catalog())
    with pytest.raises(ForeignKeyViolation):
        backend.add_artifact_to_catalog("c1", artifact("1").identity)
    backend.upsert_artifact(artifact("1"))
    with pytest.raises(ForeignKeyViolation):
        backend.add_artifact_to_catalog("c9", artifact("1").identity)

    backend.add_artifact_to_catalog("c1", artifact("1").identity)
    assert backend.catalog_members("c1") == {artifact("1").identity}


def test_catalog_delete_cascades(backend):
    backend.create_catalog(catalog())
    backend.create_folder(folder())
    backend.upsert_artifact(artifact("1"))
    backend.add_artifact_to_catalog("c1", artifact("1").identity)
    backend.add_catalog_to_folder("f1", "c1")

    backend.delete_catalog("c1")

    assert backend.catalog_members("c1") == set()
    assert backend.folder_catalogs("f1") == set()


def test_wallet_delete_cascades_memberships(backend):
    backend.create_catalog(catalog())
    backend.upsert_artifacts_batch([artifact("1"), artifact("2", wallet="V")])
    backend.add_artifact_to_catalog("c1", artifact("1").identity)
    backend.add_artifact_to_catalog("c1", artifact("2", wallet="V").identity)

    backend.delete_artifacts_for_wallet("W")

    assert list(backend.artifacts) == [artifact("2", wallet="V").identity]
    assert backend.catalog_members("c1") == {artifact("2", wallet="V").identity}


def test_folder_links(backend):
    backend.create_folder(folder())
    with pytest.raises(ForeignKeyViolation):
        backend.add_catalog_to_folder("f1", "c1")
    backend.create_catalog(catalog())
    backend.add_catalog_to_folder("f1", "c1")
    backend.remove_catalog_from_folder("f1", "c1")
    backend.remove_catalog_from_folder("f1", "c1")
    assert backend.folder_catalogs("f1") == set()

    backend.delete_folder("f1")
    with pytest.raises(NotFoundError):
        backend.delete_folder("f1")


def test_unavailable_backend(backend):
    backend.available = False
    with pytest.raises(PersistenceError):
        backend.create_catalog(catalog())
    assert backend.catalogs == {}
