"""
Catalog Engine Tests
"""

import pytest

from artifact_library.contracts import ArtifactIdentity, SPAM_CATALOG_ID
from artifact_library.core.catalogs import CatalogEngine
from artifact_library.core.folders import FolderEngine
from artifact_library.errors import (
    ConflictError, ErrorCode, NotFoundError, ReferentialError, ValidationError,
)
from tests.fixtures import CONTRACT_X, FrozenClock, flat_token, make_state


def key(token_id, wallet="W"):
    return ArtifactIdentity(wallet_id=wallet, network="eth", contract_address=CONTRACT_X, token_id=token_id)


@pytest.fixture
def state():
    state = make_state()
    state.artifacts.ingest("W", "eth", [flat_token(str(i), CONTRACT_X) for i in range(1, 5)])
    return state


@pytest.fixture
def catalogs(state):
    return CatalogEngine(state)


class TestCatalogCrud:

    def test_create(self, catalogs):
        catalog = catalogs.create("  Favorites ", "best ones")
        assert catalog.name == "Favorites"
        assert catalog.description == "best ones"
        assert not catalog.is_system
        assert catalogs.get(catalog.id) == catalog

    def test_empty_name_rejected(self, catalogs):
        with pytest.raises(ValidationError) as exc_info:
            catalogs.create("   ")
        assert exc_info.value.code == ErrorCode.EMPTY_NAME

    def test_duplicate_name_rejected_case_insensitively(self, catalogs):
        catalogs.create("Favorites")
        with pytest.raises(ConflictError):
            catalogs.create("favorites")

    def test_conflict_is_a_validation_error(self, catalogs):
        catalogs.create("A")
        with pytest.raises(ValidationError):
            catalogs.create("A")

    def test_spam_name_is_not_reserved(self, catalogs):
        assert catalogs.create("Spam").id != SPAM_CATALOG_ID

    def test_ids_are_unique(self, state):
        ids = iter(["dup", "dup", "fresh"])
        catalogs = CatalogEngine(state, id_factory=lambda: next(ids))
        assert catalogs.create("One").id == "dup"
        assert catalogs.create("Two").id == "fresh"

    def test_rename(self, catalogs):
        catalog = catalogs.create("Old")
        renamed = catalogs.rename(catalog.id, "New")
        assert renamed.name == "New"
        assert renamed.updated_at > catalog.updated_at

    def test_rename_to_own_name_with_other_case(self, catalogs):
        catalog = catalogs.create("Mixed")
        assert catalogs.rename(catalog.id, "MIXED").name == "MIXED"

    def test_rename_conflict_leaves_state_untouched(self, catalogs):
        a = catalogs.create("A")
        catalogs.create("B")
        with pytest.raises(ConflictError):
            catalogs.update(a.id, name="b", description="changed")
        assert catalogs.get(a.id) == a

    def test_update_unknown(self, catalogs):
        with pytest.raises(NotFoundError):
            catalogs.update("missing", name="X")

    def test_spam_catalog_is_read_only(self, catalogs):
        for call in (
            lambda: catalogs.rename(SPAM_CATALOG_ID, "Junk"),
            lambda: catalogs.delete(SPAM_CATALOG_ID),
            lambda: catalogs.add_artifact(SPAM_CATALOG_ID, key("1")),
            lambda: catalogs.remove_artifact(SPAM_CATALOG_ID, key("1")),
        ):
            with pytest.raises(ValidationError) as exc_info:
                call()
            assert exc_info.value.code == ErrorCode.SYSTEM_CATALOG_READ_ONLY

    def test_list_all_newest_first_then_spam(self, catalogs):
        first = catalogs.create("First")
        second = catalogs.create("Second")
        assert [c.id for c in catalogs.list_all()] == [second.id, first.id, SPAM_CATALOG_ID]

    def test_list_all_tie_broken_by_creation_order(self):
        state = make_state(clock=FrozenClock())
        catalogs = CatalogEngine(state)
        first = catalogs.create("First")
        second = catalogs.create("Second")
        assert [c.id for c in catalogs.user_catalogs()] == [second.id, first.id]


class TestMembership:

    def test_add_sets_flag(self, state, catalogs):
        catalog = catalogs.create("Favorites")
        assert catalogs.add_artifact(catalog.id, key("1"))
        assert state.artifacts.get(key("1")).is_in_catalog
        assert catalogs.count(catalog.id) == 1

    def test_add_is_idempotent(self, catalogs):
        catalog = catalogs.create("Favorites")
        catalogs.add_artifact(catalog.id, key("1"))
        assert not catalogs.add_artifact(catalog.id, key("1"))
        assert catalogs.get(catalog.id).member_ids == (key("1"),)

    def test_add_unknown_identity_raises_referential_error(self, catalogs):
        catalog = catalogs.create("Favorites")
        with pytest.raises(ReferentialError):
            catalogs.add_artifacts(catalog.id, [key("1"), key("99")])
        assert catalogs.count(catalog.id) == 0

    def test_add_to_unknown_catalog(self, catalogs):
        with pytest.raises(NotFoundError):
            catalogs.add_artifact("missing", key("1"))

    def test_remove_clears_flag_only_when_no_catalog_left(self, state, catalogs):
        a = catalogs.create("A")
        b = catalogs.create("B")
        catalogs.add_artifact(a.id, key("1"))
        catalogs.add_artifact(b.id, key("1"))

        catalogs.remove_artifact(a.id, key("1"))
        assert state.artifacts.get(key("1")).is_in_catalog

        catalogs.remove_artifact(b.id, key("1"))
        assert not state.artifacts.get(key("1")).is_in_catalog

    def test_remove_non_member(self, catalogs):
        catalog = catalogs.create("A")
        assert not catalogs.remove_artifact(catalog.id, key("1"))

    def test_bulk_add_preserves_order_and_counts_new(self, catalogs):
        catalog = catalogs.create("A")
        catalogs.add_artifact(catalog.id, key("2"))
        added = catalogs.add_artifacts(catalog.id, [key("3"), key("2"), key("1"), key("3")])
        assert added == 2
        assert catalogs.get(catalog.id).member_ids == (key("2"), key("3"), key("1"))

    def test_bulk_remove(self, catalogs):
        catalog = catalogs.create("A")
        catalogs.add_artifacts(catalog.id, [key("1"), key("2"), key("3")])
        assert catalogs.remove_artifacts(catalog.id, [key("1"), key("3"), key("4")]) == 2
        assert catalogs.get(catalog.id).member_ids == (key("2"),)

    def test_members_as_artifacts_skips_orphans(self, state, catalogs):
        catalog = catalogs.create("A")
        catalogs.add_artifacts(catalog.id, [key("1"), key("2")])
        state.artifacts.remove("W", "eth", CONTRACT_X, "1")

        assert [a.token_id for a in catalogs.members_as_artifacts(catalog.id)] == ["2"]
        assert catalogs.count(catalog.id) == 2

    def test_catalogs_containing(self, catalogs):
        a = catalogs.create("A")
        b = catalogs.create("B")
        catalogs.add_artifact(a.id, key("1"))
        catalogs.add_artifact(b.id, key("1"))
        assert [c.id for c in catalogs.catalogs_containing(key("1"))] == [b.id, a.id]
        assert catalogs.catalogs_containing(key("2")) == []

    def test_purge_identities(self, catalogs):
        a = catalogs.create("A")
        b = catalogs.create("B")
        catalogs.add_artifacts(a.id, [key("1"), key("2")])
        catalogs.add_artifacts(b.id, [key("3")])

        assert catalogs.purge_identities([key("1"), key("9")]) == [a.id]
        assert catalogs.get(a.id).member_ids == (key("2"),)


class TestSpamCatalog:

    def test_count_tracks_store_directly(self, state, catalogs):
        assert catalogs.count(SPAM_CATALOG_ID) == 0
        state.artifacts.set_spam(key("2"), True)
        state.artifacts.set_spam(key("4"), True)
        assert catalogs.count(SPAM_CATALOG_ID) == 2
        state.artifacts.remove("W", "eth", CONTRACT_X, "4")
        assert catalogs.count(SPAM_CATALOG_ID) == 1

    def test_membership_is_computed(self, state, catalogs):
        state.artifacts.set_spam(key("3"), True)
        spam = catalogs.get(SPAM_CATALOG_ID)
        assert spam.is_system
        assert spam.name == "Spam"
        assert spam.member_ids == (key("3"),)
        assert [a.token_id for a in catalogs.members_as_artifacts(SPAM_CATALOG_ID)] == ["3"]

    def test_refresh_flag_after_unmark(self, state, catalogs):
        state.artifacts.set_spam(key("1"), True)
        state.artifacts.set_spam(key("1"), False)
        assert state.artifacts.get(key("1")).is_in_catalog
        assert not catalogs.refresh_flag(key("1")).is_in_catalog


class TestDelete:

    def test_delete_removes_from_every_folder(self, state, catalogs):
        folders = FolderEngine(state)
        favorites = catalogs.create("Favorites")
        other = catalogs.create("Other")
        f1 = folders.create("One", catalog_ids=[favorites.id, other.id])
        f2 = folders.create("Two", catalog_ids=[favorites.id])

        catalogs.delete(favorites.id)

        assert folders.get(f1.id).catalog_ids == (other.id,)
        assert folders.get(f2.id).catalog_ids == ()
        assert folders.folders_containing(favorites.id) == []
        with pytest.raises(NotFoundError):
            catalogs.members_as_artifacts(favorites.id)

    def test_delete_recomputes_flags(self, state, catalogs):
        a = catalogs.create("A")
        b = catalogs.create("B")
        catalogs.add_artifacts(a.id, [key("1"), key("2")])
        catalogs.add_artifact(b.id, key("2"))

        catalogs.delete(a.id)

        assert not state.artifacts.get(key("1")).is_in_catalog
        assert state.artifacts.get(key("2")).is_in_catalog

    def test_delete_unknown(self, catalogs):
        with pytest.raises(NotFoundError):
            catalogs.delete("missing")
