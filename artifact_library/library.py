"""
Artifact Library

Facade wiring the library state, the catalog and folder engines, wallet
ingestion and the write-through sync queue.

Every mutation applies to local state first, then enqueues the matching
reconciliation task. Reads never touch the remote store.
"""

from __future__ import annotations
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set
import logging

from .contracts import (
    Artifact, ArtifactIdentity, Catalog, Folder, SPAM_CATALOG_ID, ScanReport, Wallet,
)
from .core import views
from .core.catalogs import CatalogEngine
from .core.folders import FolderEngine
from .core.state import LibraryState
from .core.store import ArtifactStore, IngestReport
from .errors import ErrorCode, NotFoundError
from .ingestion.fetcher import (
    ArtifactProvider, ChainDataClient, DelegationRegistryClient, DelegationResolver,
)
from .ingestion.normalizer import TokenNormalizer, normalize_address
from .ingestion.registry import NetworkRegistry
from .ingestion.service import IngestionService
from .persistence.http import HttpPersistenceService
from .persistence.service import NullPersistence, PersistenceService
from .persistence.sync import DrainReport, SyncQueue, TaskKind
from .settings import LibrarySettings


logger = logging.getLogger(__name__)


def _identity_key(identity: ArtifactIdentity) -> str:
    return "|".join((identity.wallet_id, identity.network, identity.contract_address, identity.token_id))


class ArtifactLibrary:
    """
    One user's artifact library.

    USAGE:
        library = create_library()
        wallet = library.link_wallet("0xabc...")
        asyncio.run(library.scan_wallet(wallet.id))
        favorites = library.create_catalog("Favorites")
        library.sync()
    """

    def __init__(
        self,
        state: LibraryState,
        provider: ArtifactProvider,
        registry: NetworkRegistry,
        persistence: Optional[PersistenceService] = None,
        delegation_resolver: Optional[DelegationResolver] = None,
        merge_cross_wallet: bool = True,
        delegation_page_size: int = 50,
        sync_max_attempts: int = 5
    ):
        self._state = state
        self._registry = registry
        self._resolver = delegation_resolver
        self._merge_cross_wallet = merge_cross_wallet
        self._delegation_page_size = delegation_page_size
        self.catalogs = CatalogEngine(state)
        self.folders = FolderEngine(state)
        self.sync_queue = SyncQueue(persistence or NullPersistence(), max_attempts=sync_max_attempts)
        self._ingestion = IngestionService(state, provider, registry, on_commit=self._on_ingested)

    @property
    def state(self) -> LibraryState:
        return self._state

    @property
    def store(self) -> ArtifactStore:
        return self._state.artifacts

    # =========================================================================
    # WALLETS
    # =========================================================================

    def link_wallet(
        self,
        address: str,
        nickname: Optional[str] = None,
        wallet_id: Optional[str] = None
    ) -> Wallet:
        """Link a wallet; linking an already linked id only updates its nickname."""
        wallet_id = wallet_id or normalize_address(address)
        existing = self._state.wallets.get(wallet_id)
        if existing is not None:
            if nickname is not None and nickname != existing.nickname:
                existing = replace(existing, nickname=nickname)
                self._state.wallets[wallet_id] = existing
            return existing

        wallet = Wallet(id=wallet_id, address=address, nickname=nickname, linked_at=self._state.now())
        self._state.wallets[wallet_id] = wallet
        self._bump_generation(wallet_id)
        logger.info("Linked wallet %s", wallet_id)
        return wallet

    def unlink_wallet(self, wallet_id: str) -> List[ArtifactIdentity]:
        """
        Unlink a wallet and cascade: its artifacts leave the store and every
        catalog. In-flight scans for it are discarded on completion.
        """
        self.get_wallet(wallet_id)
        del self._state.wallets[wallet_id]
        self._bump_generation(wallet_id)

        removed = self._state.artifacts.remove_wallet(wallet_id)
        changed = self.catalogs.purge_identities(removed)
        for catalog_id in changed:
            self._enqueue_catalog_update(catalog_id)

        self.sync_queue.enqueue(
            f"wallet-artifacts:delete:{wallet_id}",
            lambda svc: svc.delete_artifacts_for_wallet(wallet_id),
            kind=TaskKind.DELETE
        )
        logger.info(
            "Unlinked wallet %s: removed %d artifacts from store, %d catalogs touched",
            wallet_id, len(removed), len(changed)
        )
        return removed

    def get_wallet(self, wallet_id: str) -> Wallet:
        wallet = self._state.wallets.get(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet not linked: {wallet_id}", code=ErrorCode.WALLET_NOT_FOUND)
        return wallet

    def wallets(self) -> List[Wallet]:
        return list(self._state.wallets.values())

    async def scan_wallet(self, wallet_id: str, networks: Optional[Sequence[str]] = None) -> ScanReport:
        return await self._ingestion.scan_wallet(wallet_id, networks)

    def expand_wallet_set(self, addresses: Iterable[str]) -> List[str]:
        """Addresses plus the vaults delegated to them (unchanged without a resolver)."""
        if self._resolver is None:
            return list(dict.fromkeys(addresses))
        return views.expand_wallet_set(addresses, self._resolver, self._delegation_page_size)

    # =========================================================================
    # ARTIFACTS
    # =========================================================================

    def get_artifact(self, identity: ArtifactIdentity) -> Artifact:
        artifact = self._state.artifacts.get(identity)
        if artifact is None:
            raise NotFoundError(f"Artifact not found: {identity}", code=ErrorCode.ARTIFACT_NOT_FOUND)
        return artifact

    def set_spam(self, identity: ArtifactIdentity, is_spam: bool = True) -> Artifact:
        """Mark or unmark an artifact as spam; the Spam catalog follows."""
        if self._state.artifacts.set_spam(identity, is_spam) is None:
            raise NotFoundError(f"Artifact not found: {identity}", code=ErrorCode.ARTIFACT_NOT_FOUND)
        artifact = self.catalogs.refresh_flag(identity)
        self._enqueue_artifacts([identity])
        return artifact

    # =========================================================================
    # CATALOGS
    # =========================================================================

    def create_catalog(self, name: str, description: str = "") -> Catalog:
        catalog = self.catalogs.create(name, description)
        self.sync_queue.enqueue(
            f"catalog:create:{catalog.id}",
            lambda svc: svc.create_catalog(catalog),
            kind=TaskKind.CREATE
        )
        return catalog

    def update_catalog(
        self,
        catalog_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Catalog:
        catalog = self.catalogs.update(catalog_id, name=name, description=description)
        self._enqueue_catalog_update(catalog_id)
        return catalog

    def delete_catalog(self, catalog_id: str) -> Catalog:
        catalog = self.catalogs.delete(catalog_id)
        self._enqueue_artifacts(catalog.member_ids)
        self.sync_queue.enqueue(
            f"catalog:delete:{catalog_id}",
            lambda svc: svc.delete_catalog(catalog_id),
            kind=TaskKind.DELETE
        )
        return catalog

    def add_to_catalog(self, catalog_id: str, identities: Iterable[ArtifactIdentity]) -> int:
        identities = list(identities)
        before = set(self.catalogs.get(catalog_id).member_ids)
        added = self.catalogs.add_artifacts(catalog_id, identities)
        fresh = [i for i in dict.fromkeys(identities) if i not in before]
        self._enqueue_artifacts(fresh)
        for identity in fresh:
            self._enqueue_membership(catalog_id, identity, present=True)
        return added

    def remove_from_catalog(self, catalog_id: str, identities: Iterable[ArtifactIdentity]) -> int:
        identities = list(identities)
        before = set(self.catalogs.get(catalog_id).member_ids)
        removed = self.catalogs.remove_artifacts(catalog_id, identities)
        gone = [i for i in dict.fromkeys(identities) if i in before]
        for identity in gone:
            self._enqueue_membership(catalog_id, identity, present=False)
        self._enqueue_artifacts(gone)
        return removed

    def catalog_count(self, catalog_id: str) -> int:
        return self.catalogs.count(catalog_id)

    def catalog_artifacts(self, catalog_id: str) -> List[Artifact]:
        return self.catalogs.members_as_artifacts(catalog_id)

    def list_catalogs(self) -> List[Catalog]:
        return self.catalogs.list_all()

    # =========================================================================
    # FOLDERS
    # =========================================================================

    def create_folder(
        self,
        name: str,
        description: str = "",
        catalog_ids: Optional[Iterable[str]] = None
    ) -> Folder:
        folder = self.folders.create(name, description, catalog_ids)
        self.sync_queue.enqueue(
            f"folder:create:{folder.id}",
            lambda svc: svc.create_folder(folder),
            kind=TaskKind.CREATE
        )
        self._sync_folder_links({folder.id: set()}, {folder.id: set(folder.catalog_ids)}, touch=False)
        return folder

    def update_folder(
        self,
        folder_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        catalog_ids: Optional[Iterable[str]] = None
    ) -> Folder:
        before = {folder_id: set(self.folders.catalogs_in(folder_id))}
        folder = self.folders.update(folder_id, name=name, description=description, catalog_ids=catalog_ids)
        self._enqueue_folder_update(folder_id)
        self._sync_folder_links(before, {folder_id: set(folder.catalog_ids)})
        return folder

    def delete_folder(self, folder_id: str) -> Folder:
        folder = self.folders.delete(folder_id)
        self.sync_queue.enqueue(
            f"folder:delete:{folder_id}",
            lambda svc: svc.delete_folder(folder_id),
            kind=TaskKind.DELETE
        )
        return folder

    def add_catalog_to_folder(self, folder_id: str, catalog_id: str) -> Folder:
        before = self._link_table()
        folder = self.folders.add_catalog(folder_id, catalog_id)
        self._sync_folder_links(before, self._link_table())
        return folder

    def remove_catalog_from_folder(self, folder_id: str, catalog_id: str) -> Folder:
        before = self._link_table()
        folder = self.folders.remove_catalog(folder_id, catalog_id)
        self._sync_folder_links(before, self._link_table())
        return folder

    def move_catalog_to_folders(self, catalog_id: str, folder_ids: Iterable[str]) -> List[Folder]:
        before = self._link_table()
        folders = self.folders.move_catalog_to_folders(catalog_id, folder_ids)
        self._sync_folder_links(before, self._link_table())
        return folders

    def list_folders(self) -> List[Folder]:
        return self.folders.list_all()

    # =========================================================================
    # VIEWS
    # =========================================================================

    def library_index(self) -> List[Artifact]:
        return views.library_index(self._state, self._merge_cross_wallet)

    def unorganized(self) -> List[Artifact]:
        return views.unorganized(self._state, self._merge_cross_wallet)

    def search(self, query: Optional[str], exclude_spam: bool = False) -> List[Artifact]:
        return views.search(self._state, query, self._merge_cross_wallet, exclude_spam)

    def browse(
        self,
        filters: Optional[Mapping[str, Sequence[Any]]] = None,
        sort_field: str = 'name',
        ascending: bool = True,
        page: int = 0,
        page_size: Optional[int] = None
    ) -> List[Artifact]:
        """Library page: index, then filter, sort and (optionally) paginate."""
        artifacts = self.library_index()
        if filters:
            artifacts = views.filter_artifacts(artifacts, filters, self._state.wallets)
        artifacts = views.sort_artifacts(artifacts, sort_field, ascending, self._state.wallets)
        if page_size is None:
            return artifacts
        return views.paginate(artifacts, page, page_size)

    def stats(self) -> dict:
        return {
            'wallets': len(self._state.wallets),
            'artifacts': self._state.artifacts.total_count(),
            'spam': self._state.artifacts.total_spam_count(),
            'catalogs': len(self._state.catalogs),
            'folders': len(self._state.folders),
            'structure': self._state.artifacts.structure(),
            'pending_sync': len(self.sync_queue),
            'registry': self._registry.stats(),
        }

    # =========================================================================
    # SYNC
    # =========================================================================

    def sync(self) -> DrainReport:
        """Push pending local changes to the remote store once."""
        return self.sync_queue.drain()

    def _on_ingested(self, report: IngestReport):
        self._enqueue_artifacts(report.identities, key=f"artifacts:{report.wallet_id}:{report.network}")

    def _enqueue_artifacts(self, identities: Iterable[ArtifactIdentity], key: Optional[str] = None):
        identities = list(identities)
        if not identities:
            return
        store = self._state.artifacts

        def push(svc: PersistenceService):
            # Resolved at drain time so the latest flags are written
            artifacts = [a for a in (store.get(i) for i in identities) if a is not None]
            if artifacts:
                svc.upsert_artifacts_batch(artifacts)

        if key is None:
            key = "artifact:" + ",".join(_identity_key(i) for i in identities)
        self.sync_queue.enqueue(key, push)

    def _enqueue_catalog_update(self, catalog_id: str):
        catalogs = self._state.catalogs

        def push(svc: PersistenceService):
            catalog = catalogs.get(catalog_id)
            if catalog is not None:
                svc.update_catalog(catalog)

        self.sync_queue.enqueue(f"catalog:update:{catalog_id}", push)

    def _enqueue_folder_update(self, folder_id: str):
        def push(svc: PersistenceService):
            if folder_id in self._state.folders:
                svc.update_folder(self.folders.get(folder_id))

        self.sync_queue.enqueue(f"folder:update:{folder_id}", push)

    def _enqueue_membership(self, catalog_id: str, identity: ArtifactIdentity, present: bool):
        key = f"catalog-member:{catalog_id}:{_identity_key(identity)}"
        if present:
            self.sync_queue.enqueue(
                key,
                lambda svc: svc.add_artifact_to_catalog(catalog_id, identity),
                on_foreign_key=lambda: self._drop_membership(catalog_id, identity)
            )
        else:
            self.sync_queue.enqueue(key, lambda svc: svc.remove_artifact_from_catalog(catalog_id, identity))

    def _drop_membership(self, catalog_id: str, identity: ArtifactIdentity):
        if catalog_id in self._state.catalogs:
            self.catalogs.remove_artifacts(catalog_id, [identity])

    def _link_table(self) -> Dict[str, Set[str]]:
        return {folder_id: set(ids) for folder_id, ids in self._state.relationships.items()}

    def _sync_folder_links(
        self,
        before: Mapping[str, Set[str]],
        after: Mapping[str, Set[str]],
        touch: bool = True
    ):
        """Enqueue link writes for the difference between two relationship tables."""
        for folder_id in set(before) | set(after):
            old = before.get(folder_id, set())
            new = after.get(folder_id, set())
            if old == new:
                continue
            for catalog_id in sorted(new - old):
                self._enqueue_folder_link(folder_id, catalog_id, present=True)
            for catalog_id in sorted(old - new):
                self._enqueue_folder_link(folder_id, catalog_id, present=False)
            if touch and folder_id in self._state.folders:
                self._enqueue_folder_update(folder_id)

    def _enqueue_folder_link(self, folder_id: str, catalog_id: str, present: bool):
        if catalog_id == SPAM_CATALOG_ID:
            return  # the system catalog has no remote row
        key = f"folder-link:{folder_id}:{catalog_id}"
        if present:
            self.sync_queue.enqueue(
                key,
                lambda svc: svc.add_catalog_to_folder(folder_id, catalog_id),
                on_foreign_key=lambda: self._drop_folder_link(folder_id, catalog_id)
            )
        else:
            self.sync_queue.enqueue(key, lambda svc: svc.remove_catalog_from_folder(folder_id, catalog_id))

    def _drop_folder_link(self, folder_id: str, catalog_id: str):
        if folder_id in self._state.folders:
            self.folders.remove_catalog(folder_id, catalog_id)

    def _bump_generation(self, wallet_id: str):
        self._state.wallet_generations[wallet_id] = self._state.wallet_generations.get(wallet_id, 0) + 1


def create_library(
    settings: Optional[LibrarySettings] = None,
    config_path: Optional[str] = None,
    provider: Optional[ArtifactProvider] = None,
    persistence: Optional[PersistenceService] = None,
    delegation_resolver: Optional[DelegationResolver] = None,
    registry: Optional[NetworkRegistry] = None
) -> ArtifactLibrary:
    """Create a library with defaults from config/library.json and the environment."""
    if settings is None:
        settings = LibrarySettings.load(Path(config_path) if config_path else None)
    registry = registry or NetworkRegistry.load()

    if provider is None:
        provider = ChainDataClient(
            base_url=settings.provider_base_url,
            registry=registry,
            api_key=settings.provider_api_key,
            page_limit=settings.provider_page_limit,
            timeout=settings.provider_timeout
        )
    if persistence is None:
        if settings.persistence_base_url:
            persistence = HttpPersistenceService(
                base_url=settings.persistence_base_url,
                api_key=settings.persistence_api_key,
                timeout=settings.persistence_timeout
            )
        else:
            persistence = NullPersistence()
    if delegation_resolver is None and settings.delegation_base_url:
        delegation_resolver = DelegationRegistryClient(base_url=settings.delegation_base_url)

    normalizer = TokenNormalizer(
        ipfs_gateway=settings.ipfs_gateway,
        arweave_gateway=settings.arweave_gateway
    )
    state = LibraryState(artifacts=ArtifactStore(normalizer))

    return ArtifactLibrary(
        state=state,
        provider=provider,
        registry=registry,
        persistence=persistence,
        delegation_resolver=delegation_resolver,
        merge_cross_wallet=settings.merge_cross_wallet_duplicates,
        delegation_page_size=settings.delegation_page_size,
        sync_max_attempts=settings.sync_max_attempts
    )
