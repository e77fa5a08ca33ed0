"""
Artifact Library

Aggregates the NFTs held by linked wallets across networks and organizes
them into catalogs and folders, with spam kept apart in a system catalog.

LAYER STRUCTURE:
================

1. INGESTION (ingestion/)
   - Fetch raw tokens per (wallet, network), normalize them into Artifacts
   - Failed networks are reported as FetchResults, never raised

2. CORE (core/)
   - ArtifactStore: authoritative artifact index
   - CatalogEngine / FolderEngine: references into the store
   - views: read-only library index, filter, sort, search

3. PERSISTENCE (persistence/)
   - Remote system of record behind PersistenceService
   - SyncQueue mirrors local mutations with independent retries

4. FACADE (library.py)
   - ArtifactLibrary wires the layers around one LibraryState
"""

from .contracts import (
    Artifact,
    ArtifactIdentity,
    Catalog,
    Delegation,
    DelegationType,
    FetchResult,
    FetchStatus,
    Folder,
    MediaInfo,
    MediaType,
    ScanReport,
    SPAM_CATALOG_ID,
    TokenStandard,
    Wallet,
)
from .errors import (
    ConflictError,
    ErrorCode,
    ForeignKeyViolation,
    LibraryError,
    NotFoundError,
    PersistenceError,
    ProviderError,
    ReferentialError,
    ValidationError,
)
from .library import ArtifactLibrary, create_library
from .settings import LibrarySettings

__all__ = [
    # Contracts
    'Artifact',
    'ArtifactIdentity',
    'Catalog',
    'Delegation',
    'DelegationType',
    'FetchResult',
    'FetchStatus',
    'Folder',
    'MediaInfo',
    'MediaType',
    'ScanReport',
    'SPAM_CATALOG_ID',
    'TokenStandard',
    'Wallet',
    # Errors
    'ConflictError',
    'ErrorCode',
    'ForeignKeyViolation',
    'LibraryError',
    'NotFoundError',
    'PersistenceError',
    'ProviderError',
    'ReferentialError',
    'ValidationError',
    # Facade
    'ArtifactLibrary',
    'create_library',
    'LibrarySettings',
]
