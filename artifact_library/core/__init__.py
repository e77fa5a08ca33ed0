"""
Core Library Model

The artifact store, the explicit state object and the engines that operate
on it. Engines hold references (identities, ids) only; the store owns
artifact lifecycle.
"""

from .store import ArtifactStore, IngestReport
from .state import LibraryState
from .catalogs import CatalogEngine
from .folders import FolderEngine

__all__ = [
    'ArtifactStore', 'IngestReport', 'LibraryState', 'CatalogEngine', 'FolderEngine',
]
