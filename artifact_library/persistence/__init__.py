"""
Persistence Layer

The remote store is the system of record; local state is an optimistic
cache reconciled through the SyncQueue.
"""

from .service import NullPersistence, PersistenceService
from .memory import InMemoryPersistence
from .http import HttpPersistenceService
from .sync import DrainReport, SyncQueue, TaskKind

__all__ = [
    'PersistenceService', 'NullPersistence', 'InMemoryPersistence',
    'HttpPersistenceService', 'SyncQueue', 'DrainReport', 'TaskKind',
]
