"""
Library State

The single constructed state object shared by the engines. There are no
module-level stores: every engine receives the state it operates on.

Tables:
- artifacts:     ArtifactStore (owns artifact lifecycle)
- wallets:       wallet_id -> Wallet, in link order
- catalogs:      catalog_id -> Catalog (user catalogs only; Spam is synthetic)
- folders:       folder_id -> FolderRecord
- relationships: folder_id -> [catalog_id, ...]
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List
import itertools

from ..contracts import Catalog, FolderRecord, Wallet
from .store import ArtifactStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LibraryState:
    artifacts: ArtifactStore = field(default_factory=ArtifactStore)
    wallets: Dict[str, Wallet] = field(default_factory=dict)
    catalogs: Dict[str, Catalog] = field(default_factory=dict)
    folders: Dict[str, FolderRecord] = field(default_factory=dict)
    relationships: Dict[str, List[str]] = field(default_factory=dict)
    clock: Callable[[], datetime] = utc_now
    # Bumped on every link/unlink so in-flight scans can detect staleness
    wallet_generations: Dict[str, int] = field(default_factory=dict)
    _sequence: itertools.count = field(default_factory=itertools.count)

    def now(self) -> datetime:
        return self.clock()

    def next_sequence(self) -> int:
        return next(self._sequence)
