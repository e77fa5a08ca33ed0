"""
Library Contracts

Immutable data structures shared by every layer of the artifact library.

BOUNDARY: All layers
Artifacts, catalogs, folders and wallets cross layer boundaries only as the
frozen values defined here. Updates produce new values (dataclasses.replace),
so a value handed to a caller never changes underneath it.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


# =============================================================================
# ENUMS
# =============================================================================

class TokenStandard(Enum):
    """Token standards the library distinguishes."""
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"


class MediaType(Enum):
    """Media categories detected from token metadata."""
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    ANIMATION = "animation"
    ARTICLE = "article"
    MODEL = "3d"
    UNKNOWN = "unknown"


class FetchStatus(Enum):
    """Status of a (wallet, network) fetch attempt."""
    SUCCESS = "success"
    PROVIDER_ERROR = "provider_error"
    UNSUPPORTED_NETWORK = "unsupported_network"
    DISCARDED = "discarded"  # wallet unlinked while the fetch was in flight


class DelegationType(Enum):
    """Delegation scopes reported by the delegation registry."""
    NONE = 0
    ALL = 1
    CONTRACT = 2
    TOKEN = 3


# =============================================================================
# IDENTITY
# =============================================================================

@dataclass(frozen=True, order=True)
class ArtifactIdentity:
    """
    Unique key of an artifact: one token held by one wallet on one network.

    Ordered so that sorts can fall back on it for deterministic ties.
    """
    wallet_id: str
    network: str
    contract_address: str
    token_id: str

    @property
    def token_key(self) -> Tuple[str, str, str]:
        """Wallet-independent key used by cross-wallet library views."""
        return (self.network, self.contract_address, self.token_id)

    def to_dict(self) -> dict:
        return {
            'wallet_id': self.wallet_id,
            'network': self.network,
            'contract_address': self.contract_address,
            'token_id': self.token_id,
        }


# =============================================================================
# ARTIFACT
# =============================================================================

@dataclass(frozen=True)
class MediaInfo:
    """Primary media, cover image and auxiliary media references."""
    url: Optional[str] = None
    media_type: MediaType = MediaType.UNKNOWN
    cover_image_url: Optional[str] = None
    auxiliary: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'media_type': self.media_type.value,
            'cover_image_url': self.cover_image_url,
            'auxiliary': dict(self.auxiliary),
        }


@dataclass(frozen=True)
class Artifact:
    """
    One token instance owned by one wallet on one network.

    INVARIANT: is_spam implies is_in_catalog.
    """
    wallet_id: str
    network: str
    contract_address: str
    token_id: str
    token_standard: TokenStandard = TokenStandard.ERC721
    title: Optional[str] = None
    description: Optional[str] = None
    media: MediaInfo = field(default_factory=MediaInfo)
    balance: int = 1
    is_spam: bool = False
    is_in_catalog: bool = False
    creator: Optional[str] = None
    contract_name: Optional[str] = None
    raw_metadata: Any = None

    def __post_init__(self):
        # Frozen dataclass: patch through object.__setattr__
        if self.is_spam and not self.is_in_catalog:
            object.__setattr__(self, 'is_in_catalog', True)

    @property
    def identity(self) -> ArtifactIdentity:
        return ArtifactIdentity(
            wallet_id=self.wallet_id,
            network=self.network,
            contract_address=self.contract_address,
            token_id=self.token_id,
        )

    def to_dict(self) -> dict:
        return {
            **self.identity.to_dict(),
            'token_standard': self.token_standard.value,
            'title': self.title,
            'description': self.description,
            'media': self.media.to_dict(),
            'balance': self.balance,
            'is_spam': self.is_spam,
            'is_in_catalog': self.is_in_catalog,
            'creator': self.creator,
            'contract_name': self.contract_name,
            'raw_metadata': self.raw_metadata,
        }


# =============================================================================
# WALLET
# =============================================================================

@dataclass(frozen=True)
class Wallet:
    """A linked wallet and the networks whose fetch has succeeded."""
    id: str
    address: str
    linked_at: datetime
    nickname: Optional[str] = None
    networks: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def display_name(self) -> str:
        return self.nickname or self.address


# =============================================================================
# CATALOGS & FOLDERS
# =============================================================================

SPAM_CATALOG_ID = "spam"
SPAM_CATALOG_NAME = "Spam"


@dataclass(frozen=True)
class Catalog:
    """
    Named, ordered set of artifact identities.

    The system Spam catalog never stores members; its membership is computed
    from the artifact store on every read.
    """
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    is_system: bool = False
    member_ids: Tuple[ArtifactIdentity, ...] = field(default_factory=tuple)

    def contains(self, identity: ArtifactIdentity) -> bool:
        return identity in self.member_ids

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'is_system': self.is_system,
            'member_ids': [m.to_dict() for m in self.member_ids],
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class FolderRecord:
    """Folder row as held in the folder table (relationships live apart)."""
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    sequence: int = 0  # creation order, breaks created_at ties


@dataclass(frozen=True)
class Folder:
    """Snapshot of a folder joined with its relationship entry."""
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    catalog_ids: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'catalog_ids': list(self.catalog_ids),
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


# =============================================================================
# DELEGATIONS
# =============================================================================

@dataclass(frozen=True)
class Delegation:
    """A vault that delegated rights to the queried address."""
    vault: str
    type: DelegationType = DelegationType.ALL
    ens_name: Optional[str] = None


# =============================================================================
# FETCH RESULT CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class FetchResult:
    """
    Result of fetching one (wallet, network) pair.

    Failed fetches are FIRST-CLASS outputs, not exceptions.
    """
    wallet_id: str
    network: str
    attempted_at: datetime
    completed_at: datetime
    status: FetchStatus
    tokens_count: int = 0
    inserted: int = 0
    updated: int = 0
    malformed: int = 0
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == FetchStatus.SUCCESS

    @property
    def duration_ms(self) -> float:
        return (self.completed_at - self.attempted_at).total_seconds() * 1000


@dataclass(frozen=True)
class ScanReport:
    """All per-network results of one wallet scan."""
    wallet_id: str
    started_at: datetime
    completed_at: datetime
    results: Tuple[FetchResult, ...]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def active_networks(self) -> Tuple[str, ...]:
        return tuple(r.network for r in self.results if r.success)

    def warnings(self) -> Tuple[str, ...]:
        """Per-network warning messages for failed fetches."""
        return tuple(
            f"{r.network}: {r.error_message or r.status.value}"
            for r in self.results
            if not r.success
        )
