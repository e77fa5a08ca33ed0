"""
Aggregation / Filter Layer

Read-only views over the library state: the cross-wallet library index,
faceted filtering, sorting, search, the unorganized view, pagination and
wallet-set expansion through delegations.

Nothing here mutates state.
"""

from __future__ import annotations
from typing import Any, Iterable, List, Mapping, Optional, Sequence, TypeVar
import logging

from ..contracts import Artifact, Wallet
from ..errors import ProviderError
from ..ingestion.fetcher import DelegationResolver
from ..ingestion.normalizer import normalize_address
from .state import LibraryState


logger = logging.getLogger(__name__)

T = TypeVar('T')

FILTER_CATEGORIES = ('wallet', 'contract', 'network', 'media_type')
SORT_FIELDS = ('name', 'wallet', 'contract', 'network')
MAX_DELEGATION_PAGES = 100


# =============================================================================
# LIBRARY INDEX
# =============================================================================

def library_index(state: LibraryState, merge_cross_wallet: bool = True) -> List[Artifact]:
    """
    Every artifact across linked wallets, networks and standards.

    Wallets are walked in link order, then any wallet that only exists in
    the store. With `merge_cross_wallet`, the same token held by several
    wallets appears once (the first wallet seen wins).
    """
    store = state.artifacts
    wallet_ids = list(state.wallets)
    wallet_ids.extend(w for w in store.wallet_ids() if w not in state.wallets)

    artifacts: List[Artifact] = []
    seen = set()
    for wallet_id in wallet_ids:
        for artifact in store.flatten(wallet_id):
            key = artifact.identity.token_key if merge_cross_wallet else artifact.identity
            if key in seen:
                continue
            seen.add(key)
            artifacts.append(artifact)
    return artifacts


def unorganized(state: LibraryState, merge_cross_wallet: bool = True) -> List[Artifact]:
    """Artifacts in no catalog (spam counts as organized)."""
    return [a for a in library_index(state, merge_cross_wallet) if not a.is_in_catalog]


# =============================================================================
# FILTER / SORT / SEARCH
# =============================================================================

def filter_artifacts(
    artifacts: Iterable[Artifact],
    filters: Mapping[str, Sequence[Any]],
    wallets: Optional[Mapping[str, Wallet]] = None
) -> List[Artifact]:
    """
    Faceted filter: AND across categories, OR within a category.

    Categories: wallet (id, address or nickname), contract (name or
    address), network, media_type. A category given with an empty value
    list admits nothing. Unknown categories are ignored.
    """
    wallets = wallets or {}
    active = {
        category: {_fold(v) for v in values}
        for category, values in filters.items()
        if category in FILTER_CATEGORIES and values is not None
    }
    return [a for a in artifacts if _matches(a, active, wallets)]


def _matches(artifact: Artifact, active: Mapping[str, set], wallets: Mapping[str, Wallet]) -> bool:
    for category, wanted in active.items():
        if not wanted or not wanted.intersection(_facet_values(artifact, category, wallets)):
            return False
    return True


def _facet_values(artifact: Artifact, category: str, wallets: Mapping[str, Wallet]) -> set:
    if category == 'wallet':
        values = {artifact.wallet_id}
        wallet = wallets.get(artifact.wallet_id)
        if wallet is not None:
            values.update(v for v in (wallet.address, wallet.nickname) if v)
    elif category == 'contract':
        values = {artifact.contract_address, artifact.contract_name}
    elif category == 'network':
        values = {artifact.network}
    else:
        values = {artifact.media.media_type.value}
    return {_fold(v) for v in values if v}


def sort_artifacts(
    artifacts: Iterable[Artifact],
    field: str = 'name',
    ascending: bool = True,
    wallets: Optional[Mapping[str, Wallet]] = None
) -> List[Artifact]:
    """
    Case-insensitive stable sort by name, wallet, contract or network.

    Ties fall back on identity order, in the same direction.
    """
    if field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {field}")
    wallets = wallets or {}

    def key(artifact: Artifact) -> str:
        if field == 'name':
            value = artifact.title
        elif field == 'wallet':
            wallet = wallets.get(artifact.wallet_id)
            value = wallet.display_name if wallet else artifact.wallet_id
        elif field == 'contract':
            value = artifact.contract_name or artifact.contract_address
        else:
            value = artifact.network
        return _fold(value)

    by_identity = sorted(artifacts, key=lambda a: a.identity, reverse=not ascending)
    return sorted(by_identity, key=key, reverse=not ascending)


def search(
    state: LibraryState,
    query: Optional[str],
    merge_cross_wallet: bool = True,
    exclude_spam: bool = False
) -> List[Artifact]:
    """Case-insensitive substring search over title, token id and contract name."""
    needle = _fold(query).strip()
    if not needle:
        return []

    results = []
    for artifact in library_index(state, merge_cross_wallet):
        if exclude_spam and artifact.is_spam:
            continue
        haystacks = (artifact.title, artifact.token_id, artifact.contract_name)
        if any(needle in _fold(h) for h in haystacks):
            results.append(artifact)
    return results


def _fold(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, 'value') and not isinstance(value, str):
        value = value.value  # enum members, e.g. MediaType
    return str(value).casefold()


# =============================================================================
# PAGINATION & WALLET SETS
# =============================================================================

def paginate(items: Sequence[T], page: int, page_size: int) -> List[T]:
    """Zero-based page of `items`; out-of-range pages are empty."""
    if page < 0 or page_size <= 0:
        return []
    start = page * page_size
    return list(items[start:start + page_size])


def expand_wallet_set(
    addresses: Iterable[str],
    resolver: DelegationResolver,
    page_size: int = 50
) -> List[str]:
    """
    Input addresses plus every vault delegated to them.

    Pages through the resolver until a short page, a page repeating only
    vaults already paged for that address, or MAX_DELEGATION_PAGES.
    Duplicates (EVM addresses compared case-insensitively) keep their
    first occurrence.
    A failed lookup skips that address's delegations.
    """
    addresses = list(addresses)
    expanded: List[str] = []
    seen = set()

    def push(address: str):
        key = normalize_address(address)
        if key not in seen:
            seen.add(key)
            expanded.append(address)

    for address in addresses:
        push(address)

    for address in addresses:
        page = 0
        paged = set()
        while True:
            try:
                delegations = resolver.resolve_delegations(address, page, page_size)
            except ProviderError as e:
                logger.warning("Delegation lookup failed for %s: %s", address, e)
                break
            fresh = {normalize_address(d.vault) for d in delegations} - paged
            paged.update(fresh)
            for delegation in delegations:
                push(delegation.vault)
            if len(delegations) < page_size or not fresh:
                break
            page += 1
            if page >= MAX_DELEGATION_PAGES:
                logger.warning("Delegation paging for %s stopped after %d pages", address, page)
                break

    return expanded
