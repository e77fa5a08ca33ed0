"""
Chain Data Clients

HTTP clients for the two external collaborators the library reads from:
the chain-data provider (tokens held by an address on a network) and the
delegation registry (vaults that delegated to an address).

PRINCIPLES:
===========
1. Every transport failure becomes a ProviderError scoped to one
   address/network; callers decide how to record it
2. Provider cursors are followed until exhausted
3. Retries and backoff are the provider's concern, not ours
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

import httpx

from ..contracts import Delegation, DelegationType
from ..errors import ErrorCode, ProviderError
from .registry import NetworkRegistry


logger = logging.getLogger(__name__)


# =============================================================================
# INTERFACES
# =============================================================================

class ArtifactProvider(ABC):
    """Source of raw token records for one address on one network."""

    @abstractmethod
    async def fetch_artifacts(self, address: str, network: str) -> List[dict]:
        """
        Fetch all raw tokens held by `address` on `network`.

        Raises:
            ProviderError: the fetch failed
        """
        raise NotImplementedError


class DelegationResolver(ABC):
    """Paginated lookup of delegations made to an address."""

    @abstractmethod
    def resolve_delegations(self, address: str, page: int, page_size: int) -> List[Delegation]:
        raise NotImplementedError


# =============================================================================
# CHAIN DATA PROVIDER
# =============================================================================

class ChainDataClient(ArtifactProvider):
    """
    Fetches wallet NFTs from a Moralis-style REST endpoint.

    GET {base_url}/{address}/nft?chain=<chain>&cursor=<cursor>
    """

    def __init__(
        self,
        base_url: str,
        registry: NetworkRegistry,
        api_key: Optional[str] = None,
        page_limit: int = 100,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._base_url = base_url.rstrip('/')
        self._registry = registry
        self._api_key = api_key
        self._page_limit = page_limit
        self._timeout = timeout
        self._transport = transport

    async def fetch_artifacts(self, address: str, network: str) -> List[dict]:
        chain = self._registry.chain_for(network)
        if chain is None:
            raise ProviderError(
                f"Unsupported network: {network}",
                address=address,
                network=network,
                code=ErrorCode.UNSUPPORTED_NETWORK
            )

        headers = {'Accept': 'application/json'}
        if self._api_key:
            headers['X-API-Key'] = self._api_key

        tokens: List[dict] = []
        cursor: Optional[str] = None

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=headers,
                transport=self._transport
            ) as client:
                while True:
                    params: Dict[str, Any] = {
                        'chain': chain,
                        'format': 'decimal',
                        'limit': self._page_limit,
                        'normalizeMetadata': 'true',
                    }
                    if cursor:
                        params['cursor'] = cursor

                    response = await client.get(f"{self._base_url}/{address}/nft", params=params)
                    response.raise_for_status()
                    page = response.json()

                    tokens.extend(_page_results(page))
                    cursor = page.get('cursor') if isinstance(page, dict) else None
                    if not cursor:
                        break

        except httpx.TimeoutException as e:
            raise ProviderError(f"Timeout fetching {network}: {e}", address=address, network=network)
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"HTTP {e.response.status_code} fetching {network}",
                address=address,
                network=network
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Network error fetching {network}: {e}", address=address, network=network)
        except ValueError as e:
            raise ProviderError(f"Invalid provider payload for {network}: {e}", address=address, network=network)

        logger.info("Fetched %d tokens for %s on %s", len(tokens), address, network)
        return tokens


def _page_results(page: Any) -> List[dict]:
    if isinstance(page, list):
        return [t for t in page if isinstance(t, dict)]
    if isinstance(page, dict):
        results = page.get('result') or page.get('nfts') or []
        if not isinstance(results, list):
            raise ValueError(f"unexpected results type {type(results).__name__}")
        return [t for t in results if isinstance(t, dict)]
    raise ValueError(f"unexpected page type {type(page).__name__}")


# =============================================================================
# DELEGATION REGISTRY
# =============================================================================

class DelegationRegistryClient(DelegationResolver):
    """
    Reads incoming delegations from a delegate.xyz-style registry API.

    The registry returns the full list per address; it is fetched once per
    address and paged locally.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._base_url = base_url.rstrip('/')
        self._timeout = timeout
        self._transport = transport
        self._cache: Dict[str, List[Delegation]] = {}

    def resolve_delegations(self, address: str, page: int, page_size: int) -> List[Delegation]:
        if page < 0 or page_size <= 0:
            return []
        delegations = self._all_delegations(address)
        start = page * page_size
        return delegations[start:start + page_size]

    def _all_delegations(self, address: str) -> List[Delegation]:
        key = address.lower()
        if key in self._cache:
            return self._cache[key]

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(f"{self._base_url}/{address}")
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"Delegation lookup failed: {e}", address=address)
        except ValueError as e:
            raise ProviderError(f"Invalid delegation payload: {e}", address=address)

        entries = payload.get('delegations', []) if isinstance(payload, dict) else payload
        delegations = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            recipient = entry.get('to') or entry.get('delegate')
            if recipient and recipient.lower() != key:
                continue  # outgoing delegation
            vault = entry.get('vault') or entry.get('from')
            if not vault:
                continue
            delegations.append(Delegation(
                vault=vault,
                type=_delegation_type(entry.get('type')),
                ens_name=entry.get('ensName') or entry.get('ens_name')
            ))

        self._cache[key] = delegations
        return delegations


def _delegation_type(value: Any) -> DelegationType:
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return DelegationType(value)
        except ValueError:
            return DelegationType.NONE
    if isinstance(value, str):
        return DelegationType.__members__.get(value.strip().upper(), DelegationType.NONE)
    return DelegationType.NONE
