"""
Test Fixtures

Deterministic raw tokens, clocks and fake collaborators.
All fixtures are explicit - no random generation.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from artifact_library.contracts import Delegation, DelegationType, Wallet
from artifact_library.core.state import LibraryState
from artifact_library.core.store import ArtifactStore
from artifact_library.errors import ProviderError
from artifact_library.ingestion.fetcher import ArtifactProvider, DelegationResolver
from artifact_library.ingestion.registry import NetworkConfig, NetworkRegistry


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

EPOCH = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class TickingClock:
    """Returns EPOCH, EPOCH+1s, EPOCH+2s, ... on successive calls."""

    def __init__(self, start: datetime = EPOCH, step: timedelta = timedelta(seconds=1)):
        self._now = start
        self._step = step

    def __call__(self) -> datetime:
        value = self._now
        self._now += self._step
        return value


class FrozenClock:
    """Always returns the same instant (forces created_at ties)."""

    def __call__(self) -> datetime:
        return EPOCH


# =============================================================================
# ADDRESSES
# =============================================================================

WALLET_A = "0x" + "a" * 40
WALLET_B = "0x" + "b" * 40
VAULT_1 = "0x" + "c" * 40
VAULT_2 = "0x" + "d" * 40

CONTRACT_X = "0x" + "1" * 40
CONTRACT_Y = "0x" + "2" * 40


# =============================================================================
# RAW TOKENS
# =============================================================================

def nested_token(
    token_id: str,
    contract: str,
    standard: str = "ERC721",
    title: Optional[str] = None,
    metadata=None,
    balance=None,
    is_spam: bool = False,
    contract_name: Optional[str] = None
) -> dict:
    """Token in the nested provider shape (id.tokenId, contract.address)."""
    token = {
        'id': {'tokenId': token_id},
        'contract': {'address': contract, 'type': standard},
        'isSpam': is_spam,
    }
    if contract_name:
        token['contract']['name'] = contract_name
    if title is not None:
        token['title'] = title
    if metadata is not None:
        token['metadata'] = metadata
    if balance is not None:
        token['balance'] = balance
    return token


def flat_token(
    token_id: str,
    token_address: str,
    contract_type: str = "ERC721",
    name: Optional[str] = None,
    amount=None,
    possible_spam: bool = False,
    metadata=None
) -> dict:
    """Token in the flat provider shape (token_id, token_address, amount)."""
    token = {
        'token_id': token_id,
        'token_address': token_address,
        'contract_type': contract_type,
        'possible_spam': possible_spam,
    }
    if name is not None:
        token['name'] = name
    if amount is not None:
        token['amount'] = amount
    if metadata is not None:
        token['metadata'] = metadata
    return token


SCENARIO_TOKENS = [
    nested_token("1", "0xAA", standard="ERC721", title="Genesis"),
    nested_token("2", "0xBB", standard="ERC1155", title="Edition", balance=3),
]


# =============================================================================
# STATE
# =============================================================================

def make_state(clock=None) -> LibraryState:
    return LibraryState(artifacts=ArtifactStore(), clock=clock or TickingClock())


def link(state: LibraryState, wallet_id: str, address: Optional[str] = None, nickname: Optional[str] = None) -> Wallet:
    wallet = Wallet(id=wallet_id, address=address or wallet_id, nickname=nickname, linked_at=state.now())
    state.wallets[wallet_id] = wallet
    state.wallet_generations[wallet_id] = state.wallet_generations.get(wallet_id, 0) + 1
    return wallet


def make_registry() -> NetworkRegistry:
    networks = {
        'eth': NetworkConfig(value='eth', label='Ethereum', chain='0x1'),
        'polygon': NetworkConfig(value='polygon', label='Polygon', chain='0x89'),
        'base': NetworkConfig(value='base', label='Base', chain='0x2105'),
        'solana': NetworkConfig(value='solana', label='Solana', chain='1', enabled=False),
    }
    return NetworkRegistry(_networks=networks, _default_networks=['eth', 'polygon'])


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeProvider(ArtifactProvider):
    """
    Serves canned tokens per (address, network).

    `gates` holds an asyncio.Event per network; a fetch for that network
    waits until the event is set.
    """

    def __init__(
        self,
        tokens: Optional[Dict[Tuple[str, str], List[dict]]] = None,
        failures: Optional[Dict[Tuple[str, str], ProviderError]] = None
    ):
        self.tokens = tokens or {}
        self.failures = failures or {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls: List[Tuple[str, str]] = []

    async def fetch_artifacts(self, address: str, network: str) -> List[dict]:
        self.calls.append((address, network))
        gate = self.gates.get(network)
        if gate is not None:
            await gate.wait()
        if (address, network) in self.failures:
            raise self.failures[(address, network)]
        return list(self.tokens.get((address, network), []))


class FakeResolver(DelegationResolver):
    """Pages canned delegations locally."""

    def __init__(self, delegations: Optional[Dict[str, List[str]]] = None, failing: Tuple[str, ...] = ()):
        self.delegations = {
            address: [Delegation(vault=v, type=DelegationType.ALL) for v in vaults]
            for address, vaults in (delegations or {}).items()
        }
        self.failing = failing
        self.calls: List[Tuple[str, int, int]] = []

    def resolve_delegations(self, address: str, page: int, page_size: int) -> List[Delegation]:
        self.calls.append((address, page, page_size))
        if address in self.failing:
            raise ProviderError("registry down", address=address)
        entries = self.delegations.get(address, [])
        return entries[page * page_size:(page + 1) * page_size]
