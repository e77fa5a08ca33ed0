"""
Ingestion Service

Orchestrates per-network wallet scans and commits their results.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, List, Optional, Sequence
import asyncio
import logging

from ..contracts import FetchResult, FetchStatus, ScanReport
from ..core.state import LibraryState
from ..core.store import IngestReport
from ..errors import ErrorCode, NotFoundError, ProviderError
from .fetcher import ArtifactProvider
from .registry import NetworkRegistry


logger = logging.getLogger(__name__)


class IngestionService:
    """
    Fans a wallet scan out to one task per network.

    DESIGN:
    =======
    1. Each network task fetches, then commits its own network on completion
    2. A failed network (any fetch error) becomes a FetchResult, never an exception
    3. A completion whose wallet was unlinked (or relinked) meanwhile is discarded
    4. A wallet's network list only grows, and only on success
    """

    def __init__(
        self,
        state: LibraryState,
        provider: ArtifactProvider,
        registry: NetworkRegistry,
        on_commit: Optional[Callable[[IngestReport], None]] = None
    ):
        self._state = state
        self._provider = provider
        self._registry = registry
        self._on_commit = on_commit

    async def scan_wallet(
        self,
        wallet_id: str,
        networks: Optional[Sequence[str]] = None
    ) -> ScanReport:
        """
        Fetch and ingest every requested network of a linked wallet.

        Raises:
            NotFoundError: wallet is not linked
        """
        wallet = self._state.wallets.get(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet not linked: {wallet_id}", code=ErrorCode.WALLET_NOT_FOUND)

        networks = list(dict.fromkeys(networks or self._registry.default_networks))
        generation = self._state.wallet_generations.get(wallet_id, 0)
        started_at = self._state.now()

        results: List[FetchResult] = await asyncio.gather(*(
            self._scan_network(wallet_id, wallet.address, network, generation)
            for network in networks
        ))

        report = ScanReport(
            wallet_id=wallet_id,
            started_at=started_at,
            completed_at=self._state.now(),
            results=tuple(results)
        )
        logger.info(
            "Scan of %s finished: %d succeeded, %d failed",
            wallet_id, report.success_count, report.failure_count
        )
        return report

    async def _scan_network(
        self,
        wallet_id: str,
        address: str,
        network: str,
        generation: int
    ) -> FetchResult:
        attempted_at = self._state.now()

        if not self._registry.is_supported(network):
            logger.warning("Skipping unsupported network %s for %s", network, wallet_id)
            return FetchResult(
                wallet_id=wallet_id,
                network=network,
                attempted_at=attempted_at,
                completed_at=self._state.now(),
                status=FetchStatus.UNSUPPORTED_NETWORK,
                error_message=f"Unsupported network: {network}"
            )

        try:
            tokens = await self._provider.fetch_artifacts(address, network)
        except ProviderError as e:
            logger.warning("Fetch failed for %s on %s: %s", wallet_id, network, e)
            status = (
                FetchStatus.UNSUPPORTED_NETWORK
                if e.code == ErrorCode.UNSUPPORTED_NETWORK
                else FetchStatus.PROVIDER_ERROR
            )
            return FetchResult(
                wallet_id=wallet_id,
                network=network,
                attempted_at=attempted_at,
                completed_at=self._state.now(),
                status=status,
                error_message=str(e)
            )
        except Exception as e:
            logger.exception("Unexpected fetch failure for %s on %s", wallet_id, network)
            return FetchResult(
                wallet_id=wallet_id,
                network=network,
                attempted_at=attempted_at,
                completed_at=self._state.now(),
                status=FetchStatus.PROVIDER_ERROR,
                error_message=f"{type(e).__name__}: {e}"
            )

        if not self._is_current(wallet_id, generation):
            logger.info("Discarding stale %s results for %s", network, wallet_id)
            return FetchResult(
                wallet_id=wallet_id,
                network=network,
                attempted_at=attempted_at,
                completed_at=self._state.now(),
                status=FetchStatus.DISCARDED,
                tokens_count=len(tokens)
            )

        report = self._commit(wallet_id, network, tokens)
        return FetchResult(
            wallet_id=wallet_id,
            network=network,
            attempted_at=attempted_at,
            completed_at=self._state.now(),
            status=FetchStatus.SUCCESS,
            tokens_count=len(tokens),
            inserted=report.inserted,
            updated=report.updated,
            malformed=report.malformed
        )

    def _commit(self, wallet_id: str, network: str, tokens: List[dict]) -> IngestReport:
        report = self._state.artifacts.ingest(wallet_id, network, tokens)

        wallet = self._state.wallets[wallet_id]
        if network not in wallet.networks:
            self._state.wallets[wallet_id] = replace(wallet, networks=wallet.networks + (network,))

        if self._on_commit is not None:
            self._on_commit(report)
        return report

    def _is_current(self, wallet_id: str, generation: int) -> bool:
        return (
            wallet_id in self._state.wallets
            and self._state.wallet_generations.get(wallet_id, 0) == generation
        )

    @property
    def registry(self) -> NetworkRegistry:
        return self._registry
