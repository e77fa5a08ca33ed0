"""
Ingestion Service Tests

Per-network results are data; stale completions are discarded.
"""

import asyncio

import httpx
import pytest

from artifact_library.contracts import FetchStatus
from artifact_library.errors import NotFoundError, ProviderError
from artifact_library.ingestion.fetcher import ChainDataClient
from artifact_library.ingestion.service import IngestionService
from tests.fixtures import (
    CONTRACT_X, CONTRACT_Y, WALLET_A, FakeProvider, flat_token, link, make_registry, make_state,
)


@pytest.fixture
def state():
    state = make_state()
    link(state, WALLET_A)
    return state


def test_partial_failure_keeps_successful_networks(state):
    provider = FakeProvider(
        tokens={(WALLET_A, 'eth'): [flat_token("1", CONTRACT_X), flat_token("2", CONTRACT_Y)]},
        failures={(WALLET_A, 'polygon'): ProviderError("rate limited", address=WALLET_A, network='polygon')}
    )
    service = IngestionService(state, provider, make_registry())

    report = asyncio.run(service.scan_wallet(WALLET_A, ['eth', 'polygon']))

    by_network = {r.network: r for r in report.results}
    assert by_network['eth'].status == FetchStatus.SUCCESS
    assert by_network['eth'].inserted == 2
    assert by_network['polygon'].status == FetchStatus.PROVIDER_ERROR
    assert "rate limited" in by_network['polygon'].error_message
    assert report.success_count == 1
    assert report.failure_count == 1
    assert report.warnings() == (f"polygon: {by_network['polygon'].error_message}",)
    assert state.wallets[WALLET_A].networks == ('eth',)
    assert state.artifacts.total_count() == 2


def test_default_networks_are_scanned(state):
    provider = FakeProvider()
    service = IngestionService(state, provider, make_registry())

    report = asyncio.run(service.scan_wallet(WALLET_A))

    assert sorted(provider.calls) == [(WALLET_A, 'eth'), (WALLET_A, 'polygon')]
    assert report.active_networks == ('eth', 'polygon')
    assert state.artifacts.networks_for(WALLET_A) == ['eth', 'polygon']


def test_unsupported_network_is_not_fetched(state):
    provider = FakeProvider()
    service = IngestionService(state, provider, make_registry())

    report = asyncio.run(service.scan_wallet(WALLET_A, ['solana']))

    assert report.results[0].status == FetchStatus.UNSUPPORTED_NETWORK
    assert provider.calls == []
    assert state.wallets[WALLET_A].networks == ()


def test_unknown_wallet():
    service = IngestionService(make_state(), FakeProvider(), make_registry())
    with pytest.raises(NotFoundError):
        asyncio.run(service.scan_wallet("ghost"))


def test_rescan_is_idempotent(state):
    provider = FakeProvider(tokens={(WALLET_A, 'eth'): [flat_token("1", CONTRACT_X)]})
    service = IngestionService(state, provider, make_registry())

    asyncio.run(service.scan_wallet(WALLET_A, ['eth']))
    report = asyncio.run(service.scan_wallet(WALLET_A, ['eth']))

    assert report.results[0].inserted == 0
    assert report.results[0].updated == 1
    assert state.artifacts.total_count() == 1
    assert state.wallets[WALLET_A].networks == ('eth',)


def test_commit_hook_receives_ingest_report(state):
    commits = []
    provider = FakeProvider(tokens={(WALLET_A, 'eth'): [flat_token("1", CONTRACT_X)]})
    service = IngestionService(state, provider, make_registry(), on_commit=commits.append)

    asyncio.run(service.scan_wallet(WALLET_A, ['eth']))

    assert len(commits) == 1
    assert commits[0].network == 'eth'
    assert commits[0].inserted == 1


def test_completion_after_unlink_is_discarded(state):
    provider = FakeProvider(tokens={(WALLET_A, 'eth'): [flat_token("1", CONTRACT_X)]})
    service = IngestionService(state, provider, make_registry())

    async def scenario():
        provider.gates['eth'] = asyncio.Event()
        task = asyncio.create_task(service.scan_wallet(WALLET_A, ['eth']))
        await asyncio.sleep(0)
        del state.wallets[WALLET_A]
        state.wallet_generations[WALLET_A] += 1
        provider.gates['eth'].set()
        return await task

    report = asyncio.run(scenario())

    assert report.results[0].status == FetchStatus.DISCARDED
    assert state.artifacts.total_count() == 0


def test_completion_after_relink_is_discarded(state):
    provider = FakeProvider(tokens={(WALLET_A, 'eth'): [flat_token("1", CONTRACT_X)]})
    service = IngestionService(state, provider, make_registry())

    async def scenario():
        provider.gates['eth'] = asyncio.Event()
        task = asyncio.create_task(service.scan_wallet(WALLET_A, ['eth']))
        await asyncio.sleep(0)
        del state.wallets[WALLET_A]
        state.wallet_generations[WALLET_A] += 1
        link(state, WALLET_A)
        provider.gates['eth'].set()
        return await task

    report = asyncio.run(scenario())

    assert report.results[0].status == FetchStatus.DISCARDED
    assert state.artifacts.total_count() == 0
    assert state.wallets[WALLET_A].networks == ()


def test_unexpected_fetch_error_stays_on_its_network(state):
    provider = FakeProvider(
        tokens={(WALLET_A, 'eth'): [flat_token("1", CONTRACT_X)]},
        failures={(WALLET_A, 'polygon'): TypeError("'int' object is not iterable")}
    )
    service = IngestionService(state, provider, make_registry())

    report = asyncio.run(service.scan_wallet(WALLET_A, ['eth', 'polygon']))

    by_network = {r.network: r for r in report.results}
    assert by_network['eth'].status == FetchStatus.SUCCESS
    assert by_network['polygon'].status == FetchStatus.PROVIDER_ERROR
    assert "TypeError" in by_network['polygon'].error_message
    assert state.artifacts.total_count() == 1
    assert state.wallets[WALLET_A].networks == ('eth',)


def test_malformed_provider_page_is_reported_per_network(state):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params['chain'] == "0x1":
            return httpx.Response(200, json={'result': [flat_token("1", CONTRACT_X)]})
        return httpx.Response(200, json={'result': 5})

    provider = ChainDataClient(
        base_url="https://provider.example/api",
        registry=make_registry(),
        transport=httpx.MockTransport(handler)
    )
    service = IngestionService(state, provider, make_registry())

    report = asyncio.run(service.scan_wallet(WALLET_A, ['eth', 'polygon']))

    by_network = {r.network: r for r in report.results}
    assert by_network['eth'].status == FetchStatus.SUCCESS
    assert by_network['polygon'].status == FetchStatus.PROVIDER_ERROR
    assert state.artifacts.total_count() == 1


class SequencedProvider(FakeProvider):
    """Each call takes the next (gate, tokens) pair, in call order."""

    def __init__(self, responses):
        super().__init__()
        self.responses = list(responses)

    async def fetch_artifacts(self, address, network):
        self.calls.append((address, network))
        gate, tokens = self.responses.pop(0)
        await gate.wait()
        return list(tokens)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_overlapping_scans_last_completion_wins(state):
    async def scenario():
        first_gate, second_gate = asyncio.Event(), asyncio.Event()
        provider = SequencedProvider([
            (first_gate, [flat_token("1", CONTRACT_X, name="Finished Last")]),
            (second_gate, [flat_token("1", CONTRACT_X, name="Finished First")]),
        ])
        service = IngestionService(state, provider, make_registry())

        first = asyncio.create_task(service.scan_wallet(WALLET_A, ['eth']))
        await settle()
        second = asyncio.create_task(service.scan_wallet(WALLET_A, ['eth']))
        await settle()
        assert len(provider.calls) == 2

        second_gate.set()
        await second
        first_gate.set()
        return await first

    report = asyncio.run(scenario())

    assert report.results[0].status == FetchStatus.SUCCESS
    (artifact,) = state.artifacts.all_artifacts()
    assert artifact.title == "Finished Last"
