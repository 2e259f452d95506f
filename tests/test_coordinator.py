"""Tests for the sync coordinator."""

import asyncio

import pytest

from chain import NodeConnectionError, ZERO_ADDRESS
from chain.events import ARC200_TRANSFER, ARC72_TRANSFER, MP_ACCEPT, MP_LIST
from classifier import ContractType
from handlers import EventHandler, build_handlers
from sync import SyncCoordinator, SyncError

from fakes import ALICE, BOB, make_collection, make_fungible, make_marketplace, state_entry

SETTINGS = {
    'ipfs_gateway': 'https://ipfs.io/ipfs/',
    'metadata_timeout': 1,
    'resolver_contract_id': 0,
    'skip_mint_contracts': set(),
    'max_workers': 2,
}

@pytest.fixture
def coordinator(rpc, store, retry):
    return SyncCoordinator(rpc, store, build_handlers(store, retry, SETTINGS), max_workers=2)

@pytest.mark.asyncio
async def test_collection_example(rpc, store, coordinator):
    """Mint at round 20 and transfer at round 35, advanced to round 50."""
    make_collection(rpc, 100)
    rpc.add_event(100, ARC72_TRANSFER, 'TX1', 20, 1000, ZERO_ADDRESS, ALICE, 1)
    rpc.add_event(100, ARC72_TRANSFER, 'TX2', 35, 1500, ALICE, BOB, 1)

    watermark = await coordinator.advance(100, 50)

    assert watermark == 50
    token = store.tokens[(100, '1')]
    assert token['owner'] == BOB
    assert token['mint_round'] == 20
    assert token['approved'] == ZERO_ADDRESS
    assert await store.get_sync_watermark(100) == 50
    assert store.collections[100]['last_sync_round'] == 50
    assert len(store.nft_transfers) == 2
    assert store.sync[100]['contract_type'] == ContractType.ARC72.value

@pytest.mark.asyncio
async def test_windows_follow_the_watermark(rpc, store, coordinator):
    make_collection(rpc, 100)

    await coordinator.advance(100, 50)
    await coordinator.advance(100, 80)

    windows = [(call[2], call[3]) for call in rpc.calls if call[0] == 'getevents']
    assert windows == [(1, 50), (51, 80)]

@pytest.mark.asyncio
async def test_watermark_never_moves_backwards(rpc, store, coordinator):
    make_collection(rpc, 100)
    await coordinator.advance(100, 50)
    calls = len(rpc.calls)

    assert await coordinator.advance(100, 30) == 50
    assert await coordinator.advance(100, 50) == 50
    assert await store.get_sync_watermark(100) == 50
    assert len(rpc.calls) == calls

@pytest.mark.asyncio
async def test_contract_created_in_target_round(rpc, store, coordinator):
    make_collection(rpc, 100)

    await coordinator.advance(100, 40, is_create=True)

    windows = [(call[2], call[3]) for call in rpc.calls if call[0] == 'getevents']
    assert windows == [(40, 40)]

@pytest.mark.asyncio
async def test_failed_window_keeps_watermark(rpc, store, coordinator):
    """A failed write leaves the window to be replayed in full."""
    make_collection(rpc, 100)
    rpc.add_event(100, ARC72_TRANSFER, 'TX1', 20, 1000, ZERO_ADDRESS, ALICE, 1)
    await coordinator.advance(100, 10)
    store.fail_on.add('insert_nft_transfer')

    with pytest.raises(SyncError) as excinfo:
        await coordinator.advance(100, 50)

    assert excinfo.value.first_round == 11
    assert excinfo.value.last_round == 50
    assert await store.get_sync_watermark(100) == 10
    assert coordinator._locks == {}

    store.fail_on.clear()
    assert await coordinator.advance(100, 50) == 50
    assert store.tokens[(100, '1')]['owner'] == ALICE
    assert len(store.nft_transfers) == 1

@pytest.mark.asyncio
async def test_exhausted_retries_are_fatal(rpc, store, coordinator):
    make_collection(rpc, 100)
    await coordinator.contract_type(100)
    rpc.failures['getevents'] = 10

    with pytest.raises(SyncError):
        await coordinator.advance(100, 50)

    assert await store.get_sync_watermark(100) == 0

@pytest.mark.asyncio
async def test_unknown_contract_is_not_advanced(rpc, store, coordinator):
    rpc.set_application(400)

    assert await coordinator.advance(400, 50) == 0
    assert store.sync[400]['contract_type'] == ContractType.UNKNOWN.value
    assert not [call for call in rpc.calls if call[0] == 'getevents']

@pytest.mark.asyncio
async def test_indeterminate_classification_is_not_recorded(rpc, store, coordinator):
    make_collection(rpc, 100)
    rpc.failures['call'] = 3

    assert await coordinator.advance(100, 50) == 0
    assert 100 not in store.sync

    assert await coordinator.advance(100, 50) == 50

@pytest.mark.asyncio
async def test_recorded_contract_type_is_reused(rpc, store, retry):
    await store.set_contract_type(100, ContractType.ARC72.value, 0)
    make_collection(rpc, 100)
    coordinator = SyncCoordinator(rpc, store, build_handlers(store, retry, SETTINGS))

    assert await coordinator.contract_type(100) is ContractType.ARC72
    assert not [call for call in rpc.calls if call[2] == 'supportsInterface']

@pytest.mark.asyncio
async def test_missing_listing_does_not_stop_the_window(rpc, store, coordinator):
    make_marketplace(rpc, 200)
    rpc.add_event(200, MP_ACCEPT, 'TXA', 12, 1200, 7)
    rpc.add_event(200, MP_LIST, 'TXL', 14, 1400, 8, 100, 1, ALICE, ['00', 10])

    assert await coordinator.advance(200, 20) == 20
    assert store.accepts == {}
    assert (200, 8) in store.listings

@pytest.mark.asyncio
async def test_advance_many_reports_failures_per_contract(rpc, store, coordinator):
    make_collection(rpc, 100)
    make_collection(rpc, 101)
    rpc.add_event(101, ARC72_TRANSFER, 'TX1', 5, 0, ZERO_ADDRESS, ALICE, 1)
    await coordinator.contract_type(100)
    await coordinator.contract_type(101)
    store.fail_on.add('insert_nft_transfer')

    results = await coordinator.advance_many({100: 10, 101: 10})

    assert results == {100: 10, 101: None}
    assert await store.get_sync_watermark(101) == 0

class SlowHandler(EventHandler):
    """Records how many windows run at once."""

    def __init__(self):
        super().__init__(None, None)
        self.active = 0
        self.peak = 0
        self.windows = []

    async def process_window(self, client, first_round, last_round):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.windows.append((client.contract_id, first_round, last_round))
        self.active -= 1
        return 0

@pytest.mark.asyncio
async def test_advance_many_bounds_concurrency(rpc, store):
    handler = SlowHandler()
    coordinator = SyncCoordinator(rpc, store, {ContractType.ARC72: handler}, max_workers=2)
    for contract_id in range(1, 7):
        coordinator.classifier.remember(contract_id, ContractType.ARC72)

    results = await coordinator.advance_many({contract_id: 10 for contract_id in range(1, 7)})

    assert results == {contract_id: 10 for contract_id in range(1, 7)}
    assert handler.peak == 2

@pytest.mark.asyncio
async def test_same_contract_is_serialized(rpc, store):
    handler = SlowHandler()
    coordinator = SyncCoordinator(rpc, store, {ContractType.ARC72: handler}, max_workers=4)
    coordinator.classifier.remember(1, ContractType.ARC72)

    await asyncio.gather(coordinator.advance(1, 10), coordinator.advance(1, 10), coordinator.advance(1, 20))

    assert handler.peak == 1
    assert sorted(handler.windows) == [(1, 1, 10), (1, 11, 20)]
    assert coordinator._locks == {}

@pytest.mark.asyncio
async def test_refresh_collection(rpc, store, coordinator):
    make_collection(rpc, 100, total_supply=1)
    rpc.set_value(100, 'arc72_tokenByIndex', 5)
    rpc.set_value(100, 'arc72_ownerOf', BOB)

    assert await coordinator.refresh_collection(100) == 1
    assert store.tokens[(100, '5')]['owner'] == BOB
    assert store.collections[100]['total_supply'] == 1

@pytest.mark.asyncio
async def test_refresh_of_non_collection(rpc, store, coordinator):
    make_marketplace(rpc, 200)
    assert await coordinator.refresh_collection(200) == 0
    assert store.tokens == {}

@pytest.mark.asyncio
async def test_unanswered_pool_check_is_not_recorded(rpc, store, coordinator):
    make_fungible(rpc, 300, {ALICE: 5})
    rpc.set_application(300, global_state=[state_entry('ratio', 1)])

    def unreachable():
        raise NodeConnectionError("connection reset", method='call')

    rpc.set_method(300, 'Info', unreachable)

    assert await coordinator.advance(300, 5) == 5
    assert await store.get_contract_type(300) is None
    assert store.fungible_contracts[300]['is_liquidity_pool'] is False

    rpc.set_value(300, 'Info', None)
    rpc.add_event(300, ARC200_TRANSFER, 'TX1', 7, 700, ALICE, BOB, 1)

    assert await coordinator.advance(300, 10) == 10
    assert await store.get_contract_type(300) == ContractType.LPT.value
    assert store.fungible_contracts[300]['is_liquidity_pool'] is True
