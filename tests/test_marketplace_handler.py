"""Tests for the MP-213 offer listing handler."""

from decimal import Decimal

import pytest

from chain import ContractClient
from chain.events import MP_ACCEPT, MP_DELETE, MP_LIST
from handlers import MarketplaceHandler

from fakes import ALICE, BOB, make_marketplace

@pytest.fixture
def marketplace(rpc):
    make_marketplace(rpc, 200)
    return ContractClient(rpc, 200)

@pytest.fixture
def handler(store, retry):
    return MarketplaceHandler(store, retry)

@pytest.mark.asyncio
async def test_list_then_accept(rpc, store, handler, marketplace):
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 1, 100, 7, ALICE, ['00', 5000000])
    rpc.add_event(200, MP_ACCEPT, 'TXA', 12, 1200, 1, BOB)

    await handler.process_window(marketplace, 1, 20)

    listing = store.listings[(200, 1)]
    assert listing['contract_id'] == 100
    assert listing['token_id'] == '7'
    assert listing['offerer'] == ALICE
    assert listing['price'] == 5000000
    assert listing['currency'] == 0
    assert listing['create_round'] == 10
    assert listing['accept_id'] == 'TXA'
    assert listing['delete_id'] is None

    accept = store.accepts[('TXA', 200, 1)]
    assert accept['contract_id'] == 100
    assert accept['accepter'] == BOB
    assert accept['round'] == 12

@pytest.mark.asyncio
async def test_token_priced_listing(rpc, store, handler, marketplace):
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 2, 100, 8, ALICE, ['01', '0x5f5e10', '0x64'])

    await handler.process_window(marketplace, 1, 20)

    listing = store.listings[(200, 2)]
    assert listing['currency'] == 0x5f5e10
    assert listing['price'] == 100

@pytest.mark.asyncio
async def test_accept_of_unknown_listing_is_skipped(rpc, store, handler, marketplace):
    """Processing continues past an accept whose listing was never seen."""
    rpc.add_event(200, MP_ACCEPT, 'TXA', 12, 1200, 7)
    rpc.add_event(200, MP_LIST, 'TXL', 13, 1300, 8, 100, 9, ALICE, ['00', 1])

    applied = await handler.process_window(marketplace, 1, 20)

    assert applied == 2
    assert store.accepts == {}
    assert (200, 7) not in store.listings
    assert (200, 8) in store.listings

@pytest.mark.asyncio
async def test_delete(rpc, store, handler, marketplace):
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 1, 100, 7, ALICE, ['00', 5])
    rpc.add_event(200, MP_DELETE, 'TXD', 11, 1100, 1, ALICE)

    await handler.process_window(marketplace, 1, 20)

    assert store.listings[(200, 1)]['delete_id'] == 'TXD'
    assert store.listings[(200, 1)]['accept_id'] is None
    assert store.deletes[('TXD', 200, 1)]['deleter'] == ALICE

@pytest.mark.asyncio
async def test_terminal_states_are_exclusive(rpc, store, handler, marketplace):
    """A delete after an accept changes nothing, and vice versa."""
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 1, 100, 7, ALICE, ['00', 5])
    rpc.add_event(200, MP_ACCEPT, 'TXA', 11, 1100, 1, BOB)
    rpc.add_event(200, MP_DELETE, 'TXD', 12, 1200, 1, ALICE)
    rpc.add_event(200, MP_ACCEPT, 'TXA2', 13, 1300, 1, BOB)

    await handler.process_window(marketplace, 1, 20)

    listing = store.listings[(200, 1)]
    assert listing['accept_id'] == 'TXA'
    assert listing['delete_id'] is None
    assert store.deletes == {}
    assert list(store.accepts) == [('TXA', 200, 1)]

@pytest.mark.asyncio
async def test_relisting_keeps_terminal_marker(rpc, store, handler, marketplace):
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 1, 100, 7, ALICE, ['00', 5])
    rpc.add_event(200, MP_DELETE, 'TXD', 11, 1100, 1)
    rpc.add_event(200, MP_LIST, 'TXL2', 12, 1200, 1, 100, 7, ALICE, ['00', 6])

    await handler.process_window(marketplace, 1, 20)

    listing = store.listings[(200, 1)]
    assert listing['delete_id'] == 'TXD'
    assert listing['price'] == 6

@pytest.mark.asyncio
async def test_replay_is_idempotent(rpc, store, handler, marketplace):
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 1, 100, 7, ALICE, ['00', 5])
    rpc.add_event(200, MP_ACCEPT, 'TXA', 11, 1100, 1, BOB)

    await handler.process_window(marketplace, 1, 20)
    await handler.process_window(marketplace, 1, 20)
    await handler.process_window(marketplace, 11, 20)

    assert store.listings[(200, 1)]['accept_id'] == 'TXA'
    assert len(store.accepts) == 1
    assert store.deletes == {}

@pytest.mark.asyncio
async def test_native_price_precision(rpc, store, handler, marketplace):
    price = 10 ** 30
    rpc.add_event(200, MP_LIST, 'TXL', 10, 1000, 1, 100, 7, ALICE, ['00', price])

    await handler.process_window(marketplace, 1, 20)

    assert Decimal(store.listings[(200, 1)]['price']) == Decimal(price)
