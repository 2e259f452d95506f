"""Tests for the ARC-200 token handler."""

import copy

import pytest

from chain import ContractClient, ZERO_ADDRESS
from chain.events import ARC200_APPROVAL, ARC200_TRANSFER
from handlers import FungibleHandler, LiquidityPoolHandler

from fakes import ALICE, BOB, CAROL, make_fungible

@pytest.mark.asyncio
async def test_mint_credits_total_supply(rpc, store, retry):
    make_fungible(rpc, 300, {}, total_supply=1000)
    rpc.add_event(300, ARC200_TRANSFER, 'TX1', 10, 0, ZERO_ADDRESS, ALICE, 1000)

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    contract = store.fungible_contracts[300]
    assert contract['name'] == 'Token'
    assert contract['symbol'] == 'TOK'
    assert contract['decimals'] == 6
    assert contract['total_supply'] == '1000'
    assert contract['creator'] == CAROL
    assert contract['is_liquidity_pool'] is False
    assert store.balances[(300, ALICE)] == '1000'

@pytest.mark.asyncio
async def test_transfer_reads_balances_back(rpc, store, retry):
    """Balances come from the contract, not from event amounts."""
    balances = {ALICE: 700, BOB: 300}
    make_fungible(rpc, 300, balances)
    rpc.add_event(300, ARC200_TRANSFER, 'TX2', 11, 0, ALICE, BOB, 999)

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    assert store.balances[(300, ALICE)] == '700'
    assert store.balances[(300, BOB)] == '300'
    transfer = store.fungible_transfers[('TX2', 300, ALICE, BOB)]
    assert transfer['amount'] == 999
    assert transfer['round'] == 11

@pytest.mark.asyncio
async def test_unreadable_balance_is_skipped(rpc, store, retry):
    make_fungible(rpc, 300, {BOB: 300})
    rpc.add_event(300, ARC200_TRANSFER, 'TX2', 11, 0, ALICE, BOB, 5)

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    assert (300, ALICE) not in store.balances
    assert store.balances[(300, BOB)] == '300'
    assert len(store.fungible_transfers) == 1

@pytest.mark.asyncio
async def test_arbitrary_precision_balances(rpc, store, retry):
    big = 2 ** 200
    make_fungible(rpc, 300, {ALICE: big, BOB: 1})
    rpc.add_event(300, ARC200_TRANSFER, 'TX2', 11, 0, ALICE, BOB, 1)

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    assert store.balances[(300, ALICE)] == str(big)

@pytest.mark.asyncio
async def test_approval_stores_allowance(rpc, store, retry):
    make_fungible(rpc, 300, {})
    rpc.set_method(300, 'arc200_allowance', lambda owner, spender: 42 if (owner, spender) == (ALICE, BOB) else 0)
    rpc.add_event(300, ARC200_APPROVAL, 'TX3', 12, 0, ALICE, BOB, 50)

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    assert store.allowances[(300, ALICE, BOB)] == {'amount': '42', 'round': 12}

@pytest.mark.asyncio
async def test_approval_falls_back_to_event_amount(rpc, store, retry):
    make_fungible(rpc, 300, {})
    rpc.add_event(300, ARC200_APPROVAL, 'TX3', 12, 0, ALICE, BOB, 50)

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    assert store.allowances[(300, ALICE, BOB)]['amount'] == '50'

@pytest.mark.asyncio
async def test_liquidity_pool_flag(rpc, store, retry):
    make_fungible(rpc, 301, {})

    await LiquidityPoolHandler(store, retry).process_window(ContractClient(rpc, 301), 1, 20)

    assert store.fungible_contracts[301]['is_liquidity_pool'] is True

@pytest.mark.asyncio
async def test_transient_read_failures_are_retried(rpc, store, retry):
    make_fungible(rpc, 300, {ALICE: 1, BOB: 2})
    rpc.add_event(300, ARC200_TRANSFER, 'TX2', 11, 0, ALICE, BOB, 1)
    rpc.failures['getevents'] = 2

    await FungibleHandler(store, retry).process_window(ContractClient(rpc, 300), 1, 20)

    assert store.balances[(300, BOB)] == '2'

@pytest.mark.asyncio
async def test_replaying_a_window_is_idempotent(rpc, store, retry):
    make_fungible(rpc, 300, {ALICE: 600, BOB: 400}, total_supply=1000)
    rpc.set_method(300, 'arc200_allowance', lambda owner, spender: 25)
    rpc.add_event(300, ARC200_TRANSFER, 'TX1', 10, 0, ZERO_ADDRESS, ALICE, 1000)
    rpc.add_event(300, ARC200_TRANSFER, 'TX2', 11, 0, ALICE, BOB, 400)
    rpc.add_event(300, ARC200_APPROVAL, 'TX3', 12, 0, BOB, CAROL, 25)
    handler = FungibleHandler(store, retry)

    await handler.process_window(ContractClient(rpc, 300), 1, 20)
    snapshot = copy.deepcopy((store.fungible_contracts, store.balances, store.allowances, store.fungible_transfers))
    await handler.process_window(ContractClient(rpc, 300), 1, 20)

    assert (store.fungible_contracts, store.balances, store.allowances, store.fungible_transfers) == snapshot
    assert store.balances == {(300, ALICE): '600', (300, BOB): '400'}
    assert store.allowances[(300, BOB, CAROL)] == {'amount': '25', 'round': 12}
    assert len(store.fungible_transfers) == 2
