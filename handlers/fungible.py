"""ARC-200 token handler.

Balances and allowances are never derived from event amounts: each event
only tells the handler which accounts changed, and their values are read
back from the contract.
"""

import logging
from typing import Optional

from chain import ContractClient, ZERO_ADDRESS
from chain.events import ARC200_APPROVAL, ARC200_TRANSFER, FungibleApprovalEvent, FungibleTransferEvent

from .base import EventHandler

logger = logging.getLogger(__name__)

class FungibleHandler(EventHandler):
    """Applies ARC-200 events of one token contract."""

    event_names = (ARC200_TRANSFER, ARC200_APPROVAL)
    dispatch = {
        ARC200_TRANSFER: 'on_transfer',
        ARC200_APPROVAL: 'on_approval',
    }
    liquidity_pool = False

    async def refresh(self, client: ContractClient, last_round: int) -> Optional[int]:
        """Refresh the ``fungible_contracts`` row from authoritative reads.

        Returns:
            The total supply that was read
        """
        name = await self.read(client.name)
        symbol = await self.read(client.symbol)
        decimals = await self.read(client.decimals)
        total_supply = await self.read(client.fungible_total_supply)
        info = await self.read(client.application_info)

        await self.store.insert_or_update_fungible_contract({
            'contract_id': client.contract_id,
            'name': name,
            'symbol': symbol,
            'decimals': decimals,
            'total_supply': total_supply,
            'create_round': info.create_round,
            'creator': info.creator,
            'is_liquidity_pool': self.liquidity_pool,
        })
        return total_supply

    async def update_balance(self, client: ContractClient, account: str, balance: Optional[int] = None) -> None:
        contract_id = client.contract_id
        if balance is None:
            balance = await self.read(client.balance_of, account)
        if balance is None:
            logger.warning(f"[{contract_id}] balanceOf({account}) unavailable, balance not updated")
            return
        await self.store.insert_or_update_account_balance({
            'contract_id': contract_id,
            'account_id': account,
            'balance': balance,
        })
        logger.debug(f"[{contract_id}] Balance of {account} is now {balance}")

    async def on_mint(self, client: ContractClient, event: FungibleTransferEvent) -> None:
        total_supply = await self.refresh(client, event.round)
        await self.update_balance(client, event.receiver, total_supply)

    async def on_transfer(self, client: ContractClient, event: FungibleTransferEvent) -> None:
        if event.sender == ZERO_ADDRESS:
            await self.on_mint(client, event)
        else:
            await self.update_balance(client, event.sender)
            await self.update_balance(client, event.receiver)

        await self.store.insert_fungible_transfer({
            'transaction_id': event.transaction_id,
            'contract_id': client.contract_id,
            'sender': event.sender,
            'receiver': event.receiver,
            'amount': event.amount,
            'round': event.round,
            'timestamp': event.timestamp,
        })

    async def on_approval(self, client: ContractClient, event: FungibleApprovalEvent) -> None:
        amount = await self.read(client.allowance, event.owner, event.spender)
        if amount is None:
            amount = event.amount
        await self.store.insert_or_update_allowance({
            'contract_id': client.contract_id,
            'owner': event.owner,
            'spender': event.spender,
            'amount': amount,
            'round': event.round,
        })

class LiquidityPoolHandler(FungibleHandler):
    """ARC-200 handler for swap pool share tokens"""
    liquidity_pool = True
