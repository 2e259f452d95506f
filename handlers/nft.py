"""ARC-72 collection handler.

Keeps ``collections``, ``tokens`` and ``nft_transfers`` in step with the
contract's ``arc72_Transfer`` and ``arc72_Approval`` events:

- a transfer from the zero address is a mint: the token row is created with
  its metadata and mint round, and the collection's total supply is raised
- any other transfer moves ownership and clears the approval
- an approval stores the spender read back from the contract
- every transfer is appended to the history
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Optional

from chain import ChainError, ContractClient, NodeConnectionError, ZERO_ADDRESS, decode_global_state
from chain.events import ARC72_APPROVAL, ARC72_TRANSFER, NFTApprovalEvent, NFTTransferEvent

from .base import EventHandler
from .metadata import MetadataFetcher

logger = logging.getLogger(__name__)

class NFTHandler(EventHandler):
    """Applies ARC-72 events of one collection."""

    event_names = (ARC72_TRANSFER, ARC72_APPROVAL)
    dispatch = {
        ARC72_TRANSFER: 'on_transfer',
        ARC72_APPROVAL: 'on_approval',
    }

    def __init__(
        self,
        store,
        retry,
        metadata: Optional[MetadataFetcher] = None,
        resolver_contract_id: int = 0,
        skip_mint_contracts: Iterable[int] = ()
    ):
        """Initialize the handler.

        Args:
            store: MaterializedStore (or compatible) instance
            retry: RetryPolicy wrapped around every chain read
            metadata: Fetcher for token metadata documents
            resolver_contract_id: Naming resolver overlaying token names, 0 disables it
            skip_mint_contracts: Collections whose mints only record history
        """
        super().__init__(store, retry)
        self.metadata = metadata or MetadataFetcher()
        self.resolver_contract_id = resolver_contract_id
        self.skip_mint_contracts = set(skip_mint_contracts)

    async def refresh(self, client: ContractClient, last_round: int) -> None:
        """Refresh supply, creator and global state of the collection row"""
        info = await self.read(client.application_info)
        total_supply = await self.read(client.total_supply)
        if total_supply is None:
            existing = await self.store.get_collection(client.contract_id)
            total_supply = existing['total_supply'] if existing else 0

        await self.store.insert_or_update_collection({
            'contract_id': client.contract_id,
            'total_supply': total_supply,
            'create_round': info.create_round,
            'creator': info.creator,
            'global_state': json.dumps(decode_global_state(info.global_state)),
        })

    # Per-token reads. Errors other than an exhausted transport retry are
    # logged and defaulted.

    async def token_uri(self, client: ContractClient, token_id: int) -> str:
        try:
            return await self.read(client.token_uri, token_id)
        except NodeConnectionError:
            raise
        except ChainError as e:
            logger.warning(f"[{client.contract_id}] tokenURI({token_id}) failed: {e}")
            return ''

    async def token_metadata(self, client: ContractClient, token_id: int, uri: str) -> Dict[str, Any]:
        metadata = await asyncio.to_thread(self.metadata.fetch, uri)
        if metadata.get('name'):
            name = await self.resolve_name(client, token_id)
            if name:
                metadata['name'] = name
        return metadata

    async def resolve_name(self, client: ContractClient, token_id: int) -> Optional[str]:
        """Name registered for ``token_id`` on the naming resolver, if any"""
        if not self.resolver_contract_id:
            return None
        resolver = ContractClient(client.rpc, self.resolver_contract_id)
        try:
            return await self.read(resolver.resolve_name, token_id)
        except NodeConnectionError:
            raise
        except (ChainError, OverflowError, ValueError) as e:
            logger.warning(f"[{client.contract_id}] name resolution for {token_id} failed: {e}")
            return None

    # Event handlers

    async def on_mint(self, client: ContractClient, event: NFTTransferEvent) -> None:
        contract_id = client.contract_id
        uri = await self.token_uri(client, event.token_id)
        metadata = await self.token_metadata(client, event.token_id, uri)
        total_supply = await self.read(client.total_supply)

        await self.store.insert_or_update_token({
            'contract_id': contract_id,
            'token_id': event.token_id,
            'owner': event.receiver,
            'approved': ZERO_ADDRESS,
            'metadata_uri': uri,
            'metadata': json.dumps(metadata),
            'mint_round': event.round,
        })
        if total_supply is not None:
            await self.store.update_collection_total_supply(contract_id, total_supply)
        logger.info(f"[{contract_id}] Minted token {event.token_id} to {event.receiver}")

    async def on_transfer(self, client: ContractClient, event: NFTTransferEvent) -> None:
        contract_id = client.contract_id
        if event.sender == ZERO_ADDRESS:
            if contract_id in self.skip_mint_contracts:
                logger.debug(f"[{contract_id}] Skipping mint of token {event.token_id}")
            else:
                await self.on_mint(client, event)
        else:
            # Approval never survives a transfer
            await self.store.update_token_owner(contract_id, event.token_id, event.receiver, ZERO_ADDRESS)
            logger.debug(f"[{contract_id}] Token {event.token_id} owner is now {event.receiver}")

        await self.store.insert_nft_transfer({
            'transaction_id': event.transaction_id,
            'contract_id': contract_id,
            'token_id': event.token_id,
            'round': event.round,
            'from_addr': event.sender,
            'to_addr': event.receiver,
            'timestamp': event.timestamp,
        })

    async def on_approval(self, client: ContractClient, event: NFTApprovalEvent) -> None:
        contract_id = client.contract_id
        approved = await self.read(client.get_approved, event.token_id)
        if approved is None:
            approved = event.approved
        if not await self.store.update_token_approved(contract_id, event.token_id, approved):
            logger.warning(f"[{contract_id}] Approval for unknown token {event.token_id}, skipped")

    # Reconciliation

    async def refresh_tokens(self, client: ContractClient) -> int:
        """Re-read every token of the collection and upsert it.

        Walks ``tokenByIndex`` over ``0 .. totalSupply - 1``; a token that
        cannot be read is logged and skipped.

        Returns:
            Number of tokens refreshed
        """
        contract_id = client.contract_id
        total_supply = await self.read(client.total_supply) or 0
        refreshed = 0

        for index in range(total_supply):
            try:
                token_id = await self.read(client.token_by_index, index)
                if token_id is None:
                    logger.warning(f"[{contract_id}] No token at index {index}")
                    continue
                owner = await self.read(client.owner_of, token_id)
                approved = await self.read(client.get_approved, token_id)
                uri = await self.token_uri(client, token_id)
                metadata = await self.token_metadata(client, token_id, uri)
            except ChainError as e:
                logger.warning(f"[{contract_id}] Failed to refresh token at index {index}: {e}")
                continue

            await self.store.insert_or_update_token({
                'contract_id': contract_id,
                'token_id': token_id,
                'token_index': index,
                'owner': owner,
                'approved': approved or ZERO_ADDRESS,
                'metadata_uri': uri,
                'metadata': json.dumps(metadata),
            })
            refreshed += 1

        logger.info(f"[{contract_id}] Refreshed {refreshed}/{total_supply} tokens")
        return refreshed
