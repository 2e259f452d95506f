"""MP-213 offer listing handler.

A listing is OPEN once listed and ends either ACCEPTED or DELETED. Both
end states are terminal: once a listing carries an ``accept_id`` or a
``delete_id`` no later event changes it.
"""

import logging
from typing import Any, Dict, Optional

from chain import ContractClient
from chain.events import MP_ACCEPT, MP_DELETE, MP_LIST, AcceptEvent, DeleteEvent, ListEvent

from .base import EventHandler

logger = logging.getLogger(__name__)

class MarketplaceHandler(EventHandler):
    """Applies MP-213 offer events of one marketplace contract."""

    # A listing is applied before its accept or delete within a round
    event_names = (MP_LIST, MP_ACCEPT, MP_DELETE)
    dispatch = {
        MP_LIST: 'on_list',
        MP_ACCEPT: 'on_accept',
        MP_DELETE: 'on_delete',
    }

    async def on_list(self, client: ContractClient, event: ListEvent) -> None:
        await self.store.insert_or_update_offer_listing({
            'mp_contract_id': client.contract_id,
            'mp_listing_id': event.listing_id,
            'transaction_id': event.transaction_id,
            'contract_id': event.contract_id,
            'token_id': event.token_id,
            'offerer': event.offerer,
            'price': event.price.amount,
            'currency': event.price.currency,
            'create_round': event.round,
            'create_timestamp': event.timestamp,
        })
        logger.debug(
            f"[{client.contract_id}] Listing {event.listing_id}: token {event.token_id} "
            f"of {event.contract_id} for {event.price.amount} ({event.price.kind})"
        )

    async def _terminal_listing(self, client: ContractClient, event, marker: str) -> Optional[Dict[str, Any]]:
        """Open listing the terminal ``event`` applies to, or None to skip it"""
        listing = await self.store.get_offer_listing(client.contract_id, event.listing_id)
        if listing is None:
            logger.warning(
                f"[{client.contract_id}] {event.name} for unknown listing {event.listing_id} "
                f"in {event.transaction_id}, skipped"
            )
            return None

        if listing.get('accept_id') or listing.get('delete_id'):
            if listing.get(marker) != event.transaction_id:
                logger.warning(
                    f"[{client.contract_id}] Listing {event.listing_id} already closed "
                    f"(accept={listing.get('accept_id')}, delete={listing.get('delete_id')}), "
                    f"ignoring {event.name} in {event.transaction_id}"
                )
            return None

        return listing

    def _closed_listing(self, listing: Dict[str, Any], marker: str, transaction_id: str) -> Dict[str, Any]:
        closed = dict(listing)
        closed[marker] = transaction_id
        return closed

    async def on_accept(self, client: ContractClient, event: AcceptEvent) -> None:
        listing = await self._terminal_listing(client, event, 'accept_id')
        if listing is None:
            return

        await self.store.insert_offer_accept({
            'transaction_id': event.transaction_id,
            'mp_contract_id': client.contract_id,
            'mp_listing_id': event.listing_id,
            'contract_id': listing['contract_id'],
            'token_id': listing['token_id'],
            'accepter': event.sender,
            'round': event.round,
            'timestamp': event.timestamp,
        })
        await self.store.insert_or_update_offer_listing(
            self._closed_listing(listing, 'accept_id', event.transaction_id)
        )
        logger.info(f"[{client.contract_id}] Listing {event.listing_id} accepted in {event.transaction_id}")

    async def on_delete(self, client: ContractClient, event: DeleteEvent) -> None:
        listing = await self._terminal_listing(client, event, 'delete_id')
        if listing is None:
            return

        await self.store.insert_offer_delete({
            'transaction_id': event.transaction_id,
            'mp_contract_id': client.contract_id,
            'mp_listing_id': event.listing_id,
            'contract_id': listing['contract_id'],
            'token_id': listing['token_id'],
            'deleter': event.sender,
            'round': event.round,
            'timestamp': event.timestamp,
        })
        await self.store.insert_or_update_offer_listing(
            self._closed_listing(listing, 'delete_id', event.transaction_id)
        )
        logger.info(f"[{client.contract_id}] Listing {event.listing_id} deleted in {event.transaction_id}")
