"""Common plumbing for the per-kind event handlers.

A handler applies one contract's events for a round window to the
materialized store. It holds no state between windows: everything it needs
is read from the chain (through the retry policy) or from the store.
"""
import logging
from typing import Dict, List, Sequence

from chain import ContractClient
from chain.events import ChainEvent, ordered

logger = logging.getLogger(__name__)

class EventHandler:
    """Base class for window handlers.

    Subclasses list their ``event_names`` in application precedence and map
    each name to the coroutine method that applies it in ``dispatch``.
    """

    event_names: Sequence[str] = ()
    dispatch: Dict[str, str] = {}

    def __init__(self, store, retry):
        """Initialize the handler.

        Args:
            store: MaterializedStore (or compatible) instance
            retry: RetryPolicy wrapped around every chain read
        """
        self.store = store
        self.retry = retry

    async def read(self, func, *args):
        """Run a blocking chain read under the retry policy"""
        return await self.retry.call(func, *args)

    async def fetch_events(self, client: ContractClient, first_round: int, last_round: int) -> List[ChainEvent]:
        """Events of ``client`` in ``[first_round, last_round]``, in application order"""
        groups = await self.read(client.get_events, list(self.event_names), first_round, last_round)
        return ordered(groups, self.event_names)

    async def refresh(self, client: ContractClient, last_round: int) -> None:
        """Refresh the contract-level row before events are applied"""

    async def apply(self, client: ContractClient, event: ChainEvent) -> None:
        handler = getattr(self, self.dispatch[event.name])
        await handler(client, event)

    async def process_window(self, client: ContractClient, first_round: int, last_round: int) -> int:
        """Apply every event of the window ``[first_round, last_round]``.

        Any error escaping this method is fatal for the window; the caller
        must not advance the contract's watermark.

        Returns:
            Number of events applied
        """
        await self.refresh(client, last_round)
        events = await self.fetch_events(client, first_round, last_round)
        for event in events:
            await self.apply(client, event)

        logger.info(
            f"[{client.contract_id}] Applied {len(events)} events "
            f"for rounds {first_round}-{last_round}"
        )
        return len(events)
