"""Monitor module for following the chain tip.

This module provides the polling loop that drives indexing:
- Chain status polling for the latest round
- Block walking from the persisted cursor up to the tip
- Discovery of the applications touched by each round, inner transactions included
- Re-advancing contracts whose last window failed
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from classifier import ContractType
from sync import RetryPolicy, SyncCoordinator

# Configure logging
logger = logging.getLogger(__name__)

# The monitor's own cursor is kept as the watermark of this pseudo contract
MONITOR_CURSOR_ID = 0

# Kinds the coordinator applies windows for
INDEXED_TYPES = [kind.value for kind in ContractType if kind is not ContractType.UNKNOWN]

def get_touched_apps(txns: Optional[List[Dict[str, Any]]]) -> Dict[int, bool]:
    """Application ids called or created by a block's transactions.

    Args:
        txns: Signed transactions of a block, as returned by ``getblock``

    Returns:
        Dict mapping application id to whether it was created by the call
    """
    apps: Dict[int, bool] = {}
    for stxn in txns or []:
        txn = stxn.get('txn', {})
        app_id = stxn.get('apid') or txn.get('apid')
        if app_id:
            created = bool(txn.get('apap') and txn.get('apsu'))
            apps[int(app_id)] = apps.get(int(app_id), False) or created

        inner = stxn.get('dt', {}).get('itx')
        for inner_id, inner_created in get_touched_apps(inner).items():
            apps[inner_id] = apps.get(inner_id, False) or inner_created
    return apps

class RoundMonitor:
    """Follow new rounds and feed touched contracts to the sync coordinator."""

    def __init__(
        self,
        rpc,
        store,
        coordinator: SyncCoordinator,
        retry: Optional[RetryPolicy] = None,
        poll_interval: float = 2.0,
        start_round: int = 0
    ):
        """Initialize the round monitor.

        Args:
            rpc: Chain event service client
            store: MaterializedStore (or compatible) instance
            coordinator: Sync coordinator advancing the contracts
            retry: Policy for the status and block reads
            poll_interval: Seconds between status polls when caught up
            start_round: First round to walk when there is no cursor yet, 0 starts at the tip
        """
        self.rpc = rpc
        self.store = store
        self.coordinator = coordinator
        self.retry = retry or RetryPolicy()
        self.poll_interval = poll_interval
        self.start_round = start_round
        self.lagging: Set[int] = set()
        self._stop_requested = False

    @classmethod
    def from_settings(cls, rpc, store, coordinator, settings) -> 'RoundMonitor':
        return cls(
            rpc,
            store,
            coordinator,
            retry=RetryPolicy.from_settings(settings),
            poll_interval=settings['poll_interval'],
            start_round=settings['start_round'],
        )

    def stop(self):
        """Signal the monitor to stop after the current round."""
        self._stop_requested = True

    async def latest_round(self) -> int:
        status = await self.retry.call(self.rpc.getstatus)
        return int(status['last-round'])

    async def cursor(self) -> int:
        """Last round the monitor fully processed."""
        cursor = await self.store.get_sync_watermark(MONITOR_CURSOR_ID)
        if cursor is not None:
            return cursor
        if self.start_round:
            return self.start_round - 1
        return await self.latest_round()

    async def load_lagging(self, cursor: int) -> Set[int]:
        """Queue indexed contracts whose watermark trails ``cursor``.

        This picks up windows that failed before a restart; contracts that
        were merely quiet since catch up with an empty window.
        """
        behind = await self.store.get_contracts_behind(cursor, INDEXED_TYPES)
        self.lagging.update(contract_id for contract_id in behind if contract_id != MONITOR_CURSOR_ID)
        if self.lagging:
            logger.info(f"{len(self.lagging)} contracts behind round {cursor} queued for catch-up")
        return self.lagging

    async def register(self, contract_id: int) -> Optional[int]:
        """Start tracking a contract by syncing it up to the current tip.

        Returns:
            The contract's watermark, None when the sync failed
        """
        tip = await self.latest_round()
        results = await self.coordinator.advance_many({contract_id: tip})
        if results[contract_id] is None:
            self.lagging.add(contract_id)
        return results[contract_id]

    async def process_round(self, round_: int) -> Dict[int, Optional[int]]:
        """Advance every contract touched by ``round_`` and every lagging one.

        Returns:
            Contract id -> watermark after the round, None for failures
        """
        block = await self.retry.call(self.rpc.getblock, round_)
        txns = block.get('txns')
        if txns is None:
            txns = block.get('block', {}).get('txns')
        touched = get_touched_apps(txns)

        targets = {contract_id: round_ for contract_id in touched}
        targets.update({contract_id: round_ for contract_id in self.lagging})
        created = [contract_id for contract_id, is_create in touched.items() if is_create]

        results = await self.coordinator.advance_many(targets, created) if targets else {}
        self.lagging = {contract_id for contract_id, watermark in results.items() if watermark is None}
        if self.lagging:
            logger.warning(f"Round {round_}: contracts lagging behind: {sorted(self.lagging)}")

        await self.store.set_sync_watermark(MONITOR_CURSOR_ID, round_)
        logger.info(f"Processed round {round_} ({len(touched)} applications touched)")
        return results

    async def run(self):
        """Main monitoring loop.

        Runs until ``stop`` is called, walking every round from the cursor
        to the chain tip and polling for new rounds once caught up.
        """
        logger.info("Starting round monitor")
        cursor = await self.cursor()
        logger.info(f"Resuming after round {cursor}")
        await self.load_lagging(cursor)

        while not self._stop_requested:
            try:
                tip = await self.latest_round()
                if cursor >= tip:
                    await asyncio.sleep(self.poll_interval)
                    continue

                for round_ in range(cursor + 1, tip + 1):
                    if self._stop_requested:
                        break
                    await self.process_round(round_)
                    cursor = round_

            except Exception as e:
                logger.error(f"Error in round monitor: {e}")
                await asyncio.sleep(self.poll_interval)

        logger.info(f"Round monitor stopped after round {cursor}")

__all__ = ['RoundMonitor', 'get_touched_apps', 'MONITOR_CURSOR_ID']
