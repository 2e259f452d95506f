"""Sync coordinator.

Drives each contract from its watermark to a target round: classify the
contract once, hand the round window to the matching handler and commit the
new watermark only after the whole window was applied. A failed window
leaves the watermark where it was, so the next call replays it; handlers
are idempotent, which makes the replay safe.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Iterable, Mapping, Optional

from chain import ContractClient
from classifier import ContractClassifier, ContractType
from handlers import EventHandler, NFTHandler, build_handlers

from .retry import RetryPolicy

logger = logging.getLogger(__name__)

class SyncError(Exception):
    """Raised when a contract's window could not be applied"""
    def __init__(self, contract_id: int, first_round: int, last_round: int, cause: Exception):
        self.contract_id = contract_id
        self.first_round = first_round
        self.last_round = last_round
        self.cause = cause
        super().__init__(
            f"Sync of contract {contract_id} rounds {first_round}-{last_round} failed: {cause}"
        )

class SyncCoordinator:
    """Advances contract watermarks through the event handlers."""

    def __init__(
        self,
        rpc,
        store,
        handlers: Mapping[ContractType, EventHandler],
        classifier: Optional[ContractClassifier] = None,
        max_workers: int = 4
    ):
        """Initialize the coordinator.

        Args:
            rpc: Chain event service client
            store: MaterializedStore (or compatible) instance
            handlers: Handler per contract kind; kinds without one are skipped
            classifier: Contract classifier, a fresh one by default
            max_workers: Contracts advanced concurrently by advance_many
        """
        self.rpc = rpc
        self.store = store
        self.handlers = dict(handlers)
        self.classifier = classifier or ContractClassifier(rpc)
        self.max_workers = max_workers
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    @classmethod
    def from_settings(cls, rpc, store, settings) -> 'SyncCoordinator':
        retry = RetryPolicy.from_settings(settings)
        logger.info(f"Chain reads use {retry}")
        return cls(
            rpc,
            store,
            build_handlers(store, retry, settings),
            max_workers=settings['max_workers'],
        )

    @asynccontextmanager
    async def _contract_lock(self, contract_id: int):
        """Serialize work on one contract; the lock is dropped once unused."""
        lock = self._locks.setdefault(contract_id, asyncio.Lock())
        self._lock_users[contract_id] = self._lock_users.get(contract_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[contract_id] -= 1
            if not self._lock_users[contract_id]:
                del self._lock_users[contract_id]
                del self._locks[contract_id]

    async def contract_type(self, contract_id: int, initial_round: int = 0) -> ContractType:
        """Kind of ``contract_id``, classifying and recording it on first sight.

        A kind is only recorded once it is definite, so a contract whose
        probes could not be answered is probed again later.
        """
        kind = self.classifier.cached(contract_id)
        if kind is not None:
            return kind

        stored = await self.store.get_contract_type(contract_id)
        if stored:
            kind = ContractType(stored)
            self.classifier.remember(contract_id, kind)
            return kind

        kind = await self.classifier.classify(contract_id)
        if self.classifier.cached(contract_id) is not None:
            await self.store.set_contract_type(contract_id, kind.value, initial_round)
        return kind

    async def advance(self, contract_id: int, target_round: int, is_create: bool = False) -> int:
        """Apply the window ``(last_sync_round, target_round]`` of a contract.

        A contract seen for the first time starts just before
        ``target_round`` when it is being created there, at round 0
        otherwise.

        Args:
            contract_id: Application id
            target_round: Last round to include
            is_create: The contract is created in ``target_round``

        Returns:
            The contract's watermark after the call

        Raises:
            SyncError: If the window failed; the watermark is unchanged
        """
        async with self._contract_lock(contract_id):
            last_round = await self.store.get_sync_watermark(contract_id)
            if last_round is None:
                last_round = max(target_round - 1, 0) if is_create else 0

            if last_round >= target_round:
                return last_round

            kind = await self.contract_type(contract_id, last_round)
            handler = self.handlers.get(kind)
            if handler is None:
                logger.debug(f"Contract {contract_id} is {kind.value}, not indexed")
                return last_round

            first_round = last_round + 1
            client = ContractClient(self.rpc, contract_id)
            try:
                await handler.process_window(client, first_round, target_round)
            except Exception as e:
                logger.error(
                    f"Window {first_round}-{target_round} of {kind.value} contract "
                    f"{contract_id} failed: {e}"
                )
                raise SyncError(contract_id, first_round, target_round, e) from e

            await self.store.set_sync_watermark(contract_id, target_round)
            logger.info(f"Contract {contract_id} synced to round {target_round}")
            return target_round

    async def advance_many(
        self,
        targets: Mapping[int, int],
        created: Iterable[int] = ()
    ) -> Dict[int, Optional[int]]:
        """Advance several contracts concurrently.

        At most ``max_workers`` contracts are processed at a time. A failure
        is logged and reported for its contract only.

        Args:
            targets: Contract id -> target round
            created: Contract ids created in their target round

        Returns:
            Contract id -> watermark after the call, None when it failed
        """
        semaphore = asyncio.Semaphore(self.max_workers)
        created = set(created)

        async def worker(contract_id: int, target_round: int):
            async with semaphore:
                try:
                    watermark = await self.advance(contract_id, target_round, contract_id in created)
                except Exception as e:
                    logger.error(f"Error advancing contract {contract_id}: {e}")
                    watermark = None
                return contract_id, watermark

        results = await asyncio.gather(
            *(worker(contract_id, target_round) for contract_id, target_round in targets.items())
        )
        return dict(results)

    async def refresh_collection(self, contract_id: int) -> int:
        """Re-read every token of an ARC-72 collection from the chain.

        Returns:
            Number of tokens refreshed, 0 when the contract is no collection
        """
        kind = await self.contract_type(contract_id)
        handler = self.handlers.get(kind)
        if kind is not ContractType.ARC72 or not isinstance(handler, NFTHandler):
            logger.warning(f"Contract {contract_id} is {kind.value}, not a collection")
            return 0

        async with self._contract_lock(contract_id):
            client = ContractClient(self.rpc, contract_id)
            await handler.refresh(client, 0)
            return await handler.refresh_tokens(client)
