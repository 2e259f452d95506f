"""Materialized store access layer.

Every write is keyed by the entity's natural key and is idempotent under
repeated identical input:

- entity rows (collections, tokens, contracts, balances, allowances,
  listings) are upserted with ``ON CONFLICT ... DO UPDATE``
- history rows (transfers, offer accepts/deletes) are inserted with
  ``ON CONFLICT DO NOTHING``
- sync watermarks only move forward

The store never derives state; handlers hand it authoritative values.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .exceptions import DatabaseError

logger = logging.getLogger(__name__)

def _rowcount(status: str) -> int:
    """Row count from an asyncpg command status such as ``INSERT 0 1``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0

class MaterializedStore:
    """Idempotent upserts and sync watermarks over the connection pool."""

    def __init__(self, pool=None):
        """Initialize the store.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            from . import get_pool
            self.pool = await get_pool()

    async def _execute(self, query: str, *args) -> str:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)
        except Exception as e:
            raise DatabaseError(f"Store write failed: {e}") from e

    async def _fetchrow(self, query: str, *args) -> Optional[Dict[str, Any]]:
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
        except Exception as e:
            raise DatabaseError(f"Store read failed: {e}") from e
        return dict(row) if row else None

    # Collections (ARC-72)

    async def insert_or_update_collection(self, collection: Dict[str, Any]) -> None:
        """Upsert a collection row.

        ``last_sync_round`` never moves backwards here; the watermark itself
        is owned by ``set_sync_watermark``.
        """
        await self._execute(
            '''
            INSERT INTO collections (
                contract_id, total_supply, create_round, creator,
                global_state, last_sync_round, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, now())
            ON CONFLICT (contract_id)
            DO UPDATE SET
                total_supply = EXCLUDED.total_supply,
                create_round = EXCLUDED.create_round,
                creator = EXCLUDED.creator,
                global_state = EXCLUDED.global_state,
                last_sync_round = GREATEST(collections.last_sync_round, EXCLUDED.last_sync_round),
                updated_at = now()
            ''',
            collection['contract_id'],
            collection.get('total_supply') or 0,
            collection.get('create_round'),
            collection.get('creator'),
            collection.get('global_state'),
            collection.get('last_sync_round') or 0
        )

    async def update_collection_total_supply(self, contract_id: int, total_supply: int) -> None:
        """Raise a collection's total supply; a mint never lowers it."""
        await self._execute(
            '''
            UPDATE collections
            SET total_supply = GREATEST(total_supply, $2), updated_at = now()
            WHERE contract_id = $1
            ''',
            contract_id,
            total_supply
        )

    async def get_collection(self, contract_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetchrow(
            'SELECT * FROM collections WHERE contract_id = $1',
            contract_id
        )

    # Tokens (ARC-72)

    async def insert_or_update_token(self, token: Dict[str, Any]) -> None:
        """Upsert a token row.

        ``mint_round`` is immutable once set and ``token_index`` is only
        replaced by a known value.
        """
        await self._execute(
            '''
            INSERT INTO tokens (
                contract_id, token_id, token_index, owner, approved,
                metadata_uri, metadata, mint_round, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, now())
            ON CONFLICT (contract_id, token_id)
            DO UPDATE SET
                token_index = COALESCE(EXCLUDED.token_index, tokens.token_index),
                owner = EXCLUDED.owner,
                approved = EXCLUDED.approved,
                metadata_uri = EXCLUDED.metadata_uri,
                metadata = EXCLUDED.metadata,
                mint_round = COALESCE(tokens.mint_round, EXCLUDED.mint_round),
                updated_at = now()
            ''',
            token['contract_id'],
            str(token['token_id']),
            token.get('token_index'),
            token.get('owner'),
            token.get('approved'),
            token.get('metadata_uri'),
            token.get('metadata'),
            token.get('mint_round')
        )

    async def update_token_owner(self, contract_id: int, token_id: int, owner: str, approved: str) -> None:
        """Set owner and approval of a token, creating the row if it was never seen."""
        await self._execute(
            '''
            INSERT INTO tokens (contract_id, token_id, owner, approved, updated_at)
            VALUES ($1, $2, $3, $4, now())
            ON CONFLICT (contract_id, token_id)
            DO UPDATE SET
                owner = EXCLUDED.owner,
                approved = EXCLUDED.approved,
                updated_at = now()
            ''',
            contract_id,
            str(token_id),
            owner,
            approved
        )

    async def update_token_approved(self, contract_id: int, token_id: int, approved: Optional[str]) -> bool:
        """Set the approved spender of a known token.

        Returns:
            False when the token row does not exist
        """
        status = await self._execute(
            '''
            UPDATE tokens
            SET approved = $3, updated_at = now()
            WHERE contract_id = $1 AND token_id = $2
            ''',
            contract_id,
            str(token_id),
            approved
        )
        return _rowcount(status) > 0

    async def get_token(self, contract_id: int, token_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetchrow(
            'SELECT * FROM tokens WHERE contract_id = $1 AND token_id = $2',
            contract_id,
            str(token_id)
        )

    async def insert_nft_transfer(self, transfer: Dict[str, Any]) -> bool:
        """Append a transfer history row; a known transaction is a no-op.

        Returns:
            True when a row was inserted
        """
        status = await self._execute(
            '''
            INSERT INTO nft_transfers (
                transaction_id, contract_id, token_id, round,
                from_addr, to_addr, timestamp
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (transaction_id, contract_id, token_id) DO NOTHING
            ''',
            transfer['transaction_id'],
            transfer['contract_id'],
            str(transfer['token_id']),
            transfer['round'],
            transfer['from_addr'],
            transfer['to_addr'],
            transfer.get('timestamp')
        )
        return _rowcount(status) > 0

    # Fungible contracts (ARC-200)

    async def insert_or_update_fungible_contract(self, contract: Dict[str, Any]) -> None:
        await self._execute(
            '''
            INSERT INTO fungible_contracts (
                contract_id, name, symbol, decimals, total_supply,
                create_round, creator, is_liquidity_pool, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, now())
            ON CONFLICT (contract_id)
            DO UPDATE SET
                name = EXCLUDED.name,
                symbol = EXCLUDED.symbol,
                decimals = EXCLUDED.decimals,
                total_supply = EXCLUDED.total_supply,
                create_round = EXCLUDED.create_round,
                creator = EXCLUDED.creator,
                is_liquidity_pool = EXCLUDED.is_liquidity_pool,
                updated_at = now()
            ''',
            contract['contract_id'],
            contract.get('name'),
            contract.get('symbol'),
            contract.get('decimals'),
            str(contract.get('total_supply') or 0),
            contract.get('create_round'),
            contract.get('creator'),
            bool(contract.get('is_liquidity_pool'))
        )

    async def insert_or_update_account_balance(self, balance: Dict[str, Any]) -> None:
        await self._execute(
            '''
            INSERT INTO account_balances (contract_id, account_id, balance, updated_at)
            VALUES ($1, $2, $3, now())
            ON CONFLICT (contract_id, account_id)
            DO UPDATE SET balance = EXCLUDED.balance, updated_at = now()
            ''',
            balance['contract_id'],
            balance['account_id'],
            str(balance['balance'])
        )

    async def get_account_balance(self, contract_id: int, account_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetchrow(
            'SELECT * FROM account_balances WHERE contract_id = $1 AND account_id = $2',
            contract_id,
            account_id
        )

    async def insert_or_update_allowance(self, allowance: Dict[str, Any]) -> None:
        await self._execute(
            '''
            INSERT INTO allowances (contract_id, owner, spender, amount, round, updated_at)
            VALUES ($1, $2, $3, $4, $5, now())
            ON CONFLICT (contract_id, owner, spender)
            DO UPDATE SET amount = EXCLUDED.amount, round = EXCLUDED.round, updated_at = now()
            ''',
            allowance['contract_id'],
            allowance['owner'],
            allowance['spender'],
            str(allowance['amount']),
            allowance['round']
        )

    async def insert_fungible_transfer(self, transfer: Dict[str, Any]) -> bool:
        status = await self._execute(
            '''
            INSERT INTO fungible_transfers (
                transaction_id, contract_id, sender, receiver,
                amount, round, timestamp
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (transaction_id, contract_id, sender, receiver) DO NOTHING
            ''',
            transfer['transaction_id'],
            transfer['contract_id'],
            transfer['sender'],
            transfer['receiver'],
            str(transfer['amount']),
            transfer['round'],
            transfer.get('timestamp')
        )
        return _rowcount(status) > 0

    # Offer listings (MP-213)

    async def insert_or_update_offer_listing(self, listing: Dict[str, Any]) -> None:
        """Upsert a listing.

        Terminal markers are sticky: an existing ``accept_id`` or
        ``delete_id`` is never cleared or replaced, and a marker is only set
        while the other one is still null.
        """
        await self._execute(
            '''
            INSERT INTO offer_listings (
                mp_contract_id, mp_listing_id, transaction_id, contract_id,
                token_id, offerer, price, currency, create_round,
                create_timestamp, accept_id, delete_id, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, now())
            ON CONFLICT (mp_contract_id, mp_listing_id)
            DO UPDATE SET
                transaction_id = EXCLUDED.transaction_id,
                contract_id = EXCLUDED.contract_id,
                token_id = EXCLUDED.token_id,
                offerer = EXCLUDED.offerer,
                price = EXCLUDED.price,
                currency = EXCLUDED.currency,
                create_round = EXCLUDED.create_round,
                create_timestamp = EXCLUDED.create_timestamp,
                accept_id = CASE
                    WHEN offer_listings.delete_id IS NULL
                    THEN COALESCE(offer_listings.accept_id, EXCLUDED.accept_id)
                    ELSE offer_listings.accept_id
                END,
                delete_id = CASE
                    WHEN offer_listings.accept_id IS NULL
                    THEN COALESCE(offer_listings.delete_id, EXCLUDED.delete_id)
                    ELSE offer_listings.delete_id
                END,
                updated_at = now()
            ''',
            listing['mp_contract_id'],
            listing['mp_listing_id'],
            listing['transaction_id'],
            listing['contract_id'],
            str(listing['token_id']),
            listing['offerer'],
            Decimal(listing['price']),
            listing.get('currency') or 0,
            listing['create_round'],
            listing.get('create_timestamp'),
            listing.get('accept_id'),
            listing.get('delete_id')
        )

    async def get_offer_listing(self, mp_contract_id: int, mp_listing_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetchrow(
            '''
            SELECT * FROM offer_listings
            WHERE mp_contract_id = $1 AND mp_listing_id = $2
            ''',
            mp_contract_id,
            mp_listing_id
        )

    async def insert_offer_accept(self, accept: Dict[str, Any]) -> bool:
        status = await self._execute(
            '''
            INSERT INTO offer_accepts (
                transaction_id, mp_contract_id, mp_listing_id, contract_id,
                token_id, accepter, round, timestamp
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (transaction_id, mp_contract_id, mp_listing_id) DO NOTHING
            ''',
            accept['transaction_id'],
            accept['mp_contract_id'],
            accept['mp_listing_id'],
            accept['contract_id'],
            str(accept['token_id']),
            accept.get('accepter'),
            accept['round'],
            accept.get('timestamp')
        )
        return _rowcount(status) > 0

    async def insert_offer_delete(self, delete: Dict[str, Any]) -> bool:
        status = await self._execute(
            '''
            INSERT INTO offer_deletes (
                transaction_id, mp_contract_id, mp_listing_id, contract_id,
                token_id, deleter, round, timestamp
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (transaction_id, mp_contract_id, mp_listing_id) DO NOTHING
            ''',
            delete['transaction_id'],
            delete['mp_contract_id'],
            delete['mp_listing_id'],
            delete['contract_id'],
            str(delete['token_id']),
            delete.get('deleter'),
            delete['round'],
            delete.get('timestamp')
        )
        return _rowcount(status) > 0

    # Sync watermarks

    async def get_sync_watermark(self, contract_id: int) -> Optional[int]:
        """Last fully processed round, or None for an untracked contract."""
        row = await self._fetchrow(
            'SELECT last_sync_round FROM contract_sync WHERE contract_id = $1',
            contract_id
        )
        return row['last_sync_round'] if row else None

    async def set_sync_watermark(self, contract_id: int, round_: int) -> None:
        """Advance a contract's watermark; it never moves backwards.

        The collection row, when there is one, mirrors the watermark.
        """
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        '''
                        INSERT INTO contract_sync (contract_id, last_sync_round, updated_at)
                        VALUES ($1, $2, now())
                        ON CONFLICT (contract_id)
                        DO UPDATE SET
                            last_sync_round = GREATEST(contract_sync.last_sync_round, EXCLUDED.last_sync_round),
                            updated_at = now()
                        ''',
                        contract_id,
                        round_
                    )
                    await conn.execute(
                        '''
                        UPDATE collections
                        SET last_sync_round = $2, updated_at = now()
                        WHERE contract_id = $1 AND last_sync_round < $2
                        ''',
                        contract_id,
                        round_
                    )
        except Exception as e:
            raise DatabaseError(f"Failed to set watermark for {contract_id}: {e}") from e

    async def get_contracts_behind(self, round_: int, contract_types: List[str]) -> List[int]:
        """Classified contracts of the given kinds whose watermark is below ``round_``."""
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    '''
                    SELECT contract_id FROM contract_sync
                    WHERE contract_type = ANY($2::TEXT[])
                    AND last_sync_round < $1
                    ORDER BY contract_id
                    ''',
                    round_,
                    list(contract_types)
                )
                return [row['contract_id'] for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to list contracts behind round {round_}: {e}") from e

    async def get_contract_type(self, contract_id: int) -> Optional[str]:
        row = await self._fetchrow(
            'SELECT contract_type FROM contract_sync WHERE contract_id = $1',
            contract_id
        )
        return row['contract_type'] if row else None

    async def set_contract_type(self, contract_id: int, contract_type: str, initial_round: int = 0) -> None:
        """Record the classified kind, creating the sync row at ``initial_round``."""
        await self._execute(
            '''
            INSERT INTO contract_sync (contract_id, contract_type, last_sync_round, updated_at)
            VALUES ($1, $2, $3, now())
            ON CONFLICT (contract_id)
            DO UPDATE SET contract_type = EXCLUDED.contract_type, updated_at = now()
            ''',
            contract_id,
            contract_type,
            initial_round
        )
