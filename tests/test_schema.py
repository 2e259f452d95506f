"""Tests for schema installation."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from database import DatabaseSchemaError
from database.lib.schema_manager import SchemaManager, table_sql

TABLES = {
    'collections', 'tokens', 'nft_transfers', 'fungible_contracts',
    'account_balances', 'allowances', 'fungible_transfers', 'offer_listings',
    'offer_accepts', 'offer_deletes', 'contract_sync',
}

def mock_pool(current_version=None):
    conn = MagicMock()
    conn.execute = AsyncMock(return_value='OK')
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(
        return_value={'version': current_version} if current_version else None
    )

    pool = MagicMock()

    @asynccontextmanager
    async def acquire():
        yield conn

    pool.acquire = acquire
    return pool, conn

def executed(conn):
    return [' '.join(call.args[0].split()) for call in conn.execute.call_args_list]

@pytest.mark.asyncio
async def test_fresh_install_creates_every_table():
    pool, conn = mock_pool()

    await SchemaManager(pool).initialize()

    queries = executed(conn)
    created = {q.split()[2] for q in queries if q.startswith('CREATE TABLE ') and 'IF NOT EXISTS' not in q}
    assert created == TABLES
    assert any(q.startswith('CREATE INDEX idx_offer_listings_open') and 'WHERE' in q for q in queries)
    assert conn.execute.call_args_list[-1].args == ('INSERT INTO schema_version (version) VALUES ($1)', 1)

@pytest.mark.asyncio
async def test_up_to_date_schema_is_left_alone():
    pool, conn = mock_pool(current_version=1)

    await SchemaManager(pool).initialize()

    assert not [q for q in executed(conn) if q.startswith('CREATE TABLE ') and 'IF NOT EXISTS' not in q]

@pytest.mark.asyncio
async def test_missing_schema_directory(tmp_path):
    pool, _ = mock_pool()

    with pytest.raises(DatabaseSchemaError):
        await SchemaManager(pool, schema_dir=tmp_path / 'missing').initialize()

@pytest.mark.asyncio
async def test_older_schema_is_rejected():
    pool, conn = mock_pool(current_version=1)

    with patch.object(SchemaManager, 'latest_schema', return_value={'version': 2, 'tables': []}):
        with pytest.raises(DatabaseSchemaError) as excinfo:
            await SchemaManager(pool).initialize()

    assert '--force-recreate' in str(excinfo.value)
    assert not [q for q in executed(conn) if q.startswith('DROP TABLE')]

@pytest.mark.asyncio
async def test_force_recreate_rebuilds_tables():
    pool, conn = mock_pool()
    conn.fetch.return_value = [{'table_name': 'tokens'}, {'table_name': 'collections'}]

    await SchemaManager(pool).initialize(force_recreate=True)

    queries = executed(conn)
    assert 'DELETE FROM schema_version' in queries
    assert {q for q in queries if q.startswith('DROP TABLE')} == {
        'DROP TABLE IF EXISTS tokens CASCADE',
        'DROP TABLE IF EXISTS collections CASCADE',
    }
    assert queries.index('DROP TABLE IF EXISTS tokens CASCADE') < queries.index(next(
        q for q in queries if q.startswith('CREATE TABLE tokens')
    ))

def test_table_sql_with_composite_key():
    table = {
        'name': 'pairs',
        'columns': [
            {'name': 'a', 'type': 'INT8'},
            {'name': 'b', 'type': 'TEXT', 'nullable': False, 'default': "''"},
        ],
        'primary_key': ['a', 'b'],
    }

    assert table_sql(table) == "CREATE TABLE pairs (a INT8, b TEXT DEFAULT '' NOT NULL, PRIMARY KEY (a, b))"
