"""Database schema installation.

Table layouts live in ``database/schema/v<N>.py`` as plain dicts. An empty
database gets the newest layout in one pass and a database already at that
version is left untouched. Older installations are not upgraded in place:
they are rebuilt with ``force_recreate`` and indexed again from round 0,
which the idempotent store makes safe.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, List

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'

def column_sql(column: Dict[str, Any]) -> str:
    """``name TYPE [DEFAULT x] [NOT NULL]`` for one column definition"""
    sql = f"{column['name']} {column['type']}"
    if 'default' in column:
        sql += f" DEFAULT {column['default']}"
    if column.get('nullable') is False:
        sql += " NOT NULL"
    return sql

def table_sql(table: Dict[str, Any]) -> str:
    """CREATE TABLE statement; the key is a column flag or a composite list"""
    key = table.get('primary_key') or [c['name'] for c in table['columns'] if c.get('primary_key')]
    parts = [column_sql(column) for column in table['columns']]
    if key:
        parts.append(f"PRIMARY KEY ({', '.join(key)})")
    return f"CREATE TABLE {table['name']} ({', '.join(parts)})"

def index_sql(table_name: str, index: Dict[str, Any]) -> str:
    """CREATE INDEX statement, optionally unique or partial"""
    unique = 'UNIQUE ' if index.get('unique') else ''
    where = f" WHERE {index['where']}" if 'where' in index else ''
    return f"CREATE {unique}INDEX {index['name']} ON {table_name}({', '.join(index['columns'])}){where}"

class SchemaManager:
    """Installs the newest schema version into an empty database."""

    def __init__(self, pool, schema_dir: Path = SCHEMA_DIR) -> None:
        """Initialize schema manager.

        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir)
        self.current_version = 0

    async def initialize(self, force_recreate: bool = False) -> None:
        """Make sure the database carries the newest schema.

        Args:
            force_recreate: Drop every table and install the newest schema

        Raises:
            DatabaseSchemaError: If no schema file is found, the installed
                version is older than the newest one, or installation fails
        """
        schema = self.latest_schema()
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    'CREATE TABLE IF NOT EXISTS schema_version ('
                    'version INT8 PRIMARY KEY, applied_at TIMESTAMP NOT NULL DEFAULT now())'
                )
                if force_recreate:
                    logger.info("Force recreate requested, resetting schema version")
                    await conn.execute('DELETE FROM schema_version')

                row = await conn.fetchrow('SELECT max(version) AS version FROM schema_version')
                self.current_version = (row['version'] if row else None) or 0

                if self.current_version == schema['version']:
                    logger.info(f"Schema is at version {self.current_version}")
                    return
                if self.current_version:
                    raise DatabaseSchemaError(
                        f"Database is at schema version {self.current_version}, expected "
                        f"{schema['version']}; start with --force-recreate to rebuild it"
                    )

                await self._install(conn, schema)
                self.current_version = schema['version']

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}") from e

    def latest_schema(self) -> Dict[str, Any]:
        """Load the highest ``v<N>.py`` schema definition.

        Raises:
            DatabaseSchemaError: If there is none or its version does not match its name
        """
        versions = []
        for file in self._schema_dir.glob('v*.py'):
            if file.stem[1:].isdigit():
                versions.append(int(file.stem[1:]))
            else:
                logger.warning(f"Ignoring schema file {file.name}")
        if not versions:
            raise DatabaseSchemaError(f"No schema files found in {self._schema_dir}")

        version = max(versions)
        schema = getattr(importlib.import_module(f"database.schema.v{version}"), 'schema', None)
        if not schema or schema.get('version') != version:
            raise DatabaseSchemaError(f"database/schema/v{version}.py does not define schema version {version}")
        return schema

    async def _drop_tables(self, conn) -> List[str]:
        rows = await conn.fetch(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name != 'schema_version'"
        )
        names = [row['table_name'] for row in rows]
        for name in names:
            await conn.execute(f'DROP TABLE IF EXISTS {name} CASCADE')
        if names:
            logger.info(f"Dropped tables: {', '.join(sorted(names))}")
        return names

    async def _install(self, conn, schema: Dict[str, Any]) -> None:
        await self._drop_tables(conn)
        for table in schema['tables']:
            await conn.execute(table_sql(table))
            for index in table.get('indexes', []):
                await conn.execute(index_sql(table['name'], index))
            logger.info(f"Created table {table['name']}")

        await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', schema['version'])
        logger.info(f"Installed schema version {schema['version']}")
