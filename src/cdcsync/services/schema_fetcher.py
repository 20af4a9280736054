"""
MySqlSchemaFetcher: reads a table's columns, primary key and indexes from
MySQL's INFORMATION_SCHEMA.

Blocking PyMySQL calls run in the thread pool; fetch() is a coroutine so the
orchestrator can await it like the other collaborators.
"""
import asyncio
import logging
from typing import List, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cdcsync.errors import DatabaseConnectionError, NotFoundError
from cdcsync.models.connection import ConnectionProfile
from cdcsync.models.schema import ColumnDescriptor, IndexDescriptor, TableSchema
from cdcsync.services.connections import build_url, create_remote_engine

logger = logging.getLogger(__name__)

COLUMNS_SQL = text(
    """
    SELECT COLUMN_NAME, CAST(COLUMN_TYPE AS CHAR) AS COLUMN_TYPE, IS_NULLABLE,
           CHARACTER_MAXIMUM_LENGTH, NUMERIC_PRECISION, NUMERIC_SCALE,
           COLUMN_COMMENT, COLUMN_DEFAULT
    FROM INFORMATION_SCHEMA.COLUMNS
    WHERE TABLE_SCHEMA = :db AND TABLE_NAME = :tbl
    ORDER BY ORDINAL_POSITION
    """
)

PRIMARY_KEY_SQL = text(
    """
    SELECT COLUMN_NAME
    FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
    WHERE TABLE_SCHEMA = :db AND TABLE_NAME = :tbl AND CONSTRAINT_NAME = 'PRIMARY'
    ORDER BY ORDINAL_POSITION
    """
)

INDEXES_SQL = text(
    """
    SELECT INDEX_NAME, COLUMN_NAME, NON_UNIQUE, SEQ_IN_INDEX
    FROM INFORMATION_SCHEMA.STATISTICS
    WHERE TABLE_SCHEMA = :db AND TABLE_NAME = :tbl AND INDEX_NAME <> 'PRIMARY'
    ORDER BY INDEX_NAME, SEQ_IN_INDEX
    """
)


class SchemaFetcher(Protocol):
    async def fetch(
        self, profile: ConnectionProfile, database: str, table: str
    ) -> TableSchema: ...


def _optional_int(value) -> Optional[int]:
    return int(value) if value is not None else None


class MySqlSchemaFetcher:
    """INFORMATION_SCHEMA-backed SchemaFetcher."""

    async def fetch(
        self, profile: ConnectionProfile, database: str, table: str
    ) -> TableSchema:
        """
        Raises:
            DatabaseConnectionError: connection or query failure.
            NotFoundError: the table does not exist (no columns returned).
        """
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, lambda: self._fetch_sync(profile, database, table)
        )

    def _fetch_sync(
        self, profile: ConnectionProfile, database: str, table: str
    ) -> TableSchema:
        logger.info("Fetching schema for table: %s.%s", database, table)
        engine = create_remote_engine(build_url(profile, database=database))
        params = {"db": database, "tbl": table}
        try:
            with engine.connect() as conn:
                column_rows = conn.execute(COLUMNS_SQL, params).all()
                pk_rows = conn.execute(PRIMARY_KEY_SQL, params).all()
                index_rows = conn.execute(INDEXES_SQL, params).all()
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(
                f"Failed to fetch schema for {database}.{table}: {exc}"
            ) from exc
        finally:
            engine.dispose()

        if not column_rows:
            raise NotFoundError(f"Table {database}.{table} not found")

        columns: List[ColumnDescriptor] = [
            ColumnDescriptor(
                name=row[0],
                data_type=row[1],
                is_nullable=row[2] == "YES",
                character_maximum_length=_optional_int(row[3]),
                numeric_precision=_optional_int(row[4]),
                numeric_scale=_optional_int(row[5]),
                comment=row[6] or None,
                default_value=row[7],
            )
            for row in column_rows
        ]
        indexes = [
            IndexDescriptor(
                index_name=row[0],
                column_name=row[1],
                is_unique=not int(row[2]),
                seq_in_index=int(row[3]),
            )
            for row in index_rows
        ]
        schema = TableSchema(
            database=database,
            table_name=table,
            columns=columns,
            primary_keys=[row[0] for row in pk_rows],
            indexes=indexes,
        )
        logger.info(
            "Fetched schema for %s.%s: %d columns, %d primary keys, %d indexes",
            database,
            table,
            len(schema.columns),
            len(schema.primary_keys),
            len(schema.indexes),
        )
        return schema
