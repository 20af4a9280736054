"""StarRocks DDL for the warehouse leg of a sync."""
from typing import List

from cdcsync.ddl.statements import (
    Statement,
    backtick,
    backtick_if_needed,
    backtick_qualified,
    quote_literal,
)
from cdcsync.errors import SqlGenerationError
from cdcsync.mapping.type_mapper import source_to_warehouse_type
from cdcsync.models.schema import ColumnDescriptor, TableSchema

# Static table policy, not derived from the source table
BUCKETS = 10
REPLICATION_NUM = 1


def create_database(name: str) -> str:
    return Statement.build(
        "CREATE", "DATABASE", backtick(name), guard="IF NOT EXISTS"
    ).render()


def drop_table(database: str, table: str) -> str:
    return Statement.build(
        "DROP", "TABLE", backtick_qualified(database, table), guard="IF EXISTS"
    ).render()


def truncate_table(database: str, table: str) -> str:
    return Statement.build(
        "TRUNCATE", "TABLE", backtick_qualified(database, table)
    ).render()


def table_exists_query(database: str, table: str) -> str:
    """Query returning one row when database.table exists."""
    return (
        "SELECT 1 FROM information_schema.tables "
        f"WHERE table_schema = {quote_literal(database)} "
        f"AND table_name = {quote_literal(table)} LIMIT 1"
    )


def _column_def(col: ColumnDescriptor) -> str:
    sr_type = source_to_warehouse_type(col.data_type)
    nullable = "NULL" if col.is_nullable else "NOT NULL"
    definition = f"{backtick(col.name)} {sr_type} {nullable}"
    if col.comment:
        definition += f" COMMENT {quote_literal(col.comment)}"
    return definition


def create_table(schema: TableSchema, target_database: str, target_table: str) -> str:
    """
    Primary-key table mirroring `schema`.

    StarRocks primary-key tables need the key columns contiguous at the front,
    so key columns come first in key order, followed by the remaining columns in
    source order. A table without a primary key falls back to its first column.

    Raises:
        SqlGenerationError: if the schema has no columns.
        TypeMappingError: if a column type has no StarRocks counterpart.
    """
    if not schema.columns:
        raise SqlGenerationError(
            f"Table {schema.database}.{schema.table_name} has no columns"
        )

    pk_columns: List[str] = list(schema.primary_keys) or [schema.columns[0].name]

    column_defs = [_column_def(schema.column(name)) for name in pk_columns]
    column_defs.extend(
        _column_def(col) for col in schema.columns if col.name not in pk_columns
    )

    key_list = ", ".join(backtick_if_needed(name) for name in pk_columns)
    clauses = [
        "ENGINE=OLAP",
        f"PRIMARY KEY({key_list})",
        f"DISTRIBUTED BY HASH({backtick_if_needed(pk_columns[0])}) BUCKETS {BUCKETS}",
        "PROPERTIES (",
        f'  "replication_num" = "{REPLICATION_NUM}",',
        '  "in_memory" = "false",',
        '  "storage_format" = "DEFAULT"',
        ")",
    ]
    return Statement.build(
        "CREATE",
        "TABLE",
        backtick_qualified(target_database, target_table),
        guard="IF NOT EXISTS",
        columns=column_defs,
        clauses=clauses,
    ).render()
