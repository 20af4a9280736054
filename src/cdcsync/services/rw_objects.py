"""
RisingWaveObjectManager: lists and drops objects in a RisingWave database.

The sync orchestrator only ever creates objects and never drops the shared
per-database CDC sources; this is the way to inspect and clean them up.
Catalog reads go through rw_catalog, drops through ddl.risingwave.drop_object.
"""
import logging
from typing import List, Optional

from cdcsync.ddl import risingwave
from cdcsync.ddl.statements import quote_literal
from cdcsync.errors import DatabaseConnectionError
from cdcsync.models.connection import DbType
from cdcsync.models.rw_object import (
    BatchDropResult,
    RwObject,
    RwObjectKind,
    parse_object_kind,
)

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"
INTERNAL_SCHEMAS = frozenset({"rw_catalog", "information_schema", "pg_catalog"})

SCHEMAS_SQL = "SELECT name FROM rw_catalog.rw_schemas ORDER BY name"

# Catalog relation and extra selected columns per kind
_CATALOGS = {
    RwObjectKind.SOURCE: ("rw_sources", "o.connector, o.columns::text"),
    RwObjectKind.TABLE: ("rw_tables", None),
    RwObjectKind.MATERIALIZED_VIEW: ("rw_materialized_views", None),
    RwObjectKind.SINK: ("rw_sinks", "o.connector"),
}


def list_objects_sql(kind: RwObjectKind, schema: str) -> str:
    relation, extra = _CATALOGS[kind]
    columns = "o.id, o.name, sch.name, o.owner"
    if extra:
        columns += f", {extra}"
    return (
        f"SELECT {columns}, o.definition "
        f"FROM rw_catalog.{relation} o "
        "JOIN rw_catalog.rw_schemas sch ON o.schema_id = sch.id "
        f"WHERE sch.name = {quote_literal(schema)} "
        "ORDER BY o.name"
    )


def _parse_columns(text: Optional[str]) -> List[str]:
    """'{id,name}' → ['id', 'name']"""
    if not text:
        return []
    return [c.strip() for c in text.strip("{}").split(",") if c.strip()]


def _to_object(kind: RwObjectKind, row) -> RwObject:
    obj = dict(id=row[0], name=row[1], schema_name=row[2], owner=row[3], definition=row[-1])
    if kind is RwObjectKind.SOURCE:
        obj.update(connector=row[4], columns=_parse_columns(row[5]))
    elif kind is RwObjectKind.SINK:
        obj.update(connector=row[4])
    return RwObject(**obj)


class RisingWaveObjectManager:
    def __init__(self, config_store, connector):
        """
        Args:
            config_store: ConfigStore resolving the RisingWave connection id.
            connector: object whose `connect(profile)` yields a StatementExecutor.
        """
        self.config_store = config_store
        self.connector = connector

    async def list_schemas(self, config_id: int) -> List[str]:
        """User schemas, internal catalogs excluded."""
        profile = self.config_store.resolve(config_id, DbType.RISINGWAVE)
        async with self.connector.connect(profile) as rw:
            rows = await rw.query_all(SCHEMAS_SQL)
        return [row[0] for row in rows if row[0] not in INTERNAL_SCHEMAS]

    async def list_objects(
        self, config_id: int, kind: RwObjectKind, schema: Optional[str] = None
    ) -> List[RwObject]:
        profile = self.config_store.resolve(config_id, DbType.RISINGWAVE)
        async with self.connector.connect(profile) as rw:
            rows = await rw.query_all(list_objects_sql(kind, schema or DEFAULT_SCHEMA))
        return [_to_object(kind, row) for row in rows]

    async def drop_object(
        self,
        config_id: int,
        kind: RwObjectKind,
        schema: str,
        name: str,
        cascade: bool = False,
    ) -> None:
        profile = self.config_store.resolve(config_id, DbType.RISINGWAVE)
        async with self.connector.connect(profile) as rw:
            await rw.execute(risingwave.drop_object(kind, schema, name, cascade))
        logger.info("Dropped RisingWave %s %s.%s", kind.value, schema, name)

    async def drop_objects(
        self,
        config_id: int,
        object_type: str,
        schema: str,
        names: List[str],
        cascade: bool = False,
    ) -> BatchDropResult:
        """
        Drop several objects of one kind over a single connection. A failed drop
        is recorded and the rest still run.

        Raises:
            ValidationError: unknown object_type.
        """
        kind = parse_object_kind(object_type)
        profile = self.config_store.resolve(config_id, DbType.RISINGWAVE)
        failed: List[str] = []
        async with self.connector.connect(profile) as rw:
            for name in names:
                try:
                    await rw.execute(risingwave.drop_object(kind, schema, name, cascade))
                except DatabaseConnectionError as exc:
                    logger.error("Failed to drop %s %s.%s: %s", kind.value, schema, name, exc)
                    failed.append(name)
                else:
                    logger.info("Dropped RisingWave %s %s.%s", kind.value, schema, name)

        return BatchDropResult(
            success=not failed,
            deleted_count=len(names) - len(failed),
            total_count=len(names),
            failed=failed,
        )
