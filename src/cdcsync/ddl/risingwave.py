"""
RisingWave DDL for the CDC leg of a sync.

Naming, all under the target schema <s>:
  <s>.mysql_pwd / <s>.starrocks_pwd   secrets holding the upstream/downstream passwords
  <s>.<db>_source                     one mysql-cdc source per (schema, MySQL database)
  <s>.<table>                         mirror table fed by the source
  <s>.<table>_to_sr_sink              upsert sink into StarRocks

Every statement is IF [NOT] EXISTS so re-running a sync is harmless. No drop is
generated for the source: it is shared by every table synced from
the same MySQL database.
"""
import random
from typing import Optional

from cdcsync.ddl.statements import (
    Raw,
    Statement,
    ident,
    qualified_name,
    quote_ident,
    quote_literal,
    select_clause,
)
from cdcsync.errors import SqlGenerationError
from cdcsync.mapping.type_mapper import needs_sink_cast
from cdcsync.models.connection import ConnectionProfile
from cdcsync.models.rw_object import RwObjectKind
from cdcsync.models.schema import TableSchema
from cdcsync.models.task import SyncRequest

# MySQL replication client ids handed to the CDC source. Kept away from the
# low ids DBAs usually give real replicas.
SERVER_ID_RANGE = range(5000, 10000)

DEFAULT_STARROCKS_HTTP_PORT = 8030


# ─── Names ────────────────────────────────────────────────────────────────────

def cdc_secret_name(target_schema: str) -> str:
    return qualified_name(target_schema, "mysql_pwd")


def warehouse_secret_name(target_schema: str) -> str:
    return qualified_name(target_schema, "starrocks_pwd")


def source_name(target_schema: str, mysql_database: str) -> str:
    return qualified_name(target_schema, f"{mysql_database}_source")


def mirror_table_name(target_schema: str, target_table: str) -> str:
    return qualified_name(target_schema, target_table)


def sink_name(target_schema: str, target_table: str) -> str:
    return qualified_name(target_schema, f"{target_table}_to_sr_sink")


# ─── Schema & secrets ─────────────────────────────────────────────────────────

def create_schema(target_schema: str) -> str:
    return Statement.build(
        "CREATE", "SCHEMA", quote_ident(target_schema), guard="IF NOT EXISTS"
    ).render()


def _create_secret(name: str, password: str) -> str:
    return Statement.build(
        "CREATE",
        "SECRET",
        name,
        guard="IF NOT EXISTS",
        options={"backend": "meta"},
        inline_options=True,
        secret=password,
    ).render()


def create_cdc_secret(mysql_profile: ConnectionProfile, target_schema: str) -> str:
    """Secret holding the MySQL password the CDC source authenticates with."""
    return _create_secret(cdc_secret_name(target_schema), mysql_profile.password)


def create_warehouse_secret(sr_profile: ConnectionProfile, target_schema: str) -> str:
    """Secret holding the StarRocks password the sink authenticates with."""
    return _create_secret(warehouse_secret_name(target_schema), sr_profile.password)


# ─── Source & mirror table ────────────────────────────────────────────────────

def random_server_id() -> int:
    return random.randrange(SERVER_ID_RANGE.start, SERVER_ID_RANGE.stop)


def create_cdc_source(
    mysql_profile: ConnectionProfile,
    mysql_database: str,
    target_schema: str,
    server_id: Optional[int] = None,
) -> str:
    """
    Database-level mysql-cdc source. One per (target schema, MySQL database),
    however many tables are synced from it. The password is referenced through
    the secret created by create_cdc_secret(), never embedded.
    """
    if server_id is None:
        server_id = random_server_id()
    elif server_id not in SERVER_ID_RANGE:
        raise SqlGenerationError(
            f"server.id {server_id} outside {SERVER_ID_RANGE.start}-{SERVER_ID_RANGE.stop - 1}"
        )

    return Statement.build(
        "CREATE",
        "SOURCE",
        source_name(target_schema, mysql_database),
        guard="IF NOT EXISTS",
        options={
            "connector": "mysql-cdc",
            "hostname": mysql_profile.host,
            "port": str(mysql_profile.port),
            "username": mysql_profile.username,
            "password": Raw(f"secret {cdc_secret_name(target_schema)}"),
            "database.name": mysql_database,
            "server.id": str(server_id),
            "auto.schema.change": "true",
        },
    ).render()


def create_mirror_table(
    mysql_database: str, mysql_table: str, target_schema: str, target_table: str
) -> str:
    """
    Table mirroring one upstream table through the shared source. The `(*)`
    column list lets RisingWave derive the columns from the upstream table, so
    column additions flow through without regenerating this statement.
    """
    upstream = quote_literal(f"{mysql_database}.{mysql_table}")
    query = (
        f"(*) FROM {source_name(target_schema, mysql_database)} "
        f"TABLE {upstream}"
    )
    return Statement.build(
        "CREATE",
        "TABLE",
        mirror_table_name(target_schema, target_table),
        guard="IF NOT EXISTS",
        query=query,
    ).render()


# ─── Sink ─────────────────────────────────────────────────────────────────────

def create_sink(
    sr_profile: ConnectionProfile,
    request: SyncRequest,
    schema: TableSchema,
    http_port: int = DEFAULT_STARROCKS_HTTP_PORT,
) -> str:
    """
    Upsert sink from the mirror table into the StarRocks table.

    Timestamp-family columns are cast to TIMESTAMP (no time zone) and TINYINT
    columns to SMALLINT in a projecting sink; if no column needs a cast the
    plain `CREATE SINK ... FROM <table>` form is used.

    Raises:
        SqlGenerationError: if the source table has no primary key.
    """
    if not schema.primary_keys:
        raise SqlGenerationError(
            f"Table {request.mysql_table} has no primary key, cannot create upsert sink"
        )

    mirror = mirror_table_name(request.target_database, request.target_table)
    projection = []
    needs_conversion = False
    for col in schema.columns:
        cast_to = needs_sink_cast(col.data_type)
        if cast_to:
            needs_conversion = True
            projection.append(f"{ident(col.name)}::{cast_to} AS {ident(col.name)}")
        else:
            projection.append(ident(col.name))

    query = select_clause(projection, mirror) if needs_conversion else f"FROM {mirror}"

    return Statement.build(
        "CREATE",
        "SINK",
        sink_name(request.target_database, request.target_table),
        guard="IF NOT EXISTS",
        query=query,
        options={
            "connector": "starrocks",
            "starrocks.host": sr_profile.host,
            "starrocks.mysqlport": str(sr_profile.port),
            "starrocks.httpport": str(http_port),
            "starrocks.user": sr_profile.username,
            "starrocks.password": Raw(
                f"secret {warehouse_secret_name(request.target_database)}"
            ),
            "starrocks.database": request.target_database,
            "starrocks.table": request.target_table,
            "type": "upsert",
            "primary_key": ",".join(schema.primary_keys),
        },
    ).render()


# ─── Drops ────────────────────────────────────────────────────────────────────

def drop_mirror_table(target_schema: str, target_table: str) -> str:
    return Statement.build(
        "DROP",
        "TABLE",
        mirror_table_name(target_schema, target_table),
        guard="IF EXISTS",
        cascade=True,
    ).render()


def drop_sink(target_schema: str, target_table: str) -> str:
    return Statement.build(
        "DROP",
        "SINK",
        sink_name(target_schema, target_table),
        guard="IF EXISTS",
        cascade=True,
    ).render()


# ─── Object manager ───────────────────────────────────────────────────────────

_OBJECT_KEYWORDS = {
    RwObjectKind.SOURCE: "SOURCE",
    RwObjectKind.TABLE: "TABLE",
    RwObjectKind.MATERIALIZED_VIEW: "MATERIALIZED VIEW",
    RwObjectKind.SINK: "SINK",
}


def drop_object(kind: RwObjectKind, schema: str, name: str, cascade: bool = False) -> str:
    """Drop any catalog object by kind, e.g. a CDC source no sync ever drops."""
    return Statement.build(
        "DROP",
        _OBJECT_KEYWORDS[kind],
        qualified_name(schema, name),
        guard="IF EXISTS",
        cascade=cascade,
    ).render()
