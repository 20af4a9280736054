"""
Scoped connections to MySQL, RisingWave and StarRocks.

The drivers (PyMySQL, psycopg2) are synchronous; every call runs in the
default thread-pool executor so the event loop stays free, the same way the
other blocking clients in this package are wrapped.

RisingWave speaks the PostgreSQL wire protocol; StarRocks and MySQL speak the
MySQL protocol. DDL is sent with exec_driver_sql(no_parameters=True) so that
`:name` and `%` inside passwords or casts reach the server untouched.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from cdcsync.config import Settings, get_settings
from cdcsync.errors import DatabaseConnectionError
from cdcsync.models.connection import ConnectionProfile, DbType, parse_db_type

logger = logging.getLogger(__name__)

_DRIVERS = {
    DbType.MYSQL: "mysql+pymysql",
    DbType.STARROCKS: "mysql+pymysql",
    DbType.RISINGWAVE: "postgresql+psycopg2",
}

_SYSTEM_NAMES = {
    DbType.MYSQL: "MySQL",
    DbType.STARROCKS: "StarRocks",
    DbType.RISINGWAVE: "RisingWave",
}


def build_url(
    profile: ConnectionProfile,
    database: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> URL:
    """SQLAlchemy URL for a resolved (plaintext password) profile."""
    settings = settings or get_settings()
    db_type = parse_db_type(profile.db_type)
    database = database or profile.database_name
    if db_type is DbType.RISINGWAVE and not database:
        database = settings.risingwave_default_database
    return URL.create(
        _DRIVERS[db_type],
        username=profile.username,
        password=profile.password or None,
        host=profile.host,
        port=profile.port,
        database=database,
    )


def create_remote_engine(url: URL) -> Engine:
    """Engine without pooling: one sync run holds one connection and drops it."""
    return create_engine(url, poolclass=NullPool, isolation_level="AUTOCOMMIT")


async def _run(fn, *args, **kwargs):
    """Run a blocking driver call in the thread pool."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))


class StatementExecutor:
    """One open connection to one remote system."""

    def __init__(self, system: str, engine: Engine):
        self.system = system
        self._engine = engine
        self._conn = None

    async def open(self) -> None:
        try:
            self._conn = await _run(self._engine.connect)
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(
                f"{self.system} connection failed: {exc}"
            ) from exc

    async def execute(self, sql: str) -> None:
        """Run one statement. Driver errors are wrapped with the system name."""
        logger.debug("%s <- %s", self.system, sql)
        try:
            await _run(self._exec, sql)
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(
                f"{self.system} statement failed: {exc}"
            ) from exc

    async def query_first(self, sql: str) -> Optional[Tuple[Any, ...]]:
        """Run a query and return its first row, or None."""
        logger.debug("%s <- %s", self.system, sql)
        try:
            row = await _run(lambda: self._exec(sql).first())
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(
                f"{self.system} query failed: {exc}"
            ) from exc
        return tuple(row) if row is not None else None

    async def query_all(self, sql: str) -> List[Tuple[Any, ...]]:
        logger.debug("%s <- %s", self.system, sql)
        try:
            rows = await _run(lambda: self._exec(sql).all())
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(
                f"{self.system} query failed: {exc}"
            ) from exc
        return [tuple(row) for row in rows]

    def _exec(self, sql: str):
        return self._conn.execution_options(no_parameters=True).exec_driver_sql(sql)

    async def close(self) -> None:
        try:
            if self._conn is not None:
                await _run(self._conn.close)
        finally:
            self._conn = None
            await _run(self._engine.dispose)


class Connector:
    """Opens scoped executors for the streaming engine and the warehouse."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @asynccontextmanager
    async def connect(self, profile: ConnectionProfile) -> AsyncIterator[StatementExecutor]:
        """
        Yield an open executor; the connection is closed on every exit path.

        Raises:
            DatabaseConnectionError: if the connection cannot be established.
        """
        db_type = parse_db_type(profile.db_type)
        url = build_url(profile, settings=self.settings)
        system = _SYSTEM_NAMES[db_type]
        logger.info("Connecting to %s at %s", system, url.render_as_string(hide_password=True))

        executor = StatementExecutor(system, create_remote_engine(url))
        try:
            await executor.open()
            yield executor
        finally:
            await executor.close()
            logger.info("Closed %s connection", system)
