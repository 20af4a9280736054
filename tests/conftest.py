"""Shared test fixtures."""
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from cdcsync.db.engine import init_schema
from cdcsync.models.connection import ConnectionCreate, ConnectionProfile, DbType
from cdcsync.models.schema import ColumnDescriptor, TableSchema
from cdcsync.security import PlaintextSecretProvider
from cdcsync.stores.config_store import ConfigStore
from cdcsync.stores.task_store import TaskStore


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with tables and migration indexes applied."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="task_store")
def task_store_fixture(engine) -> TaskStore:
    return TaskStore(engine)


@pytest.fixture(name="config_store")
def config_store_fixture(engine) -> ConfigStore:
    return ConfigStore(engine, PlaintextSecretProvider())


@pytest.fixture(name="profile_ids")
def profile_ids_fixture(config_store):
    """One saved profile per system: {"mysql": id, "risingwave": id, "starrocks": id}."""
    return {
        "mysql": config_store.save(ConnectionCreate(
            name="shop-mysql", db_type=DbType.MYSQL, host="mysql.internal",
            port=3306, username="cdc", password="my'secret",
        )),
        "risingwave": config_store.save(ConnectionCreate(
            name="rw", db_type=DbType.RISINGWAVE, host="rw.internal",
            port=4566, username="root", password="",
        )),
        "starrocks": config_store.save(ConnectionCreate(
            name="sr", db_type=DbType.STARROCKS, host="sr.internal",
            port=9030, username="loader", password="sr-pass",
        )),
    }


def make_profile(db_type: DbType = DbType.MYSQL, **overrides) -> ConnectionProfile:
    """Detached profile with a plaintext password, as ConfigStore.resolve returns."""
    values = dict(
        id=1, name=f"{db_type.value}-conn", db_type=db_type.value,
        host=f"{db_type.value}.internal", port=3306, username="cdc", password="pw",
    )
    values.update(overrides)
    return ConnectionProfile(**values)


def orders_schema(database: str = "shop", table: str = "orders") -> TableSchema:
    """A small table touching the casting and type-mapping edge cases."""
    return TableSchema(
        database=database,
        table_name=table,
        columns=[
            ColumnDescriptor("id", "bigint unsigned", is_nullable=False),
            ColumnDescriptor("customer", "varchar(64)", comment="buyer's handle"),
            ColumnDescriptor("amount", "decimal(10,2)"),
            ColumnDescriptor("is_paid", "tinyint(1)", is_nullable=False),
            ColumnDescriptor("created_at", "datetime"),
        ],
        primary_keys=["id"],
    )
