"""
Integration tests for SyncOrchestrator.

Uses the real stores on in-memory SQLite, a fake schema fetcher and a fake
connector whose executors are AsyncMocks recording every statement. No real
database connections are made.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from cdcsync.config import Settings
from cdcsync.errors import DatabaseConnectionError, NotFoundError, ValidationError
from cdcsync.models.schema import ColumnDescriptor, TableSchema
from cdcsync.models.task import SyncOptions, SyncRequest, TaskStatus
from cdcsync.services.runner import TaskRunner
from cdcsync.services.sync_engine import CANCELLED_MESSAGE, SyncOrchestrator

from conftest import orders_schema


# ─── Fakes ────────────────────────────────────────────────────────────────────

class FakeSchemaFetcher:
    def __init__(self, schemas: Optional[Dict[str, TableSchema]] = None, gate=None):
        self.schemas = schemas or {}
        self.gate = gate
        self.calls: List[str] = []

    async def fetch(self, profile, database, table):
        self.calls.append(f"{database}.{table}")
        if self.gate is not None:
            await self.gate.wait()
        return self.schemas.get(f"{database}.{table}") or orders_schema(database, table)


class FakeConnector:
    """Hands out one recording executor per system and tracks closes."""

    def __init__(self, fail_when: Optional[Callable[[str], bool]] = None):
        self.fail_when = fail_when
        self.statements: Dict[str, List[str]] = {"risingwave": [], "starrocks": []}
        self.closed: List[str] = []
        self.table_exists = False

    @asynccontextmanager
    async def connect(self, profile):
        system = profile.db_type
        recorded = self.statements[system]

        async def execute(sql):
            if self.fail_when and self.fail_when(sql):
                raise DatabaseConnectionError(f"{system} statement failed: rejected")
            recorded.append(sql)

        executor = AsyncMock()
        executor.execute = AsyncMock(side_effect=execute)
        executor.query_first = AsyncMock(
            side_effect=lambda sql: (1,) if self.table_exists else None
        )
        try:
            yield executor
        finally:
            self.closed.append(system)

    def all_statements(self) -> List[str]:
        return self.statements["risingwave"] + self.statements["starrocks"]


@pytest.fixture(name="connector")
def connector_fixture():
    return FakeConnector()


@pytest.fixture(name="fetcher")
def fetcher_fixture():
    return FakeSchemaFetcher()


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(task_store, config_store, fetcher, connector):
    return SyncOrchestrator(
        task_store=task_store,
        config_store=config_store,
        schema_fetcher=fetcher,
        connector=connector,
        runner=TaskRunner(max_concurrency=2),
        settings=Settings(starrocks_http_port=8030),
    )


def _request(profile_ids, table="orders", database="shop", **options) -> SyncRequest:
    return SyncRequest(
        mysql_config_id=profile_ids["mysql"],
        rw_config_id=profile_ids["risingwave"],
        sr_config_id=profile_ids["starrocks"],
        mysql_database=database,
        mysql_table=table,
        target_database="ods_shop",
        target_table=table,
        options=SyncOptions(**options),
    )


def _messages(task_store, task_id) -> List[str]:
    return [log.message for log in task_store.get_logs(task_id)]


def _with_prefix(statements: List[str], prefix: str) -> List[str]:
    return [s for s in statements if s.startswith(prefix)]


# ─── Submit & run ─────────────────────────────────────────────────────────────

class TestSubmit:
    @pytest.mark.asyncio
    async def test_single_table_completes(self, orchestrator, task_store, profile_ids, connector):
        task_id = await orchestrator.sync_table(_request(profile_ids))
        assert task_store.get(task_id).status_enum() is TaskStatus.RUNNING

        await orchestrator.runner.wait(task_id)

        task = task_store.get(task_id)
        assert task.status_enum() is TaskStatus.COMPLETED
        assert task.completed_at is not None
        assert task.task_name == "Sync shop.orders"
        messages = _messages(task_store, task_id)
        assert messages[0] == "Starting batch sync for 1 tables"
        assert "Successfully synced shop.orders to ods_shop.orders (1/1)" in messages
        assert messages[-1] == "Batch sync completed successfully"

    @pytest.mark.asyncio
    async def test_statement_order(self, orchestrator, profile_ids, connector):
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)

        rw = connector.statements["risingwave"]
        assert [s.split(" IF ")[0] for s in rw] == [
            "CREATE SCHEMA",
            "CREATE SECRET",
            "CREATE SOURCE",
            "CREATE TABLE",
            "CREATE SECRET",
            "CREATE SINK",
        ]
        assert rw[0] == 'CREATE SCHEMA IF NOT EXISTS "ods_shop";'
        assert "(*) FROM ods_shop.shop_source TABLE 'shop.orders'" in rw[3]
        assert "primary_key = 'id'" in rw[5]
        assert "AS 'my''secret'" in rw[1]
        sr = connector.statements["starrocks"]
        assert sr[0] == "CREATE DATABASE IF NOT EXISTS `ods_shop`;"
        assert sr[1].startswith("CREATE TABLE IF NOT EXISTS `ods_shop`.`orders` (")

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, orchestrator):
        with pytest.raises(ValidationError, match="No tables to sync"):
            await orchestrator.submit([])

    @pytest.mark.asyncio
    async def test_mixed_connections_rejected(self, orchestrator, profile_ids, task_store):
        other = _request(profile_ids, table="items")
        other.sr_config_id = 999
        with pytest.raises(ValidationError, match="same database configurations"):
            await orchestrator.submit([_request(profile_ids), other])
        assert task_store.count() == 0

    @pytest.mark.asyncio
    async def test_unknown_connection(self, orchestrator, profile_ids):
        req = _request(profile_ids)
        req.mysql_config_id = 999
        with pytest.raises(NotFoundError):
            await orchestrator.sync_table(req)

    @pytest.mark.asyncio
    async def test_connection_of_wrong_type(self, orchestrator, profile_ids):
        req = _request(profile_ids)
        req.mysql_config_id = profile_ids["starrocks"]
        with pytest.raises(ValidationError, match="expected mysql"):
            await orchestrator.sync_table(req)


class TestBatch:
    @pytest.mark.asyncio
    async def test_shared_objects_created_once(self, orchestrator, task_store, profile_ids, connector):
        requests = [_request(profile_ids, table=t) for t in ("orders", "items", "users")]
        task_id = await orchestrator.submit(requests)
        await orchestrator.runner.wait(task_id)

        task = task_store.get(task_id)
        assert task.status_enum() is TaskStatus.COMPLETED
        assert task.task_name == "Batch Sync 3 tables"
        assert task.mysql_table == "[Batch: shop.orders, shop.items, shop.users]"
        assert task.target_table == "[Batch: 3 tables]"

        rw = connector.statements["risingwave"]
        assert len(_with_prefix(rw, "CREATE SCHEMA")) == 1
        assert len(_with_prefix(rw, "CREATE SECRET IF NOT EXISTS ods_shop.mysql_pwd")) == 1
        assert len(_with_prefix(rw, "CREATE SECRET IF NOT EXISTS ods_shop.starrocks_pwd")) == 1
        assert len(_with_prefix(rw, "CREATE SOURCE")) == 1
        assert len(_with_prefix(rw, "CREATE TABLE")) == 3
        assert len(_with_prefix(rw, "CREATE SINK")) == 3
        sr = connector.statements["starrocks"]
        assert len(_with_prefix(sr, "CREATE DATABASE")) == 1
        assert len(_with_prefix(sr, "CREATE TABLE")) == 3

    @pytest.mark.asyncio
    async def test_one_source_per_source_database(self, orchestrator, profile_ids, connector):
        requests = [
            _request(profile_ids, table="orders", database="shop"),
            _request(profile_ids, table="events", database="audit"),
        ]
        task_id = await orchestrator.submit(requests)
        await orchestrator.runner.wait(task_id)

        sources = _with_prefix(connector.statements["risingwave"], "CREATE SOURCE")
        assert [s.split("\n")[0] for s in sources] == [
            "CREATE SOURCE IF NOT EXISTS ods_shop.shop_source",
            "CREATE SOURCE IF NOT EXISTS ods_shop.audit_source",
        ]


# ─── Failures ─────────────────────────────────────────────────────────────────

class TestFailures:
    @pytest.mark.asyncio
    async def test_secret_failure_stops_the_batch(
        self, task_store, config_store, fetcher, profile_ids
    ):
        connector = FakeConnector(fail_when=lambda sql: sql.startswith("CREATE SECRET"))
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)

        task = task_store.get(task_id)
        assert task.status_enum() is TaskStatus.FAILED
        assert "rejected" in task.error_message
        assert task.completed_at is not None

        messages = _messages(task_store, task_id)
        secret_step = messages.index("Creating secret for MySQL password...")
        assert len(messages) == secret_step + 2
        assert messages[-1].startswith("Batch sync failed: Connection error:")
        assert connector.all_statements() == ['CREATE SCHEMA IF NOT EXISTS "ods_shop";']

    @pytest.mark.asyncio
    async def test_connections_closed_on_failure(self, task_store, config_store, fetcher, profile_ids):
        connector = FakeConnector(fail_when=lambda sql: sql.startswith("CREATE SCHEMA"))
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)

        assert task_store.get(task_id).status_enum() is TaskStatus.FAILED
        assert sorted(connector.closed) == ["risingwave", "starrocks"]

    @pytest.mark.asyncio
    async def test_connections_closed_on_success(self, orchestrator, profile_ids, connector):
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)
        assert sorted(connector.closed) == ["risingwave", "starrocks"]

    @pytest.mark.asyncio
    async def test_unsupported_type_fails_before_any_statement(
        self, task_store, config_store, connector, profile_ids
    ):
        schema = TableSchema(
            database="shop", table_name="orders",
            columns=[ColumnDescriptor("id", "int"), ColumnDescriptor("area", "geometry")],
            primary_keys=["id"],
        )
        fetcher = FakeSchemaFetcher({"shop.orders": schema})
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)

        task = task_store.get(task_id)
        assert task.status_enum() is TaskStatus.FAILED
        assert task.error_message.startswith("Type mapping error")
        assert connector.all_statements() == []

    @pytest.mark.asyncio
    async def test_missing_primary_key_fails_before_any_statement(
        self, task_store, config_store, connector, profile_ids
    ):
        schema = TableSchema(
            database="shop", table_name="orders",
            columns=[ColumnDescriptor("id", "int")],
        )
        fetcher = FakeSchemaFetcher({"shop.orders": schema})
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)

        assert "no primary key" in task_store.get(task_id).error_message
        assert connector.all_statements() == []


# ─── Options ──────────────────────────────────────────────────────────────────

class TestOptions:
    @pytest.mark.asyncio
    async def test_recreate_source_drops_sink_then_table(self, orchestrator, profile_ids, connector):
        task_id = await orchestrator.sync_table(_request(profile_ids, recreate_rw_source=True))
        await orchestrator.runner.wait(task_id)

        rw = connector.statements["risingwave"]
        drops = _with_prefix(rw, "DROP")
        assert drops == [
            "DROP SINK IF EXISTS ods_shop.orders_to_sr_sink CASCADE;",
            "DROP TABLE IF EXISTS ods_shop.orders CASCADE;",
        ]
        assert rw.index(drops[-1]) < rw.index(_with_prefix(rw, "CREATE SOURCE")[0])

    @pytest.mark.asyncio
    async def test_drop_failures_are_ignored(self, task_store, config_store, fetcher, profile_ids):
        connector = FakeConnector(fail_when=lambda sql: sql.startswith("DROP"))
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids, recreate_rw_source=True))
        await orchestrator.runner.wait(task_id)

        assert task_store.get(task_id).status_enum() is TaskStatus.COMPLETED
        levels = [log.log_level for log in task_store.get_logs(task_id)]
        assert levels.count("warn") == 2

    @pytest.mark.asyncio
    async def test_recreate_target_drops_warehouse_table(self, orchestrator, profile_ids, connector):
        task_id = await orchestrator.sync_table(_request(profile_ids, recreate_sr_table=True))
        await orchestrator.runner.wait(task_id)

        sr = connector.statements["starrocks"]
        assert sr[1] == "DROP TABLE IF EXISTS `ods_shop`.`orders`;"
        assert sr[2].startswith("CREATE TABLE")

    @pytest.mark.asyncio
    async def test_truncate_missing_table_is_noop(self, orchestrator, task_store, profile_ids, connector):
        task_id = await orchestrator.sync_table(_request(profile_ids, truncate_sr_table=True))
        await orchestrator.runner.wait(task_id)

        assert task_store.get(task_id).status_enum() is TaskStatus.COMPLETED
        assert not _with_prefix(connector.statements["starrocks"], "TRUNCATE")
        assert any("nothing to truncate" in m for m in _messages(task_store, task_id))

    @pytest.mark.asyncio
    async def test_truncate_existing_table(self, orchestrator, profile_ids, connector):
        connector.table_exists = True
        task_id = await orchestrator.sync_table(_request(profile_ids, truncate_sr_table=True))
        await orchestrator.runner.wait(task_id)

        assert _with_prefix(connector.statements["starrocks"], "TRUNCATE") == [
            "TRUNCATE TABLE `ods_shop`.`orders`;"
        ]


# ─── Retry & cancel ───────────────────────────────────────────────────────────

class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_creates_new_task(self, task_store, config_store, fetcher, profile_ids):
        connector = FakeConnector(fail_when=lambda sql: sql.startswith("CREATE SINK"))
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        failed_id = await orchestrator.sync_table(_request(profile_ids, truncate_sr_table=True))
        await orchestrator.runner.wait(failed_id)
        assert task_store.get(failed_id).status_enum() is TaskStatus.FAILED

        connector.fail_when = None
        new_id = await orchestrator.retry(failed_id)
        await orchestrator.runner.wait(new_id)

        assert new_id != failed_id
        assert task_store.get(failed_id).status_enum() is TaskStatus.FAILED
        retried = task_store.get(new_id)
        assert retried.status_enum() is TaskStatus.COMPLETED
        assert SyncOptions.from_json(retried.options).truncate_sr_table is True

    @pytest.mark.asyncio
    async def test_completed_task_cannot_be_retried(self, orchestrator, profile_ids):
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)
        with pytest.raises(ValidationError, match="Only failed or cancelled"):
            await orchestrator.retry(task_id)

    @pytest.mark.asyncio
    async def test_batch_task_cannot_be_retried(self, task_store, config_store, fetcher, profile_ids):
        connector = FakeConnector(fail_when=lambda sql: True)
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.submit(
            [_request(profile_ids, table="a"), _request(profile_ids, table="b")]
        )
        await orchestrator.runner.wait(task_id)
        with pytest.raises(ValidationError, match="batch task"):
            await orchestrator.retry(task_id)

    @pytest.mark.asyncio
    async def test_unknown_task(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.retry(12345)


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_running_task(self, task_store, config_store, connector, profile_ids):
        gate = asyncio.Event()
        fetcher = FakeSchemaFetcher(gate=gate)
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids))
        while not fetcher.calls:
            await asyncio.sleep(0)

        await orchestrator.cancel(task_id)
        task = task_store.get(task_id)
        assert task.status_enum() is TaskStatus.FAILED
        assert task.error_message == CANCELLED_MESSAGE

        gate.set()
        await orchestrator.runner.wait(task_id)

        assert task_store.get(task_id).error_message == CANCELLED_MESSAGE
        assert connector.all_statements() == []
        messages = _messages(task_store, task_id)
        assert "Task cancelled by user" in messages
        assert messages[-1] == "Stopped: task was cancelled"
        assert sorted(connector.closed) == ["risingwave", "starrocks"]

    @pytest.mark.asyncio
    async def test_cancel_finished_task_rejected(self, orchestrator, profile_ids):
        task_id = await orchestrator.sync_table(_request(profile_ids))
        await orchestrator.runner.wait(task_id)
        with pytest.raises(ValidationError):
            await orchestrator.cancel(task_id)

    @pytest.mark.asyncio
    async def test_cancelled_task_can_be_retried(self, task_store, config_store, connector, profile_ids):
        gate = asyncio.Event()
        fetcher = FakeSchemaFetcher(gate=gate)
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector, TaskRunner(), Settings()
        )
        task_id = await orchestrator.sync_table(_request(profile_ids))
        while not fetcher.calls:
            await asyncio.sleep(0)
        await orchestrator.cancel(task_id)
        gate.set()
        await orchestrator.runner.wait(task_id)

        new_id = await orchestrator.retry(task_id)
        await orchestrator.runner.wait(new_id)
        assert task_store.get(new_id).status_enum() is TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_while_queued_opens_no_connections(
        self, task_store, config_store, connector, profile_ids
    ):
        gate = asyncio.Event()
        fetcher = FakeSchemaFetcher(gate=gate)
        orchestrator = SyncOrchestrator(
            task_store, config_store, fetcher, connector,
            TaskRunner(max_concurrency=1), Settings(),
        )
        running_id = await orchestrator.sync_table(_request(profile_ids))
        while not fetcher.calls:
            await asyncio.sleep(0)
        queued_id = await orchestrator.sync_table(_request(profile_ids, table="items"))

        await orchestrator.cancel(queued_id)
        gate.set()
        await orchestrator.runner.wait(running_id)
        await orchestrator.runner.wait(queued_id)

        assert sorted(connector.closed) == ["risingwave", "starrocks"]
        assert task_store.get(running_id).status_enum() is TaskStatus.COMPLETED
        queued = task_store.get(queued_id)
        assert queued.error_message == CANCELLED_MESSAGE
        messages = _messages(task_store, queued_id)
        assert not any(m.startswith("Connecting") for m in messages)
        assert messages[-1] == "Stopped: task was cancelled"
