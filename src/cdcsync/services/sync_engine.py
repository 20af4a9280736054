"""
SyncOrchestrator: provisions MySQL → RisingWave → StarRocks pipelines.

Flow for one submitted batch:
  1. Validate the batch shares one (MySQL, RisingWave, StarRocks) config triple
  2. Resolve the three connection profiles
  3. Create a SyncTask (status="running") and return its id
  4. Hand the batch to the TaskRunner; for each table, in order:
       fetch schema → schema → MySQL secret → [drop mirror/sink] → CDC source
       → mirror table → StarRocks database → [drop | truncate] → StarRocks table
       → StarRocks secret → sink
  5. Update the SyncTask (status="completed" or "failed")

The first failing step aborts the rest of the batch. Objects created before the
failure are left in place; every statement is IF [NOT] EXISTS, so a retry picks
up where the failed run stopped.

Shared objects (schema, secrets, source, StarRocks database) are created once
per batch. The set that tracks them lives only for one run and does not guard
against a concurrent batch creating the same objects.
"""
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from cdcsync.config import Settings, get_settings
from cdcsync.ddl import risingwave, starrocks
from cdcsync.errors import (
    SyncError,
    TaskCancelledError,
    ValidationError,
)
from cdcsync.models.connection import ConnectionProfile, DbType
from cdcsync.models.schema import TableSchema
from cdcsync.models.task import (
    BATCH_LABEL_PREFIX,
    LogLevel,
    SyncOptions,
    SyncRequest,
    SyncTask,
    TaskStatus,
    status_to_db,
)
from cdcsync.services.connections import StatementExecutor
from cdcsync.services.runner import CancellationToken, TaskRunner

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


@dataclass
class _BatchRun:
    """State for one executing batch."""

    task_id: int
    mysql: ConnectionProfile
    rw: ConnectionProfile
    sr: ConnectionProfile
    token: CancellationToken
    ensured: Set[str] = field(default_factory=set)
    rw_exec: Optional[StatementExecutor] = None
    sr_exec: Optional[StatementExecutor] = None


class SyncOrchestrator:
    """Submits sync batches and runs them in the background."""

    def __init__(
        self,
        task_store,
        config_store,
        schema_fetcher,
        connector,
        runner: TaskRunner,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            task_store: TaskStore (or a stand-in with the same methods).
            config_store: ConfigStore resolving connection ids.
            schema_fetcher: object with `async fetch(profile, database, table)`.
            connector: object whose `connect(profile)` is an async context
                manager yielding a StatementExecutor.
            runner: TaskRunner executing batches.
        """
        self.task_store = task_store
        self.config_store = config_store
        self.schema_fetcher = schema_fetcher
        self.connector = connector
        self.runner = runner
        self.settings = settings or get_settings()

    # ─── Public API ───────────────────────────────────────────────────────────

    async def sync_table(self, request: SyncRequest) -> int:
        """Single-table sync is a batch of one."""
        return await self.submit([request])

    async def submit(self, requests: Sequence[SyncRequest]) -> int:
        """
        Create a task for `requests` and start provisioning in the background.

        Returns:
            The new task id. Poll the task store for status and logs.

        Raises:
            ValidationError: empty batch, mixed connection ids, or a profile of the wrong type.
            NotFoundError: a connection id does not resolve.
        """
        requests = list(requests)
        if not requests:
            raise ValidationError("No tables to sync")

        first = requests[0]
        for req in requests[1:]:
            if req.connection_ids != first.connection_ids:
                raise ValidationError(
                    "All tables must use the same database configurations"
                )

        mysql = self.config_store.resolve(first.mysql_config_id, DbType.MYSQL)
        rw = self.config_store.resolve(first.rw_config_id, DbType.RISINGWAVE)
        sr = self.config_store.resolve(first.sr_config_id, DbType.STARROCKS)

        task_id = self.task_store.create(self._build_task(requests))
        logger.info("Created sync task %s for %d table(s)", task_id, len(requests))

        async def work(token: CancellationToken) -> None:
            await self._run_batch(_BatchRun(task_id, mysql, rw, sr, token), requests)

        self.runner.start(task_id, work)
        return task_id

    async def retry(self, task_id: int) -> int:
        """
        Re-submit a failed or cancelled single-table task as a new task.

        Raises:
            NotFoundError: unknown task id.
            ValidationError: the task is still active, or is a batch task whose
                member tables were not persisted individually.
            ConfigError: the stored options cannot be decoded.
        """
        task = self.task_store.get(task_id)
        status = task.status_enum()
        if not status.is_terminal or status is TaskStatus.COMPLETED:
            raise ValidationError(
                f"Only failed or cancelled tasks can be retried (task {task_id} is {status.value})"
            )
        if task.is_batch():
            raise ValidationError(
                f"Task {task_id} is a batch task; re-submit its tables as a new batch"
            )

        request = SyncRequest(
            mysql_config_id=task.mysql_config_id,
            rw_config_id=task.rw_config_id,
            sr_config_id=task.sr_config_id,
            mysql_database=task.mysql_database,
            mysql_table=task.mysql_table,
            target_database=task.target_database,
            target_table=task.target_table,
            options=SyncOptions.from_json(task.options),
        )
        new_id = await self.submit([request])
        logger.info("Task %s retried as task %s", task_id, new_id)
        return new_id

    async def cancel(self, task_id: int) -> None:
        """
        Mark a task failed with a cancellation message and signal its batch.

        The running batch stops before its next step; a statement already
        sent to a remote system is not interrupted.

        Raises:
            NotFoundError: unknown task id.
            ValidationError: the task already finished.
        """
        self.task_store.update_status(task_id, TaskStatus.FAILED, CANCELLED_MESSAGE)
        self.task_store.append_log(task_id, LogLevel.WARN, "Task cancelled by user")
        signalled = self.runner.cancel(task_id)
        logger.info("Task %s cancelled (batch signalled: %s)", task_id, signalled)

    # ─── Task row ─────────────────────────────────────────────────────────────

    @staticmethod
    def _build_task(requests: List[SyncRequest]) -> SyncTask:
        first = requests[0]
        if len(requests) == 1:
            task_name = f"Sync {first.mysql_database}.{first.mysql_table}"
            mysql_table = first.mysql_table
            target_table = first.target_table
        else:
            table_list = ", ".join(
                f"{r.mysql_database}.{r.mysql_table}" for r in requests
            )
            task_name = f"Batch Sync {len(requests)} tables"
            mysql_table = f"{BATCH_LABEL_PREFIX} {table_list}]"
            target_table = f"{BATCH_LABEL_PREFIX} {len(requests)} tables]"

        return SyncTask(
            task_name=task_name,
            mysql_config_id=first.mysql_config_id,
            rw_config_id=first.rw_config_id,
            sr_config_id=first.sr_config_id,
            mysql_database=first.mysql_database,
            mysql_table=mysql_table,
            target_database=first.target_database,
            target_table=target_table,
            status=status_to_db(TaskStatus.RUNNING),
            options=first.options.to_json(),
        )

    # ─── Background execution ─────────────────────────────────────────────────

    async def _run_batch(self, run: _BatchRun, requests: List[SyncRequest]) -> None:
        """Execute the batch and record the terminal status."""
        task_id = run.task_id
        logger.info("Executing batch sync task ID: %s", task_id)
        try:
            await self._execute_batch(run, requests)
        except TaskCancelledError:
            logger.info("Task %s stopped after cancellation", task_id)
            self.task_store.append_log(
                task_id, LogLevel.WARN, "Stopped: task was cancelled"
            )
            if not self.task_store.get(task_id).status_enum().is_terminal:
                # Token set by runner shutdown rather than cancel()
                self._finish(run, TaskStatus.FAILED, CANCELLED_MESSAGE)
            return
        except Exception as exc:
            error_msg = str(exc) or exc.__class__.__name__
            if isinstance(exc, SyncError):
                logger.error("Batch sync task %s failed: %s", task_id, error_msg)
            else:
                logger.exception("Batch sync task %s failed unexpectedly", task_id)
            self._finish(run, TaskStatus.FAILED, error_msg)
            self.task_store.append_log(
                task_id, LogLevel.ERROR, f"Batch sync failed: {error_msg}"
            )
            return

        self._finish(run, TaskStatus.COMPLETED)
        self.task_store.append_log(
            task_id, LogLevel.INFO, "Batch sync completed successfully"
        )

    def _finish(
        self, run: _BatchRun, status: TaskStatus, error_message: Optional[str] = None
    ) -> None:
        try:
            self.task_store.update_status(run.task_id, status, error_message)
        except ValidationError:
            # Cancelled between the last checkpoint and completion; keep the
            # status cancel() recorded.
            logger.warning(
                "Task %s already finished; not overwriting with %s",
                run.task_id, status.value,
            )

    async def _execute_batch(self, run: _BatchRun, requests: List[SyncRequest]) -> None:
        total = len(requests)
        self._log(run, f"Starting batch sync for {total} tables")

        # Cancelled while queued for a runner slot
        self._checkpoint(run)
        async with AsyncExitStack() as stack:
            self._log(run, "Connecting to RisingWave...")
            run.rw_exec = await stack.enter_async_context(self.connector.connect(run.rw))
            self._log(run, "Connecting to StarRocks...")
            run.sr_exec = await stack.enter_async_context(self.connector.connect(run.sr))

            for index, request in enumerate(requests, start=1):
                self._checkpoint(run)
                self._log(
                    run,
                    f"Processing table {index}/{total}: "
                    f"{request.mysql_database}.{request.mysql_table}",
                )
                await self._provision_table(run, request)
                self._log(
                    run,
                    f"Successfully synced {request.mysql_database}.{request.mysql_table} "
                    f"to {request.target_database}.{request.target_table} ({index}/{total})",
                )

        self._log(run, f"Successfully completed batch sync for {total} tables")

    async def _provision_table(self, run: _BatchRun, request: SyncRequest) -> None:
        target_schema = request.target_database
        options = request.options

        # 1. Source table structure
        schema = await self._fetch_schema(run, request)

        # Column-dependent statements are rendered before anything for this
        # table executes.
        sr_table_ddl = starrocks.create_table(
            schema, request.target_database, request.target_table
        )
        sink_ddl = risingwave.create_sink(
            run.sr, request, schema, http_port=self.settings.starrocks_http_port
        )

        # 2. Schema
        await self._ensure(
            run, f"schema:{target_schema}",
            f"Creating schema {target_schema} in RisingWave...",
            run.rw_exec, lambda: risingwave.create_schema(target_schema),
        )

        # 3. MySQL password secret
        await self._ensure(
            run, f"secret:{target_schema}",
            "Creating secret for MySQL password...",
            run.rw_exec, lambda: risingwave.create_cdc_secret(run.mysql, target_schema),
        )

        # 4. Optional drop of the per-table RisingWave objects
        if options.recreate_rw_source:
            self._checkpoint(run)
            self._log(run, "Dropping existing RisingWave objects...")
            await self._drop_risingwave_objects(run, request)

        # 5. Database-level CDC source
        await self._ensure(
            run, f"source:{target_schema}:{request.mysql_database}",
            f"Creating RisingWave CDC source for database {request.mysql_database}...",
            run.rw_exec,
            lambda: risingwave.create_cdc_source(
                run.mysql, request.mysql_database, target_schema
            ),
        )

        # 6. Mirror table
        await self._step(
            run,
            f"Creating RisingWave table {target_schema}.{request.target_table}...",
            run.rw_exec,
            risingwave.create_mirror_table(
                request.mysql_database, request.mysql_table,
                target_schema, request.target_table,
            ),
        )

        # 7. StarRocks database
        await self._ensure(
            run, f"sr_db:{target_schema}",
            f"Creating StarRocks database {target_schema}...",
            run.sr_exec, lambda: starrocks.create_database(target_schema),
        )

        # 8. Drop or truncate the existing StarRocks table
        if options.recreate_sr_table:
            await self._step(
                run, "Dropping existing StarRocks table...", run.sr_exec,
                starrocks.drop_table(request.target_database, request.target_table),
            )
        elif options.truncate_sr_table:
            await self._truncate_if_exists(run, request)

        # 9. StarRocks table
        await self._step(run, "Creating StarRocks table...", run.sr_exec, sr_table_ddl)

        # 10. StarRocks password secret
        await self._ensure(
            run, f"sr_secret:{target_schema}",
            "Creating secret for StarRocks password...",
            run.rw_exec, lambda: risingwave.create_warehouse_secret(run.sr, target_schema),
        )

        # 11. Sink
        await self._step(run, "Creating RisingWave sink to StarRocks...", run.rw_exec, sink_ddl)

    # ─── Steps ────────────────────────────────────────────────────────────────

    async def _fetch_schema(self, run: _BatchRun, request: SyncRequest) -> TableSchema:
        self._checkpoint(run)
        self._log(run, "Fetching MySQL table schema...")
        schema = await self.schema_fetcher.fetch(
            run.mysql, request.mysql_database, request.mysql_table
        )
        self._log(
            run,
            f"Fetched schema for {request.mysql_database}.{request.mysql_table}: "
            f"{len(schema.columns)} columns, {len(schema.primary_keys)} primary keys",
        )
        return schema

    async def _step(
        self, run: _BatchRun, message: str, executor: StatementExecutor, sql: str
    ) -> None:
        self._checkpoint(run)
        self._log(run, message)
        await executor.execute(sql)

    async def _ensure(
        self,
        run: _BatchRun,
        key: str,
        message: str,
        executor: StatementExecutor,
        render: Callable[[], str],
    ) -> None:
        """Run a shared-object statement once per batch."""
        if key in run.ensured:
            logger.debug("Task %s: %s already ensured in this batch", run.task_id, key)
            return
        await self._step(run, message, executor, render())
        run.ensured.add(key)

    async def _drop_risingwave_objects(self, run: _BatchRun, request: SyncRequest) -> None:
        """Best effort: a failed drop is logged and skipped. The source is kept."""
        for sql in (
            risingwave.drop_sink(request.target_database, request.target_table),
            risingwave.drop_mirror_table(request.target_database, request.target_table),
        ):
            try:
                await run.rw_exec.execute(sql)
            except SyncError as exc:
                logger.warning("Task %s: ignoring drop failure: %s", run.task_id, exc)
                self._log(run, f"Ignored drop failure: {exc}", LogLevel.WARN)
        self._log(
            run,
            f"Database-level source "
            f"{risingwave.source_name(request.target_database, request.mysql_database)} "
            f"is retained for reuse",
        )

    async def _truncate_if_exists(self, run: _BatchRun, request: SyncRequest) -> None:
        self._checkpoint(run)
        exists = await run.sr_exec.query_first(
            starrocks.table_exists_query(request.target_database, request.target_table)
        )
        if exists is None:
            self._log(
                run,
                f"StarRocks table {request.target_database}.{request.target_table} "
                f"does not exist, nothing to truncate",
            )
            return
        await self._step(
            run, "Truncating StarRocks table...", run.sr_exec,
            starrocks.truncate_table(request.target_database, request.target_table),
        )

    # ─── Helpers ──────────────────────────────────────────────────────────────

    def _log(self, run: _BatchRun, message: str, level: LogLevel = LogLevel.INFO) -> None:
        logger.info("Task %s: %s", run.task_id, message)
        self.task_store.append_log(run.task_id, level, message)

    @staticmethod
    def _checkpoint(run: _BatchRun) -> None:
        run.token.raise_if_cancelled()
