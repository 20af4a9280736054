"""FastAPI dependencies: stores and the process-wide orchestrator."""
from typing import Optional

from cdcsync.config import get_settings
from cdcsync.db.engine import get_engine
from cdcsync.security import build_secret_provider
from cdcsync.services.connections import Connector
from cdcsync.services.runner import TaskRunner
from cdcsync.services.rw_objects import RisingWaveObjectManager
from cdcsync.services.schema_fetcher import MySqlSchemaFetcher
from cdcsync.services.sync_engine import SyncOrchestrator
from cdcsync.stores.config_store import ConfigStore
from cdcsync.stores.task_store import TaskStore

_orchestrator: Optional[SyncOrchestrator] = None


def get_task_store() -> TaskStore:
    return TaskStore(get_engine())


def get_config_store() -> ConfigStore:
    return ConfigStore(get_engine(), build_secret_provider(get_settings()))


def get_rw_manager() -> RisingWaveObjectManager:
    return RisingWaveObjectManager(get_config_store(), Connector(get_settings()))


def get_orchestrator() -> SyncOrchestrator:
    """Return the module-level orchestrator, creating it on first call."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = SyncOrchestrator(
            task_store=get_task_store(),
            config_store=get_config_store(),
            schema_fetcher=MySqlSchemaFetcher(),
            connector=Connector(settings),
            runner=TaskRunner(settings.max_concurrent_tasks),
            settings=settings,
        )
    return _orchestrator


async def shutdown_orchestrator() -> None:
    """Stop running batches; called from the app lifespan."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.runner.shutdown()
        _orchestrator = None
