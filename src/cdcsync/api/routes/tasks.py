"""Task history, detail, log and cancel routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from cdcsync.api.deps import get_orchestrator, get_task_store
from cdcsync.config import get_settings
from cdcsync.errors import ConfigError
from cdcsync.models.task import PaginatedTasks, SyncTask, TaskLog, status_from_db
from cdcsync.services.sync_engine import SyncOrchestrator
from cdcsync.stores.task_store import TaskStore

router = APIRouter()


@router.get("/history", response_model=PaginatedTasks)
def get_history(
    status: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: TaskStore = Depends(get_task_store),
):
    """Most recent tasks first, optionally filtered by status."""
    try:
        status_filter = status_from_db(status) if status else None
    except ConfigError as exc:
        raise HTTPException(status_code=422, detail=exc.message)
    if limit is None:
        limit = get_settings().history_default_limit

    return PaginatedTasks(
        tasks=store.list_history(status_filter, limit=limit, offset=offset),
        total=store.count(status_filter),
        limit=limit,
        offset=offset,
    )


@router.get("/{task_id}", response_model=SyncTask)
def get_detail(task_id: int, store: TaskStore = Depends(get_task_store)):
    return store.get(task_id)


@router.get("/{task_id}/logs", response_model=List[TaskLog])
def get_logs(task_id: int, store: TaskStore = Depends(get_task_store)):
    return store.get_logs(task_id)


@router.post("/{task_id}/cancel")
async def cancel_task(
    task_id: int,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.cancel(task_id)
    return {"success": True}
