"""Sync submission, progress and retry routes."""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cdcsync.api.deps import get_orchestrator, get_task_store
from cdcsync.models.task import SyncRequest, SyncTask
from cdcsync.services.sync_engine import SyncOrchestrator
from cdcsync.stores.task_store import TaskStore

router = APIRouter()


class TaskIdResponse(BaseModel):
    task_id: int


@router.post("/single", response_model=TaskIdResponse)
async def sync_single_table(
    request: SyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Start syncing one table. Returns immediately; poll /tasks/{id} and
    /tasks/{id}/logs for progress.
    """
    task_id = await orchestrator.sync_table(request)
    return TaskIdResponse(task_id=task_id)


@router.post("/multiple", response_model=TaskIdResponse)
async def sync_multiple_tables(
    requests: List[SyncRequest],
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Start syncing a batch of tables under one task."""
    task_id = await orchestrator.submit(requests)
    return TaskIdResponse(task_id=task_id)


@router.get("/progress/{task_id}", response_model=SyncTask)
def get_progress(task_id: int, store: TaskStore = Depends(get_task_store)):
    return store.get(task_id)


@router.post("/retry/{task_id}", response_model=TaskIdResponse)
async def retry_task(
    task_id: int,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Re-submit a failed task. The retry runs under a new task id."""
    new_id = await orchestrator.retry(task_id)
    return TaskIdResponse(task_id=new_id)
