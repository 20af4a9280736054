"""
TaskStore: persistence for SyncTask rows and their append-only TaskLog lines.

Status changes go through update_status(), which enforces the task state
machine: terminal states (completed, failed, cancelled) never change again.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from cdcsync.errors import NotFoundError, ValidationError
from cdcsync.models.task import (
    LogLevel,
    SyncTask,
    TaskLog,
    TaskStatus,
    level_to_db,
    status_to_db,
)

logger = logging.getLogger(__name__)


class TaskStore:
    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine for the application DB.
        """
        self.engine = engine

    def create(self, task: SyncTask) -> int:
        with Session(self.engine) as s:
            s.add(task)
            s.commit()
            s.refresh(task)
            return task.id

    def update_status(
        self,
        task_id: int,
        status: TaskStatus,
        error_message: Optional[str] = None,
    ) -> SyncTask:
        """
        Move a task to `status`. Terminal states stamp completed_at.

        Raises:
            NotFoundError: unknown task id.
            ValidationError: the transition is not allowed (e.g. out of a terminal state).
        """
        with Session(self.engine) as s:
            task = s.get(SyncTask, task_id)
            if task is None:
                raise NotFoundError(f"Task with id {task_id} not found")
            current = task.status_enum()
            if not current.can_transition_to(status):
                raise ValidationError(
                    f"Task {task_id} cannot move from {current.value} to {status.value}"
                )
            task.status = status_to_db(status)
            task.error_message = error_message
            if status.is_terminal:
                task.completed_at = datetime.utcnow()
            s.add(task)
            s.commit()
            s.refresh(task)
            return task

    def append_log(self, task_id: int, level: LogLevel, message: str) -> None:
        with Session(self.engine) as s:
            s.add(TaskLog(task_id=task_id, log_level=level_to_db(level), message=message))
            s.commit()

    def get(self, task_id: int) -> SyncTask:
        with Session(self.engine) as s:
            task = s.get(SyncTask, task_id)
        if task is None:
            raise NotFoundError(f"Task with id {task_id} not found")
        return task

    def list_history(
        self,
        status: Optional[TaskStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SyncTask]:
        """Most recent first."""
        query = select(SyncTask)
        if status is not None:
            query = query.where(SyncTask.status == status_to_db(status))
        query = (
            query.order_by(SyncTask.started_at.desc(), SyncTask.id.desc())
            .offset(offset)
            .limit(limit)
        )
        with Session(self.engine) as s:
            return list(s.exec(query).all())

    def count(self, status: Optional[TaskStatus] = None) -> int:
        query = select(func.count()).select_from(SyncTask)
        if status is not None:
            query = query.where(SyncTask.status == status_to_db(status))
        with Session(self.engine) as s:
            return s.exec(query).one()

    def get_logs(self, task_id: int) -> List[TaskLog]:
        """Log lines in creation order. Raises NotFoundError for an unknown task."""
        with Session(self.engine) as s:
            if s.get(SyncTask, task_id) is None:
                raise NotFoundError(f"Task with id {task_id} not found")
            return list(
                s.exec(
                    select(TaskLog)
                    .where(TaskLog.task_id == task_id)
                    .order_by(TaskLog.created_at, TaskLog.id)
                ).all()
            )
