"""
Sync task models: request payloads, persisted task rows and their log lines.

TaskStatus and LogLevel round-trip through the DB as plain strings. The
serialisation tables below are the only place those strings are defined;
an unrecognised persisted value raises ConfigError rather than defaulting.
"""
import json
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field as PydanticField
from sqlmodel import Field, SQLModel

from cdcsync.errors import ConfigError


# ─── Status ───────────────────────────────────────────────────────────────────

class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, other: "TaskStatus") -> bool:
        return other in _TRANSITIONS[self]


TERMINAL_STATUSES: FrozenSet[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)

_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.RUNNING: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

_STATUS_TO_DB: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "pending",
    TaskStatus.RUNNING: "running",
    TaskStatus.COMPLETED: "completed",
    TaskStatus.FAILED: "failed",
    TaskStatus.CANCELLED: "cancelled",
}
_STATUS_FROM_DB: Dict[str, TaskStatus] = {v: k for k, v in _STATUS_TO_DB.items()}


def status_to_db(status: TaskStatus) -> str:
    return _STATUS_TO_DB[status]


def status_from_db(value: str) -> TaskStatus:
    try:
        return _STATUS_FROM_DB[value]
    except KeyError:
        raise ConfigError(f"Unknown task status: {value!r}") from None


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LEVEL_TO_DB: Dict[LogLevel, str] = {
    LogLevel.INFO: "info",
    LogLevel.WARN: "warn",
    LogLevel.ERROR: "error",
}
_LEVEL_FROM_DB: Dict[str, LogLevel] = {v: k for k, v in _LEVEL_TO_DB.items()}


def level_to_db(level: LogLevel) -> str:
    return _LEVEL_TO_DB[level]


def level_from_db(value: str) -> LogLevel:
    try:
        return _LEVEL_FROM_DB[value]
    except KeyError:
        raise ConfigError(f"Unknown log level: {value!r}") from None


# ─── Request payloads ─────────────────────────────────────────────────────────

class SyncOptions(BaseModel):
    """Per-table switches. truncate_sr_table is ignored when recreate_sr_table is set."""

    model_config = ConfigDict(populate_by_name=True)

    recreate_rw_source: bool = PydanticField(
        default=False,
        validation_alias=AliasChoices("recreate_rw_source", "recreateSource"),
    )
    recreate_sr_table: bool = PydanticField(
        default=False,
        validation_alias=AliasChoices("recreate_sr_table", "recreateTarget"),
    )
    truncate_sr_table: bool = PydanticField(
        default=False,
        validation_alias=AliasChoices("truncate_sr_table", "truncateTarget"),
    )

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), sort_keys=True)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "SyncOptions":
        if not raw:
            return cls()
        try:
            return cls.model_validate(json.loads(raw))
        except ValueError as exc:
            raise ConfigError(f"Malformed task options {raw!r}: {exc}") from exc


class SyncRequest(BaseModel):
    """One source table → target table request. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    mysql_config_id: int = PydanticField(
        validation_alias=AliasChoices("mysql_config_id", "sourceConnectionId")
    )
    rw_config_id: int = PydanticField(
        validation_alias=AliasChoices("rw_config_id", "streamingConnectionId")
    )
    sr_config_id: int = PydanticField(
        validation_alias=AliasChoices("sr_config_id", "warehouseConnectionId")
    )
    mysql_database: str = PydanticField(
        validation_alias=AliasChoices("mysql_database", "sourceDatabase")
    )
    mysql_table: str = PydanticField(
        validation_alias=AliasChoices("mysql_table", "sourceTable")
    )
    target_database: str = PydanticField(
        validation_alias=AliasChoices("target_database", "targetSchema")
    )
    target_table: str = PydanticField(
        validation_alias=AliasChoices("target_table", "targetTable")
    )
    options: SyncOptions = PydanticField(default_factory=SyncOptions)

    @property
    def connection_ids(self) -> tuple:
        return (self.mysql_config_id, self.rw_config_id, self.sr_config_id)


# ─── Persisted rows ───────────────────────────────────────────────────────────

BATCH_LABEL_PREFIX = "[Batch:"


class SyncTask(SQLModel, table=True):
    """One provisioning run, covering one table or a batch of tables."""

    id: Optional[int] = Field(default=None, primary_key=True)
    task_name: str
    mysql_config_id: int
    rw_config_id: int
    sr_config_id: int
    mysql_database: str
    mysql_table: str       # "[Batch: db.t1, db.t2]" for batches
    target_database: str
    target_table: str      # "[Batch: N tables]" for batches
    status: str = Field(default="pending", index=True)
    started_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    options: str = "{}"    # JSON-serialised SyncOptions

    def status_enum(self) -> TaskStatus:
        return status_from_db(self.status)

    def is_batch(self) -> bool:
        return self.mysql_table.startswith(BATCH_LABEL_PREFIX)


class TaskLog(SQLModel, table=True):
    """Append-only progress line for a task."""

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="synctask.id", index=True)
    log_level: str = "info"
    message: str
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class PaginatedTasks(BaseModel):
    tasks: List[SyncTask]
    total: int
    limit: int
    offset: int
