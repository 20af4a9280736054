"""
Exception taxonomy shared by the generators, stores and orchestrator.

Every error raised on purpose by cdcsync derives from SyncError so callers
(the API layer, the orchestrator's failure handler) can catch one type.
The message of each subclass is prefixed with its category, which is what
ends up in SyncTask.error_message.
"""


class SyncError(RuntimeError):
    """Base class for all cdcsync errors."""

    prefix = "Error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.prefix}: {message}")


class DatabaseConnectionError(SyncError):
    """Network, auth or execution failure against MySQL, RisingWave or StarRocks."""

    prefix = "Connection error"


class ConfigError(SyncError):
    """A persisted record (connection profile, task row) could not be decoded."""

    prefix = "Configuration error"


class TypeMappingError(SyncError):
    """A column type has no counterpart in the target type system."""

    prefix = "Type mapping error"


class SqlGenerationError(SyncError):
    """A DDL generator was called with inputs it cannot render."""

    prefix = "SQL generation error"


class ValidationError(SyncError):
    """Malformed request, e.g. a batch mixing connection ids."""

    prefix = "Invalid input"


class NotFoundError(SyncError):
    """Unknown connection id or task id."""

    prefix = "Not found"


class TaskCancelledError(SyncError):
    """Raised inside a running batch once its cancellation token is set."""

    prefix = "Cancelled"
