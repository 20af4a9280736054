"""Connection profile model for the three systems a sync touches."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Field, SQLModel

from cdcsync.errors import ConfigError


class DbType(str, Enum):
    MYSQL = "mysql"
    RISINGWAVE = "risingwave"
    STARROCKS = "starrocks"


_DB_TYPES = {
    "mysql": DbType.MYSQL,
    "risingwave": DbType.RISINGWAVE,
    "starrocks": DbType.STARROCKS,
}


def parse_db_type(value: str) -> DbType:
    """Decode a persisted db_type string. Unknown values are an error."""
    try:
        return _DB_TYPES[value.lower()]
    except (KeyError, AttributeError):
        raise ConfigError(f"Invalid db_type: {value!r}") from None


class ConnectionProfile(SQLModel, table=True):
    """
    A saved connection. `password` holds ciphertext in the DB; ConfigStore.resolve
    returns a detached copy with the plaintext password.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    db_type: str  # one of DbType values
    host: str
    port: int
    username: str
    password: str = ""
    database_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ConnectionCreate(BaseModel):
    """Payload for saving or updating a connection profile."""

    name: str
    db_type: DbType
    host: str
    port: int
    username: str
    password: str = ""
    database_name: Optional[str] = None


class ConnectionRead(BaseModel):
    """Connection profile as exposed over HTTP. Never carries the password."""

    id: int
    name: str
    db_type: DbType
    host: str
    port: int
    username: str
    database_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
