"""RisingWave catalog objects as listed and dropped by the object manager."""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from cdcsync.errors import ValidationError


class RwObjectKind(str, Enum):
    SOURCE = "source"
    TABLE = "table"
    MATERIALIZED_VIEW = "materialized_view"
    SINK = "sink"


_KINDS: Dict[str, RwObjectKind] = {kind.value: kind for kind in RwObjectKind}


def parse_object_kind(value: str) -> RwObjectKind:
    try:
        return _KINDS[value]
    except KeyError:
        raise ValidationError(f"Invalid object type: {value}") from None


class RwObject(BaseModel):
    """One row from rw_catalog. `connector` is set for sources and sinks only."""

    id: int
    name: str
    schema_name: str
    owner: int
    connector: Optional[str] = None
    columns: List[str] = []
    definition: Optional[str] = None


class DropObjectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    config_id: int
    schema_name: str = Field(validation_alias=AliasChoices("schema_name", "schema"))
    name: str
    cascade: bool = False


class BatchDropRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    config_id: int
    schema_name: str = Field(validation_alias=AliasChoices("schema_name", "schema"))
    object_type: str
    names: List[str]
    cascade: bool = False


class BatchDropResult(BaseModel):
    success: bool
    deleted_count: int
    total_count: int
    failed: List[str]
