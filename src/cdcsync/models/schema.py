"""
Source table structure as returned by a schema fetch.

Plain frozen dataclasses: no SQLModel, no DB dependencies. The DDL
generators and the type mapper only ever read these.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

from cdcsync.errors import ValidationError


@dataclass(frozen=True)
class ColumnDescriptor:
    """One column of a MySQL table."""

    name: str
    data_type: str                 # full COLUMN_TYPE, e.g. "varchar(255)", "tinyint(1)"
    is_nullable: bool = True
    character_maximum_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    comment: Optional[str] = None
    default_value: Optional[str] = None


@dataclass(frozen=True)
class IndexDescriptor:
    """One (index, column) pair. Carried along but not used downstream."""

    index_name: str
    column_name: str
    is_unique: bool = False
    seq_in_index: int = 1


@dataclass(frozen=True)
class TableSchema:
    """Columns and primary key of one source table, in ordinal order."""

    database: str
    table_name: str
    columns: Tuple[ColumnDescriptor, ...] = field(default_factory=tuple)
    primary_keys: Tuple[str, ...] = field(default_factory=tuple)
    indexes: Tuple[IndexDescriptor, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept lists from callers but keep the instance immutable
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "primary_keys", tuple(self.primary_keys))
        object.__setattr__(self, "indexes", tuple(self.indexes))

        names = {c.name for c in self.columns}
        missing = [pk for pk in self.primary_keys if pk not in names]
        if missing:
            raise ValidationError(
                f"Primary key column(s) {', '.join(missing)} not found in "
                f"{self.database}.{self.table_name}"
            )

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        return next((c for c in self.columns if c.name == name), None)
