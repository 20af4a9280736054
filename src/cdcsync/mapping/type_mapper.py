"""
Column type translation MySQL → RisingWave → StarRocks.

Each hop strips the parenthesised length/precision suffix to get a base
keyword, looks it up in a fixed table and, for DECIMAL/NUMERIC, CHAR and
VARCHAR (and their aliases), re-attaches the original suffix verbatim.

TINYINT is the one non-obvious row. RisingWave has no 8-bit integer and
ingests MySQL TINYINT as SMALLINT (int16); the warehouse column therefore has
to be SMALLINT as well or the sink is rejected with a type mismatch.

Public API:
  to_intermediate_type(mysql_type)          → RisingWave type string
  intermediate_to_warehouse_type(rw_type)   → StarRocks type string
  source_to_warehouse_type(mysql_type)      → both hops composed
"""
import re
from typing import Dict, Optional, Tuple

from cdcsync.errors import TypeMappingError

# Column modifiers MySQL appends after the type in COLUMN_TYPE
_MODIFIERS = re.compile(r"\s+(UNSIGNED|SIGNED|ZEROFILL)\b", re.I)

# Base types whose (n) / (p,s) suffix is carried over unchanged
_SIZED_TYPES = {
    "DECIMAL", "NUMERIC", "DEC", "CHAR", "CHARACTER", "VARCHAR", "CHARACTER VARYING",
}

MYSQL_TO_RISINGWAVE: Dict[str, str] = {
    # Integers. TINYINT → SMALLINT, see module docstring.
    "TINYINT": "SMALLINT",
    "SMALLINT": "SMALLINT",
    "YEAR": "SMALLINT",
    "MEDIUMINT": "INTEGER",
    "INT": "INTEGER",
    "INTEGER": "INTEGER",
    "BIGINT": "BIGINT",
    # Floating / fixed point
    "FLOAT": "REAL",
    "DOUBLE": "DOUBLE PRECISION",
    "DOUBLE PRECISION": "DOUBLE PRECISION",
    "REAL": "DOUBLE PRECISION",
    "DECIMAL": "DECIMAL",
    "NUMERIC": "DECIMAL",
    "DEC": "DECIMAL",
    # Strings
    "CHAR": "CHAR",
    "CHARACTER": "CHAR",
    "VARCHAR": "VARCHAR",
    "CHARACTER VARYING": "VARCHAR",
    "TINYTEXT": "TEXT",
    "TEXT": "TEXT",
    "MEDIUMTEXT": "TEXT",
    "LONGTEXT": "TEXT",
    # Binary
    "BINARY": "BYTEA",
    "VARBINARY": "BYTEA",
    "TINYBLOB": "BYTEA",
    "BLOB": "BYTEA",
    "MEDIUMBLOB": "BYTEA",
    "LONGBLOB": "BYTEA",
    # Date / time
    "DATE": "DATE",
    "TIME": "TIME",
    "DATETIME": "TIMESTAMP",
    "TIMESTAMP": "TIMESTAMP",
    # Other
    "JSON": "JSONB",
    "BOOLEAN": "BOOLEAN",
    "BOOL": "BOOLEAN",
    "BIT": "BOOLEAN",
    "ENUM": "VARCHAR(255)",
    "SET": "TEXT",
}

RISINGWAVE_TO_STARROCKS: Dict[str, str] = {
    "SMALLINT": "SMALLINT",
    "INT2": "SMALLINT",
    "INTEGER": "INT",
    "INT": "INT",
    "INT4": "INT",
    "BIGINT": "BIGINT",
    "INT8": "BIGINT",
    "REAL": "FLOAT",
    "FLOAT4": "FLOAT",
    "DOUBLE PRECISION": "DOUBLE",
    "FLOAT8": "DOUBLE",
    "DECIMAL": "DECIMAL",
    "NUMERIC": "DECIMAL",
    "CHAR": "CHAR",
    "CHARACTER": "CHAR",
    "VARCHAR": "VARCHAR",
    "CHARACTER VARYING": "VARCHAR",
    "TEXT": "STRING",
    "BYTEA": "VARBINARY",
    "DATE": "DATE",
    "TIME": "TIME",
    "TIMESTAMP": "DATETIME",
    "TIMESTAMPTZ": "DATETIME",
    "TIMESTAMP WITHOUT TIME ZONE": "DATETIME",
    "TIMESTAMP WITH TIME ZONE": "DATETIME",
    "JSON": "JSON",
    "JSONB": "JSON",
    "BOOLEAN": "BOOLEAN",
    "BOOL": "BOOLEAN",
}

# Source base types that reach the sink as something other than what the
# mirror table exposes and so must be cast in the sink projection.
TIMESTAMP_FAMILY = frozenset({"DATETIME", "TIMESTAMP"})
SMALLEST_INT = "TINYINT"
CANONICAL_TIMESTAMP = "TIMESTAMP"
SMALLEST_INT_CARRIER = "SMALLINT"


def split_type(type_string: str) -> Tuple[str, Optional[str]]:
    """Split "varchar(255) unsigned" into ("VARCHAR", "(255)").

    The suffix is returned exactly as written, including the parentheses.
    """
    cleaned = _MODIFIERS.sub("", type_string.strip())
    paren = cleaned.find("(")
    if paren == -1:
        return " ".join(cleaned.upper().split()), None
    close = cleaned.find(")", paren)
    suffix = cleaned[paren:close + 1] if close != -1 else cleaned[paren:]
    return " ".join(cleaned[:paren].upper().split()), suffix


def base_type(type_string: str) -> str:
    """Upper-cased base keyword of a column type string."""
    return split_type(type_string)[0]


def _translate(type_string: str, table: Dict[str, str], system: str) -> str:
    base, suffix = split_type(type_string)
    try:
        mapped = table[base]
    except KeyError:
        raise TypeMappingError(f"Unsupported {system} type: {type_string}") from None
    if suffix and base in _SIZED_TYPES:
        return f"{mapped}{suffix}"
    return mapped


def to_intermediate_type(mysql_type: str) -> str:
    """Map a MySQL column type to its RisingWave type."""
    return _translate(mysql_type, MYSQL_TO_RISINGWAVE, "MySQL")


def intermediate_to_warehouse_type(rw_type: str) -> str:
    """Map a RisingWave column type to its StarRocks type."""
    return _translate(rw_type, RISINGWAVE_TO_STARROCKS, "RisingWave")


def source_to_warehouse_type(mysql_type: str) -> str:
    """MySQL → StarRocks, going through the RisingWave type on the way."""
    return intermediate_to_warehouse_type(to_intermediate_type(mysql_type))


def needs_sink_cast(mysql_type: str) -> Optional[str]:
    """Return the RisingWave type a sink must cast this column to, if any."""
    base = base_type(mysql_type)
    if base in TIMESTAMP_FAMILY:
        return CANONICAL_TIMESTAMP
    if base == SMALLEST_INT:
        return SMALLEST_INT_CARRIER
    return None
