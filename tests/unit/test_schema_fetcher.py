"""Tests for MySqlSchemaFetcher with a mocked SQLAlchemy engine."""
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from cdcsync.errors import DatabaseConnectionError, NotFoundError
from cdcsync.services.schema_fetcher import MySqlSchemaFetcher

from conftest import make_profile

COLUMN_ROWS = [
    ("id", "bigint unsigned", "NO", None, 20, 0, "", None),
    ("status", "tinyint(1)", "YES", None, 3, 0, "order state", "0"),
    ("note", "varchar(255)", "YES", 255, None, None, "", None),
]
PK_ROWS = [("id",)]
INDEX_ROWS = [("ix_status", "status", 1, 1)]


def _engine(results=None, error=None):
    engine = MagicMock()
    conn = engine.connect.return_value.__enter__.return_value
    if error is not None:
        conn.execute.side_effect = error
    else:
        conn.execute.side_effect = [MagicMock(all=MagicMock(return_value=r)) for r in results]
    return engine


class TestMySqlSchemaFetcher:
    @pytest.mark.asyncio
    async def test_fetch_builds_table_schema(self):
        engine = _engine([COLUMN_ROWS, PK_ROWS, INDEX_ROWS])
        with patch("cdcsync.services.schema_fetcher.create_remote_engine", return_value=engine):
            schema = await MySqlSchemaFetcher().fetch(make_profile(), "shop", "orders")

        assert [c.name for c in schema.columns] == ["id", "status", "note"]
        assert schema.columns[0].is_nullable is False
        assert schema.columns[1].comment == "order state"
        assert schema.columns[2].comment is None
        assert schema.columns[2].character_maximum_length == 255
        assert schema.primary_keys == ("id",)
        assert schema.indexes[0].index_name == "ix_status"
        assert schema.indexes[0].is_unique is False
        engine.dispose.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_table(self):
        engine = _engine([[], [], []])
        with patch("cdcsync.services.schema_fetcher.create_remote_engine", return_value=engine):
            with pytest.raises(NotFoundError, match="shop.ghost"):
                await MySqlSchemaFetcher().fetch(make_profile(), "shop", "ghost")

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        engine = _engine(error=OperationalError("q", {}, Exception("refused")))
        with patch("cdcsync.services.schema_fetcher.create_remote_engine", return_value=engine):
            with pytest.raises(DatabaseConnectionError, match="shop.orders"):
                await MySqlSchemaFetcher().fetch(make_profile(), "shop", "orders")
        engine.dispose.assert_called_once()
