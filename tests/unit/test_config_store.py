"""Tests for ConfigStore."""
import pytest
from sqlmodel import Session

from cdcsync.errors import NotFoundError, ValidationError
from cdcsync.models.connection import ConnectionCreate, ConnectionProfile, DbType
from cdcsync.security import FernetSecretProvider
from cdcsync.stores.config_store import ConfigStore


def _create(name="shop", db_type=DbType.MYSQL, password="pw") -> ConnectionCreate:
    return ConnectionCreate(
        name=name, db_type=db_type, host="h", port=3306, username="u", password=password,
    )


class TestConfigStore:
    def test_resolve_returns_profile(self, config_store):
        config_id = config_store.save(_create())
        profile = config_store.resolve(config_id)
        assert profile.name == "shop"
        assert profile.password == "pw"

    def test_unknown_id(self, config_store):
        with pytest.raises(NotFoundError, match="Config with id 7 not found"):
            config_store.resolve(7)

    def test_expected_type_mismatch(self, config_store):
        config_id = config_store.save(_create(db_type=DbType.STARROCKS))
        with pytest.raises(ValidationError, match="expected mysql"):
            config_store.resolve(config_id, DbType.MYSQL)

    def test_duplicate_name_rejected(self, config_store):
        config_store.save(_create())
        with pytest.raises(ValidationError, match="already exists"):
            config_store.save(_create())

    def test_update_and_delete(self, config_store):
        config_id = config_store.save(_create())
        config_store.update(config_id, _create(name="renamed", password="new"))
        profile = config_store.resolve(config_id)
        assert (profile.name, profile.password) == ("renamed", "new")
        config_store.delete(config_id)
        with pytest.raises(NotFoundError):
            config_store.delete(config_id)

    def test_rename_to_existing_name_rejected(self, config_store):
        config_store.save(_create(name="a"))
        second = config_store.save(_create(name="b"))
        with pytest.raises(ValidationError, match="already exists"):
            config_store.update(second, _create(name="a"))
        assert config_store.resolve(second).name == "b"

    def test_list_filters_by_type(self, config_store):
        config_store.save(_create(name="a"))
        config_store.save(_create(name="b", db_type=DbType.RISINGWAVE))
        assert [p.name for p in config_store.list(DbType.RISINGWAVE)] == ["b"]
        assert len(config_store.list()) == 2


class TestEncryptedPasswords:
    def test_password_encrypted_at_rest(self, engine):
        store = ConfigStore(engine, FernetSecretProvider("k"))
        config_id = store.save(_create(password="plain"))
        with Session(engine) as s:
            stored = s.get(ConnectionProfile, config_id).password
        assert stored != "plain"
        assert store.resolve(config_id).password == "plain"
