"""
ConfigStore: saved connection profiles.

Passwords are encrypted by the SecretProvider handed in at construction and
only ever decrypted in resolve(), which returns a detached copy.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from cdcsync.errors import NotFoundError, ValidationError
from cdcsync.models.connection import (
    ConnectionCreate,
    ConnectionProfile,
    DbType,
    parse_db_type,
)
from cdcsync.security import SecretProvider

logger = logging.getLogger(__name__)


class ConfigStore:
    def __init__(self, engine, secrets: SecretProvider):
        """
        Args:
            engine: SQLAlchemy engine for the application DB.
            secrets: Provider used to encrypt/decrypt stored passwords.
        """
        self.engine = engine
        self.secrets = secrets

    def save(self, req: ConnectionCreate) -> int:
        profile = ConnectionProfile(
            name=req.name,
            db_type=req.db_type.value,
            host=req.host,
            port=req.port,
            username=req.username,
            password=self.secrets.encrypt(req.password),
            database_name=req.database_name,
        )
        with Session(self.engine) as s:
            s.add(profile)
            try:
                s.commit()
            except IntegrityError as exc:
                raise ValidationError(
                    f"Connection named {req.name!r} already exists"
                ) from exc
            s.refresh(profile)
            logger.info("Saved %s connection %r (id=%s)", req.db_type.value, req.name, profile.id)
            return profile.id

    def update(self, config_id: int, req: ConnectionCreate) -> None:
        with Session(self.engine) as s:
            profile = s.get(ConnectionProfile, config_id)
            if profile is None:
                raise NotFoundError(f"Config with id {config_id} not found")
            profile.name = req.name
            profile.db_type = req.db_type.value
            profile.host = req.host
            profile.port = req.port
            profile.username = req.username
            profile.password = self.secrets.encrypt(req.password)
            profile.database_name = req.database_name
            profile.updated_at = datetime.utcnow()
            s.add(profile)
            try:
                s.commit()
            except IntegrityError as exc:
                raise ValidationError(
                    f"Connection named {req.name!r} already exists"
                ) from exc
            logger.info("Updated connection %r (id=%s)", req.name, config_id)

    def delete(self, config_id: int) -> None:
        with Session(self.engine) as s:
            profile = s.get(ConnectionProfile, config_id)
            if profile is None:
                raise NotFoundError(f"Config with id {config_id} not found")
            s.delete(profile)
            s.commit()

    def list(self, db_type: Optional[DbType] = None) -> List[ConnectionProfile]:
        """Stored rows, newest first. Passwords stay encrypted."""
        query = select(ConnectionProfile)
        if db_type is not None:
            query = query.where(ConnectionProfile.db_type == db_type.value)
        query = query.order_by(ConnectionProfile.created_at.desc(), ConnectionProfile.id.desc())
        with Session(self.engine) as s:
            return list(s.exec(query).all())

    def resolve(
        self, config_id: int, expected: Optional[DbType] = None
    ) -> ConnectionProfile:
        """
        Load a profile with its password decrypted.

        Raises:
            NotFoundError: unknown id.
            ConfigError: the stored db_type or password cannot be decoded.
            ValidationError: the profile is not of the `expected` type.
        """
        with Session(self.engine) as s:
            row = s.get(ConnectionProfile, config_id)
        if row is None:
            raise NotFoundError(f"Config with id {config_id} not found")

        db_type = parse_db_type(row.db_type)
        if expected is not None and db_type is not expected:
            raise ValidationError(
                f"Config {config_id} is a {db_type.value} connection, expected {expected.value}"
            )

        return ConnectionProfile(
            id=row.id,
            name=row.name,
            db_type=db_type.value,
            host=row.host,
            port=row.port,
            username=row.username,
            password=self.secrets.decrypt(row.password),
            database_name=row.database_name,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
