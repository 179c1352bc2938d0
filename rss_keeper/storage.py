"""Key-value byte stores backing the feed list and article corpus."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import (
    Column,
    DateTime,
    LargeBinary,
    String,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import QuotaExceededError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class KeyValueStore(Protocol):
    quota_bytes: Optional[int]

    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


def _check_quota(quota: Optional[int], key: str, other_bytes: int, value: bytes) -> None:
    if quota is None:
        return
    needed = other_bytes + len(value)
    if needed > quota:
        raise QuotaExceededError(
            f"Writing {len(value)} bytes to '{key}' needs {needed} bytes; quota is {quota}"
        )


class MemoryStore:
    """Process-local store, mostly for tests and ephemeral sessions."""

    def __init__(self, quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            other = sum(len(v) for k, v in self._data.items() if k != key)
            _check_quota(self.quota_bytes, key, other, value)
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class Base(DeclarativeBase):
    pass


class EntryModel(Base):
    """One stored value."""

    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def init_engine(connection_string: str) -> Engine:
    """Initialize the database engine and create the schema."""
    logger.info("Initializing storage database: %s", connection_string)
    if connection_string.startswith("sqlite") and ":memory:" in connection_string:
        engine = create_engine(
            connection_string,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


class SqlStore:
    """Key-value store kept in a single SQL table."""

    def __init__(self, engine: Engine, quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES) -> None:
        self.quota_bytes = quota_bytes
        self._session_factory = get_session_factory(engine)
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, connection_string: str, quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES) -> "SqlStore":
        return cls(init_engine(connection_string), quota_bytes=quota_bytes)

    def get(self, key: str) -> Optional[bytes]:
        try:
            with self._session_factory() as session:
                stmt = select(EntryModel.value).where(EntryModel.key == key)
                return session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read '{key}': {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        with self._lock, self._session_factory() as session:
            try:
                other = session.execute(
                    select(func.coalesce(func.sum(func.length(EntryModel.value)), 0)).where(
                        EntryModel.key != key
                    )
                ).scalar_one()
                _check_quota(self.quota_bytes, key, int(other), value)

                existing = session.get(EntryModel, key)
                if existing:
                    existing.value = value
                    existing.updated_at = datetime.now(timezone.utc)
                else:
                    session.add(EntryModel(key=key, value=value))
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageError(f"Failed to write '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        with self._lock, self._session_factory() as session:
            try:
                session.execute(delete(EntryModel).where(EntryModel.key == key))
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageError(f"Failed to delete '{key}': {exc}") from exc

    def keys(self) -> List[str]:
        try:
            with self._session_factory() as session:
                return list(session.execute(select(EntryModel.key).order_by(EntryModel.key)).scalars())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to list keys: {exc}") from exc
