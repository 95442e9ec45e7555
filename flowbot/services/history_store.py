"""Append-only conversation history backed by a pooled relational store.

The pool lives behind a single engine reference. A periodic probe acquires and releases
one connection; when that fails the whole engine is replaced with a fresh one built
from the same settings and the schema check is re-run. Until the schema is confirmed
on the current engine every read and write fails fast with ``StoreUnavailable``.
"""

import hashlib
import json
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from flowbot.database import Base, create_pooled_engine
from flowbot.logging_config import get_logger
from flowbot.models import HistoryEntry
from flowbot.services.alert_service import alert_critical

logger = get_logger("history_store")

CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


class StoreError(Exception):
    pass


class StoreUnavailable(StoreError):
    """Pool broken, exhausted or being recreated. Transient; retry later."""


class StoreMalformed(StoreError):
    """Stored data does not match the expected schema or serialization."""


def serialize_ref(ref: Optional[str]) -> Optional[str]:
    if not ref:
        return None
    return hashlib.sha256(ref.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True)
class HistoryRecord:
    phone: str
    ref: Optional[str] = None
    keyword: Optional[str] = None
    answer: Optional[str] = None
    ref_serialize: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


def _translate(error: SQLAlchemyError) -> StoreError:
    if isinstance(error, CONNECTIVITY_ERRORS):
        return StoreUnavailable(str(error))
    return StoreError(str(error))


class HistoryStore:
    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 0,
        pool_timeout: float = 5.0,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        echo: bool = False,
        engine_factory: Optional[Callable[..., Engine]] = None,
    ):
        self._url = url
        self._engine_kwargs = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "pool_pre_ping": pool_pre_ping,
            "echo": echo,
        }
        self._engine_factory = engine_factory or create_pooled_engine
        self._lock = threading.Lock()
        self._recreate_lock = threading.Lock()
        self._schema_ready = False
        self.recreations = 0
        self._engine = self._build_engine()

    def _build_engine(self) -> Engine:
        engine = self._engine_factory(self._url, **self._engine_kwargs)
        logger.info("Connection pool created", extra={"context": {"pool_size": self._engine_kwargs["pool_size"]}})
        return engine

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._schema_ready

    def _current_engine(self) -> Engine:
        with self._lock:
            if not self._schema_ready:
                raise StoreUnavailable("History store is not ready")
            return self._engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = Session(bind=self._current_engine(), expire_on_commit=False)
        try:
            yield session
        except SQLAlchemyError as e:
            raise _translate(e) from e
        finally:
            try:
                session.close()
            except SQLAlchemyError as e:
                logger.warning(f"Failed to release connection: {e}")

    # Schema

    def _create_schema(self, engine: Engine) -> None:
        try:
            if inspect(engine).has_table(HistoryEntry.__tablename__):
                return
            Base.metadata.create_all(engine, tables=[HistoryEntry.__table__])
            logger.info("Table history ensured.")
        except SQLAlchemyError as e:
            logger.error(f"Error ensuring history table: {e}")
            raise _translate(e) from e

    def ensure_schema(self) -> None:
        """Create the history table if it is missing. Idempotent."""
        with self._lock:
            engine = self._engine
        self._create_schema(engine)
        with self._lock:
            if self._engine is engine:
                self._schema_ready = True

    # Records

    def append(self, record: HistoryRecord) -> int:
        """Insert one record and commit before returning its surrogate id."""
        try:
            options = json.dumps(record.options, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreMalformed(f"Options are not JSON serializable: {e}") from e

        with self._session() as db:
            entry = HistoryEntry(
                ref=record.ref,
                keyword=record.keyword,
                answer=record.answer,
                refSerialize=record.ref_serialize,
                phone=record.phone,
                options=options,
            )
            db.add(entry)
            db.commit()
            return entry.id

    def latest_for(self, phone: str) -> Optional[HistoryRecord]:
        with self._session() as db:
            entry = db.query(HistoryEntry).filter(HistoryEntry.phone == phone).order_by(HistoryEntry.id.desc()).first()
            if entry is None:
                return None
            return self._to_record(entry)

    @staticmethod
    def _to_record(entry: HistoryEntry) -> HistoryRecord:
        try:
            options = json.loads(entry.options) if entry.options is not None else {}
        except json.JSONDecodeError as e:
            raise StoreMalformed(f"History record {entry.id} has malformed options: {e}") from e
        return HistoryRecord(
            id=entry.id,
            phone=entry.phone,
            ref=entry.ref,
            keyword=entry.keyword,
            answer=entry.answer,
            ref_serialize=entry.refSerialize,
            options=options,
            created_at=entry.created_at,
        )

    # Pool health

    def check_connection(self) -> bool:
        """Acquire and release one connection; recreate the pool if that fails."""
        with self._lock:
            engine = self._engine
        try:
            connection = engine.connect()
            connection.close()
        except SQLAlchemyError as e:
            logger.error(f"Database connection is down. Attempting to reconnect... {e}")
            self.recreate_pool()
            return False

        logger.debug("Database connection is healthy.")
        if not self.is_ready:
            try:
                self.ensure_schema()
            except StoreError as e:
                logger.error(f"Schema check failed on healthy connection: {e}")
                return False
        return True

    def recreate_pool(self) -> bool:
        """Swap in a freshly built pool and re-run the schema check."""
        if not self._recreate_lock.acquire(blocking=False):
            logger.info("Pool recreation already in progress")
            return False
        try:
            logger.info("Recreating connection pool...")
            with self._lock:
                self._schema_ready = False
                self.recreations += 1

            try:
                new_engine = self._build_engine()
            except SQLAlchemyError as e:
                logger.error(f"Failed to build connection pool: {e}")
                alert_critical("History pool recreation failed", {"error": str(e)})
                return False

            with self._lock:
                old_engine = self._engine
                self._engine = new_engine

            # dispose only once new callers can no longer fetch the old engine
            try:
                old_engine.dispose()
            except SQLAlchemyError as e:
                logger.error(f"Error ending pool during reconnection: {e}")

            try:
                self.ensure_schema()
            except StoreError as e:
                logger.error(f"Schema check failed after pool recreation: {e}")
                alert_critical("History store still unavailable after pool recreation", {"error": str(e)})
                return False

            logger.info("Reconnected to database successfully.")
            return True
        finally:
            self._recreate_lock.release()

    def dispose(self) -> None:
        with self._lock:
            engine = self._engine
            self._schema_ready = False
        engine.dispose()
        logger.info("History store closed: connection pool disposed.")
