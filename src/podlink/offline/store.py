"""
Ordered key-value stores for queued offline actions.

A store keeps QueuedInput records keyed by id with secondary lookups by
timestamp and by session name. Lookups return records ordered by
timestamp, then by insertion sequence, so equal timestamps replay in the
order they were enqueued.
"""

import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from podlink.errors import PersistenceError
from podlink.logger import get_logger
from podlink.offline.models import QueuedInput, QueuedInputRecord, ResizePayload

logger = get_logger(__name__)

SCHEMA_VERSION = 1
INDEXES = ("timestamp", "session_name")


class QueueStore(ABC):
    """
    Abstract store for queued offline actions.

    All methods raise PersistenceError on storage failure.
    """

    @abstractmethod
    def put(self, item: QueuedInput) -> QueuedInput:
        """Persist a record and return it with its insertion sequence set."""

    @abstractmethod
    def query_by_index(
        self, index_name: str, key: Union[str, int]
    ) -> list[QueuedInput]:
        """Records whose ``index_name`` equals ``key``, ordered by timestamp."""

    @abstractmethod
    def delete(self, item_id: str) -> None:
        """Remove a record by id. Unknown ids are ignored."""

    @abstractmethod
    def count(
        self, index_name: Optional[str] = None, key: Union[str, int, None] = None
    ) -> int:
        """Count all records, or those whose ``index_name`` equals ``key``."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""

    def close(self) -> None:
        pass


def _check_index(index_name: str) -> None:
    if index_name not in INDEXES:
        raise ValueError(
            f"Unknown index '{index_name}'. Available: {', '.join(INDEXES)}"
        )


class SQLiteQueueStore(QueueStore):
    """
    QueueStore backed by a SQLite file through SQLModel.

    The schema version lives in ``PRAGMA user_version``; migration 1 creates
    the ``input_queue`` table and its indexes.

    Args:
        db_path: Path of the SQLite database file.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                connect_args={"check_same_thread": False},
            )
            self._migrate()
        except (OSError, SQLAlchemyError) as e:
            raise PersistenceError(
                f"Cannot open queue store at {self.db_path}: {e}"
            ) from e
        logger.debug(f"Queue store opened at {self.db_path}")

    def _migrate(self) -> None:
        with self.engine.begin() as conn:
            version = conn.exec_driver_sql("PRAGMA user_version").scalar() or 0
            if version > SCHEMA_VERSION:
                raise PersistenceError(
                    f"Queue store schema v{version} is newer than supported "
                    f"v{SCHEMA_VERSION}"
                )
            if version < 1:
                SQLModel.metadata.create_all(
                    conn, tables=[QueuedInputRecord.__table__]
                )
                conn.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION}")
                logger.info(f"Queue store migrated to schema v{SCHEMA_VERSION}")

    @property
    def schema_version(self) -> int:
        with self._errors("read schema version"), self.engine.connect() as conn:
            return conn.exec_driver_sql("PRAGMA user_version").scalar() or 0

    @contextmanager
    def _errors(self, action: str):
        try:
            yield
        except (SQLAlchemyError, ValueError) as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def _session(self) -> Session:
        return Session(self.engine)

    @staticmethod
    def _to_item(record: QueuedInputRecord) -> QueuedInput:
        payload = json.loads(record.payload)
        return QueuedInput(
            id=record.id,
            timestamp=record.timestamp,
            session_name=record.session_name,
            kind=record.kind,
            payload=payload,
            seq=record.seq,
        )

    def put(self, item: QueuedInput) -> QueuedInput:
        if isinstance(item.payload, ResizePayload):
            payload = item.payload.model_dump()
        else:
            payload = item.payload

        with self._errors("store queued input"), self._session() as session:
            last_seq = session.exec(select(func.max(QueuedInputRecord.seq))).one()
            seq = (last_seq or 0) + 1
            session.add(
                QueuedInputRecord(
                    id=item.id,
                    seq=seq,
                    timestamp=item.timestamp,
                    session_name=item.session_name,
                    kind=item.kind,
                    payload=json.dumps(payload),
                )
            )
            session.commit()

        return item.model_copy(update={"seq": seq})

    def query_by_index(
        self, index_name: str, key: Union[str, int]
    ) -> list[QueuedInput]:
        _check_index(index_name)
        column = getattr(QueuedInputRecord, index_name)
        stmt = (
            select(QueuedInputRecord)
            .where(column == key)
            .order_by(QueuedInputRecord.timestamp, QueuedInputRecord.seq)
        )
        with self._errors(f"query by {index_name}"), self._session() as session:
            records = session.exec(stmt).all()
            return [self._to_item(r) for r in records]

    def delete(self, item_id: str) -> None:
        with self._errors(f"delete {item_id}"), self._session() as session:
            record = session.get(QueuedInputRecord, item_id)
            if record is not None:
                session.delete(record)
                session.commit()

    def count(
        self, index_name: Optional[str] = None, key: Union[str, int, None] = None
    ) -> int:
        stmt = select(func.count()).select_from(QueuedInputRecord)
        if index_name is not None:
            _check_index(index_name)
            stmt = stmt.where(getattr(QueuedInputRecord, index_name) == key)
        with self._errors("count queued inputs"), self._session() as session:
            return session.exec(stmt).one()

    def clear(self) -> None:
        with self._errors("clear queue store"), self.engine.begin() as conn:
            conn.execute(sa_delete(QueuedInputRecord))

    def close(self) -> None:
        self.engine.dispose()
