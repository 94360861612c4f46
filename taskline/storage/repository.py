"""
Task store used by ``add`` and by the background warmer.

:class:`SqlTaskRepository` persists parsed tasks through SQLAlchemy and
answers "which inputs does this user repeat most" so the warmer can
preload the exact cache at startup.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Protocol, Tuple, runtime_checkable

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskline.exceptions import StorageError
from taskline.models import Confidence, ParsedResult, Priority, SourceTier
from taskline.storage.models import TaskRecordModel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@runtime_checkable
class TaskStore(Protocol):
    """What the resident process needs from persistence."""

    def save(self, raw_text: str, key: str, result: ParsedResult) -> int:
        """Persist one parsed task and return its id."""
        ...

    def get_top_k_recent(self, k: int) -> List[Tuple[str, ParsedResult]]:
        """Return up to ``k`` (key, result) pairs, most used first."""
        ...


def _to_row(raw_text: str, key: str, result: ParsedResult) -> TaskRecordModel:
    return TaskRecordModel(
        raw_text=raw_text,
        normalized_key=key,
        title=result.title,
        due_at=result.due.isoformat() if result.due is not None else None,
        priority=result.priority.value,
        tags=sorted(result.tags),
        source_tier=result.source_tier.value,
        confidence=result.confidence.value,
    )


def _from_row(row: TaskRecordModel) -> ParsedResult:
    return ParsedResult(
        title=row.title,
        due=datetime.fromisoformat(row.due_at) if row.due_at else None,
        priority=Priority(row.priority),
        tags=row.tags or [],
        source_tier=SourceTier(row.source_tier),
        confidence=Confidence(row.confidence),
    )


class SqlTaskRepository:
    """Repository for the task_records table.

    Args:
        session_factory: Callable that returns a new Session.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def save(self, raw_text: str, key: str, result: ParsedResult) -> int:
        """Insert a task record.

        Args:
            raw_text: The input as typed.
            key: Its normalised cache key.
            result: The parsed result to persist.

        Returns:
            The new record id.

        Raises:
            StorageError: If the insert fails.
        """
        session: Session = self._session_factory()
        try:
            row = _to_row(raw_text, key, result)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info(
                "Task record stored",
                extra={"record_id": row.id, "source_tier": row.source_tier},
            )
            return row.id
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Failed to save task record: {exc}") from exc
        finally:
            session.close()

    def get_top_k_recent(self, k: int) -> List[Tuple[str, ParsedResult]]:
        """Most frequently added keys, ties broken by recency.

        Each key comes back once, paired with the result of its latest
        record.

        Args:
            k: Maximum number of pairs.

        Returns:
            ``(normalized_key, result)`` pairs, best first.

        Raises:
            StorageError: If the query fails.
        """
        if k <= 0:
            return []
        session: Session = self._session_factory()
        try:
            ranked = (
                select(
                    func.max(TaskRecordModel.id).label("latest_id"),
                    func.count(TaskRecordModel.id).label("uses"),
                )
                .group_by(TaskRecordModel.normalized_key)
                .order_by(
                    func.count(TaskRecordModel.id).desc(),
                    func.max(TaskRecordModel.id).desc(),
                )
                .limit(k)
                .subquery()
            )
            stmt = (
                select(TaskRecordModel)
                .join(ranked, TaskRecordModel.id == ranked.c.latest_id)
                .order_by(ranked.c.uses.desc(), ranked.c.latest_id.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [(row.normalized_key, _from_row(row)) for row in rows]
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load recent tasks: {exc}") from exc
        finally:
            session.close()

    def count(self) -> int:
        """Total number of stored records."""
        session: Session = self._session_factory()
        try:
            return session.execute(select(func.count(TaskRecordModel.id))).scalar_one()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count task records: {exc}") from exc
        finally:
            session.close()


def open_repository(database_url: str) -> SqlTaskRepository:
    """Create the engine, ensure tables, and return a repository."""
    from taskline.storage.engine import get_engine, get_session_factory, init_db

    try:
        engine = get_engine(database_url)
        init_db(engine)
    except (SQLAlchemyError, OSError) as exc:
        raise StorageError(f"Cannot open task store at {database_url}: {exc}") from exc
    return SqlTaskRepository(get_session_factory(engine))
