"""
Preview Store
Durable record of each preview job, backed by SQLAlchemy.

Every status write is a single compare-and-set UPDATE: the row only changes
if its current status is one of the allowed sources for the target status.
This keeps the lifecycle forward-only and makes terminal states sticky, so a
slow in-flight success can never overwrite a cancellation.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from preview_orchestrator.core.database import create_db_engine, create_session_factory, init_db
from preview_orchestrator.core.errors import BackingStoreUnavailable
from preview_orchestrator.models.preview import Preview
from preview_orchestrator.schemas.preview import PreviewStatus

logger = logging.getLogger(__name__)


# Target status -> statuses it may be entered from.
# Self-transitions let a retry attempt refresh updated_at without moving backward.
TRANSITIONS: Dict[PreviewStatus, Tuple[PreviewStatus, ...]] = {
    PreviewStatus.GENERATING: (PreviewStatus.BUILDING, PreviewStatus.GENERATING),
    PreviewStatus.DEPLOYING: (PreviewStatus.GENERATING, PreviewStatus.DEPLOYING),
    PreviewStatus.LIVE: (PreviewStatus.DEPLOYING,),
    PreviewStatus.FAILED: (PreviewStatus.BUILDING, PreviewStatus.GENERATING, PreviewStatus.DEPLOYING),
}

NON_TERMINAL = tuple(s.value for s in PreviewStatus if not s.is_terminal)


class PreviewStore:
    """SQLAlchemy-backed store for Preview records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "PreviewStore":
        engine = create_db_engine(database_url)
        return cls(create_session_factory(engine))

    @property
    def engine(self):
        return self._session_factory.kw["bind"]

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except OperationalError as e:
            db.rollback()
            logger.error(f"[Store] Database unavailable: {e}")
            raise BackingStoreUnavailable("Preview store is unavailable") from e
        finally:
            db.close()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        try:
            init_db(self.engine)
        except OperationalError as e:
            raise BackingStoreUnavailable("Preview store is unavailable") from e

    def ping(self) -> None:
        with self._session() as db:
            db.execute(text("SELECT 1"))

    def insert(self, preview_id: str, prompt: str, user_id: str) -> Preview:
        """Create the initial `building` record."""
        now = datetime.utcnow()
        record = Preview(
            id=preview_id,
            prompt=prompt,
            user_id=user_id,
            status=PreviewStatus.BUILDING.value,
            live_url=None,
            error=None,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        with self._session() as db:
            db.add(record)
            db.commit()
            db.refresh(record)
            db.expunge(record)
        return record

    def get(self, preview_id: str) -> Optional[Preview]:
        with self._session() as db:
            record = db.query(Preview).filter(Preview.id == preview_id).first()
            if record is not None:
                db.expunge(record)
            return record

    def list_by_owner(self, user_id: str) -> List[Preview]:
        """All previews for a user, newest first."""
        with self._session() as db:
            records = (
                db.query(Preview)
                .filter(Preview.user_id == user_id)
                .order_by(Preview.created_at.desc())
                .all()
            )
            for record in records:
                db.expunge(record)
            return records

    def transition(self, preview_id: str, status: PreviewStatus, **values) -> bool:
        """
        Move a record to `status` if its current status allows it.

        Args:
            preview_id: Record to update
            status: Target status
            **values: Extra columns to write in the same UPDATE

        Returns:
            True if the row changed, False if the transition was refused
        """
        sources = [s.value for s in TRANSITIONS[status]]

        if status == PreviewStatus.LIVE:
            values["error"] = None
        elif status == PreviewStatus.FAILED:
            values["live_url"] = None
        else:
            values.setdefault("live_url", None)
            values.setdefault("error", None)

        with self._session() as db:
            updated = (
                db.query(Preview)
                .filter(Preview.id == preview_id, Preview.status.in_(sources))
                .update(
                    {"status": status.value, "updated_at": datetime.utcnow(), **values},
                    synchronize_session=False,
                )
            )
            db.commit()

        if updated:
            logger.info(f"[Store] {preview_id} -> {status.value}")
        else:
            logger.info(f"[Store] {preview_id} -> {status.value} refused (not in {sources})")
        return bool(updated)

    def record_attempt_failure(self, preview_id: str, message: str) -> bool:
        """Note a failed non-final attempt without leaving the current phase."""
        with self._session() as db:
            updated = (
                db.query(Preview)
                .filter(Preview.id == preview_id, Preview.status.in_(NON_TERMINAL))
                .update(
                    {"last_error": message, "updated_at": datetime.utcnow()},
                    synchronize_session=False,
                )
            )
            db.commit()
        return bool(updated)


__all__ = ["PreviewStore", "TRANSITIONS"]
