"""Append-only observation log on SQLite (SQLAlchemy 2.x ORM)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, create_engine, delete, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from petfeedback.core.domain.schemas import Observation

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 50


def _utcnow() -> datetime:
    """Naive UTC timestamp; SQLite has no timezone-aware column type."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class ObservationRow(Base):
    __tablename__ = "observations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    session_id: Mapped[Optional[str]] = mapped_column(String(128))
    message_id: Mapped[Optional[str]] = mapped_column(String(128))
    workspace_id: Mapped[Optional[str]] = mapped_column(String(256))
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    thought: Mapped[Optional[str]] = mapped_column(Text)
    mood: Mapped[Optional[str]] = mapped_column(String(32))
    compliance_score: Mapped[int] = mapped_column(Integer, nullable=False)
    efficiency_score: Mapped[int] = mapped_column(Integer, nullable=False)
    feedback_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)


def _resolve_path(path: str) -> Path:
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


class FeedbackStore:
    """Keeps the newest ``max_records`` observations."""

    def __init__(self, path: str, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        if max_records < 1:
            raise ValueError(f"max_records must be >= 1, got {max_records}")
        self.path = _resolve_path(path)
        self.max_records = max_records
        self._engine = create_engine(f"sqlite:///{self.path}", echo=False)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    def record(self, observation: Observation) -> None:
        row = ObservationRow(**observation.model_dump())
        row.created_at = observation.created_at.astimezone(timezone.utc).replace(tzinfo=None)
        with self._session_factory() as session:
            session.add(row)
            session.flush()
            self._prune(session)
            session.commit()

    def _prune(self, session: Session) -> None:
        total = session.scalar(select(func.count()).select_from(ObservationRow)) or 0
        overflow = total - self.max_records
        if overflow <= 0:
            return
        oldest = select(ObservationRow.id).order_by(ObservationRow.id.asc()).limit(overflow)
        session.execute(delete(ObservationRow).where(ObservationRow.id.in_(oldest)))
        logger.debug("pruned %d old observations", overflow)

    def recent(self, limit: int = 10) -> list[Observation]:
        stmt = select(ObservationRow).order_by(ObservationRow.id.desc()).limit(limit)
        with self._session_factory() as session:
            rows = session.scalars(stmt).all()
        return [
            Observation(
                provider=r.provider,
                model=r.model,
                session_id=r.session_id,
                message_id=r.message_id,
                workspace_id=r.workspace_id,
                summary=r.summary,
                thought=r.thought,
                mood=r.mood,
                compliance_score=r.compliance_score,
                efficiency_score=r.efficiency_score,
                feedback_type=r.feedback_type,
                severity=r.severity,
                created_at=r.created_at.replace(tzinfo=timezone.utc),
            )
            for r in rows
        ]

    def count(self) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(ObservationRow)) or 0

    def close(self) -> None:
        self._engine.dispose()
