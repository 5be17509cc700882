"""SessionStore: persistence for sessions, messages and credentials.

Each operation opens a short-lived ORM session, so one store can be shared
by the foreground thread and the autoplay thread.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from helmsman.exceptions import SessionError
from helmsman.models.messages import Message, ToolCall
from helmsman.storage.engine import create_helmsman_engine, create_session_factory, init_db
from helmsman.storage.schema import MessageRow, SessionCredentialsRow, SessionRow

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class SessionInfo:
    """Summary of a stored session."""

    id: str
    name: str | None
    provider: str
    model: str
    created_at: datetime
    last_active_at: datetime
    message_count: int = 0

    @classmethod
    def from_row(cls, row: SessionRow, message_count: int = 0) -> SessionInfo:
        return cls(
            id=row.id,
            name=row.name,
            provider=row.provider,
            model=row.model,
            created_at=_as_utc(row.created_at),
            last_active_at=_as_utc(row.last_active_at),
            message_count=message_count,
        )


class SessionStore:
    """SQLAlchemy-backed store for Helmsman sessions.

    Usage::

        store = SessionStore.open(".helmsman.db")
        info = store.create_session("openai", "gpt-4o-mini", name="miner")
        store.save_message(info.id, Message.user("hello"))
        history = store.load_messages(info.id)
        store.close()
    """

    def __init__(self, engine: Engine, session_factory: sessionmaker[Session] | None = None) -> None:
        self._engine = engine
        self._session_factory = session_factory or create_session_factory(engine)
        self._closed = False

    @classmethod
    def open(cls, path: str = ":memory:", *, url: str | None = None) -> SessionStore:
        """Open (and initialize if needed) a store at ``path``."""
        engine = create_helmsman_engine(path, url=url)
        init_db(engine)
        logger.debug("Opened session store at %s", url or path)
        return cls(engine)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        provider: str,
        model: str,
        *,
        name: str | None = None,
        session_id: str | None = None,
    ) -> SessionInfo:
        """Create a session. A given ``name`` must not already exist.

        Raises:
            SessionError: If the name is taken.
        """
        now = _now()
        row = SessionRow(
            id=session_id or uuid.uuid4().hex,
            name=name,
            provider=provider,
            model=model,
            created_at=now,
            last_active_at=now,
        )
        with self._session_factory() as session:
            if name is not None:
                taken = session.execute(
                    select(SessionRow.id).where(SessionRow.name == name)
                ).first()
                if taken is not None:
                    raise SessionError(f"Session name already exists: {name}")
            session.add(row)
            session.commit()
        return SessionInfo.from_row(row)

    def get_session(self, session_id: str) -> SessionInfo | None:
        with self._session_factory() as session:
            row = session.get(SessionRow, session_id)
            if row is None:
                return None
            return SessionInfo.from_row(row, self._count_messages(session, row.id))

    def get_session_by_name(self, name: str) -> SessionInfo | None:
        with self._session_factory() as session:
            row = session.execute(
                select(SessionRow).where(SessionRow.name == name)
            ).scalar_one_or_none()
            if row is None:
                return None
            return SessionInfo.from_row(row, self._count_messages(session, row.id))

    def list_sessions(self, limit: int = 20) -> list[SessionInfo]:
        """Most recently active sessions first."""
        counts = (
            select(MessageRow.session_id, func.count(MessageRow.id).label("n"))
            .group_by(MessageRow.session_id)
            .subquery()
        )
        stmt = (
            select(SessionRow, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.session_id == SessionRow.id)
            .order_by(SessionRow.last_active_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [SessionInfo.from_row(row, n) for row, n in session.execute(stmt).all()]

    def delete_session_by_name(self, name: str) -> bool:
        """Delete a named session and everything attached to it.

        Returns True if a session was deleted.
        """
        with self._session_factory() as session:
            row = session.execute(
                select(SessionRow).where(SessionRow.name == name)
            ).scalar_one_or_none()
            if row is None:
                return False
            session.execute(delete(MessageRow).where(MessageRow.session_id == row.id))
            session.execute(
                delete(SessionCredentialsRow).where(SessionCredentialsRow.session_id == row.id)
            )
            session.delete(row)
            session.commit()
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def save_message(self, session_id: str, message: Message) -> None:
        """Append a message and bump the session's ``last_active_at``.

        Raises:
            SessionError: If the session does not exist.
        """
        with self._session_factory() as session:
            row = session.get(SessionRow, session_id)
            if row is None:
                raise SessionError(f"Unknown session: {session_id}")
            session.add(
                MessageRow(
                    session_id=session_id,
                    role=message.role,
                    content=message.content,
                    tool_call_id=message.tool_call_id,
                    tool_calls_json=(
                        [tc.to_dict() for tc in message.tool_calls] if message.tool_calls else None
                    ),
                    reasoning=message.reasoning,
                    created_at=_to_naive_utc(message.created_at),
                )
            )
            row.last_active_at = _now()
            session.commit()

    def load_messages(self, session_id: str) -> list[Message]:
        """All messages of a session in insertion order."""
        stmt = (
            select(MessageRow)
            .where(MessageRow.session_id == session_id)
            .order_by(MessageRow.id)
        )
        with self._session_factory() as session:
            rows = session.execute(stmt).scalars().all()
            return [
                Message(
                    role=row.role,  # type: ignore[arg-type]
                    content=row.content or "",
                    tool_calls=tuple(ToolCall.from_dict(tc) for tc in row.tool_calls_json or ()),
                    tool_call_id=row.tool_call_id,
                    reasoning=row.reasoning,
                    created_at=_as_utc(row.created_at),
                )
                for row in rows
            ]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def save_credentials(self, session_id: str, username: str, password: str) -> None:
        """Insert or replace the credentials of a session."""
        now = _now()
        with self._session_factory() as session:
            row = session.get(SessionCredentialsRow, session_id)
            if row is None:
                session.add(
                    SessionCredentialsRow(
                        session_id=session_id,
                        username=username,
                        password=password,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                row.username = username
                row.password = password
                row.updated_at = now
            session.commit()

    def get_credentials(self, session_id: str) -> tuple[str, str] | None:
        with self._session_factory() as session:
            row = session.get(SessionCredentialsRow, session_id)
            if row is None:
                return None
            return row.username, row.password

    def close(self) -> None:
        """Dispose of the engine. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()

    def __enter__(self) -> SessionStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @staticmethod
    def _count_messages(session: Session, session_id: str) -> int:
        return session.execute(
            select(func.count(MessageRow.id)).where(MessageRow.session_id == session_id)
        ).scalar_one()
