"""Session management: canonical conversation history and session lookup.

ConversationHistory is the single owner of a session's canonical message
list. Every read and write goes through its lock, held only for the copy
or append; persistence happens after the lock is released.

SessionManager creates, resumes, lists and deletes sessions in the store.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from helmsman.exceptions import ConfigurationError, SessionError
from helmsman.models.messages import Message
from helmsman.storage.store import SessionInfo, SessionStore

logger = logging.getLogger(__name__)

_MARKDOWN_SUFFIXES = (".md", ".markdown")


class ConversationHistory:
    """Thread-safe, append-only conversation history for one session.

    Args:
        messages: Initial messages (e.g. loaded from the store).
        persist: Called with each appended message after the lock is
            released. Failures are logged and do not propagate.
    """

    def __init__(
        self,
        messages: Iterable[Message] = (),
        *,
        persist: Callable[[Message], None] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._messages: list[Message] = list(messages)
        self._persist = persist

    def snapshot(self) -> list[Message]:
        """A private copy of the current history."""
        with self._lock:
            return list(self._messages)

    def append(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)
        self._store(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def _store(self, message: Message) -> None:
        if self._persist is None:
            return
        try:
            self._persist(message)
        except Exception as exc:
            logger.warning("Failed to persist %s message: %s", message.role, exc)


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------


def load_system_prompt(path: str | Path) -> str:
    """Read a markdown system prompt file.

    Raises:
        ConfigurationError: If the file is not ``.md``/``.markdown``, cannot
            be read, or is empty.
    """
    path = Path(path)
    if path.suffix.lower() not in _MARKDOWN_SUFFIXES:
        raise ConfigurationError(
            f"System prompt file must be markdown (.md or .markdown): {path}"
        )
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigurationError(f"Cannot read system prompt file {path}: {exc}") from exc
    if not content:
        raise ConfigurationError(f"System prompt file is empty: {path}")
    return content


def history_has_system_prompt(history: Sequence[Message], content: str) -> bool:
    return any(m.role == "system" and m.content == content for m in history)


def prepend_system_prompt(history: Sequence[Message], content: str) -> list[Message]:
    return [Message.system(content), *history]


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionInit:
    """Result of SessionManager.initialize().

    Attributes:
        session_id: Id of the created or resumed session.
        info: Human-readable one-liner for the welcome banner.
        resumed: True when an existing named session was resumed.
    """

    session_id: str
    info: str
    resumed: bool = False


class SessionManager:
    """Creates, resumes and manages sessions in a SessionStore."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    @property
    def store(self) -> SessionStore:
        return self._store

    def initialize(self, name: str | None, provider: str, model: str) -> SessionInit:
        """Resume the session called ``name``, or create it.

        Without a name an anonymous session is created.
        """
        if name:
            existing = self._store.get_session_by_name(name)
            if existing is not None:
                logger.info("Resumed session %s (%s)", name, existing.id)
                return SessionInit(existing.id, f"Resumed session: {name}", resumed=True)
            created = self._store.create_session(provider, model, name=name)
            logger.info("Created named session %s (%s)", name, created.id)
            return SessionInit(created.id, f"New session: {name}")

        created = self._store.create_session(provider, model)
        logger.info("Created anonymous session %s", created.id)
        return SessionInit(created.id, f"Session: {created.id[:8]}")

    def load_history(self, session_id: str) -> list[Message]:
        history = self._store.load_messages(session_id)
        if history:
            logger.info("Loaded %d message(s) of history", len(history))
        return history

    def save_message(self, session_id: str, message: Message) -> None:
        """Persist a message. Failures are logged and re-raised."""
        try:
            self._store.save_message(session_id, message)
        except Exception as exc:
            logger.warning("Failed to save message to database: %s", exc)
            raise

    def list(self, limit: int = 20) -> list[SessionInfo]:
        return self._store.list_sessions(limit)

    def get_by_name(self, name: str) -> SessionInfo | None:
        return self._store.get_session_by_name(name)

    def delete_by_name(self, name: str) -> None:
        """Delete a named session.

        Raises:
            SessionError: If no session has that name.
        """
        if not self._store.delete_session_by_name(name):
            raise SessionError(f"Session '{name}' not found")
        logger.info("Deleted session %s", name)
