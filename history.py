# history.py - bounded, expiring chat history per session
import datetime
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from config import db, CHAT_HISTORIES, APPEND_MAX_ATTEMPTS
from errors import AppendConflictError, ConfigurationError, StoreConnectionError
from models import ChatMessage, Role
from utils import utcnow

logger = logging.getLogger(__name__)


class ChatHistoryStore:
    """Chat history of every session, one capped log per session id.

    Must be used inside a Flask application context. The log keeps the last
    ``max_messages`` entries; a session idle for longer than ``ttl_seconds``
    reads as empty and is removed by purge_expired().
    """

    def __init__(self, adapter, max_messages=20, ttl_seconds=300, clock=utcnow):
        if max_messages < 1:
            raise ConfigurationError("MAX_MESSAGES_IN_DB must be at least 1")
        self.adapter = adapter
        self.max_messages = max_messages
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    # ---------- reads ----------

    def get_messages(self, session_id):
        """Full persisted log in conversation order; [] if unknown or expired.

        Store failures are logged and read as an empty history. A stored entry
        with an unknown role raises CorruptHistoryError.
        """
        try:
            row = self._load(session_id)
        except StoreConnectionError:
            logger.exception(f"[History - {session_id}] Error getting messages")
            return []
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"[History - {session_id}] Error getting messages")
            return []

        if row is None or self._is_expired(row):
            return []
        return [ChatMessage.from_document(doc) for doc in row.history or []]

    def get_recent_window(self, session_id, n):
        if n <= 0:
            return []
        return self.get_messages(session_id)[-n:]

    def list_sessions(self, limit=200):
        model = self.adapter.get_collection(CHAT_HISTORIES)
        rows = db.session.execute(
            db.select(model).order_by(model.last_activity_timestamp.desc()).limit(limit)
        ).scalars().all()
        out = []
        for row in rows:
            history = row.history or []
            out.append({
                "session_id": row.session_id,
                "message_count": len(history),
                "last_message": history[-1].get("content") if history and isinstance(history[-1], dict) else None,
                "last_activity_timestamp": row.last_activity_timestamp.isoformat(),
                "created_at": row.created_at.isoformat() if row.created_at else None,
                "expired": self._is_expired(row),
            })
        return out

    # ---------- writes ----------

    def add_user_message(self, session_id, content):
        return self.append_message(session_id, Role.HUMAN, content)

    def add_assistant_message(self, session_id, content):
        return self.append_message(session_id, Role.ASSISTANT, content)

    def add_turn(self, session_id, question, answer):
        """Record a question and its answer together, or neither."""
        return self.append_messages(session_id, [(Role.HUMAN, question), (Role.ASSISTANT, answer)])

    def append_message(self, session_id, role, content):
        return self.append_messages(session_id, [(role, content)])[0]

    def append_messages(self, session_id, entries):
        """Append ``(role, content)`` entries in order, creating the session row if needed.

        The push and the trim to ``max_messages`` are written as a single
        update guarded by the row's version counter; a concurrent writer makes
        the update stale and the append starts over from a fresh read.
        """
        now = self.clock()
        messages = [ChatMessage(role=role, content=content, timestamp=now) for role, content in entries]
        documents = [m.to_document() for m in messages]
        model = self.adapter.get_collection(CHAT_HISTORIES)

        for attempt in range(1, APPEND_MAX_ATTEMPTS + 1):
            try:
                row = self._load(session_id)
                if row is None:
                    db.session.add(model(
                        session_id=session_id,
                        history=documents[-self.max_messages:],
                        last_activity_timestamp=now,
                    ))
                else:
                    current = [] if self._is_expired(row) else list(row.history or [])
                    current.extend(documents)
                    row.history = current[-self.max_messages:]
                    row.last_activity_timestamp = now
                db.session.commit()
                return messages
            except (IntegrityError, StaleDataError):
                db.session.rollback()
                logger.warning(
                    f"[History - {session_id}] Concurrent write detected, retrying append "
                    f"({attempt}/{APPEND_MAX_ATTEMPTS})"
                )
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.exception(f"[History - {session_id}] Error appending message")
                raise StoreConnectionError("Could not append message to chat history") from exc

        raise AppendConflictError(
            f"Gave up appending to session {session_id} after {APPEND_MAX_ATTEMPTS} conflicting writes"
        )

    def clear(self, session_id):
        """Empty the session's log but keep its row. Returns False for an unknown session."""
        try:
            row = self._load(session_id)
            if row is None:
                return False
            row.history = []
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise AppendConflictError(f"Session {session_id} changed while it was being cleared") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(f"[History - {session_id}] Error clearing history")
            raise StoreConnectionError("Could not clear chat history") from exc

        logger.info(f"[History - {session_id}] Chat history cleared.")
        return True

    def purge_expired(self):
        """Delete every session idle for longer than the TTL. Returns the count."""
        model = self.adapter.get_collection(CHAT_HISTORIES)
        try:
            result = db.session.execute(
                db.delete(model).where(model.last_activity_timestamp < self._cutoff())
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreConnectionError("Could not purge expired sessions") from exc
        return result.rowcount

    # ---------- helpers ----------

    def _load(self, session_id):
        model = self.adapter.get_collection(CHAT_HISTORIES)
        return db.session.execute(
            db.select(model).filter_by(session_id=session_id)
        ).scalar_one_or_none()

    def _cutoff(self):
        return self.clock() - datetime.timedelta(seconds=self.ttl_seconds)

    def _is_expired(self, row):
        return row.last_activity_timestamp < self._cutoff()
