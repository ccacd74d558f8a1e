# models.py
import datetime
import enum
from dataclasses import dataclass

from config import db, CHAT_HISTORIES
from errors import CorruptHistoryError
from utils import utcnow


class Role(str, enum.Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str
    timestamp: datetime.datetime

    def __post_init__(self):
        # Role("system") raises ValueError, so only the two known roles get through
        object.__setattr__(self, "role", Role(self.role))

    def to_document(self):
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_document(cls, doc):
        """Rebuild a message from a stored history entry.

        Raises CorruptHistoryError for anything that is not a well-formed
        entry with a known role; stored data is never coerced.
        """
        if not isinstance(doc, dict):
            raise CorruptHistoryError(f"History entry is not an object: {doc!r}")
        role = doc.get("role")
        try:
            role = Role(role)
        except ValueError:
            raise CorruptHistoryError(f"Unknown message role found in history: {role!r}") from None
        content = doc.get("content")
        if not isinstance(content, str):
            raise CorruptHistoryError(f"History entry has no text content: {doc!r}")
        try:
            timestamp = datetime.datetime.fromisoformat(doc["timestamp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptHistoryError(f"History entry has a bad timestamp: {doc!r}") from exc
        return cls(role=role, content=content, timestamp=timestamp)


class ChatHistory(db.Model):
    """One row per session: the capped message log plus its liveness stamp."""

    __tablename__ = CHAT_HISTORIES
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(128), unique=True, nullable=False)
    history = db.Column(db.JSON, nullable=False, default=list)
    last_activity_timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __mapper_args__ = {"version_id_col": version}
