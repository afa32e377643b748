import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from base import HistoryStoreBase
from config import UTC, MAX_HISTORY_LENGTH
from memory.window import KeyedLocks, PrefixFactory, trim
from models import Message


class InMemoryHistoryStore(HistoryStoreBase):
    """Process-local conversation windows, one per user, guarded by per-user locks."""

    def __init__(self, prefix_factory: PrefixFactory, max_history_length: int = MAX_HISTORY_LENGTH):
        self.prefix_factory = prefix_factory
        self.max_history_length = max_history_length
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._locks = KeyedLocks()
        self.logger = logging.getLogger("app")

    def _new_session(self, user_id: str, username: Optional[str]) -> Dict[str, Any]:
        prefix = self.prefix_factory(username)
        return {
            "user_id": user_id,
            "pinned": len(prefix),
            "messages": list(prefix),
            "created_at": datetime.now(UTC).isoformat(),
        }

    def _session(self, user_id: str, username: Optional[str] = None) -> Dict[str, Any]:
        session = self._sessions.get(user_id)
        if session is None:
            session = self._sessions[user_id] = self._new_session(user_id, username)
        return session

    def get(self, user_id: str, username: Optional[str] = None) -> List[Message]:
        with self._locks.get(user_id):
            return list(self._session(user_id, username)["messages"])

    def append(self, user_id: str, message: Message) -> List[Message]:
        with self._locks.get(user_id):
            session = self._session(user_id)
            messages = session["messages"] + [message]
            session["messages"] = trim(messages, session["pinned"], self.max_history_length)
            session["updated_at"] = datetime.now(UTC).isoformat()
            return list(session["messages"])

    def reset(self, user_id: str, username: Optional[str] = None) -> List[Message]:
        with self._locks.get(user_id):
            session = self._sessions.get(user_id)
            if session is None:
                session = self._sessions[user_id] = self._new_session(user_id, username)
            else:
                session["messages"] = session["messages"][:session["pinned"]]
                session["updated_at"] = datetime.now(UTC).isoformat()
            return list(session["messages"])
