import json
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis

from base import HistoryStoreBase
from config import UTC, MAX_HISTORY_LENGTH
from memory.inmemory_impl import InMemoryHistoryStore
from memory.window import KeyedLocks, PrefixFactory, trim
from models import Message


class RedisHistoryStore(HistoryStoreBase):
    """Conversation windows kept as one JSON document per user in Redis.

    Falls back to the in-memory store when Redis is not configured or unreachable.
    """

    def __init__(
        self,
        prefix_factory: PrefixFactory,
        max_history_length: int = MAX_HISTORY_LENGTH,
        redis_url: Optional[str] = None,
        key_prefix: str = "chat",
        client: Optional[redis.Redis] = None,
    ):
        self.prefix_factory = prefix_factory
        self.max_history_length = max_history_length
        self.key_prefix = key_prefix
        self._locks = KeyedLocks()
        self._fallback: Optional[InMemoryHistoryStore] = None
        self._r = client
        self.logger = logging.getLogger("app")
        extra = {"extra_data": {"component": "history"}}
        try:
            if self._r is None:
                if not redis_url:
                    raise redis.ConnectionError("no redis url configured")
                self._r = redis.Redis.from_url(redis_url, decode_responses=True)
            # health check
            self._r.ping()
            self.logger.info("Using Redis history store", extra=extra)
        except redis.RedisError as e:
            self.logger.warning(f"Redis unavailable ({e}); using in-memory history store", extra=extra)
            self._r = None
            self._fallback = InMemoryHistoryStore(prefix_factory, max_history_length)

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    def _new_doc(self, user_id: str, username: Optional[str]) -> Dict[str, Any]:
        prefix = self.prefix_factory(username)
        return {
            "user_id": user_id,
            "pinned": len(prefix),
            "messages": [asdict(m) for m in prefix],
            "created_at": datetime.now(UTC).isoformat(),
        }

    def _load(self, user_id: str, username: Optional[str] = None) -> Dict[str, Any]:
        raw = self._r.get(self._key(user_id))
        if raw:
            return json.loads(raw)
        doc = self._new_doc(user_id, username)
        self._save(user_id, doc)
        return doc

    def _save(self, user_id: str, doc: Dict[str, Any]) -> None:
        doc["updated_at"] = datetime.now(UTC).isoformat()
        self._r.set(self._key(user_id), json.dumps(doc))

    @staticmethod
    def _messages(doc: Dict[str, Any]) -> List[Message]:
        return [Message(**m) for m in doc["messages"]]

    def get(self, user_id: str, username: Optional[str] = None) -> List[Message]:
        if self._fallback:
            return self._fallback.get(user_id, username)
        with self._locks.get(user_id):
            return self._messages(self._load(user_id, username))

    def append(self, user_id: str, message: Message) -> List[Message]:
        if self._fallback:
            return self._fallback.append(user_id, message)
        with self._locks.get(user_id):
            doc = self._load(user_id)
            messages = trim(self._messages(doc) + [message], doc["pinned"], self.max_history_length)
            doc["messages"] = [asdict(m) for m in messages]
            self._save(user_id, doc)
            return messages

    def reset(self, user_id: str, username: Optional[str] = None) -> List[Message]:
        if self._fallback:
            return self._fallback.reset(user_id, username)
        with self._locks.get(user_id):
            doc = self._load(user_id, username)
            doc["messages"] = doc["messages"][:doc["pinned"]]
            self._save(user_id, doc)
            return self._messages(doc)
