import threading
import weakref
from typing import Callable, List, Optional

from models import Message

PrefixFactory = Callable[[Optional[str]], List[Message]]


def trim(messages: List[Message], pinned: int, max_length: int) -> List[Message]:
    """Drop the oldest non-pinned messages so that at most `pinned + max_length` remain."""
    overflow = len(messages) - (pinned + max_length)
    if overflow <= 0:
        return messages
    return messages[:pinned] + messages[pinned + overflow:]


class KeyLock:
    """Re-entrant lock handed out by KeyedLocks; lives while someone holds a reference."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def __enter__(self) -> "KeyLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self._lock.release()


class KeyedLocks:
    """One lock per key. Work on different keys never waits on the same lock.

    Entries are weak: a key's lock is dropped once no caller holds it, so the
    map stays as large as the number of keys in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, KeyLock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> KeyLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = KeyLock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)
