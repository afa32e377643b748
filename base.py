from abc import ABC, abstractmethod
from datetime import datetime
from typing import (
    Any,
    Dict,
    List,
    Optional
)

from models import Message


class HistoryStoreBase(ABC):
    """Per-user bounded message window. Element 0 is always the system prompt."""

    @abstractmethod
    def get(self, user_id: str, username: Optional[str] = None) -> List[Message]:
        """Ordered messages of the session, creating it with its pinned prefix if needed"""

    @abstractmethod
    def append(self, user_id: str, message: Message) -> List[Message]:
        """Append and evict the oldest non-pinned messages beyond the bound"""

    @abstractmethod
    def reset(self, user_id: str, username: Optional[str] = None) -> List[Message]:
        """Truncate the session to its pinned prefix"""


class ShopBackendBase(ABC):

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """User profile or None"""

    @abstractmethod
    def list_products(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Catalog ordered by id"""

    @abstractmethod
    def search_products(self, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        """Products whose name or description contains any term"""

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        """Product or None"""

    @abstractmethod
    def get_basket(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Basket with its products, or None when the user has none yet"""

    @abstractmethod
    def add_basket_item(self, user_id: str, product_id: int, quantity: int) -> Dict[str, Any]:
        """Create the basket if needed and add quantity to the product's line"""

    @abstractmethod
    def remove_basket_item(self, user_id: str, product_id: int, quantity: int) -> Dict[str, Any]:
        """Decrement the product's line, deleting it at zero"""

    @abstractmethod
    def execute_sql(self, statement: str, timeout_seconds: float) -> Dict[str, Any]:
        """Run a raw statement: rows for queries, affected row count for updates"""


class MessageStoreBase(ABC):
    """Durable, append-only chat log."""

    @abstractmethod
    def append(self, user_id: str, message: str, role: str, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        """Persist one message"""

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """All messages of a user ordered by timestamp"""

    @abstractmethod
    def delete_for_user(self, user_id: str) -> int:
        """Delete all messages of a user"""
