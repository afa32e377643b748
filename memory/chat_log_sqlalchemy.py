import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from api.entities import Base, Chat, make_engine
from base import MessageStoreBase
from config import UTC
from config.settings import settings


def _row(chat: Chat) -> Dict[str, Any]:
    return {
        "id": chat.id,
        "UserId": chat.UserId,
        "message": chat.message,
        "role": chat.role,
        "timestamp": chat.timestamp,
    }


class ChatLogSQLAlchemy(MessageStoreBase):
    """Durable chat log in the `Chats` table."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        self.engine = engine or make_engine(database_url or settings.database.url, echo=settings.database.echo)
        Base.metadata.create_all(self.engine, tables=[Chat.__table__])
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.logger = logging.getLogger("app")

    @retry(
        retry=retry_if_exception_type(OperationalError),
        wait=wait_random_exponential(min=0.1, max=1),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def append(self, user_id: str, message: str, role: str, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        chat = Chat(UserId=str(user_id), message=message, role=role, timestamp=timestamp or datetime.now(UTC))
        with self.Session.begin() as session:
            session.add(chat)
        return _row(chat)

    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        stmt = select(Chat).where(Chat.UserId == str(user_id)).order_by(Chat.timestamp, Chat.id)
        with self.Session() as session:
            return [_row(c) for c in session.scalars(stmt)]

    def delete_for_user(self, user_id: str) -> int:
        with self.Session.begin() as session:
            result = session.execute(delete(Chat).where(Chat.UserId == str(user_id)))
            deleted = result.rowcount or 0
        self.logger.info(f"Deleted {deleted} chat messages", extra={"extra_data": {"user_id": str(user_id)}})
        return deleted
