# api/entities.py
import threading
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class User(Base):
    __tablename__ = "Users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="customer")
    deluxeToken = Column(String, default="")
    lastLoginIp = Column(String, default="0.0.0.0")
    profileImage = Column(String, default="/assets/public/images/uploads/default.svg")
    totpSecret = Column(String, default="")
    isActive = Column(Boolean, nullable=False, default=True)


class Product(Base):
    __tablename__ = "Products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    price = Column(Float, nullable=False)
    deluxePrice = Column(Float)
    image = Column(String)


class Basket(Base):
    __tablename__ = "Baskets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    UserId = Column(Integer, ForeignKey("Users.id"), nullable=False)
    coupon = Column(String)

    items = relationship("BasketItem", back_populates="basket", cascade="all, delete-orphan")


class BasketItem(Base):
    __tablename__ = "BasketItems"
    __table_args__ = (UniqueConstraint("BasketId", "ProductId"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    BasketId = Column(Integer, ForeignKey("Baskets.id"), nullable=False)
    ProductId = Column(Integer, ForeignKey("Products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    basket = relationship("Basket", back_populates="items")
    product = relationship("Product")


class SecurityQuestion(Base):
    __tablename__ = "SecurityQuestions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question = Column(String, nullable=False)


class SecurityAnswer(Base):
    __tablename__ = "SecurityAnswers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    UserId = Column(Integer, ForeignKey("Users.id"), nullable=False, unique=True)
    SecurityQuestionId = Column(Integer, ForeignKey("SecurityQuestions.id"), nullable=False)
    answer = Column(String, nullable=False)


class Chat(Base):
    __tablename__ = "Chats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    UserId = Column(String, nullable=False, index=True)
    message = Column(Text, nullable=False)
    role = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


def make_engine(url: str, echo: bool = False) -> Engine:
    # an in-memory sqlite database only exists on its single connection, shared across threads
    if url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _serialize_checkouts(engine)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def _serialize_checkouts(engine: Engine) -> None:
    """Hold the single connection for one thread at a time, from checkout to checkin.

    Without this, one thread's commit, rollback or interrupt lands in another
    thread's open transaction.
    """
    lock = threading.RLock()

    @event.listens_for(engine, "checkout")
    def _acquire(dbapi_connection, connection_record, connection_proxy):
        lock.acquire()

    @event.listens_for(engine, "checkin")
    def _release(dbapi_connection, connection_record):
        lock.release()
