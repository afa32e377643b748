import logging
import threading
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker

from api.entities import Base, Basket, BasketItem, Product, User, make_engine
from base import ShopBackendBase
from config.settings import settings
from errors import ExecutionFailed, NotFound, UpstreamUnavailable

cfg = settings.database


def _user_pk(user_id: Any) -> Optional[int]:
    try:
        return int(str(user_id).strip())
    except (TypeError, ValueError):
        return None


def _product_dict(p: Product) -> Dict[str, Any]:
    return {"id": p.id, "name": p.name, "description": p.description, "price": p.price, "image": p.image}


class ShopSQLAlchemyClient(ShopBackendBase):
    """Catalog, users and baskets of the storefront database."""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None, create_schema: bool = False):
        self.engine = engine or make_engine(database_url or cfg.url, echo=cfg.echo)
        if create_schema:
            Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.logger = logging.getLogger("app")

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        pk = _user_pk(user_id)
        if pk is None:
            return None
        with self.Session() as session:
            user = session.get(User, pk)
            if user is None:
                return None
            return {"id": user.id, "email": user.email, "username": user.username, "role": user.role}

    def list_products(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        stmt = select(Product).order_by(Product.id)
        if limit:
            stmt = stmt.limit(limit)
        with self.Session() as session:
            return [_product_dict(p) for p in session.scalars(stmt)]

    def search_products(self, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        if not terms:
            return []
        name = func.lower(Product.name)
        description = func.lower(func.coalesce(Product.description, ""))
        conditions = []
        for term in terms:
            pattern = f"%{term.lower()}%"
            conditions.append(name.like(pattern))
            conditions.append(description.like(pattern))
        first = f"%{terms[0].lower()}%"
        rank = case((name.like(first), 1), (description.like(first), 2), else_=3)
        stmt = select(Product).where(or_(*conditions)).order_by(rank, Product.price.desc()).limit(limit)
        with self.Session() as session:
            return [_product_dict(p) for p in session.scalars(stmt)]

    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        with self.Session() as session:
            product = session.get(Product, product_id)
            return _product_dict(product) if product else None

    def _find_basket(self, session, pk: int) -> Optional[Basket]:
        return session.scalars(select(Basket).where(Basket.UserId == pk)).first()

    def get_basket(self, user_id: str) -> Optional[Dict[str, Any]]:
        pk = _user_pk(user_id)
        if pk is None:
            return None
        with self.Session() as session:
            basket = self._find_basket(session, pk)
            if basket is None:
                return None
            products = []
            for item in sorted(basket.items, key=lambda i: i.id):
                entry = _product_dict(item.product)
                entry["quantity"] = item.quantity
                products.append(entry)
            return {"id": basket.id, "products": products}

    def add_basket_item(self, user_id: str, product_id: int, quantity: int) -> Dict[str, Any]:
        pk = _user_pk(user_id)
        with self.Session.begin() as session:
            if pk is None or session.get(User, pk) is None:
                raise NotFound("User not found - could not add item to basket")
            product = session.get(Product, product_id)
            if product is None:
                raise NotFound("Product not found")
            basket = self._find_basket(session, pk)
            if basket is None:
                basket = Basket(UserId=pk)
                session.add(basket)
                session.flush()
                self.logger.info(f"Created new basket {basket.id} for user {pk}")
            item = session.scalars(
                select(BasketItem).where(BasketItem.BasketId == basket.id, BasketItem.ProductId == product_id)
            ).first()
            if item is None:
                item = BasketItem(BasketId=basket.id, ProductId=product_id, quantity=quantity)
                session.add(item)
            else:
                item.quantity = item.quantity + quantity
            return {"basketId": basket.id, "product": _product_dict(product), "quantity": item.quantity}

    def remove_basket_item(self, user_id: str, product_id: int, quantity: int) -> Dict[str, Any]:
        pk = _user_pk(user_id)
        with self.Session.begin() as session:
            if pk is None or session.get(User, pk) is None:
                raise NotFound("User not found - could not remove item from basket")
            basket = self._find_basket(session, pk)
            if basket is None:
                raise NotFound("Basket not found")
            product = session.get(Product, product_id)
            if product is None:
                raise NotFound("Product not found")
            item = session.scalars(
                select(BasketItem).where(BasketItem.BasketId == basket.id, BasketItem.ProductId == product_id)
            ).first()
            if item is None:
                raise NotFound("Item not found in basket")
            remaining = item.quantity - quantity
            if remaining <= 0:
                session.delete(item)
                remaining = 0
            else:
                item.quantity = remaining
            return {"basketId": basket.id, "product": _product_dict(product), "quantity": remaining}

    def execute_sql(self, statement: str, timeout_seconds: float) -> Dict[str, Any]:
        fired = threading.Event()
        with self.engine.connect() as conn:
            dbapi_conn = conn.connection.dbapi_connection
            # sqlite3 exposes interrupt(), psycopg-style drivers cancel()
            abort = getattr(dbapi_conn, "interrupt", None) or getattr(dbapi_conn, "cancel", None)

            def _abort():
                fired.set()
                if abort is not None:
                    abort()

            timer = threading.Timer(timeout_seconds, _abort)
            timer.start()
            try:
                result = conn.exec_driver_sql(statement)
                if result.returns_rows:
                    rows = [dict(row._mapping) for row in result]
                    conn.rollback()
                    return {"rows": rows}
                affected = result.rowcount
                conn.commit()
                return {"affectedRows": affected}
            except DBAPIError as e:
                conn.rollback()
                if fired.is_set():
                    raise UpstreamUnavailable(f"Query timed out after {timeout_seconds:g}s") from e
                raise ExecutionFailed(f"Failed to execute SQL query: {e.orig}") from e
            finally:
                timer.cancel()
