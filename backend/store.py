"""
Repositories over the SQL store and the Store aggregate that hands them out.

Every repository call is its own unit of work: it commits on success and rolls
the session back on failure. Any SQLAlchemy error, on reads as well as writes,
surfaces as StoreError carrying the driver message.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Opaque storage-layer failure."""


class RecordNotFound(StoreError):
    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class Repository:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def guarded(self):
        try:
            yield self.db
        except SQLAlchemyError as e:
            self.db.rollback()
            message = str(getattr(e, "orig", None) or e)
            logger.warning(f"{type(self).__name__}: {message}")
            raise StoreError(message) from e

    @contextmanager
    def unit_of_work(self):
        with self.guarded() as db:
            yield db
            db.commit()

    def _insert(self, instance):
        with self.guarded() as db:
            db.add(instance)
            db.commit()
            db.refresh(instance)
        return instance


class UserRepository(Repository):
    def create(self, user: models.User) -> models.User:
        return self._insert(user)

    def find(self, user_id: int) -> models.User:
        with self.guarded() as db:
            user = db.query(models.User).filter(models.User.id == user_id).first()
        if not user:
            raise RecordNotFound("user", user_id)
        return user

    def find_by_email(self, email: str) -> models.User:
        with self.guarded() as db:
            user = db.query(models.User).filter(models.User.email == email).first()
        if not user:
            raise RecordNotFound("user", email)
        return user


class MenuItemRepository(Repository):
    def create(self, item: models.MenuItem) -> models.MenuItem:
        return self._insert(item)

    def find(self, item_id: int) -> models.MenuItem:
        with self.guarded() as db:
            item = db.query(models.MenuItem).filter(models.MenuItem.id == item_id).first()
        if not item:
            raise RecordNotFound("menu item", item_id)
        return item

    def all(self) -> List[models.MenuItem]:
        with self.guarded() as db:
            return db.query(models.MenuItem).order_by(models.MenuItem.id).all()

    def delete(self, item_id: int) -> None:
        # Deleting an id that is already gone is not an error.
        with self.unit_of_work() as db:
            db.query(models.MenuItem).filter(models.MenuItem.id == item_id).delete()

    def get_price(self, item_id: int) -> int:
        with self.guarded() as db:
            row = db.query(models.MenuItem.price).filter(models.MenuItem.id == item_id).first()
        if row is None:
            raise RecordNotFound("menu item", item_id)
        return row.price


class OrderRepository(Repository):
    def create(self, order: models.Order) -> models.Order:
        order.created_at = datetime.now(timezone.utc)
        return self._insert(order)

    def find(self, order_id: int) -> models.Order:
        with self.guarded() as db:
            order = db.query(models.Order).filter(models.Order.id == order_id).first()
        if not order:
            raise RecordNotFound("order", order_id)
        return order

    def delete(self, order_id: int) -> None:
        # Items go first so the delete does not depend on ON DELETE CASCADE.
        with self.unit_of_work() as db:
            db.query(models.OrderItem).filter(models.OrderItem.order_id == order_id).delete()
            db.query(models.Order).filter(models.Order.id == order_id).delete()


class OrderItemRepository(Repository):
    def create(self, item: models.OrderItem) -> models.OrderItem:
        return self._insert(item)

    def find_by_order(self, order_id: int) -> List[models.OrderItem]:
        with self.guarded() as db:
            return (
                db.query(models.OrderItem)
                .filter(models.OrderItem.order_id == order_id)
                .order_by(models.OrderItem.id)
                .all()
            )


class Store:
    """All repositories over one database session.

    Repositories are built once in the constructor, so every accessor returns
    the same instance for the lifetime of the store.
    """

    def __init__(self, db: Session):
        self.db = db
        self._user = UserRepository(db)
        self._menu_item = MenuItemRepository(db)
        self._order = OrderRepository(db)
        self._order_item = OrderItemRepository(db)

    def user(self) -> UserRepository:
        return self._user

    def menu_item(self) -> MenuItemRepository:
        return self._menu_item

    def order(self) -> OrderRepository:
        return self._order

    def order_item(self) -> OrderItemRepository:
        return self._order_item
