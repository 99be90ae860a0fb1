"""
Order creation: price lookup, total, order insert, item inserts and the
compensating delete when an item insert fails part way.
"""
import logging
from typing import List, Tuple

from fastapi import HTTPException, status

import models
from schemas import OrderItemResponse, OrderResponse
from store import Store, StoreError

logger = logging.getLogger(__name__)


def compute_total(store: Store, pairs: List[Tuple[int, int]]) -> int:
    total = 0
    for menu_item_id, quantity in pairs:
        total += store.menu_item().get_price(menu_item_id) * quantity
    return total


def create_order(store: Store, user: models.User, pairs: List[Tuple[int, int]]) -> OrderResponse:
    try:
        total = compute_total(store, pairs)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    order = models.Order(user_id=user.id, total_amount=total)
    try:
        store.order().create(order)
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    order_id = order.id
    created_at = order.created_at
    items = []
    for menu_item_id, quantity in pairs:
        item = models.OrderItem(order_id=order_id, menu_item_id=menu_item_id, quantity=quantity)
        try:
            store.order_item().create(item)
        except StoreError as e:
            logger.warning(f"Order {order_id}: item for menu item {menu_item_id} failed ({e}), deleting order")
            compensate(store, order_id)
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
        items.append(OrderItemResponse(
            id=item.id,
            order_id=item.order_id,
            menu_item_id=item.menu_item_id,
            quantity=item.quantity,
        ))

    logger.info(f"Order {order_id} created for user {user.id}: {len(items)} items, total {total}")
    return OrderResponse(id=order_id, order_item=items, created_At=created_at, total_price=total)


def compensate(store: Store, order_id: int) -> None:
    """Delete a partially created order, or fail with 500 if even that fails."""
    try:
        store.order().delete(order_id)
    except StoreError as e:
        logger.error(f"Order {order_id} left without items, needs reconciliation: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
