"""Order Aggregate - data access для заказа и его позиций.

Заказ и позиции создаются и читаются как одно целое. Repository не проверяет
допустимость переходов статуса: это делает OrderLifecycleEngine до вызова
set_status.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from src.core.domain.order import (
    Order,
    OrderLineItem,
    OrderLineItemDetail,
    OrderStatus,
    OrderWithItems,
)
from src.core.errors import OrderNotFound
from src.persistence.gateway import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewLineItem:
    """Позиция для вставки: цена уже зарезервирована ledger'ом."""

    product_id: int
    quantity: int
    unit_price: int


_DETAIL_SQL = """
SELECT li.id, li.order_id, li.product_id, li.quantity, li.price,
       li.created_at, li.updated_at, p.name AS product_name
FROM order_line_items AS li
LEFT JOIN products AS p ON p.id = li.product_id
WHERE li.order_id = ?
ORDER BY li.id
"""


class OrderRepository:
    """Order Aggregate: create / get_with_items / set_status + read queries."""

    def create(
        self,
        tx: Transaction,
        buyer_id: int,
        line_items: Iterable[NewLineItem],
        total_amount: int,
    ) -> OrderWithItems:
        """Вставка заказа (PENDING) и всех его позиций."""
        order_row = tx.insert(
            "orders",
            {
                "buyer_id": buyer_id,
                "total_amount": total_amount,
                "status": OrderStatus.PENDING.value,
            },
        )
        order = Order(**order_row)

        items = tuple(
            OrderLineItem(
                **tx.insert(
                    "order_line_items",
                    {
                        "order_id": order.id,
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "price": item.unit_price,
                    },
                )
            )
            for item in line_items
        )
        logger.debug("Inserted order %s with %d line items", order.id, len(items))
        return OrderWithItems(order=order, items=items)

    def get(self, tx: Transaction, order_id: int) -> Order:
        row = tx.select_one("orders", order_id)
        if row is None:
            raise OrderNotFound(order_id)
        return Order(**row)

    def list_items(self, tx: Transaction, order_id: int) -> tuple[OrderLineItem, ...]:
        return tuple(OrderLineItem(**row) for row in tx.select("order_line_items", order_id=order_id))

    def get_with_items(self, tx: Transaction, order_id: int) -> OrderWithItems:
        """Заказ + позиции с названием товара.

        Raises:
            OrderNotFound: заказа нет
        """
        order = self.get(tx, order_id)
        items = tuple(
            OrderLineItemDetail(**row) for row in tx.fetch_all(_DETAIL_SQL, (order_id,))
        )
        return OrderWithItems(order=order, items=items)

    def set_status(self, tx: Transaction, order_id: int, new_status: OrderStatus) -> Order:
        """Безусловная смена статуса и updated_at."""
        row = tx.update("orders", order_id, {"status": OrderStatus(new_status).value})
        if row is None:
            raise OrderNotFound(order_id)
        return Order(**row)

    def list_orders(self, tx: Transaction) -> tuple[Order, ...]:
        return tuple(Order(**row) for row in tx.select("orders"))

    def list_by_buyer(self, tx: Transaction, buyer_id: int) -> tuple[Order, ...]:
        """История заказов покупателя."""
        return tuple(Order(**row) for row in tx.select("orders", buyer_id=buyer_id))
