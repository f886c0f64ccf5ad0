"""
Typed errors ядра заказов.

Каждая ошибка прерывает текущую транзакцию и передаётся вызывающему коду
как есть. Структурированные детали (product_id, количества, текущий статус)
доступны как атрибуты и через to_dict() - HTTP слой строит ответ из них.
"""

from typing import Any, Dict

from src.core.domain.order import OrderStatus


class OrderError(Exception):
    """Базовая ошибка ядра заказов."""

    code: str = "order_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        """Сериализуемое представление для HTTP ответа."""
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        for key, value in self.details.items():
            payload[key] = value.value if isinstance(value, OrderStatus) else value
        return payload


# =============================================================================
# INVENTORY
# =============================================================================


class ProductNotFound(OrderError):
    """Товар с указанным id не существует."""

    code = "product_not_found"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id


class OutOfStock(OrderError):
    """Запрошенное количество превышает остаток."""

    code = "out_of_stock"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Product {product_id} is out of stock: requested={requested}, available={available}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


# =============================================================================
# ORDERS
# =============================================================================


class OrderNotFound(OrderError):
    code = "order_not_found"

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", order_id=order_id)
        self.order_id = order_id


class AlreadyCancelled(OrderError):
    code = "already_cancelled"

    def __init__(self, order_id: int):
        super().__init__(
            f"Order {order_id} is already cancelled",
            order_id=order_id,
            current_status=OrderStatus.CANCELLED,
        )
        self.order_id = order_id
        self.current_status = OrderStatus.CANCELLED


class NotCancellable(OrderError):
    """Заказ уже отгружен или доставлен."""

    code = "not_cancellable"

    def __init__(self, order_id: int, current_status: OrderStatus):
        super().__init__(
            f"Order {order_id} cannot be cancelled in status {current_status.value}",
            order_id=order_id,
            current_status=current_status,
        )
        self.order_id = order_id
        self.current_status = current_status


class InvalidTransition(OrderError):
    """Запрошенная смена статуса не является допустимым переходом."""

    code = "invalid_transition"

    def __init__(
        self,
        order_id: int,
        current_status: OrderStatus,
        requested_status: OrderStatus,
        reason: str,
    ):
        super().__init__(
            f"Order {order_id}: transition {current_status.value} -> "
            f"{requested_status.value} rejected ({reason})",
            order_id=order_id,
            current_status=current_status,
            requested_status=requested_status,
            reason=reason,
        )
        self.order_id = order_id
        self.current_status = current_status
        self.requested_status = requested_status
        self.reason = reason


__all__ = [
    "OrderError",
    "ProductNotFound",
    "OutOfStock",
    "OrderNotFound",
    "AlreadyCancelled",
    "NotCancellable",
    "InvalidTransition",
]
