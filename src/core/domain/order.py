"""
Order - Модели заказа и его позиций

Immutable Pydantic модели order aggregate:
- Order: заголовок заказа (buyer, total, status)
- OrderLineItem: позиция заказа со снапшотом цены на момент резервирования
- OrderLineItemDetail: позиция + название товара (для отображения)
- OrderWithItems: заказ вместе с позициями

Команды (CreateOrderCommand, StatusChangeCommand) - фиксированная типизированная
форма входных данных для каждой операции жизненного цикла вместо
произвольных patch-словарей.
"""

from datetime import datetime
from enum import Enum
from typing import Final

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class OrderStatus(str, Enum):
    """Статус заказа"""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Порядок прямого продвижения заказа (CANCELLED - отдельная ветка)
FORWARD_SEQUENCE: Final[tuple[OrderStatus, ...]] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES: Final[frozenset[OrderStatus]] = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.DELIVERED}
)

CANCELLABLE_STATUSES: Final[frozenset[OrderStatus]] = frozenset(
    {OrderStatus.PENDING, OrderStatus.PROCESSING}
)


# =============================================================================
# ORDER MODELS
# =============================================================================


class Order(BaseModel):
    """
    Заголовок заказа.

    total_amount фиксируется при создании и дальше не меняется;
    status меняется только через OrderLifecycleEngine.
    """

    id: int = Field(..., gt=0, description="Идентификатор заказа")
    buyer_id: int = Field(..., gt=0, description="Идентификатор покупателя")
    total_amount: int = Field(..., ge=0, description="Сумма заказа (минимальные единицы валюты)")
    status: OrderStatus = Field(..., description="Текущий статус заказа")

    created_at: datetime = Field(..., description="Время создания (UTC)")
    updated_at: datetime = Field(..., description="Время последнего изменения (UTC)")

    model_config = {"frozen": True}

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATUSES


class OrderLineItem(BaseModel):
    """
    Позиция заказа.

    price - снапшот цены товара на момент резервирования, а не ссылка
    на текущую цену товара.
    """

    id: int = Field(..., gt=0, description="Идентификатор позиции")
    order_id: int = Field(..., gt=0, description="Заказ-владелец")
    product_id: int = Field(..., gt=0, description="Товар")
    quantity: int = Field(..., gt=0, description="Количество")
    price: int = Field(..., ge=0, description="Цена за единицу на момент заказа")

    created_at: datetime = Field(..., description="Время создания (UTC)")
    updated_at: datetime = Field(..., description="Время последнего изменения (UTC)")

    model_config = {"frozen": True}

    @property
    def subtotal(self) -> int:
        """Стоимость позиции: price × quantity."""
        return self.price * self.quantity


class OrderLineItemDetail(OrderLineItem):
    """Позиция заказа с денормализованным названием товара.

    product_name равен None если товар был удалён после создания заказа.
    """

    product_name: str | None = Field(None, description="Название товара")


class OrderWithItems(BaseModel):
    """Заказ вместе со всеми позициями."""

    order: Order
    items: tuple[OrderLineItemDetail | OrderLineItem, ...] = Field(default_factory=tuple)

    model_config = {"frozen": True}

    @property
    def items_total(self) -> int:
        """Сумма subtotal по позициям (должна совпадать с order.total_amount)."""
        return sum(item.subtotal for item in self.items)

    def to_dict(self) -> dict:
        """Плоское представление для HTTP слоя (формат order_detail)."""
        data = self.order.model_dump(mode="json")
        data["items"] = [item.model_dump(mode="json") for item in self.items]
        return data


# =============================================================================
# COMMANDS
# =============================================================================


class OrderItemRequest(BaseModel):
    """Запрошенная позиция: только товар и количество.

    Цена из запроса не принимается - она берётся из товара при резервировании.
    """

    product_id: int = Field(..., gt=0, description="Идентификатор товара")
    quantity: int = Field(..., gt=0, description="Запрошенное количество")

    model_config = {"frozen": True, "extra": "forbid"}


class CreateOrderCommand(BaseModel):
    """Команда создания заказа."""

    buyer_id: int = Field(..., gt=0, description="Идентификатор покупателя")
    items: tuple[OrderItemRequest, ...] = Field(..., min_length=1, description="Позиции заказа")

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def from_request(cls, data: dict) -> "CreateOrderCommand":
        """Команда из тела запроса create_order_request (user_id → buyer_id)."""
        return cls(buyer_id=data["user_id"], items=data["items"])


class StatusChangeCommand(BaseModel):
    """Команда смены статуса заказа."""

    order_id: int = Field(..., gt=0, description="Идентификатор заказа")
    status: OrderStatus = Field(..., description="Целевой статус")
