"""
Domain models and value objects.

Contains the order aggregate (Order, OrderLineItem), the Product snapshot
and the typed commands accepted by the lifecycle engine.
"""

from src.core.domain.order import (
    CANCELLABLE_STATUSES,
    FORWARD_SEQUENCE,
    TERMINAL_STATUSES,
    CreateOrderCommand,
    Order,
    OrderItemRequest,
    OrderLineItem,
    OrderLineItemDetail,
    OrderStatus,
    OrderWithItems,
    StatusChangeCommand,
)
from src.core.domain.product import Product

__all__ = [
    # Order aggregate
    "Order",
    "OrderLineItem",
    "OrderLineItemDetail",
    "OrderWithItems",
    "OrderStatus",
    "FORWARD_SEQUENCE",
    "TERMINAL_STATUSES",
    "CANCELLABLE_STATUSES",
    # Commands
    "OrderItemRequest",
    "CreateOrderCommand",
    "StatusChangeCommand",
    # Product
    "Product",
]
