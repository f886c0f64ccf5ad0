"""
Contract Validation Module

Валидация JSON контрактов между ядром заказов и HTTP слоем.
"""

from .validators import (
    ContractValidator,
    CreateOrderRequestValidator,
    OrderDetailValidator,
    SchemaLoader,
    StatusUpdateRequestValidator,
    validate_create_order_request,
    validate_order_detail,
    validate_status_update_request,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "CreateOrderRequestValidator",
    "StatusUpdateRequestValidator",
    "OrderDetailValidator",
    # Functions
    "validate_create_order_request",
    "validate_status_update_request",
    "validate_order_detail",
]
