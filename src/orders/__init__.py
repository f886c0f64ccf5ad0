"""Orders - order aggregate, state machine и lifecycle engine.

- repository: создание и чтение заказа вместе с позициями
- state_machine: допустимые переходы статуса
- engine: create_order / cancel_order / advance_status в одной транзакции
"""

from .engine import OrderLifecycleEngine
from .repository import NewLineItem, OrderRepository
from .state_machine import LifecycleConfig, OrderStateMachine, OrderTransitionResult

__all__ = [
    "OrderLifecycleEngine",
    "OrderRepository",
    "NewLineItem",
    "OrderStateMachine",
    "OrderTransitionResult",
    "LifecycleConfig",
]
