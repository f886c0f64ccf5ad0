"""Order Lifecycle Engine - создание, отмена и продвижение заказа.

Единственное место, где обеспечиваются инварианты между заказом и остатками:
- create_order: резервирование всех позиций + запись заказа в одной транзакции
- cancel_order: возврат остатков + CANCELLED в одной транзакции
- advance_status: переход вперёд по state machine

Любая ошибка откатывает транзакцию целиком и передаётся вызывающему коду
как typed error (src.core.errors). Повторов внутри engine нет.
"""

import logging
from typing import Iterable, List, Optional, Union

from src.core.domain.order import (
    CreateOrderCommand,
    Order,
    OrderItemRequest,
    OrderStatus,
    OrderWithItems,
    StatusChangeCommand,
)
from src.core.errors import AlreadyCancelled, InvalidTransition, NotCancellable
from src.inventory.ledger import InventoryLedger, Release
from src.orders.repository import NewLineItem, OrderRepository
from src.orders.state_machine import LifecycleConfig, OrderStateMachine
from src.persistence.gateway import PersistenceGateway, Transaction

logger = logging.getLogger(__name__)

ItemInput = Union[OrderItemRequest, dict]


class OrderLifecycleEngine:
    """Order Lifecycle Engine.

    Зависимости внедряются через конструктор; gateway (и его пул соединений)
    принадлежит вызывающему коду и закрывается им же.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        ledger: Optional[InventoryLedger] = None,
        repository: Optional[OrderRepository] = None,
        config: Optional[LifecycleConfig] = None,
    ):
        self.gateway = gateway
        self.ledger = ledger or InventoryLedger()
        self.repository = repository or OrderRepository()
        self.config = config or LifecycleConfig()
        self.state_machine = OrderStateMachine(self.config)

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_order(self, buyer_id: int, items: Iterable[ItemInput]) -> OrderWithItems:
        """Создание заказа.

        Args:
            buyer_id: покупатель
            items: [{product_id, quantity}, ...] - цена из запроса не принимается

        Returns:
            OrderWithItems (status PENDING)

        Raises:
            pydantic.ValidationError: некорректный ввод (до открытия транзакции)
            ProductNotFound, OutOfStock: резервирование не удалось, ничего не записано
        """
        command = CreateOrderCommand(buyer_id=buyer_id, items=tuple(items))
        return self.execute_create(command)

    def execute_create(self, command: CreateOrderCommand) -> OrderWithItems:
        result = self.gateway.with_transaction(lambda tx: self._create_in_tx(tx, command))
        logger.info(
            "Order %s created: buyer_id=%s items=%d total=%s",
            result.order.id, command.buyer_id, len(result.items), result.order.total_amount,
        )
        return result

    def _create_in_tx(self, tx: Transaction, command: CreateOrderCommand) -> OrderWithItems:
        line_items: List[NewLineItem] = []
        total_amount = 0

        for item in command.items:
            reservation = self.ledger.reserve(tx, item.product_id, item.quantity)
            line_items.append(
                NewLineItem(
                    product_id=reservation.product_id,
                    quantity=reservation.quantity,
                    unit_price=reservation.unit_price,
                )
            )
            total_amount += reservation.subtotal

        return self.repository.create(tx, command.buyer_id, line_items, total_amount)

    # =========================================================================
    # CANCEL
    # =========================================================================

    def cancel_order(self, order_id: int) -> Order:
        """Отмена заказа с возвратом остатков.

        Raises:
            OrderNotFound: заказа нет
            AlreadyCancelled: заказ уже отменён
            NotCancellable: заказ SHIPPED или DELIVERED
        """
        order = self.gateway.with_transaction(
            lambda tx: self._cancel_in_tx(tx, self.repository.get(tx, order_id))
        )
        logger.info("Order %s cancelled", order_id)
        return order

    def _cancel_in_tx(self, tx: Transaction, order: Order) -> Order:
        if order.status == OrderStatus.CANCELLED:
            raise AlreadyCancelled(order.id)
        if not order.is_cancellable:
            raise NotCancellable(order.id, order.status)

        releases: List[Release] = [
            self.ledger.release(tx, item.product_id, item.quantity)
            for item in self.repository.list_items(tx, order.id)
        ]
        missing = [r.product_id for r in releases if r.product_missing]
        if missing:
            logger.warning("Order %s cancelled with missing products: %s", order.id, missing)

        return self.repository.set_status(tx, order.id, OrderStatus.CANCELLED)

    # =========================================================================
    # ADVANCE
    # =========================================================================

    def advance_status(self, order_id: int, new_status: Union[OrderStatus, str]) -> Order:
        """Смена статуса заказа.

        Запрос на CANCELLED выполняется как cancel_order (с возвратом остатков).

        Raises:
            OrderNotFound: заказа нет
            InvalidTransition: переход назад, no-op или из терминального статуса
            AlreadyCancelled, NotCancellable: для целевого статуса CANCELLED
        """
        command = StatusChangeCommand(order_id=order_id, status=new_status)
        return self.execute_status_change(command)

    def execute_status_change(self, command: StatusChangeCommand) -> Order:
        order = self.gateway.with_transaction(lambda tx: self._advance_in_tx(tx, command))
        logger.info("Order %s status -> %s", command.order_id, order.status.value)
        return order

    def _advance_in_tx(self, tx: Transaction, command: StatusChangeCommand) -> Order:
        order = self.repository.get(tx, command.order_id)

        if command.status == OrderStatus.CANCELLED:
            return self._cancel_in_tx(tx, order)

        transition = self.state_machine.evaluate_transition(order.status, command.status)
        if not transition.allowed:
            logger.warning("Order %s: %s", order.id, transition.details)
            raise InvalidTransition(order.id, order.status, command.status, transition.reason)

        return self.repository.set_status(tx, order.id, transition.new_status)

    # =========================================================================
    # READ
    # =========================================================================

    def get_order(self, order_id: int) -> OrderWithItems:
        """Заказ с позициями и названиями товаров.

        Raises:
            OrderNotFound: заказа нет
        """
        return self.gateway.with_transaction(
            lambda tx: self.repository.get_with_items(tx, order_id)
        )

    def list_orders(self) -> tuple[Order, ...]:
        return self.gateway.with_transaction(self.repository.list_orders)

    def list_user_orders(self, buyer_id: int) -> tuple[Order, ...]:
        return self.gateway.with_transaction(
            lambda tx: self.repository.list_by_buyer(tx, buyer_id)
        )
