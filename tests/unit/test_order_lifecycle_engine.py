"""Тесты для Order Lifecycle Engine.

Coverage:
- Сценарии: создание, нехватка остатка, отмена, отмена после отгрузки,
  конкурентные заказы на один товар
- Свойства: атомарность, отсутствие oversell, round trip reserve+release,
  снапшот цены, терминальность статусов
- advance_status: переходы вперёд, InvalidTransition, CANCELLED через отмену
- Чтение: get_order, list_orders, list_user_orders
"""

import threading

import pytest
from pydantic import ValidationError

from src.core.contracts import validate_order_detail
from src.core.domain.order import OrderItemRequest, OrderStatus
from src.core.errors import (
    AlreadyCancelled,
    InvalidTransition,
    NotCancellable,
    OrderNotFound,
    OutOfStock,
    ProductNotFound,
)
from src.orders import LifecycleConfig, OrderLifecycleEngine


def stock_of(gateway, product) -> int:
    return gateway.get_product(product.id).stock


def order_count(gateway) -> int:
    with gateway.transaction() as tx:
        return len(tx.select("orders")) + len(tx.select("order_line_items"))


# =============================================================================
# SCENARIOS
# =============================================================================


class TestScenarios:
    def test_create_order_reserves_stock(self, gateway, engine, product_p):
        """P: stock=10, price=500; заказ 3 шт → total=1500, stock=7."""
        result = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 3}])

        assert result.order.total_amount == 1500
        assert result.order.status == OrderStatus.PENDING
        assert len(result.items) == 1
        assert result.items[0].price == 500
        assert result.items[0].quantity == 3
        assert stock_of(gateway, product_p) == 7

    def test_out_of_stock_leaves_stock_unchanged(self, gateway, engine):
        """P: stock=2; заказ 5 шт → OutOfStock{requested:5, available:2}."""
        product = gateway.add_product("Tablet", price=500, stock=2)

        with pytest.raises(OutOfStock) as exc_info:
            engine.create_order(buyer_id=1, items=[{"product_id": product.id, "quantity": 5}])

        assert exc_info.value.requested == 5
        assert exc_info.value.available == 2
        assert stock_of(gateway, product) == 2
        assert order_count(gateway) == 0

    def test_cancel_pending_order_restores_stock(self, gateway, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 3}])

        cancelled = engine.cancel_order(created.order.id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert stock_of(gateway, product_p) == 10

    def test_cancel_shipped_order_rejected(self, gateway, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 3}])
        engine.advance_status(created.order.id, OrderStatus.PROCESSING)
        shipped = engine.advance_status(created.order.id, OrderStatus.SHIPPED)

        with pytest.raises(NotCancellable) as exc_info:
            engine.cancel_order(created.order.id)

        assert exc_info.value.current_status == OrderStatus.SHIPPED
        assert exc_info.value.to_dict()["current_status"] == "SHIPPED"
        assert engine.get_order(created.order.id).order == shipped
        assert stock_of(gateway, product_p) == 7

    def test_concurrent_orders_do_not_oversell(self, gateway, engine, product_p):
        """Два конкурентных заказа по 6 шт при stock=10 → успешен ровно один."""
        barrier = threading.Barrier(2)
        successes, failures = [], []

        def place():
            barrier.wait()
            try:
                successes.append(
                    engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 6}])
                )
            except OutOfStock as e:
                failures.append(e)

        threads = [threading.Thread(target=place) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(successes) == 1
        assert len(failures) == 1
        assert failures[0].requested == 6
        assert failures[0].available == 4
        assert stock_of(gateway, product_p) == 4


# =============================================================================
# PROPERTIES
# =============================================================================


class TestAtomicity:
    def test_missing_product_at_last_item_rolls_back_everything(
        self, gateway, engine, product_p, product_q
    ):
        items = [
            {"product_id": product_p.id, "quantity": 3},
            {"product_id": product_q.id, "quantity": 2},
            {"product_id": 999, "quantity": 1},
        ]

        with pytest.raises(ProductNotFound) as exc_info:
            engine.create_order(buyer_id=1, items=items)

        assert exc_info.value.product_id == 999
        assert stock_of(gateway, product_p) == 10
        assert stock_of(gateway, product_q) == 5
        assert order_count(gateway) == 0

    def test_out_of_stock_at_second_item_rolls_back_first(self, gateway, engine, product_p, product_q):
        items = [
            {"product_id": product_p.id, "quantity": 4},
            {"product_id": product_q.id, "quantity": 6},
        ]

        with pytest.raises(OutOfStock) as exc_info:
            engine.create_order(buyer_id=1, items=items)

        assert exc_info.value.product_id == product_q.id
        assert stock_of(gateway, product_p) == 10
        assert order_count(gateway) == 0

    def test_same_product_twice_counts_against_one_stock(self, gateway, engine, product_p):
        items = [
            {"product_id": product_p.id, "quantity": 6},
            {"product_id": product_p.id, "quantity": 6},
        ]

        with pytest.raises(OutOfStock) as exc_info:
            engine.create_order(buyer_id=1, items=items)

        assert exc_info.value.available == 4
        assert stock_of(gateway, product_p) == 10

    def test_invalid_input_rejected_before_transaction(self, gateway, engine, product_p):
        with pytest.raises(ValidationError):
            engine.create_order(buyer_id=1, items=[])
        with pytest.raises(ValidationError):
            engine.create_order(buyer_id=0, items=[{"product_id": product_p.id, "quantity": 1}])
        with pytest.raises(ValidationError):
            engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 0}])

        assert stock_of(gateway, product_p) == 10


class TestNoOversell:
    def test_many_concurrent_buyers(self, gateway, engine, product_p):
        """8 покупателей по 3 шт при stock=10 → успешны ровно 3."""
        barrier = threading.Barrier(8)
        reserved, lock = [], threading.Lock()

        def place(buyer_id):
            barrier.wait()
            try:
                result = engine.create_order(
                    buyer_id=buyer_id, items=[{"product_id": product_p.id, "quantity": 3}]
                )
            except OutOfStock:
                return
            with lock:
                reserved.append(result.items[0].quantity)

        threads = [threading.Thread(target=place, args=(i + 1,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sum(reserved) == 9
        assert stock_of(gateway, product_p) == 1


class TestRoundTrip:
    def test_cancel_restores_every_product(self, gateway, engine, product_p, product_q):
        created = engine.create_order(
            buyer_id=1,
            items=[
                OrderItemRequest(product_id=product_p.id, quantity=3),
                OrderItemRequest(product_id=product_q.id, quantity=5),
            ],
        )
        assert stock_of(gateway, product_p) == 7
        assert stock_of(gateway, product_q) == 0

        engine.cancel_order(created.order.id)

        assert stock_of(gateway, product_p) == 10
        assert stock_of(gateway, product_q) == 5

    def test_cancel_from_processing(self, gateway, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 2}])
        engine.advance_status(created.order.id, OrderStatus.PROCESSING)

        engine.cancel_order(created.order.id)

        assert stock_of(gateway, product_p) == 10

    def test_cancel_with_deleted_product_succeeds(self, gateway, engine, product_p, product_q):
        created = engine.create_order(
            buyer_id=1,
            items=[
                {"product_id": product_p.id, "quantity": 1},
                {"product_id": product_q.id, "quantity": 1},
            ],
        )
        with gateway.transaction() as tx:
            tx.execute("DELETE FROM products WHERE id = ?", (product_q.id,))

        cancelled = engine.cancel_order(created.order.id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert stock_of(gateway, product_p) == 10


class TestPriceSnapshot:
    def test_price_change_does_not_alter_existing_order(self, gateway, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 2}])

        with gateway.transaction() as tx:
            tx.update("products", product_p.id, {"price": 900})

        detail = engine.get_order(created.order.id)
        assert detail.order.total_amount == 1000
        assert detail.items[0].price == 500

        later = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 2}])
        assert later.order.total_amount == 1800


class TestTerminality:
    @pytest.fixture
    def delivered(self, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 3}])
        engine.advance_status(created.order.id, OrderStatus.PROCESSING)
        engine.advance_status(created.order.id, OrderStatus.SHIPPED)
        return engine.advance_status(created.order.id, OrderStatus.DELIVERED)

    @pytest.fixture
    def cancelled(self, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 3}])
        return engine.cancel_order(created.order.id)

    @pytest.mark.parametrize("target", [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED])
    def test_delivered_rejects_advance(self, gateway, engine, product_p, delivered, target):
        with pytest.raises(InvalidTransition) as exc_info:
            engine.advance_status(delivered.id, target)

        assert exc_info.value.reason == "terminal_state"
        assert engine.get_order(delivered.id).order == delivered
        assert stock_of(gateway, product_p) == 7

    def test_delivered_rejects_cancel(self, gateway, engine, product_p, delivered):
        with pytest.raises(NotCancellable):
            engine.cancel_order(delivered.id)

        assert engine.get_order(delivered.id).order == delivered
        assert stock_of(gateway, product_p) == 7

    def test_cancelled_rejects_cancel(self, gateway, engine, product_p, cancelled):
        with pytest.raises(AlreadyCancelled):
            engine.cancel_order(cancelled.id)

        assert stock_of(gateway, product_p) == 10

    @pytest.mark.parametrize("target", [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.DELIVERED])
    def test_cancelled_rejects_advance(self, gateway, engine, product_p, cancelled, target):
        with pytest.raises(InvalidTransition):
            engine.advance_status(cancelled.id, target)

        assert engine.get_order(cancelled.id).order == cancelled
        assert stock_of(gateway, product_p) == 10


# =============================================================================
# ADVANCE STATUS
# =============================================================================


class TestAdvanceStatus:
    def test_forward_progression(self, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 1}])

        statuses = [
            engine.advance_status(created.order.id, status).status
            for status in ("PROCESSING", "SHIPPED", "DELIVERED")
        ]

        assert statuses == [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]

    def test_backward_rejected(self, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 1}])
        engine.advance_status(created.order.id, OrderStatus.SHIPPED)

        with pytest.raises(InvalidTransition) as exc_info:
            engine.advance_status(created.order.id, OrderStatus.PROCESSING)

        err = exc_info.value
        assert err.current_status == OrderStatus.SHIPPED
        assert err.requested_status == OrderStatus.PROCESSING
        assert err.to_dict()["reason"] == "backward_transition"

    def test_skip_rejected_when_configured(self, gateway, product_p):
        strict = OrderLifecycleEngine(gateway, config=LifecycleConfig(allow_skip_forward=False))
        created = strict.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 1}])

        with pytest.raises(InvalidTransition) as exc_info:
            strict.advance_status(created.order.id, OrderStatus.DELIVERED)

        assert exc_info.value.reason == "skipped_state"

    def test_cancelled_target_releases_stock(self, gateway, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 4}])

        order = engine.advance_status(created.order.id, OrderStatus.CANCELLED)

        assert order.status == OrderStatus.CANCELLED
        assert stock_of(gateway, product_p) == 10

    def test_missing_order(self, engine):
        with pytest.raises(OrderNotFound):
            engine.advance_status(999, OrderStatus.PROCESSING)
        with pytest.raises(OrderNotFound):
            engine.cancel_order(999)

    def test_unknown_status_rejected(self, engine, product_p):
        created = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            engine.advance_status(created.order.id, "RETURNED")


# =============================================================================
# READ
# =============================================================================


class TestRead:
    def test_get_order_matches_order_detail_contract(self, engine, product_p, product_q):
        created = engine.create_order(
            buyer_id=3,
            items=[
                {"product_id": product_p.id, "quantity": 1},
                {"product_id": product_q.id, "quantity": 2},
            ],
        )

        detail = engine.get_order(created.order.id)

        assert detail.order.total_amount == 500 + 2 * 1200
        assert [i.product_name for i in detail.items] == ["Smartphone", "Headphones"]
        validate_order_detail(detail.to_dict())

    def test_list_orders(self, engine, product_p):
        first = engine.create_order(buyer_id=1, items=[{"product_id": product_p.id, "quantity": 1}])
        second = engine.create_order(buyer_id=2, items=[{"product_id": product_p.id, "quantity": 1}])

        assert [o.id for o in engine.list_orders()] == [first.order.id, second.order.id]
        assert [o.id for o in engine.list_user_orders(2)] == [second.order.id]
        assert engine.list_user_orders(42) == ()
