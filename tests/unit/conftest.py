"""Общие fixtures: sqlite gateway во временной директории и engine поверх него."""

import pytest

from src.orders import OrderLifecycleEngine
from src.persistence import GatewayConfig, SqliteGateway


@pytest.fixture
def gateway(tmp_path):
    """Gateway на файловой sqlite базе (изолированной для каждого теста)."""
    gw = SqliteGateway(GatewayConfig(db_path=tmp_path / "orders.sqlite", timeout_sec=10.0))
    yield gw
    gw.close()


@pytest.fixture
def engine(gateway):
    return OrderLifecycleEngine(gateway)


@pytest.fixture
def product_p(gateway):
    """Товар P: stock=10, price=500."""
    return gateway.add_product(name="Smartphone", price=500, stock=10)


@pytest.fixture
def product_q(gateway):
    """Товар Q: stock=5, price=1200."""
    return gateway.add_product(name="Headphones", price=1200, stock=5)
