"""Persistence - транзакционное хранилище (sqlite) для ядра заказов."""

from .gateway import (
    SCHEMA_DDL,
    TABLE_COLUMNS,
    ConnectionPool,
    GatewayConfig,
    PersistenceGateway,
    SqliteGateway,
    Transaction,
    utcnow_iso,
)

__all__ = [
    "SCHEMA_DDL",
    "TABLE_COLUMNS",
    "ConnectionPool",
    "GatewayConfig",
    "PersistenceGateway",
    "SqliteGateway",
    "Transaction",
    "utcnow_iso",
]
