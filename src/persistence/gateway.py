"""Persistence Gateway - транзакционное хранилище для ядра заказов.

Предоставляет:
- with_transaction(fn) / transaction(): одна атомарная единица работы
  (commit при нормальном выходе, rollback при любом исключении)
- Transaction: row-level select/insert/update по primary key и по
  равенству внешних ключей
- ConnectionPool: пул соединений с управляемым жизненным циклом,
  внедряется в gateway вместо создания соединения на каждый вызов

Изоляция: каждая транзакция открывается через BEGIN IMMEDIATE, то есть
берёт write lock базы до первого чтения. Read-then-write по строке товара
атомарен относительно других соединений, oversell невозможен.
"""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Final, Iterator, List, Optional, Protocol, TypeVar

from src.core.domain.product import Product

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# SCHEMA
# =============================================================================

SCHEMA_DDL: Final[str] = """
CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    price INTEGER NOT NULL CHECK (price >= 0),
    stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    buyer_id INTEGER NOT NULL,
    total_amount INTEGER NOT NULL CHECK (total_amount >= 0),
    status TEXT NOT NULL DEFAULT 'PENDING',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS order_line_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id),
    product_id INTEGER NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    price INTEGER NOT NULL CHECK (price >= 0),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_buyer_id ON orders(buyer_id);
CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
CREATE INDEX IF NOT EXISTS idx_order_line_items_order_id ON order_line_items(order_id);
CREATE INDEX IF NOT EXISTS idx_order_line_items_product_id ON order_line_items(product_id);
"""

# Разрешённые идентификаторы (таблицы и колонки подставляются в SQL напрямую)
TABLE_COLUMNS: Final[Dict[str, frozenset]] = {
    "products": frozenset(
        {"id", "name", "price", "stock", "version", "created_at", "updated_at"}
    ),
    "orders": frozenset(
        {"id", "buyer_id", "total_amount", "status", "created_at", "updated_at"}
    ),
    "order_line_items": frozenset(
        {"id", "order_id", "product_id", "quantity", "price", "created_at", "updated_at"}
    ),
}


def utcnow_iso() -> str:
    """Текущее время UTC в ISO 8601."""
    return datetime.now(timezone.utc).isoformat()


def _check_identifiers(table: str, columns) -> None:
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"Unknown table: {table}")
    unknown = set(columns) - allowed
    if unknown:
        raise ValueError(f"Unknown columns for {table}: {sorted(unknown)}")


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class GatewayConfig:
    """Конфигурация sqlite gateway.

    db_path=":memory:" поддерживается только с одним соединением в пуле
    (каждое sqlite соединение к :memory: - отдельная база).
    """

    db_path: str | Path = "state/orders.sqlite"
    timeout_sec: float = 30.0  # busy timeout и ожидание свободного соединения
    pool_size: int = 4
    journal_mode: str = "WAL"
    foreign_keys: bool = True

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"


# =============================================================================
# CONNECTION POOL
# =============================================================================


class ConnectionPool:
    """Пул sqlite соединений.

    Соединения создаются лениво до pool_size. Одно соединение в каждый момент
    используется одним потоком (acquire/release).
    """

    def __init__(self, config: GatewayConfig):
        self.config = config
        self._size = 1 if config.is_memory else max(1, config.pool_size)
        self._idle: "queue.Queue[sqlite3.Connection]" = queue.Queue(maxsize=self._size)
        self._all: List[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._closed = False

        if not config.is_memory:
            Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def size(self) -> int:
        return self._size

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(
            str(self.config.db_path),
            timeout=self.config.timeout_sec,
            isolation_level=None,  # BEGIN/COMMIT управляются вручную
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row
        con.execute(f"PRAGMA journal_mode={self.config.journal_mode}")
        con.execute(f"PRAGMA foreign_keys={'ON' if self.config.foreign_keys else 'OFF'}")
        con.execute("PRAGMA synchronous=NORMAL")
        con.execute(f"PRAGMA busy_timeout={int(self.config.timeout_sec * 1000)}")
        return con

    def acquire(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("Connection pool is closed")

        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            if len(self._all) < self._size:
                con = self._connect()
                self._all.append(con)
                logger.debug("Opened sqlite connection %d/%d", len(self._all), self._size)
                return con

        try:
            return self._idle.get(timeout=self.config.timeout_sec)
        except queue.Empty:
            raise TimeoutError(
                f"No free connection within {self.config.timeout_sec}s (pool_size={self._size})"
            ) from None

    def release(self, con: sqlite3.Connection) -> None:
        if self._closed:
            con.close()
            return
        self._idle.put_nowait(con)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self.acquire()
        try:
            yield con
        finally:
            self.release(con)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            for con in self._all:
                con.close()
            self._all.clear()
        logger.debug("Connection pool closed")


# =============================================================================
# TRANSACTION HANDLE
# =============================================================================


class Transaction:
    """Транзакционный handle: все операции выполняются в одной транзакции."""

    def __init__(self, con: sqlite3.Connection):
        self._con = con

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        return self._con.execute(sql, params)

    def fetch_all(self, sql: str, params: tuple | list = ()) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._con.execute(sql, params).fetchall()]

    def select(
        self,
        table: str,
        order_by: Optional[str] = "id",
        **filters: Any,
    ) -> List[Dict[str, Any]]:
        """SELECT * с фильтрами по равенству колонок (AND)."""
        _check_identifiers(table, list(filters) + ([order_by] if order_by else []))

        sql = f"SELECT * FROM {table}"
        if filters:
            sql += " WHERE " + " AND ".join(f"{col} = ?" for col in filters)
        if order_by:
            sql += f" ORDER BY {order_by}"
        return self.fetch_all(sql, tuple(filters.values()))

    def select_one(self, table: str, row_id: int) -> Optional[Dict[str, Any]]:
        rows = self.select(table, order_by=None, id=row_id)
        return rows[0] if rows else None

    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """INSERT одной строки; created_at/updated_at проставляются если не заданы."""
        now = utcnow_iso()
        row = {"created_at": now, "updated_at": now, **values}
        _check_identifiers(table, row)

        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        cur = self._con.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(row.values()),
        )
        return self.select_one(table, cur.lastrowid)

    def update(self, table: str, row_id: int, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """UPDATE по primary key; None если строки нет."""
        row = {**values, "updated_at": values.get("updated_at", utcnow_iso())}
        _check_identifiers(table, row)

        assignments = ", ".join(f"{col} = ?" for col in row)
        cur = self._con.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            (*row.values(), row_id),
        )
        if cur.rowcount == 0:
            return None
        return self.select_one(table, row_id)


# =============================================================================
# GATEWAY
# =============================================================================


class PersistenceGateway(Protocol):
    """Интерфейс транзакционного хранилища, от которого зависит ядро."""

    def with_transaction(self, fn: Callable[[Transaction], T]) -> T: ...

    def transaction(self): ...

    def close(self) -> None: ...


class SqliteGateway:
    """Persistence Gateway поверх sqlite3.

    Usage:
        gateway = SqliteGateway(GatewayConfig(db_path="state/orders.sqlite"))
        order = gateway.with_transaction(lambda tx: repo.get(tx, 1))
        gateway.close()
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        pool: Optional[ConnectionPool] = None,
    ):
        self.config = config or GatewayConfig()
        self.pool = pool or ConnectionPool(self.config)
        self._init_db()

    def _init_db(self) -> None:
        with self.pool.connection() as con:
            con.executescript(SCHEMA_DDL)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Атомарная единица работы.

        Raises:
            любое исключение из тела блока - после rollback
        """
        with self.pool.connection() as con:
            con.execute("BEGIN IMMEDIATE")
            logger.debug("BEGIN IMMEDIATE")
            try:
                yield Transaction(con)
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK")
                logger.debug("ROLLBACK")
                raise
            else:
                try:
                    con.execute("COMMIT")
                except BaseException:
                    # В пул соединение возвращается только без открытой транзакции
                    if con.in_transaction:
                        con.execute("ROLLBACK")
                    logger.warning("COMMIT failed, transaction rolled back")
                    raise
                logger.debug("COMMIT")

    def with_transaction(self, fn: Callable[[Transaction], T]) -> T:
        with self.transaction() as tx:
            return fn(tx)

    def add_product(self, name: str, price: int, stock: int = 0) -> Product:
        """Seed товара (заменяет внешний CRUD товаров в тестах и демо)."""
        with self.transaction() as tx:
            row = tx.insert("products", {"name": name, "price": price, "stock": stock})
        return Product(**row)

    def get_product(self, product_id: int) -> Optional[Product]:
        with self.transaction() as tx:
            row = tx.select_one("products", product_id)
        return Product(**row) if row else None

    def close(self) -> None:
        self.pool.close()

    def __enter__(self) -> "SqliteGateway":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
