"""Inventory Ledger - единственный путь изменения остатков товаров.

Операции:
- reserve: проверка остатка и списание + снапшот цены (при создании заказа)
- release: возврат остатка (при отмене заказа), best-effort

Обе операции выполняются внутри транзакции вызывающего кода и видны
только после её commit. Ledger сам транзакций не открывает.
"""

import logging
from dataclasses import dataclass

from src.core.domain.product import Product
from src.core.errors import OutOfStock, ProductNotFound
from src.persistence.gateway import Transaction, utcnow_iso

logger = logging.getLogger(__name__)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class Reservation:
    """Результат резервирования одной позиции."""

    product_id: int
    quantity: int
    unit_price: int  # цена товара на момент резервирования

    stock_before: int
    stock_after: int

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Release:
    """Результат возврата остатка."""

    product_id: int
    quantity: int
    product_missing: bool  # товар удалён после создания заказа, остаток не возвращён
    stock_after: int | None


# =============================================================================
# LEDGER
# =============================================================================


def _validate_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")


class InventoryLedger:
    """Inventory Ledger: atomic decrement/increment остатков.

    Списание выполняется guarded update'ом:
        UPDATE ... WHERE id = ? AND stock >= ? AND version = ?
    Если строка изменилась между чтением и записью (другая транзакция без
    write lock), update не затронет ни одной строки и резервирование
    завершится OutOfStock с перечитанным остатком.
    """

    def read_product(self, tx: Transaction, product_id: int) -> Product:
        """Чтение товара внутри транзакции.

        Raises:
            ProductNotFound: товара нет
        """
        row = tx.select_one("products", product_id)
        if row is None:
            raise ProductNotFound(product_id)
        return Product(**row)

    def reserve(self, tx: Transaction, product_id: int, quantity: int) -> Reservation:
        """Резервирование quantity единиц товара.

        Args:
            tx: транзакция вызывающего кода
            product_id: товар
            quantity: количество (> 0)

        Returns:
            Reservation с ценой товара на момент резервирования

        Raises:
            ProductNotFound: товара нет
            OutOfStock: quantity > stock
        """
        _validate_quantity(quantity)
        product = self.read_product(tx, product_id)

        if not product.can_reserve(quantity):
            logger.warning(
                "Out of stock: product_id=%s requested=%s available=%s",
                product_id, quantity, product.stock,
            )
            raise OutOfStock(product_id, requested=quantity, available=product.stock)

        cur = tx.execute(
            "UPDATE products SET stock = stock - ?, version = version + 1, updated_at = ? "
            "WHERE id = ? AND stock >= ? AND version = ?",
            (quantity, utcnow_iso(), product_id, quantity, product.version),
        )
        if cur.rowcount != 1:
            # Строка изменена конкурентной транзакцией
            current = self.read_product(tx, product_id)
            raise OutOfStock(product_id, requested=quantity, available=current.stock)

        stock_after = product.stock - quantity
        logger.debug(
            "Reserved product_id=%s qty=%s price=%s stock %s -> %s",
            product_id, quantity, product.price, product.stock, stock_after,
        )
        return Reservation(
            product_id=product_id,
            quantity=quantity,
            unit_price=product.price,
            stock_before=product.stock,
            stock_after=stock_after,
        )

    def release(self, tx: Transaction, product_id: int, quantity: int) -> Release:
        """Возврат quantity единиц товара на склад.

        Отсутствующий товар не прерывает транзакцию: событие логируется и
        помечается в Release.product_missing.
        """
        _validate_quantity(quantity)

        cur = tx.execute(
            "UPDATE products SET stock = stock + ?, version = version + 1, updated_at = ? "
            "WHERE id = ?",
            (quantity, utcnow_iso(), product_id),
        )
        if cur.rowcount == 0:
            logger.warning(
                "Release skipped: product_id=%s no longer exists (qty=%s)",
                product_id, quantity,
            )
            return Release(
                product_id=product_id,
                quantity=quantity,
                product_missing=True,
                stock_after=None,
            )

        stock_after = self.read_product(tx, product_id).stock
        logger.debug("Released product_id=%s qty=%s stock -> %s", product_id, quantity, stock_after)
        return Release(
            product_id=product_id,
            quantity=quantity,
            product_missing=False,
            stock_after=stock_after,
        )
