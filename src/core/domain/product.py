"""
Product - Модель товара (снапшот строки products)

Immutable Pydantic модель. Product не является частью order aggregate:
ядро только читает цену и изменяет stock через InventoryLedger.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# =============================================================================
# PRODUCT MODEL
# =============================================================================


class Product(BaseModel):
    """
    Снапшот товара на момент чтения внутри транзакции.

    Инварианты:
    - price в минимальных единицах валюты (int, >= 0)
    - stock никогда не бывает отрицательным
    - version увеличивается при каждом изменении stock через ledger
    """

    id: int = Field(..., gt=0, description="Идентификатор товара")
    name: str = Field(..., min_length=1, description="Название товара")
    price: int = Field(..., ge=0, description="Цена за единицу (минимальные единицы валюты)")
    stock: int = Field(..., ge=0, description="Остаток на складе")
    version: int = Field(default=0, ge=0, description="Версия строки (optimistic check)")

    created_at: datetime | None = Field(None, description="Время создания (UTC)")
    updated_at: datetime | None = Field(None, description="Время обновления (UTC)")

    model_config = {"frozen": True}

    def can_reserve(self, quantity: int) -> bool:
        """True если остатка хватает на quantity единиц."""
        return 0 < quantity <= self.stock
