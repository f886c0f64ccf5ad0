"""Inventory - учёт остатков товаров (reserve/release)."""

from .ledger import InventoryLedger, Release, Reservation

__all__ = [
    "InventoryLedger",
    "Reservation",
    "Release",
]
