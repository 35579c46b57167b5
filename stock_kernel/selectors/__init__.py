"""Read-only query selectors."""

from stock_kernel.selectors.balance_selector import BalanceSelector, BalanceView, MovementView
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.directory_selector import SqlSkuDirectory, SqlZoneDirectory
from stock_kernel.selectors.order_selector import AllocationView, OrderSelector

__all__ = [
    "AllocationView",
    "BalanceSelector",
    "BalanceView",
    "BaseSelector",
    "MovementView",
    "OrderSelector",
    "SqlSkuDirectory",
    "SqlZoneDirectory",
]
