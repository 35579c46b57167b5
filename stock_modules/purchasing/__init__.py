"""
Purchasing Module (``stock_modules.purchasing``).

Purchase order approval, goods receipt into stock, short close and
cancellation.  Imports from ``stock_kernel`` but never the reverse.
"""

from stock_modules.purchasing.service import PurchaseOrderService
from stock_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW

__all__ = ["PURCHASE_ORDER_WORKFLOW", "PurchaseOrderService"]
