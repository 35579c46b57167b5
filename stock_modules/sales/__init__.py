"""
Sales Module (``stock_modules.sales``).

Sales order lifecycle over the stock kernel: confirmation gated by the
availability check, production, dispatch, delivery and cancellation.
Imports from ``stock_kernel`` but never the reverse.
"""

from stock_modules.sales.service import SalesOrderService
from stock_modules.sales.workflows import SALES_ORDER_WORKFLOW

__all__ = ["SALES_ORDER_WORKFLOW", "SalesOrderService"]
