"""
Stock Modules.

Thin orchestration layers over the Stock Kernel.
Each module contains:
- Workflows (the document lifecycle as a state machine)
- A service that owns the unit of work for each operation and composes
  kernel services inside it

Modules:
- Sales: order confirmation, cancellation, production, dispatch, delivery
- Purchasing: approval, goods receipt, short close, cancellation

Stock arithmetic lives in the kernel; modules only decide when to call it.
"""

from stock_modules import purchasing, sales

__all__ = ["purchasing", "sales"]
