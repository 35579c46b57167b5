"""
Stock Kernel

The inventory ledger and order-fulfillment reservation engine:
- Append-only stock movement ledger with derived per-zone balances
- Multi-level BOM explosion and raw-material availability
- Reservations against confirmed sales orders
- Shortage-driven draft purchase orders
- Purchase-order to sales-order allocations
"""

__version__ = "0.1.0"
