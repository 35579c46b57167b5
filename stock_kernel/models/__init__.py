"""Persistence models for the stock kernel."""

from stock_kernel.models.catalog import Bom, BomLine, Sku, SkuType, Vendor, VendorSku
from stock_kernel.models.purchasing import (
    OPEN_SUPPLY_STATUSES,
    PurchaseOrder,
    PurchaseOrderAllocation,
    PurchaseOrderLine,
    PurchaseOrderStatus,
)
from stock_kernel.models.sales import (
    SalesOrder,
    SalesOrderDelivery,
    SalesOrderLine,
    SalesOrderStatus,
)
from stock_kernel.models.stock import (
    MovementDirection,
    MovementType,
    StockBalance,
    StockMovement,
    StockReservation,
)
from stock_kernel.models.zone import Zone, ZoneType

__all__ = [
    "Bom",
    "BomLine",
    "Sku",
    "SkuType",
    "Vendor",
    "VendorSku",
    "Zone",
    "ZoneType",
    "StockMovement",
    "StockBalance",
    "StockReservation",
    "MovementDirection",
    "MovementType",
    "SalesOrder",
    "SalesOrderLine",
    "SalesOrderDelivery",
    "SalesOrderStatus",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderAllocation",
    "PurchaseOrderStatus",
    "OPEN_SUPPLY_STATUSES",
]
