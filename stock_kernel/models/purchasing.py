"""
Module: stock_kernel.models.purchasing
Responsibility: Purchase orders, their lines, and allocations of PO-line
    supply to sales order lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - received_qty + short_closed_qty <= quantity on every PO line.
    - Sum of allocations per PO line <= PO line quantity, and per SO line
      <= SO line quantity (service-level, under row locks).
    - vendor_id is nullable only for drafts grouped under "no vendor"; such
      an order cannot be approved until a vendor is assigned.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    RECEIVED = "RECEIVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


# Statuses whose lines still represent expected supply
OPEN_SUPPLY_STATUSES = (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.APPROVED)


class PurchaseOrder(TrackedBase):
    """
    Supply commitment to a vendor.

    ``source_sales_order_id`` links a planner-drafted order back to the
    sales order whose shortage it covers.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("company_id", "po_number", name="uq_purchase_order_number"),
        Index("idx_po_vendor_status", "company_id", "vendor_id", "status"),
        Index("idx_po_source_so", "source_sales_order_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)

    vendor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vendors.id"),
        nullable=True,
    )

    status: Mapped[PurchaseOrderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT,
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    source_sales_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    received_at: Mapped[datetime | None] = mapped_column(nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} {self.status}>"


class PurchaseOrderLine(TrackedBase):
    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_po_line_quantity_positive"),
        CheckConstraint(
            "received_qty + short_closed_qty <= quantity",
            name="ck_po_line_fulfilment_bounded",
        ),
        Index("idx_po_line_order", "purchase_order_id"),
        Index("idx_po_line_sku", "company_id", "sku_id"),
        Index("idx_po_line_source_so", "source_sales_order_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_orders.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Sales order whose shortage this line was drafted to cover
    source_sales_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=True,
    )

    received_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    short_closed_qty: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="lines")

    @property
    def open_qty(self) -> Decimal:
        remaining = self.quantity - self.received_qty - self.short_closed_qty
        return remaining if remaining > 0 else Decimal("0")

    def __repr__(self) -> str:
        return f"<PurchaseOrderLine {self.line_no} sku={self.sku_id} qty={self.quantity}>"


class PurchaseOrderAllocation(TrackedBase):
    """Planning link committing part of a PO line's supply to an SO line."""

    __tablename__ = "purchase_order_allocations"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_allocation_quantity_positive"),
        Index("idx_allocation_po_line", "po_line_id"),
        Index("idx_allocation_so_line", "so_line_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    po_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_order_lines.id"),
        nullable=False,
    )

    so_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_order_lines.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderAllocation po_line={self.po_line_id} "
            f"so_line={self.so_line_id} qty={self.quantity}>"
        )
