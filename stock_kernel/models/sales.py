"""
Module: stock_kernel.models.sales
Responsibility: Sales orders, their lines and delivery records, as far as
    the stock kernel needs them (quantities, counters, lifecycle status).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - 0 <= allocated_qty <= quantity and 0 <= delivered_qty <= quantity on
      every line (CHECK constraints backing the service guards).
    - Status moves only along the lifecycle in SalesOrderStatus; the sales
      module is the sole writer of ``status``.

Pricing, tax and customer data live in the order management layer; only
the fields that affect stock are mapped here.
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


class SalesOrderStatus(str, Enum):
    """
    Order lifecycle.

    QUOTE -> CONFIRMED -> PRODUCTION -> DISPATCH -> DELIVERED, and
    CANCELLED from any state before DELIVERED.
    """

    QUOTE = "QUOTE"
    CONFIRMED = "CONFIRMED"
    PRODUCTION = "PRODUCTION"
    DISPATCH = "DISPATCH"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class SalesOrder(TrackedBase):
    __tablename__ = "sales_orders"

    __table_args__ = (
        UniqueConstraint("company_id", "so_number", name="uq_sales_order_number"),
        Index("idx_sales_order_status", "company_id", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    so_number: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[SalesOrderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SalesOrderStatus.QUOTE,
    )

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["SalesOrderLine"]] = relationship(
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<SalesOrder {self.so_number} {self.status}>"


class SalesOrderLine(TrackedBase):
    """
    Demand for a quantity of one SKU.

    ``allocated_qty`` counts purchase-order supply linked to the line;
    ``delivered_qty`` counts what has left through the in-transit zone;
    ``produced_qty`` counts finished units built for the line.
    """

    __tablename__ = "sales_order_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_so_line_quantity_positive"),
        CheckConstraint(
            "allocated_qty >= 0 AND allocated_qty <= quantity",
            name="ck_so_line_allocated_bounded",
        ),
        CheckConstraint(
            "delivered_qty >= 0 AND delivered_qty <= quantity",
            name="ck_so_line_delivered_bounded",
        ),
        Index("idx_so_line_order", "sales_order_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sales_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    allocated_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    delivered_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    produced_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    sales_order: Mapped[SalesOrder] = relationship(back_populates="lines")

    @property
    def open_qty(self) -> Decimal:
        remaining = self.quantity - self.delivered_qty
        return remaining if remaining > 0 else Decimal("0")

    def __repr__(self) -> str:
        return f"<SalesOrderLine {self.line_no} sku={self.sku_id} qty={self.quantity}>"


class SalesOrderDelivery(TrackedBase):
    """One delivery of finished goods against a sales order line."""

    __tablename__ = "sales_order_deliveries"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_delivery_quantity_positive"),
        Index("idx_delivery_line", "so_line_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sales_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_orders.id"),
        nullable=False,
    )

    so_line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales_order_lines.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    delivered_at: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
