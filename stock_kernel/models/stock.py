"""
Module: stock_kernel.models.stock
Responsibility: The stock ledger (append-only movements), the derived
    per-(company, SKU, zone) balance, and raw-material reservations.
Architecture position: Kernel > Models.  May import from db/base.py only.
    Written exclusively by StockMovementService (movements, balances) and
    ReservationService (reservations).

Invariants enforced:
    - StockMovement rows are never updated or deleted (ORM listeners in
      db/immutability.py raise ImmutabilityViolationError).
    - movement.quantity > 0; the direction column carries the sign.
    - balance.quantity_on_hand == sum of signed movements for its key and is
      never negative (CHECK constraint backs the service-level guard).
    - At most one reservation per (company, sales order line, SKU).

Failure modes:
    - IntegrityError on a second balance row for the same key, or on a
      negative on-hand reaching the database.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class MovementDirection(str, Enum):
    IN = "IN"
    OUT = "OUT"


class MovementType(str, Enum):
    """Business reason for a movement."""

    RECEIPT = "RECEIPT"
    ISSUE = "ISSUE"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    PRODUCE = "PRODUCE"
    SCRAP_SALE = "SCRAP_SALE"


class StockMovement(TrackedBase):
    """
    One immutable ledger entry.

    Contract:
        Records a positive quantity of a SKU entering or leaving a zone, the
        unit cost it moved at, and what caused it (reference type/id).

    Guarantees:
        - Append-only.  Corrections are new ADJUSTMENT movements.
        - ``total_cost == quantity * cost_per_unit`` (quantized).
        - Both legs of a transfer share ``transfer_id``.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        Index("idx_movement_key", "company_id", "sku_id", "zone_id"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_occurred", "occurred_at"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    zone_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("zones.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    direction: Mapped[MovementDirection] = mapped_column(String(3), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    cost_per_unit: Mapped[Decimal] = mapped_column(nullable=False)

    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    transfer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def signed_quantity(self) -> Decimal:
        if self.direction == MovementDirection.OUT:
            return -self.quantity
        return self.quantity

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type} {self.direction} "
            f"{self.quantity} sku={self.sku_id} zone={self.zone_id}>"
        )


class StockBalance(TrackedBase):
    """
    Materialized on-hand quantity and valuation for (company, SKU, zone).

    Created lazily by the first movement for its key and only ever changed
    in the same unit of work as the movement that explains the change.
    """

    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint("company_id", "sku_id", "zone_id", name="uq_balance_key"),
        CheckConstraint("quantity_on_hand >= 0", name="ck_balance_non_negative"),
        Index("idx_balance_company_sku", "company_id", "sku_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    zone_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("zones.id"),
        nullable=False,
    )

    quantity_on_hand: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    cost_per_unit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    last_movement_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockBalance sku={self.sku_id} zone={self.zone_id} "
            f"qty={self.quantity_on_hand} cpu={self.cost_per_unit}>"
        )


class StockReservation(TrackedBase):
    """
    Soft hold of raw material for one sales order line.

    A reservation is active while ``released_at`` is null.  Releasing keeps
    the row for traceability; a later reserve on the same key re-activates
    it.
    """

    __tablename__ = "stock_reservations"

    __table_args__ = (
        UniqueConstraint(
            "company_id", "so_line_id", "sku_id", name="uq_reservation_line_sku",
        ),
        CheckConstraint("quantity >= 0", name="ck_reservation_non_negative"),
        Index("idx_reservation_sku_active", "company_id", "sku_id", "released_at"),
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

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    released_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return self.released_at is None

    def __repr__(self) -> str:
        state = "active" if self.is_active else "released"
        return f"<StockReservation line={self.so_line_id} sku={self.sku_id} {self.quantity} {state}>"
