"""
Module: stock_kernel.models.catalog
Responsibility: ORM persistence for master data the kernel reads but never
    edits through its own operations: SKUs, bills of materials, vendors and
    vendor price lists.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - sku_type is fixed at creation (RAW or FINISHED).  Enforced by the
      before_update listener in db/immutability.py.
    - (company_id, code) is unique for SKUs and vendors.
    - (sku_id, version) is unique for BOMs; the highest non-deleted version
      is the effective one.

Failure modes:
    - IntegrityError on duplicate codes or BOM versions.
    - ImmutabilityViolationError when changing a SKU's type.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString


class SkuType(str, Enum):
    """Whether a SKU is purchased raw material or a manufactured good."""

    RAW = "RAW"
    FINISHED = "FINISHED"


class Vendor(TrackedBase):
    """
    Supplier of raw material.

    ``po_sequence`` is the per-vendor counter behind purchase order numbers
    (``PO-<code>-<NNNN>``).  It is incremented under a row lock by the
    procurement planner.
    """

    __tablename__ = "vendors"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_vendor_company_code"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    po_sequence: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Vendor {self.code}: {self.name}>"


class Sku(TrackedBase):
    """
    Stock keeping unit.

    Contract:
        A RAW SKU may carry a scrap percentage and a preferred vendor.  A
        FINISHED SKU is expected to have a BOM; one without is treated as
        its own raw leaf by the availability calculator.

    Guarantees:
        - Quantities referencing this SKU are in ``unit_of_measure``.
        - ``last_purchase_price`` is maintained by goods receipt only.
    """

    __tablename__ = "skus"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_sku_company_code"),
        Index("idx_sku_company_type", "company_id", "sku_type"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    sku_type: Mapped[SkuType] = mapped_column(String(20), nullable=False, active_history=True)

    unit_of_measure: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="EA",
    )

    # Percentage of the component lost in production (RAW only)
    scrap_pct: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    standard_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    last_purchase_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    preferred_vendor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vendors.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    preferred_vendor: Mapped[Vendor | None] = relationship()

    @property
    def is_raw(self) -> bool:
        return self.sku_type == SkuType.RAW

    def __repr__(self) -> str:
        return f"<Sku {self.code} ({self.sku_type})>"


class VendorSku(TrackedBase):
    """Vendor's price for a SKU; preferred source of PO line prices."""

    __tablename__ = "vendor_skus"

    __table_args__ = (
        UniqueConstraint("vendor_id", "sku_id", name="uq_vendor_sku"),
    )

    vendor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vendors.id"),
        nullable=False,
    )

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    vendor_sku_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    last_price: Mapped[Decimal | None] = mapped_column(nullable=True)


class Bom(TrackedBase):
    """
    Versioned bill of materials for a FINISHED SKU.

    Only the highest non-deleted version is used for explosion.
    """

    __tablename__ = "boms"

    __table_args__ = (
        UniqueConstraint("sku_id", "version", name="uq_bom_sku_version"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lines: Mapped[list["BomLine"]] = relationship(
        back_populates="bom",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Bom sku={self.sku_id} v{self.version}>"


class BomLine(TrackedBase):
    """Per-unit quantity of one component in a BOM."""

    __tablename__ = "bom_lines"

    __table_args__ = (
        Index("idx_bom_line_bom", "bom_id"),
    )

    bom_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("boms.id"),
        nullable=False,
    )

    component_sku_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("skus.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    # Overrides the component SKU's scrap_pct when set
    scrap_pct: Mapped[Decimal | None] = mapped_column(nullable=True)

    bom: Mapped[Bom] = relationship(back_populates="lines")
