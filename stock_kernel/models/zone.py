"""
Module: stock_kernel.models.zone
Responsibility: Storage zones inside a company's warehouses.
Architecture position: Kernel > Models.  May import from db/base.py only.

Automated flows look zones up by type: goods receipt lands in RAW_MATERIAL,
production output in FINISHED, deliveries leave through IN_TRANSIT.  One
active zone per operational type is the expected configuration; when more
than one exists the first by code is designated.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class ZoneType(str, Enum):
    """Operational purpose of a zone."""

    RAW_MATERIAL = "RAW_MATERIAL"
    PROCESSING_WIP = "PROCESSING_WIP"
    FINISHED = "FINISHED"
    SCRAP = "SCRAP"
    IN_TRANSIT = "IN_TRANSIT"
    OTHER = "OTHER"


class Zone(TrackedBase):
    """A typed storage location."""

    __tablename__ = "zones"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_zone_company_code"),
        Index("idx_zone_company_type", "company_id", "zone_type"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    zone_type: Mapped[ZoneType] = mapped_column(String(30), nullable=False)

    # Free-form warehouse label; warehouses themselves are managed elsewhere
    warehouse_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Zone {self.code} ({self.zone_type})>"
