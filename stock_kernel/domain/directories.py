"""
Read-only directories the kernel consults for master data.

SKUs, BOMs, vendors and zones are maintained by the platform's CRUD layer.
The kernel only reads them through these protocols; the SQLAlchemy-backed
defaults live in ``stock_kernel.selectors.directory_selector`` and callers
may substitute their own (a cache, a remote catalog).
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from stock_kernel.domain.bom import BomComponent


@dataclass(frozen=True)
class SkuInfo:
    id: UUID
    company_id: UUID
    code: str
    sku_type: str
    unit_of_measure: str
    scrap_pct: Decimal
    standard_cost: Decimal | None
    last_purchase_price: Decimal | None
    preferred_vendor_id: UUID | None

    @property
    def is_raw(self) -> bool:
        return self.sku_type == "RAW"


@dataclass(frozen=True)
class VendorInfo:
    id: UUID
    code: str
    name: str


@dataclass(frozen=True)
class ZoneInfo:
    id: UUID
    company_id: UUID
    code: str
    zone_type: str


class SkuDirectory(Protocol):
    def get_sku(self, company_id: UUID, sku_id: UUID) -> SkuInfo | None:
        ...

    def get_bom_lines(self, company_id: UUID, finished_sku_id: UUID) -> Sequence[BomComponent]:
        """Components of the effective BOM version; empty if there is none."""
        ...

    def get_preferred_vendor(self, company_id: UUID, sku_id: UUID) -> VendorInfo | None:
        ...

    def get_vendor_price(
        self, company_id: UUID, vendor_id: UUID, sku_id: UUID,
    ) -> Decimal | None:
        ...


class ZoneDirectory(Protocol):
    def get_zone(self, company_id: UUID, zone_id: UUID) -> ZoneInfo | None:
        ...

    def get_designated_zone(self, company_id: UUID, zone_type: str) -> ZoneInfo:
        """The zone automated flows use for ``zone_type``.

        Raises ConfigurationError when the company has none.
        """
        ...

    def zone_ids_of_type(self, company_id: UUID, zone_type: str) -> list[UUID]:
        ...
