"""
Module: stock_kernel.selectors.directory_selector
Responsibility: SQLAlchemy-backed SKU and zone directories.
Architecture position: Kernel > Selectors.  Default implementations of the
    ``SkuDirectory`` / ``ZoneDirectory`` protocols in domain/directories.py.

Every lookup is scoped by company: an id belonging to another company
resolves to None, which callers turn into NotFoundError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.bom import BomComponent
from stock_kernel.domain.directories import SkuInfo, VendorInfo, ZoneInfo
from stock_kernel.exceptions import ConfigurationError
from stock_kernel.models.catalog import Bom, BomLine, Sku, Vendor, VendorSku
from stock_kernel.models.zone import Zone
from stock_kernel.selectors.base import BaseSelector


class SqlSkuDirectory(BaseSelector):
    """SKU, BOM and vendor lookups over the catalog tables."""

    def get_sku(self, company_id: UUID, sku_id: UUID) -> SkuInfo | None:
        sku = self.session.execute(
            select(Sku).where(Sku.id == sku_id, Sku.company_id == company_id)
        ).scalar_one_or_none()
        if sku is None:
            return None
        return SkuInfo(
            id=sku.id,
            company_id=sku.company_id,
            code=sku.code,
            sku_type=str(getattr(sku.sku_type, "value", sku.sku_type)),
            unit_of_measure=sku.unit_of_measure,
            scrap_pct=sku.scrap_pct or Decimal("0"),
            standard_cost=sku.standard_cost,
            last_purchase_price=sku.last_purchase_price,
            preferred_vendor_id=sku.preferred_vendor_id,
        )

    def get_bom_lines(self, company_id: UUID, finished_sku_id: UUID) -> list[BomComponent]:
        """Components of the highest non-deleted BOM version."""
        bom_id = self.session.execute(
            select(Bom.id)
            .where(
                Bom.company_id == company_id,
                Bom.sku_id == finished_sku_id,
                Bom.is_deleted.is_(False),
            )
            .order_by(Bom.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        if bom_id is None:
            return []

        rows = self.session.execute(
            select(BomLine.component_sku_id, BomLine.quantity, BomLine.scrap_pct, Sku.scrap_pct)
            .join(Sku, Sku.id == BomLine.component_sku_id)
            .where(BomLine.bom_id == bom_id)
            .order_by(BomLine.component_sku_id)
        ).all()
        return [
            BomComponent(
                component_sku_id=component_id,
                quantity_per_unit=quantity,
                scrap_pct=line_scrap if line_scrap is not None else (sku_scrap or Decimal("0")),
            )
            for component_id, quantity, line_scrap, sku_scrap in rows
        ]

    def get_preferred_vendor(self, company_id: UUID, sku_id: UUID) -> VendorInfo | None:
        vendor = self.session.execute(
            select(Vendor)
            .join(Sku, Sku.preferred_vendor_id == Vendor.id)
            .where(Sku.id == sku_id, Sku.company_id == company_id)
        ).scalar_one_or_none()
        if vendor is None:
            return None
        return VendorInfo(id=vendor.id, code=vendor.code, name=vendor.name)

    def get_vendor_price(
        self, company_id: UUID, vendor_id: UUID, sku_id: UUID,
    ) -> Decimal | None:
        return self.session.execute(
            select(VendorSku.last_price)
            .join(Vendor, Vendor.id == VendorSku.vendor_id)
            .where(
                Vendor.company_id == company_id,
                VendorSku.vendor_id == vendor_id,
                VendorSku.sku_id == sku_id,
            )
        ).scalar_one_or_none()


class SqlZoneDirectory(BaseSelector):
    """Zone lookups; the designated zone of a type is the first active one by code."""

    def get_zone(self, company_id: UUID, zone_id: UUID) -> ZoneInfo | None:
        zone = self.session.execute(
            select(Zone).where(Zone.id == zone_id, Zone.company_id == company_id)
        ).scalar_one_or_none()
        return self._to_info(zone) if zone is not None else None

    def get_designated_zone(self, company_id: UUID, zone_type: str) -> ZoneInfo:
        zone = self.session.execute(
            select(Zone)
            .where(
                Zone.company_id == company_id,
                Zone.zone_type == zone_type,
                Zone.is_active.is_(True),
            )
            .order_by(Zone.code)
            .limit(1)
        ).scalar_one_or_none()
        if zone is None:
            raise ConfigurationError(str(company_id), getattr(zone_type, "value", zone_type))
        return self._to_info(zone)

    def zone_ids_of_type(self, company_id: UUID, zone_type: str) -> list[UUID]:
        return list(
            self.session.execute(
                select(Zone.id)
                .where(
                    Zone.company_id == company_id,
                    Zone.zone_type == zone_type,
                    Zone.is_active.is_(True),
                )
                .order_by(Zone.code)
            ).scalars()
        )

    @staticmethod
    def _to_info(zone: Zone) -> ZoneInfo:
        return ZoneInfo(
            id=zone.id,
            company_id=zone.company_id,
            code=zone.code,
            zone_type=str(getattr(zone.zone_type, "value", zone.zone_type)),
        )
