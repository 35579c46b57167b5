"""
AvailabilityService -- BOM explosion and available-to-promise netting.

Responsibility:
    Turns a batch of demand lines into one raw-material requirement per raw
    SKU and nets it against on-hand stock in the company's RAW_MATERIAL
    zones minus active reservations.

Architecture position:
    Kernel > Services.  Read-only: never adds, changes or deletes rows.
    Called for display, by the procurement planner, and (with
    ``lock=True``) by order confirmation inside the same unit of work as
    the reservation it authorizes.

Invariants enforced:
    - Requirements are aggregated over the whole batch before netting, so
      a raw SKU shared by several lines is compared against stock once.
    - Reservations of the lines in ``exclude_ids`` are not subtracted, so
      re-checking an order that already holds reservations does not count
      its own demand twice.
    - shortage = max(required - (on_hand - reserved), 0).
    - Idempotent: the same state always yields an equal report.

Failure modes:
    - ConfigurationError: the company has no RAW_MATERIAL zone.
    - NotFoundError: a demand line references an unknown SKU.
    - BomCycleError / ValidationError: cyclic or too-deep BOM, negative
      demand quantity.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.bom import BomExploder
from stock_kernel.domain.costing import ZERO, quantize_cost, to_decimal
from stock_kernel.domain.directories import SkuDirectory, ZoneDirectory
from stock_kernel.domain.dtos import (
    AvailabilityReport,
    DemandLine,
    LineRequirement,
    RawRequirement,
)
from stock_kernel.exceptions import ConfigurationError, NotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.zone import ZoneType
from stock_kernel.selectors.balance_selector import BalanceSelector
from stock_kernel.selectors.directory_selector import SqlSkuDirectory, SqlZoneDirectory
from stock_kernel.services.base import BaseService
from stock_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.availability")


class AvailabilityService(BaseService):
    """
    Computes availability reports.

    Contract:
        ``compute_availability`` is a pure read of balances, reservations
        and BOMs.  With ``lock=True`` it additionally holds row locks on
        the raw SKUs' balance rows until the caller's transaction ends.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        sku_directory: SkuDirectory | None = None,
        zone_directory: ZoneDirectory | None = None,
    ):
        super().__init__(uow)
        self._skus = sku_directory or SqlSkuDirectory(uow.session)
        self._zones = zone_directory or SqlZoneDirectory(uow.session)
        self._balances = BalanceSelector(uow.session)

    def compute_availability(
        self,
        company_id: UUID,
        demand_lines: Sequence[DemandLine],
        exclude_ids: Iterable[UUID] = (),
        *,
        lock: bool = False,
    ) -> AvailabilityReport:
        policy = self.uow.policy
        exclude = frozenset(exclude_ids)

        raw_zone_ids = self._zones.zone_ids_of_type(company_id, ZoneType.RAW_MATERIAL.value)
        if not raw_zone_ids:
            raise ConfigurationError(str(company_id), ZoneType.RAW_MATERIAL.value)

        exploder = BomExploder(
            lambda sku_id: self._skus.get_bom_lines(company_id, sku_id),
            apply_scrap=policy.apply_scrap_allowance,
            max_depth=policy.max_bom_depth,
        )
        finished_stock = (
            self._finished_stock(company_id, demand_lines)
            if policy.consume_finished_stock_first
            else {}
        )

        per_line: dict[tuple[UUID, UUID], Decimal] = {}
        required: dict[UUID, Decimal] = {}
        for line in demand_lines:
            for sku_id, qty in self._line_needs(
                company_id, line, exploder, finished_stock,
            ).items():
                key = (line.id, sku_id)
                per_line[key] = per_line.get(key, ZERO) + qty
                required[sku_id] = required.get(sku_id, ZERO) + qty

        sku_ids = sorted(required, key=str)
        on_hand = self._balances.on_hand_by_sku(company_id, sku_ids, raw_zone_ids, lock=lock)
        reserved = self._balances.reserved_by_sku(company_id, sku_ids, exclude)

        requirements = []
        for sku_id in sku_ids:
            required_qty = quantize_cost(required[sku_id])
            # Reservations can exceed on-hand after a count or an unreserved issue.
            available = max(on_hand[sku_id] - reserved[sku_id], ZERO)
            shortage = required_qty - available
            requirements.append(
                RawRequirement(
                    sku_id=sku_id,
                    required_qty=required_qty,
                    on_hand_qty=on_hand[sku_id],
                    reserved_qty=reserved[sku_id],
                    available_qty=available,
                    shortage_qty=shortage if shortage > 0 else ZERO,
                )
            )

        report = AvailabilityReport(
            company_id=company_id,
            requirements=tuple(requirements),
            line_requirements=tuple(
                LineRequirement(line_id=line_id, sku_id=sku_id, quantity=quantize_cost(qty))
                for (line_id, sku_id), qty in per_line.items()
            ),
            excluded_line_ids=exclude,
        )

        logger.info(
            "availability_computed",
            extra={
                "demand_line_count": len(demand_lines),
                "raw_sku_count": len(requirements),
                "has_shortage": report.has_shortage,
                "total_shortage": str(report.total_shortage),
                "locked": lock,
            },
        )
        return report

    def _line_needs(
        self,
        company_id: UUID,
        line: DemandLine,
        exploder: BomExploder,
        finished_stock: dict[UUID, Decimal],
    ) -> dict[UUID, Decimal]:
        quantity = to_decimal(line.quantity, "quantity")
        delivered = to_decimal(line.already_delivered_qty, "already_delivered_qty")
        if quantity < 0 or delivered < 0:
            raise ValidationError(
                f"Demand line {line.id} has a negative quantity",
                field="quantity",
            )

        sku = self._skus.get_sku(company_id, line.sku_id)
        if sku is None:
            raise NotFoundError("Sku", str(line.sku_id))

        remaining = line.remaining_qty
        if remaining <= 0:
            return {}
        if sku.is_raw:
            return {sku.id: remaining}

        in_stock = finished_stock.get(sku.id, ZERO)
        if in_stock > 0:
            used = min(in_stock, remaining)
            finished_stock[sku.id] = in_stock - used
            remaining -= used
            if remaining <= 0:
                return {}

        if not exploder.has_bom(sku.id):
            logger.warning(
                "finished_sku_without_bom",
                extra={"sku_id": str(sku.id), "sku_code": sku.code},
            )
        return exploder.explode(sku.id, remaining)

    def _finished_stock(
        self, company_id: UUID, demand_lines: Sequence[DemandLine],
    ) -> dict[UUID, Decimal]:
        finished_zone_ids = self._zones.zone_ids_of_type(company_id, ZoneType.FINISHED.value)
        if not finished_zone_ids:
            return {}
        return self._balances.on_hand_by_sku(
            company_id, {line.sku_id for line in demand_lines}, finished_zone_ids,
        )
