"""
Tests for AvailabilityService: BOM explosion netted against raw stock.

Scenario figures: raw SKU R has 100 on hand, finished SKU F needs 2 x R.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import DemandLine
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import BomCycleError, ConfigurationError, NotFoundError
from stock_kernel.models import SkuType, ZoneType
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.availability_service import AvailabilityService
from stock_kernel.services.unit_of_work import UnitOfWork


@pytest.fixture
def availability(uow):
    return AvailabilityService(uow)


@pytest.fixture
def stocked_catalog(catalog, stock_in):
    stock_in(catalog["raw"], catalog["zones"]["raw"], 100)
    return catalog


def demand_for(session, company_id, order):
    return OrderSelector(session).demand_lines(company_id, order.id)


class TestScenarios:
    def test_demand_within_stock_has_no_shortage(
        self, availability, session, company_id, stocked_catalog, create_sales_order,
    ):
        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        order = create_sales_order([(finished, 40)])

        report = availability.compute_availability(
            company_id, demand_for(session, company_id, order),
        )

        requirement = report.requirement_for(raw.id)
        assert requirement.required_qty == Decimal("80")
        assert requirement.on_hand_qty == Decimal("100")
        assert requirement.available_qty == Decimal("100")
        assert requirement.shortage_qty == Decimal("0")
        assert not report.has_shortage

    def test_demand_beyond_stock_reports_shortage(
        self, availability, session, company_id, stocked_catalog, create_sales_order,
    ):
        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        order = create_sales_order([(finished, 60)])

        report = availability.compute_availability(
            company_id, demand_for(session, company_id, order),
        )

        assert report.has_shortage
        assert report.shortages == {raw.id: Decimal("20")}
        assert report.total_shortage == Decimal("20")


class TestAggregation:
    def test_shared_raw_sku_netted_once_across_lines(
        self, availability, session, company_id, stocked_catalog, create_sales_order,
    ):
        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        order = create_sales_order([(finished, 30), (finished, 30)])

        report = availability.compute_availability(
            company_id, demand_for(session, company_id, order),
        )

        assert len(report.requirements) == 1
        assert report.requirement_for(raw.id).required_qty == Decimal("120")
        assert report.shortages == {raw.id: Decimal("20")}
        per_line = report.needs_by_line()
        assert sorted(per_line[line.id][raw.id] for line in order.lines) == [
            Decimal("60"), Decimal("60"),
        ]

    def test_raw_demand_line_is_its_own_requirement(
        self, availability, session, company_id, stocked_catalog, create_sales_order,
    ):
        raw = stocked_catalog["raw"]
        order = create_sales_order([(raw, 15)])

        report = availability.compute_availability(
            company_id, demand_for(session, company_id, order),
        )
        assert report.requirement_for(raw.id).required_qty == Decimal("15")

    def test_delivered_quantity_is_not_demanded_again(
        self, availability, company_id, stocked_catalog,
    ):
        finished = stocked_catalog["finished"]
        line = DemandLine(
            id=uuid4(), sku_id=finished.id,
            quantity=Decimal("10"), already_delivered_qty=Decimal("4"),
        )
        report = availability.compute_availability(company_id, [line])
        assert report.requirement_for(stocked_catalog["raw"].id).required_qty == Decimal("12")

    def test_stock_in_every_raw_zone_counts(
        self, availability, company_id, stocked_catalog, create_zone, stock_in,
    ):
        second = create_zone(ZoneType.RAW_MATERIAL, "RM-02")
        stock_in(stocked_catalog["raw"], second, 20)
        line = DemandLine(id=uuid4(), sku_id=stocked_catalog["finished"].id, quantity=Decimal("60"))

        report = availability.compute_availability(company_id, [line])
        assert not report.has_shortage

    def test_stock_outside_raw_zones_ignored(
        self, availability, company_id, stocked_catalog, stock_in,
    ):
        stock_in(stocked_catalog["raw"], stocked_catalog["zones"]["wip"], 50)
        line = DemandLine(id=uuid4(), sku_id=stocked_catalog["finished"].id, quantity=Decimal("60"))

        report = availability.compute_availability(company_id, [line])
        assert report.requirement_for(stocked_catalog["raw"].id).on_hand_qty == Decimal("100")


class TestReservationsAndExclusion:
    def test_reservations_reduce_availability(
        self, availability, uow, session, company_id, stocked_catalog, create_sales_order,
    ):
        from stock_kernel.services.reservation_service import ReservationService

        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        first = create_sales_order([(finished, 40)])
        first_demand = demand_for(session, company_id, first)
        ReservationService(uow).reserve(
            company_id, availability.compute_availability(company_id, first_demand),
        )

        second = create_sales_order([(finished, 15)])
        report = availability.compute_availability(
            company_id, demand_for(session, company_id, second),
        )
        requirement = report.requirement_for(raw.id)
        assert requirement.reserved_qty == Decimal("80")
        assert requirement.available_qty == Decimal("20")
        assert requirement.shortage_qty == Decimal("10")

        recheck = availability.compute_availability(
            company_id, first_demand, exclude_ids=[line.id for line in first_demand],
        )
        assert not recheck.has_shortage
        assert recheck.excluded_line_ids == frozenset(line.id for line in first_demand)

    def test_over_reserved_stock_floors_availability_at_zero(
        self, availability, uow, movements, session, company_id, stocked_catalog,
        create_sales_order,
    ):
        from stock_kernel.services.reservation_service import ReservationService

        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        first = create_sales_order([(finished, 40)])
        ReservationService(uow).reserve(
            company_id,
            availability.compute_availability(company_id, demand_for(session, company_id, first)),
        )
        movements.adjust_to_count(
            company_id, raw.id, stocked_catalog["zones"]["raw"].id, Decimal("50"),
        )

        second = create_sales_order([(finished, 10)])
        report = availability.compute_availability(
            company_id, demand_for(session, company_id, second),
        )

        requirement = report.requirement_for(raw.id)
        assert requirement.on_hand_qty == Decimal("50")
        assert requirement.reserved_qty == Decimal("80")
        assert requirement.available_qty == Decimal("0")
        assert requirement.shortage_qty == Decimal("20")
        assert requirement.shortage_qty <= requirement.required_qty


class TestReadOnlyContract:
    def test_same_state_yields_equal_reports(
        self, availability, session, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 60)])
        demand = demand_for(session, company_id, order)

        first = availability.compute_availability(company_id, demand)
        second = availability.compute_availability(company_id, demand)

        assert first == second

    def test_empty_demand(self, availability, company_id, zones):
        report = availability.compute_availability(company_id, [])
        assert report.requirements == ()
        assert not report.has_shortage

    def test_logs_summary(self, availability, company_id, stocked_catalog, captured_logs):
        line = DemandLine(id=uuid4(), sku_id=stocked_catalog["finished"].id, quantity=Decimal("60"))
        availability.compute_availability(company_id, [line])
        [record] = [r for r in captured_logs() if r["message"] == "availability_computed"]
        assert record["has_shortage"] is True
        assert Decimal(record["total_shortage"]) == Decimal("20")


class TestFailures:
    def test_missing_raw_zone(self, availability, company_id, create_sku):
        sku = create_sku("R-ONLY", SkuType.RAW)
        line = DemandLine(id=uuid4(), sku_id=sku.id, quantity=Decimal("1"))
        with pytest.raises(ConfigurationError) as exc_info:
            availability.compute_availability(company_id, [line])
        assert exc_info.value.zone_type == "RAW_MATERIAL"

    def test_unknown_sku(self, availability, company_id, zones):
        line = DemandLine(id=uuid4(), sku_id=uuid4(), quantity=Decimal("1"))
        with pytest.raises(NotFoundError):
            availability.compute_availability(company_id, [line])

    def test_cyclic_bom(self, availability, company_id, zones, create_sku, create_bom):
        a = create_sku("F-A", SkuType.FINISHED)
        b = create_sku("F-B", SkuType.FINISHED)
        create_bom(a, [(b, 1)])
        create_bom(b, [(a, 1)])
        line = DemandLine(id=uuid4(), sku_id=a.id, quantity=Decimal("1"))
        with pytest.raises(BomCycleError):
            availability.compute_availability(company_id, [line])


class TestPolicySwitches:
    def _service(self, session, clock, sink, **policy):
        uow = UnitOfWork(
            session, clock=clock, policy=InventoryPolicy(**policy), activity_sink=sink,
        )
        return AvailabilityService(uow)

    def test_scrap_allowance(
        self, session, deterministic_clock, activity_sink, company_id,
        zones, create_sku, create_bom, stock_in,
    ):
        raw = create_sku("R-SHEET", SkuType.RAW)
        finished = create_sku("F-PANEL", SkuType.FINISHED)
        create_bom(finished, [(raw, 2, 10)])
        stock_in(raw, zones["raw"], 100)
        service = self._service(
            session, deterministic_clock, activity_sink, apply_scrap_allowance=True,
        )

        report = service.compute_availability(
            company_id, [DemandLine(id=uuid4(), sku_id=finished.id, quantity=Decimal("10"))],
        )
        assert report.requirement_for(raw.id).required_qty == Decimal("22")

    def test_finished_stock_consumed_first(
        self, session, deterministic_clock, activity_sink, company_id, stocked_catalog, stock_in,
    ):
        finished = stocked_catalog["finished"]
        stock_in(finished, stocked_catalog["zones"]["finished"], 25)
        service = self._service(
            session, deterministic_clock, activity_sink, consume_finished_stock_first=True,
        )

        report = service.compute_availability(
            company_id, [DemandLine(id=uuid4(), sku_id=finished.id, quantity=Decimal("60"))],
        )
        assert report.requirement_for(stocked_catalog["raw"].id).required_qty == Decimal("70")
        assert not report.has_shortage
