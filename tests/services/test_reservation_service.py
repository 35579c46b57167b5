"""Tests for ReservationService: reserve, top-up, release and consume."""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import AvailabilityReport
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.exceptions import ShortageError, ValidationError
from stock_kernel.models import StockReservation
from stock_kernel.selectors.balance_selector import BalanceSelector
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.availability_service import AvailabilityService
from stock_kernel.services.reservation_service import ReservationService


@pytest.fixture
def availability(uow):
    return AvailabilityService(uow)


@pytest.fixture
def reservations(uow):
    return ReservationService(uow)


@pytest.fixture
def stocked_catalog(catalog, stock_in):
    stock_in(catalog["raw"], catalog["zones"]["raw"], 100)
    return catalog


@pytest.fixture
def check(availability, session, company_id):
    def _check(order, exclude_own=False):
        demand = OrderSelector(session).demand_lines(company_id, order.id)
        exclude = [line.id for line in demand] if exclude_own else ()
        return availability.compute_availability(company_id, demand, exclude_ids=exclude)

    return _check


class TestReserve:
    def test_reserve_lowers_available_to_promise(
        self, reservations, check, session, company_id, stocked_catalog, create_sales_order,
    ):
        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        order = create_sales_order([(finished, 40)])

        touched = reservations.reserve(company_id, check(order))

        assert len(touched) == 1
        assert touched[0].quantity == Decimal("80")
        assert touched[0].sales_order_id == order.id
        reserved = BalanceSelector(session).reserved_by_sku(company_id, [raw.id])
        assert reserved[raw.id] == Decimal("80")

        probe = create_sales_order([(raw, 1)])
        assert check(probe).requirement_for(raw.id).available_qty == Decimal("20")

    def test_shortage_blocks_reserve_and_writes_nothing(
        self, reservations, check, session, company_id, stocked_catalog, create_sales_order,
        activity_sink,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 60)])
        report = check(order)

        with pytest.raises(ShortageError) as exc_info:
            reservations.reserve(company_id, report)

        assert exc_info.value.code == "SHORTAGE"
        assert Decimal(exc_info.value.shortages[str(stocked_catalog["raw"].id)]) == Decimal("20")
        assert session.query(StockReservation).count() == 0
        assert activity_sink.of_type(InventoryEventType.RESERVATION_CREATED) == []

    def test_report_of_another_company_rejected(self, reservations, company_id):
        with pytest.raises(ValidationError):
            reservations.reserve(company_id, AvailabilityReport(company_id=uuid4()))

    def test_reserving_again_is_a_no_op(
        self, reservations, check, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        reservations.reserve(company_id, check(order))

        assert reservations.reserve(company_id, check(order, exclude_own=True)) == []

    def test_reserve_tops_up_after_line_grows(
        self, reservations, check, session, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 10)])
        reservations.reserve(company_id, check(order))

        order.lines[0].quantity = Decimal("30")
        session.commit()
        [reservation] = reservations.reserve(company_id, check(order, exclude_own=True))

        assert reservation.quantity == Decimal("60")
        assert session.query(StockReservation).count() == 1

    def test_reserve_never_lowers(
        self, reservations, check, session, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 30)])
        reservations.reserve(company_id, check(order))

        order.lines[0].quantity = Decimal("10")
        session.commit()
        assert reservations.reserve(company_id, check(order, exclude_own=True)) == []

        active = BalanceSelector(session).active_reservations(company_id, [order.lines[0].id])
        assert list(active.values()) == [Decimal("60")]

    def test_events_published(
        self, reservations, check, company_id, stocked_catalog, create_sales_order, activity_sink,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 5)])
        reservations.reserve(company_id, check(order))

        [event] = activity_sink.of_type(InventoryEventType.RESERVATION_CREATED)
        assert Decimal(event.data["quantity"]) == Decimal("10")
        assert event.data["so_line_id"] == str(order.lines[0].id)


class TestRelease:
    def test_release_restores_availability(
        self, reservations, check, company_id, stocked_catalog, create_sales_order,
    ):
        raw = stocked_catalog["raw"]
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        reservations.reserve(company_id, check(order))

        released = reservations.release_for_lines(company_id, [line.id for line in order.lines])

        assert released == 1
        probe = create_sales_order([(raw, 1)])
        assert check(probe).requirement_for(raw.id).available_qty == Decimal("100")

    def test_released_row_is_kept_and_reactivated(
        self, reservations, check, session, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        reservations.reserve(company_id, check(order))
        reservations.release_for_lines(company_id, [order.lines[0].id])

        row = session.query(StockReservation).one()
        assert row.released_at is not None

        reservations.reserve(company_id, check(order, exclude_own=True))
        session.refresh(row)
        assert row.released_at is None
        assert session.query(StockReservation).count() == 1

    def test_release_twice_releases_nothing_more(
        self, reservations, check, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        reservations.reserve(company_id, check(order))
        line_ids = [line.id for line in order.lines]

        assert reservations.release_for_lines(company_id, line_ids) == 1
        assert reservations.release_for_lines(company_id, line_ids) == 0

    def test_release_nothing(self, reservations, company_id):
        assert reservations.release_for_lines(company_id, []) == 0


class TestConsume:
    def test_partial_consume_reduces_hold(
        self, reservations, check, company_id, stocked_catalog, create_sales_order,
    ):
        raw = stocked_catalog["raw"]
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        reservations.reserve(company_id, check(order))

        reservation = reservations.consume(company_id, order.lines[0].id, raw.id, Decimal("30"))

        assert reservation.quantity == Decimal("50")
        assert reservation.is_active

    def test_consuming_everything_releases(
        self, reservations, check, company_id, stocked_catalog, create_sales_order, activity_sink,
    ):
        raw = stocked_catalog["raw"]
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        reservations.reserve(company_id, check(order))

        reservation = reservations.consume(company_id, order.lines[0].id, raw.id, Decimal("100"))

        assert reservation.quantity == Decimal("0")
        assert not reservation.is_active
        [event] = activity_sink.of_type(InventoryEventType.RESERVATION_RELEASED)
        assert event.data["reason"] == "consumed"

    def test_consume_without_reservation(self, reservations, company_id, stocked_catalog):
        assert reservations.consume(
            company_id, uuid4(), stocked_catalog["raw"].id, Decimal("1"),
        ) is None

    def test_consume_rejects_non_positive(self, reservations, company_id):
        with pytest.raises(ValidationError):
            reservations.consume(company_id, uuid4(), uuid4(), Decimal("0"))
