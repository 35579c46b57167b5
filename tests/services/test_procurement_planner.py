"""Tests for ProcurementPlanner: shortages become draft purchase orders."""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.events import InventoryEventType
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import NotFoundError
from stock_kernel.models import PurchaseOrder, PurchaseOrderStatus, SkuType
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.procurement_planner import ProcurementPlanner
from stock_kernel.services.unit_of_work import UnitOfWork


@pytest.fixture
def planner(uow):
    return ProcurementPlanner(uow)


@pytest.fixture
def stocked_catalog(catalog, stock_in):
    stock_in(catalog["raw"], catalog["zones"]["raw"], 100)
    return catalog


@pytest.fixture
def draft_for(planner, session, company_id):
    def _draft(order, service=None):
        demand = OrderSelector(session).demand_lines(company_id, order.id)
        return (service or planner).auto_draft_purchase_orders(
            company_id, order.id, order.so_number, demand,
        )

    return _draft


class TestAutoDraft:
    def test_shortage_drafts_one_line_for_preferred_vendor(
        self, draft_for, company_id, stocked_catalog, create_sales_order,
    ):
        raw, vendor = stocked_catalog["raw"], stocked_catalog["vendor"]
        order = create_sales_order([(stocked_catalog["finished"], 60)])

        [po] = draft_for(order)

        assert po.po_number == "PO-V001-0001"
        assert po.vendor_id == vendor.id
        assert po.status == PurchaseOrderStatus.DRAFT.value
        assert po.source_sales_order_id == order.id
        assert po.currency == "INR"
        assert order.so_number in po.notes
        [line] = po.lines
        assert line.sku_id == raw.id
        assert line.quantity == Decimal("20")
        assert line.unit_price == Decimal("12.50")
        assert line.source_sales_order_id == order.id

    def test_no_shortage_drafts_nothing(
        self, draft_for, session, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 40)])
        assert draft_for(order) == []
        assert session.query(PurchaseOrder).count() == 0

    def test_rerun_for_unchanged_order_drafts_nothing(
        self, draft_for, session, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 60)])
        draft_for(order)

        assert draft_for(order) == []
        assert session.query(PurchaseOrder).count() == 1

    def test_rerun_drafts_only_the_new_gap(
        self, draft_for, session, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 60)])
        draft_for(order)

        order.lines[0].quantity = Decimal("70")
        session.commit()
        [second] = draft_for(order)

        assert second.po_number == "PO-V001-0002"
        assert second.lines[0].quantity == Decimal("20")

    def test_offsetting_can_be_switched_off(
        self, draft_for, session, deterministic_clock, activity_sink,
        stocked_catalog, create_sales_order,
    ):
        uow = UnitOfWork(
            session, clock=deterministic_clock, activity_sink=activity_sink,
            policy=InventoryPolicy(offset_open_purchase_supply=False),
        )
        planner = ProcurementPlanner(uow)
        order = create_sales_order([(stocked_catalog["finished"], 60)])

        draft_for(order, planner)
        draft_for(order, planner)

        assert session.query(PurchaseOrder).count() == 2

    def test_sku_without_vendor_lands_on_no_vendor_order(
        self, draft_for, company_id, zones, create_sku, create_bom, create_sales_order,
    ):
        orphan = create_sku("R-ORPHAN", SkuType.RAW, standard_cost=Decimal("3"))
        finished = create_sku("F-WIDGET", SkuType.FINISHED)
        create_bom(finished, [(orphan, 1)])
        order = create_sales_order([(finished, 5)])

        [po] = draft_for(order)

        assert po.vendor_id is None
        assert po.po_number == "PO-NOVENDOR-0001"
        assert po.lines[0].unit_price == Decimal("3")

    def test_groups_by_vendor_with_no_vendor_last(
        self, draft_for, zones, create_vendor, create_sku, create_bom, create_sales_order,
    ):
        acme = create_vendor("ACME")
        bolt_co = create_vendor("BOLT")
        steel = create_sku("R-STEEL", SkuType.RAW, vendor=bolt_co, vendor_price=Decimal("2"))
        paint = create_sku("R-PAINT", SkuType.RAW, vendor=acme, vendor_price=Decimal("5"))
        rag = create_sku("R-RAG", SkuType.RAW)
        finished = create_sku("F-CHAIR", SkuType.FINISHED)
        create_bom(finished, [(steel, 4), (paint, 1), (rag, 1)])
        order = create_sales_order([(finished, 2)])

        drafted = draft_for(order)

        assert [po.po_number for po in drafted] == [
            "PO-ACME-0001", "PO-BOLT-0001", "PO-NOVENDOR-0001",
        ]

    def test_merge_into_open_draft(
        self, draft_for, session, deterministic_clock, activity_sink,
        stocked_catalog, create_sales_order,
    ):
        uow = UnitOfWork(
            session, clock=deterministic_clock, activity_sink=activity_sink,
            policy=InventoryPolicy(merge_into_open_drafts=True),
        )
        planner = ProcurementPlanner(uow)
        first = create_sales_order([(stocked_catalog["finished"], 60)])
        second = create_sales_order([(stocked_catalog["finished"], 55)])

        [po_a] = draft_for(first, planner)
        [po_b] = draft_for(second, planner)

        assert po_a.id == po_b.id
        assert [line.line_no for line in po_b.lines] == [1, 2]
        assert session.query(PurchaseOrder).count() == 1

    def test_other_orders_deficit_not_drafted(
        self, draft_for, uow, movements, session, company_id, stocked_catalog,
        create_sales_order,
    ):
        from stock_kernel.services.availability_service import AvailabilityService
        from stock_kernel.services.reservation_service import ReservationService

        raw, finished = stocked_catalog["raw"], stocked_catalog["finished"]
        first = create_sales_order([(finished, 40)])
        ReservationService(uow).reserve(
            company_id,
            AvailabilityService(uow).compute_availability(
                company_id, OrderSelector(session).demand_lines(company_id, first.id),
            ),
        )
        movements.adjust_to_count(
            company_id, raw.id, stocked_catalog["zones"]["raw"].id, Decimal("50"),
        )
        second = create_sales_order([(finished, 10)])

        [po] = draft_for(second)

        assert po.lines[0].quantity == Decimal("20")

    def test_unknown_sales_order(self, planner, company_id, zones):
        with pytest.raises(NotFoundError):
            planner.auto_draft_purchase_orders(company_id, uuid4(), "SO-X", [])

    def test_drafting_publishes_event(
        self, draft_for, stocked_catalog, create_sales_order, activity_sink,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 60)])
        [po] = draft_for(order)

        [event] = activity_sink.of_type(InventoryEventType.PURCHASE_ORDER_DRAFTED)
        assert event.entity_id == po.id
        assert event.data["po_number"] == "PO-V001-0001"


class TestBuildPlan:
    def test_plan_is_a_preview(
        self, planner, session, company_id, stocked_catalog, create_sales_order,
    ):
        order = create_sales_order([(stocked_catalog["finished"], 60)])
        demand = OrderSelector(session).demand_lines(company_id, order.id)

        plan = planner.build_plan(company_id, order.id, demand)

        assert not plan.is_empty
        [group] = plan.groups
        assert group.vendor_code == "V001"
        assert group.total_amount == Decimal("250")
        assert session.query(PurchaseOrder).count() == 0
