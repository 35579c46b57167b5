"""
Order workflow tests.

Exercise the sales and purchase order state machines directly:
1. Structural completeness (every state reachable, terminals closed)
2. Transition lookup (find / allows / targets_from)
3. Invalid workflow definitions are rejected at construction
"""

import pytest

from stock_kernel.domain.workflow import Guard, Transition, Workflow
from stock_kernel.models.purchasing import PurchaseOrderStatus
from stock_kernel.models.sales import SalesOrderStatus
from stock_modules.purchasing.workflows import PURCHASE_ORDER_WORKFLOW
from stock_modules.sales.workflows import SALES_ORDER_WORKFLOW

ALL_WORKFLOWS = [
    ("Sales Order", SALES_ORDER_WORKFLOW),
    ("Purchase Order", PURCHASE_ORDER_WORKFLOW),
]


# =============================================================================
# Helper Functions
# =============================================================================


def reachable_states(workflow: Workflow) -> set[str]:
    seen = {workflow.initial_state}
    frontier = [workflow.initial_state]
    while frontier:
        state = frontier.pop()
        for target in workflow.targets_from(state):
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    return seen


def find_path_to_state(workflow: Workflow, target: str) -> list[str] | None:
    """Shortest list of states from the initial state to ``target``."""
    queue = [[workflow.initial_state]]
    visited = {workflow.initial_state}
    while queue:
        path = queue.pop(0)
        if path[-1] == target:
            return path
        for nxt in workflow.targets_from(path[-1]):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(path + [nxt])
    return None


# =============================================================================
# Structural completeness
# =============================================================================


class TestWorkflowCompleteness:
    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_every_state_reachable_from_initial(self, name, workflow):
        unreachable = set(workflow.states) - reachable_states(workflow)
        assert not unreachable, f"{name}: unreachable states {unreachable}"

    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_terminal_states_have_no_exits(self, name, workflow):
        for state in workflow.terminal_states:
            assert workflow.targets_from(state) == ()

    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_every_non_terminal_state_can_reach_a_terminal(self, name, workflow):
        for state in workflow.states:
            if state in workflow.terminal_states:
                continue
            sub = Workflow(
                name=workflow.name,
                description=workflow.description,
                initial_state=state,
                states=workflow.states,
                transitions=workflow.transitions,
                terminal_states=workflow.terminal_states,
            )
            assert reachable_states(sub) & set(workflow.terminal_states), (
                f"{name}: {state} is a dead end"
            )

    @pytest.mark.parametrize("name,workflow", ALL_WORKFLOWS)
    def test_no_duplicate_transitions(self, name, workflow):
        pairs = [(t.from_state, t.to_state) for t in workflow.transitions]
        assert len(pairs) == len(set(pairs))

    def test_states_match_status_enums(self):
        assert set(SALES_ORDER_WORKFLOW.states) == {s.value for s in SalesOrderStatus}
        assert set(PURCHASE_ORDER_WORKFLOW.states) == {s.value for s in PurchaseOrderStatus}


# =============================================================================
# Sales order lifecycle
# =============================================================================


class TestSalesOrderWorkflow:
    def test_initial_state_is_quote(self):
        assert SALES_ORDER_WORKFLOW.initial_state == SalesOrderStatus.QUOTE.value

    def test_confirm_is_guarded_by_stock_availability(self):
        transition = SALES_ORDER_WORKFLOW.find("QUOTE", "CONFIRMED")
        assert transition is not None
        assert transition.guard is not None
        assert transition.guard.name == "stock_available"

    def test_delivery_requires_dispatch(self):
        assert SALES_ORDER_WORKFLOW.allows("DISPATCH", "DELIVERED")
        assert not SALES_ORDER_WORKFLOW.allows("CONFIRMED", "DELIVERED")
        assert not SALES_ORDER_WORKFLOW.allows("QUOTE", "DELIVERED")

    def test_production_can_be_skipped(self):
        assert find_path_to_state(SALES_ORDER_WORKFLOW, "DISPATCH") == [
            "QUOTE", "CONFIRMED", "DISPATCH",
        ]

    def test_cannot_go_backwards(self):
        assert not SALES_ORDER_WORKFLOW.allows("CONFIRMED", "QUOTE")
        assert not SALES_ORDER_WORKFLOW.allows("DISPATCH", "PRODUCTION")

    def test_delivered_order_cannot_be_cancelled(self):
        assert not SALES_ORDER_WORKFLOW.allows("DELIVERED", "CANCELLED")

    @pytest.mark.parametrize("state", ["QUOTE", "CONFIRMED", "PRODUCTION", "DISPATCH"])
    def test_open_states_can_cancel(self, state):
        transition = SALES_ORDER_WORKFLOW.find(state, "CANCELLED")
        assert transition is not None
        assert transition.action == "cancel"

    def test_stock_moving_transitions(self):
        moving = {
            (t.from_state, t.to_state)
            for t in SALES_ORDER_WORKFLOW.transitions
            if t.moves_stock
        }
        assert moving == {("CONFIRMED", "PRODUCTION"), ("DISPATCH", "DELIVERED")}


# =============================================================================
# Purchase order lifecycle
# =============================================================================


class TestPurchaseOrderWorkflow:
    def test_approval_needs_vendor(self):
        transition = PURCHASE_ORDER_WORKFLOW.find("DRAFT", "APPROVED")
        assert transition.guard.name == "vendor_assigned"

    def test_draft_cannot_be_received(self):
        assert not PURCHASE_ORDER_WORKFLOW.allows("DRAFT", "RECEIVED")

    def test_closed_order_can_still_be_cancelled(self):
        assert PURCHASE_ORDER_WORKFLOW.allows("CLOSED", "CANCELLED")

    def test_received_is_terminal(self):
        assert PURCHASE_ORDER_WORKFLOW.targets_from("RECEIVED") == ()

    def test_targets_from_approved(self):
        assert set(PURCHASE_ORDER_WORKFLOW.targets_from("APPROVED")) == {
            "RECEIVED", "CLOSED", "CANCELLED",
        }


# =============================================================================
# Definition validation
# =============================================================================


class TestWorkflowDefinition:
    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="bad", description="", initial_state="X",
                states=("A",), transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="bad", description="", initial_state="A",
                states=("A",), transitions=(Transition("A", "B", action="go"),),
            )

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="bad", description="", initial_state="A",
                states=("A", "B"),
                transitions=(Transition("B", "A", action="reopen"),),
                terminal_states=("B",),
            )

    def test_value_objects_are_frozen(self):
        guard = Guard(name="g", description="d")
        with pytest.raises(AttributeError):
            guard.name = "other"
