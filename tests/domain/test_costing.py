"""Tests for balance costing (stock_kernel/domain/costing.py)."""

from decimal import Decimal

import pytest

from stock_kernel.domain.costing import (
    BalanceState,
    apply_movement,
    quantize_cost,
    resolve_inbound_cost,
    to_decimal,
)
from stock_kernel.exceptions import ValidationError


class TestWeightedAverage:
    def test_first_receipt_sets_cost(self):
        state = apply_movement(BalanceState(), Decimal("10"), Decimal("5"), "weighted_average")
        assert state.quantity == Decimal("10")
        assert state.cost_per_unit == Decimal("5")
        assert state.total_cost == Decimal("50")

    def test_second_receipt_blends(self):
        state = BalanceState(Decimal("10"), Decimal("5"), Decimal("50"))
        state = apply_movement(state, Decimal("10"), Decimal("7"), "weighted_average")
        assert state.quantity == Decimal("20")
        assert state.cost_per_unit == Decimal("6")
        assert state.total_cost == Decimal("120")

    def test_issue_keeps_unit_cost(self):
        state = BalanceState(Decimal("20"), Decimal("6"), Decimal("120"))
        state = apply_movement(state, Decimal("-5"), state.cost_per_unit, "weighted_average")
        assert state.quantity == Decimal("15")
        assert state.cost_per_unit == Decimal("6")
        assert state.total_cost == Decimal("90")

    def test_unit_cost_is_quantized(self):
        state = BalanceState(Decimal("3"), Decimal("1"), Decimal("3"))
        state = apply_movement(state, Decimal("3"), Decimal("2"), "weighted_average")
        state = apply_movement(state, Decimal("1"), Decimal("0"), "weighted_average")
        assert state.cost_per_unit == Decimal("1.285714286")


class TestZeroBalance:
    def test_cost_resets_when_quantity_reaches_zero(self):
        state = BalanceState(Decimal("4"), Decimal("2.5"), Decimal("10"))
        state = apply_movement(state, Decimal("-4"), Decimal("2.5"), "weighted_average")
        assert state == BalanceState(Decimal("0"), Decimal("0"), Decimal("0"))

    def test_receipt_after_zero_starts_fresh(self):
        empty = BalanceState(Decimal("0"), Decimal("0"), Decimal("0"))
        state = apply_movement(empty, Decimal("2"), Decimal("9"), "weighted_average")
        assert state.cost_per_unit == Decimal("9")


class TestLastPrice:
    def test_receipt_revalues_whole_balance(self):
        state = BalanceState(Decimal("10"), Decimal("5"), Decimal("50"))
        state = apply_movement(state, Decimal("10"), Decimal("8"), "last_price")
        assert state.cost_per_unit == Decimal("8")
        assert state.total_cost == Decimal("160")

    def test_issue_does_not_revalue(self):
        state = BalanceState(Decimal("10"), Decimal("8"), Decimal("80"))
        state = apply_movement(state, Decimal("-2"), Decimal("8"), "last_price")
        assert state.cost_per_unit == Decimal("8")
        assert state.total_cost == Decimal("64")


class TestStandardCost:
    def test_standard_cost_values_balance(self):
        state = apply_movement(
            BalanceState(), Decimal("5"), Decimal("11"), "standard_cost",
            standard_cost=Decimal("10"),
        )
        assert state.cost_per_unit == Decimal("10")
        assert state.total_cost == Decimal("50")


class TestResolveInboundCost:
    def test_explicit_cost_wins(self):
        assert resolve_inbound_cost(Decimal("3"), "last_price", Decimal("9"), None) == Decimal("3")

    def test_explicit_zero_is_kept(self):
        assert resolve_inbound_cost(Decimal("0"), "weighted_average", None, None) == Decimal("0")

    def test_last_price_from_master_data(self):
        assert resolve_inbound_cost(None, "last_price", Decimal("9"), None) == Decimal("9")

    def test_standard_cost_from_master_data(self):
        assert resolve_inbound_cost(None, "standard_cost", None, Decimal("4")) == Decimal("4")

    def test_weighted_average_needs_explicit_cost(self):
        assert resolve_inbound_cost(None, "weighted_average", Decimal("9"), Decimal("4")) is None


class TestToDecimal:
    @pytest.mark.parametrize("value,expected", [
        (Decimal("1.5"), Decimal("1.5")),
        (3, Decimal("3")),
        ("2.25", Decimal("2.25")),
    ])
    def test_accepted_inputs(self, value, expected):
        assert to_decimal(value, "quantity") == expected

    def test_float_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            to_decimal(1.5, "quantity")
        assert exc_info.value.field == "quantity"

    def test_bool_rejected(self):
        with pytest.raises(ValidationError):
            to_decimal(True, "quantity")

    def test_garbage_string_rejected(self):
        with pytest.raises(ValidationError, match="not a number"):
            to_decimal("ten", "cost_per_unit")

    def test_infinity_rejected(self):
        with pytest.raises(ValidationError, match="finite"):
            to_decimal("Infinity", "quantity")

    def test_quantize_cost_rounds_half_even(self):
        assert quantize_cost(Decimal("0.0000000005")) == Decimal("0")
        assert quantize_cost(Decimal("0.0000000015")) == Decimal("0.000000002")
