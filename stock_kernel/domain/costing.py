"""
Balance costing -- pure functions applied by the stock movement service.

Three valuation methods are supported per SKU type:

- ``weighted_average``: inbound cost blends into the running average.
- ``last_price``: the latest inbound cost becomes the cost of the whole
  balance.
- ``standard_cost``: the SKU's standard cost values the whole balance.

Outbound movements never change the unit cost of what remains (under
weighted average they remove value at the current unit cost).
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

from stock_kernel.exceptions import ValidationError

COST_QUANTUM = Decimal("0.000000001")
ZERO = Decimal("0")


def quantize_cost(value: Decimal) -> Decimal:
    """Round a cost figure to the Numeric(38, 9) storage scale."""
    return value.quantize(COST_QUANTUM, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class BalanceState:
    """Quantity and valuation of one (SKU, zone) balance."""

    quantity: Decimal = ZERO
    cost_per_unit: Decimal = ZERO
    total_cost: Decimal = ZERO


def resolve_inbound_cost(
    explicit_cost: Decimal | None,
    valuation_method: str,
    last_purchase_price: Decimal | None,
    standard_cost: Decimal | None,
) -> Decimal | None:
    """
    Cost per unit for an inbound movement.

    The explicit cost wins.  Otherwise the SKU master data is consulted
    according to the valuation method; ``None`` means no cost could be
    determined.
    """
    if explicit_cost is not None:
        return explicit_cost
    if valuation_method == "last_price" and last_purchase_price:
        return last_purchase_price
    if valuation_method == "standard_cost" and standard_cost:
        return standard_cost
    return None


def apply_movement(
    state: BalanceState,
    quantity_delta: Decimal,
    movement_cost: Decimal,
    valuation_method: str,
    standard_cost: Decimal | None = None,
) -> BalanceState:
    """
    Balance after a signed movement of ``quantity_delta`` at ``movement_cost``.

    The caller has already rejected deltas that would leave a negative
    quantity.
    """
    next_qty = state.quantity + quantity_delta
    next_total = state.total_cost + quantity_delta * movement_cost
    if next_total < 0:
        next_total = ZERO

    if next_qty == 0:
        return BalanceState(quantity=next_qty, cost_per_unit=ZERO, total_cost=ZERO)

    if valuation_method == "last_price" and quantity_delta > 0:
        next_cpu = movement_cost
        next_total = next_qty * next_cpu
    elif valuation_method == "standard_cost" and standard_cost:
        next_cpu = standard_cost
        next_total = next_qty * next_cpu
    else:
        next_cpu = next_total / next_qty

    return BalanceState(
        quantity=next_qty,
        cost_per_unit=quantize_cost(next_cpu),
        total_cost=quantize_cost(next_total),
    )


def to_decimal(value, field: str) -> Decimal:
    """
    Coerce a caller-supplied quantity or cost to Decimal.

    Floats are rejected: binary fractions do not round-trip through
    Numeric(38, 9) exactly.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)) and not isinstance(value, bool):
        try:
            result = Decimal(value)
        except ArithmeticError:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field) from None
    else:
        raise ValidationError(
            f"{field} must be a Decimal, int or numeric string, got {type(value).__name__}",
            field=field,
        )
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return result
