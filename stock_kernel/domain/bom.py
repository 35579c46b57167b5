"""
BOM explosion -- pure functional core.

Responsibility:
    Expands a finished SKU into per-unit requirements of raw-material
    leaves by walking BOM adjacency.  A component with no BOM of its own is
    a leaf.  Intermediate assemblies are expanded recursively and memoized,
    so a sub-assembly shared by many lines is walked once per exploder.

Invariants enforced:
    - Cycles are detected with the active path and raise BomCycleError.
    - Depth is bounded by ``max_depth`` (ValidationError beyond it).

This module performs no I/O.  The caller supplies ``components_of``, which
the availability service backs with the SKU directory.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from stock_kernel.exceptions import BomCycleError, ValidationError

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class BomComponent:
    """One BOM line: ``quantity_per_unit`` of a component per parent unit."""

    component_sku_id: UUID
    quantity_per_unit: Decimal
    scrap_pct: Decimal = Decimal("0")

    def effective_quantity(self, apply_scrap: bool) -> Decimal:
        if apply_scrap and self.scrap_pct:
            return self.quantity_per_unit * (1 + self.scrap_pct / _HUNDRED)
        return self.quantity_per_unit


class BomExploder:
    """
    Memoized explosion of SKUs into raw-material leaves.

    One instance should live for a single availability computation: its
    cache is only valid while the underlying BOM data does not change.
    """

    def __init__(
        self,
        components_of: Callable[[UUID], Sequence[BomComponent]],
        *,
        apply_scrap: bool = False,
        max_depth: int = 32,
    ):
        self._components_of = components_of
        self._apply_scrap = apply_scrap
        self._max_depth = max_depth
        self._per_unit: dict[UUID, dict[UUID, Decimal]] = {}

    def has_bom(self, sku_id: UUID) -> bool:
        return bool(self._components_of(sku_id))

    def explode(self, sku_id: UUID, quantity: Decimal) -> dict[UUID, Decimal]:
        """
        Raw-material requirement for ``quantity`` units of ``sku_id``.

        Returns an empty dict for zero quantity.  A SKU without a BOM is
        its own leaf.
        """
        if quantity <= 0:
            return {}
        per_unit = self._unit_requirements(sku_id, [])
        return {leaf: qty * quantity for leaf, qty in per_unit.items()}

    def _unit_requirements(self, sku_id: UUID, path: list[UUID]) -> dict[UUID, Decimal]:
        cached = self._per_unit.get(sku_id)
        if cached is not None:
            return cached

        if sku_id in path:
            cycle = path[path.index(sku_id):] + [sku_id]
            raise BomCycleError([str(s) for s in cycle])
        if len(path) >= self._max_depth:
            raise ValidationError(
                f"BOM nesting deeper than {self._max_depth} levels at SKU {sku_id}",
                field="bom",
            )

        components = self._components_of(sku_id)
        if not components:
            result = {sku_id: Decimal("1")}
        else:
            result: dict[UUID, Decimal] = {}
            child_path = path + [sku_id]
            for component in components:
                factor = component.effective_quantity(self._apply_scrap)
                if factor <= 0:
                    continue
                child = self._unit_requirements(component.component_sku_id, child_path)
                for leaf, qty in child.items():
                    result[leaf] = result.get(leaf, Decimal("0")) + qty * factor

        self._per_unit[sku_id] = result
        return result
