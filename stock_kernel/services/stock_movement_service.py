"""
StockMovementService -- the only writer of the stock ledger and balances.

Responsibility:
    Appends immutable ``StockMovement`` rows and keeps the matching
    ``StockBalance`` row (quantity and valuation) consistent with them in
    the same unit of work.  Transfers and cycle-count adjustments are built
    from the same primitive.

Architecture position:
    Kernel > Services.  Called by the sales and purchasing modules, and
    directly by callers recording manual movements.

Invariants enforced:
    - balance.quantity_on_hand == sum(signed movements) for every key: the
      movement row and the balance update are flushed together and roll
      back together.
    - On-hand never goes negative.  The balance row is locked
      (SELECT ... FOR UPDATE) before the check, so two concurrent OUT
      movements cannot both pass it.
    - Transfers are both-or-neither.

Failure modes:
    - ValidationError: quantity <= 0, negative cost, missing inbound cost,
      negative count.
    - NotFoundError: SKU or zone outside the company.
    - InsufficientStockError: OUT larger than on-hand.  The balance is
      left untouched.
    - SameZoneError: transfer source equals destination.
    - IntegrityError: two transactions creating the first balance row of a
      key at the same moment; the loser rolls back and may retry.

Audit relevance:
    Every movement is published as a ``movement_recorded`` activity event
    after commit and logged as ``stock_movement_recorded``.
"""

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from stock_kernel.domain.costing import (
    ZERO,
    BalanceState,
    apply_movement,
    quantize_cost,
    resolve_inbound_cost,
    to_decimal,
)
from stock_kernel.domain.directories import SkuDirectory, SkuInfo, ZoneDirectory
from stock_kernel.domain.dtos import MovementReference
from stock_kernel.domain.events import InventoryEventType
from stock_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    SameZoneError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import (
    MovementDirection,
    MovementType,
    StockBalance,
    StockMovement,
)
from stock_kernel.selectors.directory_selector import SqlSkuDirectory, SqlZoneDirectory
from stock_kernel.services.base import BaseService
from stock_kernel.services.unit_of_work import UnitOfWork

logger = get_logger("services.stock_movement")


class StockMovementService(BaseService):
    """
    Records stock movements and maintains balances.

    Contract:
        ``record_movement`` appends exactly one ledger row and upserts one
        balance row.  ``transfer`` appends two.  ``adjust_to_count`` appends
        zero or one.

    Non-goals:
        - Does NOT touch reservations; consuming them after an issue is the
          caller's step (see ReservationService.consume).
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

    def record_movement(
        self,
        company_id: UUID,
        sku_id: UUID,
        zone_id: UUID,
        quantity: Decimal,
        direction: MovementDirection | str,
        movement_type: MovementType | str,
        cost_per_unit: Decimal | None = None,
        reference: MovementReference | None = None,
        *,
        transfer_id: UUID | None = None,
    ) -> StockMovement:
        """
        Append one movement and update the balance.

        Preconditions:
            - quantity > 0.
            - For IN, a cost is given or derivable from the SKU's master
              data under the configured valuation method.

        Postconditions:
            - The balance for (company, sku, zone) reflects the movement.
            - For OUT, the movement is costed at the balance's current cost
              per unit unless ``cost_per_unit`` is given.

        Raises:
            ValidationError, NotFoundError, InsufficientStockError.
        """
        quantity = to_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")
        if cost_per_unit is not None:
            cost_per_unit = to_decimal(cost_per_unit, "cost_per_unit")
            if cost_per_unit < 0:
                raise ValidationError("Cost per unit cannot be negative", field="cost_per_unit")
        try:
            direction = MovementDirection(direction)
            movement_type = MovementType(movement_type)
        except ValueError as exc:
            raise ValidationError(str(exc), field="movement") from None

        with self.uow.atomic():
            sku = self._require_sku(company_id, sku_id)
            self._require_zone(company_id, zone_id)

            balance = self._lock_balance(company_id, sku_id, zone_id)
            state = self._state_of(balance)
            method = self.uow.policy.valuation_method_for(sku.sku_type)

            if direction == MovementDirection.IN:
                movement_cost = resolve_inbound_cost(
                    cost_per_unit, method, sku.last_purchase_price, sku.standard_cost,
                )
                if movement_cost is None:
                    raise ValidationError(
                        "Cost per unit is required for inbound movements",
                        field="cost_per_unit",
                    )
                delta = quantity
            else:
                if quantity > state.quantity:
                    logger.warning(
                        "insufficient_stock_rejected",
                        extra={
                            "sku_id": str(sku_id),
                            "zone_id": str(zone_id),
                            "requested": str(quantity),
                            "on_hand": str(state.quantity),
                        },
                    )
                    raise InsufficientStockError(
                        str(sku_id), str(zone_id), quantity, state.quantity,
                    )
                movement_cost = (
                    cost_per_unit if cost_per_unit is not None else state.cost_per_unit
                )
                delta = -quantity

            next_state = apply_movement(state, delta, movement_cost, method, sku.standard_cost)
            now = self._now()

            movement = StockMovement(
                company_id=company_id,
                sku_id=sku_id,
                zone_id=zone_id,
                quantity=quantity,
                direction=direction.value,
                movement_type=movement_type.value,
                cost_per_unit=quantize_cost(movement_cost),
                total_cost=quantize_cost(quantity * movement_cost),
                reference_type=reference.reference_type if reference else None,
                reference_id=reference.reference_id if reference else None,
                notes=reference.notes if reference else None,
                transfer_id=transfer_id,
                occurred_at=now,
                created_by_id=self.uow.actor_id,
            )
            self.session.add(movement)

            if balance is None:
                balance = StockBalance(
                    company_id=company_id,
                    sku_id=sku_id,
                    zone_id=zone_id,
                    created_by_id=self.uow.actor_id,
                )
                self.session.add(balance)
            balance.quantity_on_hand = next_state.quantity
            balance.cost_per_unit = next_state.cost_per_unit
            balance.total_cost = next_state.total_cost
            balance.last_movement_at = now
            balance.updated_by_id = self.uow.actor_id
            self.session.flush()

            self.uow.emit(
                self._event(
                    InventoryEventType.MOVEMENT_RECORDED,
                    company_id,
                    "StockMovement",
                    movement.id,
                    sku_id=sku_id,
                    zone_id=zone_id,
                    quantity=quantity,
                    direction=direction.value,
                    movement_type=movement_type.value,
                    reference_type=movement.reference_type,
                    reference_id=movement.reference_id,
                )
            )

        logger.info(
            "stock_movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "sku_id": str(sku_id),
                "zone_id": str(zone_id),
                "direction": direction.value,
                "movement_type": movement_type.value,
                "quantity": str(quantity),
                "balance_after": str(next_state.quantity),
            },
        )
        return movement

    def transfer(
        self,
        company_id: UUID,
        sku_id: UUID,
        from_zone_id: UUID,
        to_zone_id: UUID,
        quantity: Decimal,
        reference: MovementReference | None = None,
    ) -> tuple[StockMovement, StockMovement]:
        """
        Move stock between zones: OUT of the source, IN to the destination at
        the outbound cost.  Both legs share a ``transfer_id``.
        """
        if from_zone_id == to_zone_id:
            raise SameZoneError(str(from_zone_id))

        transfer_id = uuid4()
        with self.uow.atomic():
            outbound = self.record_movement(
                company_id, sku_id, from_zone_id, quantity,
                MovementDirection.OUT, MovementType.TRANSFER,
                reference=reference, transfer_id=transfer_id,
            )
            inbound = self.record_movement(
                company_id, sku_id, to_zone_id, quantity,
                MovementDirection.IN, MovementType.TRANSFER,
                cost_per_unit=outbound.cost_per_unit,
                reference=reference, transfer_id=transfer_id,
            )

        logger.info(
            "stock_transferred",
            extra={
                "transfer_id": str(transfer_id),
                "sku_id": str(sku_id),
                "from_zone_id": str(from_zone_id),
                "to_zone_id": str(to_zone_id),
                "quantity": str(outbound.quantity),
            },
        )
        return outbound, inbound

    def adjust_to_count(
        self,
        company_id: UUID,
        sku_id: UUID,
        zone_id: UUID,
        counted_qty: Decimal,
        reference: MovementReference | None = None,
    ) -> StockMovement | None:
        """
        Cycle count: bring the balance to ``counted_qty`` with one ADJUSTMENT.

        Returns None when the count matches the balance.  Gains are valued
        at the balance's cost per unit, or from SKU master data when the
        zone held nothing (zero if none is known).
        """
        counted_qty = to_decimal(counted_qty, "counted_qty")
        if counted_qty < 0:
            raise ValidationError("Counted quantity cannot be negative", field="counted_qty")

        with self.uow.atomic():
            sku = self._require_sku(company_id, sku_id)
            self._require_zone(company_id, zone_id)
            state = self._state_of(self._lock_balance(company_id, sku_id, zone_id))
            delta = counted_qty - state.quantity

            if delta == 0:
                logger.info(
                    "cycle_count_matched",
                    extra={"sku_id": str(sku_id), "zone_id": str(zone_id)},
                )
                return None

            if delta > 0:
                if state.quantity > 0:
                    cost = state.cost_per_unit
                else:
                    method = self.uow.policy.valuation_method_for(sku.sku_type)
                    cost = resolve_inbound_cost(
                        None, method, sku.last_purchase_price, sku.standard_cost,
                    ) or sku.standard_cost or ZERO
                movement = self.record_movement(
                    company_id, sku_id, zone_id, delta,
                    MovementDirection.IN, MovementType.ADJUSTMENT,
                    cost_per_unit=cost, reference=reference,
                )
            else:
                movement = self.record_movement(
                    company_id, sku_id, zone_id, -delta,
                    MovementDirection.OUT, MovementType.ADJUSTMENT,
                    reference=reference,
                )

        logger.info(
            "cycle_count_adjusted",
            extra={
                "sku_id": str(sku_id),
                "zone_id": str(zone_id),
                "previous_qty": str(state.quantity),
                "counted_qty": str(counted_qty),
            },
        )
        return movement

    def _require_sku(self, company_id: UUID, sku_id: UUID) -> SkuInfo:
        sku = self._skus.get_sku(company_id, sku_id)
        if sku is None:
            raise NotFoundError("Sku", str(sku_id))
        return sku

    def _require_zone(self, company_id: UUID, zone_id: UUID) -> None:
        if self._zones.get_zone(company_id, zone_id) is None:
            raise NotFoundError("Zone", str(zone_id))

    def _lock_balance(
        self, company_id: UUID, sku_id: UUID, zone_id: UUID,
    ) -> StockBalance | None:
        return self.session.execute(
            select(StockBalance)
            .where(
                StockBalance.company_id == company_id,
                StockBalance.sku_id == sku_id,
                StockBalance.zone_id == zone_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _state_of(balance: StockBalance | None) -> BalanceState:
        if balance is None:
            return BalanceState()
        return BalanceState(
            quantity=balance.quantity_on_hand,
            cost_per_unit=balance.cost_per_unit,
            total_cost=balance.total_cost,
        )
