"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor for every write service in the kernel.
    Services receive a ``UnitOfWork`` rather than a bare session: the unit
    carries the session, clock, policy and activity sink, and owns the
    transaction boundary.

Invariants enforced:
    - Services never call ``session.commit()`` or ``session.rollback()``.
      Every public write method runs inside ``self.uow.atomic()`` and only
      the outermost unit completes the transaction, so a service call
      composes into a larger workflow without change.
"""

from abc import ABC
from datetime import datetime

from sqlalchemy.orm import Session

from stock_kernel.domain.events import InventoryEvent, InventoryEventType
from stock_kernel.services.unit_of_work import UnitOfWork


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle; ``UnitOfWork`` does.
        - Read-only queries belong in ``stock_kernel/selectors/``.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    @property
    def session(self) -> Session:
        return self.uow.session

    def _now(self) -> datetime:
        return self.uow.now()

    def _event(
        self,
        event_type: InventoryEventType,
        company_id,
        entity_type: str,
        entity_id,
        **data,
    ) -> InventoryEvent:
        return self.uow.make_event(event_type, company_id, entity_type, entity_id, **data)
