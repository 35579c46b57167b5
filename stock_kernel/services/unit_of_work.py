"""
UnitOfWork -- transaction boundary shared by every kernel service.

Responsibility:
    Wraps one SQLAlchemy ``Session`` together with the collaborators every
    write path needs (clock, policy, activity sink, acting identity) and
    provides ``atomic()``, a nestable transaction scope.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Constructed by
    the caller (an orchestration module, a request handler, a test) and
    injected into each service, so the same service code runs standalone or
    composed inside a larger workflow.

Invariants enforced:
    - Only the outermost ``atomic()`` block completes the transaction.
      Inner blocks join it.
    - Any exception escaping any level rolls the whole unit back.  If an
      inner failure is caught by calling code, the unit is poisoned and the
      outermost exit raises UnitOfWorkAbortedError instead of committing.
    - Activity events emitted inside a unit are published only after the
      outermost block commits; a rollback discards them.

Failure modes:
    - UnitOfWorkAbortedError when an inner failure was swallowed.
    - Database errors from commit propagate after rollback.

Usage:
    uow = UnitOfWork(session, clock=clock)
    with uow.atomic():
        movements.record_movement(...)
        reservations.reserve(...)
    # committed here; events published
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.events import InventoryEvent, InventoryEventType
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import UnitOfWorkAbortedError
from stock_kernel.logging_config import get_logger
from stock_kernel.services.activity import ActivitySink, LoggingActivitySink

logger = get_logger("services.unit_of_work")


class UnitOfWork:
    """
    Nestable transaction scope over one session.

    Contract:
        ``atomic()`` may be entered recursively.  The outermost exit commits
        (``auto_commit=True``) or flushes and leaves the commit to the
        caller (``auto_commit=False``).  Any failure rolls back the session.

    Non-goals:
        - No savepoints: a failure anywhere aborts the whole unit.
        - Does NOT retry on lock contention; callers decide.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: InventoryPolicy | None = None,
        activity_sink: ActivitySink | None = None,
        actor_id: UUID | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or InventoryPolicy.with_defaults()
        self.activity_sink = activity_sink or LoggingActivitySink()
        self.actor_id = actor_id
        self._auto_commit = auto_commit
        self._depth = 0
        self._abort_cause: str | None = None
        self._pending_events: list[InventoryEvent] = []

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def now(self) -> datetime:
        return self.clock.now()

    @contextmanager
    def atomic(self) -> Iterator["UnitOfWork"]:
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self
            if outermost:
                if self._abort_cause is not None:
                    raise UnitOfWorkAbortedError(self._abort_cause)
                self._complete()
        except BaseException as exc:
            if outermost:
                self._rollback(exc)
            elif self._abort_cause is None:
                self._abort_cause = f"{type(exc).__name__}: {exc}"
            raise
        finally:
            self._depth -= 1
            if outermost:
                self._abort_cause = None

    def emit(self, event: InventoryEvent) -> None:
        """
        Queue an activity event.

        Inside ``atomic()`` the event waits for the commit; outside it is
        published at once.
        """
        if self._depth > 0:
            self._pending_events.append(event)
        else:
            self._publish([event])

    def emit_immediately(self, event: InventoryEvent) -> None:
        """Publish an event regardless of the transaction outcome."""
        self._publish([event])

    def make_event(
        self,
        event_type: InventoryEventType,
        company_id: UUID,
        entity_type: str,
        entity_id: UUID,
        **data,
    ) -> InventoryEvent:
        """Build an event stamped with this unit's clock and actor."""
        return InventoryEvent(
            event_type=event_type,
            company_id=company_id,
            entity_type=entity_type,
            entity_id=entity_id,
            occurred_at=self.now(),
            actor_id=self.actor_id,
            data={k: str(v) if v is not None else None for k, v in data.items()},
        )

    def _complete(self) -> None:
        if self._auto_commit:
            self.session.commit()
            logger.debug("unit_of_work_committed")
        else:
            self.session.flush()
            logger.debug("unit_of_work_flushed")
        events, self._pending_events = self._pending_events, []
        self._publish(events)

    def _rollback(self, exc: BaseException) -> None:
        discarded = len(self._pending_events)
        self._pending_events = []
        self.session.rollback()
        logger.warning(
            "unit_of_work_rolled_back",
            extra={
                "error_type": type(exc).__name__,
                "error_code": getattr(exc, "code", None),
                "discarded_events": discarded,
            },
        )

    def _publish(self, events: list[InventoryEvent]) -> None:
        for event in events:
            self.activity_sink.publish(event)
