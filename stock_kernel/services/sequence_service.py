"""
SequenceService -- per-company document numbering via locked counter rows.

Responsibility:
    Hands out strictly increasing numbers for documents that have no owning
    row to carry a counter, such as purchase orders drafted without a
    vendor (``PO-NOVENDOR-0001``).  Vendor-specific PO numbers use the
    vendor's own ``po_sequence`` column instead.

Invariants enforced:
    - Monotonic per (company, name): the locked counter row is the only
      source of the next value.  max()+1 over document numbers is never
      used.
    - Transactional: an increment is visible only after the caller's unit
      of work commits; a rollback returns the value.

Failure modes:
    - IntegrityError when two transactions create the same counter at once.
      On PostgreSQL the insert runs in a savepoint and the loser re-reads
      the winner's row.  SQLite serializes writers, so no savepoint is
      used there.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is one named sequence of one company.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_sequence_company_name"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller's unit of work
          controls boundaries.
    """

    NO_VENDOR_PURCHASE_ORDER = "po_no_vendor"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, company_id: UUID, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the new
        value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for (company_id, sequence_name).
            - The counter row stays locked until the transaction completes.
        """
        counter = self._locked_counter(company_id, sequence_name)

        if counter is None:
            if self._supports_savepoint_retry():
                savepoint = self._session.begin_nested()
                try:
                    self._insert_first(company_id, sequence_name)
                    savepoint.commit()
                    return 1
                except IntegrityError:
                    logger.debug(
                        "sequence_counter_race_retry",
                        extra={"sequence_name": sequence_name},
                    )
                    savepoint.rollback()
                    counter = self._locked_counter(company_id, sequence_name)
            else:
                self._insert_first(company_id, sequence_name)
                return 1

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, company_id: UUID, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.company_id == company_id,
                SequenceCounter.name == sequence_name,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def _locked_counter(self, company_id: UUID, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.company_id == company_id,
                SequenceCounter.name == sequence_name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert_first(self, company_id: UUID, sequence_name: str) -> None:
        self._session.add(
            SequenceCounter(company_id=company_id, name=sequence_name, current_value=1)
        )
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": 1},
        )

    def _supports_savepoint_retry(self) -> bool:
        return self._session.get_bind().dialect.name == "postgresql"
