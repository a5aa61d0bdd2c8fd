"""
SequenceService: named, strictly increasing counters.

Backs the audit ``seq`` and the human-readable employee and student codes.
Each name is one row in ``sequence_counters``, read ``FOR UPDATE`` so two
transactions can never hand out the same value. A value taken inside a
transaction that later rolls back is simply not consumed.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from institute_kernel.logging_config import get_logger
from institute_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:

    AUDIT_EVENT = "audit_event"
    EMPLOYEE_CODE = "employee_code"
    STUDENT_CODE = "student_code"

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        query = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(query).scalar_one_or_none()

    def _create_counter(self, name: str) -> SequenceCounter | None:
        """Insert the row at zero. Returns None if a concurrent insert won."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        counter = self._counter(name, lock=True) or self._create_counter(name)
        if counter is None:
            counter = self._counter(name, lock=True)
            if counter is None:
                raise RuntimeError(f"sequence counter {name!r} vanished during allocation")

        counter.current_value += 1
        self._session.flush()
        logger.debug("sequence_allocated", extra={"sequence_name": name, "value": counter.current_value})
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None for a name never used."""
        counter = self._counter(name, lock=False)
        return counter.current_value if counter else None
