"""Reference allocator for human-readable acceptance codes."""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from riskaccept_api.models import ReferenceSequence
from riskaccept_api.settings import get_settings
from riskaccept_api.utils.clock import utcnow

logger = logging.getLogger(__name__)


class ReferenceAllocator:
    """Issues unique, increasing references such as RA-001.

    The counter row for a prefix is bumped with a single UPDATE
    (last_value = last_value + 1). The row lock taken by that UPDATE
    serialises allocations for the same prefix until the surrounding
    transaction ends; other prefixes use other rows and never wait.
    """

    def __init__(self, db: Session, min_digits: int | None = None):
        """Initialize allocator."""
        self.db = db
        self.min_digits = min_digits if min_digits is not None else get_settings().reference_min_digits

    def _increment(self, prefix: str) -> int | None:
        result = self.db.execute(
            update(ReferenceSequence)
            .where(ReferenceSequence.prefix == prefix)
            .values(last_value=ReferenceSequence.last_value + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self.db.execute(
            select(ReferenceSequence.last_value).where(ReferenceSequence.prefix == prefix)
        ).scalar_one()

    def _create_counter(self, prefix: str) -> None:
        """Create the counter row, tolerating a concurrent creator."""
        try:
            with self.db.begin_nested():
                self.db.add(ReferenceSequence(prefix=prefix, last_value=0, updated_at=utcnow()))
        except IntegrityError:
            logger.debug("Reference counter created concurrently", extra={"prefix": prefix})

    def next_value(self, prefix: str) -> int:
        """Atomically increment and return the counter for a prefix."""
        value = self._increment(prefix)
        if value is None:
            self._create_counter(prefix)
            value = self._increment(prefix)
        if value is None:
            raise RuntimeError(f"Reference counter for prefix {prefix!r} could not be initialised")
        return value

    def format(self, prefix: str, value: int) -> str:
        """Render a reference; numbers grow past min_digits without truncation."""
        return f"{prefix}{value:0{self.min_digits}d}"

    def allocate(self, prefix: str) -> str:
        """Allocate the next reference for a prefix."""
        reference = self.format(prefix, self.next_value(prefix))
        logger.debug("Allocated reference", extra={"prefix": prefix, "reference": reference})
        return reference
