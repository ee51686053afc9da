"""Reference counter model."""

from sqlalchemy import BigInteger, Column, DateTime, String

from riskaccept_api.db.base import Base
from riskaccept_api.utils.clock import utcnow


class ReferenceSequence(Base):
    """Monotonic counter per reference prefix (e.g. RA-)."""

    __tablename__ = "reference_sequences"

    prefix = Column(String(16), primary_key=True)
    last_value = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
