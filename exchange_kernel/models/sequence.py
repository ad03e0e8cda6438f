"""
Module: exchange_kernel.models.sequence
Responsibility: Named counter rows backing race-free sequential codes.
Architecture position: Kernel > Models.

Each row is one sequence (for remittance codes: one per tenant and prefix).
Allocation locks the row ``FOR UPDATE`` and increments it inside the
caller's transaction; see services/sequence_service.py.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from exchange_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    # e.g. "remittance:OUT:<tenant uuid>"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
