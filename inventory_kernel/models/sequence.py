"""
Module: inventory_kernel.models.sequence
Responsibility: Named counter rows behind SequenceService.
Architecture position: Kernel > Models.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is one named sequence (one per document type).  Row-level
    locking on the row serializes allocation for that name only.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "purchase_order", "goods_issue:20240101")
    name: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
