"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract for kernel write services.
    Kernel services persist through ``session.flush()`` only; the module
    service that called them owns commit and rollback.

Architecture position:
    Kernel > Services.

Failure modes:
    - A subclass that commits breaks the all-or-nothing guarantee of
      multi-line documents (goods issue completion, receiving).
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
