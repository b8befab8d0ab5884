"""
Module: inventory_kernel.db.types
Responsibility: Annotated column aliases and the money rounding helper shared
    by every model and service.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/, or selectors/.

Invariants enforced:
    - Quantities are whole units (Quantity -> BigInteger).
    - Document money amounts are rounded half-up to cents by round_money(),
      the only sanctioned rounding function.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Monetary amount, 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Whole stock units
Quantity = Annotated[int, BigInteger]

# ISO 4217 currency code
Currency = Annotated[str, String(3)]

# SHA-256 hash as hex string
PayloadHash = Annotated[str, String(64)]

# Enum values and document numbers
ShortCode = Annotated[str, String(50)]

# Free-text notes and reasons
LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(amount: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a document amount half-up to ``places`` decimal places."""
    quantizer = Decimal(1).scaleb(-places)
    return Decimal(amount).quantize(quantizer, rounding=DEFAULT_ROUNDING)
