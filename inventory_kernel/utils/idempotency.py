"""
Idempotency helpers for document replay.

A receipt id supplied by the caller is the idempotency key for receiving.
The stored payload hash tells a genuine replay apart from a key collision.
"""

from typing import Any, Iterable
from uuid import UUID

from inventory_kernel.utils.hashing import hash_payload


def receipt_payload_hash(
    purchase_order_id: UUID,
    location_id: UUID,
    lines: Iterable[Any],
) -> str:
    """
    Hash the parts of a receiving request that must match on replay.

    Lines are sorted by product so that a replay listing the same lines in a
    different order is still recognized.  Notes are deliberately excluded.
    """
    canonical_lines = sorted(
        (
            {
                "product_id": str(line.product_id),
                "received_qty": line.received_qty,
                "accepted_qty": line.accepted_qty,
                "rejected_qty": line.rejected_qty,
            }
            for line in lines
        ),
        key=lambda item: item["product_id"],
    )
    return hash_payload({
        "purchase_order_id": str(purchase_order_id),
        "location_id": str(location_id),
        "lines": canonical_lines,
    })
