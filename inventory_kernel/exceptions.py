"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock disputes are resolved with numbers. When a goods issue is rejected the
caller needs to know WHICH product, at WHICH location, how much was on hand
and how much was requested - not a sentence to parse.

Every error in this module therefore:
  1. Has its own class (catch by type, not by message)
  2. Has a ``code`` class attribute (machine-readable, API-safe)
  3. Carries the quantities involved as attributes

Example - WRONG:
    try:
        workflow.complete_issue(issue_id, actor_id)
    except Exception as e:
        if "insufficient" in str(e):
            ...

Example - RIGHT:
    try:
        workflow.complete_issue(issue_id, actor_id)
    except InsufficientStockError as e:
        api_response(
            code=e.code,
            product_id=e.product_id,
            on_hand=e.on_hand,
            requested=e.requested_delta,
        )

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ReceivingError
    |   +-- OverReceiptError
    |
    +-- InvalidStateError
    |
    +-- NotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- PurchaseReceiptNotFoundError
    |   +-- GoodsIssueNotFoundError
    |   +-- StockCountNotFoundError
    |   +-- StockAdjustmentNotFoundError
    |
    +-- IdempotencyError
    |   +-- ReceiptPayloadMismatchError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input, rejected before I/O
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Delta would drive on-hand below zero
----------------|-----------------------------|-----------------------------------------
Receiving       | OVER_RECEIPT                | Received > ordered - already received
----------------|-----------------------------|-----------------------------------------
Workflow        | INVALID_STATE               | Transition not allowed from this state
----------------|-----------------------------|-----------------------------------------
Lookup          | PURCHASE_ORDER_NOT_FOUND    | Unknown purchase order id
                | PURCHASE_RECEIPT_NOT_FOUND  | Unknown receipt id
                | GOODS_ISSUE_NOT_FOUND       | Unknown goods issue id
                | STOCK_COUNT_NOT_FOUND       | Unknown stock count id
                | STOCK_ADJUSTMENT_NOT_FOUND  | Unknown adjustment id
----------------|-----------------------------|-----------------------------------------
Idempotency     | RECEIPT_PAYLOAD_MISMATCH    | Receipt id reused with other payload
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Stock record changed underneath us
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a ledger entry or a
                |                             | completed document

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Nothing in the kernel retries. ConcurrencyError is the one category a
   caller may reasonably retry, and that decision belongs to the caller.

2. Every module service rolls back its transaction before re-raising, so a
   caught error never leaves half a document applied.

3. ReceiptPayloadMismatchError means the same receipt id was sent twice with
   different lines. Treat it as a client bug, not as a replay.

===============================================================================
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Validation


class ValidationError(InventoryKernelError):
    """Malformed input; raised before any persistence is touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Stock-related exceptions


class StockError(InventoryKernelError):
    """Base exception for stock quantity errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    A mutation would drive on-hand (or available) quantity below zero.

    The whole operation is rejected; nothing is partially applied.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        location_id: str,
        on_hand: int,
        requested_delta: int,
        reserved: int = 0,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.on_hand = on_hand
        self.reserved = reserved
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock for product {product_id} at {location_id}: "
            f"on hand {on_hand}, reserved {reserved}, requested {requested_delta}"
        )


# Receiving-related exceptions


class ReceivingError(InventoryKernelError):
    """Base exception for purchase receiving errors."""

    code: str = "RECEIVING_ERROR"


class OverReceiptError(ReceivingError):
    """Received quantity exceeds what is still outstanding on the order line."""

    code: str = "OVER_RECEIPT"

    def __init__(
        self,
        purchase_order_id: str,
        product_id: str,
        ordered_qty: int,
        already_received_qty: int,
        requested_qty: int,
    ):
        self.purchase_order_id = purchase_order_id
        self.product_id = product_id
        self.ordered_qty = ordered_qty
        self.already_received_qty = already_received_qty
        self.requested_qty = requested_qty
        super().__init__(
            f"Over-receipt on purchase order {purchase_order_id} for product "
            f"{product_id}: ordered {ordered_qty}, already received "
            f"{already_received_qty}, attempted {requested_qty}"
        )

    @property
    def outstanding_qty(self) -> int:
        return self.ordered_qty - self.already_received_qty


# Workflow


class InvalidStateError(InventoryKernelError):
    """A workflow action was attempted from a state that does not permit it."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state {current_state}"
        )


# Lookup


class NotFoundError(InventoryKernelError):
    """Base exception for unknown document ids."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_type: str = "PurchaseOrder"


class PurchaseReceiptNotFoundError(NotFoundError):
    code: str = "PURCHASE_RECEIPT_NOT_FOUND"
    entity_type: str = "PurchaseReceipt"


class GoodsIssueNotFoundError(NotFoundError):
    code: str = "GOODS_ISSUE_NOT_FOUND"
    entity_type: str = "GoodsIssue"


class StockCountNotFoundError(NotFoundError):
    code: str = "STOCK_COUNT_NOT_FOUND"
    entity_type: str = "StockCount"


class StockAdjustmentNotFoundError(NotFoundError):
    code: str = "STOCK_ADJUSTMENT_NOT_FOUND"
    entity_type: str = "StockAdjustment"


# Idempotency


class IdempotencyError(InventoryKernelError):
    """Base exception for idempotency-key misuse."""

    code: str = "IDEMPOTENCY_ERROR"


class ReceiptPayloadMismatchError(IdempotencyError):
    """
    Receipt id exists but was created from a different payload.

    A replay must carry the same lines; anything else is a second receipt
    that reused the key.
    """

    code: str = "RECEIPT_PAYLOAD_MISMATCH"

    def __init__(self, receipt_id: str, expected_hash: str, received_hash: str):
        self.receipt_id = receipt_id
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Payload mismatch for receipt {receipt_id}: "
            f"expected {expected_hash}, received {received_hash}"
        )


# Concurrency-related exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Movement entries and stock adjustments are immutable from creation;
    goods issues, receipts and stock counts once COMPLETED.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
