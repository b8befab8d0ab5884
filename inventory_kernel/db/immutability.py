"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is only worth something if nobody edits it.  A stock
quantity that no longer equals the sum of its ledger entries cannot be
audited, and a completed goods issue whose lines change after the stock was
deducted no longer explains the deduction.

SQLAlchemy fires events before UPDATE/DELETE statements reach the database.
We register listeners that check the rules below and raise
ImmutabilityViolationError before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | When Immutable                  | Declared in
-----------------------|---------------------------------|------------------------------
MovementEntry          | ALWAYS (from creation)          | this module
StockAdjustment        | ALWAYS (one-shot record)        | inventory_modules registry
GoodsIssue (+ lines)   | status = COMPLETED              | inventory_modules registry
PurchaseReceipt (+ln)  | status = COMPLETED              | inventory_modules registry
StockCount (+ lines)   | status = COMPLETED              | inventory_modules registry

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id may change on any row; they are audit metadata.

2. "WAS frozen" not "IS frozen": the completing transition itself sets
   status=COMPLETED and must pass.  Attribute history tells us whether the
   row was already COMPLETED before this flush.

3. Line rules read the parent's status from the database through the
   flush connection, so a line flushed in the same unit of work as its
   parent's completion sees the pre-completion status.  Services flush line
   changes before completing the parent.

4. Module rules are imported inline, the same way create_tables imports
   the ORM registry, so the kernel has no import-time dependency on modules.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    unregister_immutability_listeners()  # TESTS ONLY
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


@dataclass(frozen=True)
class ImmutabilityRule:
    """
    One protected model.

    - No ``status_attr`` and no ``parent_model``: immutable from creation.
    - ``status_attr``: immutable once the row's status is in ``frozen_states``.
    - ``parent_model`` + ``parent_fk_attr``: immutable once the parent row's
      ``parent_status_attr`` is in ``frozen_states``.
    """
    model: type
    entity_type: str
    status_attr: str | None = None
    frozen_states: tuple[str, ...] = ()
    parent_model: type | None = None
    parent_fk_attr: str | None = None
    parent_status_attr: str = "status"

    @property
    def always(self) -> bool:
        return self.status_attr is None and self.parent_model is None


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.attrs
        if attr.history.has_changes()
    }


def _was_frozen(rule: ImmutabilityRule, connection, target) -> bool:
    if rule.always:
        return True

    if rule.status_attr is not None:
        history = get_history(target, rule.status_attr)
        if history.deleted:
            return history.deleted[0] in rule.frozen_states
        if history.added:
            # Transition into the frozen state is the completion itself
            return False
        return getattr(target, rule.status_attr) in rule.frozen_states

    parent_id = getattr(target, rule.parent_fk_attr)
    parent_table = rule.parent_model.__table__
    parent_status = connection.execute(
        select(parent_table.c[rule.parent_status_attr])
        .where(parent_table.c.id == parent_id)
    ).scalar_one_or_none()
    return parent_status in rule.frozen_states


def _block(rule: ImmutabilityRule, target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": rule.entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    if rule.always:
        reason = f"{rule.entity_type} records are immutable"
    else:
        reason = f"{rule.entity_type} is frozen once {'/'.join(rule.frozen_states)}"
    raise ImmutabilityViolationError(
        entity_type=rule.entity_type,
        entity_id=str(target.id),
        reason=f"{reason}; {operation} rejected",
    )


def _check_update(rule: ImmutabilityRule, mapper, connection, target) -> None:
    if _changed_fields(target) <= _AUDIT_METADATA_FIELDS:
        return
    if _was_frozen(rule, connection, target):
        _block(rule, target, "UPDATE")


def _check_delete(rule: ImmutabilityRule, mapper, connection, target) -> None:
    if rule.always or _was_frozen(rule, connection, target):
        _block(rule, target, "DELETE")


# =============================================================================
# Registration
# =============================================================================

_registered: list[tuple[type, str, object]] = []


def kernel_immutability_rules() -> list[ImmutabilityRule]:
    from inventory_kernel.models.movement import MovementEntryModel

    return [ImmutabilityRule(MovementEntryModel, "MovementEntry")]


def register_immutability_listeners() -> None:
    """
    Register every immutability listener (kernel and module rules).

    Idempotent: a second call while registered is a no-op.
    """
    if _registered:
        return

    from inventory_modules._orm_registry import module_immutability_rules

    rules = kernel_immutability_rules() + module_immutability_rules()
    for rule in rules:
        on_update = partial(_check_update, rule)
        on_delete = partial(_check_delete, rule)
        event.listen(rule.model, "before_update", on_update)
        event.listen(rule.model, "before_delete", on_delete)
        _registered.append((rule.model, "before_update", on_update))
        _registered.append((rule.model, "before_delete", on_delete))

    logger.info(
        "immutability_listeners_registered",
        extra={"entity_types": [r.entity_type for r in rules]},
    )


def unregister_immutability_listeners() -> None:
    """
    Remove all immutability listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    while _registered:
        target, event_name, fn = _registered.pop()
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
