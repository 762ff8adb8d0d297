"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

History in the budget kernel is append-only.  A version row, once written,
is never rewritten; an identity row never changes its write-once columns;
a changeset is never edited or removed.  The services only ever append,
and these listeners make any other code path fail loudly before SQL is
sent to the database.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*_update() --> ImmutabilityViolationError
         |                                                  ^
         v                                                  |
    [before_delete event] --> _check_delete() --------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                    | Rule
--------------------------|---------------------------------------------------
*Version rows             | Only is_most_recent may change, and only True->False
Identity rows             | Never updated, never deleted
(User, Budget, Node,      |
 Transaction, Posting)    |
Root                      | Never updated, never deleted
Changeset                 | Never updated, never deleted
Plan                      | Never updated, never deleted

Permission and SequenceCounter rows are mutable and not listed.
"""

from sqlalchemy import event, inspect

from budget_kernel.exceptions import ImmutabilityViolationError
from budget_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_fields(target) -> dict[str, tuple[list, list]]:
    """Column attributes with pending changes, as name -> (deleted, added)."""
    state = inspect(target)
    changed = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.has_changes():
            changed[attr.key] = (list(history.deleted), list(history.added))
    return changed


def _block(target, operation: str, reason: str):
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "blocked_operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _is_retirement(deleted: list, added: list) -> bool:
    return deleted == [True] and added == [False]


def _check_version_row_update(mapper, connection, target):
    """
    Allow a version row exactly one change: retiring it from most-recent.
    """
    changed = _changed_fields(target)
    if not changed:
        return

    for name, (deleted, added) in changed.items():
        if name == "is_most_recent" and _is_retirement(deleted, added):
            continue
        _block(
            target,
            "UPDATE",
            f"Version rows are append-only; field '{name}' cannot change",
        )


def _check_frozen_update(mapper, connection, target):
    """Reject any change to a row that is written once."""
    changed = _changed_fields(target)
    if changed:
        _block(
            target,
            "UPDATE",
            f"{type(target).__name__} rows cannot be modified "
            f"(fields: {sorted(changed)})",
        )


def _check_delete(mapper, connection, target):
    """Reject deletion of any history-bearing row."""
    _block(target, "DELETE", f"{type(target).__name__} rows cannot be deleted")


def _protected_models():
    from budget_kernel.models import (
        Budget,
        BudgetVersion,
        Changeset,
        Node,
        NodeVersion,
        Plan,
        Posting,
        PostingVersion,
        Root,
        Transaction,
        TransactionVersion,
        User,
        UserVersion,
    )

    version_models = (
        UserVersion,
        BudgetVersion,
        NodeVersion,
        TransactionVersion,
        PostingVersion,
    )
    frozen_models = (User, Budget, Node, Transaction, Posting, Root, Changeset, Plan)
    return version_models, frozen_models


def _listeners():
    version_models, frozen_models = _protected_models()
    for model in version_models:
        yield model, "before_update", _check_version_row_update
        yield model, "before_delete", _check_delete
    for model in frozen_models:
        yield model, "before_update", _check_frozen_update
        yield model, "before_delete", _check_delete


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate the rules on
    purpose.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
