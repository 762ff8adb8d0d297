"""
Typed Exception Hierarchy for the Budget Kernel.

Every error raised by the kernel is a typed subclass of BudgetKernelError
carrying a machine-readable ``code`` class attribute and structured
attributes, so callers catch by type and read fields instead of parsing
messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BudgetKernelError (base)
    |
    +-- DuplicateIdentityError
    +-- NotFoundError
    |   +-- EntityDeletedError
    +-- PermissionDeniedError
    +-- CannotMutateRootError
    +-- InvalidPostingError
    +-- UnbalancedTransactionError
    +-- ImmutabilityViolationError
    +-- StatementFailureError
    +-- ConnectionFatalError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|-----------------------------------------------------
DUPLICATE_IDENTITY      | create() on a key that already exists
NOT_FOUND               | lock/read target absent, or outside the budget
ENTITY_DELETED          | update/delete of an entity whose head is deleted
PERMISSION_DENIED       | capability check failed for (user, budget)
CANNOT_MUTATE_ROOT      | update/delete attempted on one of a budget's roots
INVALID_POSTING         | posting set references foreign nodes or repeats ids
UNBALANCED_TRANSACTION  | postings do not sum to zero (when enforced)
IMMUTABILITY_VIOLATION  | ORM attempt to rewrite or remove history
STATEMENT_FAILURE       | store rejected a statement (incl. constraints)
CONNECTION_FATAL        | connection pool unusable; callers should exit

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        client.update_node(...)
    except CannotMutateRootError as e:
        return {"error": e.code, "node_id": e.node_id}
    except PermissionDeniedError as e:
        return {"error": e.code, "capability": e.capability}

ConnectionFatalError is never caught inside the kernel.  The connection
pool itself is unusable; the hosting process is expected to terminate.
"""


class BudgetKernelError(Exception):
    """
    Base exception for all budget kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "BUDGET_KERNEL_ERROR"


class DuplicateIdentityError(BudgetKernelError):
    """An identity row with the given key already exists."""

    code: str = "DUPLICATE_IDENTITY"

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} already exists: {key}")


class NotFoundError(BudgetKernelError):
    """The lock or read target does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, key: str, reason: str | None = None):
        self.entity = entity
        self.key = key
        self.reason = reason
        message = f"Cannot find matching {entity}: {key}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class EntityDeletedError(NotFoundError):
    """
    The entity exists but its most recent version is deleted.

    Deletion is one-way: no later update may revive the entity.
    """

    code: str = "ENTITY_DELETED"

    def __init__(self, entity: str, key: str):
        super().__init__(entity, key, reason="entity is deleted")


class PermissionDeniedError(BudgetKernelError):
    """The user lacks the required capability on the budget."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, user_id: str, budget_id: str, capability: str):
        self.user_id = user_id
        self.budget_id = budget_id
        self.capability = capability
        super().__init__(
            f"User {user_id} cannot {capability} budget {budget_id}"
        )


class CannotMutateRootError(BudgetKernelError):
    """Root nodes are created with the budget and never change afterwards."""

    code: str = "CANNOT_MUTATE_ROOT"

    def __init__(self, node_id: str, operation: str):
        self.node_id = node_id
        self.operation = operation
        super().__init__(f"Cannot {operation} a root node: {node_id}")


class InvalidPostingError(BudgetKernelError):
    """A submitted posting set is not acceptable for the transaction."""

    code: str = "INVALID_POSTING"

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Invalid postings for transaction {transaction_id}: {reason}")


class UnbalancedTransactionError(BudgetKernelError):
    """Posting amounts do not sum to zero."""

    code: str = "UNBALANCED_TRANSACTION"

    def __init__(self, transaction_id: str, total: str):
        self.transaction_id = transaction_id
        self.total = total
        super().__init__(
            f"Postings for transaction {transaction_id} sum to {total}, expected 0"
        )


class ImmutabilityViolationError(BudgetKernelError):
    """An attempt was made to rewrite or remove persisted history."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


class StatementFailureError(BudgetKernelError):
    """
    The store rejected a statement.

    Includes constraint violations.  The failing statement text and its
    bound parameters are carried for operator diagnostics.
    """

    code: str = "STATEMENT_FAILURE"

    def __init__(self, statement: str | None, params: object, detail: str):
        self.statement = statement
        self.params = params
        self.detail = detail
        super().__init__(f"Statement failed: {detail}")


class ConnectionFatalError(BudgetKernelError):
    """The connection pool is unusable."""

    code: str = "CONNECTION_FATAL"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Fatal connection error: {detail}")
