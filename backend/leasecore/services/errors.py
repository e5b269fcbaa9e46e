"""Error taxonomy for the financial core.

Every service raises one of these; none of them is swallowed inside the core.
Only :class:`ConcurrencyConflict` is retried (by the ledger poster) before it
reaches the caller.
"""


class LeaseCoreError(Exception):
    """Base exception for the financial core."""


class ValidationError(LeaseCoreError):
    """Input or invariant violation: bad amounts, duplicate codes, cycles."""


class NotBalancedError(ValidationError):
    """Debits do not equal credits within the configured tolerance."""


class EmptyEntryError(ValidationError):
    """Journal entry has no lines."""


class InvalidStateTransition(LeaseCoreError):
    """A state machine was asked to make a move it does not allow."""


class ImmutableEntryError(InvalidStateTransition):
    """Posted and reversed journal entries cannot be modified or deleted."""


class NotFound(LeaseCoreError):
    """Unknown account, entry, schedule, payment, commission or agreement."""


class ConcurrencyConflict(LeaseCoreError):
    """A concurrent transaction won a race; the operation may be retried."""

    retryable = True
