"""
Custom exceptions and error handling for the deal digest pipeline.

Provides:
- Typed exception hierarchy for store, email and pipeline failures
- Canonical detection of the "table does not exist" store failure
- Partial success handling for best-effort batches (user reconciliation)
"""

from dataclasses import dataclass, field
from typing import Any

# SQLSTATE for "undefined_table" in Postgres
UNDEFINED_TABLE_SQLSTATE = '42P01'

_MISSING_TABLE_MARKERS = ('does not exist', 'schema cache')


class DealDigestError(Exception):
    """Base exception for all deal digest errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(DealDigestError):
    """Base class for client-related errors."""

    pass


class StoreError(ClientError):
    """Error from relational store operations."""

    pass


class StoreTableMissingError(StoreError):
    """The relation a query touched does not exist (schema not provisioned)."""

    pass


class StoreQueryError(StoreError):
    """Any other store failure (constraint violation, connection, syntax...)."""

    pass


class EmailError(ClientError):
    """Error from the email transport."""

    pass


class EmailRateLimitError(EmailError):
    """The email transport asked us to slow down."""

    pass


class EmailRecipientError(EmailError):
    """The transport refused the recipient (e.g. unverified sandbox domain)."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(DealDigestError):
    """Base class for pipeline-related errors."""

    pass


class ValidationError(PipelineError):
    """Input records failed validation."""

    pass


class SchemaMissingError(PipelineError):
    """One or more required tables are absent; the schema must be provisioned."""

    def __init__(
        self,
        message: str,
        tables: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.tables = tables or []


class CreateFailedError(PipelineError):
    """A retailer or product row could not be created."""

    pass


class InsertFailedError(PipelineError):
    """A deal row could not be inserted after identity resolution."""

    pass


class FetchFailedError(PipelineError):
    """A read query against deals, retailers, users, etc. failed."""

    def __init__(
        self,
        message: str,
        entity: str,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.entity = entity


class ReconcileFailedError(PipelineError):
    """A single user record could not be reconciled."""

    pass


# =============================================================================
# Partial Success Handling
# =============================================================================


@dataclass
class ItemResult:
    """Result for a single item in a batch operation."""

    item_id: str | None
    success: bool
    error: DealDigestError | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PartialSuccessResult:
    """
    Result of a batch operation that may partially succeed.

    Allows processing to continue even when some items fail,
    while preserving error context for debugging.
    """

    succeeded: list[ItemResult] = field(default_factory=list)
    failed: list[ItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.success_count + self.failure_count

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0

    @property
    def partial_success(self) -> bool:
        return self.success_count > 0 and self.failure_count > 0

    def add_success(
        self,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a successful item."""
        self.succeeded.append(
            ItemResult(item_id=item_id, success=True, data=data or {})
        )

    def add_failure(
        self,
        error: DealDigestError,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a failed item."""
        self.failed.append(
            ItemResult(item_id=item_id, success=False, error=error, data=data or {})
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'total_count': self.total_count,
            'all_succeeded': self.all_succeeded,
            'succeeded_ids': [r.item_id for r in self.succeeded if r.item_id],
            'failed_ids': [r.item_id for r in self.failed if r.item_id],
            'errors': [
                {'item_id': r.item_id, 'error': str(r.error)}
                for r in self.failed
                if r.error
            ],
        }


# =============================================================================
# Error Handling Utilities
# =============================================================================


def _sqlstate_of(exc: BaseException) -> str | None:
    """Find a Postgres SQLSTATE on an exception or anything it wraps."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        for attr in ('sqlstate', 'pgcode'):
            value = getattr(current, attr, None)
            if isinstance(value, str) and value:
                return value
        current = getattr(current, 'orig', None) or current.__cause__
    return None


def is_missing_table_error(exc: BaseException) -> bool:
    """
    Canonical "relation does not exist" check.

    A known SQLSTATE decides on its own: only undefined_table counts. The
    message markers hosted Postgres gateways use for a missing relation are
    checked only when no SQLSTATE is available ("column ... does not exist"
    carries 42703 and must not match).
    """
    if isinstance(exc, StoreTableMissingError):
        return True
    sqlstate = _sqlstate_of(exc)
    if sqlstate is not None:
        return sqlstate == UNDEFINED_TABLE_SQLSTATE
    message = str(exc).lower()
    return any(marker in message for marker in _MISSING_TABLE_MARKERS)


def wrap_store_error(exc: Exception, context: dict[str, Any] | None = None) -> StoreError:
    """
    Wrap a database driver exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        StoreTableMissingError for a missing relation, StoreQueryError otherwise
    """
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__
    sqlstate = _sqlstate_of(exc)
    if sqlstate:
        ctx['sqlstate'] = sqlstate

    if is_missing_table_error(exc):
        return StoreTableMissingError(
            f"Relation does not exist: {exc}",
            context=ctx,
        )
    return StoreQueryError(
        f"Store query failed: {exc}",
        context=ctx,
    )
