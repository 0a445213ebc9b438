"""
Deal Digest

Ingests retailer promotions into Postgres, reconciles a roster of
subscribers, and emails each subscriber a weekly digest of the cheapest
deals at their preferred retailers.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .pipeline import (
    DealDigestService,
    IdentityResolver,
    DealDeduplicator,
    IngestionResult,
    UserReconciler,
    ReconcileAction,
    ReconcileDecision,
    DealQueryComposer,
)
from .repository import StoreRepository
from .schema_check import verify_database_setup
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    DealDigestError,
    PipelineError,
    ValidationError,
    SchemaMissingError,
    CreateFailedError,
    InsertFailedError,
    FetchFailedError,
    ReconcileFailedError,
    StoreError,
    StoreTableMissingError,
    EmailError,
    PartialSuccessResult,
    is_missing_table_error,
)

__all__ = [
    # Version
    '__version__',
    # Service
    'DealDigestService',
    # Components
    'IdentityResolver',
    'DealDeduplicator',
    'IngestionResult',
    'UserReconciler',
    'ReconcileAction',
    'ReconcileDecision',
    'DealQueryComposer',
    # Store
    'StoreRepository',
    'verify_database_setup',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'DealDigestError',
    'PipelineError',
    'ValidationError',
    'SchemaMissingError',
    'CreateFailedError',
    'InsertFailedError',
    'FetchFailedError',
    'ReconcileFailedError',
    'StoreError',
    'StoreTableMissingError',
    'EmailError',
    'PartialSuccessResult',
    'is_missing_table_error',
]
