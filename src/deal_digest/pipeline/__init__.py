"""
Pipeline components for ingestion, reconciliation and digest reads.
"""

from .deduplicator import DealDeduplicator, DealIngestResult, DealOutcome, IngestionResult
from .pipeline import DealDigestService
from .queries import DealQueryComposer, row_to_deal
from .reconciler import ReconcileAction, ReconcileDecision, UserReconciler, decide
from .resolver import IdentityResolver

__all__ = [
    'DealDigestService',
    'IdentityResolver',
    'DealDeduplicator',
    'DealIngestResult',
    'DealOutcome',
    'IngestionResult',
    'UserReconciler',
    'ReconcileAction',
    'ReconcileDecision',
    'decide',
    'DealQueryComposer',
    'row_to_deal',
]
