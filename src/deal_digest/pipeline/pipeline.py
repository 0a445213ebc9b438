"""
Digest service facade.

Wires the pipeline stages over one StoreRepository and exposes the five
operations the orchestration layer uses:
1. ingest_deals: resolve identities, insert-or-skip each deal (hard stop on failure)
2. seed_users: reconcile the roster (best-effort per user)
3. get_top_deals / get_deals_for_user / get_all_users: reads for presentation
"""

from __future__ import annotations

from ..errors import PartialSuccessResult
from ..logging import PipelineTimer, get_logger, logging_context
from ..models.deal import Deal, DealData
from ..models.user import User, UserSeed
from ..repository import StoreRepository
from .deduplicator import DealDeduplicator, IngestionResult
from .queries import DealQueryComposer
from .reconciler import UserReconciler
from .resolver import IdentityResolver

logger = get_logger(__name__)


class DealDigestService:
    """
    Entry point for ingestion and digest reads.

    All methods are sequential: each store call is awaited before the next
    is issued, so later records see the effects of earlier ones.
    """

    def __init__(self, repository: StoreRepository):
        """
        Initialize the service.

        Args:
            repository: Store repository over a connected Postgres client
        """
        self.repository = repository
        self.resolver = IdentityResolver(repository)
        self.deduplicator = DealDeduplicator(repository, resolver=self.resolver)
        self.reconciler = UserReconciler(repository)
        self.queries = DealQueryComposer(repository)
        self.timer = PipelineTimer()

    async def ingest_deals(self, deals: list[DealData]) -> IngestionResult:
        """Ingest a batch of deals; the first fatal error aborts the rest."""
        with logging_context(batch='deals'), self.timer.stage('ingest_deals'):
            result = await self.deduplicator.ingest_batch(deals)
        logger.info(
            'service.ingest_deals_complete',
            inserted=result.inserted_count,
            skipped=result.skipped_count,
            duration_ms=round(self.timer.stages['ingest_deals'], 2),
        )
        return result

    async def seed_users(self, users: list[UserSeed]) -> PartialSuccessResult:
        """Reconcile a roster of users; per-user failures are collected, not raised."""
        with logging_context(batch='users'), self.timer.stage('seed_users'):
            result = await self.reconciler.reconcile(users)
        if not result.all_succeeded:
            logger.warning('service.seed_users_partial', **result.to_dict())
        return result

    async def get_top_deals(self, limit: int | None = None) -> list[Deal]:
        return await self.queries.top_deals(limit)

    async def get_deals_for_user(
        self,
        retailer_names: list[str],
        limit: int | None = None,
    ) -> list[Deal]:
        return await self.queries.deals_for_retailers(retailer_names, limit)

    async def get_all_users(self) -> list[User]:
        return await self.queries.all_users()
