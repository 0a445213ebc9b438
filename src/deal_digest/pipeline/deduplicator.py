"""
Deal deduplication and insertion.

A submitted deal is a re-submission of a stored one when it shares the
(retailer_id, product_id, start_date) triple. Re-submissions are skipped and
the stored row is kept verbatim (first write wins: no price or end_date
update). Duplicates are soft; write failures stop the batch.
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..errors import FetchFailedError, InsertFailedError, StoreError, is_missing_table_error
from ..models.deal import DealData
from ..repository import StoreRepository
from .resolver import IdentityResolver, schema_missing

logger = structlog.get_logger(__name__)


class DealOutcome(str, Enum):
    """What happened to one submitted deal."""

    INSERTED = 'inserted'
    SKIPPED = 'skipped'


@dataclass
class DealIngestResult:
    """Outcome for a single submitted deal."""

    deal: DealData
    outcome: DealOutcome
    deal_id: str | None


@dataclass
class IngestionResult:
    """Aggregate outcome of ingesting one batch of deals."""

    results: list[DealIngestResult] = field(default_factory=list)

    @property
    def inserted(self) -> list[DealIngestResult]:
        return [r for r in self.results if r.outcome == DealOutcome.INSERTED]

    @property
    def skipped(self) -> list[DealIngestResult]:
        return [r for r in self.results if r.outcome == DealOutcome.SKIPPED]

    @property
    def inserted_count(self) -> int:
        return len(self.inserted)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


class DealDeduplicator:
    """
    Inserts deals that are not already stored.

    Records are handled strictly in order so that a later record observes
    rows created by an earlier one in the same batch.
    """

    def __init__(
        self,
        repository: StoreRepository,
        resolver: IdentityResolver | None = None,
    ):
        self.repository = repository
        self.resolver = resolver or IdentityResolver(repository)

    async def ingest_one(self, deal: DealData) -> DealIngestResult:
        """
        Resolve identities for one deal and insert it unless already stored.

        Raises:
            SchemaMissingError: A required table does not exist
            CreateFailedError: A retailer or product could not be created
            FetchFailedError: The dedup lookup failed
            InsertFailedError: The deal insert failed
        """
        retailer_id = await self.resolver.resolve_retailer(deal.retailer)
        product_id = await self.resolver.resolve_product(deal.product, deal.size, deal.category)

        try:
            existing_id = await self.repository.find_deal_id(retailer_id, product_id, deal.start)
        except StoreError as e:
            if is_missing_table_error(e):
                raise schema_missing('deals', e) from e
            raise FetchFailedError(f'Failed to fetch deals: {e.message}', entity='deals') from e

        if existing_id:
            logger.info('deal_deduplicator.skipped', deal=deal.label, deal_id=existing_id)
            return DealIngestResult(deal=deal, outcome=DealOutcome.SKIPPED, deal_id=existing_id)

        try:
            deal_id = await self.repository.insert_deal(
                retailer_id=retailer_id,
                product_id=product_id,
                price=deal.price,
                start_date=deal.start,
                end_date=deal.end,
            )
        except StoreError as e:
            if is_missing_table_error(e):
                raise schema_missing('deals', e) from e
            raise InsertFailedError(
                f'Failed to insert deal: {e.message}',
                context={'deal': deal.label},
            ) from e

        logger.info(
            'deal_deduplicator.inserted',
            deal=deal.label,
            price=deal.price,
            deal_id=deal_id,
        )
        return DealIngestResult(deal=deal, outcome=DealOutcome.INSERTED, deal_id=deal_id)

    async def ingest_batch(self, deals: list[DealData]) -> IngestionResult:
        """
        Ingest deals in order, aborting on the first fatal error.

        An empty batch touches the store not at all.
        """
        result = IngestionResult()
        if not deals:
            return result

        logger.info('deal_deduplicator.batch_started', deal_count=len(deals))
        for deal in deals:
            try:
                result.results.append(await self.ingest_one(deal))
            except Exception as e:
                logger.error(
                    'deal_deduplicator.batch_aborted',
                    deal=deal.label,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        logger.info(
            'deal_deduplicator.batch_complete',
            inserted=result.inserted_count,
            skipped=result.skipped_count,
        )
        return result
