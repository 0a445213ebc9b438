"""
Read-side query composition for digests.

Normalizes joined deal rows into flat Deal records: a missing retailer or
product renders as "Unknown" names and empty size/category, never None, and
NUMERIC prices come back as float. Store failures are wrapped once, naming
the entity that failed, and never retried.
"""

from typing import Any

import structlog

from ..config import Config
from ..errors import FetchFailedError, StoreError
from ..models.deal import UNKNOWN_NAME, Deal
from ..models.user import User
from ..repository import StoreRepository

logger = structlog.get_logger(__name__)


def row_to_deal(row: dict[str, Any]) -> Deal:
    """Map one joined deals/retailers/products row to a flat Deal."""
    return Deal(
        id=str(row['id']),
        retailer_id=str(row['retailer_id']) if row.get('retailer_id') is not None else None,
        product_id=str(row['product_id']) if row.get('product_id') is not None else None,
        price=float(row['price']),
        start_date=row['start_date'],
        end_date=row['end_date'],
        retailer_name=row.get('retailer_name') or UNKNOWN_NAME,
        product_name=row.get('product_name') or UNKNOWN_NAME,
        product_size=row.get('product_size') or '',
        category=row.get('category') or '',
    )


class DealQueryComposer:
    """Builds the read queries behind digests and the user listing."""

    def __init__(self, repository: StoreRepository):
        self.repository = repository

    async def top_deals(self, limit: int | None = None) -> list[Deal]:
        """Cheapest deals across all retailers."""
        limit = Config.DEFAULT_DEAL_LIMIT if limit is None else limit
        rows = await self._fetch_deals(limit)
        return [row_to_deal(row) for row in rows]

    async def deals_for_retailers(
        self,
        retailer_names: list[str],
        limit: int | None = None,
    ) -> list[Deal]:
        """
        Cheapest deals restricted to retailers named exactly in ``retailer_names``.

        When none of the names match a stored retailer, returns [] without
        querying deals.
        """
        limit = Config.DEFAULT_DEAL_LIMIT if limit is None else limit
        if not retailer_names:
            return []

        try:
            retailers = await self.repository.fetch_retailers_by_names(retailer_names)
        except StoreError as e:
            raise FetchFailedError(f'Failed to fetch retailers: {e.message}', entity='retailers') from e

        if not retailers:
            logger.info('deal_queries.no_matching_retailers', retailer_names=retailer_names)
            return []

        rows = await self._fetch_deals(limit, [r['id'] for r in retailers])
        return [row_to_deal(row) for row in rows]

    async def all_users(self) -> list[User]:
        """Every stored user; an empty table yields []."""
        try:
            rows = await self.repository.fetch_users()
        except StoreError as e:
            raise FetchFailedError(f'Failed to fetch users: {e.message}', entity='users') from e
        return [User.model_validate(row) for row in rows or []]

    async def _fetch_deals(
        self,
        limit: int,
        retailer_ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        try:
            rows = await self.repository.fetch_deals(limit, retailer_ids=retailer_ids)
        except StoreError as e:
            raise FetchFailedError(f'Failed to fetch deals: {e.message}', entity='deals') from e
        return rows or []
