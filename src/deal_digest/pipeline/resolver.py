"""
Identity resolution for retailers and products.

Maps a natural key to a row id, creating the row on first reference:
- Retailer: name (exact, case-sensitive)
- Product: (name, size, category)

Rows are never updated once created. Lookup-then-insert is a best-effort
fast path, not a uniqueness guarantee; the store's unique constraints are
the backstop.
"""

import structlog

from ..errors import (
    CreateFailedError,
    FetchFailedError,
    SchemaMissingError,
    StoreError,
    is_missing_table_error,
)
from ..repository import StoreRepository

logger = structlog.get_logger(__name__)

SCHEMA_HINT = 'Run sql/schema.sql against the database first.'


def schema_missing(table: str, exc: StoreError) -> SchemaMissingError:
    """Build the operator-facing error for an unprovisioned table."""
    return SchemaMissingError(
        f"Database table '{table}' does not exist. {SCHEMA_HINT} "
        f"Original error: {exc.message}",
        tables=[table],
        context={'table': table},
    )


class IdentityResolver:
    """Resolves retailer and product natural keys to row ids."""

    def __init__(self, repository: StoreRepository):
        self.repository = repository

    async def resolve_retailer(self, name: str) -> str:
        """
        Return the id of the retailer called ``name``, creating it if absent.

        Raises:
            SchemaMissingError: The retailers table does not exist
            CreateFailedError: The insert failed or returned no id
            FetchFailedError: The lookup failed for another reason
        """
        try:
            existing = await self.repository.find_retailer_id(name)
        except StoreError as e:
            raise self._lookup_failure('retailers', e) from e
        if existing:
            return existing

        try:
            retailer_id = await self.repository.insert_retailer(name)
        except StoreError as e:
            raise self._create_failure('retailers', 'retailer', e) from e

        if not retailer_id:
            raise CreateFailedError(
                'Failed to create retailer: No data returned',
                context={'retailer': name},
            )

        logger.info('identity_resolver.retailer_created', retailer=name, retailer_id=retailer_id)
        return retailer_id

    async def resolve_product(self, name: str, size: str, category: str) -> str:
        """
        Return the id of the (name, size, category) product, creating it if absent.

        Raises:
            SchemaMissingError: The products table does not exist
            CreateFailedError: The insert failed or returned no id
            FetchFailedError: The lookup failed for another reason
        """
        try:
            existing = await self.repository.find_product_id(name, size, category)
        except StoreError as e:
            raise self._lookup_failure('products', e) from e
        if existing:
            return existing

        try:
            product_id = await self.repository.insert_product(name, size, category)
        except StoreError as e:
            raise self._create_failure('products', 'product', e) from e

        if not product_id:
            raise CreateFailedError(
                'Failed to create product: No data returned',
                context={'product': name, 'size': size, 'category': category},
            )

        logger.info(
            'identity_resolver.product_created',
            product=name,
            size=size,
            category=category,
            product_id=product_id,
        )
        return product_id

    @staticmethod
    def _lookup_failure(table: str, exc: StoreError) -> SchemaMissingError | FetchFailedError:
        if is_missing_table_error(exc):
            return schema_missing(table, exc)
        return FetchFailedError(f'Failed to fetch {table}: {exc.message}', entity=table)

    @staticmethod
    def _create_failure(
        table: str,
        entity: str,
        exc: StoreError,
    ) -> SchemaMissingError | CreateFailedError:
        if is_missing_table_error(exc):
            return schema_missing(table, exc)
        return CreateFailedError(
            f'Failed to create {entity}: {exc.message}',
            context={'table': table},
        )
