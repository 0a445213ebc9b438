"""
Tests for IdentityResolver.

Covers get-or-create semantics for retailers and products and the mapping
of store failures onto pipeline errors.
"""

import pytest

from deal_digest.errors import (
    CreateFailedError,
    FetchFailedError,
    SchemaMissingError,
    StoreQueryError,
)
from deal_digest.pipeline.resolver import IdentityResolver


@pytest.fixture
def resolver(repository):
    return IdentityResolver(repository)


class TestResolveRetailer:
    @pytest.mark.asyncio
    async def test_creates_on_first_reference(self, resolver, repository):
        retailer_id = await resolver.resolve_retailer('Acme')

        assert repository.retailers == {retailer_id: 'Acme'}
        assert repository.calls == ['find_retailer_id', 'insert_retailer']

    @pytest.mark.asyncio
    async def test_reuses_existing(self, resolver, repository):
        first = await resolver.resolve_retailer('Acme')
        second = await resolver.resolve_retailer('Acme')

        assert first == second
        assert len(repository.retailers) == 1
        assert repository.calls.count('insert_retailer') == 1

    @pytest.mark.asyncio
    async def test_names_are_case_sensitive(self, resolver, repository):
        upper = await resolver.resolve_retailer('Acme')
        lower = await resolver.resolve_retailer('acme')

        assert upper != lower
        assert len(repository.retailers) == 2

    @pytest.mark.asyncio
    async def test_missing_table_on_lookup(self, resolver, repository):
        repository.missing_tables.add('retailers')

        with pytest.raises(SchemaMissingError) as exc_info:
            await resolver.resolve_retailer('Acme')

        assert exc_info.value.tables == ['retailers']
        assert "Database table 'retailers' does not exist" in exc_info.value.message
        assert 'sql/schema.sql' in exc_info.value.message

    @pytest.mark.asyncio
    async def test_lookup_failure_is_fetch_failed(self, resolver, repository):
        repository.failures['find_retailer_id'] = StoreQueryError('connection reset')

        with pytest.raises(FetchFailedError) as exc_info:
            await resolver.resolve_retailer('Acme')

        assert exc_info.value.entity == 'retailers'
        assert 'insert_retailer' not in repository.calls

    @pytest.mark.asyncio
    async def test_insert_failure_is_create_failed(self, resolver, repository):
        repository.failures['insert_retailer'] = StoreQueryError('permission denied')

        with pytest.raises(CreateFailedError, match='Failed to create retailer: permission denied'):
            await resolver.resolve_retailer('Acme')

    @pytest.mark.asyncio
    async def test_insert_without_id_is_create_failed(self, resolver, repository):
        async def no_row(name):
            return None

        repository.insert_retailer = no_row

        with pytest.raises(CreateFailedError, match='No data returned'):
            await resolver.resolve_retailer('Acme')


class TestResolveProduct:
    @pytest.mark.asyncio
    async def test_natural_key_includes_size_and_category(self, resolver, repository):
        gallon = await resolver.resolve_product('Milk', '1 gal', 'Dairy')
        half = await resolver.resolve_product('Milk', '0.5 gal', 'Dairy')
        again = await resolver.resolve_product('Milk', '1 gal', 'Dairy')

        assert gallon == again
        assert gallon != half
        assert len(repository.products) == 2

    @pytest.mark.asyncio
    async def test_missing_table_on_insert(self, resolver, repository):
        repository.failures['insert_product'] = StoreQueryError(
            'Relation does not exist: relation "products" does not exist'
        )

        with pytest.raises(SchemaMissingError) as exc_info:
            await resolver.resolve_product('Milk', '1 gal', 'Dairy')

        assert exc_info.value.tables == ['products']
