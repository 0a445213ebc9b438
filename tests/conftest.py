"""
Pytest configuration and shared fixtures.

Key fixtures:
- repository: In-memory FakeRepository honoring the StoreRepository contract
- service: DealDigestService wired over the fake repository
- acme_milk: The canonical single-deal record

The fake keeps every call in ``calls`` so tests can assert on store
traffic (e.g. "empty batch makes zero store calls"). Tables listed in
``missing_tables`` raise StoreTableMissingError; entries in ``failures``
raise the given exception from the named method.
"""

import itertools
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from deal_digest.errors import StoreQueryError, StoreTableMissingError
from deal_digest.models.deal import DealData
from deal_digest.models.user import UserSeed
from deal_digest.pipeline.pipeline import DealDigestService


class FakeRepository:
    """Dict-backed stand-in for StoreRepository."""

    def __init__(self):
        self.retailers: dict[str, str] = {}
        self.products: dict[str, dict[str, str]] = {}
        self.deals: dict[str, dict[str, Any]] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.missing_tables: set[str] = set()
        self.failures: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    # -- helpers --------------------------------------------------------------

    def _touch(self, method: str, table: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]
        if table in self.missing_tables:
            raise StoreTableMissingError(
                f'Relation does not exist: relation "{table}" does not exist',
                context={'sqlstate': '42P01'},
            )

    def _new_id(self, prefix: str) -> str:
        return f'{prefix}-{next(self._ids)}'

    def add_user(self, name: str, email: str, preferred_retailers: list[str] | None = None) -> str:
        """Seed a user row directly, bypassing call tracking."""
        user_id = self._new_id('user')
        self.users[user_id] = {
            'id': user_id,
            'name': name,
            'email': email,
            'preferred_retailers': preferred_retailers,
        }
        return user_id

    def add_raw_deal(self, retailer_id: str | None, product_id: str | None, price: float) -> str:
        """Seed a deal row directly, possibly pointing at missing parents."""
        deal_id = self._new_id('deal')
        self.deals[deal_id] = {
            'id': deal_id,
            'retailer_id': retailer_id,
            'product_id': product_id,
            'price': Decimal(str(price)),
            'start_date': date(2025, 1, 1),
            'end_date': date(2025, 1, 7),
        }
        return deal_id

    # -- retailers ------------------------------------------------------------

    async def find_retailer_id(self, name: str) -> str | None:
        self._touch('find_retailer_id', 'retailers')
        return next((rid for rid, rname in self.retailers.items() if rname == name), None)

    async def insert_retailer(self, name: str) -> str | None:
        self._touch('insert_retailer', 'retailers')
        retailer_id = self._new_id('retailer')
        self.retailers[retailer_id] = name
        return retailer_id

    async def fetch_retailers_by_names(self, names: list[str]) -> list[dict[str, Any]]:
        self._touch('fetch_retailers_by_names', 'retailers')
        return [{'id': rid, 'name': rname} for rid, rname in self.retailers.items() if rname in names]

    # -- products -------------------------------------------------------------

    async def find_product_id(self, name: str, size: str, category: str) -> str | None:
        self._touch('find_product_id', 'products')
        key = {'name': name, 'size': size, 'category': category}
        return next((pid for pid, row in self.products.items() if row == key), None)

    async def insert_product(self, name: str, size: str, category: str) -> str | None:
        self._touch('insert_product', 'products')
        product_id = self._new_id('product')
        self.products[product_id] = {'name': name, 'size': size, 'category': category}
        return product_id

    # -- deals ----------------------------------------------------------------

    async def find_deal_id(self, retailer_id: str, product_id: str, start_date: date) -> str | None:
        self._touch('find_deal_id', 'deals')
        for deal_id, row in self.deals.items():
            if (row['retailer_id'], row['product_id'], row['start_date']) == (
                retailer_id,
                product_id,
                start_date,
            ):
                return deal_id
        return None

    async def insert_deal(
        self,
        retailer_id: str,
        product_id: str,
        price: float,
        start_date: date,
        end_date: date,
    ) -> str | None:
        self._touch('insert_deal', 'deals')
        deal_id = self._new_id('deal')
        self.deals[deal_id] = {
            'id': deal_id,
            'retailer_id': retailer_id,
            'product_id': product_id,
            'price': Decimal(str(price)),
            'start_date': start_date,
            'end_date': end_date,
        }
        return deal_id

    async def fetch_deals(
        self,
        limit: int,
        retailer_ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        self._touch('fetch_deals', 'deals')
        rows = []
        for row in self.deals.values():
            if retailer_ids is not None and row['retailer_id'] not in retailer_ids:
                continue
            product = self.products.get(row['product_id'])
            rows.append({
                **row,
                'retailer_name': self.retailers.get(row['retailer_id']),
                'product_name': product['name'] if product else None,
                'product_size': product['size'] if product else None,
                'category': product['category'] if product else None,
            })
        rows.sort(key=lambda r: r['price'])
        return rows[:limit]

    # -- users ----------------------------------------------------------------

    def _user_ref(self, match) -> dict[str, Any] | None:
        if match is None:
            return None
        return {'id': match['id'], 'name': match['name'], 'email': match['email']}

    async def find_user_by_name(self, name: str) -> dict[str, Any] | None:
        self._touch('find_user_by_name', 'users')
        return self._user_ref(next((u for u in self.users.values() if u['name'] == name), None))

    async def find_user_by_email(self, email: str) -> dict[str, Any] | None:
        self._touch('find_user_by_email', 'users')
        return self._user_ref(next((u for u in self.users.values() if u['email'] == email), None))

    async def insert_user(self, name: str, email: str, preferred_retailers: list[str]) -> str | None:
        self._touch('insert_user', 'users')
        if any(u['email'] == email for u in self.users.values()):
            raise _unique_violation('users_email_key')
        user_id = self._new_id('user')
        self.users[user_id] = {
            'id': user_id,
            'name': name,
            'email': email,
            'preferred_retailers': list(preferred_retailers),
        }
        return user_id

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> None:
        self._touch('update_user', 'users')
        if 'email' in updates and any(
            u['email'] == updates['email'] and uid != user_id for uid, u in self.users.items()
        ):
            raise _unique_violation('users_email_key')
        self.users[user_id].update(updates)

    async def delete_user(self, user_id: str) -> None:
        self._touch('delete_user', 'users')
        self.users.pop(user_id, None)

    async def replace_user(self, conflicting_id: str, user_id: str, updates: dict[str, Any]) -> None:
        self._touch('replace_user', 'users')
        self.users.pop(conflicting_id, None)
        self.users[user_id].update(updates)

    async def fetch_users(self) -> list[dict[str, Any]]:
        self._touch('fetch_users', 'users')
        return [dict(u) for u in sorted(self.users.values(), key=lambda u: u['name'])]

    # -- schema ---------------------------------------------------------------

    async def probe_table(self, table: str) -> None:
        self._touch('probe_table', table)


def _unique_violation(constraint: str) -> StoreQueryError:
    return StoreQueryError(
        f'Store query failed: duplicate key value violates unique constraint "{constraint}"',
        context={'sqlstate': '23505'},
    )


@pytest.fixture
def repository() -> FakeRepository:
    """Empty in-memory store."""
    return FakeRepository()


@pytest.fixture
def service(repository: FakeRepository) -> DealDigestService:
    """Digest service over the in-memory store."""
    return DealDigestService(repository)


@pytest.fixture
def acme_milk() -> DealData:
    """The canonical single-deal record."""
    return DealData(
        retailer='Acme',
        product='Milk',
        size='1L',
        category='dairy',
        price=3.5,
        start=date(2025, 9, 1),
        end=date(2025, 9, 7),
    )


@pytest.fixture
def sample_seeds() -> list[UserSeed]:
    return [
        UserSeed(name='Alice', email='alice@example.com', preferred_retailers=['Acme']),
        UserSeed(name='Bob', email='bob@example.com', preferred_retailers=['FreshMart']),
    ]
