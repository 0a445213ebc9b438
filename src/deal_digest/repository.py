"""
Store repository for the four-table deal digest schema.

Provides the narrow read/write contract the pipeline depends on:
- Natural-key lookups and inserts (retailers, products)
- Dedup-triple lookup and insert (deals)
- Name/email lookups and create/update/delete (users)
- Joined deal reads and name-set retailer reads for presentation

Key design decisions:
- Lookups return the first match or None; inserts return the generated id
- Every method awaits one round trip; there is no caching between calls
- Lookup-then-insert is not atomic. The unique constraints in
  sql/schema.sql are the authoritative backstop; a lost race surfaces as a
  StoreQueryError from the insert.
"""

from datetime import date
from decimal import Decimal
from typing import Any

from .clients.postgres_client import PostgresClient

REQUIRED_TABLES = ('retailers', 'products', 'deals', 'users')

_USER_UPDATABLE_COLUMNS = frozenset({'name', 'email', 'preferred_retailers'})

_DEAL_SELECT = """
    SELECT
        d.id, d.retailer_id, d.product_id, d.price, d.start_date, d.end_date,
        r.name AS retailer_name,
        p.name AS product_name,
        p.size AS product_size,
        p.category AS category
    FROM deals d
    LEFT JOIN retailers r ON r.id = d.retailer_id
    LEFT JOIN products p ON p.id = d.product_id
"""


def _user_update_sql(updates: dict[str, Any]) -> str:
    """Build the UPDATE for one user row from a column -> value mapping."""
    unknown = set(updates) - _USER_UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f'Cannot update user columns: {sorted(unknown)}')
    assignments = ', '.join(f'{column} = :{column}' for column in sorted(updates))
    return f'UPDATE users SET {assignments} WHERE id = :id'


def _first_id(rows: list[dict[str, Any]]) -> str | None:
    """Return the id of the first row as a string, or None."""
    if not rows or rows[0].get('id') is None:
        return None
    return str(rows[0]['id'])


class StoreRepository:
    """
    Table-level operations over a PostgresClient.

    All failures propagate as StoreError subclasses raised by the client.
    """

    def __init__(self, postgres_client: PostgresClient):
        """
        Initialize the repository.

        Args:
            postgres_client: Connected Postgres client
        """
        self.postgres = postgres_client

    # =========================================================================
    # Retailer Operations
    # =========================================================================

    async def find_retailer_id(self, name: str) -> str | None:
        """Exact, case-sensitive lookup by retailer name."""
        rows = await self.postgres.execute_query(
            'SELECT id FROM retailers WHERE name = :name LIMIT 1',
            {'name': name},
        )
        return _first_id(rows)

    async def insert_retailer(self, name: str) -> str | None:
        """Insert a retailer and return its generated id."""
        rows = await self.postgres.execute_write(
            'INSERT INTO retailers (name) VALUES (:name) RETURNING id',
            {'name': name},
        )
        return _first_id(rows)

    async def fetch_retailers_by_names(self, names: list[str]) -> list[dict[str, Any]]:
        """Return retailers whose name is exactly one of ``names``."""
        rows = await self.postgres.execute_query(
            'SELECT id, name FROM retailers WHERE name = ANY(:names)',
            {'names': list(names)},
        )
        return [{'id': str(row['id']), 'name': row['name']} for row in rows]

    # =========================================================================
    # Product Operations
    # =========================================================================

    async def find_product_id(self, name: str, size: str, category: str) -> str | None:
        """Lookup by the (name, size, category) natural key."""
        rows = await self.postgres.execute_query(
            """
            SELECT id FROM products
            WHERE name = :name AND size = :size AND category = :category
            LIMIT 1
            """,
            {'name': name, 'size': size, 'category': category},
        )
        return _first_id(rows)

    async def insert_product(self, name: str, size: str, category: str) -> str | None:
        """Insert a product and return its generated id."""
        rows = await self.postgres.execute_write(
            """
            INSERT INTO products (name, size, category)
            VALUES (:name, :size, :category)
            RETURNING id
            """,
            {'name': name, 'size': size, 'category': category},
        )
        return _first_id(rows)

    # =========================================================================
    # Deal Operations
    # =========================================================================

    async def find_deal_id(
        self,
        retailer_id: str,
        product_id: str,
        start_date: date,
    ) -> str | None:
        """Lookup by the (retailer_id, product_id, start_date) dedup triple."""
        rows = await self.postgres.execute_query(
            """
            SELECT id FROM deals
            WHERE retailer_id = :retailer_id
              AND product_id = :product_id
              AND start_date = :start_date
            LIMIT 1
            """,
            {
                'retailer_id': retailer_id,
                'product_id': product_id,
                'start_date': start_date,
            },
        )
        return _first_id(rows)

    async def insert_deal(
        self,
        retailer_id: str,
        product_id: str,
        price: float,
        start_date: date,
        end_date: date,
    ) -> str | None:
        """Insert a deal row and return its generated id."""
        rows = await self.postgres.execute_write(
            """
            INSERT INTO deals (retailer_id, product_id, price, start_date, end_date)
            VALUES (:retailer_id, :product_id, :price, :start_date, :end_date)
            RETURNING id
            """,
            {
                'retailer_id': retailer_id,
                'product_id': product_id,
                'price': Decimal(str(price)),
                'start_date': start_date,
                'end_date': end_date,
            },
        )
        return _first_id(rows)

    async def fetch_deals(
        self,
        limit: int,
        retailer_ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Read deals joined with retailer and product, cheapest first.

        Args:
            limit: Maximum number of rows
            retailer_ids: Optional allow-list of retailer ids

        Returns:
            Raw joined rows; joined columns are None when the parent is absent
        """
        params: dict[str, Any] = {'limit': limit}
        where = ''
        if retailer_ids is not None:
            where = 'WHERE d.retailer_id = ANY(:retailer_ids)'
            params['retailer_ids'] = list(retailer_ids)

        return await self.postgres.execute_query(
            f'{_DEAL_SELECT} {where} ORDER BY d.price ASC LIMIT :limit',
            params,
        )

    # =========================================================================
    # User Operations
    # =========================================================================

    async def find_user_by_name(self, name: str) -> dict[str, Any] | None:
        """Return {id, name, email} for the user with this name, or None."""
        rows = await self.postgres.execute_query(
            'SELECT id, name, email FROM users WHERE name = :name LIMIT 1',
            {'name': name},
        )
        return self._user_ref(rows)

    async def find_user_by_email(self, email: str) -> dict[str, Any] | None:
        """Return {id, name, email} for the user with this email, or None."""
        rows = await self.postgres.execute_query(
            'SELECT id, name, email FROM users WHERE email = :email LIMIT 1',
            {'email': email},
        )
        return self._user_ref(rows)

    async def insert_user(
        self,
        name: str,
        email: str,
        preferred_retailers: list[str],
    ) -> str | None:
        """Insert a user and return its generated id."""
        rows = await self.postgres.execute_write(
            """
            INSERT INTO users (name, email, preferred_retailers)
            VALUES (:name, :email, :preferred_retailers)
            RETURNING id
            """,
            {
                'name': name,
                'email': email,
                'preferred_retailers': list(preferred_retailers),
            },
        )
        return _first_id(rows)

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> None:
        """
        Set the given columns on one user row.

        Raises:
            ValueError: If ``updates`` names a column outside name/email/preferred_retailers
        """
        sql = _user_update_sql(updates)
        if not updates:
            return
        await self.postgres.execute_write(
            sql,
            {**updates, 'id': user_id},
        )

    async def delete_user(self, user_id: str) -> None:
        """Delete one user row by id."""
        await self.postgres.execute_write(
            'DELETE FROM users WHERE id = :id',
            {'id': user_id},
        )

    async def replace_user(
        self,
        conflicting_id: str,
        user_id: str,
        updates: dict[str, Any],
    ) -> None:
        """
        Delete one user row and update another in a single transaction.

        Used when a renamed user's new email is still held by a different row:
        either the holder is gone and the update applied, or nothing changes.

        Raises:
            ValueError: If ``updates`` names a column outside name/email/preferred_retailers
        """
        sql = _user_update_sql(updates)
        await self.postgres.execute_transaction([
            ('DELETE FROM users WHERE id = :id', {'id': conflicting_id}),
            (sql, {**updates, 'id': user_id}),
        ])

    async def fetch_users(self) -> list[dict[str, Any]]:
        """Return every user row."""
        rows = await self.postgres.execute_query(
            'SELECT id, name, email, preferred_retailers FROM users ORDER BY name'
        )
        return [{**row, 'id': str(row['id'])} for row in rows]

    # =========================================================================
    # Schema Probe
    # =========================================================================

    async def probe_table(self, table: str) -> None:
        """
        Select at most one row from a required table.

        Raises:
            ValueError: If ``table`` is not one of REQUIRED_TABLES
            StoreTableMissingError: If the table does not exist
        """
        if table not in REQUIRED_TABLES:
            raise ValueError(f'Unknown table: {table}')
        await self.postgres.execute_query(f'SELECT 1 FROM {table} LIMIT 1')

    @staticmethod
    def _user_ref(rows: list[dict[str, Any]]) -> dict[str, Any] | None:
        if not rows:
            return None
        row = rows[0]
        return {'id': str(row['id']), 'name': row['name'], 'email': row['email']}
