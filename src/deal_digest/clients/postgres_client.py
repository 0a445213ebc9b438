"""
Postgres client for the deal digest pipeline.

Thin wrapper over a SQLAlchemy 2.0 async engine + asyncpg. Executes raw SQL
and returns rows as plain dicts; every driver failure is translated into the
typed StoreError hierarchy so callers never string-sniff vendor messages.

Tables touched (through StoreRepository):
- retailers (natural key: name)
- products (natural key: name, size, category)
- deals (logical identity: retailer_id, product_id, start_date)
- users (located by name OR email)
"""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import asyncpg
import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import Config
from ..errors import wrap_store_error

logger = structlog.get_logger(__name__)

# Connect failures and timeouts surface from asyncpg unwrapped by SQLAlchemy
_DRIVER_ERRORS = (SQLAlchemyError, asyncpg.PostgresError, OSError, asyncio.TimeoutError)


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Hosted Postgres pooler URLs include ``channel_binding=require`` and
    ``sslmode=require`` which are libpq parameters. asyncpg rejects unknown
    connection params; SSL is passed through ``connect_args`` instead.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _requires_ssl(url: str) -> bool:
    """True when the libpq-style URL asked for TLS."""
    params = parse_qs(urlparse(url).query)
    return params.get('sslmode', [''])[0] in {'require', 'verify-ca', 'verify-full'}


def _normalize_driver(url: str) -> str:
    """Force the asyncpg driver prefix onto a postgres URL."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://') and '+asyncpg' not in url:
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


class PostgresClient:
    """
    Async Postgres client executing parameterized SQL.

    Configuration via environment variables:
    - DATABASE_URL: Postgres connection URL (postgres://, postgresql:// or
      postgresql+asyncpg://)
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize with a Postgres connection URL.

        Args:
            database_url: Postgres connection URL (defaults to DATABASE_URL)
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url or Config.DATABASE_URL

    async def connect(self) -> None:
        """Create the async engine. Idempotent: no-op if already connected."""
        if self._engine is not None:
            return

        url = self._database_url
        if not url:
            raise ValueError('DATABASE_URL environment variable is required')

        connect_args: dict[str, Any] = {}
        if _requires_ssl(url):
            connect_args['ssl'] = 'require'

        url = _normalize_driver(_sanitize_url(url))

        self._engine = create_async_engine(
            url,
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected: call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except _DRIVER_ERRORS:
            logger.exception('postgres_client.connectivity_check_failed')
            return False

    async def execute_query(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a read query and return rows as dicts.

        Args:
            sql: SQL with :named bind parameters
            parameters: Bind parameter values

        Returns:
            List of result rows keyed by column name

        Raises:
            StoreTableMissingError: A referenced relation does not exist
            StoreQueryError: Any other driver failure
        """
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(sql), parameters or {})
                return [dict(row) for row in result.mappings().all()]
        except _DRIVER_ERRORS as e:
            raise wrap_store_error(e, context={'operation': 'query'}) from e

    async def execute_write(
        self,
        sql: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a write inside its own transaction.

        Statements with a RETURNING clause yield their rows; others yield [].

        Raises:
            StoreTableMissingError: A referenced relation does not exist
            StoreQueryError: Any other driver failure
        """
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(text(sql), parameters or {})
                if not result.returns_rows:
                    return []
                return [dict(row) for row in result.mappings().all()]
        except _DRIVER_ERRORS as e:
            raise wrap_store_error(e, context={'operation': 'write'}) from e

    async def execute_transaction(
        self,
        statements: list[tuple[str, dict[str, Any]]],
    ) -> None:
        """
        Execute several writes in one transaction; all apply or none do.

        Args:
            statements: (sql, parameters) pairs, executed in order

        Raises:
            StoreTableMissingError: A referenced relation does not exist
            StoreQueryError: Any other driver failure (the transaction is rolled back)
        """
        try:
            async with self.engine.begin() as conn:
                for sql, parameters in statements:
                    await conn.execute(text(sql), parameters)
        except _DRIVER_ERRORS as e:
            raise wrap_store_error(e, context={'operation': 'transaction'}) from e
