"""
Precondition check that the four required tables exist.
"""

import structlog

from .errors import SchemaMissingError, StoreError, is_missing_table_error
from .repository import REQUIRED_TABLES, StoreRepository

logger = structlog.get_logger(__name__)

SETUP_INSTRUCTIONS = """\
Setup instructions:
1. Connect to the database named by DATABASE_URL
2. Run the contents of sql/schema.sql
3. Re-run this command"""


async def verify_database_setup(repository: StoreRepository) -> None:
    """
    Probe every required table and report all missing ones at once.

    Probe failures that are not "table missing" are logged and ignored here;
    the operation that needs the table will surface them.

    Raises:
        SchemaMissingError: One or more tables do not exist
    """
    missing: list[str] = []
    for table in REQUIRED_TABLES:
        try:
            await repository.probe_table(table)
        except StoreError as e:
            if is_missing_table_error(e):
                missing.append(table)
            else:
                logger.warning('schema_check.probe_failed', table=table, error=e.message)

    if missing:
        tables = ', '.join(missing)
        raise SchemaMissingError(
            f'Database tables not found: {tables}\n\n{SETUP_INSTRUCTIONS}',
            tables=missing,
        )

    logger.info('schema_check.verified', tables=list(REQUIRED_TABLES))
