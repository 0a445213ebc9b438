"""
Command line entry point for the weekly deals digest.

Usage:
    # Ingest deals and seed users from a data file
    deal-digest ingest --data examples/sample_data.json

    # Optionally ingest, then email every user their digest
    deal-digest send --data examples/sample_data.json --limit 6

    # Print the cheapest deals across all retailers as JSON
    deal-digest top-deals --limit 10
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

import pydantic
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .clients.postgres_client import PostgresClient
from .clients.resend_client import ResendClient, ResendSettings
from .config import Config
from .digest.sender import DigestSender
from .errors import (
    DealDigestError,
    EmailError,
    EmailRateLimitError,
    EmailRecipientError,
    FetchFailedError,
    ValidationError,
)
from .logging import configure_logging, get_logger, logging_context
from .models.deal import Deal, DealData
from .models.user import User, UserSeed
from .pipeline.pipeline import DealDigestService
from .repository import StoreRepository
from .schema_check import verify_database_setup

logger = get_logger(__name__)


# =============================================================================
# Data File
# =============================================================================


class DigestData(BaseModel):
    """Contents of a data file: ``{"deals": [...], "users": [...]}``."""

    deals: list[DealData] = Field(default_factory=list)
    users: list[UserSeed] = Field(default_factory=list)


def load_data(path: str | Path) -> DigestData:
    """
    Read and validate a data file.

    Raises:
        ValidationError: The file is unreadable or its records are invalid
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ValidationError(
            f'Cannot read data file {path}: {e}',
            context={'path': str(path)},
        ) from e

    try:
        return DigestData.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f'Invalid data file {path}: {e.error_count()} validation error(s)',
            context={'path': str(path), 'errors': e.errors(include_url=False)},
        ) from e


# =============================================================================
# Commands
# =============================================================================


@dataclass
class SendSummary:
    """Outcome of one digest run."""

    sent: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        return {
            'sent': len(self.sent),
            'skipped': len(self.skipped),
            'failed': len(self.failed),
        }


async def ingest_data(service: DealDigestService, data: DigestData) -> None:
    """Ingest deals (fatal on error), then seed users (best-effort)."""
    result = await service.ingest_deals(data.deals)
    logger.info(
        'cli.deals_ingested',
        inserted=result.inserted_count,
        skipped=result.skipped_count,
    )
    seeded = await service.seed_users(data.users)
    logger.info(
        'cli.users_seeded',
        succeeded=seeded.success_count,
        failed=seeded.failure_count,
    )


async def _send_with_retry(
    sender: DigestSender,
    user: User,
    deals: list[Deal],
    retry_seconds: float,
) -> str | None:
    """Send one digest, retrying once after a fixed delay when rate limited."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(retry_seconds),
        retry=retry_if_exception_type(EmailRateLimitError),
        sleep=asyncio.sleep,
        before_sleep=lambda state: logger.warning(
            'cli.rate_limited_retrying',
            email=user.email,
            wait_seconds=retry_seconds,
        ),
        reraise=True,
    ):
        with attempt:
            message_id = await sender.send_weekly_digest(user.email, user.name, deals)
    return message_id


async def send_digests(
    service: DealDigestService,
    sender: DigestSender,
    limit: int | None = None,
    pacing_seconds: float | None = None,
    retry_seconds: float | None = None,
) -> SendSummary:
    """
    Email every stored user the cheapest deals at their preferred retailers.

    Users are processed one at a time. A fixed pause separates successive
    sends. Per-user failures are logged and the loop moves on; a failure to
    list users is fatal.

    Args:
        service: Digest service over a verified store
        sender: Digest sender over an email client
        limit: Max deals per digest (defaults to Config.DEFAULT_DEAL_LIMIT)
        pacing_seconds: Pause between sends (defaults to Config.EMAIL_PACING_SECONDS)
        retry_seconds: Pause before the rate-limit retry (defaults to Config.RATE_LIMIT_RETRY_SECONDS)

    Returns:
        SendSummary of sent, skipped and failed emails
    """
    pacing_seconds = Config.EMAIL_PACING_SECONDS if pacing_seconds is None else pacing_seconds
    retry_seconds = Config.RATE_LIMIT_RETRY_SECONDS if retry_seconds is None else retry_seconds
    summary = SendSummary()

    users = await service.get_all_users()
    if not users:
        logger.warning('cli.no_users')
        return summary

    for index, user in enumerate(users, start=1):
        logger.info(
            'cli.user_listed',
            index=index,
            name=user.name,
            email=user.email,
            preferred_retailers=user.preferred_retailers,
        )

    with logging_context(batch='emails'):
        attempted = False
        for user in users:
            try:
                deals = await service.get_deals_for_user(user.preferred_retailers, limit)
            except FetchFailedError as e:
                logger.error('cli.deals_fetch_failed', email=user.email, error=e.message)
                summary.failed.append(user.email)
                continue

            if not deals:
                logger.warning(
                    'cli.no_deals_for_user',
                    email=user.email,
                    preferred_retailers=user.preferred_retailers,
                )
                summary.skipped.append(user.email)
                continue

            if attempted:
                await asyncio.sleep(pacing_seconds)
            attempted = True

            try:
                await _send_with_retry(sender, user, deals, retry_seconds)
            except EmailRecipientError as e:
                logger.error(
                    'cli.recipient_not_allowed',
                    email=user.email,
                    error=e.message,
                    hint='Verify a sending domain to mail recipients other than your own address',
                )
                summary.failed.append(user.email)
            except EmailRateLimitError as e:
                logger.error('cli.rate_limited', email=user.email, error=e.message)
                summary.failed.append(user.email)
            except EmailError as e:
                logger.error('cli.send_failed', email=user.email, error=e.message)
                summary.failed.append(user.email)
            else:
                summary.sent.append(user.email)

    logger.info('cli.send_complete', **summary.to_dict())
    return summary


async def print_top_deals(service: DealDigestService, limit: int | None = None) -> list[Deal]:
    deals = await service.get_top_deals(limit)
    print(json.dumps([deal.model_dump(mode='json') for deal in deals], indent=2))
    return deals


# =============================================================================
# Runner
# =============================================================================


def _build_email_client() -> ResendClient:
    try:
        settings = ResendSettings()
    except pydantic.ValidationError as e:
        missing = [str(err['loc'][0]) for err in e.errors() if err.get('loc')]
        raise ValidationError(
            f"Invalid email configuration: {', '.join(missing) or e}",
            context={'fields': missing},
        ) from e
    return ResendClient(settings=settings)


async def run(args: argparse.Namespace) -> None:
    """Execute one parsed command against the configured store."""
    missing = Config.validate()
    if missing:
        raise ValidationError(
            f"Missing required configuration: {', '.join(missing)}",
            context={'missing': missing},
        )

    data = load_data(args.data) if getattr(args, 'data', None) else None
    email_client = _build_email_client() if args.command == 'send' else None

    postgres = PostgresClient()
    try:
        await postgres.connect()
        repository = StoreRepository(postgres)
        await verify_database_setup(repository)
        service = DealDigestService(repository)

        if data is not None:
            await ingest_data(service, data)

        if args.command == 'send':
            await send_digests(service, DigestSender(email_client), limit=args.limit)
        elif args.command == 'top-deals':
            await print_top_deals(service, limit=args.limit)

        logger.info('cli.timings', **service.timer.summary())
    finally:
        if email_client is not None:
            await email_client.close()
        await postgres.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='deal-digest',
        description='Ingest retailer deals and email weekly digests',
    )
    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit JSON log lines instead of console output',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    ingest = subparsers.add_parser('ingest', help='Ingest deals and seed users from a data file')
    ingest.add_argument('--data', '-d', required=True, help='Path to a JSON data file')

    send = subparsers.add_parser('send', help='Send weekly digests to every user')
    send.add_argument('--data', '-d', help='Ingest this data file before sending')
    send.add_argument(
        '--limit', '-l',
        type=int,
        default=None,
        help=f'Max deals per digest (default: {Config.DEFAULT_DEAL_LIMIT})',
    )

    top = subparsers.add_parser('top-deals', help='Print the cheapest deals as JSON')
    top.add_argument(
        '--limit', '-l',
        type=int,
        default=None,
        help=f'Number of deals (default: {Config.DEFAULT_DEAL_LIMIT})',
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.json_logs:
        configure_logging(json_output=True)

    with logging_context(run_id=uuid4().hex):
        try:
            asyncio.run(run(args))
        except DealDigestError as e:
            logger.error('cli.failed', error=e.message, error_type=type(e).__name__)
            return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
