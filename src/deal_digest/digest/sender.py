"""
Weekly digest sender: renders a user's deals and hands them to the email client.
"""

import structlog

from ..clients.resend_client import ResendClient
from ..models.deal import Deal
from .render import build_subject, render_digest_html, render_digest_text

logger = structlog.get_logger(__name__)


class DigestSender:
    """Sends one weekly digest per call."""

    def __init__(self, email_client: ResendClient):
        self.email_client = email_client

    async def send_weekly_digest(
        self,
        email: str,
        name: str,
        deals: list[Deal],
    ) -> str | None:
        """
        Render and send a digest.

        Args:
            email: Recipient address
            name: Recipient display name
            deals: Deals to include, already ordered by price

        Returns:
            The message id, or None when there was nothing to send
        """
        if not deals:
            logger.info('digest_sender.no_deals', email=email)
            return None

        message_id = await self.email_client.send_email(
            to=email,
            subject=build_subject(deals),
            html=render_digest_html(deals, name),
            text=render_digest_text(deals, name),
        )
        logger.info(
            'digest_sender.sent',
            email=email,
            deal_count=len(deals),
            message_id=message_id,
        )
        return message_id
