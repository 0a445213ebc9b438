"""
Resend email client for the deal digest.

Handles:
- Settings via pydantic-settings (RESEND_API_KEY, FROM_EMAIL, ...)
- Sending one email through the Resend REST API
- Mapping transport failures onto the EmailError hierarchy

The client never retries; pacing and the rate-limit retry belong to the caller.
"""

from functools import lru_cache
from typing import Any

import httpx
import structlog
from pydantic import Field
from pydantic_settings import BaseSettings

from ..errors import EmailError, EmailRateLimitError, EmailRecipientError

logger = structlog.get_logger(__name__)

_RATE_LIMIT_MARKER = 'too many requests'
_TEST_RECIPIENT_MARKER = 'only send testing emails'


class ResendSettings(BaseSettings):
    """Resend environment variables."""

    RESEND_API_KEY: str
    FROM_EMAIL: str = 'noreply@prox.com'
    RESEND_API_URL: str = 'https://api.resend.com'
    HTTP_TIMEOUT_SECONDS: int = Field(default=30, ge=1, le=120)


@lru_cache
def get_resend_settings() -> ResendSettings:
    """Cached settings singleton."""
    return ResendSettings()


class ResendClient:
    """
    Async client for the Resend ``/emails`` endpoint.

    Usage:
        client = ResendClient()
        try:
            message_id = await client.send_email(to, subject, html, text)
        finally:
            await client.close()
    """

    def __init__(
        self,
        settings: ResendSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Resend settings (defaults to environment)
            http_client: Pre-built httpx client, mainly for tests
        """
        self.settings = settings or get_resend_settings()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> 'ResendClient':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def send_email(self, to: str, subject: str, html: str, text: str) -> str:
        """
        Send a single email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body
            text: Plain-text alternative body

        Returns:
            The Resend message id

        Raises:
            EmailRateLimitError: HTTP 429 or a "Too many requests" message
            EmailRecipientError: Sandbox accounts may only mail the verified address
            EmailError: Any other transport or API failure
        """
        url = f"{self.settings.RESEND_API_URL.rstrip('/')}/emails"
        headers = {
            'Authorization': f'Bearer {self.settings.RESEND_API_KEY}',
            'Content-Type': 'application/json',
        }
        payload = {
            'from': self.settings.FROM_EMAIL,
            'to': [to],
            'subject': subject,
            'html': html,
            'text': text,
        }
        context = {'to': to}

        try:
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise EmailError(
                f'Email transport failed: {type(e).__name__}: {e}',
                context=context,
            ) from e

        if response.is_success:
            message_id = str(response.json().get('id', ''))
            logger.info('resend_client.sent', to=to, message_id=message_id)
            return message_id

        raise _error_from_response(response, context)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f'HTTP {response.status_code}'
    if isinstance(body, dict):
        return str(body.get('message') or body.get('error') or body)
    return str(body)


def _error_from_response(response: httpx.Response, context: dict[str, Any]) -> EmailError:
    """Classify a non-2xx Resend response."""
    message = _error_message(response)
    context = {**context, 'status_code': response.status_code}
    lowered = message.lower()

    if response.status_code == 429 or _RATE_LIMIT_MARKER in lowered:
        return EmailRateLimitError(f'Too many requests: {message}', context=context)
    if _TEST_RECIPIENT_MARKER in lowered:
        return EmailRecipientError(f'Recipient not allowed: {message}', context=context)
    return EmailError(f'Email send failed: {message}', context=context)
