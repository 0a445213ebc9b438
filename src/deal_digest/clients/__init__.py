"""
External service clients for the deal digest pipeline.
"""

from .postgres_client import PostgresClient
from .resend_client import ResendClient, ResendSettings, get_resend_settings

__all__ = [
    'PostgresClient',
    'ResendClient',
    'ResendSettings',
    'get_resend_settings',
]
