"""
Weekly digest rendering and delivery.
"""

from .render import (
    build_subject,
    format_date,
    format_price,
    group_by_retailer,
    render_digest_html,
    render_digest_text,
)
from .sender import DigestSender

__all__ = [
    'DigestSender',
    'build_subject',
    'format_date',
    'format_price',
    'group_by_retailer',
    'render_digest_html',
    'render_digest_text',
]
