"""
Weekly digest templates.

Pure presentation: turns a user's deals into an HTML body, a plain-text
body and a subject line. Deals are grouped by retailer in the order each
retailer first appears (the query already sorted them by price).
"""

from datetime import date
from html import escape

from ..config import Config
from ..models.deal import Deal


# =============================================================================
# HTML Templates
# =============================================================================

DIGEST_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 0; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; background-color: #f5f5f5;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f5f5f5; padding: 20px;">
    <tr>
      <td align="center">
        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 8px; overflow: hidden;">
          <tr>
            <td style="background: #0A4D3C; padding: 30px; text-align: center;">
              <h1 style="color: #ffffff; margin: 0; font-size: 32px;">{brand}</h1>
              <p style="color: #ffffff; margin: 10px 0 0 0; font-size: 16px;">Weekly Deals</p>
            </td>
          </tr>
          <tr>
            <td style="padding: 30px;">
              <p style="color: #333; font-size: 16px; margin-top: 0;">Hi {user_name},</p>
              <p style="color: #666; font-size: 16px; line-height: 1.6;">Here are your top deals this week, curated just for you!</p>
{sections}
              <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #e0e0e0;">
                <p style="color: #666; font-size: 14px; margin: 0;">Happy shopping!</p>
              </div>
            </td>
          </tr>
          <tr>
            <td style="background-color: #F4FBF8; padding: 20px; text-align: center; border-top: 1px solid #e0e0e0;">
              <p style="color: #666; font-size: 12px; margin: 5px 0;">
                <a href="{preferences_url}" style="color: #0FB872; text-decoration: none;">Manage Preferences</a>
              </p>
              <p style="color: #999; font-size: 11px; margin: 5px 0;">&copy; {year} {brand}. All rights reserved.</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

RETAILER_SECTION_HTML_TEMPLATE = """              <div style="margin-bottom: 30px;">
                <h2 style="color: #0A4D3C; font-size: 20px; margin-bottom: 15px; border-bottom: 2px solid #0FB872; padding-bottom: 5px;">{retailer}</h2>
{deals}
              </div>"""

DEAL_HTML_TEMPLATE = """                <div style="background: #F4FBF8; padding: 15px; margin-bottom: 10px; border-radius: 5px; border-left: 4px solid #0FB872;">
                  <div style="font-size: 18px; font-weight: bold; color: #0A4D3C; margin-bottom: 5px;">{product}</div>
                  <div style="color: #666; margin-bottom: 5px;">Size: {size} | Category: {category}</div>
                  <div style="font-size: 24px; color: #0FB872; font-weight: bold;">{price}</div>
                  <div style="color: #666; font-size: 14px; margin-top: 5px;">Valid: {valid}</div>
                </div>"""


# =============================================================================
# Helpers
# =============================================================================


def format_price(price: float) -> str:
    return f'${price:.2f}'


def format_date(value: date) -> str:
    """US short date (M/D/YYYY)."""
    return f'{value.month}/{value.day}/{value.year}'


def group_by_retailer(deals: list[Deal]) -> dict[str, list[Deal]]:
    """Group deals by retailer name, keeping first-appearance order."""
    groups: dict[str, list[Deal]] = {}
    for deal in deals:
        groups.setdefault(deal.retailer_name, []).append(deal)
    return groups


def build_subject(deals: list[Deal]) -> str:
    return f'Your Weekly Deals - {len(deals)} Great Offers!'


# =============================================================================
# Renderers
# =============================================================================


def render_digest_html(
    deals: list[Deal],
    user_name: str,
    today: date | None = None,
) -> str:
    """Render the HTML body. All user-provided text is escaped."""
    today = today or date.today()
    sections = []
    for retailer, retailer_deals in group_by_retailer(deals).items():
        deal_blocks = '\n'.join(
            DEAL_HTML_TEMPLATE.format(
                product=escape(deal.product_name),
                size=escape(deal.product_size),
                category=escape(deal.category),
                price=format_price(deal.price),
                valid=f'{format_date(deal.start_date)} - {format_date(deal.end_date)}',
            )
            for deal in retailer_deals
        )
        sections.append(
            RETAILER_SECTION_HTML_TEMPLATE.format(retailer=escape(retailer), deals=deal_blocks)
        )

    return DIGEST_HTML_TEMPLATE.format(
        brand=escape(Config.DIGEST_BRAND_NAME),
        user_name=escape(user_name),
        sections='\n'.join(sections),
        preferences_url=escape(Config.PREFERENCES_URL, quote=True),
        year=today.year,
    )


def render_digest_text(
    deals: list[Deal],
    user_name: str,
    today: date | None = None,
) -> str:
    """Render the plain-text alternative body."""
    today = today or date.today()
    lines = [
        f'Hi {user_name},',
        '',
        'Here are your top deals this week, curated just for you!',
        '',
    ]
    for retailer, retailer_deals in group_by_retailer(deals).items():
        lines.append(retailer)
        lines.append('=' * len(retailer))
        lines.append('')
        for deal in retailer_deals:
            lines.append(deal.product_name)
            lines.append(f'Size: {deal.product_size} | Category: {deal.category}')
            lines.append(f'Price: {format_price(deal.price)}')
            lines.append(f'Valid: {format_date(deal.start_date)} - {format_date(deal.end_date)}')
            lines.append('')

    lines.append(f'Manage Preferences: {Config.PREFERENCES_URL}')
    lines.append('')
    lines.append(f'(c) {today.year} {Config.DIGEST_BRAND_NAME}. All rights reserved.')
    return '\n'.join(lines) + '\n'
