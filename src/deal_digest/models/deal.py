"""
Deal models for the deal digest pipeline.

DealData is the loosely-structured record supplied by callers before
identity resolution. Deal is the flat read record produced by joining a
stored deal row with its retailer and product.

Key design decisions:
- Logical identity of a stored deal is (retailer_id, product_id, start_date)
- price travels as float; the repository stores it as NUMERIC
- Missing joined retailer/product never surfaces as None on Deal
"""

from datetime import date

from pydantic import BaseModel, Field

UNKNOWN_NAME = 'Unknown'


class DealData(BaseModel):
    """A raw promotional offer as submitted for ingestion."""

    retailer: str = Field(..., min_length=1, description='Retailer natural key (exact, case-sensitive)')
    product: str = Field(..., min_length=1, description='Product name')
    size: str = Field(default='', description='Package size, part of the product natural key')
    category: str = Field(default='', description='Product category, part of the product natural key')
    price: float = Field(..., ge=0, description='Offer price')
    start: date = Field(..., description='First day the offer is valid')
    end: date = Field(..., description='Last day the offer is valid')

    @property
    def label(self) -> str:
        """Human-readable identifier used in progress logs."""
        return f'{self.retailer} - {self.product} ({self.start.isoformat()})'


class Deal(BaseModel):
    """
    Flat deal record returned to presentation.

    Built from a deals row LEFT JOINed with retailers and products.
    """

    id: str
    retailer_id: str | None = None
    product_id: str | None = None
    price: float
    start_date: date
    end_date: date
    retailer_name: str = Field(default=UNKNOWN_NAME)
    product_name: str = Field(default=UNKNOWN_NAME)
    product_size: str = Field(default='')
    category: str = Field(default='')
