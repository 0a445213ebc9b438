"""
Subscriber models.

No single natural key is authoritative for a user: either name or email
may locate an existing row, and the two lookups may disagree.
"""

from pydantic import BaseModel, Field, field_validator


class UserSeed(BaseModel):
    """A roster entry to be reconciled into the users table."""

    name: str = Field(..., min_length=1, description='Display name, the preferred identity signal')
    email: str = Field(..., min_length=3, description='Delivery address')
    preferred_retailers: list[str] = Field(
        default_factory=list, description='Retailer names the digest is filtered to'
    )


class User(BaseModel):
    """A stored user row."""

    id: str
    name: str
    email: str
    preferred_retailers: list[str] = Field(default_factory=list)

    @field_validator('preferred_retailers', mode='before')
    @classmethod
    def _none_to_empty(cls, value):
        return [] if value is None else value
