"""
Data models for the deal digest pipeline.

Provides input records (DealData, UserSeed) validated before ingestion and
the read models (Deal, User) returned by the query layer.
"""

from .deal import UNKNOWN_NAME, Deal, DealData
from .user import User, UserSeed

__all__ = [
    # Inputs
    'DealData',
    'UserSeed',
    # Read models
    'Deal',
    'User',
    'UNKNOWN_NAME',
]
