"""Shared database models."""

from equity_settlement.shared.models.base import BaseModel, TimestampMixin

__all__ = [
    "BaseModel",
    "TimestampMixin",
]
