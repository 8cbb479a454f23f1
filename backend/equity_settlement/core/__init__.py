"""Core application components."""

from equity_settlement.core.config import settings
from equity_settlement.core.database import Base, get_db, engine

__all__ = ["settings", "Base", "get_db", "engine"]
