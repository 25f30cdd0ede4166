"""Core module initialization."""

from bulk_export.core.config import settings
from bulk_export.core.database import engine, get_db
from bulk_export.core.security import TokenData, TokenProvider, get_token_provider

__all__ = [
    "settings",
    "engine",
    "get_db",
    "TokenData",
    "TokenProvider",
    "get_token_provider",
]
