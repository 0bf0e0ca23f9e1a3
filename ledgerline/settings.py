"""
Settings - Single source of truth for user configuration.

Usage:
    settings = Settings(db)
    token = await settings.get('finmind_api_token')
    await settings.set('include_dividends', False)
    all_settings = await settings.all()

Values are stored in the database. Fixed policy windows live in
ledgerline.config.markets instead.
"""

from typing import Any

from ledgerline.database import Database

# Default settings - applied on first run, then editable
DEFAULTS = {
    # Token for the historical feed; empty disables it as a price source
    "finmind_api_token": "",
    # Fold accumulated dividends into profit/loss and cost basis
    "include_dividends": True,
    # Show held instruments with no resolvable price at cost
    "show_unpriced_holdings": False,
}


class Settings:
    """Single source of truth for application settings."""

    _db: "Database"

    def __init__(self, db=None):
        self._db = db or Database()

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value."""
        value = await self._db.get_setting(key)
        if value is None:
            return default if default is not None else DEFAULTS.get(key)
        return value

    async def set(self, key: str, value: Any) -> None:
        """Set a setting value."""
        await self._db.set_setting(key, value)

    async def all(self) -> dict:
        """Get all settings with defaults applied."""
        stored = await self._db.get_all_settings()
        result = DEFAULTS.copy()
        result.update(stored)
        return result

    async def init_defaults(self) -> None:
        """Initialize default settings if not already set."""
        for key, value in DEFAULTS.items():
            existing = await self._db.get_setting(key)
            if existing is None:
                await self._db.set_setting(key, value)

    async def token(self) -> str:
        """The historical feed token as a clean string."""
        value = await self.get("finmind_api_token")
        return str(value).strip() if value else ""
