"""
Database Package

Provides database access for the ledgerline stores.
"""

from ledgerline.database.base import BaseDatabase
from ledgerline.database.main import Database

__all__ = ["Database", "BaseDatabase"]
