"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Bid and Profile records
- Leaderboard entries
- Ledger totals
"""

from bidledger.core.storage.sqlite_adapter import SQLiteAdapter
from bidledger.core.storage.storage_manager import ChangeSet, StorageManager

__all__ = ["SQLiteAdapter", "StorageManager", "ChangeSet"]
