"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- The auction record
- Deposit and bid ledgers, participant roster
- Notification log
- Funds ledger balances
"""

from escrow_auction.core.storage.sqlite_adapter import SQLiteAdapter
from escrow_auction.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
