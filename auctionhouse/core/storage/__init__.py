"""
Persistent Storage Module.

SQLite-backed persistence for:
- Auction records
- The bid ledger
- The deal event audit trail

AuctionRecordStore (record_store) is the in-memory serialization point
layered on top.
"""

from auctionhouse.core.storage.sqlite_adapter import SQLiteAdapter
from auctionhouse.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
