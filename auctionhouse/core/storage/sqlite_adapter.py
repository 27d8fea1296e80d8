import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from auctionhouse.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Auction records (one JSON document per auction).
    2. Bid ledger rows, append-only, ordered by insertion.
    3. Deal events (audit trail per deal room).
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Auctions
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auctions (
                    auction_id TEXT PRIMARY KEY,
                    deal_room_id TEXT NOT NULL,
                    state TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_auction_room ON auctions(deal_room_id);")

            # 2. Bid ledger
            # seq keeps insertion order even when created_at collides
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    bid_id TEXT UNIQUE NOT NULL,
                    auction_id TEXT NOT NULL,
                    bidder_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bid_auction ON bids(auction_id);")

            # 3. Deal events
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deal_events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT UNIQUE NOT NULL,
                    deal_room_id TEXT NOT NULL,
                    actor_id TEXT,
                    event_type TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_event_room ON deal_events(deal_room_id);")

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Auction Operations
    # =========================================================================

    def save_auction(self, auction_id: str, deal_room_id: str, state: str,
                     data: Dict[str, Any], created_at: float):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO auctions (auction_id, deal_room_id, state, data, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (auction_id, deal_room_id, state, json.dumps(data), created_at)
            )

    def get_auction(self, auction_id: str) -> Optional[Dict[str, Any]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM auctions WHERE auction_id = ?", (auction_id,))
        row = cursor.fetchone()
        return json.loads(row['data']) if row else None

    def get_all_auctions(self) -> List[Dict[str, Any]]:
        """Get all auction documents ordered by creation time."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT data FROM auctions ORDER BY created_at ASC")
        return [json.loads(row['data']) for row in cursor]

    # =========================================================================
    # Bid Operations
    # =========================================================================

    def save_bid(self, bid_id: str, auction_id: str, bidder_id: str, amount: int, created_at: float):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR IGNORE INTO bids (bid_id, auction_id, bidder_id, amount, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (bid_id, auction_id, bidder_id, amount, created_at)
            )

    def get_bids(self, auction_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get bids in insertion order, optionally for one auction."""
        conn = self._get_conn()
        if auction_id is None:
            cursor = conn.execute("SELECT * FROM bids ORDER BY seq ASC")
        else:
            cursor = conn.execute(
                "SELECT * FROM bids WHERE auction_id = ? ORDER BY seq ASC", (auction_id,)
            )
        return [
            {
                "id": row['bid_id'],
                "auctionId": row['auction_id'],
                "bidderId": row['bidder_id'],
                "amount": row['amount'],
                "createdAt": row['created_at'],
            }
            for row in cursor
        ]

    # =========================================================================
    # Deal Event Operations
    # =========================================================================

    def save_deal_event(self, event_id: str, deal_room_id: str, actor_id: Optional[str],
                        event_type: str, payload: Dict[str, Any], created_at: float):
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR IGNORE INTO deal_events "
                "(event_id, deal_room_id, actor_id, event_type, payload, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (event_id, deal_room_id, actor_id, event_type, json.dumps(payload), created_at)
            )

    def get_deal_events(self, deal_room_id: Optional[str] = None) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        if deal_room_id is None:
            cursor = conn.execute("SELECT * FROM deal_events ORDER BY seq ASC")
        else:
            cursor = conn.execute(
                "SELECT * FROM deal_events WHERE deal_room_id = ? ORDER BY seq ASC", (deal_room_id,)
            )
        return [
            {
                "id": row['event_id'],
                "dealRoomId": row['deal_room_id'],
                "actorId": row['actor_id'],
                "eventType": row['event_type'],
                "payload": json.loads(row['payload']),
                "createdAt": row['created_at'],
            }
            for row in cursor
        ]
