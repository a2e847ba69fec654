import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from bidledger.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Record tables for Bids and Profiles (id -> serialized record).
    2. Leaderboard entries keyed by (board, price, bid_id).
    3. Ledger metadata (accumulated totals).

    Prices and balances exceed SQLite's 64-bit integers, so they are
    stored as decimal text. Ordering is rebuilt in memory on load.
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
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    bid_id TEXT PRIMARY KEY,
                    data BLOB NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    profile_id TEXT PRIMARY KEY,
                    data BLOB NOT NULL
                )
            """)

            # board is 'top_bets' or 'top_claims'
            conn.execute("""
                CREATE TABLE IF NOT EXISTS leaderboard (
                    board TEXT NOT NULL,
                    price TEXT NOT NULL,
                    bid_id TEXT NOT NULL,
                    PRIMARY KEY (board, price, bid_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    def close(self):
        """Close the connection of the current thread."""
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Records
    # =========================================================================

    def get_all_bids(self) -> List[Tuple[str, bytes]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT bid_id, data FROM bids")
        return [(row['bid_id'], row['data']) for row in cursor]

    def get_all_profiles(self) -> List[Tuple[str, bytes]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT profile_id, data FROM profiles")
        return [(row['profile_id'], row['data']) for row in cursor]

    # =========================================================================
    # Leaderboards
    # =========================================================================

    def get_board(self, board: str) -> List[Tuple[int, str]]:
        """Get all (price, bid_id) entries of a board, unordered."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT price, bid_id FROM leaderboard WHERE board = ?", (board,))
        return [(int(row['price']), row['bid_id']) for row in cursor]

    # =========================================================================
    # Ledger State
    # =========================================================================

    def get_state(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM ledger_state WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None

    def persist_changes(
        self,
        bids_put: Dict[str, bytes],
        bids_deleted: Iterable[str],
        profiles_put: Dict[str, bytes],
        board_removes: Iterable[Tuple[str, int, str]],
        board_inserts: Iterable[Tuple[str, int, str]],
        state: Dict[str, str],
    ):
        """
        Atomically apply the writes of one ledger operation.

        Args:
            bids_put: Bid records to insert or replace
            bids_deleted: Bid ids to delete
            profiles_put: Profile records to insert or replace
            board_removes: (board, price, bid_id) entries to delete
            board_inserts: (board, price, bid_id) entries to add
            state: Ledger metadata to set
        """
        conn = self._get_conn()
        with conn:
            for bid_id, data in bids_put.items():
                conn.execute("INSERT OR REPLACE INTO bids (bid_id, data) VALUES (?, ?)", (bid_id, data))

            for bid_id in bids_deleted:
                conn.execute("DELETE FROM bids WHERE bid_id = ?", (bid_id,))

            for profile_id, data in profiles_put.items():
                conn.execute(
                    "INSERT OR REPLACE INTO profiles (profile_id, data) VALUES (?, ?)",
                    (profile_id, data)
                )

            # Removes before inserts: a reprice may touch the same board twice
            for board, price, bid_id in board_removes:
                conn.execute(
                    "DELETE FROM leaderboard WHERE board = ? AND price = ? AND bid_id = ?",
                    (board, str(price), bid_id)
                )

            for board, price, bid_id in board_inserts:
                conn.execute(
                    "INSERT OR REPLACE INTO leaderboard (board, price, bid_id) VALUES (?, ?, ?)",
                    (board, str(price), bid_id)
                )

            for key, value in state.items():
                conn.execute("INSERT OR REPLACE INTO ledger_state (key, value) VALUES (?, ?)", (key, value))
