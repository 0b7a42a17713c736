import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from escrow_auction.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. The singleton auction row.
    2. Per-participant tables: deposits, bids, roster.
    3. The ordered notification log.
    4. Funds ledger balances.
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

    def close(self):
        """Close the connection held by the current thread."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Auction record (single row, id = 1)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auction (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    lot_name TEXT NOT NULL,
                    start_price INTEGER NOT NULL,
                    start_time INTEGER NOT NULL,
                    end_time INTEGER NOT NULL,
                    organizer TEXT NOT NULL,
                    is_active INTEGER NOT NULL,
                    winner TEXT,
                    max_bid INTEGER NOT NULL
                )
            """)

            # 2. Ledgers
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deposits (
                    participant TEXT PRIMARY KEY,
                    amount INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    participant TEXT PRIMARY KEY,
                    amount INTEGER NOT NULL
                )
            """)

            # 3. Roster (first-deposit order)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS roster (
                    position INTEGER PRIMARY KEY,
                    participant TEXT NOT NULL UNIQUE
                )
            """)

            # 4. Notifications
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    sequence INTEGER PRIMARY KEY,
                    event_type TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            # 5. Funds ledger
            conn.execute("""
                CREATE TABLE IF NOT EXISTS balances (
                    account TEXT PRIMARY KEY,
                    balance INTEGER NOT NULL
                )
            """)

    # =========================================================================
    # Auction State
    # =========================================================================

    def write_auction(
        self,
        record: Dict[str, Any],
        deposits: Dict[str, int],
        bids: Dict[str, int],
        roster: List[str],
        events: List[Dict[str, Any]],
        balances: Optional[Dict[str, int]] = None,
    ):
        """
        Replace the stored auction state in one transaction.

        When ``balances`` is given the funds ledger is rewritten in the same
        transaction, so a failure leaves both untouched.
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO auction
                    (id, lot_name, start_price, start_time, end_time,
                     organizer, is_active, winner, max_bid)
                VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record["lot_name"],
                    record["start_price"],
                    record["start_time"],
                    record["end_time"],
                    record["organizer"],
                    int(record["is_active"]),
                    record["winner"],
                    record["max_bid"],
                ),
            )

            conn.execute("DELETE FROM deposits")
            conn.executemany(
                "INSERT INTO deposits (participant, amount) VALUES (?, ?)",
                list(deposits.items()),
            )

            conn.execute("DELETE FROM bids")
            conn.executemany(
                "INSERT INTO bids (participant, amount) VALUES (?, ?)",
                list(bids.items()),
            )

            conn.execute("DELETE FROM roster")
            conn.executemany(
                "INSERT INTO roster (position, participant) VALUES (?, ?)",
                list(enumerate(roster)),
            )

            # The log is append-only: only new sequences are inserted
            conn.executemany(
                "INSERT OR IGNORE INTO events (sequence, event_type, timestamp, data) VALUES (?, ?, ?, ?)",
                [
                    (e["sequence"], e["event_type"], e["timestamp"], json.dumps(e["data"]))
                    for e in events
                ],
            )

            if balances is not None:
                self._replace_balances(conn, balances)

    def read_auction(self) -> Optional[Dict[str, Any]]:
        """Load the stored auction state, or None if empty."""
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM auction WHERE id = 1").fetchone()
        if row is None:
            return None

        record = {
            "lot_name": row["lot_name"],
            "start_price": row["start_price"],
            "start_time": row["start_time"],
            "end_time": row["end_time"],
            "organizer": row["organizer"],
            "is_active": bool(row["is_active"]),
            "winner": row["winner"],
            "max_bid": row["max_bid"],
        }
        deposits = {
            r["participant"]: r["amount"]
            for r in conn.execute("SELECT participant, amount FROM deposits")
        }
        bids = {
            r["participant"]: r["amount"]
            for r in conn.execute("SELECT participant, amount FROM bids")
        }
        roster = [
            r["participant"]
            for r in conn.execute("SELECT participant FROM roster ORDER BY position")
        ]
        events = [
            {
                "sequence": r["sequence"],
                "event_type": r["event_type"],
                "timestamp": r["timestamp"],
                "data": json.loads(r["data"]),
            }
            for r in conn.execute("SELECT * FROM events ORDER BY sequence")
        ]

        return {
            "record": record,
            "deposits": deposits,
            "bids": bids,
            "roster": roster,
            "events": events,
        }

    def clear_auction(self):
        """Delete every auction table row."""
        conn = self._get_conn()
        with conn:
            for table in ("auction", "deposits", "bids", "roster", "events"):
                conn.execute(f"DELETE FROM {table}")

    # =========================================================================
    # Balances
    # =========================================================================

    def write_balances(self, balances: Dict[str, int]):
        conn = self._get_conn()
        with conn:
            self._replace_balances(conn, balances)

    @staticmethod
    def _replace_balances(conn: sqlite3.Connection, balances: Dict[str, int]):
        conn.execute("DELETE FROM balances")
        conn.executemany(
            "INSERT INTO balances (account, balance) VALUES (?, ?)",
            list(balances.items()),
        )

    def read_balances(self) -> Dict[str, int]:
        conn = self._get_conn()
        return {
            r["account"]: r["balance"]
            for r in conn.execute("SELECT account, balance FROM balances")
        }

    def clear_balances(self):
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM balances")
