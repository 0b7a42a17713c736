from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional

from escrow_auction.core.auction.events import AuctionEvent
from escrow_auction.core.auction.state_machine import AuctionRecord, AuctionSnapshot
from escrow_auction.core.storage.sqlite_adapter import SQLiteAdapter
from escrow_auction.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Manages persistent storage for the auction.

    Translates between AuctionSnapshot objects and the SQLite adapter.
    Handles:
    - Auction record, ledgers, roster
    - Notification log
    - Funds ledger balances
    """

    def __init__(self, data_dir: Path, db_name: str = "auction.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Auction State
    # =========================================================================

    def save_auction(self, snapshot: AuctionSnapshot, balances: Optional[Dict[str, int]] = None):
        """Persist the full auction state, and the balances with it if given."""
        self.adapter.write_auction(
            record=asdict(snapshot.record),
            deposits=snapshot.deposits,
            bids=snapshot.bids,
            roster=snapshot.participants,
            events=[e.to_dict() for e in snapshot.events],
            balances=balances,
        )
        logger.debug(f"Auction saved ({len(snapshot.events)} events)")

    def load_auction(self) -> Optional[AuctionSnapshot]:
        """Load the persisted auction, or None if nothing was saved."""
        raw = self.adapter.read_auction()
        if raw is None:
            return None

        return AuctionSnapshot(
            record=AuctionRecord(**raw["record"]),
            deposits=raw["deposits"],
            bids=raw["bids"],
            participants=raw["roster"],
            events=[AuctionEvent.from_dict(e) for e in raw["events"]],
        )

    def has_auction(self) -> bool:
        return self.adapter.read_auction() is not None

    # =========================================================================
    # Balances
    # =========================================================================

    def save_balances(self, balances: Dict[str, int]):
        self.adapter.write_balances(balances)

    def load_balances(self) -> Dict[str, int]:
        return self.adapter.read_balances()

    # =========================================================================
    # Maintenance
    # =========================================================================

    def clear(self, include_balances: bool = True):
        """Forget the auction and, unless told otherwise, all balances."""
        self.adapter.clear_auction()
        if include_balances:
            self.adapter.clear_balances()
        logger.info(f"Storage cleared at {self.db_path}")

    def close(self):
        self.adapter.close()
