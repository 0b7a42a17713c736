"""
Auction State Machine - Single ascending auction with escrow deposits.

Lifecycle:
---------
1. Create: organizer fixes the lot, start price and [start_time, end_time]
2. Deposit: participants lock funds in escrow (allowed at any time)
3. Bid: inside the window, depositors submit strictly increasing bids
4. Finalize: after end_time the organizer clears the ``is_active`` flag
5. Refund: after end_time anyone triggers the return of losing deposits
6. Pay: the winner pays max_bid minus their deposit; the organizer
   receives the full winning bid

Phase gating is recomputed from the clock on every call. ``is_active`` is
informational and is only written by finalize_auction().

All mutating operations run under a single re-entrant lock, held across
fund transfers and persistence, so cross-field state (max_bid vs
bids[winner]) is never observed half-updated. Each one commits only once
its state is saved; a failed save rolls the operation back and raises
PersistenceFailed.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from escrow_auction.core.auction.events import AuctionEvent, EventLog, EventType, Listener
from escrow_auction.core.auction.params import build_params
from escrow_auction.core.clock import Clock, SystemClock
from escrow_auction.core.errors import (
    AlreadyRegistered,
    AuctionNotActive,
    AuctionNotEnded,
    BidTooLow,
    ConfigurationError,
    IncorrectAmount,
    InvalidAmount,
    NoDeposit,
    NotAuthorized,
    NotTheWinner,
    PersistenceFailed,
    TransferFailed,
)
from escrow_auction.core.ledger.funds import FundsLedger, LedgerCheckpoint
from escrow_auction.utils.logger import get_logger
from escrow_auction.utils.validation import (
    MAX_AMOUNT,
    validate_identity,
    validate_integer,
    validate_positive_amount,
)

logger = get_logger("auction")


DEFAULT_ESCROW_ACCOUNT = "escrow"


# =============================================================================
# Enums
# =============================================================================


class AuctionPhase(IntEnum):
    """Phase of the auction as seen at a given instant."""
    PRE_ACTIVE = 0   # now < start_time
    ACTIVE = 1       # start_time <= now <= end_time
    ENDED = 2        # now > end_time, not yet finalized
    FINALIZED = 3    # organizer cleared is_active


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class AuctionRecord:
    """
    The auction itself.

    Attributes:
        lot_name: Description of the lot (immutable)
        start_price: Reference price, not enforced as a bid floor
        start_time: First second bids are accepted
        end_time: Last second bids are accepted
        organizer: Creator, the only identity allowed to finalize
        is_active: True until finalize_auction() succeeds
        winner: Identity holding the highest bid, None before the first bid
        max_bid: Highest accepted bid, 0 before the first bid
    """
    lot_name: str
    start_price: int
    start_time: int
    end_time: int
    organizer: str
    is_active: bool = True
    winner: Optional[str] = None
    max_bid: int = 0


@dataclass
class RefundFailure:
    """A refund the ledger refused."""
    participant: str
    amount: int
    reason: str


@dataclass
class RefundReport:
    """Outcome of one refund pass."""
    refunded: List[Tuple[str, int]] = field(default_factory=list)
    failures: List[RefundFailure] = field(default_factory=list)
    skipped_winner: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total_refunded(self) -> int:
        return sum(amount for _, amount in self.refunded)


@dataclass
class AuctionSnapshot:
    """Complete persisted state of the auction."""
    record: AuctionRecord
    deposits: Dict[str, int] = field(default_factory=dict)
    bids: Dict[str, int] = field(default_factory=dict)
    participants: List[str] = field(default_factory=list)
    events: List[AuctionEvent] = field(default_factory=list)


@dataclass
class _Savepoint:
    record: AuctionRecord
    deposits: Dict[str, int]
    bids: Dict[str, int]
    participants: List[str]
    event_count: int
    ledger: LedgerCheckpoint


# =============================================================================
# State Machine
# =============================================================================


class AuctionStateMachine:
    """
    Owns the auction record, the deposit and bid ledgers, and the
    participant roster.

    Use :meth:`create` for a new auction and :meth:`restore` to reload a
    persisted one.
    """

    def __init__(
        self,
        record: AuctionRecord,
        funds: Optional[FundsLedger] = None,
        clock: Optional[Clock] = None,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
        storage_manager=None,
        deposits: Optional[Dict[str, int]] = None,
        bids: Optional[Dict[str, int]] = None,
        participants: Optional[List[str]] = None,
        events: Optional[List[AuctionEvent]] = None,
    ):
        self.record = record
        self.funds = funds if funds is not None else FundsLedger()
        self.clock = clock if clock is not None else SystemClock()
        self.escrow_account = escrow_account
        self.storage_manager = storage_manager

        self._deposits: Dict[str, int] = dict(deposits or {})
        self._bids: Dict[str, int] = dict(bids or {})
        self._participants: List[str] = list(participants or [])
        self._events = EventLog(events)

        self._lock = threading.RLock()

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def create(
        cls,
        lot_name: str,
        start_price: int,
        start_time: int,
        end_time: int,
        creator: str,
        funds: Optional[FundsLedger] = None,
        clock: Optional[Clock] = None,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
        storage_manager=None,
    ) -> "AuctionStateMachine":
        """
        Create a new auction in the active state.

        Raises:
            ConfigurationError: invalid parameters, start_time >= end_time,
                a window that starts in the past, or an organizer that is the
                escrow account
        """
        clock = clock if clock is not None else SystemClock()
        now = clock.now()
        if creator == escrow_account:
            raise ConfigurationError(
                f"organizer {creator} is the escrow account", organizer=creator
            )
        params = build_params(lot_name, start_price, start_time, end_time, creator, now)

        record = AuctionRecord(
            lot_name=params.lot_name,
            start_price=params.start_price,
            start_time=params.start_time,
            end_time=params.end_time,
            organizer=params.organizer,
        )
        machine = cls(
            record,
            funds=funds,
            clock=clock,
            escrow_account=escrow_account,
            storage_manager=storage_manager,
        )

        with machine._transaction():
            machine._events.record(
                EventType.AUCTION_CREATED,
                now,
                lot_name=record.lot_name,
                start_price=record.start_price,
                start_time=record.start_time,
                end_time=record.end_time,
                organizer=record.organizer,
            )

        logger.info(
            f"Auction created: lot='{record.lot_name}', start_price={record.start_price}, "
            f"window=[{record.start_time}, {record.end_time}], organizer={record.organizer}"
        )
        return machine

    @classmethod
    def from_snapshot(
        cls,
        snapshot: AuctionSnapshot,
        funds: Optional[FundsLedger] = None,
        clock: Optional[Clock] = None,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
        storage_manager=None,
    ) -> "AuctionStateMachine":
        return cls(
            snapshot.record,
            funds=funds,
            clock=clock,
            escrow_account=escrow_account,
            storage_manager=storage_manager,
            deposits=snapshot.deposits,
            bids=snapshot.bids,
            participants=snapshot.participants,
            events=snapshot.events,
        )

    @classmethod
    def restore(
        cls,
        storage_manager,
        funds: Optional[FundsLedger] = None,
        clock: Optional[Clock] = None,
        escrow_account: str = DEFAULT_ESCROW_ACCOUNT,
    ) -> Optional["AuctionStateMachine"]:
        """Reload the persisted auction, or None if nothing was saved."""
        snapshot = storage_manager.load_auction()
        if snapshot is None:
            return None

        if funds is None:
            funds = FundsLedger(storage_manager.load_balances())

        logger.info(f"Auction restored: lot='{snapshot.record.lot_name}'")
        return cls.from_snapshot(
            snapshot,
            funds=funds,
            clock=clock,
            escrow_account=escrow_account,
            storage_manager=storage_manager,
        )

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def lot_name(self) -> str:
        return self.record.lot_name

    @property
    def start_price(self) -> int:
        return self.record.start_price

    @property
    def start_time(self) -> int:
        return self.record.start_time

    @property
    def end_time(self) -> int:
        return self.record.end_time

    @property
    def organizer(self) -> str:
        return self.record.organizer

    @property
    def is_active(self) -> bool:
        return self.record.is_active

    @property
    def winner(self) -> Optional[str]:
        return self.record.winner

    @property
    def max_bid(self) -> int:
        return self.record.max_bid

    @property
    def participants(self) -> List[str]:
        """Depositors in first-deposit order."""
        with self._lock:
            return list(self._participants)

    @property
    def events(self) -> List[AuctionEvent]:
        return self._events.events

    def deposit_of(self, identity: str) -> int:
        with self._lock:
            return self._deposits.get(identity, 0)

    def bid_of(self, identity: str) -> int:
        with self._lock:
            return self._bids.get(identity, 0)

    def deposits(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._deposits)

    def bids(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._bids)

    def phase(self, now: Optional[int] = None) -> AuctionPhase:
        """Phase at ``now`` (defaults to the clock)."""
        if now is None:
            now = self.clock.now()

        if not self.record.is_active:
            return AuctionPhase.FINALIZED
        if now < self.record.start_time:
            return AuctionPhase.PRE_ACTIVE
        if now <= self.record.end_time:
            return AuctionPhase.ACTIVE
        return AuctionPhase.ENDED

    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked for every new notification."""
        self._events.subscribe(listener)

    def snapshot(self) -> AuctionSnapshot:
        with self._lock:
            return AuctionSnapshot(
                record=replace(self.record),
                deposits=dict(self._deposits),
                bids=dict(self._bids),
                participants=list(self._participants),
                events=self._events.events,
            )

    # =========================================================================
    # Deposit
    # =========================================================================

    def deposit(self, caller: str, amount: int) -> None:
        """
        Lock ``amount`` in escrow for ``caller``.

        Not gated by time: deposits are accepted before start_time and after
        end_time alike.

        Raises:
            NotAuthorized: caller is malformed or is the escrow account
            InvalidAmount: amount is not a positive integer
            AlreadyRegistered: caller already deposited
            TransferFailed: the ledger could not move the funds
            PersistenceFailed: the new state could not be saved
        """
        self._check_caller(caller)
        valid, err = validate_positive_amount(amount)
        if not valid:
            raise InvalidAmount(err, caller=caller, amount=amount)

        with self._transaction():
            if caller in self._deposits:
                logger.debug(f"Deposit rejected: {caller} already registered")
                raise AlreadyRegistered(
                    f"{caller} already deposited {self._deposits[caller]}", caller=caller
                )

            self.funds.transfer(caller, self.escrow_account, amount)

            self._deposits[caller] = amount
            self._participants.append(caller)
            self._events.record(
                EventType.DEPOSIT_MADE, self.clock.now(), participant=caller, amount=amount
            )

        logger.info(f"Deposit: {caller} locked {amount}")

    # =========================================================================
    # Bidding
    # =========================================================================

    def place_bid(self, caller: str, amount: int) -> None:
        """
        Submit a bid inside [start_time, end_time].

        Raises:
            NotAuthorized: caller is malformed or is the escrow account
            AuctionNotActive: outside the bidding window
            NoDeposit: caller has no non-zero deposit
            BidTooLow: amount does not strictly exceed max_bid
            InvalidAmount: amount is not an integer
        """
        self._check_caller(caller)

        with self._transaction():
            now = self.clock.now()
            if now < self.record.start_time or now > self.record.end_time:
                logger.debug(f"Bid rejected: {caller} at {now} outside window")
                raise AuctionNotActive(
                    f"Bidding window is [{self.record.start_time}, {self.record.end_time}], now={now}",
                    now=now,
                )

            if self._deposits.get(caller, 0) == 0:
                logger.debug(f"Bid rejected: {caller} has no deposit")
                raise NoDeposit(f"{caller} has no deposit", caller=caller)

            self._check_signed_amount(caller, amount)
            if amount <= self.record.max_bid:
                logger.debug(f"Bid rejected: {amount} <= max_bid {self.record.max_bid}")
                raise BidTooLow(
                    f"Bid {amount} must exceed current max {self.record.max_bid}",
                    amount=amount,
                    max_bid=self.record.max_bid,
                )

            self.record.max_bid = amount
            self.record.winner = caller
            self._bids[caller] = amount
            self._events.record(EventType.BID_PLACED, now, bidder=caller, amount=amount)

        logger.info(f"Bid accepted: {caller} -> {amount}")

    # =========================================================================
    # Finalization
    # =========================================================================

    def finalize_auction(self, caller: str) -> None:
        """
        Close the auction after end_time. Organizer only.

        Repeatable: a later call succeeds again and emits another
        AuctionEnded notification.

        Raises:
            AuctionNotEnded: now <= end_time
            NotAuthorized: caller is not the organizer
        """
        with self._transaction():
            now = self._require_ended()

            if caller != self.record.organizer:
                logger.warning(f"Finalize rejected: {caller} is not the organizer")
                raise NotAuthorized(f"{caller} is not the organizer", caller=caller)

            if not self.record.is_active:
                logger.warning("Auction finalized again")

            self.record.is_active = False
            self._events.record(
                EventType.AUCTION_ENDED,
                now,
                winner=self.record.winner,
                amount=self.record.max_bid,
            )

        logger.info(f"Auction finalized: winner={self.record.winner}, max_bid={self.record.max_bid}")

    # =========================================================================
    # Settlement
    # =========================================================================

    def refund_deposits(self, caller: str) -> RefundReport:
        """
        Return every losing participant's deposit. Any caller may trigger it.

        The winner's deposit stays in escrow to be credited toward their
        payment. A failed transfer leaves that participant's deposit in
        place, is recorded in the report, and does not stop the pass.

        Raises:
            AuctionNotEnded: now <= end_time
        """
        with self._transaction():
            now = self._require_ended()
            winner = self.record.winner
            report = RefundReport(skipped_winner=winner)

            logger.debug(f"Refund pass triggered by {caller} over {len(self._participants)} participants")

            for participant in self._participants:
                if participant == winner:
                    continue

                amount = self._deposits.get(participant, 0)
                if amount == 0:
                    continue

                self._deposits[participant] = 0
                try:
                    self.funds.transfer(self.escrow_account, participant, amount)
                except TransferFailed as e:
                    self._deposits[participant] = amount
                    report.failures.append(RefundFailure(participant, amount, e.message))
                    logger.warning(f"Refund to {participant} failed: {e.message}")
                    continue

                report.refunded.append((participant, amount))
                self._events.record(
                    EventType.DEPOSIT_RETURNED, now, participant=participant, amount=amount
                )

        logger.info(
            f"Refund pass: {len(report.refunded)} refunded ({report.total_refunded}), "
            f"{len(report.failures)} failed"
        )
        return report

    def pay_final_amount(self, caller: str, amount: int) -> int:
        """
        Settle the winning bid.

        The winner attaches ``max_bid - deposit``; the organizer receives that
        payment plus the escrowed deposit. The deposit entry is not cleared.

        Returns:
            Amount transferred to the organizer

        Raises:
            AuctionNotEnded: now <= end_time
            NotTheWinner: caller is not the current winner
            InvalidAmount: amount is not an integer
            IncorrectAmount: amount != max_bid - deposit
            TransferFailed: payment or payout rejected by the ledger
        """
        with self._transaction():
            self._require_ended()

            if self.record.winner is None or caller != self.record.winner:
                logger.warning(f"Payment rejected: {caller} is not the winner")
                raise NotTheWinner(f"{caller} is not the winner", caller=caller)

            deposit = self._deposits.get(caller, 0)
            required = self.record.max_bid - deposit
            self._check_signed_amount(caller, amount)
            # an attached payment is never negative, so a deposit above max_bid cannot settle
            if amount < 0 or amount != required:
                logger.warning(f"Payment rejected: {caller} sent {amount}, owes {required}")
                raise IncorrectAmount(
                    f"Expected exactly {required}, got {amount}",
                    expected=required,
                    amount=amount,
                )

            if amount > 0:
                self.funds.transfer(caller, self.escrow_account, amount)

            payout = amount + deposit
            try:
                self.funds.transfer(self.escrow_account, self.record.organizer, payout)
            except TransferFailed:
                if amount > 0:
                    self.funds.transfer(self.escrow_account, caller, amount)
                logger.error(f"Payout of {payout} to organizer failed, payment returned to {caller}")
                raise

        logger.info(f"Settlement: {caller} paid {amount}, organizer received {payout}")
        return payout

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self) -> dict:
        """Summary of the auction state."""
        with self._lock:
            return {
                "lot_name": self.record.lot_name,
                "phase": self.phase().name,
                "is_active": self.record.is_active,
                "winner": self.record.winner,
                "max_bid": self.record.max_bid,
                "participants": len(self._participants),
                "escrowed": sum(self._deposits.values()),
                "events": len(self._events),
            }

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_ended(self) -> int:
        now = self.clock.now()
        if now <= self.record.end_time:
            logger.debug(f"Rejected at {now}: auction ends at {self.record.end_time}")
            raise AuctionNotEnded(
                f"Auction ends at {self.record.end_time}, now={now}", now=now
            )
        return now

    def _check_caller(self, caller: str) -> None:
        valid, err = validate_identity(caller, "caller")
        if not valid:
            raise NotAuthorized(err, caller=caller)
        if caller == self.escrow_account:
            raise NotAuthorized(f"{caller} is the escrow account", caller=caller)

    @staticmethod
    def _check_signed_amount(caller: str, amount) -> None:
        # negative values are left to the BidTooLow / IncorrectAmount comparisons
        valid, err = validate_integer(amount, "amount", -MAX_AMOUNT, MAX_AMOUNT)
        if not valid:
            raise InvalidAmount(err, caller=caller, amount=amount)

    @contextmanager
    def _transaction(self):
        """
        Run one operation under the lock and commit it.

        A rejection raised inside the block propagates as is. Once the block
        completes, the state is saved and the new notifications are
        published. If saving fails, the savepoint taken on entry is restored
        and PersistenceFailed is raised.
        """
        with self._lock:
            savepoint = self._savepoint()
            yield

            try:
                self._persist()
            except Exception as e:
                self._rollback(savepoint)
                logger.error(f"Persist failed, operation rolled back: {e}")
                raise PersistenceFailed(f"Could not save auction state: {e}") from e

            self._events.publish(self._events.since(savepoint.event_count))

    def _savepoint(self) -> _Savepoint:
        return _Savepoint(
            record=replace(self.record),
            deposits=dict(self._deposits),
            bids=dict(self._bids),
            participants=list(self._participants),
            event_count=len(self._events),
            ledger=self.funds.checkpoint(),
        )

    def _rollback(self, savepoint: _Savepoint) -> None:
        self.record = savepoint.record
        self._deposits = savepoint.deposits
        self._bids = savepoint.bids
        self._participants = savepoint.participants
        self._events.truncate(savepoint.event_count)
        self.funds.rollback(savepoint.ledger)

    def _persist(self) -> None:
        if self.storage_manager is None:
            return
        self.storage_manager.save_auction(self.snapshot(), balances=self.funds.balances)
