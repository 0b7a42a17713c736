"""
Funds Ledger - Balance book standing in for the settlement layer.

Conceptual Background:
---------------------
The auction never holds money itself. It asks a ledger to move funds:

1. **Deposit**: participant -> escrow account
2. **Refund**: escrow account -> participant
3. **Settlement**: winner -> escrow, then escrow -> organizer

Each transfer is atomic on its own and may fail (insufficient balance,
blocked recipient). Failures surface as TransferFailed and leave balances
untouched.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from escrow_auction.core.errors import TransferFailed
from escrow_auction.utils.logger import get_logger
from escrow_auction.utils.validation import validate_positive_amount

logger = get_logger("ledger")


@dataclass(frozen=True)
class TransferRecord:
    """A completed transfer."""
    sender: str
    recipient: str
    amount: int


@dataclass(frozen=True)
class LedgerCheckpoint:
    """Balances and history length at a point in time."""
    balances: Dict[str, int]
    history_length: int


class FundsLedger:
    """
    In-memory account balances.

    Attributes:
        balances: account -> balance
        history: completed transfers in order
        blocked: recipients whose incoming transfers are refused
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self.balances: Dict[str, int] = dict(balances or {})
        self.history: List[TransferRecord] = []
        self.blocked: Set[str] = set()

    # =========================================================================
    # State Access
    # =========================================================================

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def total_supply(self) -> int:
        return sum(self.balances.values())

    def accounts(self) -> Iterable[Tuple[str, int]]:
        return sorted(self.balances.items())

    # =========================================================================
    # Mutation
    # =========================================================================

    def credit(self, account: str, amount: int) -> int:
        """Mint funds into an account (demo faucet). Returns the new balance."""
        valid, err = validate_positive_amount(amount)
        if not valid:
            raise ValueError(err)
        self.balances[account] = self.balance_of(account) + amount
        logger.debug(f"Credited {amount} to {account}")
        return self.balances[account]

    def block(self, account: str) -> None:
        """Refuse every future transfer into ``account``."""
        self.blocked.add(account)

    def unblock(self, account: str) -> None:
        self.blocked.discard(account)

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferRecord:
        """
        Move ``amount`` from sender to recipient.

        Raises:
            TransferFailed: bad amount, blocked recipient or insufficient funds
        """
        valid, err = validate_positive_amount(amount)
        if not valid:
            raise TransferFailed(err, sender=sender, recipient=recipient, amount=amount)

        if recipient in self.blocked:
            raise TransferFailed(
                f"Recipient {recipient} refuses transfers",
                sender=sender, recipient=recipient, amount=amount,
            )

        available = self.balance_of(sender)
        if available < amount:
            raise TransferFailed(
                f"Insufficient balance: {sender} has {available}, needs {amount}",
                sender=sender, recipient=recipient, amount=amount,
            )

        self.balances[sender] = available - amount
        self.balances[recipient] = self.balance_of(recipient) + amount

        record = TransferRecord(sender=sender, recipient=recipient, amount=amount)
        self.history.append(record)
        logger.debug(f"Transfer {sender} -> {recipient}: {amount}")
        return record

    # =========================================================================
    # Checkpoints
    # =========================================================================

    def checkpoint(self) -> LedgerCheckpoint:
        return LedgerCheckpoint(dict(self.balances), len(self.history))

    def rollback(self, checkpoint: LedgerCheckpoint) -> None:
        """Discard every transfer made since ``checkpoint``."""
        undone = len(self.history) - checkpoint.history_length
        self.balances = dict(checkpoint.balances)
        del self.history[checkpoint.history_length:]
        logger.debug(f"Rolled back {undone} transfer(s)")
