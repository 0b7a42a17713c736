"""
Escrow Auction CLI

Main entry point for all CLI commands. State is kept in a SQLite database
under the data directory, so each command picks up where the last left off.
"""

from pathlib import Path
from typing import Optional

import click

from escrow_auction import __version__
from escrow_auction.core.config import load_config
from escrow_auction.utils.logger import setup_logging, get_logger

logger = get_logger("cli")


def _clock(at: Optional[int]):
    """Pinned clock when --at is given, wall clock otherwise."""
    from escrow_auction.core.clock import ManualClock, SystemClock

    if at is None:
        return SystemClock()
    return ManualClock(at)


def _storage(ctx):
    from escrow_auction.core.storage import StorageManager

    config = ctx.obj["config"]
    return StorageManager(config.data_dir, db_name=config.db_name)


def _load_machine(ctx, at: Optional[int]):
    """Restore the persisted auction or exit with an error."""
    from escrow_auction.core.auction import AuctionStateMachine

    machine = AuctionStateMachine.restore(
        _storage(ctx),
        clock=_clock(at),
        escrow_account=ctx.obj["config"].escrow_account,
    )
    if machine is None:
        click.echo("❌ No auction found")
        click.echo("   Create one with: escrow-auction create --lot ... --organizer ...")
        ctx.exit(1)
    return machine


def _fail(ctx, error):
    click.echo(f"❌ {error}")
    ctx.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory")
@click.option("--env-file", default=None, help="Load settings from this .env file")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, debug, data_dir, env_file):
    """Escrow Auction - single ascending auction with deposits"""
    import logging

    config = load_config(env_file)
    if data_dir:
        config.data_dir = Path(data_dir).expanduser()

    level = logging.DEBUG if debug else logging.WARNING
    setup_logging(
        level=level,
        log_dir=str(config.log_dir),
        log_to_file=config.log_to_file,
        force=True,
    )
    config.ensure_dirs()

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Setup Commands
# =============================================================================


@cli.command("create")
@click.option("--lot", "lot_name", required=True, help="Lot description")
@click.option("--start-price", default=0, type=int, help="Reference start price")
@click.option("--organizer", required=True, help="Organizer identity")
@click.option("--start", "start_time", default=None, type=int, help="Start timestamp (default: now)")
@click.option("--end", "end_time", default=None, type=int, help="End timestamp")
@click.option("--duration", default=None, type=int, help="Window length in seconds")
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.option("--force", is_flag=True, help="Replace an existing auction")
@click.pass_context
def create(ctx, lot_name, start_price, organizer, start_time, end_time, duration, at, force):
    """Create the auction"""
    from escrow_auction.core.auction import AuctionStateMachine
    from escrow_auction.core.errors import AuctionError
    from escrow_auction.core.ledger import FundsLedger

    config = ctx.obj["config"]
    storage = _storage(ctx)

    if storage.has_auction():
        if not force:
            _fail(ctx, "An auction already exists (use --force to replace it)")
        storage.clear(include_balances=False)

    clock = _clock(at)
    if start_time is None:
        start_time = clock.now()
    if end_time is None:
        end_time = start_time + (duration or config.default_duration)

    try:
        machine = AuctionStateMachine.create(
            lot_name=lot_name,
            start_price=start_price,
            start_time=start_time,
            end_time=end_time,
            creator=organizer,
            funds=FundsLedger(storage.load_balances()),
            clock=clock,
            escrow_account=config.escrow_account,
            storage_manager=storage,
        )
    except AuctionError as e:
        _fail(ctx, e)

    click.echo(f"✓ Auction created: {machine.lot_name}")
    click.echo(f"  Organizer: {machine.organizer}")
    click.echo(f"  Window: [{machine.start_time}, {machine.end_time}]")
    click.echo(f"  Start price: {machine.start_price}")


@cli.command("fund")
@click.argument("account")
@click.argument("amount", type=int)
@click.pass_context
def fund(ctx, account, amount):
    """Credit demo funds to an account"""
    from escrow_auction.core.ledger import FundsLedger

    storage = _storage(ctx)
    funds = FundsLedger(storage.load_balances())
    try:
        balance = funds.credit(account, amount)
    except ValueError as e:
        _fail(ctx, e)
    storage.save_balances(funds.balances)

    click.echo(f"✓ {account} balance: {balance}")


# =============================================================================
# Auction Operations
# =============================================================================


@cli.command("deposit")
@click.argument("caller")
@click.argument("amount", type=int)
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.pass_context
def deposit(ctx, caller, amount, at):
    """Lock a deposit in escrow"""
    from escrow_auction.core.errors import AuctionError

    machine = _load_machine(ctx, at)
    try:
        machine.deposit(caller, amount)
    except AuctionError as e:
        _fail(ctx, e)

    click.echo(f"✓ {caller} deposited {amount}")


@cli.command("bid")
@click.argument("caller")
@click.argument("amount", type=int)
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.pass_context
def bid(ctx, caller, amount, at):
    """Place a bid"""
    from escrow_auction.core.errors import AuctionError

    machine = _load_machine(ctx, at)
    try:
        machine.place_bid(caller, amount)
    except AuctionError as e:
        _fail(ctx, e)

    click.echo(f"✓ Bid accepted: {caller} -> {amount}")


@cli.command("finalize")
@click.argument("caller")
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.pass_context
def finalize(ctx, caller, at):
    """Finalize the auction (organizer only)"""
    from escrow_auction.core.errors import AuctionError

    machine = _load_machine(ctx, at)
    try:
        machine.finalize_auction(caller)
    except AuctionError as e:
        _fail(ctx, e)

    click.echo(f"✓ Auction finalized")
    click.echo(f"  Winner: {machine.winner or '-'}")
    click.echo(f"  Winning bid: {machine.max_bid}")


@cli.command("refund")
@click.argument("caller")
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.pass_context
def refund(ctx, caller, at):
    """Refund every losing deposit"""
    from escrow_auction.core.errors import AuctionError

    machine = _load_machine(ctx, at)
    try:
        report = machine.refund_deposits(caller)
    except AuctionError as e:
        _fail(ctx, e)

    for participant, amount in report.refunded:
        click.echo(f"✓ Refunded {amount} to {participant}")
    for failure in report.failures:
        click.echo(f"⚠️  Refund to {failure.participant} failed: {failure.reason}")
    if not report.refunded and not report.failures:
        click.echo("Nothing to refund.")

    if not report.ok:
        ctx.exit(1)


@cli.command("pay")
@click.argument("caller")
@click.argument("amount", type=int)
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.pass_context
def pay(ctx, caller, amount, at):
    """Pay the remainder of the winning bid"""
    from escrow_auction.core.errors import AuctionError

    machine = _load_machine(ctx, at)
    try:
        payout = machine.pay_final_amount(caller, amount)
    except AuctionError as e:
        _fail(ctx, e)

    click.echo(f"✓ Settlement complete: {machine.organizer} received {payout}")


# =============================================================================
# Inspection
# =============================================================================


@cli.command("show")
@click.option("--events", "show_events", is_flag=True, help="Include the notification log")
@click.option("--at", default=None, type=int, help="Pin the current time")
@click.pass_context
def show(ctx, show_events, at):
    """Show auction state"""
    machine = _load_machine(ctx, at)
    stats = machine.stats()

    click.echo(f"Auction: {machine.lot_name}")
    click.echo("-" * 40)
    click.echo(f"  Organizer: {machine.organizer}")
    click.echo(f"  Window: [{machine.start_time}, {machine.end_time}]")
    click.echo(f"  Start price: {machine.start_price}")
    click.echo(f"  Phase: {stats['phase']}")
    click.echo(f"  Winner: {machine.winner or '-'}")
    click.echo(f"  Max bid: {machine.max_bid}")
    click.echo("")
    click.echo("  Participants:")
    for participant in machine.participants:
        click.echo(
            f"    {participant}: deposit={machine.deposit_of(participant)}, "
            f"bid={machine.bid_of(participant)}"
        )
    click.echo("")
    click.echo("  Balances:")
    for account, balance in machine.funds.accounts():
        click.echo(f"    {account}: {balance}")

    if show_events:
        click.echo("")
        click.echo("  Events:")
        for event in machine.events:
            click.echo(f"    #{event.sequence} {event.event_type.value} @ {event.timestamp} {event.data}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
def demo():
    """Run an in-memory auction from creation to settlement"""
    from escrow_auction.core.auction import AuctionStateMachine
    from escrow_auction.core.clock import ManualClock
    from escrow_auction.core.errors import BidTooLow
    from escrow_auction.core.ledger import FundsLedger

    t0 = 1_700_000_000
    clock = ManualClock(t0)
    funds = FundsLedger({"alice": 1000, "bob": 1000})

    click.echo("=" * 60)
    click.echo("  ESCROW AUCTION - DEMO")
    click.echo("=" * 60)
    click.echo()

    machine = AuctionStateMachine.create(
        lot_name="Antique clock",
        start_price=100,
        start_time=t0,
        end_time=t0 + 3600,
        creator="organizer",
        funds=funds,
        clock=clock,
    )
    click.echo(f"🏛️  Auction created: {machine.lot_name}, window [{t0}, {t0 + 3600}]")

    machine.deposit("alice", 50)
    click.echo("💰 alice deposits 50")

    clock.advance(10)
    machine.place_bid("alice", 80)
    click.echo(f"🔨 alice bids 80 -> max_bid={machine.max_bid}")

    clock.advance(10)
    machine.deposit("bob", 30)
    click.echo("💰 bob deposits 30")

    clock.advance(10)
    try:
        machine.place_bid("bob", 80)
    except BidTooLow as e:
        click.echo(f"❌ bob bids 80 -> rejected: {e}")

    clock.advance(10)
    machine.place_bid("bob", 90)
    click.echo(f"🔨 bob bids 90 -> max_bid={machine.max_bid}, winner={machine.winner}")
    click.echo()

    clock.set(t0 + 3601)
    machine.finalize_auction("organizer")
    click.echo(f"⚖️  Organizer finalizes (is_active={machine.is_active})")

    report = machine.refund_deposits("organizer")
    for participant, amount in report.refunded:
        click.echo(f"↩️  Refunded {amount} to {participant}")

    owed = machine.max_bid - machine.deposit_of("bob")
    payout = machine.pay_final_amount("bob", owed)
    click.echo(f"💸 bob pays {owed}; organizer receives {payout}")
    click.echo()

    click.echo("📊 Final balances:")
    for account, balance in funds.accounts():
        click.echo(f"  {account}: {balance}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
