"""
Bid Ledger CLI - Command line driver for the account marketplace

Main entry point for all CLI commands. Amounts are given in NEAR
(e.g. 0.45) and stored in yocto units.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path

import click

from bidledger.utils.logger import setup_logging

ONE_NEAR = Decimal(10) ** 24


def to_yocto(amount: str) -> int:
    """Convert a NEAR amount string to yocto units."""
    try:
        value = Decimal(amount) * ONE_NEAR
    except InvalidOperation:
        raise click.BadParameter(f"Not a number: {amount}")
    if value < 0 or value != value.to_integral_value():
        raise click.BadParameter(f"Invalid NEAR amount: {amount}")
    return int(value)


def from_yocto(amount: int) -> str:
    """Format yocto units as NEAR."""
    return f"{Decimal(amount) / ONE_NEAR:.4f} NEAR"


def open_ledger(ctx):
    """Open the persistent ledger of the configured data directory."""
    from bidledger.core.keys import InMemoryKeyManager
    from bidledger.core.ledger import BidLedger
    from bidledger.core.storage import StorageManager

    config = ctx.obj["config"]
    storage = StorageManager(config.storage.data_dir, config.storage.db_name)
    ledger = BidLedger(config=config.ledger, storage_manager=storage, key_manager=InMemoryKeyManager())
    ctx.call_on_close(ledger.close)
    return ledger


def report(ok: bool, error: str, message: str):
    if ok:
        click.echo(f"✓ {message}")
    else:
        click.echo(f"❌ {error}")
        raise SystemExit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: BIDLEDGER_DATA_DIR or ~/.bidledger)")
@click.option("--env-file", default=None, help="Dotenv file with BIDLEDGER_* settings")
@click.option("--log-file", is_flag=True, help="Also write logs to BIDLEDGER_LOG_DIR/bidledger.log")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file, log_file):
    """Account marketplace bid ledger"""
    import logging

    from bidledger.core.config import load_config

    try:
        config = load_config(env_file)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    if data_dir is not None:
        config.storage.data_dir = Path(data_dir).expanduser()

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=str(config.storage.log_dir), log_to_file=log_file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Ledger Operations
# =============================================================================


@cli.command("offer")
@click.option("--account", required=True, help="Offered account (caller)")
@click.option("--beneficiary", required=True, help="Profile taking the rewards")
@click.option("--deposit", required=True, help="Attached deposit in NEAR")
@click.pass_context
def offer(ctx, account, beneficiary, deposit):
    """Offer an account for acquisition"""
    ledger = open_ledger(ctx)
    ok, error = ledger.offer(account, beneficiary, to_yocto(deposit))
    report(ok, error, f"Offered {account} (beneficiary {beneficiary})")


@cli.command("bet")
@click.option("--caller", required=True, help="Bettor")
@click.option("--bid", "bid_id", required=True, help="Bid to bet on")
@click.option("--deposit", required=True, help="Attached deposit in NEAR")
@click.option("--now", default=None, type=int, help="Override current timestamp")
@click.pass_context
def bet(ctx, caller, bid_id, deposit, now):
    """Bet on a bid"""
    ledger = open_ledger(ctx)
    ok, error = ledger.bet(caller, bid_id, to_yocto(deposit), now)
    report(ok, error, f"Bet on {bid_id} by {caller}")


@cli.command("claim")
@click.option("--caller", required=True, help="Claimant")
@click.option("--bid", "bid_id", required=True, help="Bid to claim")
@click.option("--deposit", required=True, help="Attached deposit in NEAR")
@click.option("--now", default=None, type=int, help="Override current timestamp")
@click.pass_context
def claim(ctx, caller, bid_id, deposit, now):
    """Claim a bid"""
    ledger = open_ledger(ctx)
    ok, error = ledger.claim(caller, bid_id, to_yocto(deposit), now)
    report(ok, error, f"Claimed {bid_id} by {caller}")


@cli.command("finalize")
@click.option("--bid", "bid_id", required=True, help="Bid to finalize")
@click.option("--now", default=None, type=int, help="Override current timestamp")
@click.pass_context
def finalize(ctx, bid_id, now):
    """Finalize a claim after the acquisition window"""
    ledger = open_ledger(ctx)
    ok, error = ledger.finalize(bid_id, now)
    report(ok, error, f"Finalized {bid_id}")


@cli.command("acquire")
@click.option("--caller", required=True, help="Profile holding the acquisition right")
@click.option("--bid", "bid_id", required=True, help="Acquired account")
@click.option("--public-key", default=None, help="New public key (hex). Generated if omitted")
@click.option("--signer-key", default=None, help="Current public key (hex) to revoke")
@click.pass_context
def acquire(ctx, caller, bid_id, public_key, signer_key):
    """Acquire a finalized account"""
    from bidledger.crypto import generate_keypair

    kp = None
    if public_key is None:
        kp = generate_keypair()
        public_key = kp.public_key_hex

    ledger = open_ledger(ctx)
    ok, error = ledger.acquire(caller, bid_id, public_key, signer_key)
    report(ok, error, f"{caller} acquired {bid_id}")

    if kp is not None:
        click.echo(f"  Generated key: {public_key[:18]}...")
        click.echo(f"  Private key:   {kp.private_key.hex()}")


@cli.command("withdraw")
@click.option("--caller", required=True, help="Profile withdrawing rewards")
@click.pass_context
def withdraw(ctx, caller):
    """Withdraw available rewards"""
    ledger = open_ledger(ctx)
    amount, error = ledger.withdraw_rewards(caller)
    report(amount > 0, error, f"Withdrew {from_yocto(amount)}")


# =============================================================================
# Inspection Commands
# =============================================================================


@cli.command("bid")
@click.argument("bid_id")
@click.option("--now", default=None, type=int, help="Override current timestamp")
@click.pass_context
def show_bid(ctx, bid_id, now):
    """Show a live bid"""
    ledger = open_ledger(ctx)
    view = ledger.get_bid(bid_id, now)
    if view is None:
        click.echo(f"❌ Bid {bid_id} not found")
        raise SystemExit(1)

    click.echo(f"Bid {bid_id}")
    click.echo("-" * 40)
    click.echo(f"  State:       {view.state.name}")
    click.echo(f"  Beneficiary: {view.bid.beneficiary}")
    click.echo(f"  Bets:        {view.bid.num_bets}")
    click.echo(f"  Bet price:   {from_yocto(view.bet_price)}")
    click.echo(f"  Forfeit:     {from_yocto(view.forfeit)}")
    click.echo(f"  Claim price: {from_yocto(view.claim_price)}")
    if view.bid.claimant:
        click.echo(f"  Claimant:    {view.bid.claimant} (acquirable at {view.acquirable_at})")


@cli.command("profile")
@click.argument("profile_id")
@click.pass_context
def show_profile(ctx, profile_id):
    """Show a participant profile"""
    ledger = open_ledger(ctx)
    profile = ledger.get_profile(profile_id)
    if profile is None:
        click.echo(f"❌ Profile {profile_id} not found")
        raise SystemExit(1)

    click.echo(f"Profile {profile_id}")
    click.echo("-" * 40)
    click.echo(f"  Offers:       {profile.num_offers}")
    click.echo(f"  Bets:         {profile.num_bets}")
    click.echo(f"  Claims:       {profile.num_claims}")
    click.echo(f"  Acquisitions: {profile.num_acquisitions}")
    click.echo(f"  Bets volume:  {from_yocto(profile.bets_volume)}")
    click.echo(f"  Rewards:      {from_yocto(profile.available_rewards)}")
    click.echo(f"  Participating: {', '.join(sorted(profile.participation)) or '-'}")
    click.echo(f"  Can acquire:   {', '.join(sorted(profile.acquisitions)) or '-'}")


@cli.command("top")
@click.option("--claims", is_flag=True, help="Show top claims instead of top bets")
@click.option("--limit", default=10, help="Max entries to show")
@click.pass_context
def top(ctx, claims, limit):
    """Show the leaderboard"""
    ledger = open_ledger(ctx)
    entries = ledger.get_top_claims(limit) if claims else ledger.get_top_bets(limit)

    click.echo("Top claims" if claims else "Top bets")
    click.echo("-" * 40)
    if not entries:
        click.echo("  (empty)")
    for i, (price, bid_id) in enumerate(entries):
        click.echo(f"  {i+1}. {bid_id}: {from_yocto(price)}")


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show ledger statistics"""
    ledger = open_ledger(ctx)
    click.echo("Ledger Statistics")
    click.echo("-" * 40)
    click.echo(f"  database: {ctx.obj['config'].storage.db_path}")
    for key, value in ledger.stats().items():
        if key.startswith("total") or key == "rewards_outstanding":
            value = from_yocto(value)
        click.echo(f"  {key}: {value}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
def demo():
    """Run an in-memory walkthrough of a full auction"""
    from bidledger.core.keys import InMemoryKeyManager
    from bidledger.core.ledger import BidLedger
    from bidledger.crypto import generate_keypair

    click.echo("=" * 60)
    click.echo("  ACCOUNT MARKETPLACE - DEMO")
    click.echo("=" * 60)
    click.echo()

    keys = InMemoryKeyManager()
    ledger = BidLedger(key_manager=keys)
    cfg = ledger.config
    now = 1_000_000

    click.echo("📦 alice.near offers the account, bob.near takes the profit...")
    ledger.offer("alice.near", "bob.near", cfg.offer_deposit)
    click.echo(f"  ✓ Next bet price: {from_yocto(ledger.get_bid('alice.near', now).bet_price)}")
    click.echo()

    for bettor in ("carol.near", "dave.near"):
        view = ledger.get_bid("alice.near", now)
        click.echo(f"🎲 {bettor} bets {from_yocto(view.required_bet_deposit)}...")
        ledger.bet(bettor, "alice.near", view.required_bet_deposit, now)
    click.echo()

    view = ledger.get_bid("alice.near", now)
    click.echo(f"🎯 dave.near claims for {from_yocto(view.claim_price)}...")
    ledger.claim("dave.near", "alice.near", view.claim_price, now)
    click.echo()

    later = now + cfg.acquisition_time
    click.echo("⏳ Acquisition window elapses, finalizing...")
    ok, error = ledger.finalize("alice.near", later)
    click.echo(f"  ✓ Finalized: {ok} {error}")

    kp = generate_keypair()
    ledger.acquire("dave.near", "alice.near", kp.public_key_hex)
    click.echo(f"  ✓ Keys on alice.near: {len(keys.list_keys('alice.near'))}")
    click.echo()

    click.echo("📊 Rewards:")
    for profile_id in ("bob.near", "carol.near"):
        click.echo(f"  {profile_id}: {from_yocto(ledger.get_profile(profile_id).available_rewards)}")
    click.echo(f"  commission: {from_yocto(ledger.total_commission)}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
