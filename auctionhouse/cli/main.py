"""
auctionhouse CLI - Command Line Interface for the live auction engine

Main entry point for all CLI commands.
"""

import json
from pathlib import Path

import click

from auctionhouse.core.config import load_config
from auctionhouse.utils.clock import to_iso
from auctionhouse.utils.logger import setup_logging


def _format_amount(amount) -> str:
    return "-" if amount is None else f"{amount:,}"


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (overrides config)")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Path to a .env file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, config_path):
    """Live auction engine for marketplace deal rooms"""
    overrides = {}
    if data_dir:
        overrides["data_dir"] = Path(data_dir).expanduser()
    config = load_config(config_path, **overrides)

    setup_logging(debug=debug, log_dir=config.log_dir if config.log_to_file else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Walk through an auction with a simulated clock"""
    from auctionhouse.core.deal_rooms import DealRoom, InMemoryDealRoomDirectory
    from auctionhouse.core.errors import AuctionError
    from auctionhouse.core.events import EventBroadcaster, InMemoryWorkflowQueue, ORDER_CREATED
    from auctionhouse.core.service import AuctionService
    from auctionhouse.utils.clock import ManualClock

    click.echo("=" * 60)
    click.echo("  AUCTIONHOUSE - DEMO")
    click.echo("=" * 60)
    click.echo()

    clock = ManualClock()
    rooms = InMemoryDealRoomDirectory()
    workflow = InMemoryWorkflowQueue()
    rooms.register(DealRoom(id="room-1", listing_id="listing-1", seller_id="seller"))
    rooms.register(DealRoom(id="room-2", listing_id="listing-2", seller_id="seller"))

    service = AuctionService(
        deal_rooms=rooms,
        broadcaster=EventBroadcaster(workflow),
        config=ctx.obj["config"],
        clock=clock,
    )
    service.broadcaster.subscribe(
        "deal:room-1", lambda e: click.echo(f"    >> {e.kind} {json.dumps(e.payload)}")
    )

    def attempt(label, fn, *args):
        try:
            result = fn(*args)
            click.echo(f"  ✓ {label}")
            return result
        except AuctionError as e:
            click.echo(f"  ✗ {label}: {e.kind} - {e.message}")
            return None

    params = {"startPrice": 10000, "minIncrement": 500, "durationMinutes": 30,
              "inviteeIds": ["alice", "bob", "carol"]}

    click.echo("🏁 Seller starts an auction on room-1...")
    started = attempt("Auction started", service.start_auction, "room-1", "seller", params)
    auction_id = started["auctionId"]
    click.echo(f"    id={auction_id[:8]}, ends {to_iso(started['endAt'])}")
    click.echo()

    click.echo("💰 Bidding...")
    attempt("alice bids 12,500", service.place_bid, auction_id, "alice", 12500)
    attempt("bob bids 12,600", service.place_bid, auction_id, "bob", 12600)
    attempt("carol bids 0", service.place_bid, auction_id, "carol", 0)
    attempt("bob bids 13,000", service.place_bid, auction_id, "bob", 13000)
    click.echo()

    click.echo("⏰ 30 minutes pass...")
    clock.advance(30 * 60)
    service.scheduler.run_due()
    view = service.get_auction(auction_id, "seller")["auction"]
    click.echo(f"  State: {view['state']}, winner: {view['winnerId']}, "
               f"amount: {_format_amount(view['winningAmount'])}")
    click.echo()

    click.echo("🚫 Seller starts and cancels an auction on room-2...")
    second = attempt("Auction started", service.start_auction, "room-2", "seller", params)
    attempt("alice bids 10,000", service.place_bid, second["auctionId"], "alice", 10000)
    attempt("Auction cancelled", service.cancel_auction, second["auctionId"], "seller")
    click.echo()

    click.echo("📦 Downstream workflow:")
    for event in workflow.events(ORDER_CREATED):
        data = event["data"]
        click.echo(f"  {event['name']}: buyer={data['buyerId']}, amount={_format_amount(data['amount'])}")
    click.echo()

    click.echo("📊 Final Statistics:")
    for key, value in service.stats().items():
        click.echo(f"  {key}: {value}")


# =============================================================================
# Server
# =============================================================================


@cli.command("serve")
@click.option("--rooms", "rooms_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="JSON file listing deal rooms")
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", default=None, type=int, help="Port (overrides config)")
@click.option("--persist/--no-persist", default=None, help="Store auctions in SQLite")
@click.pass_context
def serve(ctx, rooms_path, host, port, persist):
    """Run the HTTP and realtime API"""
    from auctionhouse.api.app import serve as serve_app
    from auctionhouse.core.deal_rooms import load_deal_rooms
    from auctionhouse.core.events import InMemoryWorkflowQueue
    from auctionhouse.core.service import AuctionService

    config = ctx.obj["config"]
    if persist is not None:
        config.persist = persist

    service = AuctionService.from_config(
        config,
        deal_rooms=load_deal_rooms(Path(rooms_path)),
        workflow_sink=InMemoryWorkflowQueue(),
    )
    click.echo(f"Serving on http://{host or config.api_host}:{port or config.api_port}")
    serve_app(service, host=host or config.api_host, port=port or config.api_port)


# =============================================================================
# Inspection Commands
# =============================================================================


def _open_storage(ctx):
    from auctionhouse.core.storage.storage_manager import StorageManager

    config = ctx.obj["config"]
    if not config.db_path.exists():
        raise click.ClickException(f"No database at {config.db_path}")
    return StorageManager(config.data_dir, config.db_name)


@cli.command("show")
@click.argument("auction_id")
@click.pass_context
def show(ctx, auction_id):
    """Show a persisted auction and its bids"""
    storage = _open_storage(ctx)
    data = storage.load_auction(auction_id)
    if data is None:
        raise click.ClickException(f"Auction not found: {auction_id}")

    click.echo(f"Auction {data['id']}")
    click.echo(f"  Deal room: {data['dealRoomId']}")
    click.echo(f"  Seller:    {data['sellerId']}")
    click.echo(f"  State:     {data['state']}")
    click.echo(f"  Start:     {_format_amount(data['startPrice'])} (+{_format_amount(data['minIncrement'])})")
    click.echo(f"  Window:    {to_iso(data['startAt'])} -> {to_iso(data['endAt'])}")
    click.echo(f"  Invitees:  {', '.join(data['inviteeIds'])}")
    if data.get("winnerId"):
        click.echo(f"  Winner:    {data['winnerId']} at {_format_amount(data['winningAmount'])}")

    bids = storage.load_bids(auction_id)
    click.echo(f"  Bids ({len(bids)}):")
    for bid in bids:
        click.echo(f"    {to_iso(bid['createdAt'])}  {bid['bidderId']:<16} {_format_amount(bid['amount'])}")


@cli.command("events")
@click.argument("deal_room_id")
@click.pass_context
def events(ctx, deal_room_id):
    """Show the audit trail of a deal room"""
    storage = _open_storage(ctx)
    rows = storage.load_deal_events(deal_room_id)
    if not rows:
        click.echo("No events recorded.")
        return

    for row in rows:
        click.echo(
            f"  {to_iso(row['createdAt'])}  {row['eventType']:<18} "
            f"{row['actorId'] or '-':<16} {json.dumps(row['payload'])}"
        )


if __name__ == "__main__":
    cli()
