#!/usr/bin/env python3
"""
jobs/run_router.py - Operator CLI for the payment router.

Usage:
    monirouter send --from @alice --to @bob --amount 5 --network base
    monirouter multi-send --from @alice --to @bob --to @carol --amount 1 --network base
    monirouter balance @alice --network all
    monirouter scan @alice --amount 15 --exclude base
    monirouter grant --to @bob --amount 2 --network base --campaign launch
    monirouter giveaway --from @alice --amount 1 --capacity 3 --network base < claims.txt
    monirouter status

Giveaway claims are read from stdin, one per line: "<claimant_id> <message text>".
"""

import asyncio
import json
import sys
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Tuple

import click
from eth_account import Account

from chains.registry import NetworkRegistry
from config import get_operator_key, load_engine_settings, load_networks
from core.constants import TransferType
from core.exceptions import InfraError, RouterError
from core.format_money import format_amount
from core.logging import get_logger, log_error, set_global_context, setup_logging
from core.models import EngineSettings, TransferRequest
from core.validators import is_valid_address
from distribution.distributor import Distributor
from execution.batch import send_batch
from execution.executor import TransferExecutor
from execution.funds import FundsVerifier
from execution.ledger import JsonlLedger, LedgerSink
from execution.messages import describe_outcome
from execution.router import CrossChainRouter
from identity.resolver import DirectoryResolver, IdentityResolver

logger = get_logger("monirouter.cli")

DEFAULT_LEDGER_PATH = "data/ledger.jsonl"


@dataclass
class Engine:
    """Wired engine components for one CLI invocation."""
    registry: NetworkRegistry
    verifier: FundsVerifier
    executor: TransferExecutor
    router: CrossChainRouter
    resolver: IdentityResolver
    settings: EngineSettings

    async def close(self) -> None:
        await self.registry.close()


EngineFactory = Callable[[dict, bool], Engine]


def build_engine(options: dict, need_account: bool) -> Engine:
    """Load config and wire registry -> verifier / executor -> router."""
    networks = load_networks(options.get("networks_path"))
    settings = load_engine_settings(options.get("engine_path"))

    account = None
    if need_account:
        account = Account.from_key(get_operator_key())
        set_global_context(operator=account.address)

    registry = NetworkRegistry(networks, settings, account)
    verifier = FundsVerifier(registry)
    executor = TransferExecutor(registry, settings)
    ledger: Optional[LedgerSink] = JsonlLedger(options.get("ledger_path") or DEFAULT_LEDGER_PATH)
    router = CrossChainRouter(executor, verifier, ledger)
    resolver = DirectoryResolver.from_yaml(options.get("directory_path"))
    return Engine(registry, verifier, executor, router, resolver, settings)


def _engine(ctx: click.Context, need_account: bool = True) -> Engine:
    factory: EngineFactory = ctx.obj.get("engine_factory") or build_engine
    try:
        return factory(ctx.obj, need_account)
    except RouterError as e:
        raise click.ClickException(e.message)


async def resolve_address(resolver: IdentityResolver, value: str) -> str:
    """Accept a raw address or a @MoniTag."""
    if is_valid_address(value):
        return value.lower()
    address = await resolver.resolve_recipient(value)
    if address is None:
        raise click.ClickException(f"MoniTag @{value.lstrip('@')} not found")
    return address


def _run(engine: Engine, coro_factory) -> None:
    async def runner():
        try:
            return await coro_factory()
        finally:
            await engine.close()

    try:
        asyncio.run(runner())
    except RouterError as e:
        log_error(logger, e.code.value, e.message, **e.details)
        raise click.ClickException(str(e))


@click.group()
@click.option("--networks", "networks_path", type=click.Path(exists=True, path_type=Path), default=None,
              help="networks.yaml (default: config/networks.yaml)")
@click.option("--engine", "engine_path", type=click.Path(exists=True, path_type=Path), default=None,
              help="engine.yaml (default: config/engine.yaml)")
@click.option("--directory", "directory_path", type=click.Path(path_type=Path), default=None,
              help="MoniTag directory (default: config/directory.yaml)")
@click.option("--ledger", "ledger_path", default=DEFAULT_LEDGER_PATH, help="Append-only JSONL ledger")
@click.option("--log-level", "-l", default="WARNING", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
@click.option("--json-logs/--no-json-logs", default=True)
@click.pass_context
def cli(
    ctx: click.Context,
    networks_path: Optional[Path],
    engine_path: Optional[Path],
    directory_path: Optional[Path],
    ledger_path: str,
    log_level: str,
    json_logs: bool,
) -> None:
    """MoniBot cross-chain payment router."""
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="monirouter", version="0.1.0")
    ctx.ensure_object(dict)
    ctx.obj.update(
        networks_path=networks_path,
        engine_path=engine_path,
        directory_path=directory_path,
        ledger_path=ledger_path,
    )


@cli.command()
@click.option("--from", "sender", required=True, help="Sender @MoniTag or address")
@click.option("--to", "recipient", required=True, help="Recipient @MoniTag or address")
@click.option("--amount", required=True, help="Amount in token units, e.g. 5.00")
@click.option("--network", "-n", required=True, help="Preferred network")
@click.option("--token", default=None, help="Idempotency token (default: random)")
@click.option("--reroute/--no-reroute", default=True, help="Reroute to another network on funds failure")
@click.pass_context
def send(ctx, sender, recipient, amount, network, token, reroute):
    """Send one transfer, rerouting across networks if needed."""
    engine = _engine(ctx)

    async def go():
        sender_address = await resolve_address(engine.resolver, sender)
        recipient_address = await resolve_address(engine.resolver, recipient)
        if sender_address == recipient_address:
            raise click.ClickException("You can't send to yourself")
        request = TransferRequest(
            sender=sender_address,
            recipient=recipient_address,
            amount=amount,
            token=token or f"cli_{uuid.uuid4().hex}",
            network=network,
        )
        outcome = await engine.router.route_and_execute(request, reroute=reroute)
        click.echo(describe_outcome(outcome))
        if not outcome.ok:
            ctx.exit(1)

    _run(engine, go)


@cli.command("multi-send")
@click.option("--from", "sender", required=True, help="Sender @MoniTag or address")
@click.option("--to", "recipients", multiple=True, required=True, help="Recipient @MoniTag (repeatable)")
@click.option("--amount", required=True, help="Amount per recipient")
@click.option("--network", "-n", required=True)
@click.option("--command-id", default=None, help="Command id used to derive per-recipient tokens")
@click.pass_context
def multi_send(ctx, sender, recipients, amount, network, command_id):
    """Send the same amount to several recipients, one at a time."""
    engine = _engine(ctx)

    async def go():
        sender_address = await resolve_address(engine.resolver, sender)
        result = await send_batch(
            engine.router,
            engine.resolver,
            sender_address,
            recipients,
            amount,
            command_id or f"cli_{uuid.uuid4().hex[:12]}",
            network,
        )
        click.echo(result.summary())
        for item in result.items:
            click.echo(f"  @{item.tag}: {describe_outcome(item.outcome)}")
        if not result.all_succeeded:
            ctx.exit(1)

    _run(engine, go)


@cli.command()
@click.argument("who")
@click.option("--network", "-n", default="all", help="Network name or 'all'")
@click.pass_context
def balance(ctx, who, network):
    """Token balance of an address or @MoniTag."""
    engine = _engine(ctx, need_account=False)

    async def go():
        address = await resolve_address(engine.resolver, who)
        networks = engine.registry.networks if network == "all" else [network]
        for name in networks:
            try:
                amount, symbol = await engine.verifier.get_balance(address, name)
            except RouterError as e:
                click.echo(f"{name}: unavailable ({e.code.value})")
                continue
            click.echo(f"{name}: {format_amount(amount)} {symbol}")

    _run(engine, go)


@cli.command()
@click.argument("who")
@click.option("--amount", required=True, help="Amount to check for")
@click.option("--exclude", default=None, help="Network to leave out of the scan")
@click.pass_context
def scan(ctx, who, amount, exclude):
    """Balance and allowance on every network."""
    engine = _engine(ctx, need_account=False)

    async def go():
        address = await resolve_address(engine.resolver, who)
        statuses = await engine.verifier.scan_alternates(address, amount, exclude_network=exclude)
        for status in statuses:
            if not status.reachable:
                click.echo(f"{status.network}: unreachable")
                continue
            click.echo(
                f"{status.network}: balance {format_amount(status.balance)} {status.symbol} "
                f"({'ok' if status.has_balance else 'low'}), "
                f"allowance {format_amount(status.allowance)} "
                f"({'ok' if status.has_allowance else 'low'})"
            )

    _run(engine, go)


@cli.command()
@click.option("--to", "recipient", required=True, help="Recipient @MoniTag or address")
@click.option("--amount", required=True)
@click.option("--network", "-n", required=True)
@click.option("--campaign", required=True, help="Campaign id (idempotency token)")
@click.pass_context
def grant(ctx, recipient, amount, network, campaign):
    """Pay a recipient from the router's own float."""
    engine = _engine(ctx)

    async def go():
        recipient_address = await resolve_address(engine.resolver, recipient)
        request = TransferRequest(
            sender=engine.registry.operator_address,
            recipient=recipient_address,
            amount=amount,
            token=campaign,
            network=network,
            transfer_type=TransferType.GRANT,
        )
        outcome = await engine.router.route_and_execute(request, reroute=False)
        click.echo(describe_outcome(outcome))
        if not outcome.ok:
            ctx.exit(1)

    _run(engine, go)


async def stdin_claims(stream) -> AsyncIterator[Tuple[str, str]]:
    """
    (claimant_id, text) pairs from lines of `stream` until EOF.

    Lines are read on a daemon thread, so a round that ends while the
    operator's terminal is still open does not wait for another line.
    """
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()

    def pump() -> None:
        try:
            for line in iter(stream.readline, ""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, None)
        except RuntimeError:
            # Event loop already closed: the round is over
            return

    threading.Thread(target=pump, name="giveaway-stdin", daemon=True).start()
    while True:
        line = await lines.get()
        if line is None:
            return
        parts = line.strip().split(maxsplit=1)
        if len(parts) == 2:
            yield parts[0], parts[1]


@cli.command()
@click.option("--from", "sender", required=True, help="Sender @MoniTag or address")
@click.option("--amount", required=True, help="Amount per claimant")
@click.option("--capacity", "-N", required=True, type=click.IntRange(min=1), help="Number of spots")
@click.option("--network", "-n", required=True)
@click.option("--duration", type=float, default=None, help="Round duration in seconds")
@click.option("--round-id", default=None)
@click.pass_context
def giveaway(ctx, sender, amount, capacity, network, duration, round_id):
    """Run a "first N claims" round fed from stdin."""
    engine = _engine(ctx)

    async def go():
        sender_address = await resolve_address(engine.resolver, sender)
        distributor = Distributor(engine.router, engine.resolver, engine.settings)
        round_ = distributor.start(
            sender_address, amount, capacity, network,
            duration_seconds=duration, round_id=round_id,
        )
        summary = await round_.run(stdin_claims(click.get_text_stream("stdin")))
        reason = summary.end_reason.value if summary.end_reason else "STREAM_ENDED"
        click.echo(f"Giveaway {summary.round_id} ended ({reason}): {summary.claimed}/{summary.capacity} spots claimed")
        for winner in summary.winners:
            click.echo(f"  #{winner.position} @{winner.recipient_tag}: {describe_outcome(winner.outcome)}")
        for pending in summary.unconfirmed:
            click.echo(f"  #{pending.position} @{pending.recipient_tag}: unconfirmed ({pending.outcome.tx_hash})")

    _run(engine, go)


@cli.command()
@click.pass_context
def status(ctx):
    """Check every network and show endpoint health."""
    engine = _engine(ctx, need_account=False)

    async def go():
        for name in engine.registry.networks:
            while True:
                conn = engine.registry.get_connection(name)
                try:
                    chain_id = await conn.read.get_chain_id()
                except InfraError:
                    if engine.registry.report_failure(name):
                        continue
                    click.echo(f"{name}: unreachable")
                    break
                note = "" if chain_id == conn.config.chain_id else f" (expected chain {conn.config.chain_id})"
                click.echo(f"{name}: chain {chain_id} via {conn.endpoint}{note}")
                break
        click.echo(json.dumps(engine.registry.get_status(), indent=2, default=str))

    _run(engine, go)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    sys.exit(main())
