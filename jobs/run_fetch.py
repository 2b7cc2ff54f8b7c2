#!/usr/bin/env python3
"""
jobs/run_fetch.py - CLI entrypoint for contract interaction fetching.

Usage:
    python -m jobs.run_fetch fetch --chain lisk --address 0x... --from-block 100 --to-block 5000
    python -m jobs.run_fetch watch --chain ethereum --address 0x... --duration 600
    python -m jobs.run_fetch providers --chain starknet
"""

import asyncio
import json
import signal
import sys
from pathlib import Path

import click

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import FetcherSettings, load_settings
from core.constants import DEFAULT_RETRY_DELAY_MS
from core.exceptions import FetcherError, TotalRangeFailureError
from core.logging import get_logger, set_global_context, setup_logging
from core.models import LogEntry
from fetcher.listener import PollingEventListener
from fetcher.range_fetcher import ChunkedRangeFetcher

logger = get_logger("jobs.run_fetch")


async def run_fetch(
    fetcher: ChunkedRangeFetcher,
    address: str,
    chain: str,
    from_block: int,
    to_block: int | None,
    chunk_size: int | None,
    max_retries: int = 0,
    retry_delay_ms: int | None = None,
) -> dict:
    """
    Fetch the range and return the wire-shaped result.

    A fetch in which every sub-range failed is repeated up to max_retries
    times. Partial results are returned as they are.
    """
    try:
        if to_block is None:
            to_block = await fetcher.get_current_block_number(chain)

        attempt = 0
        while True:
            try:
                result = await fetcher.fetch_interactions(
                    address, chain, from_block, to_block, max_chunk_size=chunk_size
                )
                return result.to_dict()
            except TotalRangeFailureError as e:
                if attempt >= max_retries:
                    raise
                attempt += 1
                logger.warning(
                    f"Every sub-range failed, retry {attempt}/{max_retries}",
                    extra={"context": {"chain": chain, "address": address, "error": e.message}},
                )
                delay_ms = DEFAULT_RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms
                await asyncio.sleep(delay_ms / 1000)
    finally:
        await fetcher.close()


async def run_watch(
    fetcher: ChunkedRangeFetcher,
    address: str,
    chain: str,
    interval_ms: int,
    duration_seconds: int | None,
    from_block: int | None,
) -> int:
    """Poll for new events until cancelled or the duration elapses."""

    def on_event(event: LogEntry) -> None:
        click.echo(json.dumps(event.to_dict(), default=str))

    listener = PollingEventListener(
        fetcher,
        address,
        chain,
        on_event,
        poll_interval_ms=interval_ms,
        from_block=from_block,
    )
    try:
        # Unknown chains fail here rather than inside the loop.
        fetcher.registry.providers_for(chain)
        cancel = listener.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, cancel)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            await asyncio.wait_for(asyncio.shield(listener.wait()), timeout=duration_seconds or None)
        except asyncio.TimeoutError:
            cancel()
            await listener.wait()
    finally:
        await fetcher.close()

    return listener.delivered


@click.group()
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_logs: bool) -> None:
    """Multi-chain contract interaction fetcher."""
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="contract-fetcher", version="0.1.0")
    ctx.ensure_object(dict)


def _build_fetcher(settings: FetcherSettings | None = None) -> ChunkedRangeFetcher:
    return ChunkedRangeFetcher.from_settings(settings or load_settings())


@cli.command()
@click.option("--chain", "-c", required=True, help="Chain name (ethereum, lisk, starknet, ...)")
@click.option("--address", "-a", required=True, help="Contract address")
@click.option("--from-block", "-f", required=True, type=int, help="First block (inclusive)")
@click.option("--to-block", "-t", default=None, type=int, help="Last block (default: current head)")
@click.option("--chunk-size", default=None, type=int, help="Blocks per sub-range")
@click.option("--output", "-o", default=None, help="Write JSON result to this file")
@click.option("--retries", default=None, type=click.IntRange(min=0), help="Retries after a total failure (default: MAX_RETRIES)")
def fetch(
    chain: str,
    address: str,
    from_block: int,
    to_block: int | None,
    chunk_size: int | None,
    output: str | None,
    retries: int | None,
) -> None:
    """Fetch all interactions for a contract over a block range."""
    try:
        settings = load_settings()
        fetcher = _build_fetcher(settings)
        max_retries = settings.max_retries if retries is None else retries
        result = asyncio.run(
            run_fetch(fetcher, address, chain, from_block, to_block, chunk_size, max_retries=max_retries)
        )
    except FetcherError as e:
        logger.error(
            f"Fetch failed: {e}",
            extra={"context": {"error_code": e.code.value, **e.details}},
        )
        sys.exit(1)

    payload = json.dumps(result, indent=2, default=str)
    if output:
        Path(output).write_text(payload, encoding="utf-8")
    else:
        click.echo(payload)

    summary = result["summary"]
    click.echo("\n" + "=" * 60, err=True)
    click.echo("FETCH SUMMARY", err=True)
    click.echo("=" * 60, err=True)
    click.echo(f"Blocks scanned: {summary['blocksScanned']}", err=True)
    click.echo(f"Events: {summary['totalEvents']}", err=True)
    click.echo(f"Transactions: {summary['totalTransactions']}", err=True)
    click.echo(f"Skipped sub-ranges: {summary['skippedRanges']}/{summary['totalRanges']}", err=True)
    click.echo("=" * 60, err=True)


@cli.command()
@click.option("--chain", "-c", required=True, help="Chain name")
@click.option("--address", "-a", required=True, help="Contract address")
@click.option("--interval", "-i", default=None, type=int, help="Poll interval in milliseconds")
@click.option("--duration", "-d", default=None, type=int, help="Stop after N seconds (default: until Ctrl-C)")
@click.option("--from-block", "-f", default=None, type=int, help="Start at this block instead of the head")
def watch(
    chain: str,
    address: str,
    interval: int | None,
    duration: int | None,
    from_block: int | None,
) -> None:
    """Print new contract events as they appear."""
    try:
        settings = load_settings()
        interval_ms = interval if interval is not None else settings.poll_interval_ms
        fetcher = _build_fetcher(settings)
        delivered = asyncio.run(
            run_watch(fetcher, address, chain, interval_ms, duration, from_block)
        )
    except FetcherError as e:
        logger.error(
            f"Watch failed: {e}",
            extra={"context": {"error_code": e.code.value, **e.details}},
        )
        sys.exit(1)

    logger.info("Watch stopped", extra={"context": {"events_delivered": delivered}})


@cli.command()
@click.option("--chain", "-c", required=True, help="Chain name")
def providers(chain: str) -> None:
    """Check connectivity of every configured provider of a chain."""

    async def _check_providers() -> dict:
        fetcher = _build_fetcher()
        try:
            return await fetcher.test_providers(chain)
        finally:
            await fetcher.close()

    try:
        results = asyncio.run(_check_providers())
    except FetcherError as e:
        logger.error(f"Provider check failed: {e}", extra={"context": {"error_code": e.code.value}})
        sys.exit(1)

    click.echo(json.dumps(results, indent=2))


if __name__ == "__main__":
    cli()
