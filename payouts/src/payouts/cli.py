"""
Payout processor CLI using Typer.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from pydantic import ValidationError

from payouts.config import Settings, get_settings
from payouts.models import PassReport
from payouts.processor import PaymentProcessor
from payouts.scheduler import Scheduler
from payouts.utils import get_readable_coins

app = typer.Typer(
    name="payouts",
    help="Mining pool payout processor",
    add_completion=False,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", envvar="PAYOUTS_CONFIG", help="Path to JSON config file"),
]
LogLevelOption = Annotated[
    str | None, typer.Option("--log-level", "-l", help="Override log level")
]


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )


def load_settings(config: Path | None, log_level: str | None) -> Settings:
    try:
        settings = get_settings(config)
    except (ValueError, ValidationError) as e:
        setup_logging("ERROR")
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)
    setup_logging(log_level or settings.log_level)
    return settings


def format_report(report: PassReport) -> str:
    lines = [
        f"Candidates:  {report.candidates}",
        f"Batches:     {report.batches}",
        f"Sent:        {report.succeeded}",
        f"Failed:      {report.failed}",
        f"Critical:    {report.critical}",
        f"Notified:    {report.notified}",
    ]
    if report.unverified:
        lines.append(f"Unverified:  {report.unverified}")
    if report.error:
        lines.append(f"Error:       {report.error}")
    return "\n".join(lines)


@app.command()
def run(config: ConfigOption = None, log_level: LogLevelOption = None) -> None:
    """Run payout passes every payments.interval seconds."""
    settings = load_settings(config, log_level)
    if not settings.payments.enabled:
        logger.warning("Payments are disabled in configuration")
        raise typer.Exit(0)

    async def run_scheduler() -> None:
        processor = PaymentProcessor.from_settings(settings)
        scheduler = Scheduler(processor.run_pass, settings.payments.interval)

        loop = asyncio.get_running_loop()

        def shutdown_handler() -> None:
            logger.info("Received shutdown signal")
            scheduler.stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown_handler)

        try:
            await scheduler.run_forever()
        finally:
            await processor.close()

    logger.info(f"Starting payout processor for {settings.coin}")
    asyncio.run(run_scheduler())


@app.command()
def once(config: ConfigOption = None, log_level: LogLevelOption = None) -> None:
    """Run a single payout pass."""
    settings = load_settings(config, log_level)

    async def run_once() -> PassReport:
        processor = PaymentProcessor.from_settings(settings)
        try:
            return await processor.run_pass()
        finally:
            await processor.close()

    report = asyncio.run(run_once())
    typer.echo(format_report(report))
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def preview(config: ConfigOption = None, log_level: LogLevelOption = None) -> None:
    """Show the transfers the next pass would send, without sending them."""
    settings = load_settings(config, log_level)

    def readable(amount: int) -> str:
        return get_readable_coins(
            amount, settings.coin_units, settings.coin_decimal_places, settings.symbol
        )

    async def run_preview() -> None:
        processor = PaymentProcessor.from_settings(settings)
        try:
            candidates = await processor.find_candidates()
            if not candidates:
                typer.echo("No workers' balances reached the minimum payment threshold")
                return
            batches = await processor.plan(candidates)
        finally:
            await processor.close()

        for batch in batches:
            header = f"Batch {batch.index}: {batch.destination_count} destination(s), "
            header += f"{readable(batch.amount)}, fee {readable(batch.fee)}"
            if batch.payment_id:
                header += f", payment id {batch.payment_id}"
            if batch.privacy_setting:
                header += f", {batch.privacy_setting}"
            typer.echo(header)
            for destination in batch.destinations:
                typer.echo(f"  {destination.address}  {readable(destination.amount)}")

    asyncio.run(run_preview())


def main() -> None:  # pragma: no cover
    app()
