"""
Command-line interface for the vault client.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Annotated

import typer
from loguru import logger
from revaultd_client.backend import DaemonError
from revaultd_client.models import VaultStatus

from revault_gui.config import Settings, get_settings
from revault_gui.spend import SATS_PER_BTC, SpendTransactionList
from revault_gui.vaults import StatusChange, VaultSetController

app = typer.Typer(
    name="revault-gui",
    help="Vault client - inspect vaults and spend transactions",
    add_completion=False,
)


def setup_logging(level: str) -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def format_btc(sats: int) -> str:
    return f"{sats / SATS_PER_BTC:.8f} BTC"


async def _list_vaults(
    settings: Settings, statuses: list[VaultStatus] | None
) -> VaultSetController:
    client = settings.create_client()
    try:
        controller = VaultSetController(client)
        if statuses:
            await controller.apply_filter(statuses)
        else:
            await controller.poll()
        return controller
    finally:
        await client.close()


@app.command()
def vaults(
    status: Annotated[
        list[VaultStatus] | None, typer.Option("--status", "-s", help="Only list these statuses")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "",
) -> None:
    """List vaults and the active/inactive balance."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    controller = asyncio.run(_list_vaults(settings, status))
    if controller.warning is not None:
        logger.error(f"Failed to list vaults: {controller.warning}")
        raise typer.Exit(1)

    active, inactive = controller.balance
    if as_json:
        print(
            json.dumps(
                {
                    "vaults": [v.model_dump(mode="json") for v in controller.vaults],
                    "active": active,
                    "inactive": inactive,
                },
                indent=2,
            )
        )
        return

    for vault in controller.vaults:
        print(f"{vault.outpoint}  {vault.status.value:<18} {format_btc(vault.amount)}")
    print(f"Active:   {format_btc(active)}")
    print(f"Inactive: {format_btc(inactive)}")


@app.command()
def balance(
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "",
) -> None:
    """Show the number of vaults and amount per status."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    controller = asyncio.run(_list_vaults(settings, None))
    if controller.warning is not None:
        logger.error(f"Failed to list vaults: {controller.warning}")
        raise typer.Exit(1)

    for status, (number, amount) in controller.balance_by_status.items():
        print(f"{status.value:<18} {number:>4} vault(s)  {format_btc(amount)}")

    moving = controller.moving_vaults
    if moving:
        print("Moving:")
        for vault in moving:
            print(f"  {vault.outpoint}  {vault.status.value:<18} {format_btc(vault.amount)}")


def _print_changes(changes: list[StatusChange]) -> None:
    for change in changes:
        previous = change.previous.value if change.previous else "-"
        current = change.current.value if change.current else "-"
        print(f"{change.outpoint}  {previous} -> {current}")


@app.command()
def watch(
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "",
) -> None:
    """Poll the daemon and print vault status changes until interrupted."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    async def _run() -> None:
        client = settings.create_client()
        try:
            controller = VaultSetController(client)
            await controller.run(settings.poll_interval, on_changes=_print_changes)
        finally:
            await client.close()

    logger.info(f"Watching vaults every {settings.poll_interval}s")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Stopped watching vaults")


@app.command()
def blockheight(
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "",
) -> None:
    """Print the block height seen by the daemon."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    async def _run() -> int:
        client = settings.create_client()
        try:
            return await client.get_block_height()
        finally:
            await client.close()

    try:
        height = asyncio.run(_run())
    except DaemonError as e:
        logger.error(f"Failed to fetch block height: {e}")
        raise typer.Exit(1) from e
    print(height)


@app.command("spend-txs")
def spend_txs(
    log_level: Annotated[str, typer.Option("--log-level", "-l")] = "",
) -> None:
    """List the spend transactions stored by the daemon."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    async def _run() -> SpendTransactionList:
        client = settings.create_client()
        try:
            spend_list = SpendTransactionList(client)
            await spend_list.load()
            return spend_list
        finally:
            await client.close()

    spend_list = asyncio.run(_run())
    if spend_list.warning is not None:
        logger.error(f"Failed to list spend transactions: {spend_list.warning}")
        raise typer.Exit(1)

    for tx in spend_list.spend_txs:
        print(
            f"{tx.psbt.unsigned_txid}  {len(tx.deposit_outpoints)} vault(s)  "
            f"{format_btc(tx.psbt.tx.output_value)}  {tx.psbt.signature_count()} signature(s)"
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
