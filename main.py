"""
Meteor Keeper - CLI Entrypoint
==============================
Unattended Meteora DLMM position keeper.

Commands:
    python main.py run --sol-amount 1.5 --bin-span 40
    python main.py monitor --position <POSITION> --initial-capital 250
    python main.py close --position <POSITION>
    python main.py swap --input-mint <MINT> --output-mint <MINT> --amount 1000000
    python main.py tip-floor
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from config.settings import EngineConfig, Settings, build_engine_config
from src.liquidity.exit_rules import ExitRules, PnlTracker
from src.liquidity.position_closer import PositionCloser
from src.liquidity.position_monitor import MonitorOutcome, PositionMonitor
from src.shared.execution.bundle_submitter import BundleSubmitter, calculate_tip, fetch_tip_floor
from src.shared.execution.meteora_bridge import MeteoraBridge
from src.shared.execution.swapper import JupiterSwapper
from src.shared.execution.wallet import load_keypair
from src.shared.feeds.prices.jupiter import JupiterPriceOracle
from src.shared.infrastructure.chain_gateway import ChainGateway
from src.shared.infrastructure.jito_adapter import JitoAdapter
from src.shared.system.errors import FatalError, TransientReadError
from src.shared.system.logging import Logger
from src.shared.system.signal_bus import SignalBus, SignalType

app = typer.Typer(
    name="meteor-keeper",
    help="Meteor Keeper - Meteora DLMM position keeper for Solana",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


# ═══════════════════════════════════════════════════════════════════════════════
# WIRING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Engine:
    config: EngineConfig
    keypair: Keypair
    bus: SignalBus
    gateway: ChainGateway
    relay: JitoAdapter
    swapper: JupiterSwapper
    submitter: BundleSubmitter
    oracle: JupiterPriceOracle
    bridge: MeteoraBridge

    def closer(self) -> PositionCloser:
        return PositionCloser(
            self.bridge, self.submitter, self.swapper, self.gateway, self.keypair,
            self.config.infrastructure, self.config.exit_rules,
        )


@asynccontextmanager
async def engine_session(config: EngineConfig):
    infra = config.infrastructure
    keypair = load_keypair(infra.wallet_path)
    bus = SignalBus()

    async with httpx.AsyncClient(timeout=infra.http_timeout_sec) as http:
        gateway = ChainGateway(AsyncClient(infra.rpc_url), infra)
        relay = JitoAdapter(http, infra, config.bundle)
        engine = Engine(
            config=config,
            keypair=keypair,
            bus=bus,
            gateway=gateway,
            relay=relay,
            swapper=JupiterSwapper(http, gateway, config.swap, infra, bus),
            submitter=BundleSubmitter(gateway, relay, keypair, config.bundle, bus, config.swap),
            oracle=JupiterPriceOracle(http, infra),
            bridge=MeteoraBridge(infra.pool_address or "", str(keypair.pubkey()), infra.wallet_path, infra),
        )
        try:
            yield engine
        finally:
            await gateway.close()


async def _monitor(engine: Engine, position_id: str, initial_capital_usd: float) -> MonitorOutcome:
    tracker = PnlTracker(initial_capital_usd=initial_capital_usd)
    monitor = PositionMonitor(
        engine.bridge,
        engine.oracle,
        position_id,
        engine.config.monitor,
        tracker,
        ExitRules(engine.config.exit_rules, tracker),
        engine.closer(),
        engine.bus,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.request_stop)
        except NotImplementedError:
            Logger.debug(f"[CLI] No signal handler support for {sig.name}; Ctrl+C stops immediately")
    try:
        return await monitor.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                Logger.debug(f"[CLI] Could not remove handler for {sig.name}")


def _config(pool: Optional[str], interval: Optional[float], threshold: Optional[float]) -> EngineConfig:
    config = build_engine_config()
    infra, monitor = config.infrastructure, config.monitor
    if pool:
        infra = replace(infra, pool_address=pool)
    if interval is not None:
        monitor = replace(monitor, interval_sec=interval)
    if threshold is not None:
        monitor = replace(monitor, recenter_threshold=threshold)
    return replace(config, infrastructure=infra, monitor=monitor)


def _require_pool(config: EngineConfig) -> None:
    if not config.infrastructure.pool_address:
        console.print("[red]No pool address: pass --pool or set POOL_ADDRESS[/red]")
        raise typer.Exit(code=2)


def _finish(outcome: MonitorOutcome) -> None:
    style = "red" if outcome.fatal else "green"
    console.print(Panel(
        f"State: {outcome.state.value}\nReason: {outcome.reason}\n"
        f"Ticks: {outcome.ticks}  Rebalances: {outcome.rebalances}\nPosition: {outcome.position_id}",
        title="Monitor finished",
        border_style=style,
    ))
    if outcome.fatal:
        raise typer.Exit(code=1)


def _run_async(coro):
    try:
        return asyncio.run(coro)
    except FatalError as e:
        console.print(f"[bold red]Fatal:[/bold red] {e}")
        raise typer.Exit(code=1)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def run(
    sol_amount: float = typer.Option(..., "--sol-amount", help="SOL to deploy into the position", min=0.0),
    bin_span: int = typer.Option(40, "--bin-span", help="Number of bins in the range", min=1),
    strategy: str = typer.Option("Spot", "--strategy", help="Liquidity shape: Spot, Curve or BidAsk"),
    pool: Optional[str] = typer.Option(None, "--pool", help="DLMM pool address (default: POOL_ADDRESS)"),
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between ticks"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Re-center distance as a fraction of width"),
):
    """
    Open a position and keep it centred until an exit rule fires.
    """
    config = _config(pool, interval, threshold)
    _require_pool(config)

    async def _go():
        async with engine_session(config) as engine:
            try:
                opened = await engine.bridge.open_position(sol_amount, bin_span, strategy)
            except TransientReadError as e:
                raise FatalError(f"Could not open position: {e}") from e
            engine.bridge.retarget(opened.pool_address)
            engine.bus.emit(
                SignalType.POSITION_OPENED, "CLI",
                pool=opened.pool_address, position_id=opened.position_id,
                initial_capital_usd=opened.initial_capital_usd, signature=opened.signature,
            )
            Logger.success(f"[CLI] Opened {opened.position_id} (${opened.initial_capital_usd:.2f})")
            return await _monitor(engine, opened.position_id, opened.initial_capital_usd)

    _finish(_run_async(_go()))


@app.command()
def monitor(
    position: str = typer.Option(..., "--position", help="Existing position public key"),
    initial_capital: float = typer.Option(0.0, "--initial-capital", help="USD value at open, for P&L"),
    pool: Optional[str] = typer.Option(None, "--pool", help="DLMM pool address (default: POOL_ADDRESS)"),
    interval: Optional[float] = typer.Option(None, "--interval", help="Seconds between ticks"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Re-center distance as a fraction of width"),
):
    """
    Attach to an already open position.
    """
    config = _config(pool, interval, threshold)
    _require_pool(config)

    async def _go():
        async with engine_session(config) as engine:
            return await _monitor(engine, position, initial_capital)

    _finish(_run_async(_go()))


@app.command()
def close(
    position: str = typer.Option(..., "--position", help="Position public key"),
    pool: Optional[str] = typer.Option(None, "--pool", help="DLMM pool address (default: POOL_ADDRESS)"),
):
    """
    Close a position now (withdraw, claim, close, optional swap to SOL).
    """
    config = _config(pool, None, None)
    _require_pool(config)

    async def _go():
        async with engine_session(config) as engine:
            try:
                snapshot = await engine.bridge.refresh()
            except TransientReadError as e:
                raise FatalError(f"Pool unreadable: {e}") from e
            return await engine.closer().close(position, snapshot)

    outcome = _run_async(_go())
    if not outcome.closed:
        console.print(f"[red]Close failed:[/red] {outcome.error}")
        raise typer.Exit(code=1)
    console.print(f"[green]Closed.[/green] Signatures: {', '.join(outcome.signatures)}")


@app.command()
def swap(
    input_mint: str = typer.Option(..., "--input-mint"),
    output_mint: str = typer.Option(..., "--output-mint"),
    amount: int = typer.Option(..., "--amount", help="Raw input amount (smallest units)", min=1),
    slippage_bps: Optional[int] = typer.Option(None, "--slippage-bps"),
    max_impact: Optional[float] = typer.Option(None, "--max-impact", help="Max price impact in percent"),
):
    """
    One-off swap through the quote/build/execute pipeline.
    """
    config = build_engine_config()

    async def _go():
        async with engine_session(config) as engine:
            return await engine.swapper.swap(
                input_mint, output_mint, amount, engine.keypair,
                slippage_bps=slippage_bps, max_impact_pct=max_impact,
            )

    result = _run_async(_go())
    if not result.success:
        console.print(f"[red]{result.error_code.value}:[/red] {result.error_message}")
        raise typer.Exit(code=1)
    console.print(f"[green]Swapped.[/green] https://solscan.io/tx/{result.tx_signature}")


@app.command("tip-floor")
def tip_floor(
    tx_count: int = typer.Option(2, "--tx-count", help="Caller transactions in the bundle", min=1, max=4),
):
    """
    Show the relay's tip floor and the tip each tier would pay.
    """
    config = build_engine_config()

    async def _go():
        async with httpx.AsyncClient(timeout=config.infrastructure.http_timeout_sec) as http:
            return await fetch_tip_floor(JitoAdapter(http, config.infrastructure, config.bundle))

    floor = asyncio.run(_go())
    table = Table(title=f"Tip floor{' (defaults)' if floor.is_default else ''}")
    table.add_column("Tier")
    table.add_column("Percentile (SOL)", justify="right")
    table.add_column(f"Tip for {tx_count} tx (lamports)", justify="right")
    for tier in ("low", "medium", "high", "veryhigh"):
        table.add_row(tier, f"{floor.percentile_for(tier):.9f}", str(calculate_tip(floor, tier, tx_count, config.bundle)))
    console.print(table)


@app.callback()
def main(log_level: str = typer.Option(Settings.LOG_LEVEL, "--log-level", help="Console log level")):
    Logger.set_level(log_level)


if __name__ == "__main__":
    app()
