import asyncio, contextlib, logging, signal, time
import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    Progress, BarColumn, TextColumn, TimeElapsedColumn,
    MofNCompleteColumn, SpinnerColumn
)
from rich.panel import Panel
from rich.table import Table

from .adapters.ledger_substrate import DEFAULT_WS, SubstrateLedger
from .application.config import DEFAULT_OUT, RunConfig, parse_epoch_spec
from .application.use_cases import EpochReading, backfill_from_config, read_epoch
from .domain.errors import EpochSnapError
from .domain.value_types import CURRENT, DomainId

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    # substrate-interface logs every RPC frame at DEBUG
    logging.getLogger("substrateinterface").setLevel(logging.WARNING)


def _epoch_arg(ctx, param, value):
    try:
        return parse_epoch_spec(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _install_cancel(cancel: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # no loop signal handlers on Windows; Ctrl-C then aborts mid-epoch, which is still safe
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, cancel.set)


@click.group()
def cli():
    """epochsnap: per-epoch stake and reward snapshots for a staking domain."""


@cli.command("backfill")
@click.option("--ws", envvar="WS", default=DEFAULT_WS, show_default=True, help="Node RPC endpoint (ws/wss/http)")
@click.option("--domain", "domain_id", envvar="DOMAIN", type=click.IntRange(min=0), default=0, show_default=True)
@click.option("--from", "start_epoch", envvar="FROM", default="0", show_default=True, callback=_epoch_arg,
              help="First epoch, or 'current'")
@click.option("--to", "end_epoch", envvar="TO", default=CURRENT, show_default=True, callback=_epoch_arg,
              help="Last epoch, or 'current'")
@click.option("--append/--no-append", default=False, show_default=True,
              help="Resume: keep rows already in --out and add newer epochs")
@click.option("--out", envvar="OUT", default=DEFAULT_OUT, show_default=True, help="Store path (.json or .parquet)")
@click.option("--timeout", "timeout_s", envvar="TIMEOUT", type=click.FloatRange(min=0, min_open=True),
              default=30.0, show_default=True, help="Seconds per ledger read")
@click.option("--verbose", is_flag=True, default=False, help="Log binary-search steps")
def backfill_cmd(ws, domain_id, start_epoch, end_epoch, append, out, timeout_s, verbose):
    """Extract every completed epoch in a range and persist it after each epoch."""
    _setup_logging(verbose)
    cfg = RunConfig(ws_url=ws, domain_id=DomainId(domain_id), start_epoch=start_epoch,
                    end_epoch=end_epoch, append=append, out=out, timeout_s=timeout_s)

    async def run():
        cancel = asyncio.Event()
        _install_cancel(cancel)
        total = None
        if isinstance(start_epoch, int) and isinstance(end_epoch, int):
            total = max(0, end_epoch - start_epoch + 1)

        progress = Progress(SpinnerColumn(),
                            TextColumn("[bold]extracting epochs[/]"),
                            BarColumn(),
                            MofNCompleteColumn(),
                            TextColumn("•"),
                            TimeElapsedColumn(),
                            TextColumn(" • {task.description}"),
                            console=console,
                            transient=False,
                            expand=True,
                            )
        with progress:
            task = progress.add_task(description=f"domain {domain_id}", total=total)

            def on_epoch(ep, record):
                state = "skipped" if record is None else f"#{record.start_height:,}…#{record.end_height:,}"
                progress.update(task, advance=1, description=f"epoch {ep} {state}")

            return await backfill_from_config(cfg, cancel=cancel, on_epoch=on_epoch)

    t0 = time.time()
    try:
        stats = asyncio.run(run())
    except (EpochSnapError, ValueError) as e:
        raise click.ClickException(str(e))
    console.print(f"[bold]done[/]: {out} • {time.time() - t0:.2f}s")
    console.print(
        f"[bold]summary[/]: "
        f"[green]appended[/]={stats['appended']}  "
        f"[yellow]existing[/]={stats['existing']}  "
        f"total={stats['total']}  last_epoch={stats['last_epoch']}  "
        f"ledger_reads={stats['ledger_reads']}"
    )


def _amount_table(title: str, amounts: dict, empty: str) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("operator", justify="right")
    table.add_column("amount (shannons)", justify="right")
    for op, v in sorted(amounts.items()):
        table.add_row(str(op), v)
    if not amounts:
        table.add_row("-", empty)
    return table


def _print_reading(r: EpochReading) -> None:
    status = "[green]complete[/]" if r.complete else "[yellow]open[/] (rewards not final)"
    end = f"#{r.end_height:,}  {r.end.handle_id if r.end else '-'}" if r.complete else "-"
    console.print(Panel(
        f"epoch [bold]{r.epoch}[/] of domain {r.domain_id} • {status}\n"
        f"start #{r.start_height:,}  {r.start.handle_id if r.start else '-'}\n"
        f"end   {end}\n"
        f"total stake @ start: {r.start.total_stake if r.start and r.start.total_stake else '-'}",
        title="Epoch Snapshot",
        subtitle=f"head epoch {r.head_epoch}",
    ))
    console.print(_amount_table("Operator stakes @ start", r.start.operator_stakes if r.start else {}, "(none)"))
    if r.complete:
        console.print(_amount_table("Operator rewards (final at end)", r.end.rewards if r.end else {},
                                    "(none / not available)"))


@cli.command("read-epoch")
@click.option("--ws", envvar="WS", default=DEFAULT_WS, show_default=True, help="Node RPC endpoint (ws/wss/http)")
@click.option("--domain", "domain_id", envvar="DOMAIN", type=click.IntRange(min=0), default=0, show_default=True)
@click.option("--epoch", envvar="EPOCH", default=CURRENT, show_default=True, callback=_epoch_arg,
              help="Epoch to inspect, or 'current'")
@click.option("--timeout", "timeout_s", envvar="TIMEOUT", type=click.FloatRange(min=0, min_open=True),
              default=30.0, show_default=True)
@click.option("--verbose", is_flag=True, default=False)
def read_epoch_cmd(ws, domain_id, epoch, timeout_s, verbose):
    """Locate one epoch and show its start stakes and, once it has ended, its rewards."""
    _setup_logging(verbose)

    async def run():
        ledger = SubstrateLedger(ws, timeout_s=timeout_s)
        try:
            return await read_epoch(ledger=ledger, domain_id=DomainId(domain_id), epoch=epoch)
        finally:
            await ledger.aclose()

    try:
        reading = asyncio.run(run())
    except EpochSnapError as e:
        raise click.ClickException(str(e))
    _print_reading(reading)


if __name__ == "__main__":
    cli()
