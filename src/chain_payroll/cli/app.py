"""CLI for chain-payroll - create on-chain payrolls from the terminal."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from chain_payroll.errors import OrchestrationError, PayrollChainError

app = typer.Typer(
    name="chain-payroll",
    help="Create payrolls on-chain and resolve employee wallets (addresses or ENS names).",
    no_args_is_help=True,
)
console = Console()

_config_path: Optional[Path] = None
_verbose = False


def _version_callback(value: bool):
    if value:
        from chain_payroll import __version__
        console.print(f"chain-payroll {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML settings file (defaults to environment variables)",
        envvar="CHAIN_PAYROLL_CONFIG",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show step-by-step logs"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Create payrolls on-chain and resolve employee wallets (addresses or ENS names)."""
    global _config_path, _verbose
    _config_path = config
    _verbose = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_settings():
    from chain_payroll.config import load_settings

    try:
        settings = load_settings(_config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not load settings: {e}[/red]")
        raise typer.Exit(1)
    # --verbose wins over the configured level
    logging.getLogger("chain_payroll").setLevel("DEBUG" if _verbose else settings.log_level)
    return settings


def _fail(exc: PayrollChainError) -> None:
    console.print(f"[red]{exc.code}: {exc}[/red]")
    raise typer.Exit(1)


def _ens_resolver(settings):
    from chain_payroll.chain.client import build_read_client
    from chain_payroll.resolver import EnsResolver

    w3 = build_read_client(
        settings.ens.rpc_url,
        settings.ens.chain,
        timeout=settings.network.request_timeout,
    )
    return EnsResolver(w3, settings.ens.registry_address)


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------


@app.command("run")
def run_payroll(
    request_file: Path = typer.Argument(..., help="Payroll request (YAML or JSON)"),
    resolve: bool = typer.Option(True, "--resolve/--no-resolve", help="Resolve ENS names in wallets first"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Create a payroll and add every employee, one confirmed transaction at a time."""
    from pydantic import ValidationError as ModelError

    from chain_payroll.chain.units import to_decimal
    from chain_payroll.config import load_document
    from chain_payroll.models import AddressKind, PayrollRequest
    from chain_payroll.orchestrator import PayrollOrchestrator, expected_total
    from chain_payroll.resolver import classify

    settings = _load_settings()
    try:
        request = PayrollRequest.model_validate(load_document(request_file))
    except (OSError, ValueError, ModelError) as e:
        console.print(f"[red]Invalid payroll request {request_file}: {e}[/red]")
        raise typer.Exit(1)

    try:
        needs_ens = any(
            classify(emp.wallet_address) is AddressKind.DOMAIN_NAME for emp in request.employees
        )
        if resolve and needs_ens:
            resolver = _ens_resolver(settings)
            employees = asyncio.run(resolver.resolve_employees(request.employees))
            request = request.model_copy(update={"employees": employees})

        PayrollOrchestrator.validate(request)
    except PayrollChainError as e:
        _fail(e)

    table = Table(title=f"Payroll: day {request.payment_day}, {request.duration} months")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Wallet")
    table.add_column("ETH / month", justify="right")
    for i, emp in enumerate(request.employees, 1):
        table.add_row(str(i), emp.name, emp.wallet_address, str(emp.amount))
    console.print(table)
    console.print(f"Expected total: [bold]{request.expected_total_amount} ETH[/bold]")
    computed = expected_total(request)
    if computed != to_decimal(request.expected_total_amount):
        console.print(
            f"[yellow]Note: amounts x duration = {computed} ETH[/yellow]"
        )

    if not yes:
        typer.confirm(
            f"Send {len(request.employees) + 1} transactions on {settings.network.chain}?",
            abort=True,
        )

    try:
        orchestrator = PayrollOrchestrator.from_settings(settings)
        result = orchestrator.execute(request)
    except OrchestrationError as e:
        console.print(f"[red]{e.code}: {e}[/red]")
        if e.partially_applied:
            console.print(
                f"[yellow]Payroll {e.payroll_id} exists on-chain with "
                f"{e.completed_employees} employee(s) added.[/yellow]"
            )
        if e.ambiguous:
            console.print("[yellow]The last transaction may still be mined; check the explorer before retrying.[/yellow]")
        raise typer.Exit(1)
    except PayrollChainError as e:
        _fail(e)

    if as_json:
        console.print_json(json.dumps(result.model_dump(mode="json")))
        return

    from chain_payroll.chain.chains import get_chain

    chain = get_chain(settings.network.chain)
    lines = [
        "[bold green]Payroll created![/bold green]\n",
        f"Payroll ID: [cyan]{result.payroll_id}[/cyan]",
        f"Tx: [cyan]{result.tx_hash}[/cyan]",
    ]
    if chain.explorer_url:
        lines.append(f"Explorer: {chain.tx_url(result.tx_hash)}")
    if result.used_counter_fallback:
        lines.append(
            "\n[yellow]Payroll ID was read from payrollCounter() because the "
            "PayrollCreated event was missing. Verify it on the explorer.[/yellow]"
        )
    console.print(Panel("\n".join(lines), title="Payroll"))


# ------------------------------------------------------------------
# resolve
# ------------------------------------------------------------------


@app.command("resolve")
def resolve_names(
    names: list[str] = typer.Argument(..., help="Addresses or ENS names"),
):
    """Validate addresses and resolve ENS names."""
    from chain_payroll.models import AddressKind
    from chain_payroll.resolver import classify

    settings = _load_settings()
    kinds = {name: classify(name) for name in names}

    resolved: dict[str, Optional[str]] = {}
    domains = [n for n, k in kinds.items() if k is AddressKind.DOMAIN_NAME]
    if domains:
        try:
            resolver = _ens_resolver(settings)
        except PayrollChainError as e:
            _fail(e)
        resolved = asyncio.run(resolver.resolve_all(domains))

    table = Table(title="Address Resolution")
    table.add_column("Input", style="cyan")
    table.add_column("Kind")
    table.add_column("Address")
    failed = False
    for name, kind in kinds.items():
        if kind is AddressKind.ADDRESS:
            address = name
        elif kind is AddressKind.DOMAIN_NAME:
            address = resolved.get(name)
        else:
            address = None
        failed = failed or address is None
        table.add_row(name, kind.value, address or "[red]unresolved[/red]")
    console.print(table)
    if failed:
        raise typer.Exit(1)


# ------------------------------------------------------------------
# check / chains
# ------------------------------------------------------------------


@app.command("check")
def check_config():
    """Validate configuration and probe the RPC endpoint."""
    from chain_payroll.chain.client import build_clients, mask_rpc_url, resolve_deployment

    settings = _load_settings()
    try:
        clients = build_clients(settings)
        deployment = resolve_deployment(settings, clients.chain)
    except PayrollChainError as e:
        _fail(e)

    console.print(Panel(
        f"Chain: [cyan]{clients.chain.name}[/cyan] ({clients.chain.chain_id})\n"
        f"RPC: {mask_rpc_url(settings.network.rpc_url)}\n"
        f"Signer: [cyan]{clients.address}[/cyan]\n"
        f"{settings.contract.name}: [cyan]{deployment.address}[/cyan]",
        title="Configuration OK",
    ))


@app.command("chains")
def list_chains():
    """List the networks a payroll can target."""
    from chain_payroll.chain.chains import CHAINS

    table = Table(title="Supported Chains")
    table.add_column("Name", style="cyan")
    table.add_column("Chain ID", justify="right")
    table.add_column("Symbol")
    table.add_column("Explorer", style="dim")
    for chain in CHAINS.values():
        table.add_row(chain.name, str(chain.chain_id), chain.native_symbol, chain.explorer_url or "-")
    console.print(table)


if __name__ == "__main__":
    app()
