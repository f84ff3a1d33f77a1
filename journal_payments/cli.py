"""CLI for journal payments.

Pays for portal services from the command line: creates the transaction,
obtains the checkout URL and hands it off to the browser.
"""

import asyncio
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from journal_payments import __version__
from journal_payments.config import Settings, get_settings
from journal_payments.container import PaymentServices
from journal_payments.core.errors import DEFAULT_PAYMENT_ERROR, PaymentValidationError
from journal_payments.core.flow import PaymentFlow
from journal_payments.core.models import AttemptStatus, PaymentStatus, Provider, ServiceType
from journal_payments.monitoring.logging import setup_logging

app = typer.Typer(
    name="journal-pay",
    help="Journal portal payments - Click/Payme checkout from the terminal",
    add_completion=False,
)

console = Console()

STATUS_LABELS = {
    2: "[green]to'langan[/green]",
    -1: "[red]muvaffaqiyatsiz[/red]",
    0: "[yellow]kutilmoqda[/yellow]",
}


def load_settings(verbose: bool = False) -> Settings:
    """Load settings and configure logging."""
    try:
        settings = get_settings()
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid configuration\n{e}")
        raise typer.Exit(1)

    log_level = "DEBUG" if verbose else "WARNING"
    setup_logging(settings.model_copy(update={"log_level": log_level}))
    return settings


def build_services(settings: Settings, open_browser: bool = True) -> PaymentServices:
    """Composition root for CLI commands."""
    return PaymentServices.from_settings(settings, open_browser=open_browser)


def _print_status(transaction_id: str, status: PaymentStatus) -> None:
    table = Table(title=f"Tranzaksiya {transaction_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("error_code", str(status.error_code))
    table.add_row("error_note", status.error_note)
    if status.payment_status is not None:
        code = int(status.payment_status)
        table.add_row("payment_status", f"{code} ({STATUS_LABELS.get(code, code)})")
        table.add_row("backend_status", status.backend_status or "-")
    console.print(table)


async def _run_flow(flow: PaymentFlow, interactive: bool) -> bool:
    """Pay, offering retries with the same transaction until success or cancel."""
    while True:
        with console.status("To'lov tasdiqlanmoqda..."):
            attempt = await flow.pay()

        if attempt.status == AttemptStatus.SUCCESS:
            console.print(
                f"\n[green]To'lov muvaffaqiyatli![/green] "
                f"Tranzaksiya: {attempt.transaction_id}"
            )
            if attempt.handoff and attempt.handoff != "manual":
                console.print("To'lov sahifasiga yo'naltirilmoqdasiz. To'lovni tugallang.")
            return True

        message = escape(attempt.error_message or DEFAULT_PAYMENT_ERROR)
        console.print(
            f"\n[red]To'lovda xatolik:[/red] {message} [dim]({attempt.error_code})[/dim]"
        )
        if attempt.transaction_id:
            console.print(f"[dim]Tranzaksiya saqlandi: {attempt.transaction_id}[/dim]")

        if not interactive or not typer.confirm("Qayta urinish?", default=False):
            flow.cancel()
            return False


async def _pay(
    settings: Settings,
    amount: str,
    service_type: ServiceType,
    currency: Optional[str],
    article: Optional[str],
    translation_request: Optional[str],
    provider: Optional[Provider],
    open_browser: bool,
    wait: bool,
    yes: bool,
) -> bool:
    async with build_services(settings, open_browser=open_browser) as services:
        try:
            flow = services.new_flow(
                amount,
                service_type,
                currency=currency,
                article_id=article,
                translation_request_id=translation_request,
                provider=provider,
            )
        except PaymentValidationError as e:
            console.print(f"[red]Error:[/red] {escape(e.message)}")
            raise typer.Exit(2)

        request = flow.request
        if request is not None:
            console.print(
                Panel(
                    f"{request.service_type.value} uchun to'lov:\n"
                    f"[bold]{request.amount:,} {request.currency}[/bold]\n"
                    f"Provayder: {flow.attempt.provider.value}",
                    title="To'lovni tasdiqlash",
                    border_style="blue",
                )
            )

        if not yes and not typer.confirm("To'lovni amalga oshirasizmi?", default=True):
            flow.cancel()
            console.print("[yellow]Bekor qilindi.[/yellow]")
            return False

        paid = await _run_flow(flow, interactive=not yes)

        if paid and wait and flow.transaction_id:
            with console.status("To'lov holati tekshirilmoqda..."):
                status = await services.reconciler.wait_for_settlement(flow.transaction_id)
            _print_status(flow.transaction_id, status)

        return paid


@app.command()
def pay(
    amount: str = typer.Option(..., "--amount", "-a", help="Amount in so'm"),
    service_type: ServiceType = typer.Option(..., "--service", "-s", help="Billable service"),
    currency: Optional[str] = typer.Option(None, "--currency", "-c", help="Currency code"),
    article: Optional[str] = typer.Option(None, "--article", help="Related article id"),
    translation_request: Optional[str] = typer.Option(
        None,
        "--translation-request",
        help="Related translation request id",
    ),
    provider: Optional[Provider] = typer.Option(None, "--provider", "-p", help="Payment provider"),
    no_browser: bool = typer.Option(
        False,
        "--no-browser",
        help="Print the checkout link instead of opening a browser",
    ),
    wait: bool = typer.Option(
        False,
        "--wait",
        "-w",
        help="Poll the transaction status after the handoff",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Don't ask for confirmation or retries",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """Create a transaction and pay for it."""
    settings = load_settings(verbose)

    paid = asyncio.run(
        _pay(
            settings,
            amount,
            service_type,
            currency,
            article,
            translation_request,
            provider,
            open_browser=not no_browser,
            wait=wait,
            yes=yes,
        )
    )
    if not paid:
        raise typer.Exit(1)


async def _process(
    settings: Settings,
    transaction_id: str,
    provider: Optional[Provider],
    open_browser: bool,
    yes: bool,
) -> bool:
    async with build_services(settings, open_browser=open_browser) as services:
        flow = services.flow_for_transaction(transaction_id, provider=provider)
        return await _run_flow(flow, interactive=not yes)


@app.command()
def process(
    transaction_id: str = typer.Argument(..., help="Existing transaction id"),
    provider: Optional[Provider] = typer.Option(None, "--provider", "-p", help="Payment provider"),
    no_browser: bool = typer.Option(
        False,
        "--no-browser",
        help="Print the checkout link instead of opening a browser",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't offer retries"),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """Get a checkout link for an existing transaction."""
    settings = load_settings(verbose)

    paid = asyncio.run(
        _process(settings, transaction_id, provider, open_browser=not no_browser, yes=yes)
    )
    if not paid:
        raise typer.Exit(1)


async def _status(settings: Settings, transaction_id: str, wait: bool) -> PaymentStatus:
    async with build_services(settings, open_browser=False) as services:
        if wait:
            return await services.reconciler.wait_for_settlement(transaction_id)
        return await services.reconciler.check_payment_status(transaction_id)


@app.command()
def status(
    transaction_id: str = typer.Argument(..., help="Transaction id"),
    wait: bool = typer.Option(
        False,
        "--wait",
        "-w",
        help="Poll until the payment completes or fails",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """Show the payment status of a transaction."""
    settings = load_settings(verbose)

    result = asyncio.run(_status(settings, transaction_id, wait))
    _print_status(transaction_id, result)

    if result.error_code != 0:
        raise typer.Exit(1)


@app.command()
def health(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """Check that the portal backend is reachable."""
    settings = load_settings(verbose)

    console.print("[bold]Checking payment backend health...[/bold]\n")

    async def _health() -> dict:
        async with build_services(settings, open_browser=False) as services:
            return await services.health.get_health_status()

    report = asyncio.run(_health())

    for name, check in report["checks"].items():
        mark = "[green]✓[/green]" if check["status"] == "healthy" else "[red]✗[/red]"
        console.print(f"{mark} {name}: {escape(check['message'])}")

    if report["status"] == "healthy":
        console.print("\n[green]All systems operational![/green]")
    else:
        console.print("\n[yellow]Some components need attention.[/yellow]")
        raise typer.Exit(1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"journal-pay v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Journal portal payments."""


if __name__ == "__main__":
    app()
