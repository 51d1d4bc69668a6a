"""Command-line interface for SipCoin."""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import typer

from sipcoin.config import get_settings
from sipcoin.errors import BalanceCreditError, InvalidAmountError, ReceiptLockedError, ReceiptNotFoundError
from sipcoin.ingest import ReceiptIngestionService
from sipcoin.ocr import FieldExtractor, TesseractOcrEngine
from sipcoin.rewards import calculate_points

app = typer.Typer(help="SipCoin receipt ingestion commands.")


def _echo_json(payload: Any, pretty: bool) -> None:
    typer.echo(json.dumps(payload, indent=2 if pretty else None, sort_keys=pretty, default=str))


@app.command()
def extract(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Receipt image or text file."),
    text: bool = typer.Option(False, "--text", help="Treat FILE as already-recognised receipt text."),
    pretty: bool = typer.Option(True, "--pretty/--no-pretty", help="Pretty-print output JSON."),
) -> None:
    """
    Extract receipt fields from an image (via Tesseract) or a plain-text dump.
    """

    if text:
        raw_text = path.read_text(encoding="utf-8")
        confidence = None
    else:
        settings = get_settings()
        engine = TesseractOcrEngine(lang=settings.ocr_default_lang, timeout=settings.ocr_timeout_seconds)
        ocr = engine.recognize(path.read_bytes())
        raw_text = ocr.text
        confidence = ocr.confidence

    fields = FieldExtractor().extract(raw_text)
    payload = fields.model_dump(mode="json")
    payload["confidence"] = confidence
    payload["warnings"] = fields.warnings()
    _echo_json(payload, pretty)


@app.command()
def points(
    amount: str = typer.Option(..., "--amount", help="Receipt total, e.g. 42.50."),
    transaction_date: Optional[str] = typer.Option(None, "--date", help="Transaction date (YYYY-MM-DD or MM/DD/YYYY)."),
    merchant: Optional[str] = typer.Option(None, "--merchant", help="Merchant name."),
) -> None:
    """Show the points a receipt total would earn."""

    try:
        parsed_amount = Decimal(amount)
    except InvalidOperation as exc:
        raise typer.BadParameter(f"Invalid amount {amount!r}") from exc
    try:
        calculation = calculate_points(parsed_amount, merchant_name=merchant, transaction_date=transaction_date)
    except InvalidAmountError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    _echo_json({**calculation.model_dump(), "display": calculation.display_breakdown()}, pretty=True)


@app.command()
def process(
    receipt_id: int = typer.Argument(..., help="Receipt ID to process."),
    user: str = typer.Option(..., "--user", help="Owning user id."),
) -> None:
    """Run OCR for a stored receipt and print the updated record."""

    service = ReceiptIngestionService()
    try:
        result = service.process_receipt(receipt_id, user_id=user)
    except (ReceiptNotFoundError, ReceiptLockedError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    _echo_json(result.receipt.model_dump(mode="json"), pretty=True)
    if result.receipt.status != "processed":
        raise typer.Exit(code=2)


@app.command()
def submit(
    receipt_id: int = typer.Argument(..., help="Receipt ID to submit."),
    user: str = typer.Option(..., "--user", help="Owning user id."),
) -> None:
    """Validate a processed receipt and credit its points."""

    service = ReceiptIngestionService()
    try:
        result = service.submit_receipt(receipt_id, user_id=user)
    except (ReceiptNotFoundError, InvalidAmountError, BalanceCreditError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    if not result.accepted:
        typer.secho(
            f"Rejected ({result.decision.reason.value}): {result.decision.message}",
            fg=typer.colors.YELLOW,
        )
        raise typer.Exit(code=2)
    typer.echo(
        f"Awarded {result.points.total_points} SipCoins; new balance {result.balance.sipcoins_balance}."
    )


@app.command()
def balance(user: str = typer.Option(..., "--user", help="User id.")) -> None:
    """Print a user's SipCoin balance."""

    service = ReceiptIngestionService()
    typer.echo(str(service.get_balance(user).sipcoins_balance))


@app.command()
def uncredited() -> None:
    """List submitted receipts whose points never reached the balance."""

    service = ReceiptIngestionService()
    receipts = service.list_uncredited_receipts()
    if not receipts:
        typer.echo("No uncredited receipts.")
        return
    for receipt in receipts:
        typer.echo(f"{receipt.id}\t{receipt.user_id}\t{receipt.sipcoins_earned}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload."),
) -> None:
    """Run the HTTP API under uvicorn."""

    from sipcoin.server.run import serve as run_server

    run_server(host, port, reload=reload)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for `python -m sipcoin`."""
    app(prog_name="sipcoin", args=argv)


if __name__ == "__main__":
    main()
