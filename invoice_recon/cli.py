"""
Command-line interface for the invoice reconciliation pipeline.

Provides two main commands:
- extract: Extract fields from a directory of PDFs to JSON
- reconcile: Review an extraction result and emit the final invoice record
"""

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from .aws import build_job_manager
from .config import AUTO_ACCEPT_THRESHOLD, MAX_CONCURRENT_JOBS, logger
from .extractor import extract_invoices_from_dir, write_extraction_results
from .reconciliation import ReconciliationSession
from .schemas import BatchItem, ExtractionResult, FieldKey


# Create Typer app
app = typer.Typer(
    name="invoice-recon",
    help="Invoice field extraction & reconciliation CLI",
    add_completion=False,
)


@app.command()
def extract(
    pdf_dir: Path = typer.Option(
        ...,
        "--pdf-dir",
        "-p",
        help="Directory containing invoice PDF files",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    output: Path = typer.Option(
        "extraction_results.json",
        "--output",
        "-o",
        help="Output JSON file path",
    ),
    remote: bool = typer.Option(
        False,
        "--remote/--local",
        help="Use the remote analysis service (needs AWS_S3_BUCKET_NAME)",
    ),
    workers: int = typer.Option(
        MAX_CONCURRENT_JOBS,
        "--workers",
        "-w",
        min=1,
        help="Maximum documents processed concurrently",
    ),
) -> None:
    """
    Extract invoice fields from PDF files to JSON.

    Reads all PDF files from the specified directory, runs the extraction
    pipeline on each, and writes one result per document.
    """
    typer.echo(f"Extracting invoices from: {pdf_dir}")

    job_manager = None
    if remote:
        job_manager = build_job_manager()
        if job_manager is None:
            typer.echo("Remote analysis is not configured, set AWS_S3_BUCKET_NAME.", err=True)
            raise typer.Exit(code=1)

    def progress(completed: int, total: int, item: BatchItem) -> None:
        status = "ok" if item.success else "failed"
        typer.echo(f"  [{completed}/{total}] {item.filename}: {status}")

    try:
        items = extract_invoices_from_dir(
            pdf_dir,
            job_manager=job_manager,
            max_workers=workers,
            on_progress=progress,
            fallback_on_error=True,
        )
        if items:
            write_extraction_results(items, output)
    except Exception as e:
        typer.echo(f"Error during extraction: {e}", err=True)
        logger.exception("Extraction failed")
        raise typer.Exit(code=1)

    if not items:
        typer.echo("No invoices were extracted.", err=True)
        raise typer.Exit(code=1)

    succeeded = [item for item in items if item.success]
    typer.echo(f"\n[OK] Extracted {len(succeeded)}/{len(items)} invoice(s) to: {output}")
    typer.echo("\nExtracted invoices:")
    for item in succeeded[:10]:  # Show first 10
        result = item.result
        typer.echo(
            f"  - {item.filename} | {result.value(FieldKey.INVOICE_NUMBER)} | "
            f"{result.value(FieldKey.TOTAL_AMOUNT)} {result.value(FieldKey.CURRENCY) or ''} | "
            f"confidence {result.overall_confidence}"
        )
    if len(succeeded) > 10:
        typer.echo(f"  ... and {len(succeeded) - 10} more")


def _load_result(input_file: Path, filename: Optional[str]) -> ExtractionResult:
    with open(input_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        return ExtractionResult.model_validate(data)

    items = [BatchItem.model_validate(entry) for entry in data]
    for item in items:
        if item.result is not None and (filename is None or item.filename == filename):
            return item.result
    raise ValueError(f"No extraction result for {filename or 'any document'} in {input_file}")


def _parse_key(raw: str) -> FieldKey:
    try:
        return FieldKey(raw.strip())
    except ValueError:
        valid = ", ".join(k.value for k in FieldKey)
        raise typer.BadParameter(f"Unknown field {raw!r}; expected one of: {valid}")


def _parse_edit(raw: str) -> tuple[FieldKey, str]:
    key, sep, value = raw.partition("=")
    if not sep:
        raise typer.BadParameter(f"Expected FIELD=VALUE, got {raw!r}")
    return _parse_key(key), value.strip()


@app.command()
def reconcile(
    input_file: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="Extraction result JSON (single result or output of 'extract')",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    filename: Optional[str] = typer.Option(
        None,
        "--file",
        "-f",
        help="Document to reconcile when the input holds several results",
    ),
    threshold: float = typer.Option(
        AUTO_ACCEPT_THRESHOLD,
        "--threshold",
        "-t",
        min=0,
        max=100,
        help="Auto-accept fields with at least this confidence",
    ),
    edits: Optional[list[str]] = typer.Option(
        None,
        "--set",
        "-s",
        help="Override a field, e.g. --set due_date=2025-05-28 (repeatable)",
    ),
    accept: Optional[list[str]] = typer.Option(
        None,
        "--accept",
        "-a",
        help="Accept a pending field as extracted (repeatable)",
    ),
    output: Path = typer.Option(
        "invoice_record.json",
        "--output",
        "-o",
        help="Output JSON file for the final invoice record",
    ),
) -> None:
    """
    Reconcile one extraction result into a final invoice record.

    Fields at or above the threshold are accepted automatically, explicit
    edits override extracted values, and the draft is validated. The record
    is written only when no field has a violation.
    """
    parsed_edits = [_parse_edit(raw) for raw in edits or []]
    accepted_keys = [_parse_key(raw) for raw in accept or []]

    try:
        result = _load_result(input_file, filename)
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        typer.echo(f"Error: could not read {input_file}: {e}", err=True)
        raise typer.Exit(code=1)

    session = ReconciliationSession(result)
    accepted = session.auto_accept(threshold)
    typer.echo(f"Auto-accepted {len(accepted)} field(s) at {threshold}%")
    for key in accepted_keys:
        session.accept_field(key)
    for key, value in parsed_edits:
        session.edit_field(key, value)

    outcome = session.proceed()
    for warning in outcome.warnings:
        typer.echo(f"  ! {warning}")

    if not outcome.accepted:
        typer.echo("\nReconciliation blocked:", err=True)
        for violation in outcome.violations:
            typer.echo(f"  - {violation.field.value}: {violation.message}", err=True)
        pending = session.pending_fields()
        if pending:
            typer.echo(f"\nPending review: {', '.join(key.value for key in pending)}", err=True)
        raise typer.Exit(code=1)

    with open(output, "w", encoding="utf-8") as f:
        json.dump(outcome.record.model_dump(mode="json"), f, indent=2)
    typer.echo(f"\n[OK] Invoice {outcome.record.invoice_number} written to: {output}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Reconciliation Pipeline v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
