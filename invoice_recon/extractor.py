"""
Extraction pipeline turning invoice PDFs into scored ExtractionResults.

This module provides functionality to:
- Map fields reported by the remote analysis service (when configured)
- Fill missing fields from the document's raw text with heuristics
- Correct an implausible total and derive dependent fields
- Score the merged result and process whole directories concurrently
"""

import json
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from .config import (
    AMBIGUOUS_DATE_ORDER,
    DEFAULT_PAYMENT_TERM_DAYS,
    DERIVED_TERM_CONFIDENCE,
    KNOWN_CUSTOMERS,
    KNOWN_VENDORS,
    MAX_CONCURRENT_JOBS,
    RAW_TEXT_LIMIT,
    logger,
)
from .corrector import correct, needs_correction
from .exceptions import ExtractionPipelineError
from .heuristics import parse_text
from .jobs import AnalysisJobManager
from .mapper import map_fields
from .normalizer import add_days
from .pdf_text import extract_text_from_bytes
from .schemas import (
    BatchItem,
    ExtractedField,
    ExtractionHints,
    ExtractionResult,
    FieldKey,
    FieldSource,
    TraceEntry,
    TraceOutcome,
    TypedLabelledField,
)
from .scoring import score


ProgressFn = Callable[[int, int, BatchItem], None]


def default_hints() -> ExtractionHints:
    """Hints built from the environment configuration."""
    order = AMBIGUOUS_DATE_ORDER if AMBIGUOUS_DATE_ORDER in ("DMY", "MDY") else None
    return ExtractionHints(
        known_customers=list(KNOWN_CUSTOMERS),
        known_vendors=list(KNOWN_VENDORS),
        date_order=order,
    )


def text_from_fields(fields: list[TypedLabelledField]) -> str:
    """Rebuild a text body from service fields, one label/value pair per line."""
    lines = []
    for item in fields:
        parts = [part for part in (item.label, item.value) if part]
        if parts:
            lines.append(" ".join(parts))
    return "\n".join(lines)


# ============================================================================
# Derivations
# ============================================================================

def _derive_amount(result: ExtractionResult) -> None:
    if result.get(FieldKey.AMOUNT) is not None:
        return
    total = result.get(FieldKey.TOTAL_AMOUNT)
    vat = result.get(FieldKey.VAT_AMOUNT)
    if total is None:
        return

    if vat is None:
        value, confidence = float(total.value), total.confidence
        reason = "no VAT, amount equals total"
    elif total.value >= vat.value:
        value = round(float(total.value) - float(vat.value), 2)
        confidence = min(total.confidence, vat.confidence)
        reason = "total minus VAT"
    else:
        return

    result.add_field(ExtractedField(
        name=FieldKey.AMOUNT, value=value, confidence=confidence, source=total.source,
    ))
    result.trace.append(TraceEntry(
        stage="pipeline", field=FieldKey.AMOUNT, candidate=str(value),
        outcome=TraceOutcome.DERIVED, reason=reason,
    ))


def _derive_due_date(result: ExtractionResult) -> None:
    issued = result.get(FieldKey.INVOICE_DATE)
    if result.get(FieldKey.DUE_DATE) is not None or issued is None or not isinstance(issued.value, date):
        return
    due = add_days(issued.value, DEFAULT_PAYMENT_TERM_DAYS)
    result.add_field(ExtractedField(
        name=FieldKey.DUE_DATE,
        value=due,
        confidence=min(issued.confidence, DERIVED_TERM_CONFIDENCE),
        source=FieldSource.HEURISTIC,
    ))
    result.trace.append(TraceEntry(
        stage="pipeline", field=FieldKey.DUE_DATE, candidate=due.isoformat(),
        outcome=TraceOutcome.DERIVED, reason=f"default {DEFAULT_PAYMENT_TERM_DAYS}-day term",
    ))


# ============================================================================
# Pipeline
# ============================================================================

def build_result(
    raw_text: Optional[str],
    structured_fields: Optional[list[TypedLabelledField]] = None,
    hints: Optional[ExtractionHints] = None,
    filename: Optional[str] = None,
    job_id: Optional[str] = None,
) -> ExtractionResult:
    """
    Merge both extraction strategies into one scored result.

    Structured fields win; heuristics only fill what is still missing. An
    implausible total is corrected, ``amount`` and ``due_date`` are derived
    when absent, and the aggregate confidence is computed last.
    """
    hints = hints or default_hints()
    raw_text = raw_text or ""
    result = ExtractionResult(
        raw_text=raw_text[:RAW_TEXT_LIMIT],
        filename=filename,
        job_id=job_id,
        method="structured" if structured_fields else "heuristic",
    )

    if structured_fields:
        mapped = map_fields(structured_fields, hints)
        result.fields.update(mapped.fields)
        result.trace.extend(mapped.trace)

    parsed = parse_text(raw_text, hints, known=result.fields)
    result.trace.extend(parsed.trace)
    for key, extracted in parsed.fields.items():
        added = result.add_field(extracted)
        result.trace.append(TraceEntry(
            stage="pipeline",
            field=key,
            candidate=extracted.raw_value,
            outcome=TraceOutcome.FILLED if added else TraceOutcome.KEPT,
            reason=None if added else "structured value kept",
        ))

    if needs_correction(result):
        correct(result, raw_text)

    _derive_amount(result)
    _derive_due_date(result)
    result.overall_confidence = score(result.fields)
    return result


def extract_invoice_from_text(
    text: str,
    hints: Optional[ExtractionHints] = None,
    filename: Optional[str] = None,
) -> ExtractionResult:
    """Heuristic-only extraction from already available text."""
    return build_result(text, None, hints, filename)


def extract_invoice_from_bytes(
    pdf_bytes: bytes,
    filename: str = "uploaded.pdf",
    job_manager: Optional[AnalysisJobManager] = None,
    hints: Optional[ExtractionHints] = None,
    fallback_on_error: bool = False,
) -> ExtractionResult:
    """
    Extract an invoice from PDF bytes.

    Args:
        pdf_bytes: Raw PDF file content
        filename: Original filename for logging/identification
        job_manager: Remote analysis job manager; heuristics only when None
        hints: Known parties and ambiguous date order
        fallback_on_error: Continue with heuristics when the remote job fails

    Returns:
        Scored ExtractionResult. An unreadable document gives an empty
        result with zero confidence.

    Raises:
        ExtractionPipelineError: the remote job failed and fallback is off
    """
    started = time.monotonic()
    text = extract_text_from_bytes(pdf_bytes, filename)

    structured: Optional[list[TypedLabelledField]] = None
    job_id = None
    if job_manager is not None:
        try:
            outcome = job_manager.run(pdf_bytes, filename)
            structured, job_id = outcome.fields, outcome.job_id
        except ExtractionPipelineError as e:
            if not fallback_on_error:
                raise
            logger.warning(f"Remote analysis failed for {filename}, using text heuristics: {e}")

    if structured and not text.strip():
        text = text_from_fields(structured)

    result = build_result(text, structured, hints, filename, job_id)
    result.processing_time_ms = round((time.monotonic() - started) * 1000, 1)
    logger.info(
        f"Extracted {len(result.fields)} fields from {filename} "
        f"({result.method}, confidence {result.overall_confidence})"
    )
    return result


def extract_invoice_from_pdf(
    pdf_path: Path,
    job_manager: Optional[AnalysisJobManager] = None,
    hints: Optional[ExtractionHints] = None,
    fallback_on_error: bool = False,
) -> ExtractionResult:
    """Extract an invoice from a PDF file on disk."""
    logger.info(f"Extracting invoice from: {pdf_path.name}")
    return extract_invoice_from_bytes(
        pdf_path.read_bytes(), pdf_path.name, job_manager, hints, fallback_on_error
    )


def extract_invoices_from_dir(
    pdf_dir: Path,
    job_manager: Optional[AnalysisJobManager] = None,
    hints: Optional[ExtractionHints] = None,
    max_workers: int = MAX_CONCURRENT_JOBS,
    on_progress: Optional[ProgressFn] = None,
    fallback_on_error: bool = False,
) -> list[BatchItem]:
    """
    Extract invoices from all PDF files in a directory.

    Documents are processed concurrently and independently; a failure is
    captured in that document's BatchItem and never stops the batch.

    Args:
        pdf_dir: Path to directory containing PDF files
        job_manager: Remote analysis job manager, shared read-only by workers
        hints: Known parties and ambiguous date order
        max_workers: Maximum documents in flight
        on_progress: Called as ``(completed, total, item)`` after each document

    Returns:
        One BatchItem per PDF, in file-name order
    """
    if not pdf_dir.exists():
        raise FileNotFoundError(f"Directory not found: {pdf_dir}")

    pdf_files = sorted(set(pdf_dir.glob("*.pdf")) | set(pdf_dir.glob("*.PDF")))
    if not pdf_files:
        logger.warning(f"No PDF files found in: {pdf_dir}")
        return []

    logger.info(f"Found {len(pdf_files)} PDF files to process")
    hints = hints or default_hints()

    def process(pdf_path: Path) -> BatchItem:
        started = time.monotonic()
        try:
            result = extract_invoice_from_pdf(pdf_path, job_manager, hints, fallback_on_error)
            return BatchItem(
                filename=pdf_path.name,
                success=True,
                result=result,
                processing_time_ms=round((time.monotonic() - started) * 1000, 1),
            )
        except Exception as e:
            logger.error(f"Failed to extract invoice from {pdf_path}: {e}")
            return BatchItem(
                filename=pdf_path.name,
                success=False,
                error=str(e),
                processing_time_ms=round((time.monotonic() - started) * 1000, 1),
            )

    items: list[Optional[BatchItem]] = [None] * len(pdf_files)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(pdf_files)))) as pool:
        futures = {pool.submit(process, path): index for index, path in enumerate(pdf_files)}
        for completed, future in enumerate(as_completed(futures), start=1):
            item = future.result()
            items[futures[future]] = item
            if on_progress is not None:
                on_progress(completed, len(pdf_files), item)

    succeeded = sum(1 for item in items if item.success)
    logger.info(f"Successfully extracted {succeeded}/{len(pdf_files)} invoices")
    return items


def write_extraction_results(items: list[BatchItem], output_path: Path) -> None:
    """
    Write batch extraction results to a JSON file.

    Args:
        items: BatchItems from extract_invoices_from_dir
        output_path: Path to output JSON file
    """
    output_data = [item.model_dump(mode="json") for item in items]

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(output_data, f, indent=2, default=str)

    logger.info(f"Wrote {len(items)} extraction results to: {output_path}")
