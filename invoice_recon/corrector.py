"""
Plausibility correction for extracted totals.

A total smaller than the VAT amount usually means a discount or part
payment line was taken for the invoice total. The corrector looks for a
better candidate in the raw text and replaces the total only when one is
found; otherwise the original value is kept and the retention is traced.
"""

from typing import Optional

from .config import HEURISTIC_CONFIDENCE_GENERIC, HEURISTIC_CONFIDENCE_SPECIFIC, logger
from .heuristics import currency_amounts, payable_amounts
from .schemas import ExtractionResult, FieldKey, FieldSource, TraceEntry, TraceOutcome


# Upper bound for a scanned total, as a multiple of the VAT amount
MAX_TOTAL_TO_VAT_RATIO = 10


def needs_correction(result: ExtractionResult) -> bool:
    """True when both total and VAT are present and total < VAT."""
    total = result.value(FieldKey.TOTAL_AMOUNT)
    vat = result.value(FieldKey.VAT_AMOUNT)
    return isinstance(total, (int, float)) and isinstance(vat, (int, float)) and total < vat


def _from_payable_phrase(raw_text: str, vat: float) -> Optional[tuple[str, float]]:
    for raw, value in payable_amounts(raw_text):
        if value >= vat:
            return raw, value
    return None


def _from_amount_scan(raw_text: str, total: float, vat: float) -> Optional[tuple[str, float]]:
    ceiling = vat * MAX_TOTAL_TO_VAT_RATIO
    plausible = [
        (raw, value) for raw, value in currency_amounts(raw_text)
        if total < value <= ceiling
    ]
    if not plausible:
        return None
    return max(plausible, key=lambda candidate: candidate[1])


def correct(result: ExtractionResult, raw_text: Optional[str] = None) -> ExtractionResult:
    """
    Replace an implausible total in ``result`` and return it.

    Candidates, in order:
    1. An explicit payable-amount phrase whose value is at least the VAT
    2. The largest currency-prefixed amount above the current total and at
       most ten times the VAT
    Neither found: the original total is kept and the aggregate confidence
    is left alone.
    """
    if not needs_correction(result):
        return result

    raw_text = raw_text if raw_text is not None else result.raw_text
    total = float(result.value(FieldKey.TOTAL_AMOUNT))
    vat = float(result.value(FieldKey.VAT_AMOUNT))

    found = _from_payable_phrase(raw_text, vat)
    matcher, confidence = "payable_phrase", HEURISTIC_CONFIDENCE_SPECIFIC
    if found is None:
        found = _from_amount_scan(raw_text, total, vat)
        matcher, confidence = "amount_scan", HEURISTIC_CONFIDENCE_GENERIC

    if found is None:
        result.trace.append(TraceEntry(
            stage="corrector",
            field=FieldKey.TOTAL_AMOUNT,
            candidate=str(total),
            outcome=TraceOutcome.RETAINED,
            reason=f"total {total} below VAT {vat}, no better candidate",
        ))
        logger.warning(f"Total {total} is below VAT {vat} and no better candidate was found")
        return result

    raw, value = found
    result.replace_field(FieldKey.TOTAL_AMOUNT, value, confidence, FieldSource.HEURISTIC)
    result.trace.append(TraceEntry(
        stage="corrector",
        field=FieldKey.TOTAL_AMOUNT,
        matcher=matcher,
        candidate=raw,
        outcome=TraceOutcome.REPLACED,
        reason=f"total {total} below VAT {vat}",
    ))
    logger.info(f"Corrected total from {total} to {value} using {matcher}")
    return result
