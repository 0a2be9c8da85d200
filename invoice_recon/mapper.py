"""
Mapping of typed/labelled fields from the document analysis service onto
the canonical invoice schema.

Each canonical field lists candidate type names in priority order. A service
field matches a candidate when its type equals the candidate, or when its
label contains the candidate as a phrase or as a set of tokens, so "Due
Amount" matches AMOUNT_DUE while "Subtotal" never matches TOTAL.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from .heuristics import COMPANY_SUFFIX, EMAIL, PAYABLE_LABELS
from .normalizer import detect_currency, normalize_amount, normalize_date
from .schemas import (
    ExtractedField,
    ExtractionHints,
    FieldKey,
    FieldSource,
    FieldValue,
    ParseOutcome,
    TraceEntry,
    TraceOutcome,
    TypedLabelledField,
)


ConvertFn = Callable[[str, ExtractionHints], FieldValue]


@dataclass
class MappingSpec:
    """
    How one canonical field is found among the service's fields.

    Attributes:
        key: Canonical field key
        types: Candidate type names, highest priority first
        convert: Turns the value text into the canonical value
        exclude: Labels matching this pattern are never taken for the field
        foreign_types: Service types that belong to another field and are never
            taken for this one, whatever their label says
    """
    key: FieldKey
    types: list[str]
    convert: ConvertFn
    exclude: Optional[str] = None
    foreign_types: tuple[str, ...] = ()


def _as_text(raw: str, hints: ExtractionHints) -> Optional[str]:
    cleaned = " ".join(raw.split())
    return cleaned or None


def _as_amount(raw: str, hints: ExtractionHints) -> Optional[float]:
    return normalize_amount(raw)


def _as_date(raw: str, hints: ExtractionHints):
    return normalize_date(raw, prefer=hints.date_order)


_PARTY_EXCLUDE = r"customer|bill(?:ed)?\s+to|receiver|client|debtor|ship\s+to|sold\s+to"

VENDOR_TYPES: tuple[str, ...] = ("VENDOR_NAME", "SUPPLIER_NAME")
CUSTOMER_TYPES: tuple[str, ...] = (
    "RECEIVER_NAME", "CUSTOMER_NAME", "BILL_TO", "CUSTOMER", "DEBTOR",
    "SOLD_TO", "CLIENT", "RECEIVER", "INVOICE_TO",
)

SPECS: list[MappingSpec] = [
    MappingSpec(
        FieldKey.VENDOR_NAME,
        [*VENDOR_TYPES, "NAME"],
        _as_text,
        exclude=_PARTY_EXCLUDE,
        foreign_types=CUSTOMER_TYPES,
    ),
    MappingSpec(
        FieldKey.INVOICE_NUMBER,
        ["INVOICE_RECEIPT_ID", "INVOICE_NUMBER", "RECEIPT_ID"],
        _as_text,
    ),
    MappingSpec(
        FieldKey.CUSTOMER_NAME,
        list(CUSTOMER_TYPES),
        _as_text,
        exclude=r"number|\bno\b|\bid\b|#|code|e-?mail|address|vat|trn",
        foreign_types=VENDOR_TYPES,
    ),
    MappingSpec(
        FieldKey.AMOUNT,
        ["SUBTOTAL", "NET_TOTAL"],
        _as_amount,
    ),
    MappingSpec(
        FieldKey.VAT_AMOUNT,
        ["TAX", "VAT", "TAX_AMOUNT"],
        _as_amount,
        exclude=r"number|\bno\b|\bid\b|registration|trn|rate|%|payer",
    ),
    MappingSpec(
        FieldKey.INVOICE_DATE,
        ["INVOICE_RECEIPT_DATE", "INVOICE_DATE", "DATE"],
        _as_date,
        exclude=r"due|payment|delivery|order",
    ),
    MappingSpec(
        FieldKey.DUE_DATE,
        ["DUE_DATE", "PAYMENT_DUE"],
        _as_date,
    ),
    MappingSpec(
        FieldKey.TAX_ID,
        ["TAX_PAYER_ID", "RECEIVER_VAT_NUMBER", "VENDOR_VAT_NUMBER", "TRN"],
        _as_text,
    ),
    MappingSpec(
        FieldKey.VENDOR_ADDRESS,
        ["VENDOR_ADDRESS", "ADDRESS"],
        _as_text,
        exclude=r"e-?mail|receiver|customer|bill(?:ed)?\s+to|ship\s+to",
    ),
]

TOTAL_TYPES: list[str] = ["TOTAL", "AMOUNT_DUE", "GRAND_TOTAL"]
_TOTAL_EXCLUDE = re.compile(
    r"discount|sub\s*-?\s*total|net\s+total|excl|before\s+tax|paid|deposit|rounding",
    re.IGNORECASE,
)
_PAYABLE = re.compile(PAYABLE_LABELS, re.IGNORECASE)
_EMAIL = re.compile(EMAIL)


def _normalize_type(text: str) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", text.upper()).strip("_")


def _squash(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.casefold())


def field_matches(item: TypedLabelledField, candidate: str) -> bool:
    """Return True when ``item`` is a field of type ``candidate``."""
    if item.type and _normalize_type(item.type) == _normalize_type(candidate):
        return True
    if not item.label:
        return False
    phrase = candidate.replace("_", " ").lower()
    label = " ".join(item.label.lower().split())
    if re.search(r"\b" + re.escape(phrase) + r"\b", label):
        return True
    wanted = set(phrase.split())
    return len(wanted) > 1 and wanted <= set(re.findall(r"[a-z0-9]+", label))


def _excluded(item: TypedLabelledField, pattern: Optional[str]) -> bool:
    return bool(pattern and item.label and re.search(pattern, item.label, re.IGNORECASE))


def _field(key: FieldKey, value: FieldValue, item: TypedLabelledField) -> ExtractedField:
    return ExtractedField(
        name=key,
        value=value,
        confidence=item.confidence,
        source=FieldSource.STRUCTURED,
        raw_value=item.value,
    )


def _trace(
    key: FieldKey, item: TypedLabelledField, outcome: TraceOutcome, reason: Optional[str] = None
) -> TraceEntry:
    return TraceEntry(
        stage="mapper",
        field=key,
        matcher=item.type or item.label,
        candidate=item.value,
        outcome=outcome,
        reason=reason,
    )


def _map_spec(
    spec: MappingSpec,
    summary: list[TypedLabelledField],
    hints: ExtractionHints,
    vendor: Optional[str],
    trace: list[TraceEntry],
) -> Optional[ExtractedField]:
    for candidate in spec.types:
        for item in summary:
            if not item.value or not field_matches(item, candidate):
                continue
            if item.type and _normalize_type(item.type) in spec.foreign_types:
                trace.append(_trace(spec.key, item, TraceOutcome.REJECTED, "typed for another field"))
                continue
            if _excluded(item, spec.exclude):
                trace.append(_trace(spec.key, item, TraceOutcome.REJECTED, "excluded label"))
                continue
            value = spec.convert(item.value, hints)
            if value is None:
                trace.append(_trace(spec.key, item, TraceOutcome.REJECTED, "unreadable"))
                continue
            if spec.key == FieldKey.CUSTOMER_NAME and vendor and _squash(str(value)) == _squash(vendor):
                trace.append(_trace(spec.key, item, TraceOutcome.REJECTED, "same as vendor"))
                continue
            trace.append(_trace(spec.key, item, TraceOutcome.CHOSEN))
            return _field(spec.key, value, item)
    return None


def _map_total(
    summary: list[TypedLabelledField], trace: list[TraceEntry]
) -> Optional[ExtractedField]:
    """
    Pick the invoice total.

    Labels stating what is payable (amount due, balance due, ...) beat a
    generic "total"; discount and subtotal lines are never taken.
    """
    ranked = []
    for position, item in enumerate(summary):
        if not item.value:
            continue
        priority = next(
            (i for i, candidate in enumerate(TOTAL_TYPES) if field_matches(item, candidate)),
            None,
        )
        if priority is None:
            continue
        item_type = _normalize_type(item.type or "")
        if _TOTAL_EXCLUDE.search(item.label or "") or item_type in {"SUBTOTAL", "DISCOUNT", "AMOUNT_PAID"}:
            trace.append(_trace(FieldKey.TOTAL_AMOUNT, item, TraceOutcome.REJECTED, "not a total"))
            continue
        value = normalize_amount(item.value)
        if value is None:
            trace.append(_trace(FieldKey.TOTAL_AMOUNT, item, TraceOutcome.REJECTED, "unreadable"))
            continue
        payable = item_type == "AMOUNT_DUE" or bool(_PAYABLE.search(item.label or ""))
        ranked.append(((0 if payable else 1, priority, position), value, item))

    if not ranked:
        return None
    ranked.sort(key=lambda entry: entry[0])
    _, value, item = ranked[0]
    trace.append(_trace(FieldKey.TOTAL_AMOUNT, item, TraceOutcome.CHOSEN))
    return _field(FieldKey.TOTAL_AMOUNT, value, item)


def _map_currency(summary: list[TypedLabelledField]) -> Optional[ExtractedField]:
    for item in summary:
        if item.currency:
            return ExtractedField(
                name=FieldKey.CURRENCY,
                value=item.currency.upper(),
                confidence=item.confidence,
                source=FieldSource.STRUCTURED,
                raw_value=item.currency,
            )
    for item in summary:
        if field_matches(item, "CURRENCY") and item.value:
            code = detect_currency(item.value)
            if code:
                return _field(FieldKey.CURRENCY, code, item)
    return None


def _map_email(
    summary: list[TypedLabelledField], vendor: Optional[str]
) -> Optional[ExtractedField]:
    vendor_key = _squash(re.sub(COMPANY_SUFFIX + r"\s*$", "", vendor)) if vendor else ""
    for item in summary:
        for match in _EMAIL.finditer(item.value or ""):
            email = match.group(1).lower()
            domain = _squash(email.split("@", 1)[1].rsplit(".", 1)[0])
            if len(vendor_key) >= 3 and vendor_key in domain:
                continue
            return ExtractedField(
                name=FieldKey.CUSTOMER_EMAIL,
                value=email,
                confidence=item.confidence,
                source=FieldSource.STRUCTURED,
                raw_value=match.group(1),
            )
    return None


def _map_description(line_items: list[TypedLabelledField]) -> Optional[ExtractedField]:
    items = [
        item for item in line_items
        if item.value and _normalize_type(item.type or "") in {"ITEM", "DESCRIPTION"}
    ][:3]
    if not items:
        return None
    return ExtractedField(
        name=FieldKey.DESCRIPTION,
        value="; ".join(" ".join(item.value.split()) for item in items),
        confidence=sum(item.confidence for item in items) / len(items),
        source=FieldSource.STRUCTURED,
        raw_value=items[0].value,
    )


def map_fields(
    fields: list[TypedLabelledField],
    hints: Optional[ExtractionHints] = None,
) -> ParseOutcome:
    """
    Map the service's field list onto canonical fields.

    Confidences are the service-reported values, clamped to 0..100.
    """
    hints = hints or ExtractionHints()
    outcome = ParseOutcome()
    summary = [item for item in fields if item.group == "summary"]
    line_items = [item for item in fields if item.group == "line_item"]

    vendor: Optional[str] = None
    for spec in SPECS:
        mapped = _map_spec(spec, summary, hints, vendor, outcome.trace)
        if mapped is None:
            outcome.trace.append(TraceEntry(stage="mapper", field=spec.key, outcome=TraceOutcome.NO_MATCH))
            continue
        outcome.fields[spec.key] = mapped
        if spec.key == FieldKey.VENDOR_NAME:
            vendor = str(mapped.value)

    for key, mapped in (
        (FieldKey.TOTAL_AMOUNT, _map_total(summary, outcome.trace)),
        (FieldKey.CURRENCY, _map_currency(summary)),
        (FieldKey.CUSTOMER_EMAIL, _map_email(summary, vendor)),
        (FieldKey.DESCRIPTION, _map_description(line_items)),
    ):
        if mapped is None:
            outcome.trace.append(TraceEntry(stage="mapper", field=key, outcome=TraceOutcome.NO_MATCH))
        else:
            outcome.fields[key] = mapped
    return outcome
