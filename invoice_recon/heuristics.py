"""
Heuristic field extraction from raw invoice text.

Each canonical field has an ordered list of matchers, most specific first.
Candidates are tried in order and the first one that converts cleanly and
passes the field's sanity check wins, so the order of a recipe is its
tie-break policy. Every candidate considered is recorded in the returned
trace.

Confidences are fixed per matcher tier and always sit below what the remote
analysis service reports for the same field.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Iterator, Optional

from .config import (
    HEURISTIC_CONFIDENCE_GENERIC,
    HEURISTIC_CONFIDENCE_KNOWN,
    HEURISTIC_CONFIDENCE_LABELLED,
    HEURISTIC_CONFIDENCE_SPECIFIC,
    SUPPORTED_CURRENCIES,
)
from .normalizer import (
    add_days,
    detect_currency,
    normalize_amount,
    normalize_date,
    parse_payment_terms,
)
from .schemas import (
    ExtractedField,
    ExtractionHints,
    FieldKey,
    FieldSource,
    FieldValue,
    ParseOutcome,
    TraceEntry,
    TraceOutcome,
)


# ============================================================================
# Shared Pattern Fragments
# ============================================================================

CURRENCY_PREFIX = r"(?:(?:AED|USD|EUR|SAR|QAR|GBP)\s*|[\$€£]\s*)"
AMOUNT = r"(-?\d[\d.,]*\d|\d)"
DATE = (
    r"(\d{4}[-/.]\d{1,2}[-/.]\d{1,2}"
    r"|\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}"
    r"|\d{1,2}\s+[A-Za-z]{3,9}\.?,?\s+\d{4}"
    r"|[A-Za-z]{3,9}\.?\s+\d{1,2},?\s+\d{4})"
)
EMAIL = r"([A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,})"
COMPANY_SUFFIX = (
    r"(?:LLC|L\.L\.C\.?|Ltd\.?|Limited|GmbH|B\.V\.|BV|Inc\.?|FZE|FZCO|FZ-LLC"
    r"|Corp\.?|S\.A\.|SARL|PJSC|Trading)"
)

# Labels that state the amount actually owed, in the languages seen on invoices
PAYABLE_LABELS = (
    r"(?:amount\s+payable|total\s+payable|amount\s+due|balance\s+due|total\s+due"
    r"|to\s+pay|te\s+betalen|zu\s+zahlen|net\s+[àa]\s+payer|المبلغ\s+المستحق)"
)

_PAYABLE = re.compile(
    PAYABLE_LABELS + r"\s*:?\s*" + CURRENCY_PREFIX + r"?" + AMOUNT, re.IGNORECASE
)
_CURRENCY_AMOUNTS = [
    re.compile(CURRENCY_PREFIX + AMOUNT, re.IGNORECASE),
    re.compile(AMOUNT + r"\s*(?:AED|USD|EUR|SAR|QAR|GBP)\b", re.IGNORECASE),
]

_DATE_SHAPE = re.compile(r"\d{1,4}[-/.]\d{1,2}[-/.]\d{2,4}")
_INVOICE_NUMBER_SHAPE = re.compile(r"[A-Z]\d{8}")
_PARTY_NOISE = re.compile(
    r"\s+(?:Invoice|Date|Number|Debtor|Total|Amount|Floor|Street|TRN|VAT|Tel|Phone"
    r"|E-?mail|P\.?\s?O\.?\s*Box)\b.*$",
    re.IGNORECASE,
)


def payable_amounts(text: str) -> Iterator[tuple[str, float]]:
    """Yield ``(raw, value)`` for every explicit payable-amount phrase."""
    for match in _PAYABLE.finditer(text or ""):
        value = normalize_amount(match.group(1))
        if value is not None:
            yield match.group(0), value


def currency_amounts(text: str) -> Iterator[tuple[str, float]]:
    """Yield ``(raw, value)`` for every amount written next to a currency."""
    for pattern in _CURRENCY_AMOUNTS:
        for match in pattern.finditer(text or ""):
            value = normalize_amount(match.group(1))
            if value is not None:
                yield match.group(0), value


# ============================================================================
# Matchers
# ============================================================================

@dataclass
class MatchContext:
    """Text under analysis plus the fields decided so far."""
    text: str
    hints: ExtractionHints
    fields: dict[FieldKey, ExtractedField] = field(default_factory=dict)

    def value(self, key: FieldKey) -> FieldValue:
        found = self.fields.get(key)
        return found.value if found is not None else None


FindFn = Callable[[str, MatchContext], Iterable[str]]
ConvertFn = Callable[[str, MatchContext], FieldValue]
CheckFn = Callable[[FieldValue, MatchContext], Optional[str]]


@dataclass
class Matcher:
    """
    One way of locating a field in text.

    Attributes:
        name: Identifier recorded in the trace
        confidence: Confidence given to a value this matcher produces
        find: Yields raw candidate strings in document order
        convert: Optional converter overriding the recipe's default
    """
    name: str
    confidence: float
    find: FindFn
    convert: Optional[ConvertFn] = None


@dataclass
class FieldRecipe:
    key: FieldKey
    matchers: list[Matcher]
    convert: ConvertFn
    check: Optional[CheckFn] = None


def regex_matcher(
    name: str,
    pattern: str,
    confidence: float,
    flags: int = re.IGNORECASE,
    group: int = 1,
    convert: Optional[ConvertFn] = None,
) -> Matcher:
    """Build a matcher yielding ``group`` of every match of ``pattern``."""
    compiled = re.compile(pattern, flags)

    def find(text: str, ctx: MatchContext) -> Iterator[str]:
        for match in compiled.finditer(text):
            candidate = match.group(group)
            if candidate:
                yield candidate

    return Matcher(name=name, confidence=confidence, find=find, convert=convert)


def known_names_matcher(name: str, attribute: str) -> Matcher:
    """Build a matcher yielding configured party names found in the text."""
    def find(text: str, ctx: MatchContext) -> Iterator[str]:
        lowered = text.casefold()
        for known in getattr(ctx.hints, attribute):
            if known and known.casefold() in lowered:
                yield known

    return Matcher(name=name, confidence=HEURISTIC_CONFIDENCE_KNOWN, find=find)


# ============================================================================
# Converters
# ============================================================================

def _to_text(raw: str, ctx: MatchContext) -> Optional[str]:
    cleaned = " ".join(raw.split()).strip(" :;,-")
    return cleaned or None


def _to_party(raw: str, ctx: MatchContext) -> Optional[str]:
    first = re.split(r"\s{2,}|\n", raw.strip())[0]
    cleaned = _PARTY_NOISE.sub("", first).strip(" :;,-")
    return cleaned or None


def _to_amount(raw: str, ctx: MatchContext) -> Optional[float]:
    return normalize_amount(raw)


def _to_date(raw: str, ctx: MatchContext) -> Optional[date]:
    return normalize_date(raw, prefer=ctx.hints.date_order)


def _to_email(raw: str, ctx: MatchContext) -> Optional[str]:
    return raw.strip().strip(".").lower() or None


def _to_currency(raw: str, ctx: MatchContext) -> Optional[str]:
    return detect_currency(raw)


def _to_description(raw: str, ctx: MatchContext) -> Optional[str]:
    cleaned = " ".join(raw.split())
    return cleaned[:500] or None


_VAT_ON_BASE = re.compile(
    r"(\d{1,2}(?:[.,]\d+)?)\s*%\s*VAT\s+on\s+" + CURRENCY_PREFIX + r"?" + AMOUNT,
    re.IGNORECASE,
)


def _vat_from_rate(raw: str, ctx: MatchContext) -> Optional[float]:
    match = _VAT_ON_BASE.search(raw)
    if not match:
        return None
    rate = normalize_amount(match.group(1))
    base = normalize_amount(match.group(2))
    if rate is None or base is None:
        return None
    return round(base * rate / 100, 2)


# ============================================================================
# Sanity Checks
# ============================================================================

def _squash(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.casefold())


def _check_invoice_number(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    text = str(value)
    if not 3 <= len(text) <= 50:
        return "length outside 3..50"
    if not re.search(r"\d", text):
        return "no digits"
    if _DATE_SHAPE.fullmatch(text):
        return "looks like a date"
    return None


def _check_party(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    text = str(value)
    if not 2 <= len(text) <= 100:
        return "length outside 2..100"
    if text.replace(" ", "").isdigit():
        return "numeric"
    if "@" in text:
        return "looks like an email"
    if _DATE_SHAPE.search(text):
        return "contains a date"
    if _INVOICE_NUMBER_SHAPE.match(text):
        return "looks like an invoice number"
    return None


def _check_customer(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    reason = _check_party(value, ctx)
    if reason:
        return reason
    vendor = ctx.value(FieldKey.VENDOR_NAME)
    if vendor and _squash(str(vendor)) == _squash(str(value)):
        return "same as vendor"
    return None


def _check_email(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    text = str(value)
    if not re.fullmatch(r"[^\s@]+@[^\s@]+\.[^\s@]+", text):
        return "not an email address"
    vendor = ctx.value(FieldKey.VENDOR_NAME)
    if vendor:
        vendor_key = _squash(re.sub(COMPANY_SUFFIX + r"\s*$", "", str(vendor)))
        domain = _squash(text.split("@", 1)[1].rsplit(".", 1)[0])
        if len(vendor_key) >= 3 and vendor_key in domain:
            return "vendor's own address"
    return None


def _check_positive(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    if not isinstance(value, float) or value <= 0:
        return "not a positive amount"
    if value >= 1e10:
        return "implausibly large"
    return None


def _check_non_negative(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    if not isinstance(value, float) or value < 0:
        return "negative amount"
    return None


def _check_due_date(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    issued = ctx.value(FieldKey.INVOICE_DATE)
    if isinstance(issued, date) and isinstance(value, date) and value < issued:
        return "before invoice date"
    return None


def _check_tax_id(value: FieldValue, ctx: MatchContext) -> Optional[str]:
    if len(re.findall(r"\d", str(value))) < 6:
        return "too few digits"
    return None


# ============================================================================
# Field Recipes
# ============================================================================

def _payment_terms_matcher() -> Matcher:
    """Due date computed from a payment-terms phrase and the invoice date."""
    def find(text: str, ctx: MatchContext) -> Iterator[str]:
        if isinstance(ctx.value(FieldKey.INVOICE_DATE), date):
            days = parse_payment_terms(text)
            if days is not None:
                yield str(days)

    def convert(raw: str, ctx: MatchContext) -> Optional[date]:
        issued = ctx.value(FieldKey.INVOICE_DATE)
        return add_days(issued, int(raw)) if isinstance(issued, date) else None

    return Matcher(
        name="payment_terms",
        confidence=HEURISTIC_CONFIDENCE_GENERIC,
        find=find,
        convert=convert,
    )


def _vendor_header_matcher() -> Matcher:
    """First company-like line near the top of the document."""
    suffix = re.compile(r"\b" + COMPANY_SUFFIX + r"\s*$")

    def find(text: str, ctx: MatchContext) -> Iterator[str]:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        for line in lines[:5]:
            if suffix.search(line):
                yield line

    return Matcher(
        name="header_company",
        confidence=HEURISTIC_CONFIDENCE_GENERIC,
        find=find,
    )


def _currency_symbol_matcher() -> Matcher:
    def find(text: str, ctx: MatchContext) -> Iterator[str]:
        code = detect_currency(text)
        if code:
            yield code

    return Matcher(name="currency_symbol", confidence=HEURISTIC_CONFIDENCE_GENERIC, find=find)


_CUSTOMER_LABELS = r"(?:bill(?:ed)?\s+to|sold\s+to|invoice\s+to|customer|client|debtor)"
_AMOUNT_TAIL = r"\s*:?\s*" + CURRENCY_PREFIX + r"?" + AMOUNT


RECIPES: list[FieldRecipe] = [
    FieldRecipe(
        key=FieldKey.VENDOR_NAME,
        convert=_to_party,
        check=_check_party,
        matchers=[
            known_names_matcher("known_vendor", "known_vendors"),
            regex_matcher(
                "labelled_vendor",
                r"\b(?:from|seller|vendor|supplier|sold\s+by)\s*:[ \t]*([^\n]{2,80})",
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            _vendor_header_matcher(),
        ],
    ),
    FieldRecipe(
        key=FieldKey.INVOICE_NUMBER,
        convert=_to_text,
        check=_check_invoice_number,
        matchers=[
            regex_matcher(
                "labelled_letter_digits",
                r"invoice\s*(?:no\b\.?|number|num\b|#)?\s*:?\s*([A-Z]\d{8})\b",
                HEURISTIC_CONFIDENCE_SPECIFIC,
            ),
            regex_matcher(
                "labelled_invoice_number",
                r"\binvoice\s*(?:no\b\.?|number|num\b|#)\s*:?\s*([A-Z0-9][A-Z0-9\-/]{2,})",
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "inv_prefix",
                r"\b(INV[-/]?\d[A-Z0-9\-/]*)",
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "foreign_label",
                r"(?:rechnung(?:s)?\s*-?\s*(?:nr|nummer|#)|facture\s*(?:no|n°|numero|#)"
                r"|factura\s*(?:no|n°|numero|#)|factuur\s*(?:nr|nummer)"
                r"|فاتورة\s*رقم|رقم\s*الفاتورة)\.?\s*:?\s*([A-Z0-9][A-Z0-9\-/]{2,})",
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "line_start_letter_digits",
                r"^\s*([A-Z]\d{8})\b",
                HEURISTIC_CONFIDENCE_GENERIC,
                flags=re.MULTILINE,
            ),
            regex_matcher(
                "letter_digits",
                r"\b([A-Z]\d{8})\b",
                HEURISTIC_CONFIDENCE_GENERIC,
                flags=0,
            ),
            regex_matcher(
                "reference",
                r"\b(?:ref(?:erence)?|bill)\s*(?:no\b\.?|number|#)?\s*:?\s*([A-Z0-9][A-Z0-9\-/]{2,})",
                HEURISTIC_CONFIDENCE_GENERIC,
            ),
        ],
    ),
    FieldRecipe(
        key=FieldKey.INVOICE_DATE,
        convert=_to_date,
        matchers=[
            regex_matcher(
                "labelled_invoice_date",
                r"(?:invoice\s+date|date\s+of\s+(?:issue|invoice)|issue\s+date|issued\s+on"
                r"|factuurdatum|rechnungsdatum|date\s+de\s+facturation)\s*:?\s*" + DATE,
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "date_label",
                r"(?<!due\s)(?<!due)\bdate\b\s*:?\s*" + DATE,
                HEURISTIC_CONFIDENCE_GENERIC,
            ),
            regex_matcher("first_date", r"\b" + DATE, HEURISTIC_CONFIDENCE_GENERIC),
        ],
    ),
    FieldRecipe(
        key=FieldKey.DUE_DATE,
        convert=_to_date,
        check=_check_due_date,
        matchers=[
            regex_matcher(
                "labelled_due_date",
                r"(?:due\s+date|payment\s+due(?:\s+date)?|date\s+due|pay(?:able)?\s+by|due\s+on"
                r"|vervaldatum|fälligkeitsdatum|fällig\s+am|date\s+d'[ée]ch[ée]ance)\s*:?\s*"
                + DATE,
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            _payment_terms_matcher(),
        ],
    ),
    FieldRecipe(
        key=FieldKey.CUSTOMER_NAME,
        convert=_to_party,
        check=_check_customer,
        matchers=[
            known_names_matcher("known_customer", "known_customers"),
            regex_matcher(
                "labelled_customer",
                r"\b" + _CUSTOMER_LABELS
                + r"(?!\s*(?:number|no\b|id\b|#|code))\s*:?[ \t]*([^\n]+)",
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "customer_below_label",
                r"^\s*" + _CUSTOMER_LABELS + r"\s*:?[ \t]*\n\s*([^\n]+)",
                HEURISTIC_CONFIDENCE_LABELLED,
                flags=re.IGNORECASE | re.MULTILINE,
            ),
            regex_matcher(
                "after_sender_email",
                r"@[a-z0-9.-]+\.[a-z]{2,}\s+(.+?)\s+Invoice\s+number",
                HEURISTIC_CONFIDENCE_LABELLED,
                flags=re.IGNORECASE | re.DOTALL,
            ),
            regex_matcher(
                "company_line",
                r"^\s*([A-Z][\w&.,' -]{1,80}?\b" + COMPANY_SUFFIX + r")\s*$",
                HEURISTIC_CONFIDENCE_GENERIC,
                flags=re.MULTILINE,
            ),
        ],
    ),
    FieldRecipe(
        key=FieldKey.CUSTOMER_EMAIL,
        convert=_to_email,
        check=_check_email,
        matchers=[
            regex_matcher(
                "labelled_email",
                r"\b(?:e-?mail(?:\s+address)?)\s*:?\s*" + EMAIL,
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher("any_email", r"\b" + EMAIL, HEURISTIC_CONFIDENCE_GENERIC),
        ],
    ),
    FieldRecipe(
        key=FieldKey.TOTAL_AMOUNT,
        convert=_to_amount,
        check=_check_positive,
        matchers=[
            regex_matcher(
                "payable_phrase",
                PAYABLE_LABELS + _AMOUNT_TAIL,
                HEURISTIC_CONFIDENCE_SPECIFIC,
            ),
            regex_matcher(
                "grand_total",
                r"(?:grand\s+total|invoice\s+total|total\s+(?:incl\.?|including)\s*(?:vat|tax)"
                r"|totaal\s+incl\.?\s*btw|gesamtbetrag|الإجمالي)" + _AMOUNT_TAIL,
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "total",
                r"(?<!sub\s)(?<!sub-)\btotals?\b"
                r"(?!\s*(?:excl|excluding|before|tax|vat|net|due|payable))"
                r"(?:\s*amount)?" + _AMOUNT_TAIL,
                HEURISTIC_CONFIDENCE_GENERIC,
            ),
            regex_matcher(
                "amount_before_total",
                AMOUNT + r"\s*(?:AED|USD|EUR|SAR|QAR)?\s+(?:total|totaal)\b",
                HEURISTIC_CONFIDENCE_GENERIC,
            ),
        ],
    ),
    FieldRecipe(
        key=FieldKey.VAT_AMOUNT,
        convert=_to_amount,
        check=_check_non_negative,
        matchers=[
            regex_matcher(
                "labelled_vat_amount",
                r"(?:vat\s+amount|vat\s+total|total\s+vat|total\s+tax|tax\s+amount)" + _AMOUNT_TAIL,
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher(
                "vat_rate_on_base",
                _VAT_ON_BASE.pattern,
                HEURISTIC_CONFIDENCE_LABELLED,
                group=0,
                convert=_vat_from_rate,
            ),
            regex_matcher(
                "vat",
                r"(?<!excl\s)(?<!excl\.\s)(?<!incl\s)(?<!incl\.\s)(?<!excluding\s)(?<!including\s)"
                r"\b(?:VAT|tax|MwSt\.?|BTW|USt\.?)"
                r"(?!\s*(?:number|no\b|nr\b|nummer|id\b|reg|registration|rate|invoice))"
                r"\s*(?:\(?\s*\d{1,2}(?:[.,]\d+)?\s*%\s*\)?)?\s*:?\s*"
                + CURRENCY_PREFIX + r"?" + AMOUNT + r"(?!\s*%)",
                HEURISTIC_CONFIDENCE_GENERIC,
            ),
        ],
    ),
    FieldRecipe(
        key=FieldKey.AMOUNT,
        convert=_to_amount,
        check=_check_positive,
        matchers=[
            regex_matcher(
                "labelled_subtotal",
                r"(?:sub\s*-?\s*total|net\s+(?:total|amount)"
                r"|(?:total|amount)\s+(?:excl\.?|excluding|before)\s*(?:vat|tax)"
                r"|taxable\s+amount|zwischensumme|subtotaal|nettobetrag)" + _AMOUNT_TAIL,
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
        ],
    ),
    FieldRecipe(
        key=FieldKey.CURRENCY,
        convert=_to_currency,
        matchers=[
            regex_matcher(
                "currency_code",
                r"\b(" + "|".join(sorted(SUPPORTED_CURRENCIES)) + r")\b",
                HEURISTIC_CONFIDENCE_LABELLED,
                flags=0,
            ),
            _currency_symbol_matcher(),
        ],
    ),
    FieldRecipe(
        key=FieldKey.TAX_ID,
        convert=_to_text,
        check=_check_tax_id,
        matchers=[
            regex_matcher(
                "trn",
                r"(?:\bTRN|\btax\s+registration\s*(?:number|no\.?)?|رقم\s*التسجيل\s*الضريبي)"
                r"\s*:?\s*(\d{15})\b",
                HEURISTIC_CONFIDENCE_SPECIFIC,
            ),
            regex_matcher(
                "vat_number",
                r"\b(?:VAT|BTW|USt-?IdNr\.?|TVA)\s*(?:reg(?:istration)?\.?\s*)?"
                r"(?:number|no\.?|nr\.?|nummer|id)?\s*:?\s*([A-Z]{2}[A-Z0-9]{8,12})\b",
                HEURISTIC_CONFIDENCE_LABELLED,
            ),
            regex_matcher("trn_shape", r"\b(100\d{12})\b", HEURISTIC_CONFIDENCE_GENERIC),
        ],
    ),
    FieldRecipe(
        key=FieldKey.DESCRIPTION,
        convert=_to_description,
        matchers=[
            regex_matcher(
                "description_block",
                r"\b(?:description|particulars|omschrijving|beschreibung)[ \t]*:?[ \t]*"
                r"([^\n]+(?:\n(?!\s*(?:total|sub|payment|iban|vat|amount))[^\n]+){0,2})",
                HEURISTIC_CONFIDENCE_GENERIC,
            ),
        ],
    ),
]


# ============================================================================
# Evaluation
# ============================================================================

def _evaluate(
    recipe: FieldRecipe, ctx: MatchContext, trace: list[TraceEntry]
) -> Optional[ExtractedField]:
    for matcher in recipe.matchers:
        convert = matcher.convert or recipe.convert
        for raw in matcher.find(ctx.text, ctx):
            value = convert(raw, ctx)
            if value is None:
                trace.append(TraceEntry(
                    stage="heuristics", field=recipe.key, matcher=matcher.name,
                    candidate=raw, outcome=TraceOutcome.REJECTED, reason="unreadable",
                ))
                continue
            reason = recipe.check(value, ctx) if recipe.check else None
            if reason:
                trace.append(TraceEntry(
                    stage="heuristics", field=recipe.key, matcher=matcher.name,
                    candidate=raw, outcome=TraceOutcome.REJECTED, reason=reason,
                ))
                continue
            trace.append(TraceEntry(
                stage="heuristics", field=recipe.key, matcher=matcher.name,
                candidate=raw, outcome=TraceOutcome.CHOSEN,
            ))
            return ExtractedField(
                name=recipe.key,
                value=value,
                confidence=matcher.confidence,
                source=FieldSource.HEURISTIC,
                raw_value=raw.strip(),
            )

    trace.append(TraceEntry(stage="heuristics", field=recipe.key, outcome=TraceOutcome.NO_MATCH))
    return None


def parse_text(
    text: Optional[str],
    hints: Optional[ExtractionHints] = None,
    known: Optional[dict[FieldKey, ExtractedField]] = None,
) -> ParseOutcome:
    """
    Extract canonical fields from raw invoice text.

    Args:
        text: Raw document text
        hints: Known parties and the preferred order for ambiguous dates
        known: Fields already decided by another strategy. They take part in
            sanity checks (e.g. rejecting a customer equal to the vendor) but
            are not copied into the outcome.

    Returns:
        ParseOutcome with every field found and the full candidate trace.
        Missing fields are simply absent; this function never raises.
    """
    outcome = ParseOutcome()
    if not text or not text.strip():
        return outcome

    ctx = MatchContext(text=text, hints=hints or ExtractionHints(), fields=dict(known or {}))
    for recipe in RECIPES:
        extracted = _evaluate(recipe, ctx, outcome.trace)
        if extracted is None:
            continue
        outcome.fields[recipe.key] = extracted
        ctx.fields.setdefault(recipe.key, extracted)
    return outcome
