"""
Field validation rules for invoice reconciliation.

Rules are field-local and pure: each one inspects a single field's value
(optionally reading other committed values, e.g. the invoice date when
checking the due date) and never changes the draft. Categories:
- Required rules: mandatory fields must be present
- Format rules: values must parse (amounts, dates, email, tax id, currency)
- Value rules: parsed values must make business sense

At most one violation is reported per field: the first failing rule wins.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional

from .config import LARGE_AMOUNT_WARNING, SUPPORTED_CURRENCIES, ViolationCode
from .normalizer import normalize_amount, normalize_date
from .schemas import DATE_FIELDS, MONEY_FIELDS, FieldKey, FieldValue, FieldViolation


# The check function takes the field's coerced value and the full coerced
# draft and returns True when the value is acceptable
RuleCheckFn = Callable[[Any, dict[FieldKey, FieldValue]], bool]

REQUIRED_FIELDS: tuple[FieldKey, ...] = (
    FieldKey.INVOICE_NUMBER,
    FieldKey.CUSTOMER_NAME,
    FieldKey.AMOUNT,
    FieldKey.DUE_DATE,
)

FIELD_LABELS: dict[FieldKey, str] = {
    FieldKey.INVOICE_NUMBER: "Invoice Number",
    FieldKey.CUSTOMER_NAME: "Customer Name",
    FieldKey.CUSTOMER_EMAIL: "Customer Email",
    FieldKey.AMOUNT: "Amount",
    FieldKey.VAT_AMOUNT: "VAT Amount",
    FieldKey.TOTAL_AMOUNT: "Total Amount",
    FieldKey.CURRENCY: "Currency",
    FieldKey.INVOICE_DATE: "Invoice Date",
    FieldKey.DUE_DATE: "Due Date",
    FieldKey.DESCRIPTION: "Description",
    FieldKey.TAX_ID: "TRN / VAT Number",
    FieldKey.VENDOR_NAME: "Vendor Name",
    FieldKey.VENDOR_ADDRESS: "Vendor Address",
}

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TRN_PATTERN = re.compile(r"^\d{15}$")
EU_VAT_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{8,12}$")


@dataclass
class FieldRule:
    """
    Represents a single field validation rule.

    Attributes:
        field: Field the rule applies to
        category: Violation category reported when the rule fails
        description: Human-readable description of the rule
        check: Function that performs the validation check
    """
    field: FieldKey
    category: ViolationCode
    description: str
    check: RuleCheckFn

    @property
    def code(self) -> str:
        return f"{self.category.value}:{self.field.value}"


# ============================================================================
# Coercion
# ============================================================================

def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_value(key: FieldKey, value: Any, prefer: Optional[str] = None) -> tuple[FieldValue, bool]:
    """
    Convert a draft value to its canonical type.

    Returns:
        ``(value, ok)``; ``ok`` is False when a non-blank value cannot be read
    """
    if is_blank(value):
        return None, True
    if key in MONEY_FIELDS:
        amount = normalize_amount(value)
        return amount, amount is not None
    if key in DATE_FIELDS:
        parsed = normalize_date(value, prefer=prefer)
        return parsed, parsed is not None
    text = " ".join(str(value).split())
    if key == FieldKey.CURRENCY:
        return text.upper(), True
    if key == FieldKey.CUSTOMER_EMAIL:
        return text.lower(), True
    return text, True


# ============================================================================
# Format Rules
# ============================================================================

def check_email(value: Any, draft: dict) -> bool:
    """Email addresses need a local part, an @ and a dotted domain."""
    return bool(EMAIL_PATTERN.match(str(value)))


def check_tax_id(value: Any, draft: dict) -> bool:
    """UAE TRN (15 digits) or an EU-style VAT number (country prefix + 8..12 chars)."""
    compact = re.sub(r"[\s.-]", "", str(value)).upper()
    return bool(TRN_PATTERN.match(compact) or EU_VAT_PATTERN.match(compact))


def check_currency(value: Any, draft: dict) -> bool:
    return str(value).upper() in SUPPORTED_CURRENCIES


# ============================================================================
# Value Rules
# ============================================================================

def check_positive(value: Any, draft: dict) -> bool:
    return value > 0


def check_non_negative(value: Any, draft: dict) -> bool:
    return value >= 0


def check_total_covers_vat(value: Any, draft: dict) -> bool:
    """The total must not be smaller than the VAT charged on it."""
    vat = draft.get(FieldKey.VAT_AMOUNT)
    return vat is None or value >= vat


def check_due_after_invoice(value: Any, draft: dict) -> bool:
    """A payment cannot be due before the invoice is issued."""
    issued = draft.get(FieldKey.INVOICE_DATE)
    return not isinstance(issued, date) or value >= issued


# ============================================================================
# Rule Registry
# ============================================================================

FIELD_RULES: list[FieldRule] = [
    FieldRule(FieldKey.CUSTOMER_EMAIL, ViolationCode.FORMAT, "Email must be well formed", check_email),
    FieldRule(FieldKey.TAX_ID, ViolationCode.FORMAT, "TRN must be 15 digits or a VAT number", check_tax_id),
    FieldRule(FieldKey.CURRENCY, ViolationCode.FORMAT, "Currency must be supported", check_currency),
    FieldRule(FieldKey.AMOUNT, ViolationCode.VALUE, "Amount must be positive", check_positive),
    FieldRule(FieldKey.VAT_AMOUNT, ViolationCode.VALUE, "VAT must not be negative", check_non_negative),
    FieldRule(FieldKey.TOTAL_AMOUNT, ViolationCode.VALUE, "Total must be positive", check_positive),
    FieldRule(FieldKey.TOTAL_AMOUNT, ViolationCode.VALUE, "Total must cover the VAT", check_total_covers_vat),
    FieldRule(FieldKey.DUE_DATE, ViolationCode.VALUE, "Due date must not precede the invoice date", check_due_after_invoice),
]


def get_rules_for_field(key: FieldKey) -> list[FieldRule]:
    return [rule for rule in FIELD_RULES if rule.field == key]


def format_violation(key: FieldKey) -> FieldViolation:
    return FieldViolation(
        field=key,
        code=f"{ViolationCode.FORMAT.value}:{key.value}",
        message=f"Invalid format for {FIELD_LABELS[key]}",
    )


def required_violation(key: FieldKey) -> FieldViolation:
    return FieldViolation(
        field=key,
        code=f"{ViolationCode.REQUIRED.value}:{key.value}",
        message="This field is required",
    )


def validate_value(
    key: FieldKey, value: FieldValue, draft: dict[FieldKey, FieldValue]
) -> Optional[FieldViolation]:
    """
    Run the rules for one field against an already coerced value.

    Blank values pass; required-ness is checked by the caller, which knows
    whether a field is missing or merely awaiting review.
    """
    if value is None:
        return None
    for rule in get_rules_for_field(key):
        if not rule.check(value, draft):
            label = FIELD_LABELS[key]
            if rule.category == ViolationCode.FORMAT:
                message = f"Invalid format for {label}"
            else:
                message = f"Invalid value for {label}"
            return FieldViolation(field=key, code=rule.code, message=message)
    return None


def collect_warnings(draft: dict[FieldKey, FieldValue], today: date) -> list[str]:
    """Non-blocking observations a reviewer should see."""
    warnings = []
    for key in (FieldKey.AMOUNT, FieldKey.TOTAL_AMOUNT):
        value = draft.get(key)
        if isinstance(value, float) and value > LARGE_AMOUNT_WARNING:
            warnings.append(f"{FIELD_LABELS[key]} {value:,.2f} is unusually large")
    due = draft.get(FieldKey.DUE_DATE)
    if isinstance(due, date) and due < today:
        warnings.append(f"Due date {due.isoformat()} is in the past")
    return warnings
