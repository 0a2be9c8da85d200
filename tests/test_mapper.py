"""
Tests for mapping service fields onto canonical invoice fields.
"""

import pytest
from datetime import date

from invoice_recon.mapper import field_matches, map_fields
from invoice_recon.schemas import (
    ExtractionHints,
    FieldKey,
    FieldSource,
    TraceOutcome,
    TypedLabelledField,
)


def typed(type_=None, label=None, value=None, confidence=95.0, **kwargs) -> TypedLabelledField:
    return TypedLabelledField(type=type_, label=label, value=value, confidence=confidence, **kwargs)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def service_fields() -> list[TypedLabelledField]:
    """Fields as reported for a simple single-page invoice."""
    return [
        typed("VENDOR_NAME", None, "Acme Trading LLC", 96.0),
        typed("INVOICE_RECEIPT_ID", "Invoice No", "INV-1001", 99.2),
        typed("RECEIVER_NAME", "Bill To", "Global Enterprises LLC", 94.0),
        typed("DUE_DATE", "Due Date", "2025-05-28", 95.0),
        typed("TAX", "VAT", "50.00", 97.0),
        typed("TOTAL", "Total", "1,050.00", 98.0, currency="aed"),
        typed("ITEM", None, "Consulting services", 90.0, group="line_item"),
        typed("ITEM", None, "Travel  expenses", 80.0, group="line_item"),
    ]


class TestFieldMatches:
    """Tests for matching a service field against a type name."""

    def test_type_equality(self):
        assert field_matches(typed("TOTAL", "Whatever"), "TOTAL")

    def test_label_phrase(self):
        assert field_matches(typed("OTHER", "Invoice Total"), "TOTAL")

    def test_label_tokens_in_any_order(self):
        assert field_matches(typed("OTHER", "Due Amount"), "AMOUNT_DUE")

    def test_subtotal_label_is_not_total(self):
        assert not field_matches(typed("OTHER", "Subtotal"), "TOTAL")

    def test_no_type_no_label(self):
        assert not field_matches(typed(None, None, "100"), "TOTAL")


class TestMapFields:
    """Tests for the full mapping."""

    def test_simple_invoice(self, service_fields):
        fields = map_fields(service_fields).fields

        assert fields[FieldKey.VENDOR_NAME].value == "Acme Trading LLC"
        assert fields[FieldKey.INVOICE_NUMBER].value == "INV-1001"
        assert fields[FieldKey.CUSTOMER_NAME].value == "Global Enterprises LLC"
        assert fields[FieldKey.DUE_DATE].value == date(2025, 5, 28)
        assert fields[FieldKey.VAT_AMOUNT].value == pytest.approx(50.0)
        assert fields[FieldKey.TOTAL_AMOUNT].value == pytest.approx(1050.0)
        assert fields[FieldKey.CURRENCY].value == "AED"
        assert FieldKey.AMOUNT not in fields
        assert FieldKey.INVOICE_DATE not in fields

    def test_service_confidence_is_kept(self, service_fields):
        fields = map_fields(service_fields).fields
        assert fields[FieldKey.INVOICE_NUMBER].confidence == pytest.approx(99.2)
        assert fields[FieldKey.TOTAL_AMOUNT].source == FieldSource.STRUCTURED

    def test_description_from_line_items(self, service_fields):
        description = map_fields(service_fields).fields[FieldKey.DESCRIPTION]
        assert description.value == "Consulting services; Travel expenses"
        assert description.confidence == pytest.approx(85.0)

    def test_confidence_is_clamped(self):
        fields = map_fields([typed("INVOICE_RECEIPT_ID", None, "INV-1", 120.0)]).fields
        assert fields[FieldKey.INVOICE_NUMBER].confidence == 100

    def test_empty_input(self):
        outcome = map_fields([])
        assert outcome.fields == {}
        assert all(entry.outcome == TraceOutcome.NO_MATCH for entry in outcome.trace)

    def test_ambiguous_date_uses_hint(self):
        item = typed("INVOICE_RECEIPT_DATE", "Invoice Date", "03/04/2025")
        fields = map_fields([item], ExtractionHints(date_order="DMY")).fields
        assert fields[FieldKey.INVOICE_DATE].value == date(2025, 4, 3)


class TestTotalSelection:
    """Tests for picking the invoice total among several candidates."""

    def test_payable_label_beats_generic_total(self):
        fields = map_fields([
            typed("TOTAL", "Total", "1,000.00", 99.0),
            typed("AMOUNT_DUE", "Balance due", "1,150.00", 80.0),
        ]).fields
        assert fields[FieldKey.TOTAL_AMOUNT].value == pytest.approx(1150.0)
        assert fields[FieldKey.TOTAL_AMOUNT].confidence == pytest.approx(80.0)

    def test_discount_line_is_never_total(self):
        outcome = map_fields([
            typed("TOTAL", "Discount", "50.00"),
            typed("TOTAL", "Total", "1,050.00"),
        ])
        assert outcome.fields[FieldKey.TOTAL_AMOUNT].value == pytest.approx(1050.0)
        assert any(
            entry.field == FieldKey.TOTAL_AMOUNT and entry.outcome == TraceOutcome.REJECTED
            for entry in outcome.trace
        )

    def test_subtotal_becomes_amount(self):
        fields = map_fields([
            typed("SUBTOTAL", "Subtotal", "1,000.00"),
            typed("TOTAL", "Total", "1,050.00"),
        ]).fields
        assert fields[FieldKey.AMOUNT].value == pytest.approx(1000.0)
        assert fields[FieldKey.TOTAL_AMOUNT].value == pytest.approx(1050.0)


class TestExclusions:
    """Tests for labels that must not be taken for a field."""

    def test_vat_registration_is_not_vat_amount(self):
        outcome = map_fields([typed("OTHER", "VAT Registration No", "100123456789003")])
        assert FieldKey.VAT_AMOUNT not in outcome.fields

    def test_customer_equal_to_vendor(self):
        outcome = map_fields([
            typed("VENDOR_NAME", None, "Acme Trading LLC"),
            typed("RECEIVER_NAME", None, "ACME TRADING LLC"),
        ])
        assert FieldKey.CUSTOMER_NAME not in outcome.fields
        assert any(entry.reason == "same as vendor" for entry in outcome.trace)

    def test_vendor_email_is_skipped(self):
        fields = map_fields([
            typed("VENDOR_NAME", None, "Acme Trading LLC"),
            typed("OTHER", "Contact", "billing@acmetrading.ae ap@global.example"),
        ]).fields
        assert fields[FieldKey.CUSTOMER_EMAIL].value == "ap@global.example"

    def test_receiver_labelled_name_is_the_customer(self):
        outcome = map_fields([
            typed("RECEIVER_NAME", "Name", "Global Enterprises LLC"),
            typed("TOTAL", "Total", "1,050.00"),
        ])

        assert outcome.fields[FieldKey.CUSTOMER_NAME].value == "Global Enterprises LLC"
        assert FieldKey.VENDOR_NAME not in outcome.fields
        assert any(
            entry.field == FieldKey.VENDOR_NAME and entry.reason == "typed for another field"
            for entry in outcome.trace
        )

    def test_vendor_typed_field_is_never_the_customer(self):
        outcome = map_fields([typed("VENDOR_NAME", "Client", "Acme Trading LLC")])
        assert FieldKey.CUSTOMER_NAME not in outcome.fields
