"""
Tests for the reconciliation session and field rules.

These tests verify auto-acceptance, reviewer edits, validation and the
final invoice record.
"""

import pytest
from datetime import date

from pydantic import ValidationError

from invoice_recon.reconciliation import ReconciliationSession
from invoice_recon.rules import FIELD_RULES, coerce_value, validate_value
from invoice_recon.schemas import (
    Extracted,
    ExtractedField,
    ExtractionResult,
    FieldKey,
    FieldSource,
    Manual,
    Missing,
)


TODAY = date(2025, 1, 1)


def make_result(**fields) -> ExtractionResult:
    """Build a result from ``key=(value, confidence)`` pairs."""
    result = ExtractionResult(filename="invoice.pdf")
    for key, (value, confidence) in fields.items():
        result.add_field(ExtractedField(
            name=FieldKey(key), value=value, confidence=confidence, source=FieldSource.STRUCTURED,
        ))
    return result


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def complete_result() -> ExtractionResult:
    """Every required field extracted with high confidence."""
    return make_result(
        invoice_number=("INV-1001", 99.0),
        customer_name=("Global Enterprises LLC", 98.0),
        amount=(1000.0, 97.0),
        vat_amount=(50.0, 97.0),
        total_amount=(1050.0, 98.0),
        invoice_date=(date(2025, 4, 28), 96.0),
        due_date=(date(2025, 5, 28), 96.0),
        currency=("AED", 96.0),
    )


@pytest.fixture
def mixed_result() -> ExtractionResult:
    """Fields around the default acceptance threshold."""
    return make_result(
        invoice_number=("INV-1001", 96.0),
        customer_name=("Global Enterprises LLC", 94.0),
        amount=(1000.0, 100.0),
        due_date=(date(2025, 5, 28), 99.0),
    )


class TestSeed:
    """Tests for building the draft from an extraction result."""

    def test_entries(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        assert isinstance(session.entry(FieldKey.INVOICE_NUMBER), Extracted)
        assert isinstance(session.entry(FieldKey.TAX_ID), Missing)
        assert session.committed_fields() == []
        assert len(session.pending_fields()) == 4

    def test_overall_confidence(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        assert session.overall_confidence() == pytest.approx((96 + 94 + 100 + 99) / 4, abs=0.1)


class TestAutoAccept:
    """Tests for threshold-based acceptance."""

    def test_threshold_is_inclusive(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        accepted = session.auto_accept(95)

        assert accepted == [FieldKey.INVOICE_NUMBER, FieldKey.AMOUNT, FieldKey.DUE_DATE]
        assert session.is_committed(FieldKey.INVOICE_NUMBER)
        assert not session.is_committed(FieldKey.CUSTOMER_NAME)
        assert session.pending_fields() == [FieldKey.CUSTOMER_NAME]

    def test_manual_entries_are_not_reevaluated(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        session.edit_field(FieldKey.AMOUNT, "900")
        session.auto_accept(0)
        assert isinstance(session.entry(FieldKey.AMOUNT), Manual)
        assert session.entry(FieldKey.AMOUNT).value == "900"

    @pytest.mark.parametrize("threshold", [-1, 100.5])
    def test_invalid_threshold(self, mixed_result, threshold):
        with pytest.raises(ValueError):
            ReconciliationSession(mixed_result).auto_accept(threshold)


class TestEdits:
    """Tests for reviewer edits and acceptance."""

    def test_edit_becomes_manual(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        entry = session.edit_field(FieldKey.CUSTOMER_NAME, "Global Ent. LLC")

        assert entry.value == "Global Ent. LLC"
        assert entry.prior_confidence == 94.0
        assert session.is_committed(FieldKey.CUSTOMER_NAME)

    def test_edit_missing_field(self, mixed_result):
        entry = ReconciliationSession(mixed_result).edit_field(FieldKey.TAX_ID, "100123456789003")
        assert entry.prior_confidence is None

    def test_accept_missing_field(self, mixed_result):
        assert ReconciliationSession(mixed_result).accept_field(FieldKey.TAX_ID) is False

    def test_accept_pending_field(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        assert session.accept_field("customer_name") is True
        assert session.is_committed(FieldKey.CUSTOMER_NAME)


class TestProceed:
    """Tests for validation and finalization."""

    def test_complete_draft(self, complete_result):
        session = ReconciliationSession(complete_result)
        session.auto_accept(95)
        outcome = session.proceed(today=TODAY)

        assert outcome.accepted
        assert outcome.violations == []
        record = outcome.record
        assert record.invoice_number == "INV-1001"
        assert record.amount == 1000.0
        assert record.due_date == date(2025, 5, 28)
        assert record.currency == "AED"
        assert record.vat_amount == 50.0

    def test_record_is_immutable(self, complete_result):
        session = ReconciliationSession(complete_result)
        session.auto_accept(95)
        record = session.proceed(today=TODAY).record
        with pytest.raises(ValidationError):
            record.amount = 1.0

    def test_missing_customer_is_the_only_violation(self):
        result = make_result(
            invoice_number=("INV-1001", 99.0),
            amount=(1000.0, 99.0),
            due_date=(date(2025, 5, 28), 99.0),
        )
        session = ReconciliationSession(result)
        session.auto_accept(95)
        outcome = session.proceed(today=TODAY)

        assert not outcome.accepted
        assert len(outcome.violations) == 1
        violation = outcome.violations[0]
        assert violation.field == FieldKey.CUSTOMER_NAME
        assert violation.code == "required:customer_name"
        assert violation.message == "This field is required"

    def test_pending_required_field(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        session.auto_accept(95)
        outcome = session.proceed(today=TODAY)

        assert [v.code for v in outcome.violations] == ["pending:customer_name"]
        assert outcome.violations[0].message == "Customer Name is awaiting review"

    def test_pending_optional_fields_block_finalization(self):
        result = make_result(
            invoice_number=("INV-1001", 99.0),
            customer_name=("Global Enterprises LLC", 99.0),
            amount=(1000.0, 99.0),
            due_date=(date(2025, 5, 28), 99.0),
            vat_amount=(50.0, 80.0),
            total_amount=(1050.0, 80.0),
            customer_email=("not-an-email", 80.0),
        )
        session = ReconciliationSession(result)
        session.auto_accept(95)
        outcome = session.proceed(today=TODAY)

        assert not outcome.accepted
        assert outcome.record is None
        assert [v.code for v in outcome.violations] == [
            "format:customer_email",
            "pending:vat_amount",
            "pending:total_amount",
        ]

    def test_accepting_pending_fields_carries_them_into_record(self):
        result = make_result(
            invoice_number=("INV-1001", 99.0),
            customer_name=("Global Enterprises LLC", 99.0),
            amount=(1000.0, 99.0),
            due_date=(date(2025, 5, 28), 99.0),
            vat_amount=(50.0, 80.0),
            total_amount=(1050.0, 80.0),
        )
        session = ReconciliationSession(result)
        session.auto_accept(95)
        session.accept_field(FieldKey.VAT_AMOUNT)
        session.accept_field(FieldKey.TOTAL_AMOUNT)
        record = session.proceed(today=TODAY).record

        assert record.vat_amount == 50.0
        assert record.total_amount == 1050.0

    def test_edit_clears_error(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        session.auto_accept(95)
        session.proceed(today=TODAY)
        assert FieldKey.CUSTOMER_NAME in session.errors

        session.edit_field(FieldKey.CUSTOMER_NAME, "Global Enterprises LLC")
        assert FieldKey.CUSTOMER_NAME not in session.errors

        outcome = session.proceed(today=TODAY)
        assert outcome.accepted
        assert outcome.record.customer_name == "Global Enterprises LLC"

    def test_everything_missing_is_reported_in_field_order(self):
        outcome = ReconciliationSession(ExtractionResult()).proceed(today=TODAY)
        assert [v.field for v in outcome.violations] == [
            FieldKey.INVOICE_NUMBER,
            FieldKey.CUSTOMER_NAME,
            FieldKey.AMOUNT,
            FieldKey.DUE_DATE,
        ]

    def test_blank_edit_counts_as_missing(self, mixed_result):
        session = ReconciliationSession(mixed_result)
        session.auto_accept(95)
        session.edit_field(FieldKey.CUSTOMER_NAME, "   ")
        outcome = session.proceed(today=TODAY)
        assert outcome.violations[0].code == "required:customer_name"

    @pytest.mark.parametrize(
        "key, value, code, message",
        [
            ("customer_email", "not-an-email", "format:customer_email", "Invalid format for Customer Email"),
            ("amount", "abc", "format:amount", "Invalid format for Amount"),
            ("amount", "-5", "value:amount", "Invalid value for Amount"),
            ("tax_id", "12345", "format:tax_id", "Invalid format for TRN / VAT Number"),
            ("currency", "XYZ", "format:currency", "Invalid format for Currency"),
            ("due_date", "2025-04-01", "value:due_date", "Invalid value for Due Date"),
            ("due_date", "31/02/2025", "format:due_date", "Invalid format for Due Date"),
            ("total_amount", "10", "value:total_amount", "Invalid value for Total Amount"),
        ],
    )
    def test_invalid_edits(self, complete_result, key, value, code, message):
        session = ReconciliationSession(complete_result)
        session.auto_accept(95)
        session.edit_field(key, value)
        outcome = session.proceed(today=TODAY)

        assert not outcome.accepted
        assert len(outcome.violations) == 1
        assert outcome.violations[0].code == code
        assert outcome.violations[0].message == message

    def test_edited_values_are_normalized(self, complete_result):
        session = ReconciliationSession(complete_result, date_order="DMY")
        session.auto_accept(95)
        session.edit_field(FieldKey.DUE_DATE, "03/06/2025")
        session.edit_field(FieldKey.AMOUNT, "1.000,00")
        session.edit_field(FieldKey.CUSTOMER_EMAIL, "AP@Global.Example")
        record = session.proceed(today=TODAY).record

        assert record.due_date == date(2025, 6, 3)
        assert record.amount == 1000.0
        assert record.customer_email == "ap@global.example"

    def test_warnings_do_not_block(self, complete_result):
        session = ReconciliationSession(complete_result)
        session.auto_accept(95)
        session.edit_field(FieldKey.TOTAL_AMOUNT, "2,000,000.00")
        outcome = session.proceed(today=date(2026, 1, 1))

        assert outcome.accepted
        assert any("unusually large" in warning for warning in outcome.warnings)
        assert any("in the past" in warning for warning in outcome.warnings)

    def test_json_round_trip(self, complete_result):
        restored = ExtractionResult.model_validate(complete_result.model_dump(mode="json"))
        session = ReconciliationSession(restored)
        session.auto_accept(95)
        assert session.proceed(today=TODAY).record.due_date == date(2025, 5, 28)


class TestRules:
    """Tests for the rule helpers."""

    def test_every_rule_has_a_code(self):
        assert all(":" in rule.code for rule in FIELD_RULES)

    def test_coerce_blank(self):
        assert coerce_value(FieldKey.AMOUNT, "  ") == (None, True)

    def test_eu_vat_number_is_valid(self):
        assert validate_value(FieldKey.TAX_ID, "NL123456789B01", {}) is None

    def test_blank_values_pass(self):
        assert validate_value(FieldKey.CUSTOMER_EMAIL, None, {}) is None
