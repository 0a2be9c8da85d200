"""
Human review of an extraction result.

A ReconciliationSession holds a mutable draft with one entry per canonical
field. Entries start as Extracted (machine value, pending review) or
Missing. A reviewer commits extracted values individually or in bulk by
confidence threshold, and overrides values with edits that become Manual
entries. ``proceed`` validates the whole draft and, when nothing is
wrong, produces the immutable InvoiceDraftRecord.
"""

from datetime import date
from typing import Any, Optional, Union

from .config import AMBIGUOUS_DATE_ORDER, AUTO_ACCEPT_THRESHOLD, ViolationCode, logger
from .rules import (
    FIELD_LABELS,
    REQUIRED_FIELDS,
    coerce_value,
    collect_warnings,
    format_violation,
    required_violation,
    validate_value,
)
from .schemas import (
    DraftEntry,
    Extracted,
    ExtractionResult,
    ExtractionStats,
    FieldKey,
    FieldValue,
    FieldViolation,
    InvoiceDraftRecord,
    Manual,
    Missing,
    ReconciliationOutcome,
)
from .scoring import mean_confidence, stats_for


KeyLike = Union[FieldKey, str]


class ReconciliationSession:
    """
    Single-reviewer draft of one invoice.

    Args:
        result: Extraction result to seed the draft from
        date_order: "DMY" or "MDY" for reading ambiguous dates typed by the reviewer
    """

    def __init__(self, result: Optional[ExtractionResult] = None, date_order: Optional[str] = None):
        self.date_order = date_order or (
            AMBIGUOUS_DATE_ORDER if AMBIGUOUS_DATE_ORDER in ("DMY", "MDY") else None
        )
        self.filename: Optional[str] = None
        self.errors: dict[FieldKey, FieldViolation] = {}
        self._entries: dict[FieldKey, DraftEntry] = {key: Missing() for key in FieldKey}
        self._committed: set[FieldKey] = set()
        if result is not None:
            self.seed(result)

    def seed(self, result: ExtractionResult) -> None:
        """Reset the draft from ``result``: one entry per canonical field, nothing committed."""
        entries: dict[FieldKey, DraftEntry] = {}
        for key in FieldKey:
            extracted = result.get(key)
            if extracted is None or extracted.value is None:
                entries[key] = Missing()
            else:
                entries[key] = Extracted(
                    value=extracted.value,
                    confidence=extracted.confidence,
                    source=extracted.source,
                    raw_value=extracted.raw_value,
                )
        self._entries = entries
        self._committed = set()
        self.errors = {}
        self.filename = result.filename

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def entry(self, key: KeyLike) -> DraftEntry:
        return self._entries[FieldKey(key)]

    def is_committed(self, key: KeyLike) -> bool:
        return FieldKey(key) in self._committed

    def pending_fields(self) -> list[FieldKey]:
        """Extracted fields not yet accepted by the reviewer."""
        return [
            key for key in FieldKey
            if isinstance(self._entries[key], Extracted) and key not in self._committed
        ]

    def committed_fields(self) -> list[FieldKey]:
        return [key for key in FieldKey if key in self._committed]

    def overall_confidence(self) -> float:
        """Mean confidence of the draft; manual entries count with their prior confidence."""
        return mean_confidence(self._confidences())

    def stats(self) -> ExtractionStats:
        return stats_for(self._confidences())

    def _confidences(self) -> list[float]:
        values = []
        for entry in self._entries.values():
            if isinstance(entry, Extracted):
                values.append(entry.confidence)
            elif isinstance(entry, Manual) and entry.prior_confidence is not None:
                values.append(entry.prior_confidence)
        return values

    # ------------------------------------------------------------------
    # Reviewer actions
    # ------------------------------------------------------------------

    def edit_field(self, key: KeyLike, value: Any) -> Manual:
        """
        Override a field with a reviewer-supplied value.

        The entry becomes Manual and is committed; the previous confidence is
        kept for audit and any validation error on the field is cleared.
        """
        key = FieldKey(key)
        current = self._entries[key]
        if isinstance(current, Extracted):
            prior = current.confidence
        elif isinstance(current, Manual):
            prior = current.prior_confidence
        else:
            prior = None
        edited = Manual(value=value, prior_confidence=prior)
        self._entries[key] = edited
        self._committed.add(key)
        self.errors.pop(key, None)
        return edited

    def accept_field(self, key: KeyLike) -> bool:
        """Commit a pending extracted value as is. Returns False when there is nothing to accept."""
        key = FieldKey(key)
        if isinstance(self._entries[key], Missing):
            return False
        self._committed.add(key)
        return True

    def auto_accept(self, threshold: float = AUTO_ACCEPT_THRESHOLD) -> list[FieldKey]:
        """
        Commit every extracted field whose confidence is at least ``threshold``.

        Manual entries are never re-evaluated. Returns the keys committed by
        this call.

        Raises:
            ValueError: threshold outside 0..100
        """
        if not 0 <= threshold <= 100:
            raise ValueError(f"Auto-accept threshold must be within 0..100, got {threshold}")
        accepted = []
        for key in self.pending_fields():
            entry = self._entries[key]
            if entry.confidence >= threshold:
                self._committed.add(key)
                accepted.append(key)
        logger.info(f"Auto-accepted {len(accepted)} fields at threshold {threshold}")
        return accepted

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _draft_values(self) -> tuple[dict[FieldKey, FieldValue], dict[FieldKey, FieldViolation]]:
        values: dict[FieldKey, FieldValue] = {}
        violations: dict[FieldKey, FieldViolation] = {}
        for key in FieldKey:
            entry = self._entries[key]
            if isinstance(entry, Missing):
                continue
            value, ok = coerce_value(key, entry.value, self.date_order)
            if not ok:
                violations[key] = format_violation(key)
            elif value is not None:
                values[key] = value
        return values, violations

    def proceed(self, today: Optional[date] = None) -> ReconciliationOutcome:
        """
        Validate the whole draft and finalize it.

        Every field is checked, committed or not, and all violations are
        returned together, at most one per field. An extracted value still
        awaiting review that passes its rules is reported as pending, so no
        extracted value is dropped from the record unseen. With no violations
        the outcome carries the final InvoiceDraftRecord.
        """
        today = today or date.today()
        values, violations = self._draft_values()

        for key in FieldKey:
            if key in violations:
                continue
            if key not in values:
                if key in REQUIRED_FIELDS:
                    violations[key] = required_violation(key)
                continue
            violation = validate_value(key, values[key], values)
            if violation is not None:
                violations[key] = violation
            elif key not in self._committed:
                violations[key] = self._pending_violation(key)

        self.errors = dict(violations)
        warnings = collect_warnings(values, today)
        if violations:
            ordered = [violations[key] for key in FieldKey if key in violations]
            logger.info(f"Reconciliation of {self.filename or 'draft'} blocked by {len(ordered)} violations")
            return ReconciliationOutcome(violations=ordered, warnings=warnings)

        record = InvoiceDraftRecord(**{key.value: value for key, value in values.items()})
        logger.info(f"Reconciled invoice {record.invoice_number}")
        return ReconciliationOutcome(record=record, warnings=warnings)

    def _pending_violation(self, key: FieldKey) -> FieldViolation:
        return FieldViolation(
            field=key,
            code=f"{ViolationCode.PENDING.value}:{key.value}",
            message=f"{FIELD_LABELS[key]} is awaiting review",
        )
