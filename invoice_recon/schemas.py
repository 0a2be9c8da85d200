"""
Pydantic models for extracted fields, analysis jobs and reconciliation.

This module defines the core data structures used throughout the pipeline:
- ExtractedField and ExtractionResult for per-document extraction output
- TypedLabelledField and PollResponse for the remote analysis service
- Extracted / Manual / Missing draft entries for human review
- InvoiceDraftRecord, the final immutable invoice handed downstream
"""

from datetime import date
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import AUTO_ACCEPT_THRESHOLD


FieldValue = Optional[Union[float, date, str]]


class FieldKey(str, Enum):
    """Canonical invoice field names."""
    INVOICE_NUMBER = "invoice_number"
    CUSTOMER_NAME = "customer_name"
    CUSTOMER_EMAIL = "customer_email"
    AMOUNT = "amount"
    VAT_AMOUNT = "vat_amount"
    TOTAL_AMOUNT = "total_amount"
    CURRENCY = "currency"
    INVOICE_DATE = "invoice_date"
    DUE_DATE = "due_date"
    DESCRIPTION = "description"
    TAX_ID = "tax_id"
    VENDOR_NAME = "vendor_name"
    VENDOR_ADDRESS = "vendor_address"


MONEY_FIELDS: frozenset[FieldKey] = frozenset(
    {FieldKey.AMOUNT, FieldKey.VAT_AMOUNT, FieldKey.TOTAL_AMOUNT}
)
DATE_FIELDS: frozenset[FieldKey] = frozenset({FieldKey.INVOICE_DATE, FieldKey.DUE_DATE})


class FieldSource(str, Enum):
    """Where a field value came from."""
    STRUCTURED = "structured"
    HEURISTIC = "heuristic"
    MANUAL = "manual"


class TraceOutcome(str, Enum):
    CHOSEN = "chosen"
    REJECTED = "rejected"
    NO_MATCH = "no_match"
    FILLED = "filled"
    KEPT = "kept"
    DERIVED = "derived"
    REPLACED = "replaced"
    RETAINED = "retained"


class TraceEntry(BaseModel):
    """One diagnostic step recorded while a field was being decided."""
    stage: str = Field(..., description="Pipeline stage (mapper, heuristics, corrector, pipeline)")
    field: Optional[FieldKey] = Field(None, description="Field the step concerns")
    matcher: Optional[str] = Field(None, description="Name of the matcher or rule applied")
    candidate: Optional[str] = Field(None, description="Raw candidate text")
    outcome: TraceOutcome
    reason: Optional[str] = None


class ExtractedField(BaseModel):
    """
    A single extracted invoice field.

    Attributes:
        name: Canonical field key
        value: Normalized value (float for money, date for dates, str otherwise)
        confidence: Extraction confidence between 0 and 100
        source: Strategy that produced the value
        raw_value: Text the value was read from, kept across corrections
    """
    name: FieldKey
    value: FieldValue = None
    confidence: float = Field(..., ge=0, le=100)
    source: FieldSource
    raw_value: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp service-reported confidences into the 0..100 range."""
        return max(0.0, min(100.0, float(v)))

    @model_validator(mode="after")
    def restore_dates(self) -> "ExtractedField":
        """Date values come back as ISO strings after a JSON round trip."""
        if self.name in DATE_FIELDS and isinstance(self.value, str):
            try:
                self.value = date.fromisoformat(self.value)
            except ValueError:
                # Left as text; reconciliation reports it as an invalid date
                return self
        return self


class ExtractionResult(BaseModel):
    """
    Extraction output for one document.

    Only populated fields are stored. Later pipeline stages may add missing
    fields; replacing an existing value is reserved for plausibility
    correction and keeps the original raw text.
    """
    fields: dict[FieldKey, ExtractedField] = Field(default_factory=dict)
    overall_confidence: float = Field(0.0, ge=0, le=100)
    raw_text: str = ""
    filename: Optional[str] = None
    method: Literal["structured", "heuristic"] = "heuristic"
    job_id: Optional[str] = None
    processing_time_ms: Optional[float] = None
    trace: list[TraceEntry] = Field(default_factory=list)

    def get(self, key: Union[FieldKey, str]) -> Optional[ExtractedField]:
        return self.fields.get(FieldKey(key))

    def value(self, key: Union[FieldKey, str]) -> FieldValue:
        field = self.get(key)
        return field.value if field is not None else None

    def add_field(self, field: ExtractedField) -> bool:
        """Add ``field`` unless the key is already populated."""
        if field.name in self.fields:
            return False
        self.fields[field.name] = field
        return True

    def replace_field(
        self,
        key: FieldKey,
        value: FieldValue,
        confidence: float,
        source: FieldSource,
    ) -> ExtractedField:
        """Replace a value during correction, preserving its original raw text."""
        previous = self.fields.get(key)
        raw = previous.raw_value if previous is not None else None
        replacement = ExtractedField(
            name=key, value=value, confidence=confidence, source=source, raw_value=raw
        )
        self.fields[key] = replacement
        return replacement

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "fields": {
                        "invoice_number": {
                            "name": "invoice_number",
                            "value": "V01250857",
                            "confidence": 75.0,
                            "source": "heuristic",
                            "raw_value": "V01250857",
                        },
                        "total_amount": {
                            "name": "total_amount",
                            "value": 1234.56,
                            "confidence": 60.0,
                            "source": "heuristic",
                            "raw_value": "EUR 1.234,56",
                        },
                    },
                    "overall_confidence": 67.5,
                    "raw_text": "Invoice Number V01250857 ...",
                    "filename": "invoice.pdf",
                    "method": "heuristic",
                }
            ]
        }
    }


class ParseOutcome(BaseModel):
    """Fields and diagnostics produced by a single extraction strategy."""
    fields: dict[FieldKey, ExtractedField] = Field(default_factory=dict)
    trace: list[TraceEntry] = Field(default_factory=list)


class ExtractionHints(BaseModel):
    """Read-only configuration consulted by the extraction strategies."""
    known_customers: list[str] = Field(default_factory=list)
    known_vendors: list[str] = Field(default_factory=list)
    date_order: Optional[Literal["DMY", "MDY"]] = "MDY"


# ============================================================================
# Remote Analysis Service
# ============================================================================

class TypedLabelledField(BaseModel):
    """A field as reported by the document analysis service."""
    type: Optional[str] = Field(None, description="Service-assigned field type, e.g. TOTAL")
    label: Optional[str] = Field(None, description="Label text detected on the page")
    value: Optional[str] = Field(None, description="Value text detected on the page")
    confidence: float = Field(0.0, description="Service-reported confidence")
    currency: Optional[str] = None
    page: Optional[int] = None
    group: Literal["summary", "line_item"] = "summary"


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PollResponse(BaseModel):
    """One page of a status/result poll."""
    status: JobStatus
    fields: list[TypedLabelledField] = Field(default_factory=list)
    continuation_token: Optional[str] = None
    status_message: Optional[str] = None


class StorageLocator(BaseModel):
    """Location of the temporary object the analysis job reads from."""
    bucket: str
    key: str


# ============================================================================
# Reconciliation
# ============================================================================

class Extracted(BaseModel):
    """Draft entry carrying a machine-extracted value."""
    kind: Literal["extracted"] = "extracted"
    value: FieldValue = None
    confidence: float = Field(..., ge=0, le=100)
    source: FieldSource
    raw_value: Optional[str] = None


class Manual(BaseModel):
    """Draft entry overridden by a reviewer; the prior confidence is kept for audit."""
    kind: Literal["manual"] = "manual"
    value: FieldValue = None
    prior_confidence: Optional[float] = Field(None, ge=0, le=100)


class Missing(BaseModel):
    kind: Literal["missing"] = "missing"


DraftEntry = Annotated[Union[Extracted, Manual, Missing], Field(discriminator="kind")]


class InvoiceDraftRecord(BaseModel):
    """
    Final canonical invoice produced by a successful reconciliation.

    Instances are immutable.
    """
    invoice_number: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    customer_email: Optional[str] = None
    amount: float = Field(..., gt=0)
    vat_amount: Optional[float] = Field(None, ge=0)
    total_amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: date
    description: Optional[str] = None
    tax_id: Optional[str] = None
    vendor_name: Optional[str] = None
    vendor_address: Optional[str] = None

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "invoice_number": "V01250857",
                    "customer_name": "Global Enterprises LLC",
                    "customer_email": "ap@global.example",
                    "amount": 1000.00,
                    "vat_amount": 50.00,
                    "total_amount": 1050.00,
                    "currency": "AED",
                    "invoice_date": "2025-04-28",
                    "due_date": "2025-05-28",
                    "description": "Consulting services",
                    "tax_id": "100123456789003",
                    "vendor_name": "Acme Trading LLC",
                    "vendor_address": "Dubai, UAE",
                }
            ]
        },
    }


class FieldViolation(BaseModel):
    """A validation problem attached to one field."""
    field: FieldKey
    code: str = Field(..., description="Violation code, e.g. 'required:customer_name'")
    message: str


class ReconciliationOutcome(BaseModel):
    """Result of finalizing a reconciliation session."""
    record: Optional[InvoiceDraftRecord] = None
    violations: list[FieldViolation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.record is not None


class ExtractionStats(BaseModel):
    """Confidence breakdown across the canonical fields."""
    total_fields: int = Field(..., ge=0)
    extracted_fields: int = Field(..., ge=0)
    high_confidence_fields: int = Field(0, ge=0)
    medium_confidence_fields: int = Field(0, ge=0)
    low_confidence_fields: int = Field(0, ge=0)


class BatchItem(BaseModel):
    """Per-document outcome of a batch extraction."""
    filename: str
    success: bool
    result: Optional[ExtractionResult] = None
    error: Optional[str] = None
    processing_time_ms: float = 0.0


# ============================================================================
# API Request/Response Models
# ============================================================================

class ReconcileRequest(BaseModel):
    """Request body for the /reconcile endpoint."""
    result: ExtractionResult
    threshold: float = Field(AUTO_ACCEPT_THRESHOLD, ge=0, le=100)
    edits: dict[FieldKey, Any] = Field(
        default_factory=dict,
        description="Reviewer overrides applied before finalizing",
    )
    accept: list[FieldKey] = Field(
        default_factory=list,
        description="Pending fields the reviewer accepts as extracted",
    )
