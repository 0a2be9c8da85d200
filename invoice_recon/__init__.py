"""
Invoice Field Extraction & Reconciliation Pipeline

Extracts canonical invoice fields from PDF invoices using a remote document
analysis service and local text heuristics, corrects implausible values,
scores confidence, and reconciles the result into a final invoice record
through human review.
"""

__version__ = "0.1.0"
__author__ = "Invoice Reconciliation Team"

from .schemas import ExtractedField, ExtractionResult, FieldKey, InvoiceDraftRecord
from .extractor import build_result, extract_invoice_from_bytes, extract_invoice_from_pdf, extract_invoices_from_dir
from .reconciliation import ReconciliationSession

__all__ = [
    "ExtractedField",
    "ExtractionResult",
    "FieldKey",
    "InvoiceDraftRecord",
    "build_result",
    "extract_invoice_from_bytes",
    "extract_invoice_from_pdf",
    "extract_invoices_from_dir",
    "ReconciliationSession",
]
