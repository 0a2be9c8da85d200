"""
Tests for the FastAPI application.
"""

import pytest
from datetime import date

from fastapi.testclient import TestClient

from invoice_recon import api
from invoice_recon.exceptions import JobTimeoutError
from invoice_recon.extractor import build_result
from invoice_recon.rules import FIELD_RULES, REQUIRED_FIELDS
from invoice_recon.schemas import ExtractedField, ExtractionHints, ExtractionResult, FieldKey, FieldSource


SAMPLE_TEXT = "Invoice Number V01250857\nTotal EUR 1.234,56\nVAT EUR 234,56"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def client():
    api.app.dependency_overrides[api.get_job_manager] = lambda: None
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


@pytest.fixture
def extraction_result() -> dict:
    result = ExtractionResult(filename="invoice.pdf")
    for key, value in (
        (FieldKey.INVOICE_NUMBER, "INV-1001"),
        (FieldKey.AMOUNT, 1000.0),
        (FieldKey.DUE_DATE, date(2030, 5, 28)),
    ):
        result.add_field(ExtractedField(name=key, value=value, confidence=99, source=FieldSource.STRUCTURED))
    return result.model_dump(mode="json")


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert body["remote_analysis"] is False


class TestExtract:
    """Tests for the /extract endpoint."""

    def test_rejects_non_pdf(self, client):
        response = client.post("/extract", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400

    def test_rejects_empty_file(self, client):
        response = client.post("/extract", files={"file": ("empty.pdf", b"", "application/pdf")})
        assert response.status_code == 400

    def test_rejects_oversized_file(self, client, monkeypatch):
        monkeypatch.setattr(api, "MAX_UPLOAD_SIZE_MB", 0)
        response = client.post("/extract", files={"file": ("big.pdf", b"%PDF-1.4", "application/pdf")})
        assert response.status_code == 413

    def test_extracts_fields(self, client, monkeypatch):
        def fake_extract(content, filename, job_manager, hints, fallback_on_error):
            assert job_manager is None
            assert fallback_on_error is True
            return build_result(SAMPLE_TEXT, hints=ExtractionHints(), filename=filename)

        monkeypatch.setattr(api, "extract_invoice_from_bytes", fake_extract)
        response = client.post("/extract", files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")})

        assert response.status_code == 200
        body = response.json()
        assert body["result"]["filename"] == "invoice.pdf"
        assert body["result"]["fields"]["invoice_number"]["value"] == "V01250857"
        assert body["stats"]["total_fields"] == len(FieldKey)
        assert body["confidence_level"] in {"high", "medium", "low"}

    def test_unreadable_pdf_gives_empty_result(self, client):
        response = client.post("/extract", files={"file": ("broken.pdf", b"not a pdf", "application/pdf")})
        assert response.status_code == 200
        assert response.json()["result"]["overall_confidence"] == 0.0

    def test_pipeline_error(self, client, monkeypatch):
        def fake_extract(*args):
            raise JobTimeoutError("job-1", 90.0)

        monkeypatch.setattr(api, "extract_invoice_from_bytes", fake_extract)
        response = client.post("/extract", files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")})
        assert response.status_code == 502
        assert "job-1" in response.json()["detail"]


class TestReconcile:
    """Tests for the /reconcile endpoint."""

    def test_blocked_without_customer(self, client, extraction_result):
        response = client.post("/reconcile", json={"result": extraction_result})

        assert response.status_code == 200
        body = response.json()
        assert body["accepted"] is False
        assert body["record"] is None
        assert [v["code"] for v in body["violations"]] == ["required:customer_name"]

    def test_edit_completes_record(self, client, extraction_result):
        response = client.post(
            "/reconcile",
            json={"result": extraction_result, "edits": {"customer_name": "Global Enterprises LLC"}},
        )

        body = response.json()
        assert body["accepted"] is True
        assert body["record"]["customer_name"] == "Global Enterprises LLC"
        assert body["record"]["due_date"] == "2030-05-28"
        assert body["pending_fields"] == []

    def test_low_threshold_accepts_everything(self, client, extraction_result):
        extraction_result["fields"]["customer_name"] = {
            "name": "customer_name", "value": "Global", "confidence": 40, "source": "heuristic",
        }
        response = client.post("/reconcile", json={"result": extraction_result, "threshold": 30})
        assert response.json()["accepted"] is True

    def test_invalid_threshold(self, client, extraction_result):
        response = client.post("/reconcile", json={"result": extraction_result, "threshold": 120})
        assert response.status_code == 422


class TestRules:
    def test_list_rules(self, client):
        body = client.get("/rules").json()
        assert body["total_rules"] == len(FIELD_RULES) + len(REQUIRED_FIELDS)
        assert "required" in body["rules_by_category"]
        assert "format" in body["rules_by_category"]
