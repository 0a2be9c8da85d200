"""
Tests for the S3 and Textract adapters using botocore's Stubber.
"""

import boto3
import pytest
from botocore.stub import ANY, Stubber
from unittest.mock import MagicMock, patch

from invoice_recon.aws import (
    S3TemporaryStorage,
    TextractExpenseService,
    build_job_manager,
    flatten_expense_documents,
)
from invoice_recon.exceptions import JobFailedError, JobSubmissionError, UploadError
from invoice_recon.schemas import JobStatus, StorageLocator


def make_client(service: str):
    return boto3.client(
        service,
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


EXPENSE_DOCUMENT = {
    "ExpenseIndex": 1,
    "SummaryFields": [
        {
            "Type": {"Text": "INVOICE_RECEIPT_ID", "Confidence": 99.0},
            "LabelDetection": {"Text": "Invoice No", "Confidence": 98.0},
            "ValueDetection": {"Text": "INV-1001", "Confidence": 97.5},
            "PageNumber": 1,
        },
        {
            "Type": {"Text": "TOTAL", "Confidence": 96.0},
            "LabelDetection": {"Text": "Total", "Confidence": 95.0},
            "ValueDetection": {"Text": "1,050.00", "Confidence": 94.0},
            "Currency": {"Code": "AED", "Confidence": 90.0},
            "PageNumber": 1,
        },
    ],
    "LineItemGroups": [
        {
            "LineItemGroupIndex": 1,
            "LineItems": [
                {
                    "LineItemExpenseFields": [
                        {
                            "Type": {"Text": "ITEM", "Confidence": 88.0},
                            "ValueDetection": {"Text": "Consulting services", "Confidence": 87.0},
                            "PageNumber": 1,
                        }
                    ]
                }
            ],
        }
    ],
}


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def s3_stub():
    client = make_client("s3")
    with Stubber(client) as stub:
        yield client, stub
        stub.assert_no_pending_responses()


@pytest.fixture
def textract_stub():
    client = make_client("textract")
    with Stubber(client) as stub:
        yield client, stub
        stub.assert_no_pending_responses()


class TestS3TemporaryStorage:
    """Tests for temporary object storage."""

    def test_put_and_delete(self, s3_stub):
        client, stub = s3_stub
        stub.add_response(
            "put_object",
            {},
            {"Bucket": "invoices", "Key": "tmp/a.pdf", "Body": ANY, "ContentType": "application/pdf"},
        )
        stub.add_response("delete_object", {}, {"Bucket": "invoices", "Key": "tmp/a.pdf"})

        storage = S3TemporaryStorage(client=client)
        storage.put("invoices", "tmp/a.pdf", b"%PDF")
        storage.delete("invoices", "tmp/a.pdf")

    def test_put_error_becomes_upload_error(self, s3_stub):
        client, stub = s3_stub
        stub.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(UploadError):
            S3TemporaryStorage(client=client).put("invoices", "tmp/a.pdf", b"%PDF")


class TestTextractExpenseService:
    """Tests for job submission and polling."""

    def test_submit_job(self, textract_stub):
        client, stub = textract_stub
        stub.add_response(
            "start_expense_analysis",
            {"JobId": "job-123"},
            {"DocumentLocation": {"S3Object": {"Bucket": "invoices", "Name": "tmp/a.pdf"}}},
        )

        job_id = TextractExpenseService(client=client).submit_job(
            StorageLocator(bucket="invoices", key="tmp/a.pdf")
        )
        assert job_id == "job-123"

    def test_submit_rejected(self, textract_stub):
        client, stub = textract_stub
        stub.add_client_error("start_expense_analysis", service_error_code="InvalidS3ObjectException")

        with pytest.raises(JobSubmissionError):
            TextractExpenseService(client=client).submit_job(
                StorageLocator(bucket="invoices", key="tmp/a.pdf")
            )

    def test_poll_in_progress(self, textract_stub):
        client, stub = textract_stub
        stub.add_response("get_expense_analysis", {"JobStatus": "IN_PROGRESS"}, {"JobId": "job-123"})

        response = TextractExpenseService(client=client).poll_job("job-123")
        assert response.status == JobStatus.RUNNING
        assert response.fields == []

    def test_poll_succeeded_with_next_page(self, textract_stub):
        client, stub = textract_stub
        stub.add_response(
            "get_expense_analysis",
            {"JobStatus": "SUCCEEDED", "NextToken": "page-2", "ExpenseDocuments": [EXPENSE_DOCUMENT]},
            {"JobId": "job-123"},
        )
        stub.add_response(
            "get_expense_analysis",
            {"JobStatus": "SUCCEEDED", "ExpenseDocuments": []},
            {"JobId": "job-123", "NextToken": "page-2"},
        )

        service = TextractExpenseService(client=client)
        first = service.poll_job("job-123")
        assert first.status == JobStatus.SUCCEEDED
        assert first.continuation_token == "page-2"
        assert len(first.fields) == 3

        second = service.poll_job("job-123", continuation_token="page-2")
        assert second.fields == []
        assert second.continuation_token is None

    def test_poll_partial_success_counts_as_succeeded(self, textract_stub):
        client, stub = textract_stub
        stub.add_response(
            "get_expense_analysis",
            {"JobStatus": "PARTIAL_SUCCESS", "StatusMessage": "page 3 unreadable", "ExpenseDocuments": []},
            {"JobId": "job-123"},
        )
        response = TextractExpenseService(client=client).poll_job("job-123")
        assert response.status == JobStatus.SUCCEEDED

    def test_poll_failed(self, textract_stub):
        client, stub = textract_stub
        stub.add_response(
            "get_expense_analysis",
            {"JobStatus": "FAILED", "StatusMessage": "Unsupported document"},
            {"JobId": "job-123"},
        )
        response = TextractExpenseService(client=client).poll_job("job-123")
        assert response.status == JobStatus.FAILED
        assert response.status_message == "Unsupported document"

    def test_poll_error_becomes_job_failure(self, textract_stub):
        client, stub = textract_stub
        stub.add_client_error("get_expense_analysis", service_error_code="InvalidJobIdException")

        with pytest.raises(JobFailedError):
            TextractExpenseService(client=client).poll_job("job-123")


class TestFlattenExpenseDocuments:
    """Tests for turning expense documents into typed/labelled fields."""

    def test_summary_and_line_items(self):
        fields = flatten_expense_documents([EXPENSE_DOCUMENT])

        number, total, item = fields
        assert number.type == "INVOICE_RECEIPT_ID"
        assert number.label == "Invoice No"
        assert number.value == "INV-1001"
        assert number.confidence == 97.5
        assert total.currency == "AED"
        assert total.group == "summary"
        assert item.group == "line_item"
        assert item.label is None

    def test_empty(self):
        assert flatten_expense_documents([]) == []


class TestBuildJobManager:
    def test_disabled_without_bucket(self):
        assert build_job_manager(bucket="") is None

    def test_enabled_with_bucket(self):
        with patch("invoice_recon.aws.boto3.client", return_value=MagicMock()) as client:
            manager = build_job_manager(bucket="invoices", region="eu-west-1", key_prefix="tmp/")

        assert manager is not None
        assert manager.bucket == "invoices"
        assert manager.key_prefix == "tmp/"
        assert {call.args[0] for call in client.call_args_list} == {"s3", "textract"}
