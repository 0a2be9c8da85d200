"""
boto3 adapters for S3 temporary storage and Textract expense analysis.
"""

from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import AWS_REGION, AWS_S3_BUCKET_NAME, AWS_S3_KEY_PREFIX, logger
from .exceptions import JobFailedError, JobSubmissionError, UploadError
from .jobs import AnalysisJobManager
from .schemas import JobStatus, PollResponse, StorageLocator, TypedLabelledField


_STATUS_MAP = {
    "IN_PROGRESS": JobStatus.RUNNING,
    "SUCCEEDED": JobStatus.SUCCEEDED,
    "PARTIAL_SUCCESS": JobStatus.SUCCEEDED,
    "FAILED": JobStatus.FAILED,
}


class S3TemporaryStorage:
    """Stores uploaded PDFs in S3 while they are analysed."""

    def __init__(self, client: Any = None, region: str = AWS_REGION):
        self._client = client or boto3.client("s3", region_name=region)

    def put(self, bucket: str, key: str, data: bytes) -> None:
        try:
            self._client.put_object(
                Bucket=bucket, Key=key, Body=data, ContentType="application/pdf"
            )
        except (ClientError, BotoCoreError) as exc:
            raise UploadError(f"Failed to upload s3://{bucket}/{key}: {exc}") from exc

    def delete(self, bucket: str, key: str) -> None:
        self._client.delete_object(Bucket=bucket, Key=key)


def _text(block: Optional[dict], name: str = "Text") -> Optional[str]:
    return (block or {}).get(name)


def _to_field(raw: dict, group: str) -> TypedLabelledField:
    value_block = raw.get("ValueDetection") or {}
    type_block = raw.get("Type") or {}
    return TypedLabelledField(
        type=_text(type_block),
        label=_text(raw.get("LabelDetection")),
        value=_text(value_block),
        confidence=value_block.get("Confidence", type_block.get("Confidence", 0.0)),
        currency=_text(raw.get("Currency"), "Code"),
        page=raw.get("PageNumber"),
        group=group,
    )


def flatten_expense_documents(documents: list[dict]) -> list[TypedLabelledField]:
    """Flatten summary and line-item fields of every expense document."""
    fields: list[TypedLabelledField] = []
    for document in documents:
        for raw in document.get("SummaryFields", []):
            fields.append(_to_field(raw, "summary"))
        for group in document.get("LineItemGroups", []):
            for item in group.get("LineItems", []):
                for raw in item.get("LineItemExpenseFields", []):
                    fields.append(_to_field(raw, "line_item"))
    return fields


class TextractExpenseService:
    """Textract asynchronous expense analysis."""

    def __init__(self, client: Any = None, region: str = AWS_REGION):
        self._client = client or boto3.client("textract", region_name=region)

    def submit_job(self, location: StorageLocator) -> str:
        try:
            response = self._client.start_expense_analysis(
                DocumentLocation={"S3Object": {"Bucket": location.bucket, "Name": location.key}}
            )
        except (ClientError, BotoCoreError) as exc:
            raise JobSubmissionError(f"Textract rejected {location.key}: {exc}") from exc
        return response.get("JobId", "")

    def poll_job(self, job_id: str, continuation_token: Optional[str] = None) -> PollResponse:
        params = {"JobId": job_id}
        if continuation_token:
            params["NextToken"] = continuation_token
        try:
            response = self._client.get_expense_analysis(**params)
        except (ClientError, BotoCoreError) as exc:
            raise JobFailedError(job_id, str(exc)) from exc

        raw_status = response.get("JobStatus", "IN_PROGRESS")
        status = _STATUS_MAP.get(raw_status, JobStatus.RUNNING)
        if raw_status == "PARTIAL_SUCCESS":
            logger.warning(f"Textract job {job_id} only partially succeeded: {response.get('StatusMessage')}")

        fields = []
        if status == JobStatus.SUCCEEDED:
            fields = flatten_expense_documents(response.get("ExpenseDocuments", []))
        return PollResponse(
            status=status,
            fields=fields,
            continuation_token=response.get("NextToken"),
            status_message=response.get("StatusMessage"),
        )


def is_remote_configured(bucket: str = AWS_S3_BUCKET_NAME) -> bool:
    return bool(bucket)


def build_job_manager(
    bucket: str = AWS_S3_BUCKET_NAME,
    region: str = AWS_REGION,
    key_prefix: str = AWS_S3_KEY_PREFIX,
) -> Optional[AnalysisJobManager]:
    """Job manager wired to S3 and Textract, or None when no bucket is configured."""
    if not is_remote_configured(bucket):
        logger.info("AWS_S3_BUCKET_NAME not set, remote analysis disabled")
        return None
    return AnalysisJobManager(
        service=TextractExpenseService(region=region),
        storage=S3TemporaryStorage(region=region),
        bucket=bucket,
        key_prefix=key_prefix,
    )
