"""
Lifecycle of one remote document-analysis job.

A job moves SUBMITTED -> POLLING -> SUCCEEDED | FAILED | TIMED_OUT. The
document is written to temporary object storage for the duration of the job
and removed again on every exit path, including failures and timeouts.
"""

import re
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional, Protocol

from .config import AWS_S3_KEY_PREFIX, logger
from .exceptions import (
    ExtractionPipelineError,
    JobFailedError,
    JobSubmissionError,
    JobTimeoutError,
    UploadError,
)
from .polling import BackoffPolicy, poll_until_terminal
from .schemas import JobStatus, PollResponse, StorageLocator, TypedLabelledField


class JobState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class DocumentAnalysisService(Protocol):
    """Remote service that analyses a stored document asynchronously."""

    def submit_job(self, location: StorageLocator) -> str:
        ...

    def poll_job(self, job_id: str, continuation_token: Optional[str] = None) -> PollResponse:
        ...


class ObjectStorage(Protocol):
    """Temporary storage the analysis service reads documents from."""

    def put(self, bucket: str, key: str, data: bytes) -> None:
        ...

    def delete(self, bucket: str, key: str) -> None:
        ...


@dataclass
class JobRecord:
    """State history of a single job."""
    filename: str
    job_id: Optional[str] = None
    location: Optional[StorageLocator] = None
    state: Optional[JobState] = None
    history: list[JobState] = field(default_factory=list)
    polls: int = 0

    def transition(self, state: JobState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"Job {self.job_id or '-'} for {self.filename}: {state.value}")


@dataclass
class AnalysisOutcome:
    """Fields collected from a successful job."""
    job_id: str
    fields: list[TypedLabelledField]
    elapsed_ms: float
    polls: int
    pages: int
    history: list[JobState]


class AnalysisJobManager:
    """
    Runs documents through a remote analysis service.

    Args:
        service: Analysis service client
        storage: Temporary object storage client
        bucket: Bucket the temporary objects are written to
        key_prefix: Prefix for temporary object keys
        policy: Polling schedule
        sleep: Sleep function used between polls
    """

    def __init__(
        self,
        service: DocumentAnalysisService,
        storage: ObjectStorage,
        bucket: str,
        key_prefix: str = AWS_S3_KEY_PREFIX,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.storage = storage
        self.bucket = bucket
        self.key_prefix = key_prefix
        self.policy = policy or BackoffPolicy()
        self._sleep = sleep

    def object_key(self, filename: str) -> str:
        safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", filename) or "document.pdf"
        return f"{self.key_prefix}{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name}"

    @contextmanager
    def temporary_object(self, data: bytes, filename: str) -> Iterator[StorageLocator]:
        """Store ``data`` for the duration of the block, then delete it."""
        locator = StorageLocator(bucket=self.bucket, key=self.object_key(filename))
        try:
            try:
                self.storage.put(locator.bucket, locator.key, data)
            except ExtractionPipelineError:
                raise
            except Exception as exc:
                raise UploadError(f"Failed to store {filename}: {exc}") from exc
            logger.info(f"Stored {filename} at {locator.bucket}/{locator.key}")
            yield locator
        finally:
            self._delete(locator)

    def _delete(self, locator: StorageLocator) -> None:
        try:
            self.storage.delete(locator.bucket, locator.key)
        except Exception as exc:
            logger.error(f"Failed to delete temporary object {locator.bucket}/{locator.key}: {exc}")

    def _submit(self, locator: StorageLocator, filename: str) -> str:
        try:
            job_id = self.service.submit_job(locator)
        except ExtractionPipelineError:
            raise
        except Exception as exc:
            raise JobSubmissionError(f"Analysis job for {filename} was not accepted: {exc}") from exc
        if not job_id:
            raise JobSubmissionError(f"Analysis service returned no job id for {filename}")
        return job_id

    def _collect_pages(self, job_id: str, first: PollResponse) -> tuple[list[TypedLabelledField], int]:
        fields = list(first.fields)
        pages = 1
        seen: set[str] = set()
        token = first.continuation_token
        while token and token not in seen:
            seen.add(token)
            page = self.service.poll_job(job_id, continuation_token=token)
            if page.status == JobStatus.FAILED:
                raise JobFailedError(job_id, page.status_message)
            fields.extend(page.fields)
            pages += 1
            token = page.continuation_token
        return fields, pages

    def run(self, data: bytes, filename: str) -> AnalysisOutcome:
        """
        Analyse one document.

        Raises:
            UploadError: the document could not be stored
            JobSubmissionError: the service did not accept the job
            JobFailedError: the service reported failure
            JobTimeoutError: no terminal state before the polling ceiling
        """
        record = JobRecord(filename=filename)
        started = time.monotonic()

        with self.temporary_object(data, filename) as locator:
            record.location = locator
            record.job_id = self._submit(locator, filename)
            record.transition(JobState.SUBMITTED)
            logger.info(f"Started analysis job {record.job_id} for {filename}")

            def poll_once() -> PollResponse:
                record.polls += 1
                return self.service.poll_job(record.job_id)

            record.transition(JobState.POLLING)
            try:
                response = poll_until_terminal(
                    poll_once,
                    lambda r: r.status != JobStatus.RUNNING,
                    self.policy,
                    sleep=self._sleep,
                    job_id=record.job_id,
                )
            except JobTimeoutError:
                record.transition(JobState.TIMED_OUT)
                logger.error(f"Analysis job {record.job_id} timed out after {record.polls} polls")
                raise

            if response.status == JobStatus.FAILED:
                record.transition(JobState.FAILED)
                logger.error(f"Analysis job {record.job_id} failed: {response.status_message}")
                raise JobFailedError(record.job_id, response.status_message)

            fields, pages = self._collect_pages(record.job_id, response)
            record.transition(JobState.SUCCEEDED)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Analysis job {record.job_id} returned {len(fields)} fields "
            f"in {elapsed_ms:.0f}ms ({record.polls} polls)"
        )
        return AnalysisOutcome(
            job_id=record.job_id,
            fields=fields,
            elapsed_ms=elapsed_ms,
            polls=record.polls,
            pages=pages,
            history=list(record.history),
        )
