"""
Error taxonomy for the remote extraction path.

Unreadable documents and per-field validation problems are not exceptions:
the former produce a zero-confidence result, the latter are reported as
``FieldViolation`` entries by the reconciliation session.
"""

from typing import Optional


class ExtractionPipelineError(Exception):
    """Base class for errors raised while running a remote analysis job."""


class UploadError(ExtractionPipelineError):
    """The document could not be written to temporary storage."""


class JobSubmissionError(ExtractionPipelineError):
    """The analysis service did not accept the job."""


class JobTimeoutError(ExtractionPipelineError):
    """The job did not reach a terminal state before the polling ceiling."""

    def __init__(self, job_id: str, elapsed: float):
        self.job_id = job_id
        self.elapsed = elapsed
        super().__init__(f"Job {job_id} did not finish within {elapsed:.1f}s")


class JobFailedError(ExtractionPipelineError):
    """The analysis service reported the job as failed."""

    def __init__(self, job_id: str, reason: Optional[str] = None):
        self.job_id = job_id
        self.reason = reason or "unknown reason"
        super().__init__(f"Job {job_id} failed: {self.reason}")
