"""
FastAPI application for the invoice reconciliation pipeline.

Provides REST API endpoints for:
- Health check
- PDF field extraction
- Reconciliation of an extraction result into a final invoice record
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .aws import build_job_manager
from .config import API_HOST, API_PORT, MAX_UPLOAD_SIZE_MB, ViolationCode, logger
from .exceptions import ExtractionPipelineError
from .extractor import extract_invoice_from_bytes
from .jobs import AnalysisJobManager
from .reconciliation import ReconciliationSession
from .schemas import (
    ExtractionResult,
    ExtractionStats,
    FieldKey,
    FieldViolation,
    InvoiceDraftRecord,
    ReconcileRequest,
)
from .scoring import confidence_level, extraction_stats


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="Invoice Reconciliation API",
    description="""
    Invoice field extraction & reconciliation API.

    ## Features

    - **Extract**: Upload a PDF invoice and get scored, per-field extraction results
    - **Reconcile**: Auto-accept confident fields, apply reviewer edits, and
      validate the draft into a final invoice record
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_job_manager() -> Optional[AnalysisJobManager]:
    """Remote analysis job manager, or None when AWS is not configured."""
    return build_job_manager()


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    remote_analysis: bool


class ExtractResponse(BaseModel):
    """Response for the /extract endpoint."""
    result: ExtractionResult
    stats: ExtractionStats
    confidence_level: str


class ReconcileResponse(BaseModel):
    """Response for the /reconcile endpoint."""
    accepted: bool
    record: Optional[InvoiceDraftRecord] = None
    violations: list[FieldViolation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    pending_fields: list[FieldKey] = Field(default_factory=list)
    overall_confidence: float


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(
    job_manager: Optional[AnalysisJobManager] = Depends(get_job_manager),
) -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status, version, and whether remote analysis is
    available.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__, remote_analysis=job_manager is not None)


@app.post(
    "/extract",
    response_model=ExtractResponse,
    tags=["Extraction"],
    summary="Extract fields from a PDF invoice",
)
async def extract_pdf(
    file: UploadFile = File(..., description="PDF invoice file"),
    job_manager: Optional[AnalysisJobManager] = Depends(get_job_manager),
) -> ExtractResponse:
    """
    Extract canonical invoice fields from an uploaded PDF.

    When remote analysis is configured the document is analysed by the
    service and text heuristics fill the gaps; if the remote job fails the
    request falls back to heuristics only.

    **Limitations:**
    - Maximum file size: 10MB
    - Supported formats: PDF only
    """
    filename = file.filename or "uploaded.pdf"
    if not filename.lower().endswith(".pdf") and file.content_type != "application/pdf":
        raise HTTPException(status_code=400, detail=f"{filename}: Not a PDF file")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail=f"{filename}: Empty file")
    if len(content) > MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"{filename}: File too large (max {MAX_UPLOAD_SIZE_MB}MB)",
        )

    result = await run_in_threadpool(
        extract_invoice_from_bytes,
        content,
        filename,
        job_manager,
        None,
        True,
    )
    return ExtractResponse(
        result=result,
        stats=extraction_stats(result.fields),
        confidence_level=confidence_level(result.overall_confidence),
    )


@app.post(
    "/reconcile",
    response_model=ReconcileResponse,
    tags=["Reconciliation"],
    summary="Reconcile an extraction result",
)
async def reconcile(request: ReconcileRequest) -> ReconcileResponse:
    """
    Turn an extraction result into a final invoice record.

    **Steps:**
    1. Fields at or above ``threshold`` are accepted automatically
    2. Fields listed in ``accept`` are accepted as extracted
    3. ``edits`` override values as manual entries
    4. The committed draft is validated; the record is returned when valid
    """
    session = ReconciliationSession(request.result)
    session.auto_accept(request.threshold)
    for key in request.accept:
        session.accept_field(key)
    for key, value in request.edits.items():
        session.edit_field(key, value)

    outcome = session.proceed()
    return ReconcileResponse(
        accepted=outcome.accepted,
        record=outcome.record,
        violations=outcome.violations,
        warnings=outcome.warnings,
        pending_fields=session.pending_fields(),
        overall_confidence=session.overall_confidence(),
    )


@app.get("/rules", tags=["System"])
async def list_rules():
    """
    List the field validation rules applied during reconciliation.
    """
    from .rules import FIELD_RULES, REQUIRED_FIELDS

    rules_by_category = {
        ViolationCode.REQUIRED.value: [
            {"code": f"{ViolationCode.REQUIRED.value}:{key.value}", "description": "Field must be present"}
            for key in REQUIRED_FIELDS
        ]
    }
    for rule in FIELD_RULES:
        rules_by_category.setdefault(rule.category.value, []).append(
            {"code": rule.code, "description": rule.description}
        )

    return {
        "total_rules": len(FIELD_RULES) + len(REQUIRED_FIELDS),
        "rules_by_category": rules_by_category,
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(ExtractionPipelineError)
async def pipeline_exception_handler(request, exc):
    """Remote analysis errors that were not recovered from."""
    logger.error(f"Remote analysis error: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc)},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"Invoice Reconciliation API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Invoice Reconciliation API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
