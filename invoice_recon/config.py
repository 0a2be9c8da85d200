"""
Configuration constants and enums for the invoice reconciliation pipeline.
"""

import logging
import os
from enum import Enum
from typing import Final


def _csv_env(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


# ============================================================================
# Supported Currencies
# ============================================================================

SUPPORTED_CURRENCIES: Final[set[str]] = {
    "AED",  # UAE Dirham
    "USD",  # US Dollar
    "EUR",  # Euro
    "SAR",  # Saudi Riyal
    "QAR",  # Qatari Riyal
}

# Symbols seen on invoices, mapped to ISO codes
CURRENCY_SYMBOLS: Final[dict[str, str]] = {
    "€": "EUR",
    "$": "USD",
    "د.إ": "AED",
    "﷼": "SAR",
}

# ============================================================================
# Date Formats
# ============================================================================

# Month-name formats tried before falling back to dateutil
DATE_FORMATS: Final[list[str]] = [
    "%B %d, %Y",     # Long format: January 15, 2024
    "%b %d, %Y",     # Short month: Jan 15, 2024
    "%d %B %Y",      # European long: 15 January 2024
    "%d %b %Y",      # European short: 15 Jan 2024
    "%d-%b-%Y",      # 15-Jan-2024
]

# Order used for numeric dates where both components are <= 12
AMBIGUOUS_DATE_ORDER: Final[str] = os.getenv("AMBIGUOUS_DATE_ORDER", "MDY").upper()

DEFAULT_PAYMENT_TERM_DAYS: Final[int] = int(os.getenv("DEFAULT_PAYMENT_TERM_DAYS", "30"))

# ============================================================================
# Confidence
# ============================================================================

# Heuristic tiers sit below what the remote analysis service reports
HEURISTIC_CONFIDENCE_KNOWN: Final[float] = 90.0
HEURISTIC_CONFIDENCE_SPECIFIC: Final[float] = 85.0
HEURISTIC_CONFIDENCE_LABELLED: Final[float] = 75.0
HEURISTIC_CONFIDENCE_GENERIC: Final[float] = 60.0

# Confidence given to values derived from other fields
DERIVED_TERM_CONFIDENCE: Final[float] = 50.0

AUTO_ACCEPT_THRESHOLD: Final[float] = float(os.getenv("AUTO_ACCEPT_THRESHOLD", "95"))

HIGH_CONFIDENCE: Final[float] = 95.0
MEDIUM_CONFIDENCE: Final[float] = 70.0

# Amounts above this raise a reconciliation warning
LARGE_AMOUNT_WARNING: Final[float] = float(os.getenv("LARGE_AMOUNT_WARNING", "1000000"))

RAW_TEXT_LIMIT: Final[int] = int(os.getenv("RAW_TEXT_LIMIT", "5000"))

# ============================================================================
# Known Parties
# ============================================================================

KNOWN_CUSTOMERS: Final[list[str]] = _csv_env("KNOWN_CUSTOMERS")
KNOWN_VENDORS: Final[list[str]] = _csv_env("KNOWN_VENDORS")

# ============================================================================
# Remote Analysis Jobs
# ============================================================================

POLL_INITIAL_SECONDS: Final[float] = float(os.getenv("POLL_INITIAL_MS", "500")) / 1000
POLL_MULTIPLIER: Final[float] = float(os.getenv("POLL_MULTIPLIER", "1.5"))
POLL_MAX_SECONDS: Final[float] = float(os.getenv("POLL_MAX_MS", "3000")) / 1000
POLL_TIMEOUT_SECONDS: Final[float] = float(os.getenv("POLL_TIMEOUT_MS", "90000")) / 1000

MAX_CONCURRENT_JOBS: Final[int] = int(os.getenv("MAX_CONCURRENT_JOBS", "20"))

AWS_REGION: Final[str] = os.getenv("AWS_REGION", "us-east-1")
AWS_S3_BUCKET_NAME: Final[str] = os.getenv("AWS_S3_BUCKET_NAME", "")
AWS_S3_KEY_PREFIX: Final[str] = os.getenv("AWS_S3_KEY_PREFIX", "invoices/")

# ============================================================================
# Validation Codes
# ============================================================================

class ViolationCode(str, Enum):
    """Categories for field violation codes."""
    REQUIRED = "required"
    PENDING = "pending"
    FORMAT = "format"
    VALUE = "value"


# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_recon")


logger = setup_logging()
