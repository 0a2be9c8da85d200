"""
Confidence scoring.
"""

from typing import Iterable, Union

from .config import HIGH_CONFIDENCE, MEDIUM_CONFIDENCE
from .schemas import ExtractedField, ExtractionStats, FieldKey


def mean_confidence(confidences: Iterable[float]) -> float:
    """Arithmetic mean clamped to 0..100 and rounded to one decimal; 0 for none."""
    values = list(confidences)
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return round(max(0.0, min(100.0, mean)), 1)


def score(fields: Union[dict[FieldKey, ExtractedField], Iterable[ExtractedField]]) -> float:
    """
    Aggregate confidence for a set of fields.

    The mean over populated fields only; 0 when nothing was extracted.
    Always within 0..100.
    """
    items = fields.values() if isinstance(fields, dict) else fields
    return mean_confidence(item.confidence for item in items if item.value is not None)


def confidence_level(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def stats_for(confidences: Iterable[float]) -> ExtractionStats:
    """Count confidences per level against the full set of canonical fields."""
    levels = [confidence_level(value) for value in confidences]
    return ExtractionStats(
        total_fields=len(FieldKey),
        extracted_fields=len(levels),
        high_confidence_fields=levels.count("high"),
        medium_confidence_fields=levels.count("medium"),
        low_confidence_fields=levels.count("low"),
    )


def extraction_stats(fields: dict[FieldKey, ExtractedField]) -> ExtractionStats:
    return stats_for(item.confidence for item in fields.values() if item.value is not None)
