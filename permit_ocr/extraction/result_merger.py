"""Merge semantic (AI) and pattern-fallback extraction results.

Rules:
- Dates are keyed by kind; at most one date per kind survives. An AI date that
  normalizes always wins, a fallback date only fills a kind the AI left empty.
- Fields are resolved independently per field name with the same precedence.
  AI values go through the field's validation rule first; an invalid AI value
  counts as absent.
- Provenance records the winner: ``ai`` or ``pattern:<name>``.
"""

from __future__ import annotations

from typing import Dict, List

from loguru import logger

from permit_ocr.extraction.date_normalizer import normalize_date
from permit_ocr.extraction.field_rules import AI_FIELD_NAMES, coerce_field
from permit_ocr.extraction.models import (
    TYPED_DATE_KINDS,
    AIExtraction,
    DateKind,
    ExtractedDate,
    ExtractedFields,
)
from permit_ocr.extraction.pattern_extractor import excerpt_around

AI_PROVENANCE = "ai"

_AI_DATE_ATTRS = {
    DateKind.SUBMISSION: "submission_date",
    DateKind.ISSUE: "issue_date",
    DateKind.METER_READING: "meter_date",
}


def ai_dates(
    extraction: AIExtraction,
    *,
    confidence: float = 0.95,
    excerpt_length: int = 60,
) -> Dict[DateKind, ExtractedDate]:
    """Normalize the AI's date attributes; unparseable values are dropped."""
    dates: Dict[DateKind, ExtractedDate] = {}
    for kind, attr in _AI_DATE_ATTRS.items():
        raw = getattr(extraction, attr)
        if not raw:
            continue
        iso = normalize_date(raw)
        if iso is None:
            logger.debug("Dropping AI date that did not normalize", kind=kind.value, raw=raw)
            continue
        dates[kind] = ExtractedDate(
            kind=kind,
            date=iso,
            surrounding_text=_locate(extraction.raw_text, raw, excerpt_length),
            confidence=confidence,
            provenance=AI_PROVENANCE,
        )
    return dates


def ai_fields(extraction: AIExtraction) -> ExtractedFields:
    """Validate the AI's field attributes into ``ExtractedFields``."""
    fields = ExtractedFields()
    for ai_name, field_name in AI_FIELD_NAMES.items():
        raw = getattr(extraction, ai_name)
        value = coerce_field(field_name, raw)
        if value is None:
            if raw:
                logger.debug("Dropping AI field that failed validation", field=field_name, raw=raw)
            continue
        setattr(fields, field_name, value)
        fields.provenance[field_name] = AI_PROVENANCE
    return fields


def missing_date_kinds(dates: Dict[DateKind, ExtractedDate]) -> List[DateKind]:
    return [kind for kind in TYPED_DATE_KINDS if kind not in dates]


def missing_fields(fields: ExtractedFields) -> List[str]:
    return [name for name in AI_FIELD_NAMES.values() if getattr(fields, name) is None]


def merge_dates(
    primary: Dict[DateKind, ExtractedDate],
    fallback: Dict[DateKind, ExtractedDate],
) -> List[ExtractedDate]:
    """Union keyed by kind, primary first, in submission/issue/meter order."""
    merged: List[ExtractedDate] = []
    for kind in TYPED_DATE_KINDS:
        chosen = primary.get(kind) or fallback.get(kind)
        if chosen is not None:
            merged.append(chosen)
    return merged


def merge_fields(primary: ExtractedFields, fallback: ExtractedFields) -> ExtractedFields:
    """Per-field union; primary values and their provenance win."""
    merged = ExtractedFields()
    for name in AI_FIELD_NAMES.values():
        for source in (primary, fallback):
            value = getattr(source, name)
            if value is not None:
                setattr(merged, name, value)
                merged.provenance[name] = source.provenance.get(name, "unknown")
                break
    return merged


def _locate(raw_text: str, needle: str, limit: int) -> str:
    """Excerpt around the AI's date string in the transcription, if present."""
    needle = needle.strip()
    index = raw_text.find(needle) if raw_text and needle else -1
    if index < 0:
        return " ".join(needle.split())[:limit]
    return excerpt_around(raw_text, index, index + len(needle), limit)

