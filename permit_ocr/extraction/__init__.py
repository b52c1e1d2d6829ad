"""Extraction package exports."""

from permit_ocr.extraction.date_field_extractor import DateFieldExtractor
from permit_ocr.extraction.date_normalizer import normalize_date
from permit_ocr.extraction.exceptions import (
    ExtractionError,
    PayloadTooLarge,
    QuotaExhausted,
    RateLimited,
    TransientUpstream,
    UnsupportedDocumentType,
    UpstreamError,
)
from permit_ocr.extraction.llm_extractor import DocumentLLMExtractor
from permit_ocr.extraction.models import (
    AIExtraction,
    DateKind,
    ExtractedDate,
    ExtractedFields,
    ExtractionResult,
)
from permit_ocr.extraction.pattern_extractor import PatternFieldExtractor

__all__ = [
    "AIExtraction",
    "DateFieldExtractor",
    "DateKind",
    "DocumentLLMExtractor",
    "ExtractedDate",
    "ExtractedFields",
    "ExtractionError",
    "ExtractionResult",
    "PatternFieldExtractor",
    "PayloadTooLarge",
    "QuotaExhausted",
    "RateLimited",
    "TransientUpstream",
    "UnsupportedDocumentType",
    "UpstreamError",
    "normalize_date",
]
