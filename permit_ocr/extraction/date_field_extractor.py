"""Document date/field extraction orchestrator.

``DateFieldExtractor.extract`` gates the payload, runs the semantic (AI) pass,
then hands the AI output to ``combine``, which is network-free: it normalizes
the transcription, runs the pattern fallback for whatever the AI left empty,
and merges both with AI precedence.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from permit_ocr.extraction.exceptions import PayloadTooLarge, UnsupportedDocumentType
from permit_ocr.extraction.llm_extractor import DocumentLLMExtractor
from permit_ocr.extraction.models import AIExtraction, ExtractionResult
from permit_ocr.extraction.pattern_extractor import PatternFieldExtractor
from permit_ocr.extraction.result_merger import (
    ai_dates,
    ai_fields,
    merge_dates,
    merge_fields,
    missing_date_kinds,
    missing_fields,
)
from permit_ocr.normalization.text_normalizer import TextNormalizer
from permit_ocr.utils.config import Config, ExtractionConfig

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg", "application/x-pdf": "application/pdf"}


def canonical_mime_type(mime_type: str) -> str:
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(base, base)


class DateFieldExtractor:
    """Turn document bytes into typed dates and structured fields."""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        *,
        llm_extractor: Optional[DocumentLLMExtractor] = None,
        pattern_extractor: Optional[PatternFieldExtractor] = None,
        normalizer: Optional[TextNormalizer] = None,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.llm_extractor = llm_extractor or DocumentLLMExtractor(
            self.config.llm, prompts_path=self.config.prompts_file, sleep_fn=sleep_fn
        )
        self.pattern_extractor = pattern_extractor or PatternFieldExtractor(
            self.config.patterns_file,
            confidence=self.config.pattern_confidence,
            excerpt_length=self.config.excerpt_length,
        )
        self.normalizer = normalizer or TextNormalizer.from_file(self.config.normalization_rules_file)

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "DateFieldExtractor":
        extraction = config.extraction.model_copy(update={"llm": config.llm_settings()})
        return cls(extraction, **kwargs)

    def extract(
        self,
        content: bytes,
        mime_type: str,
        title_hint: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract dates and fields from one document.

        Args:
            content: Raw document bytes (image or PDF).
            mime_type: MIME type of ``content``.
            title_hint: Optional document title passed to the AI as context.

        Returns:
            Merged ``ExtractionResult``; partial results are normal.

        Raises:
            PayloadTooLarge: ``content`` exceeds the configured ceiling.
            UnsupportedDocumentType: ``mime_type`` is not an accepted image/PDF type.
            RateLimited, QuotaExhausted, UpstreamError: rejected by the AI endpoint.
            TransientUpstream: the AI endpoint kept failing after all retries.
        """
        mime_type = self._check_payload(content, mime_type)

        logger.info(
            "Extracting document dates",
            mime_type=mime_type,
            size=len(content),
            title=title_hint,
        )
        extraction = self.llm_extractor.extract(content, mime_type, title_hint)
        return self.combine(extraction)

    def combine(self, extraction: AIExtraction) -> ExtractionResult:
        """Merge an AI extraction with the pattern fallback over its transcription."""
        text = self.normalizer.normalize(extraction.raw_text)

        primary_dates = ai_dates(
            extraction,
            confidence=self.config.ai_confidence,
            excerpt_length=self.config.excerpt_length,
        )
        fallback_dates = self.pattern_extractor.extract_dates(text, missing_date_kinds(primary_dates))

        primary_fields = ai_fields(extraction)
        fallback_fields = self.pattern_extractor.extract_fields(text, missing_fields(primary_fields))

        dates = merge_dates(primary_dates, fallback_dates)
        fields = merge_fields(primary_fields, fallback_fields)

        candidates = []
        if self.config.collect_candidates:
            candidates = self.pattern_extractor.find_candidates(text, exclude={d.date for d in dates})

        result = ExtractionResult(
            dates=dates,
            fields=fields,
            raw_text=extraction.raw_text,
            candidates=candidates,
            source="empty" if extraction.is_empty() else "ai",
        )

        logger.success(
            f"Extracted {len(dates)} dates and {len(fields.populated())} fields",
            from_ai=sum(1 for d in dates if d.provenance == "ai"),
            candidates=len(candidates),
        )
        return result

    def _check_payload(self, content: bytes, mime_type: str) -> str:
        size = len(content)
        if size > self.config.max_payload_bytes:
            logger.warning(
                "Document too large for AI extraction",
                size=size,
                limit=self.config.max_payload_bytes,
            )
            raise PayloadTooLarge(size, self.config.max_payload_bytes)

        canonical = canonical_mime_type(mime_type)
        if canonical not in self.config.allowed_mime_types:
            raise UnsupportedDocumentType(mime_type)
        return canonical


def guess_mime_type(path: Path | str) -> str:
    """MIME type for a local document path, by suffix."""
    suffix = Path(path).suffix.lower()
    return {
        ".pdf": "application/pdf",
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".webp": "image/webp",
        ".gif": "image/gif",
    }.get(suffix, "application/octet-stream")
