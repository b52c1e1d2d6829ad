"""Batch date extraction over many stored documents.

Documents are fetched through a caller-supplied ``DocumentSource`` (the host
application's Drive/object-store reader), so this module never handles
credentials. A failure on one document is recorded on its task and the batch
continues.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Literal, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from permit_ocr.extraction.date_field_extractor import DateFieldExtractor
from permit_ocr.extraction.exceptions import ExtractionError
from permit_ocr.extraction.models import ExtractionResult
from permit_ocr.utils.config import PipelineConfig

TaskStatus = Literal["success", "error", "skipped", "review"]


class DocumentRef(BaseModel):
    """A stored document that may need its dates extracted."""

    document_id: str
    title: str = ""
    project_code: str = ""
    has_file: bool = True
    has_submitted_at: bool = False
    has_issued_at: bool = False

    @property
    def needs_extraction(self) -> bool:
        return self.has_file and not (self.has_submitted_at and self.has_issued_at)


# Returns (content, mime_type) for a document.
DocumentSource = Callable[[DocumentRef], Tuple[bytes, str]]


class DocumentTask(BaseModel):
    """Outcome of one document in a batch."""

    document_id: str
    title: str = ""
    project_code: str = ""
    status: TaskStatus
    error: Optional[str] = None
    error_code: Optional[str] = None
    result: Optional[ExtractionResult] = None
    processing_time: float = 0.0


class BatchReport(BaseModel):
    """Per-document outcomes plus totals."""

    tasks: List[DocumentTask] = Field(default_factory=list)

    def count(self, status: TaskStatus) -> int:
        return sum(1 for task in self.tasks if task.status == status)

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def has_errors(self) -> bool:
        return self.count("error") > 0

    def summary(self) -> str:
        return (
            f"Batch Report: {self.total} documents, "
            f"{self.count('success')} success, "
            f"{self.count('review')} review, "
            f"{self.count('error')} error, "
            f"{self.count('skipped')} skipped."
        )


class BatchExtractionPipeline:
    """Run ``DateFieldExtractor`` over a batch with bounded concurrency."""

    def __init__(
        self,
        extractor: DateFieldExtractor,
        source: DocumentSource,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.extractor = extractor
        self.source = source
        self.config = config or PipelineConfig()

    def run(self, documents: Sequence[DocumentRef]) -> BatchReport:
        """Process eligible documents and report on every input document."""
        # Keyed by input position; document ids may repeat.
        outcomes: Dict[int, DocumentTask] = {}
        eligible: List[Tuple[int, DocumentRef]] = []

        for index, document in enumerate(documents):
            if not document.has_file:
                outcomes[index] = self._skipped(document, "no stored file")
            elif not document.needs_extraction:
                outcomes[index] = self._skipped(document, "dates already present")
            elif len(eligible) >= self.config.max_batch_size:
                outcomes[index] = self._skipped(document, "batch size limit reached")
            else:
                eligible.append((index, document))

        logger.info(
            f"Processing batch of {len(eligible)} documents",
            skipped=len(outcomes),
            max_workers=self.config.max_workers,
        )

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {executor.submit(self.process_document, doc): index for index, doc in eligible}
            for done, future in enumerate(as_completed(futures), start=1):
                task = future.result()
                outcomes[futures[future]] = task
                logger.info(
                    f"Progress: {done}/{len(eligible)} processed",
                    document_id=task.document_id,
                    status=task.status,
                )

        report = BatchReport(tasks=[outcomes[index] for index in range(len(documents))])
        logger.info(report.summary())
        return report

    def process_document(self, document: DocumentRef) -> DocumentTask:
        """Fetch and extract one document; errors are captured on the task."""
        started = time.monotonic()
        base = {
            "document_id": document.document_id,
            "title": document.title,
            "project_code": document.project_code,
        }
        try:
            content, mime_type = self.source(document)
            result = self.extractor.extract(content, mime_type, title_hint=document.title or None)
        except ExtractionError as exc:
            logger.warning(
                f"Extraction failed for document {document.document_id}",
                error_code=exc.error_code,
                error=exc.message,
            )
            return DocumentTask(
                **base,
                status="error",
                error=exc.user_message,
                error_code=exc.error_code,
                processing_time=time.monotonic() - started,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Document processing failed for {document.document_id}: {exc}")
            return DocumentTask(
                **base,
                status="error",
                error=str(exc),
                error_code="processing_failed",
                processing_time=time.monotonic() - started,
            )

        status: TaskStatus = "success"
        if not result.dates and result.candidates:
            status = "review"
        return DocumentTask(
            **base,
            status=status,
            result=result,
            processing_time=time.monotonic() - started,
        )

    def _skipped(self, document: DocumentRef, reason: str) -> DocumentTask:
        return DocumentTask(
            document_id=document.document_id,
            title=document.title,
            project_code=document.project_code,
            status="skipped",
            error=reason,
        )
