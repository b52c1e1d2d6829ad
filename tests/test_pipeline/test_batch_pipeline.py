from __future__ import annotations

import threading
from typing import Dict, List, Tuple

import pytest

from permit_ocr.extraction.date_field_extractor import DateFieldExtractor
from permit_ocr.extraction.exceptions import PayloadTooLarge, QuotaExhausted
from permit_ocr.extraction.models import AIExtraction
from permit_ocr.pipeline.batch_pipeline import BatchExtractionPipeline, DocumentRef
from permit_ocr.utils.config import ExtractionConfig, PipelineConfig


class _ScriptedLLM:
    """Answers per document body; thread-safe call log."""

    def __init__(self, answers: Dict[bytes, object]) -> None:
        self.answers = answers
        self.calls: List[bytes] = []
        self._lock = threading.Lock()

    def extract(self, content: bytes, mime_type: str, title_hint=None) -> AIExtraction:
        with self._lock:
            self.calls.append(content)
        answer = self.answers.get(content, AIExtraction())
        if isinstance(answer, Exception):
            raise answer
        return answer


def _source(document: DocumentRef) -> Tuple[bytes, str]:
    if document.document_id == "broken":
        raise ConnectionError("storage unavailable")
    return document.document_id.encode("utf-8"), "application/pdf"


def _pipeline(answers: Dict[bytes, object], **pipeline_config: int) -> Tuple[BatchExtractionPipeline, _ScriptedLLM]:
    llm = _ScriptedLLM(answers)
    extractor = DateFieldExtractor(ExtractionConfig(), llm_extractor=llm)
    return BatchExtractionPipeline(extractor, _source, PipelineConfig(**pipeline_config)), llm


def test_batch_reports_every_document_in_input_order() -> None:
    pipeline, llm = _pipeline(
        {
            b"doc-1": AIExtraction(issue_date="114年12月3日", raw_text="發文日期：114年12月3日"),
            b"doc-3": QuotaExhausted("credits exhausted", status_code=402),
        }
    )
    documents = [
        DocumentRef(document_id="doc-1", title="核准函"),
        DocumentRef(document_id="doc-2", has_file=False),
        DocumentRef(document_id="doc-3"),
        DocumentRef(document_id="doc-4", has_submitted_at=True, has_issued_at=True),
        DocumentRef(document_id="broken"),
    ]

    report = pipeline.run(documents)

    assert [task.document_id for task in report.tasks] == ["doc-1", "doc-2", "doc-3", "doc-4", "broken"]
    assert [task.status for task in report.tasks] == ["success", "skipped", "error", "skipped", "error"]
    assert report.tasks[0].result.dates[0].date == "2025-12-03"
    assert report.tasks[1].error == "no stored file"
    assert report.tasks[2].error_code == "quota_exhausted"
    assert report.tasks[2].error == "AI 服務額度已用完"
    assert report.tasks[3].error == "dates already present"
    assert report.tasks[4].error_code == "processing_failed"
    assert report.has_errors
    assert report.count("skipped") == 2
    assert sorted(llm.calls) == [b"doc-1", b"doc-3"]


def test_documents_missing_one_date_are_eligible() -> None:
    pipeline, llm = _pipeline({})

    report = pipeline.run([DocumentRef(document_id="doc-1", has_submitted_at=True)])

    assert report.tasks[0].status == "success"
    assert llm.calls == [b"doc-1"]


def test_batch_size_limit() -> None:
    pipeline, llm = _pipeline({}, max_batch_size=2, max_workers=2)
    documents = [DocumentRef(document_id=f"doc-{i}") for i in range(4)]

    report = pipeline.run(documents)

    assert [task.status for task in report.tasks] == ["success", "success", "skipped", "skipped"]
    assert report.tasks[3].error == "batch size limit reached"
    assert len(llm.calls) == 2


def test_candidates_without_typed_dates_need_review() -> None:
    pipeline, _ = _pipeline({b"doc-1": AIExtraction(raw_text="備註 114/09/01")})

    report = pipeline.run([DocumentRef(document_id="doc-1")])

    task = report.tasks[0]
    assert task.status == "review"
    assert task.result.dates == []
    assert task.result.candidates[0].date == "2025-09-01"


def test_process_document_captures_extraction_errors() -> None:
    pipeline, _ = _pipeline({})
    pipeline.extractor.config.max_payload_bytes = 1

    task = pipeline.process_document(DocumentRef(document_id="doc-1"))

    assert task.status == "error"
    assert task.error_code == PayloadTooLarge.error_code
    assert task.processing_time >= 0.0


def test_summary_counts() -> None:
    pipeline, _ = _pipeline({})

    report = pipeline.run([DocumentRef(document_id="doc-1"), DocumentRef(document_id="doc-2", has_file=False)])

    assert report.total == 2
    assert report.summary() == "Batch Report: 2 documents, 1 success, 0 review, 0 error, 1 skipped."


def test_pipeline_config_bounds() -> None:
    with pytest.raises(ValueError):
        PipelineConfig(max_workers=0)


def test_repeated_document_ids_keep_separate_tasks() -> None:
    pipeline, llm = _pipeline({b"doc-1": AIExtraction(issue_date="2025-12-03")})
    documents = [
        DocumentRef(document_id="doc-1"),
        DocumentRef(document_id="doc-1", has_file=False),
    ]

    report = pipeline.run(documents)

    assert [task.status for task in report.tasks] == ["success", "skipped"]
    assert report.tasks[0].result.dates[0].date == "2025-12-03"
    assert report.tasks[1].error == "no stored file"
    assert llm.calls == [b"doc-1"]
