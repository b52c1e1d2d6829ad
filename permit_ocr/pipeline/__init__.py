"""Pipeline orchestrators for batch workflows."""

from permit_ocr.pipeline.batch_pipeline import BatchExtractionPipeline, BatchReport, DocumentTask

__all__ = ["BatchExtractionPipeline", "BatchReport", "DocumentTask"]
