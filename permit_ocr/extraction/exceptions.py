"""Failure taxonomy for document date/field extraction.

Each exception carries a stable ``error_code`` for logging/analytics and a
``user_message`` the host application can show as-is. ``retryable`` marks the
classes the LLM call loop retries with backoff.
"""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for extraction domain errors."""

    error_code: str = "extraction_failed"
    user_message: str = "文件辨識失敗，請稍後再試"
    retryable: bool = False

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.error_code
        self.status_code = status_code
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class PayloadTooLarge(ExtractionError):
    """Document exceeds the upload ceiling."""

    error_code = "payload_too_large"
    user_message = "檔案過大，請手動輸入日期"

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Document is {size} bytes; limit is {limit} bytes")


class UnsupportedDocumentType(ExtractionError):
    """Document MIME type is not an accepted image or PDF type."""

    error_code = "unsupported_type"
    user_message = "不支援的檔案格式，請上傳圖片或 PDF"

    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        super().__init__(f"Unsupported document type: {mime_type!r}")


class RateLimited(ExtractionError):
    """Upstream AI endpoint rejected the call with HTTP 429."""

    error_code = "rate_limited"
    user_message = "請求過於頻繁，請稍後再試"


class QuotaExhausted(ExtractionError):
    """Upstream AI endpoint reported exhausted credits (HTTP 402)."""

    error_code = "quota_exhausted"
    user_message = "AI 服務額度已用完"


class TransientUpstream(ExtractionError):
    """Upstream AI endpoint failed with a gateway error (HTTP 502/503/504)."""

    error_code = "transient_upstream"
    retryable = True


class UpstreamError(ExtractionError):
    """Upstream AI endpoint kept returning an error status."""

    error_code = "upstream_error"
    retryable = True


RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


def classify_status_error(exc: BaseException) -> ExtractionError | None:
    """Map an SDK HTTP status error onto the extraction taxonomy.

    Works for any exception exposing ``status_code`` (OpenAI and Anthropic
    ``APIStatusError``). Returns ``None`` for exceptions without a status.
    """
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        return None

    detail = str(exc) or f"HTTP {status}"
    if status == 429:
        return RateLimited(detail, status_code=status)
    if status == 402:
        return QuotaExhausted(detail, status_code=status)
    if status in RETRYABLE_STATUS_CODES:
        return TransientUpstream(detail, status_code=status)
    return UpstreamError(detail, status_code=status)
