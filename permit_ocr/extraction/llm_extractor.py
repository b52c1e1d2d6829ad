"""LLM-powered semantic extraction of document dates and fields.

The document is sent inline (base64) to a multimodal chat endpoint together
with a single tool definition; the model answers by "calling" the tool, which
gives us structured arguments instead of free text. OpenAI-compatible and
Anthropic endpoints are supported.

Error handling:
- HTTP 429 -> ``RateLimited`` and HTTP 402 -> ``QuotaExhausted``, raised at once.
- Every other failure is retried with exponential backoff: HTTP 502/503/504
  surface as ``TransientUpstream``, other HTTP statuses as ``UpstreamError``,
  and unclassified exceptions (timeouts, dropped connections) are wrapped in
  ``TransientUpstream`` once retries run out.
- The client is built before the first attempt, so a configuration error
  (missing credentials) is raised at once instead of being retried.
- A response with neither tool arguments nor text is logged and yields an
  empty ``AIExtraction``.
"""

from __future__ import annotations

import base64
import json
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from loguru import logger

from permit_ocr.extraction.exceptions import (
    ExtractionError,
    TransientUpstream,
    classify_status_error,
)
from permit_ocr.extraction.models import AIExtraction
from permit_ocr.utils.config import LLMConfig
from permit_ocr.utils.llm_client import create_anthropic_client, create_openai_client

PROMPT_KEY = "document_fields"


@dataclass
class LLMResponse:
    """Provider-neutral view of one completion."""

    tool_arguments: Optional[Dict[str, Any]] = None
    text: str = ""

    @property
    def is_malformed(self) -> bool:
        return not self.tool_arguments and not self.text.strip()


def build_tool_parameters() -> Dict[str, Any]:
    """JSON schema for the extraction tool, derived from ``AIExtraction``."""
    properties = {
        name: {"type": "string", "description": field.description or name}
        for name, field in AIExtraction.model_fields.items()
    }
    return {"type": "object", "properties": properties, "required": ["raw_text"]}


class DocumentLLMExtractor:
    """LLM extractor with provider switch, classified retries, and tool-call parsing."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        prompts_path: str | Path = "config/extraction_prompts.yaml",
        *,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config or LLMConfig()
        self.prompts_path = Path(prompts_path)
        self.prompt = self._load_prompt(self.prompts_path)
        self.tool_name = str(self.prompt.get("tool_name") or "record_document_fields")
        self.tool_description = str(self.prompt.get("tool_description") or "").strip()
        self._sleep = sleep_fn or time.sleep
        self._client: Any = None
        self._client_lock = threading.Lock()

        logger.info(
            "Initialized DocumentLLMExtractor",
            provider=self.config.provider,
            model=self.config.model,
            prompts=str(self.prompts_path),
        )

    # -----------------------
    # Public API
    # -----------------------
    def extract(
        self,
        content: bytes,
        mime_type: str,
        title_hint: Optional[str] = None,
    ) -> AIExtraction:
        """Run the semantic pass over one document."""
        system, user = self._render_prompt(mime_type=mime_type, title_hint=title_hint)
        document_b64 = base64.b64encode(content).decode("ascii")

        response = self._call_llm(
            system=system, user=user, document_b64=document_b64, mime_type=mime_type
        )
        return self._parse_response(response)

    # -----------------------
    # Prompt handling
    # -----------------------
    def _load_prompt(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Extraction prompt template not found: {path}")
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Prompt template root must be a mapping/dict: {path}")
        if PROMPT_KEY not in data:
            raise KeyError(f"Prompt key not found in template: {PROMPT_KEY}")
        return data[PROMPT_KEY] or {}

    def _render_prompt(self, *, mime_type: str, title_hint: Optional[str]) -> Tuple[str, str]:
        system = str(self.prompt.get("system", "")).strip()
        user_template = str(self.prompt.get("user_template", "{title_hint}"))
        context = {"mime_type": mime_type, "title_hint": (title_hint or "").strip() or "(none)"}
        try:
            user = user_template.format(**context)
        except KeyError as exc:
            raise KeyError(f"Missing placeholder '{exc.args[0]}' in prompt context for '{PROMPT_KEY}'")
        return system, user.strip()

    # -----------------------
    # LLM invocation
    # -----------------------
    def _call_llm(self, *, system: str, user: str, document_b64: str, mime_type: str) -> LLMResponse:
        attempts = self.config.max_retries + 1
        last_error: Exception | None = None

        logger.info(f"Calling LLM for document extraction using {self.config.provider}: {self.config.model}")
        self._get_client()

        for attempt in range(1, attempts + 1):
            try:
                if self.config.provider == "anthropic":
                    return self._call_anthropic(
                        system=system, user=user, document_b64=document_b64, mime_type=mime_type
                    )
                return self._call_openai(
                    system=system, user=user, document_b64=document_b64, mime_type=mime_type
                )
            except ExtractionError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
            except Exception as exc:  # noqa: BLE001
                classified = classify_status_error(exc)
                if classified is not None and not classified.retryable:
                    logger.warning(
                        "LLM request rejected",
                        status=classified.status_code,
                        error_code=classified.error_code,
                    )
                    raise classified from exc
                if classified is not None:
                    classified.__cause__ = exc
                last_error = classified or exc

            logger.warning(
                "LLM request failed",
                attempt=attempt,
                max_attempts=attempts,
                error=str(last_error),
            )
            if attempt >= attempts:
                break
            backoff = self.config.backoff_base_seconds * 2 ** (attempt - 1)
            self._sleep(backoff)

        if isinstance(last_error, ExtractionError):
            raise last_error
        raise TransientUpstream(
            f"LLM request failed after {attempts} attempts: {last_error}"
        ) from last_error

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        with self._client_lock:
            if self._client is None:
                if self.config.provider == "anthropic":
                    self._client = create_anthropic_client(
                        api_key=self.config.api_key,
                        base_url=self.config.base_url,
                        timeout=self.config.timeout,
                    )
                else:
                    self._client = create_openai_client(
                        api_key=self.config.api_key,
                        base_url=self.config.base_url,
                        timeout=self.config.timeout,
                    )
        return self._client

    def _call_openai(self, *, system: str, user: str, document_b64: str, mime_type: str) -> LLMResponse:
        data_url = f"data:{mime_type};base64,{document_b64}"
        if mime_type == "application/pdf":
            document_part: Dict[str, Any] = {
                "type": "file",
                "file": {"filename": "document.pdf", "file_data": data_url},
            }
        else:
            document_part = {"type": "image_url", "image_url": {"url": data_url}}

        response = self._get_client().chat.completions.create(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            timeout=self.config.timeout,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": [{"type": "text", "text": user}, document_part]},
            ],
            tools=[
                {
                    "type": "function",
                    "function": {
                        "name": self.tool_name,
                        "description": self.tool_description,
                        "parameters": build_tool_parameters(),
                    },
                }
            ],
            tool_choice={"type": "function", "function": {"name": self.tool_name}},
        )

        if not getattr(response, "choices", None):
            return LLMResponse()
        message = response.choices[0].message

        arguments: Optional[Dict[str, Any]] = None
        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            if function is None or function.name != self.tool_name:
                continue
            parsed = self._extract_json(function.arguments or "")
            if isinstance(parsed, dict):
                arguments = parsed
                break

        content = message.content
        if isinstance(content, list):
            parts = []
            for item in content:
                if isinstance(item, dict):
                    parts.append(str(item.get("text", "")))
                else:
                    parts.append(str(item))
            content = "\n".join(parts)
        return LLMResponse(tool_arguments=arguments, text=str(content or "").strip())

    def _call_anthropic(self, *, system: str, user: str, document_b64: str, mime_type: str) -> LLMResponse:
        source = {"type": "base64", "media_type": mime_type, "data": document_b64}
        block_type = "document" if mime_type == "application/pdf" else "image"

        message = self._get_client().messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            timeout=self.config.timeout,
            system=system,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": block_type, "source": source},
                        {"type": "text", "text": user},
                    ],
                }
            ],
            tools=[
                {
                    "name": self.tool_name,
                    "description": self.tool_description,
                    "input_schema": build_tool_parameters(),
                }
            ],
            tool_choice={"type": "tool", "name": self.tool_name},
        )

        arguments: Optional[Dict[str, Any]] = None
        parts: List[str] = []
        for block in getattr(message, "content", None) or []:
            block_kind = getattr(block, "type", None)
            if block_kind == "tool_use" and getattr(block, "name", None) == self.tool_name:
                payload = getattr(block, "input", None)
                if isinstance(payload, dict):
                    arguments = payload
            elif block_kind == "text":
                parts.append(getattr(block, "text", ""))
        return LLMResponse(tool_arguments=arguments, text="\n".join(parts).strip())

    # -----------------------
    # Parsing helpers
    # -----------------------
    def _parse_response(self, response: LLMResponse) -> AIExtraction:
        if response.is_malformed:
            logger.warning("LLM response had neither a tool result nor text; nothing extracted")
            return AIExtraction()

        if response.tool_arguments:
            return self._to_extraction(response.tool_arguments, fallback_text=response.text)

        data = self._extract_json(response.text)
        if isinstance(data, dict):
            return self._to_extraction(data, fallback_text="")

        # Plain prose: keep it as transcription so the pattern pass can use it.
        logger.debug("LLM answered without tool call; using text as transcription")
        return AIExtraction(raw_text=response.text)

    def _to_extraction(self, data: Dict[str, Any], *, fallback_text: str) -> AIExtraction:
        cleaned: Dict[str, Any] = {}
        for name, field in AIExtraction.model_fields.items():
            value = data.get(name, data.get(field.alias or name))
            if value is None or isinstance(value, (dict, list)):
                continue
            text = str(value).strip()
            if text and text.lower() not in ("null", "none", "n/a"):
                cleaned[name] = text

        if not cleaned.get("raw_text") and fallback_text:
            cleaned["raw_text"] = fallback_text
        return AIExtraction.model_validate(cleaned)

    def _extract_json(self, text: str) -> Any:
        if not text:
            return None

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        match = re.search(r"(\{.*\})", text, flags=re.DOTALL)
        if not match:
            return None

        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            return None
