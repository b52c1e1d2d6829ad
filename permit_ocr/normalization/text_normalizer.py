"""OCR text normalization applied before fallback pattern matching.

AI transcriptions of scanned letters frequently contain full-width digits and
punctuation, zero-width characters, and spaces inserted between every CJK
glyph (``發 文 日 期``). Patterns are written against the cleaned form.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path
from typing import Dict, List

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

_CJK = "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff"
_GAP = "[ \t\u3000]+"
_CJK_GAP_RE = re.compile(f"(?<=[{_CJK}]){_GAP}(?=[{_CJK}])")
_DIGIT_GAP_RE = re.compile(f"(?<=[{_CJK}]){_GAP}(?=[0-9])|(?<=[0-9]){_GAP}(?=[{_CJK}])")
_SPACE_RUN_RE = re.compile(_GAP)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class TextNormalizationRules(BaseModel):
    """Normalization rule set, optionally overridden from YAML."""

    model_config = ConfigDict(extra="ignore")

    unicode_form: str = "NFKC"
    strip_characters: List[str] = Field(
        default_factory=lambda: ["\u200b", "\u200c", "\u200d", "\ufeff"]
    )
    punctuation_replacements: Dict[str, str] = Field(
        default_factory=lambda: {
            "\u2013": "-",
            "\u2014": "-",
            "\u2212": "-",
            "\ufe63": "-",
            "\u3007": "0",
        }
    )
    remove_cjk_spaces: bool = True
    tighten_cjk_digits: bool = True
    collapse_whitespace: bool = True

    @classmethod
    def from_yaml(cls, rules_file: Path | str | None) -> "TextNormalizationRules":
        """Load rules from YAML, merging with defaults."""
        base = cls()
        if rules_file is None:
            return base

        rules_file = Path(rules_file)
        if not rules_file.exists():
            raise FileNotFoundError(f"Normalization rules file not found: {rules_file}")

        loaded = yaml.safe_load(rules_file.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Normalization rules must be a mapping/dict.")

        merged = base.model_dump()
        for key, value in loaded.items():
            if key not in merged:
                continue
            if isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return cls(**merged)

    @field_validator("unicode_form")
    @classmethod
    def _validate_unicode_form(cls, value: str) -> str:
        valid_forms = {"NFC", "NFD", "NFKC", "NFKD"}
        upper_value = value.upper()
        if upper_value not in valid_forms:
            raise ValueError(f"Invalid unicode_form '{value}'. Must be one of {valid_forms}.")
        return upper_value


class TextNormalizer:
    """Clean transcribed document text for deterministic matching."""

    def __init__(self, rules: TextNormalizationRules | None = None) -> None:
        self.rules = rules or TextNormalizationRules()

    @classmethod
    def from_file(cls, rules_file: Path | str | None) -> "TextNormalizer":
        rules = TextNormalizationRules.from_yaml(rules_file)
        if rules_file:
            logger.debug("Loaded text normalization rules", path=str(rules_file))
        return cls(rules)

    def normalize(self, text: str) -> str:
        if not text:
            return ""

        rules = self.rules
        result = unicodedata.normalize(rules.unicode_form, text)
        result = result.replace("\r\n", "\n").replace("\r", "\n")

        for char in rules.strip_characters:
            result = result.replace(char, "")
        for source, target in rules.punctuation_replacements.items():
            result = result.replace(source, target)

        if rules.remove_cjk_spaces:
            result = _CJK_GAP_RE.sub("", result)
        if rules.tighten_cjk_digits:
            result = _DIGIT_GAP_RE.sub("", result)
        if rules.collapse_whitespace:
            lines = [_SPACE_RUN_RE.sub(" ", line).strip() for line in result.split("\n")]
            result = _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()

        return result
