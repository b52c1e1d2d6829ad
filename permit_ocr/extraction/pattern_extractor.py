"""Regex-based fallback extraction over transcribed document text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import yaml
from loguru import logger

from permit_ocr.extraction.date_normalizer import (
    DATE_FRAGMENT,
    DELIMITED_DATE_RE,
    ROC_DATE_RE,
    YMD_CJK_RE,
    normalize_date,
)
from permit_ocr.extraction.field_rules import FIELD_RULES, coerce_field
from permit_ocr.extraction.models import TYPED_DATE_KINDS, DateKind, ExtractedDate, ExtractedFields

_DATE_PLACEHOLDER = "{date}"


@dataclass(frozen=True)
class NamedPattern:
    """A compiled pattern and the name recorded as provenance."""

    name: str
    regex: re.Pattern[str]

    @property
    def provenance(self) -> str:
        return f"pattern:{self.name}"


def excerpt_around(text: str, start: int, end: int, limit: int = 60) -> str:
    """Return at most ``limit`` characters of whitespace-collapsed context around a span."""
    span = max(end - start, 0)
    if span >= limit:
        window = text[start:end]
    else:
        pad = (limit - span) // 2
        window = text[max(0, start - pad) : min(len(text), end + pad)]
    return " ".join(window.split())[:limit]


class PatternFieldExtractor:
    """Extracts typed dates and structured fields using patterns defined in configuration."""

    def __init__(
        self,
        patterns_path: str | Path = "config/document_patterns.yaml",
        *,
        confidence: float = 0.85,
        excerpt_length: int = 60,
        keyword_window: int = 20,
    ) -> None:
        self.patterns_path = Path(patterns_path)
        self.confidence = confidence
        self.excerpt_length = excerpt_length
        self.keyword_window = keyword_window

        data = self._load_patterns(self.patterns_path)
        self.date_patterns = self._compile_dates(data.get("dates") or {})
        self.field_patterns = self._compile_fields(data.get("fields") or {})
        self.candidate_keywords = self._load_keywords(data.get("candidate_keywords") or {})

        logger.info(
            "Initialized PatternFieldExtractor",
            path=str(self.patterns_path),
            date_kinds=len(self.date_patterns),
            fields=len(self.field_patterns),
        )

    # -----------------------
    # Public API
    # -----------------------
    def extract_dates(
        self,
        text: str,
        kinds: Iterable[DateKind] = TYPED_DATE_KINDS,
    ) -> Dict[DateKind, ExtractedDate]:
        """Return the first normalizable match per requested kind."""
        found: Dict[DateKind, ExtractedDate] = {}
        if not text:
            return found

        for kind in kinds:
            for pattern in self.date_patterns.get(kind, []):
                extracted = self._first_date_match(text, kind, pattern)
                if extracted:
                    found[kind] = extracted
                    break
        return found

    def extract_fields(self, text: str, names: Optional[Iterable[str]] = None) -> ExtractedFields:
        """Resolve each requested field from its ordered pattern list."""
        fields = ExtractedFields()
        if not text:
            return fields

        wanted = list(names) if names is not None else list(self.field_patterns)
        for name in wanted:
            for pattern in self.field_patterns.get(name, []):
                value = self._first_field_match(text, name, pattern)
                if value is not None:
                    setattr(fields, name, value)
                    fields.provenance[name] = pattern.provenance
                    break
        return fields

    def find_candidates(
        self,
        text: str,
        *,
        exclude: Optional[Set[str]] = None,
        limit: int = 20,
    ) -> List[ExtractedDate]:
        """Scan for every date in the text, classified by nearby keywords.

        Dates in ``exclude`` (ISO strings) and repeats are skipped. Results are
        ordered by confidence, then by position in the text.
        """
        if not text:
            return []

        seen: Set[str] = set(exclude or ())
        candidates: List[tuple[int, ExtractedDate]] = []

        for regex in (ROC_DATE_RE, YMD_CJK_RE, DELIMITED_DATE_RE):
            for match in regex.finditer(text):
                iso = normalize_date(match.group(0))
                if not iso or iso in seen:
                    continue
                seen.add(iso)

                kind, keyword = self._classify(text, match.start(), match.end())
                candidates.append(
                    (
                        match.start(),
                        ExtractedDate(
                            kind=kind,
                            date=iso,
                            surrounding_text=excerpt_around(
                                text, match.start(), match.end(), self.excerpt_length
                            ),
                            confidence=0.9 if keyword else 0.5,
                            provenance=f"keyword:{keyword}" if keyword else "scan",
                        ),
                    )
                )

        candidates.sort(key=lambda item: (-item[1].confidence, item[0]))
        return [candidate for _, candidate in candidates[:limit]]

    # -----------------------
    # Matching helpers
    # -----------------------
    def _first_date_match(
        self, text: str, kind: DateKind, pattern: NamedPattern
    ) -> Optional[ExtractedDate]:
        for match in pattern.regex.finditer(text):
            iso = normalize_date(match.group("date"))
            if not iso:
                logger.debug(
                    "Pattern matched but date did not normalize",
                    pattern=pattern.name,
                    raw=match.group("date"),
                )
                continue
            return ExtractedDate(
                kind=kind,
                date=iso,
                surrounding_text=excerpt_around(
                    text, match.start(), match.end(), self.excerpt_length
                ),
                confidence=self.confidence,
                provenance=pattern.provenance,
            )
        return None

    def _first_field_match(self, text: str, name: str, pattern: NamedPattern) -> Optional[Any]:
        for match in pattern.regex.finditer(text):
            value = coerce_field(name, match.group("value"))
            if value is not None:
                return value
            logger.debug(
                "Pattern matched but value failed validation",
                field=name,
                pattern=pattern.name,
                raw=match.group("value"),
            )
        return None

    def _classify(self, text: str, start: int, end: int) -> tuple[DateKind, Optional[str]]:
        nearby = text[max(0, start - self.keyword_window) : end + self.keyword_window]
        for kind in TYPED_DATE_KINDS:
            for keyword in self.candidate_keywords.get(kind, []):
                if keyword in nearby:
                    return kind, keyword
        return DateKind.UNKNOWN, None

    # -----------------------
    # Loading
    # -----------------------
    def _load_patterns(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise FileNotFoundError(f"Document patterns file not found: {path}")
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Patterns file root must be a mapping/dict: {path}")
        return data

    def _compile_dates(self, raw: Dict[str, Any]) -> Dict[DateKind, List[NamedPattern]]:
        compiled: Dict[DateKind, List[NamedPattern]] = {}
        for kind_name, entries in raw.items():
            kind = DateKind(kind_name)
            if kind not in TYPED_DATE_KINDS:
                raise ValueError(f"Date patterns are not allowed for kind: {kind_name}")
            patterns = []
            for entry in self._entries(entries, f"dates.{kind_name}"):
                if _DATE_PLACEHOLDER not in entry["pattern"]:
                    raise ValueError(f"Date pattern '{entry['name']}' lacks a {_DATE_PLACEHOLDER} placeholder")
                source = entry["pattern"].replace(_DATE_PLACEHOLDER, DATE_FRAGMENT)
                patterns.append(self._compile(entry["name"], source, required_group="date"))
            compiled[kind] = patterns
        return compiled

    def _compile_fields(self, raw: Dict[str, Any]) -> Dict[str, List[NamedPattern]]:
        compiled: Dict[str, List[NamedPattern]] = {}
        for field_name, entries in raw.items():
            if field_name not in FIELD_RULES:
                raise ValueError(f"Unknown field in patterns file: {field_name}")
            compiled[field_name] = [
                self._compile(entry["name"], entry["pattern"], required_group="value")
                for entry in self._entries(entries, f"fields.{field_name}")
            ]
        return compiled

    def _load_keywords(self, raw: Dict[str, Any]) -> Dict[DateKind, List[str]]:
        return {DateKind(kind): [str(k) for k in keywords or []] for kind, keywords in raw.items()}

    def _entries(self, entries: Any, where: str) -> Sequence[Dict[str, str]]:
        if not isinstance(entries, list):
            raise ValueError(f"Expected a list of patterns under '{where}'")
        for entry in entries:
            if not isinstance(entry, dict) or "name" not in entry or "pattern" not in entry:
                raise ValueError(f"Each pattern under '{where}' needs 'name' and 'pattern'")
        return entries

    def _compile(self, name: str, source: str, *, required_group: str) -> NamedPattern:
        try:
            regex = re.compile(source, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{name}': {e}") from e
        if required_group not in regex.groupindex:
            raise ValueError(f"Pattern '{name}' must define a named group '{required_group}'")
        return NamedPattern(name=name, regex=regex)
