"""Normalization package."""

from permit_ocr.normalization.text_normalizer import TextNormalizationRules, TextNormalizer

__all__ = ["TextNormalizationRules", "TextNormalizer"]
