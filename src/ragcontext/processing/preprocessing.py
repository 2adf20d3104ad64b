"""Text normalization applied before chunking and embedding."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

MIN_USABLE_LENGTH = 10

_SPACE_CHARS = re.compile(r"[\t\x0b\x0c\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]")
_SPACE_RUN = re.compile(r" {2,}")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_REPEATED_PUNCTUATION = re.compile(r"([.!?,;:\-])\1+")

_SMART_PUNCTUATION = str.maketrans(
    {
        "\u201c": '"',
        "\u201d": '"',
        "\u2018": "'",
        "\u2019": "'",
        "\u2013": "-",
        "\u2014": "-",
        "\u2015": "-",
        "\u2026": "...",
    }
)
_REMAINING_QUOTES = str.maketrans(
    {
        "\u201e": '"',
        "\u201f": '"',
        "\u00ab": '"',
        "\u00bb": '"',
        "\u2033": '"',
        "\u201a": "'",
        "\u201b": "'",
        "\u2039": "'",
        "\u203a": "'",
        "\u2032": "'",
    }
)


@dataclass(frozen=True)
class PreprocessingStats:
    original_length: int
    processed_length: int
    reduction_percentage: float
    original_lines: int
    processed_lines: int


class TextPreprocessor:
    """Deterministic, idempotent cleanup of extracted document text."""

    def preprocess(self, text: str) -> str:
        processed = self._normalize_whitespace(text)
        processed = self._normalize_line_breaks(processed)
        processed = self._clean_special_characters(processed)
        processed = processed.translate(_REMAINING_QUOTES)
        processed = self._remove_empty_lines(processed)
        LOGGER.debug("Preprocessed text: %d chars -> %d chars", len(text), len(processed))
        return processed

    def preprocess_for_embedding(self, text: str) -> str:
        """Stricter variant that also collapses repeated punctuation."""
        return _REPEATED_PUNCTUATION.sub(r"\1", self.preprocess(text))

    def validate(self, text: str) -> bool:
        if not text or not text.strip():
            LOGGER.warning("Preprocessed text is empty")
            return False
        if len(text) < MIN_USABLE_LENGTH:
            LOGGER.warning("Preprocessed text is too short (%d chars)", len(text))
            return False
        return True

    def stats(self, original: str, processed: str) -> PreprocessingStats:
        reduction = 0.0
        if original:
            reduction = (len(original) - len(processed)) / len(original) * 100
        return PreprocessingStats(
            original_length=len(original),
            processed_length=len(processed),
            reduction_percentage=reduction,
            original_lines=len(original.split("\n")),
            processed_lines=len(processed.split("\n")),
        )

    @staticmethod
    def _normalize_whitespace(text: str) -> str:
        return _SPACE_RUN.sub(" ", _SPACE_CHARS.sub(" ", text))

    @staticmethod
    def _normalize_line_breaks(text: str) -> str:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        return _EXCESS_NEWLINES.sub("\n\n", text)

    @staticmethod
    def _clean_special_characters(text: str) -> str:
        # Cc covers control characters, Cf zero-width joiners and the BOM.
        kept = "".join(
            char
            for char in text
            if char == "\n" or unicodedata.category(char) not in ("Cc", "Cf")
        )
        return kept.translate(_SMART_PUNCTUATION)

    @staticmethod
    def _remove_empty_lines(text: str) -> str:
        lines = (_SPACE_RUN.sub(" ", line).strip() for line in text.split("\n"))
        return "\n".join(line for line in lines if line).strip()


def preprocess(text: str) -> str:
    """Convenience helper for ad-hoc use."""

    return TextPreprocessor().preprocess(text)
