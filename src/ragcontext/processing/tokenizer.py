"""Token counting matched to the embedding model vocabulary."""

from __future__ import annotations

import logging
import math
from typing import Protocol

import tiktoken

LOGGER = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


class Tokenizer(Protocol):
    """Minimal tokenizer surface needed by chunking and context packing."""

    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""

    def head(self, text: str, n: int) -> str:
        """Return the first ``n`` tokens of ``text`` decoded back to text."""

    def tail(self, text: str, n: int) -> str:
        """Return the last ``n`` tokens of ``text`` decoded back to text."""


class TiktokenTokenizer:
    """BPE tokenizer for OpenAI style embedding models."""

    def __init__(self, model: str = "text-embedding-ada-002") -> None:
        try:
            self._encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            self._encoding = tiktoken.get_encoding("cl100k_base")

    def count(self, text: str) -> int:
        return len(self._encoding.encode(text))

    def head(self, text: str, n: int) -> str:
        if n <= 0:
            return ""
        return self._encoding.decode(self._encoding.encode(text)[:n])

    def tail(self, text: str, n: int) -> str:
        if n <= 0:
            return ""
        tokens = self._encoding.encode(text)
        return self._encoding.decode(tokens[-n:])


class CharacterTokenizer:
    """Estimates one token per ``chars_per_token`` characters."""

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN) -> None:
        self._chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        return math.ceil(len(text) / self._chars_per_token)

    def head(self, text: str, n: int) -> str:
        if n <= 0:
            return ""
        return text[: n * self._chars_per_token]

    def tail(self, text: str, n: int) -> str:
        if n <= 0:
            return ""
        return text[-n * self._chars_per_token :]


def get_tokenizer(model: str = "text-embedding-ada-002") -> Tokenizer:
    """Return a tiktoken tokenizer, or the character estimate when the encoding cannot load."""

    try:
        return TiktokenTokenizer(model)
    except Exception as exc:  # encoding files are fetched on first use
        LOGGER.warning("Falling back to character token estimate: %s", exc)
        return CharacterTokenizer()
