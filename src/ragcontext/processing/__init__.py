"""Text preprocessing, tokenization and chunking."""

from .chunking import (
    ChunkSpan,
    ChunkingStrategyImpl,
    FixedSizeChunking,
    SemanticChunking,
    SentenceBoundaryChunking,
    TextChunker,
    TokenAwareChunking,
)
from .preprocessing import PreprocessingStats, TextPreprocessor
from .tokenizer import CharacterTokenizer, TiktokenTokenizer, Tokenizer, get_tokenizer

__all__ = [
    "CharacterTokenizer",
    "ChunkSpan",
    "ChunkingStrategyImpl",
    "FixedSizeChunking",
    "PreprocessingStats",
    "SemanticChunking",
    "SentenceBoundaryChunking",
    "TextChunker",
    "TextPreprocessor",
    "TiktokenTokenizer",
    "TokenAwareChunking",
    "Tokenizer",
    "get_tokenizer",
]
