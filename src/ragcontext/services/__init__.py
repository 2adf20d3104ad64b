"""Context assembly, answer generation and query orchestration."""

from .context import ContextAssembler, PromptBuilder
from .generation import (
    AnswerGenerator,
    HttpChatProvider,
    LLMProvider,
    TemplateChatProvider,
    TransformersChatProvider,
    TransformersConfig,
)
from .query import GENERIC_FAILURE_MESSAGE, QueryConfig, QueryService

__all__ = [
    "AnswerGenerator",
    "ContextAssembler",
    "GENERIC_FAILURE_MESSAGE",
    "HttpChatProvider",
    "LLMProvider",
    "PromptBuilder",
    "QueryConfig",
    "QueryService",
    "TemplateChatProvider",
    "TransformersChatProvider",
    "TransformersConfig",
]
