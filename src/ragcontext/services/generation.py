"""Answer generation backends and the grounded answer generator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Protocol, Sequence

import httpx

from ragcontext.errors import ProviderDegradedError, ProviderError
from ragcontext.metrics.observability import PipelineMetrics, TimedSection
from ragcontext.models import DocumentContext, GenerationOptions
from ragcontext.services.context import ContextAssembler, PromptBuilder

LOGGER = logging.getLogger(__name__)

NO_CONTEXT_MESSAGE = (
    "I apologize, but I couldn't find any relevant information in the knowledge base to answer "
    "your question. Please try rephrasing your query or contact support for assistance with "
    "topics not covered in our documentation."
)
FALLBACK_MESSAGE = (
    "I encountered an issue while generating a response to your question. Please try asking "
    "again, or contact support if the problem persists."
)
HIGH_DEMAND_MESSAGE = (
    "I apologize, but I'm currently experiencing high demand. Please try again in a moment."
)
AUTHENTICATION_MESSAGE = (
    "I'm experiencing authentication issues. Please contact support if this persists."
)


class LLMProvider(Protocol):
    """Chat completion style language model."""

    def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str | None:
        """Return the assistant reply, or None when the model produced nothing."""


class TemplateChatProvider:
    """Deterministic provider used for tests and offline environments."""

    def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str | None:
        context, _, question = user_prompt.partition("\n\nQuestion: ")
        context = context.removeprefix("Context Documents:\n\n").strip()
        question = question.split("\n\n", 1)[0].strip()
        if not context:
            return None
        first_block = context.split("\n\n", 1)[0]
        return (
            f"Based on the provided documents, here is the best match for your question '{question}':\n"
            f"{first_block}"
        )


class HttpChatProvider:
    """OpenAI-compatible ``/chat/completions`` endpoint called over httpx."""

    def __init__(
        self,
        *,
        api_base: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = f"{api_base.rstrip('/')}/chat/completions"
        self._client = client or httpx.Client(timeout=timeout, headers=self._get_auth_header(api_key))

    ################ AUTH ##################
    @staticmethod
    def _get_auth_header(api_key: str | None) -> dict:
        if api_key:
            return {"Authorization": f"Bearer {api_key}"}
        return {}

    ################ PAYLOAD BUILDER ##################
    @staticmethod
    def get_chat_payload(
        *, system_prompt: str, user_prompt: str, model: str, max_tokens: int, temperature: float
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "presence_penalty": 0,
            "frequency_penalty": 0,
        }

    @staticmethod
    def extract_chat_response(response_data: Dict[str, Any]) -> str | None:
        choices = response_data.get("choices") or []
        if not choices:
            return None
        message = choices[0].get("message") or {}
        content = message.get("content")
        return content if isinstance(content, str) else None

    def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str | None:
        payload = self.get_chat_payload(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        try:
            response = self._client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Chat completion request failed: {exc}") from exc
        if response.status_code in (401, 429):
            raise ProviderDegradedError(
                f"Chat completion rejected with status {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 300:
            LOGGER.error("Chat completion failed with status %d: %s", response.status_code, response.text)
            raise ProviderError(
                f"Chat completion failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return self.extract_chat_response(response.json())

    def close(self) -> None:
        self._client.close()


@dataclass(frozen=True)
class TransformersConfig:
    """Configuration for local Hugging Face chat models."""

    model: str = "Qwen/Qwen2.5-1.8B-Instruct"
    device: str | None = None


class TransformersChatProvider:
    """Runs a local causal language model through Transformers.

    Falls back to ``fallback`` when the model cannot be loaded.
    """

    def __init__(self, config: TransformersConfig | None = None, fallback: LLMProvider | None = None) -> None:
        self._config = config or TransformersConfig()
        self._fallback = fallback or TemplateChatProvider()
        self._tokenizer = None
        self._model = None
        try:
            from transformers import AutoModelForCausalLM, AutoTokenizer

            self._tokenizer = AutoTokenizer.from_pretrained(self._config.model, trust_remote_code=True)
            self._model = AutoModelForCausalLM.from_pretrained(self._config.model, trust_remote_code=True)
            if self._tokenizer.pad_token is None and self._tokenizer.eos_token is not None:
                self._tokenizer.pad_token = self._tokenizer.eos_token
            if self._config.device:
                self._model.to(self._config.device)
            LOGGER.info("Loaded generation model %s", self._config.model)
        except Exception as exc:  # pragma: no cover - optional model stack
            LOGGER.warning("Falling back to template generation: %s", exc)
            self._tokenizer = None
            self._model = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str | None:
        if self._tokenizer is None or self._model is None:
            return self._fallback.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        import torch

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        if hasattr(self._tokenizer, "apply_chat_template"):
            prompt = self._tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        else:
            prompt = f"{system_prompt}\n\n{user_prompt}\n\nAnswer:"
        tokenized = self._tokenizer(prompt, return_tensors="pt", padding=True)
        input_ids = tokenized.input_ids
        attention_mask = tokenized.attention_mask
        prompt_length = input_ids.shape[1]
        if self._config.device:
            input_ids = input_ids.to(self._config.device)
            attention_mask = attention_mask.to(self._config.device)
        with torch.no_grad():
            output = self._model.generate(
                input_ids,
                attention_mask=attention_mask,
                max_new_tokens=max_tokens,
                temperature=temperature,
            )
        generated = self._tokenizer.decode(output[0][prompt_length:], skip_special_tokens=True)
        return generated.strip()


class AnswerGenerator:
    """Produces a grounded answer for a query from retrieved documents.

    ``generate_answer`` never raises for provider failures; every failure path
    maps to a fixed user-facing message.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 500,
        temperature: float = 0.7,
        assembler: ContextAssembler | None = None,
        prompt_builder: PromptBuilder | None = None,
        context_max_tokens: int | None = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._assembler = assembler or ContextAssembler()
        self._prompts = prompt_builder or PromptBuilder()
        self._context_max_tokens = context_max_tokens

    def generate_answer(
        self,
        query: str,
        documents: Sequence[DocumentContext],
        options: GenerationOptions | None = None,
    ) -> str:
        options = options or GenerationOptions()
        LOGGER.debug("Generating answer for query: %r", query[:50])
        if not documents:
            return NO_CONTEXT_MESSAGE

        try:
            selected = list(documents)
            if self._context_max_tokens:
                selected = self._assembler.optimize_context_for_token_limit(selected, self._context_max_tokens)
            context = self._assembler.build_context(selected)
            system_prompt = self._prompts.system_prompt(options.system_prompt)
            user_prompt = self._prompts.user_prompt(
                query, context, include_source_info=options.include_source_info
            )
            with TimedSection(PipelineMetrics.observe_generation):
                answer = self._provider.complete(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    model=self._model,
                    max_tokens=options.max_tokens or self._max_tokens,
                    temperature=options.temperature if options.temperature is not None else self._temperature,
                )
        except ProviderError as exc:
            LOGGER.error("Answer generation failed (status=%s): %s", exc.status_code, exc)
            if exc.status_code == 429:
                return HIGH_DEMAND_MESSAGE
            if exc.status_code == 401:
                return AUTHENTICATION_MESSAGE
            return FALLBACK_MESSAGE
        except Exception as exc:  # noqa: BLE001 - the caller always receives an answer
            LOGGER.exception("Answer generation failed: %s", exc)
            return FALLBACK_MESSAGE

        answer = (answer or "").strip()
        if not answer:
            LOGGER.warning("Language model returned an empty response")
            return FALLBACK_MESSAGE
        LOGGER.debug("Generated answer with %d characters", len(answer))
        return answer

    def validate_connection(self) -> bool:
        """Send a tiny prompt to check that the provider answers."""

        try:
            reply = self._provider.complete(
                system_prompt="",
                user_prompt="Context Documents:\n\nHello\n\nQuestion: Hello",
                model=self._model,
                max_tokens=5,
                temperature=0.0,
            )
        except Exception as exc:  # noqa: BLE001 - reported as unhealthy
            LOGGER.error("Language model connection validation failed: %s", exc)
            return False
        return bool(reply)

    def model_info(self) -> Dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "context_window_size": self._assembler.window_size,
            "max_context_documents": self._assembler.max_documents,
            "context_max_tokens": self._context_max_tokens,
        }

