from __future__ import annotations

import json

import httpx
import pytest

from conftest import RecordingLLM
from ragcontext.errors import ProviderDegradedError, ProviderError
from ragcontext.models import DocumentContext, GenerationOptions
from ragcontext.services.context import ContextAssembler
from ragcontext.services.generation import (
    AUTHENTICATION_MESSAGE,
    FALLBACK_MESSAGE,
    HIGH_DEMAND_MESSAGE,
    NO_CONTEXT_MESSAGE,
    AnswerGenerator,
    HttpChatProvider,
    TemplateChatProvider,
)

DOCUMENTS = [
    DocumentContext(id="hours", content="We are open 9am to 5pm on weekdays.", score=0.95, title="Business Hours"),
    DocumentContext(id="returns", content="Returns are accepted within 30 days.", score=0.75, title="Returns"),
]


def test_no_documents_returns_fixed_message_without_calling_llm():
    llm = RecordingLLM()
    assert AnswerGenerator(llm).generate_answer("Anything?", []) == NO_CONTEXT_MESSAGE
    assert llm.calls == []


def test_prompt_contains_context_and_configured_parameters():
    llm = RecordingLLM("We open at 9am.")
    generator = AnswerGenerator(llm, model="gpt-test", max_tokens=300, temperature=0.2)
    answer = generator.generate_answer("When do you open?", DOCUMENTS)
    assert answer == "We open at 9am."
    call = llm.calls[0]
    assert call["model"] == "gpt-test"
    assert call["max_tokens"] == 300
    assert call["temperature"] == 0.2
    assert "[Source: Business Hours]" in call["user_prompt"]
    assert "Question: When do you open?" in call["user_prompt"]
    assert "Use ONLY the provided context documents" in call["system_prompt"]


def test_options_override_defaults():
    llm = RecordingLLM()
    AnswerGenerator(llm, temperature=0.7).generate_answer(
        "q",
        DOCUMENTS,
        GenerationOptions(max_tokens=10, temperature=0.0, system_prompt="Be brief.", include_source_info=True),
    )
    call = llm.calls[0]
    assert call["max_tokens"] == 10
    assert call["temperature"] == 0.0
    assert call["system_prompt"].startswith("Be brief.")
    assert "which source document" in call["user_prompt"]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ProviderDegradedError("rate limited", status_code=429), HIGH_DEMAND_MESSAGE),
        (ProviderDegradedError("bad key", status_code=401), AUTHENTICATION_MESSAGE),
        (ProviderError("server error", status_code=500), FALLBACK_MESSAGE),
        (TimeoutError("slow"), FALLBACK_MESSAGE),
    ],
)
def test_provider_failures_become_messages(error, expected):
    assert AnswerGenerator(RecordingLLM(error=error)).generate_answer("q", DOCUMENTS) == expected


@pytest.mark.parametrize("reply", [None, "", "   "])
def test_empty_reply_returns_fallback(reply):
    assert AnswerGenerator(RecordingLLM(reply)).generate_answer("q", DOCUMENTS) == FALLBACK_MESSAGE


def test_token_limit_trims_documents_before_prompting():
    llm = RecordingLLM()
    long_docs = [
        DocumentContext(id="a", content="a" * 400, score=0.9, title="A"),
        DocumentContext(id="b", content="b" * 400, score=0.8, title="B"),
    ]
    AnswerGenerator(llm, assembler=ContextAssembler(), context_max_tokens=120).generate_answer("q", long_docs)
    assert "[Source: B]" not in llm.calls[0]["user_prompt"]


def test_validate_connection_and_model_info():
    assert AnswerGenerator(RecordingLLM("hi")).validate_connection() is True
    assert AnswerGenerator(RecordingLLM(error=ProviderError("down"))).validate_connection() is False
    info = AnswerGenerator(RecordingLLM(), model="m", max_tokens=5).model_info()
    assert info["model"] == "m"
    assert info["context_window_size"] == 4000


def test_template_provider_answers_from_top_source():
    answer = AnswerGenerator(TemplateChatProvider()).generate_answer("When do you open?", DOCUMENTS)
    assert "Business Hours" in answer
    assert "9am to 5pm" in answer


def _http_provider(handler) -> HttpChatProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpChatProvider(api_base="https://llm.test/v1", client=client)


def test_http_provider_sends_chat_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": " Open at 9. "}}]})

    answer = AnswerGenerator(_http_provider(handler), model="gpt-3.5-turbo").generate_answer("q", DOCUMENTS)
    assert answer == "Open at 9."
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert [message["role"] for message in seen["body"]["messages"]] == ["system", "user"]
    assert seen["body"]["presence_penalty"] == 0


@pytest.mark.parametrize(("status", "expected"), [(429, HIGH_DEMAND_MESSAGE), (401, AUTHENTICATION_MESSAGE), (500, FALLBACK_MESSAGE)])
def test_http_provider_status_codes_map_to_messages(status, expected):
    provider = _http_provider(lambda request: httpx.Response(status, json={"error": "x"}))
    assert AnswerGenerator(provider).generate_answer("q", DOCUMENTS) == expected
