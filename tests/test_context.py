from __future__ import annotations

import pytest

from ragcontext.models import DocumentContext
from ragcontext.processing.tokenizer import CharacterTokenizer
from ragcontext.services.context import ContextAssembler, PromptBuilder


def doc(doc_id: str, score: float, content: str, title: str | None = None) -> DocumentContext:
    return DocumentContext(id=doc_id, content=content, score=score, title=title)


def test_documents_are_ordered_by_score_with_source_headers():
    assembler = ContextAssembler(window_size=1000)
    context = assembler.build_context(
        [doc("1", 0.2, "Low relevance.", "Low"), doc("2", 0.9, "High relevance.", "High")]
    )
    assert context == "[Source: High]\nHigh relevance.\n\n[Source: Low]\nLow relevance."


def test_missing_title_uses_document_id():
    context = ContextAssembler().build_context([doc("42", 0.5, "Body text")])
    assert context.startswith("[Source: Document 42]\n")


def test_max_documents_limits_blocks():
    assembler = ContextAssembler(window_size=10_000, max_documents=2)
    documents = [doc(str(i), 1.0 - i / 10, f"content {i}") for i in range(5)]
    assert assembler.build_context(documents).count("[Source:") == 2


def test_overflowing_document_is_truncated_when_space_allows():
    assembler = ContextAssembler(window_size=400)
    first = doc("1", 0.9, "a" * 100, "First")
    second = doc("2", 0.8, "b" * 1000, "Second")
    third = doc("3", 0.7, "c" * 10, "Third")
    context = assembler.build_context([first, second, third])
    assert "[Source: Second]" in context
    assert context.endswith("...")
    assert "[Source: Third]" not in context
    assert len(context) <= 400


def test_lower_document_is_never_added_after_a_skip():
    assembler = ContextAssembler(window_size=300)
    first = doc("1", 0.9, "a" * 200, "First")
    second = doc("2", 0.8, "b" * 1000, "Second")
    third = doc("3", 0.1, "tiny", "Third")
    context = assembler.build_context([first, second, third])
    assert "[Source: Second]" not in context
    assert "[Source: Third]" not in context


def test_top_document_always_contributes():
    assembler = ContextAssembler(window_size=120)
    context = assembler.build_context([doc("1", 0.9, "x" * 5000, "Huge")])
    assert context.startswith("[Source: Huge]\nx")
    assert len(context) <= 120


@pytest.mark.parametrize("window", [50, 150, 500, 2000])
def test_context_respects_window_size(window):
    assembler = ContextAssembler(window_size=window)
    documents = [doc(str(i), 1.0 / (i + 1), "word " * (40 * (i + 1)), f"Title {i}") for i in range(6)]
    context = assembler.build_context(documents)
    assert context
    assert len(context) <= window + 50


def test_long_title_is_clipped_with_the_content():
    assembler = ContextAssembler(window_size=40)
    context = assembler.build_context([doc("1", 0.9, "z" * 500, "T" * 80)])
    assert context.startswith("[Source: T")
    assert len(context) <= 40


def test_window_size_override():
    assembler = ContextAssembler(window_size=4000)
    context = assembler.build_context([doc("1", 0.9, "y" * 3000)], window_size=500)
    assert len(context) <= 500


def test_token_estimate_is_characters_over_four():
    assembler = ContextAssembler()
    assert assembler.estimate_tokens("a" * 8) == 2
    assert assembler.estimate_tokens("a" * 9) == 3


def test_token_limit_selection_truncates_when_meaningful():
    assembler = ContextAssembler(tokenizer=CharacterTokenizer())
    documents = [doc("1", 0.9, "a" * 400), doc("2", 0.8, "b" * 400), doc("3", 0.7, "c" * 400)]
    selected = assembler.optimize_context_for_token_limit(documents, 260)
    assert [item.id for item in selected] == ["1", "2", "3"]
    assert selected[2].content == "c" * 240 + "..."


class WordTokenizer:
    def count(self, text: str) -> int:
        return len(text.split())

    def head(self, text: str, n: int) -> str:
        return " ".join(text.split()[:n])

    def tail(self, text: str, n: int) -> str:
        return " ".join(text.split()[-n:])


def test_token_limit_truncation_uses_the_tokenizer():
    assembler = ContextAssembler(tokenizer=WordTokenizer())
    documents = [doc("1", 0.9, "alpha " * 100), doc("2", 0.8, "beta " * 100)]
    selected = assembler.optimize_context_for_token_limit(documents, 160)
    assert selected[1].content == " ".join(["beta"] * 60) + "..."
    assert WordTokenizer().count(selected[1].content) == 60


def test_token_limit_skips_truncation_below_fifty_tokens():
    assembler = ContextAssembler()
    documents = [doc("1", 0.9, "a" * 400), doc("2", 0.8, "b" * 400)]
    selected = assembler.optimize_context_for_token_limit(documents, 140)
    assert [item.id for item in selected] == ["1"]


def test_prompts_carry_instructions_and_question():
    builder = PromptBuilder("You are a support bot.")
    system = builder.system_prompt()
    assert system.startswith("You are a support bot.\n\nInstructions:\n")
    assert "Use ONLY the provided context documents" in system
    assert builder.system_prompt("Custom").startswith("Custom\n\n")
    user = builder.user_prompt("When are you open?", "[Source: Hours]\n9-5", include_source_info=True)
    assert user.startswith("Context Documents:\n\n[Source: Hours]\n9-5\n\nQuestion: When are you open?")
    assert user.endswith("mention which source document it came from.")
