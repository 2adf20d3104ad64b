from __future__ import annotations

import json
import uuid

import pytest

from ragcontext.cli import main
from ragcontext.config import Settings
from ragcontext.services.generation import NO_CONTEXT_MESSAGE


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        environment="test",
        vector_backend="chroma",
        chroma_persist_dir=tmp_path / "chroma",
        vector_collection=f"cli_{uuid.uuid4().hex[:8]}",
        vector_dimension=16,
        score_threshold=-1.0,
        llm_provider="template",
        embedding_provider="hash",
    )


def _run(capsys, argv, settings):
    code = main(argv, settings=settings)
    return code, capsys.readouterr()


def test_ingest_then_query(tmp_path, capsys, settings):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "hours.txt").write_text("We are open 9am to 5pm, Monday to Friday.", encoding="utf-8")
    (docs / "ignored.bin").write_bytes(b"\x00")

    code, captured = _run(capsys, ["ingest", str(docs)], settings)
    assert code == 0
    ingested = json.loads(captured.out)["documents"]
    assert len(ingested) == 1
    assert ingested[0]["chunk_count"] == 1

    code, captured = _run(capsys, ["query", "When are you open?", "--user-id", "u1"], settings)
    assert code == 0
    payload = json.loads(captured.out)
    assert "9am to 5pm" in payload["answer"]
    assert payload["sources"][0]["title"] == "hours"


def test_query_without_documents(capsys, settings):
    code, captured = _run(capsys, ["query", "Anything?"], settings)
    assert code == 0
    assert json.loads(captured.out)["answer"] == NO_CONTEXT_MESSAGE


def test_reindex_without_confirmation_fails(capsys, settings):
    code, captured = _run(capsys, ["reindex"], settings)
    assert code == 1
    assert captured.err.startswith("Error:")


def test_reindex_from_source(tmp_path, capsys, settings):
    source = tmp_path / "faq.md"
    source.write_text("Orders ship within two business days.", encoding="utf-8")
    code, captured = _run(capsys, ["reindex", "--yes", "--source", str(source)], settings)
    assert code == 0
    result = json.loads(captured.out)
    assert result["documents"] == 1
    assert result["full_reindex"] is True


def test_health(capsys, settings):
    code, captured = _run(capsys, ["health"], settings)
    assert code == 0
    assert json.loads(captured.out)["services"]["vector_database"] == "up"


def test_stats(capsys, settings):
    code, captured = _run(capsys, ["stats"], settings)
    assert code == 0
    stats = json.loads(captured.out)
    assert stats["collection"]["points_count"] == 0
    assert stats["model"]["model"] == "gpt-3.5-turbo"
