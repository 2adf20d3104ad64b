"""Command line entry point for indexing and querying."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List, Sequence

from ragcontext.admin import ADMIN_ROLE, Principal
from ragcontext.bootstrap import Pipeline, build_pipeline
from ragcontext.config import Settings, get_settings
from ragcontext.errors import QueryFailedError, RagContextError
from ragcontext.ingestion.loaders import LOADERS, load_document

LOCAL_OPERATOR = Principal(user_id="cli", roles=frozenset({ADMIN_ROLE}))


def _expand_paths(paths: Iterable[Path]) -> List[Path]:
    expanded: List[Path] = []
    for path in paths:
        if path.is_dir():
            expanded.extend(sorted(item for item in path.rglob("*") if item.suffix.lower() in LOADERS))
        else:
            expanded.append(path)
    return expanded


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_ingest(pipeline: Pipeline, args: argparse.Namespace) -> int:
    results = []
    for path in _expand_paths(args.paths):
        upload = pipeline.admin.upload_document(LOCAL_OPERATOR, path)
        results.append({"path": str(path), **asdict(upload)})
    _print({"documents": results})
    return 0


def cmd_query(pipeline: Pipeline, args: argparse.Namespace) -> int:
    try:
        result = pipeline.queries.process_text_query(args.text, user_id=args.user_id)
    except QueryFailedError as exc:
        _print({"answer": exc.user_message, "query_id": exc.query_id})
        return 1
    _print(
        {
            "answer": result.answer,
            "query_id": result.query_id,
            "latency_ms": result.latency_ms,
            "sources": [
                {"id": source.id, "title": source.title, "score": source.score}
                for source in result.sources
            ],
        }
    )
    return 0


def cmd_reindex(pipeline: Pipeline, args: argparse.Namespace) -> int:
    for path in _expand_paths(args.source or []):
        pipeline.documents.create(load_document(path))
    result = pipeline.admin.reindex(LOCAL_OPERATOR, full_reindex=True, confirm=args.yes)
    _print(asdict(result))
    return 0


def cmd_health(pipeline: Pipeline, args: argparse.Namespace) -> int:
    health = pipeline.admin.system_health(LOCAL_OPERATOR)
    if args.check_llm:
        health["services"]["llm"] = "up" if pipeline.answers.validate_connection() else "down"
    _print(health)
    return 0 if health["status"] == "healthy" else 1


def cmd_stats(pipeline: Pipeline, args: argparse.Namespace) -> int:
    info = pipeline.index.collection_info()
    _print(
        {
            "collection": asdict(info),
            "model": pipeline.answers.model_info(),
            "system": pipeline.admin.system_stats(LOCAL_OPERATOR),
        }
    )
    return 0


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Index documents and answer questions from them.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Load, chunk, embed and index files or directories")
    ingest.add_argument("paths", nargs="+", type=Path)
    ingest.set_defaults(handler=cmd_ingest)

    query = subparsers.add_parser("query", help="Answer a question from the indexed documents")
    query.add_argument("text")
    query.add_argument("--user-id", default=None)
    query.set_defaults(handler=cmd_query)

    reindex = subparsers.add_parser("reindex", help="Drop the collection and rebuild it from source files")
    reindex.add_argument("--yes", action="store_true", help="Confirm the destructive reindex")
    reindex.add_argument("--source", nargs="*", type=Path, help="Files or directories to rebuild from")
    reindex.set_defaults(handler=cmd_reindex)

    health = subparsers.add_parser("health", help="Check that the vector store is reachable")
    health.add_argument("--check-llm", action="store_true", help="Also send a probe to the language model")
    health.set_defaults(handler=cmd_health)

    stats = subparsers.add_parser("stats", help="Show collection and model statistics")
    stats.set_defaults(handler=cmd_stats)
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    pipeline = build_pipeline(settings or get_settings(), ensure_collection=args.command != "health")
    try:
        return args.handler(pipeline, args)
    except RagContextError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        pipeline.close()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
