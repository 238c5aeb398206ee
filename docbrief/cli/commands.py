"""Command-line interface for docbrief.

Usage::

    python -m docbrief.cli process report.pdf notes.docx --recipient 447700900123
    python -m docbrief.cli search "quarterly revenue" --owner alice
    python -m docbrief.cli ask "What was Q3 revenue?" --owner alice
    python -m docbrief.cli cleanup
    python -m docbrief.cli stats --owner alice
    python -m docbrief.cli check-delivery --recipient 447700900123

Each command builds the same component graph as the API server
(:func:`docbrief.main.build_components`) and runs one operation against
it.  Results go to stdout; logs go to the configured structlog output.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

_DEFAULT_OWNER = "cli"

# Exit codes
_OK = 0
_FAILED = 1
_INVALID = 2


# ---------------------------------------------------------------------------
# Component setup
# ---------------------------------------------------------------------------


async def _components() -> dict[str, Any]:
    """Build and initialise the component graph.

    Deferred import: docbrief.main configures logging and settings on
    import, which ``--help`` does not need.
    """
    from docbrief.main import build_components, settings

    components = build_components(settings)
    await components["record_store"].initialize()
    return components


async def _close(components: dict[str, Any]) -> None:
    await components["http_client"].aclose()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_process(args: argparse.Namespace) -> int:
    """Submit local files as one batch and print the per-document outcomes."""
    from docbrief.models.document import DocumentSubmission
    from docbrief.models.pipeline import ProcessingOptions
    from docbrief.models.summary import SummaryOptions, SummaryStyle
    from docbrief.utils.errors import ValidationError

    submissions: list[DocumentSubmission] = []
    for raw_path in args.files:
        path = Path(raw_path)
        if not path.is_file():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return _INVALID
        submissions.append(DocumentSubmission(filename=path.name, data=path.read_bytes()))

    options = ProcessingOptions(
        summary=SummaryOptions(
            max_length=args.max_length,
            style=SummaryStyle(args.style),
            language=args.language,
        ),
        recipient=args.recipient,
        index_for_search=not args.no_index,
    )

    components = await _components()
    try:
        result = await components["pipeline"].submit_batch(submissions, args.owner, options)
    except ValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return _INVALID
    finally:
        await _close(components)

    if args.json_output:
        _print_json(result.model_dump(mode="json"))
    else:
        for outcome in result.outcomes:
            line = f"{outcome.status.value:<10} {outcome.filename}"
            if outcome.error:
                line += f"  ({outcome.failed_stage.value if outcome.failed_stage else '?'}: {outcome.error})"
            print(line)
        print(f"\n{len(result.completed)} completed, {len(result.failed)} failed")
        if result.delivery is not None:
            print(f"Delivered {result.delivery.sent_count} of {len(result.delivery.items)} item(s)")
    return _OK if not result.failed else _FAILED


async def _handle_search(args: argparse.Namespace) -> int:
    components = await _components()
    try:
        results = await components["retriever"].search(
            args.query, args.owner, limit=args.limit, threshold=args.threshold
        )
    finally:
        await _close(components)

    if args.json_output:
        _print_json([r.model_dump(mode="json", exclude={"chunk": {"embedding"}}) for r in results])
        return _OK
    if not results:
        print("No matches.")
        return _OK
    for rank, result in enumerate(results, start=1):
        chunk = result.chunk
        print(
            f"{rank}. [{result.match_type.value} {result.similarity:.2f}] "
            f"{chunk.document_id} #{chunk.sequence}"
        )
        print(f"   {chunk.text[:200]}")
    return _OK


async def _handle_ask(args: argparse.Namespace) -> int:
    components = await _components()
    qa_service = components.get("qa_service")
    if qa_service is None:
        await _close(components)
        print("Error: question answering needs an LLM API key", file=sys.stderr)
        return _FAILED
    try:
        answer = await qa_service.ask(
            args.query, args.owner, limit=args.limit, threshold=args.threshold
        )
    finally:
        await _close(components)

    if args.json_output:
        _print_json(answer.model_dump(mode="json"))
        return _OK
    print(answer.answer)
    if answer.sources:
        print()
        for number, source in enumerate(answer.sources, start=1):
            print(f"[{number}] {source.filename or source.document_id} #{source.sequence}")
    return _OK


async def _handle_cleanup(args: argparse.Namespace) -> int:
    components = await _components()
    try:
        removed = await components["retention_service"].sweep()
    finally:
        await _close(components)
    print(f"Removed {removed} expired document(s)")
    return _OK


async def _handle_stats(args: argparse.Namespace) -> int:
    components = await _components()
    try:
        stats = await components["record_store"].get_processing_stats(args.owner)
    finally:
        await _close(components)

    if args.json_output:
        _print_json(stats.model_dump(mode="json"))
        return _OK
    print(f"Documents:            {stats.total_documents}")
    print(f"Summaries:            {stats.total_summaries}")
    print(f"Avg processing time:  {stats.average_processing_time_ms / 1000:.1f}s")
    print(f"Success rate:         {stats.success_rate:.1f}%")
    return _OK


async def _handle_check_delivery(args: argparse.Namespace) -> int:
    """Check the active delivery provider; optionally send a test message."""
    from docbrief.utils.errors import InvalidRecipientError

    components = await _components()
    dispatcher = components["dispatcher"]
    try:
        healthy = await dispatcher.check_status()
        print(f"Provider: {dispatcher.provider_name}  status: {'ok' if healthy else 'unreachable'}")
        if args.recipient is None:
            return _OK if healthy else _FAILED
        try:
            result = await dispatcher.send_test_message(args.recipient, owner_id=args.owner)
        except InvalidRecipientError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return _INVALID
    finally:
        await _close(components)

    if result.success:
        print(f"Test message sent ({result.provider_message_id})")
        return _OK
    print(f"Test message failed: {result.error}", file=sys.stderr)
    return _FAILED


_HANDLERS = {
    "process": _handle_process,
    "search": _handle_search,
    "ask": _handle_ask,
    "cleanup": _handle_cleanup,
    "stats": _handle_stats,
    "check-delivery": _handle_check_delivery,
}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m docbrief.cli",
        description="Process, search, question and deliver document summaries.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    process = subparsers.add_parser("process", help="Summarize one or more documents")
    process.add_argument("files", nargs="+", help="PDF, Word or text files")
    process.add_argument("--recipient", default=None, help="Deliver summaries to this number")
    process.add_argument("--max-length", type=int, default=500, help="Word budget per summary")
    process.add_argument(
        "--style", choices=["concise", "detailed", "bulleted"], default="concise"
    )
    process.add_argument("--language", default="English")
    process.add_argument("--no-index", action="store_true", help="Skip search indexing")

    search = subparsers.add_parser("search", help="Search indexed documents")
    search.add_argument("query", help="Free-text query")
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--threshold", type=float, default=None)

    ask = subparsers.add_parser("ask", help="Answer a question from indexed documents")
    ask.add_argument("query", help="Question")
    ask.add_argument("--limit", type=int, default=None)
    ask.add_argument("--threshold", type=float, default=None)

    subparsers.add_parser("cleanup", help="Purge documents past their retention window")

    subparsers.add_parser("stats", help="Show processing statistics")

    check = subparsers.add_parser("check-delivery", help="Check the delivery provider")
    check.add_argument("--recipient", default=None, help="Also send a test message")

    for sub in (process, search, ask, check, subparsers.choices["stats"]):
        sub.add_argument("--owner", default=_DEFAULT_OWNER, help="Owner id to act as")
    for sub in (process, search, ask, subparsers.choices["stats"]):
        sub.add_argument("--json", action="store_true", dest="json_output")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run the selected command; returns the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = _HANDLERS.get(args.command or "")
    if handler is None:
        parser.print_help()
        return _INVALID
    return asyncio.run(handler(args))
