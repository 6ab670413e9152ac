# =============================================================================
# src/cli/index.py - CLI for indexing and querying a vault of Markdown notes
# =============================================================================
#
# Every command loads settings, starts the embedding worker, runs, and shuts
# the worker down again.  The worker either runs in-process or as a child
# process (`--worker subprocess`), in which case its logs go to stderr.
#
# Supported subcommands:
#
#   index          - Chunk, embed and store every note in the vault
#   reindex        - Re-index a single note (replaces its stored chunks)
#   related        - Show chunks of other notes related to a note
#   search         - Free-text semantic search over all stored chunks
#   rebuild        - Drop the vector store and start empty
#   ensure-indexes - Make sure the store exists and matches the settings
#
# Usage examples:
#   python -m src.cli --vault ~/notes index
#   python -m src.cli --vault ~/notes related --file "projects/Plan.md"
#   python -m src.cli --vault ~/notes search --query "sleep and memory"
#   python -m src.cli rebuild --yes
# =============================================================================

"""Command-line interface for local-vector-search.

Usage::

    python -m src.cli --vault ~/notes index
    python -m src.cli --vault ~/notes related --file notes/a.md --limit 10
    python -m src.cli --vault ~/notes search --query "sleep and memory"
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from src.config.loader import load_settings
from src.config.settings import Settings
from src.utils.errors import DocumentReadError, VectorSearchError
from src.utils.logging import configure_logging
from src.utils.text_positions import extract_chunk_preview, offset_to_position

_PREVIEW_CHARS = 120


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _progress_printer(verbose: bool):  # noqa: ANN202
    """Return a progress sink that prints overall messages (and more if verbose)."""

    def _print(message: str, is_overall_progress: bool = False) -> None:
        if is_overall_progress or verbose:
            print(message)

    return _print


def _print_worker_status(message) -> None:  # noqa: ANN001
    payload = message.payload if isinstance(message.payload, dict) else {}
    text = payload.get("message")
    if text:
        print(f"[worker] {text}", file=sys.stderr)


async def _print_results(results, services) -> None:  # noqa: ANN001
    """Print one line per result: distance, location, and a short preview."""
    if not results:
        print("No results.")
        return

    contents: dict[str, str | None] = {}
    for rank, item in enumerate(results, start=1):
        if item.file_path not in contents:
            try:
                contents[item.file_path] = await services.document_source.read_document(
                    item.file_path
                )
            except DocumentReadError:
                contents[item.file_path] = None

        content = contents[item.file_path]
        location = item.file_path
        if content is not None and item.chunk_offset_start >= 0:
            line, ch = offset_to_position(content, item.chunk_offset_start)
            location = f"{item.file_path}:{line + 1}:{ch + 1}"

        if item.text:
            preview = item.text
        elif content is not None:
            preview = extract_chunk_preview(
                content, item.chunk_offset_start, item.chunk_offset_end
            )
        else:
            preview = ""
        preview = " ".join(preview.split())
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[: _PREVIEW_CHARS - 3] + "..."

        print(f"{rank:>3}. {item.distance:.4f}  {location}")
        if preview:
            print(f"       {preview}")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_index(args: argparse.Namespace, services) -> int:  # noqa: ANN001
    """Index every note in the vault."""
    print(f"Indexing vault: {services.document_source.root}")
    result = await services.vectorization.index_all(
        on_progress=_progress_printer(args.verbose)
    )

    print("\nIndexing complete:")
    print(f"  Vectors stored:      {result.total_vectors_processed}")
    print(f"  Notes processed:     {result.documents_processed}")
    print(f"  Notes skipped:       {result.documents_skipped}")
    print(f"  Notes failed:        {result.documents_failed}")
    return 0 if result.documents_failed == 0 else 2


async def _handle_reindex(args: argparse.Namespace, services) -> int:  # noqa: ANN001
    """Re-index a single note."""
    count = await services.vectorization.reindex_document(args.file)
    if count == 0:
        print(f"{args.file} is empty; nothing was indexed.")
    else:
        print(f"Re-indexed {args.file}: {count} vectors stored.")
    return 0


async def _handle_related(args: argparse.Namespace, services) -> int:  # noqa: ANN001
    """Show chunks related to a note."""
    if args.live:
        from src.services.retrieval_service import related_chunks_for_text

        limit = args.limit
        if limit is None:
            limit = services.settings.related_chunks_result_limit
        text = await services.document_source.read_document(args.file)
        results = await related_chunks_for_text(
            services.vectorization,
            services.retrieval,
            args.file,
            text,
            limit,
        )
    else:
        from src.services.retrieval_service import NOT_FOUND

        results = await services.retrieval.related_chunks_for(args.file, limit=args.limit)
        if results is NOT_FOUND:
            print(
                f"No vectors found for {args.file}. "
                f"Run 'reindex --file \"{args.file}\"' (or 'index') first.",
                file=sys.stderr,
            )
            return 1

    print(f"Chunks related to {args.file}:")
    await _print_results(results, services)
    return 0


async def _handle_search(args: argparse.Namespace, services) -> int:  # noqa: ANN001
    """Free-text semantic search."""
    results = await services.retrieval.search_text(args.query, limit=args.limit)
    print(f"Results for: {args.query}")
    await _print_results(results, services)
    return 0


async def _handle_rebuild(args: argparse.Namespace, services) -> int:  # noqa: ANN001
    """Drop every stored vector.

    This is a destructive operation.  Requires confirmation unless --yes
    is passed.
    """
    if not args.yes:
        confirm = input("  Delete every stored vector? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    result = await services.storage.rebuild_storage(on_progress=_progress_printer(True))
    print(result.message)
    return 0


async def _handle_ensure_indexes(args: argparse.Namespace, services) -> int:  # noqa: ANN001
    result = await services.storage.ensure_indexes()
    print(result.message)
    return 0 if result.success else 1


_HANDLERS = {
    "index": _handle_index,
    "reindex": _handle_reindex,
    "related": _handle_related,
    "search": _handle_search,
    "rebuild": _handle_rebuild,
    "ensure-indexes": _handle_ensure_indexes,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    """argparse type for result limits."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Index a vault of Markdown notes and find related chunks.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to the YAML configuration file (default: config/config.yaml)",
    )
    parser.add_argument("--vault", default=None, help="Vault directory (overrides VAULT_PATH)")
    parser.add_argument(
        "--worker",
        choices=("inprocess", "subprocess"),
        default=None,
        help="Run the embedding worker in-process or as a child process",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Debug logging and per-note progress"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- index --
    subparsers.add_parser("index", help="Index every note in the vault")

    # -- reindex --
    reindex_parser = subparsers.add_parser("reindex", help="Re-index a single note")
    reindex_parser.add_argument("--file", required=True, help="Note path relative to the vault")

    # -- related --
    related_parser = subparsers.add_parser("related", help="Show chunks related to a note")
    related_parser.add_argument("--file", required=True, help="Note path relative to the vault")
    related_parser.add_argument("--limit", type=_positive_int, default=None, help="Maximum results")
    related_parser.add_argument(
        "--live",
        action="store_true",
        help="Embed the note's current text instead of using its stored vectors",
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Semantic search over all chunks")
    search_parser.add_argument("--query", required=True, help="Free-text query")
    search_parser.add_argument("--limit", type=_positive_int, default=None, help="Maximum results")

    # -- rebuild --
    rebuild_parser = subparsers.add_parser("rebuild", help="Drop and recreate the vector store")
    rebuild_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    # -- ensure-indexes --
    subparsers.add_parser("ensure-indexes", help="Verify the vector store and its index")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _load_settings(args: argparse.Namespace) -> Settings:
    return load_settings(
        args.config,
        vault_path=args.vault,
        worker_mode=args.worker,
        verbose_logging=True if args.verbose else None,
    )


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    # Deferred: importing main pulls in chromadb.
    from src.main import build_services

    services = await build_services(
        app_settings,
        config_path=args.config,
        on_worker_message=_print_worker_status,
    )
    try:
        return await _HANDLERS[args.command](args, services)
    finally:
        await services.shutdown()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, loads settings (YAML, then environment, then
    command-line flags), configures logging on stderr, and dispatches to
    the matching handler.  Application errors exit with status 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        app_settings = _load_settings(args)
        configure_logging(
            app_settings.effective_log_level(),
            json_output=app_settings.app_env == "production",
            stream=sys.stderr,
        )
        exit_code = asyncio.run(_run(args, app_settings))
    except VectorSearchError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
