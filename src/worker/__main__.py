# =============================================================================
# src/worker/__main__.py - Subprocess Worker Entry Point
# =============================================================================
#
# Started by SubprocessWorkerChannel as:
#     python -m src.worker [--config config/config.yaml]
#
# stdin  - JSON-line requests from the caller
# stdout - JSON-line replies and status messages (NOTHING else may print here)
# stderr - structlog output
#
# The process exits when stdin closes.
# =============================================================================

"""Run the embedding worker over stdin/stdout."""

from __future__ import annotations

import argparse
import asyncio
import sys

from src.utils.logging import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.worker",
        description="Embedding worker speaking JSON lines over stdin/stdout.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to the YAML configuration file.",
    )
    return parser


async def _serve(config_path: str) -> None:
    # Deferred so nothing can log to stdout before logging is pointed at stderr.
    from src.config.loader import load_settings
    from src.main import build_worker_server
    from src.worker.channels import StdioChannel

    settings = load_settings(config_path)
    configure_logging(
        settings.effective_log_level(),
        json_output=settings.app_env == "production",
        stream=sys.stderr,
    )

    server = build_worker_server(settings)
    channel = StdioChannel()
    await channel.open()
    await server.serve(channel)


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and serve until stdin closes."""
    configure_logging(stream=sys.stderr)
    args = _build_parser().parse_args(argv)

    from src.utils.errors import VectorSearchError

    try:
        asyncio.run(_serve(args.config))
    except VectorSearchError as exc:
        print(f"Worker error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
