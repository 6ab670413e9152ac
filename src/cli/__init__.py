# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line access to local-vector-search.  One module, index.py, holds
# every subcommand: index, reindex, related, search, rebuild and
# ensure-indexes.
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer) to keep the
#     dependency list short.
#   - Heavy imports (chromadb, embedding models) are deferred inside
#     functions so `--help` stays fast.
#   - Each run builds its services, starts the embedding worker, and shuts
#     it down again; the CLI is a one-shot script, not a server.
# =============================================================================

"""CLI tools for local-vector-search.

- ``python -m src.cli`` - index a vault of Markdown notes and query it.
"""
