# =============================================================================
# src/cli/__main__.py - Package Entry Point
# =============================================================================
#
# This file enables running the CLI package itself as a module:
#     python -m src.cli
#
# It delegates to the index CLI (index.py), which holds every command.
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.index import main

main()
