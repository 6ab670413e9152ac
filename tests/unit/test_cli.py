"""Unit tests for the CLI in src.cli.index.

Each test runs ``main()`` end to end with the worker's embedding model and
vector store replaced by the in-memory mocks; one store is shared across
invocations so an ``index`` run is visible to a later ``related`` run.
"""

from __future__ import annotations

import re
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from src.cli.index import _build_parser, main
from src.worker.server import WorkerServer
from tests.conftest import EMBEDDING_DIM, MockEmbeddingProvider, MockVectorStore


@pytest.fixture()
def store() -> MockVectorStore:
    return MockVectorStore()


@pytest.fixture()
def run_cli(tmp_path: Path, vault: Path, store: MockVectorStore, monkeypatch: pytest.MonkeyPatch):
    """Return a callable running the CLI against the test vault; yields the exit code."""
    monkeypatch.chdir(tmp_path)
    config = str(tmp_path / "missing-config.yaml")

    def _server(_settings) -> WorkerServer:
        return WorkerServer(
            embedding_provider=MockEmbeddingProvider(),
            vector_store=store,
            dimension=EMBEDDING_DIM,
        )

    def _run(*argv: str) -> int:
        with patch("src.main.build_worker_server", side_effect=_server), patch(
            "src.cli.index.configure_logging"
        ):
            with pytest.raises(SystemExit) as excinfo:
                main(["--config", config, "--vault", str(vault), *argv])
        return excinfo.value.code

    return _run


# ======================================================================
# Parser
# ======================================================================


class TestBuildParser:
    def test_related_arguments(self) -> None:
        args = _build_parser().parse_args(
            ["--vault", "/notes", "related", "--file", "a.md", "--limit", "5", "--live"]
        )
        assert args.command == "related"
        assert args.file == "a.md"
        assert args.limit == 5
        assert args.live is True
        assert args.vault == "/notes"

    def test_defaults(self) -> None:
        args = _build_parser().parse_args(["search", "--query", "sleep"])
        assert args.config == "config/config.yaml"
        assert args.worker is None
        assert args.limit is None
        assert args.verbose is False

    def test_worker_choices(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["--worker", "thread", "index"])

    @pytest.mark.parametrize("limit", ["0", "-1", "ten"])
    def test_limit_must_be_a_positive_integer(
        self, limit: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as excinfo:
            _build_parser().parse_args(["search", "--query", "x", "--limit", limit])
        assert excinfo.value.code == 2
        assert "--limit" in capsys.readouterr().err

    def test_reindex_requires_file(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["reindex"])

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 1
        assert "usage:" in capsys.readouterr().out


# ======================================================================
# Commands
# ======================================================================


class TestCommands:
    def test_index(self, run_cli, store: MockVectorStore, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli("index") == 0
        out = capsys.readouterr().out
        assert "Indexing complete:" in out
        assert "Notes processed:     4" in out
        assert "Notes skipped:       1" in out
        assert store._store

    def test_related_before_indexing(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli("related", "--file", "alpha.md") == 1
        assert "No vectors found for alpha.md" in capsys.readouterr().err

    def test_related_after_indexing(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        run_cli("index")
        capsys.readouterr()

        assert run_cli("related", "--file", "alpha.md") == 0
        out = capsys.readouterr().out
        assert "Chunks related to alpha.md:" in out
        assert "archive/old.md:1:1" in out
        ranked = [line for line in out.splitlines() if re.match(r"^\s+\d+\. \d\.\d{4}  ", line)]
        assert ranked
        assert all("archive/old.md" in line for line in ranked)

    def test_related_live(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        run_cli("index")
        capsys.readouterr()

        assert run_cli("related", "--file", "beta.md", "--live", "--limit", "2") == 0
        lines = capsys.readouterr().out.splitlines()
        ranked = [line for line in lines if re.match(r"^\s+\d+\. \d\.\d{4}  ", line)]
        assert len(ranked) == 2

    def test_search(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        run_cli("index")
        capsys.readouterr()

        assert run_cli("search", "--query", "sleep and memory", "--limit", "3") == 0
        out = capsys.readouterr().out
        assert "Results for: sleep and memory" in out
        assert "  3. " in out

    def test_negative_search_limit_is_a_usage_error(self, run_cli) -> None:
        assert run_cli("search", "--query", "x", "--limit", "-1") == 2

    def test_search_on_empty_store(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli("search", "--query", "anything") == 0
        assert "No results." in capsys.readouterr().out

    def test_reindex(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli("reindex", "--file", "beta.md") == 0
        assert "Re-indexed beta.md:" in capsys.readouterr().out

    def test_reindex_blank_note(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli("reindex", "--file", "empty.md") == 0
        assert "empty.md is empty; nothing was indexed." in capsys.readouterr().out

    def test_reindex_missing_note_is_an_error(
        self, run_cli, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run_cli("reindex", "--file", "missing.md") == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_rebuild_with_yes(self, run_cli, store: MockVectorStore, capsys) -> None:
        run_cli("index")
        assert run_cli("rebuild", "--yes") == 0
        assert store.rebuild_calls == 1
        assert not store._store
        assert "Database rebuilt" in capsys.readouterr().out

    def test_rebuild_aborted(
        self, run_cli, store: MockVectorStore, monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        monkeypatch.setattr("builtins.input", lambda prompt="": "n")
        assert run_cli("rebuild") == 0
        assert store.rebuild_calls == 0
        assert "Aborted." in capsys.readouterr().out

    def test_ensure_indexes(self, run_cli, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_cli("ensure-indexes") == 0
        assert "ready (0 chunks)" in capsys.readouterr().out

    def test_missing_vault_is_an_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        monkeypatch.chdir(tmp_path)
        with patch("src.cli.index.configure_logging"):
            with pytest.raises(SystemExit) as excinfo:
                main(["--config", "none.yaml", "--vault", str(tmp_path / "nope"), "index"])
        assert excinfo.value.code == 1
        assert "Vault directory does not exist" in capsys.readouterr().err

    def test_keyboard_interrupt(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        with patch("src.cli.index.configure_logging"), patch(
            "src.cli.index._run", MagicMock(side_effect=KeyboardInterrupt)
        ):
            with pytest.raises(SystemExit) as excinfo:
                main(["--config", "none.yaml", "index"])
        assert excinfo.value.code == 130
