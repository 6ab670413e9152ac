"""Unit tests for Settings and the YAML configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.loader import load_settings
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # No stray .env file or environment overrides.
    monkeypatch.chdir(tmp_path)
    for name in ("MAX_CHUNK_CHARACTERS", "VAULT_PATH", "WORKER_MODE", "SEARCH_RESULT_LIMIT"):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.max_chunk_characters == 1000
        assert settings.chunk_cache_ttl_seconds == 300.0
        assert settings.chunk_cache_max_entries == 100
        assert settings.search_result_limit == 100
        assert settings.related_chunks_result_limit == 30
        assert (settings.hnsw_m, settings.hnsw_ef_construction, settings.hnsw_ef_search) == (
            8,
            64,
            220,
        )
        assert settings.worker_mode == "inprocess"

    def test_env_overrides_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_CHUNK_CHARACTERS", "800")
        assert Settings().max_chunk_characters == 800

    def test_sentence_bound_cannot_exceed_chunk_bound(self) -> None:
        with pytest.raises(ValidationError):
            Settings(max_chunk_characters=50, max_sentence_characters=100)

    def test_min_sentence_cannot_exceed_max(self) -> None:
        with pytest.raises(ValidationError):
            Settings(min_sentence_characters=200, max_sentence_characters=100)

    def test_unknown_worker_mode(self) -> None:
        with pytest.raises(ValidationError):
            Settings(worker_mode="thread")

    def test_verbose_forces_debug(self) -> None:
        assert Settings(verbose_logging=True, log_level="WARNING").effective_log_level() == "DEBUG"
        assert Settings(log_level="WARNING").effective_log_level() == "WARNING"


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(str(tmp_path / "nope.yaml"))
        assert settings.max_chunk_characters == 1000

    def test_sections_are_flattened(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "chunking:\n  max_chunk_characters: 600\n"
            "retrieval:\n  user_ignore_filters: [archive/, drafts/]\n"
            "log_level: DEBUG\n",
            encoding="utf-8",
        )
        settings = load_settings(str(path))
        assert settings.max_chunk_characters == 600
        assert settings.user_ignore_filters == ["archive/", "drafts/"]
        assert settings.log_level == "DEBUG"

    def test_environment_beats_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("chunking:\n  max_chunk_characters: 600\n", encoding="utf-8")
        monkeypatch.setenv("MAX_CHUNK_CHARACTERS", "700")
        assert load_settings(str(path)).max_chunk_characters == 700

    def test_overrides_beat_everything(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("app:\n  vault_path: /from/yaml\n", encoding="utf-8")
        monkeypatch.setenv("VAULT_PATH", "/from/env")
        settings = load_settings(str(path), vault_path="/from/cli", worker_mode=None)
        assert settings.vault_path == "/from/cli"
        assert settings.worker_mode == "inprocess"

    def test_unknown_key_is_an_error(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("chunking:\n  max_chunk_chars: 600\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="max_chunk_chars"):
            load_settings(str(path))

    def test_invalid_value_is_a_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("retrieval:\n  search_result_limit: 0\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_settings(str(path))

    def test_non_mapping_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(str(path))

    def test_repository_config_loads(self) -> None:
        repo_config = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        settings = load_settings(str(repo_config))
        assert settings.embedding_dimension == 384
        assert settings.related_chunks_result_limit == 30
