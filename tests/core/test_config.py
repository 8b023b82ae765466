"""
Tests for Settings loading and validation.
"""

import pytest

from nexusrag.core.config import DEFAULT_CONFIG, Settings
from nexusrag.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """No config file or overriding env vars leak in from the developer's machine."""
    monkeypatch.chdir(tmp_path)
    for key in (
        "NEXUSRAG_CONFIG",
        "NEXUSRAG_DB_PATH",
        "NEXUSRAG_EMBEDDING_DIM",
        "NEXUSRAG_EMBEDDING_MODEL",
        "NEXUSRAG_LLM_MODEL",
        "NEXUSRAG_OLLAMA_URL",
        "NEXUSRAG_RERANK_URL",
        "NEXUSRAG_RERANK_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = Settings()

    assert settings.get("search.rrf_k") == 60
    assert settings.get("search.top_k") == 5
    assert settings.get("tags.merge_threshold") == 0.1
    assert settings.get("tags.auto_confirm_threshold") == 0.7
    assert settings.get("circuit_breaker.failure_threshold") == 5
    assert settings.get("embeddings.dimension") == DEFAULT_CONFIG["embeddings"]["dimension"]
    assert settings.get("rerank.enabled") is False
    assert settings.get("rerank.candidate_multiplier") == 4


def test_get_missing_key_returns_default():
    settings = Settings()

    assert settings.get("search.nope") is None
    assert settings.get("search.nope", 3) == 3


def test_require_missing_key_raises():
    with pytest.raises(ConfigurationError):
        Settings().require("nothing.here")


def test_yaml_file_is_merged(tmp_path):
    config_file = tmp_path / "custom.yaml"
    config_file.write_text("search:\n  top_k: 8\nembeddings:\n  dimension: 768\n")

    settings = Settings(config_file)

    assert settings.get("search.top_k") == 8
    assert settings.get("search.rrf_k") == 60
    assert settings.get("embeddings.dimension") == 768


def test_local_config_file_is_found(tmp_path):
    (tmp_path / ".nexusrag.yaml").write_text("search:\n  overfetch_multiplier: 3\n")

    assert Settings().get("search.overfetch_multiplier") == 3


def test_env_overrides_file(tmp_path, monkeypatch):
    config_file = tmp_path / "custom.yaml"
    config_file.write_text("embeddings:\n  dimension: 768\n")
    monkeypatch.setenv("NEXUSRAG_EMBEDDING_DIM", "384")

    assert Settings(config_file).get("embeddings.dimension") == 384


def test_invalid_env_value(monkeypatch):
    monkeypatch.setenv("NEXUSRAG_EMBEDDING_DIM", "many")

    with pytest.raises(ConfigurationError):
        Settings()


def test_overrides_take_precedence():
    settings = Settings(overrides={"search": {"rrf_k": 10}})

    assert settings.get("search.rrf_k") == 10
    assert settings.get("search.top_k") == 5


def test_defaults_are_not_mutated():
    Settings(overrides={"search": {"rrf_k": 10}})

    assert DEFAULT_CONFIG["search"]["rrf_k"] == 60


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigurationError):
        Settings(tmp_path / "missing.yaml")


def test_non_mapping_file(tmp_path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- a\n- b\n")

    with pytest.raises(ConfigurationError):
        Settings(config_file)


@pytest.mark.parametrize(
    "overrides",
    [
        {"embeddings": {"dimension": 0}},
        {"search": {"top_k": -1}},
        {"search": {"overfetch_multiplier": 0}},
        {"rerank": {"candidate_multiplier": 0}},
        {"rerank": {"timeout_seconds": -1}},
        {"tags": {"merge_threshold": 1.5}},
        {"circuit_breaker": {"timeout_seconds": 0}},
        {"chunking": {"max_chars": 100, "overlap_chars": 100}},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ConfigurationError):
        Settings(overrides=overrides)
