"""Tests for configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from design_search.config import (
    GeminiProviderConfig,
    MockProviderConfig,
    OllamaProviderConfig,
    OpenAIProviderConfig,
    SearchConfig,
    load_config,
)
from design_search.embeddings import MockEmbeddingProvider
from design_search.errors import ConfigurationError
from design_search.index import HNSWParams


def test_defaults() -> None:
    config = load_config(env={})

    assert config.enabled is True
    assert isinstance(config.provider, MockProviderConfig)
    assert config.dimensions == 384
    assert config.oversample_factor == 4
    assert config.hnsw == HNSWParams(m=16, ef_construction=200, ef_search=100, seed=42)
    assert config.db_path == Path("~/.design_search/index.duckdb").expanduser()
    assert config.index_cache_path.name == "hnsw_index.json"


def test_config_file_selects_provider_variant(tmp_path: Path) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps(
            {
                "enabled": False,
                "provider": {"kind": "ollama", "host": "http://gpu-box:11434"},
                "hnsw": {"m": 8, "ef_search": 50},
            }
        )
    )

    config = load_config(config_file, env={})

    assert config.enabled is False
    assert isinstance(config.provider, OllamaProviderConfig)
    assert config.provider.host == "http://gpu-box:11434"
    assert config.dimensions == 768
    assert config.hnsw.m == 8
    assert config.hnsw.ef_search == 50
    assert config.hnsw.ef_construction == 200


def test_env_overrides_file(tmp_path: Path) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"provider": {"kind": "gemini", "dimensions": 768}}))

    config = load_config(
        config_file,
        env={
            "DESIGN_SEARCH_EMBEDDING_PROVIDER": "openai",
            "DESIGN_SEARCH_EMBEDDING_DIM": "256",
            "DESIGN_SEARCH_EMBEDDING_MODEL": "text-embedding-3-large",
            "DESIGN_SEARCH_VECTOR_ENABLED": "false",
            "DESIGN_SEARCH_DB_PATH": str(tmp_path / "env.duckdb"),
        },
    )

    assert isinstance(config.provider, OpenAIProviderConfig)
    assert config.dimensions == 256
    assert config.provider.model == "text-embedding-3-large"
    assert config.enabled is False
    assert config.db_path == tmp_path / "env.duckdb"


def test_env_keeps_file_payload_for_same_kind(tmp_path: Path) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps({"provider": {"kind": "gemini", "batch_size": 10}})
    )

    config = load_config(
        config_file, env={"DESIGN_SEARCH_EMBEDDING_PROVIDER": "gemini"}
    )

    assert isinstance(config.provider, GeminiProviderConfig)
    assert config.provider.batch_size == 10


def test_explicit_db_path_wins(tmp_path: Path) -> None:
    config = load_config(
        db_path=str(tmp_path / "cli.duckdb"),
        env={"DESIGN_SEARCH_DB_PATH": str(tmp_path / "env.duckdb")},
    )

    assert config.db_path == tmp_path / "cli.duckdb"


def test_unknown_provider_kind_raises() -> None:
    with pytest.raises(ConfigurationError, match="azure"):
        load_config(env={"DESIGN_SEARCH_EMBEDDING_PROVIDER": "azure"})


def test_invalid_values_raise_configuration_error(tmp_path: Path) -> None:
    bad_value = tmp_path / "bad.json"
    bad_value.write_text(json.dumps({"oversample_factor": 0}))
    not_json = tmp_path / "broken.json"
    not_json.write_text("{not json")

    with pytest.raises(ConfigurationError):
        load_config(bad_value, env={})
    with pytest.raises(ConfigurationError):
        load_config(not_json, env={})
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.json", env={})
    with pytest.raises(ConfigurationError):
        load_config(env={"DESIGN_SEARCH_EMBEDDING_DIM": "many"})


def test_provider_variant_creates_its_provider() -> None:
    config = SearchConfig(provider=MockProviderConfig(dimensions=16))

    provider = config.provider.create()

    assert isinstance(provider, MockEmbeddingProvider)
    assert provider.dimension == 16
    assert config.provider_kind == "mock"
