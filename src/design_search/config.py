"""
Configuration for the search core.

The configuration is a plain value: it is loaded once by the caller and
passed into the store, index manager, and search engine constructors.

Precedence for each setting:
1) explicit override argument
2) DESIGN_SEARCH_* environment variable
3) JSON config file
4) default
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .embeddings import (
    EmbeddingProvider,
    GeminiEmbeddingProvider,
    MockEmbeddingProvider,
    OllamaEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from .errors import ConfigurationError
from .index.hnsw import HNSWParams


DEFAULT_DATA_DIR = "~/.design_search"
DEFAULT_DB_FILENAME = "index.duckdb"
DEFAULT_CACHE_FILENAME = "hnsw_index.json"

ENV_DB_PATH = "DESIGN_SEARCH_DB_PATH"
ENV_INDEX_CACHE = "DESIGN_SEARCH_INDEX_CACHE"
ENV_VECTOR_ENABLED = "DESIGN_SEARCH_VECTOR_ENABLED"
ENV_PROVIDER = "DESIGN_SEARCH_EMBEDDING_PROVIDER"
ENV_EMBEDDING_DIM = "DESIGN_SEARCH_EMBEDDING_DIM"
ENV_EMBEDDING_MODEL = "DESIGN_SEARCH_EMBEDDING_MODEL"

_FALSE_VALUES = {"0", "false", "no", "off"}


class _ProviderConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    dimensions: int = Field(gt=0)


class MockProviderConfig(_ProviderConfigBase):
    """Hash-derived offline embeddings."""

    kind: Literal["mock"] = "mock"
    dimensions: int = Field(default=384, gt=0)

    def create(self) -> EmbeddingProvider:
        return MockEmbeddingProvider(self.dimensions)


class GeminiProviderConfig(_ProviderConfigBase):
    """Google GenAI embeddings; the key falls back to GOOGLE_API_KEY."""

    kind: Literal["gemini"] = "gemini"
    model: str = "gemini-embedding-001"
    dimensions: int = Field(default=768, gt=0)
    batch_size: int = Field(default=50, gt=0)
    api_key: str | None = None

    def create(self) -> EmbeddingProvider:
        return GeminiEmbeddingProvider(
            api_key=self.api_key,
            model=self.model,
            dim=self.dimensions,
            batch_size=self.batch_size,
        )


class OllamaProviderConfig(_ProviderConfigBase):
    """Local Ollama server."""

    kind: Literal["ollama"] = "ollama"
    host: str = "http://localhost:11434"
    model: str = "nomic-embed-text"
    dimensions: int = Field(default=768, gt=0)
    timeout: float = Field(default=300.0, gt=0)

    def create(self) -> EmbeddingProvider:
        return OllamaEmbeddingProvider(
            host=self.host,
            model=self.model,
            dim=self.dimensions,
            timeout=self.timeout,
        )


class OpenAIProviderConfig(_ProviderConfigBase):
    """OpenAI embeddings REST API; the key falls back to OPENAI_API_KEY."""

    kind: Literal["openai"] = "openai"
    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=1536, gt=0)
    batch_size: int = Field(default=100, gt=0)
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None

    def create(self) -> EmbeddingProvider:
        return OpenAIEmbeddingProvider(
            api_key=self.api_key,
            model=self.model,
            dim=self.dimensions,
            batch_size=self.batch_size,
            base_url=self.base_url,
        )


ProviderConfig = Annotated[
    Union[
        MockProviderConfig,
        GeminiProviderConfig,
        OllamaProviderConfig,
        OpenAIProviderConfig,
    ],
    Field(discriminator="kind"),
]

PROVIDER_KINDS: tuple[str, ...] = ("mock", "gemini", "ollama", "openai")


def _default_path(filename: str) -> Path:
    return Path(DEFAULT_DATA_DIR).expanduser() / filename


class SearchConfig(BaseModel):
    """Settings consumed by the vector store, index, and search engine."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    provider: ProviderConfig = Field(default_factory=MockProviderConfig)
    db_path: Path = Field(default_factory=lambda: _default_path(DEFAULT_DB_FILENAME))
    index_cache_path: Path = Field(
        default_factory=lambda: _default_path(DEFAULT_CACHE_FILENAME)
    )
    oversample_factor: int = Field(default=4, ge=1)
    hnsw: HNSWParams = Field(default_factory=HNSWParams)

    @field_validator("db_path", "index_cache_path")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @property
    def dimensions(self) -> int:
        return self.provider.dimensions

    @property
    def provider_kind(self) -> str:
        return self.provider.kind


def load_config(
    config_path: str | Path | None = None,
    *,
    db_path: str | None = None,
    env: Mapping[str, str] | None = None,
) -> SearchConfig:
    """Build a SearchConfig from defaults, an optional JSON file, and env vars."""
    environ = os.environ if env is None else env
    raw: dict[str, Any] = {}
    if config_path is not None:
        raw = _read_config_file(Path(config_path).expanduser())

    _apply_env(raw, environ)
    if db_path:
        raw["db_path"] = db_path

    try:
        return SearchConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object.")
    return data


def _apply_env(raw: dict[str, Any], environ: Mapping[str, str]) -> None:
    if environ.get(ENV_DB_PATH):
        raw["db_path"] = environ[ENV_DB_PATH]
    if environ.get(ENV_INDEX_CACHE):
        raw["index_cache_path"] = environ[ENV_INDEX_CACHE]
    if environ.get(ENV_VECTOR_ENABLED):
        raw["enabled"] = environ[ENV_VECTOR_ENABLED].strip().lower() not in _FALSE_VALUES

    provider = dict(raw.get("provider") or {})
    kind = environ.get(ENV_PROVIDER)
    if kind:
        kind = kind.strip().lower()
        if kind not in PROVIDER_KINDS:
            raise ConfigurationError(
                f"Unknown embedding provider {kind!r}. "
                f"Expected one of: {', '.join(PROVIDER_KINDS)}"
            )
        if provider.get("kind") != kind:
            provider = {"kind": kind}
    if environ.get(ENV_EMBEDDING_DIM):
        try:
            provider["dimensions"] = int(environ[ENV_EMBEDDING_DIM])
        except ValueError as exc:
            raise ConfigurationError(
                f"{ENV_EMBEDDING_DIM} must be an integer: {environ[ENV_EMBEDDING_DIM]!r}"
            ) from exc
    if environ.get(ENV_EMBEDDING_MODEL):
        provider["model"] = environ[ENV_EMBEDDING_MODEL]
    if provider:
        provider.setdefault("kind", "mock")
        raw["provider"] = provider
