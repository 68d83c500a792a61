"""Embedding providers for vector-based semantic search."""

from .base import BaseEmbeddingProvider, EmbeddingProvider, EmbeddingResult
from .gemini import GeminiEmbeddingProvider
from .mock import MockEmbeddingProvider
from .ollama import OllamaEmbeddingProvider
from .openai import OpenAIEmbeddingProvider

__all__ = [
    "BaseEmbeddingProvider",
    "EmbeddingProvider",
    "EmbeddingResult",
    "GeminiEmbeddingProvider",
    "MockEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
]
