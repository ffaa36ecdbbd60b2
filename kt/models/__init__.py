"""kt model implementations.

The summarizer's language model (Anthropic) and the embedder (Ollama).
"""

from __future__ import annotations

from kt.models.anthropic import AnthropicModel
from kt.models.ollama import OllamaEmbedder

__all__ = ["AnthropicModel", "OllamaEmbedder"]
