"""OllamaEmbedder: Embedder implementation for local Ollama instances.

Uses HTTP requests to the Ollama REST API (``POST /api/embed``). An
unreachable server, an HTTP error or a malformed body never raises: the
embedder returns ``Unavailable`` and callers keep the node pending.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from kt.protocols import EmbedResult, ModelError, Unavailable
from kt.utils import DEFAULT_EMBED_DIMENSION, DEFAULT_EMBED_MODEL, DEFAULT_OLLAMA_HOST

logger = logging.getLogger(__name__)


class OllamaEmbedder:
    """Embedder backed by a local Ollama instance.

    Requires a running Ollama server with the model pulled::

        ollama pull nomic-embed-text

    Usage::

        embedder = OllamaEmbedder()
        vector = embedder.embed("Pricing is two-tier")
        if not vector:
            print(vector.reason)
    """

    def __init__(
        self,
        model_id: str = DEFAULT_EMBED_MODEL,
        *,
        base_url: str = DEFAULT_OLLAMA_HOST,
        dimension: int = DEFAULT_EMBED_DIMENSION,
        timeout: int = 30,
    ) -> None:
        try:
            import requests as _requests  # noqa: F811
        except ImportError:
            raise ImportError(
                "The 'requests' package is required for OllamaEmbedder. "
                "Install it with: pip install requests"
            ) from None

        self._requests = _requests
        self._model_id = model_id
        self._base_url = base_url.rstrip("/")
        self._dimension = dimension
        self._timeout = timeout

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> EmbedResult:
        """Embed text, or return Unavailable when Ollama cannot produce a vector."""
        try:
            data = self._post("/api/embed", {"model": self._model_id, "input": text})
        except ModelError as exc:
            logger.debug(f"Embedding unavailable ({exc.error_class}): {exc}")
            return Unavailable(str(exc))

        vector = self._extract_vector(data)
        if vector is None:
            return Unavailable(f"Malformed embedding response from {self._base_url}")
        if len(vector) != self._dimension:
            return Unavailable(
                f"{self._model_id} returned {len(vector)} dimensions, expected {self._dimension}"
            )
        return vector

    def is_available(self) -> bool:
        """True when the Ollama server answers at all."""
        try:
            resp = self._requests.get(f"{self._base_url}/api/tags", timeout=5)
        except self._requests.RequestException:
            return False
        return resp.status_code == 200

    # ---- Internal helpers ----

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to the Ollama API and return parsed JSON."""
        url = f"{self._base_url}{path}"
        try:
            resp = self._requests.post(url, json=payload, timeout=self._timeout)
        except self._requests.ConnectionError as exc:
            raise ModelError(
                "timeout", f"Cannot connect to Ollama at {self._base_url}: {exc}"
            ) from exc
        except self._requests.Timeout as exc:
            raise ModelError(
                "timeout", f"Ollama request timed out after {self._timeout}s: {exc}"
            ) from exc
        except self._requests.RequestException as exc:
            raise ModelError("unknown", f"Ollama request to {url} failed: {exc}") from exc

        if resp.status_code != 200:
            error_class = self._classify_http_status(resp.status_code)
            raise ModelError(error_class, f"Ollama returned HTTP {resp.status_code}: {resp.text}")

        try:
            return resp.json()
        except ValueError as exc:
            raise ModelError("server", f"Ollama returned invalid JSON: {exc}") from exc

    @staticmethod
    def _classify_http_status(status_code: int) -> str:
        """Map HTTP status codes to error classes."""
        if status_code == 401:
            return "auth"
        if status_code == 429:
            return "rate_limit"
        if status_code >= 500:
            return "server"
        return "unknown"

    @staticmethod
    def _extract_vector(data: Any) -> Optional[list[float]]:
        if not isinstance(data, dict):
            return None
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list) or not embeddings:
            return None
        first = embeddings[0]
        if not isinstance(first, list) or not first:
            return None
        try:
            return [float(x) for x in first]
        except (TypeError, ValueError):
            return None
