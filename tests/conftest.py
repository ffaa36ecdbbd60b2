"""
Pytest fixtures and test configuration for kt tests.

Stores are file-backed under tmp_path. The embedder, vector index and
summarizer are in-memory fakes so tests never touch Ollama, sqlite-vec or
the Anthropic API unless a test asks for the real thing.
"""

import logging
import math
from typing import Dict, List, Optional

import pytest

from kt.graph import KnowledgeGraph
from kt.protocols import Neighbor, Unavailable
from kt.storage import KnowledgeStore
from kt.types import days_ago

TEST_DIMENSION = 4


class FakeEmbedder:
    """Deterministic embedder.

    Texts containing a registered keyword get that keyword's vector;
    anything else gets a vector derived from its length. Set ``down`` to
    simulate an unreachable provider.
    """

    def __init__(self, dimension: int = TEST_DIMENSION):
        self._dimension = dimension
        self.keywords: Dict[str, List[float]] = {}
        self.down = False
        self.fail_after: Optional[int] = None
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def register(self, keyword: str, vector: List[float]) -> None:
        self.keywords[keyword] = vector

    def embed(self, text: str):
        self.calls.append(text)
        if self.down:
            return Unavailable("embedder down")
        if self.fail_after is not None and len(self.calls) > self.fail_after:
            return Unavailable("embedder went away")
        for keyword, vector in self.keywords.items():
            if keyword in text:
                return list(vector)
        base = float(len(text) % 97)
        return [base, 1.0, 0.0, 0.0][: self._dimension]


class InMemoryIndex:
    """VectorIndex over a dict; distances are L2."""

    def __init__(self, available: bool = True):
        self.vectors: Dict[str, List[float]] = {}
        self._available = available

    @property
    def available(self) -> bool:
        return self._available

    def upsert(self, node_id: str, vector: List[float]) -> None:
        if self._available:
            self.vectors[node_id] = list(vector)

    def delete(self, node_id: str) -> None:
        self.vectors.pop(node_id, None)

    def get(self, node_id: str) -> Optional[List[float]]:
        return self.vectors.get(node_id)

    def query(self, vector: List[float], k: int) -> List[Neighbor]:
        if not self._available:
            return []
        scored = [
            Neighbor(node_id, math.dist(vector, stored)) for node_id, stored in self.vectors.items()
        ]
        scored.sort(key=lambda n: (n.distance, n.node_id))
        return scored[:k]


class FakeSummarizer:
    """Summarizer returning canned text (or Unavailable) and recording prompts."""

    def __init__(self, text: str = "Summary of the cluster."):
        self.text = text
        self.unavailable_reason: Optional[str] = None
        self.prompts: List[str] = []

    def synthesize(self, prompt: str):
        self.prompts.append(prompt)
        if self.unavailable_reason:
            return Unavailable(self.unavailable_reason)
        return self.text


@pytest.fixture(autouse=True)
def kt_data_dir(tmp_path, monkeypatch):
    """Keep logs and default paths inside the test's tmp_path."""
    data_dir = tmp_path / "kt-home"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KT_DATA_DIR", str(data_dir))
    monkeypatch.delenv("KT_DB_PATH", raising=False)
    monkeypatch.delenv("CLAUDE_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    logger = logging.getLogger("kt")
    logger.handlers.clear()
    yield data_dir
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)


@pytest.fixture
def index():
    return InMemoryIndex()


@pytest.fixture
def store(tmp_path, index):
    """Open store with the in-memory vector index."""
    s = KnowledgeStore(
        tmp_path / "kt.db", embedding_dimension=TEST_DIMENSION, use_vec=False, index=index
    )
    s.open()
    yield s
    s.close()


@pytest.fixture
def vec_store(tmp_path):
    """Open store using the real sqlite-vec index; skipped when it cannot load."""
    s = KnowledgeStore(tmp_path / "vec.db", embedding_dimension=TEST_DIMENSION)
    s.open()
    if not s.has_vec:
        s.close()
        pytest.skip("sqlite-vec extension not loadable")
    yield s
    s.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def graph(store, embedder, summarizer):
    return KnowledgeGraph(store, embedder=embedder, summarizer=summarizer)


def _backdate(store: KnowledgeStore, node_id: str, days: float) -> None:
    """Pretend a node was created and last updated ``days`` ago."""
    ts = days_ago(days)
    with store.transaction() as conn:
        conn.execute(
            "UPDATE nodes SET created_at = ?, updated_at = ? WHERE id = ?", (ts, ts, node_id)
        )


def _backdate_link(store: KnowledgeStore, link_id: str, days: float) -> None:
    with store.transaction() as conn:
        conn.execute("UPDATE links SET created_at = ? WHERE id = ?", (days_ago(days), link_id))


def _make_stale(store: KnowledgeStore, *node_ids: str) -> None:
    for node_id in node_ids:
        store.nodes.update_status(node_id, "stale")


@pytest.fixture
def backdate(store):
    """backdate(node_id, days)"""
    return lambda node_id, days: _backdate(store, node_id, days)


@pytest.fixture
def backdate_link(store):
    """backdate_link(link_id, days)"""
    return lambda link_id, days: _backdate_link(store, link_id, days)


@pytest.fixture
def make_stale(store):
    """make_stale(*node_ids)"""
    return lambda *node_ids: _make_stale(store, *node_ids)
