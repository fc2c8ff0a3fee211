"""
Pytest configuration and fixtures for DRIFT retrieval tests
"""
import pytest

from drift_rag import (
    DriftRAG,
    GraphEdge,
    GraphNode,
    HashingEmbeddingProvider,
    InMemoryGraphIndex,
)
from factories import StubLLM
from shared.config import get_settings


ML_NODES = [
    ("ml", "Machine learning is a subset of artificial intelligence", {"category": "ML"}),
    ("dl", "Deep learning uses neural networks with multiple layers", {"category": "ML"}),
    ("nn", "Neural networks are inspired by biological neurons", {"category": "biology"}),
    ("sl", "Supervised learning trains models on labeled data", {"category": "ML"}),
    ("ul", "Unsupervised learning finds patterns in unlabeled data", {"category": "ML"}),
]

ML_EDGES = [
    ("e1", "ml", "dl", "includes", 0.9),
    ("e2", "dl", "nn", "uses", 0.8),
    ("e3", "ml", "sl", "includes", 0.7),
    ("e4", "ml", "ul", "includes", 0.7),
    ("e5", "sl", "nn", "related_to", None),
]


@pytest.fixture(autouse=True)
def fresh_settings():
    """Environment changes made by a test are visible to get_settings()"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def embedder() -> HashingEmbeddingProvider:
    """Deterministic embedding provider"""
    return HashingEmbeddingProvider(dimension=128)


@pytest.fixture
def ml_index(embedder) -> InMemoryGraphIndex:
    """Five machine-learning nodes joined by five directed edges"""
    index = InMemoryGraphIndex()
    for node_id, content, metadata in ML_NODES:
        index.add_node(
            GraphNode(
                id=node_id,
                content=content,
                embedding=embedder.embed_sync(content),
                metadata=metadata,
            )
        )
    for edge_id, source, target, edge_type, weight in ML_EDGES:
        index.add_edge(GraphEdge(edge_id, source, target, edge_type, weight))
    return index


@pytest.fixture
def empty_index() -> InMemoryGraphIndex:
    return InMemoryGraphIndex()


@pytest.fixture
def make_rag(ml_index, embedder):
    """Factory for engines over the ML graph with per-test overrides"""

    def _make(**kwargs) -> DriftRAG:
        index = kwargs.pop("index", ml_index)
        emb = kwargs.pop("embedder", embedder)
        return DriftRAG(index, emb, **kwargs)

    return _make


@pytest.fixture
def rag(make_rag) -> DriftRAG:
    return make_rag(
        entry_point_count=3,
        max_traversal_depth=3,
        traversal_direction="bidirectional",
        top_k_paths=5,
        min_path_score=0.3,
    )


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()
