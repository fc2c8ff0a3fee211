"""
Collaborator interfaces and shipped implementations.

The retrieval core only talks to these protocols:
- SimilarityIndex: node/edge lookup plus nearest-neighbour search
- EmbeddingProvider: text -> fixed-length vector
- LLMProvider: prompt -> text

Every call is a coroutine so a query waits on I/O without blocking other
queries in the same process.
"""

import asyncio
import hashlib
import logging
import re
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from shared.config import EmbeddingConfig, LLMConfig, get_settings

from .models import GraphEdge, GraphNode

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")


@runtime_checkable
class SimilarityIndex(Protocol):
    """Graph storage plus vector index (Neo4j, Chroma, in-memory...)."""

    async def get_node(self, node_id: str) -> Optional[GraphNode]: ...

    async def find_similar(self, vector: Sequence[float], k: int) -> List[GraphNode]: ...

    async def get_outgoing_edges(self, node_id: str) -> List[GraphEdge]: ...

    async def get_incoming_edges(self, node_id: str) -> List[GraphEdge]: ...

    async def get_all_nodes(self) -> List[GraphNode]: ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> np.ndarray: ...


@runtime_checkable
class LLMProvider(Protocol):
    async def complete(self, prompt: str) -> str: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity, 0.0 when either vector is empty, zero or mismatched."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class InMemoryGraphIndex:
    """
    In-memory graph with brute-force cosine search.

    In production, use Neo4j, a vector store, or similar behind the
    SimilarityIndex protocol.

    Usage:
        index = InMemoryGraphIndex()
        index.add_node(GraphNode(id="ml", content="machine learning", embedding=vec))
        index.add_edge(GraphEdge(id="e1", source="ml", target="dl", type="includes"))
        seeds = await index.find_similar(query_vec, k=3)
    """

    def __init__(self):
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[str, GraphEdge] = {}
        self._outgoing: Dict[str, List[GraphEdge]] = {}
        self._incoming: Dict[str, List[GraphEdge]] = {}

    def add_node(self, node: GraphNode) -> None:
        self.nodes[node.id] = node
        self._outgoing.setdefault(node.id, [])
        self._incoming.setdefault(node.id, [])

    def add_edge(self, edge: GraphEdge) -> None:
        """Add a directed edge. Endpoints need not exist yet."""
        if edge.weight is not None and not 0.0 <= edge.weight <= 1.0:
            raise ValueError(f"Edge {edge.id} weight {edge.weight} outside [0, 1]")
        self.edges[edge.id] = edge
        self._outgoing.setdefault(edge.source, []).append(edge)
        self._incoming.setdefault(edge.target, []).append(edge)

    async def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self.nodes.get(node_id)

    async def find_similar(self, vector: Sequence[float], k: int) -> List[GraphNode]:
        if k <= 0 or not self.nodes:
            return []

        scored = []
        for node in self.nodes.values():
            if len(node.embedding) == 0:
                continue
            scored.append((cosine_similarity(vector, node.embedding), node))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [node for _, node in scored[:k]]

    async def get_outgoing_edges(self, node_id: str) -> List[GraphEdge]:
        return list(self._outgoing.get(node_id, []))

    async def get_incoming_edges(self, node_id: str) -> List[GraphEdge]:
        return list(self._incoming.get(node_id, []))

    async def get_all_nodes(self) -> List[GraphNode]:
        return list(self.nodes.values())


class HashingEmbeddingProvider:
    """
    Deterministic feature-hashing embedder.

    Each lowercase word token lands in an md5-derived bucket; the count vector
    is L2-normalised. Same text, same vector. Texts sharing words get a
    positive cosine similarity, which is enough for tests and demos.
    """

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed_sync(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=float)
        for token in _TOKEN_RE.findall(text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector

    async def embed(self, text: str) -> np.ndarray:
        return self.embed_sync(text)


class SentenceTransformerEmbeddingProvider:
    """
    sentence-transformers backed embedder.

    The model is loaded lazily on first use and encoding runs in a worker
    thread. Preprocessing is deterministic; any change means re-embedding the
    graph.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or get_settings().embedding
        self._model = None

    @property
    def model(self):
        """Lazy load the model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.config.model_name}")
            self._model = SentenceTransformer(self.config.model_name)
        return self._model

    def preprocess_text(self, text: str) -> str:
        text = " ".join(text.split())
        max_chars = self.config.max_seq_length * 4  # Approximate
        return text[:max_chars]

    def _encode(self, text: str) -> np.ndarray:
        vector = self.model.encode(
            [self.preprocess_text(text)], convert_to_numpy=True
        )[0]
        if self.config.normalize:
            vector = vector / (np.linalg.norm(vector) + 1e-10)
        return vector

    async def embed(self, text: str) -> np.ndarray:
        return await asyncio.to_thread(self._encode, text)


class OpenAIChatProvider:
    """
    Chat-completions LLM provider.

    The async OpenAI client is created lazily so that importing this module
    never needs credentials.
    """

    def __init__(
        self,
        api_key: str = None,
        config: Optional[LLMConfig] = None,
        system_prompt: str = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.config = config or settings.llm
        self.system_prompt = system_prompt
        self._client = None

    @property
    def client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.config.timeout)
        return self._client

    async def complete(self, prompt: str) -> str:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(f"LLM usage: {usage.total_tokens} tokens ({response.model})")
        return response.choices[0].message.content or ""


async def direct_call(provider: str, fn, *args):
    """Default provider-call hook: await `fn(*args)` with no guarding."""
    return await fn(*args)
