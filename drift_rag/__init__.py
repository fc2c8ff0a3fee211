"""
DRIFT retrieval (Dynamic Reasoning and Inference with Flexible Traversal).

Multi-hop knowledge-graph retrieval:
1. Entry points are found by vector similarity to the query
2. Paths are explored from each entry point in a configurable direction
3. An inference engine proposes missing connections and knowledge gaps
4. Paths are deduplicated, boosted by inferences, thresholded and ranked
5. The top paths are synthesized into an answer

Usage:
    from drift_rag import DriftRAG, HashingEmbeddingProvider, InMemoryGraphIndex

    index = InMemoryGraphIndex()
    rag = DriftRAG(index, HashingEmbeddingProvider())
    answer = await rag.query("What is deep learning?")
"""

from .cache import BoundedCache, make_cache_key
from .config import DriftConfig, InferenceStrategy, TraversalDirection
from .engine import DriftRAG, extract_nodes_from_paths
from .entry_points import EntryPointDetector
from .errors import (
    ConfigurationError,
    DriftRAGError,
    EmptyGraphError,
    EmptyQueryError,
    InferenceError,
    NoEntryPointsError,
    ProviderError,
)
from .graph_traversal import GraphTraverser
from .inference_engine import (
    ConnectionStrategy,
    EmbeddingSimilarityStrategy,
    InferenceEngine,
    InferenceOptions,
    LexicalOverlapStrategy,
    StructuralStrategy,
)
from .models import (
    GraphEdge,
    GraphNode,
    InferredConnection,
    RetrievalResult,
    TraversalPath,
)
from .path_ranking import (
    PathRanker,
    boost_paths_with_inferences,
    calculate_path_score,
    deduplicate_paths,
    rank_paths,
    select_top_k_paths,
    validate_inference,
)
from .providers import (
    EmbeddingProvider,
    HashingEmbeddingProvider,
    InMemoryGraphIndex,
    LLMProvider,
    OpenAIChatProvider,
    SentenceTransformerEmbeddingProvider,
    SimilarityIndex,
)
from .response_synthesis import NO_RESULTS_MESSAGE, ResponseSynthesizer

__all__ = [
    "DriftRAG",
    "DriftConfig",
    "TraversalDirection",
    "InferenceStrategy",
    "GraphNode",
    "GraphEdge",
    "TraversalPath",
    "InferredConnection",
    "RetrievalResult",
    "EntryPointDetector",
    "GraphTraverser",
    "InferenceEngine",
    "InferenceOptions",
    "ConnectionStrategy",
    "LexicalOverlapStrategy",
    "EmbeddingSimilarityStrategy",
    "StructuralStrategy",
    "PathRanker",
    "calculate_path_score",
    "deduplicate_paths",
    "boost_paths_with_inferences",
    "rank_paths",
    "select_top_k_paths",
    "validate_inference",
    "ResponseSynthesizer",
    "NO_RESULTS_MESSAGE",
    "BoundedCache",
    "make_cache_key",
    "SimilarityIndex",
    "EmbeddingProvider",
    "LLMProvider",
    "InMemoryGraphIndex",
    "HashingEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "OpenAIChatProvider",
    "extract_nodes_from_paths",
    "DriftRAGError",
    "ConfigurationError",
    "EmptyQueryError",
    "EmptyGraphError",
    "NoEntryPointsError",
    "ProviderError",
    "InferenceError",
]
