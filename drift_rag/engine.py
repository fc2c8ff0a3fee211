"""
DRIFT retrieval orchestrator (Dynamic Reasoning and Inference with Flexible
Traversal).

Pipeline:
1. Entry-point detection: nearest nodes to the query embedding
2. Traversal: direction-flexible, depth-bounded BFS from every seed
3. Inference (optional): propose missing connections, describe knowledge gaps
4. Aggregation: deduplicate, boost with inferences, threshold, top-K
5. Synthesis: render paths as context and produce the answer

Usage:
    from drift_rag import DriftRAG, HashingEmbeddingProvider, InMemoryGraphIndex

    rag = DriftRAG(index, HashingEmbeddingProvider(), top_k_paths=3)
    answer = await rag.query("What is deep learning?")
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from deployment.circuit_breaker import CircuitBreaker

from .config import (
    DriftConfig,
    InferenceStrategy,
    TraversalDirection,
    coerce_enum,
    inference_cache_size_from_settings,
)
from .entry_points import EntryPointDetector
from .errors import (
    ConfigurationError,
    DriftRAGError,
    EmptyGraphError,
    EmptyQueryError,
    NoEntryPointsError,
    ProviderError,
)
from .graph_traversal import GraphTraverser, NodeFilter
from .inference_engine import InferenceEngine, InferenceOptions
from .models import GraphNode, InferredConnection, RetrievalResult, TraversalPath
from .path_ranking import (
    PathRanker,
    calculate_path_score,
    deduplicate_paths,
    validate_inference,
)
from .providers import EmbeddingProvider, LLMProvider, SimilarityIndex
from .response_synthesis import ResponseSynthesizer

logger = logging.getLogger(__name__)

PROVIDERS = ("embedding", "index", "llm")


def extract_nodes_from_paths(paths: Sequence[TraversalPath]) -> List[GraphNode]:
    """Unique nodes across all paths, in first-seen order."""
    seen = set()
    nodes = []
    for path in paths:
        for node in path.nodes:
            if node.id not in seen:
                seen.add(node.id)
                nodes.append(node)
    return nodes


class DriftRAG:
    """
    Multi-hop graph retrieval with inference-assisted ranking.

    Collaborators are injected: a SimilarityIndex for graph access, an
    EmbeddingProvider for query vectors and, optionally, an LLMProvider for
    answer synthesis. Without an LLM a deterministic template answer is used.

    The only state shared across queries is the inference engine's cache.
    Circuit breakers are opt-in: pass `breakers={"llm": CircuitBreaker(...)}`
    to guard a provider; unguarded providers are called directly.
    """

    def __init__(
        self,
        index: SimilarityIndex,
        embedder: EmbeddingProvider,
        llm: Optional[LLMProvider] = None,
        config: Optional[DriftConfig] = None,
        inference_engine: Optional[InferenceEngine] = None,
        breakers: Optional[Dict[str, CircuitBreaker]] = None,
        inference_cache_size: Optional[int] = None,
        **overrides: Any,
    ):
        if index is None:
            raise DriftRAGError("A similarity index is required")
        if embedder is None:
            raise DriftRAGError("An embedding provider is required")

        config = config or DriftConfig()
        if overrides:
            config = config.apply_update(**overrides)
        self._config = config

        self.index = index
        self.embedder = embedder
        self.llm = llm

        breakers = dict(breakers or {})
        unknown = set(breakers) - set(PROVIDERS)
        if unknown:
            raise ConfigurationError(
                "breakers", sorted(unknown), f"providers must be among {list(PROVIDERS)}"
            )
        self.breakers = breakers

        self.detector = EntryPointDetector(index, embedder, call=self._call_provider)
        self.traverser = GraphTraverser(index, call=self._call_provider)
        self.synthesizer = ResponseSynthesizer(llm, call=self._call_provider)
        if inference_engine is None:
            if inference_cache_size is None:
                inference_cache_size = inference_cache_size_from_settings()
            inference_engine = InferenceEngine(cache_size=inference_cache_size)
        self.inference_engine = inference_engine

    @classmethod
    def from_settings(
        cls,
        index: SimilarityIndex,
        embedder: EmbeddingProvider,
        llm: Optional[LLMProvider] = None,
        settings=None,
        **kwargs: Any,
    ) -> "DriftRAG":
        """Engine configured from environment-backed settings."""
        if kwargs.get("inference_engine") is None and kwargs.get("inference_cache_size") is None:
            kwargs["inference_cache_size"] = inference_cache_size_from_settings(settings)
        return cls(index, embedder, llm, config=DriftConfig.from_settings(settings), **kwargs)

    # ========== Configuration ==========

    def get_config(self) -> DriftConfig:
        return self._config

    def update_config(self, **updates: Any) -> DriftConfig:
        """
        Validate and apply a partial update.

        The engine keeps its previous config if validation fails.
        """
        self._config = self._config.apply_update(**updates)
        logger.info(f"DRIFT config updated: {sorted(updates)}")
        return self._config

    # ========== Provider calls ==========

    async def _call_provider(self, provider: str, fn, *args):
        """Await a collaborator call, through its circuit breaker if one is set."""
        breaker = self.breakers.get(provider)
        try:
            if breaker is None:
                return await fn(*args)
            return await breaker.call_async(fn, *args)
        except DriftRAGError:
            raise
        except Exception as e:
            logger.error(f"{provider} provider call failed: {e}")
            raise ProviderError(provider, str(e), e) from e

    # ========== Pipeline ==========

    async def query(self, query: str, include_provenance: Optional[bool] = None) -> str:
        """Run the full pipeline and return the answer text."""
        result = await self.retrieve(query, include_provenance)
        return result.answer

    async def retrieve(
        self, query: str, include_provenance: Optional[bool] = None
    ) -> RetrievalResult:
        """
        Run the full pipeline and return everything it produced.

        Raises:
            EmptyQueryError: Query is empty or whitespace
            EmptyGraphError: The graph has no nodes
            NoEntryPointsError: No seed nodes matched the query
            ProviderError: Embedding, index or LLM failure
        """
        config = self._config
        if include_provenance is None:
            include_provenance = config.include_provenance

        if query is None or not isinstance(query, str) or not query.strip():
            raise EmptyQueryError()

        all_nodes = await self._call_provider("index", self.index.get_all_nodes)
        if not all_nodes:
            raise EmptyGraphError()

        entry_points = await self.detector.find_entry_points(
            query, config.entry_point_count
        )
        if not entry_points:
            raise NoEntryPointsError(query)

        paths = await self.traverser.traverse_from_entry_points(
            entry_points,
            query,
            config.max_traversal_depth,
            config.traversal_direction,
        )

        inferences: List[InferredConnection] = []
        gaps: List[str] = []
        if config.use_inference:
            gaps = await self._identify_gaps(paths, query, config)
            inferences = await self._infer(
                extract_nodes_from_paths(paths), query, config, config.inference_strategy
            )

        ranked = PathRanker(config).aggregate_and_rank(paths, inferences)
        answer = await self.synthesizer.generate_response(query, ranked, include_provenance)

        logger.info(
            f"DRIFT query: {len(entry_points)} entry points, {len(paths)} paths, "
            f"{len(inferences)} inferences, {len(ranked)} selected"
        )

        return RetrievalResult(
            query=query,
            answer=answer,
            entry_points=entry_points,
            candidate_path_count=len(paths),
            ranked_paths=ranked,
            inferences=inferences,
            knowledge_gaps=gaps,
        )

    # ========== Stages ==========

    async def find_entry_points(self, query: str) -> List[GraphNode]:
        return await self.detector.find_entry_points(query, self._config.entry_point_count)

    async def dynamic_traversal(
        self,
        start_node: GraphNode,
        query: str,
        max_depth: Optional[int] = None,
        direction: Union[str, TraversalDirection, None] = None,
        node_filter: Optional[NodeFilter] = None,
        edge_type_filter: Optional[Sequence[str]] = None,
    ) -> List[TraversalPath]:
        """Traverse from one node; depth and direction default to the config."""
        config = self._config
        return await self.traverser.traverse(
            start_node,
            query,
            config.max_traversal_depth if max_depth is None else max_depth,
            config.traversal_direction if direction is None else direction,
            node_filter,
            edge_type_filter,
        )

    async def traverse_from_entry_points(
        self, entry_points: Sequence[GraphNode], query: str
    ) -> List[TraversalPath]:
        config = self._config
        return await self.traverser.traverse_from_entry_points(
            entry_points, query, config.max_traversal_depth, config.traversal_direction
        )

    async def infer_connections(
        self,
        paths_or_nodes: Sequence[Union[TraversalPath, GraphNode]],
        query: str,
        strategy: Union[str, InferenceStrategy, None] = None,
    ) -> List[InferredConnection]:
        """
        Propose missing connections for paths (their union of nodes) or for
        nodes given directly. Returns [] when inference is disabled or fails.
        """
        config = self._config
        if not config.use_inference:
            return []

        strategy = coerce_enum(
            InferenceStrategy,
            "inference_strategy",
            config.inference_strategy if strategy is None else strategy,
        )

        items = list(paths_or_nodes)
        if items and isinstance(items[0], TraversalPath):
            await self._identify_gaps(items, query, config)
            nodes = extract_nodes_from_paths(items)
        else:
            nodes = items

        return await self._infer(nodes, query, config, strategy)

    async def _infer(
        self,
        nodes: Sequence[GraphNode],
        query: str,
        config: DriftConfig,
        strategy: InferenceStrategy,
    ) -> List[InferredConnection]:
        options = InferenceOptions(
            max_inferences=config.max_inferences,
            confidence_threshold=config.inference_confidence_threshold,
            use_cache=config.use_inference_cache,
            strategy=strategy,
        )
        try:
            inferences = await self.inference_engine.infer_missing_connections(
                nodes, query, options
            )
        except Exception as e:
            logger.warning(f"Inference failed, continuing without it: {e}")
            return []

        return [inf for inf in inferences if validate_inference(inf)]

    async def identify_knowledge_gaps(
        self, paths: Sequence[TraversalPath], query: str
    ) -> List[str]:
        if not self._config.use_inference:
            return []
        return await self._identify_gaps(paths, query, self._config)

    async def _identify_gaps(
        self, paths: Sequence[TraversalPath], query: str, config: DriftConfig
    ) -> List[str]:
        try:
            return await self.inference_engine.identify_knowledge_gaps(
                paths, query, use_cache=config.use_inference_cache
            )
        except Exception as e:
            logger.warning(f"Gap identification failed: {e}")
            return []

    def aggregate_and_rank_paths(
        self,
        paths: Sequence[TraversalPath],
        inferences: Sequence[InferredConnection] = (),
    ) -> List[TraversalPath]:
        return PathRanker(self._config).aggregate_and_rank(paths, inferences)

    async def generate_response(
        self,
        query: str,
        paths: Sequence[TraversalPath],
        include_provenance: bool = False,
    ) -> str:
        return await self.synthesizer.generate_response(query, paths, include_provenance)

    # ========== Scoring helpers ==========

    @staticmethod
    def calculate_path_score(path: TraversalPath, query: str) -> float:
        return calculate_path_score(path.nodes, path.edges, query)

    @staticmethod
    def deduplicate_paths(paths: Sequence[TraversalPath]) -> List[TraversalPath]:
        return deduplicate_paths(paths)

    @staticmethod
    def validate_inference(inference: InferredConnection) -> bool:
        return validate_inference(inference)

    def provider_stats(self) -> Dict[str, dict]:
        return {name: breaker.get_stats() for name, breaker in self.breakers.items()}
