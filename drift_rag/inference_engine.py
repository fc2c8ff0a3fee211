"""
Inference engine for DRIFT retrieval.

Proposes connections missing from the stored graph and describes knowledge
gaps the retrieved paths leave open. Inference is advisory: results only
boost path scores and are never written back to the graph.

With an LLM provider the engine prompts for structured JSON. Without one it
runs the selected heuristic strategy:
- semantic: shared content terms between node pairs
- similarity: cosine similarity of node embeddings
- structural: shared metadata attributes

Any failure inside inference is logged and degrades to an empty result.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from shared.schemas import GapPayload, InferenceItem, InferencePayload

from .cache import BoundedCache, make_cache_key
from .config import InferenceStrategy, coerce_enum
from .errors import ConfigurationError, InferenceError
from .models import GraphNode, InferredConnection, TraversalPath
from .path_ranking import tokenize, validate_inference
from .providers import LLMProvider, cosine_similarity

logger = logging.getLogger(__name__)

NO_PATHS_GAP = "No paths available for gap analysis"

STOP_WORDS = {
    "a", "an", "and", "are", "be", "can", "do", "does", "for", "how", "in",
    "is", "it", "of", "on", "or", "the", "to", "was", "what", "when", "where",
    "which", "who", "why", "with",
}

INFERENCE_PROMPT = """Given the following knowledge graph nodes and a user query,
identify potential missing connections between these nodes.

User Query: {query}

Nodes:
{nodes}

For each potential connection, provide:
1. Source node ID
2. Target node ID
3. Type of relationship
4. Reasoning for why this connection might exist
5. Confidence score (0.0 to 1.0)

Strategy: {strategy}

Respond ONLY with valid JSON:
{{
    "inferences": [
        {{
            "source": "node_id",
            "target": "node_id",
            "type": "relationship_type",
            "reasoning": "explanation",
            "confidence": 0.85
        }}
    ]
}}"""

GAP_PROMPT = """Analyze the following knowledge graph paths in relation to a user query.
Identify gaps in knowledge or missing information.

User Query: {query}

Paths:
{paths}

List any knowledge gaps, missing connections, or information that would help
answer the query more completely. Be specific and concise.

Respond ONLY with a JSON array of gap descriptions."""


@dataclass
class InferenceOptions:
    """Per-call inference options."""

    max_inferences: int = 10
    confidence_threshold: float = 0.5
    use_cache: bool = True
    strategy: InferenceStrategy = InferenceStrategy.SEMANTIC

    def __post_init__(self):
        self.strategy = coerce_enum(InferenceStrategy, "inference_strategy", self.strategy)
        if self.max_inferences <= 0:
            raise ConfigurationError(
                "max_inferences", self.max_inferences, "must be positive"
            )
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigurationError(
                "confidence_threshold", self.confidence_threshold, "must be between 0 and 1"
            )


class ConnectionStrategy(ABC):
    """Pluggable way of measuring overlap between node pairs."""

    name: InferenceStrategy

    @abstractmethod
    def propose(self, nodes: Sequence[GraphNode], query: str) -> List[InferredConnection]:
        """Candidate connections between pairs of `nodes`, unfiltered."""


class LexicalOverlapStrategy(ConnectionStrategy):
    """Pairs sharing more than one content term; confidence grows per shared term."""

    name = InferenceStrategy.SEMANTIC

    def __init__(self, min_overlap: int = 2):
        self.min_overlap = min_overlap

    def propose(self, nodes, query):
        tokens = {node.id: tokenize(node.content) for node in nodes}
        inferences = []

        for source, target in combinations(nodes, 2):
            overlap = len(tokens[source.id] & tokens[target.id])
            if overlap < self.min_overlap:
                continue
            inferences.append(
                InferredConnection(
                    source_node=source.id,
                    target_node=target.id,
                    reasoning=f"Content similarity based on {overlap} common terms",
                    confidence=min(0.5 + overlap * 0.1, 0.95),
                    inferred_type="related_to",
                )
            )

        return inferences


class EmbeddingSimilarityStrategy(ConnectionStrategy):
    """
    Pairs whose embeddings point the same way.

    Falls back to term Jaccard for nodes without comparable embeddings.
    """

    name = InferenceStrategy.SIMILARITY

    def __init__(self, min_similarity: float = 0.3):
        self.min_similarity = min_similarity

    def _similarity(self, a: GraphNode, b: GraphNode) -> float:
        if len(a.embedding) and len(a.embedding) == len(b.embedding):
            return cosine_similarity(a.embedding, b.embedding)
        ta, tb = tokenize(a.content), tokenize(b.content)
        if not ta or not tb:
            return 0.0
        return len(ta & tb) / len(ta | tb)

    def propose(self, nodes, query):
        inferences = []

        for source, target in combinations(nodes, 2):
            similarity = max(0.0, min(1.0, self._similarity(source, target)))
            if similarity < self.min_similarity:
                continue
            inferences.append(
                InferredConnection(
                    source_node=source.id,
                    target_node=target.id,
                    reasoning=f"Vector similarity of {similarity:.2f}",
                    confidence=round(similarity, 4),
                    inferred_type="similar_to",
                )
            )

        return inferences


class StructuralStrategy(ConnectionStrategy):
    """Pairs sharing metadata attributes (category, type, source...)."""

    name = InferenceStrategy.STRUCTURAL

    @staticmethod
    def _attributes(node: GraphNode) -> set:
        attrs = set()
        for key, value in (node.metadata or {}).items():
            try:
                hash(value)
            except TypeError:
                continue
            attrs.add((key, value))
        return attrs

    def propose(self, nodes, query):
        attributes = {node.id: self._attributes(node) for node in nodes}
        inferences = []

        for source, target in combinations(nodes, 2):
            shared = attributes[source.id] & attributes[target.id]
            if not shared:
                continue
            described = ", ".join(f"{k}={v}" for k, v in sorted(shared, key=str))
            inferences.append(
                InferredConnection(
                    source_node=source.id,
                    target_node=target.id,
                    reasoning=f"Shared attributes: {described}",
                    confidence=min(0.5 + len(shared) * 0.15, 0.95),
                    inferred_type="shares_attributes",
                )
            )

        return inferences


DEFAULT_STRATEGIES = (
    LexicalOverlapStrategy,
    EmbeddingSimilarityStrategy,
    StructuralStrategy,
)


def _extract_json(text: str):
    """Parse JSON from an LLM reply, tolerating prose around it."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = re.search(r"(\{[\s\S]*\}|\[[\s\S]*\])", text)
    if match:
        try:
            return json.loads(match.group())
        except json.JSONDecodeError:
            pass

    raise InferenceError(f"Could not parse LLM response: {text[:200]!r}")


class InferenceEngine:
    """
    Proposes missing connections and knowledge gaps.

    Usage:
        engine = InferenceEngine()
        inferences = await engine.infer_missing_connections(nodes, query)
        gaps = await engine.identify_knowledge_gaps(paths, query)

        # LLM-backed
        engine = InferenceEngine(llm=OpenAIChatProvider())
    """

    def __init__(
        self,
        llm: Optional[LLMProvider] = None,
        cache_size: int = 1000,
        strategies: Optional[Sequence[ConnectionStrategy]] = None,
    ):
        self.llm = llm
        self.inference_cache = BoundedCache(max_size=cache_size)
        self.gap_cache = BoundedCache(max_size=cache_size)

        if strategies is None:
            strategies = [cls() for cls in DEFAULT_STRATEGIES]
        self.strategies: Dict[InferenceStrategy, ConnectionStrategy] = {
            s.name: s for s in strategies
        }

    async def infer_missing_connections(
        self,
        nodes: Sequence[GraphNode],
        query: str,
        options: Optional[InferenceOptions] = None,
    ) -> List[InferredConnection]:
        """
        Propose connections between `nodes` relevant to `query`.

        Args:
            nodes: Candidate nodes, typically every node on the traversal paths
            query: User query
            options: Threshold, cap, cache and strategy settings

        Returns:
            Valid inferences at or above the threshold, highest confidence
            first, at most `options.max_inferences`. Empty on any failure.
        """
        if not nodes:
            return []

        options = options or InferenceOptions()
        mode = "llm" if self.llm is not None else "heuristic"
        cache_key = make_cache_key(
            query, (n.id for n in nodes), options.strategy.value, mode
        )

        candidates = self.inference_cache.get(cache_key) if options.use_cache else None

        if candidates is None:
            try:
                if self.llm is not None:
                    candidates = await self._llm_infer(nodes, query, options)
                else:
                    candidates = self._heuristic_infer(nodes, query, options)
            except Exception as e:
                logger.warning(f"Inference failed, continuing without it: {e}")
                return []

            candidates = [c for c in candidates if validate_inference(c)]
            if options.use_cache:
                self.inference_cache.set(cache_key, candidates)

        accepted = [c for c in candidates if c.confidence >= options.confidence_threshold]
        accepted.sort(key=lambda c: c.confidence, reverse=True)
        return accepted[: options.max_inferences]

    def _heuristic_infer(
        self, nodes: Sequence[GraphNode], query: str, options: InferenceOptions
    ) -> List[InferredConnection]:
        strategy = self.strategies.get(options.strategy)
        if strategy is None:
            raise InferenceError(f"No strategy registered for {options.strategy.value}")
        return strategy.propose(nodes, query)

    async def _llm_infer(
        self, nodes: Sequence[GraphNode], query: str, options: InferenceOptions
    ) -> List[InferredConnection]:
        nodes_text = "\n".join(
            f"- Node {i + 1} (ID: {node.id}): {node.content}"
            for i, node in enumerate(nodes)
        )
        prompt = INFERENCE_PROMPT.format(
            query=query, nodes=nodes_text, strategy=options.strategy.value
        )

        response = await self.llm.complete(prompt)
        data = _extract_json(response)
        if isinstance(data, list):
            data = {"inferences": data}

        try:
            payload = InferencePayload.model_validate(data)
        except ValidationError as e:
            raise InferenceError(f"Malformed inference payload: {e}") from e

        known_ids = {n.id for n in nodes}
        inferences = []
        for raw in payload.inferences:
            try:
                item = InferenceItem.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping unparseable inference {raw!r}: {e}")
                continue

            if item.source not in known_ids or item.target not in known_ids:
                logger.debug(f"Skipping inference on unknown node: {item.source} -> {item.target}")
                continue

            inferences.append(
                InferredConnection(
                    source_node=item.source,
                    target_node=item.target,
                    reasoning=item.reasoning,
                    confidence=item.confidence,
                    inferred_type=item.type,
                )
            )

        return inferences

    async def identify_knowledge_gaps(
        self,
        paths: Sequence[TraversalPath],
        query: str,
        use_cache: bool = True,
    ) -> List[str]:
        """
        Describe what the retrieved paths fail to cover.

        An empty path list yields a single gap saying so; failures yield [].
        """
        if not paths:
            return [NO_PATHS_GAP]

        cache_key = make_cache_key(
            query, (n.id for p in paths for n in p.nodes), "gaps",
            "llm" if self.llm is not None else "heuristic",
        )
        if use_cache:
            cached = self.gap_cache.get(cache_key)
            if cached is not None:
                return list(cached)

        try:
            if self.llm is not None:
                gaps = await self._llm_gaps(paths, query)
            else:
                gaps = self._heuristic_gaps(paths, query)
        except Exception as e:
            logger.warning(f"Gap identification failed: {e}")
            return []

        if use_cache:
            self.gap_cache.set(cache_key, list(gaps))
        return gaps

    def _heuristic_gaps(self, paths: Sequence[TraversalPath], query: str) -> List[str]:
        gaps = []

        avg_length = sum(len(p.nodes) for p in paths) / len(paths)
        if avg_length <= 2:
            gaps.append("Paths are short - may be missing intermediate connections")

        avg_score = sum(p.score for p in paths) / len(paths)
        if avg_score < 0.5:
            gaps.append("Low path relevance scores - query may need different entry points")

        covered = set()
        for path in paths:
            for node in path.nodes:
                covered |= tokenize(node.content)

        terms = [t.strip("?!.,;:'\"()") for t in query.lower().split()]
        uncovered = []
        for term in terms:
            if term and term not in STOP_WORDS and term not in covered and term not in uncovered:
                uncovered.append(term)
        if uncovered:
            gaps.append(f"No retrieved content mentions: {', '.join(uncovered)}")

        words = query.lower().split()
        if len(words) > 3:
            gaps.append(f"May need more specific information about: {' '.join(words[:3])}")

        return gaps

    async def _llm_gaps(self, paths: Sequence[TraversalPath], query: str) -> List[str]:
        paths_text = "\n\n".join(
            f"Path {i + 1} (score: {p.score:.2f}):\n  "
            + "\n  ".join(f"→ {n.content}" for n in p.nodes)
            for i, p in enumerate(paths)
        )
        response = await self.llm.complete(GAP_PROMPT.format(query=query, paths=paths_text))
        data = _extract_json(response)
        if isinstance(data, list):
            data = {"gaps": data}

        try:
            return GapPayload.model_validate(data).gaps
        except ValidationError as e:
            raise InferenceError(f"Malformed gap payload: {e}") from e

    def clear_cache(self) -> None:
        """Clear all cached inferences and gaps."""
        self.inference_cache.clear()
        self.gap_cache.clear()

    def cache_stats(self) -> dict:
        return {
            "inferences": self.inference_cache.stats(),
            "gaps": self.gap_cache.stats(),
        }
