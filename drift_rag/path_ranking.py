"""
Path scoring, deduplication, inference boosting and top-K selection.

Score = 0.5 * content relevance + 0.3 * average edge weight + 0.2 * length penalty

- Content relevance: per node, fraction of distinct query terms found in
  the node content (lowercase whitespace tokens), averaged over the path
- Average edge weight: missing weights count as 1.0; 0.5 for a path with no edges
- Length penalty: 1 / (1 + node_count * 0.1), shorter is better
"""

import logging
from typing import Iterable, List, Sequence, Set

from .config import DriftConfig
from .models import GraphEdge, GraphNode, InferredConnection, TraversalPath

logger = logging.getLogger(__name__)

CONTENT_WEIGHT = 0.5
EDGE_WEIGHT = 0.3
LENGTH_WEIGHT = 0.2
NO_EDGE_WEIGHT = 0.5
INFERENCE_BOOST_FACTOR = 0.1


def tokenize(text: str) -> Set[str]:
    """Case-insensitive whitespace tokens."""
    return set(text.lower().split())


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def calculate_path_score(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
    query: str,
) -> float:
    """
    Deterministic relevance score of a node/edge sequence, in [0, 1].

    Args:
        nodes: Ordered path nodes
        edges: Edges connecting consecutive nodes
        query: Natural-language query

    Returns:
        Clamped score; 0.0 for an empty node list
    """
    if not nodes:
        return 0.0

    query_terms = tokenize(query)
    term_count = max(len(query_terms), 1)

    content_scores = [
        len(query_terms & tokenize(node.content)) / term_count for node in nodes
    ]
    content_relevance = sum(content_scores) / len(content_scores)

    if edges:
        avg_edge_weight = sum(e.effective_weight for e in edges) / len(edges)
    else:
        avg_edge_weight = NO_EDGE_WEIGHT

    length_penalty = 1.0 / (1.0 + len(nodes) * 0.1)

    score = (
        CONTENT_WEIGHT * content_relevance
        + EDGE_WEIGHT * avg_edge_weight
        + LENGTH_WEIGHT * length_penalty
    )
    return _clamp(score)


def score_path(path: TraversalPath, query: str) -> float:
    return calculate_path_score(path.nodes, path.edges, query)


def validate_inference(inference: InferredConnection) -> bool:
    """
    Check an inferred connection before it is trusted for boosting.

    Rejects self-loops, confidence outside [0, 1] (boundaries allowed),
    and empty reasoning or type.
    """
    if inference.source_node == inference.target_node:
        return False

    confidence = inference.confidence
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return False
    if not 0.0 <= confidence <= 1.0:
        return False

    if not inference.reasoning or not str(inference.reasoning).strip():
        return False
    if not inference.inferred_type or not str(inference.inferred_type).strip():
        return False

    return True


def deduplicate_paths(paths: Iterable[TraversalPath]) -> List[TraversalPath]:
    """
    Collapse paths with identical node-id sequences, keeping the higher score.

    First-seen order of signatures is preserved.
    """
    by_signature = {}

    for path in paths:
        existing = by_signature.get(path.signature)
        if existing is None or path.score > existing.score:
            by_signature[path.signature] = path

    return list(by_signature.values())


def boost_paths_with_inferences(
    paths: Iterable[TraversalPath],
    inferences: Iterable[InferredConnection],
) -> List[TraversalPath]:
    """
    Add confidence * 0.1 to a path for each valid inference whose
    (source, target) appears as a consecutive pair in it, capped at 1.0.

    Returns new path objects; inputs are left alone. Invalid inferences are
    dropped here so they can never break ranking.
    """
    valid = []
    for inference in inferences:
        if validate_inference(inference):
            valid.append(inference)
        else:
            logger.debug(
                f"Dropping invalid inference {inference.source_node} -> "
                f"{inference.target_node}"
            )

    if not valid:
        return list(paths)

    boosted = []
    for path in paths:
        pairs = set(path.consecutive_pairs())
        boost = sum(
            inf.confidence * INFERENCE_BOOST_FACTOR
            for inf in valid
            if (inf.source_node, inf.target_node) in pairs
        )
        if boost > 0:
            boosted.append(path.with_score(min(path.score + boost, 1.0)))
        else:
            boosted.append(path)

    return boosted


def rank_paths(paths: Iterable[TraversalPath]) -> List[TraversalPath]:
    """Sort by score, highest first. Stable for ties."""
    return sorted(paths, key=lambda p: p.score, reverse=True)


def select_top_k_paths(
    paths: Iterable[TraversalPath],
    k: int,
    min_score: float = 0.3,
) -> List[TraversalPath]:
    """Drop paths under `min_score`, then take the `k` best."""
    kept = [p for p in paths if p.score >= min_score]
    return rank_paths(kept)[:k]


class PathRanker:
    """
    Aggregates candidate paths from every seed into the final ranked list.

    Order: deduplicate -> boost with inferences -> threshold -> sort -> top-K.
    """

    def __init__(self, config: DriftConfig):
        self.config = config

    def aggregate_and_rank(
        self,
        paths: Sequence[TraversalPath],
        inferences: Sequence[InferredConnection] = (),
    ) -> List[TraversalPath]:
        if not paths:
            return []

        deduped = deduplicate_paths(paths)
        if inferences:
            deduped = boost_paths_with_inferences(deduped, inferences)

        selected = select_top_k_paths(
            deduped, self.config.top_k_paths, self.config.min_path_score
        )

        logger.debug(
            f"Ranked paths: {len(paths)} candidates, {len(deduped)} unique, "
            f"{len(selected)} selected"
        )
        return selected
