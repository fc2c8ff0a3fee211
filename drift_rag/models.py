"""
Data model for graph retrieval: nodes, edges, traversal paths and inferred
connections.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class GraphNode:
    """A node in the knowledge graph."""

    id: str
    content: str
    embedding: Sequence[float] = field(default_factory=list, compare=False, repr=False)
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class GraphEdge:
    """A directed edge. Bidirectional exploration is a traversal choice."""

    id: str
    source: str
    target: str
    type: str  # includes, uses, related_to, etc.
    weight: Optional[float] = None

    @property
    def effective_weight(self) -> float:
        return 1.0 if self.weight is None else self.weight

    def other_end(self, node_id: str) -> str:
        """Endpoint that is not `node_id`."""
        return self.target if self.source == node_id else self.source


@dataclass
class TraversalPath:
    """
    Acyclic node sequence with the edges connecting consecutive nodes.

    Only `score` may change after construction (inference boosting), and the
    ranking helpers do that through `with_score` rather than in place.
    """

    nodes: Tuple[GraphNode, ...]
    edges: Tuple[GraphEdge, ...] = ()
    score: float = 0.0

    def __post_init__(self):
        self.nodes = tuple(self.nodes)
        self.edges = tuple(self.edges)

        if not self.nodes:
            raise ValueError("TraversalPath needs at least one node")
        if len(self.edges) != len(self.nodes) - 1:
            raise ValueError(
                f"TraversalPath with {len(self.nodes)} nodes needs "
                f"{len(self.nodes) - 1} edges, got {len(self.edges)}"
            )
        ids = self.node_ids
        if len(set(ids)) != len(ids):
            raise ValueError(f"TraversalPath contains a cycle: {' -> '.join(ids)}")

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    @property
    def signature(self) -> str:
        """Structural identity used for deduplication."""
        return "->".join(self.node_ids)

    def consecutive_pairs(self) -> List[Tuple[str, str]]:
        ids = self.node_ids
        return list(zip(ids, ids[1:]))

    def with_score(self, score: float) -> "TraversalPath":
        return replace(self, score=score)

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class InferredConnection:
    """
    A proposed edge that is not in the stored graph.

    Advisory only: never written back to the graph store. Use
    `path_ranking.validate_inference` before trusting one.
    """

    source_node: str
    target_node: str
    reasoning: str
    confidence: float
    inferred_type: str


@dataclass
class RetrievalResult:
    """Everything a single query produced, for hosts that need more than text."""

    query: str
    answer: str
    entry_points: List[GraphNode]
    candidate_path_count: int
    ranked_paths: List[TraversalPath]
    inferences: List[InferredConnection] = field(default_factory=list)
    knowledge_gaps: List[str] = field(default_factory=list)
