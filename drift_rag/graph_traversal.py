"""
Direction-flexible, depth-bounded graph traversal for multi-hop retrieval.

Explores outward from seed nodes breadth-first, emitting a scored path for
every state that has moved past its seed.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from .config import TraversalDirection, coerce_enum
from .models import GraphEdge, GraphNode, TraversalPath
from .path_ranking import calculate_path_score
from .providers import SimilarityIndex, direct_call

logger = logging.getLogger(__name__)

NodeFilter = Callable[[GraphNode], bool]


@dataclass
class _Frontier:
    node: GraphNode
    path_nodes: Tuple[GraphNode, ...]
    path_edges: Tuple[GraphEdge, ...]
    depth: int


class GraphTraverser:
    """
    Graph traversal for multi-hop evidence retrieval.

    Usage:
        traverser = GraphTraverser(index)

        # All scored paths up to 2 hops, following edges in both directions
        paths = await traverser.traverse(seed, "what is deep learning", 2)

        # Only follow "includes" edges, forward
        paths = await traverser.traverse(
            seed, query, 3, "forward", edge_type_filter=["includes"]
        )
    """

    def __init__(self, index: SimilarityIndex, call=None):
        self.index = index
        self._call = call or direct_call

    async def _candidate_edges(
        self, node_id: str, direction: TraversalDirection
    ) -> List[GraphEdge]:
        edges: List[GraphEdge] = []
        if direction.follows_outgoing:
            edges.extend(await self._call("index", self.index.get_outgoing_edges, node_id))
        if direction.follows_incoming:
            edges.extend(await self._call("index", self.index.get_incoming_edges, node_id))
        return edges

    async def traverse(
        self,
        start_node: GraphNode,
        query: str,
        max_depth: int,
        direction: Union[str, TraversalDirection] = TraversalDirection.BIDIRECTIONAL,
        node_filter: Optional[NodeFilter] = None,
        edge_type_filter: Optional[Sequence[str]] = None,
    ) -> List[TraversalPath]:
        """
        Breadth-first exploration from `start_node`.

        Args:
            start_node: Seed node; every returned path starts here
            query: Query used to score each path
            max_depth: Maximum number of hops
            direction: forward (outgoing), backward (incoming) or bidirectional
            node_filter: Predicate every non-seed node must satisfy
            edge_type_filter: Allow-list of edge types to follow

        Returns:
            Scored paths with at least two nodes, in discovery order
        """
        direction = coerce_enum(TraversalDirection, "traversal_direction", direction)
        allowed_types = set(edge_type_filter) if edge_type_filter is not None else None

        paths: List[TraversalPath] = []
        visited: Set[str] = set()
        resolved: Dict[str, Optional[GraphNode]] = {start_node.id: start_node}

        queue = deque([_Frontier(start_node, (start_node,), (), 0)])

        while queue:
            state = queue.popleft()
            visited.add(state.node.id)

            if len(state.path_nodes) > 1:
                score = calculate_path_score(state.path_nodes, state.path_edges, query)
                paths.append(TraversalPath(state.path_nodes, state.path_edges, score))

            if state.depth >= max_depth:
                continue

            edges = await self._candidate_edges(state.node.id, direction)
            if allowed_types is not None:
                edges = [e for e in edges if e.type in allowed_types]

            on_path = {n.id for n in state.path_nodes}
            for edge in edges:
                next_id = edge.other_end(state.node.id)
                if next_id in on_path or next_id in visited:
                    continue

                if next_id not in resolved:
                    resolved[next_id] = await self._call("index", self.index.get_node, next_id)
                next_node = resolved[next_id]
                if next_node is None:
                    continue

                if node_filter is not None and not node_filter(next_node):
                    continue

                queue.append(
                    _Frontier(
                        next_node,
                        state.path_nodes + (next_node,),
                        state.path_edges + (edge,),
                        state.depth + 1,
                    )
                )

        logger.debug(f"Traversal from {start_node.id}: {len(paths)} paths")
        return paths

    async def traverse_from_entry_points(
        self,
        entry_points: Sequence[GraphNode],
        query: str,
        max_depth: int,
        direction: Union[str, TraversalDirection] = TraversalDirection.BIDIRECTIONAL,
        node_filter: Optional[NodeFilter] = None,
        edge_type_filter: Optional[Sequence[str]] = None,
    ) -> List[TraversalPath]:
        """
        Traverse each seed independently and concatenate in seed order.

        Seeds share no state, so they run concurrently. Cross-seed duplicates
        are left for the ranker.
        """
        per_seed = await asyncio.gather(
            *(
                self.traverse(
                    seed, query, max_depth, direction, node_filter, edge_type_filter
                )
                for seed in entry_points
            )
        )

        all_paths: List[TraversalPath] = []
        for paths in per_seed:
            all_paths.extend(paths)
        return all_paths
