"""
Entry-point detection: pick traversal seeds by vector similarity to the query.
"""

import logging
from typing import List

from .models import GraphNode
from .providers import EmbeddingProvider, SimilarityIndex, direct_call

logger = logging.getLogger(__name__)


class EntryPointDetector:
    """
    Embeds the query and asks the index for the nearest nodes.

    A short or empty result is not an error here; the caller decides whether
    zero seeds is fatal.
    """

    def __init__(self, index: SimilarityIndex, embedder: EmbeddingProvider, call=None):
        self.index = index
        self.embedder = embedder
        self._call = call or direct_call

    async def find_entry_points(self, query: str, count: int) -> List[GraphNode]:
        if count <= 0:
            return []

        query_vector = await self._call("embedding", self.embedder.embed, query)
        candidates = await self._call("index", self.index.find_similar, query_vector, count)

        # Never hand back more seeds than asked for, or the same seed twice
        seen = set()
        entry_points = []
        for node in candidates:
            if node.id in seen:
                continue
            seen.add(node.id)
            entry_points.append(node)
            if len(entry_points) == count:
                break

        logger.debug(f"Entry points for query: {[n.id for n in entry_points]}")
        return entry_points
