"""
Response synthesis: ranked paths -> context block -> answer.

Context format, one block per path:
    Path 1 (score: 0.72): Machine learning ... → Deep learning ...

With an LLM provider the context is wrapped in a grounded prompt; without
one a deterministic template answer is built from the same context.
"""

import logging
from typing import List, Optional, Sequence

from .models import TraversalPath
from .providers import LLMProvider, direct_call

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant information found to answer the query."
PATH_SEPARATOR = " → "
MAX_PROVENANCE_PATHS = 3

GROUNDED_PROMPT = """You are answering a question using facts retrieved from a knowledge graph.
Each path below is a chain of related facts with its relevance score.

{context}

Question: {query}

Instructions:
1. Answer ONLY from the paths above.
2. Prefer higher-scoring paths when they disagree.
3. If the paths do not contain the answer, say so plainly.

Answer:"""


def format_path(path: TraversalPath, index: int) -> str:
    contents = PATH_SEPARATOR.join(n.content for n in path.nodes)
    return f"Path {index + 1} (score: {path.score:.2f}): {contents}"


def assemble_context(paths: Sequence[TraversalPath]) -> str:
    """Render every path as its score plus the chain of node contents."""
    return "\n\n".join(format_path(p, i) for i, p in enumerate(paths))


def format_provenance(paths: Sequence[TraversalPath]) -> str:
    """Sources section listing up to three top paths by node id."""
    lines = ["", "", "Sources:"]
    for i, path in enumerate(paths[:MAX_PROVENANCE_PATHS]):
        node_ids = PATH_SEPARATOR.join(path.node_ids)
        lines.append(f"  {i + 1}. Path: {node_ids} (score: {path.score:.2f})")
    return "\n".join(lines) + "\n"


class ResponseSynthesizer:
    """
    Turns ranked paths into the final answer text.

    Usage:
        synthesizer = ResponseSynthesizer()              # template answers
        synthesizer = ResponseSynthesizer(llm=provider)  # LLM answers
        answer = await synthesizer.generate_response(query, paths, True)
    """

    def __init__(self, llm: Optional[LLMProvider] = None, call=None):
        self.llm = llm
        self._call = call or direct_call

    async def generate_response(
        self,
        query: str,
        paths: Sequence[TraversalPath],
        include_provenance: bool = False,
    ) -> str:
        """
        Args:
            query: User query
            paths: Ranked paths, best first
            include_provenance: Append a Sources section

        Returns:
            Answer text, or NO_RESULTS_MESSAGE when there are no paths
        """
        if not paths:
            return NO_RESULTS_MESSAGE

        context = assemble_context(paths)

        if self.llm is not None:
            response = await self._call(
                "llm", self.llm.complete, GROUNDED_PROMPT.format(context=context, query=query)
            )
        else:
            response = self.template_response(query, context, paths)

        if include_provenance:
            response += format_provenance(paths)

        return response

    @staticmethod
    def template_response(
        query: str, context: str, paths: Sequence[TraversalPath]
    ) -> str:
        """Deterministic answer used when no LLM is configured."""
        key_info: List[str] = [n.content for n in paths[0].nodes[:3]]
        return (
            f"Based on the knowledge graph exploration:\n\n{context}\n\n"
            f"Answer to '{query}':\n{' '.join(key_info)}"
        )
