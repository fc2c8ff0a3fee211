"""
End-to-end tests for the DRIFT retrieval pipeline
"""
import asyncio
import logging

import pytest

from deployment import CircuitBreaker, CircuitOpenError, CircuitState
from drift_rag import (
    NO_RESULTS_MESSAGE,
    ConfigurationError,
    DriftRAG,
    DriftRAGError,
    EmptyGraphError,
    EmptyQueryError,
    GraphNode,
    InferenceEngine,
    InMemoryGraphIndex,
    NoEntryPointsError,
    ProviderError,
    extract_nodes_from_paths,
)
from factories import FailingEmbedder, StubLLM, chain


class ExplodingInferenceEngine(InferenceEngine):
    async def infer_missing_connections(self, nodes, query, options=None):
        raise RuntimeError("inference backend exploded")

    async def identify_knowledge_gaps(self, paths, query, use_cache=True):
        raise RuntimeError("gap backend exploded")


class TestQuery:
    async def test_end_to_end(self, rag):
        answer = await rag.query("What is deep learning?")

        assert answer.startswith("Based on the knowledge graph exploration:")
        assert "Deep learning uses neural networks with multiple layers" in answer
        assert "Answer to 'What is deep learning?':" in answer

    async def test_retrieve_result(self, rag):
        result = await rag.retrieve("What is deep learning?")

        assert 0 < len(result.entry_points) <= 3
        assert 0 < len(result.ranked_paths) <= 5
        assert result.candidate_path_count >= len(result.ranked_paths)

        scores = [p.score for p in result.ranked_paths]
        assert scores == sorted(scores, reverse=True)
        assert all(s >= 0.3 for s in scores)

        signatures = [p.signature for p in result.ranked_paths]
        assert len(signatures) == len(set(signatures))

        for path in result.ranked_paths:
            assert len(path.node_ids) == len(set(path.node_ids))

    async def test_inference_results_are_valid(self, rag):
        result = await rag.retrieve("neural networks and deep learning")

        for inference in result.inferences:
            assert rag.validate_inference(inference)
            assert inference.confidence >= 0.5
        assert isinstance(result.knowledge_gaps, list)

    async def test_without_inference(self, make_rag):
        rag = make_rag(use_inference=False)

        result = await rag.retrieve("What is deep learning?")

        assert result.inferences == []
        assert result.knowledge_gaps == []
        assert result.ranked_paths

    async def test_nothing_above_threshold(self, make_rag):
        rag = make_rag(min_path_score=1.0, use_inference=False)

        assert await rag.query("What is deep learning?") == NO_RESULTS_MESSAGE

    async def test_provenance(self, rag):
        answer = await rag.query("What is deep learning?", include_provenance=True)

        assert "\n\nSources:\n  1. Path: " in answer

    async def test_provenance_from_config(self, make_rag):
        rag = make_rag(include_provenance=True)

        assert "Sources:" in await rag.query("neural networks")
        assert "Sources:" not in await rag.query("neural networks", include_provenance=False)

    async def test_llm_synthesis(self, make_rag, stub_llm):
        rag = make_rag(llm=stub_llm)

        answer = await rag.query("What is deep learning?")

        assert answer == "Deep learning is a branch of machine learning built on neural networks."
        assert len(stub_llm.prompts) == 1
        assert "Question: What is deep learning?" in stub_llm.prompts[0]

    async def test_config_update_applies_to_next_query(self, rag):
        rag.update_config(top_k_paths=1, use_inference=False)

        result = await rag.retrieve("What is deep learning?")

        assert len(result.ranked_paths) == 1
        assert result.inferences == []

    async def test_concurrent_queries(self, rag):
        answers = await asyncio.gather(
            rag.query("What is deep learning?"),
            rag.query("supervised learning with labeled data"),
            rag.query("biological neurons"),
        )

        assert all(a and a != NO_RESULTS_MESSAGE for a in answers)


class TestErrors:
    @pytest.mark.parametrize("query", ["", "   ", "\n\t", None])
    async def test_empty_query(self, rag, query):
        with pytest.raises(EmptyQueryError):
            await rag.query(query)

    async def test_empty_graph(self, make_rag, empty_index):
        rag = make_rag(index=empty_index)

        with pytest.raises(EmptyGraphError, match="Cannot query empty graph"):
            await rag.query("What is deep learning?")

    async def test_no_entry_points(self, make_rag):
        index = InMemoryGraphIndex()
        index.add_node(GraphNode("orphan", "A node that was never embedded"))
        rag = make_rag(index=index)

        with pytest.raises(NoEntryPointsError) as exc_info:
            await rag.query("anything")

        assert "No entry points found for query" in str(exc_info.value)

    def test_missing_collaborators(self, ml_index, embedder):
        with pytest.raises(DriftRAGError):
            DriftRAG(None, embedder)
        with pytest.raises(DriftRAGError):
            DriftRAG(ml_index, None)

    def test_zero_top_k_rejected(self, make_rag):
        with pytest.raises(ConfigurationError):
            make_rag(top_k_paths=0)

    async def test_embedding_failure(self, make_rag):
        rag = make_rag(embedder=FailingEmbedder())

        with pytest.raises(ProviderError) as exc_info:
            await rag.query("What is deep learning?")

        assert exc_info.value.provider == "embedding"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert "embedding service unreachable" in str(exc_info.value)

    async def test_llm_failure(self, make_rag):
        rag = make_rag(llm=StubLLM(error=RuntimeError("rate limited")))

        with pytest.raises(ProviderError) as exc_info:
            await rag.query("What is deep learning?")

        assert exc_info.value.provider == "llm"
        assert isinstance(exc_info.value.cause, RuntimeError)

    async def test_index_failure(self, make_rag):
        class BrokenIndex(InMemoryGraphIndex):
            async def get_all_nodes(self):
                raise OSError("connection reset")

        rag = make_rag(index=BrokenIndex())

        with pytest.raises(ProviderError) as exc_info:
            await rag.query("q")

        assert exc_info.value.provider == "index"

    async def test_circuit_opens_after_repeated_failures(self, make_rag):
        embedder = FailingEmbedder()
        breaker = CircuitBreaker(name="embedding", failure_threshold=2, reset_timeout=60)
        rag = make_rag(embedder=embedder, breakers={"embedding": breaker})

        for _ in range(2):
            with pytest.raises(ProviderError):
                await rag.query("q")
        with pytest.raises(ProviderError) as exc_info:
            await rag.query("q")

        assert isinstance(exc_info.value.__cause__, CircuitOpenError)
        assert embedder.calls == 2
        assert rag.provider_stats()["embedding"]["state"] == "open"

    async def test_failures_do_not_carry_over_without_breakers(self, make_rag):
        embedder = FailingEmbedder()
        rag = make_rag(embedder=embedder)

        for _ in range(8):
            with pytest.raises(ProviderError) as exc_info:
                await rag.query("q")
            assert isinstance(exc_info.value.__cause__, ConnectionError)

        assert embedder.calls == 8

    async def test_cancelled_query_leaves_guarded_provider_usable(self, make_rag, ml_index):
        breaker = CircuitBreaker(
            name="index", failure_threshold=1, reset_timeout=0, half_open_max_calls=1
        )
        rag = make_rag(breakers={"index": breaker})

        async def unreachable():
            raise OSError("connection reset")

        with pytest.raises(OSError):
            await breaker.call_async(unreachable)

        started = asyncio.Event()

        async def stalled():
            started.set()
            await asyncio.Event().wait()

        ml_index.get_all_nodes = stalled
        task = asyncio.create_task(rag.query("What is deep learning?"))
        await started.wait()
        assert breaker.state is CircuitState.HALF_OPEN

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        del ml_index.get_all_nodes

        for _ in range(5):
            assert await rag.query("What is deep learning?") != NO_RESULTS_MESSAGE
        assert breaker.state is CircuitState.CLOSED

    async def test_inference_failure_degrades(self, make_rag, caplog):
        rag = make_rag(inference_engine=ExplodingInferenceEngine())

        with caplog.at_level(logging.WARNING):
            result = await rag.retrieve("What is deep learning?")

        assert result.ranked_paths
        assert result.inferences == []
        assert result.knowledge_gaps == []
        assert "Inference failed" in caplog.text


class TestStages:
    async def test_dynamic_traversal_defaults_to_config(self, make_rag, ml_index):
        rag = make_rag(max_traversal_depth=1, traversal_direction="forward")

        paths = await rag.dynamic_traversal(ml_index.nodes["ml"], "q")

        assert sorted(p.signature for p in paths) == ["ml->dl", "ml->sl", "ml->ul"]

    async def test_dynamic_traversal_overrides(self, rag, ml_index):
        paths = await rag.dynamic_traversal(
            ml_index.nodes["nn"], "q", max_depth=1, direction="backward"
        )

        assert sorted(p.signature for p in paths) == ["nn->dl", "nn->sl"]

    async def test_infer_connections_from_paths(self, rag, ml_index):
        paths = await rag.dynamic_traversal(ml_index.nodes["ml"], "learning")

        inferences = await rag.infer_connections(paths, "learning")

        assert {(i.source_node, i.target_node) for i in inferences} == {("dl", "nn"), ("sl", "ul")}

    async def test_infer_connections_strategy_override(self, rag, ml_index):
        nodes = await ml_index.get_all_nodes()

        inferences = await rag.infer_connections(nodes, "q", strategy="structural")

        assert inferences
        assert all(i.inferred_type == "shares_attributes" for i in inferences)

    async def test_infer_connections_disabled(self, make_rag, ml_index):
        rag = make_rag(use_inference=False)

        assert await rag.infer_connections(await ml_index.get_all_nodes(), "q") == []
        assert await rag.identify_knowledge_gaps([chain("a", "b")], "q") == []

    async def test_identify_knowledge_gaps(self, rag):
        gaps = await rag.identify_knowledge_gaps([], "q")

        assert gaps == ["No paths available for gap analysis"]

    async def test_generate_response(self, rag):
        assert await rag.generate_response("q", []) == NO_RESULTS_MESSAGE

    def test_extract_nodes_from_paths(self):
        nodes = extract_nodes_from_paths([chain("a", "b"), chain("b", "c"), chain("c", "a")])

        assert [n.id for n in nodes] == ["a", "b", "c"]

    def test_provider_stats(self, rag, make_rag):
        assert rag.provider_stats() == {}

        guarded = make_rag(breakers={"llm": CircuitBreaker(name="llm")})
        assert set(guarded.provider_stats()) == {"llm"}

    def test_unknown_breaker_name(self, make_rag):
        with pytest.raises(ConfigurationError) as exc_info:
            make_rag(breakers={"vector_db": CircuitBreaker()})

        assert exc_info.value.field == "breakers"
