"""
Tests for path scoring, deduplication, inference boosting and selection
"""
import pytest

from drift_rag import (
    DriftConfig,
    DriftRAG,
    GraphNode,
    InferredConnection,
    PathRanker,
    TraversalPath,
)
from drift_rag.path_ranking import (
    boost_paths_with_inferences,
    calculate_path_score,
    deduplicate_paths,
    select_top_k_paths,
    tokenize,
    validate_inference,
)
from factories import chain, edge, node


def inference(source="a", target="b", confidence=0.8, reasoning="shared terms", kind="related_to"):
    return InferredConnection(source, target, reasoning, confidence, kind)


class TestScoring:
    def test_tokenize_is_case_insensitive(self):
        assert tokenize("Deep  Learning deep") == {"deep", "learning"}

    def test_known_score(self):
        nodes = [node("a", "machine learning algorithms"), node("b", "neural networks")]
        edges = [edge("a", "b", weight=0.8)]

        score = calculate_path_score(nodes, edges, "machine learning")

        # 0.5 * 0.5 + 0.3 * 0.8 + 0.2 / 1.2
        assert score == pytest.approx(0.25 + 0.24 + 0.2 / 1.2)

    def test_single_node_uses_neutral_edge_weight(self):
        score = calculate_path_score([node("a", "deep learning")], [], "deep learning")

        assert score == pytest.approx(0.5 + 0.15 + 0.2 / 1.1)

    def test_missing_weight_counts_as_one(self):
        nodes = [node("a", "x"), node("b", "y")]

        unweighted = calculate_path_score(nodes, [edge("a", "b")], "q")
        weighted = calculate_path_score(nodes, [edge("a", "b", weight=1.0)], "q")

        assert unweighted == weighted

    def test_empty_nodes_score_zero(self):
        assert calculate_path_score([], [], "anything") == 0.0

    def test_score_is_deterministic_and_bounded(self):
        path = chain("a", "b", "c", weight=0.4)

        first = DriftRAG.calculate_path_score(path, "node a")
        second = DriftRAG.calculate_path_score(path, "node a")

        assert first == second
        assert 0.0 <= first <= 1.0

    def test_longer_paths_are_penalised(self):
        short = chain("a", "b")
        long = chain("a", "b", "c", "d")

        assert DriftRAG.calculate_path_score(short, "zzz") > DriftRAG.calculate_path_score(long, "zzz")


class TestPathModel:
    def test_rejects_cycles(self):
        nodes = [node("a"), node("b"), node("a")]

        with pytest.raises(ValueError):
            TraversalPath(nodes, [edge("a", "b"), edge("b", "a")], 0.5)

    def test_rejects_mismatched_edges(self):
        with pytest.raises(ValueError):
            TraversalPath([node("a"), node("b")], [], 0.5)

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            TraversalPath([], [], 0.0)


class TestDeduplication:
    def test_keeps_highest_score(self):
        paths = [chain("a", "b", score=0.5), chain("a", "b", score=0.7), chain("b", "c", score=0.6)]

        unique = deduplicate_paths(paths)

        assert len(unique) == 2
        assert {p.signature: p.score for p in unique} == {"a->b": 0.7, "b->c": 0.6}

    def test_direction_matters(self):
        assert len(DriftRAG.deduplicate_paths([chain("a", "b"), chain("b", "a")])) == 2

    def test_first_seen_order(self):
        paths = [chain("x", "y"), chain("a", "b"), chain("x", "y", score=0.9)]

        assert [p.signature for p in deduplicate_paths(paths)] == ["x->y", "a->b"]


class TestInferenceValidation:
    def test_valid(self):
        assert validate_inference(inference())
        assert DriftRAG.validate_inference(inference(confidence=0.0))
        assert validate_inference(inference(confidence=1.0))

    def test_self_loop(self):
        assert not validate_inference(inference("a", "a"))

    @pytest.mark.parametrize("confidence", [-0.1, 1.5, float("nan"), "high", True])
    def test_bad_confidence(self, confidence):
        assert not validate_inference(inference(confidence=confidence))

    def test_blank_reasoning_or_type(self):
        assert not validate_inference(inference(reasoning=""))
        assert not validate_inference(inference(reasoning="   "))
        assert not validate_inference(inference(kind=""))


class TestBoosting:
    def test_boosts_matching_pair(self):
        path = chain("a", "b", "c", score=0.5)

        boosted = boost_paths_with_inferences([path], [inference("a", "b", 0.8)])

        assert boosted[0].score == pytest.approx(0.58)
        assert path.score == 0.5

    def test_boosts_accumulate(self):
        path = chain("a", "b", "c", score=0.5)

        boosted = boost_paths_with_inferences(
            [path], [inference("a", "b", 0.8), inference("b", "c", 0.5)]
        )

        assert boosted[0].score == pytest.approx(0.63)

    def test_reverse_pair_does_not_boost(self):
        path = chain("a", "b", score=0.5)

        boosted = boost_paths_with_inferences([path], [inference("b", "a", 0.9)])

        assert boosted[0].score == 0.5

    def test_non_consecutive_pair_does_not_boost(self):
        path = chain("a", "b", "c", score=0.5)

        boosted = boost_paths_with_inferences([path], [inference("a", "c", 0.9)])

        assert boosted[0].score == 0.5

    def test_capped_at_one(self):
        path = chain("a", "b", score=0.95)

        boosted = boost_paths_with_inferences([path], [inference("a", "b", 1.0)])

        assert boosted[0].score == 1.0

    def test_invalid_inferences_are_ignored(self):
        path = chain("a", "b", score=0.5)

        boosted = boost_paths_with_inferences(
            [path], [inference("a", "b", 1.7), inference("a", "b", 0.5, reasoning="")]
        )

        assert boosted[0].score == 0.5


class TestSelection:
    def test_threshold_then_top_k(self):
        paths = [chain("a", "b", score=s) for s in (0.2, 0.9, 0.4)] + [chain("c", "d", score=0.6)]

        selected = select_top_k_paths(paths, 2, 0.3)

        assert [p.score for p in selected] == [0.9, 0.6]

    def test_threshold_is_inclusive(self):
        assert len(select_top_k_paths([chain("a", "b", score=0.3)], 5, 0.3)) == 1

    def test_everything_below_threshold(self):
        assert select_top_k_paths([chain("a", "b", score=0.1)], 5, 0.3) == []


class TestPathRanker:
    def test_aggregate_and_rank(self):
        ranker = PathRanker(DriftConfig(top_k_paths=2, min_path_score=0.3))
        paths = [
            chain("a", "b", score=0.5),
            chain("a", "b", score=0.7),
            chain("b", "c", score=0.6),
            chain("c", "d", score=0.1),
            chain("d", "e", score=0.4),
        ]

        ranked = ranker.aggregate_and_rank(paths)

        assert [p.signature for p in ranked] == ["a->b", "b->c"]
        assert ranked[0].score == 0.7

    def test_inference_can_change_order(self):
        ranker = PathRanker(DriftConfig(top_k_paths=5, min_path_score=0.0))
        paths = [chain("a", "b", score=0.6), chain("c", "d", score=0.55)]

        ranked = ranker.aggregate_and_rank(paths, [inference("c", "d", 1.0)])

        assert [p.signature for p in ranked] == ["c->d", "a->b"]
        assert ranked[0].score == pytest.approx(0.65)

    def test_no_paths(self):
        assert PathRanker(DriftConfig()).aggregate_and_rank([]) == []

    def test_engine_uses_current_config(self, rag):
        rag.update_config(top_k_paths=1)
        paths = [chain("a", "b", score=0.5), chain("b", "c", score=0.6)]

        assert [p.signature for p in rag.aggregate_and_rank_paths(paths)] == ["b->c"]

    def test_ranked_paths_are_sorted_and_unique(self, rag):
        node_a = GraphNode("a", "alpha")
        paths = [TraversalPath([node_a], [], s) for s in (0.4, 0.8, 0.6)]

        ranked = rag.aggregate_and_rank_paths(paths)

        assert len(ranked) == 1
        assert ranked[0].score == 0.8
