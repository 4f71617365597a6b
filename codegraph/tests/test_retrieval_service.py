import pytest

from codegraph.exceptions import UnknownEntityKindError
from codegraph.types import NodeKind


class TestRetrievalService:
    """Test semantic search with call-graph expansion."""

    def test_function_hits_carry_callers_and_callees(self, pipeline, end_to_end_records):
        pipeline.resolve(end_to_end_records)

        results = pipeline.search("writes the output", "function", top_k=2)

        assert [result.hit.id for result in results] == ["root/pkgB/ClassY/f2", "root/pkgA/ClassX/f1"]
        best = results[0]
        assert best.hit.rank == 1
        assert best.hit.score == pytest.approx(1.0)
        assert [caller["name"] for caller in best.callers] == ["f1"]
        assert best.callers[0]["full_classname"] == "root/pkgA/ClassX"
        assert best.callees == []
        assert [callee["name"] for callee in results[1].callees] == ["f2"]

    def test_payload_excludes_vector(self, pipeline, end_to_end_records):
        pipeline.resolve(end_to_end_records)

        payload = pipeline.search("parses the input", NodeKind.FUNCTION, top_k=1)[0].to_dict()

        assert payload["source"] == {
            "id": "root/pkgA/ClassX/f1",
            "name": "f1",
            "path": "root/pkgA/ClassX",
            "description": "parses the input",
        }
        assert payload["kind"] == "Function"
        assert "description_vector" not in payload["source"]

    def test_class_hits_are_not_expanded(self, pipeline, end_to_end_records):
        pipeline.resolve(end_to_end_records)

        results = pipeline.search("Output handling", "class", top_k=1)

        assert results[0].hit.id == "root/pkgB/ClassY"
        assert "callers" not in results[0].to_dict()

    def test_two_hop_expansion(self, pipeline, record_factory):
        pipeline.resolve([
            record_factory("root/app", "Chain", functions=[("a", "first step"), ("b", "second step"),
                                                           ("c", "third step")],
                           inner=[("a", "b"), ("b", "c")]),
        ])

        one_hop = pipeline.search("first step", "function", top_k=1, expand_hops=1)[0]
        two_hops = pipeline.search("first step", "function", top_k=1, expand_hops=2)[0]

        assert [callee["name"] for callee in one_hop.callees] == ["b"]
        assert [callee["name"] for callee in two_hops.callees] == ["b", "c"]

    def test_hops_are_bounded(self, pipeline, end_to_end_records):
        pipeline.resolve(end_to_end_records)
        with pytest.raises(ValueError):
            pipeline.search("output", "function", expand_hops=3)

    def test_explicit_zero_is_rejected(self, pipeline, end_to_end_records):
        """Zero is not read as "use the default"."""
        pipeline.resolve(end_to_end_records)
        with pytest.raises(ValueError):
            pipeline.search("output", "function", expand_hops=0)
        with pytest.raises(ValueError):
            pipeline.search("output", "function", top_k=0)

    def test_missing_index_returns_nothing(self, pipeline):
        assert pipeline.search("anything", "path") == []

    def test_unknown_kind(self, pipeline):
        with pytest.raises(UnknownEntityKindError):
            pipeline.search("anything", "module")
