import pytest

from codegraph.graph.json_graph_client import JsonGraphClient
from codegraph.graph.upsert_engine import IdentityCache
from codegraph.types import EdgeType, NodeKind


class TestJsonGraphClient:
    """Test JSON graph client functionality."""

    def setup_method(self):
        """Set up test environment."""
        self.client = JsonGraphClient()

    def _chain(self, resolver, record_factory):
        resolver.resolve_batch([
            record_factory("root/app", "Chain", functions=["a", "b", "c", "d"],
                           inner=[("a", "b"), ("b", "c"), ("c", "d")]),
        ])

    def test_persistence_round_trip(self, tmp_path):
        """A file backed graph reloads nodes, edges and edge deduplication."""
        storage = tmp_path / "graph.json"
        client = JsonGraphClient(str(storage))
        a = client.create_node("Path", {"name": "root", "full_path": "root"})
        b = client.create_node("Path", {"name": "pkg", "full_path": "root/pkg"})
        client.create_edge(EdgeType.CONTAINS, a.id, b.id)

        reloaded = JsonGraphClient(str(storage))

        assert reloaded.get_node(b.id).properties["full_path"] == "root/pkg"
        assert reloaded.has_edge(EdgeType.CONTAINS, a.id, b.id)
        assert [root.id for root in reloaded.find_root_paths()] == [a.id]

    def test_edge_requires_both_endpoints(self):
        node = self.client.create_node("Function", {"name": "a"})
        assert self.client.create_edge(EdgeType.CALLS, node.id, "missing") is None
        assert self.client.get_all_edges() == []

    def test_callers_and_callees_within_hops(self, graph_client, resolver, record_factory):
        self._chain(resolver, record_factory)

        callees = graph_client.find_function_callees("root/app/Chain", "a", hops=2)
        callers = graph_client.find_function_callers("root/app/Chain", "d", hops=2)

        assert [node.name for node in callees] == ["b", "c"]
        assert [node.name for node in callers] == ["c", "b"]
        assert graph_client.find_function_callees("root/app/Chain", "missing") == []

    def test_neighbor_limit(self, graph_client, resolver, record_factory):
        self._chain(resolver, record_factory)
        assert len(graph_client.find_function_callees("root/app/Chain", "a", hops=2, limit=1)) == 1

    def test_hops_outside_range(self, graph_client, resolver, record_factory):
        self._chain(resolver, record_factory)
        with pytest.raises(ValueError):
            graph_client.find_function_callees("root/app/Chain", "a", hops=3)
        with pytest.raises(ValueError):
            graph_client.find_function_callers("root/app/Chain", "a", hops=0)

    def test_siblings_and_ancestors(self, graph_client, resolver, record_factory):
        self._chain(resolver, record_factory)
        a = graph_client.find_node(NodeKind.FUNCTION.label, {"full_classname": "root/app/Chain", "name": "a"})

        assert [node.name for node in graph_client.find_sibling_functions(a.id)] == ["b", "c", "d"]
        ancestors = graph_client.find_ancestors(a.id, max_hops=2)
        assert [node.type for node in ancestors] == ["Class", "Path"]
        assert ancestors[1].properties["full_path"] == "root/app"

    def test_root_paths_are_uncontained_paths(self, graph_client, engine):
        cache = IdentityCache()
        engine.upsert_path(cache, "root/pkg")
        engine.upsert_path(cache, "other")

        roots = graph_client.find_root_paths()
        assert sorted(root.properties["full_path"] for root in roots) == ["other", "root"]
