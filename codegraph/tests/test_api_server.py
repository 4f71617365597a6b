from fastapi.testclient import TestClient

from api_server import app, get_pipeline


class TestApiServer:
    """Test the HTTP search and admin surface."""

    def setup_method(self):
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def _use(self, pipeline):
        app.dependency_overrides[get_pipeline] = lambda: pipeline

    def test_search(self, pipeline, end_to_end_records):
        pipeline.resolve(end_to_end_records)
        self._use(pipeline)

        response = self.client.get("/search", params={"kind": "function", "query": "writes the output", "top_k": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["total_results"] == 1
        assert body["results"][0]["id"] == "root/pkgB/ClassY/f2"
        assert [caller["name"] for caller in body["results"][0]["callers"]] == ["f1"]

    def test_search_unknown_kind(self, pipeline):
        self._use(pipeline)
        response = self.client.get("/search", params={"kind": "module", "query": "x"})
        assert response.status_code == 400

    def test_search_hops_validated(self, pipeline):
        self._use(pipeline)
        response = self.client.get("/search", params={"query": "x", "hops": 3})
        assert response.status_code == 422

    def test_admin_clear(self, pipeline, graph_client, end_to_end_records):
        pipeline.resolve(end_to_end_records)
        self._use(pipeline)

        response = self.client.post("/admin/clear")

        assert response.status_code == 200
        assert response.json()["graph_cleared"] is True
        assert sorted(response.json()["indices_dropped"]) == ["class_metadata", "function_metadata"]
        assert graph_client.get_database_stats()["nodes"] == {}
