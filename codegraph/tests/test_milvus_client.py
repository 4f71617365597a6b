from types import SimpleNamespace

import pytest

from codegraph.query import milvus_client
from codegraph.query.milvus_client import MilvusVectorIndex
from codegraph.types import NodeKind, VectorDocument


class RecordingCollection:
    """Collection double that keeps the last upsert and serves canned hits."""

    def __init__(self, hits=()):
        self.upserts = []
        self.hits = list(hits)

    def upsert(self, data):
        self.upserts.append(data)

    def flush(self):
        pass

    def load(self):
        pass

    def search(self, data, anns_field, param, limit, output_fields):
        return [self.hits[:limit]]


@pytest.fixture
def milvus_index(monkeypatch):
    monkeypatch.setattr(milvus_client.connections, "connect", lambda *args, **kwargs: None)
    return MilvusVectorIndex(dimension=4)


class TestMilvusVectorIndex:
    """Test document shaping without a Milvus server."""

    def test_text_fields_are_clipped_by_utf8_bytes(self, milvus_index):
        collection = RecordingCollection()
        milvus_index.collections[NodeKind.CLASS] = collection
        description = "描述" * 10000

        milvus_index.upsert_documents(NodeKind.CLASS, [
            VectorDocument(id="root/pkg/Parser", name="Parser", path="root/pkg",
                           description=description, description_vector=[0.0] * 4),
        ])

        ids, names, paths, descriptions, vectors = collection.upserts[0]
        assert ids == ["root/pkg/Parser"]
        stored = descriptions[0]
        assert len(stored.encode("utf-8")) <= milvus_client._MAX_DESCRIPTION_LENGTH
        assert description.startswith(stored)

    def test_short_values_are_kept(self):
        assert milvus_client._clip("Parser", 512) == "Parser"
        assert milvus_client._clip(None, 512) == ""

    def test_oversized_id_is_rejected(self, milvus_index):
        collection = RecordingCollection()
        milvus_index.collections[NodeKind.FUNCTION] = collection

        with pytest.raises(ValueError):
            milvus_index.upsert_documents(NodeKind.FUNCTION, [
                VectorDocument(id="é" * 1500, name="run", path="root/C",
                               description="runs", description_vector=[0.0] * 4),
            ])
        assert collection.upserts == []

    def test_hit_source_matches_local_index(self, milvus_index):
        hit = SimpleNamespace(
            id="root/pkgA/ClassX/f1",
            score=0.9,
            entity={"name": "f1", "path": "root/pkgA/ClassX", "description": "parses the input"},
        )
        milvus_index.collections[NodeKind.FUNCTION] = RecordingCollection(hits=[hit])

        hits = milvus_index.search(NodeKind.FUNCTION, [1.0, 0.0, 0.0, 0.0], top_k=1)

        assert hits[0].rank == 1
        assert hits[0].source == VectorDocument(
            id="root/pkgA/ClassX/f1", name="f1", path="root/pkgA/ClassX", description="parses the input",
        ).to_dict()
