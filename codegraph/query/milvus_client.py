from typing import List, Dict, Any, Optional
import json
from pymilvus import (
    connections,
    utility,
    FieldSchema,
    CollectionSchema,
    DataType,
    Collection,
)

from ..config import settings
from ..types import NodeKind, SearchHit, VectorDocument
from ..utils.logger import app_logger


VECTOR_FIELD = "description_vector"
OUTPUT_FIELDS = ["id", "name", "path", "description"]

_MAX_ID_LENGTH = 2048
_MAX_NAME_LENGTH = 512
_MAX_PATH_LENGTH = 2048
_MAX_DESCRIPTION_LENGTH = 16384


def _clip(value: str, limit: int) -> str:
    """Truncate to at most `limit` UTF-8 bytes, the unit VARCHAR max_length counts."""
    encoded = (value or "").encode("utf-8")
    if len(encoded) <= limit:
        return value or ""
    return encoded[:limit].decode("utf-8", errors="ignore")


def _check_id(doc_id: str) -> str:
    # a truncated primary key could collide with another document
    if len(doc_id.encode("utf-8")) > _MAX_ID_LENGTH:
        raise ValueError(f"Document id exceeds {_MAX_ID_LENGTH} bytes: {doc_id[:80]}...")
    return doc_id


def _hit_source(hit) -> Dict[str, Any]:
    return {
        "id": hit.id,
        "name": hit.entity.get("name"),
        "path": hit.entity.get("path"),
        "description": hit.entity.get("description"),
    }


class MilvusVectorIndex:
    """Milvus client holding one collection per entity kind."""

    def __init__(self, dimension: Optional[int] = None, host: Optional[str] = None,
                 port: Optional[int] = None, alias: str = "default"):
        self.logger = app_logger.bind(component="milvus_client")
        self.dimension = dimension or settings.embedding_dimension
        self.host = host or settings.milvus_host
        self.port = port or settings.milvus_port
        self.alias = alias
        self.collections: Dict[NodeKind, Collection] = {}

        self._connect()

    def _connect(self):
        """Connect to Milvus server."""
        try:
            connections.connect(
                self.alias,
                host=self.host,
                port=self.port,
            )
            self.logger.info(f"Connected to Milvus at {self.host}:{self.port}")
        except Exception as e:
            self.logger.error(f"Failed to connect to Milvus: {e}")
            raise

    def index_exists(self, kind: NodeKind) -> bool:
        return utility.has_collection(kind.index_name, using=self.alias)

    def ensure_index(self, kind: NodeKind) -> bool:
        """Ensure the kind's collection exists with the fixed schema."""
        if kind in self.collections:
            return False
        if self.index_exists(kind):
            self.collections[kind] = Collection(kind.index_name, using=self.alias)
            self.logger.debug(f"Using existing collection: {kind.index_name}")
            return False
        self.collections[kind] = self._create_collection(kind)
        return True

    def _create_collection(self, kind: NodeKind) -> Collection:
        """Create collection with proper schema."""
        try:
            fields = [
                FieldSchema(name="id", dtype=DataType.VARCHAR, max_length=_MAX_ID_LENGTH, is_primary=True),
                FieldSchema(name="name", dtype=DataType.VARCHAR, max_length=_MAX_NAME_LENGTH),
                FieldSchema(name="path", dtype=DataType.VARCHAR, max_length=_MAX_PATH_LENGTH),
                FieldSchema(name="description", dtype=DataType.VARCHAR, max_length=_MAX_DESCRIPTION_LENGTH),
                FieldSchema(name=VECTOR_FIELD, dtype=DataType.FLOAT_VECTOR, dim=self.dimension),
            ]

            schema = CollectionSchema(fields=fields, description=f"{kind.label} descriptions")
            collection = Collection(kind.index_name, schema, using=self.alias)

            # Approximate nearest neighbor index
            index_params = {
                "metric_type": "COSINE",
                "index_type": "HNSW",
                "params": {"M": settings.hnsw_m, "efConstruction": settings.hnsw_ef_construction},
            }

            collection.create_index(VECTOR_FIELD, index_params)
            self.logger.info(f"Created collection: {kind.index_name}")
            return collection

        except Exception as e:
            self.logger.error(f"Failed to create collection {kind.index_name}: {e}")
            raise

    def _collection(self, kind: NodeKind) -> Collection:
        self.ensure_index(kind)
        return self.collections[kind]

    def upsert_documents(self, kind: NodeKind, documents: List[VectorDocument]) -> int:
        """Update-or-insert documents keyed by their natural key."""
        if not documents:
            return 0

        collection = self._collection(kind)
        data = [
            [_check_id(doc.id) for doc in documents],
            [_clip(doc.name, _MAX_NAME_LENGTH) for doc in documents],
            [_clip(doc.path, _MAX_PATH_LENGTH) for doc in documents],
            [_clip(doc.description, _MAX_DESCRIPTION_LENGTH) for doc in documents],
            [doc.description_vector for doc in documents],
        ]
        collection.upsert(data)
        collection.flush()

        self.logger.debug(f"Upserted {len(documents)} documents into {kind.index_name}")
        return len(documents)

    def _query_by_id(self, kind: NodeKind, doc_id: str) -> List[Dict[str, Any]]:
        collection = self._collection(kind)
        collection.load()
        return collection.query(
            expr=f"id == {json.dumps(doc_id)}",
            output_fields=OUTPUT_FIELDS,
        )

    def has_document(self, kind: NodeKind, doc_id: str) -> bool:
        return bool(self._query_by_id(kind, doc_id))

    def get_document(self, kind: NodeKind, doc_id: str) -> Optional[VectorDocument]:
        """Get a document by id, without its vector."""
        results = self._query_by_id(kind, doc_id)
        if not results:
            return None
        result = results[0]
        return VectorDocument(
            id=result["id"],
            name=result["name"],
            path=result["path"],
            description=result["description"],
        )

    def search(self, kind: NodeKind, vector: List[float], top_k: int = 5) -> List[SearchHit]:
        """Approximate nearest neighbor search. The vector field is never returned."""
        collection = self._collection(kind)
        collection.load()

        search_params = {
            "metric_type": "COSINE",
            "params": {"ef": max(settings.hnsw_ef_search, top_k)},
        }

        results = collection.search(
            data=[vector],
            anns_field=VECTOR_FIELD,
            param=search_params,
            limit=top_k,
            output_fields=OUTPUT_FIELDS,
        )

        hits = []
        for result in results:
            for i, hit in enumerate(result):
                hits.append(SearchHit(
                    id=hit.id,
                    score=float(hit.score),
                    rank=i + 1,
                    source=_hit_source(hit),
                ))

        self.logger.debug(f"Found {len(hits)} hits in {kind.index_name}")
        return hits

    def delete_index(self, kind: NodeKind) -> bool:
        """Drop the kind's collection."""
        self.collections.pop(kind, None)
        if not self.index_exists(kind):
            self.logger.info(f"Collection {kind.index_name} does not exist")
            return False
        utility.drop_collection(kind.index_name, using=self.alias)
        self.logger.info(f"Dropped collection: {kind.index_name}")
        return True

    def close(self):
        """Close connection to Milvus."""
        try:
            connections.disconnect(self.alias)
            self.logger.info("Disconnected from Milvus")
        except Exception as e:
            self.logger.error(f"Failed to disconnect from Milvus: {e}")
