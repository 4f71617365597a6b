from typing import List, Dict, Optional
import numpy as np

from ..config import settings
from ..types import NodeKind, SearchHit, VectorDocument
from ..utils.logger import app_logger


class LocalVectorIndex:
    """In-process vector index with exact cosine search.

    Same contract as the Milvus collections, for local runs without a
    vector server. Documents live in memory only.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.logger = app_logger.bind(component="local_vector_index")
        self.dimension = dimension or settings.embedding_dimension
        self.indices: Dict[NodeKind, Dict[str, VectorDocument]] = {}

    def index_exists(self, kind: NodeKind) -> bool:
        return kind in self.indices

    def ensure_index(self, kind: NodeKind) -> bool:
        if kind in self.indices:
            return False
        self.indices[kind] = {}
        self.logger.info(f"Created index: {kind.index_name}")
        return True

    def upsert_documents(self, kind: NodeKind, documents: List[VectorDocument]) -> int:
        self.ensure_index(kind)
        for doc in documents:
            if doc.description_vector is None or len(doc.description_vector) != self.dimension:
                raise ValueError(
                    f"Document {doc.id} vector has dimension "
                    f"{0 if doc.description_vector is None else len(doc.description_vector)}, "
                    f"expected {self.dimension}"
                )
            self.indices[kind][doc.id] = doc
        return len(documents)

    def has_document(self, kind: NodeKind, doc_id: str) -> bool:
        return doc_id in self.indices.get(kind, {})

    def get_document(self, kind: NodeKind, doc_id: str) -> Optional[VectorDocument]:
        doc = self.indices.get(kind, {}).get(doc_id)
        if doc is None:
            return None
        return VectorDocument(id=doc.id, name=doc.name, path=doc.path, description=doc.description)

    def search(self, kind: NodeKind, vector: List[float], top_k: int = 5) -> List[SearchHit]:
        """Perform similarity search using embeddings."""
        documents = list(self.indices.get(kind, {}).values())
        if not documents or top_k <= 0:
            return []

        # Convert to numpy arrays for efficient computation
        query_np = np.array(vector, dtype=float)
        doc_np = np.array([doc.description_vector for doc in documents], dtype=float)

        # Calculate cosine similarity
        norms = np.linalg.norm(doc_np, axis=1) * np.linalg.norm(query_np)
        norms[norms == 0] = 1.0
        similarities = np.dot(doc_np, query_np) / norms

        # Get top-k results, stable on ties
        top_indices = np.argsort(-similarities, kind="stable")[:top_k]

        hits = []
        for rank, idx in enumerate(top_indices):
            doc = documents[idx]
            hits.append(SearchHit(
                id=doc.id,
                score=float(similarities[idx]),
                rank=rank + 1,
                source=VectorDocument(id=doc.id, name=doc.name, path=doc.path,
                                      description=doc.description).to_dict(),
            ))
        return hits

    def delete_index(self, kind: NodeKind) -> bool:
        if kind not in self.indices:
            self.logger.info(f"Index {kind.index_name} does not exist")
            return False
        del self.indices[kind]
        self.logger.info(f"Deleted index: {kind.index_name}")
        return True

    def close(self):
        pass
