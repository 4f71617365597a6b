from typing import List, Optional, Protocol

from ..types import NodeKind, SearchHit, VectorDocument


class VectorIndex(Protocol):
    """Interface shared by the vector index backends. One index per entity kind."""

    def ensure_index(self, kind: NodeKind) -> bool:
        """Create the kind's index if absent. Returns True when it was created."""
        ...

    def index_exists(self, kind: NodeKind) -> bool:
        ...

    def upsert_documents(self, kind: NodeKind, documents: List[VectorDocument]) -> int:
        ...

    def has_document(self, kind: NodeKind, doc_id: str) -> bool:
        ...

    def get_document(self, kind: NodeKind, doc_id: str) -> Optional[VectorDocument]:
        ...

    def search(self, kind: NodeKind, vector: List[float], top_k: int = 5) -> List[SearchHit]:
        ...

    def delete_index(self, kind: NodeKind) -> bool:
        ...

    def close(self):
        ...
