from typing import List, Dict, Any, Optional, Union

from ..config import settings
from ..graph.base import GraphStore, check_hops
from ..query.base import VectorIndex
from ..types import GraphNode, NodeKind, RetrievalResult
from ..utils.logger import app_logger


def _neighbor(node: GraphNode) -> Dict[str, Any]:
    return {
        "name": node.name,
        "full_classname": node.properties.get("full_classname", ""),
        "description": node.description,
    }


class RetrievalService:
    """Semantic search over one entity kind, expanded with call-graph neighbors for functions."""

    def __init__(self, gateway, vector_index: VectorIndex, graph_client: GraphStore):
        self.gateway = gateway
        self.vector_index = vector_index
        self.graph = graph_client
        self.logger = app_logger.bind(component="retrieval_service")

    def search(self, query: str, kind: Union[NodeKind, str], top_k: Optional[int] = None,
               expand_hops: Optional[int] = None) -> List[RetrievalResult]:
        """Embed the query, search the kind's index and expand Function hits.

        Function hits get their callers and callees within `expand_hops` Calls
        edges (1 by default, at most 2).
        """
        kind = kind if isinstance(kind, NodeKind) else NodeKind.parse(kind)
        if top_k is None:
            top_k = settings.search_top_k
        if expand_hops is None:
            expand_hops = settings.call_expansion_hops
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")
        check_hops(expand_hops)

        if not query or not query.strip():
            return []

        if not self.vector_index.index_exists(kind):
            self.logger.warning(f"Index {kind.index_name} does not exist yet")
            return []

        vector = self.gateway.embed(query)
        hits = self.vector_index.search(kind, vector, top_k)
        self.logger.info(f"Query '{query}' matched {len(hits)} {kind.label} documents")

        results = []
        for hit in hits:
            result = RetrievalResult(hit=hit, kind=kind)
            if kind is NodeKind.FUNCTION:
                full_classname = hit.source.get("path", "")
                name = hit.source.get("name", "")
                result.callers = [
                    _neighbor(node) for node in self.graph.find_function_callers(
                        full_classname, name, hops=expand_hops, limit=settings.call_expansion_limit)
                ]
                result.callees = [
                    _neighbor(node) for node in self.graph.find_function_callees(
                        full_classname, name, hops=expand_hops, limit=settings.call_expansion_limit)
                ]
            results.append(result)

        return results
