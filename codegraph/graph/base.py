from typing import List, Dict, Any, Optional, Protocol

from ..types import GraphNode, GraphEdge, EdgeType


MAX_NEIGHBOR_HOPS = 2


def check_hops(hops: int):
    """Neighborhood lookups are bounded to at most two hops."""
    if hops < 1 or hops > MAX_NEIGHBOR_HOPS:
        raise ValueError(f"Neighborhood lookups support 1 to {MAX_NEIGHBOR_HOPS} hops, got {hops}")


class GraphStore(Protocol):
    """Interface shared by the graph backends."""

    def find_node(self, label: str, key: Dict[str, Any]) -> Optional[GraphNode]:
        ...

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        ...

    def find_nodes(self, label: str) -> List[GraphNode]:
        ...

    def create_node(self, label: str, properties: Dict[str, Any]) -> GraphNode:
        ...

    def set_properties(self, node_id: str, properties: Dict[str, Any]) -> Optional[GraphNode]:
        ...

    def has_edge(self, edge_type: EdgeType, source_id: str, target_id: str) -> bool:
        ...

    def create_edge(self, edge_type: EdgeType, source_id: str, target_id: str) -> Optional[GraphEdge]:
        ...

    def get_children(self, node_id: str, edge_type: EdgeType, label: Optional[str] = None) -> List[GraphNode]:
        ...

    def get_parents(self, node_id: str, edge_type: EdgeType, label: Optional[str] = None) -> List[GraphNode]:
        ...

    def find_root_paths(self) -> List[GraphNode]:
        ...

    def find_function_callers(self, full_classname: str, name: str,
                              hops: int = 1, limit: int = 20) -> List[GraphNode]:
        ...

    def find_function_callees(self, full_classname: str, name: str,
                              hops: int = 1, limit: int = 20) -> List[GraphNode]:
        ...

    def find_sibling_functions(self, node_id: str) -> List[GraphNode]:
        ...

    def find_ancestors(self, node_id: str, max_hops: int = 2) -> List[GraphNode]:
        ...

    def clear_database(self):
        ...

    def get_database_stats(self) -> Dict[str, Any]:
        ...

    def close(self):
        ...
