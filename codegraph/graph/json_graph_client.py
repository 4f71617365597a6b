from typing import List, Dict, Any, Optional, Set, Tuple
import datetime
import json
import uuid
from pathlib import Path

from ..types import GraphNode, GraphEdge, EdgeType, NodeKind
from .base import check_hops
from ..utils.logger import app_logger


class JsonGraphClient:
    """JSON-based graph storage client.

    Keeps the whole graph in memory and, when a storage path is given,
    writes it back to a JSON file after every mutation. Node identities are
    opaque strings generated on insert, the same way a graph server hands out
    element ids.
    """

    def __init__(self, storage_path: Optional[str] = None):
        self.logger = app_logger.bind(component="json_graph_client")
        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        self.data = self._initialize_data()
        self._edge_keys: Set[Tuple[str, str, str]] = set()

        # Load existing data if file exists
        self._load_data()

    def _load_data(self):
        """Load data from JSON file."""
        if self.storage_path and self.storage_path.exists():
            try:
                with open(self.storage_path, 'r', encoding='utf-8') as f:
                    self.data = json.load(f)
                self.logger.info(f"Loaded graph data from {self.storage_path}")
            except (OSError, json.JSONDecodeError) as e:
                self.logger.error(f"Error loading graph data: {e}")
                self.data = self._initialize_data()
        self._edge_keys = {
            (edge["relationship_type"], edge["source_id"], edge["target_id"])
            for edge in self.data["edges"]
        }

    def _initialize_data(self) -> Dict[str, Any]:
        """Initialize empty data structure."""
        return {
            "nodes": {},
            "edges": [],
            "metadata": {
                "version": "1.0",
                "created_at": None,
                "updated_at": None
            }
        }

    def _save_data(self):
        """Save data to JSON file."""
        if not self.storage_path:
            return
        self.data["metadata"]["updated_at"] = datetime.datetime.now().isoformat()
        if not self.data["metadata"]["created_at"]:
            self.data["metadata"]["created_at"] = self.data["metadata"]["updated_at"]

        with open(self.storage_path, 'w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=2, ensure_ascii=False)
        self.logger.debug(f"Saved graph data to {self.storage_path}")

    def close(self):
        """Nothing to release for a file backed graph."""
        self._save_data()

    def _to_node(self, node_id: str) -> GraphNode:
        node_data = self.data["nodes"][node_id]
        return GraphNode(
            id=node_data["id"],
            type=node_data["type"],
            properties=dict(node_data["properties"]),
        )

    def find_node(self, label: str, key: Dict[str, Any]) -> Optional[GraphNode]:
        """Find the first node with the label whose properties match every key entry."""
        for node_id, node_data in self.data["nodes"].items():
            if node_data["type"] != label:
                continue
            properties = node_data["properties"]
            if all(properties.get(k) == v for k, v in key.items()):
                return self._to_node(node_id)
        return None

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        if node_id not in self.data["nodes"]:
            return None
        return self._to_node(node_id)

    def find_nodes(self, label: str) -> List[GraphNode]:
        """Get all nodes carrying the label, in insertion order."""
        return [
            self._to_node(node_id)
            for node_id, node_data in self.data["nodes"].items()
            if node_data["type"] == label
        ]

    def create_node(self, label: str, properties: Dict[str, Any]) -> GraphNode:
        """Insert a new node. Callers check existence first."""
        node_id = str(uuid.uuid4())
        self.data["nodes"][node_id] = {
            "id": node_id,
            "type": label,
            "properties": dict(properties),
        }
        self._save_data()
        self.logger.debug(f"Created {label} node {node_id}")
        return self._to_node(node_id)

    def set_properties(self, node_id: str, properties: Dict[str, Any]) -> Optional[GraphNode]:
        """Merge properties onto an existing node."""
        if node_id not in self.data["nodes"]:
            return None
        self.data["nodes"][node_id]["properties"].update(properties)
        self._save_data()
        return self._to_node(node_id)

    def has_edge(self, edge_type: EdgeType, source_id: str, target_id: str) -> bool:
        return (edge_type.value, source_id, target_id) in self._edge_keys

    def create_edge(self, edge_type: EdgeType, source_id: str, target_id: str) -> Optional[GraphEdge]:
        """Insert a new edge between two existing nodes."""
        if source_id not in self.data["nodes"] or target_id not in self.data["nodes"]:
            return None

        edge_data = {
            "source_id": source_id,
            "target_id": target_id,
            "relationship_type": edge_type.value,
            "properties": {},
        }
        self.data["edges"].append(edge_data)
        self._edge_keys.add((edge_type.value, source_id, target_id))
        self._save_data()
        return GraphEdge(**edge_data)

    def get_children(self, node_id: str, edge_type: EdgeType, label: Optional[str] = None) -> List[GraphNode]:
        """Get targets of outgoing edges, in edge insertion order."""
        children = []
        for edge in self.data["edges"]:
            if edge["relationship_type"] != edge_type.value or edge["source_id"] != node_id:
                continue
            target = self.data["nodes"].get(edge["target_id"])
            if target and (label is None or target["type"] == label):
                children.append(self._to_node(edge["target_id"]))
        return children

    def get_parents(self, node_id: str, edge_type: EdgeType, label: Optional[str] = None) -> List[GraphNode]:
        """Get sources of incoming edges, in edge insertion order."""
        parents = []
        for edge in self.data["edges"]:
            if edge["relationship_type"] != edge_type.value or edge["target_id"] != node_id:
                continue
            source = self.data["nodes"].get(edge["source_id"])
            if source and (label is None or source["type"] == label):
                parents.append(self._to_node(edge["source_id"]))
        return parents

    def find_root_paths(self) -> List[GraphNode]:
        """Path nodes that no other Path contains."""
        contained = {
            edge["target_id"]
            for edge in self.data["edges"]
            if edge["relationship_type"] == EdgeType.CONTAINS.value
            and self.data["nodes"].get(edge["source_id"], {}).get("type") == NodeKind.PATH.label
        }
        return [node for node in self.find_nodes(NodeKind.PATH.label) if node.id not in contained]

    def _walk(self, start_id: str, edge_type: EdgeType, outgoing: bool, hops: int,
              label: Optional[str] = None, limit: Optional[int] = None) -> List[GraphNode]:
        check_hops(hops)
        found: List[GraphNode] = []
        seen = {start_id}
        frontier = [start_id]
        for _ in range(hops):
            next_frontier = []
            for current in frontier:
                neighbors = (self.get_children(current, edge_type) if outgoing
                             else self.get_parents(current, edge_type))
                for neighbor in neighbors:
                    if neighbor.id in seen:
                        continue
                    seen.add(neighbor.id)
                    next_frontier.append(neighbor.id)
                    if label is None or neighbor.type == label:
                        found.append(neighbor)
                        if limit is not None and len(found) >= limit:
                            return found
            frontier = next_frontier
        return found

    def _find_function(self, full_classname: str, name: str) -> Optional[GraphNode]:
        return self.find_node(NodeKind.FUNCTION.label, {"full_classname": full_classname, "name": name})

    def find_function_callers(self, full_classname: str, name: str,
                              hops: int = 1, limit: int = 20) -> List[GraphNode]:
        """Functions calling the given function within `hops` call edges."""
        function = self._find_function(full_classname, name)
        if function is None:
            return []
        return self._walk(function.id, EdgeType.CALLS, outgoing=False, hops=hops,
                          label=NodeKind.FUNCTION.label, limit=limit)

    def find_function_callees(self, full_classname: str, name: str,
                              hops: int = 1, limit: int = 20) -> List[GraphNode]:
        """Functions called by the given function within `hops` call edges."""
        function = self._find_function(full_classname, name)
        if function is None:
            return []
        return self._walk(function.id, EdgeType.CALLS, outgoing=True, hops=hops,
                          label=NodeKind.FUNCTION.label, limit=limit)

    def find_sibling_functions(self, node_id: str) -> List[GraphNode]:
        """Other functions contained by the same class."""
        siblings = []
        for owner in self.get_parents(node_id, EdgeType.CONTAINS, NodeKind.CLASS.label):
            for function in self.get_children(owner.id, EdgeType.CONTAINS, NodeKind.FUNCTION.label):
                if function.id != node_id and function.id not in {s.id for s in siblings}:
                    siblings.append(function)
        return siblings

    def find_ancestors(self, node_id: str, max_hops: int = 2) -> List[GraphNode]:
        """Containing nodes up to `max_hops` levels above the node."""
        return self._walk(node_id, EdgeType.CONTAINS, outgoing=False, hops=max_hops)

    def clear_database(self):
        """Clear all data from the database."""
        self.data = self._initialize_data()
        self._edge_keys = set()
        self._save_data()
        self.logger.info("Cleared all data from JSON graph database")

    def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        stats = {}

        # Count nodes by type
        node_counts = {}
        for node_data in self.data["nodes"].values():
            node_type = node_data["type"]
            node_counts[node_type] = node_counts.get(node_type, 0) + 1
        stats["nodes"] = node_counts

        # Count relationships by type
        rel_counts = {}
        for edge in self.data["edges"]:
            rel_type = edge["relationship_type"]
            rel_counts[rel_type] = rel_counts.get(rel_type, 0) + 1
        stats["relationships"] = rel_counts

        return stats

    def get_all_edges(self) -> List[GraphEdge]:
        """Get all edges in the graph."""
        return [GraphEdge(**edge_data) for edge_data in self.data["edges"]]
