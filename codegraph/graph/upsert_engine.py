"""
Identity resolution and idempotent upserts against a graph store.

Every upsert takes an explicit `IdentityCache`. The cache maps natural keys to
graph node identities for the lifetime of one batch; the caller creates it,
passes it to every upsert and drops it when the batch is done. It only saves
round trips, uniqueness comes from the check-then-insert against the store.
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass, field

from ..records import normalize_path
from ..types import (
    EdgeType,
    GraphEdge,
    GraphNode,
    NodeKind,
    SummaryState,
    DESCRIPTION_KEY,
    SUMMARY_STATE_KEY,
)
from ..utils.logger import app_logger
from .base import GraphStore


@dataclass
class IdentityCache:
    """Natural key -> node id mappings for one invocation."""
    paths: Dict[str, str] = field(default_factory=dict)
    classes: Dict[str, str] = field(default_factory=dict)
    functions: Dict[str, str] = field(default_factory=dict)

    def path_id(self, full_path: str) -> Optional[str]:
        return self.paths.get(normalize_path(full_path))

    def class_id(self, full_class_name: str) -> Optional[str]:
        return self.classes.get(full_class_name)

    def function_id(self, full_class_name: str, name: str) -> Optional[str]:
        return self.functions.get(f"{full_class_name}/{name}")

    def __len__(self) -> int:
        return len(self.paths) + len(self.classes) + len(self.functions)


def path_key(full_path: str) -> Dict[str, Any]:
    return {"full_path": normalize_path(full_path)}


def class_key(name: str, path: str) -> Dict[str, Any]:
    return {"path": normalize_path(path), "name": name}


def function_key(name: str, full_classname: str) -> Dict[str, Any]:
    return {"full_classname": full_classname, "name": name}


def _mergeable(existing: GraphNode, key: Dict[str, Any], properties: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the keys a property bag must not overwrite on an existing node.

    The natural key fields and the summary state belong to the engine.
    """
    merged = {k: v for k, v in properties.items() if k != SUMMARY_STATE_KEY and k not in key}
    if existing.summary_state is SummaryState.SUMMARIZED:
        merged.pop(DESCRIPTION_KEY, None)
    changed = {k: v for k, v in merged.items() if existing.properties.get(k) != v}
    return changed


class GraphUpsertEngine:
    """Create-if-absent upserts for Path, Class and Function nodes and their edges."""

    def __init__(self, graph_client: GraphStore):
        self.graph = graph_client
        self.logger = app_logger.bind(component="upsert_engine")

    def _upsert_node(self, kind: NodeKind, key: Dict[str, Any], properties: Dict[str, Any],
                     cached_id: Optional[str]) -> str:
        if cached_id is not None and not properties:
            return cached_id

        existing = self.graph.get_node(cached_id) if cached_id else self.graph.find_node(kind.label, key)
        if existing is None:
            node_properties = dict(properties)
            node_properties.pop(SUMMARY_STATE_KEY, None)
            node_properties.update(key)
            node = self.graph.create_node(kind.label, node_properties)
            self.logger.debug(f"Created {kind.label} {key}")
            return node.id

        changed = _mergeable(existing, key, properties)
        if changed:
            self.graph.set_properties(existing.id, changed)
        return existing.id

    def upsert_path(self, cache: IdentityCache, full_path: str) -> Optional[str]:
        """Create every missing prefix of the path and chain them with Contains edges.

        Returns the id of the deepest segment, or None for an empty path.
        """
        segments = [segment for segment in (full_path or "").split("/") if segment]
        parent_id = None
        current_path = ""
        for segment in segments:
            current_path = f"{current_path}/{segment}" if current_path else segment
            node_id = cache.paths.get(current_path)
            if node_id is None:
                node_id = self._upsert_node(
                    NodeKind.PATH,
                    path_key(current_path),
                    {"name": segment},
                    cached_id=None,
                )
                cache.paths[current_path] = node_id
            if parent_id is not None:
                self.upsert_edge(EdgeType.CONTAINS, parent_id, node_id)
            parent_id = node_id
        return parent_id

    def upsert_class(self, cache: IdentityCache, name: str, path: str,
                     properties: Optional[Dict[str, Any]] = None) -> str:
        path = normalize_path(path)
        full_class_name = f"{path}/{name}"
        node_id = self._upsert_node(
            NodeKind.CLASS,
            class_key(name, path),
            properties or {},
            cached_id=cache.classes.get(full_class_name),
        )
        cache.classes[full_class_name] = node_id
        return node_id

    def upsert_function(self, cache: IdentityCache, name: str, full_classname: str,
                        properties: Optional[Dict[str, Any]] = None) -> str:
        function_path = f"{full_classname}/{name}"
        node_id = self._upsert_node(
            NodeKind.FUNCTION,
            function_key(name, full_classname),
            properties or {},
            cached_id=cache.functions.get(function_path),
        )
        cache.functions[function_path] = node_id
        return node_id

    def upsert_edge(self, edge_type: EdgeType, from_id: Optional[str], to_id: Optional[str]) -> Optional[GraphEdge]:
        """Add the edge unless it already exists. A missing endpoint is a no-op."""
        if not from_id or not to_id:
            return None
        if self.graph.has_edge(edge_type, from_id, to_id):
            return GraphEdge(source_id=from_id, target_id=to_id, relationship_type=edge_type.value)
        return self.graph.create_edge(edge_type, from_id, to_id)
