from typing import List, Dict, Any, Optional
import json
from neo4j import GraphDatabase

from ..config import settings
from ..types import GraphNode, GraphEdge, EdgeType, NodeKind
from ..utils.logger import app_logger
from .base import check_hops


_LABELS = {kind.label for kind in NodeKind}
_NATURAL_KEY_INDEXES = {
    NodeKind.PATH.label: ["full_path"],
    NodeKind.CLASS.label: ["path", "name"],
    NodeKind.FUNCTION.label: ["full_classname", "name"],
}


def _label(label: str) -> str:
    # Labels are interpolated into Cypher, so only the known ones are accepted.
    if label not in _LABELS:
        raise ValueError(f"Unsupported node label: {label}")
    return label


def _to_property_value(value: Any) -> Any:
    """Neo4j only stores primitives and homogeneous lists of primitives."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, (str, int, float, bool)) for v in value):
        if len({type(v) for v in value}) <= 1:
            return list(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def _to_properties(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _to_property_value(value) for key, value in (properties or {}).items()}


class Neo4jClient:
    """Neo4j client for graph database operations.

    Node identity is the server assigned element id. Existence checks and
    inserts are issued as separate statements so callers can run
    check-then-insert upserts keyed on natural keys.
    """

    def __init__(self, uri: Optional[str] = None, username: Optional[str] = None,
                 password: Optional[str] = None, database: Optional[str] = None):
        self.logger = app_logger.bind(component="neo4j_client")
        self.uri = uri or settings.neo4j_uri
        self.username = username or settings.neo4j_username
        self.password = password or settings.neo4j_password
        self.database = database or settings.neo4j_database
        self.driver = None
        self._connect()
        self._ensure_indexes()

    def _connect(self):
        """Connect to Neo4j server."""
        try:
            self.driver = GraphDatabase.driver(
                self.uri,
                auth=(self.username, self.password),
            )
            self.driver.verify_connectivity()
            self.logger.info(f"Connected to Neo4j at {self.uri}")
        except Exception as e:
            self.logger.error(f"Failed to connect to Neo4j: {e}")
            raise

    def _session(self):
        if self.database:
            return self.driver.session(database=self.database)
        return self.driver.session()

    def _ensure_indexes(self):
        """Ensure natural key lookups are indexed."""
        with self._session() as session:
            for label, keys in _NATURAL_KEY_INDEXES.items():
                index_name = f"{label.lower()}_natural_key"
                columns = ", ".join(f"n.{key}" for key in keys)
                statement = f"CREATE INDEX {index_name} IF NOT EXISTS FOR (n:{label}) ON ({columns})"
                try:
                    session.run(statement)
                    self.logger.debug(f"Ensured index: {statement}")
                except Exception as e:
                    self.logger.warning(f"Failed to create index {index_name}: {e}")

    def close(self):
        """Close connection to Neo4j."""
        if self.driver:
            self.driver.close()
            self.logger.info("Disconnected from Neo4j")

    def _to_node(self, record_node) -> GraphNode:
        return GraphNode(
            id=record_node.element_id,
            type=next(iter(record_node.labels), "Unknown"),
            properties=dict(record_node),
        )

    def _nodes(self, query: str, **params) -> List[GraphNode]:
        with self._session() as session:
            result = session.run(query, **params)
            return [self._to_node(record["n"]) for record in result]

    def find_node(self, label: str, key: Dict[str, Any]) -> Optional[GraphNode]:
        """Find a node by its natural key."""
        conditions = " AND ".join(f"n.{k} = $key_{k}" for k in key)
        query = f"MATCH (n:{_label(label)}) WHERE {conditions} RETURN n LIMIT 1"
        nodes = self._nodes(query, **{f"key_{k}": _to_property_value(v) for k, v in key.items()})
        return nodes[0] if nodes else None

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        nodes = self._nodes("MATCH (n) WHERE elementId(n) = $id RETURN n", id=node_id)
        return nodes[0] if nodes else None

    def find_nodes(self, label: str) -> List[GraphNode]:
        return self._nodes(f"MATCH (n:{_label(label)}) RETURN n ORDER BY n.created_at")

    def create_node(self, label: str, properties: Dict[str, Any]) -> GraphNode:
        """Insert a new node. Callers check existence first."""
        query = f"""
        CREATE (n:{_label(label)})
        SET n = $properties, n.created_at = timestamp()
        RETURN n
        """
        nodes = self._nodes(query, properties=_to_properties(properties))
        if not nodes:
            raise RuntimeError(f"Failed to create {label} node: {properties}")
        self.logger.debug(f"Created {label} node {nodes[0].id}")
        return nodes[0]

    def set_properties(self, node_id: str, properties: Dict[str, Any]) -> Optional[GraphNode]:
        """Merge properties onto an existing node."""
        query = """
        MATCH (n) WHERE elementId(n) = $id
        SET n += $properties, n.updated_at = timestamp()
        RETURN n
        """
        nodes = self._nodes(query, id=node_id, properties=_to_properties(properties))
        return nodes[0] if nodes else None

    def has_edge(self, edge_type: EdgeType, source_id: str, target_id: str) -> bool:
        query = f"""
        MATCH (a)-[r:{edge_type.value}]->(b)
        WHERE elementId(a) = $source_id AND elementId(b) = $target_id
        RETURN count(r) AS count
        """
        with self._session() as session:
            record = session.run(query, source_id=source_id, target_id=target_id).single()
            return bool(record and record["count"] > 0)

    def create_edge(self, edge_type: EdgeType, source_id: str, target_id: str) -> Optional[GraphEdge]:
        """Insert a new edge between two existing nodes."""
        query = f"""
        MATCH (a), (b)
        WHERE elementId(a) = $source_id AND elementId(b) = $target_id
        CREATE (a)-[r:{edge_type.value}]->(b)
        SET r.created_at = timestamp()
        RETURN r
        """
        with self._session() as session:
            record = session.run(query, source_id=source_id, target_id=target_id).single()
            if not record:
                return None
            return GraphEdge(
                source_id=source_id,
                target_id=target_id,
                relationship_type=edge_type.value,
                properties=dict(record["r"]),
            )

    def get_children(self, node_id: str, edge_type: EdgeType, label: Optional[str] = None) -> List[GraphNode]:
        """Get targets of outgoing edges, in edge creation order."""
        target = f"n:{_label(label)}" if label else "n"
        query = f"""
        MATCH (p)-[r:{edge_type.value}]->({target})
        WHERE elementId(p) = $id
        RETURN n ORDER BY r.created_at, elementId(r)
        """
        return self._nodes(query, id=node_id)

    def get_parents(self, node_id: str, edge_type: EdgeType, label: Optional[str] = None) -> List[GraphNode]:
        """Get sources of incoming edges, in edge creation order."""
        source = f"n:{_label(label)}" if label else "n"
        query = f"""
        MATCH ({source})-[r:{edge_type.value}]->(c)
        WHERE elementId(c) = $id
        RETURN n ORDER BY r.created_at, elementId(r)
        """
        return self._nodes(query, id=node_id)

    def find_root_paths(self) -> List[GraphNode]:
        """Path nodes that no other Path contains."""
        query = f"""
        MATCH (n:{NodeKind.PATH.label})
        WHERE NOT ( (:{NodeKind.PATH.label})-[:{EdgeType.CONTAINS.value}]->(n) )
        RETURN n ORDER BY n.created_at
        """
        return self._nodes(query)

    def find_function_callers(self, full_classname: str, name: str,
                              hops: int = 1, limit: int = 20) -> List[GraphNode]:
        """Functions calling the given function within `hops` call edges."""
        check_hops(hops)
        query = f"""
        MATCH (f:{NodeKind.FUNCTION.label} {{name: $name, full_classname: $full_classname}})
              <-[:{EdgeType.CALLS.value}*1..{hops}]-(n:{NodeKind.FUNCTION.label})
        WHERE n <> f
        RETURN DISTINCT n
        LIMIT $limit
        """
        return self._nodes(query, name=name, full_classname=full_classname, limit=limit)

    def find_function_callees(self, full_classname: str, name: str,
                              hops: int = 1, limit: int = 20) -> List[GraphNode]:
        """Functions called by the given function within `hops` call edges."""
        check_hops(hops)
        query = f"""
        MATCH (f:{NodeKind.FUNCTION.label} {{name: $name, full_classname: $full_classname}})
              -[:{EdgeType.CALLS.value}*1..{hops}]->(n:{NodeKind.FUNCTION.label})
        WHERE n <> f
        RETURN DISTINCT n
        LIMIT $limit
        """
        return self._nodes(query, name=name, full_classname=full_classname, limit=limit)

    def find_sibling_functions(self, node_id: str) -> List[GraphNode]:
        """Other functions contained by the same class."""
        query = f"""
        MATCH (c:{NodeKind.CLASS.label})-[:{EdgeType.CONTAINS.value}]->(f)
        WHERE elementId(f) = $id
        MATCH (c)-[:{EdgeType.CONTAINS.value}]->(n:{NodeKind.FUNCTION.label})
        WHERE n <> f
        RETURN DISTINCT n
        """
        return self._nodes(query, id=node_id)

    def find_ancestors(self, node_id: str, max_hops: int = 2) -> List[GraphNode]:
        """Containing nodes up to `max_hops` levels above the node."""
        check_hops(max_hops)
        query = f"""
        MATCH (n)-[:{EdgeType.CONTAINS.value}*1..{max_hops}]->(c)
        WHERE elementId(c) = $id
        RETURN DISTINCT n
        """
        return self._nodes(query, id=node_id)

    def clear_database(self):
        """Clear all data from the database."""
        query = "MATCH (n) DETACH DELETE n"

        with self._session() as session:
            session.run(query)
            self.logger.info("Cleared all data from Neo4j database")

    def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        stats = {}

        # Count nodes by type
        node_counts = """
        MATCH (n)
        RETURN labels(n)[0] as label, count(n) as count
        """

        with self._session() as session:
            result = session.run(node_counts)
            stats["nodes"] = {record["label"]: record["count"] for record in result}

        # Count relationships by type
        rel_counts = """
        MATCH ()-[r]->()
        RETURN type(r) as type, count(r) as count
        """

        with self._session() as session:
            result = session.run(rel_counts)
            stats["relationships"] = {record["type"]: record["count"] for record in result}

        return stats
