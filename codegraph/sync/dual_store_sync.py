"""
Writes described entities to the vector index and the graph store.

The two writes are not transactional. They always run in the same order,
vector index first and graph second, so a crash in between leaves a
document whose graph node still lacks the description; re-running the
summarizer or `reconcile()` converges both stores.
"""
from typing import List, Dict, Any, Optional, Iterable, Tuple, Union

from ..graph.base import GraphStore
from ..graph.upsert_engine import path_key, class_key, function_key
from ..query.base import VectorIndex
from ..records import SourceRecord, normalize_path
from ..types import GraphNode, NodeKind, SummaryState, VectorDocument, DESCRIPTION_KEY
from ..utils.logger import app_logger


def graph_key(kind: NodeKind, name: str, path: str) -> Dict[str, Any]:
    """Graph lookup key for an entity given its name and owning path."""
    if kind is NodeKind.PATH:
        return path_key(path)
    if kind is NodeKind.CLASS:
        return class_key(name, path)
    return function_key(name, path)


def document_fields(kind: NodeKind, properties: Dict[str, Any]) -> Tuple[str, str, str]:
    """(natural key, name, path) of a graph node's vector document."""
    name = properties.get("name", "")
    if kind is NodeKind.PATH:
        full_path = properties.get("full_path", "")
        return full_path, name, full_path
    if kind is NodeKind.CLASS:
        path = properties.get("path", "")
        return f"{path}/{name}", name, path
    full_classname = properties.get("full_classname", "")
    return f"{full_classname}/{name}", name, full_classname


class DualStoreSync:
    """Projects entity descriptions into the vector index and the graph."""

    def __init__(self, gateway, vector_index: VectorIndex, graph_client: GraphStore):
        self.gateway = gateway
        self.vector_index = vector_index
        self.graph = graph_client
        self.logger = app_logger.bind(component="dual_store_sync")

    def upsert_described_entity(self, kind: Union[NodeKind, str], natural_key: str, name: str,
                                path: str, description: str) -> VectorDocument:
        """Embed the description, upsert the document, then merge the description onto the graph node."""
        kind = kind if isinstance(kind, NodeKind) else NodeKind.parse(kind)
        document = self._write_document(kind, natural_key, name, path, description)

        node = self.graph.find_node(kind.label, graph_key(kind, name, path))
        if node is None:
            self.logger.warning(f"No {kind.label} node for {natural_key}, description stored in vector index only")
        else:
            self.graph.set_properties(node.id, {DESCRIPTION_KEY: description})

        return document

    def _write_document(self, kind: NodeKind, natural_key: str, name: str, path: str,
                        description: str) -> VectorDocument:
        self.vector_index.ensure_index(kind)
        document = VectorDocument(
            id=natural_key,
            name=name,
            path=path,
            description=description,
            description_vector=self.gateway.embed(description),
        )
        self.vector_index.upsert_documents(kind, [document])
        self.logger.debug(f"Indexed {kind.label} {natural_key}")
        return document

    def _is_summarized(self, kind: NodeKind, name: str, path: str) -> bool:
        node = self.graph.find_node(kind.label, graph_key(kind, name, path))
        return node is not None and node.summary_state is SummaryState.SUMMARIZED

    def index_record(self, record: SourceRecord) -> int:
        """Index the class and function descriptions carried by a record.

        Descriptions come from the record property bags and fall back to the
        entity name. Entities that are already summarized keep their
        summarized document. Only the vector index is written: the graph
        nodes already hold the record properties.
        """
        class_info = record.class_info
        path = normalize_path(class_info.path)
        full_class_name = record.full_class_name
        indexed = 0

        if not self._is_summarized(NodeKind.CLASS, class_info.name, path):
            description = class_info.property_map.get(DESCRIPTION_KEY) or class_info.name
            self._write_document(NodeKind.CLASS, full_class_name, class_info.name, path, str(description))
            indexed += 1

        for function in record.functions:
            if self._is_summarized(NodeKind.FUNCTION, function.name, full_class_name):
                continue
            description = function.property_map.get(DESCRIPTION_KEY) or function.name
            self._write_document(
                NodeKind.FUNCTION,
                f"{full_class_name}/{function.name}",
                function.name,
                full_class_name,
                str(description),
            )
            indexed += 1

        return indexed

    def index_records(self, records: Iterable[SourceRecord]) -> int:
        return sum(self.index_record(record) for record in records)

    def reconcile(self, kinds: Optional[List[NodeKind]] = None, only_missing: bool = False) -> Dict[str, int]:
        """Replay every described graph node into the vector index.

        With `only_missing`, nodes whose document already exists are skipped.
        Returns the number of documents written per kind.
        """
        written: Dict[str, int] = {}
        for kind in kinds or list(NodeKind):
            count = 0
            for node in self.graph.find_nodes(kind.label):
                if not self._replay(kind, node, only_missing):
                    continue
                count += 1
            written[kind.label] = count
            self.logger.info(f"Reconciled {count} {kind.label} documents")
        return written

    def _replay(self, kind: NodeKind, node: GraphNode, only_missing: bool) -> bool:
        if not node.description:
            return False
        natural_key, name, path = document_fields(kind, node.properties)
        if only_missing:
            self.vector_index.ensure_index(kind)
            if self.vector_index.has_document(kind, natural_key):
                return False
        self._write_document(kind, natural_key, name, path, node.description)
        return True
