from typing import Any, Iterable, List, Optional, Tuple, Union

from ..exceptions import MalformedRecordError
from ..records import SourceRecord, parse_record
from ..types import BatchStats, EdgeType
from ..utils.logger import app_logger
from .base import GraphStore
from .upsert_engine import GraphUpsertEngine, IdentityCache


class DependencyResolver:
    """Materializes Path/Class/Function nodes and their edges from source records.

    Call edges always resolve: a cross-file call to code that has not been
    seen yet creates the target Path/Class/Function chain on the spot.
    Inheritance is conservative: an `extends` reference only becomes an edge
    when the parent class is known to the batch's identity cache. Extends
    references are queued and retried once the whole batch is in, so a parent
    that appears later in the same batch still links; anything left after
    that pass is dropped with a warning.
    """

    def __init__(self, graph_client: GraphStore, engine: Optional[GraphUpsertEngine] = None):
        self.graph = graph_client
        self.engine = engine or GraphUpsertEngine(graph_client)
        self.logger = app_logger.bind(component="dependency_resolver")

    def resolve_batch(self, records: Iterable[Union[SourceRecord, Any]],
                      cache: Optional[IdentityCache] = None) -> BatchStats:
        """Load a batch of records. Malformed records are skipped, other failures propagate."""
        cache = cache if cache is not None else IdentityCache()
        stats = BatchStats()
        deferred_extends: List[Tuple[str, str]] = []

        for raw in records:
            stats.records_seen += 1
            try:
                record = raw if isinstance(raw, SourceRecord) else parse_record(raw)
            except MalformedRecordError as e:
                stats.records_skipped += 1
                self.logger.warning(str(e))
                continue

            stats.skipped_references += self.resolve_record(record, cache, deferred_extends)
            stats.records_loaded += 1

        for child, parent in deferred_extends:
            if self._link_extends(cache, child, parent):
                stats.deferred_resolved += 1
            else:
                stats.skipped_references += 1
                self.logger.warning(f"Dropping extends reference {child} -> {parent}: parent class not seen")

        self.logger.info(
            f"Resolved {stats.records_loaded}/{stats.records_seen} records, "
            f"skipped {stats.records_skipped}, dropped {stats.skipped_references} references"
        )
        return stats

    def resolve_record(self, record: SourceRecord, cache: IdentityCache,
                       deferred_extends: Optional[List[Tuple[str, str]]] = None) -> int:
        """Load one record. Returns the number of references that could not be linked."""
        class_info = record.class_info
        full_class_name = record.full_class_name
        skipped = 0
        self.logger.info(f"Processing class: {full_class_name}")

        path_id = self.engine.upsert_path(cache, class_info.path)
        class_properties = class_info.property_map
        class_id = self.engine.upsert_class(cache, class_info.name, class_info.path, class_properties)
        self.engine.upsert_edge(EdgeType.CONTAINS, path_id, class_id)

        parent = class_properties.get("extends")
        if isinstance(parent, str) and parent:
            if not self._link_extends(cache, full_class_name, parent):
                if deferred_extends is not None:
                    deferred_extends.append((full_class_name, parent))
                else:
                    skipped += 1
                    self.logger.warning(f"Dropping extends reference {full_class_name} -> {parent}: parent class not seen")

        for function in record.functions:
            function_id = self.engine.upsert_function(cache, function.name, full_class_name, function.property_map)
            self.engine.upsert_edge(EdgeType.CONTAINS, class_id, function_id)

        for call in record.inner_dependencies:
            source_id = cache.function_id(full_class_name, call.source) if call.source else None
            target_id = cache.function_id(full_class_name, call.target) if call.target else None
            if source_id is None or target_id is None:
                skipped += 1
                self.logger.warning(
                    f"Dropping call {full_class_name}/{call.source} -> {full_class_name}/{call.target}: unknown function"
                )
                continue
            self.engine.upsert_edge(EdgeType.CALLS, source_id, target_id)

        for call in record.outer_dependencies:
            if not call.is_complete:
                skipped += 1
                self.logger.warning(f"Dropping incomplete outer dependency in {full_class_name}")
                continue
            target = call.target
            target_path_id = self.engine.upsert_path(cache, target.path)
            target_class_id = self.engine.upsert_class(cache, target.class_name, target.path)
            self.engine.upsert_edge(EdgeType.CONTAINS, target_path_id, target_class_id)
            target_function_id = self.engine.upsert_function(cache, target.function_name, target.full_class_name)
            self.engine.upsert_edge(EdgeType.CONTAINS, target_class_id, target_function_id)

            source_id = cache.function_id(full_class_name, call.source)
            if source_id is None:
                skipped += 1
                self.logger.warning(f"Dropping call from unknown function {full_class_name}/{call.source}")
                continue
            self.engine.upsert_edge(EdgeType.CALLS, source_id, target_function_id)

        return skipped

    def _link_extends(self, cache: IdentityCache, child: str, parent: str) -> bool:
        child_id = cache.class_id(child)
        parent_id = cache.class_id(parent)
        if child_id is None or parent_id is None:
            return False
        self.engine.upsert_edge(EdgeType.EXTENDS, child_id, parent_id)
        return True
