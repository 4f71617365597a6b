"""
Stage wiring for the code graph pipeline.

Each stage (resolve, summarize, reconcile, search) is an independent unit
of work over the shared graph store and vector index.
"""
from functools import cached_property
from typing import List, Dict, Any, Optional, Union

from .config import settings
from .embedding.model_gateway import ModelGateway, create_model_gateway
from .exceptions import MalformedRecordError
from .graph.dependency_resolver import DependencyResolver
from .graph.upsert_engine import IdentityCache
from .records import SourceRecord, parse_record
from .scanner.record_scanner import RecordScanner
from .search.retrieval_service import RetrievalService
from .summarizer.hierarchical_summarizer import HierarchicalSummarizer
from .sync.dual_store_sync import DualStoreSync
from .types import BatchStats, NodeKind, RetrievalResult
from .utils.logger import app_logger


def create_graph_client():
    """Graph store for the configured backend."""
    if settings.graph_backend == "neo4j":
        from .graph.neo4j_client import Neo4jClient
        return Neo4jClient()
    if settings.graph_backend == "json":
        from .graph.json_graph_client import JsonGraphClient
        return JsonGraphClient(settings.graph_storage_path or None)
    raise ValueError(f"Unsupported graph backend: {settings.graph_backend}")


def create_vector_index(dimension: Optional[int] = None):
    """Vector index for the configured backend."""
    if settings.vector_backend == "milvus":
        from .query.milvus_client import MilvusVectorIndex
        return MilvusVectorIndex(dimension=dimension)
    if settings.vector_backend == "local":
        from .query.local_vector_index import LocalVectorIndex
        return LocalVectorIndex(dimension=dimension)
    raise ValueError(f"Unsupported vector backend: {settings.vector_backend}")


class CodeGraphPipeline:
    """Builds, describes and queries the code knowledge graph."""

    def __init__(self, graph_client=None, vector_index=None, gateway: Optional[ModelGateway] = None,
                 traversal: Optional[str] = None):
        self.logger = app_logger.bind(component="pipeline")
        self._gateway = gateway
        self.traversal = traversal
        self.graph = graph_client or create_graph_client()
        self.vector_index = vector_index or create_vector_index(gateway.dimension if gateway else None)
        self.resolver = DependencyResolver(self.graph)

    @property
    def gateway(self) -> ModelGateway:
        """Model gateway, built on first use so graph-only operations need no credentials."""
        if self._gateway is None:
            self._gateway = create_model_gateway()
        return self._gateway

    @cached_property
    def sync(self) -> DualStoreSync:
        return DualStoreSync(self.gateway, self.vector_index, self.graph)

    @cached_property
    def summarizer(self) -> HierarchicalSummarizer:
        return HierarchicalSummarizer(self.graph, self.gateway, self.sync, self.traversal)

    @cached_property
    def retrieval(self) -> RetrievalService:
        return RetrievalService(self.gateway, self.vector_index, self.graph)

    def resolve(self, records: List[Any], index: bool = True) -> BatchStats:
        """Load a batch of raw records and index their record-level descriptions."""
        parsed: List[Union[SourceRecord, Any]] = []
        for raw in records:
            try:
                parsed.append(parse_record(raw))
            except MalformedRecordError:
                # the resolver counts and reports it
                parsed.append(raw)

        stats = self.resolver.resolve_batch(parsed, IdentityCache())
        if index:
            valid = [record for record in parsed if isinstance(record, SourceRecord)]
            indexed = self.sync.index_records(valid)
            self.logger.info(f"Indexed {indexed} record-level descriptions")
        return stats

    def resolve_directory(self, records_dir: str, index: bool = True) -> BatchStats:
        """Load every record file below `records_dir`."""
        scanner = RecordScanner(records_dir)
        return self.resolve(list(scanner.scan()), index=index)

    def summarize(self, root_path: Optional[str] = None) -> str:
        return self.summarizer.summarize(root_path)

    def analyse(self, records_dir: str, root_path: Optional[str] = None) -> Dict[str, Any]:
        """Resolve, index and summarize one scan."""
        stats = self.resolve_directory(records_dir)
        description = self.summarize(root_path)
        return {
            "batch": stats.to_dict(),
            "root_description": description,
            "failed_subtrees": list(self.summarizer.failed),
        }

    def reconcile(self, only_missing: bool = False) -> Dict[str, int]:
        return self.sync.reconcile(only_missing=only_missing)

    def search(self, query: str, kind: Union[NodeKind, str], top_k: Optional[int] = None,
               expand_hops: Optional[int] = None) -> List[RetrievalResult]:
        return self.retrieval.search(query, kind, top_k, expand_hops)

    def clear_all(self) -> Dict[str, Any]:
        """Drop every graph node and edge and delete all three vector indices."""
        self.graph.clear_database()
        dropped = [kind.index_name for kind in NodeKind if self.vector_index.delete_index(kind)]
        self.logger.info(f"Cleared graph and dropped indices: {dropped}")
        return {"graph_cleared": True, "indices_dropped": dropped}

    def stats(self) -> Dict[str, Any]:
        stats = self.graph.get_database_stats()
        stats["indices"] = {kind.index_name: self.vector_index.index_exists(kind) for kind in NodeKind}
        return stats

    def close(self):
        self.graph.close()
        self.vector_index.close()
