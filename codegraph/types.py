from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from enum import Enum


class NodeKind(Enum):
    """Entity kinds stored in the graph and mirrored into the vector indices."""
    PATH = "Path"
    CLASS = "Class"
    FUNCTION = "Function"

    @property
    def label(self) -> str:
        return self.value

    @property
    def index_name(self) -> str:
        """Name of the vector index holding this kind's descriptions."""
        return f"{self.value.lower()}_metadata"

    @classmethod
    def parse(cls, value: str) -> "NodeKind":
        """Resolve a kind from its label, enum name or index name."""
        from .exceptions import UnknownEntityKindError

        normalized = (value or "").strip().lower()
        for kind in cls:
            if normalized in (kind.value.lower(), kind.name.lower(), kind.index_name):
                return kind
        raise UnknownEntityKindError(f"Unknown entity kind: {value}")


class EdgeType(Enum):
    """Structural edge types."""
    CONTAINS = "CONTAINS"
    EXTENDS = "EXTENDS"
    CALLS = "CALLS"


class SummaryState(Enum):
    """Per-node summarization state. Transitions only move forward within a run."""
    UNVISITED = "unvisited"
    PENDING = "pending"
    SUMMARIZED = "summarized"

    @classmethod
    def of(cls, properties: Dict[str, Any]) -> "SummaryState":
        """Read the state stored on a node's property bag."""
        raw = properties.get("summary_state")
        try:
            return cls(raw) if raw else cls.UNVISITED
        except ValueError:
            return cls.UNVISITED


# Properties owned by the summarizer; record property bags never overwrite them
# once a node is summarized.
SUMMARY_STATE_KEY = "summary_state"
DESCRIPTION_KEY = "description"


@dataclass
class GraphNode:
    """Represents a node in the code graph."""
    id: str
    type: str
    properties: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.properties.get("name", "")

    @property
    def description(self) -> str:
        return self.properties.get(DESCRIPTION_KEY) or ""

    @property
    def summary_state(self) -> SummaryState:
        return SummaryState.of(self.properties)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "properties": self.properties,
        }


@dataclass
class GraphEdge:
    """Represents an edge in the code graph."""
    source_id: str
    target_id: str
    relationship_type: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "relationship_type": self.relationship_type,
            "properties": self.properties,
        }


@dataclass
class VectorDocument:
    """A described entity as stored in a vector index."""
    id: str
    name: str
    path: str
    description: str
    description_vector: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, without the vector."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "description": self.description,
        }


@dataclass
class SearchHit:
    """Represents one nearest-neighbor hit."""
    id: str
    score: float
    rank: int
    source: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "score": self.score,
            "rank": self.rank,
            "source": self.source,
        }


@dataclass
class RetrievalResult:
    """A search hit, optionally expanded with its call-graph neighbors."""
    hit: SearchHit
    kind: NodeKind
    callers: List[Dict[str, Any]] = field(default_factory=list)
    callees: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = self.hit.to_dict()
        result["kind"] = self.kind.value
        if self.kind is NodeKind.FUNCTION:
            result["callers"] = self.callers
            result["callees"] = self.callees
        return result


@dataclass
class BatchStats:
    """Counters reported by one resolver invocation."""
    records_seen: int = 0
    records_loaded: int = 0
    records_skipped: int = 0
    skipped_references: int = 0
    deferred_resolved: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "records_seen": self.records_seen,
            "records_loaded": self.records_loaded,
            "records_skipped": self.records_skipped,
            "skipped_references": self.skipped_references,
            "deferred_resolved": self.deferred_resolved,
        }
