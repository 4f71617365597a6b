"""
Bottom-up summarization of the Path -> {Path, Class} containment tree.

Children are always summarized before their parent. A node that is already
summarized returns its stored description without a model call, so a rerun
only pays for what is missing. A failure below the root is logged and the
child's line is left out of the parent's prompt; the parent still gets
summarized from the remaining children.
"""
from typing import List, Optional, Iterator, Set, Tuple
from dataclasses import dataclass, field

from ..config import settings
from ..exceptions import StructuralError, MultipleRootsError, UpstreamFatalError
from ..graph.base import GraphStore
from ..graph.upsert_engine import path_key
from ..types import EdgeType, GraphNode, NodeKind, SummaryState, SUMMARY_STATE_KEY
from ..utils.logger import app_logger
from .prompts import (
    CLASS_SUMMARY_SYSTEM_PROMPT,
    PATH_SUMMARY_SYSTEM_PROMPT,
    compose_class_prompt,
    compose_path_prompt,
    sub_class_line,
    sub_path_line,
)


TRAVERSALS = ("recursive", "iterative")


def _full_path(node: GraphNode) -> str:
    return node.properties.get("full_path", node.name)


def _full_class_name(node: GraphNode) -> str:
    return f"{node.properties.get('path', '')}/{node.name}"


@dataclass
class _Frame:
    node: GraphNode
    children: Iterator[Tuple[NodeKind, GraphNode]]
    lines: List[str] = field(default_factory=list)


class HierarchicalSummarizer:
    """Post-order summarizer over a single scan root."""

    def __init__(self, graph_client: GraphStore, gateway, sync, traversal: Optional[str] = None):
        self.graph = graph_client
        self.gateway = gateway
        self.sync = sync
        self.traversal = traversal or settings.summary_traversal
        if self.traversal not in TRAVERSALS:
            raise ValueError(f"Unsupported traversal: {self.traversal}")
        self.logger = app_logger.bind(component="summarizer")
        self.failed: List[str] = []
        self.completed = 0

    def find_root(self, root_path: Optional[str] = None) -> GraphNode:
        """Return the single scan root, or the Path named by `root_path`."""
        if root_path:
            node = self.graph.find_node(NodeKind.PATH.label, path_key(root_path))
            if node is None:
                raise StructuralError(f"Path not found: {root_path}")
            return node

        roots = self.graph.find_root_paths()
        if not roots:
            raise StructuralError("No scan root found, the graph has no Path nodes")
        if len(roots) > 1:
            raise MultipleRootsError([_full_path(root) for root in roots])
        return roots[0]

    def summarize(self, root_path: Optional[str] = None) -> str:
        """Summarize the tree below the scan root. Returns the root description."""
        root = self.find_root(root_path)
        self.failed = []
        self.completed = 0
        self.logger.info(f"Summarizing from root {_full_path(root)} ({self.traversal})")

        if self.traversal == "iterative":
            description = self._summarize_iteratively(root)
        else:
            description = self.summarize_path(root)

        self.logger.info(f"Summarized {self.completed} nodes, {len(self.failed)} subtrees failed")
        return description

    def _child_paths(self, node: GraphNode) -> List[GraphNode]:
        return self.graph.get_children(node.id, EdgeType.CONTAINS, NodeKind.PATH.label)

    def _child_classes(self, node: GraphNode) -> List[GraphNode]:
        return self.graph.get_children(node.id, EdgeType.CONTAINS, NodeKind.CLASS.label)

    def _children(self, node: GraphNode) -> Iterator[Tuple[NodeKind, GraphNode]]:
        for child in self._child_paths(node):
            yield NodeKind.PATH, child
        for child in self._child_classes(node):
            yield NodeKind.CLASS, child

    def _mark(self, node: GraphNode, state: SummaryState):
        self.graph.set_properties(node.id, {SUMMARY_STATE_KEY: state.value})
        node.properties[SUMMARY_STATE_KEY] = state.value

    def _record_failure(self, kind: NodeKind, key: str, error: Exception):
        if isinstance(error, UpstreamFatalError):
            raise error
        self.failed.append(key)
        self.logger.opt(exception=error).error(f"Failed to summarize {kind.label} {key}, leaving it out of its parent")

    def summarize_class(self, node: GraphNode) -> str:
        """Refine a class description from its function descriptions."""
        if node.summary_state is SummaryState.SUMMARIZED:
            return node.description

        full_class_name = _full_class_name(node)
        self.logger.info(f"Summarizing class {full_class_name}")
        self._mark(node, SummaryState.PENDING)

        functions = {
            function.name: function.description
            for function in self.graph.get_children(node.id, EdgeType.CONTAINS, NodeKind.FUNCTION.label)
        }
        description = self.gateway.complete(
            CLASS_SUMMARY_SYSTEM_PROMPT,
            [{"role": "user", "content": compose_class_prompt(node.description, functions)}],
        )

        self.sync.upsert_described_entity(
            NodeKind.CLASS, full_class_name, node.name, node.properties.get("path", ""), description
        )
        self._mark(node, SummaryState.SUMMARIZED)
        self.completed += 1
        return description

    def _finish_path(self, node: GraphNode, lines: List[str]) -> str:
        full_path = _full_path(node)
        description = self.gateway.complete(
            PATH_SUMMARY_SYSTEM_PROMPT,
            [{"role": "user", "content": compose_path_prompt(full_path, lines)}],
        )
        self.sync.upsert_described_entity(NodeKind.PATH, full_path, node.name, full_path, description)
        self._mark(node, SummaryState.SUMMARIZED)
        self.completed += 1
        return description

    def _class_line(self, node: GraphNode) -> Optional[str]:
        try:
            return sub_class_line(_full_class_name(node), self.summarize_class(node))
        except Exception as e:
            self._record_failure(NodeKind.CLASS, _full_class_name(node), e)
            return None

    def summarize_path(self, node: GraphNode, visiting: Optional[Set[str]] = None) -> str:
        """Recursive post-order summary of a Path and everything below it."""
        if node.summary_state is SummaryState.SUMMARIZED:
            return node.description

        visiting = visiting if visiting is not None else set()
        full_path = _full_path(node)
        if node.id in visiting:
            raise StructuralError(f"Containment cycle at {full_path}")
        visiting.add(node.id)

        self.logger.info(f"Summarizing path {full_path}")
        self._mark(node, SummaryState.PENDING)

        lines = []
        for child in self._child_paths(node):
            try:
                lines.append(sub_path_line(_full_path(child), self.summarize_path(child, visiting)))
            except Exception as e:
                self._record_failure(NodeKind.PATH, _full_path(child), e)
        for child in self._child_classes(node):
            line = self._class_line(child)
            if line is not None:
                lines.append(line)

        return self._finish_path(node, lines)

    def _summarize_iteratively(self, root: GraphNode) -> str:
        """Same post-order as `summarize_path`, driven by an explicit stack."""
        if root.summary_state is SummaryState.SUMMARIZED:
            return root.description

        self._mark(root, SummaryState.PENDING)
        stack = [_Frame(root, self._children(root))]
        on_stack = {root.id}

        while stack:
            frame = stack[-1]
            try:
                child = next(frame.children, None)
            except Exception as e:
                if len(stack) == 1:
                    raise
                stack.pop()
                on_stack.discard(frame.node.id)
                self._record_failure(NodeKind.PATH, _full_path(frame.node), e)
                continue

            if child is None:
                stack.pop()
                on_stack.discard(frame.node.id)
                if not stack:
                    return self._finish_path(frame.node, frame.lines)
                try:
                    description = self._finish_path(frame.node, frame.lines)
                except Exception as e:
                    self._record_failure(NodeKind.PATH, _full_path(frame.node), e)
                    continue
                stack[-1].lines.append(sub_path_line(_full_path(frame.node), description))
                continue

            kind, node = child
            if kind is NodeKind.CLASS:
                line = self._class_line(node)
                if line is not None:
                    frame.lines.append(line)
                continue

            if node.summary_state is SummaryState.SUMMARIZED:
                frame.lines.append(sub_path_line(_full_path(node), node.description))
                continue
            if node.id in on_stack:
                self._record_failure(NodeKind.PATH, _full_path(node),
                                     StructuralError(f"Containment cycle at {_full_path(node)}"))
                continue

            self.logger.info(f"Summarizing path {_full_path(node)}")
            try:
                self._mark(node, SummaryState.PENDING)
            except Exception as e:
                self._record_failure(NodeKind.PATH, _full_path(node), e)
                continue
            stack.append(_Frame(node, self._children(node)))
            on_stack.add(node.id)

        raise StructuralError("Traversal ended without summarizing the root")
