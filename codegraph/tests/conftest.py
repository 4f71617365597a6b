import json
import re
from typing import Any, Dict, List, Optional

import pytest

from codegraph.embedding.model_gateway import ModelGateway, RetryPolicy
from codegraph.graph.dependency_resolver import DependencyResolver
from codegraph.graph.json_graph_client import JsonGraphClient
from codegraph.graph.upsert_engine import GraphUpsertEngine
from codegraph.pipeline import CodeGraphPipeline
from codegraph.query.local_vector_index import LocalVectorIndex
from codegraph.summarizer.hierarchical_summarizer import HierarchicalSummarizer
from codegraph.sync.dual_store_sync import DualStoreSync


EMBEDDING_DIMENSION = 64

_FOLDER_HEADER = re.compile(r"^This is a folder named (.+?), below")


class FakeCompletionProvider:
    """Deterministic completions.

    Folder prompts are answered with "[<full path>]" followed by the
    prompt's child lines; class prompts with the function names and the
    existing description. Prompts containing a key of `failures` raise the
    mapped exception instead.
    """

    def __init__(self):
        self.calls: List[Dict[str, str]] = []
        self.failures: Dict[str, Exception] = {}

    def complete(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        content = messages[-1]["content"]
        self.calls.append({"system": system_prompt, "content": content})

        for marker, error in self.failures.items():
            if marker in content:
                raise error

        header = _FOLDER_HEADER.match(content)
        if header:
            lines = [line for line in content.splitlines() if line.startswith("Sub ")]
            return f"[{header.group(1)}] " + " | ".join(lines)

        class_prompt = json.loads(content)
        functions = ", ".join(sorted(class_prompt["Functions"]))
        return f"Class with {functions}: {class_prompt['description']}"


class FakeEmbeddingProvider:
    """Bag-of-words embedding over a growing vocabulary, one axis per word."""

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.vocabulary: Dict[str, int] = {}
        self.calls: List[str] = []

    def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = [0.0] * self.dimension
        for token in re.findall(r"\w+", text.lower()):
            axis = self.vocabulary.setdefault(token, len(self.vocabulary)) % self.dimension
            vector[axis] += 1.0
        return vector

    def get_dimension(self) -> int:
        return self.dimension


def make_record(path: str, name: str, functions=(), inner=(), outer=(),
                properties: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Raw record in the extraction output format.

    `functions` holds names or (name, description) pairs, `inner` holds
    (from, to) pairs and `outer` holds (from, path, class, function) tuples.
    """
    function_entries = []
    for function in functions:
        if isinstance(function, tuple):
            function_name, description = function
            function_entries.append({"Name": function_name, "Properties": [{"description": description}]})
        else:
            function_entries.append({"Name": function, "Properties": []})

    return {
        "Class": {"Name": name, "Path": path, "Properties": properties or []},
        "Functions": function_entries,
        "InnerDependencies": [{"From": source, "To": target} for source, target in inner],
        "OuterDependencies": [
            {"From": source, "To": {"Path": target_path, "ClassName": target_class, "FunctionName": target_function}}
            for source, target_path, target_class, target_function in outer
        ],
    }


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def end_to_end_records() -> List[Dict[str, Any]]:
    """ClassX.f1 in root/pkgA calls ClassY.f2 in root/pkgB."""
    return [
        make_record("root/pkgA", "ClassX", functions=[("f1", "parses the input")],
                    outer=[("f1", "root/pkgB", "ClassY", "f2")],
                    properties=[{"description": "Input handling"}]),
        make_record("root/pkgB", "ClassY", functions=[("f2", "writes the output")],
                    properties=[{"description": "Output handling"}]),
    ]


@pytest.fixture
def graph_client() -> JsonGraphClient:
    """In-memory graph store."""
    return JsonGraphClient()


@pytest.fixture
def vector_index() -> LocalVectorIndex:
    return LocalVectorIndex(dimension=EMBEDDING_DIMENSION)


@pytest.fixture
def completion_provider() -> FakeCompletionProvider:
    return FakeCompletionProvider()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def sleeps() -> List[float]:
    """Pauses requested by the gateway, recorded instead of slept."""
    return []


@pytest.fixture
def gateway(completion_provider, embedding_provider, sleeps) -> ModelGateway:
    return ModelGateway(
        completion_provider,
        embedding_provider,
        retry_policy=RetryPolicy(pause_seconds=2.5),
        sleep=sleeps.append,
    )


@pytest.fixture
def engine(graph_client) -> GraphUpsertEngine:
    return GraphUpsertEngine(graph_client)


@pytest.fixture
def resolver(graph_client, engine) -> DependencyResolver:
    return DependencyResolver(graph_client, engine)


@pytest.fixture
def sync(gateway, vector_index, graph_client) -> DualStoreSync:
    return DualStoreSync(gateway, vector_index, graph_client)


@pytest.fixture
def summarizer(graph_client, gateway, sync) -> HierarchicalSummarizer:
    return HierarchicalSummarizer(graph_client, gateway, sync, traversal="recursive")


@pytest.fixture
def pipeline(graph_client, vector_index, gateway) -> CodeGraphPipeline:
    return CodeGraphPipeline(graph_client=graph_client, vector_index=vector_index, gateway=gateway)
