"""
Structured per-file records produced by the extraction step.

One record describes one source-level class: its location, its flattened
property bag, its functions and the calls those functions make, both
within the file and across files.
"""
from typing import List, Dict, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import MalformedRecordError


def normalize_path(path: str) -> str:
    """Collapse a slash separated path into its non-empty segments."""
    return "/".join(segment for segment in (path or "").split("/") if segment)


def flatten_properties(properties: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Flatten a list of single-entry maps; later duplicate keys win."""
    flattened: Dict[str, Any] = {}
    for entry in properties or []:
        if isinstance(entry, dict):
            flattened.update(entry)
    return flattened


class _RecordModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ClassInfo(_RecordModel):
    name: str = Field(alias="Name", min_length=1)
    path: str = Field(alias="Path", min_length=1)
    properties: List[Dict[str, Any]] = Field(default_factory=list, alias="Properties")

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        normalized = normalize_path(value)
        if not normalized:
            raise ValueError("class path has no segments")
        return normalized

    @field_validator("properties", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @property
    def full_name(self) -> str:
        return f"{self.path}/{self.name}"

    @property
    def property_map(self) -> Dict[str, Any]:
        return flatten_properties(self.properties)


class FunctionInfo(_RecordModel):
    name: str = Field(alias="Name", min_length=1)
    properties: List[Dict[str, Any]] = Field(default_factory=list, alias="Properties")

    @field_validator("properties", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @property
    def property_map(self) -> Dict[str, Any]:
        return flatten_properties(self.properties)


class InnerDependency(_RecordModel):
    source: Optional[str] = Field(default=None, alias="From")
    target: Optional[str] = Field(default=None, alias="To")


class OuterTarget(_RecordModel):
    path: Optional[str] = Field(default=None, alias="Path")
    class_name: Optional[str] = Field(default=None, alias="ClassName")
    function_name: Optional[str] = Field(default=None, alias="FunctionName")

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: Optional[str]) -> Optional[str]:
        return normalize_path(value) if value else value

    @property
    def is_complete(self) -> bool:
        return bool(self.path and self.class_name and self.function_name)

    @property
    def full_class_name(self) -> str:
        return f"{self.path}/{self.class_name}"


class OuterDependency(_RecordModel):
    source: Optional[str] = Field(default=None, alias="From")
    target: Optional[OuterTarget] = Field(default=None, alias="To")

    @property
    def is_complete(self) -> bool:
        return bool(self.source and self.target and self.target.is_complete)


class SourceRecord(_RecordModel):
    """Everything the extraction step knows about one class."""

    class_info: ClassInfo = Field(alias="Class")
    functions: List[FunctionInfo] = Field(default_factory=list, alias="Functions")
    inner_dependencies: List[InnerDependency] = Field(default_factory=list, alias="InnerDependencies")
    outer_dependencies: List[OuterDependency] = Field(default_factory=list, alias="OuterDependencies")

    @field_validator("functions", "inner_dependencies", "outer_dependencies", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @property
    def full_class_name(self) -> str:
        return self.class_info.full_name


def parse_record(data: Any, source: str = "") -> SourceRecord:
    """Validate one raw record, raising MalformedRecordError if it is unusable."""
    try:
        return SourceRecord.model_validate(data)
    except ValidationError as e:
        raise MalformedRecordError(f"Malformed record{' in ' + source if source else ''}: {e}", source) from e


def iter_raw_records(payload: Union[Dict[str, Any], List[Any]]) -> List[Any]:
    """A file holds either a single record or a list of records."""
    if isinstance(payload, list):
        return payload
    return [payload]
