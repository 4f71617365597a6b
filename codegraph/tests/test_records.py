import pytest

from codegraph.exceptions import MalformedRecordError
from codegraph.records import flatten_properties, iter_raw_records, normalize_path, parse_record
from codegraph.types import NodeKind


class TestRecords:
    """Test validation of extraction records."""

    def test_parse_full_record(self, record_factory):
        record = parse_record(record_factory(
            "/root/pkg/", "Worker", functions=[("run", "runs")],
            inner=[("run", "stop")], outer=[("run", "root/lib", "Io", "read")],
            properties=[{"description": "first"}, {"extends": "root/base/Job"}, {"description": "second"}],
        ))

        assert record.full_class_name == "root/pkg/Worker"
        assert record.class_info.property_map == {"description": "second", "extends": "root/base/Job"}
        assert record.functions[0].property_map == {"description": "runs"}
        assert record.inner_dependencies[0].target == "stop"
        assert record.outer_dependencies[0].target.full_class_name == "root/lib/Io"
        assert record.outer_dependencies[0].is_complete

    def test_null_sections_are_empty(self):
        record = parse_record({
            "Class": {"Name": "A", "Path": "root", "Properties": None},
            "Functions": None,
            "InnerDependencies": None,
            "OuterDependencies": None,
        })

        assert record.functions == []
        assert record.class_info.property_map == {}

    def test_incomplete_outer_dependency(self):
        record = parse_record({
            "Class": {"Name": "A", "Path": "root"},
            "OuterDependencies": [{"From": "run", "To": {"Path": "root/lib", "ClassName": "Io"}}],
        })
        assert not record.outer_dependencies[0].is_complete

    @pytest.mark.parametrize("raw", [
        {},
        {"Class": {"Path": "root"}},
        {"Class": {"Name": "A", "Path": "///"}},
        {"Class": {"Name": "A", "Path": "root"}, "Functions": [{"Properties": []}]},
    ])
    def test_malformed_records(self, raw):
        with pytest.raises(MalformedRecordError):
            parse_record(raw, "file.json")

    def test_helpers(self):
        assert normalize_path("/a//b/") == "a/b"
        assert flatten_properties([{"a": 1}, "junk", {"a": 2, "b": 3}]) == {"a": 2, "b": 3}
        assert iter_raw_records({"Class": {}}) == [{"Class": {}}]
        assert iter_raw_records([1, 2]) == [1, 2]


class TestNodeKind:
    def test_parse(self):
        assert NodeKind.parse("function") is NodeKind.FUNCTION
        assert NodeKind.parse("Class") is NodeKind.CLASS
        assert NodeKind.parse("path_metadata") is NodeKind.PATH
        assert NodeKind.FUNCTION.index_name == "function_metadata"
