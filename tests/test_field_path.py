"""FieldPath parsing, prefix matching and value resolution."""

import pytest

from labflow.core.exceptions import ValidationError
from labflow.core.field_path import FieldPath

FIELDS = {
    "lotBatchNo": "LB-001",
    "comments": "",
    "coaRows": [
        {"key": "IDENTIFICATION", "result": "Conforms", "spec": "Matches reference"},
        {"key": "ASSAY", "result": "99.1", "spec": "98.0-102.0"},
    ],
    "actives": [{"name": "Zinc", "percent": "2.0"}],
    "nested": {"level": {"leaf": 7}},
}


def test_parse_and_str_round_trip():
    path = FieldPath.parse("coaRows:IDENTIFICATION:result")
    assert path.segments == ("coaRows", "IDENTIFICATION", "result")
    assert str(path) == "coaRows:IDENTIFICATION:result"
    assert path.base == "coaRows"
    assert path.depth == 3


def test_parse_strips_outer_whitespace():
    assert str(FieldPath.parse("  lotBatchNo ")) == "lotBatchNo"


@pytest.mark.parametrize("raw", ["", "   ", None, 12, "coaRows::result", ":x"])
def test_invalid_keys_rejected(raw):
    with pytest.raises(ValidationError):
        FieldPath.parse(raw)


def test_equality_and_hash():
    a = FieldPath.parse("coaRows:ASSAY:result")
    b = FieldPath.of("coaRows", "ASSAY", "result")
    assert a == b
    assert len({a, b}) == 1


def test_parent_child_prefix():
    cell = FieldPath.parse("coaRows:ASSAY:result")
    assert cell.parent == FieldPath.parse("coaRows:ASSAY")
    assert FieldPath.parse("coaRows").parent is None
    assert FieldPath.parse("coaRows").child("ASSAY") == cell.parent
    assert FieldPath.parse("coaRows").is_prefix_of(cell)
    assert cell.startswith("coaRows:ASSAY")
    assert not cell.startswith("coaRows:IDENTIFICATION")
    # a prefix is segment-wise, not character-wise
    assert not FieldPath.parse("coa").is_prefix_of(cell)


def test_resolve_top_level_and_rows():
    assert FieldPath.parse("lotBatchNo").resolve(FIELDS) == "LB-001"
    assert FieldPath.parse("comments").resolve(FIELDS) == ""
    assert FieldPath.parse("coaRows:IDENTIFICATION:result").resolve(FIELDS) == "Conforms"
    assert FieldPath.parse("coaRows:ASSAY").resolve(FIELDS)["spec"] == "98.0-102.0"
    assert FieldPath.parse("actives:Zinc:percent").resolve(FIELDS) == "2.0"
    assert FieldPath.parse("nested:level:leaf").resolve(FIELDS) == 7


def test_resolve_numeric_index_fallback():
    assert FieldPath.parse("coaRows:1:result").resolve(FIELDS) == "99.1"


def test_resolve_missing_returns_none():
    assert FieldPath.parse("sampleSize").resolve(FIELDS) is None
    assert FieldPath.parse("coaRows:MICROBIAL:result").resolve(FIELDS) is None
    assert FieldPath.parse("lotBatchNo:deeper").resolve(FIELDS) is None
    assert FieldPath.parse("coaRows:9:result").resolve(FIELDS) is None
    assert FieldPath.parse("anything").resolve(None) is None


def test_row_without_key_is_never_matched_by_name():
    rows = {"coaRows": [{"result": "keyless"}, {"key": "ASSAY", "result": "99.1"}]}
    assert FieldPath.parse("coaRows:None:result").resolve(rows) is None
    assert FieldPath.parse("coaRows:ASSAY:result").resolve(rows) == "99.1"
