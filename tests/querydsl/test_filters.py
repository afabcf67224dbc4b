"""
Tests for filter value classification.
"""

import pytest

from crossstore.exceptions import FilterTypeError, InvalidFilterError
from crossstore.querydsl.filters import (
    ListFilter,
    OperatorFilter,
    OrFilter,
    ScalarFilter,
    classify,
    classify_filters,
    is_or_key,
)


class TestClassify:
    """Each value shape resolves to exactly one variant."""

    def test_string_is_scalar(self):
        assert classify("status", "active") == ScalarFilter("status", "active")

    def test_number_and_bool_are_scalar(self):
        assert isinstance(classify("age", 30), ScalarFilter)
        assert isinstance(classify("verified", False), ScalarFilter)

    def test_list_tuple_and_set_are_lists(self):
        assert classify("status", ["a", "b"]) == ListFilter("status", ("a", "b"))
        assert classify("status", ("a",)).values == ("a",)
        assert set(classify("status", {"x", "y"}).values) == {"x", "y"}

    def test_operator_map_splits_range_and_lexical(self):
        flt = classify("name", {">=": 18, "<": 65, "startsWith": "An"})
        assert isinstance(flt, OperatorFilter)
        assert flt.ranges == {"gte": 18, "lt": 65}
        assert flt.starts_with == "An"
        assert flt.ends_with is None
        assert flt.has_lexical

    def test_range_only_has_no_lexical(self):
        flt = classify("age", {">": 1})
        assert flt.ranges == {"gt": 1}
        assert not flt.has_lexical

    def test_none_value_rejected(self):
        with pytest.raises(InvalidFilterError, match="must not be None"):
            classify("status", None)

    def test_empty_list_rejected(self):
        with pytest.raises(InvalidFilterError, match="must not be empty"):
            classify("status", [])

    def test_none_inside_list_rejected(self):
        with pytest.raises(InvalidFilterError):
            classify("status", ["a", None])

    def test_empty_operator_map_rejected(self):
        with pytest.raises(InvalidFilterError, match="Operator map must not be empty"):
            classify("age", {})

    def test_unknown_operator_rejected(self):
        with pytest.raises(InvalidFilterError, match="Unsupported operator"):
            classify("age", {"!=": 3})

    @pytest.mark.parametrize("ops", [{">": 1, ">=": 2}, {"<": 1, "<=": 2}])
    def test_conflicting_bounds_rejected(self, ops):
        with pytest.raises(InvalidFilterError, match="Conflicting bounds"):
            classify("age", ops)

    def test_lexical_operator_requires_string(self):
        with pytest.raises(InvalidFilterError, match="expects a string"):
            classify("name", {"startsWith": 5})

    def test_blank_field_name_rejected(self):
        with pytest.raises(InvalidFilterError):
            classify("", "x")


class TestClassifyFilters:
    def test_preserves_map_order(self):
        result = classify_filters({"b": 1, "a": [1, 2], "c": {"<": 3}})
        assert [type(f) for f in result] == [ScalarFilter, ListFilter, OperatorFilter]
        assert [f.field for f in result] == ["b", "a", "c"]

    def test_none_means_no_filters(self):
        assert classify_filters(None) == []

    def test_non_mapping_is_type_error(self):
        with pytest.raises(FilterTypeError):
            classify_filters(["status", "active"])

    def test_or_group(self):
        (group,) = classify_filters({"or": {"status": "active", "role": ["admin", "owner"]}})
        assert isinstance(group, OrFilter)
        assert group.members == (ScalarFilter("status", "active"), ListFilter("role", ("admin", "owner")))

    def test_or_group_rejects_operator_members(self):
        with pytest.raises(InvalidFilterError, match="OR group"):
            classify_filters({"OR": {"age": {">": 3}}})

    def test_or_group_must_be_mapping(self):
        with pytest.raises(FilterTypeError):
            classify_filters({"OR": ["a"]})

    def test_is_or_key_is_case_insensitive(self):
        assert is_or_key("OR") and is_or_key("Or")
        assert not is_or_key("order")
