"""Tests for response envelopes (pipedrive_mcp/shaping.py)."""

from mcp.server.fastmcp.exceptions import ToolError

from pipedrive_mcp.errors import RemoteCallFailure
from pipedrive_mcp.scoring import MatchQuery, fuzzy_find
from pipedrive_mcp.shaping import (
    shape_empty_search_diagnostic, shape_read_result, shape_scored_results,
    shape_search_result, tool_error,
)


def test_read_result_with_filters(persons):
    out = shape_read_result("person", persons[:1], ['name contains "piotr"'])
    assert out["summary"] == 'Found 1 persons matching filters: name contains "piotr"'
    assert out["total_found"] == 1
    assert out["filters_applied"] == ['name contains "piotr"']
    assert out["persons"] == persons[:1]
    assert "limit_applied" not in out


def test_read_result_truncates_but_reports_full_count():
    records = [{"id": i} for i in range(40)]
    out = shape_read_result("deal", records, limit=30, summary="Found 40 deals")
    assert out["total_found"] == 40
    assert len(out["deals"]) == 30
    assert out["limit_applied"] == 30


def test_confirmed_zero_matches_is_a_plain_envelope():
    out = shape_read_result("organization", [], ['name contains "zz"'])
    assert out["total_found"] == 0
    assert out["organizations"] == []
    assert "warning" not in out


def test_empty_search_diagnostic():
    out = shape_empty_search_diagnostic(
        "xz", "Try get_organizations with filter_name instead.",
        alternative='Use: get_organizations with filter_name="xz"')
    assert out["items"] == []
    assert out["search_term"] == "xz"
    assert "warning" in out
    assert out["possible_reasons"][0].startswith("Search term may be too short")
    assert len(out["possible_reasons"]) == 3
    assert 'filter_name="xz"' in out["alternative"]


def test_empty_search_diagnostic_with_alternatives_map():
    out = shape_empty_search_diagnostic("xz", "Use specific tools:",
                                        alternatives={"for_deals": 'get_deals with search_title="xz"'},
                                        item_types="all")
    assert out["alternatives"] == {"for_deals": 'get_deals with search_title="xz"'}
    assert out["item_types"] == "all"


def test_search_result():
    out = shape_search_result("person", [{"item": {"id": 1}}], "piotr")
    assert out["summary"] == "Found 1 persons"
    assert out["items"] == [{"item": {"id": 1}}]


def test_scored_results(persons):
    query = MatchQuery.for_person(name="Piotr", company="Haleon")
    out = shape_scored_results(fuzzy_find(persons[:2], query), query.describe())
    assert out["total_found"] == 1
    assert out["search_criteria"] == ['name: "Piotr"', 'company: "Haleon"']
    row = out["results"][0]
    assert row["id"] == 1
    assert row["match_score"] == 18
    assert row["match_reasons"] == ['name matches "Piotr"', 'company matches "Haleon"']


def test_tool_error_message():
    err = tool_error("searching persons", RemoteCallFailure("GET /persons/search", "Unauthorized", 401),
                     "Try find_person instead")
    assert isinstance(err, ToolError)
    assert str(err) == "Error searching persons: Unauthorized. Try find_person instead"
