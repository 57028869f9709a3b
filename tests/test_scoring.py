"""Tests for fuzzy matching and relevance scoring (pipedrive_mcp/scoring.py)."""

import pytest

from pipedrive_mcp.errors import InvalidQuery
from pipedrive_mcp.scoring import MatchCriterion, MatchQuery, fuzzy_find, fuzzy_match, score_record


class TestFuzzyMatch:
    @pytest.mark.parametrize("text,pattern", [
        ("Piotr Kowalski", "piotr"),
        ("Piotr Kowalski", "OWAL"),
        ("Piotr Kowalski", "kow"),
        ("Haleon Poland", "pol"),
    ])
    def test_matches(self, text, pattern):
        assert fuzzy_match(text, pattern)

    def test_no_match(self):
        assert not fuzzy_match("Piotr Kowalski", "nowak")
        assert not fuzzy_match("Piotr Kowalski", "piotr nowak")


class TestFuzzyFind:
    def test_name_and_company_scenario(self, persons):
        results = fuzzy_find(persons[:2], MatchQuery.for_person(name="Piotr", company="Haleon"))
        assert len(results) == 1
        top = results[0]
        assert top.record is persons[0]
        assert top.score == 18
        assert top.reasons == ['name matches "Piotr"', 'company matches "Haleon"']

    def test_empty_query_is_invalid(self, persons):
        with pytest.raises(InvalidQuery):
            fuzzy_find(persons, MatchQuery.for_person())
        with pytest.raises(InvalidQuery):
            fuzzy_find(persons, MatchQuery.for_person(name="   ", email=""))

    def test_zero_score_records_never_returned(self, persons):
        results = fuzzy_find(persons, MatchQuery.for_person(name="zzz", company="haleon"), cap=100)
        assert all(r.score > 0 for r in results)
        assert 4 not in [r.record["id"] for r in results]
        assert [r.record["id"] for r in results] == [1, 3]

    def test_low_weight_single_match_is_included(self, persons):
        results = fuzzy_find(persons, MatchQuery.for_person(phone="600 100"))
        assert [(r.record["id"], r.score) for r in results] == [(1, 6)]

    def test_sorted_by_score_descending(self, persons):
        results = fuzzy_find(persons, MatchQuery.for_person(name="anna", company="haleon"))
        assert [(r.record["id"], r.score) for r in results] == [(3, 18), (1, 8)]

    def test_ties_keep_input_order(self):
        records = [{"id": i, "name": f"Smith {i}"} for i in range(5)]
        results = fuzzy_find(list(reversed(records)), MatchQuery.for_person(name="smith"))
        assert [r.record["id"] for r in results] == [4, 3, 2, 1, 0]

    def test_cap_limits_count(self):
        records = [{"id": i, "name": "Kim"} for i in range(50)]
        assert len(fuzzy_find(records, MatchQuery.for_person(name="kim"))) == 20
        assert len(fuzzy_find(records, MatchQuery.for_person(name="kim"), cap=3)) == 3

    def test_email_is_substring_only_and_multi_valued(self, persons):
        results = fuzzy_find(persons, MatchQuery.for_person(email="anna.p@"))
        assert [(r.record["id"], r.reasons) for r in results] == [(3, ['email matches "anna.p@"'])]

    def test_more_matched_fields_never_score_lower(self, persons):
        query = MatchQuery.for_person(name="piotr", company="haleon", email="haleon", phone="600")
        subset = [c for c in query.criteria if c.label in ("name", "company")]
        for record in persons:
            full = score_record(record, query.active)
            partial = score_record(record, subset)
            assert full.score >= partial.score

    def test_inactive_criteria_are_ignored_when_scoring(self, persons):
        query = MatchQuery.for_person(name="piotr")
        result = score_record(persons[0], query.criteria)
        assert result.score == 10
        assert result.reasons == ['name matches "piotr"']
        assert not MatchCriterion("phone", "phone", None, 6).matches(persons[0])

    def test_custom_criteria(self):
        deals = [{"title": "Website redesign"}, {"title": "Web shop"}, {"title": "Audit"}]
        query = MatchQuery([MatchCriterion("title", "title", "web", 5)])
        assert [r.record["title"] for r in fuzzy_find(deals, query)] == ["Website redesign", "Web shop"]

    def test_describe(self):
        query = MatchQuery.for_person(name=" Piotr ", phone="600")
        assert query.describe() == ['name: "Piotr"', 'phone: "600"']
