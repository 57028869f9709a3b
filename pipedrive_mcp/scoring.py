"""
Fuzzy matching and relevance scoring for person lookups.

Matching rule:

    fuzzy_match(text, pattern)  =  pattern is a substring of text
                                   OR some whitespace-separated word of text
                                      starts with pattern
                                   (both case-insensitive)

Each criterion that matches adds its weight to the record's score. Records
scoring 0 are dropped; the rest are ordered by descending score, ties keeping
their input order, and cut at ``cap``.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from .errors import InvalidQuery
from .fields import text_values

NAME_WEIGHT = 10
COMPANY_WEIGHT = 8
EMAIL_WEIGHT = 7
PHONE_WEIGHT = 6
DEFAULT_CAP = 20


def fuzzy_match(text: str, pattern: str) -> bool:
    text_lower = text.lower()
    pattern_lower = pattern.lower()
    if pattern_lower in text_lower:
        return True
    return any(word.startswith(pattern_lower) for word in text_lower.split())


def substring_match(text: str, pattern: str) -> bool:
    return pattern.lower() in text.lower()


@dataclass(frozen=True)
class MatchCriterion:
    label: str            # used in match reasons: 'name matches "..."'
    field: str            # record key
    fragment: Optional[str]
    weight: int
    word_prefix: bool = True

    @property
    def active(self) -> bool:
        return bool(self.fragment and self.fragment.strip())

    def matches(self, record: Mapping[str, Any]) -> bool:
        if not self.active:
            return False
        test = fuzzy_match if self.word_prefix else substring_match
        pattern = self.fragment.strip()
        return any(test(v, pattern) for v in text_values(record, self.field))


@dataclass
class MatchQuery:
    criteria: List[MatchCriterion] = field(default_factory=list)

    @classmethod
    def for_person(cls, name: Optional[str] = None, company: Optional[str] = None,
                   email: Optional[str] = None, phone: Optional[str] = None) -> "MatchQuery":
        return cls([
            MatchCriterion("name", "name", name, NAME_WEIGHT),
            MatchCriterion("company", "org_name", company, COMPANY_WEIGHT),
            MatchCriterion("email", "email", email, EMAIL_WEIGHT, word_prefix=False),
            MatchCriterion("phone", "phone", phone, PHONE_WEIGHT, word_prefix=False),
        ])

    @property
    def active(self) -> List[MatchCriterion]:
        return [c for c in self.criteria if c.active]

    def validate(self) -> None:
        if not self.active:
            labels = ", ".join(c.label for c in self.criteria) or "a search field"
            raise InvalidQuery(f"At least one search parameter ({labels}) is required")

    def describe(self) -> List[str]:
        return [f'{c.label}: "{c.fragment.strip()}"' for c in self.active]


@dataclass
class ScoredResult:
    record: Mapping[str, Any]
    score: int
    reasons: List[str]


def score_record(record: Mapping[str, Any], criteria: Sequence[MatchCriterion]) -> ScoredResult:
    score = 0
    reasons = []
    for c in criteria:
        if c.active and c.matches(record):
            score += c.weight
            reasons.append(f'{c.label} matches "{c.fragment.strip()}"')
    return ScoredResult(record, score, reasons)


def fuzzy_find(records: Sequence[Mapping[str, Any]], query: MatchQuery,
               cap: int = DEFAULT_CAP) -> List[ScoredResult]:
    """Rank ``records`` against ``query``; raises InvalidQuery if it is empty."""
    query.validate()
    criteria = query.active
    scored = [score_record(r, criteria) for r in records]
    matched = [s for s in scored if s.score > 0]
    # sorted() is stable: equal scores keep input order
    matched = sorted(matched, key=lambda s: s.score, reverse=True)
    return matched[:max(cap, 0)]
