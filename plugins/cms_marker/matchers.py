"""
Scoring strategies used by the source finder.

Each matcher looks at one candidate tag occurrence and either returns a
`MatchResult` or `None`. The finder runs them in `DEFAULT_MATCHERS` order, keeps
the first result per candidate, and picks the strictly-highest score overall.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from plugins.cms_marker.cache import VariableDefinition
from plugins.cms_marker.search_index import TextCandidate

SHORT_QUERY_MAX = 10
PREVIEW_LENGTH = 30
PREFIX_QUERY_MIN = 20
PREFIX_WORDS = 3


@dataclass(frozen=True)
class MatchResult:
    score: float
    candidate: TextCandidate
    # Set when the text is authored in the declaration block
    variable: Optional[VariableDefinition] = None


class Matcher:
    name = "matcher"

    def match(self, query: str, candidate: TextCandidate) -> Optional[MatchResult]:
        raise NotImplementedError


class VariableReferenceMatcher(Matcher):
    """A declared literal equal to the query, referenced from the candidate's markup."""

    name = "variable"
    score = 100

    def match(self, query, candidate):
        for definition in candidate.variables:
            if definition.value == query:
                return MatchResult(self.score, candidate, definition)
        return None


class ShortExactTextMatcher(Matcher):
    name = "short-exact"
    score = 80

    def match(self, query, candidate):
        if 0 < len(query) <= SHORT_QUERY_MAX and candidate.text == query:
            return MatchResult(self.score, candidate)
        return None


class LongTextMatcher(Matcher):
    """Candidate text contains the first 30 characters; bonus up to 40 for coverage."""

    name = "long-text"

    def match(self, query, candidate):
        if len(query) <= SHORT_QUERY_MAX:
            return None
        text = candidate.text
        if query[:PREVIEW_LENGTH] not in text:
            return None
        coverage = min(len(query), len(text)) / len(query)
        return MatchResult(50 + coverage * 40, candidate)


class PrefixMatcher(Matcher):
    name = "prefix"
    score = 40

    def match(self, query, candidate):
        if len(query) <= PREFIX_QUERY_MIN:
            return None
        first_words = " ".join(query.split(" ")[:PREFIX_WORDS])
        if first_words and first_words in candidate.text:
            return MatchResult(self.score, candidate)
        return None


DEFAULT_MATCHERS: List[Matcher] = [
    VariableReferenceMatcher(),
    ShortExactTextMatcher(),
    LongTextMatcher(),
    PrefixMatcher(),
]


def score_candidate(
    query: str, candidate: TextCandidate, matchers: Sequence[Matcher] = DEFAULT_MATCHERS
) -> Optional[MatchResult]:
    for matcher in matchers:
        result = matcher.match(query, candidate)
        if result is not None:
            return result
    return None


def best_match(
    query: str,
    candidates: Sequence[TextCandidate],
    matchers: Sequence[Matcher] = DEFAULT_MATCHERS,
) -> Optional[MatchResult]:
    """Highest-scoring candidate; on a tie the earlier candidate is kept."""
    best: Optional[MatchResult] = None
    for candidate in candidates:
        result = score_candidate(query, candidate, matchers)
        if result is not None and (best is None or result.score > best.score):
            best = result
    return best
