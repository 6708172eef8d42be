"""Search package exports."""

from partylink.search.field import FieldState, SearchField
from partylink.search.normalizer import CandidateNormalizer
from partylink.search.scheduler import DebouncedQueryScheduler, QueryToken
from partylink.search.strategies import (
    AlternateLookup,
    BroadLookup,
    CachedFilterLookup,
    CandidateCache,
    FallbackCascade,
    LookupResult,
    ScopedLookup,
    build_default_cascade,
)
from partylink.search.suggestions import (
    CommitAction,
    Suggestion,
    SuggestionCommit,
    SuggestionKind,
    SuggestionList,
    merge_candidates,
    rank_candidates,
)

__all__ = [
    "AlternateLookup",
    "BroadLookup",
    "CachedFilterLookup",
    "CandidateCache",
    "CandidateNormalizer",
    "CommitAction",
    "DebouncedQueryScheduler",
    "FallbackCascade",
    "FieldState",
    "LookupResult",
    "QueryToken",
    "ScopedLookup",
    "SearchField",
    "Suggestion",
    "SuggestionCommit",
    "SuggestionKind",
    "SuggestionList",
    "build_default_cascade",
    "merge_candidates",
    "rank_candidates",
]
