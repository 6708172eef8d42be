"""Ranked, deduplicated suggestion list with a keyboard cursor."""

from __future__ import annotations

import re
import unicodedata
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict
from rapidfuzz import fuzz

from partylink.storage.schemas import Candidate, SourceKind

_WHITESPACE = re.compile(r"\s+")
_NON_DIGITS = re.compile(r"\D")

# Phone-prefix hits outrank any fuzzy name score (WRatio tops out at 100).
_PHONE_MATCH_SCORE = 200.0


def match_key(value: str) -> str:
    """Case- and width-insensitive comparison key."""
    value = unicodedata.normalize("NFKC", value or "")
    return _WHITESPACE.sub(" ", value).strip().casefold()


def is_same_entity(first: Candidate, second: Candidate) -> bool:
    """Same tax id, same (name, locality), or same internal id."""
    if first.tax_id and second.tax_id and match_key(first.tax_id) == match_key(second.tax_id):
        return True
    if (
        first.display_name
        and match_key(first.display_name) == match_key(second.display_name)
        and match_key(first.locality) == match_key(second.locality)
    ):
        return True
    return (
        first.source_kind == SourceKind.INTERNAL
        and second.source_kind == SourceKind.INTERNAL
        and bool(first.id)
        and first.id == second.id
    )


def merge_candidates(*sources: Iterable[Candidate]) -> List[Candidate]:
    """Concatenate candidate sources, keeping the first-seen copy of each entity."""
    merged: List[Candidate] = []
    for source in sources:
        for candidate in source:
            if not any(is_same_entity(existing, candidate) for existing in merged):
                merged.append(candidate)
    return merged


def rank_candidates(query: str, candidates: Sequence[Candidate]) -> List[Candidate]:
    """Order candidates by similarity to the query; ties keep their incoming order."""
    query_key = match_key(query)
    query_digits = _NON_DIGITS.sub("", query)

    def score(candidate: Candidate) -> float:
        if len(query_digits) >= 2 and _NON_DIGITS.sub("", candidate.phone).startswith(query_digits):
            return _PHONE_MATCH_SCORE
        return float(fuzz.WRatio(query_key, match_key(candidate.display_name)))

    scored = [(score(candidate), index, candidate) for index, candidate in enumerate(candidates)]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, _, candidate in scored]


class SuggestionKind(str, Enum):
    CANDIDATE = "candidate"
    CREATE_NEW = "create_new"


class Suggestion(BaseModel):
    """One row of the list: a candidate or the synthetic "create new" entry."""

    model_config = ConfigDict(frozen=True)

    kind: SuggestionKind
    candidate: Optional[Candidate] = None
    query: str = ""

    @property
    def label(self) -> str:
        if self.kind == SuggestionKind.CREATE_NEW or self.candidate is None:
            return f'Create new party "{self.query}"'
        return self.candidate.display_name


class CommitAction(str, Enum):
    SELECT = "select"
    CREATE = "create"


class SuggestionCommit(BaseModel):
    """What Enter resolved to."""

    model_config = ConfigDict(frozen=True)

    action: CommitAction
    candidate: Optional[Candidate] = None
    query: str = ""


class SuggestionList:
    """Suggestion entries plus a zero-based cursor (-1 means nothing highlighted)."""

    def __init__(self, *, min_query_length: int = 2, enable_ranking: bool = True) -> None:
        self.min_query_length = min_query_length
        self.enable_ranking = enable_ranking
        self.entries: List[Suggestion] = []
        self.cursor: int = -1
        self.query: str = ""

    @property
    def is_open(self) -> bool:
        return bool(self.entries)

    @property
    def candidates(self) -> List[Candidate]:
        return [entry.candidate for entry in self.entries if entry.candidate is not None]

    @property
    def highlighted(self) -> Optional[Suggestion]:
        if 0 <= self.cursor < len(self.entries):
            return self.entries[self.cursor]
        return None

    def show(self, query: str, *sources: Iterable[Candidate]) -> None:
        """Replace the entries with deduplicated (and ranked) candidates for ``query``."""
        query = query.strip()
        candidates = merge_candidates(*sources)
        if self.enable_ranking and query:
            candidates = rank_candidates(query, candidates)

        entries = [Suggestion(kind=SuggestionKind.CANDIDATE, candidate=c) for c in candidates]
        if len(query) >= self.min_query_length:
            entries.append(Suggestion(kind=SuggestionKind.CREATE_NEW, query=query))

        self.entries = entries
        self.query = query
        self.cursor = -1

    def clear(self) -> None:
        self.entries = []
        self.cursor = -1
        self.query = ""

    def move_down(self) -> int:
        if self.entries:
            self.cursor = min(self.cursor + 1, len(self.entries) - 1)
        return self.cursor

    def move_up(self) -> int:
        if self.cursor > 0:
            self.cursor -= 1
        return self.cursor

    def commit(self) -> Optional[SuggestionCommit]:
        """Resolve Enter at the cursor; the list closes on any commit."""
        entry = self.highlighted
        if entry is None:
            return None

        self.clear()
        if entry.kind == SuggestionKind.CREATE_NEW:
            return SuggestionCommit(action=CommitAction.CREATE, query=entry.query)
        return SuggestionCommit(action=CommitAction.SELECT, candidate=entry.candidate)

    def escape(self) -> None:
        self.clear()

    def blur(self, *, landed_on_suggestions: bool) -> bool:
        """Focus left the input; returns True if the list was closed."""
        if landed_on_suggestions:
            return False
        self.clear()
        return True
