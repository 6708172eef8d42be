"""Search input controller tying the scheduler to the suggestion list."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, List, Optional

from loguru import logger

from partylink.directory.client import DirectoryService
from partylink.errors import CandidateLookupError, ErrorSeverity
from partylink.search.normalizer import CandidateNormalizer
from partylink.search.scheduler import DebouncedQueryScheduler
from partylink.search.strategies import FallbackCascade
from partylink.search.suggestions import CommitAction, SuggestionCommit, SuggestionList
from partylink.storage.schemas import Candidate
from partylink.utils.config import SearchConfig


class FieldState(str, Enum):
    """Whether text changes currently reach the reactive search path."""

    IDLE = "idle"
    APPLYING_SELECTION = "applying_selection"


class SearchField:
    """Live search text, debounced lookups and the suggestion surface.

    Programmatic writes (applying a selection, prefilling) happen inside the
    ``APPLYING_SELECTION`` state; change notifications seen in that state, or
    echoing the text already held, never start a lookup.
    """

    def __init__(
        self,
        cascade: FallbackCascade,
        *,
        config: SearchConfig | None = None,
        on_entity_selected: Callable[[Candidate], None] | None = None,
        on_create_requested: Callable[[str], None] | None = None,
        on_error: Callable[[str, ErrorSeverity], None] | None = None,
        on_suggestions_changed: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or SearchConfig()
        self.cascade = cascade
        self.on_entity_selected = on_entity_selected
        self.on_create_requested = on_create_requested
        self.on_error = on_error
        self.on_suggestions_changed = on_suggestions_changed

        self.suggestions = SuggestionList(
            min_query_length=self.config.min_query_length,
            enable_ranking=self.config.enable_ranking,
        )
        self.scheduler = DebouncedQueryScheduler(
            cascade,
            on_results=self._show_results,
            on_clear=self._clear_suggestions,
            on_error=self._lookup_failed,
            debounce_seconds=self.config.debounce_seconds,
            min_query_length=self.config.min_query_length,
        )
        self.text: str = ""
        self.state: FieldState = FieldState.IDLE
        self.selected: Optional[Candidate] = None

    # Input events ---------------------------------------------------
    def text_changed(self, value: str) -> None:
        """Handle a change notification from the input widget."""
        if self.state == FieldState.APPLYING_SELECTION or value == self.text:
            return

        self.text = value
        if self.selected is not None and value != self.selected.display_name:
            self.selected = None
        self.scheduler.query_changed(value)

    def key_down(self) -> int:
        return self._moved(self.suggestions.move_down())

    def key_up(self) -> int:
        return self._moved(self.suggestions.move_up())

    def key_enter(self) -> Optional[SuggestionCommit]:
        """Commit the highlighted suggestion (select it, or request creation)."""
        commit = self.suggestions.commit()
        if commit is None:
            return None

        if commit.action == CommitAction.SELECT and commit.candidate is not None:
            self.apply_selection(commit.candidate)
        else:
            self.scheduler.reset()
            if self.on_create_requested is not None:
                self.on_create_requested(commit.query)
        self._notify()
        return commit

    def key_escape(self) -> None:
        self.suggestions.escape()
        self._notify()

    def blur(self, *, landed_on_suggestions: bool = False) -> None:
        if self.suggestions.blur(landed_on_suggestions=landed_on_suggestions):
            self._notify()

    # Programmatic writes --------------------------------------------
    @contextmanager
    def applying_selection(self) -> Iterator[None]:
        """Guard state around programmatic writes to the search text."""
        previous = self.state
        self.state = FieldState.APPLYING_SELECTION
        try:
            yield
        finally:
            self.state = previous

    def apply_selection(self, candidate: Candidate) -> None:
        """Write a chosen candidate into the field without searching again."""
        with self.applying_selection():
            self.scheduler.reset()
            self.text = candidate.display_name
            self.selected = candidate
        logger.debug("Selected {} candidate {}", candidate.source_kind.value, candidate.id)
        if self.on_entity_selected is not None:
            self.on_entity_selected(candidate)

    def set_text(self, value: str) -> None:
        """Prefill the field (e.g. from a host) without issuing a lookup."""
        with self.applying_selection():
            self.scheduler.reset()
            self.text = value
            self.selected = None

    def clear_selection(self) -> None:
        self.set_text("")

    # Lifecycle ------------------------------------------------------
    def switch_mode(self) -> None:
        """Drop timers and results belonging to the previous form mode."""
        self.scheduler.reset()
        self.text = ""
        self.selected = None

    def close(self) -> None:
        self.scheduler.teardown()
        self.suggestions.clear()

    async def preload(self, directory: DirectoryService, normalizer: CandidateNormalizer | None = None) -> int:
        """Warm the offline filter cache with the configured party list."""
        return await self.cascade.preload(
            directory,
            normalizer or CandidateNormalizer(),
            entity_type=self.config.entity_type,
            limit=self.config.preload_limit,
        )

    async def settle(self) -> None:
        """Wait for pending lookups to resolve."""
        await self.scheduler.flush()

    @property
    def visible_candidates(self) -> List[Candidate]:
        return self.suggestions.candidates

    # Scheduler callbacks --------------------------------------------
    def _show_results(self, query: str, candidates: List[Candidate]) -> None:
        self.suggestions.show(query, candidates)
        self._notify()

    def _clear_suggestions(self) -> None:
        self.suggestions.clear()
        self._notify()

    def _lookup_failed(self, exc: CandidateLookupError) -> None:
        logger.warning("Lookup failed after all fallbacks: {} ({})", exc, "; ".join(exc.causes))
        self.suggestions.show(self.scheduler.live_query)
        self._notify()
        if self.on_error is not None:
            self.on_error(str(exc), ErrorSeverity.WARNING)

    def _moved(self, cursor: int) -> int:
        self._notify()
        return cursor

    def _notify(self) -> None:
        if self.on_suggestions_changed is not None:
            self.on_suggestions_changed()
