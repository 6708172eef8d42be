"""Debounced, stale-safe scheduling of directory lookups as the user types."""

from __future__ import annotations

import asyncio
from typing import Callable, List, NamedTuple, Optional, Protocol, Set

from loguru import logger

from partylink.errors import CandidateLookupError
from partylink.search.strategies import LookupResult
from partylink.storage.schemas import Candidate


class QueryToken(NamedTuple):
    """Identity of one issued query: mode generation plus trimmed text."""

    generation: int
    query: str


class CandidateSource(Protocol):
    async def run(self, query: str) -> LookupResult: ...


ResultsCallback = Callable[[str, List[Candidate]], None]
ClearCallback = Callable[[], None]
ErrorCallback = Callable[[CandidateLookupError], None]


class DebouncedQueryScheduler:
    """Turn keystrokes into at most one lookup per quiet interval.

    A lookup's result is applied only if its token still equals the live token
    when it resolves; there is no network cancellation, superseded lookups
    simply finish and are discarded.
    """

    def __init__(
        self,
        source: CandidateSource,
        *,
        on_results: ResultsCallback,
        on_clear: ClearCallback,
        on_error: Optional[ErrorCallback] = None,
        debounce_seconds: float = 0.3,
        min_query_length: int = 2,
    ) -> None:
        self.source = source
        self.on_results = on_results
        self.on_clear = on_clear
        self.on_error = on_error
        self.debounce_seconds = debounce_seconds
        self.min_query_length = min_query_length

        self._live = QueryToken(0, "")
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Set[asyncio.Task[None]] = set()
        self.issued_queries: List[str] = []

    @property
    def live_query(self) -> str:
        return self._live.query

    @property
    def pending(self) -> bool:
        return self._timer is not None or bool(self._in_flight)

    def query_changed(self, text: str) -> None:
        """Record new input text and (re)start the quiet interval."""
        self._cancel_timer()
        query = text.strip()
        self._live = QueryToken(self._live.generation, query)

        if len(query) < self.min_query_length:
            self.on_clear()
            return

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire, self._live)

    def reset(self) -> None:
        """Forget the current query (mode switch); in-flight results are dropped."""
        self._cancel_timer()
        self._live = QueryToken(self._live.generation + 1, "")
        self.on_clear()

    def teardown(self) -> None:
        """Cancel everything; no callback fires after this returns."""
        self._cancel_timer()
        self._live = QueryToken(self._live.generation + 1, "")
        for task in list(self._in_flight):
            task.cancel()
        self._in_flight.clear()

    async def flush(self) -> None:
        """Wait until the pending timer (if any) has fired and lookups have resolved."""
        loop = asyncio.get_running_loop()
        while self.pending:
            if self._timer is not None:
                await asyncio.sleep(max(self._timer.when() - loop.time(), 0.0) + 0.001)
            if self._in_flight:
                await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, token: QueryToken) -> None:
        self._timer = None
        if token != self._live:
            return
        task = asyncio.get_running_loop().create_task(self._run(token))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run(self, token: QueryToken) -> None:
        self.issued_queries.append(token.query)
        logger.debug("Issuing lookup for '{}'", token.query)
        try:
            result = await self.source.run(token.query)
        except CandidateLookupError as exc:
            if token == self._live and self.on_error is not None:
                self.on_error(exc)
            return

        if token != self._live:
            logger.debug("Dropping stale lookup result for '{}' (live: '{}')", token.query, self._live.query)
            return
        self.on_results(token.query, result.candidates)
