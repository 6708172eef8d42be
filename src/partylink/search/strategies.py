"""Lookup strategies and the fallback cascade that orders them.

Each strategy takes a query and either returns a :class:`LookupResult` (possibly
empty) or raises :class:`CandidateLookupError`. The cascade walks the strategies
in order and escalates only on an empty result or an error.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from partylink.directory.client import DirectoryService
from partylink.errors import CandidateLookupError, DirectoryError
from partylink.search.normalizer import CandidateNormalizer
from partylink.storage.schemas import Candidate, SearchScope, SourceKind


class LookupResult(BaseModel):
    """Uniform result contract shared by every strategy."""

    model_config = ConfigDict(frozen=True)

    strategy: str
    candidates: List[Candidate] = Field(default_factory=list)
    from_cache: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.candidates


class LookupStrategy(Protocol):
    name: str

    async def lookup(self, query: str) -> LookupResult: ...


class CandidateCache:
    """Last successfully fetched candidate list.

    Replaced wholesale by every completed non-empty remote lookup; never merged.
    """

    def __init__(self) -> None:
        self._candidates: Optional[List[Candidate]] = None

    @property
    def is_primed(self) -> bool:
        return self._candidates is not None

    @property
    def candidates(self) -> List[Candidate]:
        return list(self._candidates or [])

    def replace(self, candidates: Sequence[Candidate]) -> None:
        self._candidates = list(candidates)

    def clear(self) -> None:
        self._candidates = None


def _source_kind_for(scope: SearchScope) -> SourceKind:
    return SourceKind.INTERNAL if scope == SearchScope.INTERNAL else SourceKind.EXTERNAL


class ScopedLookup:
    """Search within one scope and entity type (e.g. suppliers only)."""

    def __init__(
        self,
        directory: DirectoryService,
        normalizer: CandidateNormalizer,
        *,
        scope: SearchScope = SearchScope.INTERNAL,
        entity_type: str = "all",
        limit: int = 20,
        name: str | None = None,
    ) -> None:
        self.directory = directory
        self.normalizer = normalizer
        self.scope = scope
        self.entity_type = entity_type
        self.limit = limit
        self.name = name or f"scoped:{scope.value}:{entity_type}"

    async def lookup(self, query: str) -> LookupResult:
        try:
            envelope = await self.directory.search_candidates(
                query, scope=self.scope, entity_type=self.entity_type, limit=self.limit
            )
        except DirectoryError as exc:
            raise CandidateLookupError(str(exc), strategy=self.name) from exc

        if not envelope.success:
            raise CandidateLookupError(envelope.message or "Search failed", strategy=self.name)

        candidates = self.normalizer.normalize(envelope, _source_kind_for(self.scope))
        return LookupResult(strategy=self.name, candidates=candidates)


class BroadLookup(ScopedLookup):
    """Same scope, every entity type."""

    def __init__(
        self,
        directory: DirectoryService,
        normalizer: CandidateNormalizer,
        *,
        scope: SearchScope = SearchScope.INTERNAL,
        limit: int = 20,
    ) -> None:
        super().__init__(
            directory,
            normalizer,
            scope=scope,
            entity_type="all",
            limit=limit,
            name=f"broad:{scope.value}",
        )


class AlternateLookup:
    """Legacy path-based search endpoint."""

    name = "alternate"

    def __init__(
        self, directory: DirectoryService, normalizer: CandidateNormalizer, *, limit: int = 20
    ) -> None:
        self.directory = directory
        self.normalizer = normalizer
        self.limit = limit

    async def lookup(self, query: str) -> LookupResult:
        try:
            envelope = await self.directory.search_alternate(query, limit=self.limit)
        except DirectoryError as exc:
            raise CandidateLookupError(str(exc), strategy=self.name) from exc

        if not envelope.success:
            raise CandidateLookupError(envelope.message or "Search failed", strategy=self.name)
        return LookupResult(
            strategy=self.name,
            candidates=self.normalizer.normalize(envelope, SourceKind.INTERNAL),
        )


class CachedFilterLookup:
    """Case-insensitive substring filter over the cached candidate list."""

    name = "cached-filter"

    def __init__(self, cache: CandidateCache) -> None:
        self.cache = cache

    async def lookup(self, query: str) -> LookupResult:
        if not self.cache.is_primed:
            raise CandidateLookupError("No cached candidate list", strategy=self.name)

        needle = query.strip().casefold()
        matches = [
            candidate
            for candidate in self.cache.candidates
            if needle in candidate.display_name.casefold()
            or (candidate.phone and needle in candidate.phone)
            or (candidate.tax_id and needle in candidate.tax_id.casefold())
        ]
        return LookupResult(strategy=self.name, candidates=matches, from_cache=True)


class FallbackCascade:
    """Run strategies in order until one returns candidates."""

    def __init__(self, strategies: Sequence[LookupStrategy], cache: CandidateCache | None = None) -> None:
        if not strategies:
            raise ValueError("FallbackCascade needs at least one strategy")
        self.strategies = list(strategies)
        self.cache = cache or CandidateCache()

    async def run(self, query: str) -> LookupResult:
        """Return the first non-empty result.

        Raises:
            CandidateLookupError: When every strategy failed
        """
        failures: List[str] = []
        last_empty: LookupResult | None = None

        for index, strategy in enumerate(self.strategies):
            if index:
                logger.info("Escalating lookup for '{}' to {}", query, strategy.name)
            try:
                result = await strategy.lookup(query)
            except CandidateLookupError as exc:
                logger.debug("Strategy {} failed for '{}': {}", strategy.name, query, exc)
                failures.append(f"{strategy.name}: {exc}")
                continue

            if result.is_empty:
                last_empty = result
                continue

            if not result.from_cache:
                self.cache.replace(result.candidates)
            return result

        if last_empty is not None:
            return last_empty

        raise CandidateLookupError(
            "Search is unavailable right now; all lookup strategies failed",
            strategy="cascade",
            causes=failures,
        )

    async def preload(
        self,
        directory: DirectoryService,
        normalizer: CandidateNormalizer,
        *,
        entity_type: str = "all",
        limit: int = 100,
    ) -> int:
        """Warm the cache with the unfiltered party list; returns the cached count."""
        try:
            envelope = await directory.list_parties(entity_type=entity_type, limit=limit)
        except DirectoryError as exc:
            logger.warning("Could not preload party list: {}", exc)
            return 0

        candidates = normalizer.normalize(envelope, SourceKind.INTERNAL)
        if candidates:
            self.cache.replace(candidates)
        return len(candidates)


def build_default_cascade(
    directory: DirectoryService,
    normalizer: CandidateNormalizer | None = None,
    *,
    scope: SearchScope = SearchScope.INTERNAL,
    entity_type: str = "all",
    limit: int = 20,
    cache: CandidateCache | None = None,
) -> FallbackCascade:
    """Scoped -> broad -> alternate -> cached filter.

    The broad step exists only for a narrowed entity type and the alternate
    (party-only) endpoint only for internal searches.
    """
    normalizer = normalizer or CandidateNormalizer()
    cache = cache or CandidateCache()
    strategies: List[LookupStrategy] = [
        ScopedLookup(directory, normalizer, scope=scope, entity_type=entity_type, limit=limit)
    ]
    if entity_type != "all":
        strategies.append(BroadLookup(directory, normalizer, scope=scope, limit=limit))
    if scope == SearchScope.INTERNAL:
        strategies.append(AlternateLookup(directory, normalizer, limit=limit))
    strategies.append(CachedFilterLookup(cache))
    return FallbackCascade(strategies, cache=cache)
