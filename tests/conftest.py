"""Shared fixtures: an in-memory directory service and candidate factories."""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Tuple

import pytest

# Keep Loguru on its default sink; tests must not create log files.
os.environ.setdefault("PARTYLINK_DISABLE_LOG_RECONFIG", "1")

from partylink.storage.schemas import (  # noqa: E402
    Candidate,
    DirectoryEnvelope,
    DuplicateCheckResult,
    SearchScope,
    SourceKind,
)


class FakeDirectory:
    """DirectoryService double; each result may be a value or an exception to raise."""

    def __init__(self) -> None:
        self.search_results: Dict[Tuple[str, str], Any] = {}
        self.alternate_result: Any = DirectoryEnvelope(data=[])
        self.list_result: Any = DirectoryEnvelope(data=[])
        self.duplicate_result: Any = DuplicateCheckResult(exists=False)
        self.create_result: Any = DirectoryEnvelope(data={"party": {"_id": "party-1"}})
        self.quick_result: Any = DirectoryEnvelope(data={"party": {"_id": "party-q"}})
        self.update_result: Any = DirectoryEnvelope(data={"party": {"_id": "party-1"}})
        self.link_result: Any = DirectoryEnvelope(data={"bidirectionalOrdersReady": True})
        self.health_result: Any = DirectoryEnvelope(message="ok")
        self.calls: List[Tuple[Any, ...]] = []
        self.closed = False

    @staticmethod
    def _resolve(value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    async def search_candidates(
        self,
        query: str,
        *,
        scope: SearchScope = SearchScope.INTERNAL,
        entity_type: str = "all",
        limit: int = 20,
    ) -> DirectoryEnvelope:
        self.calls.append(("search", query, scope.value, entity_type))
        default = DirectoryEnvelope(data=[])
        return self._resolve(self.search_results.get((scope.value, entity_type), default))

    async def search_alternate(self, query: str, *, limit: int = 20) -> DirectoryEnvelope:
        self.calls.append(("alternate", query))
        return self._resolve(self.alternate_result)

    async def list_parties(self, *, entity_type: str = "all", limit: int = 100) -> DirectoryEnvelope:
        self.calls.append(("list", entity_type, limit))
        return self._resolve(self.list_result)

    async def check_duplicate(self, phone: str) -> DuplicateCheckResult:
        self.calls.append(("check_duplicate", phone))
        return self._resolve(self.duplicate_result)

    async def create_entity(self, payload: Dict[str, Any]) -> DirectoryEnvelope:
        self.calls.append(("create", payload))
        return self._resolve(self.create_result)

    async def create_quick_entity(self, payload: Dict[str, Any]) -> DirectoryEnvelope:
        self.calls.append(("create_quick", payload))
        return self._resolve(self.quick_result)

    async def update_entity(self, entity_id: str, payload: Dict[str, Any]) -> DirectoryEnvelope:
        self.calls.append(("update", entity_id, payload))
        return self._resolve(self.update_result)

    async def link_supplier(self, supplier_id: str, company_id: str) -> DirectoryEnvelope:
        self.calls.append(("link_supplier", supplier_id, company_id))
        return self._resolve(self.link_result)

    async def health(self) -> DirectoryEnvelope:
        self.calls.append(("health",))
        return self._resolve(self.health_result)

    async def aclose(self) -> None:
        self.closed = True

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def make_candidate() -> Callable[..., Candidate]:
    def _make(
        name: str,
        *,
        id: str = "",
        source_kind: SourceKind = SourceKind.INTERNAL,
        **fields: Any,
    ) -> Candidate:
        return Candidate(
            id=id or f"id-{name.lower().replace(' ', '-')}",
            display_name=name,
            source_kind=source_kind,
            **fields,
        )

    return _make
