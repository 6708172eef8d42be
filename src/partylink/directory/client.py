"""HTTP client for the remote party/company directory.

This module provides the one place where directory requests are built, so
company context headers, timeouts and error translation stay consistent.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from partylink.errors import DirectoryError
from partylink.storage.schemas import DirectoryEnvelope, DuplicateCheckResult, SearchScope
from partylink.utils.config import DirectoryConfig


class DirectoryService(Protocol):
    """Operations the search, guard and form layers need from the directory."""

    async def search_candidates(
        self,
        query: str,
        *,
        scope: SearchScope = SearchScope.INTERNAL,
        entity_type: str = "all",
        limit: int = 20,
    ) -> DirectoryEnvelope: ...

    async def search_alternate(self, query: str, *, limit: int = 20) -> DirectoryEnvelope: ...

    async def list_parties(self, *, entity_type: str = "all", limit: int = 100) -> DirectoryEnvelope: ...

    async def check_duplicate(self, phone: str) -> DuplicateCheckResult: ...

    async def create_entity(self, payload: Dict[str, Any]) -> DirectoryEnvelope: ...

    async def create_quick_entity(self, payload: Dict[str, Any]) -> DirectoryEnvelope: ...

    async def update_entity(self, entity_id: str, payload: Dict[str, Any]) -> DirectoryEnvelope: ...

    async def link_supplier(self, supplier_id: str, company_id: str) -> DirectoryEnvelope: ...

    async def health(self) -> DirectoryEnvelope: ...


class DirectoryClient:
    """``httpx``-based implementation of :class:`DirectoryService`."""

    def __init__(
        self,
        config: DirectoryConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or DirectoryConfig()
        headers = {"Content-Type": "application/json"}
        if self.config.directory_api_token:
            headers["Authorization"] = f"Bearer {self.config.directory_api_token}"
        if self.config.directory_company_id:
            headers["X-Company-ID"] = self.config.directory_company_id

        self._client = httpx.AsyncClient(
            base_url=self.config.directory_base_url,
            timeout=httpx.Timeout(self.config.directory_timeout),
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "DirectoryClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def company_id(self) -> str:
        return self.config.directory_company_id

    # Public API -----------------------------------------------------
    async def search_candidates(
        self,
        query: str,
        *,
        scope: SearchScope = SearchScope.INTERNAL,
        entity_type: str = "all",
        limit: int = 20,
    ) -> DirectoryEnvelope:
        """Search internal parties or external companies."""
        query = query.strip()
        if scope == SearchScope.INTERNAL:
            params: Dict[str, Any] = {
                "search": query,
                "limit": limit,
                "page": 1,
                "companyId": self.company_id,
            }
            if entity_type and entity_type != "all":
                params["type"] = entity_type
            return await self._request("GET", "/api/parties/search", params=params)

        body = {
            "query": query,
            "filter": entity_type or "all",
            "source": scope.value,
            "limit": limit,
            "companyId": self.company_id,
            "verifiedOnly": scope == SearchScope.VERIFIED,
        }
        return await self._request("POST", "/api/companies/search/external", json=body)

    async def search_alternate(self, query: str, *, limit: int = 20) -> DirectoryEnvelope:
        """Legacy path-based party search."""
        path = f"/api/parties/search/{quote(query.strip(), safe='')}"
        return await self._request("GET", path, params={"limit": limit})

    async def list_parties(self, *, entity_type: str = "all", limit: int = 100) -> DirectoryEnvelope:
        """Unfiltered party list, sorted by name."""
        params = {
            "page": 1,
            "limit": limit,
            "type": entity_type or "all",
            "sortBy": "name",
            "sortOrder": "asc",
            "companyId": self.company_id,
        }
        return await self._request("GET", "/api/parties", params=params)

    async def check_duplicate(self, phone: str) -> DuplicateCheckResult:
        """Ask whether a party with this phone already exists in the company."""
        phone = phone.strip()
        if not phone:
            return DuplicateCheckResult(exists=False)

        try:
            envelope = await self._request("GET", f"/api/parties/check-phone/{quote(phone, safe='')}")
        except DirectoryError as exc:
            if exc.status == 404:
                logger.warning("Phone check endpoint unavailable (404); treating {} as unique", phone)
                return DuplicateCheckResult(exists=False, checked=False)
            raise

        # The existence flag lives at the top level; older servers nest it under data.
        body = dict(envelope.data) if isinstance(envelope.data, dict) else {}
        body.update(envelope.extras)
        exists = bool(body.get("exists", False))
        party = body.get("party") if isinstance(body.get("party"), dict) else {}
        return DuplicateCheckResult(
            exists=exists,
            party_id=_string_or_none(party.get("id") or party.get("_id")),
            party_name=str(party.get("name") or ""),
        )

    async def create_entity(self, payload: Dict[str, Any]) -> DirectoryEnvelope:
        return await self._request("POST", "/api/parties", json=payload)

    async def create_quick_entity(self, payload: Dict[str, Any]) -> DirectoryEnvelope:
        return await self._request("POST", "/api/parties/quick", json=payload)

    async def update_entity(self, entity_id: str, payload: Dict[str, Any]) -> DirectoryEnvelope:
        return await self._request("PUT", f"/api/parties/{quote(entity_id, safe='')}", json=payload)

    async def link_supplier(self, supplier_id: str, company_id: str) -> DirectoryEnvelope:
        """Link an existing supplier party to an external company."""
        body = {"supplierId": supplier_id, "companyId": company_id}
        return await self._request("POST", "/api/parties/link-supplier", json=body)

    async def health(self) -> DirectoryEnvelope:
        return await self._request("GET", "/api/health")

    # Internal helpers -----------------------------------------------
    async def _request(self, method: str, path: str, **kwargs: Any) -> DirectoryEnvelope:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.debug("Directory request {} {} failed: {}", method, path, exc)
            raise DirectoryError(
                "Unable to connect to server. Please check your internet connection."
            ) from exc

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code >= 400:
            message = body.get("message") or f"HTTP Error: {response.status_code}"
            raise DirectoryError(message, status=response.status_code, code=body.get("code"))

        try:
            return DirectoryEnvelope.model_validate(body)
        except ValidationError as exc:
            logger.debug("Unreadable response from {} {}: {}", method, path, exc)
            raise DirectoryError(
                "Unexpected response from server", status=response.status_code
            ) from exc


def _string_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def create_directory_client(
    config: DirectoryConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DirectoryClient:
    """Create a directory client, logging the effective connection settings.

    Args:
        config: Connection settings; read from the environment when omitted.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).

    Returns:
        Configured DirectoryClient.
    """
    config = config or DirectoryConfig()
    token = config.directory_api_token
    masked_token = f"{token[:4]}...{token[-4:]}" if token and len(token) > 8 else "None"
    logger.debug(
        f"Creating directory client: base_url={config.directory_base_url}, "
        f"company_id={config.directory_company_id or 'None'}, token={masked_token}, "
        f"timeout={config.directory_timeout}"
    )
    return DirectoryClient(config, transport=transport)
