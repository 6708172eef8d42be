"""Map directory responses of varying shape onto :class:`Candidate`."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from loguru import logger

from partylink.errors import LinkageInconsistency
from partylink.storage.schemas import Candidate, DirectoryEnvelope, SourceKind

# Ordered: the first path holding a non-empty list wins.
RESPONSE_SHAPES: Tuple[Tuple[str, ...], ...] = (
    ("data", "items"),
    ("data", "parties"),
    ("data", "companies"),
    ("data", "results"),
    ("data",),
    ("items",),
    ("parties",),
    ("companies",),
    ("results",),
)

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "_id", "partyId", "companyId"),
    "display_name": ("name", "partyName", "businessName", "companyName"),
    "phone": ("phoneNumber", "phone", "mobile", "contactNumber", "whatsappNumber"),
    "email": ("email", "emailAddress"),
    "company_name": ("companyName", "businessName"),
    "tax_id": ("gstNumber", "gstin", "taxId"),
    "balance": ("currentBalance", "balance", "openingBalance"),
    "credit_limit": ("creditLimit",),
    "address": ("homeAddressLine", "addressLine", "address"),
    "locality": ("city", "homeDistrict", "district", "locality"),
    "state": ("homeState", "state"),
    "pincode": ("homePincode", "pincode", "pinCode"),
}

NUMERIC_FIELDS = frozenset({"balance", "credit_limit"})


class CandidateNormalizer:
    """Tolerant normalizer for party and company records."""

    def __init__(
        self,
        shapes: Sequence[Tuple[str, ...]] = RESPONSE_SHAPES,
        aliases: Mapping[str, Tuple[str, ...]] = FIELD_ALIASES,
    ) -> None:
        self.shapes = tuple(shapes)
        self.aliases = dict(aliases)

    def normalize(
        self, response: DirectoryEnvelope | Mapping[str, Any] | Sequence[Any], source_kind: SourceKind
    ) -> List[Candidate]:
        """Extract and normalize every usable record in a response.

        External records without an identifier cannot be linked and are dropped.
        """
        candidates: List[Candidate] = []
        for record in self.extract_records(response):
            try:
                candidates.append(self.normalize_record(record, source_kind))
            except LinkageInconsistency as exc:
                logger.debug("Dropping unlinkable external record: {}", exc)
        return candidates

    def extract_records(
        self, response: DirectoryEnvelope | Mapping[str, Any] | Sequence[Any]
    ) -> List[Dict[str, Any]]:
        """Return the entity list from the first populated known shape."""
        if isinstance(response, DirectoryEnvelope):
            response = response.model_dump()
        if isinstance(response, (list, tuple)):
            return _records_only(response)
        if not isinstance(response, Mapping):
            return []

        for path in self.shapes:
            value: Any = response
            for key in path:
                value = value.get(key) if isinstance(value, Mapping) else None
                if value is None:
                    break
            if isinstance(value, (list, tuple)) and value:
                return _records_only(value)
        return []

    def normalize_record(self, record: Mapping[str, Any], source_kind: SourceKind) -> Candidate:
        """Normalize a single record (missing text -> "", missing numbers -> 0)."""
        flat = _flatten_address(record)
        values: Dict[str, Any] = {}
        for field, keys in self.aliases.items():
            raw_value = _first_present(flat, keys)
            if field in NUMERIC_FIELDS:
                values[field] = _to_float(raw_value)
            else:
                values[field] = _to_text(raw_value)

        if source_kind == SourceKind.EXTERNAL and not values["id"]:
            raise LinkageInconsistency(
                f"external record '{values['display_name'] or '<unnamed>'}' has no identifier"
            )

        return Candidate(source_kind=source_kind, raw=dict(record), **values)


def _records_only(items: Iterable[Any]) -> List[Dict[str, Any]]:
    return [dict(item) for item in items if isinstance(item, Mapping)]


def _flatten_address(record: Mapping[str, Any]) -> Dict[str, Any]:
    """External companies nest their address; lift its parts to the top level."""
    flat = dict(record)
    address = record.get("address")
    if isinstance(address, Mapping):
        flat["address"] = address.get("street") or address.get("line") or address.get("addressLine")
        for key in ("city", "district", "state", "pincode"):
            if key not in flat or flat[key] in (None, ""):
                flat[key] = address.get(key)
    return flat


def _first_present(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_text(value: Any) -> str:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return ""
    return str(value).strip()


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
