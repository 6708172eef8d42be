"""Data model for parties, candidates and linkage."""

from partylink.storage.schemas import (
    Address,
    AutoLinkRules,
    Candidate,
    DirectoryEnvelope,
    DuplicateCheckResult,
    FieldOrigin,
    FormMode,
    LinkageRecord,
    LinkageStatus,
    LinkingInfo,
    Party,
    PartyDraft,
    PartyRole,
    PhoneNumber,
    SearchScope,
    SourceKind,
    SyncStatus,
    TaxRegistration,
)

__all__ = [
    "Address",
    "AutoLinkRules",
    "Candidate",
    "DirectoryEnvelope",
    "DuplicateCheckResult",
    "FieldOrigin",
    "FormMode",
    "LinkageRecord",
    "LinkageStatus",
    "LinkingInfo",
    "Party",
    "PartyDraft",
    "PartyRole",
    "PhoneNumber",
    "SearchScope",
    "SourceKind",
    "SyncStatus",
    "TaxRegistration",
]
