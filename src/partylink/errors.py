"""Error taxonomy for party search, duplicate guarding and linking.

Every error raised by this package derives from ``PartyLinkError`` so a host
application can catch the whole family in one place. None of them is fatal:
callers turn each one into a visible, recoverable state.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional


class PartyLinkError(Exception):
    """Base class for all partylink errors."""


class ErrorSeverity(str, Enum):
    """Severity reported to the host through ``on_error``."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ValidationError(PartyLinkError):
    """Local, field-scoped validation failure. Blocks submission."""

    def __init__(self, field_errors: Mapping[str, str]) -> None:
        self.field_errors: Dict[str, str] = dict(field_errors)
        summary = "; ".join(f"{field}: {message}" for field, message in self.field_errors.items())
        super().__init__(summary or "Validation failed")

    @property
    def fields(self) -> List[str]:
        return list(self.field_errors)


class DuplicateError(PartyLinkError):
    """A party with the same identifying data already exists.

    Carries the existing party's id and name so the host can offer
    "edit existing" instead of creating a second record.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str = "phone",
        existing_id: Optional[str] = None,
        existing_name: str = "",
    ) -> None:
        super().__init__(message)
        self.field = field
        self.existing_id = existing_id
        self.existing_name = existing_name


class CandidateLookupError(PartyLinkError):
    """Transient lookup failure; drives the fallback cascade."""

    def __init__(self, message: str, *, strategy: str = "", causes: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.strategy = strategy
        self.causes = list(causes or [])


class LinkageInconsistency(PartyLinkError):
    """An external record cannot be linked (it has no identifier)."""


class SubmissionKind(str, Enum):
    """Classification of a server-rejected submission."""

    DUPLICATE_PHONE = "duplicate_phone"
    DUPLICATE_EMAIL = "duplicate_email"
    GENERIC = "generic"


class SubmissionError(PartyLinkError):
    """The directory service rejected a create/update payload."""

    def __init__(self, message: str, *, kind: SubmissionKind = SubmissionKind.GENERIC) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def field(self) -> Optional[str]:
        """Form field the message belongs to, if any."""
        if self.kind == SubmissionKind.DUPLICATE_PHONE:
            return "phone"
        if self.kind == SubmissionKind.DUPLICATE_EMAIL:
            return "email"
        return None

    @classmethod
    def classify(cls, message: str) -> "SubmissionError":
        """Build a SubmissionError whose kind is derived from the server message."""
        lowered = (message or "").lower()
        duplicate = any(word in lowered for word in ("already exists", "duplicate", "already registered"))
        if duplicate and ("phone" in lowered or "mobile" in lowered):
            kind = SubmissionKind.DUPLICATE_PHONE
        elif duplicate and "email" in lowered:
            kind = SubmissionKind.DUPLICATE_EMAIL
        else:
            kind = SubmissionKind.GENERIC
        return cls(message or "Failed to save party", kind=kind)


class DirectoryError(PartyLinkError):
    """HTTP or transport failure talking to the directory service."""

    def __init__(self, message: str, *, status: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code

    @property
    def is_network_error(self) -> bool:
        return self.status is None


class FormStateError(PartyLinkError):
    """Operation not allowed in the form's current state."""
