"""Party form state machine (quick-add / full-add, validation, submission).

States::

    CLOSED -> QUICK_ADD | FULL_ADD -> SUBMITTING -> SUCCESS -> CLOSED
                                                 -> FAILED (editable, with errors)

Submission runs local validation, then the remote duplicate check, then the
create/update call; any failure leaves the form open with field-scoped errors.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from partylink.curation.duplicate_guard import DuplicateGuard
from partylink.directory.client import DirectoryService
from partylink.errors import (
    DirectoryError,
    DuplicateError,
    ErrorSeverity,
    FormStateError,
    LinkageInconsistency,
    SubmissionError,
    ValidationError,
)
from partylink.linking.resolver import LinkageResolver
from partylink.search.field import SearchField
from partylink.storage.schemas import (
    TRACKED_FIELDS,
    Candidate,
    DirectoryEnvelope,
    FieldOrigin,
    FormMode,
    LinkageRecord,
    LinkingInfo,
    Party,
    PartyDraft,
    PartyRole,
    PhoneNumber,
    SyncStatus,
    TaxRegistration,
)
from partylink.utils.config import FormConfig


class FormState(str, Enum):
    CLOSED = "closed"
    QUICK_ADD = "quick_add"
    FULL_ADD = "full_add"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


EDITABLE_STATES = frozenset({FormState.QUICK_ADD, FormState.FULL_ADD, FormState.FAILED})
NUMERIC_FIELDS = frozenset({"credit_limit", "opening_balance"})


class FormHost(Protocol):
    """Callbacks the hosting UI implements."""

    def on_entity_selected(self, candidate: Candidate) -> None: ...

    def on_draft_saved(self, party: Party, is_new: bool) -> None: ...

    def on_error(self, message: str, severity: ErrorSeverity) -> None: ...


class PartyFormStateMachine:
    """Orchestrates one party form from open to save or cancel."""

    def __init__(
        self,
        directory: DirectoryService,
        host: FormHost,
        *,
        config: FormConfig | None = None,
        guard: DuplicateGuard | None = None,
        resolver: LinkageResolver | None = None,
        search: SearchField | None = None,
    ) -> None:
        self.directory = directory
        self.host = host
        self.config = config or FormConfig()
        self.guard = guard or DuplicateGuard(directory)
        self.resolver = resolver or LinkageResolver()
        self.search = search

        self.state: FormState = FormState.CLOSED
        self.draft: Optional[PartyDraft] = None
        self.field_errors: Dict[str, str] = {}
        self.error_message: str = ""
        self.duplicate_of: Optional[str] = None
        self.last_saved: Optional[Party] = None
        self._close_handle: Optional[asyncio.TimerHandle] = None

    # State queries --------------------------------------------------
    @property
    def is_open(self) -> bool:
        return self.state != FormState.CLOSED

    @property
    def is_editable(self) -> bool:
        return self.state in EDITABLE_STATES

    @property
    def mode(self) -> Optional[FormMode]:
        return self.draft.mode if self.draft else None

    # Lifecycle ------------------------------------------------------
    def open(
        self,
        existing: Party | None = None,
        *,
        mode: FormMode | None = None,
        role: PartyRole | None = None,
        prefill_name: str = "",
    ) -> PartyDraft:
        """Open the form fresh (all fields reset) or for an existing party (always full mode)."""
        if self.state == FormState.SUBMITTING:
            raise FormStateError("Cannot reopen the form while a save is in progress")
        self._cancel_auto_close()

        if existing is not None:
            draft = PartyDraft.from_party(existing)
        else:
            draft = PartyDraft(
                mode=mode or FormMode(self.config.default_mode),
                role=role or PartyRole(self.config.default_role),
                country=self.config.default_country,
            )
            if prefill_name.strip():
                draft.name = prefill_name.strip()
                draft.field_origins["name"] = FieldOrigin.USER

        self.draft = draft
        self._clear_errors()
        self.state = FormState.QUICK_ADD if draft.mode == FormMode.QUICK else FormState.FULL_ADD
        if self.search is not None:
            self.search.switch_mode()
        logger.debug("Opened party form in {} mode (existing={})", draft.mode.value, draft.party_id)
        return draft

    def toggle_mode(self) -> FormMode:
        """Switch between quick-add and full-add."""
        if self.state == FormState.SUBMITTING:
            raise FormStateError("Mode cannot change while saving")
        draft = self._editable_draft()
        if not draft.is_new:
            raise FormStateError("Existing parties are always edited in full mode")
        if draft.mode == FormMode.FULL and draft.linkage is not None:
            raise FormStateError("Clear the company link before switching to quick add")

        draft.mode = FormMode.FULL if draft.mode == FormMode.QUICK else FormMode.QUICK
        self.state = FormState.QUICK_ADD if draft.mode == FormMode.QUICK else FormState.FULL_ADD
        self._clear_errors()
        if self.search is not None:
            self.search.switch_mode()
        return draft.mode

    def cancel(self) -> None:
        """Discard the draft and close."""
        if self.state == FormState.SUBMITTING:
            raise FormStateError("Cannot cancel while a save is in progress")
        self._close()

    def dispose(self) -> None:
        """Tear down timers owned by the form (host component unmounted)."""
        self._cancel_auto_close()
        if self.search is not None:
            self.search.close()

    # Editing --------------------------------------------------------
    def set_field(self, name: str, value: Any) -> None:
        """Write a user-typed value; dotted names address nested fields (``home_address.line``)."""
        draft = self._editable_draft()
        if name == "role":
            self.set_role(value)
            return

        head, _, tail = name.partition(".")
        if not hasattr(draft, head) or head in {"linkage", "field_origins", "party_id", "mode"}:
            raise FormStateError(f"Unknown or read-only field: {name}")

        if tail:
            target = getattr(draft, head)
            if not hasattr(target, tail):
                raise FormStateError(f"Unknown field: {name}")
            setattr(target, tail, "" if value is None else str(value))
        elif head in NUMERIC_FIELDS:
            setattr(draft, head, self._coerce_number(name, value))
        elif head == "tax_registration":
            draft.tax_registration = TaxRegistration(value)
        elif head == "same_as_home":
            draft.same_as_home = bool(value)
        elif head == "opening_balance_type":
            if value not in ("debit", "credit"):
                raise ValidationError({name: "Opening balance type must be debit or credit"})
            draft.opening_balance_type = value
        else:
            setattr(draft, head, "" if value is None else str(value))

        if head in TRACKED_FIELDS:
            draft.field_origins[head] = FieldOrigin.USER
        self.field_errors.pop(name, None)

    def set_role(self, role: PartyRole | str) -> None:
        draft = self._editable_draft()
        draft.role = PartyRole(role)
        self.resolver.on_role_changed(draft)

    def add_phone(self, number: str = "", label: str = "") -> None:
        draft = self._editable_draft()
        draft.phone_numbers.append(PhoneNumber(number=number, label=label))

    def remove_phone(self, index: int) -> None:
        """Remove an additional number; the list always keeps one entry."""
        draft = self._editable_draft()
        if not 0 <= index < len(draft.phone_numbers):
            raise IndexError(f"No phone entry at index {index}")
        del draft.phone_numbers[index]
        if not draft.phone_numbers:
            draft.phone_numbers.append(PhoneNumber())

    def select_candidate(self, candidate: Candidate) -> Optional[LinkageRecord]:
        """Adopt a chosen search result into the draft.

        External companies become the supplier link. Internal parties already
        exist: the form reports a duplicate so the host can offer "edit existing".
        """
        draft = self._editable_draft()
        self.host.on_entity_selected(candidate)

        if not candidate.is_external:
            error = DuplicateError(
                f"'{candidate.display_name}' is already one of your parties",
                field="name",
                existing_id=candidate.id or None,
                existing_name=candidate.display_name,
            )
            self.duplicate_of = error.existing_id
            self.field_errors["name"] = str(error)
            self.host.on_error(str(error), ErrorSeverity.INFO)
            return None

        try:
            self.resolver.adopt(draft, candidate)
        except LinkageInconsistency as exc:
            logger.debug("Ignoring unlinkable selection: {}", exc)
            return None
        if draft.mode == FormMode.QUICK:
            # Quick create has no link fields.
            draft.mode = FormMode.FULL
            self.state = FormState.FULL_ADD
            self.host.on_error("Switched to full add to keep the company link", ErrorSeverity.INFO)
        return draft.linkage

    def clear_link(self) -> None:
        """Explicitly remove the supplier link (the only way to drop a verified link)."""
        self.resolver.clear_link(self._editable_draft())

    # Submission -----------------------------------------------------
    async def submit(self) -> Optional[Party]:
        """Validate, check duplicates, save. Returns the saved Party or None on failure."""
        draft = self._editable_draft()
        is_new = draft.is_new
        self.state = FormState.SUBMITTING
        self._clear_errors()

        try:
            self.guard.validate(draft)
            await self.guard.check_remote(draft)
            payload = self.build_payload(draft)
            envelope = await self._send(draft, payload)
            party = self._finalize(draft, envelope)
        except ValidationError as exc:
            self._fail(exc.field_errors, "Please fix the highlighted fields", ErrorSeverity.WARNING)
            return None
        except DuplicateError as exc:
            self.duplicate_of = exc.existing_id
            self._fail({exc.field: str(exc)}, str(exc), ErrorSeverity.WARNING)
            return None
        except SubmissionError as exc:
            logger.error("Saving party '{}' failed ({}): {}", draft.name, exc.kind.value, exc)
            field_errors = {exc.field: str(exc)} if exc.field else {}
            self._fail(field_errors, str(exc), ErrorSeverity.ERROR)
            return None
        except Exception as exc:
            logger.exception("Unexpected error while saving party '{}'", draft.name)
            self._fail({}, f"Saving failed: {exc}", ErrorSeverity.ERROR)
            return None

        self.state = FormState.SUCCESS
        self.last_saved = party
        self.host.on_draft_saved(party, is_new)
        self._schedule_auto_close()
        return party

    def build_payload(self, draft: PartyDraft) -> Dict[str, Any]:
        """Create/update body for the directory service."""
        if draft.mode == FormMode.QUICK:
            return {
                "name": draft.name.strip(),
                "phone": draft.phone.strip(),
                "type": draft.role.value,
            }

        home = draft.home_address
        delivery = draft.effective_delivery_address()
        phone = draft.phone.strip()
        extra_numbers = [
            {"number": entry.number.strip(), "label": entry.label.strip()}
            for entry in draft.phone_numbers
            if entry.number.strip()
        ]

        payload: Dict[str, Any] = {
            "partyType": draft.role.value,
            "name": draft.name.strip(),
            "email": draft.email.strip(),
            "phoneNumber": phone,
            "companyName": draft.company_name.strip(),
            "gstNumber": draft.tax_id.strip().upper(),
            "gstType": draft.tax_registration.value,
            "creditLimit": draft.credit_limit,
            "openingBalance": draft.opening_balance,
            "openingBalanceType": draft.opening_balance_type,
            "country": draft.country or self.config.default_country,
            "homeAddressLine": home.line,
            "homePincode": home.pincode,
            "homeState": home.state,
            "homeDistrict": home.district,
            "homeTaluka": home.taluka,
            "deliveryAddressLine": delivery.line,
            "deliveryPincode": delivery.pincode,
            "deliveryState": delivery.state,
            "deliveryDistrict": delivery.district,
            "deliveryTaluka": delivery.taluka,
            "sameAsHomeAddress": draft.same_as_home,
            "phoneNumbers": extra_numbers or [{"number": phone, "label": "Primary"}],
        }
        payload.update(self.resolver.to_payload(draft))
        return {key: value for key, value in payload.items() if value is not None and value != ""}

    # Internal helpers -----------------------------------------------
    async def _send(self, draft: PartyDraft, payload: Dict[str, Any]) -> DirectoryEnvelope:
        try:
            if draft.mode == FormMode.QUICK:
                envelope = await self.directory.create_quick_entity(payload)
            elif draft.is_new:
                envelope = await self.directory.create_entity(payload)
            else:
                envelope = await self.directory.update_entity(draft.party_id or "", payload)
        except DirectoryError as exc:
            raise SubmissionError.classify(str(exc)) from exc

        if not envelope.success:
            raise SubmissionError.classify(envelope.message)
        return envelope

    def _finalize(self, draft: PartyDraft, envelope: DirectoryEnvelope) -> Party:
        data = envelope.data if isinstance(envelope.data, dict) else {}
        record = data.get("entity") or data.get("party")
        if not isinstance(record, dict):
            record = data if ("id" in data or "_id" in data) else {}

        raw_id = record.get("id") or record.get("_id") or draft.party_id
        party_id = str(raw_id) if raw_id else None
        if party_id is None:
            logger.warning("Server accepted party '{}' without an identifier; marking pending", draft.name)

        # Quick create never sends the link, so there is nothing local to merge.
        local_linkage = draft.linkage if draft.mode == FormMode.FULL else None
        linkage = self.resolver.apply_server_linking(
            local_linkage, self._server_linking(data, record), party_id=party_id
        )

        return Party(
            id=party_id,
            role=draft.role,
            name=draft.name.strip(),
            email=draft.email.strip(),
            phone=draft.phone.strip(),
            company_name=draft.company_name.strip(),
            tax_id=draft.tax_id.strip().upper(),
            tax_registration=draft.tax_registration,
            phone_numbers=[entry.model_copy() for entry in draft.phone_numbers if entry.number.strip()],
            credit_limit=draft.credit_limit,
            opening_balance=draft.opening_balance,
            opening_balance_type=draft.opening_balance_type,
            country=draft.country,
            home_address=draft.home_address.model_copy(),
            delivery_address=draft.effective_delivery_address().model_copy(),
            same_as_home=draft.same_as_home,
            is_running_customer=draft.mode == FormMode.QUICK,
            linkage=linkage,
            external_fields={
                field: origin
                for field, origin in draft.field_origins.items()
                if origin == FieldOrigin.EXTERNAL
            },
            sync_status=SyncStatus.CONFIRMED if party_id else SyncStatus.PENDING,
            created_at=_parse_timestamp(record.get("createdAt")) or draft.created_at,
            updated_at=_parse_timestamp(record.get("updatedAt")),
        )

    @staticmethod
    def _server_linking(data: Dict[str, Any], record: Dict[str, Any]) -> Optional[LinkingInfo]:
        """Linking state from the saved record, overlaid with ``linkingInfo`` when present."""
        fields: Dict[str, Any] = {
            key: record[key] for key in ("linkedCompanyId", "isVerified") if record.get(key) is not None
        }
        linked = fields.get("linkedCompanyId")
        if isinstance(linked, dict):
            linked = linked.get("_id") or linked.get("id")
        if linked is None:
            fields.pop("linkedCompanyId", None)
        else:
            fields["linkedCompanyId"] = str(linked)

        info_data = data.get("linkingInfo")
        if isinstance(info_data, dict):
            fields.update({key: value for key, value in info_data.items() if value is not None})
        if not fields:
            return None

        try:
            return LinkingInfo.model_validate(fields)
        except PydanticValidationError as exc:
            logger.warning("Ignoring unreadable linking details in save response: {}", exc)
            return None

    def _fail(self, field_errors: Dict[str, str], message: str, severity: ErrorSeverity) -> None:
        self.field_errors = dict(field_errors)
        self.error_message = message
        self.state = FormState.FAILED
        self.host.on_error(message, severity)

    def _clear_errors(self) -> None:
        self.field_errors = {}
        self.error_message = ""
        self.duplicate_of = None

    def _editable_draft(self) -> PartyDraft:
        if not self.is_editable or self.draft is None:
            raise FormStateError(f"Form is not editable in state '{self.state.value}'")
        return self.draft

    @staticmethod
    def _coerce_number(name: str, value: Any) -> float:
        if value in (None, ""):
            return 0.0
        try:
            return float(str(value).replace(",", ""))
        except ValueError as exc:
            raise ValidationError({name: "Enter a number"}) from exc

    def _schedule_auto_close(self) -> None:
        self._cancel_auto_close()
        loop = asyncio.get_running_loop()
        self._close_handle = loop.call_later(self.config.auto_close_delay_seconds, self._auto_close)

    def _cancel_auto_close(self) -> None:
        if self._close_handle is not None:
            self._close_handle.cancel()
            self._close_handle = None

    def _auto_close(self) -> None:
        self._close_handle = None
        if self.state == FormState.SUCCESS:
            self._close()

    def _close(self) -> None:
        self._cancel_auto_close()
        self.draft = None
        self.state = FormState.CLOSED
        self._clear_errors()
        if self.search is not None:
            self.search.switch_mode()


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


__all__ = ["FormHost", "FormState", "PartyFormStateMachine"]
