"""Tests for the party form state machine."""

from __future__ import annotations

import asyncio
from typing import List, Tuple

import pytest

from partylink.errors import DirectoryError, ErrorSeverity, FormStateError
from partylink.forms.party_form import FormState, PartyFormStateMachine
from partylink.storage.schemas import (
    Candidate,
    DirectoryEnvelope,
    DuplicateCheckResult,
    FieldOrigin,
    FormMode,
    LinkageRecord,
    Party,
    PartyRole,
    SourceKind,
    SyncStatus,
)
from partylink.utils.config import FormConfig


class _Host:
    def __init__(self) -> None:
        self.selected: List[Candidate] = []
        self.saved: List[Tuple[Party, bool]] = []
        self.errors: List[Tuple[str, ErrorSeverity]] = []

    def on_entity_selected(self, candidate: Candidate) -> None:
        self.selected.append(candidate)

    def on_draft_saved(self, party: Party, is_new: bool) -> None:
        self.saved.append((party, is_new))

    def on_error(self, message: str, severity: ErrorSeverity) -> None:
        self.errors.append((message, severity))


@pytest.fixture
def host() -> _Host:
    return _Host()


@pytest.fixture
def machine(directory, host) -> PartyFormStateMachine:
    return PartyFormStateMachine(directory, host, config=FormConfig(auto_close_delay_ms=10))


@pytest.fixture
def external(make_candidate) -> Candidate:
    return make_candidate(
        "Shree Steel",
        id="company-9",
        source_kind=SourceKind.EXTERNAL,
        phone="9123456780",
        tax_id="27ABCDE1234F1Z5",
        locality="Pune",
    )


def _fill(machine: PartyFormStateMachine, name: str = "Acme Traders", phone: str = "9876543210") -> None:
    machine.set_field("name", name)
    machine.set_field("phone", phone)


def test_open_defaults_and_modes(machine) -> None:
    draft = machine.open()
    assert machine.state == FormState.FULL_ADD
    assert draft.country == "INDIA"

    machine.open(mode=FormMode.QUICK)
    assert machine.state == FormState.QUICK_ADD


def test_fresh_open_resets_every_field(machine) -> None:
    machine.open()
    _fill(machine)
    machine.add_phone("9000000001")

    draft = machine.open()

    assert draft.name == ""
    assert draft.phone == ""
    assert len(draft.phone_numbers) == 1


def test_open_with_prefill_marks_name_user_owned(machine) -> None:
    draft = machine.open(prefill_name="  New Shop ")

    assert draft.name == "New Shop"
    assert draft.origin_of("name") == FieldOrigin.USER


def test_toggle_mode(machine) -> None:
    machine.open()

    assert machine.toggle_mode() == FormMode.QUICK
    assert machine.state == FormState.QUICK_ADD
    assert machine.toggle_mode() == FormMode.FULL


def test_existing_party_opens_in_full_mode_and_cannot_toggle(machine) -> None:
    party = Party(id="p-1", name="Acme", phone="9876543210")

    draft = machine.open(party, mode=FormMode.QUICK)

    assert draft.mode == FormMode.FULL
    assert draft.origin_of("name") == FieldOrigin.USER
    with pytest.raises(FormStateError):
        machine.toggle_mode()


def test_set_field_marks_user_origin_and_coerces_numbers(machine) -> None:
    machine.open()

    machine.set_field("email", "a@b.in")
    machine.set_field("credit_limit", "1,500")
    machine.set_field("home_address.pincode", "411001")

    draft = machine.draft
    assert draft.origin_of("email") == FieldOrigin.USER
    assert draft.credit_limit == 1500.0
    assert draft.home_address.pincode == "411001"


def test_set_field_rejects_unknown_and_read_only(machine) -> None:
    machine.open()

    with pytest.raises(FormStateError):
        machine.set_field("nonsense", "x")
    with pytest.raises(FormStateError):
        machine.set_field("linkage", None)


def test_editing_requires_open_form(machine) -> None:
    with pytest.raises(FormStateError):
        machine.set_field("name", "x")


def test_remove_last_phone_leaves_blank_entry(machine) -> None:
    machine.open()
    machine.add_phone("9000000001", "Shop")

    machine.remove_phone(0)
    machine.remove_phone(0)

    assert [p.number for p in machine.draft.phone_numbers] == [""]


def test_selecting_external_company_links_supplier(machine, host, external) -> None:
    machine.open(role=PartyRole.SUPPLIER)

    linkage = machine.select_candidate(external)

    assert linkage is not None
    assert linkage.bidirectional_orders_enabled is True
    assert machine.draft.name == "Shree Steel"
    assert host.selected == [external]


def test_selecting_internal_party_reports_duplicate(machine, host, make_candidate) -> None:
    machine.open()

    result = machine.select_candidate(make_candidate("Acme", id="p-7"))

    assert result is None
    assert machine.duplicate_of == "p-7"
    assert "name" in machine.field_errors
    assert host.errors[0][1] == ErrorSeverity.INFO


def test_role_switch_updates_linkage(machine, external) -> None:
    machine.open(role=PartyRole.SUPPLIER)
    machine.select_candidate(external)

    machine.set_role("customer")

    assert machine.draft.linkage.bidirectional_orders_enabled is False


@pytest.mark.asyncio
async def test_invalid_phone_fails_before_network(machine, directory, host) -> None:
    machine.open()
    _fill(machine, phone="12345")

    party = await machine.submit()

    assert party is None
    assert machine.state == FormState.FAILED
    assert "phone" in machine.field_errors
    assert directory.calls == []
    assert machine.is_editable


@pytest.mark.asyncio
async def test_duplicate_phone_blocks_submission(machine, directory) -> None:
    directory.duplicate_result = DuplicateCheckResult(exists=True, party_id="p-7", party_name="Acme Old")
    machine.open()
    _fill(machine)

    assert await machine.submit() is None

    assert machine.duplicate_of == "p-7"
    assert "phone" in machine.field_errors
    assert "create" not in directory.call_names()


@pytest.mark.asyncio
async def test_full_create_payload_and_result(machine, directory, host) -> None:
    directory.create_result = DirectoryEnvelope(
        data={"party": {"_id": "p-100", "createdAt": "2025-01-02T03:04:05Z"}}
    )
    machine.open()
    _fill(machine)
    machine.set_field("tax_registration", "registered")
    machine.set_field("tax_id", "27abcde1234f1z5")

    party = await machine.submit()

    assert party is not None
    assert party.id == "p-100"
    assert party.sync_status == SyncStatus.CONFIRMED
    assert party.created_at is not None and party.created_at.year == 2025
    assert host.saved == [(party, True)]
    assert machine.state == FormState.SUCCESS

    payload = next(call[1] for call in directory.calls if call[0] == "create")
    assert payload["partyType"] == "customer"
    assert payload["phoneNumber"] == "9876543210"
    assert payload["gstNumber"] == "27ABCDE1234F1Z5"
    assert payload["phoneNumbers"] == [{"number": "9876543210", "label": "Primary"}]
    assert payload["isExternalCompany"] is False
    assert "email" not in payload


@pytest.mark.asyncio
async def test_quick_create_posts_minimal_payload(machine, directory) -> None:
    machine.open(mode=FormMode.QUICK)
    _fill(machine)

    party = await machine.submit()

    assert party is not None and party.is_running_customer
    assert ("create_quick", {"name": "Acme Traders", "phone": "9876543210", "type": "customer"}) in directory.calls


@pytest.mark.asyncio
async def test_missing_server_id_marks_party_pending(machine, directory) -> None:
    directory.create_result = DirectoryEnvelope(data={})
    machine.open()
    _fill(machine)

    party = await machine.submit()

    assert party is not None
    assert party.id is None
    assert party.sync_status == SyncStatus.PENDING


@pytest.mark.asyncio
async def test_server_duplicate_message_is_field_scoped(machine, directory, host) -> None:
    directory.create_result = DirectoryError(
        "A party with phone number 9876543210 already exists in this company", status=400
    )
    machine.open()
    _fill(machine)

    assert await machine.submit() is None

    assert machine.state == FormState.FAILED
    assert "already exists" in machine.field_errors["phone"]
    assert host.errors[-1][1] == ErrorSeverity.ERROR


@pytest.mark.asyncio
async def test_generic_failure_keeps_form_editable(machine, directory) -> None:
    directory.create_result = DirectoryEnvelope(success=False, message="Server exploded")
    machine.open()
    _fill(machine)

    assert await machine.submit() is None

    assert machine.field_errors == {}
    assert machine.error_message == "Server exploded"
    machine.set_field("name", "Still editable")


@pytest.mark.asyncio
async def test_linked_supplier_create_merges_server_linking(machine, directory, external) -> None:
    directory.create_result = DirectoryEnvelope(
        data={
            "party": {"_id": "p-5"},
            "linkingInfo": {
                "hasLinkedCompany": True,
                "linkedCompanyId": "company-9",
                "bidirectionalOrdersReady": True,
                "isVerified": True,
            },
        }
    )
    machine.open(role=PartyRole.SUPPLIER)
    machine.select_candidate(external)
    machine.set_field("phone", "9876543210")

    party = await machine.submit()

    assert party is not None and party.linkage is not None
    assert party.linkage.verified is True
    assert party.linkage.local_party_id == "p-5"
    assert party.external_fields["name"] == FieldOrigin.EXTERNAL
    payload = next(call[1] for call in directory.calls if call[0] == "create")
    assert payload["enableBidirectionalOrders"] is True
    assert payload["externalCompanyId"] == "company-9"


@pytest.mark.asyncio
async def test_reopened_party_preserves_verified_link(machine, directory) -> None:
    party = Party(
        id="p-1",
        role=PartyRole.SUPPLIER,
        name="Shree Steel",
        phone="9123456780",
        linkage=LinkageRecord(
            external_company_id="company-9", verified=True, bidirectional_orders_enabled=True
        ),
    )
    directory.update_result = DirectoryEnvelope(data={"party": {"_id": "p-1"}})

    machine.open(party)
    machine.set_field("email", "new@shree.in")
    saved = await machine.submit()

    assert saved is not None and saved.linkage is not None
    assert saved.linkage.verified is True
    assert saved.linkage.external_company_id == "company-9"
    assert directory.call_names() == ["update"]
    payload = directory.calls[0][2]
    assert payload["externalCompanyId"] == "company-9"
    assert "isVerified" not in payload


@pytest.mark.asyncio
async def test_edit_with_new_phone_runs_duplicate_check(machine, directory) -> None:
    machine.open(Party(id="p-1", name="Acme", phone="9876543210"))
    machine.set_field("phone", "9876500000")

    await machine.submit()

    assert directory.call_names() == ["check_duplicate", "update"]


@pytest.mark.asyncio
async def test_success_auto_closes(machine) -> None:
    machine.open()
    _fill(machine)

    await machine.submit()
    assert machine.state == FormState.SUCCESS
    await asyncio.sleep(0.05)

    assert machine.state == FormState.CLOSED
    assert machine.draft is None


@pytest.mark.asyncio
async def test_mode_toggle_refused_while_submitting(machine, directory) -> None:
    gate = asyncio.Event()

    async def _slow_check(phone: str) -> DuplicateCheckResult:
        await gate.wait()
        return DuplicateCheckResult(exists=False)

    directory.check_duplicate = _slow_check
    machine.open()
    _fill(machine)

    task = asyncio.ensure_future(machine.submit())
    await asyncio.sleep(0)
    assert machine.state == FormState.SUBMITTING
    with pytest.raises(FormStateError):
        machine.toggle_mode()
    with pytest.raises(FormStateError):
        machine.open()

    gate.set()
    await task
    assert machine.state == FormState.SUCCESS
    machine.dispose()


def test_cancel_closes(machine) -> None:
    machine.open()
    machine.cancel()

    assert machine.state == FormState.CLOSED
    assert machine.is_open is False


@pytest.mark.asyncio
async def test_verified_flag_read_from_saved_party_record(machine, directory, external) -> None:
    directory.create_result = DirectoryEnvelope(
        data={
            "party": {"_id": "p-1", "linkedCompanyId": "company-9", "isVerified": True},
            "linkingInfo": {"hasLinkedCompany": True, "bidirectionalOrdersReady": True},
        }
    )
    machine.open(role=PartyRole.SUPPLIER)
    machine.select_candidate(external)
    machine.set_field("phone", "9876543210")

    saved = await machine.submit()

    assert saved is not None and saved.linkage is not None
    assert saved.linkage.verified is True
    assert saved.linkage.external_company_id == "company-9"

    directory.update_result = DirectoryEnvelope(
        data={"party": {"_id": "p-1", "linkedCompanyId": "company-9", "isVerified": False}}
    )
    machine.open(saved)
    machine.set_field("email", "accounts@shree.in")
    resaved = await machine.submit()

    update_payload = next(call[2] for call in directory.calls if call[0] == "update")
    assert "isVerified" not in update_payload
    assert resaved is not None and resaved.linkage is not None
    assert resaved.linkage.verified is True


@pytest.mark.asyncio
async def test_server_side_link_on_record_is_adopted(machine, directory) -> None:
    directory.create_result = DirectoryEnvelope(
        data={"party": {"_id": "p-2", "linkedCompanyId": {"_id": "company-3"}, "isVerified": True}}
    )
    machine.open(role=PartyRole.SUPPLIER)
    _fill(machine)

    party = await machine.submit()

    assert party is not None and party.linkage is not None
    assert party.linkage.external_company_id == "company-3"
    assert party.linkage.verified is True


def test_linked_draft_cannot_switch_to_quick(machine, external) -> None:
    machine.open(role=PartyRole.SUPPLIER)
    machine.select_candidate(external)

    with pytest.raises(FormStateError):
        machine.toggle_mode()

    machine.clear_link()
    assert machine.toggle_mode() == FormMode.QUICK


def test_linking_from_quick_mode_switches_to_full(machine, host, external) -> None:
    machine.open(mode=FormMode.QUICK, role=PartyRole.SUPPLIER)

    machine.select_candidate(external)

    assert machine.state == FormState.FULL_ADD
    assert machine.draft.mode == FormMode.FULL
    assert host.errors[-1][1] == ErrorSeverity.INFO


@pytest.mark.asyncio
async def test_quick_save_never_reports_an_unsent_link(machine, directory, external) -> None:
    machine.open(mode=FormMode.QUICK, role=PartyRole.SUPPLIER)
    _fill(machine, name="Shree Steel")
    # A link that slipped onto a quick draft is not part of the quick payload.
    machine.draft.linkage = LinkageRecord(external_company_id="company-9", bidirectional_orders_enabled=True)

    party = await machine.submit()

    payload = next(call[1] for call in directory.calls if call[0] == "create_quick")
    assert set(payload) == {"name", "phone", "type"}
    assert party is not None
    assert party.linkage is None


@pytest.mark.asyncio
async def test_unreadable_linking_info_does_not_strand_the_form(machine, directory) -> None:
    directory.create_result = DirectoryEnvelope(
        data={"party": {"_id": "p-3"}, "linkingInfo": {"autoLinkingEnabled": {"byGST": None}}}
    )
    machine.open()
    _fill(machine)

    party = await machine.submit()

    assert party is not None
    assert machine.state == FormState.SUCCESS
    machine.cancel()
    assert machine.state == FormState.CLOSED


@pytest.mark.asyncio
async def test_unexpected_error_leaves_form_editable(machine, directory, host) -> None:
    directory.create_result = RuntimeError("boom")
    machine.open()
    _fill(machine)

    assert await machine.submit() is None

    assert machine.state == FormState.FAILED
    assert machine.is_editable
    assert "boom" in machine.error_message
    assert host.errors[-1][1] == ErrorSeverity.ERROR
    machine.toggle_mode()
