"""Tests for supplier linkage: adoption, precedence and server merge."""

from __future__ import annotations

import pytest

from partylink.errors import LinkageInconsistency
from partylink.linking.resolver import LinkageResolver
from partylink.storage.schemas import (
    Address,
    FieldOrigin,
    LinkageRecord,
    LinkageStatus,
    LinkingInfo,
    PartyDraft,
    PartyRole,
    SourceKind,
    TaxRegistration,
)


@pytest.fixture
def external(make_candidate):
    return make_candidate(
        "Shree Steel",
        id="company-9",
        source_kind=SourceKind.EXTERNAL,
        phone="9123456780",
        email="sales@shreesteel.in",
        tax_id="27abcde1234f1z5",
        address="12 MG Road",
        locality="Pune",
        state="Maharashtra",
        pincode="411001",
    )


def test_supplier_link_enables_bidirectional_orders(external) -> None:
    draft = PartyDraft(role=PartyRole.SUPPLIER)

    LinkageResolver().adopt(draft, external)

    assert draft.linkage is not None
    assert draft.linkage.external_company_id == "company-9"
    assert draft.linkage.bidirectional_orders_enabled is True
    assert draft.linkage.verified is False
    assert draft.linkage.status == LinkageStatus.PENDING


def test_customer_link_keeps_bidirectional_off(external) -> None:
    draft = PartyDraft(role=PartyRole.CUSTOMER)

    LinkageResolver().adopt(draft, external)

    assert draft.linkage is not None
    assert draft.linkage.bidirectional_orders_enabled is False


def test_auto_link_rules_default_true_and_accept_overrides(make_candidate) -> None:
    candidate = make_candidate(
        "Remote", id="c-1", source_kind=SourceKind.EXTERNAL, raw={"autoLinkByPhone": False}
    )

    linkage = LinkageResolver().build_linkage(candidate, PartyRole.SUPPLIER)

    assert linkage.auto_link_rules.by_tax_id is True
    assert linkage.auto_link_rules.by_phone is False
    assert linkage.auto_link_rules.by_email is True


def test_internal_candidate_cannot_be_linked(make_candidate) -> None:
    with pytest.raises(LinkageInconsistency):
        LinkageResolver().build_linkage(make_candidate("Local"), PartyRole.SUPPLIER)


def test_snapshot_fills_untouched_fields(external) -> None:
    draft = PartyDraft(role=PartyRole.SUPPLIER)

    LinkageResolver().adopt(draft, external)

    assert draft.name == "Shree Steel"
    assert draft.tax_id == "27ABCDE1234F1Z5"
    assert draft.tax_registration == TaxRegistration.REGISTERED
    assert draft.home_address.district == "Pune"
    assert draft.origin_of("tax_id") == FieldOrigin.EXTERNAL
    assert draft.external_snapshot["companyId"] == "company-9"


def test_user_edits_win_over_snapshot(external) -> None:
    draft = PartyDraft(role=PartyRole.SUPPLIER, name="My Label", phone="9876543210")
    draft.field_origins.update({"name": FieldOrigin.USER, "phone": FieldOrigin.USER})

    LinkageResolver().adopt(draft, external)

    assert draft.name == "My Label"
    assert draft.phone == "9876543210"
    assert draft.email == "sales@shreesteel.in"


def test_role_change_toggles_bidirectional(external) -> None:
    resolver = LinkageResolver()
    draft = PartyDraft(role=PartyRole.SUPPLIER)
    resolver.adopt(draft, external)

    draft.role = PartyRole.CUSTOMER
    resolver.on_role_changed(draft)
    assert draft.linkage.bidirectional_orders_enabled is False
    assert draft.linkage.external_company_id == "company-9"

    draft.role = PartyRole.SUPPLIER
    resolver.on_role_changed(draft)
    assert draft.linkage.bidirectional_orders_enabled is True


def test_clear_link_resets_snapshot_fields_only(external) -> None:
    resolver = LinkageResolver()
    draft = PartyDraft(role=PartyRole.SUPPLIER, name="Typed Name")
    draft.field_origins["name"] = FieldOrigin.USER
    resolver.adopt(draft, external)

    resolver.clear_link(draft)

    assert draft.linkage is None
    assert draft.name == "Typed Name"
    assert draft.tax_id == ""
    assert draft.home_address == Address()
    assert draft.external_snapshot == {}


def test_readopting_same_company_keeps_verified(external) -> None:
    existing = LinkageRecord(external_company_id="company-9", verified=True, local_party_id="p-1")

    linkage = LinkageResolver().build_linkage(external, PartyRole.SUPPLIER, existing=existing)

    assert linkage.verified is True
    assert linkage.local_party_id == "p-1"


def test_server_linking_never_downgrades_verified() -> None:
    linkage = LinkageRecord(external_company_id="company-9", verified=True)
    info = LinkingInfo.model_validate({"linkedCompanyId": "company-9", "isVerified": False})

    merged = LinkageResolver().apply_server_linking(linkage, info, party_id="p-1")

    assert merged is not None
    assert merged.verified is True
    assert merged.local_party_id == "p-1"


def test_server_can_verify_and_set_rules() -> None:
    linkage = LinkageRecord(external_company_id="company-9")
    info = LinkingInfo.model_validate(
        {
            "hasLinkedCompany": True,
            "linkedCompanyId": "company-9",
            "isVerified": True,
            "autoLinkingEnabled": {"byGST": True, "byPhone": False, "byEmail": True},
        }
    )

    merged = LinkageResolver().apply_server_linking(linkage, info)

    assert merged.verified is True
    assert merged.auto_link_rules.by_phone is False


def test_server_linking_without_link_is_none() -> None:
    assert LinkageResolver().apply_server_linking(None, LinkingInfo()) is None


def test_payload_for_linked_supplier(external) -> None:
    resolver = LinkageResolver()
    draft = PartyDraft(role=PartyRole.SUPPLIER)
    resolver.adopt(draft, external)

    payload = resolver.to_payload(draft)

    assert payload["externalCompanyId"] == "company-9"
    assert payload["linkedCompanyId"] == "company-9"
    assert payload["isLinkedSupplier"] is True
    assert payload["enableBidirectionalOrders"] is True
    assert payload["autoLinkByGST"] is True
    assert payload["supplierCompanyData"]["gstin"] == "27ABCDE1234F1Z5"
    assert "isVerified" not in payload


def test_payload_for_unlinked_party() -> None:
    payload = LinkageResolver().to_payload(PartyDraft())

    assert payload["isExternalCompany"] is False
    assert payload["enableBidirectionalOrders"] is False


def test_bidirectional_without_company_is_rejected() -> None:
    with pytest.raises(ValueError):
        LinkageRecord(bidirectional_orders_enabled=True)
