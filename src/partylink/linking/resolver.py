"""Supplier linkage: adopting an external company into a party draft.

Linking a supplier party to an external company's directory record lets the
order service mirror purchase orders into the supplier's own books. This
module owns the client side of that link:

* building the :class:`LinkageRecord` when an external candidate is chosen,
* snapshotting the company's business fields into the draft without ever
  overwriting what the user typed (user edits > snapshot > defaults),
* keeping ``bidirectional_orders_enabled`` consistent with the party role,
* merging the server's ``linkingInfo`` back without downgrading ``verified``.

``verified`` is owned by the server: it is read back from responses and never
sent in a payload.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from loguru import logger

from partylink.errors import LinkageInconsistency
from partylink.storage.schemas import (
    Address,
    AutoLinkRules,
    Candidate,
    FieldOrigin,
    LinkageRecord,
    LinkingInfo,
    PartyDraft,
    PartyRole,
    TaxRegistration,
)

# Candidate raw keys that may override the all-true auto-link defaults.
AUTO_LINK_OVERRIDES: Dict[str, Tuple[str, ...]] = {
    "by_tax_id": ("autoLinkByGST", "autoLinkByTaxId"),
    "by_phone": ("autoLinkByPhone",),
    "by_email": ("autoLinkByEmail",),
}

# Keys the server uses in linkingInfo.autoLinkingEnabled.
SERVER_AUTO_LINK_KEYS: Dict[str, str] = {
    "by_tax_id": "byGST",
    "by_phone": "byPhone",
    "by_email": "byEmail",
}


class LinkageResolver:
    """Compute and maintain supplier linkage metadata on a draft."""

    def build_linkage(
        self,
        candidate: Candidate,
        role: PartyRole,
        *,
        existing: Optional[LinkageRecord] = None,
        local_party_id: Optional[str] = None,
    ) -> LinkageRecord:
        """LinkageRecord for adopting ``candidate`` as a party with ``role``."""
        if not candidate.is_external:
            raise LinkageInconsistency("only external companies can be linked")
        if not candidate.id:
            raise LinkageInconsistency(f"external company '{candidate.display_name}' has no identifier")

        rules = AutoLinkRules()
        for field, keys in AUTO_LINK_OVERRIDES.items():
            for key in keys:
                if isinstance(candidate.raw.get(key), bool):
                    setattr(rules, field, candidate.raw[key])
                    break

        # Re-adopting the same company keeps the server's verdict.
        same_company = existing is not None and existing.external_company_id == candidate.id
        return LinkageRecord(
            local_party_id=local_party_id or (existing.local_party_id if existing else None),
            external_company_id=candidate.id,
            auto_link_rules=rules,
            bidirectional_orders_enabled=role == PartyRole.SUPPLIER,
            verified=bool(same_company and existing.verified),
        )

    def adopt(self, draft: PartyDraft, candidate: Candidate) -> PartyDraft:
        """Link ``draft`` to an external company and snapshot its business fields."""
        draft.linkage = self.build_linkage(
            candidate, draft.role, existing=draft.linkage, local_party_id=draft.party_id
        )
        self._apply_snapshot(draft, candidate)
        logger.info(
            "Linked draft '{}' to external company {} (bidirectional={})",
            draft.name,
            candidate.id,
            draft.linkage.bidirectional_orders_enabled,
        )
        return draft

    def on_role_changed(self, draft: PartyDraft) -> PartyDraft:
        """Bidirectional orders follow the role: suppliers only."""
        if draft.linkage is not None:
            enabled = draft.role == PartyRole.SUPPLIER and bool(draft.linkage.external_company_id)
            draft.linkage = draft.linkage.model_copy(update={"bidirectional_orders_enabled": enabled})
        return draft

    def clear_link(self, draft: PartyDraft) -> PartyDraft:
        """Drop the link and every snapshot value the user did not edit."""
        defaults = PartyDraft()
        for field, origin in list(draft.field_origins.items()):
            if origin == FieldOrigin.EXTERNAL:
                setattr(draft, field, getattr(defaults, field))
                del draft.field_origins[field]
        draft.linkage = None
        draft.external_snapshot = {}
        return draft

    def apply_server_linking(
        self, linkage: Optional[LinkageRecord], info: Optional[LinkingInfo], *, party_id: Optional[str] = None
    ) -> Optional[LinkageRecord]:
        """Merge the server's linking info; ``verified`` can only go up."""
        if linkage is None and (info is None or not info.linked_company_id):
            return None

        linkage = linkage.model_copy(deep=True) if linkage else LinkageRecord()
        updates: Dict[str, Any] = {}
        if party_id:
            updates["local_party_id"] = party_id
        if info is not None:
            if info.linked_company_id:
                updates["external_company_id"] = info.linked_company_id
            if info.verified:
                updates["verified"] = True
            if info.auto_linking_enabled:
                rules = linkage.auto_link_rules.model_copy()
                for field, key in SERVER_AUTO_LINK_KEYS.items():
                    if key in info.auto_linking_enabled:
                        setattr(rules, field, bool(info.auto_linking_enabled[key]))
                updates["auto_link_rules"] = rules
        return linkage.model_copy(update=updates)

    def to_payload(self, draft: PartyDraft) -> Dict[str, Any]:
        """Wire fields describing the draft's link (``isVerified`` is server-assigned)."""
        linkage = draft.linkage
        if linkage is None or not linkage.external_company_id:
            return {
                "linkedCompanyId": None,
                "externalCompanyId": None,
                "isLinkedSupplier": False,
                "enableBidirectionalOrders": False,
                "isExternalCompany": False,
                "source": "Manual Entry",
            }

        rules = linkage.auto_link_rules
        return {
            "linkedCompanyId": linkage.external_company_id,
            "externalCompanyId": linkage.external_company_id,
            "isLinkedSupplier": draft.role == PartyRole.SUPPLIER,
            "enableBidirectionalOrders": linkage.bidirectional_orders_enabled,
            "autoLinkByGST": rules.by_tax_id,
            "autoLinkByPhone": rules.by_phone,
            "autoLinkByEmail": rules.by_email,
            "isExternalCompany": True,
            "source": "External Company Directory",
            "supplierCompanyData": dict(draft.external_snapshot) or None,
        }

    def _apply_snapshot(self, draft: PartyDraft, candidate: Candidate) -> None:
        tax_id = candidate.tax_id.upper()
        snapshot: Dict[str, Any] = {
            "name": candidate.display_name,
            "email": candidate.email,
            "phone": candidate.phone,
            "company_name": candidate.company_name or candidate.display_name,
            "tax_id": tax_id,
            "tax_registration": TaxRegistration.REGISTERED if tax_id else None,
            "home_address": Address(
                line=candidate.address,
                pincode=candidate.pincode,
                state=candidate.state,
                district=candidate.locality,
            ),
        }

        for field, value in snapshot.items():
            if value is None or value == "" or (isinstance(value, Address) and value.is_empty()):
                continue
            if draft.origin_of(field) == FieldOrigin.USER:
                continue
            setattr(draft, field, value)
            draft.field_origins[field] = FieldOrigin.EXTERNAL

        draft.external_snapshot = {
            "companyId": candidate.id,
            "businessName": candidate.display_name,
            "gstin": tax_id,
            "phoneNumber": candidate.phone,
            "email": candidate.email,
            "address": candidate.address,
            "city": candidate.locality,
            "state": candidate.state,
            "pincode": candidate.pincode,
        }
