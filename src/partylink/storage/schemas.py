"""Pydantic models for parties, search candidates and supplier linkage."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SourceKind(str, Enum):
    """Where a search candidate came from."""

    INTERNAL = "internal"
    EXTERNAL = "external"


class SearchScope(str, Enum):
    """Directory scopes a lookup can target."""

    INTERNAL = "internal"
    EXTERNAL = "external"
    VERIFIED = "verified"


class PartyRole(str, Enum):
    """Role of a party in the books."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class FormMode(str, Enum):
    """Party form layout."""

    QUICK = "quick"
    FULL = "full"


class TaxRegistration(str, Enum):
    """GST registration status of a party."""

    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


class FieldOrigin(str, Enum):
    """Who last wrote a draft field."""

    DEFAULT = "default"
    USER = "user"
    EXTERNAL = "external"


class LinkageStatus(str, Enum):
    """Lifecycle of a supplier link: Unlinked -> Linked(pending) -> Linked(verified)."""

    UNLINKED = "unlinked"
    PENDING = "pending"
    VERIFIED = "verified"


class SyncStatus(str, Enum):
    """Whether the server confirmed a saved party with an identifier."""

    CONFIRMED = "confirmed"
    PENDING = "pending"


class Candidate(BaseModel):
    """Normalized search result for an internal party or an external company."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="", description="Directory identifier")
    display_name: str = Field(default="", description="Name shown in suggestions")
    phone: str = Field(default="", description="Primary phone number")
    email: str = Field(default="")
    company_name: str = Field(default="")
    tax_id: str = Field(default="", description="GSTIN when known")
    balance: float = Field(default=0.0)
    credit_limit: float = Field(default=0.0)
    address: str = Field(default="")
    locality: str = Field(default="", description="City or district")
    state: str = Field(default="")
    pincode: str = Field(default="")
    source_kind: SourceKind = Field(..., description="Fixed when the normalizer creates the candidate")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Record as returned by the directory")

    @property
    def is_external(self) -> bool:
        return self.source_kind == SourceKind.EXTERNAL


class AutoLinkRules(BaseModel):
    """Which attributes the server may use to auto-link orders."""

    by_tax_id: bool = True
    by_phone: bool = True
    by_email: bool = True


class LinkageRecord(BaseModel):
    """Durable association between a local supplier and an external company."""

    local_party_id: Optional[str] = Field(default=None)
    external_company_id: Optional[str] = Field(default=None)
    auto_link_rules: AutoLinkRules = Field(default_factory=AutoLinkRules)
    bidirectional_orders_enabled: bool = Field(default=False)
    verified: bool = Field(default=False, description="Owned by the server; never downgraded locally")

    @model_validator(mode="after")
    def _bidirectional_requires_company(self) -> "LinkageRecord":
        if self.bidirectional_orders_enabled and not self.external_company_id:
            raise ValueError("bidirectional orders require an external company id")
        return self

    @property
    def status(self) -> LinkageStatus:
        if not self.external_company_id:
            return LinkageStatus.UNLINKED
        return LinkageStatus.VERIFIED if self.verified else LinkageStatus.PENDING


class PhoneNumber(BaseModel):
    """Additional phone number with a free-form label."""

    number: str = ""
    label: str = ""


class Address(BaseModel):
    """Postal address as captured by the party form."""

    line: str = ""
    pincode: str = ""
    state: str = ""
    district: str = ""
    taluka: str = ""

    def is_empty(self) -> bool:
        return not any((self.line, self.pincode, self.state, self.district, self.taluka))


# Draft fields whose origin (default / user / external snapshot) is tracked.
TRACKED_FIELDS = (
    "name",
    "email",
    "phone",
    "company_name",
    "tax_id",
    "tax_registration",
    "home_address",
)


class PartyDraft(BaseModel):
    """Mutable party form state, from form open until submit or cancel."""

    mode: FormMode = FormMode.FULL
    role: PartyRole = PartyRole.CUSTOMER
    party_id: Optional[str] = Field(default=None, description="Set when editing an existing party")

    name: str = ""
    email: str = ""
    phone: str = ""
    company_name: str = ""
    tax_id: str = ""
    tax_registration: TaxRegistration = TaxRegistration.UNREGISTERED
    phone_numbers: List[PhoneNumber] = Field(default_factory=lambda: [PhoneNumber()])

    credit_limit: float = 0.0
    opening_balance: float = 0.0
    opening_balance_type: Literal["debit", "credit"] = "debit"
    country: str = "INDIA"

    home_address: Address = Field(default_factory=Address)
    delivery_address: Address = Field(default_factory=Address)
    same_as_home: bool = False

    linkage: Optional[LinkageRecord] = None
    external_snapshot: Dict[str, Any] = Field(
        default_factory=dict, description="Business fields copied from the linked company"
    )
    field_origins: Dict[str, FieldOrigin] = Field(default_factory=dict)
    original_phone: str = Field(default="", description="Primary phone when the form was opened")
    created_at: Optional[datetime] = None

    @field_validator("phone_numbers")
    @classmethod
    def _at_least_one_phone_entry(cls, v: List[PhoneNumber]) -> List[PhoneNumber]:
        return v or [PhoneNumber()]

    @property
    def is_new(self) -> bool:
        return self.party_id is None

    @property
    def phone_changed(self) -> bool:
        return self.phone.strip() != self.original_phone.strip()

    def origin_of(self, field: str) -> FieldOrigin:
        return self.field_origins.get(field, FieldOrigin.DEFAULT)

    def effective_delivery_address(self) -> Address:
        if self.same_as_home:
            return self.home_address.model_copy()
        return self.delivery_address

    @classmethod
    def from_party(cls, party: "Party") -> "PartyDraft":
        """Build an edit draft for an existing party; every field counts as user-owned."""
        draft = cls(
            mode=FormMode.FULL,
            role=party.role,
            party_id=party.id,
            name=party.name,
            email=party.email,
            phone=party.phone,
            company_name=party.company_name,
            tax_id=party.tax_id,
            tax_registration=party.tax_registration,
            phone_numbers=[p.model_copy() for p in party.phone_numbers] or [PhoneNumber()],
            credit_limit=party.credit_limit,
            opening_balance=party.opening_balance,
            opening_balance_type=party.opening_balance_type,
            country=party.country,
            home_address=party.home_address.model_copy(),
            delivery_address=party.delivery_address.model_copy(),
            same_as_home=party.same_as_home,
            linkage=party.linkage.model_copy(deep=True) if party.linkage else None,
            original_phone=party.phone,
            created_at=party.created_at,
        )
        draft.field_origins = {
            field: FieldOrigin.USER for field in TRACKED_FIELDS if getattr(draft, field)
        }
        draft.field_origins.update(party.external_fields)
        return draft


class Party(BaseModel):
    """Finalized party handed back to the host after a successful save."""

    id: Optional[str] = Field(default=None, description="Server-assigned; None while sync is pending")
    role: PartyRole = PartyRole.CUSTOMER
    name: str
    email: str = ""
    phone: str = ""
    company_name: str = ""
    tax_id: str = ""
    tax_registration: TaxRegistration = TaxRegistration.UNREGISTERED
    phone_numbers: List[PhoneNumber] = Field(default_factory=list)
    credit_limit: float = 0.0
    opening_balance: float = 0.0
    opening_balance_type: Literal["debit", "credit"] = "debit"
    country: str = "INDIA"
    home_address: Address = Field(default_factory=Address)
    delivery_address: Address = Field(default_factory=Address)
    same_as_home: bool = False
    is_running_customer: bool = False
    linkage: Optional[LinkageRecord] = None
    external_fields: Dict[str, FieldOrigin] = Field(
        default_factory=dict, description="Fields snapshot from a linked external company"
    )
    sync_status: SyncStatus = SyncStatus.CONFIRMED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DirectoryEnvelope(BaseModel):
    """Response envelope every directory endpoint returns."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    message: str = ""
    data: Any = None

    @property
    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class DuplicateCheckResult(BaseModel):
    """Outcome of a remote phone-existence check."""

    exists: bool = False
    party_id: Optional[str] = None
    party_name: str = ""
    checked: bool = Field(default=True, description="False when the check service was unreachable")


class LinkingInfo(BaseModel):
    """Server view of a party's link, returned by create/update."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_linked_company: bool = Field(default=False, alias="hasLinkedCompany")
    bidirectional_orders_ready: bool = Field(default=False, alias="bidirectionalOrdersReady")
    linked_company_id: Optional[str] = Field(default=None, alias="linkedCompanyId")
    verified: Optional[bool] = Field(default=None, alias="isVerified")
    auto_linking_enabled: Dict[str, bool] = Field(default_factory=dict, alias="autoLinkingEnabled")
