"""Pre-submit checks: local pattern validation and remote duplicate detection."""

from __future__ import annotations

import re
from typing import Dict

from loguru import logger

from partylink.directory.client import DirectoryService
from partylink.errors import DirectoryError, DuplicateError, ValidationError
from partylink.storage.schemas import DuplicateCheckResult, FormMode, PartyDraft, TaxRegistration

PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
PINCODE_PATTERN = re.compile(r"^\d{6}$")
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100


def local_errors(draft: PartyDraft) -> Dict[str, str]:
    """Collect field-scoped validation messages without touching the network."""
    errors: Dict[str, str] = {}

    name = draft.name.strip()
    if not name:
        errors["name"] = "Name is required"
    elif len(name) < NAME_MIN_LENGTH:
        errors["name"] = f"Name must be at least {NAME_MIN_LENGTH} characters long"
    elif len(name) > NAME_MAX_LENGTH:
        errors["name"] = f"Name cannot exceed {NAME_MAX_LENGTH} characters"

    phone = draft.phone.strip()
    if not phone:
        errors["phone"] = "Phone number is required"
    elif not PHONE_PATTERN.match(phone):
        errors["phone"] = "Enter a valid 10-digit mobile number starting with 6-9"

    if draft.mode == FormMode.QUICK:
        return errors

    email = draft.email.strip()
    if email and not EMAIL_PATTERN.match(email):
        errors["email"] = "Enter a valid email address"

    if draft.tax_registration == TaxRegistration.REGISTERED:
        tax_id = draft.tax_id.strip().upper()
        if not GSTIN_PATTERN.match(tax_id):
            errors["tax_id"] = "Enter a valid 15-character GSTIN"

    if draft.credit_limit < 0:
        errors["credit_limit"] = "Credit limit cannot be negative"
    if draft.opening_balance < 0:
        errors["opening_balance"] = "Opening balance cannot be negative"

    for index, extra in enumerate(draft.phone_numbers):
        number = extra.number.strip()
        if number and not PHONE_PATTERN.match(number):
            errors[f"phone_numbers.{index}"] = "Enter a valid 10-digit mobile number starting with 6-9"

    for prefix, address in (("home_address", draft.home_address), ("delivery_address", draft.delivery_address)):
        if address.pincode and not PINCODE_PATTERN.match(address.pincode.strip()):
            errors[f"{prefix}.pincode"] = "Enter a valid 6-digit PIN code"

    return errors


class DuplicateGuard:
    """Blocks submission of invalid or duplicate parties."""

    def __init__(self, directory: DirectoryService) -> None:
        self.directory = directory

    def validate(self, draft: PartyDraft) -> None:
        """Raise ValidationError listing every failing field."""
        errors = local_errors(draft)
        if errors:
            raise ValidationError(errors)

    async def check_remote(self, draft: PartyDraft) -> DuplicateCheckResult:
        """Ask the directory whether the (changed) phone already belongs to another party.

        Fails open: an unreachable check service never blocks the user.
        """
        phone = draft.phone.strip()
        if not draft.is_new and not draft.phone_changed:
            return DuplicateCheckResult(exists=False)

        try:
            result = await self.directory.check_duplicate(phone)
        except DirectoryError as exc:
            logger.warning("Duplicate check unavailable for {}; continuing without it: {}", phone, exc)
            return DuplicateCheckResult(exists=False, checked=False)

        if not result.checked:
            logger.warning("Duplicate check skipped for {}; continuing without it", phone)
            return result

        if result.exists and (draft.is_new or result.party_id != draft.party_id):
            name = result.party_name or "another party"
            raise DuplicateError(
                f"A party with phone number {phone} already exists ({name})",
                field="phone",
                existing_id=result.party_id,
                existing_name=result.party_name,
            )
        return result

    async def check(self, draft: PartyDraft) -> DuplicateCheckResult:
        """Local rules first; the remote check runs only if they all pass."""
        self.validate(draft)
        return await self.check_remote(draft)
