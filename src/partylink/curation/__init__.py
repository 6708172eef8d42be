"""Curation package: validation and duplicate detection before save."""

from partylink.curation.duplicate_guard import DuplicateGuard, local_errors

__all__ = ["DuplicateGuard", "local_errors"]
