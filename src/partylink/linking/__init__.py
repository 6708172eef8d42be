"""Supplier linkage package."""

from partylink.linking.resolver import LinkageResolver

__all__ = ["LinkageResolver"]
