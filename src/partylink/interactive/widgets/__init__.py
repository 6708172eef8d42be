"""Textual widgets for the party entry interface."""

from .party_search_modal import PartySearchModal, SuggestionPanel
from .status_bar import STATUS_BAR_CSS, StatusBar

__all__ = [
    "PartySearchModal",
    "STATUS_BAR_CSS",
    "StatusBar",
    "SuggestionPanel",
]
