"""Keyboard shortcut definitions for the party entry interface."""

from textual.binding import Binding

# Suggestion navigation (handled by PartySearchModal while its input has focus)
SUGGESTION_BINDINGS = [
    Binding("down", "cursor_down", "Next", show=False),
    Binding("up", "cursor_up", "Previous", show=False),
    Binding("escape", "dismiss_suggestions", "Close", show=True),
]

# Form bindings (handled by PartyFormApp)
FORM_BINDINGS = [
    Binding("ctrl+f", "search", "Search", show=True, priority=True),
    Binding("ctrl+s", "save", "Save", show=True, priority=True),
    Binding("ctrl+t", "toggle_mode", "Quick/Full", show=True, priority=True),
    Binding("ctrl+r", "toggle_role", "Customer/Supplier", show=True, priority=True),
    Binding("ctrl+e", "toggle_scope", "Directory", show=True, priority=True),
    Binding("ctrl+u", "clear_link", "Unlink", show=True, priority=True),
    Binding("ctrl+n", "new_party", "New", show=True, priority=True),
]

# System bindings
SYSTEM_BINDINGS = [
    Binding("ctrl+q", "quit", "Quit", show=True, priority=True),
]

ALL_BINDINGS = FORM_BINDINGS + SYSTEM_BINDINGS
