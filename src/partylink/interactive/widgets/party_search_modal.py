"""Modal screen for searching parties and external companies."""

from typing import Optional

from rich.markup import escape
from textual import events, on
from textual.app import ComposeResult
from textual.containers import Container
from textual.css.query import NoMatches
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Static

from partylink.directory.client import DirectoryService
from partylink.errors import ErrorSeverity
from partylink.interactive.keybindings import SUGGESTION_BINDINGS
from partylink.search.field import SearchField
from partylink.search.suggestions import CommitAction, SuggestionCommit, SuggestionKind, SuggestionList
from partylink.storage.schemas import Candidate

NOTIFY_SEVERITY = {
    ErrorSeverity.INFO: "information",
    ErrorSeverity.WARNING: "warning",
    ErrorSeverity.ERROR: "error",
}


def render_suggestions(suggestions: SuggestionList) -> str:
    """Markup for the suggestion rows, highlighting the cursor row."""
    if not suggestions.is_open:
        return "[dim]Type at least two characters to search[/dim]"

    lines = []
    for index, entry in enumerate(suggestions.entries):
        candidate = entry.candidate
        if entry.kind == SuggestionKind.CREATE_NEW or candidate is None:
            text = f"[green]+ {escape(entry.label)}[/green]"
        else:
            details = " | ".join(part for part in (candidate.phone, candidate.tax_id, candidate.locality) if part)
            tag = "[magenta]external[/magenta]" if candidate.is_external else "[cyan]party[/cyan]"
            text = f"{escape(candidate.display_name)} {tag}"
            if details:
                text += f" [dim]{escape(details)}[/dim]"
        prefix = "> " if index == suggestions.cursor else "  "
        if index == suggestions.cursor:
            text = f"[reverse]{text}[/reverse]"
        lines.append(prefix + text)
    return "\n".join(lines)


class SuggestionPanel(Static):
    """Read-only view of a SuggestionList."""

    def show_list(self, suggestions: SuggestionList) -> None:
        self.update(render_suggestions(suggestions))


class PartySearchModal(ModalScreen[Optional[SuggestionCommit]]):
    """Live party search; dismisses with the committed suggestion or None."""

    BINDINGS = SUGGESTION_BINDINGS

    CSS = """
    PartySearchModal {
        align: center middle;
    }

    #search-container {
        width: 90;
        height: 30;
        background: $surface;
        border: thick $primary;
        padding: 1 2;
    }

    #search-title {
        width: 100%;
        content-align: center middle;
        text-style: bold;
        margin-bottom: 1;
    }

    #suggestions {
        height: 1fr;
        border: solid $secondary;
        margin: 1 0;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        field: SearchField,
        *,
        directory: DirectoryService | None = None,
        title: str = "Search Parties",
        initial_query: str = "",
    ) -> None:
        super().__init__()
        self.field = field
        self.directory = directory
        self.title_text = title
        self.initial_query = initial_query
        field.on_entity_selected = self._entity_selected
        field.on_create_requested = self._create_requested
        field.on_error = self._lookup_error
        field.on_suggestions_changed = self._refresh_suggestions

    def compose(self) -> ComposeResult:
        with Container(id="search-container"):
            yield Label(self.title_text, id="search-title")
            yield Input(
                value=self.initial_query,
                placeholder="Name, phone or GSTIN...",
                id="party-search-input",
            )
            yield SuggestionPanel(id="suggestions")

    def on_mount(self) -> None:
        self._refresh_suggestions()
        self.query_one("#party-search-input", Input).focus()
        if self.directory is not None and not self.field.cascade.cache.is_primed:
            self.run_worker(self.field.preload(self.directory), exclusive=True, group="preload")

    def on_unmount(self) -> None:
        self.field.close()

    @on(Input.Changed, "#party-search-input")
    def on_input_changed(self, event: Input.Changed) -> None:
        self.field.text_changed(event.value)

    @on(Input.Submitted, "#party-search-input")
    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.field.key_enter()

    def on_descendant_blur(self, event: events.DescendantBlur) -> None:
        # The panel is not focusable, so leaving the input always closes the list.
        self.field.blur(landed_on_suggestions=False)

    def action_cursor_down(self) -> None:
        self.field.key_down()

    def action_cursor_up(self) -> None:
        self.field.key_up()

    def action_dismiss_suggestions(self) -> None:
        if self.field.suggestions.is_open:
            self.field.key_escape()
        else:
            self.dismiss(None)

    # SearchField callbacks ------------------------------------------
    def _entity_selected(self, candidate: Candidate) -> None:
        self.query_one("#party-search-input", Input).value = self.field.text
        self.dismiss(SuggestionCommit(action=CommitAction.SELECT, candidate=candidate))

    def _create_requested(self, query: str) -> None:
        self.dismiss(SuggestionCommit(action=CommitAction.CREATE, query=query))

    def _lookup_error(self, message: str, severity: ErrorSeverity) -> None:
        self.app.notify(message, severity=NOTIFY_SEVERITY[severity], markup=False)

    def _refresh_suggestions(self) -> None:
        try:
            self.query_one(SuggestionPanel).show_list(self.field.suggestions)
        except NoMatches:
            # Panel not mounted yet
            pass
