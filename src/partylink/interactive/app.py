"""Main Textual application for searching, linking and entering parties."""

from pathlib import Path
from typing import Callable, Dict, Optional

from loguru import logger
from textual import on, work
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import Footer, Header, Input, Label, Static

from partylink.directory.client import DirectoryClient, DirectoryService, create_directory_client
from partylink.errors import ErrorSeverity, FormStateError, PartyLinkError
from partylink.forms.party_form import FormState, PartyFormStateMachine
from partylink.interactive.keybindings import ALL_BINDINGS
from partylink.interactive.widgets import STATUS_BAR_CSS, PartySearchModal, StatusBar
from partylink.interactive.widgets.party_search_modal import NOTIFY_SEVERITY
from partylink.search.field import SearchField
from partylink.search.normalizer import CandidateNormalizer
from partylink.search.strategies import CandidateCache, build_default_cascade
from partylink.search.suggestions import CommitAction, SuggestionCommit
from partylink.storage.schemas import (
    Candidate,
    FormMode,
    LinkageStatus,
    Party,
    PartyDraft,
    PartyRole,
    SearchScope,
)
from partylink.utils.config import Config, load_config
from partylink.utils.logging import setup_logging

# (input id, draft field, label, modes it is shown in)
FORM_FIELDS = [
    ("name", "name", "Name", {FormMode.QUICK, FormMode.FULL}),
    ("phone", "phone", "Phone", {FormMode.QUICK, FormMode.FULL}),
    ("email", "email", "Email", {FormMode.FULL}),
    ("company-name", "company_name", "Company", {FormMode.FULL}),
    ("tax-id", "tax_id", "GSTIN", {FormMode.FULL}),
    ("credit-limit", "credit_limit", "Credit limit", {FormMode.FULL}),
    ("opening-balance", "opening_balance", "Opening balance", {FormMode.FULL}),
    ("address-line", "home_address.line", "Address", {FormMode.FULL}),
    ("pincode", "home_address.pincode", "PIN code", {FormMode.FULL}),
    ("state", "home_address.state", "State", {FormMode.FULL}),
]
FIELD_BY_INPUT: Dict[str, str] = {input_id: field for input_id, field, _, _ in FORM_FIELDS}


def draft_value(draft: PartyDraft, field: str) -> str:
    """Text shown in the input bound to ``field``."""
    head, _, tail = field.partition(".")
    value = getattr(draft, head)
    if tail:
        value = getattr(value, tail)
    if isinstance(value, float):
        return "" if value == 0 else f"{value:g}"
    return str(value or "")


class AppFormHost:
    """Routes form callbacks to the app without clashing with Textual's ``on_*`` handlers."""

    def __init__(self, app: "PartyFormApp") -> None:
        self.app = app

    def on_entity_selected(self, candidate: Candidate) -> None:
        logger.info("Selected {} '{}'", candidate.source_kind.value, candidate.display_name)

    def on_draft_saved(self, party: Party, is_new: bool) -> None:
        verb = "Created" if is_new else "Updated"
        suffix = "" if party.id else " (awaiting server id)"
        self.app.notify(f"{verb} {party.role.value} '{party.name}'{suffix}", severity="information")
        self.app.set_timer(self.app.config.form.auto_close_delay_seconds + 0.1, self.app.reopen_after_save)

    def on_error(self, message: str, severity: ErrorSeverity) -> None:
        self.app.notify(message, severity=NOTIFY_SEVERITY[severity], markup=False)


class PartyFormApp(App):
    """Interactive party entry with live search and supplier linking."""

    CSS = (
        """
    Screen {
        background: $surface;
    }

    #form-container {
        width: 100%;
        height: 1fr;
        padding: 1 2;
    }

    .form-row {
        height: auto;
        margin-bottom: 1;
    }

    .field-label {
        width: 18;
        padding-top: 1;
        color: $text-muted;
    }

    .field-input {
        width: 1fr;
    }

    .field-error {
        color: $error;
        margin-left: 18;
    }

    #link-panel {
        height: auto;
        border: solid $accent;
        padding: 0 1;
        margin-bottom: 1;
    }
    """
        + STATUS_BAR_CSS
    )

    BINDINGS = ALL_BINDINGS

    def __init__(
        self,
        config_path: Path = Path("config/config.yaml"),
        *,
        directory: DirectoryService | None = None,
        config: Config | None = None,
    ) -> None:
        super().__init__()
        self._startup_error: Optional[str] = None
        self.config: Config = config or Config()
        if config is None:
            try:
                self.config = load_config(config_path)
            except (FileNotFoundError, ValueError) as e:
                self._startup_error = f"Failed to load config: {e}"
        setup_logging(self.config.logging)

        self._owns_directory = directory is None
        self.directory: DirectoryService = directory or create_directory_client(self.config.directory)
        self.normalizer = CandidateNormalizer()
        self.scope = SearchScope(self.config.search.scope)
        self.caches: Dict[SearchScope, CandidateCache] = {}
        self.machine = PartyFormStateMachine(self.directory, AppFormHost(self), config=self.config.form)

    # Layout ---------------------------------------------------------
    def compose(self) -> ComposeResult:
        yield Header()
        with VerticalScroll(id="form-container"):
            yield Static(id="link-panel")
            for input_id, _field, label, _modes in FORM_FIELDS:
                with Vertical(classes="form-row", id=f"row-{input_id}"):
                    with Horizontal():
                        yield Label(label, classes="field-label")
                        yield Input(id=input_id, classes="field-input")
                    yield Static("", classes="field-error", id=f"error-{input_id}")
        yield StatusBar()
        yield Footer()

    def on_mount(self) -> None:
        self.title = "Party Entry"
        if self._startup_error:
            self.notify(self._startup_error, severity="error")
        self.machine.open()
        self._sync_view()

    async def on_unmount(self) -> None:
        self.machine.dispose()
        if self._owns_directory and isinstance(self.directory, DirectoryClient):
            await self.directory.aclose()

    # Form input -----------------------------------------------------
    @on(Input.Changed, ".field-input")
    def on_field_changed(self, event: Input.Changed) -> None:
        draft = self.machine.draft
        field = FIELD_BY_INPUT.get(event.input.id or "")
        if draft is None or field is None or not self.machine.is_editable:
            return
        # Writes made by _sync_view come back as Changed events; they are not user edits.
        if event.value == draft_value(draft, field):
            return
        try:
            self.machine.set_field(field, event.value)
        except PartyLinkError as e:
            self._show_field_error(field, str(e))
            return
        self._show_field_error(field, "")

    # Actions --------------------------------------------------------
    def action_search(self) -> None:
        cascade = build_default_cascade(
            self.directory,
            self.normalizer,
            scope=self.scope,
            entity_type=self.config.search.entity_type,
            limit=self.config.search.result_limit,
            cache=self.caches.setdefault(self.scope, CandidateCache()),
        )
        field = SearchField(cascade, config=self.config.search)
        draft = self.machine.draft
        title = "Search External Companies" if self.scope != SearchScope.INTERNAL else "Search Parties"
        modal = PartySearchModal(
            field,
            directory=self.directory if self.scope == SearchScope.INTERNAL else None,
            title=title,
            initial_query=draft.name if draft else "",
        )
        self.push_screen(modal, self._handle_search_result)

    def action_save(self) -> None:
        if not self.machine.is_editable:
            self.notify("Nothing to save", severity="warning")
            return
        self.submit_form()

    def action_toggle_mode(self) -> None:
        self._guarded(self.machine.toggle_mode)

    def action_toggle_role(self) -> None:
        draft = self.machine.draft
        if draft is None:
            return
        new_role = PartyRole.SUPPLIER if draft.role == PartyRole.CUSTOMER else PartyRole.CUSTOMER
        self._guarded(lambda: self.machine.set_role(new_role))

    def action_toggle_scope(self) -> None:
        self.scope = SearchScope.EXTERNAL if self.scope == SearchScope.INTERNAL else SearchScope.INTERNAL
        self.notify(f"Searching the {self.scope.value} directory", severity="information")
        self._sync_status()

    def action_clear_link(self) -> None:
        self._guarded(self.machine.clear_link)

    def action_new_party(self) -> None:
        self._guarded(self.machine.open)

    @work(exclusive=True)
    async def submit_form(self) -> None:
        self._sync_status(state=FormState.SUBMITTING)
        await self.machine.submit()
        self._sync_view()

    # Helpers --------------------------------------------------------
    def _handle_search_result(self, commit: Optional[SuggestionCommit]) -> None:
        if commit is None:
            return
        if commit.action == CommitAction.CREATE:
            self._guarded(lambda: self.machine.open(prefill_name=commit.query, mode=self.machine.mode))
            return
        if commit.candidate is not None:
            self._guarded(lambda: self.machine.select_candidate(commit.candidate))

    def reopen_after_save(self) -> None:
        if self.machine.state == FormState.CLOSED:
            self.machine.open()
            self._sync_view()

    def _guarded(self, operation: Callable[[], object]) -> None:
        try:
            operation()
        except FormStateError as e:
            self.notify(str(e), severity="warning", markup=False)
        self._sync_view()

    def _show_field_error(self, field: str, message: str) -> None:
        for input_id, bound_field, _label, _modes in FORM_FIELDS:
            if bound_field == field:
                self.query_one(f"#error-{input_id}", Static).update(message)

    def _sync_view(self) -> None:
        """Push draft values, visibility and errors into the widgets."""
        draft = self.machine.draft
        if draft is not None:
            for input_id, field, _label, modes in FORM_FIELDS:
                row = self.query_one(f"#row-{input_id}")
                row.display = draft.mode in modes
                widget = self.query_one(f"#{input_id}", Input)
                value = draft_value(draft, field)
                if widget.value != value:
                    widget.value = value
                self._show_field_error(field, self.machine.field_errors.get(field, ""))
            self._sync_link_panel(draft)
        self._sync_status()

    def _sync_link_panel(self, draft: PartyDraft) -> None:
        panel = self.query_one("#link-panel", Static)
        linkage = draft.linkage
        if linkage is None or linkage.status == LinkageStatus.UNLINKED:
            panel.update("Not linked to an external company")
            return
        orders = "on" if linkage.bidirectional_orders_enabled else "off"
        panel.update(
            f"Linked to {linkage.external_company_id} ({linkage.status.value}), "
            f"bidirectional orders {orders}"
        )

    def _sync_status(self, state: FormState | None = None) -> None:
        status_bar = self.query_one(StatusBar)
        draft = self.machine.draft
        status_bar.scope = self.scope.value
        status_bar.form_state = (state or self.machine.state).value
        if draft is not None:
            status_bar.form_mode = draft.mode.value
            status_bar.role = draft.role.value
            status_bar.link_status = draft.linkage.status.value if draft.linkage else "unlinked"
        if draft is None:
            self.sub_title = ""
        else:
            self.sub_title = f"{draft.mode.value} add" if draft.is_new else "edit"


def main() -> None:
    """Entry point for the party entry application."""
    app = PartyFormApp()
    app.run()


if __name__ == "__main__":
    main()
