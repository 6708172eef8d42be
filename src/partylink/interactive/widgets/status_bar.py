"""Status bar widget showing form mode, role, directory scope and link state."""

from textual.app import ComposeResult
from textual.css.query import NoMatches
from textual.reactive import reactive
from textual.widget import Widget
from textual.widgets import Static


class StatusBar(Widget):
    """One-line summary of the party form state."""

    form_mode: reactive[str] = reactive("full")
    role: reactive[str] = reactive("customer")
    scope: reactive[str] = reactive("internal")
    link_status: reactive[str] = reactive("unlinked")
    form_state: reactive[str] = reactive("closed")

    def compose(self) -> ComposeResult:
        yield Static(id="status-content")

    def watch_form_mode(self) -> None:
        self._update_display()

    def watch_role(self) -> None:
        self._update_display()

    def watch_scope(self) -> None:
        self._update_display()

    def watch_link_status(self) -> None:
        self._update_display()

    def watch_form_state(self) -> None:
        self._update_display()

    def _update_display(self) -> None:
        try:
            content = self.query_one("#status-content", Static)
        except NoMatches:
            return
        content.update(
            f"Mode: {self.form_mode}  |  "
            f"Role: {self.role}  |  "
            f"Directory: {self.scope}  |  "
            f"Link: {self.link_status}  |  "
            f"State: {self.form_state}"
        )


STATUS_BAR_CSS = """
StatusBar {
    dock: bottom;
    height: 1;
    background: $panel;
    color: $text;
    padding: 0 1;
}

StatusBar #status-content {
    width: 100%;
    content-align: left middle;
}
"""
