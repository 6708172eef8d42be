"""Command-line interface: directory search, phone checks and quick party entry."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.table import Table

from partylink.curation.duplicate_guard import PHONE_PATTERN
from partylink.directory.client import DirectoryService, create_directory_client
from partylink.errors import CandidateLookupError, DirectoryError, ErrorSeverity
from partylink.forms.party_form import PartyFormStateMachine
from partylink.search.normalizer import CandidateNormalizer
from partylink.search.strategies import build_default_cascade
from partylink.search.suggestions import merge_candidates, rank_candidates
from partylink.storage.schemas import Candidate, FormMode, Party, PartyRole, SearchScope
from partylink.utils.config import Config, load_config
from partylink.utils.logging import setup_logging

app = typer.Typer(help="Search parties, check phone numbers and add parties.")

console = Console(color_system=None, force_terminal=False, width=120)

SEVERITY_STYLE = {
    ErrorSeverity.INFO: "cyan",
    ErrorSeverity.WARNING: "yellow",
    ErrorSeverity.ERROR: "red",
}


def create_directory(config: Config) -> DirectoryService:
    return create_directory_client(config.directory)


async def _close(directory: DirectoryService) -> None:
    aclose = getattr(directory, "aclose", None)
    if aclose is not None:
        await aclose()


def _load(config_path: Path) -> Config:
    cfg = load_config(config_path)
    setup_logging(cfg.logging)
    return cfg


def _render_candidate_table(candidates: Sequence[Candidate], *, title: str) -> None:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Phone")
    table.add_column("GSTIN")
    table.add_column("Locality")
    table.add_column("Balance", justify="right")
    table.add_column("Source")
    table.add_column("ID", style="magenta")

    for candidate in candidates:
        table.add_row(
            candidate.display_name,
            candidate.phone or "-",
            candidate.tax_id or "-",
            candidate.locality or "-",
            f"{candidate.balance:.2f}",
            candidate.source_kind.value,
            candidate.id or "-",
        )

    console.print(table)


class ConsoleFormHost:
    """FormHost that reports to the terminal."""

    def __init__(self) -> None:
        self.saved: Optional[Party] = None

    def on_entity_selected(self, candidate: Candidate) -> None:
        console.print(f"Linked to [bold]{candidate.display_name}[/bold] ({candidate.id})")

    def on_draft_saved(self, party: Party, is_new: bool) -> None:
        self.saved = party

    def on_error(self, message: str, severity: ErrorSeverity) -> None:
        style = SEVERITY_STYLE[severity]
        console.print(f"[{style}]{message}[/{style}]")


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Name, phone or GSTIN fragment."),
    scope: SearchScope = typer.Option(SearchScope.INTERNAL, help="Directory to search."),
    entity_type: str = typer.Option("all", help="all|customer|supplier."),
    limit: int = typer.Option(20, help="Maximum results.", min=1),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Search the directory using the same fallback cascade as the form."""
    cfg = _load(config)
    if len(query.strip()) < cfg.search.min_query_length:
        console.print(f"[yellow]Query must be at least {cfg.search.min_query_length} characters.[/yellow]")
        raise typer.Exit(code=1)

    async def _run() -> List[Candidate]:
        directory = create_directory(cfg)
        try:
            cascade = build_default_cascade(
                directory, CandidateNormalizer(), scope=scope, entity_type=entity_type, limit=limit
            )
            result = await cascade.run(query)
            return rank_candidates(query, merge_candidates(result.candidates))
        finally:
            await _close(directory)

    try:
        candidates = asyncio.run(_run())
    except CandidateLookupError as e:
        console.print(f"[red]{e}[/red]")
        for cause in e.causes:
            console.print(f"  {cause}")
        raise typer.Exit(code=1)

    if not candidates:
        console.print("[yellow]No matches found.[/yellow]")
        return
    _render_candidate_table(candidates[:limit], title=f"Search Results ({scope.value})")


@app.command("check-phone")
def check_phone(
    phone: str = typer.Argument(..., help="10-digit mobile number."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Check whether a phone number already belongs to a party."""
    if not PHONE_PATTERN.match(phone.strip()):
        console.print("[red]Enter a valid 10-digit mobile number starting with 6-9.[/red]")
        raise typer.Exit(code=1)
    cfg = _load(config)

    async def _run():
        directory = create_directory(cfg)
        try:
            return await directory.check_duplicate(phone.strip())
        finally:
            await _close(directory)

    try:
        result = asyncio.run(_run())
    except DirectoryError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if not result.checked:
        console.print("[yellow]Duplicate check is unavailable on this server.[/yellow]")
    elif result.exists:
        console.print(
            f"[red]Phone {phone} already belongs to {result.party_name or 'a party'}"
            f" ({result.party_id or '-'}).[/red]"
        )
        raise typer.Exit(code=2)
    else:
        console.print(f"[green]Phone {phone} is available.[/green]")


@app.command("add")
def add(
    name: str = typer.Argument(..., help="Party name."),
    phone: str = typer.Argument(..., help="Primary phone number."),
    role: PartyRole = typer.Option(PartyRole.CUSTOMER, help="customer|supplier."),
    quick: bool = typer.Option(False, "--quick", help="Quick add (name and phone only)."),
    email: str = typer.Option("", help="Email address."),
    gstin: str = typer.Option("", help="GSTIN; marks the party as GST registered."),
    link: Optional[str] = typer.Option(
        None, help="Link to the best external company match for this query."
    ),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Validate, duplicate-check and save a party."""
    cfg = _load(config)
    host = ConsoleFormHost()

    async def _run() -> Optional[Party]:
        directory = create_directory(cfg)
        machine = PartyFormStateMachine(directory, host, config=cfg.form)
        try:
            machine.open(mode=FormMode.QUICK if quick else FormMode.FULL, role=role)
            machine.set_field("name", name)
            machine.set_field("phone", phone)
            if not quick:
                if email:
                    machine.set_field("email", email)
                if gstin:
                    machine.set_field("tax_registration", "registered")
                    machine.set_field("tax_id", gstin)
                if link:
                    cascade = build_default_cascade(
                        directory, CandidateNormalizer(), scope=SearchScope.EXTERNAL, limit=5
                    )
                    result = await cascade.run(link)
                    external = [c for c in result.candidates if c.is_external]
                    if not external:
                        console.print(f"[yellow]No external company matches '{link}'; saving unlinked.[/yellow]")
                    else:
                        machine.select_candidate(rank_candidates(link, external)[0])
            return await machine.submit()
        finally:
            machine.dispose()
            await _close(directory)

    try:
        party = asyncio.run(_run())
    except CandidateLookupError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if party is None:
        raise typer.Exit(code=1)
    status = party.id or "pending sync"
    console.print(f"[green]Saved {party.role.value} '{party.name}' ({status}).[/green]")
    if party.linkage is not None:
        console.print(f"Link: {party.linkage.external_company_id} [{party.linkage.status.value}]")


@app.command("link")
def link(
    supplier_id: str = typer.Argument(..., help="ID of an existing supplier party."),
    company_id: str = typer.Argument(..., help="ID of the external company to link."),
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Link an existing supplier to an external company for bidirectional orders."""
    cfg = _load(config)

    async def _run():
        directory = create_directory(cfg)
        try:
            return await directory.link_supplier(supplier_id, company_id)
        finally:
            await _close(directory)

    try:
        envelope = asyncio.run(_run())
    except DirectoryError as e:
        console.print(f"[red]Linking failed: {e}[/red]")
        raise typer.Exit(code=1)
    if not envelope.success:
        console.print(f"[red]Linking failed: {envelope.message}[/red]")
        raise typer.Exit(code=1)

    data = envelope.data if isinstance(envelope.data, dict) else {}
    ready = "ready" if data.get("bidirectionalOrdersReady") else "not ready yet"
    console.print(f"[green]Linked supplier {supplier_id} to {company_id}[/green] (bidirectional orders {ready})")


@app.command("health")
def health(
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Check that the directory service is reachable."""
    cfg = _load(config)

    async def _run():
        directory = create_directory(cfg)
        try:
            return await directory.health()
        finally:
            await _close(directory)

    try:
        envelope = asyncio.run(_run())
    except DirectoryError as e:
        console.print(f"[red]Directory unreachable: {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Directory OK[/green] {envelope.message}".rstrip())


@app.command("tui")
def tui(
    config: Path = typer.Option(Path("config/config.yaml"), help="Path to config file."),
) -> None:
    """Launch the interactive party form."""
    from partylink.interactive.app import PartyFormApp

    PartyFormApp(config_path=config).run()


def run() -> None:
    """Entrypoint for Typer."""
    app()


if __name__ == "__main__":
    run()
