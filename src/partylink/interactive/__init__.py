"""Textual front-end for party search and entry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from partylink.interactive.app import PartyFormApp as PartyFormApp
    from partylink.interactive.app import main as main

__all__ = ["PartyFormApp", "main"]


def __getattr__(name: str) -> Any:
    if name not in __all__:
        raise AttributeError(name)
    from partylink.interactive.app import PartyFormApp, main

    return {"PartyFormApp": PartyFormApp, "main": main}[name]
