"""Party form orchestration."""

from partylink.forms.party_form import FormHost, FormState, PartyFormStateMachine

__all__ = ["FormHost", "FormState", "PartyFormStateMachine"]
