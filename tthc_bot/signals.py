from __future__ import annotations

"""Inbound signal parsing.

Dialogflow can deliver the same selection through a chip event, an intent
parameter or an echoed session context. Everything is folded into one of the
signal types below before the dialog engine sees it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .catalog import resolve_attribute_key
from .models import WebhookRequest
from .utils import as_text, normalize_text

EVENT_SELECT_PROCEDURE = "CHON_THU_TUC"
EVENT_VIEW_ATTRIBUTE = "XEM_CHI_TIET_TTHC"
EVENT_GO_BACK = "QUAY_LAI_TTHC"
KNOWN_EVENTS = {EVENT_SELECT_PROCEDURE, EVENT_VIEW_ATTRIBUTE, EVENT_GO_BACK}

SESSION_CONTEXT = "tthc-session"
SESSION_LIFESPAN = 5

PROCEDURE_ID_PARAM = "ma_thu_tuc"
ATTRIBUTE_PARAMS = ("info_key", "TTHC_Info")
FREE_TEXT_PARAMS = ("procedure_name", "any")
BACK_PHRASES = {"quay lai", "tro lai", "back", "quay ve"}

STATE_AWAITING_QUERY = "awaiting_query"
STATE_PROCEDURE_SELECTED = "procedure_selected"
STATE_ATTRIBUTE_DETAIL_SHOWN = "attribute_detail_shown"
DIALOG_STATES = (STATE_AWAITING_QUERY, STATE_PROCEDURE_SELECTED, STATE_ATTRIBUTE_DETAIL_SHOWN)


@dataclass(frozen=True)
class FreeTextQuery:
    text: str
    attribute_key: Optional[str] = None


@dataclass(frozen=True)
class SelectProcedure:
    procedure_id: str


@dataclass(frozen=True)
class ViewAttribute:
    procedure_id: str
    attribute_key: str


@dataclass(frozen=True)
class GoBack:
    procedure_id: str


@dataclass(frozen=True)
class Unknown:
    reason: str = ""


InboundSignal = Union[FreeTextQuery, SelectProcedure, ViewAttribute, GoBack, Unknown]


@dataclass(frozen=True)
class SessionReference:
    """Selected procedure and menu echoed through the platform session context."""
    procedure_id: str = ""
    state: str = STATE_AWAITING_QUERY
    options: Tuple[str, ...] = field(default_factory=tuple)

    def to_parameters(self) -> Dict[str, Any]:
        return {
            PROCEDURE_ID_PARAM: self.procedure_id,
            "dialog_state": self.state,
            "menu_options": list(self.options),
        }


def parse_session(request: WebhookRequest) -> SessionReference:
    """Purpose: Read the prior-turn session reference from the output contexts.
    Inputs/Outputs: Input is the parsed WebhookRequest; output is a SessionReference,
        empty when the context is absent or expired.
    Side Effects / State: None.
    Dependencies: Uses SESSION_CONTEXT naming.
    Failure Modes: Unknown dialog states fall back to awaiting_query.
    If Removed: Follow-up questions about the selected procedure lose their anchor.
    Testing Notes: Context names are full paths; only the suffix is compared.
    """
    for context in request.query_result.output_contexts:
        if context.name.rsplit("/", 1)[-1] != SESSION_CONTEXT:
            continue
        if context.lifespan_count is not None and context.lifespan_count <= 0:
            continue
        params = context.parameters
        state = as_text(params.get("dialog_state"))
        options = params.get("menu_options") or []
        if not isinstance(options, list):
            options = [options]
        return SessionReference(
            procedure_id=as_text(params.get(PROCEDURE_ID_PARAM)),
            state=state if state in DIALOG_STATES else STATE_AWAITING_QUERY,
            options=tuple(as_text(option) for option in options if as_text(option)),
        )
    return SessionReference()


def parse_signal(request: WebhookRequest, session: Optional[SessionReference] = None) -> InboundSignal:
    """Purpose: Collapse events, parameters and context echoes into one signal.
    Inputs/Outputs: Inputs are the parsed request and the session reference; output is
        one InboundSignal variant.
    Side Effects / State: None.
    Dependencies: resolve_attribute_key for platform attribute aliases.
    Failure Modes: Unrecognized events and empty input map to Unknown.
    If Removed: The dialog engine would have to branch on raw request shapes.
    Testing Notes: An event with ma_thu_tuc + info_key must yield ViewAttribute.
    """
    session = session or SessionReference()
    params = request.query_result.parameters or {}
    event = request.original_detect_intent_request.payload.event
    event_name = (event.name if event else "").strip()
    event_params = event.parameters if event else {}

    if event_name and event_name.upper() not in KNOWN_EVENTS:
        return Unknown(reason=f"event:{event_name}")

    procedure_id = _first_text(event_params, params, keys=(PROCEDURE_ID_PARAM,))
    if event_name.upper() == EVENT_SELECT_PROCEDURE:
        # A procedure chip opens the overview even if the intent kept an old attribute.
        raw_attribute = _first_text(event_params, keys=ATTRIBUTE_PARAMS)
    else:
        raw_attribute = _first_text(event_params, params, keys=ATTRIBUTE_PARAMS)
    attribute_key = resolve_attribute_key(raw_attribute) if raw_attribute else None
    free_text = _first_text(params, keys=FREE_TEXT_PARAMS)
    query_text = request.query_result.query_text.strip()

    if event_name.upper() == EVENT_GO_BACK or (
        not event_name and normalize_text(query_text) in BACK_PHRASES
    ):
        target = procedure_id or session.procedure_id
        return GoBack(target) if target else Unknown(reason="back-without-procedure")

    if procedure_id and attribute_key:
        return ViewAttribute(procedure_id, attribute_key)
    if procedure_id:
        return SelectProcedure(procedure_id)
    if attribute_key and session.procedure_id and not free_text:
        return ViewAttribute(session.procedure_id, attribute_key)

    text = free_text or query_text
    if text:
        return FreeTextQuery(text, attribute_key)
    return Unknown(reason="empty")


def _first_text(*sources: Dict[str, Any], keys: Tuple[str, ...]) -> str:
    for source in sources:
        for key in keys:
            value = as_text(source.get(key)) if source else ""
            if value:
                return value
    return ""
