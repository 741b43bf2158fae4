from __future__ import annotations

"""Request boundary between the platform payload and the dialog engine."""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from .catalog import CatalogCache, CatalogError
from .config import Settings
from .dialog import DialogEngine, describe
from .matcher import MatcherConfig, ProcedureMatcher
from .models import WebhookRequest
from .renderer import SYSTEM_BUSY_MESSAGE, render_fallback, render_outcome, to_webhook_response
from .sheet_source import SheetSource, build_range
from .signals import parse_session, parse_signal

logger = logging.getLogger("tthc.webhook")


def build_engine(settings: Settings, source=None) -> DialogEngine:
    """Purpose: Wire the catalog source, cache, matcher and dialog engine.
    Inputs/Outputs: Inputs are Settings and an optional source override; returns a
        DialogEngine ready to serve requests.
    Side Effects / State: None; the sheet is only read on the first request.
    Dependencies: SheetSource, CatalogCache, ProcedureMatcher, DialogEngine.
    Failure Modes: None at build time.
    If Removed: app.py has no engine to dispatch requests to.
    Testing Notes: Pass a fake source exposing get_rows().
    """
    if source is None:
        source = SheetSource(
            settings.sheet_id,
            build_range(settings.sheet_name, settings.sheet_range),
            credentials_file=settings.credentials_file,
        )
    cache = CatalogCache(
        source,
        ttl_seconds=settings.catalog_ttl_seconds,
        require_id=settings.require_procedure_id,
    )
    matcher = ProcedureMatcher(
        MatcherConfig(
            threshold=settings.match_threshold,
            anchor_phrases=settings.anchor_phrases,
            limit=settings.candidate_limit,
        )
    )
    return DialogEngine(
        cache,
        matcher,
        strong_confidence=settings.strong_confidence,
        strong_margin=settings.strong_margin,
        suggestion_limit=settings.candidate_limit,
    )


def handle_webhook(payload: Any, engine: DialogEngine, language_code: str = "vi") -> Dict[str, Any]:
    """Purpose: Answer one fulfillment request without ever raising.
    Inputs/Outputs: Inputs are the decoded JSON body and the engine; output is the
        Dialogflow webhook response dict.
    Side Effects / State: May refresh the catalog through the engine; logs the turn.
    Dependencies: parse_session, parse_signal, DialogEngine.handle, render_outcome.
    Failure Modes: Malformed payloads get the help fallback; catalog and unexpected
        errors get the "system busy" message and a server-side log entry.
    If Removed: Internal faults would surface as transport errors to the platform.
    Testing Notes: A source that always fails must still yield fulfillmentText.
    """
    session_path = ""
    try:
        request = WebhookRequest.model_validate(payload if isinstance(payload, dict) else {})
        session_path = request.session
        session = parse_session(request)
        signal = parse_signal(request, session)
        outcome = engine.handle(signal, session)
        kind, procedure = describe(outcome)
        logger.info(
            "session=%s signal=%s outcome=%s procedure=%s state=%s",
            session_path or "-",
            type(signal).__name__,
            kind,
            procedure or "-",
            outcome.state,
        )
        return to_webhook_response(render_outcome(outcome, language_code), session_path)
    except ValidationError as exc:
        logger.warning("session=%s malformed request error=%s", session_path or "-", exc.errors()[:3])
        return to_webhook_response(render_fallback())
    except CatalogError as exc:
        logger.error("session=%s catalog error=%s", session_path or "-", exc)
        return {"fulfillmentText": SYSTEM_BUSY_MESSAGE}
    except Exception:
        logger.exception("session=%s unhandled error in fulfillment", session_path or "-")
        return {"fulfillmentText": SYSTEM_BUSY_MESSAGE}
