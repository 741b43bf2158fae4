from __future__ import annotations

"""Dialog state machine for procedure lookup.

States:
    awaiting_query -> procedure_selected -> attribute_detail_shown
    attribute_detail_shown --back--> procedure_selected

Each turn is resolved from the inbound signal, the echoed session reference and
the current catalog snapshot. Nothing is stored between turns on the server.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .catalog import CatalogCache, CatalogError, CatalogSnapshot, ProcedureRecord, is_detail_attribute
from .matcher import Candidate, ProcedureMatcher, is_decisive
from .signals import (
    STATE_ATTRIBUTE_DETAIL_SHOWN,
    STATE_AWAITING_QUERY,
    STATE_PROCEDURE_SELECTED,
    FreeTextQuery,
    GoBack,
    InboundSignal,
    SelectProcedure,
    SessionReference,
    Unknown,
    ViewAttribute,
)

logger = logging.getLogger("tthc.dialog")


class OutcomeKind(str, Enum):
    OVERVIEW = "overview"
    CANDIDATE_LIST = "candidate_list"
    ATTRIBUTE_DETAIL = "attribute_detail"
    INVALID_ATTRIBUTE = "invalid_attribute"
    NOT_FOUND = "not_found"
    NO_MATCH = "no_match"
    FALLBACK = "fallback"
    SOURCE_ERROR = "source_error"


@dataclass
class Outcome:
    """Result of one dialog turn, ready to be rendered."""
    kind: OutcomeKind
    state: str
    record: Optional[ProcedureRecord] = None
    attribute_key: Optional[str] = None
    candidates: List[Candidate] = field(default_factory=list)
    suggestions: List[ProcedureRecord] = field(default_factory=list)
    procedure_id: str = ""
    detail: str = ""
    prior: Optional[SessionReference] = None

    @property
    def session(self) -> SessionReference:
        if self.prior is not None:
            return self.prior
        if self.record is not None:
            return SessionReference(
                procedure_id=self.record.procedure_id,
                state=self.state,
                options=tuple(self.record.menu_attributes()),
            )
        if self.candidates:
            listed = [c.record.procedure_id for c in self.candidates]
        else:
            listed = [r.procedure_id for r in self.suggestions]
        return SessionReference(state=self.state, options=tuple(listed))


class DialogEngine:
    """Resolve inbound signals against the catalog and decide the next reply."""

    def __init__(
        self,
        cache: CatalogCache,
        matcher: ProcedureMatcher,
        strong_confidence: float = 0.8,
        strong_margin: float = 0.15,
        suggestion_limit: int = 8,
    ) -> None:
        self._cache = cache
        self._matcher = matcher
        self._strong_confidence = strong_confidence
        self._strong_margin = strong_margin
        self._suggestion_limit = suggestion_limit

    def handle(self, signal: InboundSignal, session: Optional[SessionReference] = None) -> Outcome:
        """Purpose: Run one dialog turn.
        Inputs/Outputs: Inputs are the inbound signal and the prior session reference;
            output is an Outcome with the reply kind and the next state.
        Side Effects / State: Triggers a catalog refresh when the cache is stale.
        Dependencies: CatalogCache.ensure_fresh, ProcedureMatcher.search, is_decisive.
        Failure Modes: Catalog load failures with no snapshot become SOURCE_ERROR;
            lookup misses become NOT_FOUND/NO_MATCH/INVALID_ATTRIBUTE outcomes.
        If Removed: Requests cannot be turned into procedure overviews or details.
        Testing Notes: Drive every transition with a fake source and check the state.
        """
        session = session or SessionReference()
        try:
            snapshot = self._cache.ensure_fresh()
        except CatalogError as exc:
            logger.error("catalog unavailable signal=%s error=%s", type(signal).__name__, exc)
            return Outcome(OutcomeKind.SOURCE_ERROR, session.state, detail=str(exc))

        if isinstance(signal, SelectProcedure):
            return self._select(snapshot, signal.procedure_id)
        if isinstance(signal, ViewAttribute):
            return self._view_attribute(snapshot, signal.procedure_id, signal.attribute_key)
        if isinstance(signal, GoBack):
            return self._go_back(snapshot, signal.procedure_id, session)
        if isinstance(signal, FreeTextQuery):
            return self._free_text(snapshot, signal)
        reason = signal.reason if isinstance(signal, Unknown) else type(signal).__name__
        # Unrecognized input leaves the selection and menu untouched.
        return Outcome(
            OutcomeKind.FALLBACK,
            session.state,
            procedure_id=session.procedure_id,
            detail=reason,
            prior=session,
        )

    def _select(self, snapshot: CatalogSnapshot, procedure_id: str) -> Outcome:
        record = snapshot.by_id.get(procedure_id.strip())
        if record is None:
            return Outcome(OutcomeKind.NOT_FOUND, STATE_AWAITING_QUERY, procedure_id=procedure_id)
        return Outcome(OutcomeKind.OVERVIEW, STATE_PROCEDURE_SELECTED, record=record)

    def _view_attribute(self, snapshot: CatalogSnapshot, procedure_id: str, attribute_key: str) -> Outcome:
        record = snapshot.by_id.get(procedure_id.strip())
        if record is None:
            return Outcome(OutcomeKind.NOT_FOUND, STATE_AWAITING_QUERY, procedure_id=procedure_id)
        return self._detail_for(record, attribute_key)

    def _detail_for(self, record: ProcedureRecord, attribute_key: str) -> Outcome:
        if is_detail_attribute(attribute_key) and record.has_value(attribute_key):
            return Outcome(
                OutcomeKind.ATTRIBUTE_DETAIL,
                STATE_ATTRIBUTE_DETAIL_SHOWN,
                record=record,
                attribute_key=attribute_key,
            )
        logger.info("invalid attribute procedure=%s key=%s", record.procedure_id, attribute_key)
        return Outcome(
            OutcomeKind.INVALID_ATTRIBUTE,
            STATE_PROCEDURE_SELECTED,
            record=record,
            attribute_key=attribute_key,
        )

    def _go_back(self, snapshot: CatalogSnapshot, procedure_id: str, session: SessionReference) -> Outcome:
        record = snapshot.by_id.get(procedure_id.strip())
        if record is None:
            return Outcome(
                OutcomeKind.FALLBACK,
                session.state,
                procedure_id=procedure_id,
                detail="back",
                prior=session,
            )
        return Outcome(OutcomeKind.OVERVIEW, STATE_PROCEDURE_SELECTED, record=record)

    def _free_text(self, snapshot: CatalogSnapshot, signal: FreeTextQuery) -> Outcome:
        candidates = self._matcher.search(snapshot, signal.text)
        if not candidates:
            suggestions = list(snapshot.records[: self._suggestion_limit])
            return Outcome(OutcomeKind.NO_MATCH, STATE_AWAITING_QUERY, suggestions=suggestions, detail=signal.text)

        if is_decisive(candidates, self._strong_confidence, self._strong_margin):
            record = candidates[0].record
            if signal.attribute_key:
                return self._detail_for(record, signal.attribute_key)
            return Outcome(OutcomeKind.OVERVIEW, STATE_PROCEDURE_SELECTED, record=record)

        return Outcome(OutcomeKind.CANDIDATE_LIST, STATE_AWAITING_QUERY, candidates=candidates)


def describe(outcome: Outcome) -> Tuple[str, str]:
    """Short (kind, procedure) pair for log lines."""
    procedure = outcome.record.procedure_id if outcome.record else outcome.procedure_id
    return outcome.kind.value, procedure
