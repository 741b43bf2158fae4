from __future__ import annotations

"""Free-text procedure matching over a catalog snapshot.

Ranking has two tiers: names that contain the whole normalized query (exact tier)
always come first; the fuzzy tier mixes token containment with rapidfuzz scores
and is only consulted when the exact tier is not already ambiguous.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from .catalog import CatalogSnapshot, ProcedureRecord
from .utils import normalize_text, tokenize

logger = logging.getLogger("tthc.matcher")

CONTAINMENT_WEIGHT = 0.65
FUZZY_WEIGHT = 0.35


@dataclass(frozen=True)
class MatcherConfig:
    """Tunable matching parameters."""
    threshold: float = 0.45
    anchor_phrases: Tuple[str, ...] = ()
    limit: int = 8
    min_token_length: int = 2


@dataclass(frozen=True)
class Candidate:
    """A procedure proposed for a query, with its confidence in 0..1."""
    record: ProcedureRecord
    confidence: float
    exact: bool = False
    position: int = 0


class ProcedureMatcher:
    def __init__(self, config: Optional[MatcherConfig] = None) -> None:
        self._config = config or MatcherConfig()
        self._anchors = tuple(
            anchor for anchor in (normalize_text(phrase) for phrase in self._config.anchor_phrases) if anchor
        )

    @property
    def config(self) -> MatcherConfig:
        return self._config

    def search(self, snapshot: CatalogSnapshot, query: str, limit: Optional[int] = None) -> List[Candidate]:
        """Purpose: Rank catalog records against a free-text query.
        Inputs/Outputs: Inputs are the snapshot, query text and optional limit; output is
            a best-first list of Candidate without duplicate procedure ids.
        Side Effects / State: None; results are recomputed on every call.
        Dependencies: normalize_text/tokenize and rapidfuzz.fuzz.
        Failure Modes: Empty query or empty snapshot returns an empty list.
        If Removed: Free-text questions can no longer be resolved to procedures.
        Testing Notes: A query contained in exactly one name must rank that record first.
        """
        limit = self._config.limit if limit is None else limit
        normalized = normalize_text(query)
        if not normalized or snapshot.is_empty or limit <= 0:
            return []

        records = snapshot.records
        candidates = self._exact_pass(snapshot, normalized)
        if len(candidates) < 2:
            seen = {candidate.position for candidate in candidates}
            tokens = list(dict.fromkeys(tokenize(normalized, self._config.min_token_length)))
            raw_query = str(query).strip().lower()
            for position, record in enumerate(records):
                if position in seen:
                    continue
                confidence = self._fuzzy_confidence(normalized, raw_query, tokens, record)
                if confidence >= self._config.threshold:
                    candidates.append(Candidate(record, confidence, exact=False, position=position))

        candidates = self._apply_anchor_guard(normalized, candidates)
        ranked = sorted(_dedupe_by_id(candidates), key=_rank_key)
        logger.debug(
            "query=%s candidates=%s top=%s",
            normalized,
            len(ranked),
            [(c.record.procedure_id, round(c.confidence, 3)) for c in ranked[:3]],
        )
        return ranked[:limit]

    def _exact_pass(self, snapshot: CatalogSnapshot, normalized: str) -> List[Candidate]:
        candidates: List[Candidate] = []
        equal_positions = set(snapshot.name_index.get(normalized, ()))
        for position in sorted(equal_positions):
            candidates.append(Candidate(snapshot.records[position], 1.0, exact=True, position=position))
        for position, record in enumerate(snapshot.records):
            if position in equal_positions or normalized not in record.name_norm:
                continue
            coverage = len(normalized) / max(len(record.name_norm), 1)
            candidates.append(Candidate(record, 0.5 + 0.5 * coverage, exact=True, position=position))
        return candidates

    def _fuzzy_confidence(self, normalized: str, raw_query: str, tokens: Sequence[str], record: ProcedureRecord) -> float:
        containment = token_containment(tokens, record.name_norm)
        fuzzy = max(
            fuzz.partial_ratio(normalized, record.name_norm),
            fuzz.token_set_ratio(normalized, record.name_norm),
            fuzz.token_set_ratio(raw_query, record.name.lower()),
        ) / 100.0
        return CONTAINMENT_WEIGHT * containment + FUZZY_WEIGHT * fuzzy

    def _apply_anchor_guard(self, normalized: str, candidates: List[Candidate]) -> List[Candidate]:
        # A query naming an anchor phrase only accepts names carrying that phrase.
        active = [anchor for anchor in self._anchors if anchor in normalized]
        if not active:
            return candidates
        return [c for c in candidates if all(anchor in c.record.name_norm for anchor in active)]


def token_containment(tokens: Sequence[str], name_norm: str) -> float:
    """Length-weighted share of query tokens that occur inside the normalized name."""
    total = sum(len(token) for token in tokens)
    if not total:
        return 0.0
    found = sum(len(token) for token in tokens if token in name_norm)
    return found / total


def is_decisive(candidates: Sequence[Candidate], strong_confidence: float = 0.8, strong_margin: float = 0.15) -> bool:
    """Purpose: Decide whether a ranked list names one procedure clearly enough.
    Inputs/Outputs: Inputs are ranked candidates and the strength thresholds; output is
        True when the top candidate can be selected without asking the user.
    Side Effects / State: None.
    Dependencies: Used by the dialog engine after ProcedureMatcher.search.
    Failure Modes: Empty input returns False.
    If Removed: Every multi-result query would show a candidate list.
    Testing Notes: One exact match beside fuzzy matches is decisive; two exact are not.
    """
    if not candidates:
        return False
    if len(candidates) == 1:
        return True
    top, runner_up = candidates[0], candidates[1]
    if top.exact and not runner_up.exact:
        return True
    return top.confidence >= strong_confidence and top.confidence - runner_up.confidence >= strong_margin


def _dedupe_by_id(candidates: Iterable[Candidate]) -> List[Candidate]:
    best: Dict[str, Candidate] = {}
    for candidate in candidates:
        key = candidate.record.procedure_id
        current = best.get(key)
        if current is None or _rank_key(candidate) < _rank_key(current):
            best[key] = candidate
    return list(best.values())


def _rank_key(candidate: Candidate) -> Tuple[int, float, int]:
    return (0 if candidate.exact else 1, -candidate.confidence, candidate.position)
