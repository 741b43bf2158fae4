from __future__ import annotations

"""Procedure catalog: record schema, immutable snapshots and the TTL cache.

The catalog is loaded from a tabular source (a header row plus data rows) and kept
in memory as a CatalogSnapshot. A refresh always builds a brand new snapshot and
swaps the reference, so readers never see a half-built catalog.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .utils import as_text, normalize_header, normalize_text

logger = logging.getLogger("tthc.catalog")

ID_COLUMN = "ma_thu_tuc"
NAME_COLUMN = "thu_tuc"

PROCEDURE_COLUMNS = (
    "ma_thu_tuc",
    "so_quyet_dinh",
    "thu_tuc",
    "cap_thuc_hien",
    "loai_thu_tuc",
    "linh_vuc",
    "trinh_tu",
    "hinh_thuc_nop",
    "thoi_han",
    "phi_le_phi",
    "thanh_phan_hs",
    "doi_tuong",
    "co_quan_thuc_hien",
    "noi_tiep_nhan",
    "ket_qua",
    "can_cu",
    "dieu_kien",
)
REQUIRED_COLUMNS = (NAME_COLUMN,)

# Platform-side parameter values -> column keys.
ATTRIBUTE_ALIASES = {
    "thoi_gian": "thoi_han",
    "thoi_han": "thoi_han",
    "trinh_tu": "trinh_tu",
    "le_phi": "phi_le_phi",
    "phi_le_phi": "phi_le_phi",
    "thanh_phan_hs": "thanh_phan_hs",
    "ho_so": "thanh_phan_hs",
    "doi_tuong": "doi_tuong",
    "co_quan": "co_quan_thuc_hien",
    "noi_nop": "noi_tiep_nhan",
    "ket_qua": "ket_qua",
    "can_cu": "can_cu",
    "dieu_kien": "dieu_kien",
    "hinh_thuc_nop": "hinh_thuc_nop",
    "linh_vuc": "linh_vuc",
    "cap_thuc_hien": "cap_thuc_hien",
    "loai_thu_tuc": "loai_thu_tuc",
}
DETAIL_ATTRIBUTES = frozenset(ATTRIBUTE_ALIASES.values())

# Order of the attribute menu shown under a procedure overview.
MENU_ATTRIBUTES = (
    "thanh_phan_hs",
    "thoi_han",
    "trinh_tu",
    "phi_le_phi",
    "noi_tiep_nhan",
    "co_quan_thuc_hien",
    "doi_tuong",
    "ket_qua",
    "can_cu",
    "dieu_kien",
    "hinh_thuc_nop",
)


class CatalogError(Exception):
    """Base class for catalog loading failures."""


class SourceUnavailable(CatalogError):
    """The catalog source could not be read or returned no usable rows."""


class SourceMalformed(CatalogError):
    """The catalog source is missing a required column."""


@dataclass(frozen=True)
class ProcedureRecord:
    """One administrative procedure with its raw column values."""
    procedure_id: str
    name: str
    name_norm: str
    fields: Dict[str, str] = field(default_factory=dict)

    def value(self, key: str) -> str:
        return (self.fields.get(key) or "").strip()

    def has_value(self, key: str) -> bool:
        return bool(self.value(key))

    def menu_attributes(self) -> List[str]:
        return [key for key in MENU_ATTRIBUTES if self.has_value(key)]


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable view of one successful catalog load."""
    version: int
    loaded_at: float
    records: Tuple[ProcedureRecord, ...] = ()
    by_id: Dict[str, ProcedureRecord] = field(default_factory=dict)
    name_index: Dict[str, Tuple[int, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.records


EMPTY_SNAPSHOT = CatalogSnapshot(version=0, loaded_at=0.0)


def resolve_attribute_key(raw: str) -> str:
    """Purpose: Map a platform attribute parameter onto a catalog column key.
    Inputs/Outputs: Input is the raw parameter ("le_phi", "Thời gian"); output is a
        column key, or the normalized input when it is not a known alias.
    Side Effects / State: None.
    Dependencies: Uses normalize_header and ATTRIBUTE_ALIASES.
    Failure Modes: Unknown keys are returned as-is so callers can report them.
    If Removed: Alias keys from the platform never reach the right column.
    Testing Notes: "thoi_gian" -> "thoi_han"; "khong_ton_tai" stays unchanged.
    """
    key = normalize_header(raw)
    return ATTRIBUTE_ALIASES.get(key, key)


def is_detail_attribute(key: str) -> bool:
    return key in DETAIL_ATTRIBUTES


def build_snapshot(
    header: Sequence[object],
    rows: Sequence[Sequence[object]],
    version: int,
    loaded_at: float,
    require_id: bool = False,
) -> CatalogSnapshot:
    """Purpose: Parse a header + rows table into an immutable CatalogSnapshot.
    Inputs/Outputs: Inputs are the header row, data rows, version, load time and the
        id requirement flag; output is a new CatalogSnapshot.
    Side Effects / State: None; the caller decides whether to publish the snapshot.
    Dependencies: Uses normalize_header for column mapping and normalize_text for names.
    Failure Modes: Raises SourceMalformed when the name column is missing and
        SourceUnavailable when no usable record remains.
    If Removed: The cache cannot turn sheet values into procedure records.
    Testing Notes: Reordered columns must still parse; rows without a name are skipped.
    """
    # Map columns by header name so source reordering does not break parsing.
    positions: Dict[str, int] = {}
    for index, title in enumerate(header or []):
        key = normalize_header(as_text(title))
        if key in PROCEDURE_COLUMNS and key not in positions:
            positions[key] = index

    missing = [column for column in REQUIRED_COLUMNS if column not in positions]
    if missing:
        raise SourceMalformed(f"missing required column(s): {', '.join(missing)}")

    records: List[ProcedureRecord] = []
    skipped = 0
    for offset, row in enumerate(rows or []):
        values = {
            column: as_text(row[index]) if index < len(row) else ""
            for column, index in positions.items()
        }
        fields = {column: values.get(column, "") for column in PROCEDURE_COLUMNS}
        name = fields[NAME_COLUMN]
        procedure_id = fields[ID_COLUMN]
        if not name or (require_id and not procedure_id):
            skipped += 1
            continue
        if not procedure_id:
            # Sheet row number: header is row 1, first data row is row 2.
            procedure_id = f"row-{offset + 2}"
            fields[ID_COLUMN] = procedure_id
        records.append(
            ProcedureRecord(
                procedure_id=procedure_id,
                name=name,
                name_norm=normalize_text(name),
                fields=fields,
            )
        )

    if not records:
        raise SourceUnavailable("catalog source returned no usable rows")

    by_id: Dict[str, ProcedureRecord] = {}
    name_index: Dict[str, List[int]] = {}
    for position, record in enumerate(records):
        by_id.setdefault(record.procedure_id, record)
        name_index.setdefault(record.name_norm, []).append(position)

    if skipped:
        logger.debug("catalog version=%s skipped_rows=%s", version, skipped)
    return CatalogSnapshot(
        version=version,
        loaded_at=loaded_at,
        records=tuple(records),
        by_id=by_id,
        name_index={key: tuple(value) for key, value in name_index.items()},
    )


class CatalogCache:
    """Process-wide holder of the latest catalog snapshot, refreshed on a TTL."""

    def __init__(
        self,
        source,
        ttl_seconds: float = 300,
        require_id: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Purpose: Configure the cache around a catalog source.
        Inputs/Outputs: Inputs are a source exposing get_rows(), the refresh interval,
            the id requirement flag and a clock; no return value.
        Side Effects / State: Starts with the empty snapshot; nothing is fetched yet.
        Dependencies: Any object with get_rows() -> (header, rows), e.g. SheetSource.
        Failure Modes: None at init; ensure_fresh() reports source failures.
        If Removed: Every request would have to read the spreadsheet directly.
        Testing Notes: Inject a fake source and clock to drive TTL behaviour.
        """
        self._source = source
        self._ttl_seconds = ttl_seconds
        self._require_id = require_id
        self._clock = clock
        self._snapshot = EMPTY_SNAPSHOT

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def ensure_fresh(self) -> CatalogSnapshot:
        """Purpose: Return a fresh snapshot, reloading from the source when stale.
        Inputs/Outputs: No inputs; returns the snapshot to use for this request.
        Side Effects / State: Replaces the snapshot reference after a successful load.
        Dependencies: Calls source.get_rows() and build_snapshot().
        Failure Modes: Raises SourceUnavailable/SourceMalformed only when there is no
            previous snapshot; otherwise the stale snapshot is returned and the
            failure is logged.
        If Removed: The catalog is never loaded and every lookup misses.
        Testing Notes: Two calls within the TTL fetch once; a failing source after a
            successful load keeps the old records.
        """
        current = self._snapshot
        now = self._clock()
        if not current.is_empty and now - current.loaded_at < self._ttl_seconds:
            return current

        try:
            header, rows = self._fetch()
            fresh = build_snapshot(
                header,
                rows,
                version=current.version + 1,
                loaded_at=now,
                require_id=self._require_id,
            )
        except CatalogError as exc:
            if current.is_empty:
                logger.error("catalog load failed error=%s", exc)
                raise
            logger.warning(
                "catalog refresh failed, serving version=%s age=%.0fs error=%s",
                current.version,
                now - current.loaded_at,
                exc,
            )
            return current

        self._snapshot = fresh
        logger.info("catalog loaded version=%s records=%s", fresh.version, len(fresh.records))
        return fresh

    def find_by_id(self, procedure_id: str) -> Optional[ProcedureRecord]:
        if not procedure_id:
            return None
        return self._snapshot.by_id.get(str(procedure_id).strip())

    def all(self) -> Tuple[ProcedureRecord, ...]:
        return self._snapshot.records

    def _fetch(self) -> Tuple[Sequence[object], Sequence[Sequence[object]]]:
        header, rows = self._source.get_rows()
        if not header:
            raise SourceUnavailable("catalog source returned no rows")
        return header, rows
