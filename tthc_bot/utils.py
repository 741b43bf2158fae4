import re
import unicodedata
from typing import Any, List

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Purpose: Normalize Vietnamese free text for stable matching.
    Inputs/Outputs: Input is a raw string; output is lowercase text with diacritics
        removed, "đ" folded to "d" and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by the catalog, matcher and signals.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Accented and unaccented queries no longer compare equal and matching breaks.
    Testing Notes: "Cấp Giấy Phép" and "cap giay phep" must normalize to the same value,
        and normalizing twice must not change the result.
    """
    # "đ" has no canonical decomposition, so fold it before stripping marks.
    if not text:
        return ""
    folded = str(text).replace("đ", "d").replace("Đ", "D")
    decomposed = unicodedata.normalize("NFD", folded)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return _WHITESPACE_RE.sub(" ", stripped.lower()).strip()


def tokenize(text: str, min_length: int = 2) -> List[str]:
    """Purpose: Split text into normalized tokens for token-overlap scoring.
    Inputs/Outputs: Input is raw text and a minimum token length; output is a token list.
    Side Effects / State: None.
    Dependencies: Calls normalize_text.
    Failure Modes: Returns an empty list for empty input.
    If Removed: The matcher loses token containment scoring.
    Testing Notes: Single-letter tokens such as "o" are dropped with the default length.
    """
    return [token for token in normalize_text(text).split(" ") if len(token) >= min_length]


def normalize_header(text: str) -> str:
    """Normalize a sheet header ("Mã thủ tục", "ma_thu_tuc") into a column key."""
    return normalize_text(text).replace(" ", "_")


def as_text(value: Any) -> str:
    # Sheet cells and platform parameters may be numbers, lists or None.
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(as_text(part) for part in value if part is not None).strip()
    return str(value).strip()
