import re
import unicodedata
from typing import Optional


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable matching.
    Inputs/Outputs: Input is a raw string; output is a lowercase ASCII-only string with
        diacritics removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by knowledge lookups.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Generation codes typed as "e-90" or "E 90" stop matching the table.
    Testing Notes: "Mitä VIKAA?" -> "mita vikaa".
    """
    # Lowercase and strip diacritics (ä -> a, ö -> o) for consistent matching.
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s]+", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def normalize_key(text: str) -> str:
    """Collapse normalize_text output into a compact key without spaces."""
    return normalize_text(text).replace(" ", "")


def truncate(text: Optional[str], limit: int = 200) -> str:
    """Shorten text for log lines."""
    if not text:
        return ""
    compact = re.sub(r"\s+", " ", text).strip()
    if len(compact) <= limit:
        return compact
    return compact[: limit - 3] + "..."
