from __future__ import annotations

"""Registration number detection and canonicalization for free-text chat input."""

import re
from dataclasses import dataclass
from typing import Optional, Pattern

# Three letters and three digits, optionally separated by "-" or a space.
# Shorter plates (2-3 letters, 1-3 digits) only count with an explicit "-".
DEFAULT_REGISTRATION_REGEX = (
    r"(?<![A-ZÅÄÖ0-9])"
    r"(?:[A-ZÅÄÖ]{3}[-\s]?\d{3}|[A-ZÅÄÖ]{2,3}-\d{1,3})"
    r"(?![A-ZÅÄÖ0-9])"
)
CANONICAL_RE = re.compile(r"^([A-ZÅÄÖ]{3})(\d{3})$")
SEPARATOR_RE = re.compile(r"[-\s]")


def compile_registration_pattern(regex: str) -> Pattern[str]:
    """Compile a plate regex case-insensitively; invalid regexes raise ValueError."""
    try:
        return re.compile(regex, re.IGNORECASE)
    except re.error as exc:
        raise ValueError(f"Invalid registration pattern {regex!r}: {exc}") from exc


DEFAULT_REGISTRATION_PATTERN = compile_registration_pattern(DEFAULT_REGISTRATION_REGEX)


@dataclass(frozen=True)
class RegistrationToken:
    """Normalized registration plus the form typed into the lookup site."""
    value: str
    formatted: str

    def __str__(self) -> str:
        return self.value


def canonicalize(raw: str) -> RegistrationToken:
    """Purpose: Strip separators, uppercase, and derive the lookup form.
    Inputs/Outputs: Input is a matched plate substring; output is a RegistrationToken.
    Side Effects / State: None; pure function.
    Dependencies: Uses SEPARATOR_RE and CANONICAL_RE.
    Failure Modes: None; non-canonical shapes keep formatted == value.
    If Removed: Lookups would be typed with inconsistent casing and separators.
    Testing Notes: "abc 123" -> value "ABC123", formatted "ABC-123".
    """
    # Strip separators, then restore the dash only for the 3+3 shape.
    value = SEPARATOR_RE.sub("", raw).upper()
    match = CANONICAL_RE.match(value)
    formatted = f"{match.group(1)}-{match.group(2)}" if match else value
    return RegistrationToken(value=value, formatted=formatted)


def find_registration(text: str, pattern: Pattern[str] = DEFAULT_REGISTRATION_PATTERN) -> Optional[RegistrationToken]:
    """Purpose: Find the first plate-like substring in a chat message.
    Inputs/Outputs: Input is raw user text; output is a RegistrationToken or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses the configurable plate pattern and canonicalize.
    Failure Modes: Returns None when nothing plate-like is present; callers re-prompt.
    If Removed: The chat flow cannot decide whether a vehicle lookup is possible.
    Testing Notes: "ABC-123 mitä vikaa" yields ABC123 / ABC-123; "moi" yields None.
    """
    # Only the first plate-like substring counts.
    if not text:
        return None
    match = pattern.search(text)
    if not match:
        return None
    return canonicalize(match.group(0))


def normalize_registration(raw: str, pattern: Pattern[str] = DEFAULT_REGISTRATION_PATTERN) -> Optional[RegistrationToken]:
    """Purpose: Validate a value that must be a registration number in full.
    Inputs/Outputs: Input is a raw path or form value; output is a token or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses the same pattern as find_registration.
    Failure Modes: Returns None if extra text surrounds the plate.
    If Removed: The vehicle endpoint would accept arbitrary strings for lookup.
    Testing Notes: "abc-123" is accepted; "abc-123x" and "hello" are rejected.
    """
    # The whole trimmed value must be the match, not just contain one.
    candidate = (raw or "").strip()
    match = pattern.search(candidate)
    if not match or match.group(0) != candidate:
        return None
    return canonicalize(candidate)
