from __future__ import annotations

"""Vehicle field extraction from lookup-site JSON payloads.

The lookup API describes a car with one composite name string such as
"BMW 3 Series (E90) 320i (2010)". Decomposition is tried with two ordered
patterns; a structured chassis sub-record is the last-resort source.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from .vehicle_record import VehicleRecord, empty_record

logger = logging.getLogger("plate_assistant.parser")

NAME_KEYS = [
    "name",
    "vehicleName",
    "carName",
    "description",
]
CHASSIS_KEYS = [
    "chassis",
    "vehicle",
    "car",
]
MANUFACTURER_KEYS = [
    "manufacturer",
    "make",
    "brand",
]
MODEL_KEYS = [
    "model",
    "modelName",
]
YEAR_KEYS = [
    "year",
    "modelYear",
]
VIN_KEYS = [
    "vin",
    "VIN",
    "vinCode",
    "chassisNumber",
]

COMPLEX_NAME_RE = re.compile(
    r"^(?P<make>\S+)\s+(?P<prefix>.+?)\s*\((?P<codes>[^()]+)\)\s*(?P<suffix>[^()]*?)\s*\((?P<year>\d{4})\)\s*$"
)
SIMPLE_NAME_RE = re.compile(r"^(?P<make>\S+)\s+(?P<model>.+?)\s*\((?P<year>\d{4})\)\s*$")
CODE_SPLIT_RE = re.compile(r"\s*[,/]\s*")


def _first_text(record: Dict[str, Any], keys: List[str]) -> str:
    for key in keys:
        value = record.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            text = str(value).strip()
            if text:
                return text
    return ""


def get_composite_name(payload: Dict[str, Any]) -> str:
    """Return the composite descriptive name string, or an empty string."""
    return _first_text(payload, NAME_KEYS) if isinstance(payload, dict) else ""


def get_chassis(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the first structured chassis sub-record carrying a make or model."""
    if not isinstance(payload, dict):
        return None
    for key in CHASSIS_KEYS:
        value = payload.get(key)
        if isinstance(value, dict) and (_first_text(value, MANUFACTURER_KEYS) or _first_text(value, MODEL_KEYS)):
            return value
    return None


def is_useful_payload(payload: Any) -> bool:
    """Purpose: Decide whether a decoded JSON body carries vehicle data.
    Inputs/Outputs: Input is any decoded JSON value; output is a bool.
    Side Effects / State: None; pure function.
    Dependencies: Uses NAME_KEYS, CHASSIS_KEYS and the make/model key lists.
    Failure Modes: Non-dict payloads (lists, scalars) are never useful.
    If Removed: The interceptor cannot tell vehicle payloads from telemetry.
    Testing Notes: {"name": "..."} and {"chassis": {"model": "..."}} are useful; {} is not.
    """
    # Name keys are checked in priority order.
    if not isinstance(payload, dict):
        return False
    return bool(get_composite_name(payload)) or get_chassis(payload) is not None


def _first_code(codes: str) -> str:
    parts = [part for part in CODE_SPLIT_RE.split(codes.strip()) if part]
    return parts[0] if parts else ""


def parse_vehicle_name(name: str) -> Optional[Dict[str, str]]:
    """Purpose: Decompose a composite vehicle name with the complex then simple pattern.
    Inputs/Outputs: Input is the composite name; output is a field dict or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses COMPLEX_NAME_RE and SIMPLE_NAME_RE in that order.
    Failure Modes: Returns None when neither pattern matches.
    If Removed: Make/model/year/generation cannot be read from the lookup payload.
    Testing Notes: "BMW 3 Series (E90) 320i (2010)" -> model "3 Series 320i", generation "E90".
    """
    # Longest pattern first so the generation code is not mistaken for a year.
    if not name:
        return None
    text = re.sub(r"\s+", " ", name).strip()

    match = COMPLEX_NAME_RE.match(text)
    if match:
        model = " ".join(part for part in (match.group("prefix").strip(), match.group("suffix").strip()) if part)
        return {
            "make": match.group("make"),
            "model": model,
            "year": match.group("year"),
            "generation": _first_code(match.group("codes")),
        }

    match = SIMPLE_NAME_RE.match(text)
    if match:
        return {
            "make": match.group("make"),
            "model": match.group("model").strip(),
            "year": match.group("year"),
            "generation": "",
        }
    return None


def parse_vehicle_payload(payload: Optional[Dict[str, Any]], registration: str) -> VehicleRecord:
    """Purpose: Build a VehicleRecord from the captured lookup payload.
    Inputs/Outputs: Inputs are the payload (or None) and registration; output is a record.
    Side Effects / State: Emits debug/info logs only.
    Dependencies: Uses parse_vehicle_name, get_chassis, and the VIN key list.
    Failure Modes: Unparseable payloads return an empty record with found=False.
    If Removed: Captured payloads are never turned into vehicle context.
    Testing Notes: Cover complex, simple, chassis-only, VIN-only, and empty payloads.
    """
    # Complex name first, then simple name, then the chassis sub-record.
    if not isinstance(payload, dict):
        return empty_record(registration)

    chassis = get_chassis(payload) or {}
    vin = _first_text(payload, VIN_KEYS) or _first_text(chassis, VIN_KEYS)
    name = get_composite_name(payload)

    fields = parse_vehicle_name(name)
    if fields:
        logger.info("registration=%s name_pattern=match name=%s", registration, name)
        return VehicleRecord(registration_number=registration, vin=vin, found=True, **fields)

    if name:
        logger.info("registration=%s name_pattern=miss name=%s", registration, name)

    make = _first_text(chassis, MANUFACTURER_KEYS)
    model = _first_text(chassis, MODEL_KEYS)
    if make or model:
        logger.info("registration=%s source=chassis make=%s model=%s", registration, make, model)
        return VehicleRecord(
            registration_number=registration,
            make=make,
            model=model,
            year=_first_text(chassis, YEAR_KEYS),
            vin=vin,
            found=True,
        )

    return VehicleRecord(registration_number=registration, vin=vin)
