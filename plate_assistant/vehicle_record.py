from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

DATA_SOURCE_RESOLVED = "resolved"
DATA_SOURCE_DEMO = "demo"

DEMO_MAKE = "BMW"
DEMO_MODEL = "3 Series 320d"
DEMO_YEAR = "2012"
DEMO_GENERATION = "F30"


@dataclass(frozen=True)
class VehicleRecord:
    """Vehicle identity resolved for one registration number."""
    registration_number: str
    make: str = ""
    model: str = ""
    year: str = ""
    generation: str = ""
    vin: str = ""
    found: bool = False
    data_source: str = DATA_SOURCE_RESOLVED

    def __post_init__(self) -> None:
        if self.found and not (self.make or self.model):
            raise ValueError("A found vehicle record needs a make or a model")

    @property
    def is_demo(self) -> bool:
        return self.data_source == DATA_SOURCE_DEMO

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by the HTTP API."""
        return {
            "registrationNumber": self.registration_number,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "generation": self.generation,
            "vin": self.vin,
            "found": self.found,
            "dataSource": self.data_source,
        }


def empty_record(registration: str) -> VehicleRecord:
    return VehicleRecord(registration_number=registration)


def synthesize_demo_record(registration: str) -> VehicleRecord:
    """Purpose: Build the placeholder record used when a lookup resolves nothing.
    Inputs/Outputs: Input is the registration number; output is a demo VehicleRecord.
    Side Effects / State: None; deterministic.
    Dependencies: Uses the DEMO_* constants.
    Failure Modes: None.
    If Removed: Callers would have to special-case a missing vehicle mid-conversation.
    Testing Notes: Result has data_source "demo" and non-empty make/model/year.
    """
    # Fixed sample vehicle, tagged so the prompt can flag it.
    return VehicleRecord(
        registration_number=registration,
        make=DEMO_MAKE,
        model=DEMO_MODEL,
        year=DEMO_YEAR,
        generation=DEMO_GENERATION,
        found=True,
        data_source=DATA_SOURCE_DEMO,
    )
