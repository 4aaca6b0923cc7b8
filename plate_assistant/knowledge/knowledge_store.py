from __future__ import annotations

"""Static repair-shop knowledge: price list, service intervals, generation issues."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..utils import normalize_key

logger = logging.getLogger("plate_assistant.knowledge")


class KnowledgeStore:
    """Read-only view over the knowledge JSON table."""

    def __init__(self, path: Path) -> None:
        """Purpose: Load the knowledge table from disk.
        Inputs/Outputs: Input is the JSON file path; no return value.
        Side Effects / State: Caches the parsed table and a generation key index.
        Dependencies: Uses json and normalize_key.
        Failure Modes: Missing file or invalid JSON raises at startup.
        If Removed: Prompts lose prices, intervals, and generation-specific advice.
        Testing Notes: Load the bundled table and check the baseline generation exists.
        """
        # Load the static table once at startup.
        self._path = path
        data = json.loads(path.read_text(encoding="utf-8"))
        self._generations: Dict[str, Dict[str, Any]] = data.get("generations", {})
        self._baseline = data.get("baseline_generation", "")
        self._price_list: List[Dict[str, str]] = data.get("price_list", [])
        self._service_intervals: Dict[str, str] = data.get("service_intervals", {})
        self._index = {normalize_key(code): code for code in self._generations}
        if self._baseline not in self._generations:
            raise ValueError(f"Baseline generation {self._baseline!r} missing from {path}")
        logger.info("knowledge path=%s generations=%s", path, len(self._generations))

    @property
    def baseline_generation(self) -> str:
        return self._baseline

    @property
    def price_list(self) -> List[Dict[str, str]]:
        return list(self._price_list)

    @property
    def service_intervals(self) -> Dict[str, str]:
        return dict(self._service_intervals)

    def resolve_generation(self, generation: Optional[str]) -> str:
        """Return the known generation code, or the baseline when unknown."""
        code = self._index.get(normalize_key(generation or ""))
        return code or self._baseline

    def recommendations_for(self, generation: Optional[str]) -> Dict[str, Any]:
        """Purpose: Build the recommendation bundle for a vehicle generation.
        Inputs/Outputs: Input is a generation code; output is a camelCase bundle dict.
        Side Effects / State: None; returns fresh copies.
        Dependencies: Uses resolve_generation and the cached table.
        Failure Modes: Unknown generations use the baseline generation.
        If Removed: Chat responses and prompts carry no service advice.
        Testing Notes: "e90" resolves to E90; "X99" resolves to the baseline.
        """
        # Unknown generations fall back to the baseline entry.
        code = self.resolve_generation(generation)
        entry = self._generations.get(code, {})
        return {
            "generation": code,
            "requestedGeneration": generation or "",
            "series": entry.get("series", ""),
            "commonIssues": list(entry.get("common_issues", [])),
            "serviceRecommendations": list(entry.get("service_recommendations", [])),
            "serviceIntervals": self.service_intervals,
        }

    def price_block(self) -> str:
        lines = [f"- {item['service']}: {item['price']}" for item in self._price_list]
        return "\n".join(lines)
