from __future__ import annotations

"""Prompt assembly for the completion service.

The system instruction is built from three blocks:
    persona   fixed role preamble (prompts/persona.md)
    prices    static price list and service intervals
    vehicle   only when a found VehicleRecord is attached to the session
The conversation itself is sent separately as the last N role-tagged messages.
"""

from pathlib import Path
from typing import Dict, List

from .knowledge.knowledge_store import KnowledgeStore
from .prompt_loader import load_prompt
from .session_store import ConversationSession

DEMO_NOTE = (
    "HUOM: Rekisterihaku ei onnistunut. Alla olevat ajoneuvotiedot ovat esimerkkitietoja "
    "eivätkä koske asiakkaan autoa."
)
ROLE_MAP = {
    "user": "user",
    "assistant": "model",
}


class ContextAssembler:
    """Build the system instruction and windowed history for one completion call."""

    def __init__(self, knowledge: KnowledgeStore, prompts_dir: Path, history_window: int = 10) -> None:
        self._knowledge = knowledge
        self._persona_path = prompts_dir / "persona.md"
        self._history_window = history_window

    def persona(self) -> str:
        return load_prompt(self._persona_path)

    def price_section(self) -> str:
        intervals = "\n".join(
            f"- {name.replace('_', ' ')}: {value}" for name, value in self._knowledge.service_intervals.items()
        )
        return f"HINNASTO:\n{self._knowledge.price_block()}\n\nHUOLTOVÄLIT:\n{intervals}"

    def vehicle_section(self, session: ConversationSession) -> str:
        """Purpose: Describe the attached vehicle and its generation-specific advice.
        Inputs/Outputs: Input is the session; output is a text block or "".
        Side Effects / State: None.
        Dependencies: Uses KnowledgeStore.recommendations_for for issues and actions.
        Failure Modes: Returns "" when no found vehicle is attached.
        If Removed: Replies are generic and ignore the customer's car.
        Testing Notes: Demo records include DEMO_NOTE; unknown generations use the baseline.
        """
        # Nothing to add until a found vehicle is attached.
        record = session.vehicle_info
        if record is None or not record.found:
            return ""
        bundle = session.recommendations or self._knowledge.recommendations_for(record.generation)
        lines: List[str] = ["ASIAKKAAN AJONEUVO:"]
        if record.is_demo:
            lines.append(DEMO_NOTE)
        lines.extend(
            [
                f"- Rekisterinumero: {record.registration_number}",
                f"- Merkki: {record.make or '-'}",
                f"- Malli: {record.model or '-'}",
                f"- Vuosimalli: {record.year or '-'}",
                f"- Sukupolvi: {record.generation or bundle['generation']}",
            ]
        )
        if record.vin:
            lines.append(f"- VIN: {record.vin}")
        lines.append(f"\nTUNNETUT YLEISET VIAT ({bundle['generation']}):")
        lines.extend(f"- {issue}" for issue in bundle.get("commonIssues", []))
        lines.append("\nSUOSITELLUT HUOLTOTOIMENPITEET:")
        lines.extend(f"- {action}" for action in bundle.get("serviceRecommendations", []))
        return "\n".join(lines)

    def build_system_prompt(self, session: ConversationSession) -> str:
        sections = [self.persona(), self.price_section(), self.vehicle_section(session)]
        return "\n\n".join(section for section in sections if section)

    def build_contents(self, session: ConversationSession) -> List[Dict[str, object]]:
        """Return the last history_window messages as Gemini role-tagged contents."""
        window = session.messages[-self._history_window :] if self._history_window > 0 else []
        return [
            {"role": ROLE_MAP.get(message.role, "user"), "parts": [{"text": message.content}]}
            for message in window
        ]
