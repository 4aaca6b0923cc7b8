from __future__ import annotations

from typing import Dict, List, Optional

import google.generativeai as genai

from .config import Settings


class GeminiClient:
    """Thin wrapper around the Gemini SDK for chat replies with a system instruction."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK global API key.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: The chat endpoint cannot produce assistant replies.
        Testing Notes: Validate a missing key raises ValueError.
        """
        # Fail fast on missing credentials before configuring the SDK.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        self._model_name = _normalize_model_name(settings.gemini_model)
        if not self._model_name:
            raise ValueError("Gemini model name is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._temperature = settings.temperature
        self._max_output_tokens = settings.max_output_tokens
        self._models: Dict[str, genai.GenerativeModel] = {}

    def _model(self, system_instruction: Optional[str]) -> genai.GenerativeModel:
        # system_instruction is fixed per GenerativeModel instance, so cache by prompt.
        key = system_instruction or ""
        if key not in self._models:
            if len(self._models) >= 32:
                self._models.clear()
            self._models[key] = genai.GenerativeModel(self._model_name, system_instruction=system_instruction or None)
        return self._models[key]

    def generate_reply(self, system_instruction: str, contents: List[dict]) -> str:
        """Purpose: Generate the assistant reply for a windowed conversation.
        Inputs/Outputs: Inputs are the system instruction and role-tagged contents;
            returns the reply text.
        Side Effects / State: May add a model instance to the cache.
        Dependencies: Uses genai.GenerativeModel.generate_content.
        Failure Modes: SDK and network errors propagate; an empty reply raises RuntimeError.
        If Removed: The assistant has no way to answer the customer.
        Testing Notes: Replace with a fake in API tests; check generation_config bounds.
        """
        # One cached model per system instruction.
        response = self._model(system_instruction).generate_content(
            contents,
            generation_config={
                "temperature": self._temperature,
                "max_output_tokens": self._max_output_tokens,
            },
        )
        text: Optional[str] = getattr(response, "text", None)
        reply = (text or "").strip()
        if not reply:
            raise RuntimeError("Gemini returned an empty reply")
        return reply


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip the "models/" prefix and whitespace from a model name."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
