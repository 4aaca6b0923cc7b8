from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Pattern, Protocol, Tuple

from fastapi.concurrency import run_in_threadpool

from .context_assembler import ContextAssembler
from .knowledge.knowledge_store import KnowledgeStore
from .registration import DEFAULT_REGISTRATION_PATTERN, find_registration, normalize_registration
from .session_store import UNRESOLVED, SessionStore
from .utils import truncate
from .vehicle_record import VehicleRecord
from .vehicle_resolver import VehicleResolver

logger = logging.getLogger("plate_assistant.chat")

ASK_REGISTRATION_REPLY = (
    "Hei! Anna auton rekisterinumero (esim. ABC-123), niin haen auton tiedot "
    "ja voin auttaa paremmin."
)


class CompletionClient(Protocol):
    def generate_reply(self, system_instruction: str, contents: list) -> str:
        ...


class InvalidRegistrationError(ValueError):
    """Raised when a value that must be a registration number is not one."""


@dataclass
class ChatTurn:
    """Result of one handled chat message."""
    message: str
    session_id: str
    vehicle_info: Optional[VehicleRecord] = None
    recommendations: Optional[Dict[str, Any]] = None
    source: str = "assistant"


class ChatAssistant:
    def __init__(
        self,
        sessions: SessionStore,
        resolver: VehicleResolver,
        knowledge: KnowledgeStore,
        assembler: ContextAssembler,
        completion: CompletionClient,
        registration_pattern: Pattern[str] = DEFAULT_REGISTRATION_PATTERN,
    ) -> None:
        self._sessions = sessions
        self._resolver = resolver
        self._knowledge = knowledge
        self._assembler = assembler
        self._completion = completion
        self._registration_pattern = registration_pattern

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    async def handle_message(self, message: str, session_id: Optional[str] = None) -> ChatTurn:
        """Purpose: Run one chat turn: resolve the vehicle once, then ask the model.
        Inputs/Outputs: Inputs are the user message and optional session id; output is a ChatTurn.
        Side Effects / State: Sweeps expired sessions, appends user/assistant messages,
            may run one browser lookup and attach the vehicle to the session.
        Dependencies: Uses SessionStore, VehicleResolver, ContextAssembler, completion client.
        Failure Modes: Completion errors propagate to the HTTP layer; lookup errors never do.
        If Removed: The chat endpoint has no conversation logic.
        Testing Notes: No plate -> re-prompt with zero lookups; second plate is ignored.
        """
        # Sweep first so an expired id is never revived by get_or_create.
        self._sessions.sweep_expired()
        if session_id and self._sessions.is_expired(session_id):
            logger.info("session=%s expired=true action=new_session", session_id)
            session_id = None
        session = self._sessions.get_or_create(session_id)
        logger.info("session=%s question=%s", session.id, truncate(message))
        self._sessions.append_message(session.id, "user", message)

        if session.resolution_state == UNRESOLVED:
            token = find_registration(message, self._registration_pattern)
            if token is None:
                self._sessions.append_message(session.id, "assistant", ASK_REGISTRATION_REPLY)
                logger.info("session=%s registration=missing action=reprompt", session.id)
                return ChatTurn(message=ASK_REGISTRATION_REPLY, session_id=session.id, source="system")
            if self._sessions.begin_resolution(session.id):
                try:
                    record = await self._resolver.resolve(token)
                except BaseException:
                    self._sessions.abort_resolution(session.id)
                    raise
                self._sessions.attach_vehicle_info(
                    session.id,
                    record,
                    self._knowledge.recommendations_for(record.generation),
                )
                # Read back the stored session; the object held above may be stale.
                session = self._sessions.get_or_create(session.id)

        system_prompt = self._assembler.build_system_prompt(session)
        contents = self._assembler.build_contents(session)
        reply = await run_in_threadpool(self._completion.generate_reply, system_prompt, contents)
        self._sessions.append_message(session.id, "assistant", reply)
        logger.info("session=%s reply_chars=%s", session.id, len(reply))
        return ChatTurn(
            message=reply,
            session_id=session.id,
            vehicle_info=session.vehicle_info,
            recommendations=session.recommendations,
        )

    async def lookup_vehicle(self, raw_registration: str) -> Tuple[VehicleRecord, Dict[str, Any]]:
        """Purpose: Resolve a registration outside any conversation.
        Inputs/Outputs: Input is the raw registration; output is (record, recommendations).
        Side Effects / State: One browser lookup; no session is touched.
        Dependencies: Uses normalize_registration, VehicleResolver, KnowledgeStore.
        Failure Modes: Raises InvalidRegistrationError when the value is not a plate.
        If Removed: GET /vehicle has nothing to call.
        Testing Notes: "abc-123" resolves; "hello" raises InvalidRegistrationError.
        """
        # Same plate shape as the chat flow, but the whole value must match.
        token = normalize_registration(raw_registration, self._registration_pattern)
        if token is None:
            raise InvalidRegistrationError(f"Not a registration number: {raw_registration!r}")
        record = await self._resolver.resolve(token)
        return record, self._knowledge.recommendations_for(record.generation)
