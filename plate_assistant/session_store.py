from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .models import StoredMessage
from .vehicle_record import VehicleRecord

logger = logging.getLogger("plate_assistant.sessions")

UNRESOLVED = "UNRESOLVED"
RESOLVING = "RESOLVING"
RESOLVED = "RESOLVED"

SESSION_ID_TIMESTAMP_RE = re.compile(r"^(?:session[_-])?(\d{13})(?:$|[-_])")


def new_session_id(now: Optional[float] = None) -> str:
    """Generate a session id that starts with the creation time in epoch milliseconds."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{millis}-{uuid.uuid4().hex[:8]}"


def session_id_timestamp(session_id: str) -> Optional[float]:
    """Purpose: Read the creation time encoded in a session id.
    Inputs/Outputs: Input is a session id; output is epoch seconds or None.
    Side Effects / State: None; pure function.
    Dependencies: Uses SESSION_ID_TIMESTAMP_RE (13-digit millisecond prefix).
    Failure Modes: Ids without an encoded timestamp return None and are never swept.
    If Removed: The default expiry policy has no creation time to compare.
    Testing Notes: "1700000000000-ab12cd34" -> 1700000000.0; "my-chat" -> None.
    """
    # Undated ids yield None and are never swept.
    match = SESSION_ID_TIMESTAMP_RE.match(session_id or "")
    if not match:
        return None
    return int(match.group(1)) / 1000.0


@dataclass
class ConversationSession:
    """Mutable per-conversation state held in memory."""
    id: str
    messages: List[StoredMessage] = field(default_factory=list)
    vehicle_info: Optional[VehicleRecord] = None
    context: Dict[str, Any] = field(default_factory=dict)
    resolution_state: str = UNRESOLVED
    updated_at: float = field(default_factory=time.time)

    @property
    def recommendations(self) -> Optional[Dict[str, Any]]:
        return self.context.get("recommendations")


class SessionStore:
    """In-memory session storage with recency pruning and time-based expiry."""

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_sessions: Optional[int] = None,
        created_at_fn: Callable[[str], Optional[float]] = session_id_timestamp,
    ) -> None:
        """Purpose: Initialize an empty process-local session store.
        Inputs/Outputs: Inputs are the TTL, max_sessions cap, and creation-time reader.
        Side Effects / State: Creates the in-memory session map.
        Dependencies: created_at_fn decouples expiry from the session id format.
        Failure Modes: None.
        If Removed: Chat history and vehicle context are lost between messages.
        Testing Notes: Inject created_at_fn to test expiry without real ids.
        """
        # In-memory only; nothing survives a restart.
        self._ttl_seconds = ttl_seconds
        self._max_sessions = max_sessions
        self._created_at_fn = created_at_fn
        self._sessions: Dict[str, ConversationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(session_id)

    def upsert(self, session: ConversationSession) -> ConversationSession:
        """Store or replace a session and enforce the max_sessions cap."""
        # Touch, store, then trim the least recent sessions.
        session.updated_at = time.time()
        self._sessions[session.id] = session
        self._prune_sessions(keep=session.id)
        return session

    def get_or_create(self, session_id: Optional[str] = None) -> ConversationSession:
        """Purpose: Return an existing session or create an empty one.
        Inputs/Outputs: Input is an optional id; output is the ConversationSession.
        Side Effects / State: Creates and stores a session on first reference.
        Dependencies: Uses new_session_id when no id is supplied.
        Failure Modes: None.
        If Removed: Every request would start a fresh conversation.
        Testing Notes: Same id returns the same object; None yields a timestamped id.
        """
        # Reuse a live session; otherwise register a new one under the given or generated id.
        if session_id:
            existing = self._sessions.get(session_id)
            if existing is not None:
                return existing
        session = ConversationSession(id=session_id or new_session_id())
        logger.info("session=%s created", session.id)
        return self.upsert(session)

    def append_message(self, session_id: str, role: str, content: str) -> StoredMessage:
        """Purpose: Append a message to a session's ordered history.
        Inputs/Outputs: Inputs are session_id, role, content; returns the stored message.
        Side Effects / State: Creates the session implicitly; updates updated_at.
        Dependencies: Uses StoredMessage and get_or_create.
        Failure Modes: None; history is not capped here (windowing happens at prompt time).
        If Removed: Conversation history is never recorded.
        Testing Notes: Append user/assistant messages and verify order.
        """
        # Append in arrival order and bump recency for pruning.
        session = self.get_or_create(session_id)
        message = StoredMessage(role=role, content=content, timestamp=time.time())
        session.messages.append(message)
        session.updated_at = message.timestamp
        return message

    def recent_messages(self, session_id: str, limit: int = 10) -> List[StoredMessage]:
        session = self._sessions.get(session_id)
        if session is None or limit <= 0:
            return []
        return list(session.messages[-limit:])

    def begin_resolution(self, session_id: str) -> bool:
        """Purpose: Move a session from UNRESOLVED to RESOLVING.
        Inputs/Outputs: Input is session_id; returns True if this caller owns the lookup.
        Side Effects / State: Mutates resolution_state.
        Dependencies: Relies on single-threaded event-loop access.
        Failure Modes: Returns False when RESOLVING or RESOLVED.
        If Removed: Concurrent messages could start duplicate browser lookups.
        Testing Notes: Second call returns False until abort_resolution.
        """
        # Only an UNRESOLVED session may start a lookup.
        session = self.get_or_create(session_id)
        if session.resolution_state != UNRESOLVED:
            return False
        session.resolution_state = RESOLVING
        logger.info("session=%s resolution=%s", session_id, RESOLVING)
        return True

    def abort_resolution(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None and session.resolution_state == RESOLVING:
            session.resolution_state = UNRESOLVED
            logger.info("session=%s resolution=%s", session_id, UNRESOLVED)

    def attach_vehicle_info(
        self,
        session_id: str,
        record: VehicleRecord,
        recommendations: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Purpose: Attach the resolved vehicle to a session exactly once.
        Inputs/Outputs: Inputs are session_id, record, recommendations; returns True if attached.
        Side Effects / State: Sets vehicle_info/context and marks the session RESOLVED.
        Dependencies: None beyond the session map.
        Failure Modes: No-op (returns False) when vehicle_info is already set.
        If Removed: Vehicle context never reaches the prompt assembler.
        Testing Notes: A second attach with another plate must not overwrite the first.
        """
        # First attachment wins; later records are ignored.
        session = self.get_or_create(session_id)
        if session.vehicle_info is not None:
            logger.info("session=%s attach=skipped existing=%s", session_id, session.vehicle_info.registration_number)
            return False
        session.vehicle_info = record
        session.context["recommendations"] = recommendations
        session.resolution_state = RESOLVED
        logger.info(
            "session=%s attach=done registration=%s source=%s",
            session_id,
            record.registration_number,
            record.data_source,
        )
        return True

    def is_expired(self, session_id: str, now: Optional[float] = None) -> bool:
        created_at = self._created_at_fn(session_id)
        if created_at is None:
            return False
        current = time.time() if now is None else now
        return current - created_at > self._ttl_seconds

    def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        """Purpose: Remove sessions whose creation time is older than the TTL.
        Inputs/Outputs: Optional current time; returns the removed session ids.
        Side Effects / State: Deletes sessions from the in-memory map.
        Dependencies: Uses created_at_fn; ids it cannot date are kept.
        Failure Modes: None; RESOLVING sessions are skipped until the lookup finishes.
        If Removed: Abandoned conversations accumulate for the process lifetime.
        Testing Notes: A session created 3,600,001 ms ago is removed; undated ids stay.
        """
        # Sessions mid-lookup are left alone until their vehicle is attached.
        current = time.time() if now is None else now
        removed = []
        for session_id, session in list(self._sessions.items()):
            if session.resolution_state == RESOLVING:
                continue
            if self.is_expired(session_id, now=current):
                self._sessions.pop(session_id, None)
                removed.append(session_id)
        if removed:
            logger.info("sweep removed=%s remaining=%s", len(removed), len(self._sessions))
        return removed

    def _prune_sessions(self, keep: Optional[str] = None) -> bool:
        """Purpose: Enforce max_sessions by dropping the least recently updated sessions.
        Inputs/Outputs: Optional id that must survive; returns True if any were removed.
        Side Effects / State: Mutates the session map.
        Dependencies: Uses _max_sessions and updated_at ordering.
        Failure Modes: None; RESOLVING sessions are never dropped; no-op when
            max_sessions is unset or not exceeded.
        If Removed: Sessions with undated ids can grow without bound.
        Testing Notes: Set a low max_sessions and verify pruning order.
        """
        # Nothing to trim without a cap or below it.
        if not self._max_sessions or self._max_sessions <= 0:
            return False
        if len(self._sessions) <= self._max_sessions:
            return False

        # The kept id and sessions mid-lookup are never candidates for removal.
        protected = {
            session.id
            for session in self._sessions.values()
            if session.id == keep or session.resolution_state == RESOLVING
        }
        ordered = sorted(
            (session for session in self._sessions.values() if session.id not in protected),
            key=lambda s: s.updated_at,
            reverse=True,
        )
        room = max(self._max_sessions - len(protected), 0)
        removed = [session.id for session in ordered[room:]]
        for session_id in removed:
            self._sessions.pop(session_id, None)
        if removed:
            logger.info("prune removed=%s", len(removed))
        return bool(removed)
