from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .browser_session import BrowserSessionController, lookup_step_budget
from .chat_service import ChatAssistant, InvalidRegistrationError
from .config import Settings, load_settings
from .context_assembler import ContextAssembler
from .gemini_client import GeminiClient
from .knowledge.knowledge_store import KnowledgeStore
from .models import ChatRequest, ChatResponse, HealthResponse, VehicleResponse
from .session_store import SessionStore
from .vehicle_resolver import VehicleResolver

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("plate_assistant").setLevel(log_level)
logger = logging.getLogger("plate_assistant.api")

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)
else:
    load_dotenv()

INTERNAL_ERROR_MESSAGE = "Pahoittelut, jokin meni pieleen. Yritä hetken kuluttua uudelleen."


def build_assistant(settings: Settings) -> ChatAssistant:
    """Purpose: Wire the production collaborators of the chat assistant.
    Inputs/Outputs: Input is Settings; output is a ChatAssistant.
    Side Effects / State: Loads the knowledge table and configures the Gemini SDK.
    Dependencies: Playwright controller, SessionStore, KnowledgeStore, GeminiClient.
    Failure Modes: Missing GEMINI_API_KEY or knowledge file raises at startup;
        a lookup timeout not above the page step budget raises ValueError.
    If Removed: create_app has no default assistant.
    Testing Notes: Tests pass their own ChatAssistant with fakes instead.
    """
    # Reject an outer timeout that would cut the page steps short.
    step_budget = lookup_step_budget(settings)
    if settings.lookup_timeout_seconds <= step_budget:
        raise ValueError(
            f"LOOKUP_TIMEOUT_SECONDS={settings.lookup_timeout_seconds} must exceed the "
            f"page step budget of {step_budget}s"
        )

    knowledge = KnowledgeStore(settings.knowledge_path)
    resolver = VehicleResolver(
        BrowserSessionController(settings),
        lookup_timeout=settings.lookup_timeout_seconds,
    )
    return ChatAssistant(
        sessions=SessionStore(ttl_seconds=settings.session_ttl_seconds, max_sessions=settings.max_sessions),
        resolver=resolver,
        knowledge=knowledge,
        assembler=ContextAssembler(knowledge, settings.prompts_dir, history_window=settings.history_window),
        completion=GeminiClient(settings),
        registration_pattern=settings.registration_pattern,
    )


def create_app(settings: Optional[Settings] = None, assistant: Optional[ChatAssistant] = None) -> FastAPI:
    """Purpose: Build the FastAPI application with CORS and the chat/vehicle/health routes.
    Inputs/Outputs: Optional Settings and ChatAssistant; returns the FastAPI app.
    Side Effects / State: Builds production collaborators when none are injected.
    Dependencies: Uses FastAPI, CORSMiddleware, and build_assistant.
    Failure Modes: Errors from build_assistant propagate at startup.
    If Removed: The service has no HTTP surface.
    Testing Notes: Inject a ChatAssistant with fakes and use TestClient.
    """
    # Fall back to production wiring when nothing is injected.
    settings = settings or load_settings()
    assistant = assistant or build_assistant(settings)

    app = FastAPI(title="Bemufix Registration Assistant")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_origin_regex=settings.allowed_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.assistant = assistant
    app.state.settings = settings

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            port=settings.port,
            sessions=len(assistant.sessions),
        )

    @app.post("/chat", response_model=ChatResponse)
    @app.post("/api/chat", response_model=ChatResponse, include_in_schema=False)
    async def chat(request: ChatRequest):
        """Purpose: Handle one chat message and return the assistant reply.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse or an error JSON.
        Side Effects / State: Updates session history; may run one browser lookup.
        Dependencies: Uses ChatAssistant.handle_message.
        Failure Modes: Blank message -> 400; any other failure -> 500 {error, details}.
        If Removed: Core chat functionality is unavailable.
        Testing Notes: Send a message with a plate and verify vehicleInfo in the response.
        """
        # Reject blank input before touching the session store.
        message = (request.message or "").strip()
        if not message:
            return JSONResponse(status_code=400, content={"error": "message is required"})
        try:
            turn = await assistant.handle_message(message, request.session_id)
        except Exception as exc:
            logger.exception("session=%s chat=failed", request.session_id)
            return JSONResponse(
                status_code=500,
                content={"error": INTERNAL_ERROR_MESSAGE, "details": str(exc)},
            )
        return ChatResponse(
            message=turn.message,
            session_id=turn.session_id,
            vehicle_info=turn.vehicle_info.to_dict() if turn.vehicle_info else None,
            recommendations=turn.recommendations,
            source=turn.source,
        )

    @app.get("/vehicle/{registration_number}", response_model=VehicleResponse)
    async def vehicle(registration_number: str):
        """Purpose: Resolve a registration number without a conversation.
        Inputs/Outputs: Input is the path value; output is {vehicle, recommendations}.
        Side Effects / State: One browser lookup.
        Dependencies: Uses ChatAssistant.lookup_vehicle.
        Failure Modes: Not a plate -> 400; unexpected errors -> 500 {error, details}.
        If Removed: Clients cannot pre-resolve a vehicle before chatting.
        Testing Notes: Request /vehicle/ABC-123 with a fake resolver.
        """
        # Invalid plates are a client error; anything else is a server error.
        try:
            record, recommendations = await assistant.lookup_vehicle(registration_number)
        except InvalidRegistrationError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        except Exception as exc:
            logger.exception("registration=%s vehicle=failed", registration_number)
            return JSONResponse(
                status_code=500,
                content={"error": INTERNAL_ERROR_MESSAGE, "details": str(exc)},
            )
        return VehicleResponse(vehicle=record.to_dict(), recommendations=recommendations)

    return app
