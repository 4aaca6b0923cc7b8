from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request payload for the chat API."""
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: str = Field(alias="sessionId")
    vehicle_info: Optional[Dict[str, Any]] = Field(default=None, alias="vehicleInfo")
    recommendations: Optional[Dict[str, Any]] = None
    source: str = "assistant"


class VehicleResponse(BaseModel):
    """Response payload for a direct registration lookup."""
    vehicle: Dict[str, Any]
    recommendations: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    port: int
    sessions: int


class StoredMessage(BaseModel):
    """Conversation message kept in the session store."""
    role: str
    content: str
    timestamp: float
