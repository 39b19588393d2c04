"""
Gateway API — HTTP endpoints for the coordination core.

Endpoints:
  POST   /api/gateway/emit                  Inject a transport event
  GET    /api/gateway/status                Readiness, counts, queues
  GET    /api/gateway/responses             Messages recorded by the harness platform
  PUT    /api/gateway/blocklist/{entry_id}  Block a user or group
  DELETE /api/gateway/blocklist/{entry_id}  Unblock a user or group
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, ValidationError

from shardline.gateway.events import EventEnvelope, EventType

logger = logging.getLogger("gateway.api")

router = APIRouter(prefix="/api/gateway", tags=["gateway"])


# ── Request / Response Models ──


class EmitEventRequest(BaseModel):
    """Request body for POST /api/gateway/emit."""

    event_type: str
    shard_id: int = 0
    payload: dict[str, Any] = Field(default_factory=dict)


class EmitEventResponse(BaseModel):
    success: bool
    event_id: str = ""
    message: str = ""


class GatewayStatusResponse(BaseModel):
    status: str = "ok"
    readiness: dict[str, Any] = Field(default_factory=dict)
    group_count: int = 0
    cached_messages: int = 0
    active_sessions: int = 0
    active_shards: list[int] = Field(default_factory=list)
    blocklist_size: int = 0


class BlocklistResponse(BaseModel):
    entry_id: int
    blocked: bool
    changed: bool


# ── Endpoints ──


@router.post("/emit", response_model=EmitEventResponse)
async def emit_event(request: EmitEventRequest):
    """
    Validate an event and put it on its shard's queue.

    The payload is checked against the model for the event type up front
    so malformed events are rejected here instead of failing in a worker.
    """
    from shardline.gateway.setup import get_queue_manager

    queue_manager = get_queue_manager()
    if queue_manager is None:
        raise HTTPException(status_code=503, detail="Gateway not initialized")

    try:
        event_type = EventType(request.event_type)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid event_type: {request.event_type}. "
                   f"Valid types: {[e.value for e in EventType]}",
        )

    envelope = EventEnvelope(
        event_type=event_type,
        shard_id=request.shard_id,
        payload=request.payload,
    )
    try:
        envelope.parsed()
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {exc.errors()}")

    await queue_manager.enqueue(envelope)
    return EmitEventResponse(
        success=True,
        event_id=envelope.event_id,
        message=f"Event {event_type.value} accepted for shard {request.shard_id}",
    )


@router.get("/status", response_model=GatewayStatusResponse)
async def gateway_status():
    from shardline.gateway.setup import get_blocklist, get_gateway, get_queue_manager

    gateway = get_gateway()
    if gateway is None:
        return GatewayStatusResponse(status="not_initialized")

    status = gateway.status()
    queue_manager = get_queue_manager()
    blocklist = get_blocklist()
    return GatewayStatusResponse(
        readiness=status["readiness"],
        group_count=status["group_count"],
        cached_messages=status["cached_messages"],
        active_sessions=status["active_sessions"],
        active_shards=queue_manager.active_shards if queue_manager else [],
        blocklist_size=len(blocklist) if blocklist is not None else 0,
    )


@router.get("/responses")
async def harness_responses(channel_id: int | None = None):
    """Messages sent through the harness platform (development only)."""
    from shardline.gateway.dispatchers.harness import HarnessPlatform
    from shardline.gateway.setup import get_platform

    platform = get_platform()
    if not isinstance(platform, HarnessPlatform):
        raise HTTPException(status_code=404, detail="Harness platform not active")
    sent = platform.sent if channel_id is None else platform.sent_to(channel_id)
    return {
        "count": len(sent),
        "messages": [m.model_dump(mode="json") for m in sent],
    }


@router.put("/blocklist/{entry_id}", response_model=BlocklistResponse)
async def block_entry(entry_id: int):
    blocklist = _require_blocklist()
    changed = await blocklist.insert(entry_id)
    return BlocklistResponse(entry_id=entry_id, blocked=True, changed=changed)


@router.delete("/blocklist/{entry_id}", response_model=BlocklistResponse)
async def unblock_entry(entry_id: int):
    blocklist = _require_blocklist()
    changed = await blocklist.remove(entry_id)
    return BlocklistResponse(entry_id=entry_id, blocked=False, changed=changed)


def _require_blocklist():
    from shardline.gateway.setup import get_blocklist

    blocklist = get_blocklist()
    if blocklist is None:
        raise HTTPException(status_code=503, detail="Gateway not initialized")
    return blocklist
