import os
from typing import Any, cast
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel
from starlette.middleware.cors import CORSMiddleware

from dialogrouter.agents.types import Activity, ActivityType
from dialogrouter.core.runtime import Runtime, build_runtime
from dialogrouter.utils.env_cfg import load_host_env
from dialogrouter.utils.logging_cfg import setup_logging

# Load allowed origins from environment or default to the channel emulator's ports
allowed_origins = load_host_env().cors_allowed_origins.split(",")

app = FastAPI(title="Dialog Router")
app.add_middleware(
    middleware_class=cast(Any, CORSMiddleware),
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

runtime: Runtime | None = None


def _get_runtime() -> Runtime:
    """
    Return the process-wide runtime, building it on first use.

    Returns:
        Runtime: The runtime.
    """
    global runtime
    if runtime is None:
        runtime = build_runtime()
    return runtime


# --- Pydantic models for request and response payloads ---


class ActivityIn(BaseModel):
    conversation_id: str
    type: ActivityType = ActivityType.MESSAGE
    text: str | None = None
    value: dict[str, Any] | None = None
    name: str | None = None
    code: str | None = None
    channel_id: str = "api"
    from_id: str = "user"
    recipient_id: str = "bot"
    service_url: str | None = None
    id: str | None = None


class ActivitiesOut(BaseModel):
    activities: list[dict]


class TimeoutIn(BaseModel):
    conversation_id: str
    user_id: str | None = None
    skill_instance_id: str | None = None


class TimeoutOut(BaseModel):
    ok: bool
    conversation_id: str


class ConversationListOut(BaseModel):
    conversations: list[dict]


# --- API Endpoints ---


@app.get("/health", tags=["Health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/messages", response_model=ActivitiesOut, tags=["Messages"])
def messages(payload: ActivityIn) -> dict[str, list[dict]]:
    """
    Dispatch one inbound activity.

    Args:
        payload (ActivityIn): The inbound activity.

    Returns:
        dict[str, list[dict]]: The activities sent while handling the turn.

    Raises:
        HTTPException: If the conversation id is blank.
        HTTPException: If the turn fails.
    """
    try:
        if not payload.conversation_id.strip():
            logger.error("HTTPException: Conversation id required")
            raise HTTPException(status_code=400, detail="Conversation id required")
        turn = _get_runtime().dispatcher.handle_turn(Activity(**payload.model_dump()))
        return {"activities": [a.to_dict() for a in turn.sent]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error("HTTPException: Error handling turn: {}", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/timeout", response_model=TimeoutOut, tags=["Messages"])
def timeout(payload: TimeoutIn) -> dict[str, bool | str]:
    """
    Watchdog trigger: end the conversation's interaction if one is in progress.

    Args:
        payload (TimeoutIn): The conversation and, optionally, the tracked user and interaction.

    Returns:
        dict[str, bool | str]: Acknowledgement.

    Raises:
        HTTPException: If no conversation reference is stored.
        HTTPException: If the reference cannot be loaded.
    """
    try:
        rt = _get_runtime()
        cid = payload.conversation_id
        reference = rt.store.load_reference(cid)
        if reference is None:
            logger.error("HTTPException: No conversation reference for {}", cid)
            raise HTTPException(status_code=404, detail="Conversation not found")
        skill_instance_id = (
            payload.skill_instance_id or rt.skill_context.get_skill_instance_id(cid)
        )
        rt.timeouts.on_timeout(
            reference, payload.user_id or reference.user_id, skill_instance_id
        )
        return {"ok": True, "conversation_id": cid}
    except HTTPException:
        raise
    except Exception as e:
        logger.error("HTTPException: Error handling timeout: {}", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.get(
    "/conversations/list", response_model=ConversationListOut, tags=["Conversations"]
)
def list_conversations() -> dict[str, list[dict]]:
    """
    List stored conversations.

    Returns:
        dict[str, list[dict]]: The conversation summaries.

    Raises:
        HTTPException: If an error occurs while listing conversations.
    """
    try:
        return {"conversations": _get_runtime().store.list_conversations()}
    except Exception as e:
        logger.error("HTTPException: Error listing conversations: {}", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/conversations/{conversation_id}/state", tags=["Conversations"])
def conversation_state(conversation_id: str) -> dict[str, Any]:
    try:
        state = _get_runtime().describe(conversation_id)
    except Exception as e:
        logger.error("HTTPException: Error loading conversation state: {}", e)
        raise HTTPException(status_code=500, detail=str(e))
    if state is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return state


@app.get(
    "/conversations/{conversation_id}/outbox",
    response_model=ActivitiesOut,
    tags=["Conversations"],
)
def conversation_outbox(conversation_id: str) -> dict[str, list[dict]]:
    """
    Drain the proactive activities queued for a conversation.

    Args:
        conversation_id (str): The conversation id.

    Returns:
        dict[str, list[dict]]: The drained activities.
    """
    activities = _get_runtime().adapter.drain(conversation_id)
    return {"activities": [a.to_dict() for a in activities]}


@app.delete("/conversations/{conversation_id}", tags=["Conversations"])
def delete_conversation(conversation_id: str) -> dict[str, bool]:
    """
    Delete a conversation's stored state.

    Args:
        conversation_id (str): The conversation id.

    Returns:
        dict[str, bool]: Whether anything was deleted.

    Raises:
        HTTPException: If an error occurs while deleting the conversation.
    """
    try:
        rt = _get_runtime()
        deleted = rt.store.delete_conversation(conversation_id)
        rt.adapter.discard(conversation_id)
        return {"ok": deleted}
    except Exception as e:
        logger.error("HTTPException: Error deleting conversation: {}", e)
        raise HTTPException(status_code=500, detail=str(e))


def run() -> None:
    """
    Serve the API with uvicorn on BACKEND_HOST.
    """
    setup_logging()
    parsed = urlparse(load_host_env().backend_host)
    uvicorn.run(
        app,
        host=parsed.hostname or "0.0.0.0",
        port=parsed.port or int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
