"""Conversation CRUD endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from ..models import Conversation, ConversationCreate, ConversationSummary
from ..services.chat_controller import ChatController

router = APIRouter(tags=["conversations"])


def _get_controller(request: Request) -> ChatController:
    return request.app.state.controller


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(request: Request) -> list[ConversationSummary]:
    return _get_controller(request).store.list()


@router.post("/conversations", response_model=Conversation, status_code=201)
async def create_conversation(body: ConversationCreate, request: Request) -> Conversation:
    return _get_controller(request).create_conversation(model=body.model, title=body.title)


@router.get("/conversations/{conversation_id}", response_model=Conversation)
async def get_conversation(conversation_id: str, request: Request) -> Conversation:
    conv = _get_controller(request).store.get(conversation_id)
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, request: Request) -> dict[str, str]:
    controller = _get_controller(request)
    if controller.is_active(conversation_id):
        raise HTTPException(status_code=409, detail="Conversation has a reply in progress")
    controller.store.delete(conversation_id)
    return {"status": "deleted"}
