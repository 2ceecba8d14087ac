# fanconnect/routers/messages.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from fanconnect import auth, config, schemas
from fanconnect.dependencies import messaging_service
from fanconnect.errors import NotFound
from fanconnect.messaging import MessagingService

router = APIRouter(tags=["messages"])


@router.get("/conversations", response_model=list[schemas.ConversationSummaryOut])
def list_conversations(
    user_id: str = Depends(auth.get_current_user_id),
    messaging: MessagingService = Depends(messaging_service),
):
    out: list[schemas.ConversationSummaryOut] = []
    for s in messaging.list_conversations(user_id):
        out.append(
            schemas.ConversationSummaryOut(
                **schemas.ConversationOut.model_validate(s.conversation).model_dump(),
                other_participant=schemas.ProfileOut.model_validate(s.other_participant),
                last_message=(
                    schemas.DirectMessageOut.model_validate(s.last_message) if s.last_message else None
                ),
                unread_count=s.unread_count,
            )
        )
    return out


@router.post("/conversations", response_model=schemas.ConversationOut)
def open_conversation(
    payload: schemas.ConversationCreateIn,
    user_id: str = Depends(auth.get_current_user_id),
    messaging: MessagingService = Depends(messaging_service),
):
    """Get-or-create; safe to call from both sides at the same time."""
    return messaging.get_or_create_conversation(user_id, payload.participant_id)


@router.get("/conversations/{conversation_id}/messages", response_model=list[schemas.DirectMessageOut])
def conversation_messages(
    conversation_id: str,
    after: Optional[datetime] = Query(None, description="Only messages newer than this (polling cursor)"),
    limit: int = Query(config.CONVERSATION_PAGE_SIZE, ge=1, le=200),
    user_id: str = Depends(auth.get_current_user_id),
    messaging: MessagingService = Depends(messaging_service),
):
    return messaging.get_messages(conversation_id, user_id, limit=limit, after=after)


@router.post("/conversations/{conversation_id}/messages", response_model=schemas.DirectMessageOut, status_code=201)
def send_message(
    conversation_id: str,
    payload: schemas.DirectMessageIn,
    user_id: str = Depends(auth.get_current_user_id),
    messaging: MessagingService = Depends(messaging_service),
):
    conv = messaging.get_conversation(conversation_id)
    if conv is None:
        raise NotFound("Conversation not found", code="CONVERSATION_NOT_FOUND")
    recipient_id = conv.other_participant(user_id)
    return messaging.send_direct_message(conversation_id, user_id, recipient_id, payload.message_text)


@router.post("/conversations/{conversation_id}/read", response_model=schemas.ReadReceiptOut)
def mark_read(
    conversation_id: str,
    user_id: str = Depends(auth.get_current_user_id),
    messaging: MessagingService = Depends(messaging_service),
):
    return schemas.ReadReceiptOut(marked=messaging.mark_conversation_as_read(conversation_id, user_id))


@router.get("/messages/unread-count", response_model=schemas.UnreadCountOut)
def unread_count(
    user_id: str = Depends(auth.get_current_user_id),
    messaging: MessagingService = Depends(messaging_service),
):
    return schemas.UnreadCountOut(unread=messaging.unread_count(user_id))
