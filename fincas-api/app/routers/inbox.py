"""Operator inbox: read conversations, change status/priority, send manual messages."""

import os
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.logging_config import get_logger
from app.schemas.inbox import (
    ConversationOut,
    ConversationSummary,
    MessageOut,
    OperatorSend,
    PriorityUpdate,
    SendResult,
    StatusUpdate,
)
from app.services.conversation_service import (
    ConversationNotFoundError,
    get_conversation_or_raise,
    list_conversations,
    set_priority,
    set_status,
)
from app.services.inbox_service import send_operator_message
from app.services.message_service import list_recent_messages
from app.services.state_machine import InvalidTransitionError
from app.services.ycloud_service import YCloudError

logger = get_logger("inbox")

router = APIRouter(prefix="/inbox", tags=["inbox"])


def _require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = os.environ.get("INBOX_ADMIN_TOKEN")
    if not expected:
        raise HTTPException(status_code=500, detail="INBOX_ADMIN_TOKEN not configured")
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("", response_model=list[ConversationSummary], dependencies=[Depends(_require_admin_token)])
def get_inbox(
    status: Optional[str] = Query(default=None, pattern="^(automated|human|resolved)$"),
    priority: Optional[str] = Query(default=None, pattern="^(urgent|low|medium|resolved)$"),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    rows = list_conversations(db, status=status, priority=priority, limit=limit)
    return [
        ConversationSummary(
            id=conversation.id,
            status=conversation.status,
            priority=conversation.priority,
            channel=conversation.channel,
            last_message_at=conversation.last_message_at,
            created_at=conversation.created_at,
            contact_phone=contact.phone,
            contact_name=contact.name,
        )
        for conversation, contact in rows
    ]


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageOut],
    dependencies=[Depends(_require_admin_token)],
)
def get_messages(
    conversation_id: UUID,
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        get_conversation_or_raise(db, conversation_id)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return list_recent_messages(db, conversation_id, limit=limit)


@router.patch(
    "/{conversation_id}/status",
    response_model=ConversationOut,
    dependencies=[Depends(_require_admin_token)],
)
def update_status(conversation_id: UUID, body: StatusUpdate, db: Session = Depends(get_db)):
    try:
        conversation = set_status(db, conversation_id, body.status)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    db.commit()
    return ConversationOut(id=conversation.id, status=conversation.status, priority=conversation.priority)


@router.patch(
    "/{conversation_id}/priority",
    response_model=ConversationOut,
    dependencies=[Depends(_require_admin_token)],
)
def update_priority(conversation_id: UUID, body: PriorityUpdate, db: Session = Depends(get_db)):
    try:
        conversation = set_priority(db, conversation_id, body.priority)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    db.commit()
    return ConversationOut(id=conversation.id, status=conversation.status, priority=conversation.priority)


@router.post(
    "/{conversation_id}/send",
    response_model=SendResult,
    dependencies=[Depends(_require_admin_token)],
)
def send_message(conversation_id: UUID, body: OperatorSend, db: Session = Depends(get_db)):
    try:
        message = send_operator_message(
            db,
            conversation_id,
            type=body.type,
            text=body.text,
            media_url=body.media_url,
            filename=body.filename,
        )
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except YCloudError as e:
        db.rollback()
        logger.error(f"Operator send failed: {e}", extra={"context": {"conversation_id": str(conversation_id)}})
        raise HTTPException(status_code=502, detail=str(e))
    db.commit()
    return SendResult(ok=True, message_id=message.id)
