from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Message

DEFAULT_HISTORY_LIMIT = 10


def save_message(
    db: Session,
    conversation_id: UUID,
    sender: str,
    content: str,
    type: str = "text",
    media_url: Optional[str] = None,
) -> Message:
    """Save message to database."""
    message = Message(
        conversation_id=conversation_id,
        sender=sender,
        content=content,
        type=type,
        media_url=media_url,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


def list_recent_messages(db: Session, conversation_id: UUID, limit: int = 20) -> List[Message]:
    """Last `limit` messages of a conversation, oldest first."""
    messages = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(messages))


def get_conversation_history(db: Session, conversation_id: UUID, limit: int = DEFAULT_HISTORY_LIMIT) -> List[dict]:
    """Recent messages shaped as chat-completion turns."""
    history = []
    for msg in list_recent_messages(db, conversation_id, limit=limit):
        role = "user" if msg.sender == "user" else "assistant"
        history.append({"role": role, "content": msg.content})
    return history
