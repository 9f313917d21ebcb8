"""Operator actions from the inbox: manual sends."""

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Contact, Message
from app.services import state_machine
from app.services.conversation_service import get_conversation_or_raise, touch_last_message_at
from app.services.message_service import save_message
from app.services.state_machine import ConversationStatus
from app.services.ycloud_service import normalize_phone_e164, send_whatsapp_media, send_whatsapp_message

logger = get_logger("inbox_service")


def send_operator_message(
    db: Session,
    conversation_id: UUID,
    type: str = "text",
    text: Optional[str] = None,
    media_url: Optional[str] = None,
    filename: Optional[str] = None,
) -> Message:
    """
    Send a message written by a person and record it on the conversation.

    Transport errors (YCloudError) propagate and nothing is stored. A
    successful send hands the conversation to the human, unless it is resolved.
    """
    conversation = get_conversation_or_raise(db, conversation_id)
    contact = db.query(Contact).filter(Contact.id == conversation.contact_id).first()
    to = normalize_phone_e164(contact.phone)

    if type == "text":
        send_whatsapp_message(to, text, send_directly=True)
        message = save_message(db, conversation_id, "assistant", text)
    else:
        send_whatsapp_media(to, type, media_url, caption=text, filename=filename)
        message = save_message(db, conversation_id, "assistant", text or "", type=type, media_url=media_url)

    if conversation.status == ConversationStatus.AUTOMATED.value:
        conversation.status = state_machine.escalate(ConversationStatus.AUTOMATED).value
    touch_last_message_at(db, conversation_id)

    logger.info(
        "Operator message sent",
        extra={"context": {"conversation_id": str(conversation_id), "type": type}},
    )
    return message
