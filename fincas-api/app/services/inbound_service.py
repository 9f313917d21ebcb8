"""
Inbound WhatsApp message pipeline.

dedup -> contact/conversation -> store user message -> (automated only)
classify -> catalog sends -> reply -> send -> timestamp.

Catalog sends and the reply are isolated: a failure in one is logged and the
turn goes on as if it produced nothing.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.logging_config import get_context_logger
from app.services.ai_service import generate_reply
from app.services.catalog_service import SingleListingOutcome, maybe_send_catalog, maybe_send_single_listing
from app.services.consultant_prompt import get_welcome_message
from app.services.conversation_service import (
    get_or_create_contact,
    get_or_create_conversation,
    touch_last_message_at,
)
from app.services.event_service import record_if_new
from app.services.intent_service import (
    CatalogIntent,
    MoreOptionsIntent,
    NoIntent,
    SearchIntent,
    SingleListingIntent,
    classify_catalog_intent,
)
from app.services.message_service import save_message
from app.services.state_machine import ConversationStatus
from app.services.ycloud_service import send_whatsapp_message


@dataclass
class InboundOutcome:
    status: str  # duplicate, welcomed, not_automated, replied, no_reply
    conversation_id: Optional[str] = None
    reply: Optional[str] = None
    catalog_sent: bool = False
    single_listing_sent: bool = False


def _send_reply(log, phone: str, text: str, wamid: Optional[str]) -> bool:
    try:
        send_whatsapp_message(phone, text, wamid=wamid)
        return True
    except Exception as e:
        log.error(f"Reply send error: {e}")
        return False


def _try_single_listing(db, log, phone, text, wamid, intent: CatalogIntent) -> SingleListingOutcome:
    if not isinstance(intent, (SingleListingIntent, NoIntent)):
        return SingleListingOutcome(sent=False)
    name = intent.name if isinstance(intent, SingleListingIntent) else None
    try:
        return maybe_send_single_listing(db, phone, text, wamid=wamid, listing_name=name)
    except Exception as e:
        log.error(f"Single listing send error: {e}")
        return SingleListingOutcome(sent=False)


def _try_catalog(db, log, conversation_id, phone, text, wamid, intent: CatalogIntent, now) -> bool:
    if isinstance(intent, SingleListingIntent):
        return False
    catalog_intent = intent if isinstance(intent, (MoreOptionsIntent, SearchIntent)) else None
    try:
        result = maybe_send_catalog(db, conversation_id, phone, text, wamid=wamid, intent=catalog_intent, now=now)
    except Exception as e:
        db.rollback()
        log.error(f"Catalog dispatch error: {e}")
        return False
    if not result.ok:
        log.warning(f"Catalog dispatch failed: {result.error}", context={"error_code": result.error_code})
        return False
    db.commit()
    return bool(result.value)


def handle_inbound_event(
    db: Session,
    event_id: str,
    phone: str,
    name: Optional[str],
    text: str,
    wamid: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InboundOutcome:
    log = get_context_logger("inbound_service", event_id=event_id)

    if record_if_new(db, event_id):
        return InboundOutcome(status="duplicate")

    contact = get_or_create_contact(db, phone, name)
    conversation, is_new = get_or_create_conversation(db, contact)
    conversation_id = conversation.id
    save_message(db, conversation_id, "user", text)
    db.commit()
    log = log.bind(conversation_id=str(conversation_id))

    if is_new:
        # the welcome message was stored when the conversation was created
        _send_reply(log, phone, get_welcome_message(), wamid)
        touch_last_message_at(db, conversation_id)
        db.commit()
        log.info("Conversation welcomed")
        return InboundOutcome(status="welcomed", conversation_id=str(conversation_id))

    # an operator may have taken the conversation while this event was queued
    db.refresh(conversation)
    if conversation.status != ConversationStatus.AUTOMATED.value:
        touch_last_message_at(db, conversation_id)
        db.commit()
        log.info("No automated reply", context={"status": conversation.status})
        return InboundOutcome(status="not_automated", conversation_id=str(conversation_id))

    intent = classify_catalog_intent(text, now=now)

    single = _try_single_listing(db, log, phone, text, wamid, intent)
    catalog_sent = _try_catalog(db, log, conversation_id, phone, text, wamid, intent, now)

    if isinstance(intent, SingleListingIntent):
        search_override = intent.name
    elif single.sent and single.title:
        search_override = single.title
    else:
        search_override = None

    reply_result = generate_reply(
        db,
        conversation_id,
        text,
        catalog_sent=single.sent,
        listing_title=single.title,
        search_override=search_override,
    )
    reply = reply_result.unwrap_or(None)
    if reply:
        db.commit()
        _send_reply(log, phone, reply, wamid)
    else:
        log.warning(f"No reply generated: {reply_result.error}", context={"error_code": reply_result.error_code})

    touch_last_message_at(db, conversation_id)
    db.commit()
    log.info(
        "Inbound message handled",
        context={"intent": intent.kind, "catalog_sent": catalog_sent, "single_listing_sent": single.sent},
    )
    return InboundOutcome(
        status="replied" if reply else "no_reply",
        conversation_id=str(conversation_id),
        reply=reply,
        catalog_sent=catalog_sent,
        single_listing_sent=single.sent,
    )
