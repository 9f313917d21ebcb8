from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Contact, Conversation
from app.models.conversation import ACTIVE_CONVERSATION_PREDICATE
from app.services import state_machine
from app.services.consultant_prompt import get_welcome_message
from app.services.message_service import save_message
from app.services.state_machine import ConversationStatus

logger = get_logger("conversation_service")

PRIORITIES = ("urgent", "low", "medium", "resolved")


class ConversationNotFoundError(Exception):
    def __init__(self, conversation_id):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_or_create_contact(db: Session, phone: str, name: Optional[str] = None) -> Contact:
    """
    Find contact by phone or create new one. The name falls back to the phone.

    Creation is an insert that ignores a phone conflict, so two first messages
    from the same phone processed at once resolve to the same contact.
    """
    contact = db.query(Contact).filter(Contact.phone == phone).first()
    if contact:
        return contact

    stmt = (
        insert(Contact)
        .values(id=uuid4(), phone=phone, name=name or phone, created_at=_now())
        .on_conflict_do_nothing(index_elements=["phone"])
    )
    result = db.execute(stmt)
    contact = db.query(Contact).filter(Contact.phone == phone).first()
    if result.rowcount:
        logger.info("Contact created", extra={"context": {"contact_id": str(contact.id)}})
    return contact


def _latest_with_status(db: Session, contact_id: UUID, statuses: List[str]) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.contact_id == contact_id, Conversation.status.in_(statuses))
        .order_by(Conversation.updated_at.desc())
        .first()
    )


def _latest_active(db: Session, contact_id: UUID) -> Optional[Conversation]:
    return _latest_with_status(
        db, contact_id, [ConversationStatus.AUTOMATED.value, ConversationStatus.HUMAN.value]
    )


def get_or_create_conversation(db: Session, contact: Contact) -> Tuple[Conversation, bool]:
    """
    Pick the conversation an inbound message belongs to.

    Order: the latest active (automated/human) conversation, then the latest
    resolved one (reactivated to automated), then a new conversation seeded
    with the welcome message. Returns (conversation, is_new).

    A new conversation is inserted against the one-active-per-contact index;
    when a concurrent event created it first, that conversation is used and
    only the creator sends the welcome.
    """
    active = _latest_active(db, contact.id)
    if active:
        return active, False

    resolved = _latest_with_status(db, contact.id, [ConversationStatus.RESOLVED.value])
    if resolved:
        resolved.status = state_machine.reactivate(ConversationStatus(resolved.status)).value
        resolved.updated_at = _now()
        db.flush()
        logger.info("Conversation reactivated", extra={"context": {"conversation_id": str(resolved.id)}})
        return resolved, False

    now = _now()
    stmt = (
        insert(Conversation)
        .values(
            id=uuid4(),
            contact_id=contact.id,
            channel="whatsapp",
            status=ConversationStatus.AUTOMATED.value,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(
            index_elements=["contact_id"],
            index_where=text(ACTIVE_CONVERSATION_PREDICATE),
        )
        .returning(Conversation.id)
    )
    conversation_id = db.execute(stmt).scalar()
    if conversation_id is None:
        logger.info("Conversation created concurrently", extra={"context": {"contact_id": str(contact.id)}})
        return _latest_active(db, contact.id), False

    conversation = get_conversation(db, conversation_id)
    save_message(db, conversation_id, "assistant", get_welcome_message())
    logger.info("Conversation created", extra={"context": {"conversation_id": str(conversation_id)}})
    return conversation, True


def get_conversation(db: Session, conversation_id: UUID) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.id == conversation_id).first()


def get_conversation_or_raise(db: Session, conversation_id: UUID) -> Conversation:
    conversation = get_conversation(db, conversation_id)
    if not conversation:
        raise ConversationNotFoundError(conversation_id)
    return conversation


def touch_last_message_at(db: Session, conversation_id: UUID) -> None:
    conversation = get_conversation(db, conversation_id)
    if not conversation:
        return
    now = _now()
    conversation.last_message_at = now
    conversation.updated_at = now
    db.flush()


def set_last_catalog_sent(db: Session, conversation_id: UUID, property_ids: List[str], search: dict) -> None:
    """Remember the listings just sent and the filters that produced them."""
    conversation = get_conversation(db, conversation_id)
    if not conversation:
        return
    conversation.last_sent_property_ids = [str(pid) for pid in property_ids]
    conversation.last_catalog_search = search
    conversation.updated_at = _now()
    db.flush()


def set_status(db: Session, conversation_id: UUID, status: str) -> Conversation:
    """
    Operator status change.

    human -> escalate, automated -> release, resolved -> resolve.
    Raises InvalidTransitionError for resolved -> automated/human.
    """
    conversation = get_conversation_or_raise(db, conversation_id)
    target = ConversationStatus(status)
    current = ConversationStatus(conversation.status)

    if target == ConversationStatus.HUMAN:
        new_status = state_machine.escalate(current)
    elif target == ConversationStatus.AUTOMATED:
        new_status = state_machine.release(current)
    else:
        new_status = state_machine.resolve(current)

    conversation.status = new_status.value
    conversation.updated_at = _now()
    db.flush()
    logger.info(
        "Conversation status changed",
        extra={"context": {"conversation_id": str(conversation_id), "from": current.value, "to": new_status.value}},
    )
    return conversation


def set_priority(db: Session, conversation_id: UUID, priority: Optional[str]) -> Conversation:
    if priority is not None and priority not in PRIORITIES:
        raise ValueError(f"Unknown priority: {priority}")
    conversation = get_conversation_or_raise(db, conversation_id)
    conversation.priority = priority
    conversation.updated_at = _now()
    db.flush()
    return conversation


def list_conversations(
    db: Session,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    limit: int = 50,
) -> List[Tuple[Conversation, Contact]]:
    """Conversations with their contact, newest activity first."""
    query = db.query(Conversation, Contact).join(Contact, Conversation.contact_id == Contact.id)
    if status:
        query = query.filter(Conversation.status == status)
    if priority:
        query = query.filter(Conversation.priority == priority)
    activity = func.coalesce(Conversation.last_message_at, Conversation.created_at)
    return query.order_by(activity.desc()).limit(limit).all()


def mark_outbound_as_human(db: Session, phone: str) -> Optional[Conversation]:
    """
    A message went out from the business app, so a person is handling the chat.

    Forces the contact's latest active conversation to human. Resolved and
    missing conversations are left alone.
    """
    contact = db.query(Contact).filter(Contact.phone == phone).first()
    if not contact:
        return None

    conversation = (
        db.query(Conversation)
        .filter(Conversation.contact_id == contact.id)
        .order_by(Conversation.updated_at.desc())
        .first()
    )
    if not conversation or not state_machine.is_active(ConversationStatus(conversation.status)):
        return None

    if conversation.status != ConversationStatus.HUMAN.value:
        conversation.status = state_machine.escalate(ConversationStatus(conversation.status)).value
        conversation.updated_at = _now()
        db.flush()
        logger.info(
            "Conversation taken over from business app",
            extra={"context": {"conversation_id": str(conversation.id)}},
        )
    return conversation
