import uuid

from sqlalchemy import Column, ForeignKey, Index, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from app.database import Base

# At most one open conversation per contact
ACTIVE_CONVERSATION_PREDICATE = "status IN ('automated', 'human')"


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_contact_updated", "contact_id", "updated_at"),
        Index("ix_conversations_status", "status"),
        Index("ix_conversations_last_message_at", "last_message_at"),
        Index(
            "uq_conversations_active_contact",
            "contact_id",
            unique=True,
            postgresql_where=text(ACTIVE_CONVERSATION_PREDICATE),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id"), nullable=False)
    channel = Column(Text, nullable=False, default="whatsapp")
    status = Column(Text, nullable=False)  # automated, human, resolved
    priority = Column(Text)  # urgent, low, medium, resolved (operator-owned)
    last_message_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)
    # "More options" memory: listings sent in the last catalog and the filters that produced them
    last_sent_property_ids = Column(JSONB)
    last_catalog_search = Column(JSONB)

    contact = relationship("Contact", back_populates="conversations")
    messages = relationship("Message", back_populates="conversation")
