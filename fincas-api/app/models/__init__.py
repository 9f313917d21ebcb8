from app.models.booking import Booking
from app.models.contact import Contact
from app.models.conversation import Conversation
from app.models.message import Message
from app.models.processed_event import ProcessedEvent
from app.models.property import Property
from app.models.whatsapp_catalog import PropertyCatalogLink, WhatsAppCatalog

__all__ = [
    "Contact",
    "Conversation",
    "Message",
    "ProcessedEvent",
    "Property",
    "Booking",
    "WhatsAppCatalog",
    "PropertyCatalogLink",
]
