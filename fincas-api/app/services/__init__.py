from app.services.conversation_service import (
    get_or_create_contact,
    get_or_create_conversation,
    mark_outbound_as_human,
)
from app.services.event_service import record_if_new
from app.services.message_service import save_message
from app.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    can_transition,
    escalate,
    reactivate,
    release,
    resolve,
    transition,
)
