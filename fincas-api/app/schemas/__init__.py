from app.schemas.inbox import (
    ConversationOut,
    ConversationSummary,
    MessageOut,
    OperatorSend,
    PriorityUpdate,
    SendResult,
    StatusUpdate,
)
from app.schemas.webhook import WebhookAck, YCloudEvent, YCloudMessage

__all__ = [
    "ConversationOut",
    "ConversationSummary",
    "MessageOut",
    "OperatorSend",
    "PriorityUpdate",
    "SendResult",
    "StatusUpdate",
    "WebhookAck",
    "YCloudEvent",
    "YCloudMessage",
]
