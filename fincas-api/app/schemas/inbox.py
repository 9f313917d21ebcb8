from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator


class ConversationSummary(BaseModel):
    id: UUID
    status: str
    priority: Optional[str] = None
    channel: str
    last_message_at: Optional[datetime] = None
    created_at: datetime
    contact_phone: str
    contact_name: str


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sender: str
    content: str
    type: str
    media_url: Optional[str] = None
    created_at: datetime


class StatusUpdate(BaseModel):
    status: Literal["automated", "human", "resolved"]


class PriorityUpdate(BaseModel):
    priority: Optional[Literal["urgent", "low", "medium", "resolved"]] = None


class OperatorSend(BaseModel):
    type: Literal["text", "image", "audio", "document"] = "text"
    text: Optional[str] = None
    media_url: Optional[str] = None
    filename: Optional[str] = None

    @model_validator(mode="after")
    def check_payload(self) -> "OperatorSend":
        if self.type == "text" and not (self.text and self.text.strip()):
            raise ValueError("text is required for text messages")
        if self.type != "text" and not (self.media_url and self.media_url.strip()):
            raise ValueError("media_url is required for image/audio/document messages")
        return self


class ConversationOut(BaseModel):
    id: UUID
    status: str
    priority: Optional[str] = None


class SendResult(BaseModel):
    ok: bool
    message_id: UUID
