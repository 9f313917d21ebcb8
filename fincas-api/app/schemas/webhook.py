from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

INBOUND_MESSAGE_EVENT = "whatsapp.inbound_message.received"
BUSINESS_ECHO_EVENT = "whatsapp.smb.message.echoes"

MEDIA_PLACEHOLDERS = {
    "image": "[imagen]",
    "audio": "[audio]",
    "voice": "[audio]",
    "video": "[video]",
    "document": "[documento]",
    "sticker": "[sticker]",
    "location": "[ubicación]",
}


class YCloudText(BaseModel):
    body: Optional[str] = None


class YCloudMedia(BaseModel):
    id: Optional[str] = None
    link: Optional[str] = None
    caption: Optional[str] = None
    mime_type: Optional[str] = None


class YCloudCustomerProfile(BaseModel):
    name: Optional[str] = None


class YCloudMessage(BaseModel):
    """Message object shared by inbound and echo events; unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    wamid: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    type: Optional[str] = "text"
    customerProfile: Optional[YCloudCustomerProfile] = None
    text: Optional[YCloudText] = None
    image: Optional[YCloudMedia] = None
    audio: Optional[YCloudMedia] = None
    video: Optional[YCloudMedia] = None
    document: Optional[YCloudMedia] = None

    def text_content(self) -> str:
        """Text body, else media caption, else a placeholder naming the media kind."""
        if self.text and self.text.body and self.text.body.strip():
            return self.text.body.strip()
        kind = (self.type or "").lower()
        media = getattr(self, kind, None) if kind in {"image", "audio", "video", "document"} else None
        if isinstance(media, YCloudMedia) and media.caption and media.caption.strip():
            return media.caption.strip()
        return MEDIA_PLACEHOLDERS.get(kind, "")


class YCloudEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    whatsappInboundMessage: Optional[YCloudMessage] = None
    whatsappMessage: Optional[YCloudMessage] = None


class WebhookAck(BaseModel):
    ok: bool = True
    status: str
