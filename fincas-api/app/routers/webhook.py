import os
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.database import SessionLocal, get_db
from app.logging_config import get_logger
from app.schemas.webhook import BUSINESS_ECHO_EVENT, INBOUND_MESSAGE_EVENT, WebhookAck, YCloudEvent
from app.services.alert_service import alert_warning
from app.services.conversation_service import mark_outbound_as_human
from app.services.inbound_service import handle_inbound_event

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])


def _get_request_webhook_secret(request: Request) -> Optional[str]:
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    return query_secret.strip() if query_secret else None


def _check_webhook_secret(request: Request) -> None:
    expected = os.environ.get("YCLOUD_WEBHOOK_SECRET")
    provided = _get_request_webhook_secret(request)
    if expected:
        if not provided or provided != expected:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")
    elif not provided:
        logger.debug("Webhook secret not configured")


def process_inbound_event(event_id: str, phone: str, name: Optional[str], text: str, wamid: Optional[str]) -> None:
    """Background unit of work with its own session."""
    db = SessionLocal()
    try:
        handle_inbound_event(db, event_id, phone, name, text, wamid=wamid)
    except Exception as e:
        db.rollback()
        logger.exception("Inbound event failed", extra={"context": {"event_id": event_id}})
        alert_warning("Inbound event failed", {"event_id": event_id, "error": str(e)[:200]})
    finally:
        db.close()


@router.post("/webhook/ycloud", response_model=WebhookAck)
def ycloud_webhook(
    event: YCloudEvent,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """YCloud event receiver. Answers right away; inbound messages are processed in the background."""
    _check_webhook_secret(request)

    if event.type == INBOUND_MESSAGE_EVENT:
        message = event.whatsappInboundMessage
        if not message or not message.from_:
            return WebhookAck(ok=False, status="missing_message")
        text = message.text_content()
        if not text:
            return WebhookAck(ok=True, status="ignored")
        name = message.customerProfile.name if message.customerProfile else None
        background_tasks.add_task(process_inbound_event, event.id, message.from_, name, text, message.wamid)
        logger.info("Inbound message queued", extra={"context": {"event_id": event.id, "type": message.type}})
        return WebhookAck(ok=True, status="queued")

    if event.type == BUSINESS_ECHO_EVENT:
        message = event.whatsappMessage
        if not message or not message.to:
            return WebhookAck(ok=False, status="missing_message")
        conversation = mark_outbound_as_human(db, message.to)
        db.commit()
        return WebhookAck(ok=True, status="human" if conversation else "ignored")

    return WebhookAck(ok=True, status="ignored")
