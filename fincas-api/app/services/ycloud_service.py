"""Outbound WhatsApp messages through the YCloud API."""

import os
import re
import time
from typing import List, Optional

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.services.alert_service import alert_critical

logger = get_logger("ycloud_service")

YCLOUD_API_KEY = os.environ.get("YCLOUD_API_KEY")
YCLOUD_WABA_NUMBER = os.environ.get("YCLOUD_WABA_NUMBER")
YCLOUD_API_URL = os.environ.get("YCLOUD_API_URL", "https://api.ycloud.com/v2")
YCLOUD_TIMEOUT_SECONDS = float(os.environ.get("YCLOUD_TIMEOUT_SECONDS", "30"))

CATALOG_FOOTER = "FincasYa"
CATALOG_HEADER = "Fincas"
CATALOG_SECTION_TITLE = "Fincas disponibles"
DEFAULT_CATALOG_BODY = "Estas son nuestras fincas disponibles para tus fechas:"

MEDIA_TYPES = ("image", "audio", "document")
_CAPTIONED_MEDIA = {"image", "document"}
_ACCEPTED_STATUSES = {"accepted", "sent", "delivered"}
_REJECTION_RE = re.compile(r"error|unsupported|invalid|rejected", re.IGNORECASE)


class YCloudError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def normalize_phone_e164(phone: str) -> str:
    """Digits only; local mobiles (10 digits starting with 3) get the country code, then "+"."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 10 and digits.startswith("3"):
        digits = f"{settings.default_country_code}{digits}"
    return f"+{digits}"


def _credentials() -> tuple[str, str]:
    if not YCLOUD_API_KEY or not YCLOUD_WABA_NUMBER:
        raise YCloudError("YCLOUD_API_KEY and YCLOUD_WABA_NUMBER must be configured")
    return YCLOUD_API_KEY, YCLOUD_WABA_NUMBER


def _with_reply_context(payload: dict, wamid: Optional[str]) -> dict:
    if wamid:
        payload["context"] = {"message_id": wamid}
    return payload


def build_text_payload(from_number: str, to: str, text: str, wamid: Optional[str] = None) -> dict:
    payload = {"from": from_number, "to": to, "type": "text", "text": {"body": text}}
    return _with_reply_context(payload, wamid)


def build_catalog_payload(
    from_number: str,
    to: str,
    catalog_id: str,
    product_retailer_ids: List[str],
    body_text: str,
    wamid: Optional[str] = None,
) -> dict:
    """One product -> single-product message; several -> product list."""
    if len(product_retailer_ids) == 1:
        interactive = {
            "type": "product",
            "body": {"text": body_text},
            "footer": {"text": CATALOG_FOOTER},
            "action": {"catalog_id": catalog_id, "product_retailer_id": product_retailer_ids[0]},
        }
    else:
        interactive = {
            "type": "product_list",
            "header": {"type": "text", "text": CATALOG_HEADER},
            "body": {"text": body_text},
            "footer": {"text": CATALOG_FOOTER},
            "action": {
                "catalog_id": catalog_id,
                "sections": [
                    {
                        "title": CATALOG_SECTION_TITLE,
                        "product_items": [{"product_retailer_id": pid} for pid in product_retailer_ids],
                    }
                ],
            },
        }
    payload = {"from": from_number, "to": to, "type": "interactive", "interactive": interactive}
    return _with_reply_context(payload, wamid)


def build_media_payload(
    from_number: str,
    to: str,
    media_type: str,
    media_url: str,
    caption: Optional[str] = None,
    filename: Optional[str] = None,
) -> dict:
    media: dict = {"link": media_url}
    if media_type == "document":
        media["filename"] = filename or f"document_{int(time.time() * 1000)}"
    if caption and media_type in _CAPTIONED_MEDIA:
        media["caption"] = caption
    return {"from": from_number, "to": to, "type": media_type, media_type: media}


def _post(path: str, payload: dict, api_key: str) -> dict:
    url = f"{YCLOUD_API_URL.rstrip('/')}/{path}"
    try:
        with httpx.Client(timeout=YCLOUD_TIMEOUT_SECONDS) as client:
            response = client.post(
                url,
                headers={"Content-Type": "application/json", "X-API-Key": api_key},
                json=payload,
            )
    except httpx.HTTPError as e:
        logger.error(f"YCloud request failed: {e}")
        alert_critical("WhatsApp send failed", {"to": payload.get("to"), "error": str(e)})
        raise YCloudError(f"YCloud request failed: {e}") from e

    logger.info(
        "YCloud response",
        extra={"context": {"path": path, "status": response.status_code, "type": payload.get("type")}},
    )
    if response.status_code >= 400:
        alert_critical("WhatsApp send failed", {"to": payload.get("to"), "status": response.status_code})
        raise YCloudError(f"YCloud API error: {response.status_code} - {response.text}", response.status_code)

    try:
        return response.json() if response.text else {}
    except ValueError:
        return {}


def send_whatsapp_message(to: str, text: str, wamid: Optional[str] = None, send_directly: bool = False) -> dict:
    """Send a text message, optionally as a reply to `wamid`."""
    api_key, waba_number = _credentials()
    path = "whatsapp/messages/sendDirectly" if send_directly else "whatsapp/messages"
    return _post(path, build_text_payload(waba_number, to, text, wamid), api_key)


def send_whatsapp_catalog_list(
    to: str,
    product_retailer_ids: List[str],
    catalog_id: str,
    body_text: Optional[str] = None,
    wamid: Optional[str] = None,
) -> Optional[dict]:
    if not product_retailer_ids:
        return None
    if not catalog_id:
        raise YCloudError("catalog_id is required")
    api_key, waba_number = _credentials()
    payload = build_catalog_payload(
        waba_number,
        to,
        catalog_id,
        product_retailer_ids,
        body_text or DEFAULT_CATALOG_BODY,
        wamid,
    )
    return _post("whatsapp/messages/sendDirectly", payload, api_key)


def send_whatsapp_media(
    to: str,
    media_type: str,
    media_url: str,
    caption: Optional[str] = None,
    filename: Optional[str] = None,
) -> dict:
    """Send image/audio/document by public URL. Raises YCloudError if YCloud did not accept it."""
    if media_type not in MEDIA_TYPES:
        raise YCloudError(f"Unsupported media type: {media_type}")
    if not media_url or not media_url.strip():
        raise YCloudError("media_url is required for media messages")
    api_key, waba_number = _credentials()
    payload = build_media_payload(waba_number, to, media_type, media_url.strip(), caption, filename)
    data = _post("whatsapp/messages/sendDirectly", payload, api_key)

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        raise YCloudError(f"YCloud rejected the message: {error['message']}")
    message = data.get("message") if isinstance(data, dict) else None
    if isinstance(message, str) and _REJECTION_RE.search(message):
        raise YCloudError(f"YCloud: {message}")
    status = data.get("status") if isinstance(data, dict) else None
    if status and str(status).lower() not in _ACCEPTED_STATUSES:
        raise YCloudError(f"YCloud did not send the message: status={status}")
    return data
