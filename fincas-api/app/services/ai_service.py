import os
import time
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Property
from app.services.alert_service import alert_error
from app.services.consultant_prompt import get_fragment
from app.services.knowledge_service import format_knowledge_context, search_knowledge
from app.services.listing_service import search_listings
from app.services.llm import OpenAIProvider
from app.services.message_service import get_conversation_history, save_message
from app.services.result import Result

logger = get_logger("ai_service")

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
FAST_MODEL = os.environ.get("FAST_MODEL", "gpt-4o-mini")
SLOW_MODEL = os.environ.get("SLOW_MODEL", "gpt-4o-mini")
INTENT_TIMEOUT_SECONDS = float(os.environ.get("INTENT_TIMEOUT_SECONDS", "4"))
LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "30"))
LLM_MAX_TOKENS = int(os.environ.get("LLM_MAX_TOKENS", "600"))
LLM_TEMPERATURE = float(os.environ.get("LLM_TEMPERATURE", "0.7"))

KNOWLEDGE_LIMIT = 5
LISTINGS_LIMIT = 12
HISTORY_LIMIT = 10

# Global LLM provider instance
_llm_provider = None


def _log_timing(stage: str, elapsed_ms: float, *, extra: dict | None = None) -> None:
    context: dict = dict(extra or {})
    context["stage"] = stage
    context["elapsed_ms"] = round(elapsed_ms, 2)
    logger.info("Timing", extra={"context": context})


def get_llm_provider() -> OpenAIProvider:
    """Get or create LLM provider instance."""
    global _llm_provider
    if _llm_provider is None:
        _llm_provider = OpenAIProvider(api_key=OPENAI_API_KEY, default_model=FAST_MODEL)
    return _llm_provider


def _format_price(value) -> str:
    if value is None:
        return "consultar"
    number = float(value)
    return str(int(number)) if number.is_integer() else str(number)


def format_listings_for_prompt(listings: List[Property]) -> str:
    lines = []
    for p in listings or []:
        lines.append(
            f"- {p.title}: {p.description or ''} | Ubicación: {p.location or 'N/A'} "
            f"| Capacidad: {p.capacity if p.capacity is not None else 'N/A'} personas "
            f"| Tipo: {p.type or 'N/A'} | Precio base: {_format_price(p.price_base)}"
        )
    return "\n".join(lines)


def build_system_prompt(
    knowledge_context: str,
    listings_context: str,
    catalog_sent: bool = False,
    listing_title: Optional[str] = None,
) -> str:
    """Persona script + retrieved knowledge + listing summary (+ short-confirmation hint)."""
    sections = [
        get_fragment("system_prompt"),
        "---\n## CONTEXTO ACTUAL (usa SOLO esta información para datos concretos)",
        "### 1) Base de conocimiento (normas, políticas, FAQs, respuestas rápidas):\n"
        + (knowledge_context or get_fragment("no_knowledge")),
        "### 2) Fincas disponibles según la búsqueda del usuario:\n" + (listings_context or get_fragment("no_listings")),
    ]
    if catalog_sent and listing_title:
        sections.append("---\n" + get_fragment("catalog_sent_hint").replace("{title}", listing_title))
    sections.append("---\n" + get_fragment("closing_rules"))
    return "\n\n".join(sections)


def generate_reply(
    db: Session,
    conversation_id: UUID,
    user_message: str,
    catalog_sent: bool = False,
    listing_title: Optional[str] = None,
    search_override: Optional[str] = None,
) -> Result[str]:
    """
    Compose the consultant reply for the latest user message.

    Retrieval runs on `search_override` when given (e.g. the listing the
    customer asked to see), otherwise on the message itself. The reply is
    stored as an assistant message before it is returned.
    """
    query = (search_override or user_message or "").strip()

    knowledge_context = ""
    try:
        rag_start = time.monotonic()
        knowledge_results = search_knowledge(query, limit=KNOWLEDGE_LIMIT)
        _log_timing("rag_ms", (time.monotonic() - rag_start) * 1000, extra={"results": len(knowledge_results)})
        knowledge_context = format_knowledge_context(knowledge_results)
    except Exception as e:
        logger.warning(f"Knowledge search error: {e}")

    listings_context = ""
    try:
        listings_context = format_listings_for_prompt(search_listings(db, query, limit=LISTINGS_LIMIT))
    except Exception as e:
        logger.warning(f"Listing search error: {e}")

    try:
        system_prompt = build_system_prompt(knowledge_context, listings_context, catalog_sent, listing_title)
        history = get_conversation_history(db, conversation_id, limit=HISTORY_LIMIT)
        messages = [{"role": "system", "content": system_prompt}] + history

        llm_start = time.monotonic()
        response = get_llm_provider().generate(
            messages,
            model=SLOW_MODEL,
            temperature=LLM_TEMPERATURE,
            max_tokens=LLM_MAX_TOKENS,
            timeout_seconds=LLM_TIMEOUT_SECONDS,
        )
        _log_timing(
            "llm_ms",
            (time.monotonic() - llm_start) * 1000,
            extra={"model_name": SLOW_MODEL, "history": len(history), "catalog_sent": catalog_sent},
        )
    except Exception as e:
        logger.error(f"Reply generation error: {e}")
        alert_error("Reply generation failed", {"conversation_id": str(conversation_id), "error": str(e)[:200]})
        return Result.from_exception(e, code="llm_error")

    reply = (response.content or "").strip()
    if not reply:
        return Result.failure("Empty reply from model", code="empty_reply")

    save_message(db, conversation_id, "assistant", reply)
    return Result.success(reply)
