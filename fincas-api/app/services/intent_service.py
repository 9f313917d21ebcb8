"""
Catalog intent detection.

The fast model classifies each customer message into a closed set of
catalog intents. When it yields nothing usable, the regex helpers below
give the catalog dispatcher a deterministic second look.
"""

import json
import math
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar, Optional, Union
from zoneinfo import ZoneInfo

import httpx

from app.config import settings
from app.logging_config import get_logger
from app.services.ai_service import FAST_MODEL, INTENT_TIMEOUT_SECONDS, _log_timing, get_llm_provider

logger = get_logger("intent_service")

BUSINESS_TIMEZONE = ZoneInfo(settings.business_timezone)
INTENT_MAX_TOKENS = int(os.environ.get("INTENT_MAX_TOKENS", "300"))


@dataclass(frozen=True)
class NoIntent:
    kind: ClassVar[str] = "none"


@dataclass(frozen=True)
class SingleListingIntent:
    name: str
    kind: ClassVar[str] = "single_finca"


@dataclass(frozen=True)
class MoreOptionsIntent:
    kind: ClassVar[str] = "more_options"


@dataclass(frozen=True)
class SearchIntent:
    location: str
    has_weekend: bool = False
    day_from: Optional[int] = None
    day_to: Optional[int] = None
    min_capacity: Optional[int] = None
    sort_by_price: bool = False
    kind: ClassVar[str] = "search_catalog"


CatalogIntent = Union[NoIntent, SingleListingIntent, MoreOptionsIntent, SearchIntent]


@dataclass(frozen=True)
class ParsedSearch:
    """Filters recovered from free text by the regex fallback."""

    location: str
    check_in: datetime
    check_out: datetime
    min_capacity: Optional[int] = None
    sort_by_price: bool = False


CLASSIFY_PROMPT = """Eres un clasificador. Del mensaje del usuario extrae la intención y datos. Responde SOLO con un JSON válido en una sola línea, sin markdown, sin explicación.

Reglas:
- intent: "single_finca" si pide VER una finca por nombre (ej. "quiero ver villa green", "mostrar la finca X"). En fincaName pon solo el nombre de la finca en minúsculas, sin "finca" ni "la".
- intent: "more_options" si pide otras opciones, más opciones, no le gustan, envía más, otras fincas, dame otras.
- intent: "search_catalog" si pide buscar fincas en una UBICACIÓN y tiene fechas o "fin de semana". Extrae: location (solo nombre del lugar, minúsculas, sin emojis), hasWeekend (true si dice fin de semana / este fin / próximo fin), dateD1 y dateD2 (números del 1 al 31 si dice "del X al Y"), minCapacity (número si dice "X personas" o "X o más personas"), sortByPrice (true si dice buen precio, económico, barato).
- intent: "none" si no aplica ninguna de las anteriores.

Ejemplos de salida:
{{"intent":"single_finca","fincaName":"villa green"}}
{{"intent":"more_options"}}
{{"intent":"search_catalog","location":"melgar","hasWeekend":true,"minCapacity":5,"sortByPrice":true}}
{{"intent":"search_catalog","location":"restrepo","dateD1":20,"dateD2":21,"minCapacity":10}}
{{"intent":"none"}}

Mes actual: {month}, año: {year}."""

_CODE_FENCE_RE = re.compile(r"^```\w*\n?|\n?```$")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\wáéíóúñ\s]", re.IGNORECASE)

_SINGLE_LISTING_PATTERNS = (
    re.compile(r"(?:quiero\s+)?(?:ver|mostrar)\s+(?:la\s+)?(?:finca\s+)?(?:de\s+)?([a-záéíóúñ0-9\s#]+)"),
    re.compile(r"(?:la\s+)?finca\s+(?:de\s+)?([a-záéíóúñ0-9\s#]+)"),
    re.compile(r"(?:ver|mostrar)\s+([a-záéíóúñ0-9\s#]+)"),
)
_SINGLE_LISTING_STOPWORDS = {"la", "el", "de", "un", "una"}

_MORE_OPTIONS_RE = re.compile(
    r"\b(otras\s+opciones|más\s+opciones|no\s+me\s+gustan|envía\s+más|otras\s+fincas|dame\s+otras|quiero\s+ver\s+otras)\b"
)
_MORE_OPTIONS_BARE_RE = re.compile(r"^otras$|^más$|^más\s+opciones$")

_DATED_LOCATION_RE = re.compile(r"\b(?:para|en)\s+([a-záéíóúñ\s]+?)(?:\s+del\s|\s+para\s|\s+\d|$)")
_DAY_RANGE_RE = re.compile(r"(?:del\s+)?(\d{1,2})\s*al\s*(\d{1,2})")
_PEOPLE_RE = re.compile(r"(\d+)\s*(?:o\s+mas?\s+)?personas")
_CHEAP_RE = re.compile(r"\b(buen\s+precio|económico|económicas|barato|barata)\b")

_WEEKEND_RE = re.compile(r"\b(fin\s+de\s+semana|este\s+fin|próximo\s+fin|el\s+fin\s+de\s+semana)\b")
_FILTER_LOCATION_RES = (
    re.compile(r"(?:buscando\s+)?\ben\s+(.+?)(?:\s+una|\s+finca|,|\s+para\s+\d|$)"),
    re.compile(r"\b(?:para|en)\s+(.+?)(?:\s+una|\s+finca|,|\s+grupo|$)"),
)


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(BUSINESS_TIMEZONE)


def _normalize(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", (text or "").strip()).lower()


def _clean_location(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", _NON_WORD_RE.sub("", value)).strip()


def _positive_int(value) -> Optional[int]:
    # bool is an int subclass; "true" is not a day number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # json.loads accepts NaN, Infinity and 1e999
    if isinstance(value, float) and not math.isfinite(value):
        return None
    number = int(value)
    return number if number > 0 else None


def parse_catalog_intent(raw: str) -> CatalogIntent:
    """Map classifier output to a CatalogIntent. Anything malformed is NoIntent."""
    text = _CODE_FENCE_RE.sub("", (raw or "").strip()).strip()
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return NoIntent()
    if not isinstance(parsed, dict):
        return NoIntent()

    intent = parsed.get("intent")
    if intent == "single_finca":
        name = parsed.get("fincaName")
        if isinstance(name, str) and name.strip():
            return SingleListingIntent(name=name.strip())
        return NoIntent()

    if intent == "more_options":
        return MoreOptionsIntent()

    if intent == "search_catalog":
        location = parsed.get("location")
        if not isinstance(location, str):
            return NoIntent()
        location = _clean_location(location)
        if len(location) < 2:
            return NoIntent()
        day_from = _positive_int(parsed.get("dateD1"))
        day_to = _positive_int(parsed.get("dateD2"))
        if day_from is None or day_to is None or day_from > 31 or day_to > 31:
            day_from = day_to = None
        return SearchIntent(
            location=location,
            has_weekend=parsed.get("hasWeekend") is True,
            day_from=day_from,
            day_to=day_to,
            min_capacity=_positive_int(parsed.get("minCapacity")),
            sort_by_price=parsed.get("sortByPrice") is True,
        )

    return NoIntent()


def classify_catalog_intent(text: str, now: Optional[datetime] = None) -> CatalogIntent:
    """Ask the fast model for the catalog intent. Never raises."""
    now = _now(now)
    messages = [
        {"role": "system", "content": CLASSIFY_PROMPT.format(month=now.month, year=now.year)},
        {"role": "user", "content": text},
    ]

    llm_start = time.monotonic()
    try:
        response = get_llm_provider().generate(
            messages,
            model=FAST_MODEL,
            temperature=0,
            max_tokens=INTENT_MAX_TOKENS,
            timeout_seconds=INTENT_TIMEOUT_SECONDS,
        )
    except httpx.TimeoutException as exc:
        _log_timing(
            "intent_llm_ms",
            (time.monotonic() - llm_start) * 1000,
            extra={"model_name": FAST_MODEL, "timeout": True, "timeout_seconds": INTENT_TIMEOUT_SECONDS},
        )
        logger.warning(f"Intent LLM timeout after {INTENT_TIMEOUT_SECONDS}s: {exc}")
        return NoIntent()
    except Exception as e:
        logger.error(f"Intent classification error: {e}")
        return NoIntent()

    _log_timing(
        "intent_llm_ms",
        (time.monotonic() - llm_start) * 1000,
        extra={"model_name": FAST_MODEL, "timeout": False},
    )
    try:
        intent = parse_catalog_intent(response.content)
    except Exception as e:
        logger.error(f"Intent parse error: {e}")
        return NoIntent()
    logger.info("Catalog intent", extra={"context": {"intent": intent.kind}})
    return intent


def parse_single_listing_request(text: str) -> Optional[str]:
    """'quiero ver villa green' -> 'villa green'."""
    lowered = _normalize(text)
    if len(lowered) < 4:
        return None
    for pattern in _SINGLE_LISTING_PATTERNS:
        match = pattern.search(lowered)
        if not match:
            continue
        term = match.group(1).strip()
        if len(term) >= 2 and term not in _SINGLE_LISTING_STOPWORDS:
            return term
    return None


def detect_more_options(text: str) -> bool:
    lowered = _normalize(text)
    return bool(_MORE_OPTIONS_RE.search(lowered) or _MORE_OPTIONS_BARE_RE.search(lowered))


def next_weekend_dates(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """Next Saturday 00:00 to the following Monday 00:00.

    From Saturday noon onwards "this weekend" is already under way, so the
    Saturday a week later is used.
    """
    now = _now(now)
    days_until_saturday = (5 - now.weekday()) % 7
    if days_until_saturday == 0 and now.hour >= 12:
        days_until_saturday = 7
    saturday = (now + timedelta(days=days_until_saturday)).replace(hour=0, minute=0, second=0, microsecond=0)
    return saturday, saturday + timedelta(days=2)


def day_range_dates(day_from: int, day_to: int, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """'del 20 al 21' in the current month: check-in day 20, check-out day 22 at 00:00."""
    now = _now(now)
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    check_in = start_of_month + timedelta(days=day_from - 1)
    check_out = start_of_month + timedelta(days=day_to)
    return check_in, check_out


def _min_capacity(text: str) -> Optional[int]:
    match = _PEOPLE_RE.search(text)
    return int(match.group(1)) if match else None


def parse_location_and_dates(text: str, now: Optional[datetime] = None) -> Optional[ParsedSearch]:
    """'en melgar del 20 al 22 para 10 personas, económico'."""
    lowered = _normalize(text)
    location_match = _DATED_LOCATION_RE.search(lowered)
    days_match = _DAY_RANGE_RE.search(lowered)
    if not location_match or not days_match:
        return None

    location = location_match.group(1).strip()
    day_from, day_to = int(days_match.group(1)), int(days_match.group(2))
    if not location or not (1 <= day_from <= 31 and 1 <= day_to <= 31):
        return None

    check_in, check_out = day_range_dates(day_from, day_to, now)
    return ParsedSearch(
        location=location,
        check_in=check_in,
        check_out=check_out,
        min_capacity=_min_capacity(lowered),
        sort_by_price=bool(_CHEAP_RE.search(lowered)),
    )


def parse_search_filters(text: str, now: Optional[datetime] = None) -> Optional[ParsedSearch]:
    """'este fin de semana en melgar para 12 personas a buen precio'."""
    lowered = _normalize(text)
    if not _WEEKEND_RE.search(lowered):
        return None

    location = None
    for pattern in _FILTER_LOCATION_RES:
        match = pattern.search(lowered)
        if match:
            location = _clean_location(match.group(1))
            break
    if not location or len(location) < 2:
        return None

    check_in, check_out = next_weekend_dates(now)
    return ParsedSearch(
        location=location,
        check_in=check_in,
        check_out=check_out,
        min_capacity=_min_capacity(lowered),
        sort_by_price=bool(_CHEAP_RE.search(lowered)),
    )
