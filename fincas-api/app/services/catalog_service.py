"""
Catalog dispatch: pick listings for the customer and send them as WhatsApp catalog messages.

Filters come from the classified intent when there is one, otherwise from the
regex fallback. Each send remembers the listings and filters on the
conversation so "otras opciones" can replay the search without repeats.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.services import listing_service
from app.services.conversation_service import get_conversation, set_last_catalog_sent
from app.services.intent_service import (
    CatalogIntent,
    MoreOptionsIntent,
    NoIntent,
    SearchIntent,
    day_range_dates,
    detect_more_options,
    next_weekend_dates,
    parse_location_and_dates,
    parse_search_filters,
    parse_single_listing_request,
)
from app.services.result import Result
from app.services.ycloud_service import send_whatsapp_catalog_list

logger = get_logger("catalog_service")

CATALOG_LIMIT = 3
SINGLE_LISTING_SEARCH_LIMIT = 5

MORE_OPTIONS_BODY = "Aquí tienes más opciones con los mismos filtros:"
FIRST_OPTIONS_BODY = "Estas son 3 opciones de fincas disponibles para tus fechas:"


@dataclass
class CatalogSearch:
    location: str
    check_in: datetime
    check_out: datetime
    min_capacity: Optional[int] = None
    sort_by_price: bool = False
    exclude_property_ids: Optional[List[str]] = None

    def to_memory(self) -> dict:
        """Shape stored in conversations.last_catalog_search."""
        return {
            "location": self.location,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "min_capacity": self.min_capacity,
            "sort_by_price": self.sort_by_price,
        }

    @classmethod
    def from_memory(cls, memory: dict, exclude_property_ids: Optional[List[str]]) -> "CatalogSearch":
        return cls(
            location=memory["location"],
            check_in=datetime.fromisoformat(memory["check_in"]),
            check_out=datetime.fromisoformat(memory["check_out"]),
            min_capacity=memory.get("min_capacity"),
            sort_by_price=bool(memory.get("sort_by_price")),
            exclude_property_ids=list(exclude_property_ids or []),
        )


@dataclass
class SingleListingOutcome:
    sent: bool
    title: Optional[str] = None


def _replay(conversation) -> Optional[CatalogSearch]:
    if not conversation.last_catalog_search:
        return None
    return CatalogSearch.from_memory(conversation.last_catalog_search, conversation.last_sent_property_ids)


def search_from_intent(intent: SearchIntent, now: Optional[datetime] = None) -> CatalogSearch:
    """An explicit day pair wins over the weekend hint; with neither, next weekend."""
    if intent.day_from is not None and intent.day_to is not None:
        check_in, check_out = day_range_dates(intent.day_from, intent.day_to, now)
    else:
        check_in, check_out = next_weekend_dates(now)
    return CatalogSearch(
        location=intent.location,
        check_in=check_in,
        check_out=check_out,
        min_capacity=intent.min_capacity,
        sort_by_price=intent.sort_by_price,
    )


def resolve_catalog_search(
    conversation,
    user_message: str,
    intent: Optional[CatalogIntent] = None,
    now: Optional[datetime] = None,
) -> Optional[CatalogSearch]:
    """First matching source wins; None means there is nothing to dispatch."""
    if isinstance(intent, MoreOptionsIntent) and conversation.last_catalog_search:
        return _replay(conversation)
    if isinstance(intent, SearchIntent) and intent.location:
        return search_from_intent(intent, now)
    if intent is not None and not isinstance(intent, NoIntent):
        # the classifier answered; regex only stands in when it did not
        return None
    if detect_more_options(user_message) and conversation.last_catalog_search:
        return _replay(conversation)

    parsed = parse_location_and_dates(user_message, now) or parse_search_filters(user_message, now)
    if not parsed:
        return None
    return CatalogSearch(
        location=parsed.location,
        check_in=parsed.check_in,
        check_out=parsed.check_out,
        min_capacity=parsed.min_capacity,
        sort_by_price=parsed.sort_by_price,
    )


def _route_catalog(db: Session, location: str, property_ids: List):
    """Location-keyword catalog, else default; one retry on default when nothing resolves."""
    catalog = listing_service.get_catalog_by_location_keyword(db, location)
    if not catalog:
        catalog = listing_service.get_default_catalog(db)
    if not catalog:
        return None, []

    product_ids = listing_service.get_product_ids_for_properties(db, catalog.id, property_ids)
    if not product_ids:
        default = listing_service.get_default_catalog(db)
        if default and default.id != catalog.id:
            catalog = default
            product_ids = listing_service.get_product_ids_for_properties(db, catalog.id, property_ids)
    return catalog, product_ids


def maybe_send_catalog(
    db: Session,
    conversation_id: UUID,
    phone: str,
    user_message: str,
    wamid: Optional[str] = None,
    intent: Optional[CatalogIntent] = None,
    now: Optional[datetime] = None,
) -> Result[list]:
    """
    Send up to three available listings as a catalog message.

    Returns the ids of the listings sent; an empty list means nothing was
    dispatched (no signal, no candidates, or no catalog products).
    """
    conversation = get_conversation(db, conversation_id)
    if not conversation:
        return Result.failure("Conversation not found", code="not_found")

    search = resolve_catalog_search(conversation, user_message, intent, now)
    if not search:
        return Result.success([])

    listings = listing_service.search_available_by_location_and_dates(
        db,
        search.location,
        search.check_in,
        search.check_out,
        limit=CATALOG_LIMIT,
        min_capacity=search.min_capacity,
        exclude_property_ids=search.exclude_property_ids,
        sort_by_price=search.sort_by_price,
    )
    log_context = {
        "conversation_id": str(conversation_id),
        "location": search.location,
        "candidates": len(listings),
        "excluding": len(search.exclude_property_ids or []),
    }
    if not listings:
        logger.info("No available listings for catalog", extra={"context": log_context})
        return Result.success([])

    property_ids = [p.id for p in listings]
    catalog, product_ids = _route_catalog(db, search.location, property_ids)
    if not catalog or not product_ids:
        logger.info("No catalog products for listings", extra={"context": log_context})
        return Result.success([])

    body_text = MORE_OPTIONS_BODY if search.exclude_property_ids else FIRST_OPTIONS_BODY
    try:
        send_whatsapp_catalog_list(
            phone,
            product_ids,
            catalog_id=catalog.whatsapp_catalog_id,
            body_text=body_text,
            wamid=wamid,
        )
    except Exception as e:
        logger.error(f"Catalog send error: {e}", extra={"context": log_context})
        return Result.from_exception(e, code="send_failed")

    sent_ids = [str(pid) for pid in property_ids]
    set_last_catalog_sent(db, conversation_id, sent_ids, search.to_memory())
    logger.info("Catalog sent", extra={"context": {**log_context, "products": len(product_ids)}})
    return Result.success(sent_ids)


def maybe_send_single_listing(
    db: Session,
    phone: str,
    user_message: str,
    wamid: Optional[str] = None,
    listing_name: Optional[str] = None,
) -> SingleListingOutcome:
    """Send the catalog card of one listing the customer asked for by name."""
    term = listing_name or parse_single_listing_request(user_message)
    if not term:
        return SingleListingOutcome(sent=False)

    matches = listing_service.search_listings(db, term, limit=SINGLE_LISTING_SEARCH_LIMIT)
    if not matches:
        return SingleListingOutcome(sent=False)

    in_catalog = listing_service.get_property_ids_in_any_catalog(db, [p.id for p in matches])
    listing = next((p for p in matches if str(p.id) in in_catalog), None)
    if not listing:
        return SingleListingOutcome(sent=False)

    catalog = listing_service.get_default_catalog(db)
    if not catalog:
        return SingleListingOutcome(sent=False)
    product_ids = listing_service.get_product_ids_for_properties(db, catalog.id, [listing.id])
    if not product_ids:
        return SingleListingOutcome(sent=False)

    send_whatsapp_catalog_list(
        phone,
        product_ids[:1],
        catalog_id=catalog.whatsapp_catalog_id,
        body_text=f"Aquí está {listing.title} 🏡",
        wamid=wamid,
    )
    logger.info("Single listing sent", extra={"context": {"property_id": str(listing.id)}})
    return SingleListingOutcome(sent=True, title=listing.title)
