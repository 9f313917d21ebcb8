"""Read-only queries over listings (fincas), their bookings and WhatsApp catalog membership."""

import re
from datetime import datetime
from typing import Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.orm import Session

from app.models import Booking, Property, PropertyCatalogLink, WhatsAppCatalog

CANCELLED_STATUS = "CANCELLED"

SEARCH_STOPWORDS = {
    "estoy", "buscando", "en", "una", "para", "el", "la", "los", "las", "que", "más", "mas", "personas",
    "grupo", "amigos", "dame", "buen", "precio", "este", "fin", "de", "semana", "viene",
    "o", "y", "con", "del", "al", "por", "necesito", "quiero", "ver", "opciones", "me", "gusta", "gustan",
}

_NON_WORD_RE = re.compile(r"[^\wáéíóúñ\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def search_terms(query: str) -> List[str]:
    """Keywords of a free-text message; falls back to the whole (truncated) text."""
    text = _WHITESPACE_RE.sub(" ", _NON_WORD_RE.sub(" ", (query or "").lower())).strip()
    words = [w for w in text.split(" ") if len(w) >= 2 and w not in SEARCH_STOPWORDS]
    if words:
        return words
    return [text[:50]] if text else []


def count_matches(prop: Property, terms: Iterable[str]) -> int:
    haystacks = [
        (prop.title or "").lower(),
        (prop.description or "").lower(),
        (prop.location or "").lower(),
        (prop.code or "").lower(),
    ]
    return sum(1 for term in terms if any(term in h for h in haystacks))


def search_listings(db: Session, query: str, limit: int = 20) -> List[Property]:
    """Visible listings matching any keyword in title, description, location or code, best match first."""
    terms = search_terms(query)
    if not terms:
        return []

    clauses = []
    for term in terms:
        pattern = f"%{term}%"
        clauses.extend(
            [
                Property.title.ilike(pattern),
                Property.description.ilike(pattern),
                Property.location.ilike(pattern),
                Property.code.ilike(pattern),
            ]
        )

    candidates = (
        db.query(Property)
        .filter(or_(Property.visible.is_(None), Property.visible.is_(True)))
        .filter(or_(*clauses))
        .all()
    )
    # sorted() is stable, so equal scores keep the query order
    ranked = sorted(candidates, key=lambda p: count_matches(p, terms), reverse=True)
    return ranked[:limit]


def bookings_overlap(
    existing_check_in: datetime,
    existing_check_out: datetime,
    check_in: datetime,
    check_out: datetime,
) -> bool:
    """Half-open ranges: a stay ending on day X does not collide with one starting on X."""
    return existing_check_in < check_out and existing_check_out > check_in


def search_available_by_location_and_dates(
    db: Session,
    location: str,
    check_in: datetime,
    check_out: datetime,
    limit: int = 3,
    min_capacity: Optional[int] = None,
    exclude_property_ids: Optional[Iterable] = None,
    sort_by_price: bool = False,
) -> List[Property]:
    """Visible listings in some catalog, at the location, free for the whole stay."""
    location = (location or "").strip().lower()
    if not location:
        return []

    in_catalog = exists().where(PropertyCatalogLink.property_id == Property.id)
    overlapping_booking = exists().where(
        and_(
            Booking.property_id == Property.id,
            Booking.status != CANCELLED_STATUS,
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        )
    )

    query = (
        db.query(Property)
        .filter(or_(Property.visible.is_(None), Property.visible.is_(True)))
        .filter(func.lower(Property.location).contains(location, autoescape=True))
        .filter(in_catalog)
        .filter(~overlapping_booking)
    )
    if min_capacity is not None:
        query = query.filter(Property.capacity >= min_capacity)

    excluded = [UUID(str(pid)) for pid in (exclude_property_ids or [])]
    if excluded:
        query = query.filter(Property.id.notin_(excluded))

    if sort_by_price:
        query = query.order_by(func.coalesce(Property.price_base, 0).asc())
    else:
        query = query.order_by(Property.created_at.asc())

    return query.limit(limit).all()


def get_default_catalog(db: Session) -> Optional[WhatsAppCatalog]:
    return (
        db.query(WhatsAppCatalog)
        .filter(WhatsAppCatalog.is_default.is_(True))
        .order_by(WhatsAppCatalog.order.asc().nullslast())
        .first()
    )


def get_catalog_by_location_keyword(db: Session, location: str) -> Optional[WhatsAppCatalog]:
    """First catalog whose keyword appears in the requested location ("tolima" in "melgar tolima")."""
    location = (location or "").strip().lower()
    if not location:
        return None
    catalogs = (
        db.query(WhatsAppCatalog)
        .filter(WhatsAppCatalog.location_keyword.isnot(None))
        .order_by(WhatsAppCatalog.order.asc().nullslast())
        .all()
    )
    for catalog in catalogs:
        keyword = (catalog.location_keyword or "").strip().lower()
        if keyword and keyword in location:
            return catalog
    return None


def get_product_ids_for_properties(db: Session, catalog_id: UUID, property_ids: List) -> List[str]:
    """Product retailer ids of the given listings in one catalog, in listing order."""
    if not property_ids:
        return []
    links = (
        db.query(PropertyCatalogLink)
        .filter(
            PropertyCatalogLink.catalog_id == catalog_id,
            PropertyCatalogLink.property_id.in_(property_ids),
        )
        .all()
    )
    by_property = {str(link.property_id): link.product_retailer_id for link in links}
    return [by_property[str(pid)] for pid in property_ids if str(pid) in by_property]


def get_property_ids_in_any_catalog(db: Session, property_ids: List) -> Set[str]:
    if not property_ids:
        return set()
    rows = (
        db.query(PropertyCatalogLink.property_id)
        .filter(PropertyCatalogLink.property_id.in_(property_ids))
        .distinct()
        .all()
    )
    return {str(row[0]) for row in rows}
