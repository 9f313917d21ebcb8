from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import ProcessedEvent

logger = get_logger("event_service")


def record_if_new(db: Session, event_id: str) -> bool:
    """
    Record a provider event id. Returns True if it was already seen.

    The insert and the check are one statement, so two concurrent deliveries
    of the same id can never both observe "new".
    """
    stmt = (
        insert(ProcessedEvent)
        .values(event_id=event_id)
        .on_conflict_do_nothing(index_elements=["event_id"])
    )
    result = db.execute(stmt)
    db.commit()

    duplicate = result.rowcount == 0
    if duplicate:
        logger.info("Duplicate event skipped", extra={"context": {"event_id": event_id}})
    return duplicate
