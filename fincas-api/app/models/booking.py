import uuid

from sqlalchemy import Column, ForeignKey, Index, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from app.database import Base


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_property_dates", "property_id", "check_in", "check_out"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id"), nullable=False)
    check_in = Column(TIMESTAMP(timezone=True), nullable=False)
    check_out = Column(TIMESTAMP(timezone=True), nullable=False)
    status = Column(Text, nullable=False)  # PENDING, CONFIRMED, PAID, CANCELLED, COMPLETED
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    property = relationship("Property", back_populates="bookings")
