import uuid

from sqlalchemy import Boolean, Column, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from app.database import Base


class Property(Base):
    """A finca. Managed by the listings admin; read-only for the sales agent."""

    __tablename__ = "properties"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    location = Column(Text, nullable=False)
    capacity = Column(Integer, nullable=False)
    price_base = Column(Numeric(12, 2))
    code = Column(Text)
    type = Column(Text)  # FINCA, CASA_CAMPESTRE, VILLA, HACIENDA, QUINTA, APARTAMENTO, CASA
    category = Column(Text)
    visible = Column(Boolean, default=True)
    reservable = Column(Boolean, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    bookings = relationship("Booking", back_populates="property")
    catalog_links = relationship("PropertyCatalogLink", back_populates="property")
