import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import relationship

from app.database import Base


class WhatsAppCatalog(Base):
    __tablename__ = "whatsapp_catalogs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    whatsapp_catalog_id = Column(Text, nullable=False)  # catalog id on the Meta side
    is_default = Column(Boolean, default=False)
    location_keyword = Column(Text)  # e.g. "tolima": used when the requested location contains it
    order = Column(Integer)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    links = relationship("PropertyCatalogLink", back_populates="catalog")


class PropertyCatalogLink(Base):
    __tablename__ = "property_whatsapp_catalog"
    __table_args__ = (UniqueConstraint("property_id", "catalog_id", name="uq_property_catalog"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id"), nullable=False)
    catalog_id = Column(UUID(as_uuid=True), ForeignKey("whatsapp_catalogs.id"), nullable=False)
    product_retailer_id = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    property = relationship("Property", back_populates="catalog_links")
    catalog = relationship("WhatsAppCatalog", back_populates="links")
