"""SQLAlchemy models for properties and their per-date rate overrides."""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from sync_avito.config import SCHEMA
from sync_avito.models.base import Base


class Property(Base):
    """
    ORM model for a rentable property.

    Only the pricing defaults used when projecting prices to Avito are modelled here;
    the rest of the property record belongs to the dashboard.
    """

    __tablename__ = "properties"
    __table_args__ = {"schema": SCHEMA}

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    name = Column(String, nullable=False)
    base_price = Column(Numeric(12, 2), nullable=False)
    minimum_booking_days = Column(Integer, nullable=False, server_default=text("1"))
    currency = Column(String(3), nullable=False, server_default=text("'RUB'"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class RateOverride(Base):
    """
    Nightly price and minimum stay for one property on one date.

    Read-only for the reconciler.
    """

    __tablename__ = "property_rates"
    __table_args__ = (
        UniqueConstraint("property_id", "date", name="uq_property_rates_property_date"),
        {"schema": SCHEMA},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    property_id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date = Column(Date, nullable=False)
    daily_price = Column(Numeric(12, 2), nullable=False)
    min_stay = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, server_default=text("'RUB'"))
