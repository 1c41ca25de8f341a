# models/bookings.py

from sqlalchemy import BigInteger, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from sync_avito.config import SCHEMA
from sync_avito.models.base import Base


class Booking(Base):
    """
    ORM model for local bookings.

    Bookings are created manually in the dashboard (source="manual") or pulled from
    Avito (source="avito"). Pulled bookings carry avito_booking_id, which is unique and
    acts as the idempotency key for the booking puller's upsert.
    """

    __tablename__ = "bookings"
    __table_args__ = {"schema": SCHEMA}

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    property_id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    avito_booking_id = Column(BigInteger, nullable=True, unique=True)
    guest_name = Column(String, nullable=False)
    guest_phone = Column(String, nullable=True)
    guest_email = Column(String, nullable=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, server_default=text("'RUB'"))
    status = Column(String, nullable=False, server_default=text("'confirmed'"))
    source = Column(String, nullable=False, server_default=text("'manual'"))
    guests_count = Column(Integer, nullable=False, server_default=text("1"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
