"""SQLAlchemy model for Avito integrations."""

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Column,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from sync_avito.config import SCHEMA
from sync_avito.models.base import Base


class Integration(Base):
    """
    ORM model linking one property to one Avito listing.

    Created by the OAuth callback, deactivated on disconnect (is_active=False) and
    hard-deleted on explicit removal, which cascades to sync_queue and sync_logs.
    Tokens are stored Fernet-encrypted (see sync_avito.crypto).
    """

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("property_id", "platform", name="uq_integrations_property_platform"),
        {"schema": SCHEMA},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    property_id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    platform = Column(String, nullable=False, server_default=text("'avito'"))
    avito_account_id = Column(String, nullable=True)
    avito_item_id = Column(String, nullable=True)
    markup_type = Column(String, nullable=False, server_default=text("'percent'"))  # percent|fixed
    markup_value = Column(Numeric(12, 2), nullable=False, server_default=text("0"))
    access_token_encrypted = Column(String, nullable=True)
    refresh_token_encrypted = Column(String, nullable=True)
    token_expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    scope = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, server_default=text("TRUE"))
    last_sync_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()"))
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()"))
