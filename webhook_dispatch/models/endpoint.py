"""
Webhook Endpoint Model

A registered delivery target owned by an organisation.
Created and deactivated by other services; the dispatch engine only
reads endpoints and stamps last_triggered_at.
"""
import uuid
from datetime import datetime
from sqlalchemy import String, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from webhook_dispatch.models.base import Base, TimestampMixin


class WebhookEndpoint(Base, TimestampMixin):
    """Organisation-owned webhook destination."""
    __tablename__ = "webhook_endpoints"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    organisation_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    # Signing key. Never returned by read APIs and never mutated here:
    # rotation is delete + recreate.
    secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    event_types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_triggered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    def subscribes_to(self, event_type: str) -> bool:
        """Check whether this endpoint listens for the given event type."""
        return event_type in (self.event_types or [])

    def __repr__(self) -> str:
        return f"<WebhookEndpoint(id={self.id}, url={self.url}, active={self.is_active})>"
