"""
Webhook Delivery Model

Append-only audit trail: one row per outbound HTTP attempt,
initial or retry.
"""
import uuid
from datetime import datetime
from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from webhook_dispatch.models.base import Base


class WebhookDelivery(Base):
    """Record of a single webhook delivery attempt."""
    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_success_attempted_at", "success", "attempted_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    endpoint_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organisation_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    # Full envelope as sent: {"event", "timestamp", "data"}
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    # 0 when no response was received (timeout, refused connection)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WebhookDelivery(id={self.id}, endpoint_id={self.endpoint_id}, "
            f"event_type={self.event_type}, status_code={self.status_code})>"
        )
