"""Repository for the webhook event ledger."""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..core.enums import WebhookEventStatus
from ..models.webhook_event import WebhookEvent
from .base_repository import BaseRepository


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> WebhookEvent | None:
        return (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.source == source, WebhookEvent.event_id == event_id)
            .first()
        )

    def claim_for_processing(self, webhook_id: str) -> bool:
        """
        Move a received or failed event to processing.

        Processed and ignored events are never claimed again, which is what
        makes duplicate deliveries no-ops.
        """
        result = self.db.execute(
            update(WebhookEvent)
            .where(
                WebhookEvent.id == webhook_id,
                WebhookEvent.status.in_(
                    [WebhookEventStatus.RECEIVED.value, WebhookEventStatus.FAILED.value]
                ),
            )
            .values(status=WebhookEventStatus.PROCESSING.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
