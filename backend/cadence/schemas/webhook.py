"""Pydantic models for webhook endpoint responses."""

from typing import Optional

from ._strict_base import StrictModel


class WebhookAckResponse(StrictModel):
    """Acknowledgement returned to Stripe; anything but 2xx triggers a redelivery."""

    status: str
    event_type: Optional[str] = None
    message: Optional[str] = None


__all__ = ["WebhookAckResponse"]
