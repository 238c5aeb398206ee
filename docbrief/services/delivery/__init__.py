"""Delivery of summaries through interchangeable messaging providers."""

from docbrief.services.delivery.dispatcher import DeliveryDispatcher
from docbrief.services.delivery.recipient import (
    format_for_whatsapp,
    is_valid_recipient,
    normalize_recipient,
)

__all__ = [
    "DeliveryDispatcher",
    "format_for_whatsapp",
    "is_valid_recipient",
    "normalize_recipient",
]
