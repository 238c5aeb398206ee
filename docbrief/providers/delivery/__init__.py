"""Delivery provider adapters.

Four concrete implementations of IDeliveryProvider
(docbrief/interfaces/delivery_provider.py):
    - TwilioWhatsAppProvider  - Twilio Messages API
    - MetaWhatsAppProvider    - WhatsApp Cloud API
    - WebhookDeliveryProvider - signed JSON POST to an automation endpoint
    - LogDeliveryProvider     - development fallback, always available

main.py picks one according to DELIVERY_PROVIDER ("auto" = first configured).
"""

from docbrief.providers.delivery.log_provider import LogDeliveryProvider
from docbrief.providers.delivery.meta_provider import MetaWhatsAppProvider
from docbrief.providers.delivery.twilio_provider import TwilioWhatsAppProvider
from docbrief.providers.delivery.webhook_provider import WebhookDeliveryProvider

__all__ = [
    "TwilioWhatsAppProvider",
    "MetaWhatsAppProvider",
    "WebhookDeliveryProvider",
    "LogDeliveryProvider",
]
