"""Abstract base class for delivery provider backends.

Each backend pushes a message (or a document link with a caption) to a
recipient address and reports the outcome as a
:class:`~docbrief.models.delivery.DeliveryResult`.  The shape of that
result is identical for every backend, which is what lets the dispatcher
and the orchestrator stay ignorant of which one is configured.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docbrief.models.delivery import DeliveryArtifact, DeliveryResult


# Concrete implementations:
#   TwilioWhatsAppProvider  - Twilio Messages API
#   MetaWhatsAppProvider    - WhatsApp Cloud API (Graph API)
#   WebhookDeliveryProvider - JSON POST to an automation webhook
#   LogDeliveryProvider     - logs messages instead of sending (development)
# Located in: docbrief/providers/delivery/
class IDeliveryProvider(ABC):
    """Contract for one delivery channel."""

    @abstractmethod
    async def send(self, recipient: str, artifact: DeliveryArtifact) -> DeliveryResult:
        """Send *artifact* to *recipient* in a single attempt.

        Parameters
        ----------
        recipient:
            Validated, digits-only address (see
            :func:`docbrief.services.delivery.recipient.normalize_recipient`).
        artifact:
            The text message or document link to send.

        Returns
        -------
        DeliveryResult
            ``success=False`` with ``error`` set for transport or API
            failures.  Implementations do not raise for those.
        """

    @abstractmethod
    async def check_status(self) -> bool:
        """Return ``True`` if the backend accepts the configured credentials."""

    @abstractmethod
    def get_message_delay(self) -> float:
        """Return the courtesy delay in seconds between consecutive messages."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"twilio"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if real (non-placeholder) credentials are configured."""
