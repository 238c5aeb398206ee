"""Log-only delivery provider for development.

Writes each message to the structured log instead of sending it.  Always
available, so the pipeline can run end to end without messaging
credentials.
"""

from __future__ import annotations

import uuid

from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.models.delivery import DeliveryArtifact, DeliveryResult
from docbrief.utils.logging import get_logger


class LogDeliveryProvider(IDeliveryProvider):
    """Records messages in the log and reports them as sent."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    async def send(self, recipient: str, artifact: DeliveryArtifact) -> DeliveryResult:
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        self._logger.info(
            "delivery_logged",
            recipient=recipient,
            kind=artifact.kind.value,
            message_id=message_id,
            body=artifact.body[:200],
            document_url=artifact.document_url,
        )
        return DeliveryResult(success=True, provider_message_id=message_id, provider_name="log")

    async def check_status(self) -> bool:
        return True

    def get_message_delay(self) -> float:
        return 0.0

    def get_provider_name(self) -> str:
        return "log"

    def is_available(self) -> bool:
        return True
