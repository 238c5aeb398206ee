"""Webhook delivery provider.

POSTs each message as JSON to an automation endpoint (n8n, Zapier, a
chat-bot relay).  When a shared secret is configured the body is signed
with HMAC-SHA256 in the ``X-DocBrief-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import uuid

import httpx

from docbrief.config.settings import Settings, is_configured
from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.models.delivery import DeliveryArtifact, DeliveryResult
from docbrief.utils.logging import get_logger

_MESSAGE_DELAY = 0.0


class WebhookDeliveryProvider(IDeliveryProvider):
    """Delivers messages to a configured webhook URL."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._url = settings.webhook_delivery_url
        self._secret = settings.webhook_delivery_secret
        self._delay = (
            settings.delivery_message_delay_seconds
            if settings.delivery_message_delay_seconds is not None
            else _MESSAGE_DELAY
        )
        self._http = http_client
        self._logger = get_logger(__name__)

    async def send(self, recipient: str, artifact: DeliveryArtifact) -> DeliveryResult:
        message_id = str(uuid.uuid4())
        body = json.dumps(
            {
                "id": message_id,
                "recipient": recipient,
                "kind": artifact.kind.value,
                "body": artifact.body,
                "document_url": artifact.document_url,
                "filename": artifact.filename,
            }
        ).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._secret:
            digest = hmac.new(self._secret.encode(), body, hashlib.sha256).hexdigest()
            headers["X-DocBrief-Signature"] = f"sha256={digest}"

        try:
            response = await self._http.post(self._url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            self._logger.warning("webhook_send_transport_error", error=str(exc))
            return DeliveryResult(
                success=False, error=f"Transport error: {exc}", provider_name="webhook"
            )

        if response.status_code >= 400:
            self._logger.warning("webhook_send_rejected", status_code=response.status_code)
            return DeliveryResult(
                success=False,
                error=f"Webhook returned {response.status_code}",
                provider_name="webhook",
            )
        return DeliveryResult(success=True, provider_message_id=message_id, provider_name="webhook")

    async def check_status(self) -> bool:
        return self.is_available()

    def get_message_delay(self) -> float:
        return self._delay

    def get_provider_name(self) -> str:
        return "webhook"

    def is_available(self) -> bool:
        return is_configured(self._url)
