"""WhatsApp Cloud API (Meta Graph API) delivery provider.

Text artifacts are sent as ``type: text`` messages; document artifacts as
``type: document`` with the public link, filename and caption, so the
recipient gets the original file next to its summary.
"""

from __future__ import annotations

from typing import Any

import httpx

from docbrief.config.settings import Settings, is_configured
from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.models.delivery import ArtifactKind, DeliveryArtifact, DeliveryResult
from docbrief.utils.logging import get_logger

_GRAPH_BASE = "https://graph.facebook.com"
_MESSAGE_DELAY = 1.0


class MetaWhatsAppProvider(IDeliveryProvider):
    """Delivery via the WhatsApp Business Cloud API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._access_token = settings.meta_access_token
        self._phone_number_id = settings.meta_phone_number_id
        self._api_version = settings.meta_api_version
        self._delay = (
            settings.delivery_message_delay_seconds
            if settings.delivery_message_delay_seconds is not None
            else _MESSAGE_DELAY
        )
        self._http = http_client
        self._logger = get_logger(__name__)

    async def send(self, recipient: str, artifact: DeliveryArtifact) -> DeliveryResult:
        url = f"{_GRAPH_BASE}/{self._api_version}/{self._phone_number_id}/messages"
        try:
            response = await self._http.post(
                url,
                json=self._build_payload(recipient, artifact),
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.HTTPError as exc:
            self._logger.warning("meta_send_transport_error", error=str(exc))
            return DeliveryResult(
                success=False, error=f"Transport error: {exc}", provider_name="meta"
            )

        if response.status_code >= 400:
            detail = self._error_detail(response)
            self._logger.warning(
                "meta_send_rejected", status_code=response.status_code, detail=detail
            )
            return DeliveryResult(
                success=False,
                error=f"Meta API error {response.status_code}: {detail}",
                provider_name="meta",
            )

        messages = response.json().get("messages") or [{}]
        message_id = messages[0].get("id")
        self._logger.info("meta_message_sent", message_id=message_id)
        return DeliveryResult(success=True, provider_message_id=message_id, provider_name="meta")

    async def check_status(self) -> bool:
        if not self.is_available():
            return False
        url = f"{_GRAPH_BASE}/{self._api_version}/{self._phone_number_id}"
        try:
            response = await self._http.get(
                url, headers={"Authorization": f"Bearer {self._access_token}"}
            )
        except httpx.HTTPError as exc:
            self._logger.warning("meta_status_check_failed", error=str(exc))
            return False
        return response.status_code == 200

    def get_message_delay(self) -> float:
        return self._delay

    def get_provider_name(self) -> str:
        return "meta"

    def is_available(self) -> bool:
        return is_configured(self._access_token) and is_configured(self._phone_number_id)

    @staticmethod
    def _build_payload(recipient: str, artifact: DeliveryArtifact) -> dict[str, Any]:
        payload: dict[str, Any] = {"messaging_product": "whatsapp", "to": recipient}
        if artifact.kind == ArtifactKind.DOCUMENT and artifact.document_url:
            payload["type"] = "document"
            payload["document"] = {
                "link": artifact.document_url,
                "filename": artifact.filename or "document",
                "caption": artifact.body,
            }
        else:
            payload["type"] = "text"
            payload["text"] = {"body": artifact.body}
        return payload

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
            return str(error.get("message", response.text))
        except ValueError:
            return response.text[:200]
