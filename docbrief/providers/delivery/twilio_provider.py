"""Twilio WhatsApp delivery provider.

Sends messages through the Twilio Messages REST API with HTTP basic auth
(account SID + auth token).  Addresses use Twilio's ``whatsapp:+<digits>``
form on both the sender and recipient side.

Twilio has no document-attachment-by-link equivalent of the Cloud API, so
document artifacts are sent as their caption followed by the link.
"""

from __future__ import annotations

import httpx

from docbrief.config.settings import Settings, is_configured
from docbrief.interfaces.delivery_provider import IDeliveryProvider
from docbrief.models.delivery import ArtifactKind, DeliveryArtifact, DeliveryResult
from docbrief.services.delivery.recipient import format_for_whatsapp
from docbrief.utils.logging import get_logger

_API_BASE = "https://api.twilio.com/2010-04-01"
_MESSAGE_DELAY = 2.0  # seconds between consecutive messages


class TwilioWhatsAppProvider(IDeliveryProvider):
    """Delivery via Twilio's WhatsApp sender.

    Parameters
    ----------
    settings:
        Provides ``twilio_account_sid``, ``twilio_auth_token`` and
        ``twilio_whatsapp_number``.
    http_client:
        Injected ``httpx.AsyncClient`` shared across providers.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._account_sid = settings.twilio_account_sid
        self._auth_token = settings.twilio_auth_token
        self._from_number = settings.twilio_whatsapp_number
        self._delay = (
            settings.delivery_message_delay_seconds
            if settings.delivery_message_delay_seconds is not None
            else _MESSAGE_DELAY
        )
        self._http = http_client
        self._logger = get_logger(__name__)

    async def send(self, recipient: str, artifact: DeliveryArtifact) -> DeliveryResult:
        body = artifact.body
        if artifact.kind == ArtifactKind.DOCUMENT and artifact.document_url:
            body = f"{artifact.body}\n{artifact.document_url}".strip()

        url = f"{_API_BASE}/Accounts/{self._account_sid}/Messages.json"
        data = {
            "From": format_for_whatsapp(self._from_number),
            "To": format_for_whatsapp(recipient),
            "Body": body,
        }
        try:
            response = await self._http.post(
                url, data=data, auth=(self._account_sid, self._auth_token)
            )
        except httpx.HTTPError as exc:
            self._logger.warning("twilio_send_transport_error", error=str(exc))
            return DeliveryResult(
                success=False, error=f"Transport error: {exc}", provider_name="twilio"
            )

        if response.status_code >= 400:
            detail = self._error_detail(response)
            self._logger.warning(
                "twilio_send_rejected", status_code=response.status_code, detail=detail
            )
            return DeliveryResult(
                success=False,
                error=f"Twilio API error {response.status_code}: {detail}",
                provider_name="twilio",
            )

        message_id = response.json().get("sid")
        self._logger.info("twilio_message_sent", message_id=message_id)
        return DeliveryResult(success=True, provider_message_id=message_id, provider_name="twilio")

    async def check_status(self) -> bool:
        if not self.is_available():
            return False
        url = f"{_API_BASE}/Accounts/{self._account_sid}.json"
        try:
            response = await self._http.get(url, auth=(self._account_sid, self._auth_token))
        except httpx.HTTPError as exc:
            self._logger.warning("twilio_status_check_failed", error=str(exc))
            return False
        return response.status_code == 200 and response.json().get("status") == "active"

    def get_message_delay(self) -> float:
        return self._delay

    def get_provider_name(self) -> str:
        return "twilio"

    def is_available(self) -> bool:
        return (
            is_configured(self._account_sid)
            and is_configured(self._auth_token)
            and is_configured(self._from_number)
        )

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            return str(response.json().get("message", response.text))
        except ValueError:
            return response.text[:200]
