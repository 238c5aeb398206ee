"""Delivery dispatcher: one validated, recorded attempt per send.

The dispatcher sits between the pipeline and whichever
:class:`IDeliveryProvider` is configured (strategy pattern; main.py picks
the backend).  It validates the recipient before any network call, makes
exactly one provider attempt per :meth:`send`, and records the attempt on
a :class:`DeliveryRecord`.  Retrying is the caller's decision: pass the
previous record back in and its ``attempts`` counter keeps growing.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from docbrief.models.delivery import (
    BatchDeliveryResult,
    DeliveryArtifact,
    DeliveryItem,
    DeliveryRecord,
    DeliveryResult,
    DeliveryStatus,
)
from docbrief.services.delivery.message_formatter import (
    format_footer,
    format_header,
    format_item,
    format_test_message,
)
from docbrief.services.delivery.recipient import normalize_recipient
from docbrief.utils.errors import StorageError

if TYPE_CHECKING:
    from docbrief.interfaces.delivery_provider import IDeliveryProvider
    from docbrief.interfaces.record_store import IRecordStore

logger = structlog.get_logger(logger_name=__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class DeliveryDispatcher:
    """Sends artifacts through the configured delivery provider.

    Parameters
    ----------
    provider:
        Active delivery backend.
    record_store:
        Persists :class:`DeliveryRecord` rows.  Records are still tracked
        in memory when omitted.
    sleep:
        Sleep function used for the inter-message delay, injectable for tests.
    """

    def __init__(
        self,
        provider: IDeliveryProvider,
        record_store: IRecordStore | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._record_store = record_store
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    # ------------------------------------------------------------------
    # Single message
    # ------------------------------------------------------------------

    async def send(
        self,
        recipient: str,
        artifact: DeliveryArtifact,
        record: DeliveryRecord | None = None,
        *,
        owner_id: str = "",
        document_id: str | None = None,
        summary_id: str | None = None,
    ) -> DeliveryResult:
        """Make one delivery attempt.

        Parameters
        ----------
        recipient:
            Raw recipient address; validated before anything else happens.
        artifact:
            What to send.
        record:
            Existing record from an earlier attempt.  A new ``pending``
            record is created when omitted.
        owner_id, document_id, summary_id:
            Stored on a newly created record.

        Returns
        -------
        DeliveryResult
            Provider outcome with the updated ``record`` attached.

        Raises
        ------
        InvalidRecipientError
            Before any provider call.
        StorageError
            If the new delivery record cannot be created.  Nothing is sent.
            A failure to store the outcome after the provider call is
            reported on ``record_error`` instead.
        """
        address = normalize_recipient(recipient)

        if record is None:
            record = DeliveryRecord(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                recipient=address,
                document_id=document_id,
                summary_id=summary_id,
                artifact_ref=artifact.document_url,
            )
            if self._record_store is not None:
                await self._record_store.insert_delivery(record)

        try:
            result = await self._provider.send(address, artifact)
        except Exception as exc:  # noqa: BLE001 -- every attempt must be recorded
            logger.exception("delivery_provider_raised", provider=self.provider_name)
            result = DeliveryResult(
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                provider_name=self.provider_name,
            )

        now = _utcnow()
        update: dict[str, object] = {
            "attempts": record.attempts + 1,
            "last_attempt_at": now,
            "provider_name": result.provider_name or self.provider_name,
        }
        if result.success:
            update.update(
                status=DeliveryStatus.SENT,
                provider_message_id=result.provider_message_id,
                delivered_at=now,
                last_error=None,
            )
        else:
            update.update(status=DeliveryStatus.FAILED, last_error=result.error)
        record = record.model_copy(update=update)

        record_error: str | None = None
        if self._record_store is not None:
            try:
                await self._record_store.update_delivery(record)
            except StorageError as exc:
                # The provider call already happened; its outcome stands.
                record_error = str(exc)
                logger.error(
                    "delivery_record_update_failed",
                    delivery_id=record.id,
                    success=result.success,
                    provider_message_id=result.provider_message_id,
                    error=record_error,
                )

        logger.info(
            "delivery_attempt",
            delivery_id=record.id,
            provider=record.provider_name,
            success=result.success,
            attempts=record.attempts,
            error=result.error,
        )
        return result.model_copy(update={"record": record, "record_error": record_error})

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def send_batch(
        self,
        recipient: str,
        items: list[DeliveryItem],
        owner_id: str = "",
    ) -> BatchDeliveryResult:
        """Send a header, one message per item and a statistics footer.

        Messages go out sequentially with the provider's courtesy delay
        between them.  A failed item never stops the rest of the batch.

        Raises
        ------
        InvalidRecipientError
            Before any provider call.
        """
        address = normalize_recipient(recipient)
        if not items:
            return BatchDeliveryResult(recipient=address)

        owner = owner_id or items[0].owner_id
        delay = self._provider.get_message_delay()
        first = True

        async def _pace() -> None:
            nonlocal first
            if not first and delay > 0:
                await self._sleep(delay)
            first = False

        await _pace()
        header = await self._send_recorded(
            address, DeliveryArtifact.text(format_header(len(items))), owner_id=owner
        )

        item_results: list[DeliveryResult] = []
        for index, item in enumerate(items, start=1):
            await _pace()
            item_results.append(
                await self._send_recorded(
                    address,
                    DeliveryArtifact.text(format_item(item, index, len(items))),
                    owner_id=item.owner_id,
                    document_id=item.document_id,
                    summary_id=item.summary_id,
                )
            )

        await _pace()
        footer = await self._send_recorded(
            address, DeliveryArtifact.text(format_footer(items)), owner_id=owner
        )

        batch = BatchDeliveryResult(
            recipient=address, header=header, items=item_results, footer=footer
        )
        logger.info(
            "delivery_batch_complete",
            provider=self.provider_name,
            messages=batch.message_count,
            sent=batch.sent_count,
            failed=batch.failed_count,
        )
        return batch

    async def send_test_message(self, recipient: str, owner_id: str = "") -> DeliveryResult:
        """Send a fixed test message through the active provider."""
        body = format_test_message(self.provider_name)
        return await self.send(recipient, DeliveryArtifact.text(body), owner_id=owner_id)

    async def check_status(self) -> bool:
        return await self._provider.check_status()

    async def _send_recorded(
        self,
        address: str,
        artifact: DeliveryArtifact,
        **record_fields: str,
    ) -> DeliveryResult:
        """:meth:`send` that turns a failed record insert into a failed result."""
        try:
            return await self.send(address, artifact, **record_fields)
        except StorageError as exc:
            logger.error("delivery_record_write_failed", error=str(exc))
            return DeliveryResult(
                success=False, error=str(exc), provider_name=self.provider_name
            )
