"""
Hand-off of dispatched queue entries to the external AutoDJ engine.

Delivery is at-most-once: notifiers log their own failures and never raise,
the engine is expected to poll for the next entry if a push goes missing.
"""
import logging
import uuid
from typing import Protocol

import httpx

from stationqueue.config import settings
from stationqueue.models.queue_entry import QueueEntry
from stationqueue.models.station import Station
from stationqueue.schemas.queue import DispatchNotification, QueueEntryOut
from stationqueue.services import liquidsoap_client

logger = logging.getLogger(__name__)


class ExternalNotifier(Protocol):
    async def notify_dispatched(
        self,
        station_id: uuid.UUID,
        entry_id: int,
        audio_uri: str,
        entry: QueueEntry | None = None,
        station: Station | None = None,
    ) -> None: ...


class LoggingNotifier:
    """Used when no AutoDJ push channel is configured."""

    async def notify_dispatched(self, station_id, entry_id, audio_uri, entry=None, station=None) -> None:
        logger.info("Dispatched queue entry #%d for station %s: %s", entry_id, station_id, audio_uri)


class LiquidsoapNotifier:
    """Pushes to the station's own Liquidsoap queue.

    socket_path and queue, when given, override every station's backend_config.
    """

    def __init__(self, socket_path: str | None = None, queue: str | None = None):
        self.socket_path = socket_path
        self.queue = queue

    def target_for(self, station: Station | None) -> liquidsoap_client.LiquidsoapTarget:
        target = liquidsoap_client.station_target(station.backend_config if station is not None else None)
        return liquidsoap_client.LiquidsoapTarget(
            socket_path=self.socket_path or target.socket_path,
            queue=self.queue or target.queue,
        )

    async def notify_dispatched(self, station_id, entry_id, audio_uri, entry=None, station=None) -> None:
        target = self.target_for(station)
        response = await liquidsoap_client.push_track(audio_uri, target.queue, socket_path=target.socket_path)
        if response is None:
            logger.warning(
                "Liquidsoap did not accept queue entry #%d for station %s", entry_id, station_id
            )
        else:
            logger.info(
                "Pushed queue entry #%d to Liquidsoap %s for station %s (request %s)",
                entry_id, target.queue, station_id, response,
            )


class WebhookNotifier:
    """POSTs a JSON notification to an AutoDJ HTTP endpoint."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or settings.AUTODJ_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.AUTODJ_WEBHOOK_TIMEOUT
        self.transport = transport

    async def notify_dispatched(self, station_id, entry_id, audio_uri, entry=None, station=None) -> None:
        payload = DispatchNotification(
            station_id=station_id,
            entry_id=entry_id,
            audio_uri=audio_uri,
            entry=QueueEntryOut.model_validate(entry) if entry is not None else None,
        )
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=payload.model_dump(mode="json"))
                resp.raise_for_status()
            logger.info("AutoDJ webhook accepted queue entry #%d for station %s", entry_id, station_id)
        except httpx.HTTPError as e:
            logger.warning(
                "AutoDJ webhook failed for queue entry #%d (station %s): %s", entry_id, station_id, e
            )


def get_notifier() -> ExternalNotifier:
    if settings.autodj_webhook_enabled:
        return WebhookNotifier()
    if settings.liquidsoap_enabled:
        return LiquidsoapNotifier()
    return LoggingNotifier()
