import json
import uuid

import httpx
import pytest

from stationqueue.config import settings
from stationqueue.schemas.queue import CustomUriSource, QueueEntryCreate
from stationqueue.services.notifier import (
    LiquidsoapNotifier,
    LoggingNotifier,
    WebhookNotifier,
    get_notifier,
)


@pytest.mark.asyncio
async def test_webhook_posts_dispatch(scheduler, station):
    entry = await scheduler.cue(
        QueueEntryCreate(station_id=station.id, source=CustomUriSource(uri="http://stream/live"))
    )
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"ok": True})

    notifier = WebhookNotifier(url="http://autodj.test/dispatch", transport=httpx.MockTransport(handler))
    await notifier.notify_dispatched(station.id, entry.id, "http://stream/live", entry)

    assert len(received) == 1
    method, url, body = received[0]
    assert method == "POST"
    assert url == "http://autodj.test/dispatch"
    assert body["station_id"] == str(station.id)
    assert body["entry_id"] == entry.id
    assert body["audio_uri"] == "http://stream/live"
    assert body["entry"]["autodj_custom_uri"] == "http://stream/live"
    assert body["entry"]["is_played"] is False


@pytest.mark.asyncio
async def test_webhook_error_is_logged_not_raised(caplog):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    notifier = WebhookNotifier(url="http://autodj.test/dispatch", transport=transport)

    await notifier.notify_dispatched(uuid.uuid4(), 7, "/music/a.mp3")

    assert "AutoDJ webhook failed for queue entry #7" in caplog.text


@pytest.mark.asyncio
async def test_logging_notifier(caplog):
    caplog.set_level("INFO", logger="stationqueue.services.notifier")

    await LoggingNotifier().notify_dispatched(uuid.uuid4(), 3, "/music/b.mp3")

    assert "/music/b.mp3" in caplog.text


def test_get_notifier_prefers_webhook(monkeypatch):
    monkeypatch.setattr(settings, "AUTODJ_WEBHOOK_URL", "http://autodj.test/dispatch")
    monkeypatch.setattr(settings, "LIQUIDSOAP_SOCKET_PATH", "/tmp/liquidsoap.sock")

    assert isinstance(get_notifier(), WebhookNotifier)


def test_get_notifier_liquidsoap(monkeypatch):
    monkeypatch.setattr(settings, "AUTODJ_WEBHOOK_URL", "")
    monkeypatch.setattr(settings, "LIQUIDSOAP_SOCKET_PATH", "/tmp/liquidsoap.sock")

    notifier = get_notifier()
    assert isinstance(notifier, LiquidsoapNotifier)
    assert notifier.target_for(None) == ("/tmp/liquidsoap.sock", "main_queue")


def test_get_notifier_falls_back_to_logging(monkeypatch):
    monkeypatch.setattr(settings, "AUTODJ_WEBHOOK_URL", "")
    monkeypatch.setattr(settings, "LIQUIDSOAP_SOCKET_PATH", "")

    assert isinstance(get_notifier(), LoggingNotifier)
