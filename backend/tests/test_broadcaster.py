"""Event broadcaster: handshake, fan-out isolation and periodic producers."""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from api.stream.broadcaster import EventBroadcaster, QueueSink, SinkClosed
from shared.models.domain import PredictionView, StreamEvent
from shared.models.enums import PredictionSource, StreamEventName

NOW = datetime(2024, 8, 17, 12, 0, tzinfo=timezone.utc)


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[StreamEvent] = []

    async def send(self, event: StreamEvent) -> None:
        self.events.append(event)


class BrokenSink:
    def __init__(self, fail_after: int = 0) -> None:
        self.sent = 0
        self.fail_after = fail_after

    async def send(self, event: StreamEvent) -> None:
        if self.sent >= self.fail_after:
            raise ConnectionResetError("client went away")
        self.sent += 1


class StubPredictions:
    def __init__(self, failing: set[int] | None = None) -> None:
        self.failing = failing or set()
        self.asked: list[int] = []

    async def get_prediction(self, match_id: int):
        self.asked.append(match_id)
        if match_id in self.failing:
            raise RuntimeError("model exploded")
        return PredictionView(
            id=match_id,
            match_id=match_id,
            home_win_probability=45.0,
            draw_probability=30.0,
            away_win_probability=25.0,
            predicted_home_score=1.5,
            predicted_away_score=1.0,
            confidence=0.5,
            source=PredictionSource.FALLBACK,
        )


@pytest.fixture
def predictions() -> StubPredictions:
    return StubPredictions()


@pytest.fixture
def broadcaster(db, settings, predictions) -> EventBroadcaster:
    return EventBroadcaster(db, predictions, settings, now=lambda: NOW)


def test_event_wire_format() -> None:
    event = StreamEvent(id="7", event=StreamEventName.LIVE_UPDATE, data={"match_id": 1, "home_score": 2})
    assert event.encode() == 'id: 7\nevent: live-update\ndata: {"match_id":1,"home_score":2}\n\n'


@pytest.mark.asyncio
async def test_register_sends_connected_handshake(broadcaster) -> None:
    sink = RecordingSink()
    subscriber_id = await broadcaster.register(sink)
    assert subscriber_id is not None
    assert broadcaster.subscriber_count == 1
    assert sink.events[0].event == StreamEventName.CONNECTED
    assert sink.events[0].data["message"] == "Connected to analysis stream"
    assert "timestamp" in sink.events[0].data


@pytest.mark.asyncio
async def test_failed_handshake_is_not_registered(broadcaster) -> None:
    assert await broadcaster.register(BrokenSink()) is None
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_last_event_id_is_accepted_without_replay(broadcaster) -> None:
    sink = RecordingSink()
    assert await broadcaster.register(sink, last_event_id="42") is not None
    assert [e.event for e in sink.events] == [StreamEventName.CONNECTED]


@pytest.mark.asyncio
async def test_failing_subscriber_is_pruned_without_affecting_others(broadcaster) -> None:
    healthy = RecordingSink()
    flaky = BrokenSink(fail_after=1)
    await broadcaster.register(healthy)
    flaky_id = await broadcaster.register(flaky)

    delivered = await broadcaster.broadcast(StreamEventName.LIVE_UPDATE, {"match_id": 1})
    assert delivered == 1
    assert flaky_id not in broadcaster.subscriber_ids()
    assert broadcaster.subscriber_count == 1
    assert healthy.events[-1].data == {"match_id": 1}

    await broadcaster.broadcast(StreamEventName.LIVE_UPDATE, {"match_id": 2})
    assert [e.data.get("match_id") for e in healthy.events[1:]] == [1, 2]


@pytest.mark.asyncio
async def test_event_ids_increase(broadcaster) -> None:
    sink = RecordingSink()
    await broadcaster.register(sink)
    await broadcaster.broadcast(StreamEventName.SCANNING_INSIGHT, {})
    await broadcaster.broadcast(StreamEventName.SCANNING_INSIGHT, {})
    ids = [int(e.id) for e in sink.events]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3


@pytest.mark.asyncio
async def test_unregister(broadcaster) -> None:
    subscriber_id = await broadcaster.register(RecordingSink())
    assert broadcaster.unregister(subscriber_id) is True
    assert broadcaster.unregister(subscriber_id) is False
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_producers_skip_work_without_subscribers(broadcaster, predictions, factory) -> None:
    home = await factory.team("Arsenal FC")
    away = await factory.team("Chelsea FC")
    await factory.match(home, away, when=NOW + timedelta(days=1))
    assert await broadcaster.publish_match_updates() == 0
    assert await broadcaster.publish_prediction_updates() == 0
    assert predictions.asked == []


@pytest.mark.asyncio
async def test_match_updates_cover_live_and_upcoming(broadcaster, factory) -> None:
    arsenal = await factory.team("Arsenal FC")
    chelsea = await factory.team("Chelsea FC")
    spurs = await factory.team("Tottenham Hotspur FC")
    live = await factory.match(arsenal, chelsea, when=NOW - timedelta(minutes=30), status="LIVE")
    soon = await factory.match(chelsea, spurs, when=NOW + timedelta(days=2))
    await factory.match(spurs, arsenal, when=NOW + timedelta(days=30))
    await factory.match(arsenal, spurs, when=NOW - timedelta(days=3), status="FINISHED")

    sink = RecordingSink()
    await broadcaster.register(sink)
    assert await broadcaster.publish_match_updates() == 2

    by_name = {e.event: e.data for e in sink.events[1:]}
    assert by_name[StreamEventName.LIVE_UPDATE]["match_id"] == live.id
    assert by_name[StreamEventName.SCANNING_INSIGHT]["message"] == (
        f"Analyzing match {soon.id}: Chelsea FC vs Tottenham Hotspur FC"
    )


@pytest.mark.asyncio
async def test_prediction_updates_skip_failing_matches(db, settings, factory) -> None:
    arsenal = await factory.team("Arsenal FC")
    chelsea = await factory.team("Chelsea FC")
    first = await factory.match(arsenal, chelsea, when=NOW + timedelta(days=1))
    second = await factory.match(chelsea, arsenal, when=NOW + timedelta(days=3))
    predictions = StubPredictions(failing={first.id})
    broadcaster = EventBroadcaster(db, predictions, settings, now=lambda: NOW)

    sink = RecordingSink()
    await broadcaster.register(sink)
    assert await broadcaster.publish_prediction_updates() == 1
    assert predictions.asked == [first.id, second.id]
    update = sink.events[-1]
    assert update.event == StreamEventName.PREDICTION_UPDATE
    assert update.data["match_id"] == second.id
    assert update.data["prediction"]["source"] == "fallback"
    json.dumps(update.data)


@pytest.mark.asyncio
async def test_queue_sink_full_buffer_fails_send() -> None:
    sink = QueueSink(maxsize=1)
    await sink.send(StreamEvent(id="1", event=StreamEventName.CONNECTED, data={}))
    with pytest.raises(SinkClosed):
        await sink.send(StreamEvent(id="2", event=StreamEventName.CONNECTED, data={}))


@pytest.mark.asyncio
async def test_queue_sink_yields_until_closed() -> None:
    sink = QueueSink(maxsize=10)
    await sink.send(StreamEvent(id="1", event=StreamEventName.CONNECTED, data={}))
    await sink.send(StreamEvent(id="2", event=StreamEventName.LIVE_UPDATE, data={}))
    sink.close()
    received = [event.id async for event in sink.events(timeout_s=1.0)]
    assert received == ["1", "2"]
    with pytest.raises(SinkClosed):
        await sink.send(StreamEvent(id="3", event=StreamEventName.LIVE_UPDATE, data={}))


@pytest.mark.asyncio
async def test_queue_sink_stops_at_timeout() -> None:
    sink = QueueSink()
    received = [event async for event in sink.events(timeout_s=0.05)]
    assert received == []


@pytest.mark.asyncio
async def test_stop_closes_subscribers(broadcaster) -> None:
    sink = QueueSink()
    await broadcaster.register(sink)
    broadcaster.start()
    await asyncio.sleep(0)
    await broadcaster.stop()
    assert sink.closed
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_pruned_queue_sink_is_closed(broadcaster) -> None:
    healthy = RecordingSink()
    slow = QueueSink(maxsize=1)
    await broadcaster.register(healthy)
    slow_id = await broadcaster.register(slow)

    assert await broadcaster.broadcast(StreamEventName.LIVE_UPDATE, {"match_id": 1}) == 1
    assert slow_id not in broadcaster.subscriber_ids()
    assert slow.closed
    received = [event async for event in slow.events(timeout_s=1.0)]
    assert received == []
    assert healthy.events[-1].data == {"match_id": 1}
