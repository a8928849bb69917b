"""
Server-push event broadcaster for the analysis stream.

Manages stream subscribers with:
- copy-on-write subscriber map: writers swap in a new dict, broadcasts iterate
  the snapshot they started with
- a ``connected`` handshake on registration
- pruning on the first failed send, without affecting other subscribers
- two periodic producers (match state, predictions) with start/stop lifecycle

Delivery is at-most-once. A client's last-seen event id is accepted but
missed events are not replayed.
"""
from __future__ import annotations

import asyncio
import itertools
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from sqlalchemy import select

from ingest.normalization.status import as_utc
from predictor.service import PredictionService
from scheduler.ticker import PeriodicTask
from shared.config import Settings, get_settings
from shared.models.domain import StreamEvent
from shared.models.enums import MatchStatus, StreamEventName
from shared.models.orm import MatchORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import STREAM_EVENTS_SENT, STREAM_SUBSCRIBERS

logger = get_logger(__name__)

SEND_TIMEOUT_S = 5.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventSink(Protocol):
    async def send(self, event: StreamEvent) -> None:
        ...


class SinkClosed(Exception):
    """The subscriber went away or stopped consuming."""


class QueueSink:
    """Bounded per-connection buffer; a full buffer counts as a failed send."""

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[Optional[StreamEvent]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: StreamEvent) -> None:
        if self._closed:
            raise SinkClosed("subscriber closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            raise SinkClosed("subscriber buffer full") from None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def events(self, timeout_s: float) -> AsyncIterator[StreamEvent]:
        """Yield buffered events until closed or the connection lifetime runs out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                return
            if event is None:
                return
            yield event


def _close_sink(sink: EventSink) -> None:
    """End the subscriber's stream so its client reconnects."""
    close = getattr(sink, "close", None)
    if close is not None:
        close()


class EventBroadcaster:
    """Subscriber registry plus the periodic producers that feed it."""

    def __init__(
        self,
        db: DatabaseManager,
        predictions: PredictionService,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._predictions = predictions
        self._settings = settings or get_settings()
        self._now = now
        self._subscribers: dict[str, EventSink] = {}
        self._write_lock = threading.Lock()
        self._event_ids = itertools.count(1)
        self._tasks = [
            PeriodicTask(
                "stream_match_updates",
                self._settings.stream_match_interval_s,
                self.publish_match_updates,
            ),
            PeriodicTask(
                "stream_prediction_updates",
                self._settings.stream_prediction_interval_s,
                self.publish_prediction_updates,
            ),
        ]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscriber_ids(self) -> list[str]:
        return list(self._subscribers)

    # ── Lifecycle ───────────────────────────────────────────────────────

    def start(self) -> None:
        for task in self._tasks:
            task.start()
        logger.info("broadcaster_started")

    async def stop(self) -> None:
        for task in self._tasks:
            await task.stop()
        with self._write_lock:
            subscribers, self._subscribers = self._subscribers, {}
        for sink in subscribers.values():
            _close_sink(sink)
        STREAM_SUBSCRIBERS.set(0)
        logger.info("broadcaster_stopped", closed_subscribers=len(subscribers))

    # ── Registry ────────────────────────────────────────────────────────

    def _event(self, name: StreamEventName, data: dict[str, Any]) -> StreamEvent:
        return StreamEvent(id=str(next(self._event_ids)), event=name, data=data)

    async def register(self, sink: EventSink, last_event_id: Optional[str] = None) -> Optional[str]:
        """
        Send the handshake and add the subscriber.

        Returns the subscriber id, or None if the handshake could not be delivered.
        """
        subscriber_id = uuid.uuid4().hex[:12]
        if last_event_id:
            logger.info("stream_replay_not_supported", subscriber_id=subscriber_id, last_event_id=last_event_id)
        handshake = self._event(
            StreamEventName.CONNECTED,
            {
                "subscriber_id": subscriber_id,
                "message": "Connected to analysis stream",
                "timestamp": self._now().isoformat(),
            },
        )
        try:
            await asyncio.wait_for(sink.send(handshake), timeout=SEND_TIMEOUT_S)
        except Exception as exc:
            logger.warning("stream_handshake_failed", subscriber_id=subscriber_id, error=str(exc))
            return None

        with self._write_lock:
            self._subscribers = {**self._subscribers, subscriber_id: sink}
            count = len(self._subscribers)
        STREAM_SUBSCRIBERS.set(count)
        STREAM_EVENTS_SENT.labels(event=StreamEventName.CONNECTED.value).inc()
        logger.info("stream_subscribed", subscriber_id=subscriber_id, active=count)
        return subscriber_id

    def unregister(self, subscriber_id: str) -> bool:
        with self._write_lock:
            if subscriber_id not in self._subscribers:
                return False
            remaining = dict(self._subscribers)
            del remaining[subscriber_id]
            self._subscribers = remaining
        STREAM_SUBSCRIBERS.set(len(remaining))
        logger.info("stream_unsubscribed", subscriber_id=subscriber_id, active=len(remaining))
        return True

    async def _deliver(self, subscriber_id: str, sink: EventSink, event: StreamEvent) -> bool:
        try:
            await asyncio.wait_for(sink.send(event), timeout=SEND_TIMEOUT_S)
        except Exception as exc:
            logger.info(
                "stream_send_failed",
                subscriber_id=subscriber_id,
                event_name=event.event.value,
                error=str(exc) or type(exc).__name__,
            )
            self.unregister(subscriber_id)
            _close_sink(sink)
            return False
        return True

    async def broadcast(self, name: StreamEventName, data: dict[str, Any]) -> int:
        """Send one event to every current subscriber. Returns the number delivered."""
        snapshot = self._subscribers
        if not snapshot:
            return 0
        event = self._event(name, data)
        results = await asyncio.gather(
            *(self._deliver(sid, sink, event) for sid, sink in snapshot.items())
        )
        delivered = sum(results)
        STREAM_EVENTS_SENT.labels(event=name.value).inc(delivered)
        return delivered

    # ── Producers ───────────────────────────────────────────────────────

    def _window(self) -> tuple[datetime, datetime]:
        now = self._now()
        return now, now + timedelta(days=self._settings.stream_window_days)

    @staticmethod
    def _match_payload(match: MatchORM) -> dict[str, Any]:
        return {
            "match_id": match.id,
            "home_team": match.home_team.name,
            "away_team": match.away_team.name,
            "home_score": match.home_score,
            "away_score": match.away_score,
            "status": match.status,
            "match_date": as_utc(match.match_date).isoformat(),
        }

    async def publish_match_updates(self) -> int:
        """live-update for every LIVE match, scanning-insight for SCHEDULED matches in the window."""
        if not self._subscribers:
            return 0
        start, end = self._window()
        async with self._db.read_session() as session:
            live = (
                await session.scalars(select(MatchORM).where(MatchORM.status == MatchStatus.LIVE.value))
            ).unique().all()
            upcoming = (
                await session.scalars(
                    select(MatchORM)
                    .where(
                        MatchORM.status == MatchStatus.SCHEDULED.value,
                        MatchORM.match_date >= start,
                        MatchORM.match_date <= end,
                    )
                    .order_by(MatchORM.match_date)
                )
            ).unique().all()
            live_payloads = [self._match_payload(m) for m in live]
            insights = [
                {
                    "match_id": m.id,
                    "message": f"Analyzing match {m.id}: {m.home_team.name} vs {m.away_team.name}",
                    "timestamp": self._now().isoformat(),
                }
                for m in upcoming
            ]

        sent = 0
        for payload in live_payloads:
            await self.broadcast(StreamEventName.LIVE_UPDATE, payload)
            sent += 1
        for payload in insights:
            await self.broadcast(StreamEventName.SCANNING_INSIGHT, payload)
            sent += 1
        return sent

    async def publish_prediction_updates(self) -> int:
        """prediction-update for every match in the window; one failing match does not stop the rest."""
        if not self._subscribers:
            return 0
        start, end = self._window()
        async with self._db.read_session() as session:
            matches = (
                await session.scalars(
                    select(MatchORM)
                    .where(MatchORM.match_date >= start, MatchORM.match_date <= end)
                    .order_by(MatchORM.match_date)
                )
            ).unique().all()
            targets = [(m.id, m.home_team.name, m.away_team.name) for m in matches]

        sent = 0
        for match_id, home, away in targets:
            try:
                prediction = await self._predictions.get_prediction(match_id)
            except Exception as exc:
                logger.error("stream_prediction_failed", match_id=match_id, error=str(exc))
                continue
            if prediction is None:
                continue
            await self.broadcast(
                StreamEventName.PREDICTION_UPDATE,
                {
                    "match_id": match_id,
                    "home_team": home,
                    "away_team": away,
                    "prediction": prediction.model_dump(mode="json"),
                },
            )
            sent += 1
        return sent
