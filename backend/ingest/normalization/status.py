"""
Provider status codes to canonical MatchStatus.

Covers football-data.org long-form codes and API-Football short codes.
Unknown or missing codes read as SCHEDULED.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from shared.models.enums import MatchStatus

STATUS_MAP: dict[str, MatchStatus] = {
    # not started
    "SCHEDULED": MatchStatus.SCHEDULED,
    "TIMED": MatchStatus.SCHEDULED,
    "NS": MatchStatus.SCHEDULED,
    "TBD": MatchStatus.SCHEDULED,
    # in play
    "IN_PLAY": MatchStatus.LIVE,
    "LIVE": MatchStatus.LIVE,
    "PAUSED": MatchStatus.LIVE,
    "1H": MatchStatus.LIVE,
    "2H": MatchStatus.LIVE,
    "HT": MatchStatus.LIVE,
    "ET": MatchStatus.LIVE,
    "BT": MatchStatus.LIVE,
    "P": MatchStatus.LIVE,
    # finished
    "FINISHED": MatchStatus.FINISHED,
    "FT": MatchStatus.FINISHED,
    "AET": MatchStatus.FINISHED,
    "PEN": MatchStatus.FINISHED,
    # postponed / cancelled
    "POSTPONED": MatchStatus.POSTPONED,
    "PST": MatchStatus.POSTPONED,
    "CANCELLED": MatchStatus.CANCELLED,
    "CANC": MatchStatus.CANCELLED,
}


def map_status(code: Optional[str]) -> MatchStatus:
    if not code:
        return MatchStatus.SCHEDULED
    return STATUS_MAP.get(code.strip().upper(), MatchStatus.SCHEDULED)


def as_utc(dt: datetime) -> datetime:
    """Some drivers hand back naive datetimes; stored values are always UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
