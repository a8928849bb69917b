"""API route tests with services replaced through dependency overrides."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import get_broadcaster, get_gateway, get_ingestion, get_match_center, get_predictions
from api.stream.broadcaster import EventBroadcaster
from ingest.errors import SyncAborted
from shared.config import Settings, get_settings
from shared.models.domain import AssetDTO, MatchHeroView, PredictionView, StandingView, SyncResult, TeamInfo
from shared.models.enums import MatchStatus, PredictionSource, Provider


@pytest.fixture
def ingestion() -> MagicMock:
    service = MagicMock()
    service.sync_fixtures = AsyncMock()
    service.sync_standings = AsyncMock()
    service.get_live_matches = AsyncMock(return_value=[])
    service.assets.team_assets = AsyncMock(return_value=None)
    service.current_season = AsyncMock(return_value=MagicMock(id=4))
    service.standings.table = AsyncMock(return_value=[])
    return service


@pytest.fixture
def predictions() -> MagicMock:
    service = MagicMock()
    service.get_prediction = AsyncMock(return_value=None)
    return service


@pytest.fixture
def match_center() -> MagicMock:
    service = MagicMock()
    service.next_match = AsyncMock(return_value=None)
    service.match_detail = AsyncMock(return_value=None)
    return service


@pytest.fixture
def stream_settings() -> Settings:
    return Settings(stream_timeout_s=0.2)


@pytest.fixture
def broadcaster(stream_settings) -> EventBroadcaster:
    return EventBroadcaster(MagicMock(), MagicMock(), stream_settings)


@pytest.fixture
def client(ingestion, predictions, match_center, broadcaster, stream_settings) -> TestClient:
    """Test client with lifespan disabled and services replaced by stubs."""
    app = create_app(use_lifespan=False)
    gateway = MagicMock()
    gateway.stats.return_value = {"breakers": [], "quota": {"football_data": 9}}
    app.dependency_overrides[get_ingestion] = lambda: ingestion
    app.dependency_overrides[get_predictions] = lambda: predictions
    app.dependency_overrides[get_match_center] = lambda: match_center
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_settings] = lambda: stream_settings
    with TestClient(app) as c:
        yield c


def test_health_reports_starting_without_services(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "starting", "service": "api"}


def test_request_id_is_echoed(client: TestClient) -> None:
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_metrics_endpoint(client: TestClient) -> None:
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "sl_gateway_outcomes" in r.text


def test_prediction_not_found(client: TestClient) -> None:
    r = client.get("/v1/matches/99/prediction")
    assert r.status_code == 404


def test_prediction_found(client: TestClient, predictions: MagicMock) -> None:
    predictions.get_prediction.return_value = PredictionView(
        id=1,
        match_id=7,
        home_win_probability=45.0,
        draw_probability=30.0,
        away_win_probability=25.0,
        predicted_home_score=1.5,
        predicted_away_score=1.0,
        confidence=0.5,
        source=PredictionSource.FALLBACK,
    )
    r = client.get("/v1/matches/7/prediction")
    assert r.status_code == 200
    assert r.json()["source"] == "fallback"
    predictions.get_prediction.assert_awaited_once_with(7)


def test_sync_fixtures_returns_result(client: TestClient, ingestion: MagicMock) -> None:
    ingestion.sync_fixtures.return_value = SyncResult(
        pipeline="fixtures", competition_id=1, season_id=2, provider=Provider.FOOTBALL_DATA, fetched=3, upserted=3
    )
    r = client.post("/v1/sync/fixtures", params={"competition_id": 1, "season_id": 2})
    assert r.status_code == 200
    assert r.json()["upserted"] == 3
    ingestion.sync_fixtures.assert_awaited_once_with(1, 2)


def test_sync_aborted_maps_to_404(client: TestClient, ingestion: MagicMock) -> None:
    ingestion.sync_standings.side_effect = SyncAborted("season 2 not found")
    r = client.post("/v1/sync/standings", params={"competition_id": 1, "season_id": 2})
    assert r.status_code == 404
    assert r.json()["error"] == "sync_aborted"


def test_sync_requires_ids(client: TestClient) -> None:
    assert client.post("/v1/sync/fixtures").status_code == 422


def test_live_matches(client: TestClient, ingestion: MagicMock) -> None:
    r = client.get("/v1/competitions/3/live")
    assert r.status_code == 200
    assert r.json() == []
    ingestion.get_live_matches.assert_awaited_once_with(3)


def test_team_assets(client: TestClient, ingestion: MagicMock) -> None:
    assert client.get("/v1/teams/5/assets").status_code == 404
    ingestion.assets.team_assets.return_value = AssetDTO(logo_url="https://img/badge.png")
    r = client.get("/v1/teams/5/assets")
    assert r.status_code == 200
    assert r.json()["logo_url"] == "https://img/badge.png"


def test_provider_status(client: TestClient) -> None:
    r = client.get("/v1/providers")
    assert r.json()["quota"] == {"football_data": 9}


def test_analysis_stream_sends_handshake(client: TestClient, broadcaster: EventBroadcaster) -> None:
    r = client.get("/v1/stream/analysis", headers={"Last-Event-ID": "12"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert "event: connected\n" in r.text
    assert "Connected to analysis stream" in r.text
    assert broadcaster.subscriber_count == 0


def test_stream_health(client: TestClient) -> None:
    r = client.get("/v1/stream/health")
    assert r.json() == {"status": "UP", "subscribers": 0}


def test_standings_default_to_current_season(client: TestClient, ingestion: MagicMock) -> None:
    assert client.get("/v1/competitions/3/standings").status_code == 404
    ingestion.standings.table.assert_awaited_once_with(3, 4)

    ingestion.standings.table.return_value = [
        StandingView(
            team_id=1, team_name="Arsenal FC", position=1, played=38, won=28, draw=5, lost=5,
            points=89, goals_for=91, goals_against=29, goal_difference=62,
        )
    ]
    r = client.get("/v1/competitions/3/standings", params={"season_id": 2})
    assert r.status_code == 200
    assert r.json()[0]["team_name"] == "Arsenal FC"
    ingestion.standings.table.assert_awaited_with(3, 2)


def _hero(match_id: int = 11) -> MatchHeroView:
    return MatchHeroView(
        match_id=match_id,
        match_date="2024-08-17T14:00:00+00:00",
        home_team=TeamInfo(id=1, name="Arsenal", logo_url="https://img.example/1.png"),
        away_team=TeamInfo(id=2, name="Wolves"),
        status=MatchStatus.SCHEDULED,
        competition="Premier League",
    )


def test_next_match_not_found(client: TestClient, match_center: MagicMock) -> None:
    r = client.get("/v1/matches/next", params={"team_id": 1})
    assert r.status_code == 404
    match_center.next_match.assert_awaited_once_with(1, None)


def test_next_match_with_season(client: TestClient, match_center: MagicMock) -> None:
    match_center.next_match.return_value = _hero()
    r = client.get("/v1/matches/next", params={"team_id": 1, "season_id": 4})
    assert r.status_code == 200
    body = r.json()
    assert body["match_id"] == 11
    assert body["home_team"]["logo_url"] == "https://img.example/1.png"
    match_center.next_match.assert_awaited_once_with(1, 4)


def test_next_match_requires_team(client: TestClient) -> None:
    assert client.get("/v1/matches/next").status_code == 422


def test_match_detail(client: TestClient, match_center: MagicMock) -> None:
    match_center.match_detail.return_value = _hero(7)
    r = client.get("/v1/matches/7")
    assert r.status_code == 200
    assert r.json()["competition"] == "Premier League"
    match_center.match_detail.assert_awaited_once_with(7)


def test_match_detail_not_found(client: TestClient) -> None:
    assert client.get("/v1/matches/7").status_code == 404
