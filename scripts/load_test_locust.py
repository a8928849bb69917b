"""
Basic Locust load test for the Scoreline API.

Prereq: pip install -e ".[load]"

Run:
  locust -f scripts/load_test_locust.py --host=http://localhost:8000
  locust -f scripts/load_test_locust.py --host=http://localhost:8000 --users 50 --spawn-rate 5 --run-time 1m
"""
import random

from locust import HttpUser, task, between

COMPETITION_IDS = range(1, 7)
MATCH_IDS = range(1, 200)
TEAM_IDS = range(1, 41)


class ScorelineUser(HttpUser):
    wait_time = between(0.5, 1.5)

    def on_start(self):
        r = self.client.get("/health")
        if r.status_code != 200:
            raise Exception("Health check failed")

    @task(3)
    def health(self):
        self.client.get("/health")

    @task(5)
    def live(self):
        cid = random.choice(COMPETITION_IDS)
        self.client.get(f"/v1/competitions/{cid}/live", name="/v1/competitions/[id]/live")

    @task(3)
    def standings(self):
        cid = random.choice(COMPETITION_IDS)
        with self.client.get(
            f"/v1/competitions/{cid}/standings", name="/v1/competitions/[id]/standings", catch_response=True
        ) as r:
            if r.status_code in (200, 404):
                r.success()

    @task(4)
    def prediction(self):
        mid = random.choice(MATCH_IDS)
        with self.client.get(
            f"/v1/matches/{mid}/prediction", name="/v1/matches/[id]/prediction", catch_response=True
        ) as r:
            if r.status_code in (200, 404):
                r.success()

    @task(4)
    def next_match(self):
        tid = random.choice(TEAM_IDS)
        with self.client.get(
            "/v1/matches/next", params={"team_id": tid}, name="/v1/matches/next", catch_response=True
        ) as r:
            if r.status_code in (200, 404):
                r.success()

    @task(1)
    def stream_health(self):
        self.client.get("/v1/stream/health")
