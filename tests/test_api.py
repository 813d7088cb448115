"""HTTP API tests against an in-memory store."""

from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from conftest import InMemorySleepStore
from naprhythm.api.deps import get_coordinator
from naprhythm.api.models import ProfileResponse
from naprhythm.core.errors import StorageError
from naprhythm.main import app
from naprhythm.services.sleep_coordinator import SleepCoordinator

BABY = "baby-1"


class BrokenStore(InMemorySleepStore):
    async def save_learner_state(self, baby_id, state):
        raise StorageError("learner_states unavailable")


@pytest.fixture
def coordinator(store, clock, ids):
    return SleepCoordinator(store, clock=clock, new_id=ids)


@pytest.fixture
def client(coordinator):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def baby(client):
    response = client.put(f"/babies/{BABY}/profile", json={"name": "Ada", "birth_date": "2024-01-01"})
    assert response.status_code == 200
    return response.json()


class TestProfileRoutes:
    def test_unknown_profile_is_404(self, client):
        assert client.get("/babies/nobody/profile").status_code == 404
        assert client.get("/babies/nobody/overview").status_code == 404

    def test_create_and_get_profile(self, client, baby):
        assert baby["name"] == "Ada"
        assert baby["wake_window_adjustment_min"] == 0

        response = client.get(f"/babies/{BABY}/profile")
        assert response.status_code == 200
        assert response.json()["birth_date"] == "2024-01-01"

    def test_blank_name_rejected(self, client):
        response = client.put(f"/babies/{BABY}/profile", json={"name": "  ", "birth_date": "2024-01-01"})
        assert response.status_code == 400

    def test_profile_response_reads_attributes(self):
        row = SimpleNamespace(
            id=BABY, name="Ada", birth_date=date(2024, 1, 1),
            active_timer_start=None, wake_window_adjustment_min=15, updated_at=None,
        )
        response = ProfileResponse.model_validate(row)

        assert response.wake_window_adjustment_min == 15
        assert ProfileResponse.model_config["from_attributes"] is True


class TestSessionRoutes:
    def test_session_lifecycle(self, client, baby):
        response = client.post(f"/babies/{BABY}/sessions", json={
            "start": "2024-07-01T09:00:00Z",
            "end": "2024-07-01T10:30:00Z",
            "quality": 4,
        })
        assert response.status_code == 201
        created = response.json()
        assert created["duration_minutes"] == 90
        assert created["source"] == "manual"

        listed = client.get(f"/babies/{BABY}/sessions").json()["sessions"]
        assert [s["id"] for s in listed] == [created["id"]]

        response = client.put(f"/babies/{BABY}/sessions/{created['id']}", json={"notes": "slept well"})
        assert response.status_code == 200
        assert response.json()["notes"] == "slept well"
        assert response.json()["quality"] == 4

        response = client.delete(f"/babies/{BABY}/sessions/{created['id']}")
        assert response.status_code == 200
        assert response.json()["deleted"] is True

        assert client.get(f"/babies/{BABY}/sessions").json()["sessions"] == []
        with_deleted = client.get(f"/babies/{BABY}/sessions", params={"include_deleted": True}).json()
        assert len(with_deleted["sessions"]) == 1

    def test_end_before_start_rejected(self, client, baby):
        response = client.post(f"/babies/{BABY}/sessions", json={
            "start": "2024-07-01T10:00:00Z",
            "end": "2024-07-01T09:00:00Z",
        })
        assert response.status_code == 400

    def test_quality_out_of_range_rejected(self, client, baby):
        response = client.post(f"/babies/{BABY}/sessions", json={
            "start": "2024-07-01T09:00:00Z",
            "end": "2024-07-01T10:00:00Z",
            "quality": 7,
        })
        assert response.status_code == 400

    def test_unknown_session_is_404(self, client, baby):
        assert client.put(f"/babies/{BABY}/sessions/missing", json={"notes": "x"}).status_code == 404
        assert client.delete(f"/babies/{BABY}/sessions/missing").status_code == 404


class TestTimerRoutes:
    def test_timer_flow(self, client, baby, clock):
        response = client.post(f"/babies/{BABY}/timer/start")
        assert response.status_code == 200
        assert response.json()["active_timer_start"] is not None

        assert client.post(f"/babies/{BABY}/timer/start").status_code == 400

        clock.advance(minutes=40)
        response = client.post(f"/babies/{BABY}/timer/stop")
        assert response.status_code == 200
        assert response.json()["session"]["source"] == "timer"
        assert response.json()["session"]["duration_minutes"] == 40

        assert client.post(f"/babies/{BABY}/timer/stop").status_code == 400

    def test_cancel_timer(self, client, baby):
        client.post(f"/babies/{BABY}/timer/start")
        response = client.delete(f"/babies/{BABY}/timer")
        assert response.status_code == 200
        assert response.json()["active_timer_start"] is None
        assert client.get(f"/babies/{BABY}/sessions").json()["sessions"] == []


class TestInsightRoutes:
    def test_overview_cold_start(self, client, baby):
        response = client.get(f"/babies/{BABY}/overview")
        assert response.status_code == 200
        data = response.json()

        assert data["learner"]["confidence"] == 0.1
        assert data["learner"]["ewma_wake_window_min"] == 120
        assert data["tips"] == []
        assert data["schedule"]
        assert {b["kind"] for b in data["schedule"]} == {"windDown", "nap", "bedtime"}

    def test_repeated_reads_leave_learner_alone(self, client, baby, store):
        for start, end in (("08:00", "08:30"), ("11:00", "11:30")):
            client.post(f"/babies/{BABY}/sessions", json={
                "start": f"2024-07-01T{start}:00Z",
                "end": f"2024-07-01T{end}:00Z",
            })
        stored = store.learner_states[BABY]

        learners = [client.get(f"/babies/{BABY}/learner").json() for _ in range(3)]
        client.get(f"/babies/{BABY}/overview")
        client.get(f"/babies/{BABY}/tips")
        client.get(f"/babies/{BABY}/schedule")

        assert learners[0] == learners[1] == learners[2]
        assert learners[0]["ewma_wake_window_min"] == stored.ewma_wake_window_min
        assert store.learner_states[BABY] == stored

    def test_learner_route(self, client, baby):
        response = client.get(f"/babies/{BABY}/learner")
        assert response.status_code == 200
        assert response.json()["version"] == 1

    def test_schedule_preview_with_adjustment(self, client, baby):
        plain = client.get(f"/babies/{BABY}/schedule").json()["blocks"]
        adjusted = client.get(f"/babies/{BABY}/schedule", params={"adjust_minutes": 30}).json()["blocks"]

        first_nap = next(b for b in plain if b["kind"] == "nap")
        first_adjusted = next(b for b in adjusted if b["kind"] == "nap")
        assert first_nap["start"].startswith("2024-07-01T14:00:00")
        assert first_adjusted["start"].startswith("2024-07-01T14:30:00")

    def test_schedule_days_ahead_bounds(self, client, baby):
        assert client.get(f"/babies/{BABY}/schedule", params={"days_ahead": 0}).status_code == 400
        one_day = client.get(f"/babies/{BABY}/schedule", params={"days_ahead": 1}).json()["blocks"]
        assert one_day[-1]["kind"] == "bedtime"

    def test_adjustment_persists(self, client, baby):
        response = client.put(f"/babies/{BABY}/adjustment", json={"minutes": 30})
        assert response.status_code == 200
        assert response.json()["profile"]["wake_window_adjustment_min"] == 30

        blocks = client.get(f"/babies/{BABY}/schedule").json()["blocks"]
        first_nap = next(b for b in blocks if b["kind"] == "nap")
        assert first_nap["start"].startswith("2024-07-01T14:30:00")

    def test_tips_route(self, client, baby):
        for day in (28, 29, 30):
            client.post(f"/babies/{BABY}/sessions", json={
                "start": f"2024-06-{day}T10:00:00Z",
                "end": f"2024-06-{day}T10:15:00Z",
            })
        tips = client.get(f"/babies/{BABY}/tips").json()["tips"]
        assert [t["type"] for t in tips] == ["shortNapStreak"]

    def test_notifications_route(self, client, baby):
        entries = client.get(f"/babies/{BABY}/notifications").json()["notifications"]
        assert entries
        assert all(e["status"] == "scheduled" for e in entries)
        assert entries[0]["title"] == "Wind Down Time"

    def test_reset(self, client, baby):
        client.post(f"/babies/{BABY}/sessions", json={
            "start": "2024-07-01T09:00:00Z",
            "end": "2024-07-01T10:00:00Z",
        })
        response = client.post(f"/babies/{BABY}/reset")
        assert response.status_code == 200
        assert response.json()["learner"]["confidence"] == 0.1
        assert client.get(f"/babies/{BABY}/sessions").json()["sessions"] == []


class TestStorageFailures:
    def test_storage_failure_is_503(self, clock, ids):
        coordinator = SleepCoordinator(BrokenStore(), clock=clock, new_id=ids)
        app.dependency_overrides[get_coordinator] = lambda: coordinator
        try:
            client = TestClient(app)
            response = client.put(f"/babies/{BABY}/profile", json={"name": "Ada", "birth_date": "2024-01-01"})
            assert response.status_code == 503
        finally:
            app.dependency_overrides.clear()
