import json
import time

import pytest
from fastapi.testclient import TestClient

import fpl_meter_status.config as config
from fpl_meter_status.api.app import create_app
from fpl_meter_status.errors import SessionError
from fpl_meter_status.jobs.lookup import LookupDriver
from fpl_meter_status.jobs.scheduler import BatchScheduler
from fpl_meter_status.jobs.store import JobStore

from conftest import TIN, ZERO_TIMING, FakeSessions, scripted_factory

SCRIPT = {
    "12 Palm Ave, Miami, FL 33101": ("Active", "Occupied"),
    "40 Bay Rd, Miami, FL 33139": (config.NOT_FOUND, config.NOT_FOUND),
    "1 Broken Rd, Miami, FL": SessionError("Page closed while opening the portal"),
}

AUTH = {"username": "manager@example.com", "password": "hunter2", "tin": TIN}


@pytest.fixture
def client(tmp_path):
    store = JobStore(f"sqlite:///{tmp_path / 'jobs.sqlite'}")
    factory = scripted_factory(SCRIPT)
    scheduler = BatchScheduler(
        store,
        session_opener=FakeSessions(),
        machine_factory=factory,
        timing=ZERO_TIMING,
        inter_row_delay_ms=0,
    )
    lookup = LookupDriver(session_opener=FakeSessions(), machine_factory=factory, timing=ZERO_TIMING)
    with TestClient(create_app(store=store, scheduler=scheduler, lookup=lookup)) as test_client:
        yield test_client


def wait_for_job(client, job_id):
    for _ in range(500):
        body = client.get(f"/api/batch/{job_id}").json()
        if body["job"]["status"] != "running":
            return body
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} never finished")


def test_health(client):
    assert client.get("/health").json()["ok"] is True


def test_single_lookup(client):
    response = client.post("/api/lookup", json={**AUTH, "address": "12 Palm Ave, Miami, FL 33101"})

    assert response.status_code == 200
    assert response.json() == {
        "address": "12 Palm Ave, Miami, FL 33101",
        "unit": None,
        "meter_status": "Active",
        "property_status": "Occupied",
    }


def test_single_lookup_missing_fields_is_400(client):
    response = client.post("/api/lookup", json={"username": "u", "password": "p", "address": "1 Main St"})

    assert response.status_code == 400
    assert "tin" in response.json()["detail"]


def test_single_lookup_automation_failure_is_500(client):
    response = client.post("/api/lookup", json={**AUTH, "address": "1 Broken Rd, Miami, FL"})

    assert response.status_code == 500
    assert "Page closed" in response.json()["detail"]


def test_batch_from_csv_text(client):
    csv_text = (
        "ADDRESS_LI,CITY,STATE,ZIP\n"
        "12 Palm Ave,Miami,FL,33101\n"
        "40 Bay Rd,Miami,FL,33139\n"
    )

    response = client.post("/api/batch", json={**AUTH, "csv": csv_text})

    assert response.status_code == 202
    submitted = response.json()
    assert submitted["total"] == 2

    body = wait_for_job(client, submitted["job_id"])
    assert body["job"]["status"] == "completed"
    assert body["job"]["processed"] == 2
    first, second = body["results"]
    assert first["meter_status"] == "Active"
    assert second["error"] == config.NO_STATUS_ERROR
    assert second["meter_status"] is None

    results = client.get(f"/api/jobs/{submitted['job_id']}/results").json()
    assert [r["row_index"] for r in results] == [0, 1]


def test_batch_over_limit_is_400_and_creates_no_job(client):
    rows = [{"address": f"{n} Palm Ave"} for n in range(config.MAX_BATCH_SIZE + 1)]

    response = client.post("/api/batch", json={**AUTH, "rows": rows})

    assert response.status_code == 400
    assert "Maximum" in response.json()["detail"]
    assert client.get("/api/jobs").json() == []


def test_batch_with_both_rows_and_csv_is_400(client):
    response = client.post("/api/batch", json={**AUTH, "rows": [], "csv": "ADDRESS_LI\n"})

    assert response.status_code == 400


def test_unknown_job_is_404(client):
    assert client.get("/api/batch/nope").status_code == 404
    assert client.get("/api/jobs/nope/results").status_code == 404
    assert client.get("/api/jobs/nope/events").status_code == 404


def test_jobs_listing_and_search(client):
    submitted = client.post(
        "/api/batch", json={**AUTH, "rows": [{"address": "12 Palm Ave, Miami, FL 33101"}]}
    ).json()
    wait_for_job(client, submitted["job_id"])

    assert [job["job_id"] for job in client.get("/api/jobs").json()] == [submitted["job_id"]]

    found = client.get(
        "/api/jobs/search",
        params={"start_date": "2000-01-01T00:00:00Z", "end_date": "2100-01-01T00:00:00Z"},
    ).json()
    assert [job["job_id"] for job in found] == [submitted["job_id"]]

    captured = client.get("/api/jobs/search", params={"by": "captured"}).json()
    assert [job["job_id"] for job in captured] == [submitted["job_id"]]

    assert client.get("/api/jobs/search", params={"by": "nonsense"}).status_code == 422


def test_events_for_finished_job_close_after_terminal_event(client):
    submitted = client.post(
        "/api/batch", json={**AUTH, "rows": [{"address": "12 Palm Ave, Miami, FL 33101"}]}
    ).json()
    wait_for_job(client, submitted["job_id"])

    response = client.get(f"/api/jobs/{submitted['job_id']}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    payload = json.loads(response.text.strip()[len("data: "):])
    assert payload["type"] == "job_completed"
    assert payload["processed"] == 1
