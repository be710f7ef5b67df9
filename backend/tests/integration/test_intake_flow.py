"""
Intake Flow Integration Tests.

Drives the HTTP API end to end:
1. Upload a document for an object
2. Deliver (or simulate) the parser callback
3. Read the reconciliation state
4. Patch, reset and rebase overrides
5. Edit a run's draft

Uses an in-memory database and a local blob store (see conftest.py).
"""
import inspect
import json
from pathlib import Path

from backoffice.api.intake import upload_intake
from backoffice.api.webhooks import parser_webhook
from backoffice.models.intake import IntakeJob, IntakeResult, IntakeRun
from backoffice.models.webhook_event import IntakeWebhookEvent
from backoffice.services.signing import sign_payload

PDF_FILE = ("expose.pdf", b"%PDF-1.4\n%test\n", "application/pdf")


def _upload(client, object_id="P1", simulate=None):
    params = {"objectId": object_id}
    if simulate:
        params["simulate"] = simulate
    return client.post("/intake/upload", params=params, files={"file": PDF_FILE})


def _job_for(db_session, intake_id) -> IntakeJob:
    db_session.expire_all()
    return db_session.query(IntakeJob).filter(IntakeJob.intake_id == intake_id).one()


def _post_webhook(client, settings, event, signature=None):
    raw = json.dumps(event).encode("utf-8")
    headers = {"content-type": "application/json"}
    headers["x-signature"] = signature or sign_payload(raw, settings.PARSER_WEBHOOK_SECRET)
    return client.post("/webhooks/parser", content=raw, headers=headers)


class TestUpload:
    """Tests for POST /intake/upload."""

    def test_upload_creates_processing_run(self, client, db_session, settings):
        response = _upload(client)

        assert response.status_code == 200
        run = response.json()["run"]
        assert run["filename"] == "expose.pdf"
        assert run["status"] == "processing"
        assert "uploadedAt" in run

        job = _job_for(db_session, run["id"])
        assert job.status == "processing"
        assert job.webhook_target == "http://testserver/webhooks/parser"
        stored = Path(settings.STORAGE_LOCAL_ROOT) / "P1" / run["id"] / "expose.pdf"
        assert stored.read_bytes() == PDF_FILE[1]

    def test_configured_webhook_url(self, client_factory, settings_factory, db_session):
        client = client_factory(settings_factory(PARSER_WEBHOOK_URL="https://hooks.example.com/parser"))
        run = _upload(client).json()["run"]
        assert _job_for(db_session, run["id"]).webhook_target == "https://hooks.example.com/parser"

    def test_missing_object_id(self, client):
        response = client.post("/intake/upload", files={"file": PDF_FILE})
        assert response.status_code == 400
        assert response.json() == {"error": "objectId missing"}

    def test_missing_file(self, client):
        response = client.post("/intake/upload", params={"objectId": "P1"})
        assert response.status_code == 400
        assert response.json() == {"error": "file missing"}

    def test_empty_file(self, client):
        response = client.post(
            "/intake/upload",
            params={"objectId": "P1"},
            files={"file": ("expose.pdf", b"", "application/pdf")},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "file is empty"}

    def test_simulate_ok(self, client):
        run = _upload(client, simulate="ok").json()["run"]
        assert run["status"] == "succeeded"

        state = client.get("/objects/P1/intake-state").json()
        assert state["activeIntakeRunId"] == run["id"]
        assert state["raw"]["address"] == "Musterstraße 12"

    def test_simulate_fail(self, client, db_session):
        run = _upload(client, simulate="fail").json()["run"]
        assert run["status"] == "failed"
        db_session.expire_all()
        assert db_session.get(IntakeRun, run["id"]).error_text.startswith("Simulated failure")

    def test_simulate_ignored_outside_dev_mode(self, client_factory, settings_factory):
        client = client_factory(settings_factory(DEV_ROUTES_ENABLED=False))
        run = _upload(client, simulate="ok").json()["run"]
        assert run["status"] == "processing"

    def test_autosimulate_setting(self, client_factory, settings_factory):
        client = client_factory(settings_factory(INTAKE_DEV_AUTOSIMULATE="ok", DEV_ROUTES_ENABLED=False))
        run = _upload(client).json()["run"]
        assert run["status"] == "succeeded"


class TestRunsAndFiles:
    """Tests for run listing and file URLs."""

    def test_runs_newest_first(self, client):
        first = _upload(client).json()["run"]
        second = _upload(client).json()["run"]
        _upload(client, object_id="P2")

        runs = client.get("/intake/runs", params={"objectId": "P1"}).json()["runs"]
        assert [r["id"] for r in runs] == [second["id"], first["id"]]

    def test_runs_missing_object_id(self, client):
        response = client.get("/intake/runs")
        assert response.status_code == 400
        assert "error" in response.json()

    def test_file_url(self, client):
        run = _upload(client).json()["run"]
        response = client.get(f"/intake/runs/{run['id']}/file")
        assert response.status_code == 200
        assert response.json()["url"].endswith("expose.pdf")

    def test_file_url_unknown_run(self, client):
        response = client.get("/intake/runs/missing/file")
        assert response.status_code == 404
        assert response.json() == {"error": "intake run not found"}


class TestWebhook:
    """Tests for POST /webhooks/parser."""

    def test_success_then_duplicate(self, client, db_session, settings):
        run = _upload(client).json()["run"]
        job = _job_for(db_session, run["id"])
        event = {
            "job_id": job.id,
            "intake_id": run["id"],
            "status": "succeeded",
            "data": {"address": "Main St 1", "area": 50},
            "duration_ms": 900,
            "parser_version": "1.0.0",
        }

        first = _post_webhook(client, settings, event)
        assert first.status_code == 200
        assert first.json() == {"ok": True}
        db_session.expire_all()
        finished_at = db_session.get(IntakeRun, run["id"]).finished_at

        second = _post_webhook(client, settings, {**event, "data": {"area": 1}})
        assert second.status_code == 200
        assert second.json() == {"ok": True, "idempotent": True}

        db_session.expire_all()
        assert db_session.get(IntakeRun, run["id"]).finished_at == finished_at
        results = db_session.query(IntakeResult).filter(IntakeResult.intake_id == run["id"]).all()
        assert len(results) == 1
        assert results[0].data == {"address": "Main St 1", "area": 50}

    def test_unknown_job(self, client, db_session, settings):
        response = _post_webhook(client, settings, {"job_id": "nope", "status": "succeeded", "data": {}})

        assert response.status_code == 404
        assert response.json() == {"error": "job not found"}
        db_session.expire_all()
        assert db_session.query(IntakeRun).count() == 0
        assert db_session.query(IntakeJob).count() == 0
        assert db_session.query(IntakeResult).count() == 0
        assert db_session.query(IntakeWebhookEvent).filter(
            IntakeWebhookEvent.job_id == "nope"
        ).count() == 1

    def test_missing_job_id(self, client, settings):
        response = _post_webhook(client, settings, {"status": "succeeded"})
        assert response.status_code == 400
        assert response.json() == {"error": "job_id missing"}

    def test_malformed_body(self, client):
        response = client.post("/webhooks/parser", content=b"{oops", headers={"content-type": "application/json"})
        assert response.status_code == 400

    def test_enforced_signature(self, client_factory, settings_factory, db_session):
        settings = settings_factory(WEBHOOK_ENFORCE_SIGNATURE=True)
        client = client_factory(settings)
        run = _upload(client).json()["run"]
        job = _job_for(db_session, run["id"])

        response = _post_webhook(
            client, settings, {"job_id": job.id, "status": "failed"}, signature="sha256=00"
        )

        assert response.status_code == 401
        assert response.json() == {"error": "invalid signature"}
        db_session.expire_all()
        assert db_session.get(IntakeRun, run["id"]).status == "processing"


class TestReconciliationFlow:
    """Upload, extraction, override, reset and source switching over HTTP."""

    def test_end_to_end(self, client, db_session):
        run = _upload(client).json()["run"]
        job = _job_for(db_session, run["id"])

        simulated = client.post("/intake/simulate", json={
            "jobId": job.id,
            "ok": True,
            "data": {"address": "Main St 1", "area": 50},
        })
        assert simulated.json() == {"ok": True}

        state = client.get("/objects/P1/intake-state").json()
        assert state["usedSource"] == "run"
        assert state["activeIntakeRunId"] == run["id"]
        assert state["raw"]["area"] == 50

        patched = client.post("/objects/P1/overrides", json={"patch": {"area": 55}})
        assert patched.json()["ok"] is True
        state = client.get("/objects/P1/intake-state").json()
        assert state["merged"]["area"] == 55
        assert state["overrides"]["area"] == 55
        assert state["raw"]["area"] == 50
        assert state["provenance"]["area"] == "override"

        reset = client.delete("/objects/P1/overrides", params={"keys": "area"})
        assert reset.json()["merged"]["area"] == 50
        state = client.get("/objects/P1/intake-state").json()
        assert state["merged"]["area"] == 50
        assert "area" not in state["overrides"]

    def test_no_runs_fallback(self, client):
        state = client.get("/objects/EMPTY/intake-state").json()
        assert state["usedSource"] == "fallback"
        assert state["activeIntakeRunId"] is None
        assert state["runs"] == []

    def test_reset_all(self, client, make_succeeded_run):
        make_succeeded_run("P1", {"area": 50})
        client.post("/objects/P1/overrides", json={"patch": {"area": 55, "rooms": 2}})

        response = client.delete("/objects/P1/overrides")

        assert response.json() == {"ok": True, "overrides": {}, "merged": {"area": 50}}

    def test_huge_integer_patch_ignored(self, client, make_succeeded_run):
        make_succeeded_run("P1", {"area": 50})

        response = client.post("/objects/P1/overrides", json={"patch": {"area": 10**400, "rooms": 3}})

        assert response.status_code == 200
        assert response.json()["overrides"] == {"rooms": 3}
        assert response.json()["merged"] == {"area": 50, "rooms": 3}

    def test_invalid_patch(self, client):
        response = client.post("/objects/P1/overrides", json={"patch": ["area", 5]})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_source_switch_prunes(self, client, make_succeeded_run):
        run_a = make_succeeded_run("P1", {"area": 80})
        run_b = make_succeeded_run("P1", {"area": 100})
        client.post("/objects/P1/intake-source", json={"intakeId": run_a.id})
        client.post("/objects/P1/overrides", json={"patch": {"area": 100}})

        response = client.post("/objects/P1/intake-source", json={"intakeId": run_b.id})

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["activeIntakeId"] == run_b.id
        assert body["overrides"] == {}
        assert body["merged"]["area"] == 100

    def test_source_switch_errors(self, client):
        missing_id = client.post("/objects/P1/intake-source", json={})
        assert missing_id.status_code == 400
        assert missing_id.json() == {"error": "intakeId missing"}

        unknown = client.post("/objects/P1/intake-source", json={"intakeId": "nope"})
        assert unknown.status_code == 404


class TestEditor:
    """Tests for the editor draft endpoints."""

    def test_draft_round_trip(self, client, make_succeeded_run):
        run = make_succeeded_run("P1", {"address": "Main St 1", "area": 50})

        saved = client.post("/intake/editor/save", json={"intakeId": run.id, "patch": {"area": "52"}})
        assert saved.json()["ok"] is True
        assert saved.json()["data"] == {"area": 52}

        view = client.get("/intake/editor", params={"intakeId": run.id}).json()
        assert view["raw"] == {"address": "Main St 1", "area": 50}
        assert view["draft"] == {"area": 52}
        assert view["merged"] == {"address": "Main St 1", "area": 52}

        state = client.get("/objects/P1/intake-state").json()
        assert state["merged"]["area"] == 50

    def test_editor_errors(self, client):
        assert client.get("/intake/editor").status_code == 400
        assert client.get("/intake/editor", params={"intakeId": "nope"}).status_code == 404


class TestDevRoutes:
    """Tests for development-only routes."""

    def test_create_dummy(self, client):
        response = client.post("/intake/dev/create-dummy", json={"objectId": "P9", "variant": "house"})
        body = response.json()
        assert body["ok"] is True
        assert body["raw"]["rooms"] == 5

        state = client.get("/objects/P9/intake-state").json()
        assert state["activeIntakeRunId"] == body["intakeId"]

    def test_simulate_unknown_job(self, client):
        response = client.post("/intake/simulate", json={"jobId": "nope"})
        assert response.status_code == 404

    def test_hidden_outside_dev_mode(self, client_factory, settings_factory):
        client = client_factory(settings_factory(DEV_ROUTES_ENABLED=False))
        assert client.post("/intake/simulate", json={"jobId": "x"}).status_code == 404
        assert client.post("/intake/dev/create-dummy", json={"objectId": "P1"}).status_code == 404


class TestRouteHandlers:
    """Handlers doing blocking storage and database work run in the threadpool."""

    def test_blocking_handlers_are_sync(self):
        assert not inspect.iscoroutinefunction(upload_intake)
        assert not inspect.iscoroutinefunction(parser_webhook)


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
