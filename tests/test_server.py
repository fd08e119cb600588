"""Tests for the HTTP surface."""

import base64
import json

import pytest
from fastapi.testclient import TestClient

from conftest import make_recommendation
from reco_autopilot.models import RecommendationStatus
from reco_autopilot.server import create_app


def ci_body(payload):
    data = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
    return {"message": {"data": data}}


SUCCESS_PAYLOAD = {
    "status": "SUCCESS",
    "substitutions": {"COMMIT_SHA": "c1", "REPO_NAME": "infra"},
}


@pytest.fixture
def client(config, coordinator, reconciler):
    app = create_app(config, coordinator, reconciler)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestApplyEndpoint:

    def test_applied(self, client, source, commit_index):
        source.listed = [make_recommendation("r1")]
        source.add(*source.listed)

        response = client.post("/apply/vm", json={"repo": "infra", "projects": ["proj-1"]})

        assert response.status_code == 201
        assert response.content == b""
        assert ("infra", "c0ffee") in commit_index.records
        assert source.status_of("r1") == RecommendationStatus.CLAIMED

    def test_empty_listing_is_success(self, client, calls):
        response = client.post("/apply/IAM", json={"repo": "infra", "projects": ["proj-1"]})

        assert response.status_code == 201
        assert calls.operations() == ["list"]

    def test_unsupported_category(self, client, calls):
        response = client.post("/apply/disk", json={"repo": "infra", "projects": ["proj-1"]})

        assert response.status_code == 400
        assert response.text == "Unsupported recommendation category: disk"
        assert calls == []

    def test_collaborator_failure(self, client, source, version_control):
        source.listed = [make_recommendation("r1")]
        version_control.commit_error = RuntimeError("push rejected")

        response = client.post("/apply/vm", json={"repo": "infra", "projects": ["proj-1"]})

        assert response.status_code == 500
        assert "commit failed: push rejected" in response.text

    def test_claim_failure_reports_commit_for_resume(self, client, source):
        source.listed = [make_recommendation("r1")]
        source.add(*source.listed)
        source.fail_on = "set_status"

        response = client.post("/apply/vm", json={"repo": "infra", "projects": ["proj-1"]})

        assert response.status_code == 500
        assert "claim failed: set_status unavailable" in response.text
        assert "Step: claim" in response.text
        assert "Commit: c0ffee" in response.text

    @pytest.mark.parametrize("body", [
        {"repo": "infra"},
        {"repo": "infra", "projects": []},
        {"projects": ["proj-1"]},
        {"repo": "acme/infra", "projects": ["proj-1"]},
    ])
    def test_invalid_body(self, client, calls, body):
        response = client.post("/apply/vm", json=body)

        assert response.status_code == 422
        assert calls == []


class TestBuildNotificationEndpoint:

    def test_success_is_reconciled(self, client, source, commit_index):
        commit_index.add("infra", "c1", ["r1"])
        source.add(make_recommendation("r1", status=RecommendationStatus.CLAIMED))

        response = client.post("/ci", json=ci_body(SUCCESS_PAYLOAD))

        assert response.status_code == 201
        assert source.status_of("r1") == RecommendationStatus.SUCCEEDED

    def test_redelivery_is_still_created(self, client, source, commit_index):
        commit_index.add("infra", "c1", ["r1"])
        source.add(make_recommendation("r1", status=RecommendationStatus.CLAIMED))

        first = client.post("/ci", json=ci_body(SUCCESS_PAYLOAD))
        second = client.post("/ci", json=ci_body(SUCCESS_PAYLOAD))

        assert (first.status_code, second.status_code) == (201, 201)
        assert source.marks[("r1", RecommendationStatus.SUCCEEDED)] == 1

    def test_non_success_is_ignored(self, client, calls):
        response = client.post("/ci", json=ci_body({"status": "WORKING"}))

        assert response.status_code == 200
        assert calls == []

    def test_malformed_envelope(self, client):
        response = client.post("/ci", json={"message": {}})

        assert response.status_code == 400
        assert response.text.startswith("Malformed build event")

    def test_body_not_json(self, client):
        response = client.post("/ci", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_processing_failure(self, client, commit_index):
        commit_index.fail_for = "c1"

        response = client.post("/ci", json=ci_body(SUCCESS_PAYLOAD))

        assert response.status_code == 500
        assert "lookup failed" in response.text
