"""HTTP API tests (FastAPI TestClient)."""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from conftest import filter_step, pipeline_definition
from etlflow.main import create_app

API = "/api/v1"


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as client:
        yield client


def wait_until_done(client: TestClient, execution_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"{API}/executions/{execution_id}").json()
        if body["status"] != "running" or time.monotonic() > deadline:
            return body
        time.sleep(0.01)


def create(client: TestClient, **overrides) -> dict:
    response = client.post(f"{API}/pipelines", json=pipeline_definition(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


class TestPipelineRoutes:
    def test_health_check(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_crud(self, client):
        pipeline = create(client)
        assert pipeline["version"] == "1.0.0"

        assert client.get(f"{API}/pipelines/{pipeline['id']}").json()["name"] == "numbers-copy"
        assert [p["id"] for p in client.get(f"{API}/pipelines").json()] == [pipeline["id"]]

        response = client.patch(
            f"{API}/pipelines/{pipeline['id']}",
            json={"transformations": [filter_step("value", "gte", 150)]},
        )
        assert response.status_code == 200
        assert response.json()["version"] == "1.0.1"

        assert client.delete(f"{API}/pipelines/{pipeline['id']}").status_code == 204
        assert client.get(f"{API}/pipelines/{pipeline['id']}").status_code == 404
        assert client.delete(f"{API}/pipelines/{pipeline['id']}").status_code == 404

    def test_source_schema_uses_schema_key(self, client):
        pipeline = create(client, source={
            "type": "data_source",
            "config": {"dataSourceId": "numbers"},
            "schema": {"columns": [{"name": "value", "nullable": False}]},
        })
        assert pipeline["source"]["schema"]["columns"][0]["name"] == "value"

    def test_invalid_definition_is_422(self, client):
        response = client.post(f"{API}/pipelines", json={"name": "x"})
        assert response.status_code == 422

    def test_protected_patch_is_422(self, client):
        pipeline = create(client)
        response = client.patch(f"{API}/pipelines/{pipeline['id']}", json={"version": "9.0.0"})
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_versions_and_rollback(self, client):
        pipeline = create(client)
        client.patch(f"{API}/pipelines/{pipeline['id']}", json={"transformations": []})

        versions = client.get(f"{API}/pipelines/{pipeline['id']}/versions").json()
        assert versions == {"pipeline_id": pipeline["id"], "version": "1.0.1", "history": ["1.0.0", "1.0.1"]}

        rolled = client.post(f"{API}/pipelines/{pipeline['id']}/rollback", json={"version": "1.0.0"})
        assert rolled.status_code == 200
        assert rolled.json()["version"] == "1.0.0"

        assert client.post(f"{API}/pipelines/{pipeline['id']}/rollback", json={"version": "2.0.0"}).status_code == 422


class TestExecutionRoutes:
    def test_execute_and_poll(self, client):
        pipeline = create(client, transformations=[filter_step("value", "gte", 150)])

        response = client.post(f"{API}/pipelines/{pipeline['id']}/execute", json={"dry_run": False})
        assert response.status_code == 202
        execution_id = response.json()["execution_id"]

        execution = wait_until_done(client, execution_id)
        assert execution["status"] == "completed"
        assert execution["records_processed"] == 2

        runs = client.get(f"{API}/pipelines/{pipeline['id']}/executions").json()
        assert [r["id"] for r in runs] == [execution_id]
        assert runs[0]["error_count"] == 0

        health = client.get(f"{API}/pipelines/{pipeline['id']}/health").json()
        assert health["status"] == "healthy"
        assert health["score"] == 100

    def test_execute_without_body(self, client):
        pipeline = create(client)
        response = client.post(f"{API}/pipelines/{pipeline['id']}/execute")
        assert response.status_code == 202
        assert wait_until_done(client, response.json()["execution_id"])["status"] == "completed"

    def test_execute_unknown_pipeline_is_404(self, client):
        assert client.post(f"{API}/pipelines/nope/execute").status_code == 404

    def test_conflict_is_409(self, client, services):
        pipeline = create(client)
        # Hold the single-flight marker as if a run were in progress
        services.engine._claim(pipeline["id"], "held")
        try:
            response = client.post(f"{API}/pipelines/{pipeline['id']}/execute")
            assert response.status_code == 409
            assert response.json()["details"]["execution_id"] == "held"
        finally:
            services.engine._release(pipeline["id"], "held")

    def test_failed_execution_details(self, client):
        pipeline = create(client, transformations=[filter_step("value", "between", [1, 2])])
        execution_id = client.post(f"{API}/pipelines/{pipeline['id']}/execute").json()["execution_id"]

        execution = wait_until_done(client, execution_id)
        assert execution["status"] == "failed"
        assert execution["errors"][0]["kind"] == "transformation"

    def test_cancel_unknown_execution_is_404(self, client):
        assert client.post(f"{API}/executions/nope/cancel").status_code == 404

    def test_cancel_finished_execution(self, client):
        pipeline = create(client)
        execution_id = client.post(f"{API}/pipelines/{pipeline['id']}/execute").json()["execution_id"]
        wait_until_done(client, execution_id)

        body = client.post(f"{API}/executions/{execution_id}/cancel").json()
        assert body == {"execution_id": execution_id, "cancelled": False}

    def test_health_of_unknown_pipeline_is_404(self, client):
        assert client.get(f"{API}/pipelines/nope/health").status_code == 404


class TestTemplateRoutes:
    def test_list_and_get(self, client):
        ids = {t["id"] for t in client.get(f"{API}/templates").json()}
        assert ids == {"simple_copy", "data_aggregation"}
        assert client.get(f"{API}/templates/simple_copy").json()["category"] == "basic"
        assert client.get(f"{API}/templates/nope").status_code == 404

    def test_instantiate(self, client):
        response = client.post(
            f"{API}/templates/simple_copy/instantiate",
            json={"parameters": {"sourceDataSourceId": "numbers", "destinationDataSourceId": "copy"}},
        )
        assert response.status_code == 201
        assert response.json()["status"] == "draft"

    def test_missing_parameter_is_422(self, client):
        response = client.post(
            f"{API}/templates/simple_copy/instantiate",
            json={"parameters": {"sourceDataSourceId": "numbers"}},
        )
        assert response.status_code == 422
        assert response.json()["details"]["parameter"] == "destinationDataSourceId"
        assert client.get(f"{API}/pipelines").json() == []
