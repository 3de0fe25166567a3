"""Integration tests for the REST API adapter."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from gridql import __version__
from gridql.adapters.inbound.rest_api import create_app
from gridql.application import GridEngine


@pytest.mark.integration
class TestRestApi:
    """Tests for the HTTP endpoints."""

    @pytest.fixture
    def client(self, engine: GridEngine) -> TestClient:
        return TestClient(create_app(engine))

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}

    def test_query(self, client: TestClient, orders: dict[str, Any]) -> None:
        response = client.post(
            "/query",
            json={"query": "SELECT id, amount FROM orders WHERE status = 'paid'", "tables": [orders]},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["message"] == "OK"
        assert body["columns"] == ["id", "amount"]
        assert body["rows"] == [{"id": 1, "amount": 100}, {"id": 3, "amount": 75}]
        assert body["error"] is None

    def test_query_with_function(
        self, client: TestClient, orders: dict[str, Any], double_fn: dict[str, Any]
    ) -> None:
        response = client.post(
            "/query",
            json={
                "query": "SELECT FN.double(amount) AS twice FROM orders LIMIT 1",
                "tables": [orders],
                "functions": [double_fn],
            },
        )

        assert response.json()["rows"] == [{"twice": 200}]

    def test_query_error_is_typed(self, client: TestClient, orders: dict[str, Any]) -> None:
        response = client.post("/query", json={"query": "SELECT * FROM nope", "tables": [orders]})

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert body["error"]["kind"] == "unknown_table"
        assert body["error"]["name"] == "nope"
        assert body["error"]["available"] == ["orders"]

    def test_missing_query_is_rejected(self, client: TestClient) -> None:
        response = client.post("/query", json={"tables": []})

        assert response.status_code == 422

    def test_function(self, client: TestClient, double_fn: dict[str, Any]) -> None:
        response = client.post("/function", json={"function": double_fn, "args": [21]})

        body = response.json()
        assert body["success"] is True
        assert body["value"] == 42
        assert body["console"] == []

    def test_function_table_argument(self, client: TestClient, orders: dict[str, Any]) -> None:
        total = {
            "name": "total",
            "params": [{"name": "t", "type": "table"}],
            "body": "console.log(t.name); return sum(t.rows, 'amount')",
        }

        response = client.post(
            "/function", json={"function": total, "args": ["orders"], "tables": [orders]}
        )

        body = response.json()
        assert body["value"] == 425
        assert body["console"] == ["orders"]

    def test_function_not_a_number_becomes_null(self, client: TestClient) -> None:
        response = client.post(
            "/function", json={"function": {"name": "nan", "body": "return 0 / 0"}}
        )

        assert response.status_code == 200
        assert response.json()["value"] is None

    def test_function_error(self, client: TestClient) -> None:
        response = client.post(
            "/function", json={"function": {"name": "broken", "body": "return ("}}
        )

        body = response.json()
        assert body["success"] is False
        assert body["error"]["kind"] == "script_syntax_error"

    def test_evaluate(self, client: TestClient, orders: dict[str, Any]) -> None:
        response = client.post(
            "/evaluate",
            json={"expression": "=sum(orders.rows, 'amount')", "tables": [orders]},
        )

        assert response.json()["value"] == 425

    def test_evaluate_unknown_function(self, client: TestClient) -> None:
        response = client.post("/evaluate", json={"expression": "=nope(1)"})

        body = response.json()
        assert body["success"] is False
        assert body["error"]["kind"] == "unknown_function"
        assert "sum" in body["error"]["available"]
