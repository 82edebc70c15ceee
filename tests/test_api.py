"""
End-to-end tests for the HTTP API and the /orderHub WebSocket, using
FastAPI's TestClient against in-memory backends.
"""

import json

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client(memory_backends):
    with TestClient(app) as test_client:
        yield test_client


def invoke(target, *arguments):
    return {"type": "invocation", "target": target, "arguments": list(arguments)}


def orders_in(frame):
    assert frame["target"] == "ReceiveOrders"
    return json.loads(frame["arguments"][0])


class TestRootAndHealth:
    def test_read_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["hub"] == "/orderHub"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "operational"
        assert data["order_store"] == "healthy"
        assert data["receipt_archive"] == "healthy"
        assert data["backplane"] == "healthy"
        assert data["connections"] == 0


class TestOrderEndpoints:
    def test_create_and_list(self, client):
        response = client.post(
            "/api/orders",
            json={"title": "Burger", "description": "No onions", "quantity": 2},
        )
        assert response.status_code == 200
        created = response.json()
        assert created["status"] == "CREATED"
        assert created["title"] == "Burger"

        listing = client.get("/api/orders").json()
        assert listing["total"] == 1
        assert listing["orders"] == [created]

        assert client.get(f"/api/orders/{created['id']}").json() == created

    def test_complete_then_conflict(self, client):
        created = client.post("/api/orders", json={"title": "Burger", "quantity": 1}).json()

        first = client.post(f"/api/orders/{created['id']}/complete")
        assert first.status_code == 200
        assert first.json()["status"] == "COMPLETED"

        second = client.post(f"/api/orders/{created['id']}/complete")
        assert second.status_code == 409
        assert "exists already" in second.json()["detail"]

    def test_complete_unknown_order_is_404(self, client):
        response = client.post("/api/orders/unknown-id/complete")
        assert response.status_code == 404
        assert client.get("/api/orders").json()["total"] == 0

    def test_get_unknown_order_is_404(self, client):
        assert client.get("/api/orders/unknown-id").status_code == 404


class TestOrderHubSocket:
    def test_create_order_reaches_every_client(self, client):
        with client.websocket_connect("/orderHub") as alice, \
                client.websocket_connect("/orderHub") as bob:
            alice.send_json(invoke("CreateOrder", "Burger", "No onions", 2))

            for socket in (alice, bob):
                (order,) = orders_in(socket.receive_json())
                assert order["title"] == "Burger"
                assert order["quantity"] == 2
                assert order["status"] == "CREATED"

    def test_complete_order_and_second_complete_error(self, client):
        with client.websocket_connect("/orderHub") as alice, \
                client.websocket_connect("/orderHub") as bob:
            alice.send_json(invoke("CreateOrder", "Burger", "No onions", 2))
            (order,) = orders_in(alice.receive_json())
            bob.receive_json()

            bob.send_json(invoke("CompleteOrder", order["id"]))
            for socket in (alice, bob):
                (completed,) = orders_in(socket.receive_json())
                assert completed["status"] == "COMPLETED"

            bob.send_json(invoke("CompleteOrder", order["id"]))
            error = bob.receive_json()
            assert error["target"] == "Error"
            assert error["arguments"] == [f"The file {order['id']}.txt exists already."]

            # The next frame alice sees comes from this OnLoad, not the failed call
            alice.send_json(invoke("OnLoad"))
            (snapshot,) = orders_in(alice.receive_json())
            assert snapshot["status"] == "COMPLETED"
            orders_in(bob.receive_json())

    def test_unknown_order_error_goes_to_caller(self, client):
        with client.websocket_connect("/orderHub") as alice:
            alice.send_json(invoke("CompleteOrder", "unknown-id"))
            frame = alice.receive_json()
            assert frame["target"] == "Error"
            assert "unknown-id" in frame["arguments"][0]

    def test_http_mutation_broadcasts_to_socket_clients(self, client):
        with client.websocket_connect("/orderHub") as alice:
            created = client.post("/api/orders", json={"title": "Fries", "quantity": 3}).json()

            (order,) = orders_in(alice.receive_json())
            assert order == created

    def test_malformed_frame_keeps_connection_open(self, client):
        with client.websocket_connect("/orderHub") as alice:
            alice.send_text("not json")
            assert alice.receive_json()["target"] == "Error"

            alice.send_bytes(b"\xff\xfe")
            assert alice.receive_json()["target"] == "Error"

            alice.send_bytes(json.dumps(invoke("OnLoad")).encode("utf-8"))
            assert orders_in(alice.receive_json()) == []

            alice.send_json(invoke("OnLoad"))
            assert orders_in(alice.receive_json()) == []


def test_legacy_complete_creates_missing_order(monkeypatch, memory_backends):
    monkeypatch.setenv("STRICT_COMPLETE", "false")

    with TestClient(app) as client:
        with client.websocket_connect("/orderHub") as alice:
            alice.send_json(invoke("CompleteOrder", "unknown-id"))
            (order,) = orders_in(alice.receive_json())

    assert order == {
        "id": "unknown-id",
        "title": None,
        "description": None,
        "quantity": 0,
        "status": "CREATED",
    }
