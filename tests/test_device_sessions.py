"""
Tests for device sessions.
"""

import pytest
from sqlmodel import select

from foodnfun import crud
from foodnfun.errors import ReferentialViolation
from foodnfun.models import DeviceSession


class TestRegisterDeviceSession:

    def test_first_registration_creates_row(self, client, table):
        response = client.post("/device-sessions", json={"table_id": 1, "device_id": "D1"})

        assert response.status_code == 201
        body = response.json()
        assert body["table_id"] == 1
        assert body["device_id"] == "D1"

    def test_repeat_registration_is_a_noop_success(self, client, session, table):
        first = client.post("/device-sessions", json={"table_id": 1, "device_id": "D1"})
        second = client.post("/device-sessions", json={"table_id": 1, "device_id": "D1"})

        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        assert len(session.exec(select(DeviceSession)).all()) == 1

    def test_same_device_at_another_table_is_a_new_session(self, session, table, other_table):
        first, created_first = crud.register_device_session(session, 1, "D1")
        second, created_second = crud.register_device_session(session, 2, "D1")

        assert created_first and created_second
        assert first.id != second.id

    def test_unknown_table_is_rejected(self, client):
        response = client.post("/device-sessions", json={"table_id": 42, "device_id": "D1"})

        assert response.status_code == 409

    def test_unknown_table_raises_referential_violation(self, session):
        with pytest.raises(ReferentialViolation):
            crud.register_device_session(session, 42, "D1")

    def test_empty_device_id_is_rejected(self, client, table):
        response = client.post("/device-sessions", json={"table_id": 1, "device_id": ""})

        assert response.status_code == 422

    def test_only_insert_is_published(self, session, events, table):
        events.drain()

        crud.register_device_session(session, 1, "D1")
        crud.register_device_session(session, 1, "D1")

        published = events.drain()
        assert [(e["table"], e["type"]) for e in published] == [("device_sessions", "INSERT")]


class TestListAndDelete:

    def test_list_filters_by_table_and_device(self, client, session, table, other_table):
        crud.register_device_session(session, 1, "D1")
        crud.register_device_session(session, 1, "D2")
        crud.register_device_session(session, 2, "D1")

        at_one = client.get("/device-sessions", params={"table_id": 1}).json()
        d1 = client.get("/device-sessions", params={"device_id": "D1"}).json()

        assert [s["device_id"] for s in at_one] == ["D1", "D2"]
        assert sorted(s["table_id"] for s in d1) == [1, 2]

    def test_customers_can_end_their_session(self, client, session, table):
        device_session, _ = crud.register_device_session(session, 1, "D1")

        response = client.delete(f"/device-sessions/{device_session.id}")

        assert response.status_code == 204
        assert client.get("/device-sessions").json() == []

    def test_deleting_missing_session_is_404(self, client):
        response = client.delete("/device-sessions/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
