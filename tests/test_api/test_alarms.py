"""
Tests for Alarms API
=====================

Tests the alarm session lifecycle, decisions and alarm audio endpoints.
The session loops run on a fixed clock and are ticked by the requests.
"""

import pytest
from datetime import timedelta
from unittest.mock import patch
from fastapi import status
from fastapi.testclient import TestClient

from models import DoseStatus, Patient
from exceptions import PersistenceError


# ==================== FIXTURES ====================

@pytest.fixture
def due_doses(make_medication, fixed_now, dose_events):
    """Two pending doses inside the due window, 09:00 and 09:05"""
    medication = make_medication(event_times=[
        fixed_now - timedelta(minutes=30),
        fixed_now - timedelta(minutes=25),
    ])
    return dose_events(medication.id)


@pytest.fixture
def session_started(client: TestClient, auth_headers):
    response = client.post("/api/v1/alarms/session", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    return response.json()


# ==================== SESSION TESTS ====================

class TestAlarmSession:
    """Tests for login/logout of the delivery loop"""

    @pytest.mark.api
    def test_requires_subject(self, client: TestClient):
        response = client.post("/api/v1/alarms/session")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.api
    def test_start_session(self, client: TestClient, session_started, test_patient, alarm_sessions):
        assert session_started["subject_id"] == test_patient.id
        assert session_started["state"] == "idle"
        assert session_started["sound_banner_visible"] is True
        assert alarm_sessions.get(test_patient.id) is not None

    @pytest.mark.api
    def test_end_session(self, client: TestClient, auth_headers, session_started, test_patient, alarm_sessions):
        response = client.delete("/api/v1/alarms/session", headers=auth_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert alarm_sessions.get(test_patient.id) is None

    @pytest.mark.api
    def test_active_without_session(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/alarms/active", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND


# ==================== DELIVERY TESTS ====================

class TestAlarmDelivery:
    """Tests for the active alarm and decisions"""

    @pytest.mark.api
    def test_oldest_due_dose_is_active(self, client: TestClient, auth_headers, due_doses, session_started):
        response = client.get("/api/v1/alarms/active", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["state"] == "active"
        assert data["active_alarm"]["event_id"] == due_doses[0].id
        assert [q["event_id"] for q in data["queue"]] == [due_doses[1].id]

    @pytest.mark.api
    def test_decisions_in_order(self, client: TestClient, auth_headers, due_doses, session_started, dose_events, fixed_now):
        """Test the 09:05 dose is presented right after the 09:00 dose is answered"""
        client.get("/api/v1/alarms/active", headers=auth_headers)

        response = client.post(
            "/api/v1/alarms/decision",
            json={"event_id": due_doses[0].id, "outcome": "taken"},
            headers=auth_headers
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["active_alarm"]["event_id"] == due_doses[1].id

        response = client.post(
            "/api/v1/alarms/decision",
            json={"event_id": due_doses[1].id, "outcome": "missed"},
            headers=auth_headers
        )
        assert response.json()["state"] == "idle"

        first, second = dose_events(due_doses[0].medication_id)
        assert first.status == DoseStatus.TAKEN
        assert first.taken_at == fixed_now
        assert second.status == DoseStatus.MISSED
        assert second.taken_at is None

    @pytest.mark.api
    def test_decision_for_wrong_event(self, client: TestClient, auth_headers, due_doses, session_started):
        client.get("/api/v1/alarms/active", headers=auth_headers)

        response = client.post(
            "/api/v1/alarms/decision",
            json={"event_id": due_doses[1].id, "outcome": "taken"},
            headers=auth_headers
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    def test_invalid_outcome(self, client: TestClient, auth_headers, due_doses, session_started):
        response = client.post(
            "/api/v1/alarms/decision",
            json={"event_id": due_doses[0].id, "outcome": "snoozed"},
            headers=auth_headers
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_failed_save_keeps_alarm(self, client: TestClient, auth_headers, due_doses, session_started, store, dose_events):
        client.get("/api/v1/alarms/active", headers=auth_headers)

        with patch.object(store, "record_outcome", side_effect=PersistenceError("database is locked")):
            response = client.post(
                "/api/v1/alarms/decision",
                json={"event_id": due_doses[0].id, "outcome": "taken"},
                headers=auth_headers
            )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert dose_events(due_doses[0].medication_id)[0].status == DoseStatus.PENDING

        data = client.get("/api/v1/alarms/active", headers=auth_headers).json()
        assert data["active_alarm"]["event_id"] == due_doses[0].id
        assert data["active_alarm"]["last_error"] == "database is locked"

        response = client.post(
            "/api/v1/alarms/decision",
            json={"event_id": due_doses[0].id, "outcome": "taken"},
            headers=auth_headers
        )
        assert response.status_code == status.HTTP_200_OK
        assert dose_events(due_doses[0].medication_id)[0].status == DoseStatus.TAKEN

    @pytest.mark.api
    def test_stale_dose_not_alarmed(self, client: TestClient, auth_headers, make_medication, fixed_now, session_started):
        make_medication(event_times=[fixed_now - timedelta(minutes=61)])

        data = client.get("/api/v1/alarms/active", headers=auth_headers).json()

        assert data["state"] == "idle"
        assert data["queue"] == []


# ==================== AUDIO TESTS ====================

class TestAlarmAudio:
    """Tests for the audio opt-in and sound endpoints"""

    @pytest.mark.api
    def test_silent_until_opt_in(self, client: TestClient, auth_headers, due_doses, session_started):
        client.get("/api/v1/alarms/active", headers=auth_headers)

        response = client.get("/api/v1/alarms/sound", headers=auth_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT

    @pytest.mark.api
    def test_enable_audio_plays_sound(self, client: TestClient, auth_headers, due_doses, session_started, db_session, test_patient):
        client.get("/api/v1/alarms/active", headers=auth_headers)

        response = client.post("/api/v1/alarms/audio/enable", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["enabled"] is True
        assert data["source"] in ("primary", "fallback")
        assert data["sound_banner_visible"] is False

        sound = client.get("/api/v1/alarms/sound", headers=auth_headers)
        assert sound.status_code == status.HTTP_200_OK
        assert sound.headers["content-type"] == "audio/wav"
        assert sound.content

        db_session.expire_all()
        assert db_session.get(Patient, test_patient.id).alarm_audio_enabled is True

    @pytest.mark.api
    def test_preference_without_session(self, client: TestClient, auth_headers, db_session, test_patient):
        response = client.put("/api/v1/alarms/audio", json={"enabled": True}, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["source"] is None
        db_session.expire_all()
        assert db_session.get(Patient, test_patient.id).alarm_audio_enabled is True

    @pytest.mark.api
    def test_saved_opt_in_applies_to_new_session(self, client: TestClient, auth_headers, db_session, test_patient):
        test_patient.alarm_audio_enabled = True
        db_session.commit()

        data = client.post("/api/v1/alarms/session", headers=auth_headers).json()

        assert data["sound"]["opted_in"] is True
        assert data["sound_banner_visible"] is False

    @pytest.mark.api
    def test_disable_audio(self, client: TestClient, auth_headers, due_doses, session_started):
        client.post("/api/v1/alarms/audio/enable", headers=auth_headers)
        client.get("/api/v1/alarms/active", headers=auth_headers)

        response = client.put("/api/v1/alarms/audio", json={"enabled": False}, headers=auth_headers)

        assert response.json()["source"] is None
        assert client.get("/api/v1/alarms/sound", headers=auth_headers).status_code == status.HTTP_204_NO_CONTENT
