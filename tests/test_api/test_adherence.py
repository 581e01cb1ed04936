"""
Tests for Adherence API
========================

Tests daily summary, dose history and per-medication compliance endpoints.
"""

import pytest
from datetime import datetime, date, time, timedelta
from fastapi import status
from fastapi.testclient import TestClient

from models import DoseStatus


@pytest.fixture
def recent_medication(make_medication):
    """Twice-daily medication that started two days ago"""
    return make_medication(start_date=date.today() - timedelta(days=2), first_dose_time=time(0, 0))


class TestDailySummary:
    """Tests for /adherence/summary"""

    @pytest.mark.api
    def test_summary_without_medications(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/adherence/summary", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["daily_goal"] == 0
        assert data["rate"] == 100

    @pytest.mark.api
    def test_summary_counts_taken_today(self, client: TestClient, auth_headers, recent_medication, dose_events, set_outcome):
        today = [e for e in dose_events(recent_medication.id) if e.scheduled_time.date() == date.today()]
        set_outcome(today[0], DoseStatus.TAKEN, datetime.now())

        response = client.get("/api/v1/adherence/summary", headers=auth_headers)

        data = response.json()
        assert data["daily_goal"] == 2
        assert data["today_taken"] == 1
        assert data["rate"] == 50

    @pytest.mark.api
    def test_summary_unknown_medication(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/adherence/summary?medication_id=99999", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestDoseHistory:
    """Tests for /adherence/history"""

    @pytest.mark.api
    def test_history_groups_by_day(self, client: TestClient, auth_headers, recent_medication):
        response = client.get("/api/v1/adherence/history", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        days = [day["date"] for day in response.json()["days"]]
        assert days == sorted(days, reverse=True)
        assert days[-1] == str(date.today() - timedelta(days=2))

    @pytest.mark.api
    def test_history_day_limit(self, client: TestClient, auth_headers, recent_medication):
        response = client.get("/api/v1/adherence/history?days=1", headers=auth_headers)

        days = response.json()["days"]
        assert [day["date"] for day in days] == [str(date.today())]

    @pytest.mark.api
    def test_history_past_pending_reads_missed(self, client: TestClient, auth_headers, recent_medication):
        response = client.get("/api/v1/adherence/history?days=3", headers=auth_headers)

        oldest = response.json()["days"][-1]
        assert all(e["status"] == "pending" for e in oldest["events"])
        assert all(e["display_status"] == "missed" for e in oldest["events"])

    @pytest.mark.api
    @pytest.mark.parametrize("days", [0, 400])
    def test_history_days_out_of_range(self, client: TestClient, auth_headers, days):
        response = client.get(f"/api/v1/adherence/history?days={days}", headers=auth_headers)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestMedicationAdherence:
    """Tests for /adherence/medications/{id}"""

    @pytest.mark.api
    def test_medication_adherence(self, client: TestClient, auth_headers, recent_medication, dose_events, set_outcome):
        events = dose_events(recent_medication.id)
        set_outcome(events[0], DoseStatus.TAKEN, events[0].scheduled_time)
        set_outcome(events[1], DoseStatus.MISSED)

        response = client.get(f"/api/v1/adherence/medications/{recent_medication.id}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["medication_name"] == "Metformin"
        assert data["daily_goal"] == 2
        assert data["history"]["rate"] == 50
        assert data["history"]["basis"] == "historical"

    @pytest.mark.api
    def test_medication_adherence_not_found(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/adherence/medications/99999", headers=auth_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
