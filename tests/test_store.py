# tests/test_store.py
"""
Tests for EntityStore refreshes and row transforms.

All tests use a mocked dispatch API; no network.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest

from conftest import failed, make_api, ok
from fieldmap.core.dispatch.domain import ActivityStatus, AlertType
from fieldmap.core.dispatch.schemas import JobRow, TeamLocationRow
from fieldmap.core.dispatch.store import EntityStore, _activity_status, _split_name
from fieldmap.infra.metrics import get_metrics_collector

NOW = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def _store(api) -> EntityStore:
    return EntityStore(api, clock=lambda: NOW)


# ============================================================================
# Row validation
# ============================================================================

class TestJobRow:

    def test_camel_case_fields(self):
        row = JobRow.model_validate({"id": "j1", "clientId": "c1", "clientName": "Reef", "assignedTo": "u1"})
        assert row.client_id == "c1"
        assert row.client_name == "Reef"
        assert row.assigned_to == "u1"

    def test_numeric_id_coerced_to_str(self):
        assert JobRow.model_validate({"id": 42}).id == "42"

    def test_zero_is_a_coordinate(self):
        row = JobRow.model_validate({"id": "j1", "latitude": 0, "longitude": 0})
        assert row.latitude == 0.0
        assert row.longitude == 0.0

    @pytest.mark.parametrize("value", [None, "", "  ", math.nan, math.inf])
    def test_missing_or_non_finite_coordinate_is_absent(self, value):
        row = JobRow.model_validate({"id": "j1", "latitude": value, "longitude": 145.7})
        assert row.latitude is None


# ============================================================================
# Name / activity helpers
# ============================================================================

class TestTeamRowHelpers:

    def test_split_single_name(self):
        row = TeamLocationRow(id="u1", name="Sam Lee Junior")
        assert _split_name(row) == ("Sam", "Lee Junior")

    def test_explicit_first_last_win(self):
        row = TeamLocationRow(id="u1", name="ignored", first_name="Sam", last_name="Lee")
        assert _split_name(row) == ("Sam", "Lee")

    def test_empty_name(self):
        assert _split_name(TeamLocationRow(id="u1")) == ("", "")

    def test_explicit_activity_status(self):
        row = TeamLocationRow(id="u1", activity_status="offline", current_job_id="j1")
        assert _activity_status(row) == ActivityStatus.OFFLINE

    def test_on_job_defaults_to_working(self):
        row = TeamLocationRow(id="u1", current_job_id="j1")
        assert _activity_status(row) == ActivityStatus.WORKING

    def test_default_online(self):
        assert _activity_status(TeamLocationRow(id="u1")) == ActivityStatus.ONLINE

    def test_unknown_status_falls_back(self):
        row = TeamLocationRow(id="u1", activity_status="teleporting")
        assert _activity_status(row) == ActivityStatus.ONLINE


# ============================================================================
# Refreshes
# ============================================================================

class TestRefreshJobs:

    @pytest.mark.asyncio
    async def test_snapshot_and_eligibility(self, sample_job_rows):
        store = _store(make_api(get_map_jobs=ok(sample_job_rows)))

        jobs = await store.refresh_jobs()

        assert [j.id for j in jobs] == ["j1", "j2"]
        assert jobs[0].is_map_eligible
        assert not jobs[1].is_map_eligible
        assert jobs[0].client_name == "Reef Hotel"
        assert store.jobs_loading is False

    @pytest.mark.asyncio
    async def test_replaces_wholesale(self, sample_job_rows):
        api = make_api(get_map_jobs=[ok(sample_job_rows), ok([sample_job_rows[1]])])
        store = _store(api)

        await store.refresh_jobs()
        await store.refresh_jobs()

        assert [j.id for j in store.jobs] == ["j2"]

    @pytest.mark.asyncio
    async def test_error_response_degrades_to_empty(self, sample_job_rows):
        api = make_api(get_map_jobs=[ok(sample_job_rows), failed("boom")])
        store = _store(api)
        await store.refresh_jobs()

        jobs = await store.refresh_jobs()

        assert jobs == []
        metrics = get_metrics_collector()
        assert metrics.get_counter("dispatch_refresh_total", collection="jobs", status="api_error") == 1

    @pytest.mark.asyncio
    async def test_non_list_degrades_to_empty(self):
        store = _store(make_api(get_map_jobs=ok({"error": "Unauthorized"})))
        assert await store.refresh_jobs() == []

    @pytest.mark.asyncio
    async def test_raising_client_degrades_to_empty(self):
        store = _store(make_api(get_map_jobs=RuntimeError("socket closed")))
        assert await store.refresh_jobs() == []
        assert store.jobs_loading is False

    @pytest.mark.asyncio
    async def test_malformed_row_skipped(self, sample_job_rows):
        rows = sample_job_rows + [{"title": "no id"}]
        store = _store(make_api(get_map_jobs=ok(rows)))

        jobs = await store.refresh_jobs()

        assert [j.id for j in jobs] == ["j1", "j2"]


class TestRefreshTeam:

    @pytest.mark.asyncio
    async def test_members_and_locations(self, sample_team_rows):
        store = _store(make_api(get_team_locations=ok(sample_team_rows)))

        members = await store.refresh_team_members()

        sam, kim = members
        assert sam.first_name == "Sam" and sam.last_name == "Lee"
        assert sam.user_id == "u1"
        assert sam.activity_status == ActivityStatus.DRIVING
        assert sam.last_location.battery == 80
        assert sam.last_location.timestamp == datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

        assert kim.last_location is None
        assert not kim.is_map_eligible
        assert kim.activity_status == ActivityStatus.WORKING
        assert store.last_location_update == NOW

    @pytest.mark.asyncio
    async def test_missing_timestamp_uses_refresh_time(self):
        rows = [{"id": "u1", "name": "Sam", "latitude": 1.0, "longitude": 2.0}]
        store = _store(make_api(get_team_locations=ok(rows)))

        members = await store.refresh_team_members()

        assert members[0].last_location.timestamp == NOW

    @pytest.mark.asyncio
    async def test_failure_keeps_last_update_time(self, sample_team_rows):
        api = make_api(get_team_locations=[ok(sample_team_rows), failed()])
        store = _store(api)
        await store.refresh_team_members()

        assert await store.refresh_team_members() == []
        assert store.last_location_update == NOW


class TestRefreshAlertsAndClients:

    @pytest.mark.asyncio
    async def test_alerts_feed_alert_center(self, sample_alert_rows):
        store = _store(make_api(get_geofence_alerts=ok(sample_alert_rows)))

        alerts = await store.refresh_geofence_alerts()

        assert [a.id for a in alerts] == ["a1", "a2"]
        assert alerts[0].alert_type == AlertType.ARRIVAL
        assert alerts[0].created_at.tzinfo is not None
        assert store.alert_center.unread_count == 1

    @pytest.mark.asyncio
    async def test_alert_failure_empties_snapshot(self, sample_alert_rows):
        api = make_api(get_geofence_alerts=[ok(sample_alert_rows), failed()])
        store = _store(api)
        await store.refresh_geofence_alerts()

        await store.refresh_geofence_alerts()

        assert store.geofence_alerts == []

    @pytest.mark.asyncio
    async def test_unknown_alert_type_row_skipped(self, sample_alert_rows):
        rows = sample_alert_rows + [dict(sample_alert_rows[0], id="a3", alertType="teleport")]
        store = _store(make_api(get_geofence_alerts=ok(rows)))

        alerts = await store.refresh_geofence_alerts()

        assert [a.id for a in alerts] == ["a1", "a2"]

    @pytest.mark.asyncio
    async def test_clients(self):
        store = _store(make_api(get_clients=ok([{"id": 7, "name": "Reef Hotel"}])))

        clients = await store.refresh_clients()

        assert clients[0].id == "7"
        assert clients[0].name == "Reef Hotel"


# ============================================================================
# Lookups / teardown
# ============================================================================

class TestLookups:

    @pytest.mark.asyncio
    async def test_lookup_and_clear(self, sample_job_rows, sample_team_rows, sample_alert_rows):
        api = make_api(
            get_map_jobs=ok(sample_job_rows),
            get_team_locations=ok(sample_team_rows),
            get_geofence_alerts=ok(sample_alert_rows),
        )
        store = _store(api)
        await store.refresh_jobs()
        await store.refresh_team_members()
        await store.refresh_geofence_alerts()

        assert store.job_by_id("j2").title == "Quote"
        assert store.member_by_id("u2").first_name == "Kim"
        assert store.job_by_id("missing") is None

        store.clear()

        assert store.jobs == []
        assert store.team_members == []
        assert store.geofence_alerts == []
        assert store.last_location_update is None
