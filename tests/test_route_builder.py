# tests/test_route_builder.py
"""
Tests for multi-stop route building, optimization and navigation hand-off.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import failed, make_api, make_job, ok
from fieldmap.core.dispatch.domain import Coordinate
from fieldmap.core.dispatch.navigation import build_directions_url, build_multi_stop_url
from fieldmap.core.dispatch.route_builder import RouteBuilder


def _builder(api=None, notify=None, open_url=None) -> RouteBuilder:
    return RouteBuilder(api or make_api(), notify=notify or (lambda notice: None), open_url=open_url)


# ============================================================================
# URL builders
# ============================================================================

class TestNavigationUrls:

    def test_multi_stop_url(self):
        url = build_multi_stop_url([Coordinate(1, 2), Coordinate(3, 4), Coordinate(5, 6)])
        assert url == (
            "https://www.google.com/maps/dir/?api=1&destination=5,6"
            "&waypoints=1%2C2%7C3%2C4&travelmode=driving"
        )

    def test_single_stop_has_no_waypoints(self):
        url = build_multi_stop_url([Coordinate(5, 6)])
        assert url == "https://www.google.com/maps/dir/?api=1&destination=5,6&travelmode=driving"

    def test_no_stops(self):
        assert build_multi_stop_url([]) is None

    def test_directions_google(self):
        url = build_directions_url(Coordinate(-16.9, 145.7))
        assert url == "https://www.google.com/maps/dir/?api=1&destination=-16.9,145.7&travelmode=driving"

    def test_directions_apple(self):
        url = build_directions_url(Coordinate(-16.9, 145.7), preference="apple")
        assert url == "https://maps.apple.com/?daddr=-16.9,145.7&dirflg=d"

    def test_directions_address_fallback(self):
        url = build_directions_url(None, "1 Esplanade, Cairns")
        assert "destination=1%20Esplanade%2C%20Cairns" in url

    def test_directions_nothing_to_go_on(self):
        assert build_directions_url(None, "  ") is None


# ============================================================================
# Editing
# ============================================================================

class TestRouteEditing:

    def test_add_is_duplicate_free(self, notices, notify):
        route = _builder(notify=notify)
        j1 = make_job("j1")

        assert route.add(j1) is True
        assert route.add(j1) is False

        assert route.job_ids == ["j1"]
        assert [n.title for n in notices] == ["Added to Route", "Already in Route"]
        assert route.panel_visible

    def test_stops_numbered_on_read(self):
        route = _builder()
        route.add(make_job("j1"))
        route.add(make_job("j2"))
        route.add(make_job("j3"))

        route.remove("j1")

        assert [(s.number, s.job.id) for s in route.stops()] == [(1, "j2"), (2, "j3")]

    def test_clear_needs_confirmation(self):
        route = _builder()
        route.add(make_job("j1"))

        assert route.confirm_clear() is False
        assert route.request_clear() is True
        route.cancel_clear()
        assert route.confirm_clear() is False
        assert len(route) == 1

        route.request_clear()
        assert route.confirm_clear() is True
        assert len(route) == 0
        assert not route.panel_visible

    def test_clear_empty_route(self):
        assert _builder().request_clear() is False


# ============================================================================
# optimize()
# ============================================================================

class TestOptimize:

    @pytest.mark.asyncio
    async def test_single_stop_sends_nothing(self, notices, notify):
        api = make_api()
        route = _builder(api, notify=notify)
        route.add(make_job("j1"))

        assert await route.optimize() is False

        api.optimize_route.assert_not_awaited()
        assert notices[-1].title == "Not Enough Stops"
        assert route.job_ids == ["j1"]

    @pytest.mark.asyncio
    async def test_reorders_to_optimizer_answer(self, notices, notify):
        api = make_api(optimize_route=ok({"optimizedJobIds": ["j3", "j1", "j2"]}))
        route = _builder(api, notify=notify)
        for job_id in ("j1", "j2", "j3"):
            route.add(make_job(job_id))
        origin = Coordinate(-16.9, 145.7)

        assert await route.optimize(origin) is True

        api.optimize_route.assert_awaited_once_with(["j1", "j2", "j3"], origin)
        assert route.job_ids == ["j3", "j1", "j2"]
        assert notices[-1].title == "Route Optimized"
        assert route.is_optimizing is False

    @pytest.mark.asyncio
    async def test_unknown_ids_dropped(self):
        api = make_api(optimize_route=ok({"optimizedJobIds": ["j2", "ghost", "j1", "j2"]}))
        route = _builder(api)
        route.add(make_job("j1"))
        route.add(make_job("j2"))

        assert await route.optimize() is True
        assert route.job_ids == ["j2", "j1"]

    @pytest.mark.asyncio
    async def test_failure_keeps_order(self, notices, notify):
        api = make_api(optimize_route=failed("Optimizer unavailable", status=503))
        route = _builder(api, notify=notify)
        route.add(make_job("j1"))
        route.add(make_job("j2"))

        assert await route.optimize() is False

        assert route.job_ids == ["j1", "j2"]
        assert notices[-1].title == "Optimization Failed"
        assert notices[-1].message == "Optimizer unavailable"
        assert route.is_optimizing is False

    @pytest.mark.asyncio
    async def test_missing_ids_is_failure(self, notices, notify):
        api = make_api(optimize_route=ok({"status": "done"}))
        route = _builder(api, notify=notify)
        route.add(make_job("j1"))
        route.add(make_job("j2"))

        assert await route.optimize() is False
        assert route.job_ids == ["j1", "j2"]
        assert notices[-1].title == "Optimization Failed"

    @pytest.mark.asyncio
    async def test_malformed_ids_is_failure(self):
        api = make_api(optimize_route=ok({"optimizedJobIds": "j2,j1"}))
        route = _builder(api)
        route.add(make_job("j1"))
        route.add(make_job("j2"))

        assert await route.optimize() is False
        assert route.job_ids == ["j1", "j2"]


# ============================================================================
# Navigation
# ============================================================================

class TestStartNavigation:

    def test_opens_url_in_route_order(self):
        opener = MagicMock()
        route = _builder(open_url=opener)
        route.add(make_job("j1", lat=1, lng=2))
        route.add(make_job("j2", lat=None, lng=None))
        route.add(make_job("j3", lat=3, lng=4))

        url = route.start_navigation()

        opener.assert_called_once_with(url)
        assert url == (
            "https://www.google.com/maps/dir/?api=1&destination=3,4"
            "&waypoints=1%2C2&travelmode=driving"
        )

    def test_empty_route_is_noop(self):
        opener = MagicMock()
        route = _builder(open_url=opener)

        assert route.start_navigation() is None
        opener.assert_not_called()
