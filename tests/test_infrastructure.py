# tests/test_infrastructure.py
"""Tests for infrastructure components"""
import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from fieldmap.config import Settings, validate_or_warn, warn_on_risky_config
from fieldmap.core.dispatch.domain import Coordinate
from fieldmap.core.dispatch.errors import PermissionDeniedError
from fieldmap.core.dispatch.notices import Notice, NoticeLevel, log_notifier
from fieldmap.infra.location import FixedLocationProvider
from fieldmap.infra.logging_config import ConsoleFormatter, JSONFormatter, LogContext, mask_coordinates


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.team_location_poll_interval == 30.0
        assert s.geofence_alert_poll_interval == 60.0
        assert s.viewport_fit_debounce_seconds == 0.3
        assert s.maps_preference == "google"
        assert not s.dispatcher_location_configured

    def test_prod_requires_api_base_url(self):
        s = Settings(_env_file=None, app_env="prod")
        with pytest.raises(RuntimeError):
            validate_or_warn(s)

    def test_dev_only_warns(self, capsys):
        s = Settings(_env_file=None, team_location_poll_interval=1)
        validate_or_warn(s)
        assert "team_location_poll_interval" in capsys.readouterr().out

    def test_missing_token_warns(self):
        s = Settings(_env_file=None, api_base_url="https://api.example.com")
        warnings = warn_on_risky_config(s)
        assert any("api_token" in w for w in warnings)

    def test_half_configured_dispatcher_location(self):
        s = Settings(_env_file=None, dispatcher_latitude=-16.9)
        assert any("dispatcher_latitude" in w for w in warn_on_risky_config(s))


class TestLogging:
    def test_mask_coordinates(self):
        assert mask_coordinates(-16.9186, 145.7781) == "-16.9**, 145.8**"

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("fieldmap", logging.INFO, __file__, 1, "hello", None, None)
        record.job_id = "j1"
        record.worker_id = "u1"

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello"
        assert data["job_id"] == "j1"
        assert data["worker_id"] == "u1"
        assert "alert_id" not in data

    def test_log_context_stamps_extras(self):
        logger = MagicMock()
        ctx = LogContext(logger, session_id="s1", job_id="j1", worker_id=None)

        ctx.info("assigned", extra={"alert_id": "a1"})

        _, kwargs = logger.log.call_args
        assert kwargs["extra"] == {"alert_id": "a1", "session_id": "s1", "job_id": "j1"}

    def test_log_context_rejects_unknown_fields(self):
        with pytest.raises(TypeError):
            LogContext(MagicMock(), tenant_id="t1")

    def test_console_formatter_tags_context(self):
        record = logging.LogRecord("fieldmap.engine", logging.WARNING, __file__, 1, "late", None, None)
        record.session_id = "0123456789abcdef"
        record.alert_id = "a1"

        line = ConsoleFormatter().format(record)

        assert "[session=01234567 alert=a1]" in line
        assert line.endswith(" - late")

    def test_log_notifier_maps_levels(self, caplog):
        with caplog.at_level(logging.INFO, logger="fieldmap.core.dispatch.notices"):
            log_notifier(Notice("Assignment Failed", "Server said no", NoticeLevel.ERROR))
            log_notifier(Notice("Job Assigned", "Fix leak assigned", NoticeLevel.SUCCESS))

        assert [(r.name, r.levelno) for r in caplog.records] == [
            ("fieldmap.core.dispatch.notices", logging.WARNING),
            ("fieldmap.core.dispatch.notices", logging.INFO),
        ]
        assert caplog.records[0].getMessage() == "Assignment Failed: Server said no"


class TestMetrics:
    def test_labelled_counter_lookup(self):
        from fieldmap.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.increment("dispatch_refresh_total", status="ok", collection="jobs")
        collector.increment("dispatch_refresh_total", 2, collection="jobs", status="ok")

        assert collector.get_counter("dispatch_refresh_total", collection="jobs", status="ok") == 3
        assert collector.get_counter("dispatch_refresh_total", collection="team", status="ok") == 0
        assert collector.snapshot()["counters"] == {"dispatch_refresh_total{collection=jobs,status=ok}": 3}

    def test_latency_window_is_bounded(self):
        from fieldmap.infra.metrics import MetricsCollector

        collector = MetricsCollector(latency_window=3)
        for seconds in (0.5, 0.1, 0.2, 0.3):
            collector.record_latency("dispatch_refresh_seconds", seconds, collection="team")

        stats = collector.latency("dispatch_refresh_seconds", collection="team")
        assert stats["count"] == 3
        assert stats["last"] == 0.3
        assert stats["p50"] == 0.2
        assert stats["p95"] == 0.3
        assert collector.latency("dispatch_refresh_seconds", collection="jobs")["count"] == 0

    def test_timer_records_latency(self):
        from fieldmap.infra.metrics import Timer, get_metrics_collector

        with Timer("dispatch_refresh_seconds", collection="jobs"):
            pass

        stats = get_metrics_collector().snapshot()["latencies"]
        assert stats["dispatch_refresh_seconds{collection=jobs}"]["count"] == 1

    def test_reset_isolates_the_shared_collector(self):
        from fieldmap.infra.metrics import DispatchMetrics, get_metrics_collector

        DispatchMetrics.assignment("ok")
        assert get_metrics_collector().get_counter("dispatch_assignments_total", status="ok") == 1

        get_metrics_collector().reset()

        assert get_metrics_collector().snapshot() == {"counters": {}, "latencies": {}}


class TestFixedLocationProvider:
    @pytest.mark.asyncio
    async def test_configured_position(self):
        provider = FixedLocationProvider(-16.9, 145.7)
        assert await provider.request_permission() is True
        assert await provider.current_position() == Coordinate(-16.9, 145.7)

    @pytest.mark.asyncio
    async def test_unconfigured_is_denied(self):
        provider = FixedLocationProvider()
        assert await provider.request_permission() is False
        with pytest.raises(PermissionDeniedError):
            await provider.current_position()


class TestHttpSessions:
    @pytest.mark.asyncio
    async def test_api_session_is_shared_and_closed(self):
        from fieldmap.infra import http_client

        with patch.dict(http_client._sessions, clear=True):
            first = http_client.get_api_session()
            second = http_client.get_api_session()
            assert first is second

            await http_client.close_all_sessions()
            assert first.closed
            assert http_client._sessions == {}
