#!/usr/bin/env python3
"""
Live Map Session Example

Runs one dispatcher session against the backend configured in ``.env``
(``API_BASE_URL`` / ``API_TOKEN``): loads jobs and the team, prints what
the map would show, builds a route from the first located jobs and
prints the navigation link.

Run from project root:
    python examples/live_map_session.py
"""
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fieldmap.config import settings, validate_or_warn
from fieldmap.core.dispatch.alerts import format_alert_age
from fieldmap.core.dispatch.domain import Capabilities
from fieldmap.core.dispatch.engine import DispatchEngine
from fieldmap.core.dispatch.notices import Notice
from fieldmap.infra.dispatch_api import DispatchApiClient
from fieldmap.infra.http_client import close_all_sessions
from fieldmap.infra.location import FixedLocationProvider
from fieldmap.infra.logging_config import setup_logging
from fieldmap.infra.metrics import get_metrics_collector


def print_notice(notice: Notice) -> None:
    print(f"  [{notice.level.value}] {notice.title}: {notice.message}")


def print_region(region) -> None:
    print(
        f"  Map region → center ({region.latitude:.4f}, {region.longitude:.4f}), "
        f"span {region.latitude_delta:.4f}° x {region.longitude_delta:.4f}°"
    )


async def demo_session():
    print("\n" + "=" * 60)
    print("LIVE MAP SESSION")
    print("=" * 60 + "\n")

    engine = DispatchEngine(
        DispatchApiClient.from_settings(),
        capabilities=Capabilities.for_role(is_manager=True),
        location=FixedLocationProvider.from_settings(),
        notify=print_notice,
        open_url=lambda url: print(f"  Open: {url}"),
        on_region=print_region,
        session_id="demo-session",
    )

    async with engine:
        await engine.pull_to_refresh()

        print(f"\nJobs: {len(engine.store.jobs)} total, {len(engine.map_eligible_jobs)} on the map")
        for job in engine.map_eligible_jobs[:5]:
            print(f"  • {job.title} [{job.status_label}] {job.address or ''}")

        print(f"\nTeam: {engine.active_worker_count} active")
        for member in engine.team_members:
            where = "on map" if member.is_map_eligible else "no location"
            print(f"  • {member.display_name or member.id} ({member.activity_label}, {where})")

        print(f"\nUnread alerts: {engine.unread_alert_count}")
        for alert in engine.alerts.panel_alerts():
            print(f"  • {alert.initials} {alert.user_name} {alert.alert_type.value} "
                  f"{alert.job_title} ({format_alert_age(alert.created_at)})")

        print("\nBuilding route...")
        for job in engine.map_eligible_jobs[:3]:
            engine.tap_job(job)
            engine.add_selected_job_to_route()

        if len(engine.route) >= 2:
            await engine.optimize_route()
        for stop in engine.route.stops():
            print(f"  {stop.number}. {stop.job.title}")
        engine.start_navigation()

        print("\nFitting map to markers...")
        engine.fit_to_markers()

    await close_all_sessions()
    print("\nSession metrics:")
    for name, value in sorted(get_metrics_collector().snapshot()["counters"].items()):
        print(f"  {name} = {value}")
    print("\n✓ Session closed\n")


def main():
    setup_logging(settings.log_level, settings.log_json)
    validate_or_warn(settings)
    asyncio.run(demo_session())


if __name__ == "__main__":
    main()
