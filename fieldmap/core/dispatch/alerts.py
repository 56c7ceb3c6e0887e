"""
AlertCenter: geofence alert read-state for supervisors.

Alerts are replaced wholesale on every refresh and never created or
deleted here.  Marking an alert read is optimistic: the local flag flips
immediately and the backend call runs in the background.  A failed call
is logged and counted but never rolled back, so read-state only moves
forward for the rest of the session.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from fieldmap.core.dispatch.domain import GeofenceAlert
from fieldmap.core.dispatch.ports import DispatchApi
from fieldmap.infra.logging_config import get_logger
from fieldmap.infra.metrics import DispatchMetrics

logger = get_logger(__name__)

ALERT_PANEL_LIMIT = 5


def format_alert_age(created_at: datetime, now: Optional[datetime] = None) -> str:
    """
    Relative label for an alert timestamp.

    ``"Just now"`` under a minute, ``"{m}m ago"`` under an hour,
    ``"{h}h ago"`` under a day, otherwise a short date like ``"3 Oct"``.
    Always computed against *now*; never cache the result.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed = (now - created_at).total_seconds()
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)

    # Future timestamps (clock skew) read as fresh
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    local = created_at.astimezone(now.tzinfo)
    return f"{local.day} {local.strftime('%b')}"


class AlertCenter:
    """
    Holds the current alert snapshot and its session read-state.

    Usage:
        center = AlertCenter(api)
        center.ingest(alerts)
        center.mark_read(alert_id)
        ...
        await center.drain()
    """

    def __init__(self, api: DispatchApi):
        self._api = api
        self._alerts: list[GeofenceAlert] = []
        # Ids read during this session survive refreshes that still report them unread
        self._read_ids: set[str] = set()
        self._pending: set[asyncio.Task] = set()

    @property
    def alerts(self) -> list[GeofenceAlert]:
        return list(self._alerts)

    def ingest(self, alerts: list[GeofenceAlert]) -> None:
        """Replace the snapshot (no merge)."""
        for alert in alerts:
            if alert.id in self._read_ids:
                alert.is_read = True
        self._alerts = list(alerts)
        logger.debug("Alerts ingested: total=%d, unread=%d", len(self._alerts), self.unread_count)

    def unread(self, limit: Optional[int] = None) -> list[GeofenceAlert]:
        items = [a for a in self._alerts if not a.is_read]
        if limit is not None:
            return items[:limit]
        return items

    def panel_alerts(self) -> list[GeofenceAlert]:
        """What the alerts panel renders."""
        return self.unread(limit=ALERT_PANEL_LIMIT)

    @property
    def unread_count(self) -> int:
        return sum(1 for a in self._alerts if not a.is_read)

    def mark_read(self, alert_id: str) -> bool:
        """
        Flip an alert to read and persist it in the background.

        Returns True if an unread alert was changed.  Marking an unknown or
        already-read alert is a no-op and sends nothing.
        """
        alert = next((a for a in self._alerts if a.id == alert_id), None)
        if alert is None or alert.is_read:
            return False

        alert.is_read = True
        self._read_ids.add(alert_id)

        task = asyncio.create_task(self._persist_read(alert_id), name=f"alert_read:{alert_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _persist_read(self, alert_id: str) -> None:
        try:
            response = await self._api.mark_alert_read(alert_id)
        except Exception as exc:
            logger.warning(
                "Mark-read call raised for alert %s: %s", alert_id, exc,
                extra={"alert_id": alert_id},
            )
            DispatchMetrics.alert_mark_read("error")
            return

        if response.ok:
            DispatchMetrics.alert_mark_read("ok")
            return

        logger.warning(
            "Mark-read rejected for alert %s: %s", alert_id, response.error,
            extra={"alert_id": alert_id},
        )
        DispatchMetrics.alert_mark_read("failed")

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for outstanding mark-read calls (used at teardown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        self._alerts = []
        self._read_ids.clear()
