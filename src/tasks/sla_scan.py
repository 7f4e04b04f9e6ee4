"""Periodic SLA scan run alongside the API"""
import asyncio
import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.database import SessionLocal
from ..services.sla_monitor import SLAMonitor, sla_monitor

logger = logging.getLogger(__name__)


def run_sla_scan(
    monitor: Optional[SLAMonitor] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    """
    Run one SLA scan in its own session

    Returns number of open alerts after the scan
    """
    monitor = monitor or sla_monitor
    db = session_factory()
    try:
        return len(monitor.scan(db))
    finally:
        db.close()


class SLAScanLoop:
    """Background task that scans on a fixed interval until stopped"""

    def __init__(
        self,
        interval_seconds: int,
        scan: Callable[[], int] = run_sla_scan,
    ):
        self._interval = interval_seconds
        self._scan = scan
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop; calling start twice is a no-op"""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"SLA scan loop started, interval {self._interval}s", extra={"correlation_id": "sla_scan"})

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("SLA scan loop stopped", extra={"correlation_id": "sla_scan"})

    async def run_once(self) -> int:
        # Scan is blocking SQLAlchemy work
        return await asyncio.to_thread(self._scan)

    async def _run_loop(self) -> None:
        while self._running:
            started = time.monotonic()
            try:
                open_alerts = await self.run_once()
                logger.debug(
                    f"SLA scan cycle complete, {open_alerts} open alerts",
                    extra={"correlation_id": "sla_scan"},
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"SLA scan cycle failed: {e}", extra={"correlation_id": "sla_scan"})

            await asyncio.sleep(max(0.0, self._interval - (time.monotonic() - started)))


if __name__ == "__main__":
    # Manual scan
    count = run_sla_scan()
    print(f"SLA scan complete, {count} open alerts")
