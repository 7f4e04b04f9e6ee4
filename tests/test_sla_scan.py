import asyncio

from src.db.models import WorkflowAlert
from src.services.notifications import NotificationDispatcher
from src.services.sla_monitor import SLAMonitor
from src.tasks.sla_scan import SLAScanLoop, run_sla_scan


class _Session:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class _Monitor:
    def __init__(self, alerts):
        self.alerts = alerts
        self.sessions = []

    def scan(self, db):
        self.sessions.append(db)
        return self.alerts


def test_run_sla_scan_closes_its_session():
    session = _Session()
    monitor = _Monitor(alerts=["a", "b"])

    count = run_sla_scan(monitor=monitor, session_factory=lambda: session)

    assert count == 2
    assert monitor.sessions == [session]
    assert session.closed is True


def test_run_sla_scan_against_database(test_db, create_application):
    create_application(current_state="DRAFT", hours_in_state=100)
    monitor = SLAMonitor(notifier=NotificationDispatcher(), bottleneck_threshold=10)

    count = run_sla_scan(monitor=monitor, session_factory=lambda: test_db)

    assert count == 1
    assert test_db.query(WorkflowAlert).count() == 1


def test_run_once_uses_scan_callable():
    loop = SLAScanLoop(interval_seconds=60, scan=lambda: 3)

    assert asyncio.run(loop.run_once()) == 3


def test_loop_survives_failing_scan_and_stops():
    calls = []

    def flaky_scan():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database restarting")
        return 0

    async def exercise():
        loop = SLAScanLoop(interval_seconds=0, scan=flaky_scan)
        await loop.start()
        await loop.start()
        assert loop.running is True
        while len(calls) < 3:
            await asyncio.sleep(0.01)
        await loop.stop()
        return loop

    loop = asyncio.run(exercise())

    assert loop.running is False
    assert len(calls) >= 3
