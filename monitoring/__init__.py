"""
============================================================================
STATUS MONITOR - MONITORING PACKAGE
============================================================================
The service health-check core:
    • ProbeExecutor           — one HTTP probe, classified against the
                                service's expectations
    • CheckRecorder           — persistence, history and uptime stats
    • NotificationDispatcher  — webhook / email fan-out on transitions
    • LiveBroadcaster         — check results to live SSE subscribers
    • ServiceScheduler        — per-service timers and the check cycle

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── probe.py             ← ProbeExecutor + json_contains
├── state.py             ← ServiceRuntimeState
├── recorder.py          ← CheckResult + CheckRecorder
├── alerts.py            ← NotificationDispatcher
├── broadcast.py         ← LiveBroadcaster
└── scheduler.py         ← ServiceScheduler

============================================================================
"""

from monitoring.probe import ProbeExecutor, ProbeOutcome, json_contains, body_mismatch
from monitoring.state import ServiceRuntimeState
from monitoring.recorder import CheckRecorder, CheckResult
from monitoring.alerts import NotificationDispatcher
from monitoring.broadcast import LiveBroadcaster, sse_frame, KEEPALIVE_FRAME
from monitoring.scheduler import ServiceScheduler

__all__ = [
    # Probe
    "ProbeExecutor",
    "ProbeOutcome",
    "json_contains",
    "body_mismatch",

    # State & results
    "ServiceRuntimeState",
    "CheckRecorder",
    "CheckResult",

    # Notifications
    "NotificationDispatcher",

    # Live stream
    "LiveBroadcaster",
    "sse_frame",
    "KEEPALIVE_FRAME",

    # Scheduler
    "ServiceScheduler",
]
