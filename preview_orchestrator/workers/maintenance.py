"""
Queue Maintenance
Periodic cleanup sweep run alongside the worker pool.
"""

import logging
import threading
from typing import Optional

from preview_orchestrator.workers.queue import JobQueue

logger = logging.getLogger(__name__)


def run_cleanup_loop(queue: JobQueue, interval: float, stop_event: threading.Event) -> None:
    """Sweep the queue every `interval` seconds until `stop_event` is set."""
    logger.info(f"[Cleanup] Sweeping every {interval:.0f}s")
    while not stop_event.wait(interval):
        try:
            queue.sweep()
        except Exception as e:
            logger.error(f"[Cleanup] Sweep failed: {e}")


def start_cleanup_thread(queue: JobQueue, interval: float, stop_event: Optional[threading.Event] = None):
    """Run the cleanup loop on a daemon thread. Returns (thread, stop_event)."""
    stop_event = stop_event or threading.Event()
    thread = threading.Thread(
        target=run_cleanup_loop,
        args=(queue, interval, stop_event),
        name="queue-cleanup",
        daemon=True,
    )
    thread.start()
    return thread, stop_event
