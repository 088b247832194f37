#!/usr/bin/env python3
"""
RQ Worker Startup Script
Starts the preview worker pool and the queue cleanup sweep.

Usage:
    python scripts/run_workers.py                 # QUEUE_CONCURRENCY workers (default 2)
    python scripts/run_workers.py --workers 4     # 4 worker processes
    python scripts/run_workers.py --burst         # Exit when the queue is empty
    python scripts/run_workers.py --check         # Check Redis connection and exit
"""

import argparse
import logging
import os
import sys
import signal
from multiprocessing import Process
from typing import List

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rq import Worker

from preview_orchestrator.core.config import get_settings
from preview_orchestrator.core.logging_utils import setup_logging
from preview_orchestrator.core.redis import RedisManager
from preview_orchestrator.workers.maintenance import start_cleanup_thread
from preview_orchestrator.workers.pipeline import Pipeline
from preview_orchestrator.workers.queue import JobQueue
from preview_orchestrator.workers.tasks import install_pipeline


settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("rq.worker")


def start_worker(worker_name: str = None, burst: bool = False):
    """
    Start a single RQ worker on the preview queue.

    Args:
        worker_name: Optional worker identifier
        burst: Exit once the queue is drained
    """
    manager = RedisManager(settings.REDIS_URL)
    queue = JobQueue.from_settings(settings, connection=manager.get_connection())

    # Each worker process owns its pipeline and database engine
    pipeline = Pipeline.from_settings(settings)
    pipeline.store.init_db()
    install_pipeline(pipeline)

    worker = Worker(
        queues=[queue.queue],
        connection=queue.connection,
        name=worker_name,
        log_job_description=True,
        job_monitoring_interval=5
    )

    logger.info(f"Worker {worker_name or 'default'} starting on queue: {queue.name}")
    try:
        worker.work(with_scheduler=True, burst=burst)
    finally:
        manager.close()


def run_worker_process(process_id: int, burst: bool):
    """Target function for worker processes."""
    worker_name = f"preview-worker-{process_id}-{os.getpid()}"
    setup_logging(settings.LOG_LEVEL)

    # Handle graceful shutdown
    def signal_handler(signum, frame):
        logger.info(f"{worker_name}: Received shutdown signal")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    start_worker(worker_name, burst=burst)


def main():
    parser = argparse.ArgumentParser(description="Start RQ workers for preview generation")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=settings.QUEUE_CONCURRENCY,
        help=f"Number of worker processes (default: {settings.QUEUE_CONCURRENCY})"
    )
    parser.add_argument(
        "--burst", "-b",
        action="store_true",
        help="Run in burst mode (exit when queue is empty)"
    )
    parser.add_argument(
        "--no-cleanup",
        action="store_true",
        help="Do not run the periodic queue cleanup sweep"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check Redis connection and exit"
    )

    args = parser.parse_args()
    redis_manager = RedisManager(settings.REDIS_URL)

    # Health check only
    if args.check:
        health = redis_manager.health_check()
        print(f"Redis Status: {health}")
        sys.exit(0 if health.get("connected") else 1)

    # Verify Redis connection
    logger.info("Checking Redis connection...")
    health = redis_manager.health_check()

    if not health.get("connected"):
        logger.error(f"Cannot connect to Redis: {health.get('error')}")
        logger.error(f"Redis URL: {health.get('url')}")
        sys.exit(1)

    logger.info(f"Redis connected: {health.get('redis_version')}")
    logger.info(f"Starting {args.workers} worker(s) on queue: {settings.QUEUE_NAME}")

    if not settings.NETLIFY_TOKEN:
        logger.warning("NETLIFY_TOKEN is not set; deployments will fail until it is configured")

    stop_cleanup = None
    if not args.no_cleanup and not args.burst:
        cleanup_queue = JobQueue.from_settings(settings, connection=redis_manager.get_connection())
        _, stop_cleanup = start_cleanup_thread(cleanup_queue, settings.CLEANUP_INTERVAL)

    processes: List[Process] = []

    def shutdown_all(signum, frame):
        logger.info("Shutting down all workers...")
        if stop_cleanup is not None:
            stop_cleanup.set()
        for p in processes:
            if p.is_alive():
                p.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown_all)
    signal.signal(signal.SIGINT, shutdown_all)

    for i in range(args.workers):
        p = Process(
            target=run_worker_process,
            args=(i + 1, args.burst),
            name=f"preview-worker-{i + 1}"
        )
        p.start()
        processes.append(p)
        logger.info(f"Started worker process {i + 1}/{args.workers} (PID: {p.pid})")

    # Wait for all workers
    for p in processes:
        p.join()

    if stop_cleanup is not None:
        stop_cleanup.set()
    redis_manager.close()


if __name__ == "__main__":
    main()
