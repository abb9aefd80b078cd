"""Worker for the JPK_V7M declaration pipeline.

Connects to Temporal, listens on the jpk-default task queue and executes the
declaration workflow and its activities.

Run with --queue <name> to poll a different queue.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from workflows.declaration_workflow import DeclarationWorkflow, TASK_QUEUE_DEFAULT
from activities import DECLARATION_ACTIVITIES
from core.observability.logging import get_logger

logger = get_logger("workers.worker")

WORKFLOWS = [DeclarationWorkflow]


def create_worker(client, task_queue: str = TASK_QUEUE_DEFAULT) -> Worker:
    """Worker carrying the declaration workflow and all its activities."""
    return Worker(
        client,
        task_queue=task_queue,
        workflows=WORKFLOWS,
        activities=DECLARATION_ACTIVITIES,
    )


async def run_worker(queue: str = TASK_QUEUE_DEFAULT):
    """Start worker listening on a task queue.

    Raises:
        Exception: If connection to Temporal fails
    """
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal namespace: {client.namespace}")

    worker = create_worker(client, queue)
    logger.info(
        f"Worker created for queue '{queue}'",
        extra_fields={"workflows": len(WORKFLOWS), "activities": len(DECLARATION_ACTIVITIES)},
    )

    try:
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="JPK_V7M Declaration Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=TASK_QUEUE_DEFAULT,
        help=f"Task queue to poll (default: {TASK_QUEUE_DEFAULT})"
    )

    args = parser.parse_args()
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
