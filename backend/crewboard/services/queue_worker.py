"""Queue worker dispatching background tasks by task type."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from crewboard.core.config import settings
from crewboard.core.logging import configure_logging, get_logger
from crewboard.services.agents.queue import TASK_TYPE as AGENT_RUN_TASK_TYPE
from crewboard.services.agents.queue import (
    process_agent_run_queue_task,
    requeue_agent_run_task,
)
from crewboard.services.queue import QueuedTask, QueueDecodeError, dequeue_task

logger = get_logger(__name__)
_WORKER_BLOCK_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class _TaskHandler:
    handler: Callable[[QueuedTask], Awaitable[None]]
    attempts_to_delay: Callable[[int], float]
    requeue: Callable[[QueuedTask, float], bool]


def _exponential_delay(attempts: int) -> float:
    return min(
        settings.rq_dispatch_retry_base_seconds * (2 ** max(0, attempts)),
        settings.rq_dispatch_retry_max_seconds,
    )


_TASK_HANDLERS: dict[str, _TaskHandler] = {
    AGENT_RUN_TASK_TYPE: _TaskHandler(
        handler=process_agent_run_queue_task,
        attempts_to_delay=_exponential_delay,
        requeue=lambda task, delay: requeue_agent_run_task(task, delay_seconds=delay),
    ),
}


def _compute_jitter(base_delay: float) -> float:
    return random.uniform(0, min(settings.rq_dispatch_retry_max_seconds / 10, base_delay * 0.1))


async def flush_queue(*, block: bool = False, block_timeout: float = 0) -> int:
    """Drain the queue, dispatching each task to its handler."""
    processed = 0
    while True:
        try:
            task = dequeue_task(
                settings.rq_queue_name,
                redis_url=settings.rq_redis_url,
                block=block,
                block_timeout=block_timeout,
            )
        except QueueDecodeError:
            # Malformed message already logged and removed from the list.
            continue

        if task is None:
            break

        handler = _TASK_HANDLERS.get(task.task_type)
        if handler is None:
            logger.warning(
                "queue.worker.task_unhandled",
                extra={"task_type": task.task_type, "queue_name": settings.rq_queue_name},
            )
            continue

        try:
            await handler.handler(task)
            processed += 1
            logger.info(
                "queue.worker.success",
                extra={"task_type": task.task_type, "attempt": task.attempts},
            )
        except Exception as exc:
            logger.exception(
                "queue.worker.failed",
                extra={"task_type": task.task_type, "attempt": task.attempts, "error": str(exc)},
            )
            base_delay = handler.attempts_to_delay(task.attempts)
            if not handler.requeue(task, base_delay + _compute_jitter(base_delay)):
                logger.warning(
                    "queue.worker.drop_task",
                    extra={"task_type": task.task_type, "attempt": task.attempts},
                )
        await asyncio.sleep(settings.rq_dispatch_throttle_seconds)

    if processed > 0:
        logger.info("queue.worker.batch_complete", extra={"count": processed})
    return processed


async def _run_worker_loop() -> None:
    while True:
        try:
            await flush_queue(
                block=True,
                # Finite timeout so scheduled retries are promoted regularly.
                block_timeout=_WORKER_BLOCK_TIMEOUT_SECONDS,
            )
        except Exception:
            logger.exception(
                "queue.worker.loop_failed",
                extra={"queue_name": settings.rq_queue_name},
            )
            await asyncio.sleep(1)


def run_worker() -> None:
    """Entrypoint for continuous queue processing."""
    configure_logging()
    logger.info(
        "queue.worker.started",
        extra={
            "queue_name": settings.rq_queue_name,
            "throttle_seconds": settings.rq_dispatch_throttle_seconds,
        },
    )
    try:
        asyncio.run(_run_worker_loop())
    finally:
        logger.info("queue.worker.stopped", extra={"queue_name": settings.rq_queue_name})


if __name__ == "__main__":
    run_worker()
