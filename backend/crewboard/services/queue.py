"""Redis list-backed task queue with delayed delivery through a sorted set."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, cast

import redis

from crewboard.core.config import settings
from crewboard.core.logging import get_logger
from crewboard.core.time import utcnow

logger = get_logger(__name__)

_SCHEDULED_SUFFIX = ":scheduled"
_DRAIN_BATCH_SIZE = 100


class QueueDecodeError(ValueError):
    """A queued message could not be parsed into a ``QueuedTask``."""


@dataclass(frozen=True)
class QueuedTask:
    """Envelope for one unit of background work."""

    task_type: str
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "payload": self.payload,
                "created_at": self.created_at.isoformat(),
                "attempts": self.attempts,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> QueuedTask:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        try:
            data = json.loads(text)
            return cls(
                task_type=str(data["task_type"]),
                payload=dict(data.get("payload") or {}),
                created_at=datetime.fromisoformat(data["created_at"]),
                attempts=int(data.get("attempts", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise QueueDecodeError(f"Malformed queued task: {text[:200]!r}") from exc


def _redis_client(redis_url: str | None = None) -> redis.Redis:
    return redis.Redis.from_url(redis_url or settings.rq_redis_url)


def _scheduled_key(queue_name: str) -> str:
    return f"{queue_name}{_SCHEDULED_SUFFIX}"


def _now_seconds() -> float:
    return time.time()


def _promote_due_tasks(client: redis.Redis, queue_name: str) -> float | None:
    """Move due scheduled tasks onto the list; return seconds until the next one."""
    scheduled = _scheduled_key(queue_name)
    now = _now_seconds()
    due = cast(
        list[str | bytes],
        client.zrangebyscore(scheduled, "-inf", now, start=0, num=_DRAIN_BATCH_SIZE),
    )
    if due:
        client.lpush(queue_name, *due)
        client.zrem(scheduled, *due)
        logger.debug(
            "queue.scheduled.promoted",
            extra={"queue_name": queue_name, "count": len(due)},
        )

    upcoming = cast(
        list[tuple[str | bytes, float]],
        client.zrangebyscore(scheduled, now, "+inf", start=0, num=1, withscores=True),
    )
    if not upcoming:
        return None
    return max(0.0, float(upcoming[0][1]) - now)


def enqueue_task(
    task: QueuedTask,
    queue_name: str,
    *,
    redis_url: str | None = None,
) -> bool:
    """Push a task onto the queue; False when Redis is unavailable."""
    try:
        _redis_client(redis_url=redis_url).lpush(queue_name, task.to_json())
    except redis.RedisError as exc:
        logger.warning(
            "queue.enqueue_failed",
            extra={"task_type": task.task_type, "queue_name": queue_name, "error": str(exc)},
        )
        return False
    logger.info(
        "queue.enqueued",
        extra={"task_type": task.task_type, "queue_name": queue_name, "attempt": task.attempts},
    )
    return True


def enqueue_task_with_delay(
    task: QueuedTask,
    queue_name: str,
    *,
    delay_seconds: float,
    redis_url: str | None = None,
) -> bool:
    """Deliver a task after ``delay_seconds`` (immediately when zero)."""
    delay = max(0.0, float(delay_seconds))
    if delay == 0:
        return enqueue_task(task, queue_name, redis_url=redis_url)
    try:
        _redis_client(redis_url=redis_url).zadd(
            _scheduled_key(queue_name),
            {task.to_json(): _now_seconds() + delay},
        )
    except redis.RedisError as exc:
        logger.warning(
            "queue.schedule_failed",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "delay_seconds": delay,
                "error": str(exc),
            },
        )
        return False
    logger.info(
        "queue.scheduled",
        extra={"task_type": task.task_type, "queue_name": queue_name, "delay_seconds": delay},
    )
    return True


def dequeue_task(
    queue_name: str,
    *,
    redis_url: str | None = None,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedTask | None:
    """Pop the oldest task, optionally blocking until one is available."""
    client = _redis_client(redis_url=redis_url)
    next_due = _promote_due_tasks(client, queue_name)
    raw: str | bytes | None
    if block:
        timeout = max(0.0, float(block_timeout))
        if next_due is not None:
            timeout = min(timeout, next_due) if timeout else next_due
        popped = cast(
            tuple[str | bytes, str | bytes] | None,
            client.brpop([queue_name], timeout=timeout),
        )
        raw = popped[1] if popped is not None else None
    else:
        raw = cast(str | bytes | None, client.rpop(queue_name))
    if raw is None:
        return None
    try:
        return QueuedTask.from_json(raw)
    except QueueDecodeError:
        logger.exception("queue.decode_failed", extra={"queue_name": queue_name})
        raise


def requeue_if_failed(
    task: QueuedTask,
    queue_name: str,
    *,
    max_retries: int,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a failed task with one more attempt recorded.

    Returns False, dropping the task, once ``max_retries`` is exceeded.
    """
    retried = replace(task, attempts=task.attempts + 1)
    if retried.attempts > max_retries:
        logger.warning(
            "queue.drop_failed_task",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "attempts": retried.attempts,
            },
        )
        return False
    return enqueue_task_with_delay(
        retried,
        queue_name,
        delay_seconds=delay_seconds,
        redis_url=redis_url,
    )


def new_task(task_type: str, payload: dict[str, Any]) -> QueuedTask:
    return QueuedTask(task_type=task_type, payload=payload, created_at=utcnow())
