# ruff: noqa: INP001
"""Redis-backed queue helper tests."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from uuid import uuid4

import pytest
import redis

from crewboard.services import queue as queue_module
from crewboard.services.agents.queue import (
    TASK_TYPE,
    decode_agent_run_task,
    enqueue_agent_run,
)
from crewboard.services.queue import (
    QueuedTask,
    QueueDecodeError,
    dequeue_task,
    enqueue_task,
    enqueue_task_with_delay,
    requeue_if_failed,
)


class _FakeRedis:
    def __init__(self) -> None:
        self.values: list[str] = []
        self.scheduled: dict[str, float] = {}

    def lpush(self, key: str, *values: str) -> None:
        del key
        for value in values:
            self.values.insert(0, value)

    def rpop(self, key: str) -> str | None:
        del key
        if not self.values:
            return None
        return self.values.pop()

    def brpop(self, keys: list[str], timeout: float = 0) -> tuple[str, str] | None:
        del timeout
        value = self.rpop(keys[0])
        return (keys[0], value) if value is not None else None

    def zadd(self, key: str, mapping: dict[str, float]) -> None:
        del key
        self.scheduled.update(mapping)

    def zrangebyscore(
        self,
        key: str,
        low: float | str,
        high: float | str,
        *,
        start: int = 0,
        num: int | None = None,
        withscores: bool = False,
    ) -> list[object]:
        del key
        lo = float("-inf") if low == "-inf" else float(low)
        hi = float("inf") if high == "+inf" else float(high)
        due = sorted(
            (score, member) for member, score in self.scheduled.items() if lo <= score <= hi
        )
        window = due[start : start + num] if num is not None else due[start:]
        if withscores:
            return [(member, score) for score, member in window]
        return [member for _, member in window]

    def zrem(self, key: str, *members: str) -> None:
        del key
        for member in members:
            self.scheduled.pop(member, None)


class _DownRedis:
    def lpush(self, key: str, *values: str) -> None:
        raise redis.ConnectionError("connection refused")


@pytest.fixture
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> _FakeRedis:
    fake = _FakeRedis()

    def _fake_redis(redis_url: str | None = None) -> _FakeRedis:
        return fake

    monkeypatch.setattr("crewboard.services.queue._redis_client", _fake_redis)
    return fake


@pytest.mark.parametrize("attempts", [0, 1, 2])
def test_generic_queue_roundtrip(fake_redis: _FakeRedis, attempts: int) -> None:
    payload = QueuedTask(
        task_type="generic-task",
        payload={"name": "agent.run"},
        created_at=datetime.now(UTC),
        attempts=attempts,
    )

    assert enqueue_task(payload, "generic-queue")
    item = dequeue_task("generic-queue")

    assert item is not None
    assert item.task_type == payload.task_type
    assert item.payload == payload.payload
    assert item.attempts == attempts
    assert dequeue_task("generic-queue") is None


def test_queue_is_fifo(fake_redis: _FakeRedis) -> None:
    for name in ("first", "second"):
        enqueue_task(queue_module.new_task("generic-task", {"name": name}), "q")

    first = dequeue_task("q", block=True, block_timeout=1)
    second = dequeue_task("q")

    assert first is not None
    assert second is not None
    assert [first.payload["name"], second.payload["name"]] == ["first", "second"]


@pytest.mark.parametrize("attempts", [0, 1, 2, 3])
def test_generic_requeue_respects_retry_cap(fake_redis: _FakeRedis, attempts: int) -> None:
    payload = QueuedTask(
        task_type="generic-task",
        payload={"attempt": attempts},
        created_at=datetime.now(UTC),
        attempts=attempts,
    )

    if attempts >= 3:
        assert requeue_if_failed(payload, "generic-queue", max_retries=3) is False
        assert fake_redis.values == []
    else:
        assert requeue_if_failed(payload, "generic-queue", max_retries=3) is True
        requeued = dequeue_task("generic-queue")
        assert requeued is not None
        assert requeued.attempts == attempts + 1


def test_delayed_task_is_promoted_once_due(
    fake_redis: _FakeRedis,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    clock = {"now": 1_000.0}
    monkeypatch.setattr(queue_module, "_now_seconds", lambda: clock["now"])
    task = queue_module.new_task("generic-task", {"name": "later"})

    assert enqueue_task_with_delay(task, "q", delay_seconds=30)
    assert fake_redis.values == []
    assert dequeue_task("q") is None

    clock["now"] = 1_031.0
    due = dequeue_task("q")

    assert due is not None
    assert due.payload == {"name": "later"}
    assert fake_redis.scheduled == {}


def test_zero_delay_enqueues_immediately(fake_redis: _FakeRedis) -> None:
    task = queue_module.new_task("generic-task", {})

    assert enqueue_task_with_delay(task, "q", delay_seconds=0)
    assert len(fake_redis.values) == 1
    assert fake_redis.scheduled == {}


def test_enqueue_reports_unavailable_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "crewboard.services.queue._redis_client",
        lambda redis_url=None: _DownRedis(),
    )

    assert enqueue_task(queue_module.new_task("generic-task", {}), "q") is False


def test_malformed_message_raises_decode_error(fake_redis: _FakeRedis) -> None:
    fake_redis.values.append(json.dumps({"unexpected": True}))

    with pytest.raises(QueueDecodeError):
        dequeue_task("q")
    assert fake_redis.values == []


def test_agent_run_payload_roundtrip(fake_redis: _FakeRedis) -> None:
    task_id = uuid4()
    user_id = uuid4()

    assert enqueue_agent_run(task_id, user_id) is True
    queued = dequeue_task("crewboard-agent-runs")

    assert queued is not None
    assert queued.task_type == TASK_TYPE
    decoded = decode_agent_run_task(queued)
    assert decoded.task_id == task_id
    assert decoded.user_id == user_id
    assert decoded.attempts == 0


def test_decode_rejects_other_task_types() -> None:
    with pytest.raises(ValueError, match="Unexpected task_type"):
        decode_agent_run_task(queue_module.new_task("other", {"task_id": str(uuid4())}))
