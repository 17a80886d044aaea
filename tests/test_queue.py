import pytest

from happypulse.tasks.queue import TASKS, PostCommitQueue, QueueFull, TaskContext, post_commit_task


@pytest.fixture
def flaky():
    """A registered task that fails a configurable number of times."""
    calls = {"n": 0, "fail_times": 0}

    @post_commit_task("_flaky_test_task")
    async def _task(ctx, value):
        calls["n"] += 1
        if calls["n"] <= calls["fail_times"]:
            raise RuntimeError(f"boom {calls['n']}")
        calls["value"] = value

    yield calls
    TASKS.pop("_flaky_test_task", None)


def _queue(**kwargs) -> PostCommitQueue:
    defaults = dict(max_attempts=3, backoff_seconds=0, max_depth=10)
    defaults.update(kwargs)
    return PostCommitQueue(TaskContext(None, None, None), **defaults)


async def test_job_is_retried_until_it_succeeds(flaky):
    flaky["fail_times"] = 2
    queue = _queue()
    queue.submit("_flaky_test_task", value=42)
    await queue.drain()

    assert flaky["n"] == 3
    assert flaky["value"] == 42
    assert queue.completed == 1
    assert queue.dead_letters == []


async def test_job_is_dead_lettered_after_last_attempt(flaky):
    flaky["fail_times"] = 10
    queue = _queue()
    job = queue.submit("_flaky_test_task", value=1)
    await queue.drain()

    assert flaky["n"] == 3
    assert queue.dead_letters == [job]
    assert job.attempts == 3
    assert job.last_error == "RuntimeError: boom 3"
    assert len(queue) == 0


async def test_full_queue_rejects_instead_of_dropping(flaky):
    queue = _queue(max_depth=2)
    queue.submit("_flaky_test_task", value=1)
    queue.submit("_flaky_test_task", value=2)
    with pytest.raises(QueueFull) as exc:
        queue.submit("_flaky_test_task", value=3)
    assert exc.value.status_code == 503
    assert len(queue) == 2


def test_unknown_task_name():
    with pytest.raises(KeyError):
        _queue().submit("no_such_task")


async def test_workers_process_submitted_jobs(flaky):
    queue = _queue(workers=1)
    queue.start()
    queue.submit("_flaky_test_task", value="async")
    await queue.stop()
    assert flaky["value"] == "async"
