from __future__ import annotations

import threading

from figharvest import progress, task_pool


def failing():
    raise RuntimeError("tool crashed")


def build_jobs():
    return [
        task_pool.Job(index=1, label="page 1", func=lambda: "one"),
        task_pool.Job(index=2, label="page 2", func=failing),
        task_pool.Job(index=3, label="page 3", func=lambda: "three"),
    ]


def test_every_job_counts_once_even_when_failing():
    state = progress.ProgressState(total=3)
    outcomes = task_pool.run_jobs(build_jobs(), state, serial=True)
    assert state.completed_units == 3
    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert outcomes[1].error == "tool crashed"


def test_parallel_matches_serial_outcomes():
    serial = task_pool.run_jobs(build_jobs(), progress.ProgressState(3), serial=True)
    parallel = task_pool.run_jobs(build_jobs(), progress.ProgressState(3), workers=4)
    assert [(o.index, o.ok, o.value) for o in serial] == [(o.index, o.ok, o.value) for o in parallel]


def test_run_jobs_without_jobs_is_a_noop():
    state = progress.ProgressState(total=2)
    assert task_pool.run_jobs([], state) == []
    assert state.completed_units == 0


def test_total_is_at_least_one():
    assert progress.ProgressState(total=0).total == 1
    state = progress.ProgressState(total=5)
    state.reset(-3)
    assert state.total == 1


def test_overshoot_is_clamped():
    state = progress.ProgressState(total=2)
    state.increment(5)
    assert state.completed_units == 5
    assert state.processed == 2
    assert state.percentage() == 100.0
    assert state.is_complete()


def test_finish_closes_undershoot():
    state = progress.ProgressState(total=10)
    state.increment(3)
    assert state.percentage() == 30.0
    assert not state.is_complete()
    state.finish()
    assert state.processed == state.total
    assert state.is_complete()


def test_concurrent_increments_are_not_lost():
    state = progress.ProgressState(total=8000)

    def bump():
        for _ in range(1000):
            state.increment()

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert state.completed_units == 8000
