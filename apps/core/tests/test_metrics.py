from prometheus_client import REGISTRY

from apps.core.metrics import observe_jobs


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_job_outcomes_are_counted_per_queue_and_type(queue, outbox, clock):
    observe_jobs(queue)

    def broken(job):
        raise ValueError("bad payload")

    queue.register_handler("metrics", "ok", lambda job: clock.advance(seconds=2))
    queue.register_handler("metrics", "broken", broken)
    started = _sample("scheduler_jobs_started_total", queue="metrics", job_type="ok")
    completed = _sample("scheduler_jobs_finished_total", queue="metrics", job_type="ok", outcome="completed")
    failed = _sample("scheduler_jobs_finished_total", queue="metrics", job_type="broken", outcome="failed")
    durations = _sample("scheduler_job_duration_seconds_sum", queue="metrics", job_type="ok")

    queue.enqueue("metrics", "ok")
    queue.enqueue("metrics", "broken", max_attempts=1)
    outbox.drain(queue)

    assert _sample("scheduler_jobs_started_total", queue="metrics", job_type="ok") == started + 1
    assert _sample(
        "scheduler_jobs_finished_total", queue="metrics", job_type="ok", outcome="completed"
    ) == completed + 1
    assert _sample(
        "scheduler_jobs_finished_total", queue="metrics", job_type="broken", outcome="failed"
    ) == failed + 1
    assert _sample("scheduler_job_duration_seconds_sum", queue="metrics", job_type="ok") == durations + 2.0
