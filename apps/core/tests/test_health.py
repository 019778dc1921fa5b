import pytest
from rest_framework.test import APIClient

from apps.core import container as container_module
from apps.core.container import build_container
from apps.core.rate_limit import LocalRateLimitStore


@pytest.fixture
def install(monkeypatch, clock, outbox):
    def installer(broker_up=True):
        built = build_container(
            clock=clock,
            task=outbox,
            ping=lambda: broker_up,
            rate_limit_store=LocalRateLimitStore(),
        )
        monkeypatch.setattr(container_module, "_container", built)
        return built
    return installer


@pytest.mark.django_db
def test_health_reports_database(install):
    install()

    response = APIClient().get("/health/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "up"}


@pytest.mark.django_db
def test_queue_health_lists_counts(install):
    built = install()
    built.queue.enqueue("notifications", "send", {
        "user_id": "u-1", "type": "SYSTEM_ANNOUNCEMENT", "title": "Hi", "message": "Welcome",
    })

    response = APIClient().get("/health/queues/")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["queues"]["notifications"]["waiting"] == 1
    assert body["queues"]["bookings"] == {
        "ready": True, "waiting": 0, "delayed": 0, "active": 0, "completed": 0, "failed": 0,
    }


@pytest.mark.django_db
def test_queue_health_degrades_when_broker_is_down(install):
    install(broker_up=False)

    response = APIClient().get("/health/queues/")

    assert response.status_code == 503
    assert response.json()["queues"]["bookings"] == {"ready": False}


@pytest.mark.django_db
def test_health_endpoints_are_rate_limited(install, settings):
    settings.RATE_LIMITS = {"health": {"max_requests": 2, "window_ms": 60_000}}
    install()
    client = APIClient()

    statuses = [client.get("/health/").status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
