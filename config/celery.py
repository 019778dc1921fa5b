import os

from celery import Celery

from apps.core.schedule import FIRE_TRIGGER_TASK, build_schedule

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("rental_scheduling")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Triggers)
# ============================================================================
# Every entry sends scheduling.fire_trigger(name); the handlers themselves
# are bound to the trigger table by the process container.

app.conf.beat_schedule = build_schedule().beat_schedule(FIRE_TRIGGER_TASK)
