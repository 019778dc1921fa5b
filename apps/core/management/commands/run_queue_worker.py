from __future__ import annotations

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError  # type: ignore

from apps.core import queues
from config.celery import app as celery_app


class Command(BaseCommand):
    help = "Start a Celery worker consuming the given job queues"

    def add_arguments(self, parser):  # type: ignore
        parser.add_argument("queues", nargs="*", help="Queue names (default: all)")
        parser.add_argument("--concurrency", type=int, help="Worker processes (default: sum of configured limits)")
        parser.add_argument("--loglevel", default="INFO")

    def handle(self, *args, **options):  # type: ignore
        names = options["queues"] or list(queues.ALL_QUEUES)
        unknown = [name for name in names if name not in queues.ALL_QUEUES]
        if unknown:
            raise CommandError(f"Unknown queue(s): {', '.join(unknown)}")

        concurrency = options["concurrency"]
        if concurrency is None:
            limits = settings.JOB_QUEUE_CONCURRENCY
            concurrency = sum(limits.get(name, 1) for name in names)
        if concurrency < 1:
            raise CommandError("--concurrency must be >= 1")

        self.stdout.write(f"Consuming {', '.join(names)} with concurrency {concurrency}")
        celery_app.worker_main([
            "worker",
            "--queues", ",".join(names),
            "--concurrency", str(concurrency),
            "--hostname", f"{'+'.join(names)}@%h",
            "--loglevel", options["loglevel"],
        ])
