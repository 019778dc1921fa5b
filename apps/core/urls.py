from django.urls import path  # type: ignore

from .views import HealthView, QueueHealthView

urlpatterns = [
    path("", HealthView.as_view(), name="health"),
    path("queues/", QueueHealthView.as_view(), name="health-queues"),
]
