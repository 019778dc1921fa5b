"""URL configuration for the scheduling service.

Only operational endpoints are exposed over HTTP; all booking and
notification work arrives through domain events and the job queue.
"""
from django.urls import path, include  # type: ignore

urlpatterns = [
    path('health/', include('apps.core.urls')),
    path('', include('django_prometheus.urls')),
]
