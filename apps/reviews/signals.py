"""Keep rating totals in step with review writes."""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import Review
from .ratings import RatingAggregator

aggregator = RatingAggregator()


@receiver(post_save, sender=Review)
def record_rating(sender, instance, created, **kwargs):
    if created:
        aggregator.record(instance)


@receiver(post_delete, sender=Review)
def retract_rating(sender, instance, **kwargs):
    aggregator.retract(instance)
