"""
Rating aggregation

Each review adjusts the running sum and count of its subjects in the same
transaction that writes the review, so averages are current without a
table scan. The periodic :meth:`RatingAggregator.recompute_all` pass
rebuilds the totals from the reviews themselves and corrects any drift;
both paths produce the same average.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from django.db import transaction
from django.db.models import Count, Sum

from .models import RatingSummary, Review

logger = logging.getLogger(__name__)


def _subjects(review: Review) -> List[Tuple[str, str]]:
    subjects = [(RatingSummary.SubjectType.USER, review.reviewee_id)]
    if review.listing_id:
        subjects.append((RatingSummary.SubjectType.LISTING, review.listing_id))
    return subjects


def _average(rating_sum: int, rating_count: int) -> float:
    return rating_sum / rating_count if rating_count else 0.0


class RatingAggregator:
    def record(self, review: Review) -> None:
        """Add a new review to its subjects' totals."""
        self._apply(review, sign=1)

    def retract(self, review: Review) -> None:
        """Remove a deleted review from its subjects' totals."""
        self._apply(review, sign=-1)

    def _apply(self, review: Review, sign: int) -> None:
        with transaction.atomic():
            for subject_type, subject_id in _subjects(review):
                summary, _ = RatingSummary.objects.select_for_update().get_or_create(
                    subject_type=subject_type,
                    subject_id=subject_id,
                )
                summary.rating_sum = max(summary.rating_sum + sign * review.rating, 0)
                summary.rating_count = max(summary.rating_count + sign, 0)
                summary.average_rating = _average(summary.rating_sum, summary.rating_count)
                summary.save(update_fields=["rating_sum", "rating_count", "average_rating", "updated_at"])

    def recompute_all(self) -> Dict[str, int]:
        """Rebuild every subject's totals from its reviews."""
        users = self._rebuild(
            RatingSummary.SubjectType.USER,
            Review.objects.order_by().values("reviewee_id").annotate(total=Sum("rating"), count=Count("id")),
            "reviewee_id",
        )
        listings = self._rebuild(
            RatingSummary.SubjectType.LISTING,
            Review.objects.exclude(listing_id="").order_by().values("listing_id").annotate(
                total=Sum("rating"), count=Count("id")
            ),
            "listing_id",
        )
        logger.info(
            f"Recomputed ratings for {users['subjects']} users and {listings['subjects']} listings "
            f"({users['corrected'] + listings['corrected']} corrected)"
        )
        return {
            "users": users["subjects"],
            "listings": listings["subjects"],
            "corrected": users["corrected"] + listings["corrected"],
        }

    def _rebuild(self, subject_type: str, rows: Iterable[dict], id_field: str) -> Dict[str, int]:
        subjects = 0
        corrected = 0
        seen = set()
        for row in rows:
            subject_id = row[id_field]
            seen.add(subject_id)
            subjects += 1
            try:
                with transaction.atomic():
                    summary, _ = RatingSummary.objects.select_for_update().get_or_create(
                        subject_type=subject_type,
                        subject_id=subject_id,
                    )
                    if summary.rating_sum != row["total"] or summary.rating_count != row["count"]:
                        corrected += 1
                        summary.rating_sum = row["total"]
                        summary.rating_count = row["count"]
                        summary.average_rating = _average(row["total"], row["count"])
                        summary.save(update_fields=["rating_sum", "rating_count", "average_rating", "updated_at"])
            except Exception as e:
                logger.error(f"Error recomputing rating for {subject_type}:{subject_id}: {e}", exc_info=True)

        # Subjects whose reviews were all removed.
        stale = RatingSummary.objects.filter(subject_type=subject_type, rating_count__gt=0).exclude(
            subject_id__in=seen
        )
        corrected += stale.update(rating_sum=0, rating_count=0, average_rating=0.0)
        return {"subjects": subjects, "corrected": corrected}
