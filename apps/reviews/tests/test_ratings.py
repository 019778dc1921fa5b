import pytest

from apps.bookings.models import Booking
from apps.bookings.tests.factories import create_booking
from apps.reviews.models import RatingSummary, Review
from apps.reviews.ratings import RatingAggregator


def _summary(subject_type, subject_id):
    return RatingSummary.objects.get(subject_type=subject_type, subject_id=subject_id)


def _review(rating, reviewer_id, listing_id="listing-1"):
    booking = create_booking(status=Booking.Status.COMPLETED)
    return Review.objects.create(
        booking=booking,
        reviewer_id=reviewer_id,
        reviewee_id="owner-1",
        listing_id=listing_id,
        rating=rating,
    )


@pytest.mark.django_db
def test_reviews_update_running_totals():
    _review(5, "renter-1")
    _review(4, "renter-2")
    _review(3, "renter-3", listing_id="")

    owner = _summary(RatingSummary.SubjectType.USER, "owner-1")
    assert (owner.rating_sum, owner.rating_count) == (12, 3)
    assert owner.average_rating == pytest.approx(4.0)

    listing = _summary(RatingSummary.SubjectType.LISTING, "listing-1")
    assert (listing.rating_sum, listing.rating_count) == (9, 2)
    assert listing.average_rating == pytest.approx(4.5)


@pytest.mark.django_db
def test_deleting_a_review_retracts_it():
    keep = _review(2, "renter-1")
    _review(4, "renter-2").delete()

    owner = _summary(RatingSummary.SubjectType.USER, "owner-1")
    assert (owner.rating_sum, owner.rating_count) == (keep.rating, 1)
    assert owner.average_rating == pytest.approx(2.0)


@pytest.mark.django_db
def test_recompute_agrees_with_incremental_totals():
    _review(5, "renter-1")
    _review(2, "renter-2")
    before = {
        (s.subject_type, s.subject_id): s.average_rating for s in RatingSummary.objects.all()
    }

    result = RatingAggregator().recompute_all()

    assert result == {"users": 1, "listings": 1, "corrected": 0}
    after = {(s.subject_type, s.subject_id): s.average_rating for s in RatingSummary.objects.all()}
    assert after == before


@pytest.mark.django_db
def test_recompute_corrects_drift_and_stale_subjects():
    _review(5, "renter-1")
    RatingSummary.objects.filter(subject_type=RatingSummary.SubjectType.USER).update(
        rating_sum=40, rating_count=9, average_rating=4.4,
    )
    RatingSummary.objects.create(
        subject_type=RatingSummary.SubjectType.USER,
        subject_id="ghost",
        rating_sum=3,
        rating_count=1,
        average_rating=3.0,
    )

    result = RatingAggregator().recompute_all()

    assert result["corrected"] == 2
    owner = _summary(RatingSummary.SubjectType.USER, "owner-1")
    assert (owner.rating_sum, owner.rating_count, owner.average_rating) == (5, 1, 5.0)
    ghost = _summary(RatingSummary.SubjectType.USER, "ghost")
    assert (ghost.rating_count, ghost.average_rating) == (0, 0.0)
