"""
Unit tests for the dashboard folds: 30-day trend, top services, activity
feed, rating histogram, average rating and response rate.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from truelocal.models import UserType
from truelocal.services.analyticsService import (
    TREND_DAYS,
    UNKNOWN_SERVICE,
    average_rating,
    build_booking_trends,
    merge_recent_activity,
    rank_top_services,
    rating_histogram,
    response_rate,
)
from tests.conftest import row


def _at(day: date, hour: int = 12) -> datetime:
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# build_booking_trends
# ---------------------------------------------------------------------------


class TestBookingTrends:

    def test_always_thirty_points_oldest_first(self):
        today = date(2025, 3, 12)
        points = build_booking_trends([], today)
        assert len(points) == TREND_DAYS == 30
        assert points[0].date == today - timedelta(days=29)
        assert points[-1].date == today
        assert all(p.bookings == 0 and p.revenue == 0 for p in points)

    def test_bookings_bucketed_by_creation_day(self):
        today = date(2025, 3, 12)
        rows = [
            row(created_at=_at(today), total_amount=Decimal("40")),
            row(created_at=_at(today, 1), total_amount=None),
            row(created_at=_at(today - timedelta(days=3)), total_amount=Decimal("10")),
        ]
        points = build_booking_trends(rows, today)
        assert points[-1].bookings == 2
        assert points[-1].revenue == pytest.approx(40)
        assert points[-4].bookings == 1

    def test_rows_outside_window_are_ignored(self):
        today = date(2025, 3, 12)
        rows = [row(created_at=_at(today - timedelta(days=30)), total_amount=Decimal("99"))]
        points = build_booking_trends(rows, today)
        assert sum(p.bookings for p in points) == 0


# ---------------------------------------------------------------------------
# rank_top_services
# ---------------------------------------------------------------------------


class TestRankTopServices:

    def test_grouped_and_sorted_by_count(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        rows = [
            row(service_id=a, total_amount=Decimal("10"), title="A"),
            row(service_id=b, total_amount=Decimal("20"), title="B"),
            row(service_id=b, total_amount=Decimal("30"), title="B"),
        ]
        top = rank_top_services(rows)
        assert [t.service_id for t in top] == [b, a]
        assert top[0].booking_count == 2
        assert top[0].revenue == pytest.approx(50)

    def test_limited_to_five(self):
        rows = [row(service_id=uuid.uuid4(), total_amount=None, title="x") for _ in range(8)]
        assert len(rank_top_services(rows)) == 5

    def test_missing_title_falls_back(self):
        top = rank_top_services([row(service_id=uuid.uuid4(), total_amount=None, title=None)])
        assert top[0].title == UNKNOWN_SERVICE

    def test_bookings_of_deleted_listings_skipped(self):
        a = uuid.uuid4()
        rows = [
            row(service_id=None, total_amount=Decimal("99"), title=None),
            row(service_id=a, total_amount=Decimal("10"), title="A"),
        ]
        top = rank_top_services(rows)
        assert [t.service_id for t in top] == [a]


# ---------------------------------------------------------------------------
# merge_recent_activity
# ---------------------------------------------------------------------------


class TestRecentActivity:

    def _booking(self, created_at, status="pending", provider_name="Pat Provider"):
        return row(
            status=status,
            created_at=created_at,
            service=row(title="Gutter Cleaning"),
            customer_profile=row(full_name="Casey Customer"),
            provider_profile=row(full_name=provider_name),
        )

    def _review(self, created_at, rating=5):
        return row(rating=rating, created_at=created_at, service=row(title="Gutter Cleaning"))

    def test_merged_newest_first(self):
        base = datetime(2025, 3, 12, tzinfo=timezone.utc)
        bookings = [self._booking(base - timedelta(hours=2)), self._booking(base - timedelta(hours=5))]
        reviews = [self._review(base - timedelta(hours=1))]
        items = merge_recent_activity(bookings, reviews, UserType.CUSTOMER)
        assert [i.type for i in items] == ["review", "booking", "booking"]
        assert items[0].title == "Review left"

    def test_other_party_depends_on_role(self):
        base = datetime(2025, 3, 12, tzinfo=timezone.utc)
        booking = self._booking(base)
        as_customer = merge_recent_activity([booking], [], "customer")[0]
        as_provider = merge_recent_activity([booking], [], "provider")[0]
        assert as_customer.description == "Gutter Cleaning with Pat Provider"
        assert as_provider.description == "Gutter Cleaning with Casey Customer"
        assert as_provider.status == "pending"

    def test_missing_name_is_unknown(self):
        booking = self._booking(datetime(2025, 3, 12, tzinfo=timezone.utc), provider_name=None)
        item = merge_recent_activity([booking], [], UserType.CUSTOMER)[0]
        assert item.description.endswith("with Unknown")

    def test_capped_at_ten(self):
        base = datetime(2025, 3, 12, tzinfo=timezone.utc)
        bookings = [self._booking(base - timedelta(minutes=i)) for i in range(8)]
        reviews = [self._review(base - timedelta(minutes=30 + i)) for i in range(5)]
        assert len(merge_recent_activity(bookings, reviews, UserType.PROVIDER)) == 10


# ---------------------------------------------------------------------------
# Ratings and response rate
# ---------------------------------------------------------------------------


class TestRatings:

    def test_histogram_has_five_buckets(self):
        buckets = rating_histogram([5, 5, 4, 1])
        assert [b.rating for b in buckets] == [1, 2, 3, 4, 5]
        assert [b.count for b in buckets] == [1, 0, 0, 1, 2]

    def test_average_rounded_to_one_decimal(self):
        assert average_rating([5, 4, 4]) == 4.3

    def test_average_of_nothing_is_zero(self):
        assert average_rating([]) == 0.0


class TestResponseRate:

    def test_no_conversations_is_full_marks(self):
        assert response_rate([]) == 100

    def test_within_window_counts(self):
        created = datetime(2025, 3, 1, tzinfo=timezone.utc)
        rows = [
            row(created_at=created, last_message_at=created + timedelta(hours=2)),
            row(created_at=created, last_message_at=created + timedelta(hours=30)),
            row(created_at=created, last_message_at=None),
            row(created_at=created, last_message_at=created + timedelta(hours=24)),
        ]
        assert response_rate(rows) == 50
