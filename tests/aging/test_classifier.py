"""Unit tests for the aging classifier."""

import unittest
from datetime import date, datetime, timedelta, timezone

from ar_aging.aging.classifier import (
    BUCKET_COLUMNS,
    AgingBucket,
    bucket_amounts,
    classify,
    to_utc_date,
)

AS_OF = date(2024, 6, 30)


class TestClassify(unittest.TestCase):
    """Test cases for classify."""

    def test_45_days_past_due_is_31_60(self):
        result = classify(AS_OF - timedelta(days=45), AS_OF)
        self.assertEqual(result.past_due_days, 45)
        self.assertEqual(result.bucket, AgingBucket.DAYS_31_60)
        self.assertEqual(result.aging_category, "Aging 31-60")

    def test_bucket_boundaries(self):
        cases = [
            (0, AgingBucket.CURRENT),
            (1, AgingBucket.DAYS_1_30),
            (30, AgingBucket.DAYS_1_30),
            (31, AgingBucket.DAYS_31_60),
            (60, AgingBucket.DAYS_31_60),
            (61, AgingBucket.DAYS_61_90),
            (90, AgingBucket.DAYS_61_90),
            (91, AgingBucket.DAYS_91_120),
            (120, AgingBucket.DAYS_91_120),
            (121, AgingBucket.DAYS_121_PLUS),
            (400, AgingBucket.DAYS_121_PLUS),
        ]
        for days, bucket in cases:
            with self.subTest(days=days):
                self.assertEqual(classify(AS_OF - timedelta(days=days), AS_OF).bucket, bucket)

    def test_future_due_date_clamps_to_current(self):
        result = classify(AS_OF + timedelta(days=10), AS_OF)
        self.assertEqual(result.past_due_days, 0)
        self.assertEqual(result.bucket, AgingBucket.CURRENT)
        self.assertEqual(result.aging_category, "Not Past Due")

    def test_missing_or_bad_due_date_is_current(self):
        for value in (None, "", "not a date", 12345):
            with self.subTest(value=value):
                result = classify(value, AS_OF)
                self.assertEqual(result.past_due_days, 0)
                self.assertEqual(result.bucket, AgingBucket.CURRENT)

    def test_time_of_day_and_timezone_do_not_shift_days(self):
        # 23:30 at UTC-7 on June 29 is already June 30 in UTC.
        as_of = datetime(2024, 6, 29, 23, 30, tzinfo=timezone(timedelta(hours=-7)))
        self.assertEqual(classify("2024-06-29", as_of).past_due_days, 1)
        late_utc = datetime(2024, 6, 30, 23, 59, tzinfo=timezone.utc)
        early_utc = datetime(2024, 6, 30, 0, 1, tzinfo=timezone.utc)
        self.assertEqual(
            classify("2024-05-31T18:00:00Z", late_utc).past_due_days,
            classify("2024-05-31T18:00:00Z", early_utc).past_due_days,
        )

    def test_iso_string_due_date(self):
        self.assertEqual(classify("2024-06-01T00:00:00", AS_OF).past_due_days, 29)


class TestBucketAmounts(unittest.TestCase):
    """Test cases for bucket_amounts."""

    def test_exactly_one_column_carries_the_amount(self):
        for bucket in BUCKET_COLUMNS:
            with self.subTest(bucket=bucket):
                amounts = bucket_amounts(bucket, 250.5)
                self.assertEqual(sum(amounts.values()), 250.5)
                self.assertEqual(sum(1 for v in amounts.values() if v), 1)
                self.assertEqual(amounts[BUCKET_COLUMNS[bucket]], 250.5)

    def test_current_has_no_bucket_amount(self):
        amounts = bucket_amounts(AgingBucket.CURRENT, 100.0)
        self.assertEqual(set(amounts.values()), {0.0})


class TestToUtcDate(unittest.TestCase):
    """Test cases for to_utc_date."""

    def test_aware_datetime_is_converted_to_utc(self):
        value = datetime(2024, 1, 1, 20, 0, tzinfo=timezone(timedelta(hours=-8)))
        self.assertEqual(to_utc_date(value), date(2024, 1, 2))

    def test_plain_date_passes_through(self):
        self.assertEqual(to_utc_date(date(2024, 3, 4)), date(2024, 3, 4))

    def test_unparseable_returns_none(self):
        self.assertIsNone(to_utc_date("31/31/2024"))
        self.assertIsNone(to_utc_date("   "))


if __name__ == "__main__":
    unittest.main()
