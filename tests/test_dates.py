import unittest
from datetime import datetime, timezone

from hinichi.services.dates import (
    candidate_dates,
    format_date_for_display,
    subtract_days,
    yesterday_jst,
)


class SubtractDaysTests(unittest.TestCase):
    def test_month_boundary(self):
        self.assertEqual(subtract_days("20260301", 1), "20260228")

    def test_leap_year(self):
        self.assertEqual(subtract_days("20280301", 1), "20280229")

    def test_year_boundary(self):
        self.assertEqual(subtract_days("20260101", 1), "20251231")
        self.assertEqual(subtract_days("20260102", 2), "20251231")

    def test_zero_days(self):
        self.assertEqual(subtract_days("20260210", 0), "20260210")


class CandidateDatesTests(unittest.TestCase):
    def test_pinned_date_is_the_only_candidate(self):
        self.assertEqual(candidate_dates("20260210", allow_retry=False), ["20260210"])

    def test_lookback_window(self):
        self.assertEqual(
            candidate_dates("20260301", allow_retry=True),
            ["20260301", "20260228", "20260227"],
        )

    def test_custom_window(self):
        self.assertEqual(len(candidate_dates("20260210", True, lookback_days=4)), 5)


class YesterdayJSTTests(unittest.TestCase):
    def test_before_jst_midnight(self):
        # 14:59 UTC is 23:59 JST on the same day
        now = datetime(2026, 2, 10, 14, 59, tzinfo=timezone.utc)
        self.assertEqual(yesterday_jst(now), "20260209")

    def test_after_jst_midnight(self):
        # 15:00 UTC is already the next day in JST
        now = datetime(2026, 2, 10, 15, 0, tzinfo=timezone.utc)
        self.assertEqual(yesterday_jst(now), "20260210")

    def test_default_clock_shape(self):
        value = yesterday_jst()
        self.assertEqual(len(value), 8)
        self.assertTrue(value.isdigit())


class DisplayDateTests(unittest.TestCase):
    def test_format(self):
        self.assertEqual(format_date_for_display("20260210"), "2026-02-10")


if __name__ == "__main__":
    unittest.main()
