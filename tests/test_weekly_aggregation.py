#!/usr/bin/env python3
"""
Unit tests for grouping issue cycle records into weekly averages
"""

import unittest
from datetime import datetime, timedelta, timezone
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from cycle_time import IssueCycleRecord, StageDuration, aggregate_weekly


def make_record(number, closed_at, **stage_seconds):
    record = IssueCycleRecord(repository='org/app', number=number, title=f"Issue {number}",
                              closed_at=closed_at)
    for pipeline_id, seconds in stage_seconds.items():
        record.stage_durations[pipeline_id] = StageDuration(pipeline_id, seconds, f"{seconds} seconds")
    return record


WEDNESDAY_W10 = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)
WEDNESDAY_W09 = WEDNESDAY_W10 - timedelta(weeks=1)


class TestAggregateWeekly(unittest.TestCase):
    """Test weekly bucketing and averaging"""

    def test_average_of_issue_totals(self):
        records = [
            make_record(1, WEDNESDAY_W10, progress=3661),
            make_record(2, WEDNESDAY_W10, progress=7200),
        ]

        weekly = aggregate_weekly(records)

        self.assertEqual(len(weekly), 1)
        self.assertEqual(weekly[0].week, '2024-W10')
        self.assertEqual(weekly[0].issue_count, 2)
        self.assertEqual(weekly[0].average_seconds, 5430.5)

    def test_issue_total_sums_all_stages(self):
        weekly = aggregate_weekly([make_record(1, WEDNESDAY_W10, progress=100, review=300)])

        self.assertEqual(weekly[0].average_seconds, 400)

    def test_issues_without_stage_durations_are_excluded(self):
        records = [
            make_record(1, WEDNESDAY_W10, progress=600),
            make_record(2, WEDNESDAY_W10),
        ]

        weekly = aggregate_weekly(records)

        self.assertEqual(weekly[0].issue_count, 1)
        self.assertEqual(weekly[0].average_seconds, 600)
        self.assertEqual([record.number for record in weekly[0].records], [1])

    def test_week_without_qualifying_issues_reports_zero(self):
        weekly = aggregate_weekly([make_record(1, WEDNESDAY_W10)])

        self.assertEqual(len(weekly), 1)
        self.assertEqual(weekly[0].issue_count, 0)
        self.assertEqual(weekly[0].average_seconds, 0)
        self.assertEqual(weekly[0].records, [])

    def test_weeks_sorted_regardless_of_input_order(self):
        records = [
            make_record(1, WEDNESDAY_W10, progress=60),
            make_record(2, WEDNESDAY_W09, progress=120),
            make_record(3, WEDNESDAY_W10 + timedelta(weeks=1), progress=180),
        ]

        weekly = aggregate_weekly(records)

        self.assertEqual([week.week for week in weekly], ['2024-W09', '2024-W10', '2024-W11'])
        self.assertEqual([week.average_seconds for week in weekly], [120, 60, 180])

    def test_week_keys_sort_across_year_boundary(self):
        records = [
            make_record(1, datetime(2025, 1, 2, tzinfo=timezone.utc), progress=60),
            make_record(2, datetime(2024, 12, 20, tzinfo=timezone.utc), progress=60),
        ]

        weekly = aggregate_weekly(records)

        self.assertEqual([week.week for week in weekly], ['2024-W51', '2025-W01'])

    def test_records_without_closure_are_dropped(self):
        weekly = aggregate_weekly([make_record(1, None, progress=60)])

        self.assertEqual(weekly, [])

    def test_empty_input_with_window_weeks(self):
        weekly = aggregate_weekly([], week_keys=['2024-W10', '2024-W09'])

        self.assertEqual([week.week for week in weekly], ['2024-W09', '2024-W10'])
        for week in weekly:
            self.assertEqual(week.issue_count, 0)
            self.assertEqual(week.average_seconds, 0)

    def test_empty_input_without_window(self):
        self.assertEqual(aggregate_weekly([]), [])


if __name__ == '__main__':
    unittest.main()
