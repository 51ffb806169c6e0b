#!/usr/bin/env python3
"""
Unit tests for shared utilities: duration formatting and issue helpers
"""

import unittest
from unittest.mock import MagicMock
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from utils import (
    StatusDisplay,
    build_exclude_label_query,
    extract_assignee_logins,
    format_assignees_for_display,
    format_duration_sentence,
    format_duration_words,
    generate_issue_url,
    get_issue_number,
    seconds_to_duration,
)


class TestDurationFormatting(unittest.TestCase):
    """Test seconds to days/hours/minutes rendering"""

    def test_seconds_to_duration(self):
        self.assertEqual(seconds_to_duration(3661), {'days': 0, 'hours': 1, 'minutes': 1})
        self.assertEqual(seconds_to_duration(7200), {'days': 0, 'hours': 2, 'minutes': 0})
        self.assertEqual(seconds_to_duration(5430.5), {'days': 0, 'hours': 1, 'minutes': 30})
        self.assertEqual(seconds_to_duration(0), {'days': 0, 'hours': 0, 'minutes': 0})

    def test_duration_parts_rebuild_seconds_within_a_minute(self):
        for seconds in (59, 3661, 86399, 93780, 1234567):
            parts = seconds_to_duration(seconds)
            rebuilt = parts['days'] * 86400 + parts['hours'] * 3600 + parts['minutes'] * 60
            self.assertLessEqual(rebuilt, seconds)
            self.assertLess(seconds - rebuilt, 60)

    def test_duration_sentence(self):
        self.assertEqual(format_duration_sentence(2 * 86400 + 3 * 3600 + 4 * 60 + 5),
                         "2 days, 3 hours and 4 minutes")

    def test_duration_words(self):
        self.assertEqual(format_duration_words(1), '1 second')
        self.assertEqual(format_duration_words(45), '45 seconds')
        self.assertEqual(format_duration_words(60), '1 minute')
        self.assertEqual(format_duration_words(3599), '59 minutes')
        self.assertEqual(format_duration_words(3661), '1 hour')
        self.assertEqual(format_duration_words(86399), '23 hours')
        self.assertEqual(format_duration_words(3 * 86400), '3 days')
        self.assertEqual(format_duration_words(45 * 86400), '1 month')
        self.assertEqual(format_duration_words(400 * 86400), '1 year')


class TestIssueHelpers(unittest.TestCase):
    """Test issue URL, assignee and label query helpers"""

    def test_get_issue_number(self):
        self.assertEqual(get_issue_number({'number': '12'}), 12)
        self.assertEqual(get_issue_number({'issue_number': 7}), 7)
        self.assertIsNone(get_issue_number({'number': 'abc'}))
        self.assertIsNone(get_issue_number({}))

    def test_generate_issue_url(self):
        self.assertEqual(generate_issue_url('org/app', 5), 'https://github.com/org/app/issues/5')
        self.assertEqual(generate_issue_url(None, 5), 'Issue #5')
        self.assertEqual(generate_issue_url(None, None), 'Issue #Unknown')

    def test_extract_assignee_logins(self):
        self.assertEqual(extract_assignee_logins([{'login': 'alice'}, {'id': 3}, 'bob']), ['alice', 'bob'])
        self.assertEqual(extract_assignee_logins(None), [])

    def test_format_assignees_for_display(self):
        self.assertEqual(format_assignees_for_display(['alice', 'bob']), '@alice, @bob')
        self.assertEqual(format_assignees_for_display([]), 'Unassigned')

    def test_build_exclude_label_query(self):
        self.assertEqual(build_exclude_label_query(['wontfix', 'type/chore']),
                         '-label:"wontfix" -label:"type/chore"')
        self.assertEqual(build_exclude_label_query([]), '')


class TestStatusDisplay(unittest.TestCase):
    """Test console status wrapper"""

    def test_warning_prints_with_style(self):
        console = MagicMock()
        status = StatusDisplay(console=console)

        status.warning("rate limited")

        console.print.assert_called_once_with("⚠️  rate limited", style="yellow")

    def test_stop_without_start(self):
        console = MagicMock()
        status = StatusDisplay(console=console)

        status.stop("done")

        console.print.assert_called_once_with("done")


if __name__ == '__main__':
    unittest.main()
