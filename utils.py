#!/usr/bin/env python3
"""
Shared utilities for cycle time reporting
Contains console status display, issue URL/assignee helpers and duration formatting
Used by api_clients.py, cycle_time.py and report_generator.py
"""

from typing import Dict, List, Optional, Any

from rich.console import Console
from rich.live import Live
from rich.text import Text


class StatusDisplay:
    """Handle status updates and warnings on the terminal with rich"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.live = None
        self.current_status = ""

    def start(self, initial_message: str = "Starting..."):
        """Start the status display"""
        self.current_status = initial_message
        text = Text(initial_message, style="cyan")
        self.live = Live(text, console=self.console, refresh_per_second=4)
        self.live.start()

    def update(self, message: str, style: str = "cyan"):
        """Update the status message"""
        self.current_status = message
        if self.live:
            self.live.update(Text(message, style=style))

    def stop(self, final_message: str = None):
        """Stop the status display"""
        if self.live:
            self.live.stop()
            self.live = None
        self.current_status = ""
        if final_message:
            self.console.print(final_message)

    def print(self, message: str, style: str = None):
        """Print a message without disrupting status display"""
        # Live renders console output above the status line
        self.console.print(message, style=style)

    def warning(self, message: str):
        self.print(f"⚠️  {message}", style="yellow")

    def debug(self, message: str):
        self.print(message, style="dim")


def get_issue_number(issue: Dict[str, Any]) -> Optional[int]:
    """
    Extract issue number from various possible fields in issue data.

    Args:
        issue: Issue dictionary that may contain 'number' or 'issue_number'

    Returns:
        Issue number as integer, or None if not found
    """
    number = issue.get('number', issue.get('issue_number'))
    if number is not None:
        try:
            return int(number)
        except (ValueError, TypeError):
            pass
    return None


def generate_issue_url(repository: Optional[str], issue_number: Optional[int]) -> str:
    """
    Generate GitHub issue URL for a repository given as 'owner/name'.

    Returns:
        Issue URL, or a plain issue reference when the repository is unknown
    """
    if repository and issue_number:
        return f"https://github.com/{repository}/issues/{issue_number}"
    return f"Issue #{issue_number}" if issue_number else "Issue #Unknown"


def extract_assignee_logins(raw_assignees: Any) -> List[str]:
    """Assignee logins from the REST format (list of user dicts) or a plain list of names"""
    if not raw_assignees:
        return []
    logins = []
    for assignee in raw_assignees:
        if isinstance(assignee, dict):
            login = assignee.get('login')
            if login:
                logins.append(login)
        elif assignee:
            logins.append(str(assignee))
    return logins


def format_assignees_for_display(assignees: Optional[List[str]], separator: str = ', ') -> str:
    """Format assignee logins for reports, with a placeholder for unassigned issues"""
    if not assignees:
        return "Unassigned"
    return separator.join(f"@{login}" for login in assignees)


def build_exclude_label_query(labels) -> str:
    """GitHub search qualifiers excluding each label, e.g. '-label:"wontfix"'"""
    return ' '.join(f'-label:"{label}"' for label in labels)


# ============================================================================
# DURATION FORMATTING
# ============================================================================

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 24 * 3600


def seconds_to_duration(seconds: float) -> Dict[str, int]:
    """Split a seconds count into whole days, hours and minutes (floor at each step)"""
    remaining = seconds
    days = int(remaining // SECONDS_PER_DAY)
    remaining -= days * SECONDS_PER_DAY
    hours = int(remaining // SECONDS_PER_HOUR)
    remaining -= hours * SECONDS_PER_HOUR
    minutes = int(remaining // SECONDS_PER_MINUTE)
    return {'days': days, 'hours': hours, 'minutes': minutes}


def format_duration_sentence(seconds: float) -> str:
    duration = seconds_to_duration(seconds)
    return f"{duration['days']} days, {duration['hours']} hours and {duration['minutes']} minutes"


def _pluralize(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_duration_words(seconds: float) -> str:
    """
    Render a duration in its largest whole unit, e.g. '1 hour' or '3 days'.

    Units are picked on the minute count: under a minute uses seconds, then
    minutes, hours, days, months (30 days) and years (365 days). Partial
    units are floored.
    """
    seconds = abs(seconds)
    minutes = seconds / SECONDS_PER_MINUTE

    if minutes < 1:
        return _pluralize(int(seconds), 'second')
    if minutes < 60:
        return _pluralize(int(minutes), 'minute')
    if minutes < 60 * 24:
        return _pluralize(int(minutes // 60), 'hour')
    if minutes < 60 * 24 * 30:
        return _pluralize(int(minutes // (60 * 24)), 'day')
    if minutes < 60 * 24 * 365:
        return _pluralize(int(minutes // (60 * 24 * 30)), 'month')
    return _pluralize(int(minutes // (60 * 24 * 365)), 'year')
