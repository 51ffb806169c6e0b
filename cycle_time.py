#!/usr/bin/env python3
"""
ZenHub Cycle Time Reporter

Searches GitHub for issues closed in the last few weeks, reads their ZenHub
pipeline history, measures the time each issue spent in the configured
pipelines and reports the weekly average cycle time.
"""
# /// script
# requires-python = ">=3.8"
# dependencies = [
#     "requests",
#     "pandas",
#     "matplotlib",
#     "seaborn",
#     "python-dotenv",
#     "rich",
# ]
# ///

import argparse
import dataclasses
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
import requests
from dotenv import load_dotenv

from api_clients import GitHubClient, ZenHubClient
from config import (
    DEFAULT_CONFIG_FILE,
    REPORT_OUTPUT_DIR,
    TRANSFER_EVENT_TYPE,
    ConfigurationError,
    CycleTimeConfig,
    PipelineDefinition,
    load_cycle_time_config,
    require_tokens,
    validate_configuration,
)
from report_generator import ReportGenerator
from utils import (
    StatusDisplay,
    extract_assignee_logins,
    format_duration_sentence,
    format_duration_words,
    get_issue_number,
)
from utils_dates import (
    format_date_iso,
    get_search_window,
    iso_week_key,
    iso_week_keys_between,
    parse_issue_date,
)


class CycleTimeError(Exception):
    """Base class for errors raised while computing cycle times"""
    pass


class NegativeDurationError(CycleTimeError):
    """Raised when a pipeline exit is timestamped before its entry"""

    def __init__(self, pipeline_id: str, seconds: int):
        self.pipeline_id = pipeline_id
        self.seconds = seconds
        super().__init__(f"pipeline '{pipeline_id}' exit precedes entry by {-seconds}s")


@dataclass
class Issue:
    """Closed GitHub issue as returned by the search API"""
    repository: str
    number: int
    title: str
    closed_at: Optional[datetime]
    assignees: List[str] = field(default_factory=list)

    @classmethod
    def from_github(cls, raw: Dict[str, Any], repository: str) -> 'Issue':
        return cls(
            repository=repository,
            number=get_issue_number(raw),
            title=raw.get('title', ''),
            closed_at=parse_issue_date(raw.get('closed_at')),
            assignees=extract_assignee_logins(raw.get('assignees')),
        )


def _pipeline_name(pipeline: Any) -> Optional[str]:
    if isinstance(pipeline, dict) and isinstance(pipeline.get('name'), str):
        return pipeline['name']
    return None


@dataclass
class TransitionEvent:
    """Move of an issue from one ZenHub pipeline to another"""
    from_stage: Optional[str]
    to_stage: Optional[str]
    occurred_at: Optional[datetime]

    @classmethod
    def from_zenhub(cls, raw: Dict[str, Any]) -> 'TransitionEvent':
        return cls(
            from_stage=_pipeline_name(raw.get('from_pipeline')),
            to_stage=_pipeline_name(raw.get('to_pipeline')),
            occurred_at=parse_issue_date(raw.get('created_at')),
        )


@dataclass
class StageDuration:
    """Time an issue spent in one pipeline"""
    pipeline_id: str
    seconds: int
    words: str
    # True when the issue never left the pipeline and closure time was used as exit
    still_in_stage_at_close: bool = False


@dataclass
class IssueCycleRecord:
    """Per-issue result: stage durations keyed by pipeline id, in configuration order"""
    repository: str
    number: int
    title: str
    closed_at: Optional[datetime]
    assignees: List[str] = field(default_factory=list)
    stage_durations: Dict[str, StageDuration] = field(default_factory=dict)
    done_at: Optional[datetime] = None
    data_quality_issues: List[str] = field(default_factory=list)

    @property
    def has_stage_durations(self) -> bool:
        return bool(self.stage_durations)

    @property
    def total_seconds(self) -> Optional[int]:
        """Sum of stage durations; time outside configured pipelines is not counted"""
        if not self.stage_durations:
            return None
        return sum(stage.seconds for stage in self.stage_durations.values())

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'repository': self.repository,
            'number': self.number,
            'title': self.title,
            'assignees': list(self.assignees),
            'closedAt': self.closed_at.isoformat() if self.closed_at else None,
            'doneAt': self.done_at.isoformat() if self.done_at else None,
            'columnTimes': {
                pipeline_id: {
                    'seconds': stage.seconds,
                    'words': stage.words,
                    'stillInStageAtClose': stage.still_in_stage_at_close,
                }
                for pipeline_id, stage in self.stage_durations.items()
            },
        }
        if self.has_stage_durations:
            data['sum'] = format_duration_sentence(self.total_seconds)
        if self.data_quality_issues:
            data['dataQualityIssues'] = list(self.data_quality_issues)
        return data


@dataclass
class WeeklyCycleTime:
    """Average cycle time of the issues closed in one ISO week"""
    week: str
    issue_count: int
    average_seconds: float
    records: List[IssueCycleRecord] = field(default_factory=list)


# ============================================================================
# EVENT CLASSIFICATION AND STAGE TIMES
# ============================================================================

def classify_transfer_events(raw_events: Optional[Iterable[Dict[str, Any]]]) -> List[TransitionEvent]:
    """Keep only pipeline transfer events, in the order the API returned them"""
    if not raw_events:
        return []
    return [
        TransitionEvent.from_zenhub(event)
        for event in raw_events
        if isinstance(event, dict) and event.get('type') == TRANSFER_EVENT_TYPE
    ]


def _first_matching_event(events: Sequence[TransitionEvent], attribute: str,
                          prefix: str) -> Optional[TransitionEvent]:
    # Live stage names may carry suffixes (emoji, numbering), so configured names match as prefixes
    for event in events:
        stage_name = getattr(event, attribute)
        if stage_name is None or event.occurred_at is None:
            continue
        if stage_name.startswith(prefix):
            return event
    return None


def _elapsed_seconds(pipeline_id: str, start: datetime, end: datetime) -> int:
    seconds = int((end - start).total_seconds())
    if seconds < 0:
        raise NegativeDurationError(pipeline_id, seconds)
    return seconds


def calculate_stage_times(issue: Issue, events: Sequence[TransitionEvent],
                          pipelines: Sequence[PipelineDefinition],
                          end_pipeline: Optional[str] = None,
                          status: Optional[StatusDisplay] = None) -> IssueCycleRecord:
    """
    Measure the time an issue spent in each configured pipeline.

    For every pipeline the entry is the first event moving the issue into it and
    the exit the first event moving it out. An issue that entered a pipeline but
    never left it is charged until its closure time. Pipelines the issue never
    entered are left out of the record.

    Args:
        issue: Closed issue the events belong to
        events: Classified transfer events, in API order
        pipelines: Pipelines to measure, in configuration order
        end_pipeline: Name prefix of the pipeline marking an issue as done
        status: Display used to warn about out-of-order timestamps

    Returns:
        IssueCycleRecord; negative durations are reported in
        data_quality_issues instead of being recorded
    """
    record = IssueCycleRecord(
        repository=issue.repository,
        number=issue.number,
        title=issue.title,
        closed_at=issue.closed_at,
        assignees=list(issue.assignees),
    )

    for pipeline in pipelines:
        entry = _first_matching_event(events, 'to_stage', pipeline.name)
        if entry is None:
            continue

        exit_event = _first_matching_event(events, 'from_stage', pipeline.name)
        if exit_event is not None:
            exit_time = exit_event.occurred_at
        elif issue.closed_at is not None:
            exit_time = issue.closed_at
        else:
            continue

        try:
            seconds = _elapsed_seconds(pipeline.id, entry.occurred_at, exit_time)
        except NegativeDurationError as e:
            record.data_quality_issues.append(str(e))
            if status:
                status.warning(f"{issue.repository}#{issue.number}: {e}")
            continue

        record.stage_durations[pipeline.id] = StageDuration(
            pipeline_id=pipeline.id,
            seconds=seconds,
            words=format_duration_words(seconds),
            still_in_stage_at_close=exit_event is None,
        )

    if end_pipeline:
        done_transition = _first_matching_event(events, 'to_stage', end_pipeline)
        if done_transition is not None:
            record.done_at = done_transition.occurred_at

    return record


# ============================================================================
# WEEKLY AGGREGATION
# ============================================================================

def aggregate_weekly(records: Iterable[IssueCycleRecord],
                     week_keys: Optional[Iterable[str]] = None) -> List[WeeklyCycleTime]:
    """
    Group records by the ISO week of their closure and average their cycle times.

    Records without a closure timestamp are dropped. Within a week only records
    with at least one stage duration count toward the average; a week without
    any reports 0 issues and an average of 0.

    Args:
        records: Issue cycle records from any number of repositories
        week_keys: Weeks to report even when no issue closed in them

    Returns:
        One WeeklyCycleTime per week, sorted ascending by week key
    """
    dated = [record for record in records if record.closed_at is not None]
    frame = pd.DataFrame({
        'week': [iso_week_key(record.closed_at) for record in dated],
        'total_seconds': [
            float(record.total_seconds) if record.has_stage_durations else float('nan')
            for record in dated
        ],
    }, columns=['week', 'total_seconds'])

    totals = pd.DataFrame(columns=['sum', 'count'])
    if not frame.empty:
        # count skips NaN, so issues without stage durations drop out of the average
        totals = frame.groupby('week')['total_seconds'].agg(['sum', 'count'])

    weeks = set(totals.index) | set(week_keys or [])

    weekly = []
    for week in sorted(weeks):
        issue_count = int(totals.at[week, 'count']) if week in totals.index else 0
        total_seconds = float(totals.at[week, 'sum']) if issue_count else 0.0
        average = total_seconds / issue_count if issue_count else 0.0

        weekly.append(WeeklyCycleTime(
            week=week,
            issue_count=issue_count,
            average_seconds=average,
            records=[
                record for record in dated
                if record.has_stage_durations and iso_week_key(record.closed_at) == week
            ],
        ))

    return weekly


# ============================================================================
# ANALYZER
# ============================================================================

class CycleTimeAnalyzer:
    """Fetch closed issues and their pipeline history, then compute weekly cycle times"""

    def __init__(self, config: CycleTimeConfig, github: Optional[GitHubClient] = None,
                 zenhub: Optional[ZenHubClient] = None, status: Optional[StatusDisplay] = None,
                 use_cache: bool = True):
        self.config = config
        self.status = status or StatusDisplay()
        self.github = github or GitHubClient(config.github_token, status=self.status,
                                             use_cache=use_cache, debug=config.debug)
        self.zenhub = zenhub or ZenHubClient(config.zenhub_token, status=self.status,
                                             use_cache=use_cache, debug=config.debug)

    def build_issue_record(self, repo_id: int, issue: Issue) -> IssueCycleRecord:
        raw_events = self.zenhub.fetch_issue_events(repo_id, issue.number)
        events = classify_transfer_events(raw_events)
        return calculate_stage_times(issue, events, self.config.pipelines,
                                     self.config.end_pipeline, status=self.status)

    def records_for_repository(self, repository: str, start: date, end: date) -> List[IssueCycleRecord]:
        """Cycle records for every issue of one repository closed within the window"""
        try:
            repo_id = self.github.get_repository_id(repository)
            raw_issues = self.github.search_closed_issues(repository, start, end, self.config.exclude_labels)
        except (requests.RequestException, ValueError) as e:
            self.status.warning(f"Skipping {repository}: {e}")
            return []

        issues = [Issue.from_github(raw, repository) for raw in raw_issues]
        issues = [issue for issue in issues if issue.number is not None]
        self.status.print(f"🔍 {repository}: {len(issues)} issues closed "
                          f"{format_date_iso(start)}..{format_date_iso(end)}")
        if not issues:
            return []

        # map keeps submission order, so results are deterministic whatever finishes first
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            return list(pool.map(lambda issue: self.build_issue_record(repo_id, issue), issues))

    def collect_records(self, start: date, end: date) -> List[IssueCycleRecord]:
        workers = min(self.config.max_workers, len(self.config.repos))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            per_repository = list(pool.map(
                lambda repository: self.records_for_repository(repository, start, end),
                self.config.repos,
            ))
        return [record for records in per_repository for record in records]

    def get_cycle_times(self, reference: date) -> List[WeeklyCycleTime]:
        """Weekly cycle times for the configured window ending with the reference week"""
        start, end = get_search_window(reference, self.config.weeks_back)

        self.status.start(f"🔄 Fetching issues closed {format_date_iso(start)}..{format_date_iso(end)}...")
        try:
            records = self.collect_records(start, end)
        finally:
            self.status.stop()

        self.status.print(f"✅ Calculated pipeline times for {len(records)} issues", style="green")
        return aggregate_weekly(records, iso_week_keys_between(start, end))


def _apply_overrides(config: CycleTimeConfig, args: argparse.Namespace) -> CycleTimeConfig:
    overrides = {}
    if args.weeks is not None:
        if args.weeks < 1:
            raise ConfigurationError("--weeks must be a positive integer")
        overrides['weeks_back'] = args.weeks
    if args.details:
        overrides['print_issue_details'] = True
    if args.debug:
        overrides['debug'] = True
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function"""
    parser = argparse.ArgumentParser(
        description='Report weekly ZenHub pipeline cycle times for recently closed GitHub issues',
        epilog='''
Configuration:
  Repositories, pipelines and excluded labels are read from the JSON config
  file. Tokens come from gitHubToken/zenHubToken in that file or from the
  GITHUB_TOKEN/ZENHUB_TOKEN environment variables (.env is loaded).

Cache Management:
  API responses are cached for a few hours under .cache/github and .cache/zenhub.
    --no-cache              Always query the APIs
    --clear-cache           Remove cached responses and exit
        ''',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILE, help='Path to the JSON configuration file')
    parser.add_argument('--date', type=date.fromisoformat, help='Reference date YYYY-MM-DD (default: today, UTC)')
    parser.add_argument('--weeks', type=int, help='Weeks before the reference week to include')
    parser.add_argument('--details', action='store_true', help='Print per-issue pipeline times for every week')
    parser.add_argument('--debug', action='store_true', help='Print every API response')
    parser.add_argument('--output-dir', nargs='?', const=REPORT_OUTPUT_DIR,
                        help=f'Write a markdown report and chart (default directory: {REPORT_OUTPUT_DIR})')
    parser.add_argument('--no-cache', action='store_true', help='Bypass the API response cache')
    parser.add_argument('--clear-cache', action='store_true', help='Clear cached API responses and exit')
    args = parser.parse_args(argv)

    load_dotenv()
    status = StatusDisplay()

    # Configuration problems are fatal and must stop the run before any API call
    try:
        config = _apply_overrides(load_cycle_time_config(args.config), args)
    except ConfigurationError as e:
        status.print(f"❌ Configuration error: {e}", style="red bold")
        return 1

    if args.clear_cache:
        GitHubClient(config.github_token, status=status).clear_cache()
        ZenHubClient(config.zenhub_token, status=status).clear_cache()
        return 0

    try:
        require_tokens(config)
    except ConfigurationError as e:
        status.print(f"❌ Configuration error: {e}", style="red bold")
        return 1

    for problem in validate_configuration(config)['issues']:
        status.warning(problem)

    reference = args.date or datetime.now(timezone.utc).date()
    analyzer = CycleTimeAnalyzer(config, status=status, use_cache=not args.no_cache)

    try:
        weekly = analyzer.get_cycle_times(reference)
    except KeyboardInterrupt:
        status.print("\n⚠️  Process interrupted by user. No report generated.", style="yellow bold")
        return 130

    report = ReportGenerator(config.pipelines)

    if config.print_issue_details:
        for week in weekly:
            status.print(f"Week {week.week}", style="bold")
            status.console.print_json(report.format_issue_details(week))

    for line in report.generate_summary_lines(weekly):
        status.print(line)

    if args.output_dir:
        start, end = get_search_window(reference, config.weeks_back)
        written = report.write_report(weekly, args.output_dir, config.repos, start, end)
        for path in written.values():
            status.print(f"💾 Wrote {path}", style="blue")

    return 0


if __name__ == "__main__":
    sys.exit(main())
