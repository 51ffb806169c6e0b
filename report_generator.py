#!/usr/bin/env python3
"""
Report Generation Module for ZenHub cycle times
Handles the weekly summary sentences, per-issue details, markdown report and chart
"""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from config import CHART_FILE, REPORT_FILE, PipelineDefinition
from utils import (
    SECONDS_PER_DAY,
    format_assignees_for_display,
    format_duration_sentence,
    generate_issue_url,
)
from utils_dates import format_date_iso


class ReportGenerator:
    """Formats weekly cycle time results for the console and for markdown files"""

    def __init__(self, pipelines: Sequence[PipelineDefinition] = ()):
        self.pipelines = list(pipelines)

    def format_week_summary(self, week) -> str:
        """Fixed sentence reported for every week"""
        return (f"Average cycle time for {week.issue_count} issues in week {week.week} "
                f"is {format_duration_sentence(week.average_seconds)}.")

    def generate_summary_lines(self, weekly) -> List[str]:
        return [self.format_week_summary(week) for week in weekly]

    def format_issue_details(self, week) -> str:
        """JSON rendering of the qualifying issues of one week"""
        return json.dumps([record.to_dict() for record in week.records], indent=2)

    def _stage_headers(self) -> List[str]:
        return [pipeline.id for pipeline in self.pipelines]

    def generate_header(self, repos: Sequence[str], start: date, end: date) -> List[str]:
        """Generate report header with metadata"""
        current_date = datetime.now().strftime("%B %d, %Y")
        return [
            "# Weekly Cycle Time Report",
            "",
            f"**Repositories:** {', '.join(repos)}   ",
            f"**Report Date:** {current_date}   ",
            f"**Closed Between:** {format_date_iso(start)} and {format_date_iso(end)}   ",
            f"**Pipelines:** {', '.join(pipeline.name for pipeline in self.pipelines) or 'None'}",
            "",
        ]

    def generate_weekly_table(self, weekly) -> List[str]:
        lines = [
            "## 📊 Weekly Averages",
            "",
            "| Week | Issues | Average cycle time |",
            "|------|--------|--------------------|",
        ]
        for week in weekly:
            lines.append(f"| {week.week} | {week.issue_count} | {format_duration_sentence(week.average_seconds)} |")
        lines.append("")
        return lines

    def generate_issue_table(self, weekly) -> List[str]:
        """Per-issue stage durations, one section per week with qualifying issues"""
        stage_headers = self._stage_headers()
        lines = ["## 🔍 Issue Details", ""]

        for week in weekly:
            if not week.records:
                continue
            lines.append(f"### Week {week.week}")
            lines.append("")
            lines.append("| Issue | Title | Assignees | " + " | ".join(stage_headers) + " | Total |")
            lines.append("|" + "---|" * (len(stage_headers) + 4))

            for record in week.records:
                issue_url = generate_issue_url(record.repository, record.number)
                cells = []
                for pipeline_id in stage_headers:
                    stage = record.stage_durations.get(pipeline_id)
                    if stage is None:
                        cells.append("-")
                    elif stage.still_in_stage_at_close:
                        cells.append(f"{stage.words}*")
                    else:
                        cells.append(stage.words)
                title = record.title.replace('|', '\\|')
                lines.append(
                    f"| [#{record.number}]({issue_url}) | {title} | "
                    f"{format_assignees_for_display(record.assignees)} | "
                    + " | ".join(cells)
                    + f" | {format_duration_sentence(record.total_seconds)} |"
                )
            lines.append("")

        if len(lines) == 2:
            lines.append("*No issues with pipeline history in this period.*")
            lines.append("")
        else:
            lines.append("*\\* still in the pipeline when the issue was closed*")
            lines.append("")
        return lines

    def generate_markdown_report(self, weekly, repos: Sequence[str], start: date, end: date) -> str:
        lines = self.generate_header(repos, start, end)
        lines.extend(self.generate_weekly_table(weekly))
        lines.extend(self.generate_issue_table(weekly))
        return "\n".join(lines)

    def create_weekly_chart(self, weekly, output_path: Path) -> Optional[Path]:
        """Bar chart of weekly average cycle time in days; skipped when there are no weeks"""
        if not weekly:
            return None

        chart_data = pd.DataFrame({
            'week': [week.week for week in weekly],
            'average_days': [week.average_seconds / SECONDS_PER_DAY for week in weekly],
            'issues': [week.issue_count for week in weekly],
        })

        plt.style.use('seaborn-v0_8')
        fig, ax = plt.subplots(figsize=(10, 5))
        sns.barplot(data=chart_data, x='week', y='average_days', color='skyblue', ax=ax)
        for index, row in chart_data.iterrows():
            ax.annotate(f"n={row['issues']}", (index, row['average_days']),
                        ha='center', va='bottom', fontsize=9)
        ax.set_title('Average Cycle Time per Week')
        ax.set_xlabel('ISO Week')
        ax.set_ylabel('Cycle Time (Days)')
        ax.grid(True, axis='y', alpha=0.3)

        plt.tight_layout()
        plt.savefig(output_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return output_path

    def write_report(self, weekly, output_dir: str, repos: Sequence[str],
                     start: date, end: date) -> Dict[str, Path]:
        """Write the markdown report (and chart when there is data) into output_dir"""
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)

        report_path = directory / REPORT_FILE
        report_path.write_text(self.generate_markdown_report(weekly, repos, start, end), encoding='utf-8')
        written = {'report': report_path}

        chart_path = self.create_weekly_chart(weekly, directory / CHART_FILE)
        if chart_path is not None:
            written['chart'] = chart_path
        return written
