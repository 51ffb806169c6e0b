"""
Configuration module for ZenHub Cycle Time Reporter
Contains configurable constants and the loader for cycleTimeConfig.json.
"""

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, Tuple


# ============================================================================
# API ENDPOINTS
# ============================================================================

GITHUB_API_URL: str = "https://api.github.com"
ZENHUB_API_URL: str = "https://api.zenhub.io"

# ZenHub event type recorded when an issue moves between pipelines
TRANSFER_EVENT_TYPE: str = "transferIssue"

# GitHub search returns at most 1000 results (10 pages of 100)
SEARCH_PAGE_SIZE: int = 100
SEARCH_MAX_PAGES: int = 10

REQUEST_TIMEOUT_SECONDS: int = 30


# ============================================================================
# RUN DEFAULTS
# ============================================================================

DEFAULT_CONFIG_FILE: str = "cycleTimeConfig.json"

# Weeks before the reference date included in the closed-issue search
DEFAULT_WEEKS_BACK: int = 4

# Thread pool size for parallel repository and issue fetches
DEFAULT_MAX_WORKERS: int = 8


# ============================================================================
# CACHE SETTINGS
# ============================================================================

CACHE_DIR: str = ".cache"
CACHE_EXPIRY_HOURS: int = 12


# ============================================================================
# REPORT FORMATTING
# ============================================================================

REPORT_OUTPUT_DIR: str = "cycle_time_report"
REPORT_FILE: str = "weekly_cycle_times.md"
CHART_FILE: str = "weekly_cycle_times.png"


class ConfigurationError(Exception):
    """Raised when the cycle time configuration is missing or invalid"""
    pass


@dataclass(frozen=True)
class PipelineDefinition:
    """A board pipeline to measure; `name` is matched as a prefix of live stage names"""
    name: str
    id: str


@dataclass(frozen=True)
class CycleTimeConfig:
    """Explicit configuration passed to every component of a run"""
    repos: Tuple[str, ...]
    pipelines: Tuple[PipelineDefinition, ...]
    end_pipeline: Optional[str] = None
    exclude_labels: Tuple[str, ...] = ()
    debug: bool = False
    print_issue_details: bool = False
    weeks_back: int = DEFAULT_WEEKS_BACK
    max_workers: int = DEFAULT_MAX_WORKERS
    github_token: str = field(default='', repr=False)
    zenhub_token: str = field(default='', repr=False)


# ============================================================================
# ENVIRONMENT VARIABLE HELPERS
# ============================================================================

def get_github_token() -> str:
    """Get GitHub token from environment variables."""
    return os.getenv('GITHUB_TOKEN', '')

def get_zenhub_token() -> str:
    """Get ZenHub token from environment variables."""
    return os.getenv('ZENHUB_TOKEN', '')


# ============================================================================
# CONFIGURATION LOADING
# ============================================================================

def _parse_pipelines(raw_pipelines: Any) -> Tuple[PipelineDefinition, ...]:
    if not isinstance(raw_pipelines, list) or not raw_pipelines:
        raise ConfigurationError("'pipelines' must be a non-empty list of {name, id} objects")

    pipelines = []
    for index, entry in enumerate(raw_pipelines):
        if not isinstance(entry, dict) or not entry.get('name') or entry.get('id') in (None, ''):
            raise ConfigurationError(f"Pipeline #{index + 1} needs both 'name' and 'id': {entry!r}")
        pipelines.append(PipelineDefinition(name=str(entry['name']), id=str(entry['id'])))
    return tuple(pipelines)


def _parse_positive_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def config_from_dict(data: Dict[str, Any]) -> CycleTimeConfig:
    """
    Build a CycleTimeConfig from the parsed JSON document.

    Args:
        data: Parsed cycleTimeConfig.json content (camelCase keys)

    Returns:
        Validated configuration with tokens resolved from the file or environment

    Raises:
        ConfigurationError: if a required field is missing or malformed
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a JSON object")

    repos = data.get('repos')
    if not isinstance(repos, list) or not repos:
        raise ConfigurationError("'repos' must be a non-empty list of owner/name strings")
    for repo in repos:
        if not isinstance(repo, str) or repo.count('/') != 1:
            raise ConfigurationError(f"Repository must look like 'owner/name': {repo!r}")

    exclude_labels = data.get('excludeLabels', [])
    if not isinstance(exclude_labels, list):
        raise ConfigurationError("'excludeLabels' must be a list of label names")

    end_pipeline = data.get('endPipeline')
    if end_pipeline is not None and not isinstance(end_pipeline, str):
        raise ConfigurationError("'endPipeline' must be a pipeline name")

    return CycleTimeConfig(
        repos=tuple(repos),
        pipelines=_parse_pipelines(data.get('pipelines')),
        end_pipeline=end_pipeline or None,
        exclude_labels=tuple(str(label) for label in exclude_labels),
        debug=bool(data.get('debug', False)),
        print_issue_details=bool(data.get('printIssueDetails', False)),
        weeks_back=_parse_positive_int(data, 'weeksBack', DEFAULT_WEEKS_BACK),
        max_workers=_parse_positive_int(data, 'maxWorkers', DEFAULT_MAX_WORKERS),
        github_token=data.get('gitHubToken') or get_github_token(),
        zenhub_token=data.get('zenHubToken') or get_zenhub_token(),
    )


def load_cycle_time_config(path: str = DEFAULT_CONFIG_FILE) -> CycleTimeConfig:
    """Load and validate the JSON configuration file, failing before any API call is made."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Configuration file {config_path} is not valid JSON: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Unable to read configuration file {config_path}: {e}") from e

    return config_from_dict(data)


# ============================================================================
# CONFIGURATION VALIDATION
# ============================================================================

def validate_configuration(config: CycleTimeConfig) -> Dict[str, Any]:
    """Validate configuration and return status."""
    config_status = {
        'github_token': bool(config.github_token),
        'zenhub_token': bool(config.zenhub_token),
        'repos': len(config.repos),
        'pipelines': [pipeline.name for pipeline in config.pipelines],
        'issues': []
    }

    if not config_status['github_token']:
        config_status['issues'].append('GITHUB_TOKEN not set (config gitHubToken or environment)')

    if not config_status['zenhub_token']:
        config_status['issues'].append('ZENHUB_TOKEN not set (config zenHubToken or environment)')

    if config.end_pipeline is None:
        config_status['issues'].append('endPipeline not set - done times will not be reported')

    return config_status


def require_tokens(config: CycleTimeConfig) -> None:
    """Raise ConfigurationError when either API token is missing."""
    missing = []
    if not config.github_token:
        missing.append('GITHUB_TOKEN')
    if not config.zenhub_token:
        missing.append('ZENHUB_TOKEN')
    if missing:
        raise ConfigurationError(f"Missing API token(s): {', '.join(missing)}")


__all__ = [
    'GITHUB_API_URL',
    'ZENHUB_API_URL',
    'TRANSFER_EVENT_TYPE',
    'SEARCH_PAGE_SIZE',
    'SEARCH_MAX_PAGES',
    'REQUEST_TIMEOUT_SECONDS',
    'DEFAULT_CONFIG_FILE',
    'DEFAULT_WEEKS_BACK',
    'DEFAULT_MAX_WORKERS',
    'CACHE_DIR',
    'CACHE_EXPIRY_HOURS',
    'REPORT_OUTPUT_DIR',
    'REPORT_FILE',
    'CHART_FILE',
    'ConfigurationError',
    'PipelineDefinition',
    'CycleTimeConfig',
    'get_github_token',
    'get_zenhub_token',
    'config_from_dict',
    'load_cycle_time_config',
    'validate_configuration',
    'require_tokens',
]
