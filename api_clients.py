#!/usr/bin/env python3
"""
GitHub and ZenHub API clients

Both clients share a cached requests session layer: responses are pickled under
.cache/<service>/ for a few hours, rate-limit responses are waited out, and
debug mode echoes every payload to the console.
"""

import json
import time
import shutil
import hashlib
import pickle
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Any, Iterable

import requests

from config import (
    GITHUB_API_URL,
    ZENHUB_API_URL,
    SEARCH_PAGE_SIZE,
    SEARCH_MAX_PAGES,
    REQUEST_TIMEOUT_SECONDS,
    CACHE_DIR,
    CACHE_EXPIRY_HOURS,
)
from utils import StatusDisplay, build_exclude_label_query
from utils_dates import format_date_iso


class CachedApiClient:
    """requests.Session wrapper with a pickle response cache and rate-limit handling"""

    service_name = "api"

    def __init__(self, base_url: str, headers: Dict[str, str], status: Optional[StatusDisplay] = None,
                 use_cache: bool = True, debug: bool = False, cache_root: str = CACHE_DIR):
        self.base_url = base_url
        self.session = requests.Session()
        self.session.headers.update(headers)
        self.status = status or StatusDisplay()
        self.use_cache = use_cache
        self.debug = debug

        self.cache_dir = Path(cache_root) / self.service_name
        self.cache_expiry = timedelta(hours=CACHE_EXPIRY_HOURS)
        self.cache_hits = 0
        self.cache_saves = 0
        self._cache_error_shown = False

    def _get_cache_key(self, url: str, params: Dict = None) -> str:
        """Generate a cache key for a request"""
        # Sort params to ensure consistent key generation
        params_str = ""
        if params:
            sorted_params = sorted(params.items())
            params_str = "&".join(f"{k}={v}" for k, v in sorted_params)
        key_data = f"{url}?{params_str}"
        return hashlib.md5(key_data.encode()).hexdigest()

    def _get_cache_file(self, cache_key: str) -> Path:
        """Get the cache file path for a given key with subdirectory structure"""
        cache_subdir = self.cache_dir / cache_key[:2]
        cache_subdir.mkdir(parents=True, exist_ok=True)
        return cache_subdir / f"{cache_key}.cache"

    def _is_cache_valid(self, cache_file: Path) -> bool:
        """Check if cache file exists and is not expired"""
        if not cache_file.exists():
            return False
        cache_age = datetime.now() - datetime.fromtimestamp(cache_file.stat().st_mtime)
        return cache_age < self.cache_expiry

    def _save_to_cache(self, cache_key: str, data: Any):
        """Save data to cache"""
        try:
            cache_file = self._get_cache_file(cache_key)
            with open(cache_file, 'wb') as f:
                pickle.dump(data, f)
            self.cache_saves += 1
        except (OSError, pickle.PickleError) as e:
            # Cache failures shouldn't break the run - only report the first one
            if not self._cache_error_shown:
                self._cache_error_shown = True
                self.status.warning(f"Cache save failed: {e}")

    def _load_from_cache(self, cache_key: str) -> Optional[Any]:
        """Load data from cache"""
        try:
            cache_file = self._get_cache_file(cache_key)
            if self._is_cache_valid(cache_file):
                with open(cache_file, 'rb') as f:
                    return pickle.load(f)
        except (OSError, pickle.PickleError, EOFError) as e:
            if not self._cache_error_shown:
                self._cache_error_shown = True
                self.status.warning(f"Cache load failed: {e}")
        return None

    def clear_cache(self):
        """Clear all cached responses for this service"""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            self.status.print(f"✅ Cache cleared for {self.service_name}", style="green")
        else:
            self.status.print(f"ℹ️  No cache found for {self.service_name}")

    def _make_request(self, path: str, params: Dict = None) -> Any:
        """Make API request with caching and rate limiting"""
        url = f"{self.base_url}{path}"

        cache_key = self._get_cache_key(url, params)
        if self.use_cache:
            cached_data = self._load_from_cache(cache_key)
            if cached_data is not None:
                self.cache_hits += 1
                return cached_data

        response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)

        # 403 is either rate limiting or a permissions problem
        if response.status_code == 403 and self._is_rate_limited(response):
            reset_time = int(response.headers.get('X-RateLimit-Reset', 0))
            sleep_time = int(max(reset_time - time.time(), 0) + 1)
            self.status.warning(f"Rate limited by {self.service_name} - waiting {sleep_time}s before retry...")
            time.sleep(sleep_time)
            response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)

        # 422 covers validation failures such as search pagination past the result cap
        if response.status_code == 422:
            self.status.warning(f"API request failed with 422: {url} - {params}")
            return {}

        if response.status_code >= 400:
            # Don't cache error responses - they could be temporary
            response.raise_for_status()

        data = response.json()

        if self.debug:
            self.status.debug(f"GET {url} {params or ''}\n{json.dumps(data, indent=2, default=str)}")

        if self.use_cache and 200 <= response.status_code < 300:
            self._save_to_cache(cache_key, data)

        return data

    @staticmethod
    def _is_rate_limited(response) -> bool:
        if 'rate limit' in response.text.lower():
            return True
        return response.headers.get('X-RateLimit-Remaining') == '0'


class GitHubClient(CachedApiClient):
    """GitHub REST API: repository lookup and closed issue search"""

    service_name = "github"

    def __init__(self, token: str, **kwargs):
        super().__init__(GITHUB_API_URL, {
            'Authorization': f'token {token}',
            'Accept': 'application/vnd.github.v3+json'
        }, **kwargs)

    def get_repository_id(self, repository: str) -> int:
        """Numeric repository id for 'owner/name', as required by the ZenHub API"""
        data = self._make_request(f"/repos/{repository}")
        repo_id = data.get('id') if isinstance(data, dict) else None
        if repo_id is None:
            raise ValueError(f"GitHub returned no id for repository {repository}")
        return int(repo_id)

    @staticmethod
    def build_closed_issue_query(repository: str, start: date, end: date,
                                 exclude_labels: Iterable[str] = ()) -> str:
        parts = [f"repo:{repository}", f"closed:{format_date_iso(start)}..{format_date_iso(end)}"]
        label_query = build_exclude_label_query(exclude_labels)
        if label_query:
            parts.append(label_query)
        parts.append("type:issue")
        return ' '.join(parts)

    def search_closed_issues(self, repository: str, start: date, end: date,
                             exclude_labels: Iterable[str] = ()) -> List[Dict]:
        """
        Search issues closed within the inclusive date range, excluding labels.

        Args:
            repository: Repository as 'owner/name'
            start: First closure date included
            end: Last closure date included
            exclude_labels: Labels whose issues are left out of the search

        Returns:
            Raw GitHub issue dictionaries with pull requests filtered out
        """
        query = self.build_closed_issue_query(repository, start, end, exclude_labels)
        if self.debug:
            self.status.debug(f"Searched for {query}")

        issues = []
        for page in range(1, SEARCH_MAX_PAGES + 1):
            params = {
                'q': query,
                'sort': 'updated',
                'per_page': SEARCH_PAGE_SIZE,
                'page': page,
            }
            data = self._make_request("/search/issues", params)
            items = data.get('items', []) if isinstance(data, dict) else []

            # Search type:issue already excludes pull requests; keep the guard for mixed results
            issues.extend(item for item in items if 'pull_request' not in item)

            if len(items) < SEARCH_PAGE_SIZE:
                break

        return issues


class ZenHubClient(CachedApiClient):
    """ZenHub REST API: pipeline event history of an issue"""

    service_name = "zenhub"

    def __init__(self, token: str, **kwargs):
        super().__init__(ZENHUB_API_URL, {'X-Authentication-Token': token}, **kwargs)

    def fetch_issue_events(self, repo_id: int, issue_number: int) -> List[Dict]:
        """
        Fetch the raw event list of one issue.

        A failed request degrades to an empty list so the issue simply contributes
        no stage durations.
        """
        try:
            data = self._make_request(f"/p1/repositories/{repo_id}/issues/{issue_number}/events")
        except requests.RequestException as e:
            self.status.warning(f"Could not fetch ZenHub events for issue #{issue_number}: {e}")
            return []

        if not isinstance(data, list):
            return []
        return data
