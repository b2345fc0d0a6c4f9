"""
Fleet dashboard built from a Jamf Pro Advanced Search.

Aggregates OS versions, hardware models and check-in recency for the devices
an Advanced Search returns. Search results are cached for a few minutes per
search ID.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from .auth_coordinator import AuthCoordinator
from .cache import SearchCache, make_cache_key
from .device_client import DeviceOperationClient
from .errors import AuthenticationError, TransportError, status_text
from .models import AdvancedSearchSummary, DashboardComputer, DashboardSummary
from .utils import CHECK_IN_BUCKETS, check_in_bucket, normalize_os_version, parse_jamf_datetime, version_sort_key


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _computer_to_dict(computer: DashboardComputer) -> Dict[str, Any]:
    data = asdict(computer)
    data["last_check_in"] = computer.last_check_in.isoformat() if computer.last_check_in else None
    return data


def _computer_from_dict(data: Dict[str, Any]) -> DashboardComputer:
    return DashboardComputer(
        id=int(data["id"]),
        name=data.get("name") or f"Computer-{data['id']}",
        serial_number=data.get("serial_number"),
        model=data.get("model"),
        os_version=data.get("os_version"),
        last_check_in=parse_jamf_datetime(data.get("last_check_in")),
    )


def summarize_computers(
    computers: Sequence[DashboardComputer],
    now: datetime,
) -> Dict[str, object]:
    """
    Count OS versions, models and check-in buckets.

    OS versions are sorted newest first; models by count, most common first.
    """
    os_counts: Counter = Counter()
    model_counts: Counter = Counter()
    check_in = {bucket: 0 for bucket in CHECK_IN_BUCKETS}

    for computer in computers:
        if computer.os_version:
            os_counts[normalize_os_version(computer.os_version)] += 1
        if computer.model:
            model_counts[computer.model] += 1
        check_in[check_in_bucket(computer.last_check_in, now)] += 1

    os_versions = sorted(os_counts.items(), key=lambda pair: version_sort_key(pair[0]), reverse=True)
    models = sorted(model_counts.items(), key=lambda pair: (-pair[1], pair[0]))
    return {"os_versions": os_versions, "models": models, "check_in": check_in}


class DashboardManager:
    def __init__(
        self,
        auth: AuthCoordinator,
        client: DeviceOperationClient,
        cache: Optional[SearchCache] = None,
        now: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.auth = auth
        self.client = client
        self.cache = cache or SearchCache()
        self._now = now
        self.logger = logger or logging.getLogger(__name__)
        self._search_names: Dict[int, str] = {}

    def _token(self) -> str:
        token = self.auth.get_current_token() if self.auth.ensure_authenticated() else None
        if not token:
            raise AuthenticationError(
                "Failed to get authentication token. Please check your settings and re-authenticate."
            )
        return token

    def list_searches(self, name_prefix: str = "") -> List[AdvancedSearchSummary]:
        """
        Return the Advanced Searches available to the API client.

        A 401 forces one re-authentication and retry. ``name_prefix`` keeps
        only searches whose name starts with it.
        """
        searches, status = self.client.list_advanced_searches(self.auth.server_url, self._token())
        if status == 401:
            self.logger.warning("Advanced Search listing rejected (HTTP 401), refreshing token")
            self.auth.clear_authentication()
            searches, status = self.client.list_advanced_searches(self.auth.server_url, self._token())

        if status == 403:
            raise AuthenticationError(
                "Insufficient permissions to read Advanced Computer Searches.", status_code=status
            )
        if status != 200:
            raise TransportError(f"Failed to load Advanced Searches (Status: {status_text(status)})", status_code=status)

        self._search_names = {search.id: search.name for search in searches}
        if name_prefix:
            searches = [search for search in searches if search.name.startswith(name_prefix)]
        self.logger.info("Loaded %d Advanced Searches", len(searches))
        return searches

    def load(self, search_id: int, force_refresh: bool = False) -> DashboardSummary:
        key = make_cache_key(self.auth.server_url, "/JSSResource/advancedcomputersearches", search_id=search_id)
        self.cache.select(key)
        token = self._token()

        all_computers, status = self.client.list_computers(self.auth.server_url, token)
        if status != 200:
            raise TransportError(
                f"Failed to fetch total device count (Status: {status_text(status)})", status_code=status
            )

        cached = None if force_refresh else self.cache.get(key)
        from_cache = cached is not None
        if from_cache:
            computers = [_computer_from_dict(entry) for entry in cached.get("computers", [])]
            search_name = cached.get("search_name")
            self.logger.info("Using cached dashboard data for search %d", search_id)
        else:
            computers, search_name, status = self.client.get_advanced_search_dashboard(
                self.auth.server_url, token, search_id
            )
            if status == 401:
                raise AuthenticationError(
                    "Insufficient permissions to access the selected Advanced Search.", status_code=status
                )
            if status != 200:
                raise TransportError(
                    f"Failed to fetch devices from Advanced Search {search_id} (Status: {status_text(status)})",
                    status_code=status,
                )
            search_name = search_name or self._search_names.get(search_id) or f"Advanced Search {search_id}"
            self.cache.set(
                key,
                {"search_name": search_name, "computers": [_computer_to_dict(c) for c in computers]},
            )

        counts = summarize_computers(computers, self._now())
        return DashboardSummary(
            search_id=search_id,
            search_name=search_name,
            total_devices=len(all_computers),
            search_devices=len(computers),
            os_versions=counts["os_versions"],
            models=counts["models"],
            check_in=counts["check_in"],
            from_cache=from_cache,
        )
