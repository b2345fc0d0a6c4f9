"""
Inventory search across Jamf Pro computers.

Simple search uses the name match endpoint. Advanced search lists every
computer and inspects detail records in concurrent batches, matching the query
against the selected fields.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Iterable, List, Optional

from .auth_coordinator import AuthCoordinator
from .concurrency import execute_in_batches
from .device_client import DeviceOperationClient
from .errors import AuthenticationError, TransportError, ValidationError, status_text
from .models import ComputerDetail, SearchResult

ProgressCallback = Callable[[float], None]


class ManagementFilter(str, enum.Enum):
    ALL = "all"
    MANAGED = "managed"
    UNMANAGED = "unmanaged"

    def accepts(self, managed: bool) -> bool:
        if self is ManagementFilter.ALL:
            return True
        return managed if self is ManagementFilter.MANAGED else not managed


class SearchField(str, enum.Enum):
    MODEL = "model"
    SERIAL = "serial"
    USER = "user"
    COMPUTER_NAME = "computer_name"


def _to_result(detail: ComputerDetail, fallback_name: Optional[str] = None) -> SearchResult:
    return SearchResult(
        id=detail.id,
        name=detail.name or fallback_name or f"Computer-{detail.id}",
        serial_number=detail.serial_number or "N/A",
        username=detail.username or "",
        user_full_name=detail.real_name or "",
        model=detail.model or "Unknown",
        is_managed=detail.managed,
    )


def matches_fields(result: SearchResult, query: str, fields: Iterable[SearchField]) -> bool:
    """Case-insensitive substring match of ``query`` against any selected field."""
    needle = query.lower()
    for search_field in fields:
        if search_field is SearchField.MODEL and needle in result.model.lower():
            return True
        if search_field is SearchField.SERIAL and needle in result.serial_number.lower():
            return True
        if search_field is SearchField.USER and (
            needle in result.username.lower() or needle in result.user_full_name.lower()
        ):
            return True
        if search_field is SearchField.COMPUTER_NAME and needle in result.name.lower():
            return True
    return False


class InventorySearch:
    def __init__(
        self,
        auth: AuthCoordinator,
        client: DeviceOperationClient,
        batch_size: int = 20,
        max_workers: int = 5,
        max_results: int = 50,
        logger: Optional[logging.Logger] = None,
    ):
        self.auth = auth
        self.client = client
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.max_results = max_results
        self.logger = logger or logging.getLogger(__name__)

    def _token(self) -> str:
        if not self.auth.ensure_authenticated():
            error = self.auth.last_error
            raise error if error is not None else AuthenticationError("Not authenticated")
        token = self.auth.get_current_token()
        if not token:
            raise AuthenticationError("Authentication failed - token expired")
        return token

    def _detail(self, computer_id: int) -> Optional[ComputerDetail]:
        detail, status = self.client.get_computer_details(self.auth.server_url, self._token(), computer_id)
        if detail is None:
            self.logger.debug("No details for computer %d (Status: %s)", computer_id, status_text(status))
        return detail

    def simple_search(
        self, query: str, management_filter: ManagementFilter = ManagementFilter.MANAGED
    ) -> List[SearchResult]:
        query = query.strip()
        if not query:
            raise ValidationError("Please enter a search term.")

        computers, status = self.client.search_computers_by_name(self.auth.server_url, self._token(), query)
        if status is None:
            raise TransportError(f"Search request for '{query}' failed")
        if status != 200:
            raise TransportError(f"Search for '{query}' failed (Status: {status})", status_code=status)

        results: List[SearchResult] = []
        for computer in computers:
            detail = self._detail(computer.id)
            if detail is None:
                continue
            result = _to_result(detail, fallback_name=computer.name)
            if management_filter.accepts(result.is_managed):
                results.append(result)
        self.logger.info("Simple search '%s' matched %d of %d computers", query, len(results), len(computers))
        return results

    def advanced_search(
        self,
        query: str,
        fields: Iterable[SearchField],
        management_filter: ManagementFilter = ManagementFilter.MANAGED,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SearchResult]:
        """
        Search every computer's detail record.

        Progress starts at 0.1 once the inventory is listed and reaches 1.0
        when the search finishes. The search stops after ``max_results``
        matches or when ``cancel_event`` is set between batches.
        """
        query = query.strip()
        selected = list(dict.fromkeys(fields))
        if not query:
            raise ValidationError("Please enter a search term.")
        if not selected:
            raise ValidationError("Select at least one field to search.")

        computers, status = self.client.list_computers(self.auth.server_url, self._token())
        if status != 200:
            raise TransportError(f"Failed to list computers (Status: {status_text(status)})", status_code=status)
        if on_progress:
            on_progress(0.1)

        def inspect(computer) -> Optional[SearchResult]:
            detail = self._detail(computer.id)
            if detail is None:
                return None
            result = _to_result(detail, fallback_name=computer.name)
            if management_filter.accepts(result.is_managed) and matches_fields(result, query, selected):
                return result
            return None

        def on_batch(done: int, total: int, merged: List[SearchResult]) -> bool:
            if on_progress:
                on_progress(0.1 + 0.9 * done / total)
            return len(merged) < self.max_results

        results = execute_in_batches(
            inspect,
            computers,
            batch_size=self.batch_size,
            max_workers=self.max_workers,
            cancel_event=cancel_event,
            on_batch=on_batch,
            logger=self.logger,
            description="Advanced search",
        )
        if on_progress:
            on_progress(1.0)
        self.logger.info("Advanced search '%s' found %d matches in %d computers", query, len(results), len(computers))
        return results[: self.max_results]
