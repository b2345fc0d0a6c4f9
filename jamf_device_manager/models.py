"""
Data models for Jamf Device Manager.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ValidationError

PIN_PATTERN = re.compile(r"^[0-9]{6}$")


@dataclass
class Credentials:
    server_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    persist: bool = False

    def is_complete(self) -> bool:
        return bool(self.server_url and self.client_id and self.client_secret)

    def identity(self) -> Tuple[str, str, str]:
        return (self.server_url, self.client_id, self.client_secret)


@dataclass(frozen=True)
class Token:
    access_token: str
    expires_at: float  # epoch seconds

    @classmethod
    def from_response(cls, payload: Dict[str, Any], now: float) -> "Token":
        """
        Build a token from an OAuth response body.

        Raises KeyError/TypeError/ValueError when the body lacks a usable
        ``access_token`` or ``expires_in``.
        """
        access_token = payload["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token must be a non-empty string")
        expires_in = float(payload["expires_in"])
        return cls(access_token=access_token, expires_at=now + expires_in)


class ItemStatus(enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"


_ALLOWED_TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.IN_PROGRESS},
    ItemStatus.IN_PROGRESS: {ItemStatus.COMPLETED, ItemStatus.FAILED},
    ItemStatus.COMPLETED: set(),
    ItemStatus.FAILED: set(),
}


@dataclass
class DeviceBatchItem:
    """One row of a bulk batch."""
    id: int
    serial_number: str
    display_name: Optional[str] = None
    notes: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    jamf_computer_id: Optional[int] = None
    error_message: Optional[str] = None
    lock_pin: Optional[str] = None  # PIN the device was locked with
    detail: Optional[str] = None  # informational, e.g. "already managed"

    def advance(self, status: ItemStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Item {self.id}: cannot move from {self.status.value} to {status.value}")
        self.status = status

    def complete(self, computer_id: Optional[int], detail: Optional[str] = None) -> None:
        self.advance(ItemStatus.COMPLETED)
        self.jamf_computer_id = computer_id
        self.error_message = None
        self.detail = detail

    def fail(self, message: str, computer_id: Optional[int] = None) -> None:
        self.advance(ItemStatus.FAILED)
        self.error_message = message
        if computer_id is not None:
            self.jamf_computer_id = computer_id


@dataclass
class OperationResult:
    """Outcome of one API step, consumed immediately by the runner."""
    success: bool
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    computer_id: Optional[int] = None
    current_managed_state: Optional[bool] = None


@dataclass
class BatchRunSummary:
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    cancelled: bool = False

    @classmethod
    def from_items(cls, items: Iterable[DeviceBatchItem], cancelled: bool = False) -> "BatchRunSummary":
        success = 0
        errors = 0
        for item in items:
            if item.status is ItemStatus.COMPLETED:
                success += 1
            elif item.status is ItemStatus.FAILED:
                errors += 1
        return cls(total_processed=success + errors, success_count=success, error_count=errors, cancelled=cancelled)


def is_valid_pin(pin: Optional[str]) -> bool:
    return bool(pin) and PIN_PATTERN.match(pin) is not None


@dataclass(frozen=True)
class RedeployOperation:
    """Reinstall the Jamf management framework on each device."""

    def describe(self) -> str:
        return "Redeploy Jamf management framework"


@dataclass(frozen=True)
class SetManagedStateOperation:
    """
    Flip the managed flag on each device.

    When moving to unmanaged with ``lock_if_unmanaging`` the device is locked
    first; ``pin`` applies to every device, otherwise each device gets a
    random PIN.
    """
    target: bool
    lock_if_unmanaging: bool = False
    pin: Optional[str] = None

    def __post_init__(self) -> None:
        if self.pin is not None and not is_valid_pin(self.pin):
            raise ValidationError("Lock PIN must be exactly 6 digits.")

    @property
    def locks(self) -> bool:
        return self.lock_if_unmanaging and not self.target

    def describe(self) -> str:
        state = "Managed" if self.target else "Unmanaged"
        return f"Set management state to {state}" + (" and lock" if self.locks else "")


@dataclass
class ComputerSummary:
    id: int
    name: str
    serial_number: Optional[str] = None
    udid: Optional[str] = None
    mac_address: Optional[str] = None


@dataclass
class ComputerDetail:
    id: int
    name: str
    serial_number: Optional[str] = None
    udid: Optional[str] = None
    managed: bool = False
    management_username: Optional[str] = None
    model: Optional[str] = None
    os_name: Optional[str] = None
    os_version: Optional[str] = None
    processor_type: Optional[str] = None
    total_ram_mb: Optional[int] = None
    username: Optional[str] = None
    real_name: Optional[str] = None
    email: Optional[str] = None
    last_contact_time: Optional[str] = None
    last_inventory_update: Optional[str] = None
    report_date: Optional[str] = None
    last_enrolled_date: Optional[str] = None


@dataclass
class SearchResult:
    id: int
    name: str
    serial_number: str
    username: str
    user_full_name: str
    model: str
    is_managed: bool


@dataclass
class AdvancedSearchSummary:
    id: int
    name: str


@dataclass
class DashboardComputer:
    id: int
    name: str
    serial_number: Optional[str] = None
    model: Optional[str] = None
    os_version: Optional[str] = None
    last_check_in: Optional[datetime] = None


@dataclass
class DashboardSummary:
    search_id: int
    search_name: Optional[str]
    total_devices: int
    search_devices: int = 0
    os_versions: List[Tuple[str, int]] = field(default_factory=list)
    models: List[Tuple[str, int]] = field(default_factory=list)
    check_in: Dict[str, int] = field(default_factory=dict)
    from_cache: bool = False
