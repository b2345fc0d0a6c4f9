"""
Sequential bulk orchestration of device operations.

Items are processed one at a time, in input order. Each item re-checks
authentication before its API calls, and a failing item never aborts the rest
of the batch.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional, Union

from .auth_coordinator import AuthCoordinator
from .device_client import DeviceOperationClient, lock_accepted, redeploy_accepted, state_change_accepted
from .errors import AuthenticationError, NotFoundError, PreconditionError, TransportError, ValidationError, status_text
from .models import (
    BatchRunSummary,
    DeviceBatchItem,
    ItemStatus,
    OperationResult,
    RedeployOperation,
    SetManagedStateOperation,
)
from .utils import generate_random_pin

Operation = Union[RedeployOperation, SetManagedStateOperation]
ProgressCallback = Callable[[int, int], None]
ItemCallback = Callable[[DeviceBatchItem], None]

AUTH_EXPIRED_MESSAGE = "Authentication failed - token expired"


def _state_name(managed: bool) -> str:
    return "Managed" if managed else "Unmanaged"


class BulkOperationRunner:
    """
    Runs one operation over a batch of DeviceBatchItem objects.

    One instance per run. ``cancel()`` (or setting ``cancel_event``) stops the
    run before the next item starts; an in-flight item always finishes.
    """

    def __init__(
        self,
        auth: AuthCoordinator,
        client: DeviceOperationClient,
        inter_item_delay: float = 0.1,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
        pin_generator: Callable[[], str] = generate_random_pin,
        logger: Optional[logging.Logger] = None,
    ):
        self.auth = auth
        self.client = client
        self.inter_item_delay = inter_item_delay
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep
        self._pin_generator = pin_generator
        self.logger = logger or logging.getLogger(__name__)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def run(
        self,
        items: List[DeviceBatchItem],
        operation: Operation,
        on_progress: Optional[ProgressCallback] = None,
        on_item: Optional[ItemCallback] = None,
    ) -> BatchRunSummary:
        total = len(items)
        processed = 0
        self.logger.info("Starting %s for %d devices", operation.describe(), total)

        for index, item in enumerate(items):
            if self.cancelled:
                self.logger.warning("Run cancelled; %d devices left pending", total - index)
                break
            if item.status is not ItemStatus.PENDING:
                raise ValueError(f"Item {item.id} ({item.serial_number}) is not pending")

            item.advance(ItemStatus.IN_PROGRESS)
            if on_item:
                on_item(item)
            if on_progress:
                on_progress(processed, total)

            try:
                self._process(item, operation)
            except Exception as exc:
                self.logger.exception("Unexpected error processing %s", item.serial_number)
                if item.status is ItemStatus.IN_PROGRESS:
                    item.fail(f"Unexpected error: {exc}")

            processed += 1
            if item.status is ItemStatus.COMPLETED:
                self.logger.info("Device %s completed (computer %s)", item.serial_number, item.jamf_computer_id)
            else:
                self.logger.warning("Device %s failed: %s", item.serial_number, item.error_message)
            if on_item:
                on_item(item)

            if index < total - 1 and self.inter_item_delay > 0:
                self._sleep(self.inter_item_delay)

        summary = BatchRunSummary.from_items(items, cancelled=self.cancelled)
        if on_progress:
            on_progress(summary.total_processed, total)
        self.logger.info(
            "Bulk operation completed: %d successful, %d errors",
            summary.success_count, summary.error_count,
        )
        return summary

    # -------- Per item --------
    def _process(self, item: DeviceBatchItem, operation: Operation) -> None:
        serial = item.serial_number.strip()
        if not serial:
            item.fail(ValidationError("Serial number is missing").message)
            return

        token = self._acquire_token()
        if token is None:
            item.fail(AUTH_EXPIRED_MESSAGE)
            return

        if isinstance(operation, RedeployOperation):
            self._redeploy(item, serial, token)
        else:
            self._set_managed_state(item, serial, token, operation)

    def _acquire_token(self) -> Optional[str]:
        # Second attempt covers a token that expired between checks.
        for attempt in (1, 2):
            if self.auth.ensure_authenticated():
                token = self.auth.get_current_token()
                if token:
                    return token
            self.logger.warning("Authentication attempt %d failed", attempt)
        return None

    def _lookup_id(self, serial: str, token: str) -> OperationResult:
        computer_id, status = self.client.find_computer_id(self.auth.server_url, token, serial)
        if computer_id is None or status != 200:
            error = self._lookup_error(serial, status)
            return OperationResult(success=False, status_code=status, error_message=error.message)
        return OperationResult(success=True, status_code=status, computer_id=computer_id)

    def _lookup_state(self, serial: str, token: str) -> OperationResult:
        detail, status = self.client.get_computer_details_by_serial(self.auth.server_url, token, serial)
        if detail is None or status != 200:
            error = self._lookup_error(serial, status)
            return OperationResult(success=False, status_code=status, error_message=error.message)
        return OperationResult(
            success=True, status_code=status, computer_id=detail.id, current_managed_state=detail.managed
        )

    @staticmethod
    def _lookup_error(serial: str, status: Optional[int]):
        message = f"Failed to find device with serial number {serial} (Status: {status_text(status)})"
        if status is None:
            return TransportError(message)
        if status == 401:
            return AuthenticationError(message, status_code=status)
        return NotFoundError(message, status_code=status)

    def _redeploy(self, item: DeviceBatchItem, serial: str, token: str) -> None:
        lookup = self._lookup_id(serial, token)
        if not lookup.success:
            item.fail(lookup.error_message or "Lookup failed")
            return

        status = self.client.redeploy_agent(self.auth.server_url, token, lookup.computer_id)
        if not redeploy_accepted(status):
            item.fail(
                f"Framework redeploy failed for device {serial} (Status: {status_text(status)})",
                computer_id=lookup.computer_id,
            )
            return
        item.complete(lookup.computer_id)

    def _set_managed_state(
        self, item: DeviceBatchItem, serial: str, token: str, operation: SetManagedStateOperation
    ) -> None:
        lookup = self._lookup_state(serial, token)
        if not lookup.success:
            item.fail(lookup.error_message or "Lookup failed")
            return
        computer_id = lookup.computer_id

        if operation.locks:
            if not lookup.current_managed_state:
                # DeviceLock is only accepted by a managed computer.
                error = PreconditionError(f"Device {serial} is already unmanaged, cannot lock")
                item.fail(error.message, computer_id=computer_id)
                return
            pin = operation.pin or self._pin_generator()
            lock_status = self.client.lock_with_pin(self.auth.server_url, token, computer_id, pin)
            if not lock_accepted(lock_status):
                item.fail(
                    f"Lock command failed (Status: {status_text(lock_status)}). Management state not changed.",
                    computer_id=computer_id,
                )
                return
            item.lock_pin = pin
        elif lookup.current_managed_state == operation.target:
            item.complete(
                computer_id,
                detail=f"Device is already in the desired state ({_state_name(operation.target)})",
            )
            return

        status = self.client.set_managed_state(self.auth.server_url, token, computer_id, operation.target)
        if not state_change_accepted(status):
            message = (
                f"Failed to update management state to {_state_name(operation.target)} "
                f"(Status: {status_text(status)})"
            )
            if item.lock_pin:
                message += ". Device was locked but is still managed."
            item.fail(message, computer_id=computer_id)
            return
        item.complete(computer_id, detail=f"Now {_state_name(operation.target)}")
