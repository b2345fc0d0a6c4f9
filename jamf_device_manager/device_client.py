"""
Per-device Jamf Pro API calls.

Every method takes the server URL and a bearer token, returns a result and the
HTTP status, and turns transport failures into ``None`` instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from .models import AdvancedSearchSummary, ComputerDetail, ComputerSummary, DashboardComputer
from .utils import parse_check_in

REDEPLOY_OK = frozenset({200, 201, 202})
STATE_CHANGE_OK = frozenset({200, 201})
LOCK_OK = frozenset({200, 201})

MANAGED_STATE_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    "<computer><general><remote_management>"
    "<managed>{managed}</managed>"
    "</remote_management></general></computer>"
)


def redeploy_accepted(status: Optional[int]) -> bool:
    return status in REDEPLOY_OK


def state_change_accepted(status: Optional[int]) -> bool:
    return status in STATE_CHANGE_OK


def lock_accepted(status: Optional[int]) -> bool:
    return status in LOCK_OK


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_computer_detail(data: Dict[str, Any]) -> ComputerDetail:
    """Parse a Classic API ``computer`` record; raises KeyError/ValueError when ``general.id`` is missing."""
    computer = data.get("computer") or data
    general = computer["general"]
    location = computer.get("location") or {}
    hardware = computer.get("hardware") or {}
    remote = general.get("remote_management") or {}
    return ComputerDetail(
        id=int(general["id"]),
        name=general.get("name") or f"Computer-{general['id']}",
        serial_number=general.get("serial_number"),
        udid=general.get("udid"),
        managed=bool(remote.get("managed", False)),
        management_username=remote.get("management_username"),
        model=hardware.get("model"),
        os_name=hardware.get("os_name"),
        os_version=hardware.get("os_version"),
        processor_type=hardware.get("processor_type"),
        total_ram_mb=_int_or_none(hardware.get("total_ram")),
        username=location.get("username"),
        real_name=location.get("realname"),
        email=location.get("email_address"),
        last_contact_time=general.get("last_contact_time"),
        last_inventory_update=general.get("last_inventory_update"),
        report_date=general.get("report_date"),
        last_enrolled_date=general.get("last_enrolled_date_utc"),
    )


def _parse_summaries(entries: List[Dict[str, Any]]) -> List[ComputerSummary]:
    parsed: List[ComputerSummary] = []
    for entry in entries:
        comp_id = _int_or_none(entry.get("id"))
        if comp_id is None:
            continue
        parsed.append(
            ComputerSummary(
                id=comp_id,
                name=entry.get("name") or f"Computer-{comp_id}",
                serial_number=entry.get("serial_number"),
                udid=entry.get("udid"),
                mac_address=entry.get("mac_address"),
            )
        )
    return parsed


class DeviceOperationClient:
    """
    Stateless client for the device lookup and command endpoints.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_timeout: float = 15.0,
        command_timeout: float = 20.0,
        long_timeout: float = 30.0,
        verify_ssl: bool = True,
        debug_api: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.session = session or requests.Session()
        self.request_timeout = request_timeout
        self.command_timeout = command_timeout
        self.long_timeout = long_timeout
        self.verify_ssl = verify_ssl
        self.debug_api = debug_api
        self.logger = logger or logging.getLogger(__name__)

    # -------- Transport --------
    def _request(
        self,
        method: str,
        server_url: str,
        token: str,
        path: str,
        *,
        timeout: float,
        accept: str = "application/json",
        body: Optional[str] = None,
        content_type: Optional[str] = None,
        log_path: Optional[str] = None,
    ) -> Optional[requests.Response]:
        url = server_url.rstrip("/") + path
        shown = log_path or path
        headers = {"Authorization": f"Bearer {token}", "Accept": accept}
        if content_type:
            headers["Content-Type"] = content_type
        try:
            resp = self.session.request(
                method, url, headers=headers, data=body, timeout=timeout, verify=self.verify_ssl
            )
        except requests.RequestException as exc:
            self.logger.error("HTTP %s %s failed: %s", method, shown, exc)
            return None

        if self.debug_api:
            self.logger.debug("API Response [%s %s]: Status=%d", method, shown, resp.status_code)
            self.logger.debug("Response body: %s", resp.text[:2000])
        if resp.status_code >= 400:
            self.logger.error("HTTP %d for %s %s: %s", resp.status_code, method, shown, resp.text[:500])
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> Optional[Dict[str, Any]]:
        try:
            data = resp.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    # -------- Lookup --------
    def find_computer_id(self, server_url: str, token: str, serial_number: str) -> Tuple[Optional[int], Optional[int]]:
        self.logger.info("Looking up computer ID for serial %s", serial_number)
        path = f"/JSSResource/computers/serialnumber/{quote(serial_number, safe='')}"
        resp = self._request("GET", server_url, token, path, timeout=self.request_timeout)
        if resp is None:
            return None, None
        if resp.status_code != 200:
            return None, resp.status_code
        data = self._json(resp)
        try:
            computer_id = int(data["computer"]["general"]["id"])  # type: ignore[index]
        except (KeyError, TypeError, ValueError):
            self.logger.error("Computer record for %s has no numeric ID", serial_number)
            return None, resp.status_code
        self.logger.debug("Computer ID found %d", computer_id)
        return computer_id, resp.status_code

    def _get_detail(self, server_url: str, token: str, path: str) -> Tuple[Optional[ComputerDetail], Optional[int]]:
        resp = self._request("GET", server_url, token, path, timeout=self.request_timeout)
        if resp is None:
            return None, None
        if resp.status_code != 200:
            return None, resp.status_code
        data = self._json(resp)
        if data is None:
            return None, resp.status_code
        try:
            return parse_computer_detail(data), resp.status_code
        except (KeyError, TypeError, ValueError) as exc:
            self.logger.error("Failed to decode computer details from %s: %s", path, exc)
            return None, resp.status_code

    def get_computer_details(self, server_url: str, token: str, computer_id: int) -> Tuple[Optional[ComputerDetail], Optional[int]]:
        return self._get_detail(server_url, token, f"/JSSResource/computers/id/{computer_id}")

    def get_computer_details_by_serial(
        self, server_url: str, token: str, serial_number: str
    ) -> Tuple[Optional[ComputerDetail], Optional[int]]:
        path = f"/JSSResource/computers/serialnumber/{quote(serial_number, safe='')}"
        return self._get_detail(server_url, token, path)

    # -------- Commands --------
    def redeploy_agent(self, server_url: str, token: str, computer_id: int) -> Optional[int]:
        self.logger.info("Redeploying Jamf management framework for computer %d", computer_id)
        resp = self._request(
            "POST", server_url, token,
            f"/api/v1/jamf-management-framework/redeploy/{computer_id}",
            timeout=self.long_timeout,
        )
        return resp.status_code if resp is not None else None

    def set_managed_state(self, server_url: str, token: str, computer_id: int, managed: bool) -> Optional[int]:
        self.logger.info("Setting computer %d to %s", computer_id, "Managed" if managed else "Unmanaged")
        resp = self._request(
            "PUT", server_url, token,
            f"/JSSResource/computers/id/{computer_id}",
            timeout=self.command_timeout,
            accept="application/xml",
            body=MANAGED_STATE_XML.format(managed="true" if managed else "false"),
            content_type="text/xml",
        )
        return resp.status_code if resp is not None else None

    def lock_with_pin(self, server_url: str, token: str, computer_id: int, pin: str) -> Optional[int]:
        self.logger.info("Sending DeviceLock command to computer %d", computer_id)
        resp = self._request(
            "POST", server_url, token,
            f"/JSSResource/computercommands/command/DeviceLock/passcode/{pin}/id/{computer_id}",
            timeout=self.command_timeout,
            accept="application/xml",
            log_path=f"/JSSResource/computercommands/command/DeviceLock/passcode/******/id/{computer_id}",
        )
        return resp.status_code if resp is not None else None

    # -------- Search --------
    def search_computers_by_name(self, server_url: str, token: str, term: str) -> Tuple[List[ComputerSummary], Optional[int]]:
        resp = self._request(
            "GET", server_url, token, f"/JSSResource/computers/match/{quote(term, safe='')}",
            timeout=self.request_timeout,
        )
        if resp is None:
            return [], None
        data = self._json(resp) if resp.status_code == 200 else None
        return _parse_summaries((data or {}).get("computers") or []), resp.status_code

    def list_computers(self, server_url: str, token: str, subset: str = "basic") -> Tuple[List[ComputerSummary], Optional[int]]:
        resp = self._request(
            "GET", server_url, token, f"/JSSResource/computers/subset/{subset}", timeout=self.long_timeout
        )
        if resp is None:
            return [], None
        data = self._json(resp) if resp.status_code == 200 else None
        return _parse_summaries((data or {}).get("computers") or []), resp.status_code

    def list_advanced_searches(self, server_url: str, token: str) -> Tuple[List[AdvancedSearchSummary], Optional[int]]:
        resp = self._request("GET", server_url, token, "/JSSResource/advancedcomputersearches", timeout=self.long_timeout)
        if resp is None:
            return [], None
        data = self._json(resp) if resp.status_code == 200 else None
        searches = []
        for entry in (data or {}).get("advanced_computer_searches") or []:
            search_id = _int_or_none(entry.get("id"))
            if search_id is not None:
                searches.append(AdvancedSearchSummary(id=search_id, name=entry.get("name") or f"Search-{search_id}"))
        return searches, resp.status_code

    def get_advanced_search_dashboard(
        self, server_url: str, token: str, search_id: int
    ) -> Tuple[List[DashboardComputer], Optional[str], Optional[int]]:
        """
        Fetch an Advanced Search with its display fields.

        Jamf names the display columns after the UI labels
        (``Serial_Number``, ``Model``, ``Operating_System_Version``, ``Last_Check_in``).
        """
        resp = self._request(
            "GET", server_url, token, f"/JSSResource/advancedcomputersearches/id/{search_id}",
            timeout=self.long_timeout,
        )
        if resp is None:
            return [], None, None
        if resp.status_code != 200:
            return [], None, resp.status_code
        data = self._json(resp) or {}
        search = data.get("advanced_computer_search") or {}
        computers: List[DashboardComputer] = []
        for entry in search.get("computers") or []:
            comp_id = _int_or_none(entry.get("id"))
            if comp_id is None:
                continue
            computers.append(
                DashboardComputer(
                    id=comp_id,
                    name=entry.get("name") or f"Computer-{comp_id}",
                    serial_number=entry.get("Serial_Number"),
                    model=entry.get("Model"),
                    os_version=entry.get("Operating_System_Version"),
                    last_check_in=parse_check_in(entry.get("Last_Check_in")),
                )
            )
        self.logger.info("Parsed %d computers from advanced search %d", len(computers), search_id)
        return computers, search.get("name"), resp.status_code
