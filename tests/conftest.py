import types

import pytest
from keyring.errors import PasswordDeleteError

from jamf_device_manager.models import AdvancedSearchSummary, ComputerDetail, ComputerSummary, Token


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def _next(self):
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def post(self, url, **kwargs):
        self.calls.append(types.SimpleNamespace(method="POST", url=url, kwargs=kwargs))
        return self._next()

    def request(self, method, url, **kwargs):
        self.calls.append(types.SimpleNamespace(method=method, url=url, kwargs=kwargs))
        return self._next()


class FakeAuthClient:
    def __init__(self, results=None, clock=None):
        self.results = list(results or [])
        self.calls = []
        self.clock = clock or FakeClock()

    def exchange_credentials(self, server_url, client_id, client_secret):
        self.calls.append((server_url, client_id, client_secret))
        if self.results:
            return self.results.pop(0)
        return Token(access_token="tok", expires_at=self.clock() + 1800), 200


class FakeCredentialStore:
    def __init__(self, credentials=None):
        self.saved = []
        self.credentials = credentials

    def load(self):
        return self.credentials

    def save(self, credentials):
        self.saved.append(credentials)


class FakeAuth:
    """Stands in for AuthCoordinator in runner/search tests."""

    server_url = "https://jamf.example.com"
    last_error = None

    def __init__(self, tokens=None):
        self.tokens = list(tokens) if tokens is not None else None
        self.ensure_calls = 0
        self.cleared = 0

    def ensure_authenticated(self):
        self.ensure_calls += 1
        return True

    def get_current_token(self):
        if self.tokens is None:
            return "tok"
        return self.tokens.pop(0) if self.tokens else None

    def clear_authentication(self):
        self.cleared += 1


class FakeDeviceClient:
    """
    Device client keyed by serial number.

    ``devices`` maps serial -> (computer_id, managed); unknown serials return 404.
    """

    def __init__(self, devices=None, redeploy_status=202, state_status=201, lock_status=201):
        self.devices = devices or {}
        self.redeploy_status = redeploy_status
        self.state_status = state_status
        self.lock_status = lock_status
        self.calls = []

    def find_computer_id(self, server_url, token, serial):
        self.calls.append(("find", serial))
        if serial not in self.devices:
            return None, 404
        return self.devices[serial][0], 200

    def get_computer_details_by_serial(self, server_url, token, serial):
        self.calls.append(("details", serial))
        if serial not in self.devices:
            return None, 404
        computer_id, managed = self.devices[serial]
        return ComputerDetail(id=computer_id, name=f"Mac-{serial}", serial_number=serial, managed=managed), 200

    def redeploy_agent(self, server_url, token, computer_id):
        self.calls.append(("redeploy", computer_id))
        return self.redeploy_status

    def set_managed_state(self, server_url, token, computer_id, managed):
        self.calls.append(("set_state", computer_id, managed))
        return self.state_status

    def lock_with_pin(self, server_url, token, computer_id, pin):
        self.calls.append(("lock", computer_id, pin))
        return self.lock_status

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


class FakeDashboardClient:
    def __init__(self, computers=None, search_status=200, list_status=200):
        self.computers = computers or []
        self.search_status = search_status
        self.list_status = list_status
        self.dashboard_calls = 0
        self.search_list_statuses = [200]

    def list_computers(self, server_url, token, subset="basic"):
        return [ComputerSummary(id=i, name=f"Mac-{i}") for i in range(10)], self.list_status

    def get_advanced_search_dashboard(self, server_url, token, search_id):
        self.dashboard_calls += 1
        return self.computers, "Managed Macs", self.search_status

    def list_advanced_searches(self, server_url, token):
        status = self.search_list_statuses.pop(0)
        searches = [AdvancedSearchSummary(id=1, name="Dash - Managed"), AdvancedSearchSummary(id=2, name="Other")]
        return (searches if status == 200 else []), status


class MemoryKeyring:
    def __init__(self):
        self.passwords = {}

    def get_password(self, service, account):
        return self.passwords.get((service, account))

    def set_password(self, service, account, secret):
        self.passwords[(service, account)] = secret

    def delete_password(self, service, account):
        if (service, account) not in self.passwords:
            raise PasswordDeleteError("missing")
        del self.passwords[(service, account)]


@pytest.fixture
def clock():
    return FakeClock()
