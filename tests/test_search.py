import threading
import time

import pytest

from conftest import FakeAuth

from jamf_device_manager.concurrency import execute_in_batches, execute_window
from jamf_device_manager.errors import TransportError, ValidationError
from jamf_device_manager.models import ComputerDetail, ComputerSummary
from jamf_device_manager.search import InventorySearch, ManagementFilter, SearchField


class FakeInventoryClient:
    def __init__(self, count=5, list_status=200):
        self.details = {
            i: ComputerDetail(
                id=i,
                name=f"Mac-{i}",
                serial_number=f"SER{i:03d}",
                managed=i % 2 == 0,
                model="MacBook Pro" if i % 3 == 0 else "MacBook Air",
                username=f"user{i}",
                real_name=f"User {i}",
            )
            for i in range(1, count + 1)
        }
        self.list_status = list_status
        self.detail_calls = 0
        self.lock = threading.Lock()

    def list_computers(self, server_url, token, subset="basic"):
        return [ComputerSummary(id=i, name=f"Mac-{i}") for i in self.details], self.list_status

    def search_computers_by_name(self, server_url, token, term):
        hits = [ComputerSummary(id=i, name=d.name) for i, d in self.details.items() if term in d.name]
        return hits, 200

    def get_computer_details(self, server_url, token, computer_id):
        with self.lock:
            self.detail_calls += 1
        detail = self.details.get(computer_id)
        return detail, 200 if detail else 404


# -------- concurrency --------
def test_execute_window_preserves_order():
    def slow_double(x):
        time.sleep(0.01 * (5 - x))
        return x * 2

    assert execute_window(slow_double, [1, 2, 3, 4], max_workers=4) == [2, 4, 6, 8]


def test_execute_window_errors_become_none():
    def maybe_fail(x):
        if x == 2:
            raise RuntimeError("bad")
        return x

    assert execute_window(maybe_fail, [1, 2, 3], max_workers=2) == [1, None, 3]
    assert execute_window(maybe_fail, []) == []


def test_execute_in_batches_stops_when_cancelled():
    cancel = threading.Event()
    seen = []

    def on_batch(done, total, merged):
        seen.append(done)
        cancel.set()
        return True

    result = execute_in_batches(lambda x: x, list(range(10)), batch_size=3, cancel_event=cancel, on_batch=on_batch)
    assert result == [0, 1, 2]
    assert seen == [1]


# -------- InventorySearch --------
def test_simple_search_filters_by_management_state():
    search = InventorySearch(FakeAuth(), FakeInventoryClient())
    managed = search.simple_search("Mac", ManagementFilter.MANAGED)
    assert [r.id for r in managed] == [2, 4]
    everything = search.simple_search("Mac", ManagementFilter.ALL)
    assert len(everything) == 5
    assert everything[0].user_full_name == "User 1"


def test_simple_search_requires_term():
    with pytest.raises(ValidationError):
        InventorySearch(FakeAuth(), FakeInventoryClient()).simple_search("  ")


def test_advanced_search_matches_fields_case_insensitively():
    search = InventorySearch(FakeAuth(), FakeInventoryClient(count=9), batch_size=4, max_workers=2)
    progress = []
    results = search.advanced_search(
        "macbook pro", [SearchField.MODEL], ManagementFilter.ALL, on_progress=progress.append
    )
    assert [r.id for r in results] == [3, 6, 9]
    assert progress[0] == 0.1
    assert progress[-1] == 1.0
    assert progress == sorted(progress)


def test_advanced_search_user_field_matches_full_name():
    search = InventorySearch(FakeAuth(), FakeInventoryClient())
    results = search.advanced_search("user 4", [SearchField.USER], ManagementFilter.ALL)
    assert [r.id for r in results] == [4]


def test_advanced_search_stops_at_max_results():
    client = FakeInventoryClient(count=100)
    search = InventorySearch(FakeAuth(), client, batch_size=20, max_workers=5, max_results=10)
    results = search.advanced_search("Mac", [SearchField.COMPUTER_NAME], ManagementFilter.ALL)
    assert len(results) == 10
    assert client.detail_calls == 20


def test_advanced_search_honours_cancellation():
    client = FakeInventoryClient(count=40)
    cancel = threading.Event()
    cancel.set()
    search = InventorySearch(FakeAuth(), client)
    assert search.advanced_search("Mac", [SearchField.COMPUTER_NAME], ManagementFilter.ALL, cancel_event=cancel) == []
    assert client.detail_calls == 0


def test_advanced_search_requires_field():
    with pytest.raises(ValidationError):
        InventorySearch(FakeAuth(), FakeInventoryClient()).advanced_search("Mac", [])


def test_advanced_search_list_failure():
    search = InventorySearch(FakeAuth(), FakeInventoryClient(list_status=500))
    with pytest.raises(TransportError):
        search.advanced_search("Mac", [SearchField.SERIAL])
