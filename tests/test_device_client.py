import requests

from conftest import FakeResponse, FakeSession

from jamf_device_manager.device_client import (
    DeviceOperationClient,
    lock_accepted,
    parse_computer_detail,
    redeploy_accepted,
    state_change_accepted,
)

URL = "https://jamf.example.com"


def _computer(comp_id=42, managed=True):
    return {
        "computer": {
            "general": {
                "id": comp_id,
                "name": "Mac-01",
                "serial_number": "C02ABC",
                "remote_management": {"managed": managed, "management_username": "jamfadmin"},
                "last_contact_time": "2025-03-15 05:49:00",
            },
            "location": {"username": "jdoe", "realname": "Jane Doe", "email_address": "jane@example.com"},
            "hardware": {"model": "MacBook Pro", "os_name": "macOS", "os_version": "15.5", "total_ram": 16384},
        }
    }


def test_status_predicates():
    assert redeploy_accepted(202) and redeploy_accepted(200) and not redeploy_accepted(204)
    assert state_change_accepted(201) and not state_change_accepted(202)
    assert lock_accepted(200) and not lock_accepted(None)


def test_find_computer_id_success():
    session = FakeSession([FakeResponse(200, _computer())])
    client = DeviceOperationClient(session=session)

    assert client.find_computer_id(URL + "/", "tok", "C02ABC") == (42, 200)
    call = session.calls[0]
    assert call.method == "GET"
    assert call.url == URL + "/JSSResource/computers/serialnumber/C02ABC"
    assert call.kwargs["headers"]["Authorization"] == "Bearer tok"
    assert call.kwargs["timeout"] == 15.0


def test_find_computer_id_not_found():
    client = DeviceOperationClient(session=FakeSession([FakeResponse(404, text="Not Found")]))
    assert client.find_computer_id(URL, "tok", "NOPE") == (None, 404)


def test_find_computer_id_undecodable_body():
    client = DeviceOperationClient(session=FakeSession([FakeResponse(200, {"computer": {}})]))
    assert client.find_computer_id(URL, "tok", "C02ABC") == (None, 200)


def test_transport_failure_returns_none():
    client = DeviceOperationClient(session=FakeSession([requests.Timeout("slow")]))
    assert client.find_computer_id(URL, "tok", "C02ABC") == (None, None)


def test_serial_is_url_quoted():
    session = FakeSession([FakeResponse(404)])
    DeviceOperationClient(session=session).find_computer_id(URL, "tok", "AB C/1")
    assert session.calls[0].url.endswith("/serialnumber/AB%20C%2F1")


def test_get_computer_details_by_serial_parses_record():
    client = DeviceOperationClient(session=FakeSession([FakeResponse(200, _computer(managed=False))]))
    detail, status = client.get_computer_details_by_serial(URL, "tok", "C02ABC")
    assert status == 200
    assert detail.id == 42
    assert detail.managed is False
    assert detail.real_name == "Jane Doe"
    assert detail.total_ram_mb == 16384


def test_parse_computer_detail_defaults_name():
    detail = parse_computer_detail({"computer": {"general": {"id": "5"}}})
    assert detail.id == 5
    assert detail.name == "Computer-5"
    assert detail.managed is False


def test_redeploy_agent_request():
    session = FakeSession([FakeResponse(202)])
    status = DeviceOperationClient(session=session).redeploy_agent(URL, "tok", 42)
    assert status == 202
    call = session.calls[0]
    assert call.method == "POST"
    assert call.url == URL + "/api/v1/jamf-management-framework/redeploy/42"
    assert call.kwargs["timeout"] == 30.0


def test_set_managed_state_sends_xml():
    session = FakeSession([FakeResponse(201)])
    status = DeviceOperationClient(session=session).set_managed_state(URL, "tok", 42, False)
    assert status == 201
    call = session.calls[0]
    assert call.method == "PUT"
    assert call.url == URL + "/JSSResource/computers/id/42"
    assert call.kwargs["headers"]["Content-Type"] == "text/xml"
    assert "<managed>false</managed>" in call.kwargs["data"]
    assert call.kwargs["timeout"] == 20.0


def test_lock_pin_not_logged(caplog):
    session = FakeSession([FakeResponse(500, text="err")])
    client = DeviceOperationClient(session=session)
    with caplog.at_level("DEBUG"):
        status = client.lock_with_pin(URL, "tok", 42, "482913")
    assert status == 500
    assert "/DeviceLock/passcode/482913/id/42" in session.calls[0].url
    assert "482913" not in caplog.text


def test_list_advanced_searches():
    payload = {"advanced_computer_searches": [{"id": 1, "name": "All Managed"}, {"id": "x"}]}
    searches, status = DeviceOperationClient(session=FakeSession([FakeResponse(200, payload)])).list_advanced_searches(URL, "tok")
    assert status == 200
    assert [(s.id, s.name) for s in searches] == [(1, "All Managed")]


def test_advanced_search_dashboard_fields():
    payload = {
        "advanced_computer_search": {
            "name": "Managed Macs",
            "computers": [
                {
                    "id": 1,
                    "name": "Mac-1",
                    "Serial_Number": "AAA",
                    "Model": "MacBook Air",
                    "Operating_System_Version": "15.5.0",
                    "Last_Check_in": "2025-03-15 05:49:00",
                },
                {"id": 2, "name": "Mac-2", "Last_Check_in": ""},
            ],
        }
    }
    client = DeviceOperationClient(session=FakeSession([FakeResponse(200, payload)]))
    computers, name, status = client.get_advanced_search_dashboard(URL, "tok", 9)
    assert (name, status) == ("Managed Macs", 200)
    assert computers[0].os_version == "15.5.0"
    assert computers[0].last_check_in.year == 2025
    assert computers[1].last_check_in is None
