"""Unit tests for the google_workspace tool."""

import json

import httplib2
import pytest
from googleapiclient.errors import HttpError

from tests.fakes import DELEGATED, FakeServiceBuilder, make_record
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.clients import ServiceKind
from workspace_broker.tools import TOOL_NAME, ToolParams, handle_tool_call, tool_definition

def _call(broker: WorkspaceBroker, **arguments) -> object:
    return json.loads(handle_tool_call(broker, arguments))


def _calls(service_builder: FakeServiceBuilder, kind: ServiceKind) -> list:
    return [
        call for service in service_builder.built if service.kind is kind for call in service.calls
    ]


class TestToolDefinition:
    """Tests for tool_definition."""

    def test_shape(self) -> None:
        definition = tool_definition()
        assert definition["name"] == TOOL_NAME
        schema = definition["inputSchema"]
        assert set(schema["required"]) == {"account", "mode", "action"}
        assert schema["properties"]["mode"]["enum"] == ["gmail", "calendar", "drive", "contacts"]

    def test_max_results_bounds(self) -> None:
        with pytest.raises(ValueError):
            ToolParams(account=DELEGATED, mode="gmail", action="search", max_results=0)


class TestGmailActions:
    """Tests for gmail mode."""

    def test_search(self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder) -> None:
        service_builder.responses[ServiceKind.GMAIL] = {
            "users.messages.list": {"messages": [{"id": "m1"}], "resultSizeEstimate": 1}
        }
        result = _call(
            broker, account=DELEGATED, mode="gmail", action="search", query="is:unread"
        )
        assert result == {"messages": [{"id": "m1"}], "resultSizeEstimate": 1}
        assert _calls(service_builder, ServiceKind.GMAIL) == [
            ("users.messages.list", {"userId": "me", "q": "is:unread", "maxResults": 10})
        ]

    def test_read_extracts_headers(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        """Only the common headers are returned."""
        service_builder.responses[ServiceKind.GMAIL] = {
            "users.messages.get": {
                "id": "m1",
                "threadId": "t1",
                "snippet": "hello",
                "payload": {
                    "headers": [
                        {"name": "Subject", "value": "Hi"},
                        {"name": "X-Spam", "value": "no"},
                    ]
                },
            }
        }
        result = _call(broker, account=DELEGATED, mode="gmail", action="read", message_id="m1")
        assert result == {
            "id": "m1",
            "threadId": "t1",
            "labelIds": [],
            "snippet": "hello",
            "headers": {"Subject": "Hi"},
        }

    def test_read_requires_message_id(self, broker: WorkspaceBroker) -> None:
        result = _call(broker, account=DELEGATED, mode="gmail", action="read")
        assert result == {"error": "Error: message_id is required for gmail read"}

    def test_labels_list(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        service_builder.responses[ServiceKind.GMAIL] = {
            "users.labels.list": {"labels": [{"id": "INBOX", "name": "INBOX", "type": "system"}]}
        }
        result = _call(broker, account=DELEGATED, mode="gmail", action="labels_list")
        assert result == [{"id": "INBOX", "name": "INBOX", "type": "system"}]

    def test_unknown_action(self, broker: WorkspaceBroker) -> None:
        result = _call(broker, account=DELEGATED, mode="gmail", action="send")
        assert result == {"error": "Error: Unknown gmail action: send"}


class TestCalendarActions:
    """Tests for calendar mode."""

    def test_list_events(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        service_builder.responses[ServiceKind.CALENDAR] = {
            "events.list": {"items": [{"id": "e1"}]}
        }
        result = _call(
            broker,
            account=DELEGATED,
            mode="calendar",
            action="list_events",
            time_min="2026-01-01T00:00:00Z",
        )
        assert result == [{"id": "e1"}]
        [(path, kwargs)] = _calls(service_builder, ServiceKind.CALENDAR)
        assert path == "events.list"
        assert kwargs["calendarId"] == "primary"
        assert kwargs["timeMin"] == "2026-01-01T00:00:00Z"
        assert "timeMax" not in kwargs

    def test_list_calendars(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        service_builder.responses[ServiceKind.CALENDAR] = {
            "calendarList.list": {"items": [{"id": "primary", "summary": "Me", "primary": True}]}
        }
        result = _call(broker, account=DELEGATED, mode="calendar", action="list_calendars")
        assert result == [{"id": "primary", "summary": "Me", "primary": True}]


class TestDriveActions:
    """Tests for drive mode."""

    def test_list_defaults_to_root(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        service_builder.responses[ServiceKind.DRIVE] = {"files.list": {"files": [{"id": "f1"}]}}
        result = _call(broker, account=DELEGATED, mode="drive", action="list")
        assert result == [{"id": "f1"}]
        [(_, kwargs)] = _calls(service_builder, ServiceKind.DRIVE)
        assert kwargs["q"] == "'root' in parents and trashed = false"

    def test_search_requires_query(self, broker: WorkspaceBroker) -> None:
        result = _call(broker, account=DELEGATED, mode="drive", action="search")
        assert result == {"error": "Error: query is required for drive search"}


class TestContactsActions:
    """Tests for contacts mode."""

    def test_search_caps_page_size(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        service_builder.responses[ServiceKind.CONTACTS] = {
            "people.searchContacts": {"results": [{"person": {"resourceName": "people/c1"}}]}
        }
        result = _call(
            broker,
            account=DELEGATED,
            mode="contacts",
            action="search",
            query="ann",
            max_results=50,
        )
        assert result == [{"resourceName": "people/c1"}]
        [(_, kwargs)] = _calls(service_builder, ServiceKind.CONTACTS)
        assert kwargs["pageSize"] == 30

    def test_list(self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder) -> None:
        service_builder.responses[ServiceKind.CONTACTS] = {
            "people.connections.list": {"connections": [{"resourceName": "people/c1"}]}
        }
        result = _call(broker, account=DELEGATED, mode="contacts", action="list")
        assert result == [{"resourceName": "people/c1"}]


class TestHandleToolCallErrors:
    """Tests for error reporting from handle_tool_call."""

    def test_invalid_arguments(self, broker: WorkspaceBroker) -> None:
        result = _call(broker, account=DELEGATED, mode="sheets", action="read")
        assert result["error"].startswith("Invalid arguments:")

    def test_account_not_allowed(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        """Unknown accounts are refused without building a client."""
        result = _call(broker, account="stranger@example.com", mode="gmail", action="labels_list")
        assert result == {"error": "Account not allowed: stranger@example.com"}
        assert service_builder.built == []

    def test_missing_token(self, broker: WorkspaceBroker) -> None:
        result = _call(broker, account="first.user@gmail.com", mode="gmail", action="labels_list")
        assert "No refresh token for first.user@gmail.com" in result["error"]

    def test_upstream_401_for_oauth_account(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        """The strategy of the account shapes the auth failure advice."""
        broker.save_token("first.user@gmail.com", make_record())
        service_builder.responses[ServiceKind.GMAIL] = {
            "users.labels.list": HttpError(
                httplib2.Response({"status": 401}),
                b'{"error": {"code": 401, "message": "Invalid Credentials"}}',
            )
        }
        result = _call(broker, account="first.user@gmail.com", mode="gmail", action="labels_list")
        assert "OAuth account" in result["error"]
        assert "Invalid Credentials" in result["error"]

    def test_rate_limited(
        self, broker: WorkspaceBroker, service_builder: FakeServiceBuilder
    ) -> None:
        service_builder.responses[ServiceKind.DRIVE] = {
            "files.get": HttpError(httplib2.Response({"status": 429}), b"{}")
        }
        result = _call(broker, account=DELEGATED, mode="drive", action="get", file_id="f1")
        assert result == {"error": "Rate limited. Wait and try again."}
