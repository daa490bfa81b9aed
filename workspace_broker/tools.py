"""Tool surface exposed over the /mcp endpoint.

One tool, ``google_workspace``, routes read-only actions to the Gmail,
Calendar, Drive and People clients handed out by the broker. Every outcome,
including failures, is returned as a JSON string.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from workspace_broker.accounts import AuthStrategy
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.error_translation import translate_error

TOOL_NAME = "google_workspace"

TOOL_DESCRIPTION = """Read Google Workspace data for the configured accounts. 4 modes:
- gmail: search/read/labels_list
- calendar: list_events/get_event/list_calendars
- drive: search/list/get
- contacts: search/list/get"""

PERSON_FIELDS = "names,emailAddresses,phoneNumbers,organizations"
DRIVE_FILE_FIELDS = "id,name,mimeType,modifiedTime,parents,webViewLink"


class ToolParams(BaseModel):
    """Arguments of the google_workspace tool."""

    account: str = Field(description="Which Google account to act as")
    mode: Literal["gmail", "calendar", "drive", "contacts"] = Field(description="Service to use")
    action: str = Field(
        description=(
            "Sub-action. gmail: search/read/labels_list. "
            "calendar: list_events/get_event/list_calendars. "
            "drive: search/list/get. contacts: search/list/get"
        )
    )

    query: str | None = Field(default=None, description="Search query (Gmail/Drive/contacts)")
    message_id: str | None = Field(default=None, description="Gmail message ID")
    format: Literal["minimal", "metadata", "full"] = Field(
        default="metadata", description="Gmail message format"
    )
    calendar_id: str = Field(default="primary", description="Calendar ID")
    event_id: str | None = Field(default=None, description="Calendar event ID")
    time_min: str | None = Field(default=None, description="List events after (ISO 8601)")
    time_max: str | None = Field(default=None, description="List events before (ISO 8601)")
    file_id: str | None = Field(default=None, description="Drive file or folder ID")
    parent_id: str | None = Field(default=None, description="Parent folder ID for drive list")
    resource_name: str | None = Field(default=None, description="Contact resource (people/...)")
    max_results: int = Field(default=10, ge=1, le=100, description="Max results to return")


def tool_definition() -> dict[str, Any]:
    """Tool description in the shape returned by ``tools/list``."""
    return {
        "name": TOOL_NAME,
        "description": TOOL_DESCRIPTION,
        "inputSchema": ToolParams.model_json_schema(),
    }


def _require(params: ToolParams, field: str) -> str:
    value = getattr(params, field)
    if not value:
        raise ValueError(f"{field} is required for {params.mode} {params.action}")
    return value


# =============================================================================
# Gmail
# =============================================================================


def _gmail(broker: WorkspaceBroker, params: ToolParams) -> Any:
    gmail = broker.gmail(params.account)

    if params.action == "search":
        resp = (
            gmail.users()
            .messages()
            .list(userId="me", q=params.query or "", maxResults=params.max_results)
            .execute()
        )
        return {
            "messages": resp.get("messages", []),
            "resultSizeEstimate": resp.get("resultSizeEstimate", 0),
        }

    if params.action == "read":
        message_id = _require(params, "message_id")
        msg = (
            gmail.users()
            .messages()
            .get(userId="me", id=message_id, format=params.format)
            .execute()
        )
        headers = {
            h["name"]: h["value"]
            for h in msg.get("payload", {}).get("headers", [])
            if h.get("name") in {"From", "To", "Cc", "Subject", "Date"}
        }
        return {
            "id": msg.get("id"),
            "threadId": msg.get("threadId"),
            "labelIds": msg.get("labelIds", []),
            "snippet": msg.get("snippet", ""),
            "headers": headers,
        }

    if params.action == "labels_list":
        resp = gmail.users().labels().list(userId="me").execute()
        return [
            {"id": label.get("id"), "name": label.get("name"), "type": label.get("type")}
            for label in resp.get("labels", [])
        ]

    raise ValueError(f"Unknown gmail action: {params.action}")


# =============================================================================
# Calendar
# =============================================================================


def _calendar(broker: WorkspaceBroker, params: ToolParams) -> Any:
    calendar = broker.calendar(params.account)

    if params.action == "list_events":
        kwargs: dict[str, Any] = {
            "calendarId": params.calendar_id,
            "maxResults": params.max_results,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if params.time_min:
            kwargs["timeMin"] = params.time_min
        if params.time_max:
            kwargs["timeMax"] = params.time_max
        if params.query:
            kwargs["q"] = params.query
        resp = calendar.events().list(**kwargs).execute()
        return resp.get("items", [])

    if params.action == "get_event":
        event_id = _require(params, "event_id")
        return calendar.events().get(calendarId=params.calendar_id, eventId=event_id).execute()

    if params.action == "list_calendars":
        resp = calendar.calendarList().list().execute()
        return [
            {"id": c.get("id"), "summary": c.get("summary"), "primary": c.get("primary", False)}
            for c in resp.get("items", [])
        ]

    raise ValueError(f"Unknown calendar action: {params.action}")


# =============================================================================
# Drive
# =============================================================================


def _drive(broker: WorkspaceBroker, params: ToolParams) -> Any:
    drive = broker.drive(params.account)

    if params.action in ("search", "list"):
        if params.action == "search":
            q = _require(params, "query")
        else:
            q = f"'{params.parent_id or 'root'}' in parents and trashed = false"
        resp = (
            drive.files()
            .list(q=q, pageSize=params.max_results, fields=f"files({DRIVE_FILE_FIELDS})")
            .execute()
        )
        return resp.get("files", [])

    if params.action == "get":
        file_id = _require(params, "file_id")
        return drive.files().get(fileId=file_id, fields=DRIVE_FILE_FIELDS).execute()

    raise ValueError(f"Unknown drive action: {params.action}")


# =============================================================================
# Contacts
# =============================================================================


def _contacts(broker: WorkspaceBroker, params: ToolParams) -> Any:
    people = broker.people(params.account)

    if params.action == "search":
        query = _require(params, "query")
        # searchContacts caps pageSize at 30
        resp = (
            people.people()
            .searchContacts(
                query=query, readMask=PERSON_FIELDS, pageSize=min(params.max_results, 30)
            )
            .execute()
        )
        return [r.get("person", {}) for r in resp.get("results", [])]

    if params.action == "list":
        resp = (
            people.people()
            .connections()
            .list(
                resourceName="people/me",
                personFields=PERSON_FIELDS,
                pageSize=params.max_results,
            )
            .execute()
        )
        return resp.get("connections", [])

    if params.action == "get":
        resource_name = _require(params, "resource_name")
        return people.people().get(resourceName=resource_name, personFields=PERSON_FIELDS).execute()

    raise ValueError(f"Unknown contacts action: {params.action}")


HANDLERS: dict[str, Callable[[WorkspaceBroker, ToolParams], Any]] = {
    "gmail": _gmail,
    "calendar": _calendar,
    "drive": _drive,
    "contacts": _contacts,
}


def handle_tool_call(broker: WorkspaceBroker, arguments: dict[str, Any]) -> str:
    """Run one tool call and return its JSON result or a translated error."""
    try:
        params = ToolParams.model_validate(arguments)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        return json.dumps({"error": f"Invalid arguments: {errors}"}, default=str)

    strategy: AuthStrategy | None = None
    try:
        strategy = broker.classify(params.account)
        result = HANDLERS[params.mode](broker, params)
    except Exception as err:
        logger.warning(
            "Tool call failed",
            extra={
                "account": params.account,
                "mode": params.mode,
                "action": params.action,
                "error_type": type(err).__name__,
            },
        )
        return json.dumps({"error": translate_error(err, strategy)})

    return json.dumps(result, indent=2, default=str)
