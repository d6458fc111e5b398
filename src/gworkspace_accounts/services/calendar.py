"""Google Calendar operations for configured accounts."""

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from gworkspace_accounts.exceptions import ServiceCallError
from gworkspace_accounts.services.call_wrapper import ServiceCallWrapper

logger = logging.getLogger(__name__)

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
DEFAULT_MAX_RESULTS = 10


def normalize_datetime(value: str) -> str:
    """Normalize a date or datetime string to RFC 3339 UTC with milliseconds.

    Date-only values are read as midnight UTC.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"Invalid date format: {value}") from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def format_event(item: dict[str, Any]) -> dict[str, Any]:
    start = item.get("start", {})
    end = item.get("end", {})
    return {
        "id": item.get("id"),
        "summary": item.get("summary"),
        "description": item.get("description"),
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "location": item.get("location"),
        "attendees": [a.get("email") for a in item.get("attendees", [])],
        "html_link": item.get("htmlLink"),
    }


def _events_url(calendar_id: str) -> str:
    return f"{CALENDAR_API_BASE}/calendars/{quote(calendar_id, safe='')}/events"


class CalendarService:
    """Calendar API access on behalf of configured accounts."""

    def __init__(self, wrapper: ServiceCallWrapper) -> None:
        self.wrapper = wrapper

    async def list_calendars(self, email: str) -> list[dict[str, Any]]:
        response = await self.wrapper.call(
            email,
            "list_calendars",
            lambda client: client.get(f"{CALENDAR_API_BASE}/users/me/calendarList"),
        )
        return [
            {
                "id": item.get("id"),
                "summary": item.get("summary"),
                "description": item.get("description"),
                "access_role": item.get("accessRole"),
                "primary": item.get("primary", False),
            }
            for item in response.get("items", [])
        ]

    async def get_events(
        self,
        email: str,
        query: str | None = None,
        max_results: int | None = None,
        time_min: str | None = None,
        time_max: str | None = None,
        calendar_id: str = "primary",
    ) -> list[dict[str, Any]]:
        """List events ordered by start time.

        Raises:
            ValueError: If ``time_min`` or ``time_max`` is not a valid date.
        """
        params: dict[str, Any] = {
            "maxResults": max_results or DEFAULT_MAX_RESULTS,
            "singleEvents": True,
            "orderBy": "startTime",
        }
        # Validate before any provider call
        if time_min:
            params["timeMin"] = normalize_datetime(time_min)
        if time_max:
            params["timeMax"] = normalize_datetime(time_max)
        if query:
            params["q"] = query

        response = await self.wrapper.call(
            email,
            "get_events",
            lambda client: client.get(_events_url(calendar_id), params=params),
        )
        return [format_event(item) for item in response.get("items", [])]

    async def get_event(
        self, email: str, event_id: str, calendar_id: str = "primary"
    ) -> dict[str, Any]:
        response = await self.wrapper.call(
            email,
            "get_event",
            lambda client: client.get(f"{_events_url(calendar_id)}/{quote(event_id, safe='')}"),
        )
        return format_event(response)

    async def create_event(
        self,
        email: str,
        summary: str,
        start: dict[str, Any],
        end: dict[str, Any],
        description: str | None = None,
        attendees: list[str] | None = None,
        location: str | None = None,
        calendar_id: str = "primary",
    ) -> dict[str, Any]:
        """Create an event and notify attendees.

        Args:
            start: Event start, e.g. ``{"dateTime": "...", "timeZone": "UTC"}``.
            end: Event end in the same shape.
            attendees: Attendee email addresses.

        Raises:
            ServiceCallError: If the provider response lacks an id or summary.
        """
        event_body: dict[str, Any] = {"summary": summary, "start": start, "end": end}
        if description:
            event_body["description"] = description
        if attendees:
            event_body["attendees"] = [{"email": address} for address in attendees]
        if location:
            event_body["location"] = location

        response = await self.wrapper.call(
            email,
            "create_event",
            lambda client: client.post(
                _events_url(calendar_id),
                json_data=event_body,
                params={"sendUpdates": "all"},
            ),
        )

        if not response.get("id") or not response.get("summary"):
            raise ServiceCallError(
                "Failed to create event: response missing id or summary",
                email=email,
                operation="create_event",
            )

        return {
            "id": response["id"],
            "summary": response["summary"],
            "html_link": response.get("htmlLink"),
        }

    async def delete_event(
        self, email: str, event_id: str, calendar_id: str = "primary"
    ) -> dict[str, Any]:
        await self.wrapper.call(
            email,
            "delete_event",
            lambda client: client.delete(
                f"{_events_url(calendar_id)}/{quote(event_id, safe='')}",
                params={"sendUpdates": "all"},
            ),
        )
        return {"status": "deleted", "event_id": event_id}
