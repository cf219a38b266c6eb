# -*- coding: utf-8 -*-
"""
Request bodies for the Google Calendar and Outlook (Microsoft Graph) event APIs.

Both are built from the same :class:`CalendarEvent` as the ICS export and
render the same UTC instants.
"""
from __future__ import annotations

import typing as t

from services.shared.errors import ValidationError
from services.shared.utils import format_iso_utc
from .models import CalendarEvent

PROVIDERS = ("google", "outlook")


def to_google_event(event: CalendarEvent, timezone: str = "UTC") -> dict[str, t.Any]:
    """Google Calendar ``events.insert`` body."""
    if event.reminder_minutes is not None:
        reminders = {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": event.reminder_minutes}],
        }
    else:
        reminders = {"useDefault": True}
    return {
        "summary": event.title,
        "description": event.description or "",
        "start": {"dateTime": format_iso_utc(event.start_time), "timeZone": timezone},
        "end": {"dateTime": format_iso_utc(event.end_time), "timeZone": timezone},
        "location": event.location or "",
        "colorId": event.color_id or "1",
        "reminders": reminders,
    }


def to_outlook_event(event: CalendarEvent, timezone: str = "UTC") -> dict[str, t.Any]:
    """Microsoft Graph ``/me/events`` body."""
    return {
        "subject": event.title,
        "body": {"content": event.description or "", "contentType": "text"},
        "start": {"dateTime": format_iso_utc(event.start_time), "timeZone": timezone},
        "end": {"dateTime": format_iso_utc(event.end_time), "timeZone": timezone},
        "location": {"displayName": event.location or ""},
        "isReminderOn": event.reminder_minutes is not None,
        "reminderMinutesBeforeStart": event.reminder_minutes or 0,
    }


def build_provider_payloads(
    events: t.Iterable[CalendarEvent],
    provider: str,
    timezone: str = "UTC",
) -> list[dict[str, t.Any]]:
    """Shape every event for ``provider`` (``google`` or ``outlook``)."""
    if provider == "google":
        shape = to_google_event
    elif provider == "outlook":
        shape = to_outlook_event
    else:
        raise ValidationError(f"Unsupported calendar provider: {provider!r}", {"provider": "unsupported"})
    return [shape(event, timezone) for event in events]
